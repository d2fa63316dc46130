from datetime import datetime, timezone

from dealer_crm.services.templates import (
    extract_variables,
    format_price_clp,
    interpolate_template,
    template_preview,
    validate_template,
    wrap_in_email_layout,
)


def test_unknown_placeholder_is_stripped_and_whitespace_kept():
    rendered = interpolate_template(
        "Hola {nombre}, el {vehiculo} cuesta {vehiculo_precio}. {no_existe}",
        {"nombre": "Ana", "vehiculo": "Civic", "vehiculo_precio": "$10.000.000"},
    )
    assert rendered == "Hola Ana, el Civic cuesta $10.000.000. "


def test_missing_known_variable_renders_empty():
    assert interpolate_template("Tel: {telefono}.", {"telefono": None}) == "Tel: ."


def test_placeholder_inside_a_value_is_stripped():
    assert interpolate_template("Hola {nombre}", {"nombre": "Ana {promo}"}) == "Hola Ana "


def test_fecha_and_hora_use_local_timezone():
    # 15:05 UTC is 12:05 in Santiago (UTC-3 in October)
    now = datetime(2026, 10, 19, 15, 5, tzinfo=timezone.utc)
    rendered = interpolate_template("{fecha} {hora}", {}, now=now)
    assert rendered == "19 de octubre de 2026 12:05"


def test_uppercase_braces_are_left_alone():
    assert interpolate_template("{Nombre} {nombre}", {"nombre": "Ana"}) == "{Nombre} Ana"


def test_price_formatting():
    assert format_price_clp(15990000) == "$ 15.990.000"
    assert format_price_clp(None) == ""
    assert format_price_clp(0) == ""


def test_validation_and_extraction():
    template = "Hola {nombre} {nombre}, {otro}"
    assert extract_variables(template) == ["nombre", "otro"]
    assert validate_template(template) == {"valid": False, "unknown_variables": ["otro"]}
    assert validate_template("Hola {nombre}")["valid"] is True


def test_preview_uses_sample_data():
    assert template_preview("Hola {nombre}") == "Hola Juan Pérez"


def test_email_layout_converts_newlines():
    html = wrap_in_email_layout("Hola\nAna")
    assert "Hola<br>Ana" in html
    assert html.strip().startswith("<!DOCTYPE html>")
