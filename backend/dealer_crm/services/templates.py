"""Customer-facing template interpolation.

Templates use ``{variable}`` placeholders. Only the variables in
``TEMPLATE_VARIABLES`` are substituted; afterwards any remaining lowercase
placeholder is removed, even one carried in by a substituted value.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from dealer_crm.utils.time import format_date_es, format_time_es, to_local, utc_now

TEMPLATE_VARIABLES: Dict[str, str] = {
    "nombre": "Nombre del cliente",
    "email": "Email del cliente",
    "telefono": "Teléfono del cliente",
    "vehiculo": "Nombre del vehículo",
    "vehiculo_precio": "Precio del vehículo",
    "dealer_nombre": "Nombre de la automotora",
    "dealer_telefono": "Teléfono de la automotora",
    "dealer_direccion": "Dirección de la automotora",
    "fecha": "Fecha actual",
    "hora": "Hora actual",
}

PLACEHOLDER_RE = re.compile(r"\{([a-z_]+)\}")

SAMPLE_CONTEXT: Dict[str, str] = {
    "nombre": "Juan Pérez",
    "email": "juan@ejemplo.com",
    "telefono": "+56 9 1234 5678",
    "vehiculo": "Toyota Corolla 2023",
    "vehiculo_precio": "$ 15.990.000",
    "dealer_nombre": "Automotora Ejemplo",
    "dealer_telefono": "+56 2 2345 6789",
    "dealer_direccion": "Av. Principal 123, Santiago",
}


def format_price_clp(value: Optional[float]) -> str:
    """``15990000`` -> ``$ 15.990.000``; empty for missing prices."""
    if not value:
        return ""
    return "$ " + f"{int(round(value)):,}".replace(",", ".")


def interpolate_template(
    template: str,
    context: Mapping[str, Any],
    now: Optional[datetime] = None,
    tz_name: str = "America/Santiago",
) -> str:
    local_now = to_local(now or utc_now(), tz_name)
    values: Dict[str, Any] = {
        "fecha": format_date_es(local_now),
        "hora": format_time_es(local_now),
    }
    values.update({k: v for k, v in context.items() if k in TEMPLATE_VARIABLES})

    result = template
    for name, value in values.items():
        if value is not None:
            result = result.replace("{%s}" % name, str(value))

    # Leftovers, including placeholders that arrived inside substituted values
    return PLACEHOLDER_RE.sub("", result)


def extract_variables(template: str) -> List[str]:
    seen: List[str] = []
    for name in PLACEHOLDER_RE.findall(template):
        if name not in seen:
            seen.append(name)
    return seen


def validate_template(template: str) -> Dict[str, Any]:
    unknown = [v for v in extract_variables(template) if v not in TEMPLATE_VARIABLES]
    return {"valid": not unknown, "unknown_variables": unknown}


def template_preview(template: str, now: Optional[datetime] = None) -> str:
    return interpolate_template(template, SAMPLE_CONTEXT, now=now)


def wrap_in_email_layout(content: str) -> str:
    """Wrap plain text in the minimal HTML layout used for customer emails."""
    body = content.replace("\n", "<br>")
    return f"""
<!DOCTYPE html>
<html lang="es">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f4f4f5;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background-color: #f4f4f5;">
    <tr>
      <td align="center" style="padding: 40px 20px;">
        <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width: 600px; background-color: #ffffff; border-radius: 8px;">
          <tr>
            <td style="padding: 32px 40px;">
              {body}
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""
