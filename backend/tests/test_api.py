import pytest
from fastapi.testclient import TestClient

from dealer_crm.main import app
from dealer_crm.models.lead import LeadStatus
from dealer_crm.models.user import DealerRole
from dealer_crm.utils.security import create_access_token

from conftest import run_sync


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def auth(user):
    token = create_access_token(user.id, user.email, user.dealer_id)
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_public_lead_is_created_and_flagged_on_repeat(client, seed, sink):
    dealer = run_sync(seed.dealer())
    body = {
        "dealer_id": dealer.id,
        "name": "Ana",
        "email": "ana@correo.cl",
        "message": "¿Sigue disponible?",
    }

    first = client.post("/leads/public", json=body)
    assert first.status_code == 201
    assert first.json()["status"] == "NEW"
    assert first.json()["is_duplicate"] is False

    second = client.post("/leads/public", json=body)
    assert second.status_code == 201
    assert second.json()["is_duplicate"] is True


def test_public_lead_for_unknown_dealer_is_404(client, sink):
    response = client.post(
        "/leads/public",
        json={"dealer_id": 999, "name": "Ana", "email": "ana@correo.cl", "message": "Hola"},
    )
    assert response.status_code == 404
    assert response.json() == {"detail": "Automotora no encontrada"}


def test_dealer_endpoints_require_token(client):
    assert client.get("/leads/").status_code in (401, 403)
    response = client.get("/leads/", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_second_conversion_returns_conflict_with_existing_lead(client, seed, sink):
    dealer = run_sync(seed.dealer())
    seller = run_sync(seed.member(dealer))
    body = {"conversation_id": 42, "email": "ana@correo.cl"}

    created = client.post("/leads/from-conversation", json=body, headers=auth(seller))
    assert created.status_code == 201
    lead_id = created.json()["id"]
    assert created.json()["source"] == "CHAT"

    conflict = client.post("/leads/from-conversation", json=body, headers=auth(seller))
    assert conflict.status_code == 409
    assert conflict.json()["lead_id"] == lead_id
    assert "detail" in conflict.json()

    found = client.get("/leads/by-conversation/42", headers=auth(seller))
    assert found.json()["lead"]["id"] == lead_id


def test_patch_status_and_read_activity_log(client, seed, sink):
    dealer = run_sync(seed.dealer())
    seller = run_sync(seed.member(dealer))
    lead = run_sync(seed.lead(dealer))

    response = client.patch(
        f"/leads/{lead.id}", json={"status": "CONTACTED"}, headers=auth(seller)
    )
    assert response.status_code == 200
    assert response.json()["status"] == LeadStatus.CONTACTED.value
    assert response.json()["responded_at"] is not None

    activities = client.get(f"/leads/{lead.id}/activities", headers=auth(seller)).json()
    assert [a["type"] for a in activities] == ["STATUS_CHANGE"]
    assert activities[0]["metadata"] == {"oldStatus": "NEW", "newStatus": "CONTACTED"}


def test_foreign_lead_is_404(client, seed):
    dealer = run_sync(seed.dealer())
    other = run_sync(seed.dealer(name="Otra"))
    seller = run_sync(seed.member(dealer))
    foreign = run_sync(seed.lead(other))

    assert client.get(f"/leads/{foreign.id}", headers=auth(seller)).status_code == 404


def test_only_managers_delete_leads(client, seed):
    dealer = run_sync(seed.dealer())
    seller = run_sync(seed.member(dealer))
    manager = run_sync(seed.member(dealer, role=DealerRole.MANAGER))
    lead = run_sync(seed.lead(dealer))

    assert client.delete(f"/leads/{lead.id}", headers=auth(seller)).status_code == 403
    assert client.delete(f"/leads/{lead.id}", headers=auth(manager)).status_code == 204
    assert client.get(f"/leads/{lead.id}", headers=auth(manager)).status_code == 404


def test_invalid_assignee_is_rejected(client, seed):
    dealer = run_sync(seed.dealer())
    other = run_sync(seed.dealer(name="Otra"))
    seller = run_sync(seed.member(dealer))
    outsider = run_sync(seed.member(other))
    lead = run_sync(seed.lead(dealer))

    response = client.patch(
        f"/leads/{lead.id}", json={"assigned_to_id": outsider.id}, headers=auth(seller)
    )
    assert response.status_code == 400
    assert client.get(f"/leads/{lead.id}", headers=auth(seller)).json()["assigned_to_id"] is None


def test_template_tools(client, seed):
    dealer = run_sync(seed.dealer())
    seller = run_sync(seed.member(dealer))

    variables = client.get("/auto-response/variables", headers=auth(seller)).json()
    assert "nombre" in variables["variables"]

    check = client.post(
        "/auto-response/validate",
        json={"content": "Hola {nombre} {apodo}"},
        headers=auth(seller),
    ).json()
    assert check == {"valid": False, "unknown_variables": ["apodo"]}


def test_auto_response_config_requires_manager(client, seed):
    dealer = run_sync(seed.dealer())
    seller = run_sync(seed.member(dealer))
    owner = run_sync(seed.member(dealer, role=DealerRole.OWNER))
    template = run_sync(seed.template(dealer))
    body = {"enabled": True, "email_template_id": template.id, "delay_minutes": 5}

    assert client.put("/auto-response/config", json=body, headers=auth(seller)).status_code == 403
    saved = client.put("/auto-response/config", json=body, headers=auth(owner))
    assert saved.status_code == 200
    assert client.get("/auto-response/config", headers=auth(seller)).json()["enabled"] is True


def test_sales_role_is_rejected_with_detail_body(client, seed):
    dealer = run_sync(seed.dealer())
    seller = run_sync(seed.member(dealer))
    lead = run_sync(seed.lead(dealer))
    expected = {"detail": "No tienes permisos para esta acción"}

    deleted = client.delete(f"/leads/{lead.id}", headers=auth(seller))
    assert deleted.status_code == 403
    assert deleted.json() == expected

    config = client.put(
        "/auto-response/config",
        json={"enabled": False, "delay_minutes": 5},
        headers=auth(seller),
    )
    assert config.status_code == 403
    assert config.json() == expected
    assert client.get(f"/leads/{lead.id}", headers=auth(seller)).status_code == 200


def test_cron_endpoints_require_secret(client, seed):
    dealer = run_sync(seed.dealer())
    vehicle = run_sync(seed.vehicle(dealer))

    denied = client.post("/cron/vehicle-published", json={"vehicle_id": vehicle.id})
    assert denied.status_code == 401

    allowed = client.post(
        "/cron/vehicle-published",
        json={"vehicle_id": vehicle.id},
        headers={"Authorization": "Bearer test-cron-secret"},
    )
    assert allowed.status_code == 200
    assert allowed.json() == {"matches_found": 0, "notified": 0}


def test_notification_inbox(client, seed, sink):
    dealer = run_sync(seed.dealer())
    seller = run_sync(seed.member(dealer))
    client.post(
        "/leads/public",
        json={"dealer_id": dealer.id, "name": "Ana", "email": "ana@correo.cl", "message": "Hola"},
    )

    inbox = client.get("/notifications/", headers=auth(seller)).json()
    assert inbox["total"] == 1
    assert inbox["unread_count"] == 1
    notification_id = inbox["notifications"][0]["id"]

    read = client.post(f"/notifications/{notification_id}/read", headers=auth(seller))
    assert read.json() == {"success": True, "updated": 1}
    assert client.get("/notifications/unread/count", headers=auth(seller)).json() == 0
