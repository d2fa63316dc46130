"""Outbound email: the notification sink and the team-facing email bodies."""

from dataclasses import dataclass
from html import escape
from typing import Optional, Protocol, runtime_checkable

import httpx

from dealer_crm.config import settings
from dealer_crm.errors import EmailDeliveryError
from dealer_crm.utils.logging import get_logger

logger = get_logger("services.email")


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@runtime_checkable
class NotificationSink(Protocol):
    """Anything that can hand an email off for delivery."""

    async def send_email(self, to: str, subject: str, html: str) -> EmailResult: ...


class HttpEmailSink:
    """Posts messages to a Resend-compatible HTTP email API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.email_api_key
        self.api_url = api_url or settings.email_api_url
        self.sender = sender or settings.email_from
        self.timeout = timeout or settings.email_timeout_seconds

    async def send_email(self, to: str, subject: str, html: str) -> EmailResult:
        if not self.api_key:
            raise EmailDeliveryError("Email API key is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.api_url, headers=headers, json=payload)
        except httpx.RequestError as exc:
            raise EmailDeliveryError(f"Email API request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise EmailDeliveryError(
                f"Email API rejected message: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        message_id = None
        try:
            message_id = resp.json().get("id")
        except ValueError:
            logger.warning("email_api_non_json_response", status=resp.status_code)
        return EmailResult(success=True, message_id=message_id)


_default_sink: Optional[NotificationSink] = None


def get_email_sink() -> NotificationSink:
    global _default_sink
    if _default_sink is None:
        _default_sink = HttpEmailSink()
    return _default_sink


def set_email_sink(sink: Optional[NotificationSink]) -> None:
    """Override the process-wide sink (tests, alternative providers)."""
    global _default_sink
    _default_sink = sink


def _lead_card(name: str, email: str, phone: Optional[str], message: str, vehicle: Optional[str]) -> str:
    rows = [
        f"<p><strong>Nombre:</strong> {escape(name)}</p>",
        f"<p><strong>Email:</strong> {escape(email)}</p>",
    ]
    if phone:
        rows.append(f"<p><strong>Teléfono:</strong> {escape(phone)}</p>")
    if vehicle:
        rows.append(f"<p><strong>Vehículo:</strong> {escape(vehicle)}</p>")
    rows.append(f"<p><strong>Mensaje:</strong><br>{escape(message)}</p>")
    return "\n".join(rows)


def new_lead_email(
    recipient_name: str,
    lead_name: str,
    lead_email: str,
    lead_phone: Optional[str],
    message: str,
    vehicle_title: Optional[str],
    lead_url: str,
) -> str:
    return f"""
<h2>Nuevo lead recibido</h2>
<p>Hola {escape(recipient_name)}, tienes una nueva consulta:</p>
{_lead_card(lead_name, lead_email, lead_phone, message, vehicle_title)}
<p><a href="{lead_url}">Ver lead</a></p>
"""


def lead_assigned_email(
    recipient_name: str,
    assigned_by: str,
    lead_name: str,
    lead_email: str,
    lead_phone: Optional[str],
    message: str,
    vehicle_title: Optional[str],
    lead_url: str,
) -> str:
    return f"""
<h2>Se te asignó un lead</h2>
<p>Hola {escape(recipient_name)}, {escape(assigned_by)} te asignó el siguiente lead:</p>
{_lead_card(lead_name, lead_email, lead_phone, message, vehicle_title)}
<p><a href="{lead_url}">Ver lead</a></p>
"""
