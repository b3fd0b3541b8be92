"""
Canale notifiche esterno.

Il motore sceglie solo il template (stage del promemoria) e passa un payload
strutturato; il formato del messaggio è responsabilità del dispatcher.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests

from .config import MAIL_FROM, MAIL_TIMEOUT_SECONDS, RESEND_API_KEY, RESEND_API_URL

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def send(self, contact: str, template_kind: str, payload: dict[str, Any]) -> bool: ...


# titolo + messaggio per stage
_TEMPLATES: dict[str, tuple[str, str]] = {
    "onBookingAppointment": ("Appointment Confirmation", "Your appointment has been scheduled for {date_time}."),
    "before24hrs": ("Appointment Reminder", "This is a reminder that you have an appointment at {date_time}."),
    "before1hr": ("Appointment Reminder", "Your appointment is starting in less than an hour at {date_time}."),
    "onAppointmentStart": ("Your Appointment Is Starting", "Your appointment is starting now."),
}


def render_text(template_kind: str, payload: dict[str, Any]) -> tuple[str, str]:
    """Soggetto e corpo testuale minimi (i template HTML non fanno parte di questo servizio)."""
    title, message = _TEMPLATES[template_kind]
    lines = [f"Dear {payload.get('client_name') or 'Client'},", "", message.format(date_time=payload.get("date_time", ""))]
    if payload.get("therapist_name"):
        lines.append(f"Therapist: {payload['therapist_name']}")
    if payload.get("video"):
        lines.append("This is a video session.")
    if payload.get("note"):
        lines.append(f"Note: {payload['note']}")
    return title, "\n".join(lines)


class ResendDispatcher:
    """Invio email tramite API HTTP di Resend."""

    def __init__(self, api_key: str, sender: str = MAIL_FROM, url: str = RESEND_API_URL, timeout: int = MAIL_TIMEOUT_SECONDS):
        self.api_key = api_key
        self.sender = sender
        self.url = url
        self.timeout = timeout

    def send(self, contact: str, template_kind: str, payload: dict[str, Any]) -> bool:
        subject, text = render_text(template_kind, payload)
        try:
            r = requests.post(
                self.url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"from": self.sender, "to": [contact], "subject": subject, "text": text},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Invio %s a %s fallito: %s", template_kind, contact, e)
            return False

        if not r.ok:
            logger.warning("Invio %s a %s rifiutato: HTTP %s %s", template_kind, contact, r.status_code, r.text[:200])
            return False
        return True


@dataclass
class LogDispatcher:
    """Simula il sistema esterno: logga e tiene traccia degli invii (sviluppo e test)."""

    sent: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    def send(self, contact: str, template_kind: str, payload: dict[str, Any]) -> bool:
        subject, _ = render_text(template_kind, payload)
        logger.info("[notifica] %s -> %s | %s", template_kind, contact, subject)
        self.sent.append((contact, template_kind, dict(payload)))
        return True


def get_dispatcher() -> NotificationDispatcher:
    if RESEND_API_KEY:
        return ResendDispatcher(RESEND_API_KEY)
    return LogDispatcher()
