from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select

from .db import db_session
from .errors import NotFoundError
from .models import Appointment, AppointmentStatus, Client, ServiceAssignment, Therapist
from .notifications import NotificationDispatcher
from .reminders import ReminderSummary, notify_booking, to_naive_utc


# =========================
# Helper / DTO
# =========================
@dataclass(frozen=True)
class BookingResult:
    appointment_id: str
    status: AppointmentStatus
    reminders: ReminderSummary


# =========================
# CRUD base
# =========================
def create_client(first_name: str, last_name: str, email: str | None = None, phone: str | None = None) -> str:
    with db_session() as s:
        c = Client(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email.strip().lower() if email else None,
            phone=phone,
        )
        s.add(c)
        s.flush()
        return c.id


def create_therapist(first_name: str, last_name: str, email: str | None = None) -> str:
    with db_session() as s:
        t = Therapist(first_name=first_name.strip(), last_name=last_name.strip(), email=email)
        s.add(t)
        s.flush()
        return t.id


def create_service_assignment(
    client_id: str,
    service_name: str | None = None,
    expiration_date: date | None = None,
    cca_completion_date: date | None = None,
    pcp_completion_date: date | None = None,
    review_date: date | None = None,
) -> int:
    with db_session() as s:
        if s.get(Client, client_id) is None:
            raise NotFoundError("Client", client_id)
        sa = ServiceAssignment(
            client_id=client_id,
            service_name=service_name,
            expiration_date=expiration_date,
            cca_completion_date=cca_completion_date,
            pcp_completion_date=pcp_completion_date,
            review_date=review_date,
        )
        s.add(sa)
        s.flush()
        return sa.id


# =========================
# Query utili
# =========================
def list_clients_flat() -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(Client.id, Client.first_name, Client.last_name, Client.email)
            .where(Client.active.is_(True))
            .order_by(Client.last_name, Client.first_name)
        ).all()
        return [
            {"id": r.id, "first_name": r.first_name, "last_name": r.last_name, "email": r.email}
            for r in rows
        ]


def list_therapists_flat() -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(Therapist.id, Therapist.first_name, Therapist.last_name, Therapist.email)
            .where(Therapist.active.is_(True))
            .order_by(Therapist.last_name, Therapist.first_name)
        ).all()
        return [
            {"id": r.id, "first_name": r.first_name, "last_name": r.last_name, "email": r.email}
            for r in rows
        ]


# =========================
# Prenotazione
# =========================
def book_appointment(
    client_id: str,
    scheduled_at: datetime,
    therapist_id: str | None = None,
    video_requested: bool = False,
    note: str | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> BookingResult:
    """
    Crea l'appuntamento e invia subito la conferma di prenotazione.
    - senza terapeuta resta PENDING (assegnazione successiva da admin)
    """
    with db_session() as s:
        if s.get(Client, client_id) is None:
            raise NotFoundError("Client", client_id)
        if therapist_id and s.get(Therapist, therapist_id) is None:
            raise NotFoundError("Therapist", therapist_id)

        app = Appointment(
            client_id=client_id,
            therapist_id=therapist_id,
            scheduled_at=to_naive_utc(scheduled_at),
            status=AppointmentStatus.CONFIRMED if therapist_id else AppointmentStatus.PENDING,
            video_requested=video_requested,
            note=note,
        )
        s.add(app)
        s.flush()
        appointment_id, status = app.id, app.status

    # dopo il commit: la conferma non deve poter annullare la prenotazione
    reminders = notify_booking(appointment_id, dispatcher=dispatcher)
    return BookingResult(appointment_id, status, reminders)


def cancel_appointment(appointment_id: str) -> bool:
    with db_session() as s:
        app = s.get(Appointment, appointment_id)
        if app is None:
            raise NotFoundError("Appointment", appointment_id)
        if app.status == AppointmentStatus.CANCELLED:
            return False
        app.status = AppointmentStatus.CANCELLED
        return True
