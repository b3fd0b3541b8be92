from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import and_, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload, selectinload

from .config import ReminderRules
from .db import db_session
from .errors import DispatchError, NotFoundError
from .models import Appointment, AppointmentStatus, Audience, ReminderDispatch, ReminderStage
from .notifications import NotificationDispatcher, get_dispatcher

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


# =========================
# Helper / DTO
# =========================
@dataclass(frozen=True)
class ReminderSummary:
    sent: int = 0
    skipped: int = 0
    failed: int = 0

    def __add__(self, other: "ReminderSummary") -> "ReminderSummary":
        return ReminderSummary(self.sent + other.sent, self.skipped + other.skipped, self.failed + other.failed)

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class AppointmentSnapshot:
    """Vista 'flat' dell'appuntamento: evita lazy-load fuori sessione."""

    id: str
    scheduled_at: datetime
    client_name: str
    client_email: str | None
    therapist_name: str | None = None
    therapist_email: str | None = None
    video_requested: bool = False
    note: str | None = None
    stage: ReminderStage | None = None
    already_sent: frozenset[tuple[ReminderStage, Audience]] = field(default_factory=frozenset)


def _snapshot(app: Appointment, stage: ReminderStage | None = None) -> AppointmentSnapshot:
    return AppointmentSnapshot(
        id=app.id,
        scheduled_at=app.scheduled_at,
        client_name=app.client.full_name,
        client_email=app.client.email,
        therapist_name=app.therapist.full_name if app.therapist else None,
        therapist_email=app.therapist.email if app.therapist else None,
        video_requested=app.video_requested,
        note=app.note,
        stage=stage,
        already_sent=frozenset((d.stage, d.audience) for d in app.dispatches),
    )


def to_naive_utc(value: datetime) -> datetime:
    """Gli orari in DB sono UTC naive: un datetime con fuso viene convertito."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def format_date_time(value: datetime) -> str:
    """Formato en-US a 12 ore, es. '01/14/2026 at 10:30 AM'."""
    return f"{value.strftime('%m/%d/%Y')} at {value.strftime('%I:%M %p')}"


def build_payload(app: AppointmentSnapshot) -> dict[str, Any]:
    return {
        "appointment_id": app.id,
        "client_name": app.client_name,
        "therapist_name": app.therapist_name,
        "date_time": format_date_time(app.scheduled_at),
        "video": app.video_requested,
        "note": app.note,
    }


def recipients(app: AppointmentSnapshot, rules: ReminderRules) -> list[tuple[Audience, str]]:
    out: list[tuple[Audience, str]] = []
    if app.client_email:
        out.append((Audience.CLIENTS, app.client_email))
    if rules.notify_therapist and app.therapist_email:
        out.append((Audience.CLINICIANS, app.therapist_email))
    return out


# =========================
# Stage temporali
# =========================
def current_stage(scheduled_at: datetime, now: datetime, rules: ReminderRules | None = None) -> ReminderStage | None:
    """
    Stage temporale più avanzato applicabile adesso:
    - onAppointmentStart da scheduled_at a scheduled_at + start_grace
    - before1hr sotto l'ora
    - before24hrs sotto le 24 ore
    Gli stage già superati non vengono recuperati in ritardo.
    """
    rules = rules or ReminderRules()
    now, scheduled_at = to_naive_utc(now), to_naive_utc(scheduled_at)
    if now >= scheduled_at:
        if now - scheduled_at <= timedelta(minutes=rules.start_grace_minutes):
            return ReminderStage.ON_START
        return None

    remaining = scheduled_at - now
    if remaining < timedelta(minutes=rules.hour_before_minutes):
        return ReminderStage.BEFORE_1H
    if remaining < timedelta(hours=rules.day_before_hours):
        return ReminderStage.BEFORE_24H
    return None


def list_due_appointments(now: datetime, rules: ReminderRules | None = None) -> list[AppointmentSnapshot]:
    """Appuntamenti attivi con uno stage scattato e almeno un destinatario non ancora notificato."""
    rules = rules or ReminderRules.from_env()
    now = to_naive_utc(now)
    window_start = now - timedelta(minutes=rules.start_grace_minutes)
    window_end = now + timedelta(hours=rules.day_before_hours)

    with db_session() as s:
        q = (
            select(Appointment)
            .options(
                joinedload(Appointment.client),
                joinedload(Appointment.therapist),
                selectinload(Appointment.dispatches),
            )
            .where(
                and_(
                    Appointment.status.in_(ACTIVE_STATUSES),
                    Appointment.scheduled_at >= window_start,
                    Appointment.scheduled_at <= window_end,
                )
            )
            .order_by(Appointment.scheduled_at.asc())
        )

        due: list[AppointmentSnapshot] = []
        for app in s.scalars(q).unique():
            stage = current_stage(app.scheduled_at, now, rules)
            if stage is None:
                continue
            snap = _snapshot(app, stage)
            if any((stage, audience) not in snap.already_sent for audience, _ in recipients(snap, rules)):
                due.append(snap)
        return due


# =========================
# Claim / invio
# =========================
def _claim(appointment_id: str, stage: ReminderStage, audience: Audience, recipient: str) -> int | None:
    """Inserisce la riga di registro; None se un altro driver l'ha già presa."""
    try:
        with db_session() as s:
            d = ReminderDispatch(appointment_id=appointment_id, stage=stage, audience=audience, recipient=recipient)
            s.add(d)
            s.flush()
            return d.id
    except IntegrityError:
        return None


def _mark_sent(dispatch_id: int) -> None:
    with db_session() as s:
        d = s.get(ReminderDispatch, dispatch_id)
        if d is not None:
            d.sent_at = datetime.utcnow()


def _release(dispatch_id: int) -> None:
    # l'invio è fallito: il prossimo giro potrà riprovare
    with db_session() as s:
        s.execute(delete(ReminderDispatch).where(ReminderDispatch.id == dispatch_id))


def _send(dispatcher: NotificationDispatcher, contact: str, stage: ReminderStage, payload: dict[str, Any]) -> None:
    try:
        ok = dispatcher.send(contact, stage.value, payload)
    except Exception as e:
        raise DispatchError(f"{stage.value} -> {contact}: {e}") from e
    if not ok:
        raise DispatchError(f"{stage.value} -> {contact}: invio rifiutato")


def dispatch_stage(
    app: AppointmentSnapshot,
    stage: ReminderStage,
    dispatcher: NotificationDispatcher,
    rules: ReminderRules,
) -> ReminderSummary:
    """Controllo registro / invio / marcatura come unità atomica per (appuntamento, stage, destinatario)."""
    sent = skipped = failed = 0
    payload = build_payload(app)

    for audience, contact in recipients(app, rules):
        if (stage, audience) in app.already_sent:
            skipped += 1
            continue

        dispatch_id = _claim(app.id, stage, audience, contact)
        if dispatch_id is None:
            skipped += 1
            continue

        try:
            _send(dispatcher, contact, stage, payload)
        except DispatchError as e:
            _release(dispatch_id)
            failed += 1
            logger.warning("Promemoria non inviato (appuntamento %s): %s", app.id, e)
            continue

        _mark_sent(dispatch_id)
        sent += 1

    return ReminderSummary(sent, skipped, failed)


def dispatch_due_reminders(
    now: datetime | None = None,
    dispatcher: NotificationDispatcher | None = None,
    rules: ReminderRules | None = None,
) -> ReminderSummary:
    now = to_naive_utc(now or datetime.utcnow())
    dispatcher = dispatcher or get_dispatcher()
    rules = rules or ReminderRules.from_env()

    due = list_due_appointments(now, rules)
    logger.info("Promemoria del %s: %d appuntamenti da notificare", now.isoformat(timespec="minutes"), len(due))

    total = ReminderSummary()
    for app in due:
        try:
            total += dispatch_stage(app, app.stage, dispatcher, rules)
        except Exception:
            # errore sul registro (DB): l'appuntamento verrà ripreso al prossimo giro
            total += ReminderSummary(failed=1)
            logger.exception("Promemoria: appuntamento %s saltato", app.id)

    logger.info("Promemoria completati: %s", total.as_dict())
    return total


def get_appointment_snapshot(appointment_id: str) -> AppointmentSnapshot:
    with db_session() as s:
        q = (
            select(Appointment)
            .options(
                joinedload(Appointment.client),
                joinedload(Appointment.therapist),
                selectinload(Appointment.dispatches),
            )
            .where(Appointment.id == appointment_id)
        )
        app = s.scalars(q).unique().one_or_none()
        if app is None:
            raise NotFoundError("Appointment", appointment_id)
        return _snapshot(app)


def notify_booking(
    appointment_id: str,
    dispatcher: NotificationDispatcher | None = None,
    rules: ReminderRules | None = None,
) -> ReminderSummary:
    """Conferma di prenotazione, inviata una sola volta alla creazione dell'appuntamento."""
    app = get_appointment_snapshot(appointment_id)
    return dispatch_stage(app, ReminderStage.ON_BOOKING, dispatcher or get_dispatcher(), rules or ReminderRules.from_env())
