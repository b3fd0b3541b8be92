from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any

from sqlalchemy import String, and_, func, select, type_coerce
from sqlalchemy.exc import IntegrityError

from .config import SWEEP_WORKERS, AlertRules
from .db import db_session
from .errors import ConflictError, NotFoundError
from .evaluator import as_day, evaluate_assignment
from .models import Alert, Audience, ServiceAssignment

logger = logging.getLogger(__name__)


# =========================
# Helper / DTO
# =========================
@dataclass(frozen=True)
class SweepSummary:
    created: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def alert_to_dict(a: Alert) -> dict[str, Any]:
    return {
        "id": a.id,
        "subject_id": a.subject_id,
        "audience": a.audience.value,
        "message": a.message,
        "date": a.effective_date.isoformat(),
        "read": a.read,
        "created_at": a.created_at.isoformat(),
    }


# =========================
# Emissione (insert-if-absent)
# =========================
def _condition_filter(subject_id: str, audience: Audience, message: str, effective_date: date):
    return and_(
        Alert.subject_id == subject_id,
        Alert.audience == audience,
        Alert.message == message,
        Alert.effective_date == effective_date,
    )


def emit_alert(subject_id: str, audience: Audience, message: str, effective_date: date) -> bool:
    """
    Crea l'alert solo se non esiste già per (soggetto, destinatari, messaggio, data).
    Ritorna True se creato, False se già presente.

    Il vincolo uq_alert_condition rende atomico l'inserimento: se due sweep
    concorrenti superano entrambi il lookup, il secondo INSERT fallisce e
    viene trattato come "già presente".
    """
    try:
        with db_session() as s:
            exists = s.execute(
                select(Alert.id).where(_condition_filter(subject_id, audience, message, effective_date)).limit(1)
            ).first()
            if exists is not None:
                return False

            s.add(
                Alert(
                    subject_id=subject_id,
                    audience=audience,
                    message=message,
                    effective_date=effective_date,
                    read=False,
                )
            )
            s.flush()
    except IntegrityError:
        logger.debug("Alert concorrente già inserito: %s %s %r %s", subject_id, audience.value, message, effective_date)
        return False
    return True


def add_alert(subject_id: str, audience: Audience, message: str, effective_date: date | datetime | str) -> bool:
    """Emissione manuale (admin), stesso percorso di dedup dello sweep."""
    day = as_day(effective_date, "date")
    return emit_alert(subject_id, audience, message.strip(), day)


# =========================
# Sweep scadenze
# =========================
def _raw(column):
    # valore così com'è nel DB: la validazione della data avviene per assegnazione
    return type_coerce(column, String).label(column.key)


def list_all_service_assignments() -> list[Any]:
    """Snapshot 'flat' delle assegnazioni: solo i campi che servono al valutatore."""
    with db_session() as s:
        q = select(
            ServiceAssignment.id,
            ServiceAssignment.client_id,
            _raw(ServiceAssignment.expiration_date),
            _raw(ServiceAssignment.cca_completion_date),
            _raw(ServiceAssignment.pcp_completion_date),
            _raw(ServiceAssignment.review_date),
        ).order_by(ServiceAssignment.id.asc())
        return list(s.execute(q).all())


def _process_assignment(assignment: Any, today: date, rules: AlertRules) -> tuple[int, int]:
    created = skipped = 0
    for event in evaluate_assignment(assignment, today, rules):
        if emit_alert(assignment.client_id, Audience.CLIENTS, event.message, event.effective_date):
            created += 1
        else:
            skipped += 1
    return created, skipped


def run_expiration_sweep(
    now: date | datetime | None = None,
    rules: AlertRules | None = None,
    workers: int | None = None,
) -> SweepSummary:
    """
    Passata completa sulle ServiceAssignment.
    - la lettura della collezione è l'unico errore fatale (propaga)
    - ogni assegnazione è un'unità indipendente: un errore viene loggato e contato
    """
    today = as_day(now or datetime.utcnow(), "now")
    rules = rules or AlertRules.from_env()
    workers = max(1, workers or SWEEP_WORKERS)

    assignments = list_all_service_assignments()
    logger.info("Sweep scadenze del %s: %d assegnazioni, %d worker", today.isoformat(), len(assignments), workers)

    created = skipped = failed = 0
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(_process_assignment, a, today, rules): a for a in assignments}
        for future in as_completed(futures):
            assignment = futures[future]
            try:
                c, sk = future.result()
            except Exception:
                failed += 1
                logger.exception("Sweep: assegnazione %s saltata", assignment.id)
                continue
            created += c
            skipped += sk

    summary = SweepSummary(created=created, skipped=skipped, failed=failed)
    logger.info("Sweep completato: %s", summary.as_dict())
    return summary


# =========================
# Stato di lettura
# =========================
def list_alerts(subject_id: str, audience: Audience) -> list[Alert]:
    """Alert di un soggetto per un pubblico, dal più recente."""
    with db_session() as s:
        q = (
            select(Alert)
            .where(and_(Alert.subject_id == subject_id, Alert.audience == audience))
            .order_by(Alert.created_at.desc(), Alert.effective_date.desc())
        )
        return list(s.scalars(q))


def count_unread(subject_id: str, audience: Audience) -> int:
    with db_session() as s:
        q = select(func.count(Alert.id)).where(
            and_(Alert.subject_id == subject_id, Alert.audience == audience, Alert.read.is_(False))
        )
        return int(s.execute(q).scalar_one())


def mark_alert_read(alert_id: str) -> None:
    """
    Segna l'alert come letto. Non controlla il pubblico: lo scoping è dato
    dall'endpoint di lista che ha esposto l'id.
    """
    with db_session() as s:
        a = s.get(Alert, alert_id)
        if a is None:
            raise NotFoundError("Alert", alert_id)
        a.read = True


# =========================
# Admin
# =========================
_UPDATABLE_FIELDS = ("message", "effective_date", "audience", "read")


def update_alert(alert_id: str, **fields: Any) -> Alert:
    """Modifica diretta di un alert esistente (correzioni admin), senza passare dal dedup."""
    unknown = set(fields) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Campi non modificabili: {', '.join(sorted(unknown))}")

    try:
        with db_session() as s:
            a = s.get(Alert, alert_id)
            if a is None:
                raise NotFoundError("Alert", alert_id)

            if fields.get("message") is not None:
                a.message = fields["message"].strip()
            if fields.get("effective_date") is not None:
                a.effective_date = as_day(fields["effective_date"], "date")
            if fields.get("audience") is not None:
                a.audience = Audience(fields["audience"])
            if fields.get("read") is not None:
                a.read = bool(fields["read"])
            s.flush()
            return a
    except IntegrityError:
        raise ConflictError(f"Esiste già un alert identico a {alert_id}") from None


def list_all_alerts(
    audience: Audience | None = None,
    read: bool | None = None,
    search: str | None = None,
    order: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> dict[str, Any]:
    """Lista paginata per l'area admin, con ricerca case-insensitive sul messaggio."""
    page = max(1, page)
    limit = max(1, min(limit, 100))

    conditions = []
    if audience is not None:
        conditions.append(Alert.audience == audience)
    if read is not None:
        conditions.append(Alert.read.is_(read))
    if search:
        conditions.append(Alert.message.ilike(f"%{search.strip()}%"))

    sort = Alert.created_at.asc() if order == "asc" else Alert.created_at.desc()

    with db_session() as s:
        total = s.execute(select(func.count(Alert.id)).where(*conditions)).scalar_one()
        rows = s.scalars(
            select(Alert).where(*conditions).order_by(sort).offset((page - 1) * limit).limit(limit)
        )
        return {
            "data": [alert_to_dict(a) for a in rows],
            "page": page,
            "limit": limit,
            "total": int(total),
        }
