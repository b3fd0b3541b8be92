"""
Valutatore delle scadenze di una ServiceAssignment.

Funzioni pure: dato un "now" e le date dell'assegnazione, restituisce le
condizioni attive. Nessun accesso al DB.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from .config import AlertRules
from .errors import ValidationError


class ConditionKind(enum.Enum):
    EXPIRATION_PENDING = "expiration_pending"
    CARE_PLAN_PENDING = "care_plan_pending"
    PERSONAL_CARE_PLAN_PENDING = "personal_care_plan_pending"
    REVIEW_DUE = "review_due"


# Il testo del messaggio è l'identità visibile dell'alert (chiave di dedup)
CONDITION_MESSAGES: dict[ConditionKind, str] = {
    ConditionKind.EXPIRATION_PENDING: "This client's service agreement is about to expire",
    ConditionKind.CARE_PLAN_PENDING: "This client's care plan is about to expire",
    ConditionKind.PERSONAL_CARE_PLAN_PENDING: "This client's personal care plan is about to expire",
    ConditionKind.REVIEW_DUE: "This client's service agreement needs to be reviewed",
}

# condizione -> attributo della ServiceAssignment con finestra di preavviso
_LEAD_TIME_FIELDS: tuple[tuple[ConditionKind, str], ...] = (
    (ConditionKind.EXPIRATION_PENDING, "expiration_date"),
    (ConditionKind.CARE_PLAN_PENDING, "cca_completion_date"),
    (ConditionKind.PERSONAL_CARE_PLAN_PENDING, "pcp_completion_date"),
)


@dataclass(frozen=True)
class ConditionEvent:
    kind: ConditionKind
    effective_date: date

    @property
    def message(self) -> str:
        return CONDITION_MESSAGES[self.kind]


def as_day(value: Any, field: str) -> date | None:
    """Normalizza a date (granularità giorno). None resta None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip()).date()
        except ValueError:
            raise ValidationError(field, value) from None
    raise ValidationError(field, value)


def in_lead_window(deadline: date, today: date, lead_time_days: int) -> bool:
    """True se today ∈ [deadline - lead_time_days, deadline], estremi inclusi."""
    return deadline - timedelta(days=lead_time_days) <= today <= deadline


def evaluate_assignment(assignment: Any, now: date | datetime, rules: AlertRules | None = None) -> list[ConditionEvent]:
    """
    Regole indipendenti (un'assegnazione può attivarne più di una):
    - scadenza contratto / care plan / personal care plan: dentro la finestra di preavviso
    - revisione: now >= review_date, senza limite superiore (il dedup è a valle)
    """
    rules = rules or AlertRules()
    today = as_day(now, "now")
    events: list[ConditionEvent] = []

    for kind, field in _LEAD_TIME_FIELDS:
        deadline = as_day(getattr(assignment, field, None), field)
        if deadline is not None and in_lead_window(deadline, today, rules.lead_time_days):
            events.append(ConditionEvent(kind, deadline))

    if rules.review_enabled:
        review = as_day(getattr(assignment, "review_date", None), "review_date")
        if review is not None and today >= review:
            events.append(ConditionEvent(ConditionKind.REVIEW_DUE, review))

    return events
