"""Finestre temporali delle scadenze."""
from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest

from therapy_backend.config import AlertRules
from therapy_backend.errors import ValidationError
from therapy_backend.evaluator import CONDITION_MESSAGES, ConditionKind, as_day, evaluate_assignment, in_lead_window

TODAY = date(2024, 1, 1)


def assignment(**dates):
    fields = dict(expiration_date=None, cca_completion_date=None, pcp_completion_date=None, review_date=None)
    fields.update(dates)
    return SimpleNamespace(client_id="client-1", **fields)


def kinds(events):
    return [e.kind for e in events]


@pytest.mark.parametrize("offset", [0, 1, 15, 29, 30])
def test_expiration_inside_window_triggers(offset):
    deadline = TODAY + timedelta(days=offset)
    events = evaluate_assignment(assignment(expiration_date=deadline), TODAY)
    assert kinds(events) == [ConditionKind.EXPIRATION_PENDING]
    assert events[0].effective_date == deadline


@pytest.mark.parametrize("offset", [31, 90, -1, -30])
def test_expiration_outside_window_is_silent(offset):
    events = evaluate_assignment(assignment(expiration_date=TODAY + timedelta(days=offset)), TODAY)
    assert events == []


def test_care_plan_and_personal_care_plan_use_same_window():
    a = assignment(
        cca_completion_date=TODAY + timedelta(days=30),
        pcp_completion_date=TODAY + timedelta(days=31),
    )
    assert kinds(evaluate_assignment(a, TODAY)) == [ConditionKind.CARE_PLAN_PENDING]


def test_review_due_has_no_upper_bound():
    a = assignment(review_date=date(2023, 6, 1))
    events = evaluate_assignment(a, TODAY)
    assert kinds(events) == [ConditionKind.REVIEW_DUE]
    assert events[0].effective_date == date(2023, 6, 1)


def test_review_in_future_is_silent():
    assert evaluate_assignment(assignment(review_date=TODAY + timedelta(days=1)), TODAY) == []


def test_conditions_are_not_exclusive():
    a = assignment(
        expiration_date=TODAY + timedelta(days=5),
        cca_completion_date=TODAY + timedelta(days=10),
        pcp_completion_date=TODAY,
        review_date=TODAY,
    )
    assert kinds(evaluate_assignment(a, TODAY)) == [
        ConditionKind.EXPIRATION_PENDING,
        ConditionKind.CARE_PLAN_PENDING,
        ConditionKind.PERSONAL_CARE_PLAN_PENDING,
        ConditionKind.REVIEW_DUE,
    ]


@pytest.mark.parametrize("now", [date(2000, 1, 1), TODAY, date(2100, 12, 31)])
def test_no_dates_means_no_events(now):
    assert evaluate_assignment(assignment(), now) == []


def test_time_of_day_is_ignored():
    deadline = date(2024, 1, 31)
    late_evening = datetime(2024, 1, 1, 23, 59)
    assert kinds(evaluate_assignment(assignment(expiration_date=deadline), late_evening)) == [
        ConditionKind.EXPIRATION_PENDING
    ]
    on_deadline = datetime(2024, 1, 31, 23, 59)
    assert evaluate_assignment(assignment(expiration_date=datetime(2024, 1, 31, 0, 0)), on_deadline) != []


def test_lead_time_is_configurable():
    a = assignment(expiration_date=TODAY + timedelta(days=10))
    assert evaluate_assignment(a, TODAY, AlertRules(lead_time_days=7)) == []
    assert evaluate_assignment(a, TODAY, AlertRules(lead_time_days=10)) != []


def test_review_can_be_disabled():
    a = assignment(review_date=TODAY)
    assert evaluate_assignment(a, TODAY, AlertRules(review_enabled=False)) == []


def test_iso_strings_are_accepted():
    a = assignment(expiration_date="2024-01-20")
    assert kinds(evaluate_assignment(a, TODAY)) == [ConditionKind.EXPIRATION_PENDING]


def test_malformed_date_raises_validation_error():
    with pytest.raises(ValidationError) as exc:
        evaluate_assignment(assignment(review_date="not-a-date"), TODAY)
    assert exc.value.field == "review_date"

    with pytest.raises(ValidationError):
        as_day(12345, "expiration_date")


def test_in_lead_window_boundaries():
    deadline = date(2024, 3, 1)
    assert in_lead_window(deadline, deadline - timedelta(days=30), 30)
    assert in_lead_window(deadline, deadline, 30)
    assert not in_lead_window(deadline, deadline - timedelta(days=31), 30)
    assert not in_lead_window(deadline, deadline + timedelta(days=1), 30)


def test_event_message_is_condition_template():
    events = evaluate_assignment(assignment(expiration_date=TODAY), TODAY)
    assert events[0].message == "This client's service agreement is about to expire"
    assert len(set(CONDITION_MESSAGES.values())) == len(ConditionKind)
