"""
Configurazione test.

- DB SQLite su file temporaneo (le sessioni dello sweep girano su più thread)
- schema ricreato per ogni test
"""
import os
import tempfile
from datetime import datetime

import pytest

_TMP_DIR = tempfile.mkdtemp(prefix="therapy_alerts_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.sqlite')}"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["RESEND_API_KEY"] = ""

from therapy_backend.db import Base, db_session, engine, init_db  # noqa: E402
from therapy_backend.models import Appointment, AppointmentStatus  # noqa: E402
from therapy_backend.notifications import LogDispatcher  # noqa: E402
from therapy_backend.services import create_client, create_therapist  # noqa: E402


@pytest.fixture(autouse=True)
def db():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client_id() -> str:
    return create_client("Jordan", "Brooks", email="j.brooks@example.com")


@pytest.fixture
def therapist_id() -> str:
    return create_therapist("Maya", "Johnson", email="m.johnson@therapy.local")


@pytest.fixture
def dispatcher() -> LogDispatcher:
    return LogDispatcher()


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 10, 9, 0)


@pytest.fixture
def make_appointment(client_id):
    """Appuntamento inserito direttamente (senza conferma di prenotazione)."""

    def _make(scheduled_at: datetime, therapist_id: str | None = None, status=AppointmentStatus.CONFIRMED) -> str:
        with db_session() as s:
            app = Appointment(client_id=client_id, therapist_id=therapist_id, scheduled_at=scheduled_at, status=status)
            s.add(app)
            s.flush()
            return app.id

    return _make
