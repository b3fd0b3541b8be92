from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


# DB SQLite su file nella root del progetto, sovrascrivibile da env
DB_PATH = Path(__file__).resolve().parents[1] / "therapy_practice.sqlite"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DB_PATH}")
DATABASE_ECHO = _env_bool("DATABASE_ECHO", "false")

# Regole alert
ALERT_LEAD_TIME_DAYS = int(os.getenv("ALERT_LEAD_TIME_DAYS", "30"))
SWEEP_WORKERS = int(os.getenv("SWEEP_WORKERS", "4"))

# Promemoria appuntamenti
REMINDER_START_GRACE_MINUTES = int(os.getenv("REMINDER_START_GRACE_MINUTES", "60"))
REMINDERS_NOTIFY_THERAPIST = _env_bool("REMINDERS_NOTIFY_THERAPIST", "true")

# Canale email (Resend). Senza chiave si usa il dispatcher di log.
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
MAIL_FROM = os.getenv("MAIL_FROM", "no-reply@therapy.local")
MAIL_TIMEOUT_SECONDS = int(os.getenv("MAIL_TIMEOUT_SECONDS", "10"))

# Scheduler in-process (disattivato di default: in produzione si usa cron + CLI)
ENABLE_SCHEDULER = _env_bool("ENABLE_SCHEDULER", "false")
SWEEP_INTERVAL_MINUTES = int(os.getenv("SWEEP_INTERVAL_MINUTES", "60"))
REMINDER_INTERVAL_MINUTES = int(os.getenv("REMINDER_INTERVAL_MINUTES", "5"))


@dataclass(frozen=True)
class AlertRules:
    """Parametri del valutatore delle scadenze (finestra di preavviso in giorni)."""

    lead_time_days: int = 30
    review_enabled: bool = True

    @classmethod
    def from_env(cls) -> "AlertRules":
        return cls(lead_time_days=ALERT_LEAD_TIME_DAYS)


@dataclass(frozen=True)
class ReminderRules:
    """
    Soglie dei promemoria:
    - before24hrs sotto le 24 ore
    - before1hr sotto l'ora
    - onAppointmentStart da inizio seduta fino a start_grace
    """

    day_before_hours: int = 24
    hour_before_minutes: int = 60
    start_grace_minutes: int = 60
    notify_therapist: bool = True

    @classmethod
    def from_env(cls) -> "ReminderRules":
        return cls(
            start_grace_minutes=REMINDER_START_GRACE_MINUTES,
            notify_therapist=REMINDERS_NOTIFY_THERAPIST,
        )
