from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from . import config
from .alerts import run_expiration_sweep
from .reminders import dispatch_due_reminders

logger = logging.getLogger(__name__)

# Evita doppio avvio (reload di uvicorn, import multipli)
_scheduler: BackgroundScheduler | None = None


def start_scheduler() -> BackgroundScheduler | None:
    """
    Avvia APScheduler in-process.
    - rispetta ENABLE_SCHEDULER
    - un solo scheduler per processo
    """
    global _scheduler

    if not config.ENABLE_SCHEDULER:
        logger.info("APScheduler disattivato (ENABLE_SCHEDULER=false)")
        return None

    if _scheduler is not None:
        logger.info("APScheduler già avviato, salto")
        return _scheduler

    _scheduler = BackgroundScheduler(timezone="UTC")
    _scheduler.add_job(
        run_sweep_job,
        trigger="interval",
        minutes=config.SWEEP_INTERVAL_MINUTES,
        id="expiration_sweep",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    _scheduler.add_job(
        run_reminders_job,
        trigger="interval",
        minutes=config.REMINDER_INTERVAL_MINUTES,
        id="appointment_reminders",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()

    logger.info(
        "APScheduler avviato: sweep ogni %d min, promemoria ogni %d min",
        config.SWEEP_INTERVAL_MINUTES,
        config.REMINDER_INTERVAL_MINUTES,
    )
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None


def run_sweep_job() -> None:
    # la logica resta nei servizi: qui solo il wrapper per il job
    run_expiration_sweep()


def run_reminders_job() -> None:
    dispatch_due_reminders()
