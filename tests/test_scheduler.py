from therapy_backend import config, scheduler


def test_scheduler_disabled_by_default(monkeypatch):
    monkeypatch.setattr(config, "ENABLE_SCHEDULER", False)
    assert scheduler.start_scheduler() is None


def test_scheduler_registers_jobs_once(monkeypatch):
    monkeypatch.setattr(config, "ENABLE_SCHEDULER", True)
    try:
        first = scheduler.start_scheduler()
        second = scheduler.start_scheduler()

        assert first is second
        job_ids = {job.id for job in first.get_jobs()}
        assert job_ids == {"expiration_sweep", "appointment_reminders"}
        assert all(job.max_instances == 1 for job in first.get_jobs())
    finally:
        scheduler.shutdown_scheduler()


def test_jobs_delegate_to_services(monkeypatch):
    calls = []
    monkeypatch.setattr(scheduler, "run_expiration_sweep", lambda: calls.append("sweep"))
    monkeypatch.setattr(scheduler, "dispatch_due_reminders", lambda: calls.append("reminders"))

    scheduler.run_sweep_job()
    scheduler.run_reminders_job()

    assert calls == ["sweep", "reminders"]
