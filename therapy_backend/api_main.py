from __future__ import annotations

from datetime import date, datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from therapy_backend.alerts import (
    add_alert,
    alert_to_dict,
    count_unread,
    list_alerts,
    list_all_alerts,
    mark_alert_read,
    run_expiration_sweep,
    update_alert,
)
from therapy_backend.db import init_db
from therapy_backend.errors import ConflictError, NotFoundError
from therapy_backend.models import Audience
from therapy_backend.reminders import dispatch_due_reminders
from therapy_backend.scheduler import shutdown_scheduler, start_scheduler
from therapy_backend.services import book_appointment, cancel_appointment, list_clients_flat, list_therapists_flat

app = FastAPI(title="Therapy Practice Alerts API", version="1.0.0")



# Startup

@app.on_event("startup")
def startup() -> None:
    init_db()
    start_scheduler()


@app.on_event("shutdown")
def shutdown() -> None:
    shutdown_scheduler()



# Schemi

class AlertCreateIn(BaseModel):
    subject_id: str = Field(..., min_length=1)
    audience: Audience = Audience.CLIENTS
    message: str = Field(..., min_length=1, max_length=255)
    effective_date: date = Field(..., alias="date")


class AlertUpdateIn(BaseModel):
    # modifica admin: solo i campi passati
    message: str | None = Field(default=None, min_length=1, max_length=255)
    effective_date: date | None = Field(default=None, alias="date")
    audience: Audience | None = None
    read: bool | None = None


class AppointmentCreateIn(BaseModel):
    client_id: str
    scheduled_at: datetime
    therapist_id: str | None = None
    video_requested: bool = False
    note: str | None = None


class SweepIn(BaseModel):
    now: date | None = None


class RemindersIn(BaseModel):
    now: datetime | None = None


def _ok(message: str, data: Any = None) -> dict[str, Any]:
    return {"success": True, "message": message, "data": data}



# Errori: stessa busta delle risposte ok

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail), "data": None},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"success": False, "message": "Invalid request", "data": jsonable_encoder(exc.errors())},
    )



# Alert: clienti e clinici (stesso componente, pubblico come parametro)

@app.get("/api/{audience}/{subject_id}/alerts")
def api_list_alerts(audience: Audience, subject_id: str) -> dict[str, Any]:
    alerts = [alert_to_dict(a) for a in list_alerts(subject_id, audience)]
    return _ok(
        "Notifications fetched successfully",
        {"alerts": alerts, "unread": count_unread(subject_id, audience)},
    )


@app.patch("/api/alerts/{alert_id}/read")
def api_mark_alert_read(alert_id: str) -> dict[str, Any]:
    try:
        mark_alert_read(alert_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _ok("Notifications updated successfully")



# Admin

@app.get("/api/admin/alerts")
def api_admin_alerts(
    audience: Audience | None = Query(None),
    read: bool | None = Query(None),
    description: str | None = Query(None),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> dict[str, Any]:
    result = list_all_alerts(audience=audience, read=read, search=description, order=order, page=page, limit=limit)
    return _ok("Alerts fetched successfully", result)


@app.post("/api/admin/alerts", status_code=status.HTTP_201_CREATED)
def api_admin_add_alert(payload: AlertCreateIn) -> dict[str, Any]:
    created = add_alert(payload.subject_id, payload.audience, payload.message, payload.effective_date)
    return _ok("Alert created successfully" if created else "Alert already exists", {"created": created})


@app.patch("/api/admin/alerts/{alert_id}")
def api_admin_update_alert(alert_id: str, payload: AlertUpdateIn) -> dict[str, Any]:
    fields = payload.model_dump(exclude_none=True)
    try:
        alert = update_alert(alert_id, **fields)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return _ok("Alert updated successfully", alert_to_dict(alert))



# Appuntamenti

@app.get("/api/clients")
def api_clients() -> list[dict]:
    return list_clients_flat()


@app.get("/api/therapists")
def api_therapists() -> list[dict]:
    return list_therapists_flat()


@app.post("/api/appointments", status_code=status.HTTP_201_CREATED)
def api_book_appointment(payload: AppointmentCreateIn) -> dict[str, Any]:
    try:
        esito = book_appointment(
            client_id=payload.client_id,
            scheduled_at=payload.scheduled_at,
            therapist_id=payload.therapist_id,
            video_requested=payload.video_requested,
            note=payload.note,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return _ok(
        "Appointment booked successfully",
        {
            "appointment_id": esito.appointment_id,
            "status": esito.status.value,
            "reminders": esito.reminders.as_dict(),
        },
    )


@app.post("/api/appointments/{appointment_id}/cancel")
def api_cancel_appointment(appointment_id: str) -> dict[str, Any]:
    try:
        changed = cancel_appointment(appointment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _ok("Appointment cancelled" if changed else "Appointment already cancelled", {"cancelled": changed})



# Operazioni (trigger esterni: cron, ops)

@app.post("/api/ops/sweep")
def api_run_sweep(payload: SweepIn | None = None) -> dict[str, Any]:
    summary = run_expiration_sweep(now=payload.now if payload else None)
    return _ok("Sweep completed", summary.as_dict())


@app.post("/api/ops/reminders")
def api_dispatch_reminders(payload: RemindersIn | None = None) -> dict[str, Any]:
    summary = dispatch_due_reminders(now=payload.now if payload else None)
    return _ok("Reminders dispatched", summary.as_dict())
