from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import select

from .db import db_session
from .models import Appointment, AppointmentStatus, Client, ServiceAssignment, Therapist


def seed_base(today: date | None = None) -> None:
    """
    Popola dati minimi (idempotente):
    - terapeuti
    - clienti
    - assegnazioni con scadenze vicine (per vedere gli alert allo sweep)
    - un appuntamento domani
    """
    today = today or date.today()

    with db_session() as s:
        # Terapeuti
        terapeuti = [
            ("Maya", "Johnson", "m.johnson@therapy.local"),
            ("Andre", "Williams", "a.williams@therapy.local"),
        ]
        for nome, cognome, email in terapeuti:
            if s.execute(select(Therapist).where(Therapist.email == email)).scalar_one_or_none() is None:
                s.add(Therapist(first_name=nome, last_name=cognome, email=email))

        # Clienti
        clienti = [
            ("Jordan", "Brooks", "j.brooks@example.com"),
            ("Taylor", "Reed", "t.reed@example.com"),
        ]
        for nome, cognome, email in clienti:
            if s.execute(select(Client).where(Client.email == email)).scalar_one_or_none() is None:
                s.add(Client(first_name=nome, last_name=cognome, email=email))

        s.flush()

        jordan = s.execute(select(Client).where(Client.email == "j.brooks@example.com")).scalar_one()
        taylor = s.execute(select(Client).where(Client.email == "t.reed@example.com")).scalar_one()
        maya = s.execute(select(Therapist).where(Therapist.email == "m.johnson@therapy.local")).scalar_one()

        def add_assignment(client_id: str, service_name: str, **dates: date) -> None:
            exists = s.execute(
                select(ServiceAssignment).where(
                    ServiceAssignment.client_id == client_id, ServiceAssignment.service_name == service_name
                )
            ).scalar_one_or_none()
            if exists is None:
                s.add(ServiceAssignment(client_id=client_id, service_name=service_name, **dates))

        add_assignment(
            jordan.id,
            "Outpatient Therapy",
            expiration_date=today + timedelta(days=15),
            review_date=today - timedelta(days=2),
        )
        add_assignment(
            taylor.id,
            "Care Coordination",
            cca_completion_date=today + timedelta(days=30),
            pcp_completion_date=today + timedelta(days=45),
        )

        if s.execute(select(Appointment).where(Appointment.client_id == jordan.id)).first() is None:
            start = datetime.combine(today + timedelta(days=1), datetime.min.time()).replace(hour=10)
            s.add(
                Appointment(
                    client_id=jordan.id,
                    therapist_id=maya.id,
                    scheduled_at=start,
                    status=AppointmentStatus.CONFIRMED,
                    video_requested=True,
                )
            )
