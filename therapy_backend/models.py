from __future__ import annotations

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Enum, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


class Audience(enum.Enum):
    CLIENTS = "clients"
    CLINICIANS = "clinicians"


class AppointmentStatus(enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class ReminderStage(enum.Enum):
    ON_BOOKING = "onBookingAppointment"
    BEFORE_24H = "before24hrs"
    BEFORE_1H = "before1hr"
    ON_START = "onAppointmentStart"


class Therapist(Base):
    __tablename__ = "therapists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    first_name: Mapped[str] = mapped_column(String(80), nullable=False)
    last_name: Mapped[str] = mapped_column(String(80), nullable=False)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    appointments: Mapped[list["Appointment"]] = relationship(back_populates="therapist")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"Therapist({self.first_name} {self.last_name})"


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    first_name: Mapped[str] = mapped_column(String(80), nullable=False)
    last_name: Mapped[str] = mapped_column(String(80), nullable=False)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True, unique=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    service_assignments: Mapped[list["ServiceAssignment"]] = relationship(
        back_populates="client", cascade="all, delete-orphan"
    )
    appointments: Mapped[list["Appointment"]] = relationship(back_populates="client", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"Client({self.first_name} {self.last_name})"


class ServiceAssignment(Base):
    """Iscrizione di un cliente a un programma di cura. Sola lettura per il motore alert."""

    __tablename__ = "service_assignments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    client_id: Mapped[str] = mapped_column(ForeignKey("clients.id"), nullable=False, index=True)
    service_name: Mapped[str | None] = mapped_column(String(120), nullable=True)

    expiration_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    cca_completion_date: Mapped[date | None] = mapped_column(Date, nullable=True)  # care plan
    pcp_completion_date: Mapped[date | None] = mapped_column(Date, nullable=True)  # personal care plan
    review_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    client: Mapped["Client"] = relationship(back_populates="service_assignments")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_status_scheduled_at", "status", "scheduled_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    client_id: Mapped[str] = mapped_column(ForeignKey("clients.id"), nullable=False)
    therapist_id: Mapped[str | None] = mapped_column(ForeignKey("therapists.id"), nullable=True)

    scheduled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus), default=AppointmentStatus.PENDING, nullable=False
    )
    video_requested: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    client: Mapped["Client"] = relationship(back_populates="appointments")
    therapist: Mapped["Therapist | None"] = relationship(back_populates="appointments")
    dispatches: Mapped[list["ReminderDispatch"]] = relationship(
        back_populates="appointment", cascade="all, delete-orphan"
    )


class Alert(Base):
    __tablename__ = "alerts"
    __table_args__ = (
        # Un solo alert per condizione: stesso soggetto + destinatari + messaggio + data
        UniqueConstraint("subject_id", "audience", "message", "effective_date", name="uq_alert_condition"),
        Index("ix_alerts_subject_audience", "subject_id", "audience"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    subject_id: Mapped[str] = mapped_column(String(36), nullable=False)
    audience: Mapped[Audience] = mapped_column(Enum(Audience), nullable=False)
    message: Mapped[str] = mapped_column(String(255), nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"Alert({self.audience.value}, {self.subject_id}, {self.message!r}, {self.effective_date})"


class ReminderDispatch(Base):
    """
    Registro degli invii dei promemoria.
    La riga viene inserita prima dell'invio (claim) e marcata con sent_at dopo.
    """

    __tablename__ = "reminder_dispatches"
    __table_args__ = (
        UniqueConstraint("appointment_id", "stage", "audience", name="uq_dispatch_stage_audience"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    appointment_id: Mapped[str] = mapped_column(ForeignKey("appointments.id"), nullable=False)
    stage: Mapped[ReminderStage] = mapped_column(Enum(ReminderStage), nullable=False)
    audience: Mapped[Audience] = mapped_column(Enum(Audience), nullable=False)
    recipient: Mapped[str] = mapped_column(String(120), nullable=False)

    claimed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    appointment: Mapped["Appointment"] = relationship(back_populates="dispatches")
