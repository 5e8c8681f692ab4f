"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, String, Time, text
from booking_engine.database import ACTIVE_SLOT_INDEX, ACTIVE_SLOT_PREDICATE, Base
from booking_engine.models.provider import new_id


class Appointment(Base):
    """A booked appointment. Rows are never deleted, only cancelled."""
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one non-cancelled appointment per provider slot.
        Index(
            ACTIVE_SLOT_INDEX,
            "tenant_id",
            "provider_id",
            "date",
            "start_time",
            unique=True,
            postgresql_where=text(ACTIVE_SLOT_PREDICATE),
            sqlite_where=text(ACTIVE_SLOT_PREDICATE),
        ),
        Index("idx_appointments_provider_date", "provider_id", "date"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False)
    provider_id = Column(String(36), nullable=False)
    patient_id = Column(String(36), nullable=False, index=True)
    service_id = Column(String(36), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String, nullable=False, default="pending")
    notes = Column(String)
    rescheduled_from_id = Column(String(36), ForeignKey("appointments.id"))
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class AppointmentStatusHistory(Base):
    """Audit trail of appointment status changes."""
    __tablename__ = "appointment_status_history"

    id = Column(String(36), primary_key=True, default=new_id)
    appointment_id = Column(String(36), ForeignKey("appointments.id"), nullable=False, index=True)
    from_status = Column(String)
    to_status = Column(String, nullable=False)
    changed_by = Column(String(36))
    reason = Column(String)
    changed_at = Column(DateTime, nullable=False, default=datetime.now)
