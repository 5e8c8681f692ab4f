"""Request-scoped wiring shared by the routers."""

from datetime import datetime

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.core import config
from booking_engine.database import SessionLocal, ensure_appointment_schema
from booking_engine.repositories.sql import (
    PerCallRepository,
    SqlAppointmentRepository,
    SqlAvailabilityRepository,
    SqlBreakRepository,
    SqlProviderDirectory,
)
from booking_engine.scheduling.horizon import HorizonSearch
from booking_engine.scheduling.lifecycle import AppointmentLifecycle
from booking_engine.services.booking import BookingService
from booking_engine.services.notifications import SqlNotificationQueue

DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def local_now() -> datetime:
    return datetime.now()


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE,
        ) from exc


def database_unavailable() -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=DATABASE_UNAVAILABLE)


def horizon_search(db: Session) -> HorizonSearch:
    if config.HORIZON_MAX_WORKERS > 1:
        return HorizonSearch(
            PerCallRepository(SessionLocal, SqlAvailabilityRepository),
            PerCallRepository(SessionLocal, SqlBreakRepository),
            PerCallRepository(SessionLocal, SqlAppointmentRepository),
            max_workers=config.HORIZON_MAX_WORKERS,
        )
    return HorizonSearch(
        SqlAvailabilityRepository(db),
        SqlBreakRepository(db),
        SqlAppointmentRepository(db),
    )


def provider_directory(db: Session) -> SqlProviderDirectory:
    return SqlProviderDirectory(db)


def appointment_lifecycle(db: Session) -> AppointmentLifecycle:
    return AppointmentLifecycle(SqlAppointmentRepository(db), SqlNotificationQueue(db))


def booking_service(db: Session) -> BookingService:
    appointments = SqlAppointmentRepository(db)
    notifier = SqlNotificationQueue(db)
    return BookingService(
        SqlAvailabilityRepository(db),
        SqlBreakRepository(db),
        appointments,
        SqlProviderDirectory(db),
        notifier=notifier,
        lifecycle=AppointmentLifecycle(appointments, notifier),
        clock=local_now,
    )
