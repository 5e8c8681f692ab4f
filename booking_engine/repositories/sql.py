"""SQLAlchemy implementations of the scheduling ports.

All repositories built for one request share that request's session, so the
schedule lock, the conflict re-check and the insert run in one transaction.
"""

import logging
from datetime import date

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.core.errors import Conflict, RepositoryError
from booking_engine.models.appointment import Appointment as AppointmentRecord
from booking_engine.models.appointment import AppointmentStatusHistory
from booking_engine.models.availability import ProviderAvailability, ProviderBreak
from booking_engine.models.provider import ProviderTenant, Service, new_id
from booking_engine.scheduling.types import (
    Appointment,
    AppointmentStatus,
    AvailabilityWindow,
    Break,
    BusyInterval,
    StatusChange,
)

logger = logging.getLogger(__name__)

CANCELLED = AppointmentStatus.CANCELLED.value


def to_appointment(record: AppointmentRecord) -> Appointment:
    return Appointment(
        id=record.id,
        tenant_id=record.tenant_id,
        provider_id=record.provider_id,
        patient_id=record.patient_id,
        service_id=record.service_id,
        date=record.date,
        start_time=record.start_time,
        end_time=record.end_time,
        status=AppointmentStatus(record.status),
        notes=record.notes,
        rescheduled_from_id=record.rescheduled_from_id,
    )


class SqlAvailabilityRepository:
    def __init__(self, db: Session):
        self.db = db

    def windows_for(self, tenant_id: str, provider_id: str, day_of_week: int) -> list[AvailabilityWindow]:
        try:
            rows = self.db.query(ProviderAvailability).filter(
                ProviderAvailability.tenant_id == tenant_id,
                ProviderAvailability.provider_id == provider_id,
                ProviderAvailability.day_of_week == day_of_week,
                ProviderAvailability.is_active.is_(True),
            ).order_by(ProviderAvailability.start_time.asc()).all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Failed to fetch availability.') from exc

        return [
            AvailabilityWindow(
                tenant_id=row.tenant_id,
                provider_id=row.provider_id,
                day_of_week=row.day_of_week,
                start_time=row.start_time,
                end_time=row.end_time,
                is_active=row.is_active,
            )
            for row in rows
        ]


class SqlBreakRepository:
    def __init__(self, db: Session):
        self.db = db

    def breaks_for(self, tenant_id: str, provider_id: str, day_of_week: int) -> list[Break]:
        try:
            rows = self.db.query(ProviderBreak).filter(
                ProviderBreak.tenant_id == tenant_id,
                ProviderBreak.provider_id == provider_id,
                ProviderBreak.day_of_week == day_of_week,
                ProviderBreak.is_active.is_(True),
            ).all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Failed to fetch breaks.') from exc

        return [
            Break(
                tenant_id=row.tenant_id,
                provider_id=row.provider_id,
                day_of_week=row.day_of_week,
                start_time=row.start_time,
                end_time=row.end_time,
                is_active=row.is_active,
            )
            for row in rows
        ]


class SqlAppointmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def busy_on(
        self,
        tenant_id: str,
        provider_id: str,
        on_date: date,
        exclude_id: str | None = None,
    ) -> list[BusyInterval]:
        try:
            query = self.db.query(
                AppointmentRecord.start_time,
                AppointmentRecord.end_time,
                AppointmentRecord.status,
            ).filter(
                AppointmentRecord.tenant_id == tenant_id,
                AppointmentRecord.provider_id == provider_id,
                AppointmentRecord.date == on_date,
                AppointmentRecord.status != CANCELLED,
            )
            if exclude_id is not None:
                query = query.filter(AppointmentRecord.id != exclude_id)
            rows = query.all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Failed to fetch appointments.') from exc

        return [
            BusyInterval(start_time=start, end_time=end, status=AppointmentStatus(status))
            for start, end, status in rows
        ]

    def get(self, appointment_id: str) -> Appointment | None:
        try:
            record = self.db.get(AppointmentRecord, appointment_id)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Failed to fetch appointment.') from exc
        return to_appointment(record) if record else None

    def list_for_provider(self, provider_id: str, on_date: date) -> list[Appointment]:
        try:
            records = self.db.query(AppointmentRecord).filter(
                AppointmentRecord.provider_id == provider_id,
                AppointmentRecord.date == on_date,
            ).order_by(AppointmentRecord.start_time.asc()).all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Failed to fetch appointments.') from exc
        return [to_appointment(record) for record in records]

    def lock_schedule(self, tenant_id: str, provider_id: str) -> None:
        # Row lock on the membership serializes writers for one provider until commit.
        # SQLite has no FOR UPDATE; there the unique index alone settles races.
        try:
            self.db.query(ProviderTenant).filter(
                ProviderTenant.tenant_id == tenant_id,
                ProviderTenant.provider_id == provider_id,
            ).with_for_update().first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Failed to lock provider schedule.') from exc

    def insert(self, appointment: Appointment, changed_by: str | None = None) -> Appointment:
        record = AppointmentRecord(
            id=appointment.id or new_id(),
            tenant_id=appointment.tenant_id,
            provider_id=appointment.provider_id,
            patient_id=appointment.patient_id,
            service_id=appointment.service_id,
            date=appointment.date,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            status=appointment.status.value,
            notes=appointment.notes,
            rescheduled_from_id=appointment.rescheduled_from_id,
        )
        try:
            self.db.add(record)
            self.db.flush()
            self.db.add(
                AppointmentStatusHistory(
                    appointment_id=record.id,
                    from_status=None,
                    to_status=record.status,
                    changed_by=changed_by,
                )
            )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.info(
                'Rejected duplicate booking for provider %s on %s at %s',
                appointment.provider_id, appointment.date, appointment.start_time,
            )
            raise Conflict('Time slot is no longer available.') from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Failed to create appointment.') from exc

        self.db.refresh(record)
        return to_appointment(record)

    def update_status(
        self,
        appointment: Appointment,
        new_status: AppointmentStatus,
        changed_by: str | None = None,
        reason: str | None = None,
        notes: str | None = None,
    ) -> Appointment:
        try:
            record = self.db.query(AppointmentRecord).filter(
                AppointmentRecord.id == appointment.id,
            ).with_for_update().first()
            if record is None:
                # Release the FOR UPDATE attempt before reporting.
                self.db.rollback()
                raise RepositoryError('Appointment disappeared during update.')

            previous = record.status
            record.status = new_status.value
            if notes is not None:
                record.notes = notes
            if previous != record.status:
                self.db.add(
                    AppointmentStatusHistory(
                        appointment_id=record.id,
                        from_status=previous,
                        to_status=record.status,
                        changed_by=changed_by,
                        reason=reason,
                    )
                )
            self.db.commit()
        except IntegrityError as exc:
            # Reviving a cancelled row can collide with a newer booking of the slot.
            self.db.rollback()
            raise Conflict('Time slot is no longer available.') from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Failed to update appointment.') from exc

        self.db.refresh(record)
        return to_appointment(record)

    def status_history(self, appointment_id: str) -> list[StatusChange]:
        try:
            rows = self.db.query(AppointmentStatusHistory).filter(
                AppointmentStatusHistory.appointment_id == appointment_id,
            ).order_by(AppointmentStatusHistory.changed_at.asc()).all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Failed to fetch appointment status history.') from exc

        return [
            StatusChange(
                appointment_id=row.appointment_id,
                from_status=AppointmentStatus(row.from_status) if row.from_status else None,
                to_status=AppointmentStatus(row.to_status),
                changed_by=row.changed_by,
                changed_at=row.changed_at,
                reason=row.reason,
            )
            for row in rows
        ]


class SqlProviderDirectory:
    def __init__(self, db: Session):
        self.db = db

    def is_active_member(self, tenant_id: str, provider_id: str) -> bool:
        try:
            membership = self.db.query(ProviderTenant.id).filter(
                ProviderTenant.tenant_id == tenant_id,
                ProviderTenant.provider_id == provider_id,
                ProviderTenant.is_active.is_(True),
            ).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Failed to fetch provider.') from exc
        return membership is not None

    def primary_tenant(self, provider_id: str) -> str | None:
        try:
            membership = self.db.query(ProviderTenant.tenant_id).filter(
                ProviderTenant.provider_id == provider_id,
                ProviderTenant.is_active.is_(True),
            ).order_by(ProviderTenant.created_at.asc()).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Failed to fetch provider.') from exc
        return membership[0] if membership else None

    def service_duration(self, tenant_id: str, service_id: str) -> int | None:
        try:
            service = self.db.query(Service.duration_minutes).filter(
                Service.id == service_id,
                Service.tenant_id == tenant_id,
                Service.is_active.is_(True),
            ).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Failed to fetch service.') from exc
        return service[0] if service else None


class PerCallRepository:
    """Runs each repository method in its own short-lived session.

    Lets read-only ports be shared by the threads of a parallel horizon search,
    where a single request session would not be safe.
    """

    def __init__(self, session_factory, repository_class):
        self.session_factory = session_factory
        self.repository_class = repository_class

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)

        def call(*args, **kwargs):
            with self.session_factory() as db:
                return getattr(self.repository_class(db), name)(*args, **kwargs)

        return call
