"""The booking write path: re-validate, then insert under the slot uniqueness guarantee."""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable

from booking_engine.core.errors import BookingError, InvalidParameters, NotFound
from booking_engine.scheduling.conflicts import ConflictValidator
from booking_engine.scheduling.lifecycle import AppointmentLifecycle
from booking_engine.scheduling.messages import build_booking_event
from booking_engine.scheduling.ports import (
    AppointmentRepository,
    AvailabilityRepository,
    BreakRepository,
    NotificationSender,
    ProviderDirectory,
)
from booking_engine.scheduling.types import Appointment, AppointmentStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingRequest:
    tenant_id: str
    provider_id: str
    service_id: str
    patient_id: str
    date: date
    start_time: time
    notes: str | None = None
    # Confirm immediately, e.g. when payment was captured synchronously.
    auto_confirm: bool = False


def require_local_time(value: time | None, field: str) -> None:
    # Schedules are naive clinic-local times; an offset cannot be compared with them.
    if value is not None and value.tzinfo is not None:
        raise InvalidParameters(f'{field} must be a local time without a UTC offset.')


def add_minutes(on_date: date, start_time: time, minutes: int) -> time:
    end = datetime.combine(on_date, start_time) + timedelta(minutes=minutes)
    if end.date() != on_date:
        raise InvalidParameters('Appointment must end on the day it starts.')
    return end.time()


class BookingService:
    def __init__(
        self,
        availability: AvailabilityRepository,
        breaks: BreakRepository,
        appointments: AppointmentRepository,
        directory: ProviderDirectory,
        notifier: NotificationSender | None = None,
        lifecycle: AppointmentLifecycle | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.appointments = appointments
        self.directory = directory
        self.notifier = notifier
        self.validator = ConflictValidator(availability, breaks, appointments)
        self.lifecycle = lifecycle or AppointmentLifecycle(appointments, notifier)
        self.clock = clock

    def _require_provider(self, tenant_id: str, provider_id: str) -> None:
        if not self.directory.is_active_member(tenant_id, provider_id):
            raise NotFound('Provider not found for this tenant.')

    def _insert_validated(self, appointment: Appointment, changed_by: str | None, exclude_id: str | None = None):
        self.appointments.lock_schedule(appointment.tenant_id, appointment.provider_id)
        self.validator.validate(
            appointment.tenant_id,
            appointment.provider_id,
            appointment.date,
            appointment.start_time,
            appointment.end_time,
            exclude_appointment_id=exclude_id,
        )
        return self.appointments.insert(appointment, changed_by=changed_by)

    def _withdraw(self, appointment: Appointment, changed_by: str | None) -> None:
        try:
            self.appointments.update_status(
                appointment,
                AppointmentStatus.CANCELLED,
                changed_by=changed_by,
                reason='Reschedule could not be completed.',
            )
        except BookingError:
            logger.exception('Failed to withdraw replacement appointment %s', appointment.id)
            return
        logger.warning('Withdrew replacement appointment %s after a failed reschedule', appointment.id)

    def _send_booking_notice(self, appointment: Appointment) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.send(build_booking_event(appointment))
        except Exception:
            logger.warning('Failed to send booking notification for appointment %s', appointment.id, exc_info=True)

    def book(self, request: BookingRequest, changed_by: str | None = None) -> Appointment:
        """Create an appointment.

        Raises ``NotFound`` for an unknown provider or service,
        ``InvalidParameters`` for a start in the past, ``InvalidWindow`` outside
        working hours and ``Conflict`` when the slot is taken, including when a
        concurrent booking wins the race at insert time.
        """
        require_local_time(request.start_time, 'start_time')
        self._require_provider(request.tenant_id, request.provider_id)

        duration = self.directory.service_duration(request.tenant_id, request.service_id)
        if duration is None:
            raise NotFound('Service not found.')

        if datetime.combine(request.date, request.start_time) <= self.clock():
            raise InvalidParameters('Appointments must be scheduled in the future.')

        appointment = Appointment(
            id=str(uuid.uuid4()),
            tenant_id=request.tenant_id,
            provider_id=request.provider_id,
            patient_id=request.patient_id,
            service_id=request.service_id,
            date=request.date,
            start_time=request.start_time,
            end_time=add_minutes(request.date, request.start_time, duration),
            status=AppointmentStatus.CONFIRMED if request.auto_confirm else AppointmentStatus.PENDING,
            notes=request.notes,
        )
        created = self._insert_validated(appointment, changed_by)
        logger.info(
            'Booked appointment %s for provider %s on %s at %s',
            created.id, created.provider_id, created.date, created.start_time,
        )
        self._send_booking_notice(created)
        return created

    def reschedule(
        self,
        appointment_id: str,
        new_date: date,
        new_start_time: time,
        reason: str,
        new_end_time: time | None = None,
        notes: str | None = None,
        changed_by: str | None = None,
    ) -> tuple[Appointment, Appointment]:
        """Book the new time and cancel the original. Returns ``(new, original)``.

        If the original cannot be cancelled, the new booking is withdrawn again
        so the patient never holds both.
        """
        require_local_time(new_start_time, 'new_start_time')
        require_local_time(new_end_time, 'new_end_time')
        original = self.appointments.get(appointment_id)
        if original is None:
            raise NotFound('Appointment not found.')

        now = self.clock()
        self.lifecycle.check_reschedulable(original, now, reason)

        if new_end_time is None:
            original_minutes = (
                datetime.combine(original.date, original.end_time)
                - datetime.combine(original.date, original.start_time)
            ) // timedelta(minutes=1)
            new_end_time = add_minutes(new_date, new_start_time, original_minutes)

        if datetime.combine(new_date, new_start_time) <= now:
            raise InvalidParameters('Appointments must be scheduled in the future.')
        if (new_date, new_start_time) == (original.date, original.start_time):
            raise InvalidParameters('The new time matches the current appointment.')

        replacement = Appointment(
            id=str(uuid.uuid4()),
            tenant_id=original.tenant_id,
            provider_id=original.provider_id,
            patient_id=original.patient_id,
            service_id=original.service_id,
            date=new_date,
            start_time=new_start_time,
            end_time=new_end_time,
            status=AppointmentStatus.PENDING,
            notes=notes or original.notes,
            rescheduled_from_id=original.id,
        )
        created = self._insert_validated(replacement, changed_by, exclude_id=original.id)
        try:
            superseded = self.lifecycle.supersede(original, now, changed_by=changed_by, reason=reason)
        except BookingError:
            self._withdraw(created, changed_by)
            raise
        logger.info('Rescheduled appointment %s to %s', original.id, created.id)
        self._send_booking_notice(created)
        return created, superseded
