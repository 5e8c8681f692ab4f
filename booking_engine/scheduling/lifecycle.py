"""Appointment status transitions and their time-based guards."""

import logging
from datetime import datetime, timedelta

from booking_engine.core import config
from booking_engine.core.errors import InvalidParameters, PreconditionFailed
from booking_engine.scheduling.ports import AppointmentRepository, NotificationSender
from booking_engine.scheduling.types import Appointment, AppointmentStatus
from booking_engine.scheduling.messages import build_status_event

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}

NOTIFYING_STATUSES = frozenset({
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
})

RESCHEDULABLE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})
MIN_RESCHEDULE_REASON_LENGTH = 3


def parse_status(value: str | AppointmentStatus) -> AppointmentStatus:
    try:
        return AppointmentStatus(value)
    except ValueError as exc:
        allowed = ', '.join(status.value for status in AppointmentStatus)
        raise InvalidParameters(f'Invalid status. Must be one of: {allowed}') from exc


class AppointmentLifecycle:
    def __init__(
        self,
        appointments: AppointmentRepository,
        notifier: NotificationSender | None = None,
        cancellation_notice_hours: int = config.CANCELLATION_NOTICE_HOURS,
        reschedule_notice_hours: int = config.RESCHEDULE_NOTICE_HOURS,
        completion_requires_start: bool = config.COMPLETION_REQUIRES_START,
    ):
        self.appointments = appointments
        self.notifier = notifier
        self.cancellation_notice = timedelta(hours=cancellation_notice_hours)
        self.reschedule_notice = timedelta(hours=reschedule_notice_hours)
        self.completion_requires_start = completion_requires_start

    def _check_cancellable(self, appointment: Appointment, now: datetime) -> None:
        if appointment.status == AppointmentStatus.CANCELLED:
            raise PreconditionFailed('Appointment is already cancelled.')
        if appointment.status == AppointmentStatus.COMPLETED:
            raise PreconditionFailed('Cannot cancel completed appointment.')
        if appointment.starts_at - now < self.cancellation_notice:
            hours = int(self.cancellation_notice / timedelta(hours=1))
            raise PreconditionFailed(f'Cannot cancel appointment less than {hours} hours in advance.')

    def _check_transition(self, appointment: Appointment, new_status: AppointmentStatus, now: datetime) -> None:
        if new_status == AppointmentStatus.CANCELLED:
            self._check_cancellable(appointment, now)
            return

        if new_status not in ALLOWED_TRANSITIONS[appointment.status]:
            raise PreconditionFailed(
                f'Cannot change appointment status from {appointment.status.value} to {new_status.value}.'
            )

        if (
            new_status == AppointmentStatus.COMPLETED
            and self.completion_requires_start
            and now < appointment.starts_at
        ):
            raise PreconditionFailed('Cannot complete an appointment before it starts.')

    def transition(
        self,
        appointment: Appointment,
        new_status: AppointmentStatus | str,
        now: datetime,
        changed_by: str | None = None,
        notes: str | None = None,
        reason: str | None = None,
    ) -> Appointment:
        """Apply ``new_status`` if legal right now.

        Re-applying the current status is a no-op (only ``notes`` are saved).
        """
        new_status = parse_status(new_status)

        if new_status == appointment.status:
            if notes is not None and notes != appointment.notes:
                return self.appointments.update_status(appointment, new_status, changed_by=changed_by, notes=notes)
            return appointment

        self._check_transition(appointment, new_status, now)
        updated = self.appointments.update_status(
            appointment,
            new_status,
            changed_by=changed_by,
            reason=reason,
            notes=notes,
        )
        logger.info(
            'Appointment %s moved to %s by %s',
            updated.id, new_status.value, changed_by or 'system',
        )

        if new_status in NOTIFYING_STATUSES:
            self.notify(updated, new_status)
        return updated

    def cancel(
        self,
        appointment: Appointment,
        now: datetime,
        changed_by: str | None = None,
        reason: str | None = None,
    ) -> Appointment:
        """Cancel; unlike ``transition`` an already-cancelled appointment is an error."""
        self._check_cancellable(appointment, now)
        return self.transition(appointment, AppointmentStatus.CANCELLED, now, changed_by=changed_by, reason=reason)

    def check_reschedulable(self, appointment: Appointment, now: datetime, reason: str | None) -> None:
        reasons = []
        if appointment.status not in RESCHEDULABLE_STATUSES:
            reasons.append(f'Appointments in status {appointment.status.value} cannot be rescheduled.')
        if appointment.starts_at - now < self.reschedule_notice:
            hours = int(self.reschedule_notice / timedelta(hours=1))
            reasons.append(f'Appointments can only be rescheduled at least {hours} hours in advance.')
        if not reason or len(reason.strip()) < MIN_RESCHEDULE_REASON_LENGTH:
            reasons.append(f'Reason must be at least {MIN_RESCHEDULE_REASON_LENGTH} characters.')
        if reasons:
            raise PreconditionFailed(' '.join(reasons))

    def supersede(
        self,
        appointment: Appointment,
        now: datetime,
        changed_by: str | None = None,
        reason: str | None = None,
    ) -> Appointment:
        """Cancel the source of a reschedule; the reschedule policy replaces the cancellation notice."""
        self.check_reschedulable(appointment, now, reason)
        updated = self.appointments.update_status(
            appointment,
            AppointmentStatus.CANCELLED,
            changed_by=changed_by,
            reason=reason,
        )
        logger.info('Appointment %s superseded by a reschedule', updated.id)
        self.notify(updated, AppointmentStatus.CANCELLED)
        return updated

    def notify(self, appointment: Appointment, status: AppointmentStatus) -> None:
        """Best effort: a failed notification never undoes a committed status change."""
        if self.notifier is None:
            return
        try:
            self.notifier.send(build_status_event(appointment, status))
        except Exception:
            logger.warning('Failed to send %s notification for appointment %s', status.value, appointment.id, exc_info=True)
