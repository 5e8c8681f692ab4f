"""Notification events emitted by booking and status transitions."""

from booking_engine.scheduling.types import Appointment, AppointmentStatus, NotificationEvent, format_hhmm

BOOKED = 'appointment_booked'

STATUS_MESSAGES = {
    AppointmentStatus.CONFIRMED: (
        'appointment_confirmation',
        'Appointment confirmed',
        'Your appointment on {date} at {time} has been confirmed.',
    ),
    AppointmentStatus.COMPLETED: (
        'appointment_completed',
        'Appointment completed',
        'Your appointment on {date} at {time} has been completed. Thank you for your visit.',
    ),
    AppointmentStatus.CANCELLED: (
        'appointment_cancelled',
        'Appointment cancelled',
        'Your appointment on {date} at {time} has been cancelled. You can book again whenever you like.',
    ),
}


def _event(kind: str, subject: str, template: str, appointment: Appointment) -> NotificationEvent:
    return NotificationEvent(
        kind=kind,
        tenant_id=appointment.tenant_id,
        appointment_id=appointment.id,
        recipient_id=appointment.patient_id,
        subject=subject,
        content=template.format(
            date=appointment.date.isoformat(),
            time=format_hhmm(appointment.start_time),
        ),
    )


def build_status_event(appointment: Appointment, status: AppointmentStatus) -> NotificationEvent:
    kind, subject, template = STATUS_MESSAGES[status]
    return _event(kind, subject, template, appointment)


def build_booking_event(appointment: Appointment) -> NotificationEvent:
    if appointment.status == AppointmentStatus.CONFIRMED:
        return build_status_event(appointment, AppointmentStatus.CONFIRMED)
    return _event(
        BOOKED,
        'Appointment requested',
        'We received your appointment request for {date} at {time}.',
        appointment,
    )
