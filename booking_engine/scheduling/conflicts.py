"""Write-time re-validation of a proposed appointment interval."""

from datetime import date, time

from booking_engine.core.errors import Conflict, InvalidParameters, InvalidWindow
from booking_engine.scheduling.ports import AppointmentRepository, AvailabilityRepository, BreakRepository
from booking_engine.scheduling.slots import fits_in_window, interval_is_blocked
from booking_engine.scheduling.types import day_of_week


class ConflictValidator:
    """Re-reads breaks and appointments for exactly one provider and date.

    Passing this check does not make an insert safe on its own: the storage
    layer's unique index on the active slot is what settles a race between two
    writers. This exists to answer with a readable 409 before that point.
    """

    def __init__(
        self,
        availability: AvailabilityRepository,
        breaks: BreakRepository,
        appointments: AppointmentRepository,
    ):
        self.availability = availability
        self.breaks = breaks
        self.appointments = appointments

    def validate(
        self,
        tenant_id: str,
        provider_id: str,
        on_date: date,
        start_time: time,
        end_time: time,
        exclude_appointment_id: str | None = None,
    ) -> None:
        """Return normally when the interval is bookable, otherwise raise.

        ``InvalidWindow`` when the interval is not inside any active window,
        ``Conflict`` when it overlaps a break or a non-cancelled appointment.
        """
        if end_time <= start_time:
            raise InvalidParameters('Appointment end time must be after its start time.')

        weekday = day_of_week(on_date)
        windows = self.availability.windows_for(tenant_id, provider_id, weekday)
        if not fits_in_window(start_time, end_time, windows):
            raise InvalidWindow("Appointment time is outside the provider's availability hours.")

        breaks = self.breaks.breaks_for(tenant_id, provider_id, weekday)
        if interval_is_blocked(start_time, end_time, breaks, []):
            raise Conflict("Appointment time conflicts with the provider's break.")

        busy = self.appointments.busy_on(tenant_id, provider_id, on_date, exclude_id=exclude_appointment_id)
        if interval_is_blocked(start_time, end_time, [], busy):
            raise Conflict('Time slot is no longer available.')
