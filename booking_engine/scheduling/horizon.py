"""Multi-day slot search over a horizon of one week, two weeks or a month."""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta

from booking_engine.core import config
from booking_engine.core.errors import InvalidParameters, RepositoryError
from booking_engine.scheduling.ports import AppointmentRepository, AvailabilityRepository, BreakRepository
from booking_engine.scheduling.slots import generate_slots
from booking_engine.scheduling.types import DaySlots, Horizon, HorizonResult, Slot, day_of_week

logger = logging.getLogger(__name__)

HORIZON_SPANS = {
    Horizon.NEXT_WEEK: relativedelta(days=7),
    Horizon.TWO_WEEKS: relativedelta(days=14),
    Horizon.MONTH: relativedelta(months=1),
}


def horizon_end(base_date: date, horizon: Horizon | str) -> date:
    """Last date searched; a month past Jan 31 lands on the last day of February."""
    try:
        horizon = Horizon(horizon)
    except ValueError as exc:
        raise InvalidParameters(f'Unknown horizon {horizon!r}.') from exc
    return base_date + HORIZON_SPANS[horizon]


def iter_dates(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def effective_base_date(base_date: date | None, now: datetime) -> date:
    """Start from tomorrow when asked about today after the late-day cutoff."""
    base = base_date or now.date()
    if base == now.date() and now.hour >= config.LATE_DAY_CUTOFF_HOUR:
        base += timedelta(days=1)
    return base


class HorizonSearch:
    def __init__(
        self,
        availability: AvailabilityRepository,
        breaks: BreakRepository,
        appointments: AppointmentRepository,
        max_workers: int = 1,
        next_available_limit: int = config.NEXT_AVAILABLE_LIMIT,
        lead_minutes: int = config.SAME_DAY_LEAD_MINUTES,
    ):
        self.availability = availability
        self.breaks = breaks
        self.appointments = appointments
        self.max_workers = max(1, max_workers)
        self.next_available_limit = next_available_limit
        self.lead = timedelta(minutes=lead_minutes)

    def slots_for_day(
        self,
        tenant_id: str,
        provider_id: str,
        on_date: date,
        duration_minutes: int,
    ) -> list[Slot]:
        """Fetch one date's inputs fresh and run the slot generator over them."""
        weekday = day_of_week(on_date)
        windows = self.availability.windows_for(tenant_id, provider_id, weekday)
        if not windows:
            return []
        breaks = self.breaks.breaks_for(tenant_id, provider_id, weekday)
        busy = self.appointments.busy_on(tenant_id, provider_id, on_date)
        return generate_slots(on_date, windows, breaks, busy, duration_minutes)

    def _day(self, tenant_id, provider_id, on_date, duration_minutes, max_per_day, earliest):
        try:
            slots = self.slots_for_day(tenant_id, provider_id, on_date, duration_minutes)
        except RepositoryError:
            logger.warning(
                'Skipping %s for provider %s in tenant %s: schedule could not be loaded',
                on_date, provider_id, tenant_id, exc_info=True,
            )
            return DaySlots(date=on_date, slots=[])

        if earliest is not None:
            slots = [slot for slot in slots if slot.starts_at >= earliest]
        if max_per_day is not None:
            slots = slots[:max_per_day]
        return DaySlots(date=on_date, slots=slots)

    def search(
        self,
        tenant_id: str,
        provider_id: str,
        base_date: date,
        duration_minutes: int,
        horizon: Horizon | str = Horizon.NEXT_WEEK,
        max_per_day: int | None = None,
        now: datetime | None = None,
    ) -> HorizonResult:
        """Slots for every date in ``[base_date, horizon_end]``.

        Days without any free slot are left out of ``days``. When ``now`` is
        given, slots starting before ``now`` plus the lead time are dropped.
        A day whose schedule cannot be read is skipped instead of failing the
        whole search.
        """
        if duration_minutes <= 0:
            raise InvalidParameters('duration_minutes must be positive.')
        if max_per_day is not None and max_per_day < 1:
            raise InvalidParameters('max_per_day must be at least 1.')

        end_date = horizon_end(base_date, horizon)
        earliest = now + self.lead if now is not None else None
        dates = list(iter_dates(base_date, end_date))

        def load(on_date):
            return self._day(tenant_id, provider_id, on_date, duration_minutes, max_per_day, earliest)

        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix='horizon_') as executor:
                # map() yields in submission order, so days stay in calendar order.
                loaded = list(executor.map(load, dates))
        else:
            loaded = [load(on_date) for on_date in dates]

        days = [day for day in loaded if day.slots]
        all_slots = sorted(slot for day in days for slot in day.slots)

        return HorizonResult(
            start_date=base_date,
            end_date=end_date,
            duration_minutes=duration_minutes,
            days=days,
            next_available=all_slots[:self.next_available_limit],
        )
