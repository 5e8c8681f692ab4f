from datetime import date, datetime, time

import pytest

from booking_engine.core.errors import InvalidParameters, RepositoryError
from booking_engine.repositories.memory import InMemoryAppointmentRepository, InMemorySchedule
from booking_engine.scheduling.horizon import HorizonSearch, effective_base_date, horizon_end
from booking_engine.scheduling.types import (
    Appointment,
    AppointmentStatus,
    AvailabilityWindow,
    Break,
    Horizon,
    format_hhmm,
)

MONDAY = date(2030, 1, 7)


def every_day(start: time, end: time, tenant_id: str = 'tenant-1', provider_id: str = 'doctor-1'):
    return [AvailabilityWindow(tenant_id, provider_id, day, start, end) for day in range(7)]


def make_search(schedule=None, appointments=None, **kwargs) -> HorizonSearch:
    schedule = schedule or InMemorySchedule(every_day(time(9, 0), time(11, 0)))
    appointments = appointments or InMemoryAppointmentRepository()
    return HorizonSearch(schedule, schedule, appointments, **kwargs)


class FlakyAppointments(InMemoryAppointmentRepository):
    def __init__(self, failing_date: date):
        super().__init__()
        self.failing_date = failing_date

    def busy_on(self, tenant_id, provider_id, on_date, exclude_id=None):
        if on_date == self.failing_date:
            raise RepositoryError('Failed to fetch appointments.')
        return super().busy_on(tenant_id, provider_id, on_date, exclude_id)


@pytest.mark.parametrize(
    ('base_date', 'horizon', 'expected_end'),
    [
        (date(2030, 1, 7), Horizon.NEXT_WEEK, date(2030, 1, 14)),
        (date(2030, 1, 7), Horizon.TWO_WEEKS, date(2030, 1, 21)),
        (date(2030, 1, 7), Horizon.MONTH, date(2030, 2, 7)),
        (date(2030, 1, 31), Horizon.MONTH, date(2030, 2, 28)),
        (date(2028, 1, 31), Horizon.MONTH, date(2028, 2, 29)),
        (date(2030, 12, 28), 'next_week', date(2031, 1, 4)),
    ],
)
def test_horizon_end(base_date: date, horizon, expected_end: date) -> None:
    assert horizon_end(base_date, horizon) == expected_end


def test_horizon_end_rejects_unknown_horizon() -> None:
    with pytest.raises(InvalidParameters):
        horizon_end(MONDAY, 'fortnight')


def test_search_returns_days_in_calendar_order() -> None:
    result = make_search().search('tenant-1', 'doctor-1', MONDAY, 30)

    assert result.start_date == MONDAY
    assert result.end_date == date(2030, 1, 14)
    assert [day.date for day in result.days] == [date(2030, 1, d) for d in range(7, 15)]
    assert result.total_slots == 8 * 4
    assert result.days[0].day_name == 'Monday'
    assert result.days[0].day_of_week == 1


def test_search_truncates_each_day_to_max_per_day() -> None:
    result = make_search().search('tenant-1', 'doctor-1', MONDAY, 30, max_per_day=2)

    assert all(day.slot_count == 2 for day in result.days)
    assert [format_hhmm(slot.start_time) for slot in result.days[0].slots] == ['09:00', '09:30']


def test_search_rejects_invalid_parameters() -> None:
    search = make_search()

    with pytest.raises(InvalidParameters):
        search.search('tenant-1', 'doctor-1', MONDAY, 0)
    with pytest.raises(InvalidParameters):
        search.search('tenant-1', 'doctor-1', MONDAY, 30, max_per_day=0)


def test_next_available_is_sorted_and_capped() -> None:
    schedule = InMemorySchedule(
        [
            AvailabilityWindow('tenant-1', 'doctor-1', 3, time(8, 0), time(9, 0)),
            AvailabilityWindow('tenant-1', 'doctor-1', 2, time(14, 0), time(17, 0)),
        ]
    )

    result = make_search(schedule).search('tenant-1', 'doctor-1', MONDAY, 30)

    assert len(result.next_available) == 5
    assert result.next_available == sorted(result.next_available)
    assert result.next_available[0].date == date(2030, 1, 8)
    assert result.next_available[0].start_time == time(14, 0)


def test_search_omits_days_without_slots() -> None:
    schedule = InMemorySchedule([AvailabilityWindow('tenant-1', 'doctor-1', 1, time(9, 0), time(10, 0))])

    result = make_search(schedule).search('tenant-1', 'doctor-1', MONDAY, 30, horizon=Horizon.TWO_WEEKS)

    assert [day.date for day in result.days] == [date(2030, 1, 7), date(2030, 1, 14), date(2030, 1, 21)]


def test_search_subtracts_breaks_and_bookings() -> None:
    schedule = InMemorySchedule(
        every_day(time(9, 0), time(11, 0)),
        [Break('tenant-1', 'doctor-1', 1, time(10, 0), time(10, 30))],
    )
    appointments = InMemoryAppointmentRepository(
        [
            Appointment(
                id='appt-1',
                tenant_id='tenant-1',
                provider_id='doctor-1',
                patient_id='patient-1',
                service_id='service-1',
                date=MONDAY,
                start_time=time(9, 0),
                end_time=time(9, 30),
                status=AppointmentStatus.CONFIRMED,
            )
        ]
    )

    result = make_search(schedule, appointments).search('tenant-1', 'doctor-1', MONDAY, 30)

    assert [format_hhmm(slot.start_time) for slot in result.days[0].slots] == ['09:30', '10:30']


def test_search_drops_slots_inside_lead_time() -> None:
    result = make_search().search(
        'tenant-1',
        'doctor-1',
        MONDAY,
        30,
        now=datetime(2030, 1, 7, 9, 10),
    )

    assert [format_hhmm(slot.start_time) for slot in result.days[0].slots] == ['10:00', '10:30']
    assert result.days[1].slot_count == 4


def test_search_skips_day_that_fails_to_load(caplog: pytest.LogCaptureFixture) -> None:
    search = make_search(appointments=FlakyAppointments(date(2030, 1, 9)))

    result = search.search('tenant-1', 'doctor-1', MONDAY, 30)

    assert date(2030, 1, 9) not in [day.date for day in result.days]
    assert len(result.days) == 7
    assert 'Skipping 2030-01-09' in caplog.text


def test_parallel_search_matches_sequential_search() -> None:
    schedule = InMemorySchedule(
        every_day(time(9, 0), time(12, 0)),
        [Break('tenant-1', 'doctor-1', day, time(10, 0), time(10, 20)) for day in range(7)],
    )

    sequential = make_search(schedule).search('tenant-1', 'doctor-1', MONDAY, 20, horizon=Horizon.MONTH)
    parallel = make_search(schedule, max_workers=4).search('tenant-1', 'doctor-1', MONDAY, 20, horizon=Horizon.MONTH)

    assert parallel == sequential


def test_search_is_scoped_to_tenant_and_provider() -> None:
    schedule = InMemorySchedule(every_day(time(9, 0), time(10, 0), provider_id='doctor-2'))

    result = make_search(schedule).search('tenant-1', 'doctor-1', MONDAY, 30)

    assert result.days == []
    assert result.next_available == []
    assert result.total_slots == 0


def test_effective_base_date_moves_to_tomorrow_after_cutoff() -> None:
    assert effective_base_date(None, datetime(2030, 1, 7, 17, 59)) == date(2030, 1, 7)
    assert effective_base_date(None, datetime(2030, 1, 7, 18, 0)) == date(2030, 1, 8)
    assert effective_base_date(date(2030, 1, 7), datetime(2030, 1, 7, 19, 0)) == date(2030, 1, 8)
    assert effective_base_date(date(2030, 1, 10), datetime(2030, 1, 7, 19, 0)) == date(2030, 1, 10)
