from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.core import config
from booking_engine.core.errors import BookingError, NotFound, http_error
from booking_engine.database import get_db
from booking_engine.routes import deps
from booking_engine.scheduling.horizon import effective_base_date
from booking_engine.scheduling.types import DaySlots, Horizon, Slot, format_hhmm

router = APIRouter(tags=['availability'])


class SlotResponse(BaseModel):
    date: date
    day_of_week: int
    day_name: str
    start_time: str
    end_time: str
    is_preferred: bool | None = None


class DailySlotsResponse(BaseModel):
    date: date
    day_of_week: int
    day_name: str
    slot_count: int
    slots: list[SlotResponse]


class DateRangeResponse(BaseModel):
    start: date
    end: date


class AvailableSlotsData(BaseModel):
    doctor_id: str
    tenant_id: str
    date_range: DateRangeResponse
    duration_minutes: int
    total_slots: int
    days: list[DailySlotsResponse]
    next_available: list[SlotResponse]


class AvailableSlotsResponse(BaseModel):
    success: bool
    data: AvailableSlotsData


def slot_response(slot: Slot, is_preferred: bool | None = None) -> SlotResponse:
    return SlotResponse(
        date=slot.date,
        day_of_week=slot.day_of_week,
        day_name=slot.day_name,
        start_time=format_hhmm(slot.start_time),
        end_time=format_hhmm(slot.end_time),
        is_preferred=is_preferred,
    )


def daily_slots_response(day: DaySlots) -> DailySlotsResponse:
    return DailySlotsResponse(
        date=day.date,
        day_of_week=day.day_of_week,
        day_name=day.day_name,
        slot_count=day.slot_count,
        slots=[slot_response(slot) for slot in day.slots],
    )


@router.get('/availability', response_model=list[str])
def list_day_availability(
    doctor_id: str = Query(..., alias='doctorId'),
    on_date: date = Query(..., alias='date'),
    tenant_id: str = Query(..., alias='tenantId'),
    db: Session = Depends(get_db),
):
    """Free ``HH:MM`` start times for one day on the fixed single-day grid."""
    deps.ensure_database_ready()

    try:
        if not deps.provider_directory(db).is_active_member(tenant_id, doctor_id):
            raise NotFound('Doctor not found for this tenant.')

        slots = deps.horizon_search(db).slots_for_day(
            tenant_id,
            doctor_id,
            on_date,
            config.SINGLE_DAY_SLOT_MINUTES,
        )
        return [format_hhmm(slot.start_time) for slot in slots]
    except BookingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise deps.database_unavailable() from exc


@router.get(
    '/doctors/{doctor_id}/available-slots',
    response_model=AvailableSlotsResponse,
    response_model_exclude_none=True,
)
def list_available_slots(
    doctor_id: str,
    base_date: date | None = Query(default=None),
    duration_minutes: int = Query(
        default=config.DEFAULT_SLOT_DURATION_MINUTES,
        ge=config.MIN_SLOT_DURATION_MINUTES,
        le=config.MAX_SLOT_DURATION_MINUTES,
    ),
    suggestion_type: Horizon = Query(default=Horizon.NEXT_WEEK),
    max_per_day: int = Query(default=config.DEFAULT_MAX_SLOTS_PER_DAY, ge=1, le=config.MAX_SLOTS_PER_DAY_LIMIT),
    tenant_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    deps.ensure_database_ready()

    try:
        directory = deps.provider_directory(db)
        target_tenant_id = tenant_id or directory.primary_tenant(doctor_id)
        if not target_tenant_id:
            raise NotFound('Doctor not assigned to any tenant.')
        if not directory.is_active_member(target_tenant_id, doctor_id):
            raise NotFound('Doctor not active in this tenant.')

        now = deps.local_now()
        result = deps.horizon_search(db).search(
            target_tenant_id,
            doctor_id,
            effective_base_date(base_date, now),
            duration_minutes,
            horizon=suggestion_type,
            max_per_day=max_per_day,
            now=now,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise deps.database_unavailable() from exc

    return AvailableSlotsResponse(
        success=True,
        data=AvailableSlotsData(
            doctor_id=doctor_id,
            tenant_id=target_tenant_id,
            date_range=DateRangeResponse(start=result.start_date, end=result.end_date),
            duration_minutes=result.duration_minutes,
            total_slots=result.total_slots,
            days=[daily_slots_response(day) for day in result.days],
            next_available=[
                slot_response(slot, is_preferred=index == 0)
                for index, slot in enumerate(result.next_available)
            ],
        ),
    )
