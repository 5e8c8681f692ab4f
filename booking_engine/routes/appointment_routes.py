from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.auth.dependencies import Caller, get_current_user
from booking_engine.core.errors import BookingError, Forbidden, NotFound, http_error
from booking_engine.database import get_db
from booking_engine.repositories.sql import SqlAppointmentRepository
from booking_engine.routes import deps
from booking_engine.scheduling.lifecycle import parse_status
from booking_engine.scheduling.types import Appointment, StatusChange, format_hhmm
from booking_engine.services.booking import BookingRequest

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_NOTES_LENGTH = 600


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    tenant_id: str
    doctor_id: str
    service_id: str
    appointment_date: date
    start_time: time
    patient_id: str | None = None
    notes: str | None = None
    auto_confirm: bool = False

    @field_validator('tenant_id', 'doctor_id', 'service_id')
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Identifier is required.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class UpdateAppointmentStatusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    appointment_id: str = Field(alias='appointmentId')
    status: str
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class RescheduleAppointmentRequest(BaseModel):
    new_date: date
    new_start_time: time
    new_end_time: time | None = None
    reason: str
    notes: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) < 3:
            raise ValueError('Reason must be at least 3 characters.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class AppointmentResponse(BaseModel):
    id: str
    tenant_id: str
    doctor_id: str
    patient_id: str
    service_id: str
    appointment_date: date
    start_time: str
    end_time: str
    status: str
    notes: str | None = None
    rescheduled_from_id: str | None = None


class CancelAppointmentResponse(BaseModel):
    success: bool
    message: str


class RescheduleAppointmentResponse(BaseModel):
    appointment: AppointmentResponse
    original_appointment: AppointmentResponse


class StatusChangeResponse(BaseModel):
    from_status: str | None
    to_status: str
    changed_by: str | None
    changed_at: datetime
    reason: str | None = None


def appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        tenant_id=appointment.tenant_id,
        doctor_id=appointment.provider_id,
        patient_id=appointment.patient_id,
        service_id=appointment.service_id,
        appointment_date=appointment.date,
        start_time=format_hhmm(appointment.start_time),
        end_time=format_hhmm(appointment.end_time),
        status=appointment.status.value,
        notes=appointment.notes,
        rescheduled_from_id=appointment.rescheduled_from_id,
    )


def status_change_response(change: StatusChange) -> StatusChangeResponse:
    return StatusChangeResponse(
        from_status=change.from_status.value if change.from_status else None,
        to_status=change.to_status.value,
        changed_by=change.changed_by,
        changed_at=change.changed_at,
        reason=change.reason,
    )


def get_appointment_or_404(appointments: SqlAppointmentRepository, appointment_id: str) -> Appointment:
    appointment = appointments.get(appointment_id)
    if appointment is None:
        raise NotFound('Appointment not found.')
    return appointment


def is_participant(caller: Caller, appointment: Appointment) -> bool:
    return caller.user_id in (appointment.patient_id, appointment.provider_id)


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: Caller = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    deps.ensure_database_ready()

    try:
        appointment = deps.booking_service(db).book(
            BookingRequest(
                tenant_id=data.tenant_id,
                provider_id=data.doctor_id,
                service_id=data.service_id,
                patient_id=data.patient_id or current_user.user_id,
                date=data.appointment_date,
                start_time=data.start_time.replace(second=0, microsecond=0),
                notes=data.notes,
                auto_confirm=data.auto_confirm,
            ),
            changed_by=current_user.user_id,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise deps.database_unavailable() from exc

    return appointment_response(appointment)


@router.put('/appointments/{appointment_id}/cancel', response_model=CancelAppointmentResponse)
def cancel_my_appointment(
    appointment_id: str,
    current_user: Caller = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    deps.ensure_database_ready()

    try:
        appointment = get_appointment_or_404(SqlAppointmentRepository(db), appointment_id)
        if appointment.patient_id != current_user.user_id:
            raise Forbidden('Only the patient who booked this appointment can cancel it.')

        deps.appointment_lifecycle(db).cancel(
            appointment,
            deps.local_now(),
            changed_by=current_user.user_id,
            reason='Cancelled by patient',
        )
    except BookingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise deps.database_unavailable() from exc

    return CancelAppointmentResponse(success=True, message='Appointment cancelled successfully')


@router.get('/doctors/{doctor_id}/appointments', response_model=list[AppointmentResponse])
def list_doctor_appointments(
    doctor_id: str,
    on_date: date = Query(..., alias='date'),
    current_user: Caller = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    deps.ensure_database_ready()

    try:
        if current_user.user_id != doctor_id:
            raise Forbidden('Forbidden')
        appointments = SqlAppointmentRepository(db).list_for_provider(doctor_id, on_date)
    except BookingError as exc:
        raise http_error(exc) from exc

    return [appointment_response(appointment) for appointment in appointments]


@router.put('/doctors/{doctor_id}/appointments', response_model=AppointmentResponse)
def update_appointment_status(
    doctor_id: str,
    data: UpdateAppointmentStatusRequest,
    current_user: Caller = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    deps.ensure_database_ready()

    try:
        if current_user.user_id != doctor_id:
            raise Forbidden('Forbidden')
        new_status = parse_status(data.status)

        appointment = SqlAppointmentRepository(db).get(data.appointment_id)
        if appointment is None or appointment.provider_id != doctor_id:
            raise NotFound('Appointment not found.')

        updated = deps.appointment_lifecycle(db).transition(
            appointment,
            new_status,
            deps.local_now(),
            changed_by=current_user.user_id,
            notes=data.notes,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise deps.database_unavailable() from exc

    return appointment_response(updated)


@router.post('/appointments/{appointment_id}/reschedule', response_model=RescheduleAppointmentResponse)
def reschedule_appointment(
    appointment_id: str,
    data: RescheduleAppointmentRequest,
    current_user: Caller = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    deps.ensure_database_ready()

    try:
        appointment = get_appointment_or_404(SqlAppointmentRepository(db), appointment_id)
        if not is_participant(current_user, appointment):
            raise Forbidden('You do not have permission to reschedule this appointment.')

        created, original = deps.booking_service(db).reschedule(
            appointment_id,
            data.new_date,
            data.new_start_time.replace(second=0, microsecond=0),
            data.reason,
            new_end_time=data.new_end_time,
            notes=data.notes,
            changed_by=current_user.user_id,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise deps.database_unavailable() from exc

    return RescheduleAppointmentResponse(
        appointment=appointment_response(created),
        original_appointment=appointment_response(original),
    )


@router.get('/appointments/{appointment_id}/status-history', response_model=list[StatusChangeResponse])
def list_status_history(
    appointment_id: str,
    current_user: Caller = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    deps.ensure_database_ready()

    try:
        appointments = SqlAppointmentRepository(db)
        appointment = get_appointment_or_404(appointments, appointment_id)
        if not is_participant(current_user, appointment):
            raise Forbidden('Forbidden')

        history = appointments.status_history(appointment_id)
    except BookingError as exc:
        raise http_error(exc) from exc

    return [status_change_response(change) for change in history]
