import os
from datetime import date, datetime, time, timezone

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from booking_engine.auth.dependencies import Caller  # noqa: E402
from booking_engine.database import Base  # noqa: E402
from booking_engine.models.appointment import Appointment  # noqa: E402
from booking_engine.models.availability import ProviderAvailability  # noqa: E402
from booking_engine.models.notification import Notification  # noqa: E402
from booking_engine.models.provider import ProviderTenant, Service  # noqa: E402
from booking_engine.routes.appointment_routes import (  # noqa: E402
    CreateAppointmentRequest,
    RescheduleAppointmentRequest,
    UpdateAppointmentStatusRequest,
    cancel_my_appointment,
    create_appointment,
    list_doctor_appointments,
    list_status_history,
    reschedule_appointment,
    update_appointment_status,
)

MONDAY = date(2030, 1, 7)
PATIENT = Caller(user_id='patient-1', tenant_id='tenant-1', role='patient')
DOCTOR = Caller(user_id='doctor-1', tenant_id='tenant-1', role='doctor')
STRANGER = Caller(user_id='patient-2', tenant_id='tenant-1', role='patient')


@pytest.fixture
def appointment_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    db.add_all(
        [
            ProviderTenant(tenant_id='tenant-1', provider_id='doctor-1'),
            Service(id='service-1', tenant_id='tenant-1', name='Consultation', duration_minutes=30),
            ProviderAvailability(tenant_id='tenant-1', provider_id='doctor-1', day_of_week=1,
                                 start_time=time(9, 0), end_time=time(12, 0)),
            ProviderAvailability(tenant_id='tenant-1', provider_id='doctor-1', day_of_week=2,
                                 start_time=time(9, 0), end_time=time(12, 0)),
        ]
    )
    db.commit()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def ready_database(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('booking_engine.routes.deps.ensure_database_ready', lambda: None)
    monkeypatch.setattr('booking_engine.routes.deps.local_now', lambda: datetime(2030, 1, 1, 9, 0))


def book(db, start: time = time(9, 0), caller: Caller = PATIENT, **overrides):
    values = {
        'tenant_id': 'tenant-1',
        'doctor_id': 'doctor-1',
        'service_id': 'service-1',
        'appointment_date': MONDAY,
        'start_time': start,
    }
    values.update(overrides)
    return create_appointment(data=CreateAppointmentRequest(**values), current_user=caller, db=db)


def test_create_appointment_request_rejects_long_notes() -> None:
    with pytest.raises(ValidationError):
        CreateAppointmentRequest(
            tenant_id='tenant-1',
            doctor_id='doctor-1',
            service_id='service-1',
            appointment_date=MONDAY,
            start_time=time(9, 0),
            notes='x' * 601,
        )


def test_create_appointment_request_blank_notes_become_none() -> None:
    request = CreateAppointmentRequest(
        tenant_id=' tenant-1 ',
        doctor_id='doctor-1',
        service_id='service-1',
        appointment_date=MONDAY,
        start_time=time(9, 0),
        notes='   ',
    )

    assert request.tenant_id == 'tenant-1'
    assert request.notes is None


def test_update_status_request_accepts_alias_and_field_name() -> None:
    assert UpdateAppointmentStatusRequest(appointmentId='a', status='confirmed').appointment_id == 'a'
    assert UpdateAppointmentStatusRequest(appointment_id='a', status='confirmed').appointment_id == 'a'


def test_create_appointment_books_for_caller(appointment_db) -> None:
    response = book(appointment_db, notes='First visit')

    assert response.patient_id == 'patient-1'
    assert response.doctor_id == 'doctor-1'
    assert response.start_time == '09:00'
    assert response.end_time == '09:30'
    assert response.status == 'pending'
    assert appointment_db.query(Notification).filter(Notification.appointment_id == response.id).count() == 1


def test_create_appointment_rejects_taken_slot(appointment_db) -> None:
    book(appointment_db)

    with pytest.raises(HTTPException) as exception_info:
        book(appointment_db, caller=STRANGER)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Time slot is no longer available.'


def test_create_appointment_rejects_time_outside_hours(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        book(appointment_db, start=time(12, 0))

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == "Appointment time is outside the provider's availability hours."


def test_create_appointment_rejects_unknown_service(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        book(appointment_db, service_id='service-9')

    assert exception_info.value.status_code == 404


def test_cancel_my_appointment_rejects_non_owner(appointment_db) -> None:
    created = book(appointment_db)

    with pytest.raises(HTTPException) as exception_info:
        cancel_my_appointment(appointment_id=created.id, current_user=STRANGER, db=appointment_db)

    assert exception_info.value.status_code == 403


def test_cancel_my_appointment_returns_not_found_when_missing(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        cancel_my_appointment(appointment_id='missing', current_user=PATIENT, db=appointment_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointment not found.'


def test_cancel_my_appointment_reopens_slot(appointment_db) -> None:
    created = book(appointment_db)

    response = cancel_my_appointment(appointment_id=created.id, current_user=PATIENT, db=appointment_db)

    assert response.success is True
    assert response.message == 'Appointment cancelled successfully'
    assert appointment_db.get(Appointment, created.id).status == 'cancelled'
    assert book(appointment_db, caller=STRANGER).start_time == '09:00'


def test_cancel_my_appointment_inside_notice_window_fails(appointment_db, monkeypatch: pytest.MonkeyPatch) -> None:
    created = book(appointment_db)
    monkeypatch.setattr('booking_engine.routes.deps.local_now', lambda: datetime(2030, 1, 6, 12, 0))

    with pytest.raises(HTTPException) as exception_info:
        cancel_my_appointment(appointment_id=created.id, current_user=PATIENT, db=appointment_db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Cannot cancel appointment less than 24 hours in advance.'


def test_update_appointment_status_confirms(appointment_db) -> None:
    created = book(appointment_db)

    response = update_appointment_status(
        doctor_id='doctor-1',
        data=UpdateAppointmentStatusRequest(appointmentId=created.id, status='confirmed'),
        current_user=DOCTOR,
        db=appointment_db,
    )

    assert response.status == 'confirmed'


def test_update_appointment_status_rejects_other_caller(appointment_db) -> None:
    created = book(appointment_db)

    with pytest.raises(HTTPException) as exception_info:
        update_appointment_status(
            doctor_id='doctor-1',
            data=UpdateAppointmentStatusRequest(appointmentId=created.id, status='confirmed'),
            current_user=PATIENT,
            db=appointment_db,
        )

    assert exception_info.value.status_code == 403


def test_update_appointment_status_rejects_invalid_status(appointment_db) -> None:
    created = book(appointment_db)

    with pytest.raises(HTTPException) as exception_info:
        update_appointment_status(
            doctor_id='doctor-1',
            data=UpdateAppointmentStatusRequest(appointmentId=created.id, status='done'),
            current_user=DOCTOR,
            db=appointment_db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail.startswith('Invalid status.')


def test_update_appointment_status_rejects_illegal_transition(appointment_db) -> None:
    created = book(appointment_db)
    update = UpdateAppointmentStatusRequest(appointmentId=created.id, status='confirmed')
    update_appointment_status(doctor_id='doctor-1', data=update, current_user=DOCTOR, db=appointment_db)

    with pytest.raises(HTTPException) as exception_info:
        update_appointment_status(
            doctor_id='doctor-1',
            data=UpdateAppointmentStatusRequest(appointmentId=created.id, status='pending'),
            current_user=DOCTOR,
            db=appointment_db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Cannot change appointment status from confirmed to pending.'


def test_list_doctor_appointments_is_provider_only(appointment_db) -> None:
    book(appointment_db, start=time(10, 0))
    book(appointment_db, start=time(9, 0), caller=STRANGER)

    appointments = list_doctor_appointments(doctor_id='doctor-1', on_date=MONDAY, current_user=DOCTOR, db=appointment_db)

    assert [item.start_time for item in appointments] == ['09:00', '10:00']
    with pytest.raises(HTTPException) as exception_info:
        list_doctor_appointments(doctor_id='doctor-1', on_date=MONDAY, current_user=PATIENT, db=appointment_db)
    assert exception_info.value.status_code == 403


def test_reschedule_appointment_links_new_booking(appointment_db) -> None:
    created = book(appointment_db)

    response = reschedule_appointment(
        appointment_id=created.id,
        data=RescheduleAppointmentRequest(new_date=date(2030, 1, 8), new_start_time=time(10, 0), reason='Work trip'),
        current_user=PATIENT,
        db=appointment_db,
    )

    assert response.appointment.rescheduled_from_id == created.id
    assert response.appointment.appointment_date == date(2030, 1, 8)
    assert response.appointment.end_time == '10:30'
    assert response.original_appointment.status == 'cancelled'


def test_reschedule_appointment_rejects_stranger(appointment_db) -> None:
    created = book(appointment_db)

    with pytest.raises(HTTPException) as exception_info:
        reschedule_appointment(
            appointment_id=created.id,
            data=RescheduleAppointmentRequest(new_date=date(2030, 1, 8), new_start_time=time(10, 0), reason='Mine now'),
            current_user=STRANGER,
            db=appointment_db,
        )

    assert exception_info.value.status_code == 403


def test_list_status_history_shows_transitions(appointment_db) -> None:
    created = book(appointment_db)
    cancel_my_appointment(appointment_id=created.id, current_user=PATIENT, db=appointment_db)

    history = list_status_history(appointment_id=created.id, current_user=DOCTOR, db=appointment_db)

    assert [(change.from_status, change.to_status) for change in history] == [
        (None, 'pending'),
        ('pending', 'cancelled'),
    ]
    assert history[1].reason == 'Cancelled by patient'
    with pytest.raises(HTTPException) as exception_info:
        list_status_history(appointment_id=created.id, current_user=STRANGER, db=appointment_db)
    assert exception_info.value.status_code == 403


def test_create_appointment_rejects_time_with_utc_offset(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        book(appointment_db, start=time(10, 0, tzinfo=timezone.utc))

    assert exception_info.value.status_code == 400
    assert appointment_db.query(Appointment).count() == 0
