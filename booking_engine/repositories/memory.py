"""In-memory implementations of the scheduling ports.

Used by the test suite and by anything that wants the engine without a
database. ``InMemoryAppointmentRepository.insert`` enforces the same
active-slot uniqueness as the SQL unique index, under a lock.
"""

import uuid
from dataclasses import replace
from datetime import date, datetime
from threading import Lock

from booking_engine.core.errors import Conflict, RepositoryError
from booking_engine.scheduling.types import (
    Appointment,
    AppointmentStatus,
    AvailabilityWindow,
    Break,
    BusyInterval,
    NotificationEvent,
    StatusChange,
)


class InMemorySchedule:
    """Serves both availability windows and breaks."""

    def __init__(self, windows: list[AvailabilityWindow] | None = None, breaks: list[Break] | None = None):
        self.windows = list(windows or [])
        self.breaks = list(breaks or [])

    def windows_for(self, tenant_id: str, provider_id: str, day_of_week: int) -> list[AvailabilityWindow]:
        return [
            window for window in self.windows
            if window.tenant_id == tenant_id
            and window.provider_id == provider_id
            and window.day_of_week == day_of_week
            and window.is_active
        ]

    def breaks_for(self, tenant_id: str, provider_id: str, day_of_week: int) -> list[Break]:
        return [
            brk for brk in self.breaks
            if brk.tenant_id == tenant_id
            and brk.provider_id == provider_id
            and brk.day_of_week == day_of_week
            and brk.is_active
        ]


class InMemoryAppointmentRepository:
    def __init__(self, appointments: list[Appointment] | None = None):
        self._lock = Lock()
        self._appointments: dict[str, Appointment] = {}
        self._history: list[StatusChange] = []
        for appointment in appointments or []:
            self._appointments[appointment.id] = replace(appointment)

    def _active_holder(self, appointment: Appointment) -> Appointment | None:
        for existing in self._appointments.values():
            if (
                existing.id != appointment.id
                and existing.status != AppointmentStatus.CANCELLED
                and existing.slot_key == appointment.slot_key
            ):
                return existing
        return None

    def busy_on(
        self,
        tenant_id: str,
        provider_id: str,
        on_date: date,
        exclude_id: str | None = None,
    ) -> list[BusyInterval]:
        with self._lock:
            return [
                BusyInterval(start_time=item.start_time, end_time=item.end_time, status=item.status)
                for item in self._appointments.values()
                if item.tenant_id == tenant_id
                and item.provider_id == provider_id
                and item.date == on_date
                and item.status != AppointmentStatus.CANCELLED
                and item.id != exclude_id
            ]

    def get(self, appointment_id: str) -> Appointment | None:
        with self._lock:
            found = self._appointments.get(appointment_id)
            return replace(found) if found else None

    def list_for_provider(self, provider_id: str, on_date: date) -> list[Appointment]:
        with self._lock:
            matches = [
                replace(item) for item in self._appointments.values()
                if item.provider_id == provider_id and item.date == on_date
            ]
        return sorted(matches, key=lambda item: item.start_time)

    def lock_schedule(self, tenant_id: str, provider_id: str) -> None:
        return None

    def insert(self, appointment: Appointment, changed_by: str | None = None) -> Appointment:
        stored = replace(appointment, id=appointment.id or str(uuid.uuid4()))
        with self._lock:
            if stored.id in self._appointments:
                raise RepositoryError(f'Appointment {stored.id} already exists.')
            if stored.status != AppointmentStatus.CANCELLED and self._active_holder(stored):
                raise Conflict('Time slot is no longer available.')
            self._appointments[stored.id] = stored
            self._history.append(
                StatusChange(stored.id, None, stored.status, changed_by, datetime.now())
            )
        return replace(stored)

    def update_status(
        self,
        appointment: Appointment,
        new_status: AppointmentStatus,
        changed_by: str | None = None,
        reason: str | None = None,
        notes: str | None = None,
    ) -> Appointment:
        with self._lock:
            current = self._appointments.get(appointment.id)
            if current is None:
                raise RepositoryError('Appointment disappeared during update.')
            updated = replace(
                current,
                status=new_status,
                notes=notes if notes is not None else current.notes,
            )
            if new_status != AppointmentStatus.CANCELLED and self._active_holder(updated):
                raise Conflict('Time slot is no longer available.')
            self._appointments[updated.id] = updated
            if current.status != new_status:
                self._history.append(
                    StatusChange(updated.id, current.status, new_status, changed_by, datetime.now(), reason)
                )
        return replace(updated)

    def status_history(self, appointment_id: str) -> list[StatusChange]:
        with self._lock:
            return [change for change in self._history if change.appointment_id == appointment_id]


class InMemoryProviderDirectory:
    def __init__(
        self,
        memberships: list[tuple[str, str]] | None = None,
        services: dict[tuple[str, str], int] | None = None,
    ):
        # memberships: (tenant_id, provider_id) pairs in creation order
        self.memberships = list(memberships or [])
        self.services = dict(services or {})

    def is_active_member(self, tenant_id: str, provider_id: str) -> bool:
        return (tenant_id, provider_id) in self.memberships

    def primary_tenant(self, provider_id: str) -> str | None:
        for tenant_id, member_id in self.memberships:
            if member_id == provider_id:
                return tenant_id
        return None

    def service_duration(self, tenant_id: str, service_id: str) -> int | None:
        return self.services.get((tenant_id, service_id))


class RecordingNotifier:
    def __init__(self):
        self.events: list[NotificationEvent] = []

    def send(self, event: NotificationEvent) -> None:
        self.events.append(event)
