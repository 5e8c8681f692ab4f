"""Repository ports the scheduling core depends on.

Implementations live in ``booking_engine.repositories``; the core never opens
a database session itself.
"""

from datetime import date
from typing import Protocol, runtime_checkable

from booking_engine.scheduling.types import (
    Appointment,
    AppointmentStatus,
    AvailabilityWindow,
    Break,
    BusyInterval,
    NotificationEvent,
    StatusChange,
)


@runtime_checkable
class AvailabilityRepository(Protocol):
    def windows_for(self, tenant_id: str, provider_id: str, day_of_week: int) -> list[AvailabilityWindow]:
        """Active recurring windows for one day of week."""
        ...


@runtime_checkable
class BreakRepository(Protocol):
    def breaks_for(self, tenant_id: str, provider_id: str, day_of_week: int) -> list[Break]:
        """Active recurring breaks for one day of week."""
        ...


@runtime_checkable
class AppointmentRepository(Protocol):
    def busy_on(
        self,
        tenant_id: str,
        provider_id: str,
        on_date: date,
        exclude_id: str | None = None,
    ) -> list[BusyInterval]:
        """Non-cancelled booked intervals for one provider on one date."""
        ...

    def get(self, appointment_id: str) -> Appointment | None:
        ...

    def list_for_provider(self, provider_id: str, on_date: date) -> list[Appointment]:
        ...

    def lock_schedule(self, tenant_id: str, provider_id: str) -> None:
        """Serialize writers on one provider's calendar until the next insert or update."""
        ...

    def insert(self, appointment: Appointment, changed_by: str | None = None) -> Appointment:
        """Persist a new appointment.

        Raises ``Conflict`` when another non-cancelled appointment already holds
        the same ``(tenant_id, provider_id, date, start_time)``.
        """
        ...

    def update_status(
        self,
        appointment: Appointment,
        new_status: AppointmentStatus,
        changed_by: str | None = None,
        reason: str | None = None,
        notes: str | None = None,
    ) -> Appointment:
        ...

    def status_history(self, appointment_id: str) -> list[StatusChange]:
        ...


@runtime_checkable
class ProviderDirectory(Protocol):
    def is_active_member(self, tenant_id: str, provider_id: str) -> bool:
        ...

    def primary_tenant(self, provider_id: str) -> str | None:
        ...

    def service_duration(self, tenant_id: str, service_id: str) -> int | None:
        """Duration in minutes of a tenant's service, or None when unknown."""
        ...


@runtime_checkable
class NotificationSender(Protocol):
    def send(self, event: NotificationEvent) -> None:
        ...
