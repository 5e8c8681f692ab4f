"""Provider membership and service catalog models."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint
from booking_engine.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class ProviderTenant(Base):
    """A bookable provider's membership in a tenant."""
    __tablename__ = "provider_tenants"
    __table_args__ = (
        UniqueConstraint("tenant_id", "provider_id", name="uq_provider_tenant"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    provider_id = Column(String(36), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class Service(Base):
    """A service a tenant offers; its duration sets the appointment length."""
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    name = Column(String, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
