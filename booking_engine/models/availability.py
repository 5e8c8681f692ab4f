"""Recurring weekly availability and break models."""

from sqlalchemy import Boolean, Column, Index, Integer, String, Time
from booking_engine.database import Base
from booking_engine.models.provider import new_id


class ProviderAvailability(Base):
    """Weekly working hours; day_of_week is 0 = Sunday ... 6 = Saturday."""
    __tablename__ = "provider_availability"
    __table_args__ = (
        Index("idx_availability_lookup", "tenant_id", "provider_id", "day_of_week"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False)
    provider_id = Column(String(36), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class ProviderBreak(Base):
    """Weekly time off inside the working hours (lunch, personal time)."""
    __tablename__ = "provider_breaks"
    __table_args__ = (
        Index("idx_breaks_lookup", "tenant_id", "provider_id", "day_of_week"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False)
    provider_id = Column(String(36), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    break_type = Column(String, nullable=False, default="break")
    is_active = Column(Boolean, nullable=False, default=True)
