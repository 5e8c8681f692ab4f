"""Outbound notification queue model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, String
from booking_engine.database import Base
from booking_engine.models.provider import new_id


class Notification(Base):
    """A message waiting for the delivery worker."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    appointment_id = Column(String(36), index=True)
    recipient_id = Column(String(36), nullable=False)
    type = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    content = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, nullable=False, default=datetime.now)
