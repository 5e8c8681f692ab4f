"""Outbound appointment notifications.

Delivery (email, WhatsApp) happens elsewhere; this queue only stores a
``pending`` row in the ``notifications`` table for the delivery worker.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.core.errors import RepositoryError
from booking_engine.models.notification import Notification
from booking_engine.scheduling.types import NotificationEvent

logger = logging.getLogger(__name__)


class SqlNotificationQueue:
    def __init__(self, db: Session):
        self.db = db

    def send(self, event: NotificationEvent) -> None:
        try:
            self.db.add(
                Notification(
                    tenant_id=event.tenant_id,
                    appointment_id=event.appointment_id,
                    recipient_id=event.recipient_id,
                    type=event.kind,
                    subject=event.subject,
                    content=event.content,
                    status='pending',
                )
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError('Could not enqueue notification.') from exc
        logger.debug('Queued %s notification for appointment %s', event.kind, event.appointment_id)
