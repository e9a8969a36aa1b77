"""
EDMS Approval Workflow Engine
Notification Service.

Notifications are side effects of workflow events. They are written inside
a SAVEPOINT so a failing insert is logged and dropped without poisoning the
caller's transaction; the caller still owns the final commit.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from edms.models import db
from edms.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, title, message="", category="system", severity="info",
               recipient="all", tenant_id=None, entity_type="", entity_id=None):
        """
        Record a single notification.

        Returns:
            The flushed Notification instance, or None when the write failed.
        """
        notif = Notification(
            tenant_id=tenant_id,
            recipient=recipient,
            title=title,
            message=message,
            category=category,
            severity=severity,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        try:
            with db.session.begin_nested():
                db.session.add(notif)
        except SQLAlchemyError:
            logger.exception(
                "Notification write failed",
                extra={"tenant_id": tenant_id, "event_type": category},
            )
            return None
        return notif
