"""Notification fanout to administrators."""

import structlog

from ordering.notifications.directory import get_admin_directory
from ordering.order.order import NotificationType, Order
from ordering.shared.actor import Role

logger = structlog.get_logger(__name__)


def notify_admins(order: Order, notification_type: NotificationType, message: str) -> int:
    """Append one notification per administrator. Returns how many were queued."""
    admin_ids = get_admin_directory().admin_ids()
    if not admin_ids:
        logger.warning(
            "No administrators configured to notify",
            order_id=str(order.id),
            notification_type=notification_type.value,
        )
    for admin_id in admin_ids:
        order.notify(notification_type, admin_id, Role.ADMIN, message)
    return len(admin_ids)
