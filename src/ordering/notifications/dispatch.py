"""Delivers queued order notifications through the notification channel.

Delivery runs after the order's unit of work commits. A failed delivery is
logged and never undoes the workflow transition that produced it; the
notification stays in the order's log either way.
"""

import structlog
from protean.utils.mixins import handle

from ordering.domain import ordering
from ordering.notifications.channel import get_channel
from ordering.order.events import NotificationQueued
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


@ordering.event_handler(part_of=Order)
class NotificationDispatcher:
    @handle(NotificationQueued)
    def on_notification_queued(self, event: NotificationQueued) -> None:
        try:
            result = get_channel().send(
                recipient_id=str(event.recipient_id),
                notification_type=event.notification_type,
                message=event.message,
            )
        except Exception as e:
            logger.error(
                "Notification delivery raised",
                notification_id=str(event.notification_id),
                order_id=str(event.order_id),
                error=str(e),
            )
            return

        if result.get("status") != "sent":
            logger.warning(
                "Notification delivery failed",
                notification_id=str(event.notification_id),
                order_id=str(event.order_id),
                error=result.get("error"),
            )
            return

        logger.debug(
            "Notification delivered",
            notification_id=str(event.notification_id),
            message_id=result.get("message_id"),
        )
