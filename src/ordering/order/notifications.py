"""Recipients marking their order notifications as read."""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class MarkNotificationRead:
    order_id = Identifier(required=True)
    notification_id = Identifier(required=True)
    actor_id = Identifier(required=True)


@ordering.command_handler(part_of=Order)
class NotificationReadHandler:
    @handle(MarkNotificationRead)
    def mark_read(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.mark_notification_read(command.notification_id, command.actor_id)
        repo.add(order)
