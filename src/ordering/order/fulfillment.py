"""Per-item fulfillment progress reported by vendors (or admins on their behalf)."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order
from ordering.shared.actor import Role, require_role


@ordering.command(part_of="Order")
class AdvanceItemStatus:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    tracking_number = String(max_length=255)
    actor_id = Identifier(required=True)
    actor_role = String(required=True, max_length=20)


@ordering.command_handler(part_of=Order)
class FulfillmentHandler:
    @handle(AdvanceItemStatus)
    def advance_item_status(self, command):
        require_role(command.actor_role, Role.VENDOR, Role.ADMIN)
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.advance_item_status(
            item_id=command.item_id,
            new_status=command.status,
            actor_id=command.actor_id,
            actor_role=command.actor_role,
            tracking_number=command.tracking_number,
        )
        repo.add(order)
        return order.status
