"""Admin approval and rejection of newly placed orders."""

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order
from ordering.shared.actor import Role, require_role


@ordering.command(part_of="Order")
class ApproveOrder:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    actor_role = String(required=True, max_length=20)
    notes = Text()


@ordering.command(part_of="Order")
class RejectOrder:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    actor_role = String(required=True, max_length=20)
    reason = String(max_length=500)


@ordering.command_handler(part_of=Order)
class OrderApprovalHandler:
    @handle(ApproveOrder)
    def approve_order(self, command):
        require_role(command.actor_role, Role.ADMIN)
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.approve(admin_id=command.actor_id, notes=command.notes)
        repo.add(order)

    @handle(RejectOrder)
    def reject_order(self, command):
        require_role(command.actor_role, Role.ADMIN)
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.reject(admin_id=command.actor_id, reason=command.reason)
        repo.add(order)
