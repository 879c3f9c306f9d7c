"""Vendor confirmation and rejection of their assignment on an order."""

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.notifications.fanout import notify_admins
from ordering.order.order import NotificationType, Order
from ordering.shared.actor import Role, require_role


@ordering.command(part_of="Order")
class ConfirmVendorAssignment:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    actor_role = String(required=True, max_length=20)
    notes = Text()


@ordering.command(part_of="Order")
class RejectVendorAssignment:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    actor_role = String(required=True, max_length=20)
    reason = String(max_length=500)


@ordering.command_handler(part_of=Order)
class VendorResponseHandler:
    @handle(ConfirmVendorAssignment)
    def confirm_assignment(self, command):
        require_role(command.actor_role, Role.VENDOR)
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        all_confirmed = order.confirm_vendor_assignment(vendor_id=command.actor_id, notes=command.notes)
        repo.add(order)
        return all_confirmed

    @handle(RejectVendorAssignment)
    def reject_assignment(self, command):
        require_role(command.actor_role, Role.VENDOR)
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.reject_vendor_assignment(vendor_id=command.actor_id, reason=command.reason)
        notify_admins(
            order,
            NotificationType.VENDOR_REJECTED,
            f"Vendor {command.actor_id} rejected their items on order #{order.order_number}: {command.reason}",
        )
        repo.add(order)
