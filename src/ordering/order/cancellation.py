"""Order cancellation and refund: commands and handler."""

import json

import structlog
from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import GatewayError
from ordering.inventory.ledger import InventoryLedger
from ordering.order.order import Order
from ordering.payment.gateway import get_gateway
from ordering.shared.actor import Role, require_role

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    actor_role = String(required=True, max_length=20)
    reason = String(max_length=500)


@ordering.command(part_of="Order")
class RefundOrder:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    actor_role = String(required=True, max_length=20)
    refund_amount = Float()  # Optional, defaults to the order total
    remarks = String(max_length=255, default="Refund requested by marketplace")


@ordering.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        to_release = order.cancel(
            actor_id=command.actor_id,
            actor_role=command.actor_role,
            reason=command.reason,
        )
        if to_release:
            released = InventoryLedger().release(to_release)
            order.mark_stock_released(released)
        repo.add(order)

    @handle(RefundOrder)
    def refund_order(self, command):
        require_role(command.actor_role, Role.ADMIN)
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        amount = order.assert_refundable(command.refund_amount)

        gateway_details = json.loads(order.gateway_response) if order.gateway_response else {}
        result = get_gateway().refund(
            bank_transaction_id=gateway_details.get("bank_tran_id") or order.transaction_id,
            amount=amount,
            remarks=command.remarks,
            reference=order.order_number,
        )
        if not result.success:
            logger.warning(
                "Gateway declined refund",
                order_id=str(order.id),
                reason=result.failure_reason,
            )
            raise GatewayError(result.failure_reason or "Refund was declined by the gateway")

        to_release = order.record_refund(amount, result.refund_reference)
        if to_release:
            released = InventoryLedger().release(to_release)
            order.mark_stock_released(released)
        repo.add(order)
        return order.payment_status
