"""Order payment: initialization and the application of gateway outcomes.

``ApplyPaymentSuccess`` and ``ApplyPaymentFailure`` are reached from three
independent entry points (redirect, IPN, admin status check) that may race.
Each handler claims the payment with one conditional update in storage; only
the caller that wins the claim runs the side effects.
"""

from dataclasses import dataclass

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.cart.cart import Cart
from ordering.domain import ordering
from ordering.errors import ConflictError
from ordering.inventory.ledger import InventoryLedger
from ordering.notifications.fanout import notify_admins
from ordering.order.order import NotificationType, Order, OrderStatus, PaymentStatus

logger = structlog.get_logger(__name__)

# Payment statuses that mean a success was already applied
_ALREADY_PAID = {
    PaymentStatus.PAID.value,
    PaymentStatus.PARTIAL_REFUND.value,
    PaymentStatus.REFUNDED.value,
}


@dataclass(frozen=True)
class PaymentOutcome:
    order_number: str
    applied: bool
    payment_status: str
    order_status: str
    transaction_id: str | None = None


@dataclass(frozen=True)
class PaymentInstructions:
    order_id: str
    order_number: str
    amount: float
    payment_method: str


@ordering.command(part_of="Order")
class InitializePayment:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)


@ordering.command(part_of="Order")
class ApplyPaymentSuccess:
    order_number = String(required=True, max_length=40)
    transaction_id = String(required=True, max_length=255)
    gateway_response = Text()  # JSON
    source = String(max_length=20)  # redirect / ipn / status_check


@ordering.command(part_of="Order")
class ApplyPaymentFailure:
    order_number = String(required=True, max_length=40)
    reason = String(max_length=500, default="Payment failed")
    source = String(max_length=20)


def _outcome(order: Order, applied: bool) -> PaymentOutcome:
    return PaymentOutcome(
        order_number=order.order_number,
        applied=applied,
        payment_status=order.payment_status,
        order_status=order.status,
        transaction_id=order.transaction_id,
    )


@ordering.command_handler(part_of=Order)
class OrderPaymentHandler:
    @handle(InitializePayment)
    def initialize_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.request_payment(customer_id=command.actor_id)
        repo.add(order)
        return PaymentInstructions(
            order_id=str(order.id),
            order_number=order.order_number,
            amount=order.pricing.total,
            payment_method=order.payment_method,
        )

    @handle(ApplyPaymentSuccess)
    def apply_payment_success(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.find_by_order_number(command.order_number)

        if order.payment_status in _ALREADY_PAID:
            return self._already_applied(order, command)
        order.assert_awaiting_payment()

        if not repo.claim_payment(
            order.id,
            PaymentStatus.PAID.value,
            transaction_id=command.transaction_id,
        ):
            payment_status, transaction_id = repo.current_payment_state(order.id)
            if payment_status in _ALREADY_PAID:
                logger.info(
                    "Payment claimed concurrently by another entry point",
                    order_number=order.order_number,
                    source=command.source,
                )
                return PaymentOutcome(
                    order_number=order.order_number,
                    applied=False,
                    payment_status=payment_status,
                    order_status=OrderStatus.PAID.value,
                    transaction_id=transaction_id,
                )
            raise ConflictError(
                f"Order #{order.order_number} is no longer awaiting payment",
                payment_status=payment_status,
            )

        lines = order.record_payment_success(command.transaction_id, command.gateway_response)

        try:
            committed = InventoryLedger().commit(lines)
            order.mark_stock_committed(committed)
        except ConflictError as exc:
            # Money is taken; keep what was committed and hand the rest to a human
            order.mark_stock_committed(exc.committed)
            order.flag_stock_reconciliation(exc.message, exc.committed)
            notify_admins(
                order,
                NotificationType.STOCK_CONFLICT,
                f"Order #{order.order_number} was paid but stock could not be committed: {exc.message}",
            )
            logger.error(
                "Stock commit failed after payment",
                order_number=order.order_number,
                committed=exc.committed,
                error=exc.message,
            )

        order.settle_payouts()
        repo.add(order)
        self._clear_cart(order.customer_id)

        logger.info(
            "Payment applied",
            order_number=order.order_number,
            transaction_id=command.transaction_id,
            source=command.source,
        )
        return _outcome(order, applied=True)

    @handle(ApplyPaymentFailure)
    def apply_payment_failure(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.find_by_order_number(command.order_number)

        if order.payment_status != PaymentStatus.PENDING.value or order.status != OrderStatus.PAYMENT_PENDING.value:
            logger.info(
                "Ignoring payment failure for order not awaiting payment",
                order_number=order.order_number,
                payment_status=order.payment_status,
                order_status=order.status,
                source=command.source,
            )
            return _outcome(order, applied=False)

        if not repo.claim_payment(order.id, PaymentStatus.FAILED.value):
            payment_status, transaction_id = repo.current_payment_state(order.id)
            return PaymentOutcome(
                order_number=order.order_number,
                applied=False,
                payment_status=payment_status,
                order_status=order.status,
                transaction_id=transaction_id,
            )

        order.record_payment_failure(command.reason)
        repo.add(order)
        return _outcome(order, applied=True)

    @staticmethod
    def _already_applied(order: Order, command) -> PaymentOutcome:
        if order.transaction_id and order.transaction_id != command.transaction_id:
            logger.warning(
                "Payment already applied with a different transaction id",
                order_number=order.order_number,
                applied_transaction_id=order.transaction_id,
                reported_transaction_id=command.transaction_id,
                source=command.source,
            )
        return _outcome(order, applied=False)

    @staticmethod
    def _clear_cart(customer_id) -> None:
        cart_repo = current_domain.repository_for(Cart)
        try:
            cart = cart_repo.get(customer_id)
        except ObjectNotFoundError:
            return
        if cart.items:
            cart.clear(reason="payment_confirmed")
            cart_repo.add(cart)
