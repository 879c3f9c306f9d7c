"""Payment reconciliation across the gateway's entry points.

The customer's browser redirect, the gateway's IPN webhook and an admin's
status check can all report the same payment, in any order and
concurrently. Each entry point validates with the gateway first, outside
any unit of work, and then hands a validated result to the order's payment
commands, which apply it at most once.

A gateway failure (timeout, transport error, or a payment the gateway will
not vouch for) raises ``GatewayError`` before anything is written, so the
order stays ``payment_pending`` and a later callback can still succeed.

Failure reports are unauthenticated. An IPN that does not say ``VALID`` is
logged and ignored, and a redirect to the fail or cancel page only cancels
the order once the gateway confirms it holds no valid payment for it.
"""

import structlog
from protean.utils.globals import current_domain

from ordering.errors import GatewayError
from ordering.order.order import Order
from ordering.order.payment import ApplyPaymentFailure, ApplyPaymentSuccess, PaymentOutcome
from ordering.payment.gateway import get_gateway
from ordering.payment.gateway.port import VALID_STATUSES, PaymentGateway, ValidationResult
from ordering.shared.pricing import amounts_match

logger = structlog.get_logger(__name__)

SOURCE_REDIRECT = "redirect"
SOURCE_IPN = "ipn"
SOURCE_STATUS_CHECK = "status_check"


class PaymentReconciler:
    def __init__(self, gateway: PaymentGateway | None = None) -> None:
        self._gateway = gateway

    @property
    def gateway(self) -> PaymentGateway:
        return self._gateway or get_gateway()

    def handle_redirect_success(self, order_number: str, validation_id: str) -> PaymentOutcome:
        """Customer came back from the gateway's success page."""
        validation = self.gateway.validate(validation_id)
        return self._apply_validated(order_number, validation, SOURCE_REDIRECT)

    def handle_redirect_failure(self, order_number: str, cancelled: bool = False) -> PaymentOutcome:
        """Customer came back from the gateway's fail or cancel page.

        The gateway is asked for the order's transaction first. If it holds a
        valid payment, that payment is applied instead of the failure.
        """
        validation = self.gateway.query_transaction(order_number)
        if validation.valid:
            logger.warning(
                "Failure redirect for an order the gateway reports as paid",
                order_number=order_number,
                transaction_id=validation.transaction_id,
            )
            return self._apply_validated(order_number, validation, SOURCE_REDIRECT)

        reason = "Payment cancelled by customer" if cancelled else "Payment failed at gateway"
        return current_domain.process(
            ApplyPaymentFailure(order_number=order_number, reason=reason, source=SOURCE_REDIRECT),
            asynchronous=False,
        )

    def handle_ipn(self, order_number: str, validation_id: str | None, status: str) -> PaymentOutcome:
        """Asynchronous notification from the gateway."""
        status = (status or "").upper()
        if status not in VALID_STATUSES:
            logger.info("Ignoring IPN without a valid status", order_number=order_number, ipn_status=status)
            order = current_domain.repository_for(Order).find_by_order_number(order_number)
            return PaymentOutcome(
                order_number=order.order_number,
                applied=False,
                payment_status=order.payment_status,
                order_status=order.status,
                transaction_id=order.transaction_id,
            )
        if not validation_id:
            raise GatewayError("IPN did not carry a validation id", order_number=order_number)

        validation = self.gateway.validate(validation_id)
        return self._apply_validated(order_number, validation, SOURCE_IPN)

    def handle_status_check(self, order_number: str) -> PaymentOutcome:
        """Admin asks the gateway directly whether an order was paid."""
        validation = self.gateway.query_transaction(order_number)
        return self._apply_validated(order_number, validation, SOURCE_STATUS_CHECK)

    def _apply_validated(self, order_number: str, validation: ValidationResult, source: str) -> PaymentOutcome:
        if not validation.valid:
            logger.warning(
                "Gateway did not validate payment",
                order_number=order_number,
                gateway_status=validation.status,
                source=source,
            )
            raise GatewayError(
                "Payment validation failed",
                order_number=order_number,
                gateway_status=validation.status,
            )
        if validation.order_number and validation.order_number != order_number:
            raise GatewayError(
                "Validated payment belongs to a different order",
                order_number=order_number,
                validated_order_number=validation.order_number,
            )

        order = current_domain.repository_for(Order).find_by_order_number(order_number)
        if validation.amount is not None and not amounts_match(validation.amount, order.pricing.total):
            logger.warning(
                "Validated amount differs from order total",
                order_number=order_number,
                validated_amount=validation.amount,
                order_total=order.pricing.total,
                source=source,
            )
            raise GatewayError(
                "Validated amount does not match the order total",
                order_number=order_number,
                validated_amount=validation.amount,
                order_total=order.pricing.total,
            )

        return current_domain.process(
            ApplyPaymentSuccess(
                order_number=order_number,
                transaction_id=validation.transaction_id,
                gateway_response=validation.raw,
                source=source,
            ),
            asynchronous=False,
        )
