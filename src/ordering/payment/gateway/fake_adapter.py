"""Configurable fake payment gateway for development and testing.

Payments the fake should recognise are registered with ``register_payment``;
``validate`` and ``query_transaction`` answer from that table. Behaviour can
be switched at runtime to decline validation, decline refunds or time out.
"""

import json
from uuid import uuid4

from ordering.errors import GatewayError
from ordering.payment.gateway.port import PaymentGateway, RefundResult, ValidationResult


class FakeGateway(PaymentGateway):
    def __init__(self) -> None:
        self.payments: dict[str, dict] = {}
        self.should_validate: bool = True
        self.should_refund: bool = True
        self.should_time_out: bool = False
        self.failure_reason: str = "Refund declined"
        self.calls: list[dict] = []

    def configure(
        self,
        should_validate: bool = True,
        should_refund: bool = True,
        should_time_out: bool = False,
        failure_reason: str = "Refund declined",
    ) -> None:
        self.should_validate = should_validate
        self.should_refund = should_refund
        self.should_time_out = should_time_out
        self.failure_reason = failure_reason

    def register_payment(self, order_number: str, transaction_id: str, amount: float) -> None:
        """Make the fake aware of a payment, as if the customer had paid."""
        self.payments[transaction_id] = {
            "tran_id": order_number,
            "val_id": transaction_id,
            "bank_tran_id": f"bank_{transaction_id}",
            "amount": amount,
        }

    def validate(self, validation_id: str) -> ValidationResult:
        self.calls.append({"method": "validate", "validation_id": validation_id})
        self._maybe_time_out()

        payment = self.payments.get(validation_id)
        if payment is None or not self.should_validate:
            return ValidationResult(valid=False, status="INVALID_TRANSACTION", transaction_id=validation_id)
        return self._result(payment)

    def query_transaction(self, order_number: str) -> ValidationResult:
        self.calls.append({"method": "query_transaction", "order_number": order_number})
        self._maybe_time_out()

        payment = next((p for p in self.payments.values() if p["tran_id"] == order_number), None)
        if payment is None or not self.should_validate:
            return ValidationResult(valid=False, status="NOT_FOUND", order_number=order_number)
        return self._result(payment)

    def refund(self, bank_transaction_id: str, amount: float, remarks: str, reference: str) -> RefundResult:
        self.calls.append(
            {
                "method": "refund",
                "bank_transaction_id": bank_transaction_id,
                "amount": amount,
                "remarks": remarks,
                "reference": reference,
            }
        )
        self._maybe_time_out()

        if self.should_refund:
            return RefundResult(success=True, refund_reference=f"fake_ref_{uuid4().hex[:12]}", status="success")
        return RefundResult(success=False, status="failed", failure_reason=self.failure_reason)

    def calls_to(self, method: str) -> list[dict]:
        return [c for c in self.calls if c["method"] == method]

    def _maybe_time_out(self) -> None:
        if self.should_time_out:
            raise GatewayError("Payment gateway timed out")

    @staticmethod
    def _result(payment: dict) -> ValidationResult:
        return ValidationResult(
            valid=True,
            status="VALID",
            order_number=payment["tran_id"],
            transaction_id=payment["val_id"],
            bank_transaction_id=payment["bank_tran_id"],
            amount=payment["amount"],
            raw=json.dumps({**payment, "status": "VALID"}),
        )
