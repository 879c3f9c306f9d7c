"""Payment gateway port (abstract interface).

The workflow needs three things from the provider: validate a payment the
customer was redirected back with, look up a transaction by order number,
and refund. ``FakeGateway`` serves development and tests, ``HttpGateway``
talks to the hosted gateway.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

VALID_STATUSES = frozenset({"VALID", "VALIDATED"})


@dataclass(frozen=True)
class ValidationResult:
    """The gateway's verdict on a payment.

    ``order_number`` is the gateway's ``tran_id`` and ``transaction_id`` the
    validation id the payment is keyed by.
    """

    valid: bool
    status: str
    order_number: str | None = None
    transaction_id: str | None = None
    bank_transaction_id: str | None = None
    amount: float | None = None
    raw: str | None = None  # JSON as received


@dataclass(frozen=True)
class RefundResult:
    success: bool
    refund_reference: str | None = None
    status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    def validate(self, validation_id: str) -> ValidationResult:
        """Validate a payment by the id the gateway handed to the redirect or IPN."""
        ...

    @abstractmethod
    def query_transaction(self, order_number: str) -> ValidationResult:
        """Look up the latest transaction the gateway holds for an order."""
        ...

    @abstractmethod
    def refund(
        self,
        bank_transaction_id: str,
        amount: float,
        remarks: str,
        reference: str,
    ) -> RefundResult:
        """Refund (part of) a captured payment."""
        ...
