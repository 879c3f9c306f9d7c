"""HTTP adapter for the hosted payment gateway (SSLCommerz-style validator API).

Every call carries a timeout. Validation and transaction queries are
read-only and retried with exponential backoff; refunds are sent once.
Transport errors, timeouts and 5xx answers surface as ``GatewayError``.
"""

import json
import time

import requests
import structlog

from ordering.errors import GatewayError
from ordering.payment.gateway.port import VALID_STATUSES, PaymentGateway, RefundResult, ValidationResult

logger = structlog.get_logger(__name__)

VALIDATION_PATH = "/validator/api/validationserverAPI.php"
TRANSACTION_QUERY_PATH = "/validator/api/merchantTransIDvalidationAPI.php"


class HttpGateway(PaymentGateway):
    def __init__(
        self,
        base_url: str,
        store_id: str,
        store_password: str,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff: float = 0.5,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.store_id = store_id
        self.store_password = store_password
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.session = session or requests.Session()

    def validate(self, validation_id: str) -> ValidationResult:
        body = self._get(VALIDATION_PATH, {"val_id": validation_id}, retry=True)
        return self._to_result(body, fallback_transaction_id=validation_id)

    def query_transaction(self, order_number: str) -> ValidationResult:
        body = self._get(TRANSACTION_QUERY_PATH, {"tran_id": order_number}, retry=True)
        elements = body.get("element") or []
        match = next((e for e in elements if str(e.get("status", "")).upper() in VALID_STATUSES), None)
        if match is None:
            status = elements[0].get("status", "NOT_FOUND") if elements else body.get("APIConnect", "NOT_FOUND")
            return ValidationResult(valid=False, status=str(status), order_number=order_number, raw=json.dumps(body))
        return self._to_result(match)

    def refund(self, bank_transaction_id: str, amount: float, remarks: str, reference: str) -> RefundResult:
        body = self._get(
            TRANSACTION_QUERY_PATH,
            {
                "bank_tran_id": bank_transaction_id,
                "refund_amount": f"{amount:.2f}",
                "refund_remarks": remarks,
                "refe_id": reference,
            },
            retry=False,
        )
        status = str(body.get("status", "")).lower()
        if status == "success":
            return RefundResult(success=True, refund_reference=body.get("refund_ref_id"), status=status)
        return RefundResult(success=False, status=status or None, failure_reason=body.get("errorReason"))

    def _get(self, path: str, params: dict, retry: bool) -> dict:
        params = {**params, "store_id": self.store_id, "store_passwd": self.store_password, "format": "json"}
        attempts = self.max_attempts if retry else 1
        url = f"{self.base_url}{path}"

        for attempt in range(1, attempts + 1):
            try:
                response = self.session.get(url, params=params, timeout=self.timeout)
                if response.status_code >= 500:
                    raise requests.HTTPError(f"Gateway answered {response.status_code}", response=response)
                response.raise_for_status()
                return response.json()
            except (requests.RequestException, ValueError) as exc:
                logger.warning("Payment gateway call failed", path=path, attempt=attempt, error=str(exc))
                if attempt == attempts:
                    raise GatewayError("Payment gateway unavailable", path=path, attempts=attempts) from exc
                time.sleep(self.backoff * (2 ** (attempt - 1)))

    @staticmethod
    def _to_result(body: dict, fallback_transaction_id: str | None = None) -> ValidationResult:
        status = str(body.get("status", "")).upper()
        amount = body.get("amount")
        return ValidationResult(
            valid=status in VALID_STATUSES,
            status=status or "UNKNOWN",
            order_number=body.get("tran_id"),
            transaction_id=body.get("val_id") or fallback_transaction_id,
            bank_transaction_id=body.get("bank_tran_id"),
            amount=float(amount) if amount not in (None, "") else None,
            raw=json.dumps(body),
        )
