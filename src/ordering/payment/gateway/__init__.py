"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing (the default)
- HttpGateway when MARKETPLACE_GATEWAY=http
"""

from ordering.config import load_settings
from ordering.payment.gateway.fake_adapter import FakeGateway
from ordering.payment.gateway.http_adapter import HttpGateway
from ordering.payment.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    global _current_gateway
    if _current_gateway is None:
        settings = load_settings()
        if settings.gateway_backend == "http":
            _current_gateway = HttpGateway(
                base_url=settings.gateway_base_url,
                store_id=settings.gateway_store_id,
                store_password=settings.gateway_store_password,
                timeout=settings.gateway_timeout,
                max_attempts=settings.gateway_max_attempts,
                backoff=settings.gateway_backoff,
            )
        else:
            _current_gateway = FakeGateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None
