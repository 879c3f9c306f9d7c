"""Error taxonomy for the ordering service.

Input problems are reported with ``protean.exceptions.ValidationError``
(the same type aggregates raise from field validation). Everything else a
caller can hit derives from ``MarketplaceError`` and carries the HTTP status
the API layer answers with.
"""


class MarketplaceError(Exception):
    """Base class for workflow errors surfaced to callers."""

    status_code = 400
    error_type = "MarketplaceError"

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"type": self.error_type}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(MarketplaceError):
    status_code = 404
    error_type = "NotFoundError"


class AuthorizationError(MarketplaceError):
    """The actor's role or ownership does not permit the action."""

    status_code = 403
    error_type = "AuthorizationError"


class ConflictError(MarketplaceError):
    """Illegal state transition, stock underflow or a lost race.

    ``committed`` is populated by the inventory ledger when a batch was
    partially applied before the failing line.
    """

    status_code = 400
    error_type = "ConflictError"

    def __init__(self, message: str, committed: list[str] | None = None, **details) -> None:
        super().__init__(message, **details)
        self.committed = list(committed or [])


class GatewayError(MarketplaceError):
    """The payment provider failed, timed out or refused to validate."""

    status_code = 502
    error_type = "GatewayError"
