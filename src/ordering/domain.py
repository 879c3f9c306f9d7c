"""Ordering bounded context: carts, the order workflow, inventory and payments.

Cart staging, the order state machine, the inventory ledger, payment
reconciliation and vendor payouts live in one domain so that a payment
confirmation, its stock commit and the cart clean-up share a single unit of
work.
"""

import structlog
from protean.domain import Domain

from ordering.utils.logging import configure_logging

# Configure logging for the application
configure_logging()

logger = structlog.get_logger(__name__)

# Domain Composition Root
ordering = Domain(name="ordering")
