"""Inventory ledger: the atomic stock adjustments behind payment, cancellation and refund.

``commit`` consumes stock when an order is paid and ``release`` puts it
back on cancellation or refund. Each line is applied on its own with a
conditional update against the counters that were just read, so two
concurrent commits on the same product serialize in storage instead of
overselling. Batches are not atomic: when a line cannot be committed the
lines before it stay committed and are reported on the ``ConflictError``.
"""

from collections.abc import Iterable
from dataclasses import dataclass

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.catalogue.product import Product
from ordering.errors import ConflictError
from ordering.shared.pricing import money

logger = structlog.get_logger(__name__)

MAX_CAS_ATTEMPTS = 5


@dataclass(frozen=True)
class LedgerLine:
    item_id: str
    product_id: str
    quantity: int
    line_total: float


class InventoryLedger:
    def __init__(self, repository=None) -> None:
        self._repository = repository

    @property
    def repository(self):
        if self._repository is None:
            self._repository = current_domain.repository_for(Product)
        return self._repository

    def commit(self, lines: Iterable[LedgerLine]) -> list[str]:
        """Decrement stock and bump sales counters for every line.

        Returns the item ids that were committed. Raises ConflictError on the
        first line that would drive stock below zero.
        """
        committed: list[str] = []
        for line in lines:
            try:
                self._commit_line(line)
            except ConflictError as exc:
                logger.warning(
                    "Stock commit stopped part way through batch",
                    item_id=line.item_id,
                    product_id=line.product_id,
                    committed=committed,
                )
                raise ConflictError(exc.message, committed=committed, **exc.details) from exc
            committed.append(line.item_id)
        return committed

    def release(self, lines: Iterable[LedgerLine]) -> list[str]:
        """Restore stock and roll back sales counters. Returns released item ids."""
        released: list[str] = []
        for line in lines:
            if self._release_line(line):
                released.append(line.item_id)
        return released

    def _commit_line(self, line: LedgerLine) -> None:
        for _ in range(MAX_CAS_ATTEMPTS):
            try:
                product = self.repository.read(line.product_id)
            except ObjectNotFoundError:
                raise ConflictError(
                    f"Product for item {line.item_id} no longer exists",
                    item_id=line.item_id,
                    product_id=line.product_id,
                ) from None

            quantity = product.quantity
            if product.track_quantity:
                if product.quantity < line.quantity:
                    raise ConflictError(
                        f"Insufficient stock for item {line.item_id}: "
                        f"requested {line.quantity}, available {product.quantity}",
                        item_id=line.item_id,
                        product_id=line.product_id,
                        requested=line.quantity,
                        available=product.quantity,
                    )
                quantity = product.quantity - line.quantity

            if self.repository.compare_and_set_stock(
                product,
                quantity=quantity,
                sales_count=product.sales_count + line.quantity,
                total_sales=money(product.total_sales + line.line_total),
            ):
                if product.track_quantity and quantity <= product.low_stock_threshold:
                    logger.warning(
                        "Product stock is low",
                        product_id=line.product_id,
                        quantity=quantity,
                        threshold=product.low_stock_threshold,
                    )
                return

        raise ConflictError(
            f"Stock for item {line.item_id} kept changing concurrently",
            item_id=line.item_id,
            product_id=line.product_id,
        )

    def _release_line(self, line: LedgerLine) -> bool:
        for _ in range(MAX_CAS_ATTEMPTS):
            try:
                product = self.repository.read(line.product_id)
            except ObjectNotFoundError:
                logger.warning(
                    "Cannot release stock for a product that no longer exists",
                    item_id=line.item_id,
                    product_id=line.product_id,
                )
                return False

            quantity = product.quantity + line.quantity if product.track_quantity else product.quantity
            if self.repository.compare_and_set_stock(
                product,
                quantity=quantity,
                sales_count=max(0, product.sales_count - line.quantity),
                total_sales=max(0.0, money(product.total_sales - line.line_total)),
            ):
                return True

        raise ConflictError(
            f"Stock for item {line.item_id} kept changing concurrently",
            item_id=line.item_id,
            product_id=line.product_id,
        )
