"""Order repository with the payment claim and the listing queries."""

import math
from dataclasses import dataclass
from datetime import datetime

from protean.exceptions import ObjectNotFoundError
from protean.utils.query import Q

from ordering.domain import ordering
from ordering.errors import NotFoundError
from ordering.order.order import Order, OrderStatus, PaymentStatus


@dataclass(frozen=True)
class Page:
    items: list
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@ordering.repository(part_of=Order)
class OrderRepository:
    def find_by_order_number(self, order_number: str) -> Order:
        orders = self._dao.query.filter(order_number=order_number).all().items
        if not orders:
            raise NotFoundError(f"Order {order_number} not found", order_number=order_number)
        # Load through the repository so later changes are tracked by the unit of work
        return self.get(orders[0].id)

    def get_order(self, order_id) -> Order:
        try:
            return self.get(order_id)
        except ObjectNotFoundError:
            raise NotFoundError("Order not found", order_id=str(order_id)) from None

    def claim_payment(self, order_id, new_status: str, **changes) -> bool:
        """Atomically move ``payment_status`` out of ``pending`` for an order awaiting payment.

        This conditional update is the only serialization point between the
        redirect, IPN and status-check entry points. Returns False when another
        caller got there first or the order is no longer awaiting payment.
        """
        criteria = Q(
            id=str(order_id),
            payment_status=PaymentStatus.PENDING.value,
            status=OrderStatus.PAYMENT_PENDING.value,
        )
        updated = self._dao._update_all(criteria, {"payment_status": new_status, **changes})
        return updated == 1

    def current_payment_state(self, order_id) -> tuple[str, str | None]:
        """Payment status and transaction id as stored right now."""
        stored = self._dao.get(order_id)
        return stored.payment_status, stored.transaction_id

    def for_customer(self, customer_id, status: str | None = None, page: int = 1, limit: int = 10) -> Page:
        """One page of a customer's orders, newest first."""
        criteria = {"customer_id": str(customer_id)}
        if status:
            criteria["status"] = status
        return self._page(self._dao.query.filter(**criteria), page, limit)

    def search(
        self,
        status: str | None = None,
        payment_status: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        """Admin listing across all customers, filtered on stored columns."""
        criteria = {}
        if status:
            criteria["status"] = status
        if payment_status:
            criteria["payment_status"] = payment_status
        if created_from:
            criteria["created_at__gte"] = created_from
        if created_to:
            criteria["created_at__lte"] = created_to
        return self._page(self._dao.query.filter(**criteria), page, limit)

    def created_between(self, created_from: datetime, created_to: datetime) -> list[Order]:
        return (
            self._dao.query.filter(created_at__gte=created_from, created_at__lte=created_to)
            .order_by("created_at")
            .limit(None)
            .all()
            .items
        )

    def pending_approval(self) -> list[Order]:
        orders = self._dao.query.filter(status=OrderStatus.PENDING_ADMIN_APPROVAL.value).all().items
        return sorted(orders, key=lambda o: o.created_at)

    def assigned_to_vendor(self, vendor_id) -> list[Order]:
        """Orders with an assignment for ``vendor_id``, newest first."""
        orders = self._dao.query.limit(None).all().items
        matches = [o for o in orders if any(str(a.vendor_id) == str(vendor_id) for a in o.assignments)]
        return sorted(matches, key=lambda o: o.created_at, reverse=True)

    def for_vendor(self, vendor_id, item_status: str | None = None, page: int = 1, limit: int = 10) -> Page:
        """Orders containing ``vendor_id``'s items, newest first.

        ``item_status`` keeps orders where at least one of the vendor's items
        is in that state. Items live inside the aggregate, so the filter runs
        after loading.
        """
        orders = self._dao.query.order_by("-created_at").limit(None).all().items
        matches = [
            o
            for o in orders
            if any(
                str(item.vendor_id) == str(vendor_id) and (not item_status or item.item_status == item_status)
                for item in o.items
            )
        ]
        start = (page - 1) * limit
        return Page(items=matches[start : start + limit], total=len(matches), page=page, limit=limit)

    @staticmethod
    def _page(query, page: int, limit: int) -> Page:
        results = query.order_by("-created_at").offset((page - 1) * limit).limit(limit).all()
        return Page(items=results.items, total=results.total, page=page, limit=limit)
