"""Order analytics over a reporting window.

Counts orders by status, sums revenue and builds daily trends plus a
top-products table. When scoped to a vendor, only orders carrying that
vendor's items count, and revenue and products come from those items alone.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from ordering.order.order import Order, OrderStatus
from ordering.shared.pricing import money

PERIODS = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
}
DEFAULT_PERIOD = "30d"
TOP_PRODUCTS_LIMIT = 10


@dataclass(frozen=True)
class DailyTrend:
    date: str  # YYYY-MM-DD
    orders: int
    revenue: float


@dataclass(frozen=True)
class ProductSales:
    product_id: str
    product_name: str
    quantity: int
    revenue: float


@dataclass(frozen=True)
class OrderAnalytics:
    period: str
    start: datetime
    end: datetime
    total_orders: int
    total_revenue: float
    average_order_value: float
    status_counts: dict[str, int]
    daily_trends: list[DailyTrend]
    top_products: list[ProductSales]


def reporting_window(period: str | None, now: datetime | None = None) -> tuple[str, datetime, datetime]:
    """Resolve a period key to ``(period, start, end)``; unknown keys fall back to 30 days."""
    period = period if period in PERIODS else DEFAULT_PERIOD
    end = now or datetime.now(UTC)
    return period, end - PERIODS[period], end


def summarize_orders(
    orders: list[Order],
    period: str,
    start: datetime,
    end: datetime,
    vendor_id: str | None = None,
) -> OrderAnalytics:
    status_counts = {status.value: 0 for status in OrderStatus}
    daily: dict[str, list] = {}
    products: dict[str, dict] = {}
    total_orders = 0
    total_revenue = 0.0

    for order in orders:
        items = [i for i in order.items if vendor_id is None or str(i.vendor_id) == str(vendor_id)]
        if vendor_id is not None and not items:
            continue

        revenue = money(sum(i.total_price for i in items)) if vendor_id is not None else order.pricing.total
        total_orders += 1
        total_revenue += revenue
        status_counts[order.status] = status_counts.get(order.status, 0) + 1

        day = daily.setdefault(order.created_at.date().isoformat(), [0, 0.0])
        day[0] += 1
        day[1] += revenue

        for item in items:
            entry = products.setdefault(
                str(item.product_id),
                {"product_name": item.product_name, "quantity": 0, "revenue": 0.0},
            )
            entry["quantity"] += item.quantity
            entry["revenue"] += item.total_price

    top_products = sorted(
        (
            ProductSales(
                product_id=product_id,
                product_name=entry["product_name"],
                quantity=entry["quantity"],
                revenue=money(entry["revenue"]),
            )
            for product_id, entry in products.items()
        ),
        key=lambda p: (-p.quantity, p.product_id),
    )[:TOP_PRODUCTS_LIMIT]

    return OrderAnalytics(
        period=period,
        start=start,
        end=end,
        total_orders=total_orders,
        total_revenue=money(total_revenue),
        average_order_value=money(total_revenue / total_orders) if total_orders else 0.0,
        status_counts=status_counts,
        daily_trends=[
            DailyTrend(date=date, orders=count, revenue=money(revenue))
            for date, (count, revenue) in sorted(daily.items())
        ],
        top_products=top_products,
    )
