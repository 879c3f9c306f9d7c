"""Pydantic request/response schemas for the ordering API.

These are the external contract (camelCase JSON), kept separate from the
Protean commands and aggregates they are translated to and from.
"""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ordering.shared.pricing import MAX_LINE_QUANTITY


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(CamelModel):
    full_name: str
    email: str | None = None
    phone: str
    address: str
    city: str
    state: str | None = None
    zip_code: str | None = None
    country: str = "Bangladesh"


class RequestedItemSchema(CamelModel):
    product_id: str
    quantity: int = Field(ge=1, le=MAX_LINE_QUANTITY, default=1)
    variant: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Cart requests
# ---------------------------------------------------------------------------
class AddToCartRequest(CamelModel):
    product_id: str
    quantity: int = Field(ge=1, le=MAX_LINE_QUANTITY, default=1)
    variant: dict[str, Any] | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={"examples": [{"productId": "prod-001", "quantity": 2, "variant": {"size": "M"}}]},
    )


class UpdateCartItemRequest(CamelModel):
    quantity: int = Field(ge=1, le=MAX_LINE_QUANTITY)


# ---------------------------------------------------------------------------
# Order requests
# ---------------------------------------------------------------------------
class PlaceOrderRequest(CamelModel):
    shipping_address: AddressSchema
    billing_address: AddressSchema | None = None
    payment_method: str | None = None
    customer_notes: str | None = None


class InitializePaymentRequest(PlaceOrderRequest):
    use_cart: bool = True
    items: list[RequestedItemSchema] | None = None


class NotesRequest(CamelModel):
    notes: str | None = None


class ReasonRequest(CamelModel):
    reason: str


class CancelOrderRequest(CamelModel):
    reason: str | None = None


class AdvanceItemStatusRequest(CamelModel):
    item_id: str
    status: str
    tracking_number: str | None = None


class RefundRequest(CamelModel):
    amount: float | None = Field(default=None, gt=0)
    remarks: str | None = None


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------
class CartItemView(CamelModel):
    id: str
    product_id: str
    product_name: str
    image_url: str | None = None
    vendor_id: str
    variant: dict[str, Any] = {}
    quantity: int
    unit_price: float
    total_price: float
    is_available: bool


class CartSummaryView(CamelModel):
    subtotal: float
    tax: float
    shipping_cost: float
    service_charge: float
    discount: float
    total: float
    item_count: int


class CartView(CartSummaryView):
    customer_id: str
    items: list[CartItemView]

    @classmethod
    def from_cart(cls, cart) -> "CartView":
        return cls(
            customer_id=str(cart.customer_id),
            items=[
                CartItemView(
                    id=str(item.id),
                    product_id=str(item.product_id),
                    product_name=item.product_name,
                    image_url=item.image_url,
                    vendor_id=str(item.vendor_id),
                    variant=json.loads(item.variant) if item.variant else {},
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    is_available=item.is_available,
                )
                for item in cart.items
            ],
            **summary_fields(cart),
        )


def summary_fields(cart) -> dict:
    return {
        "subtotal": cart.subtotal or 0.0,
        "tax": cart.tax or 0.0,
        "shipping_cost": cart.shipping_cost or 0.0,
        "service_charge": cart.service_charge or 0.0,
        "discount": cart.discount or 0.0,
        "total": cart.total or 0.0,
        "item_count": cart.item_count or 0,
    }


class OrderItemView(CamelModel):
    id: str
    product_id: str
    vendor_id: str
    product_name: str
    variant: dict[str, Any] = {}
    quantity: int
    unit_price: float
    total_price: float
    item_status: str
    tracking_number: str | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None


class AssignmentView(CamelModel):
    vendor_id: str
    item_ids: list[str]
    assignment_status: str
    assigned_at: datetime | None = None
    responded_at: datetime | None = None
    rejection_reason: str | None = None


class NotificationView(CamelModel):
    id: str
    type: str
    recipient_id: str
    recipient_role: str
    message: str
    is_read: bool
    sent_at: datetime | None = None


class PayoutView(CamelModel):
    vendor_id: str
    amount: float
    commission: float
    service_charge: float
    net_amount: float
    payout_status: str


class PricingView(CamelModel):
    subtotal: float
    tax: float
    shipping_cost: float
    service_charge: float
    discount: float
    total: float


class PaymentView(CamelModel):
    method: str
    status: str
    transaction_id: str | None = None
    paid_at: datetime | None = None
    refund_amount: float | None = None
    refunded_at: datetime | None = None


class OrderView(CamelModel):
    id: str
    order_number: str
    customer_id: str
    status: str
    items: list[OrderItemView]
    pricing: PricingView
    shipping_address: AddressSchema
    billing_address: AddressSchema
    payment: PaymentView
    admin_approval_status: str
    vendor_assignments: list[AssignmentView]
    notifications: list[NotificationView]
    vendor_payouts: list[PayoutView]
    customer_notes: str | None = None
    admin_notes: str | None = None
    vendor_notes: str | None = None
    cancellation_reason: str | None = None
    stock_reconciliation_required: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_order(cls, order, notifications_for: str | None = None) -> "OrderView":
        """Render an order; ``notifications_for`` limits the log to one recipient."""
        notifications = order.notifications if notifications_for is None else order.notifications_for(notifications_for)
        return cls(
            id=str(order.id),
            order_number=order.order_number,
            customer_id=str(order.customer_id),
            status=order.status,
            items=[
                OrderItemView(
                    id=str(item.id),
                    product_id=str(item.product_id),
                    vendor_id=str(item.vendor_id),
                    product_name=item.product_name,
                    variant=json.loads(item.variant) if item.variant else {},
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    item_status=item.item_status,
                    tracking_number=item.tracking_number,
                    shipped_at=item.shipped_at,
                    delivered_at=item.delivered_at,
                )
                for item in order.items
            ],
            pricing=PricingView(
                subtotal=order.pricing.subtotal,
                tax=order.pricing.tax,
                shipping_cost=order.pricing.shipping_cost,
                service_charge=order.pricing.service_charge,
                discount=order.pricing.discount,
                total=order.pricing.total,
            ),
            shipping_address=_address(order.shipping_address),
            billing_address=_address(order.billing_address),
            payment=PaymentView(
                method=order.payment_method,
                status=order.payment_status,
                transaction_id=order.transaction_id,
                paid_at=order.paid_at,
                refund_amount=order.refund_amount,
                refunded_at=order.refunded_at,
            ),
            admin_approval_status=order.admin_approval.status if order.admin_approval else "pending",
            vendor_assignments=[
                AssignmentView(
                    vendor_id=str(a.vendor_id),
                    item_ids=a.item_id_list,
                    assignment_status=a.assignment_status,
                    assigned_at=a.assigned_at,
                    responded_at=a.responded_at,
                    rejection_reason=a.rejection_reason,
                )
                for a in order.assignments
            ],
            notifications=[
                NotificationView(
                    id=str(n.id),
                    type=n.notification_type,
                    recipient_id=str(n.recipient_id),
                    recipient_role=n.recipient_role,
                    message=n.message,
                    is_read=n.is_read,
                    sent_at=n.sent_at,
                )
                for n in notifications
            ],
            vendor_payouts=[
                PayoutView(
                    vendor_id=str(p.vendor_id),
                    amount=p.amount,
                    commission=p.commission,
                    service_charge=p.service_charge,
                    net_amount=p.net_amount,
                    payout_status=p.payout_status,
                )
                for p in order.vendor_payouts
            ],
            customer_notes=order.customer_notes,
            admin_notes=order.admin_notes,
            vendor_notes=order.vendor_notes,
            cancellation_reason=order.cancellation_reason,
            stock_reconciliation_required=bool(order.stock_reconciliation_required),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


def _address(address) -> AddressSchema:
    return AddressSchema(
        full_name=address.full_name,
        email=address.email,
        phone=address.phone,
        address=address.address,
        city=address.city,
        state=address.state,
        zip_code=address.zip_code,
        country=address.country,
    )


class PaginationView(CamelModel):
    current: int
    pages: int
    total: int
    limit: int


class OrderPageView(CamelModel):
    orders: list[OrderView]
    pagination: PaginationView


class CartItemCheckView(CamelModel):
    in_cart: bool
    quantity: int = 0
    item_id: str | None = None


class CheckoutLineView(CamelModel):
    product_id: str
    product_name: str
    image_url: str | None = None
    vendor_id: str
    variant: dict[str, Any] = {}
    quantity: int
    unit_price: float
    total_price: float


class CheckoutView(CamelModel):
    items: list[CheckoutLineView]
    summary: PricingView

    @classmethod
    def from_draft(cls, draft) -> "CheckoutView":
        return cls(
            items=[
                CheckoutLineView(
                    product_id=line.product_id,
                    product_name=line.product_name,
                    image_url=line.image_url,
                    vendor_id=line.vendor_id,
                    variant=json.loads(line.variant) if line.variant else {},
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total_price=line.total_price,
                )
                for line in draft.lines
            ],
            summary=PricingView(
                subtotal=draft.subtotal,
                tax=draft.tax,
                shipping_cost=draft.shipping_cost,
                service_charge=draft.service_charge,
                discount=draft.discount,
                total=draft.total,
            ),
        )


class DailyTrendView(CamelModel):
    date: str
    orders: int
    revenue: float


class ProductSalesView(CamelModel):
    product_id: str
    product_name: str
    quantity: int
    revenue: float


class AnalyticsOverviewView(CamelModel):
    total_orders: int
    total_revenue: float
    average_order_value: float
    status_counts: dict[str, int]


class OrderAnalyticsView(CamelModel):
    period: str
    start: datetime
    end: datetime
    vendor_id: str | None = None
    overview: AnalyticsOverviewView
    daily_trends: list[DailyTrendView]
    top_products: list[ProductSalesView]

    @classmethod
    def from_analytics(cls, analytics, vendor_id: str | None = None) -> "OrderAnalyticsView":
        return cls(
            period=analytics.period,
            start=analytics.start,
            end=analytics.end,
            vendor_id=vendor_id,
            overview=AnalyticsOverviewView(
                total_orders=analytics.total_orders,
                total_revenue=analytics.total_revenue,
                average_order_value=analytics.average_order_value,
                status_counts=analytics.status_counts,
            ),
            daily_trends=[DailyTrendView(date=d.date, orders=d.orders, revenue=d.revenue) for d in analytics.daily_trends],
            top_products=[
                ProductSalesView(
                    product_id=p.product_id,
                    product_name=p.product_name,
                    quantity=p.quantity,
                    revenue=p.revenue,
                )
                for p in analytics.top_products
            ],
        )


class PaymentStatusView(CamelModel):
    order_number: str
    payment_status: str
    order_status: str
    total: float | None = None
    transaction_id: str | None = None
    applied: bool | None = None


class PaymentInstructionsView(CamelModel):
    order_id: str
    order_number: str
    amount: float
    payment_method: str


# ---------------------------------------------------------------------------
# Response envelopes
# ---------------------------------------------------------------------------
class StatusResponse(CamelModel):
    success: bool = True
    message: str = "OK"


class CartResponse(StatusResponse):
    data: CartView


class CartSummaryResponse(StatusResponse):
    data: CartSummaryView


class OrderResponse(StatusResponse):
    data: OrderView


class OrderListResponse(StatusResponse):
    data: list[OrderView]


class PaymentStatusResponse(StatusResponse):
    data: PaymentStatusView


class PaymentInstructionsResponse(StatusResponse):
    data: PaymentInstructionsView


class OrderPageResponse(StatusResponse):
    data: OrderPageView


class CartItemCheckResponse(StatusResponse):
    data: CartItemCheckView


class CheckoutResponse(StatusResponse):
    data: CheckoutView


class OrderAnalyticsResponse(StatusResponse):
    data: OrderAnalyticsView
