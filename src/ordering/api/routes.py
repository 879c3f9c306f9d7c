"""FastAPI endpoints for the ordering service."""

import json
from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.api.deps import Actor, current_actor
from ordering.api.schemas import (
    AddToCartRequest,
    AdvanceItemStatusRequest,
    CancelOrderRequest,
    CartItemCheckResponse,
    CartItemCheckView,
    CartResponse,
    CartSummaryResponse,
    CartSummaryView,
    CartView,
    CheckoutResponse,
    CheckoutView,
    InitializePaymentRequest,
    NotesRequest,
    OrderAnalyticsResponse,
    OrderAnalyticsView,
    OrderListResponse,
    OrderPageResponse,
    OrderPageView,
    OrderResponse,
    OrderView,
    PaginationView,
    PaymentInstructionsResponse,
    PaymentInstructionsView,
    PaymentStatusResponse,
    PaymentStatusView,
    PlaceOrderRequest,
    ReasonRequest,
    RefundRequest,
    StatusResponse,
    UpdateCartItemRequest,
    summary_fields,
)
from ordering.cart.items import (
    AddToCart,
    ClearCart,
    RefreshCart,
    RemoveFromCart,
    UpdateCartItem,
    load_or_create_cart,
)
from ordering.catalogue.lookup import get_product_lookup
from ordering.errors import AuthorizationError, ConflictError, GatewayError, NotFoundError
from ordering.order.analytics import reporting_window, summarize_orders
from ordering.order.approval import ApproveOrder, RejectOrder
from ordering.order.cancellation import CancelOrder, RefundOrder
from ordering.order.fulfillment import AdvanceItemStatus
from ordering.order.notifications import MarkNotificationRead
from ordering.order.order import Order
from ordering.order.payment import InitializePayment, PaymentOutcome
from ordering.order.placement import PlaceOrder
from ordering.order.repository import Page
from ordering.order.vendor_response import ConfirmVendorAssignment, RejectVendorAssignment
from ordering.payment.reconciler import PaymentReconciler
from ordering.shared.actor import Role, is_admin, require_role

logger = structlog.get_logger(__name__)

cart_router = APIRouter(prefix="/cart", tags=["cart"])
order_router = APIRouter(prefix="/orders", tags=["orders"])
payment_router = APIRouter(prefix="/payment", tags=["payment"])


def _cart_response(customer_id: str, message: str = "OK") -> CartResponse:
    cart = load_or_create_cart(customer_id)
    return CartResponse(message=message, data=CartView.from_cart(cart))


def _order_response(order_id: str, actor: Actor, message: str = "OK") -> OrderResponse:
    order = current_domain.repository_for(Order).get_order(order_id)
    return OrderResponse(message=message, data=_order_view(order, actor))


def _order_view(order: Order, actor: Actor) -> OrderView:
    # Customers and vendors only see their own notifications
    return OrderView.from_order(order, notifications_for=None if is_admin(actor.role) else actor.id)


def _outcome_response(outcome: PaymentOutcome, message: str) -> PaymentStatusResponse:
    return PaymentStatusResponse(
        message=message,
        data=PaymentStatusView(
            order_number=outcome.order_number,
            payment_status=outcome.payment_status,
            order_status=outcome.order_status,
            transaction_id=outcome.transaction_id,
            applied=outcome.applied,
        ),
    )


def _address_json(address) -> str | None:
    return json.dumps(address.model_dump()) if address is not None else None


def _page_response(page: Page, actor: Actor) -> OrderPageResponse:
    return OrderPageResponse(
        data=OrderPageView(
            orders=[_order_view(order, actor) for order in page.items],
            pagination=PaginationView(current=page.page, pages=page.pages, total=page.total, limit=page.limit),
        )
    )


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


async def _process(command):
    """Run a command off the event loop.

    Handlers call the payment gateway and the notification channel, both of
    which block on network I/O.
    """
    return await run_in_threadpool(current_domain.process, command, asynchronous=False)


async def _callback_payload(request: Request) -> dict:
    """Gateway callbacks arrive form-encoded; JSON is accepted for tooling."""
    if request.headers.get("content-type", "").startswith("application/json"):
        payload = await request.json()
        return payload if isinstance(payload, dict) else {}
    form = await request.form()
    return dict(form)


# --- Cart endpoints ---


@cart_router.get("", response_model=CartResponse)
async def get_cart(actor: Actor = Depends(current_actor)) -> CartResponse:
    await _process(RefreshCart(customer_id=actor.id))
    return _cart_response(actor.id)


@cart_router.get("/summary", response_model=CartSummaryResponse)
async def get_cart_summary(actor: Actor = Depends(current_actor)) -> CartSummaryResponse:
    cart = load_or_create_cart(actor.id)
    return CartSummaryResponse(data=CartSummaryView(**summary_fields(cart)))


@cart_router.get("/check/{product_id}", response_model=CartItemCheckResponse)
async def check_product_in_cart(
    product_id: str, variant: str | None = None, actor: Actor = Depends(current_actor)
) -> CartItemCheckResponse:
    try:
        item = load_or_create_cart(actor.id).line_for(product_id, variant)
    except ValueError:
        raise ValidationError({"variant": ["Variant must be a JSON object"]}) from None
    return CartItemCheckResponse(
        data=CartItemCheckView(
            in_cart=item is not None,
            quantity=item.quantity if item else 0,
            item_id=str(item.id) if item else None,
        )
    )


@cart_router.post("/add", status_code=201, response_model=CartResponse)
async def add_to_cart(body: AddToCartRequest, actor: Actor = Depends(current_actor)) -> CartResponse:
    command = AddToCart(
        customer_id=actor.id,
        product_id=body.product_id,
        quantity=body.quantity,
        variant=json.dumps(body.variant) if body.variant else None,
    )
    await _process(command)
    return _cart_response(actor.id, "Item added to cart")


@cart_router.put("/items/{item_id}", response_model=CartResponse)
async def update_cart_item(
    item_id: str, body: UpdateCartItemRequest, actor: Actor = Depends(current_actor)
) -> CartResponse:
    command = UpdateCartItem(customer_id=actor.id, item_id=item_id, quantity=body.quantity)
    await _process(command)
    return _cart_response(actor.id, "Cart updated")


@cart_router.delete("/items/{item_id}", response_model=CartResponse)
async def remove_cart_item(item_id: str, actor: Actor = Depends(current_actor)) -> CartResponse:
    await _process(RemoveFromCart(customer_id=actor.id, item_id=item_id))
    return _cart_response(actor.id, "Item removed from cart")


@cart_router.delete("", response_model=CartResponse)
async def clear_cart(actor: Actor = Depends(current_actor)) -> CartResponse:
    await _process(ClearCart(customer_id=actor.id))
    return _cart_response(actor.id, "Cart cleared")


@cart_router.post("/checkout", response_model=CheckoutResponse)
async def checkout_cart(actor: Actor = Depends(current_actor)) -> CheckoutResponse:
    """Check every cart line against the catalog and price the would-be order.

    Nothing is stored; ``POST /orders`` places the order.
    """
    require_role(actor.role, Role.CUSTOMER)
    draft = load_or_create_cart(actor.id).checkout(get_product_lookup())
    return CheckoutResponse(message="Cart ready for order", data=CheckoutView.from_draft(draft))


# --- Order endpoints ---
# Static paths are registered before "/{order_id}" so they are matched first.


@order_router.post("", status_code=201, response_model=OrderResponse)
async def place_order(body: PlaceOrderRequest, actor: Actor = Depends(current_actor)) -> OrderResponse:
    require_role(actor.role, Role.CUSTOMER)
    command = PlaceOrder(
        customer_id=actor.id,
        use_cart=True,
        shipping_address=_address_json(body.shipping_address),
        billing_address=_address_json(body.billing_address),
        payment_method=body.payment_method,
        customer_notes=body.customer_notes,
    )
    order_id = await _process(command)
    return _order_response(order_id, actor, "Order placed and awaiting admin approval")


@order_router.get("/my-orders", response_model=OrderPageResponse)
async def my_orders(
    status: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor: Actor = Depends(current_actor),
) -> OrderPageResponse:
    result = current_domain.repository_for(Order).for_customer(actor.id, status=status, page=page, limit=limit)
    return _page_response(result, actor)


@order_router.get("/admin/all", response_model=OrderPageResponse)
async def all_orders(
    status: str | None = None,
    payment_status: str | None = Query(None, alias="paymentStatus"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor: Actor = Depends(current_actor),
) -> OrderPageResponse:
    require_role(actor.role, Role.ADMIN)
    result = current_domain.repository_for(Order).search(
        status=status,
        payment_status=payment_status,
        created_from=_as_utc(start_date),
        created_to=_as_utc(end_date),
        page=page,
        limit=limit,
    )
    return _page_response(result, actor)


@order_router.get("/analytics/overview", response_model=OrderAnalyticsResponse)
async def order_analytics(
    period: str = "30d",
    vendor_id: str | None = Query(None, alias="vendorId"),
    actor: Actor = Depends(current_actor),
) -> OrderAnalyticsResponse:
    require_role(actor.role, Role.ADMIN, Role.VENDOR)
    # Vendors only ever see their own figures
    if not is_admin(actor.role):
        vendor_id = actor.id
    period, start, end = reporting_window(period)
    orders = current_domain.repository_for(Order).created_between(start, end)
    analytics = summarize_orders(orders, period, start, end, vendor_id=vendor_id)
    return OrderAnalyticsResponse(data=OrderAnalyticsView.from_analytics(analytics, vendor_id=vendor_id))


@order_router.get("/admin/pending", response_model=OrderListResponse)
async def pending_orders(actor: Actor = Depends(current_actor)) -> OrderListResponse:
    require_role(actor.role, Role.ADMIN)
    orders = current_domain.repository_for(Order).pending_approval()
    return OrderListResponse(data=[_order_view(order, actor) for order in orders])


@order_router.get("/vendor/assigned", response_model=OrderListResponse)
async def vendor_orders(actor: Actor = Depends(current_actor)) -> OrderListResponse:
    require_role(actor.role, Role.VENDOR)
    orders = current_domain.repository_for(Order).assigned_to_vendor(actor.id)
    return OrderListResponse(data=[_order_view(order, actor) for order in orders])


@order_router.get("/vendor/orders", response_model=OrderPageResponse)
async def vendor_order_history(
    status: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor: Actor = Depends(current_actor),
) -> OrderPageResponse:
    """Orders carrying the vendor's items; ``status`` filters on item status."""
    require_role(actor.role, Role.VENDOR)
    result = current_domain.repository_for(Order).for_vendor(actor.id, item_status=status, page=page, limit=limit)
    return _page_response(result, actor)


@order_router.put("/admin/{order_id}/approve", response_model=OrderResponse)
async def approve_order(
    order_id: str, body: NotesRequest | None = None, actor: Actor = Depends(current_actor)
) -> OrderResponse:
    command = ApproveOrder(
        order_id=order_id,
        actor_id=actor.id,
        actor_role=actor.role,
        notes=body.notes if body else None,
    )
    await _process(command)
    return _order_response(order_id, actor, "Order approved and assigned to vendors")


@order_router.put("/admin/{order_id}/reject", response_model=OrderResponse)
async def reject_order(order_id: str, body: ReasonRequest, actor: Actor = Depends(current_actor)) -> OrderResponse:
    command = RejectOrder(order_id=order_id, actor_id=actor.id, actor_role=actor.role, reason=body.reason)
    await _process(command)
    return _order_response(order_id, actor, "Order rejected")


@order_router.post("/admin/{order_id}/refund", response_model=OrderResponse)
async def refund_order(
    order_id: str, body: RefundRequest | None = None, actor: Actor = Depends(current_actor)
) -> OrderResponse:
    kwargs = {"order_id": order_id, "actor_id": actor.id, "actor_role": actor.role}
    if body is not None and body.amount is not None:
        kwargs["refund_amount"] = body.amount
    if body is not None and body.remarks:
        kwargs["remarks"] = body.remarks
    await _process(RefundOrder(**kwargs))
    return _order_response(order_id, actor, "Refund processed")


@order_router.put("/vendor/{order_id}/confirm", response_model=OrderResponse)
async def confirm_assignment(
    order_id: str, body: NotesRequest | None = None, actor: Actor = Depends(current_actor)
) -> OrderResponse:
    command = ConfirmVendorAssignment(
        order_id=order_id,
        actor_id=actor.id,
        actor_role=actor.role,
        notes=body.notes if body else None,
    )
    all_confirmed = await _process(command)
    message = "All vendors confirmed, awaiting payment" if all_confirmed else "Assignment confirmed"
    return _order_response(order_id, actor, message)


@order_router.put("/vendor/{order_id}/reject", response_model=OrderResponse)
async def reject_assignment(
    order_id: str, body: ReasonRequest, actor: Actor = Depends(current_actor)
) -> OrderResponse:
    command = RejectVendorAssignment(order_id=order_id, actor_id=actor.id, actor_role=actor.role, reason=body.reason)
    await _process(command)
    return _order_response(order_id, actor, "Assignment rejected")


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, actor: Actor = Depends(current_actor)) -> OrderResponse:
    order = current_domain.repository_for(Order).get_order(order_id)
    if not order.is_visible_to(actor.id, actor.role):
        raise AuthorizationError("Not authorized to view this order", order_id=order_id)
    return OrderResponse(data=_order_view(order, actor))


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def advance_item_status(
    order_id: str, body: AdvanceItemStatusRequest, actor: Actor = Depends(current_actor)
) -> OrderResponse:
    command = AdvanceItemStatus(
        order_id=order_id,
        item_id=body.item_id,
        status=body.status,
        tracking_number=body.tracking_number,
        actor_id=actor.id,
        actor_role=actor.role,
    )
    await _process(command)
    return _order_response(order_id, actor, "Item status updated")


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str, body: CancelOrderRequest | None = None, actor: Actor = Depends(current_actor)
) -> OrderResponse:
    command = CancelOrder(
        order_id=order_id,
        actor_id=actor.id,
        actor_role=actor.role,
        reason=body.reason if body else None,
    )
    await _process(command)
    return _order_response(order_id, actor, "Order cancelled")


@order_router.post("/{order_id}/payment", response_model=PaymentInstructionsResponse)
async def initialize_order_payment(order_id: str, actor: Actor = Depends(current_actor)) -> PaymentInstructionsResponse:
    require_role(actor.role, Role.CUSTOMER)
    instructions = await _process(InitializePayment(order_id=order_id, actor_id=actor.id))
    return PaymentInstructionsResponse(
        message="Payment initialized",
        data=PaymentInstructionsView(
            order_id=instructions.order_id,
            order_number=instructions.order_number,
            amount=instructions.amount,
            payment_method=instructions.payment_method,
        ),
    )


@order_router.put("/{order_id}/notifications/{notification_id}/read", response_model=StatusResponse)
async def mark_notification_read(
    order_id: str, notification_id: str, actor: Actor = Depends(current_actor)
) -> StatusResponse:
    command = MarkNotificationRead(order_id=order_id, notification_id=notification_id, actor_id=actor.id)
    await _process(command)
    return StatusResponse(message="Notification marked as read")


# --- Payment endpoints ---


@payment_router.post("/initialize", status_code=201, response_model=OrderResponse)
async def initialize_checkout(
    body: InitializePaymentRequest, actor: Actor = Depends(current_actor)
) -> OrderResponse:
    require_role(actor.role, Role.CUSTOMER)
    items = None
    if not body.use_cart:
        items = json.dumps([item.model_dump() for item in body.items or []])
    command = PlaceOrder(
        customer_id=actor.id,
        use_cart=body.use_cart,
        items=items,
        shipping_address=_address_json(body.shipping_address),
        billing_address=_address_json(body.billing_address),
        payment_method=body.payment_method,
        customer_notes=body.customer_notes,
    )
    order_id = await _process(command)
    return _order_response(order_id, actor, "Order placed and awaiting admin approval")


@payment_router.post("/success", response_model=PaymentStatusResponse)
async def payment_success(request: Request) -> PaymentStatusResponse:
    payload = await _callback_payload(request)
    order_number = payload.get("tran_id")
    validation_id = payload.get("val_id")
    if not order_number or not validation_id:
        raise GatewayError("Callback is missing tran_id or val_id")
    outcome = await run_in_threadpool(PaymentReconciler().handle_redirect_success, order_number, validation_id)
    return _outcome_response(outcome, "Payment successful")


@payment_router.post("/failed", response_model=PaymentStatusResponse)
async def payment_failed(request: Request) -> PaymentStatusResponse:
    payload = await _callback_payload(request)
    order_number = payload.get("tran_id")
    if not order_number:
        raise NotFoundError("Callback is missing tran_id")
    outcome = await run_in_threadpool(PaymentReconciler().handle_redirect_failure, order_number)
    return _outcome_response(outcome, "Payment failed")


@payment_router.post("/cancelled", response_model=PaymentStatusResponse)
async def payment_cancelled(request: Request) -> PaymentStatusResponse:
    payload = await _callback_payload(request)
    order_number = payload.get("tran_id")
    if not order_number:
        raise NotFoundError("Callback is missing tran_id")
    outcome = await run_in_threadpool(PaymentReconciler().handle_redirect_failure, order_number, cancelled=True)
    return _outcome_response(outcome, "Payment cancelled")


@payment_router.post("/ipn", response_class=PlainTextResponse)
async def payment_ipn(request: Request) -> PlainTextResponse:
    """Gateway webhook. A 500 asks the gateway to redeliver."""
    payload = await _callback_payload(request)
    order_number = payload.get("tran_id")
    if not order_number:
        logger.warning("IPN without tran_id", payload_keys=sorted(payload))
        return PlainTextResponse("ERROR", status_code=500)

    try:
        await run_in_threadpool(
            PaymentReconciler().handle_ipn, order_number, payload.get("val_id"), payload.get("status", "")
        )
    except GatewayError as exc:
        logger.warning("IPN validation failed", order_number=order_number, error=exc.message)
        return PlainTextResponse("ERROR", status_code=500)
    except (ConflictError, NotFoundError) as exc:
        # Redelivery cannot change the outcome
        logger.warning("IPN ignored", order_number=order_number, error=exc.message)
        return PlainTextResponse("OK")
    except Exception:
        logger.exception("IPN processing failed", order_number=order_number)
        return PlainTextResponse("ERROR", status_code=500)
    return PlainTextResponse("OK")


@payment_router.get("/validate/{order_number}", response_model=PaymentStatusResponse)
async def validate_payment(order_number: str, actor: Actor = Depends(current_actor)) -> PaymentStatusResponse:
    order = current_domain.repository_for(Order).find_by_order_number(order_number)
    if not is_admin(actor.role) and str(order.customer_id) != actor.id:
        raise AuthorizationError("Not authorized to view this payment", order_number=order_number)
    return PaymentStatusResponse(
        data=PaymentStatusView(
            order_number=order.order_number,
            payment_status=order.payment_status,
            order_status=order.status,
            total=order.pricing.total,
            transaction_id=order.transaction_id,
        )
    )


@payment_router.post("/admin/{order_number}/check", response_model=PaymentStatusResponse)
async def check_payment(order_number: str, actor: Actor = Depends(current_actor)) -> PaymentStatusResponse:
    require_role(actor.role, Role.ADMIN)
    outcome = await run_in_threadpool(PaymentReconciler().handle_status_check, order_number)
    return _outcome_response(outcome, "Payment status reconciled")
