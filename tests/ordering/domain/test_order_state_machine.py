"""Tests for the order state machine: status derivation and transition guards."""

import pytest
from ordering.cart.draft import DraftLine, OrderDraft
from ordering.errors import AuthorizationError, ConflictError
from ordering.order.events import OrderDelivered, OrderRefunded
from ordering.order.order import (
    _VALID_TRANSITIONS,
    ItemStatus,
    Order,
    OrderStatus,
    PaymentStatus,
    derive_order_status,
)
from protean.exceptions import ValidationError

ADDRESS = {"full_name": "Rahim Uddin", "phone": "01700000000", "address": "12 Lake Road", "city": "Dhaka"}


def _make_order(vendors=("vendor-a",)):
    lines = [DraftLine(f"prod-{i}", f"Product {i}", v, "{}", 2, 100.0) for i, v in enumerate(vendors, start=1)]
    return Order.place(customer_id="cust-001", draft=OrderDraft.from_lines(lines), shipping_address=ADDRESS)


def _order_at_state(target_status, vendors=("vendor-a",)):
    """Create an order and advance it to the desired state."""
    order = _make_order(vendors)
    if target_status == OrderStatus.PENDING_ADMIN_APPROVAL:
        return order

    order.approve("admin-001")
    if target_status == OrderStatus.VENDOR_ASSIGNED:
        return order

    for vendor_id in vendors:
        order.confirm_vendor_assignment(vendor_id)
    if target_status == OrderStatus.VENDOR_CONFIRMED:
        return order

    order.request_payment("cust-001")
    if target_status == OrderStatus.PAYMENT_PENDING:
        return order

    order.record_payment_success("TX1")
    if target_status == OrderStatus.PAID:
        return order

    for item in order.items:
        order.advance_item_status(item.id, "processing", item.vendor_id, "vendor")
    if target_status == OrderStatus.PROCESSING:
        return order

    for item in order.items:
        order.advance_item_status(item.id, "shipped", item.vendor_id, "vendor", tracking_number="TRK-1")
    if target_status == OrderStatus.SHIPPED:
        return order

    for item in order.items:
        order.advance_item_status(item.id, "delivered", item.vendor_id, "vendor")
    return order


class TestTransitionTable:
    def test_terminal_states(self):
        assert _VALID_TRANSITIONS[OrderStatus.DELIVERED] == set()
        assert _VALID_TRANSITIONS[OrderStatus.REFUNDED] == set()

    def test_shipped_cannot_be_cancelled(self):
        assert OrderStatus.CANCELLED not in _VALID_TRANSITIONS[OrderStatus.SHIPPED]

    def test_every_state_has_an_entry(self):
        assert set(_VALID_TRANSITIONS) == set(OrderStatus)


class TestDerivation:
    @pytest.mark.parametrize(
        "state",
        [
            OrderStatus.PENDING_ADMIN_APPROVAL,
            OrderStatus.VENDOR_ASSIGNED,
            OrderStatus.VENDOR_CONFIRMED,
            OrderStatus.PAYMENT_PENDING,
            OrderStatus.PAID,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        ],
    )
    def test_stored_status_always_matches_derivation(self, state):
        order = _order_at_state(state)
        assert order.status == state.value
        assert derive_order_status(order) == state

    def test_one_processing_item_makes_order_processing(self):
        order = _order_at_state(OrderStatus.PAID, vendors=("vendor-a", "vendor-b"))
        item = order.items[0]
        order.advance_item_status(item.id, "processing", item.vendor_id, "vendor")

        assert order.status == OrderStatus.PROCESSING.value

    def test_partially_shipped_stays_processing(self):
        order = _order_at_state(OrderStatus.PROCESSING, vendors=("vendor-a", "vendor-b"))
        item = order.items[0]
        order.advance_item_status(item.id, "shipped", item.vendor_id, "vendor")

        assert order.status == OrderStatus.PROCESSING.value


class TestPayment:
    def test_request_payment_only_by_owner(self):
        order = _order_at_state(OrderStatus.VENDOR_CONFIRMED)
        with pytest.raises(AuthorizationError):
            order.request_payment("cust-999")

    def test_request_payment_before_confirmation(self):
        order = _order_at_state(OrderStatus.VENDOR_ASSIGNED)
        with pytest.raises(ConflictError):
            order.request_payment("cust-001")

    def test_success_returns_ledger_lines(self):
        order = _order_at_state(OrderStatus.PAYMENT_PENDING)
        lines = order.record_payment_success("TX1", '{"status": "VALID"}')

        assert order.payment_status == PaymentStatus.PAID.value
        assert order.transaction_id == "TX1"
        assert [(line.product_id, line.quantity) for line in lines] == [("prod-1", 2)]

    def test_success_notifies_customer_and_vendors(self):
        order = _order_at_state(OrderStatus.PAYMENT_PENDING, vendors=("vendor-a", "vendor-b"))
        order.record_payment_success("TX1")

        for recipient in ("cust-001", "vendor-a", "vendor-b"):
            assert "payment_confirmed" in [n.notification_type for n in order.notifications_for(recipient)]

    def test_success_twice_is_a_conflict(self):
        order = _order_at_state(OrderStatus.PAID)
        with pytest.raises(ConflictError):
            order.record_payment_success("TX2")

    def test_failure_cancels(self):
        order = _order_at_state(OrderStatus.PAYMENT_PENDING)
        order.record_payment_failure("Card declined")

        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.status == OrderStatus.CANCELLED.value

    def test_payouts_follow_items(self):
        order = _order_at_state(OrderStatus.PAID, vendors=("vendor-a", "vendor-b"))
        order.settle_payouts()

        assert [(str(p.vendor_id), p.amount, p.net_amount) for p in order.vendor_payouts] == [
            ("vendor-a", 200.0, 176.0),
            ("vendor-b", 200.0, 176.0),
        ]


class TestFulfillment:
    def test_items_advance_one_step_at_a_time(self):
        order = _order_at_state(OrderStatus.PAID)
        item = order.items[0]
        with pytest.raises(ConflictError):
            order.advance_item_status(item.id, "shipped", item.vendor_id, "vendor")

    def test_no_fulfillment_before_payment(self):
        order = _order_at_state(OrderStatus.VENDOR_CONFIRMED)
        item = order.items[0]
        with pytest.raises(ConflictError):
            order.advance_item_status(item.id, "processing", item.vendor_id, "vendor")

    def test_only_owning_vendor_or_admin(self):
        order = _order_at_state(OrderStatus.PAID, vendors=("vendor-a", "vendor-b"))
        item = next(i for i in order.items if str(i.vendor_id) == "vendor-a")

        with pytest.raises(AuthorizationError):
            order.advance_item_status(item.id, "processing", "vendor-b", "vendor")

        order.advance_item_status(item.id, "processing", "admin-001", "admin")
        assert item.item_status == ItemStatus.PROCESSING.value

    def test_unknown_status(self):
        order = _order_at_state(OrderStatus.PAID)
        with pytest.raises(ValidationError):
            order.advance_item_status(order.items[0].id, "teleported", "vendor-a", "vendor")

    def test_shipping_records_tracking_and_notifies(self):
        order = _order_at_state(OrderStatus.SHIPPED)
        item = order.items[0]

        assert item.tracking_number == "TRK-1"
        assert item.shipped_at is not None
        assert "shipped" in [n.notification_type for n in order.notifications_for("cust-001")]

    def test_all_delivered_raises_order_delivered(self):
        order = _order_at_state(OrderStatus.DELIVERED)

        assert order.delivered_at is not None
        assert any(isinstance(e, OrderDelivered) for e in order._events)


class TestCancellation:
    @pytest.mark.parametrize(
        "state",
        [
            OrderStatus.PENDING_ADMIN_APPROVAL,
            OrderStatus.VENDOR_ASSIGNED,
            OrderStatus.VENDOR_CONFIRMED,
            OrderStatus.PAYMENT_PENDING,
            OrderStatus.PAID,
            OrderStatus.PROCESSING,
        ],
    )
    def test_cancellable_states(self, state):
        order = _order_at_state(state)
        order.cancel("cust-001", "customer", "Changed my mind")

        assert order.status == OrderStatus.CANCELLED.value
        assert all(item.item_status == ItemStatus.CANCELLED.value for item in order.items)

    @pytest.mark.parametrize("state", [OrderStatus.SHIPPED, OrderStatus.DELIVERED])
    def test_shipped_orders_cannot_be_cancelled(self, state):
        order = _order_at_state(state)
        with pytest.raises(ConflictError):
            order.cancel("admin-001", "admin")

    def test_cancel_twice(self):
        order = _order_at_state(OrderStatus.VENDOR_ASSIGNED)
        order.cancel("cust-001", "customer")
        with pytest.raises(ConflictError):
            order.cancel("cust-001", "customer")

    def test_other_customer_cannot_cancel(self):
        order = _order_at_state(OrderStatus.VENDOR_ASSIGNED)
        with pytest.raises(AuthorizationError):
            order.cancel("cust-999", "customer")

    def test_only_committed_items_are_released(self):
        order = _order_at_state(OrderStatus.VENDOR_ASSIGNED)
        assert order.cancel("cust-001", "customer") == []

        order = _order_at_state(OrderStatus.PAID)
        order.mark_stock_committed([item.id for item in order.items])
        lines = order.cancel("admin-001", "admin")
        assert len(lines) == 1

    def test_cancelled_paid_order_drops_payouts(self):
        order = _order_at_state(OrderStatus.PAID)
        order.settle_payouts()
        order.cancel("admin-001", "admin")

        assert list(order.vendor_payouts) == []


class TestRefund:
    def test_full_refund(self):
        order = _order_at_state(OrderStatus.PAID)
        order.mark_stock_committed([item.id for item in order.items])
        lines = order.record_refund(order.pricing.total, "REF-1")

        assert order.payment_status == PaymentStatus.REFUNDED.value
        assert order.status == OrderStatus.REFUNDED.value
        assert len(lines) == 1
        assert all(item.item_status == ItemStatus.REFUNDED.value for item in order.items)
        assert any(isinstance(e, OrderRefunded) and e.full_refund for e in order._events)

    def test_partial_refund_keeps_status(self):
        order = _order_at_state(OrderStatus.PROCESSING)
        lines = order.record_refund(50.0, "REF-1")

        assert order.payment_status == PaymentStatus.PARTIAL_REFUND.value
        assert order.status == OrderStatus.PROCESSING.value
        assert order.refund_amount == 50.0
        assert lines == []

    def test_refund_after_cancellation(self):
        order = _order_at_state(OrderStatus.PAID)
        order.cancel("admin-001", "admin")
        order.record_refund(None, "REF-1")

        assert order.status == OrderStatus.REFUNDED.value

    def test_refund_defaults_to_total(self):
        order = _order_at_state(OrderStatus.PAID)
        assert order.assert_refundable(None) == order.pricing.total

    def test_refund_more_than_total(self):
        order = _order_at_state(OrderStatus.PAID)
        with pytest.raises(ValidationError):
            order.assert_refundable(order.pricing.total + 1)

    def test_unpaid_order_cannot_be_refunded(self):
        order = _order_at_state(OrderStatus.PAYMENT_PENDING)
        with pytest.raises(ConflictError):
            order.assert_refundable(None)

    def test_delivered_order_cannot_be_refunded(self):
        order = _order_at_state(OrderStatus.DELIVERED)
        with pytest.raises(ConflictError):
            order.assert_refundable(None)

    def test_refunded_order_cannot_be_refunded_again(self):
        order = _order_at_state(OrderStatus.PAID)
        order.record_refund(None, "REF-1")
        with pytest.raises(ConflictError):
            order.assert_refundable(None)
