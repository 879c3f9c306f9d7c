"""Order aggregate (CQRS): the multi-party fulfillment state machine.

An order passes through admin approval, one confirmation per vendor,
payment and per-item fulfillment. The order-level ``status`` is never set
directly: every operation mutates the sub-records it owns (approval,
assignments, payment, items, cancellation marker) and then re-derives the
status with ``derive_order_status``. A derived status that is not reachable
from the current one through ``_VALID_TRANSITIONS`` is rejected with
``ConflictError``.

State Machine:
    pending_admin_approval → admin_approved → vendor_assigned →
    vendor_confirmed → payment_pending → paid → processing → shipped → delivered
    cancelled (from anything before shipped) → refunded (if money was taken)
"""

import json
import secrets
import string
import time
from collections import defaultdict
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text, ValueObject

from ordering.cart.draft import OrderDraft
from ordering.domain import ordering
from ordering.errors import AuthorizationError, ConflictError, NotFoundError
from ordering.inventory.ledger import LedgerLine
from ordering.order.events import (
    ItemStatusAdvanced,
    NotificationQueued,
    OrderApproved,
    OrderCancelled,
    OrderDelivered,
    OrderPlaced,
    OrderRefunded,
    OrderRejected,
    PaymentConfirmed,
    PaymentFailed,
    PaymentRequested,
    StockReconciliationRequired,
    VendorAssignmentConfirmed,
    VendorAssignmentRejected,
    VendorsAssigned,
)
from ordering.payout.calculator import calculate_vendor_payouts
from ordering.shared.actor import Role, is_admin
from ordering.shared.pricing import amounts_match, grand_total, money


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING_ADMIN_APPROVAL = "pending_admin_approval"
    ADMIN_APPROVED = "admin_approved"
    VENDOR_ASSIGNED = "vendor_assigned"
    VENDOR_CONFIRMED = "vendor_confirmed"
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"


class PaymentMethod(Enum):
    SSLCOMMERZ = "sslcommerz"
    COD = "cod"
    BANK_TRANSFER = "bank_transfer"


class ApprovalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AssignmentStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class ItemStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class NotificationType(Enum):
    ORDER_PLACED = "order_placed"
    ADMIN_APPROVED = "admin_approved"
    ADMIN_REJECTED = "admin_rejected"
    VENDOR_ASSIGNED = "vendor_assigned"
    VENDOR_CONFIRMED = "vendor_confirmed"
    VENDOR_REJECTED = "vendor_rejected"
    PAYMENT_REMINDER = "payment_reminder"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_FAILED = "payment_failed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    ORDER_CANCELLED = "order_cancelled"
    REFUND_PROCESSED = "refund_processed"
    STOCK_CONFLICT = "stock_conflict"


class PayoutStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    HOLD = "hold"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING_ADMIN_APPROVAL: {OrderStatus.ADMIN_APPROVED, OrderStatus.CANCELLED},
    OrderStatus.ADMIN_APPROVED: {OrderStatus.VENDOR_ASSIGNED, OrderStatus.CANCELLED},
    OrderStatus.VENDOR_ASSIGNED: {OrderStatus.VENDOR_CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.VENDOR_CONFIRMED: {OrderStatus.PAYMENT_PENDING, OrderStatus.CANCELLED},
    OrderStatus.PAYMENT_PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: {OrderStatus.REFUNDED},  # Money back for a paid order
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

_NON_CANCELLABLE_STATES = {
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
}

_FULFILLMENT_STATES = {OrderStatus.PAID, OrderStatus.PROCESSING, OrderStatus.SHIPPED}

_REFUNDABLE_STATES = {OrderStatus.PAID, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.CANCELLED}

# Each item advances exactly one step at a time
_ITEM_PROGRESSION = {
    ItemStatus.CONFIRMED: ItemStatus.PROCESSING,
    ItemStatus.PROCESSING: ItemStatus.SHIPPED,
    ItemStatus.SHIPPED: ItemStatus.DELIVERED,
}

_SETTLED_PAYMENT_STATUSES = {PaymentStatus.PAID.value, PaymentStatus.PARTIAL_REFUND.value}

REASON_MIN_LENGTH = 10
REASON_MAX_LENGTH = 500


def generate_order_number() -> str:
    """``ORD-<epoch millis>-<5 random upper-case alphanumerics>``."""
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(5))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def _validate_reason(field_name: str, reason: str | None) -> str:
    reason = (reason or "").strip()
    if not REASON_MIN_LENGTH <= len(reason) <= REASON_MAX_LENGTH:
        raise ValidationError(
            {field_name: [f"Reason must be between {REASON_MIN_LENGTH} and {REASON_MAX_LENGTH} characters"]}
        )
    return reason


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class Address:
    """Shipping or billing address copied onto the order at placement time."""

    full_name = String(required=True, max_length=255)
    email = String(max_length=255)
    phone = String(required=True, max_length=30)
    address = String(required=True, max_length=500)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    zip_code = String(max_length=20)
    country = String(max_length=100, default="Bangladesh")


@ordering.value_object(part_of="Order")
class OrderPricing:
    subtotal = Float(default=0.0)
    tax = Float(default=0.0)
    shipping_cost = Float(default=0.0)
    service_charge = Float(default=0.0)
    discount = Float(default=0.0)
    total = Float(default=0.0)


@ordering.value_object(part_of="Order")
class AdminApproval:
    status = String(choices=ApprovalStatus, default=ApprovalStatus.PENDING.value)
    decided_by = String(max_length=255)
    decided_at = DateTime()
    reason = String(max_length=REASON_MAX_LENGTH)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    image_url = String(max_length=500)
    variant = Text()
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    total_price = Float(required=True, min_value=0.0)
    item_status = String(choices=ItemStatus, default=ItemStatus.PENDING.value)
    tracking_number = String(max_length=255)
    shipped_at = DateTime()
    delivered_at = DateTime()
    stock_committed = Boolean(default=False)


@ordering.entity(part_of="Order")
class VendorAssignment:
    """One vendor's sub-approval of the items it sells on this order."""

    vendor_id = Identifier(required=True)
    item_ids = Text(required=True)  # JSON list of OrderItem ids
    assignment_status = String(choices=AssignmentStatus, default=AssignmentStatus.PENDING.value)
    assigned_at = DateTime()
    responded_at = DateTime()
    rejection_reason = String(max_length=REASON_MAX_LENGTH)

    @property
    def item_id_list(self) -> list[str]:
        return json.loads(self.item_ids) if self.item_ids else []


@ordering.entity(part_of="Order")
class OrderNotification:
    notification_type = String(choices=NotificationType, required=True)
    recipient_id = Identifier(required=True)
    recipient_role = String(choices=Role, required=True)
    message = Text(required=True)
    is_read = Boolean(default=False)
    sent_at = DateTime()


@ordering.entity(part_of="Order")
class VendorPayout:
    vendor_id = Identifier(required=True)
    amount = Float(default=0.0)
    commission = Float(default=0.0)
    service_charge = Float(default=0.0)
    net_amount = Float(default=0.0)
    payout_status = String(choices=PayoutStatus, default=PayoutStatus.PENDING.value)


def derive_order_status(order) -> OrderStatus:
    """Compute the order-level status from the order's sub-records."""
    if order.payment_status == PaymentStatus.REFUNDED.value:
        return OrderStatus.REFUNDED
    if order.cancelled_at is not None:
        return OrderStatus.CANCELLED
    if order.admin_approval is None or order.admin_approval.status == ApprovalStatus.PENDING.value:
        return OrderStatus.PENDING_ADMIN_APPROVAL

    if order.payment_status in _SETTLED_PAYMENT_STATUSES:
        statuses = [item.item_status for item in order.items]
        if statuses and all(s == ItemStatus.DELIVERED.value for s in statuses):
            return OrderStatus.DELIVERED
        if statuses and all(s in (ItemStatus.SHIPPED.value, ItemStatus.DELIVERED.value) for s in statuses):
            return OrderStatus.SHIPPED
        advanced = {ItemStatus.PROCESSING.value, ItemStatus.SHIPPED.value, ItemStatus.DELIVERED.value}
        if any(s in advanced for s in statuses):
            return OrderStatus.PROCESSING
        return OrderStatus.PAID

    if order.payment_requested:
        return OrderStatus.PAYMENT_PENDING

    assignments = list(order.assignments)
    if assignments and all(a.assignment_status == AssignmentStatus.CONFIRMED.value for a in assignments):
        return OrderStatus.VENDOR_CONFIRMED
    if assignments:
        return OrderStatus.VENDOR_ASSIGNED
    return OrderStatus.ADMIN_APPROVED


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=40)
    customer_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING_ADMIN_APPROVAL.value)
    items = HasMany(OrderItem)
    assignments = HasMany(VendorAssignment)
    notifications = HasMany(OrderNotification)
    vendor_payouts = HasMany(VendorPayout)
    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)
    pricing = ValueObject(OrderPricing)
    admin_approval = ValueObject(AdminApproval)

    # Payment sub-record
    payment_method = String(choices=PaymentMethod, default=PaymentMethod.SSLCOMMERZ.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment_requested = Boolean(default=False)
    transaction_id = String(max_length=255)
    gateway_response = Text()  # JSON
    paid_at = DateTime()
    refund_amount = Float()
    refund_reference = String(max_length=255)
    refunded_at = DateTime()

    customer_notes = Text()
    admin_notes = Text()
    vendor_notes = Text()

    cancelled_at = DateTime()
    cancelled_by = String(max_length=255)
    cancellation_reason = String(max_length=REASON_MAX_LENGTH)

    stock_reconciliation_required = Boolean(default=False)
    delivered_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def subtotal_matches_items(self):
        if self.pricing is None:
            return
        items_total = money(sum(item.total_price for item in self.items or []))
        if not amounts_match(self.pricing.subtotal, items_total):
            raise ValidationError({"pricing": ["Subtotal must equal the sum of item totals"]})

    @invariant.post
    def total_matches_components(self):
        if self.pricing is None:
            return
        p = self.pricing
        expected = grand_total(p.subtotal, p.tax, p.shipping_cost, p.service_charge, p.discount)
        if not amounts_match(p.total, expected):
            raise ValidationError({"pricing": ["Total must equal subtotal + tax + shipping + service charge - discount"]})
        if p.total < 0:
            raise ValidationError({"pricing": ["Total cannot be negative"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_id,
        draft: OrderDraft,
        shipping_address: dict | None,
        billing_address: dict | None = None,
        payment_method: str | None = None,
        customer_notes: str | None = None,
    ) -> "Order":
        """Create an order from a validated draft, awaiting admin approval."""
        if not shipping_address:
            raise ValidationError({"shipping_address": ["Shipping address is required"]})
        if not draft.lines:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = datetime.now(UTC)
        order = cls(
            order_number=generate_order_number(),
            customer_id=customer_id,
            items=[
                OrderItem(
                    product_id=line.product_id,
                    vendor_id=line.vendor_id,
                    product_name=line.product_name,
                    image_url=line.image_url,
                    variant=line.variant,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total_price=line.total_price,
                )
                for line in draft.lines
            ],
            shipping_address=Address(**shipping_address),
            billing_address=Address(**(billing_address or shipping_address)),
            pricing=OrderPricing(
                subtotal=draft.subtotal,
                tax=draft.tax,
                shipping_cost=draft.shipping_cost,
                service_charge=draft.service_charge,
                discount=draft.discount,
                total=draft.total,
            ),
            admin_approval=AdminApproval(status=ApprovalStatus.PENDING.value),
            payment_method=payment_method or PaymentMethod.SSLCOMMERZ.value,
            customer_notes=customer_notes,
            created_at=now,
            updated_at=now,
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                customer_id=str(customer_id),
                vendor_ids=json.dumps(draft.vendor_ids),
                total=draft.total,
                placed_at=now,
            )
        )
        order.notify(
            NotificationType.ORDER_PLACED,
            customer_id,
            Role.CUSTOMER,
            f"Your order #{order.order_number} has been placed and is awaiting admin approval.",
        )
        return order

    # -------------------------------------------------------------------
    # Admin approval
    # -------------------------------------------------------------------
    def approve(self, admin_id, notes: str | None = None) -> None:
        """Approve the order and fan it out to one assignment per vendor."""
        self._assert_approval_pending()

        now = datetime.now(UTC)
        self.admin_approval = AdminApproval(
            status=ApprovalStatus.APPROVED.value,
            decided_by=str(admin_id),
            decided_at=now,
        )
        if notes:
            self.admin_notes = notes
        self._refresh_status(now)

        self.raise_(OrderApproved(order_id=str(self.id), approved_by=str(admin_id), approved_at=now))
        self.notify(
            NotificationType.ADMIN_APPROVED,
            self.customer_id,
            Role.CUSTOMER,
            f"Your order #{self.order_number} has been approved and forwarded to vendors.",
        )

        self._assign_vendors(now)

    def reject(self, admin_id, reason: str) -> None:
        reason = _validate_reason("reason", reason)
        self._assert_approval_pending()

        now = datetime.now(UTC)
        self.admin_approval = AdminApproval(
            status=ApprovalStatus.REJECTED.value,
            decided_by=str(admin_id),
            decided_at=now,
            reason=reason,
        )
        self._mark_cancelled(str(admin_id), reason, now)
        self._refresh_status(now)

        self.raise_(OrderRejected(order_id=str(self.id), rejected_by=str(admin_id), reason=reason, rejected_at=now))
        self.notify(
            NotificationType.ADMIN_REJECTED,
            self.customer_id,
            Role.CUSTOMER,
            f"Your order #{self.order_number} has been rejected. Reason: {reason}",
        )

    def _assign_vendors(self, now) -> None:
        items_by_vendor = defaultdict(list)
        for item in self.items:
            items_by_vendor[str(item.vendor_id)].append(str(item.id))

        for vendor_id in sorted(items_by_vendor):
            self.add_assignments(
                VendorAssignment(
                    vendor_id=vendor_id,
                    item_ids=json.dumps(items_by_vendor[vendor_id]),
                    assignment_status=AssignmentStatus.PENDING.value,
                    assigned_at=now,
                )
            )
            self.notify(
                NotificationType.VENDOR_ASSIGNED,
                vendor_id,
                Role.VENDOR,
                f"New order #{self.order_number} has been assigned to you. Please confirm your items.",
            )

        self._refresh_status(now)
        self.raise_(VendorsAssigned(order_id=str(self.id), vendor_ids=json.dumps(sorted(items_by_vendor))))

    # -------------------------------------------------------------------
    # Vendor confirmation
    # -------------------------------------------------------------------
    def confirm_vendor_assignment(self, vendor_id, notes: str | None = None) -> bool:
        """Confirm the caller's assignment. Returns True once every vendor has confirmed."""
        assignment = self._pending_assignment_for(vendor_id)

        now = datetime.now(UTC)
        assignment.assignment_status = AssignmentStatus.CONFIRMED.value
        assignment.responded_at = now
        for item in self.items:
            if str(item.vendor_id) == str(vendor_id):
                item.item_status = ItemStatus.CONFIRMED.value
        if notes:
            self.vendor_notes = notes

        # Evaluated on the assignments loaded in this unit of work
        all_confirmed = all(a.assignment_status == AssignmentStatus.CONFIRMED.value for a in self.assignments)
        self._refresh_status(now)

        self.raise_(
            VendorAssignmentConfirmed(order_id=str(self.id), vendor_id=str(vendor_id), all_confirmed=all_confirmed)
        )
        if all_confirmed:
            self.notify(
                NotificationType.VENDOR_CONFIRMED,
                self.customer_id,
                Role.CUSTOMER,
                f"All vendors have confirmed your order #{self.order_number}. Please proceed with payment.",
            )
        return all_confirmed

    def reject_vendor_assignment(self, vendor_id, reason: str) -> None:
        """Record a vendor's rejection. The order stays vendor_assigned for admin follow-up."""
        reason = _validate_reason("reason", reason)
        assignment = self._pending_assignment_for(vendor_id)

        now = datetime.now(UTC)
        assignment.assignment_status = AssignmentStatus.REJECTED.value
        assignment.responded_at = now
        assignment.rejection_reason = reason
        self._refresh_status(now)

        self.raise_(VendorAssignmentRejected(order_id=str(self.id), vendor_id=str(vendor_id), reason=reason))
        self.notify(
            NotificationType.VENDOR_REJECTED,
            self.customer_id,
            Role.CUSTOMER,
            f"A vendor could not fulfil part of your order #{self.order_number}. Our team will follow up.",
        )

    def _pending_assignment_for(self, vendor_id) -> VendorAssignment:
        assignment = next((a for a in self.assignments if str(a.vendor_id) == str(vendor_id)), None)
        if assignment is None:
            raise AuthorizationError("This order is not assigned to you", vendor_id=str(vendor_id))
        if OrderStatus(self.status) != OrderStatus.VENDOR_ASSIGNED:
            raise ConflictError(f"Cannot respond to an assignment while the order is {self.status}")
        if assignment.assignment_status != AssignmentStatus.PENDING.value:
            raise ConflictError(f"Assignment is already {assignment.assignment_status}")
        return assignment

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def request_payment(self, customer_id) -> None:
        if str(customer_id) != str(self.customer_id):
            raise AuthorizationError("Only the customer who placed the order can pay for it")
        if OrderStatus(self.status) != OrderStatus.VENDOR_CONFIRMED:
            raise ConflictError(f"Payment can only be initialized once all vendors confirm (order is {self.status})")

        now = datetime.now(UTC)
        self.payment_requested = True
        self._refresh_status(now)

        self.raise_(
            PaymentRequested(
                order_id=str(self.id),
                order_number=self.order_number,
                amount=self.pricing.total,
                payment_method=self.payment_method,
            )
        )
        self.notify(
            NotificationType.PAYMENT_REMINDER,
            self.customer_id,
            Role.CUSTOMER,
            f"Please complete the payment of {self.pricing.total:.2f} for order #{self.order_number}.",
        )

    def assert_awaiting_payment(self) -> None:
        if OrderStatus(self.status) != OrderStatus.PAYMENT_PENDING or self.payment_status != PaymentStatus.PENDING.value:
            raise ConflictError(
                f"Order #{self.order_number} is not awaiting payment",
                order_status=self.status,
                payment_status=self.payment_status,
            )

    def record_payment_success(self, transaction_id: str, gateway_response: str | None = None) -> list[LedgerLine]:
        """Mark the order paid. Returns the ledger lines to commit.

        The storage-level claim of the payment has already happened; this
        brings the loaded aggregate in line with it.
        """
        self.assert_awaiting_payment()

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.PAID.value
        self.transaction_id = transaction_id
        self.gateway_response = gateway_response
        self.paid_at = now
        self._refresh_status(now)

        self.raise_(
            PaymentConfirmed(
                order_id=str(self.id),
                order_number=self.order_number,
                transaction_id=transaction_id,
                amount=self.pricing.total,
                paid_at=now,
            )
        )
        self.notify(
            NotificationType.PAYMENT_CONFIRMED,
            self.customer_id,
            Role.CUSTOMER,
            f"Payment for order #{self.order_number} was received. Transaction {transaction_id}.",
        )
        for vendor_id in self.vendor_ids:
            self.notify(
                NotificationType.PAYMENT_CONFIRMED,
                vendor_id,
                Role.VENDOR,
                f"Order #{self.order_number} has been paid. Please start processing your items.",
            )

        return self._ledger_lines(self.items)

    def record_payment_failure(self, reason: str) -> None:
        self.assert_awaiting_payment()

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.FAILED.value
        self._mark_cancelled("system", reason, now)
        self._refresh_status(now)

        self.raise_(PaymentFailed(order_id=str(self.id), order_number=self.order_number, reason=reason))
        self.notify(
            NotificationType.PAYMENT_FAILED,
            self.customer_id,
            Role.CUSTOMER,
            f"Payment for order #{self.order_number} did not go through: {reason}",
        )

    def mark_stock_committed(self, item_ids) -> None:
        ids = {str(i) for i in item_ids}
        for item in self.items:
            if str(item.id) in ids:
                item.stock_committed = True

    def mark_stock_released(self, item_ids) -> None:
        ids = {str(i) for i in item_ids}
        for item in self.items:
            if str(item.id) in ids:
                item.stock_committed = False

    def flag_stock_reconciliation(self, reason: str, committed_item_ids) -> None:
        self.stock_reconciliation_required = True
        self.updated_at = datetime.now(UTC)
        self.raise_(
            StockReconciliationRequired(
                order_id=str(self.id),
                committed_item_ids=json.dumps([str(i) for i in committed_item_ids]),
                reason=reason,
            )
        )

    def settle_payouts(self) -> None:
        """Recompute vendor payouts from the current item statuses."""
        for payout in list(self.vendor_payouts):
            self.remove_vendor_payouts(payout)
        for record in calculate_vendor_payouts(self.items):
            self.add_vendor_payouts(
                VendorPayout(
                    vendor_id=record.vendor_id,
                    amount=record.amount,
                    commission=record.commission,
                    service_charge=record.service_charge,
                    net_amount=record.net_amount,
                )
            )

    # -------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------
    def advance_item_status(self, item_id, new_status: str, actor_id, actor_role, tracking_number=None) -> None:
        item = self._get_item(item_id)
        if not is_admin(actor_role) and str(item.vendor_id) != str(actor_id):
            raise AuthorizationError("Not authorized to update this item")

        try:
            target = ItemStatus(new_status)
        except ValueError:
            raise ValidationError({"status": [f"Invalid item status: {new_status}"]}) from None

        if (
            self.payment_status not in _SETTLED_PAYMENT_STATUSES
            or OrderStatus(self.status) not in _FULFILLMENT_STATES
        ):
            raise ConflictError(f"Items cannot be fulfilled while the order is {self.status}")

        current = ItemStatus(item.item_status)
        if _ITEM_PROGRESSION.get(current) != target:
            raise ConflictError(f"Item cannot move from {current.value} to {target.value}")

        now = datetime.now(UTC)
        item.item_status = target.value
        if target == ItemStatus.SHIPPED:
            item.shipped_at = now
            if tracking_number:
                item.tracking_number = tracking_number
        elif target == ItemStatus.DELIVERED:
            item.delivered_at = now
        self._refresh_status(now)

        self.raise_(
            ItemStatusAdvanced(
                order_id=str(self.id),
                item_id=str(item.id),
                vendor_id=str(item.vendor_id),
                previous_status=current.value,
                new_status=target.value,
                tracking_number=tracking_number,
            )
        )

        if target == ItemStatus.SHIPPED:
            tracking = f" Tracking number: {tracking_number}." if tracking_number else ""
            self.notify(
                NotificationType.SHIPPED,
                self.customer_id,
                Role.CUSTOMER,
                f"{item.product_name} from order #{self.order_number} has shipped.{tracking}",
            )
        elif target == ItemStatus.DELIVERED:
            self.notify(
                NotificationType.DELIVERED,
                self.customer_id,
                Role.CUSTOMER,
                f"{item.product_name} from order #{self.order_number} has been delivered.",
            )

        if OrderStatus(self.status) == OrderStatus.DELIVERED:
            self.delivered_at = now
            self.raise_(OrderDelivered(order_id=str(self.id), delivered_at=now))

    # -------------------------------------------------------------------
    # Cancellation and refund
    # -------------------------------------------------------------------
    def cancel(self, actor_id, actor_role, reason: str | None = None) -> list[LedgerLine]:
        """Cancel the order. Returns ledger lines for items whose stock was committed."""
        if not is_admin(actor_role) and str(actor_id) != str(self.customer_id):
            raise AuthorizationError("Not authorized to cancel this order")
        if OrderStatus(self.status) in _NON_CANCELLABLE_STATES:
            raise ConflictError(f"Cannot cancel order with status: {self.status}")

        now = datetime.now(UTC)
        reason = reason or "Cancelled on request"
        cancelled_items = []
        for item in self.items:
            if item.item_status not in (ItemStatus.SHIPPED.value, ItemStatus.DELIVERED.value):
                item.item_status = ItemStatus.CANCELLED.value
                cancelled_items.append(item)

        self._mark_cancelled(str(actor_id), reason, now)
        self._refresh_status(now)
        if self.payment_status in _SETTLED_PAYMENT_STATUSES:
            self.settle_payouts()

        self.raise_(OrderCancelled(order_id=str(self.id), cancelled_by=str(actor_id), reason=reason, cancelled_at=now))
        self.notify(
            NotificationType.ORDER_CANCELLED,
            self.customer_id,
            Role.CUSTOMER,
            f"Your order #{self.order_number} has been cancelled. Reason: {reason}",
        )
        for assignment in self.assignments:
            self.notify(
                NotificationType.ORDER_CANCELLED,
                assignment.vendor_id,
                Role.VENDOR,
                f"Order #{self.order_number} has been cancelled.",
            )

        return self._ledger_lines(item for item in cancelled_items if item.stock_committed)

    def assert_refundable(self, amount: float | None) -> float:
        """Validate a refund request and return the amount to refund."""
        if self.payment_status != PaymentStatus.PAID.value:
            raise ConflictError(f"Only paid orders can be refunded (payment is {self.payment_status})")
        if OrderStatus(self.status) not in _REFUNDABLE_STATES:
            raise ConflictError(f"Cannot refund an order that is {self.status}")

        total = self.pricing.total
        amount = total if amount is None else money(amount)
        if amount <= 0:
            raise ValidationError({"refund_amount": ["Refund amount must be positive"]})
        if amount > total + 0.01:
            raise ValidationError({"refund_amount": ["Refund amount cannot exceed the order total"]})
        return amount

    def record_refund(self, amount: float, refund_reference: str | None) -> list[LedgerLine]:
        """Apply a refund the gateway accepted. Returns ledger lines to release."""
        amount = self.assert_refundable(amount)
        full_refund = amount >= self.pricing.total - 0.01

        now = datetime.now(UTC)
        self.refund_amount = amount
        self.refund_reference = refund_reference
        self.refunded_at = now

        to_release = []
        if full_refund:
            self.payment_status = PaymentStatus.REFUNDED.value
            to_release = [item for item in self.items if item.stock_committed]
            for item in self.items:
                item.item_status = ItemStatus.REFUNDED.value
        else:
            self.payment_status = PaymentStatus.PARTIAL_REFUND.value

        self._refresh_status(now)
        self.settle_payouts()

        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                amount=amount,
                full_refund=full_refund,
                refund_reference=refund_reference,
                refunded_at=now,
            )
        )
        self.notify(
            NotificationType.REFUND_PROCESSED,
            self.customer_id,
            Role.CUSTOMER,
            f"A refund of {amount:.2f} for order #{self.order_number} has been processed.",
        )
        return self._ledger_lines(to_release)

    # -------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------
    def notify(self, notification_type: NotificationType, recipient_id, recipient_role: Role, message: str) -> None:
        """Append a notification to the order's log and queue it for delivery."""
        notification = OrderNotification(
            notification_type=notification_type.value,
            recipient_id=str(recipient_id),
            recipient_role=recipient_role.value,
            message=message,
            is_read=False,
            sent_at=datetime.now(UTC),
        )
        self.add_notifications(notification)
        self.raise_(
            NotificationQueued(
                order_id=str(self.id),
                notification_id=str(notification.id),
                notification_type=notification_type.value,
                recipient_id=str(recipient_id),
                recipient_role=recipient_role.value,
                message=message,
            )
        )

    def mark_notification_read(self, notification_id, reader_id) -> None:
        notification = next((n for n in self.notifications if str(n.id) == str(notification_id)), None)
        if notification is None:
            raise NotFoundError("Notification not found", notification_id=str(notification_id))
        if str(notification.recipient_id) != str(reader_id):
            raise AuthorizationError("Only the recipient can mark a notification as read")
        notification.is_read = True

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def vendor_ids(self) -> list[str]:
        return sorted({str(item.vendor_id) for item in self.items})

    def is_visible_to(self, actor_id, actor_role) -> bool:
        if is_admin(actor_role):
            return True
        if actor_role == Role.VENDOR.value:
            return str(actor_id) in self.vendor_ids
        return str(actor_id) == str(self.customer_id)

    def notifications_for(self, recipient_id) -> list[OrderNotification]:
        return [n for n in self.notifications if str(n.recipient_id) == str(recipient_id)]

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _assert_approval_pending(self) -> None:
        if self.admin_approval is not None and self.admin_approval.status != ApprovalStatus.PENDING.value:
            raise ConflictError("Order is not pending approval")
        if OrderStatus(self.status) != OrderStatus.PENDING_ADMIN_APPROVAL:
            raise ConflictError(f"Order is not pending approval (status is {self.status})")

    def _get_item(self, item_id) -> OrderItem:
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise NotFoundError("Order item not found", item_id=str(item_id))
        return item

    def _mark_cancelled(self, actor_id: str, reason: str, now) -> None:
        self.cancelled_at = now
        self.cancelled_by = actor_id
        self.cancellation_reason = reason

    def _refresh_status(self, now) -> None:
        current = OrderStatus(self.status)
        derived = derive_order_status(self)
        if derived == current:
            return
        if derived not in _VALID_TRANSITIONS[current]:
            raise ConflictError(f"Invalid status transition from {current.value} to {derived.value}")
        self.status = derived.value
        self.updated_at = now

    @staticmethod
    def _ledger_lines(items) -> list[LedgerLine]:
        return [
            LedgerLine(
                item_id=str(item.id),
                product_id=str(item.product_id),
                quantity=item.quantity,
                line_total=item.total_price,
            )
            for item in items
        ]
