"""Domain events for the Order aggregate.

Events are raised by the aggregate and published when the unit of work
commits. ``NotificationQueued`` drives outbound delivery; the others record
workflow milestones for downstream consumers.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A customer placed an order; it now awaits admin approval."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    vendor_ids = Text()  # JSON list
    total = Float(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderApproved:
    __version__ = 1

    order_id = Identifier(required=True)
    approved_by = Identifier(required=True)
    approved_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderRejected:
    __version__ = 1

    order_id = Identifier(required=True)
    rejected_by = Identifier(required=True)
    reason = String(required=True)
    rejected_at = DateTime(required=True)


@ordering.event(part_of="Order")
class VendorsAssigned:
    """One assignment per distinct vendor was created after approval."""

    __version__ = 1

    order_id = Identifier(required=True)
    vendor_ids = Text(required=True)  # JSON list


@ordering.event(part_of="Order")
class VendorAssignmentConfirmed:
    __version__ = 1

    order_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    all_confirmed = Boolean(default=False)


@ordering.event(part_of="Order")
class VendorAssignmentRejected:
    __version__ = 1

    order_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    reason = String(required=True)


@ordering.event(part_of="Order")
class PaymentRequested:
    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    amount = Float(required=True)
    payment_method = String()


@ordering.event(part_of="Order")
class PaymentConfirmed:
    """The gateway confirmed payment; stock was committed and payouts computed."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    transaction_id = String(required=True)
    amount = Float(required=True)
    paid_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentFailed:
    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    reason = String()


@ordering.event(part_of="Order")
class ItemStatusAdvanced:
    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    tracking_number = String()


@ordering.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    cancelled_by = Identifier(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderRefunded:
    __version__ = 1

    order_id = Identifier(required=True)
    amount = Float(required=True)
    full_refund = Boolean(default=False)
    refund_reference = String()
    refunded_at = DateTime(required=True)


@ordering.event(part_of="Order")
class StockReconciliationRequired:
    """Stock commit hit an underflow after payment; someone must reconcile by hand."""

    __version__ = 1

    order_id = Identifier(required=True)
    committed_item_ids = Text()  # JSON list
    reason = String()


@ordering.event(part_of="Order")
class NotificationQueued:
    __version__ = 1

    order_id = Identifier(required=True)
    notification_id = Identifier(required=True)
    notification_type = String(required=True)
    recipient_id = Identifier(required=True)
    recipient_role = String()
    message = Text(required=True)
