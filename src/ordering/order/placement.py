"""Order placement: from the customer's cart or from an ad-hoc item list."""

import json

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.cart.cart import Cart
from ordering.cart.draft import draft_from_items
from ordering.catalogue.lookup import get_product_lookup
from ordering.domain import ordering
from ordering.notifications.fanout import notify_admins
from ordering.order.order import NotificationType, Order

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    use_cart = Boolean(default=True)
    items = Text()  # JSON: [{product_id, quantity, variant}] when use_cart is false
    shipping_address = Text(required=True)  # JSON: address dict
    billing_address = Text()  # JSON: address dict, defaults to shipping
    payment_method = String(max_length=20)
    customer_notes = Text()


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        lookup = get_product_lookup()
        cart_repo = current_domain.repository_for(Cart)

        cart = None
        if command.use_cart:
            try:
                cart = cart_repo.get(command.customer_id)
            except ObjectNotFoundError:
                raise ValidationError({"cart": ["Cart is empty"]}) from None
            draft = cart.checkout(lookup)
        else:
            draft = draft_from_items(json.loads(command.items) if command.items else [], lookup)

        order = Order.place(
            customer_id=command.customer_id,
            draft=draft,
            shipping_address=json.loads(command.shipping_address) if command.shipping_address else None,
            billing_address=json.loads(command.billing_address) if command.billing_address else None,
            payment_method=command.payment_method,
            customer_notes=command.customer_notes,
        )
        notify_admins(
            order,
            NotificationType.ORDER_PLACED,
            f"New order #{order.order_number} is waiting for approval.",
        )
        current_domain.repository_for(Order).add(order)

        if cart is not None:
            cart.clear(reason="checkout")
            cart_repo.add(cart)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            customer_id=str(command.customer_id),
            total=order.pricing.total,
        )
        return str(order.id)
