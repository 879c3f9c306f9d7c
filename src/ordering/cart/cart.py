"""Cart aggregate (CQRS): a customer's staging area for an order.

One cart per customer; its identity is the customer id and it is created
lazily on first access. Every mutation recomputes the derived totals. The
cart is cleared, never deleted, once an order has been created from it and
again when that order's payment is confirmed.
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, Text

from ordering.cart.draft import DraftLine, OrderDraft, canonical_variant
from ordering.cart.events import CartCleared, CartItemAdded, CartItemQuantityUpdated, CartItemRemoved
from ordering.catalogue.lookup import ProductLookup, ProductSnapshot
from ordering.domain import ordering
from ordering.errors import ConflictError, NotFoundError
from ordering.shared.pricing import (
    CART_SERVICE_CHARGE_RATE,
    MAX_LINE_QUANTITY,
    grand_total,
    money,
    shipping_cost_for,
    tax_for,
)


@ordering.entity(part_of="Cart")
class CartItem:
    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    image_url = String(max_length=500)
    vendor_id = Identifier(required=True)
    variant = Text()  # canonical JSON
    quantity = Integer(required=True, min_value=1, max_value=MAX_LINE_QUANTITY)
    unit_price = Float(required=True, min_value=0.0)
    total_price = Float(default=0.0)
    is_available = Boolean(default=True)
    added_at = DateTime()


@ordering.aggregate
class Cart:
    customer_id = Identifier(required=True)
    items = HasMany(CartItem)
    subtotal = Float(default=0.0)
    tax = Float(default=0.0)
    shipping_cost = Float(default=0.0)
    service_charge = Float(default=0.0)
    discount = Float(default=0.0)
    total = Float(default=0.0)
    item_count = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def total_is_never_negative(self):
        if self.total is not None and self.total < 0:
            raise ValidationError({"total": ["Cart total cannot be negative"]})

    @invariant.post
    def line_quantity_is_capped(self):
        for item in self.items or []:
            if item.quantity > MAX_LINE_QUANTITY:
                raise ValidationError({"quantity": [f"Cannot have more than {MAX_LINE_QUANTITY} of one item"]})

    @classmethod
    def create(cls, customer_id):
        now = datetime.now(UTC)
        return cls(id=customer_id, customer_id=customer_id, created_at=now, updated_at=now)

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, product: ProductSnapshot, quantity: int, variant=None) -> str:
        """Add ``quantity`` units, merging into an identical (product, variant) line."""
        variant_key = canonical_variant(variant)
        existing = self._find_line(product.product_id, variant_key)
        merged_quantity = quantity + (existing.quantity if existing else 0)

        self._check_purchasable(product, merged_quantity)

        now = datetime.now(UTC)
        if existing:
            existing.quantity = merged_quantity
            existing.unit_price = product.price
            existing.total_price = money(product.price * merged_quantity)
            existing.is_available = True
            item_id = str(existing.id)
        else:
            item = CartItem(
                product_id=product.product_id,
                product_name=product.name,
                image_url=product.image_url,
                vendor_id=product.vendor_id,
                variant=variant_key,
                quantity=quantity,
                unit_price=product.price,
                total_price=money(product.price * quantity),
                added_at=now,
            )
            self.add_items(item)
            item_id = str(item.id)

        self._recalculate(now)
        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                item_id=item_id,
                product_id=product.product_id,
                variant=variant_key,
                quantity=quantity,
            )
        )
        return item_id

    def update_item_quantity(self, item_id, quantity: int, product: ProductSnapshot | None) -> None:
        item = self._get_line(item_id)
        if product is None:
            raise NotFoundError("Product no longer exists", product_id=str(item.product_id))

        self._check_purchasable(product, quantity)

        previous_quantity = item.quantity
        item.quantity = quantity
        item.unit_price = product.price
        item.total_price = money(product.price * quantity)
        item.is_available = True
        self._recalculate(datetime.now(UTC))

        self.raise_(
            CartItemQuantityUpdated(
                cart_id=str(self.id),
                item_id=str(item_id),
                previous_quantity=previous_quantity,
                new_quantity=quantity,
            )
        )

    def remove_item(self, item_id) -> None:
        item = self._get_line(item_id)
        self.remove_items(item)
        self._recalculate(datetime.now(UTC))
        self.raise_(CartItemRemoved(cart_id=str(self.id), item_id=str(item_id)))

    def clear(self, reason: str = "customer") -> None:
        for item in list(self.items):
            self.remove_items(item)
        self._recalculate(datetime.now(UTC))
        self.raise_(CartCleared(cart_id=str(self.id), reason=reason))

    def line_for(self, product_id, variant=None) -> CartItem | None:
        """The line holding ``product_id`` with this variant selection, if any."""
        return self._find_line(product_id, canonical_variant(variant))

    def refresh_availability(self, lookup: ProductLookup) -> None:
        """Re-check every line against the catalog and flag unavailable ones."""
        for item in self.items:
            snapshot = lookup.find(str(item.product_id))
            item.is_available = snapshot is not None and snapshot.availability_problem(item.quantity) is None

    # -------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------
    def checkout(self, lookup: ProductLookup) -> OrderDraft:
        """Validate every line against the current catalog and snapshot the cart.

        The cart itself is not modified here; it is cleared once the order is
        stored.
        """
        if not self.items:
            raise ValidationError({"cart": ["Cart is empty"]})

        lines = []
        unavailable = []
        for item in self.items:
            snapshot = lookup.find(str(item.product_id))
            if snapshot is None:
                unavailable.append({"item_id": str(item.id), "reason": f"{item.product_name} no longer exists"})
                continue
            problem = snapshot.availability_problem(item.quantity)
            if problem:
                unavailable.append({"item_id": str(item.id), "reason": problem})
                continue
            lines.append(
                DraftLine(
                    product_id=str(item.product_id),
                    product_name=item.product_name,
                    vendor_id=str(item.vendor_id),
                    variant=item.variant,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    service_charge_rate=snapshot.service_charge_rate,
                    image_url=item.image_url,
                )
            )

        if unavailable:
            raise ConflictError("Some cart items are unavailable", unavailable=unavailable)

        return OrderDraft.from_lines(lines)

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _find_line(self, product_id, variant_key):
        return next(
            (i for i in self.items if str(i.product_id) == str(product_id) and i.variant == variant_key),
            None,
        )

    def _get_line(self, item_id):
        item = next((i for i in self.items if str(i.id) == str(item_id)), None)
        if item is None:
            raise NotFoundError("Item not found in cart", item_id=str(item_id))
        return item

    @staticmethod
    def _check_purchasable(product: ProductSnapshot, quantity: int) -> None:
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError({"quantity": [f"Cannot add more than {MAX_LINE_QUANTITY} of one item"]})
        problem = product.availability_problem(quantity)
        if problem:
            raise ConflictError(problem, product_id=product.product_id)

    def _recalculate(self, now) -> None:
        subtotal = money(sum(item.total_price for item in self.items))
        self.subtotal = subtotal
        self.tax = tax_for(subtotal)
        self.shipping_cost = shipping_cost_for(subtotal, has_items=bool(self.items))
        self.service_charge = money(subtotal * CART_SERVICE_CHARGE_RATE)
        self.discount = 0.0
        self.total = grand_total(subtotal, self.tax, self.shipping_cost, self.service_charge, self.discount)
        self.item_count = sum(item.quantity for item in self.items)
        self.updated_at = now
