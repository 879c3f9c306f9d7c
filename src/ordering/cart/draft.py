"""Order drafts: validated, stock-checked snapshots ready to become an Order.

A draft comes either from a cart (``Cart.checkout``) or from an ad-hoc item
list (``draft_from_items``). Both apply the same availability rules; the
order service charge adds each product's category surcharge on top.
"""

import json
from dataclasses import dataclass

from protean.exceptions import ValidationError

from ordering.catalogue.lookup import ProductLookup
from ordering.errors import ConflictError, NotFoundError
from ordering.shared.pricing import MAX_LINE_QUANTITY, grand_total, money, shipping_cost_for, tax_for


def canonical_variant(variant: dict | str | None) -> str:
    """Serialize a variant selector so equal selections compare equal."""
    if variant is None or variant == "":
        return json.dumps({})
    if isinstance(variant, str):
        variant = json.loads(variant)
    return json.dumps(variant, sort_keys=True)


@dataclass(frozen=True)
class DraftLine:
    product_id: str
    product_name: str
    vendor_id: str
    variant: str
    quantity: int
    unit_price: float
    service_charge_rate: float = 0.0
    image_url: str | None = None

    @property
    def total_price(self) -> float:
        return money(self.unit_price * self.quantity)

    @property
    def service_charge(self) -> float:
        return money(self.total_price * self.service_charge_rate / 100)


@dataclass(frozen=True)
class OrderDraft:
    lines: tuple[DraftLine, ...]
    subtotal: float
    tax: float
    shipping_cost: float
    service_charge: float
    discount: float
    total: float

    @classmethod
    def from_lines(cls, lines) -> "OrderDraft":
        lines = tuple(lines)
        subtotal = money(sum(line.total_price for line in lines))
        tax = tax_for(subtotal)
        shipping_cost = shipping_cost_for(subtotal, has_items=bool(lines))
        service_charge = money(sum(line.service_charge for line in lines))
        discount = 0.0
        return cls(
            lines=lines,
            subtotal=subtotal,
            tax=tax,
            shipping_cost=shipping_cost,
            service_charge=service_charge,
            discount=discount,
            total=grand_total(subtotal, tax, shipping_cost, service_charge, discount),
        )

    @property
    def vendor_ids(self) -> list[str]:
        return sorted({line.vendor_id for line in self.lines})


def draft_from_items(requested: list[dict], lookup: ProductLookup) -> OrderDraft:
    """Build a draft from ``[{product_id, quantity, variant}]`` at current prices.

    Unknown products raise NotFoundError; every unavailable line is collected
    into a single ConflictError.
    """
    if not requested:
        raise ValidationError({"items": ["At least one item is required"]})

    lines = []
    unavailable = []
    for entry in requested:
        quantity = int(entry.get("quantity", 1))
        if quantity < 1 or quantity > MAX_LINE_QUANTITY:
            raise ValidationError({"quantity": [f"Quantity must be between 1 and {MAX_LINE_QUANTITY}"]})

        snapshot = lookup.find(entry["product_id"])
        if snapshot is None:
            raise NotFoundError(f"Product {entry['product_id']} not found", product_id=entry["product_id"])

        problem = snapshot.availability_problem(quantity)
        if problem:
            unavailable.append({"product_id": snapshot.product_id, "reason": problem})
            continue

        lines.append(
            DraftLine(
                product_id=snapshot.product_id,
                product_name=snapshot.name,
                vendor_id=snapshot.vendor_id,
                variant=canonical_variant(entry.get("variant")),
                quantity=quantity,
                unit_price=snapshot.price,
                service_charge_rate=snapshot.service_charge_rate,
                image_url=snapshot.image_url,
            )
        )

    if unavailable:
        raise ConflictError("Some items are unavailable", unavailable=unavailable)

    return OrderDraft.from_lines(lines)
