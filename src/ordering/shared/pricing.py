"""Marketplace pricing rules shared by carts, order drafts and payouts."""

TAX_RATE = 0.05
CART_SERVICE_CHARGE_RATE = 0.05
FREE_SHIPPING_THRESHOLD = 1000.0
FLAT_SHIPPING_COST = 60.0
MAX_LINE_QUANTITY = 10

# Tolerance when comparing stored totals against recomputed ones
MONEY_TOLERANCE = 0.01


def money(amount: float) -> float:
    """Round to currency precision."""
    return round(float(amount) + 0.0, 2)


def tax_for(subtotal: float) -> float:
    return money(subtotal * TAX_RATE)


def shipping_cost_for(subtotal: float, has_items: bool = True) -> float:
    if not has_items:
        return 0.0
    return 0.0 if subtotal > FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING_COST


def grand_total(subtotal: float, tax: float, shipping_cost: float, service_charge: float, discount: float) -> float:
    return money(subtotal + tax + shipping_cost + service_charge - discount)


def amounts_match(left: float, right: float) -> bool:
    return round(abs((left or 0.0) - (right or 0.0)), 2) <= MONEY_TOLERANCE
