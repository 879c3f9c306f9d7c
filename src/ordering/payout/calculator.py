"""Vendor payout computation.

A pure function over order items: payouts are derived data, recomputed from
the items whenever their settlement eligibility may have changed.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

from ordering.shared.pricing import money

COMMISSION_RATE = 0.10
PAYOUT_SERVICE_CHARGE_RATE = 0.02

# Item statuses that no longer settle to the vendor
NON_SETTLING_STATUSES = frozenset({"cancelled", "refunded"})


@dataclass(frozen=True)
class PayoutRecord:
    vendor_id: str
    amount: float
    commission: float
    service_charge: float
    net_amount: float


def calculate_vendor_payouts(items: Iterable) -> list[PayoutRecord]:
    """Group settling items by vendor and split each vendor's amount.

    ``items`` only needs ``vendor_id``, ``total_price`` and ``item_status``.
    Records come back sorted by vendor id so repeated runs compare equal.
    """
    amounts: dict[str, float] = defaultdict(float)
    for item in items:
        if item.item_status in NON_SETTLING_STATUSES:
            continue
        amounts[str(item.vendor_id)] += item.total_price

    records = []
    for vendor_id in sorted(amounts):
        amount = money(amounts[vendor_id])
        commission = money(amount * COMMISSION_RATE)
        service_charge = money(amount * PAYOUT_SERVICE_CHARGE_RATE)
        records.append(
            PayoutRecord(
                vendor_id=vendor_id,
                amount=amount,
                commission=commission,
                service_charge=service_charge,
                net_amount=money(amount - commission - service_charge),
            )
        )
    return records
