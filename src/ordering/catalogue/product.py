"""Product snapshot held by the ordering service.

Catalog CRUD belongs to the catalog collaborator. This service keeps the
fields the workflow needs: price and status for cart and order validation,
the category surcharge for order pricing, and the stock counters the
inventory ledger adjusts.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String
from protean.utils.query import Q

from ordering.domain import ordering


class ProductStatus(Enum):
    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    REJECTED = "rejected"
    OUT_OF_STOCK = "out_of_stock"


class StockStatus(Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


@ordering.aggregate
class Product:
    name = String(required=True, max_length=255)
    vendor_id = Identifier(required=True)
    category_id = Identifier()
    price = Float(required=True, min_value=0.0)
    status = String(choices=ProductStatus, default=ProductStatus.DRAFT.value)
    image_url = String(max_length=500)
    service_charge_rate = Float(default=0.0, min_value=0.0)  # percent, from the category
    track_quantity = Boolean(default=True)
    quantity = Integer(default=0, min_value=0)
    low_stock_threshold = Integer(default=5, min_value=0)
    sales_count = Integer(default=0, min_value=0)
    total_sales = Float(default=0.0, min_value=0.0)
    updated_at = DateTime()

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value

    @property
    def stock_status(self) -> str:
        if not self.track_quantity:
            return StockStatus.IN_STOCK.value
        if self.quantity <= 0:
            return StockStatus.OUT_OF_STOCK.value
        if self.quantity <= self.low_stock_threshold:
            return StockStatus.LOW_STOCK.value
        return StockStatus.IN_STOCK.value

    def refresh(self, **attributes) -> None:
        """Overwrite catalog-owned attributes with a newer snapshot."""
        for name, value in attributes.items():
            if value is not None:
                setattr(self, name, value)
        self.updated_at = datetime.now(UTC)


@ordering.repository(part_of=Product)
class ProductRepository:
    """Adds the conditional stock update the inventory ledger relies on."""

    def read(self, product_id: str) -> Product:
        """Load straight from storage, bypassing the unit of work's identity map."""
        return self._dao.get(product_id)

    def compare_and_set_stock(
        self,
        observed: Product,
        quantity: int,
        sales_count: int,
        total_sales: float,
    ) -> bool:
        """Write new stock counters only if the row still holds the observed ones.

        Returns True when exactly one row was updated.
        """
        criteria = Q(id=observed.id, quantity=observed.quantity, sales_count=observed.sales_count)
        updated = self._dao._update_all(
            criteria,
            {"quantity": quantity, "sales_count": sales_count, "total_sales": total_sales},
        )
        return updated == 1
