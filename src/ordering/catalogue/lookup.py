"""Read-only product lookup used by carts and order drafting.

The catalog is an external collaborator; carts only ever see immutable
``ProductSnapshot`` values. The default lookup reads the Product snapshots
synchronized into this service; ``set_product_lookup`` swaps in another
source (a catalog HTTP client, or a stub in tests).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.catalogue.product import Product, ProductStatus


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: str
    name: str
    vendor_id: str
    price: float
    status: str
    track_quantity: bool
    quantity: int
    service_charge_rate: float = 0.0
    image_url: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE.value

    def availability_problem(self, quantity: int) -> str | None:
        """Why ``quantity`` units cannot be bought right now, or None."""
        if not self.is_active:
            return f"{self.name} is not available for purchase"
        if self.track_quantity and quantity > self.quantity:
            return f"Only {self.quantity} units of {self.name} are in stock"
        return None

    @classmethod
    def from_product(cls, product: Product) -> "ProductSnapshot":
        return cls(
            product_id=str(product.id),
            name=product.name,
            vendor_id=str(product.vendor_id),
            price=product.price,
            status=product.status,
            track_quantity=product.track_quantity,
            quantity=product.quantity,
            service_charge_rate=product.service_charge_rate or 0.0,
            image_url=product.image_url,
        )


class ProductLookup(ABC):
    @abstractmethod
    def find(self, product_id: str) -> ProductSnapshot | None:
        """Return the current snapshot, or None if the catalog has no such product."""
        ...


class RepositoryProductLookup(ProductLookup):
    def find(self, product_id: str) -> ProductSnapshot | None:
        try:
            product = current_domain.repository_for(Product).read(product_id)
        except ObjectNotFoundError:
            return None
        return ProductSnapshot.from_product(product)


_current_lookup: ProductLookup | None = None


def get_product_lookup() -> ProductLookup:
    global _current_lookup
    if _current_lookup is None:
        _current_lookup = RepositoryProductLookup()
    return _current_lookup


def set_product_lookup(lookup: ProductLookup) -> None:
    global _current_lookup
    _current_lookup = lookup


def reset_product_lookup() -> None:
    global _current_lookup
    _current_lookup = None
