"""Catalog synchronization: the catalog collaborator pushes product snapshots here."""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from ordering.catalogue.product import Product
from ordering.domain import ordering

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Product")
class SyncProduct:
    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    vendor_id = Identifier(required=True)
    category_id = Identifier()
    price = Float(required=True, min_value=0.0)
    status = String(max_length=20)
    image_url = String(max_length=500)
    service_charge_rate = Float(min_value=0.0)
    track_quantity = Boolean()
    quantity = Integer(min_value=0)
    low_stock_threshold = Integer(min_value=0)


@ordering.command_handler(part_of=Product)
class ProductSyncHandler:
    @handle(SyncProduct)
    def sync_product(self, command):
        repo = current_domain.repository_for(Product)
        attributes = {
            "name": command.name,
            "vendor_id": command.vendor_id,
            "category_id": command.category_id,
            "price": command.price,
            "status": command.status,
            "image_url": command.image_url,
            "service_charge_rate": command.service_charge_rate,
            "track_quantity": command.track_quantity,
            "quantity": command.quantity,
            "low_stock_threshold": command.low_stock_threshold,
        }

        try:
            product = repo.get(command.product_id)
            product.refresh(**attributes)
        except ObjectNotFoundError:
            product = Product(id=command.product_id, **{k: v for k, v in attributes.items() if v is not None})
            logger.info("Product snapshot created", product_id=str(command.product_id))

        repo.add(product)
        return str(product.id)
