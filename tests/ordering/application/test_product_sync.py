"""Application tests for catalog snapshot synchronization."""

from ordering.catalogue.lookup import get_product_lookup
from ordering.catalogue.product import Product
from protean import current_domain


def test_first_sync_creates_snapshot(workflow):
    workflow.seed_product("prod-001", vendor_id="vendor-a", price=99.5, quantity=7, service_charge_rate=8.0)

    product = current_domain.repository_for(Product).get("prod-001")
    assert product.price == 99.5
    assert product.quantity == 7
    assert product.service_charge_rate == 8.0


def test_resync_updates_in_place(workflow):
    workflow.seed_product("prod-001", price=100.0)
    workflow.seed_product("prod-001", price=120.0, status="inactive")

    product = current_domain.repository_for(Product).get("prod-001")
    assert product.price == 120.0
    assert product.is_active is False


def test_lookup_reads_snapshots(workflow):
    workflow.seed_product("prod-001", vendor_id="vendor-a", price=10.0)

    snapshot = get_product_lookup().find("prod-001")
    assert snapshot.vendor_id == "vendor-a"
    assert snapshot.availability_problem(1) is None
    assert get_product_lookup().find("ghost") is None


def test_low_stock_status(workflow):
    workflow.seed_product("prod-001", quantity=3)
    assert workflow.product("prod-001").stock_status == "low_stock"
