import json

import pytest
from ordering.cart.items import AddToCart
from ordering.catalogue.product import Product
from ordering.catalogue.sync import SyncProduct
from ordering.notifications.channel import set_channel
from ordering.notifications.channel.fake_adapter import FakeChannel
from ordering.notifications.directory import StaticAdminDirectory, set_admin_directory
from ordering.order.approval import ApproveOrder
from ordering.order.order import Order
from ordering.order.payment import InitializePayment
from ordering.order.placement import PlaceOrder
from ordering.order.vendor_response import ConfirmVendorAssignment
from ordering.payment.gateway import set_gateway
from ordering.payment.gateway.fake_adapter import FakeGateway
from ordering.payment.reconciler import PaymentReconciler
from protean import current_domain
from protean.integrations.pytest import DomainFixture

SHIPPING = {
    "full_name": "Rahim Uddin",
    "email": "rahim@example.com",
    "phone": "01700000000",
    "address": "12 Lake Road",
    "city": "Dhaka",
    "zip_code": "1207",
}


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def admins():
    set_admin_directory(StaticAdminDirectory(["admin-001"]))
    return ["admin-001"]


@pytest.fixture()
def gateway():
    fake = FakeGateway()
    set_gateway(fake)
    return fake


@pytest.fixture()
def channel():
    fake = FakeChannel()
    set_channel(fake)
    return fake


class Workflow:
    """Drives orders through the workflow with the domain's own commands."""

    def __init__(self, gateway):
        self.gateway = gateway

    def seed_product(
        self,
        product_id,
        vendor_id="vendor-001",
        price=100.0,
        quantity=10,
        status="active",
        track_quantity=True,
        service_charge_rate=0.0,
    ):
        return current_domain.process(
            SyncProduct(
                product_id=product_id,
                name=f"Product {product_id}",
                vendor_id=vendor_id,
                price=price,
                status=status,
                track_quantity=track_quantity,
                quantity=quantity,
                service_charge_rate=service_charge_rate,
            ),
            asynchronous=False,
        )

    def add_to_cart(self, customer_id, product_id, quantity=1, variant=None):
        return current_domain.process(
            AddToCart(
                customer_id=customer_id,
                product_id=product_id,
                quantity=quantity,
                variant=json.dumps(variant) if variant else None,
            ),
            asynchronous=False,
        )

    def place(self, customer_id="cust-001"):
        return current_domain.process(
            PlaceOrder(customer_id=customer_id, shipping_address=json.dumps(SHIPPING)),
            asynchronous=False,
        )

    def approve(self, order_id):
        current_domain.process(
            ApproveOrder(order_id=order_id, actor_id="admin-001", actor_role="admin"),
            asynchronous=False,
        )

    def confirm(self, order_id, vendor_id="vendor-001"):
        return current_domain.process(
            ConfirmVendorAssignment(order_id=order_id, actor_id=vendor_id, actor_role="vendor"),
            asynchronous=False,
        )

    def request_payment(self, order_id, customer_id="cust-001"):
        return current_domain.process(
            InitializePayment(order_id=order_id, actor_id=customer_id),
            asynchronous=False,
        )

    def register_payment(self, order_id, transaction_id="TX1"):
        order = self.load(order_id)
        self.gateway.register_payment(order.order_number, transaction_id, order.pricing.total)
        return order.order_number

    def pay(self, order_id, transaction_id="TX1"):
        order_number = self.register_payment(order_id, transaction_id)
        return PaymentReconciler(self.gateway).handle_redirect_success(order_number, transaction_id)

    def awaiting_payment(self, customer_id="cust-001", vendors=("vendor-001",), quantity=2):
        """Seed one product per vendor, then place and walk the order to payment_pending."""
        for index, vendor_id in enumerate(vendors, start=1):
            product_id = f"prod-{index:03d}"
            self.seed_product(product_id, vendor_id=vendor_id)
            self.add_to_cart(customer_id, product_id, quantity=quantity)
        order_id = self.place(customer_id)
        self.approve(order_id)
        for vendor_id in vendors:
            self.confirm(order_id, vendor_id)
        self.request_payment(order_id, customer_id)
        return order_id

    def paid(self, customer_id="cust-001", vendors=("vendor-001",), quantity=2):
        order_id = self.awaiting_payment(customer_id, vendors, quantity)
        self.pay(order_id)
        return order_id

    def load(self, order_id):
        return current_domain.repository_for(Order).get(order_id)

    def product(self, product_id):
        return current_domain.repository_for(Product).get(product_id)


@pytest.fixture()
def workflow(gateway):
    return Workflow(gateway)
