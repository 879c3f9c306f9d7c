"""Shared BDD fixtures and step definitions for the ordering workflow."""

import pytest
from ordering.cart.cart import Cart
from ordering.errors import MarketplaceError
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

CUSTOMER_ID = "cust-001"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Holds the exception raised by a When step, if any."""
    return {"exc": None}


@pytest.fixture()
def attempt(error):
    """Run a step action, recording a workflow failure instead of raising it."""

    def _attempt(action, *args, **kwargs):
        try:
            return action(*args, **kwargs)
        except (MarketplaceError, ValidationError) as exc:
            error["exc"] = exc
            return None

    return _attempt


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('product "{product_id}" from vendor "{vendor_id}" priced {price:g} with {quantity:d} in stock'))
def _(workflow, product_id, vendor_id, price, quantity):
    workflow.seed_product(product_id, vendor_id=vendor_id, price=price, quantity=quantity)


@given(
    parsers.cfparse('product "{product_id}" from vendor "{vendor_id}" priced {price:g} with a {rate:d}% service charge')
)
def _(workflow, product_id, vendor_id, price, rate):
    workflow.seed_product(product_id, vendor_id=vendor_id, price=price, service_charge_rate=float(rate))


@given(parsers.cfparse('the customer has {quantity:d} of "{product_id}" in the cart'))
def _(workflow, quantity, product_id):
    workflow.add_to_cart(CUSTOMER_ID, product_id, quantity=quantity)


@given("the customer placed the order", target_fixture="order_id")
def _(workflow):
    return workflow.place(CUSTOMER_ID)


@given("the admin approved the order")
def _(workflow, order_id):
    workflow.approve(order_id)


@given("the order is awaiting payment", target_fixture="order_id")
def _(workflow):
    order_id = workflow.place(CUSTOMER_ID)
    workflow.approve(order_id)
    for vendor_id in workflow.load(order_id).vendor_ids:
        workflow.confirm(order_id, vendor_id)
    workflow.request_payment(order_id, CUSTOMER_ID)
    return order_id


@given("the order was placed and paid", target_fixture="order_id")
def _(workflow):
    order_id = workflow.place(CUSTOMER_ID)
    workflow.approve(order_id)
    for vendor_id in workflow.load(order_id).vendor_ids:
        workflow.confirm(order_id, vendor_id)
    workflow.request_payment(order_id, CUSTOMER_ID)
    workflow.pay(order_id)
    return order_id


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(workflow, order_id, status):
    assert workflow.load(order_id).status == status


@then(parsers.cfparse('the payment status is "{status}"'))
def _(workflow, order_id, status):
    assert workflow.load(order_id).payment_status == status


@then(parsers.cfparse('product "{product_id}" has {quantity:d} in stock'))
def _(workflow, product_id, quantity):
    assert workflow.product(product_id).quantity == quantity


@then(parsers.cfparse('the action fails with a "{error_type}"'))
def _(error, error_type):
    assert error["exc"] is not None
    assert type(error["exc"]).__name__ == error_type


@then(parsers.cfparse("the cart {field} is {amount:g}"))
def _(field, amount):
    cart = current_domain.repository_for(Cart).get(CUSTOMER_ID)
    assert getattr(cart, field.replace(" ", "_")) == pytest.approx(amount)
