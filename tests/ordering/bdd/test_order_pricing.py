"""BDD tests for cart and order pricing."""

import pytest
from pytest_bdd import parsers, scenarios, then, when

scenarios("features/order_pricing.feature")


@when("the customer places the order", target_fixture="order_id")
def _(workflow):
    return workflow.place("cust-001")


@then(parsers.cfparse("the order {field} is {amount:g}"))
def _(workflow, order_id, field, amount):
    pricing = workflow.load(order_id).pricing
    assert getattr(pricing, field.replace(" ", "_")) == pytest.approx(amount)
