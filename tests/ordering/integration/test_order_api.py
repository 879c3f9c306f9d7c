"""Integration tests for Order API endpoints via TestClient."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from ordering.api import cart_router, order_router, register_error_handlers

CUSTOMER = {"X-User-Id": "cust-001", "X-User-Role": "customer"}
OTHER_CUSTOMER = {"X-User-Id": "cust-999", "X-User-Role": "customer"}
ADMIN = {"X-User-Id": "admin-001", "X-User-Role": "admin"}
VENDOR = {"X-User-Id": "vendor-001", "X-User-Role": "vendor"}

ADDRESS = {
    "fullName": "Rahim Uddin",
    "email": "rahim@example.com",
    "phone": "01700000000",
    "address": "12 Lake Road",
    "city": "Dhaka",
    "zipCode": "1207",
}


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(cart_router)
    app.include_router(order_router)
    register_error_handlers(app)
    return TestClient(app)


def _place(client, workflow, quantity=2):
    workflow.seed_product("prod-001")
    workflow.add_to_cart("cust-001", "prod-001", quantity=quantity)
    response = client.post("/orders", json={"shippingAddress": ADDRESS}, headers=CUSTOMER)
    assert response.status_code == 201
    return response.json()["data"]


class TestPlaceOrder:
    def test_place_order_from_cart(self, client, workflow):
        data = _place(client, workflow)

        assert data["status"] == "pending_admin_approval"
        assert data["orderNumber"].startswith("ORD-")
        assert data["pricing"]["total"] == 270.0
        assert data["billingAddress"]["fullName"] == "Rahim Uddin"
        assert data["payment"]["method"] == "sslcommerz"
        assert data["payment"]["status"] == "pending"
        assert data["adminApprovalStatus"] == "pending"

    def test_place_order_with_empty_cart(self, client):
        response = client.post("/orders", json={"shippingAddress": ADDRESS}, headers=CUSTOMER)

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_vendor_cannot_place_order(self, client, workflow):
        workflow.seed_product("prod-001")
        response = client.post("/orders", json={"shippingAddress": ADDRESS}, headers=VENDOR)

        assert response.status_code == 403

    def test_missing_shipping_address(self, client):
        response = client.post("/orders", json={}, headers=CUSTOMER)

        assert response.status_code == 400


class TestOrderQueries:
    def test_get_own_order(self, client, workflow):
        order_id = _place(client, workflow)["id"]

        response = client.get(f"/orders/{order_id}", headers=CUSTOMER)

        assert response.status_code == 200
        assert response.json()["data"]["id"] == order_id

    def test_other_customer_cannot_view(self, client, workflow):
        order_id = _place(client, workflow)["id"]

        response = client.get(f"/orders/{order_id}", headers=OTHER_CUSTOMER)

        assert response.status_code == 403
        assert response.json()["error"]["type"] == "AuthorizationError"

    def test_unknown_order(self, client):
        response = client.get("/orders/does-not-exist", headers=ADMIN)

        assert response.status_code == 404

    def test_my_orders(self, client, workflow):
        _place(client, workflow)

        response = client.get("/orders/my-orders", headers=CUSTOMER)

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data["orders"]) == 1
        assert data["pagination"] == {"current": 1, "pages": 1, "total": 1, "limit": 10}

    def test_admin_pending_queue(self, client, workflow):
        _place(client, workflow)

        response = client.get("/orders/admin/pending", headers=ADMIN)

        assert response.status_code == 200
        assert [o["status"] for o in response.json()["data"]] == ["pending_admin_approval"]

    def test_pending_queue_is_admin_only(self, client):
        response = client.get("/orders/admin/pending", headers=CUSTOMER)

        assert response.status_code == 403

    def test_vendor_sees_assigned_orders(self, client, workflow):
        order_id = _place(client, workflow)["id"]
        workflow.approve(order_id)

        response = client.get("/orders/vendor/assigned", headers=VENDOR)

        assert response.status_code == 200
        assert [o["id"] for o in response.json()["data"]] == [order_id]

    def test_customer_sees_only_own_notifications(self, client, workflow):
        order_id = _place(client, workflow)["id"]

        notifications = client.get(f"/orders/{order_id}", headers=CUSTOMER).json()["data"]["notifications"]

        assert notifications
        assert {n["recipientId"] for n in notifications} == {"cust-001"}



class TestOrderListings:
    @pytest.fixture()
    def three_orders(self, workflow):
        workflow.seed_product("prod-001")
        order_ids = []
        for _ in range(3):
            workflow.add_to_cart("cust-001", "prod-001")
            order_ids.append(workflow.place())
        workflow.approve(order_ids[0])
        return order_ids

    def test_my_orders_are_paginated(self, client, three_orders):
        first = client.get("/orders/my-orders", params={"limit": 2}, headers=CUSTOMER).json()["data"]
        second = client.get("/orders/my-orders", params={"limit": 2, "page": 2}, headers=CUSTOMER).json()["data"]

        assert len(first["orders"]) == 2
        assert len(second["orders"]) == 1
        assert first["pagination"] == {"current": 1, "pages": 2, "total": 3, "limit": 2}
        seen = {o["id"] for o in first["orders"] + second["orders"]}
        assert seen == set(three_orders)

    def test_my_orders_status_filter(self, client, three_orders):
        response = client.get("/orders/my-orders", params={"status": "pending_admin_approval"}, headers=CUSTOMER)

        data = response.json()["data"]
        assert data["pagination"]["total"] == 2
        assert {o["status"] for o in data["orders"]} == {"pending_admin_approval"}

    def test_my_orders_exclude_other_customers(self, client, three_orders):
        response = client.get("/orders/my-orders", headers=OTHER_CUSTOMER)

        assert response.json()["data"]["orders"] == []

    def test_page_must_be_positive(self, client):
        response = client.get("/orders/my-orders", params={"page": 0}, headers=CUSTOMER)

        assert response.status_code == 400

    def test_admin_lists_all_orders_with_filters(self, client, workflow, three_orders):
        workflow.add_to_cart("cust-002", "prod-001")
        workflow.place("cust-002")

        everything = client.get("/orders/admin/all", headers=ADMIN).json()["data"]
        pending = client.get(
            "/orders/admin/all",
            params={"status": "pending_admin_approval", "paymentStatus": "pending"},
            headers=ADMIN,
        ).json()["data"]

        assert everything["pagination"]["total"] == 4
        assert pending["pagination"]["total"] == 3
        assert {o["customerId"] for o in pending["orders"]} == {"cust-001", "cust-002"}

    def test_admin_list_date_range(self, client, three_orders):
        yesterday = (datetime.now(UTC) - timedelta(days=1)).isoformat()
        tomorrow = (datetime.now(UTC) + timedelta(days=1)).isoformat()

        within = client.get(
            "/orders/admin/all", params={"startDate": yesterday, "endDate": tomorrow}, headers=ADMIN
        ).json()["data"]
        future = client.get("/orders/admin/all", params={"startDate": tomorrow}, headers=ADMIN).json()["data"]

        assert within["pagination"]["total"] == 3
        assert future["pagination"]["total"] == 0

    def test_admin_list_is_admin_only(self, client):
        response = client.get("/orders/admin/all", headers=CUSTOMER)

        assert response.status_code == 403

    def test_vendor_order_history(self, client, workflow):
        order_id = workflow.awaiting_payment(vendors=("vendor-001", "vendor-b"))
        workflow.add_to_cart("cust-002", "prod-002")
        workflow.place("cust-002")

        mine = client.get("/orders/vendor/orders", headers=VENDOR).json()["data"]
        other = client.get(
            "/orders/vendor/orders", headers={"X-User-Id": "vendor-b", "X-User-Role": "vendor"}
        ).json()["data"]

        assert [o["id"] for o in mine["orders"]] == [order_id]
        assert other["pagination"]["total"] == 2

    def test_vendor_order_history_item_status_filter(self, client, workflow):
        workflow.awaiting_payment()

        confirmed = client.get("/orders/vendor/orders", params={"status": "confirmed"}, headers=VENDOR).json()["data"]
        shipped = client.get("/orders/vendor/orders", params={"status": "shipped"}, headers=VENDOR).json()["data"]

        assert confirmed["pagination"]["total"] == 1
        assert shipped["orders"] == []

    def test_vendor_order_history_is_vendor_only(self, client):
        response = client.get("/orders/vendor/orders", headers=CUSTOMER)

        assert response.status_code == 403


class TestOrderAnalytics:
    def test_admin_overview(self, client, workflow):
        workflow.awaiting_payment(vendors=("vendor-001", "vendor-b"))

        response = client.get("/orders/analytics/overview", params={"period": "7d"}, headers=ADMIN)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["period"] == "7d"
        assert data["vendorId"] is None
        assert data["overview"]["totalOrders"] == 1
        assert data["overview"]["totalRevenue"] == 480.0
        assert data["overview"]["averageOrderValue"] == 480.0
        assert data["overview"]["statusCounts"]["payment_pending"] == 1
        assert data["dailyTrends"] == [
            {"date": datetime.now(UTC).date().isoformat(), "orders": 1, "revenue": 480.0}
        ]
        assert [p["productId"] for p in data["topProducts"]] == ["prod-001", "prod-002"]

    def test_vendor_sees_only_own_figures(self, client, workflow):
        workflow.awaiting_payment(vendors=("vendor-001", "vendor-b"))

        response = client.get("/orders/analytics/overview", params={"vendorId": "vendor-b"}, headers=VENDOR)

        data = response.json()["data"]
        assert data["vendorId"] == "vendor-001"
        assert data["overview"]["totalRevenue"] == 200.0
        assert [p["productId"] for p in data["topProducts"]] == ["prod-001"]

    def test_admin_can_scope_to_a_vendor(self, client, workflow):
        workflow.awaiting_payment(vendors=("vendor-001", "vendor-b"))

        response = client.get("/orders/analytics/overview", params={"vendorId": "vendor-z"}, headers=ADMIN)

        assert response.json()["data"]["overview"]["totalOrders"] == 0

    def test_unknown_period_falls_back_to_thirty_days(self, client):
        response = client.get("/orders/analytics/overview", params={"period": "forever"}, headers=ADMIN)

        assert response.json()["data"]["period"] == "30d"

    def test_customers_have_no_analytics(self, client):
        response = client.get("/orders/analytics/overview", headers=CUSTOMER)

        assert response.status_code == 403

class TestWorkflowEndpoints:
    def test_approve_then_vendor_confirm(self, client, workflow):
        order_id = _place(client, workflow)["id"]

        response = client.put(f"/orders/admin/{order_id}/approve", json={"notes": "ok"}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "vendor_assigned"
        assert response.json()["data"]["adminNotes"] == "ok"

        response = client.put(f"/orders/vendor/{order_id}/confirm", headers=VENDOR)
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "vendor_confirmed"
        assert response.json()["message"] == "All vendors confirmed, awaiting payment"

    def test_customer_cannot_approve(self, client, workflow):
        order_id = _place(client, workflow)["id"]

        response = client.put(f"/orders/admin/{order_id}/approve", headers=CUSTOMER)

        assert response.status_code == 403

    def test_approve_twice_is_rejected(self, client, workflow):
        order_id = _place(client, workflow)["id"]
        client.put(f"/orders/admin/{order_id}/approve", headers=ADMIN)

        response = client.put(f"/orders/admin/{order_id}/approve", headers=ADMIN)

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "ConflictError"

    def test_admin_reject_requires_reason(self, client, workflow):
        order_id = _place(client, workflow)["id"]

        response = client.put(f"/orders/admin/{order_id}/reject", json={}, headers=ADMIN)

        assert response.status_code == 400

    def test_admin_reject(self, client, workflow):
        order_id = _place(client, workflow)["id"]

        response = client.put(f"/orders/admin/{order_id}/reject", json={"reason": "Fraud check"}, headers=ADMIN)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "cancelled"
        assert data["adminApprovalStatus"] == "rejected"

    def test_vendor_reject_leaves_order_for_admin_follow_up(self, client, workflow):
        order_id = _place(client, workflow)["id"]
        workflow.approve(order_id)

        response = client.put(f"/orders/vendor/{order_id}/reject", json={"reason": "Out of stock"}, headers=VENDOR)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "vendor_assigned"
        assert data["vendorAssignments"][0]["assignmentStatus"] == "rejected"
        assert data["vendorAssignments"][0]["rejectionReason"] == "Out of stock"

    def test_initialize_payment(self, client, workflow):
        order_id = _place(client, workflow)["id"]
        workflow.approve(order_id)
        workflow.confirm(order_id)

        response = client.post(f"/orders/{order_id}/payment", headers=CUSTOMER)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["amount"] == 270.0
        assert data["paymentMethod"] == "sslcommerz"
        assert workflow.load(order_id).status == "payment_pending"

    def test_payment_before_confirmation_is_rejected(self, client, workflow):
        order_id = _place(client, workflow)["id"]

        response = client.post(f"/orders/{order_id}/payment", headers=CUSTOMER)

        assert response.status_code == 400

    def test_customer_cancel(self, client, workflow):
        order_id = _place(client, workflow)["id"]

        response = client.put(f"/orders/{order_id}/cancel", json={"reason": "Changed my mind"}, headers=CUSTOMER)

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "cancelled"
        assert response.json()["data"]["cancellationReason"] == "Changed my mind"

    def test_other_customer_cannot_cancel(self, client, workflow):
        order_id = _place(client, workflow)["id"]

        response = client.put(f"/orders/{order_id}/cancel", headers=OTHER_CUSTOMER)

        assert response.status_code == 403


class TestFulfillmentEndpoints:
    def test_vendor_ships_and_delivers(self, client, workflow):
        order_id = workflow.paid()
        item_id = str(workflow.load(order_id).items[0].id)

        response = client.put(
            f"/orders/{order_id}/status", json={"itemId": item_id, "status": "processing"}, headers=VENDOR
        )
        assert response.json()["data"]["status"] == "processing"

        response = client.put(
            f"/orders/{order_id}/status",
            json={"itemId": item_id, "status": "shipped", "trackingNumber": "TRK-1"},
            headers=VENDOR,
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "shipped"
        assert response.json()["data"]["items"][0]["trackingNumber"] == "TRK-1"

        response = client.put(
            f"/orders/{order_id}/status",
            json={"itemId": item_id, "status": "delivered"},
            headers=VENDOR,
        )
        assert response.json()["data"]["status"] == "delivered"

    def test_illegal_item_transition(self, client, workflow):
        order_id = workflow.paid()
        item_id = str(workflow.load(order_id).items[0].id)

        response = client.put(
            f"/orders/{order_id}/status",
            json={"itemId": item_id, "status": "delivered"},
            headers=VENDOR,
        )

        assert response.status_code == 400

    def test_admin_refund(self, client, workflow):
        order_id = workflow.paid()
        client.put(f"/orders/{order_id}/cancel", json={"reason": "Customer request"}, headers=ADMIN)

        response = client.post(f"/orders/admin/{order_id}/refund", json={"remarks": "Full refund"}, headers=ADMIN)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "refunded"
        assert data["payment"]["status"] == "refunded"
        assert data["payment"]["refundAmount"] == 270.0

    def test_refund_rejects_non_positive_amount(self, client, workflow):
        order_id = workflow.paid()

        response = client.post(f"/orders/admin/{order_id}/refund", json={"amount": 0}, headers=ADMIN)

        assert response.status_code == 400


class TestNotificationEndpoints:
    def test_mark_own_notification_read(self, client, workflow):
        order_id = _place(client, workflow)["id"]
        notification = workflow.load(order_id).notifications_for("cust-001")[0]

        response = client.put(f"/orders/{order_id}/notifications/{notification.id}/read", headers=CUSTOMER)

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Notification marked as read"}
        assert next(n for n in workflow.load(order_id).notifications if n.id == notification.id).is_read
