import unittest

from fastapi.testclient import TestClient

from app.core.errors import StoreError
from app.deps import get_order_number_sequence, get_order_store
from app.main import app
from app.repositories.memory_order_store import InMemoryOrderStore
from app.repositories.order_store import OrderQuery
from app.services.order_numbers import InMemoryOrderNumberSequence

from factories import checkout_payload, item, stored_order

CUSTOMER = {"X-User-Id": "cust-1", "X-User-Role": "customer"}
SELLER = {"X-User-Id": "S1", "X-User-Role": "seller"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "ADMIN"}


class UnavailableOrderStore(InMemoryOrderStore):
    def find(self, query, *, skip=0, limit=None):
        raise StoreError("Order store find failed", operation="find")

    def count(self, query):
        raise StoreError("Order store count failed", operation="count")


def create_test_client(store, headers: dict | None = CUSTOMER) -> TestClient:
    sequence = InMemoryOrderNumberSequence()
    app.dependency_overrides[get_order_store] = lambda: store
    app.dependency_overrides[get_order_number_sequence] = lambda: sequence
    return TestClient(app, headers=headers)


class OrdersApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryOrderStore()
        self.client = create_test_client(self.store)
        self.addCleanup(app.dependency_overrides.clear)

    def place(self, items, **overrides) -> dict:
        response = self.client.post(
            "/api/v1/orders", json=checkout_payload(items, **overrides)
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["data"]


class TestCheckout(OrdersApiTestCase):
    def test_multi_seller_checkout_returns_every_order(self) -> None:
        response = self.client.post(
            "/api/v1/orders",
            json=checkout_payload(
                [item("p1", 10, 2, "S1"), item("p2", 30, 1, "S2")],
                tax=5,
                shipping=10,
                total=65,
            ),
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body["success"])
        data = body["data"]
        self.assertEqual(data["orderCount"], 2)
        self.assertIsNotNone(data["checkoutId"])
        self.assertEqual(data["order"], data["orders"][0])
        s1, s2 = data["orders"]
        self.assertEqual((s1["sellerId"], s1["total"]), ("S1", 26))
        self.assertEqual((s2["sellerId"], s2["total"]), ("S2", 39))
        self.assertEqual(s1["orderStatus"], "PENDING")
        self.assertEqual(s1["paymentStatus"], "PENDING")
        self.assertEqual(s1["items"][0]["productId"], "p1")
        self.assertTrue(s1["orderNumber"].startswith("ORD-"))

    def test_single_seller_checkout(self) -> None:
        data = self.place([item("p1", 10, 1, "S1")], total=10)
        self.assertEqual(data["orderCount"], 1)
        self.assertIsNone(data["checkoutId"])
        self.assertEqual(data["order"]["total"], 10)

    def test_schema_violations_are_400(self) -> None:
        payload = checkout_payload([item("p1", 10, 1, "S1")])
        payload["items"][0]["quantity"] = 0
        del payload["shippingAddress"]["zip"]

        response = self.client.post("/api/v1/orders", json=payload)

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertFalse(body["success"])
        self.assertIn("items[0].quantity", body["errors"])
        self.assertIn("shippingAddress.zip", body["errors"])
        self.assertEqual(self.store.count(OrderQuery()), 0)

    def test_empty_cart_is_400(self) -> None:
        response = self.client.post("/api/v1/orders", json=checkout_payload([]))
        self.assertEqual(response.status_code, 400)

    def test_blank_customer_is_400(self) -> None:
        response = self.client.post(
            "/api/v1/orders",
            json=checkout_payload([item("p1", 10, 1, "S1")], customerId="   "),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Invalid checkout")


class TestOrderReads(OrdersApiTestCase):
    def test_get_order_and_unknown_order(self) -> None:
        order = stored_order(self.store, [("S1", 10)])

        response = self.client.get(f"/api/v1/orders/{order.id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["order"]["orderNumber"], order.order_number)

        response = self.client.get("/api/v1/orders/4e7d1b9c-aaaa-4bbb-8ccc-ddddeeeeffff")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"success": False, "message": "Order not found"})

    def test_customer_orders_paginate(self) -> None:
        for _ in range(3):
            stored_order(self.store, [("S1", 10)], customer_id="cust-7")
        stored_order(self.store, [("S1", 10)], customer_id="cust-8")

        response = self.client.get("/api/v1/orders/customer/cust-7?page=2&limit=2")

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(len(data["orders"]), 1)
        self.assertEqual(data["pagination"], {"page": 2, "limit": 2, "total": 3, "pages": 2})

    def test_list_orders_filters_by_customer(self) -> None:
        stored_order(self.store, [("S1", 10)], customer_id="cust-7")
        stored_order(self.store, [("S1", 10)], customer_id="cust-8")

        response = self.client.get("/api/v1/orders?customerId=cust-8")
        data = response.json()["data"]
        self.assertEqual([o["customerId"] for o in data["orders"]], ["cust-8"])
        self.assertEqual(data["pagination"]["limit"], 20)

        response = self.client.get("/api/v1/orders")
        self.assertEqual(response.json()["data"]["pagination"]["total"], 2)

    def test_page_bounds_are_validated(self) -> None:
        self.assertEqual(self.client.get("/api/v1/orders?limit=101").status_code, 400)
        self.assertEqual(self.client.get("/api/v1/orders?page=0").status_code, 400)

    def test_seller_orders_are_annotated(self) -> None:
        stored_order(self.store, [("S1", 30), ("S2", 70)])

        response = self.client.get("/api/v1/orders/seller/S1")

        (order,) = response.json()["data"]["orders"]
        self.assertEqual(order["sellerSubtotal"], 30)
        self.assertEqual(order["sellerItemCount"], 1)
        self.assertEqual(order["totalItemCount"], 2)
        self.assertTrue(order["isMultiSellerOrder"])
        self.assertEqual([i["sellerId"] for i in order["items"]], ["S1"])


class TestStatusRoutes(OrdersApiTestCase):
    def test_cancel_twice(self) -> None:
        order = stored_order(self.store, [("S1", 10)])

        response = self.client.post(f"/api/v1/orders/{order.id}/cancel", headers=CUSTOMER)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["order"]["orderStatus"], "CANCELLED")

        response = self.client.post(f"/api/v1/orders/{order.id}/cancel", headers=CUSTOMER)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(), {"success": False, "message": "Order is already cancelled"}
        )

    def test_unrecognized_stored_status(self) -> None:
        order = stored_order(self.store, [("S1", 10)], status="on_hold")

        response = self.client.post(f"/api/v1/orders/{order.id}/cancel")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(),
            {"success": False, "message": "Unrecognized order status: on_hold"},
        )

        response = self.client.patch(
            f"/api/v1/orders/{order.id}/fulfillment",
            json={"orderStatus": "CONFIRMED"},
            headers=SELLER,
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()["success"])

        response = self.client.patch(
            f"/api/v1/orders/{order.id}/status",
            json={"orderStatus": "PENDING"},
            headers=ADMIN,
        )
        self.assertEqual(response.status_code, 200)
        (entry,) = self.client.get(f"/api/v1/orders/{order.id}/audit").json()["data"]["entries"]
        self.assertEqual((entry["fromStatus"], entry["toStatus"]), ("on_hold", "PENDING"))
        self.assertTrue(entry["offGraph"])

    def test_override_is_privileged_and_audited(self) -> None:
        order = stored_order(self.store, [("S1", 10)], status="DELIVERED")
        url = f"/api/v1/orders/{order.id}/status"

        response = self.client.patch(url, json={"orderStatus": "pending"}, headers=CUSTOMER)
        self.assertEqual(response.status_code, 403)
        self.assertFalse(response.json()["success"])

        response = self.client.patch(
            url, json={"orderStatus": "pending", "reason": "reship"}, headers=ADMIN
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["order"]["orderStatus"], "PENDING")

        response = self.client.get(f"/api/v1/orders/{order.id}/audit")
        (entry,) = response.json()["data"]["entries"]
        self.assertEqual(entry["operation"], "override")
        self.assertTrue(entry["offGraph"])
        self.assertEqual(entry["fromStatus"], "DELIVERED")
        self.assertEqual(entry["actorRole"], "admin")
        self.assertEqual(entry["reason"], "reship")

    def test_override_unknown_order_and_status(self) -> None:
        response = self.client.patch(
            "/api/v1/orders/missing/status", json={"orderStatus": "SHIPPED"}, headers=ADMIN
        )
        self.assertEqual(response.status_code, 404)

        order = stored_order(self.store, [("S1", 10)])
        response = self.client.patch(
            f"/api/v1/orders/{order.id}/status", json={"orderStatus": "LOST"}, headers=ADMIN
        )
        self.assertEqual(response.status_code, 400)

    def test_fulfillment_follows_graph(self) -> None:
        order = stored_order(self.store, [("S1", 10)])
        url = f"/api/v1/orders/{order.id}/fulfillment"

        response = self.client.patch(url, json={"orderStatus": "SHIPPED"}, headers=SELLER)
        self.assertEqual(response.status_code, 400)

        response = self.client.patch(url, json={"orderStatus": "confirmed"}, headers=SELLER)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["order"]["orderStatus"], "CONFIRMED")

    def test_payment_update(self) -> None:
        order = stored_order(self.store, [("S1", 10)])
        url = f"/api/v1/orders/{order.id}/payment"

        response = self.client.patch(url, json={"paymentStatus": "paid"}, headers=SELLER)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["order"]["paymentStatus"], "PAID")

        response = self.client.patch(url, json={"paymentStatus": "SETTLED"}, headers=SELLER)
        self.assertEqual(response.status_code, 400)

    def test_audit_of_unknown_order(self) -> None:
        response = self.client.get("/api/v1/orders/missing/audit")
        self.assertEqual(response.status_code, 404)


class TestSettlementRoutes(OrdersApiTestCase):
    def test_seller_stats_for_unknown_seller(self) -> None:
        response = self.client.get("/api/v1/orders/seller-stats/nobody")
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["totalOrders"], 0)
        self.assertEqual(data["totalRevenue"], 0)
        self.assertEqual(data["completionRate"], 0)
        self.assertEqual(data["avgOrderValue"], 0)

    def test_seller_earnings_with_commission_rate(self) -> None:
        stored_order(self.store, [("S1", 200)])

        response = self.client.get("/api/v1/orders/seller-earnings/S1?commissionRate=0.15")

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["summary"]["totalCommission"], 30)
        self.assertEqual(data["summary"]["totalPayout"], 170)
        self.assertEqual(data["monthlyEarnings"][0]["monthKey"], "2025-03")
        self.assertEqual(data["monthlyEarnings"][0]["period"], "March 2025")

        response = self.client.get("/api/v1/orders/seller-earnings/S1?commissionRate=2")
        self.assertEqual(response.status_code, 400)

    def test_admin_stats(self) -> None:
        stored_order(self.store, [("S1", 10)], total=12)
        stored_order(self.store, [("S2", 10)], status="CANCELLED", total=11)

        data = self.client.get("/api/v1/orders/admin-stats").json()["data"]

        self.assertEqual(data["totalOrders"], 2)
        self.assertEqual(data["totalRevenue"], 23)
        self.assertEqual(data["cancelledOrders"], 1)


class TestCallerIdentity(OrdersApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.anonymous = create_test_client(self.store, headers=None)
        self.order = stored_order(self.store, [("S1", 10)])

    def order_routes(self) -> list[tuple[str, str, dict | None]]:
        order_url = f"/api/v1/orders/{self.order.id}"
        return [
            ("POST", "/api/v1/orders", checkout_payload([item("p1", 10, 1, "S1")])),
            ("GET", "/api/v1/orders", None),
            ("GET", "/api/v1/orders/admin-stats", None),
            ("GET", "/api/v1/orders/customer/cust-1", None),
            ("GET", "/api/v1/orders/seller/S1", None),
            ("GET", "/api/v1/orders/seller-stats/S1", None),
            ("GET", "/api/v1/orders/seller-earnings/S1", None),
            ("GET", order_url, None),
            ("GET", f"{order_url}/audit", None),
            ("PATCH", f"{order_url}/status", {"orderStatus": "SHIPPED"}),
            ("PATCH", f"{order_url}/fulfillment", {"orderStatus": "CONFIRMED"}),
            ("PATCH", f"{order_url}/payment", {"paymentStatus": "PAID"}),
            ("POST", f"{order_url}/cancel", None),
        ]

    def test_every_order_route_requires_identity(self) -> None:
        for method, url, body in self.order_routes():
            with self.subTest(method=method, url=url):
                response = self.anonymous.request(method, url, json=body)
                self.assertEqual(response.status_code, 401)
                self.assertEqual(
                    response.json(),
                    {"success": False, "message": "Authentication required"},
                )

        self.assertEqual(self.store.count(OrderQuery()), 1)
        self.assertEqual(self.store.get(self.order.id).order_status, "PENDING")

    def test_unknown_or_reserved_role_is_rejected(self) -> None:
        for role in ("system", "superuser"):
            with self.subTest(role=role):
                response = self.anonymous.get(
                    "/api/v1/orders/admin-stats",
                    headers={"X-User-Id": "x", "X-User-Role": role},
                )
                self.assertEqual(response.status_code, 401)

    def test_probes_stay_open(self) -> None:
        self.assertEqual(self.anonymous.get("/api/v1/health/live").status_code, 200)
        self.assertEqual(self.anonymous.get("/metrics").status_code, 200)


class TestCrossCutting(unittest.TestCase):
    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_store_failure_hides_details(self) -> None:
        client = create_test_client(UnavailableOrderStore())

        response = client.get("/api/v1/orders/admin-stats")

        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertEqual(body["success"], False)
        self.assertEqual(body["message"], "Internal server error")
        self.assertNotIn("find", body["message"])

    def test_trace_headers(self) -> None:
        client = create_test_client(InMemoryOrderStore())
        trace_id = "4bf92f3577b34da6a3ce929d0e0e4736"

        response = client.get(
            "/api/v1/orders",
            headers={"traceparent": f"00-{trace_id}-00f067aa0ba902b7-01"},
        )

        self.assertEqual(response.headers["X-Trace-Id"], trace_id)
        self.assertIn("X-Request-Id", response.headers)
        self.assertTrue(response.headers["traceparent"].startswith(f"00-{trace_id}-"))

    def test_metrics_endpoint(self) -> None:
        client = create_test_client(InMemoryOrderStore())
        client.get("/api/v1/orders")
        response = client.get("/metrics")
        self.assertEqual(response.status_code, 200)
        self.assertIn("http_requests_total", response.text)
