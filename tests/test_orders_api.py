from decimal import Decimal
from unittest.mock import patch

from tests.base import StorefrontApiBase, utc

from storefront.models.order import Order
from storefront.models.user import User


class OrderListTests(StorefrontApiBase):
    def setUp(self):
        super().setUp()
        self.admin = self.create_user(email="admin@example.com", admin=True)
        self.customer = self.create_user(email="buyer@example.com", name="Buyer")

    def test_non_admin_is_forbidden_before_any_query(self):
        with patch("storefront.api.orders.run_list_query") as run:
            response = self.client.get(
                "/orders",
                params={"status": "shipped"},
                headers=self.auth_headers(self.customer),
            )
        self.assertEqual(response.status_code, 403)
        run.assert_not_called()

    def test_status_filter(self):
        self.create_order(order_number=1, status="shipped")
        self.create_order(order_number=2, status="pending")
        body = self.client.get("/orders", params={"status": "shipped"}, headers=self.auth_headers(self.admin)).json()
        self.assertEqual([o["orderNumber"] for o in body["orders"]], [1])
        self.assertEqual(body["pagination"]["totalOrders"], 1)

        body = self.client.get("/orders", params={"status": "lost"}, headers=self.auth_headers(self.admin)).json()
        self.assertEqual(body["pagination"]["totalOrders"], 2)

    def test_order_date_range_is_inclusive_to_end_of_day(self):
        self.create_order(order_number=1, created_at=utc(2024, 6, 30, 23, 59, 59))
        self.create_order(order_number=2, created_at=utc(2024, 7, 1, 0, 0, 0))
        self.create_order(order_number=3, created_at=utc(2024, 8, 1, 23, 59, 59))
        self.create_order(order_number=4, created_at=utc(2024, 8, 2, 0, 0, 0))
        body = self.client.get(
            "/orders",
            params={"orderDateFrom": "2024-07-01", "orderDateTo": "2024-08-01"},
            headers=self.auth_headers(self.admin),
        ).json()
        self.assertEqual(sorted(o["orderNumber"] for o in body["orders"]), [2, 3])

    def test_total_amount_range_and_sort(self):
        self.create_order(order_number=1, total_amount="50")
        self.create_order(order_number=2, total_amount="150")
        self.create_order(order_number=3, total_amount="250")
        body = self.client.get(
            "/orders",
            params={"totalAmountFrom": "100", "sortField": "totalAmount", "sortOrder": "asc"},
            headers=self.auth_headers(self.admin),
        ).json()
        self.assertEqual([o["orderNumber"] for o in body["orders"]], [2, 3])

    def test_search_matches_address_email_and_order_number(self):
        self.create_order(order_number=7, delivery_address="Baker street 221b")
        self.create_order(order_number=8, email="special@example.com")
        self.create_order(order_number=9)
        headers = self.auth_headers(self.admin)
        by_address = self.client.get("/orders", params={"search": "baker"}, headers=headers).json()
        self.assertEqual([o["orderNumber"] for o in by_address["orders"]], [7])
        by_email = self.client.get("/orders", params={"search": "SPECIAL@"}, headers=headers).json()
        self.assertEqual([o["orderNumber"] for o in by_email["orders"]], [8])
        by_number = self.client.get("/orders", params={"search": "9"}, headers=headers).json()
        self.assertEqual([o["orderNumber"] for o in by_number["orders"]], [9])

    def test_limit_is_capped_at_ten(self):
        for number in range(1, 13):
            self.create_order(order_number=number)
        body = self.client.get("/orders", params={"limit": "50"}, headers=self.auth_headers(self.admin)).json()
        self.assertEqual(len(body["orders"]), 10)
        self.assertEqual(body["pagination"]["totalPages"], 2)

    def test_repeated_filtered_listing_is_stable(self):
        for number in range(1, 9):
            self.create_order(order_number=number, total_amount="100", status="pending", created_at=utc(2024, 5, 1))
        params = {"status": "pending", "sortField": "totalAmount", "sortOrder": "desc", "page": "2", "limit": "3"}
        headers = self.auth_headers(self.admin)
        first = self.client.get("/orders", params=params, headers=headers)
        second = self.client.get("/orders", params=params, headers=headers)
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json(), second.json())
        self.assertEqual(len(first.json()["orders"]), 3)

    def test_my_orders_are_scoped_to_owner(self):
        other = self.create_user(email="other@example.com")
        self.create_order(order_number=1, customer=self.customer)
        self.create_order(order_number=2, customer=other)
        body = self.client.get("/orders/me", headers=self.auth_headers(self.customer)).json()
        self.assertEqual([o["orderNumber"] for o in body["orders"]], [1])
        self.assertEqual(body["pagination"]["pageSize"], 5)

    def test_my_orders_reject_search(self):
        response = self.client.get("/orders/me", params={"search": "1"}, headers=self.auth_headers(self.customer))
        self.assertEqual(response.status_code, 400)

    def test_get_my_order_by_number(self):
        self.create_order(order_number=5, customer=self.customer)
        headers = self.auth_headers(self.customer)
        self.assertEqual(self.client.get("/orders/me/5", headers=headers).status_code, 200)
        self.assertEqual(self.client.get("/orders/me/6", headers=headers).status_code, 404)
        self.assertEqual(self.client.get("/orders/me/abc", headers=headers).status_code, 400)

    def test_admin_get_by_number(self):
        self.create_order(order_number=5, customer=self.customer)
        response = self.client.get("/orders/5", headers=self.auth_headers(self.admin))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["customer"]["email"], "buyer@example.com")
        self.assertEqual(self.client.get("/orders/5", headers=self.auth_headers(self.customer)).status_code, 403)


class PlaceOrderTests(StorefrontApiBase):
    def setUp(self):
        super().setUp()
        self.admin = self.create_user(email="admin@example.com", admin=True)
        self.customer = self.create_user(email="buyer@example.com", name="Buyer")
        self.pen = self.create_product(title="Pen", category="office", price=2.5)
        self.book = self.create_product(title="Book", category="office", price=10)
        self.sample = self.create_product(title="Sample", category="office", price=None)

    def _payload(self, **overrides):
        payload = {
            "address": "Main street 1",
            "payment": "card",
            "phone": "+7 (999) 123-45-67",
            "email": "buyer@example.com",
            "items": [str(self.pen.id), str(self.book.id)],
            "comment": "<b>ring</b> twice",
        }
        payload.update(overrides)
        return payload

    def _place(self, **overrides):
        return self.client.post("/orders", json=self._payload(**overrides), headers=self.auth_headers(self.customer))

    def test_place_order_updates_customer_aggregates(self):
        first = self._place()
        self.assertEqual(first.status_code, 201)
        body = first.json()
        self.assertEqual(body["orderNumber"], 1)
        self.assertEqual(body["totalAmount"], 12.5)
        self.assertEqual(body["status"], "pending")
        self.assertEqual(body["phone"], "79991234567")
        self.assertEqual(body["comment"], "ring twice")
        self.assertEqual([p["title"] for p in body["products"]], ["Book", "Pen"])

        second = self._place(items=[str(self.book.id)])
        self.assertEqual(second.json()["orderNumber"], 2)

        with self.SessionLocal() as db:
            customer = db.get(User, self.customer.id)
            self.assertEqual(customer.order_count, 2)
            self.assertEqual(Decimal(str(customer.total_amount)), Decimal("22.5"))
            self.assertIsNotNone(customer.last_order_date)
            last = db.get(Order, customer.last_order_id)
            self.assertEqual(last.order_number, 2)

    def test_requires_authentication(self):
        self.assertEqual(self.client.post("/orders", json=self._payload()).status_code, 401)

    def test_validation_errors(self):
        cases = [
            {"address": ""},
            {"items": []},
            {"items": "not-a-list"},
            {"payment": "barter"},
            {"phone": "1" * 31},
            {"phone": "12345"},
            {"email": "nope"},
            {"items": ["not-a-uuid"]},
            {"items": [str(self.pen.id)] * 21},
        ]
        for overrides in cases:
            response = self._place(**overrides)
            self.assertEqual(response.status_code, 400, overrides)

    def test_unpriced_or_missing_products_are_rejected(self):
        self.assertEqual(self._place(items=[str(self.sample.id)]).status_code, 400)
        self.assertEqual(self._place(items=["00000000-0000-0000-0000-000000000000"]).status_code, 400)
        with self.SessionLocal() as db:
            self.assertEqual(db.query(Order).count(), 0)

    def test_status_update_and_delete(self):
        number = self._place().json()["orderNumber"]
        headers = self.auth_headers(self.admin)

        bad = self.client.patch(f"/orders/{number}", json={"status": "teleported"}, headers=headers)
        self.assertEqual(bad.status_code, 400)
        ok = self.client.patch(f"/orders/{number}", json={"status": "shipped"}, headers=headers)
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.json()["status"], "shipped")
        self.assertEqual(self.client.patch("/orders/999", json={"status": "shipped"}, headers=headers).status_code, 404)

        with self.SessionLocal() as db:
            order_id = db.query(Order).filter(Order.order_number == number).one().id
        deleted = self.client.delete(f"/orders/{order_id}", headers=headers)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(deleted.json()["orderNumber"], number)
        self.assertEqual(self.client.delete(f"/orders/{order_id}", headers=headers).status_code, 404)
        self.assertEqual(self.client.delete("/orders/not-a-uuid", headers=headers).status_code, 400)
        with self.SessionLocal() as db:
            self.assertIsNone(db.get(User, self.customer.id).last_order_id)
