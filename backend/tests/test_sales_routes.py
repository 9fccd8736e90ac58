# Overview: Pytest coverage for the HTTP contract of the sales, cash and customer routes.

from decimal import Decimal

from tillcore.models import Product
from tillcore.services import sales_service


def _headers(user=None):
    return {"X-User-Id": str(user.id)} if user else {}


class TestCreateSaleRoute:
    """POST /api/sales"""

    def test_created(self, client, db_session, cash_session, cashier, coffee, build_sale):
        response = client.post(
            "/api/sales",
            json=build_sale([(coffee.id, 2, 50)], 100, 121, tax=21, payment_method="cash"),
            headers=_headers(cashier),
        )

        assert response.status_code == 201
        body = response.get_json()
        assert body["success"] is True
        sale = body["data"]
        assert sale["total"] == 121.0
        assert sale["status"] == "completed"
        assert sale["user_id"] == cashier.id
        assert sale["cashier_name"] == "Ana Cashier"
        assert sale["customer_name"] == "Walk-in Customer"
        assert sale["payment_method_display"] == "Cash"
        assert sale["items"][0]["product_name"] == "Coffee 1kg"
        assert sale["items"][0]["quantity"] == 2.0

    def test_unknown_actor_is_null(self, client, db_session, cash_session, coffee, build_sale):
        response = client.post(
            "/api/sales",
            json=build_sale([(coffee.id, 1, 50)], 50, 50, payment_method="cash"),
            headers={"X-User-Id": "9999"},
        )
        assert response.status_code == 201
        assert response.get_json()["data"]["user_id"] is None

    def test_cash_closed(self, client, db_session, coffee, build_sale):
        response = client.post(
            "/api/sales", json=build_sale([(coffee.id, 1, 50)], 50, 50, payment_method="cash"),
        )

        assert response.status_code == 400
        assert response.get_json() == {
            "success": False,
            "code": "CASH_CLOSED",
            "message": "The cash register is closed. Open a cash session first.",
        }

    def test_empty_body(self, client, db_session, cash_session):
        response = client.post("/api/sales", data="not json", content_type="text/plain")
        assert response.status_code == 400
        assert response.get_json()["code"] == "NO_ITEMS"

    def test_credit_limit_exceeded(self, client, db_session, cash_session, coffee, customer, build_sale):
        customer.credit_limit = Decimal("80.00")
        db_session.commit()

        response = client.post(
            "/api/sales",
            json=build_sale(
                [(coffee.id, 3, 50)], 150, 150,
                payment_methods=[
                    {"method": "cash", "amount": 50},
                    {"method": "on_account", "amount": 100},
                ],
                customer_id=customer.id,
            ),
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body["success"] is False
        assert body["code"] == "CREDIT_LIMIT_EXCEEDED"

    def test_product_not_found(self, client, db_session, cash_session, build_sale):
        response = client.post(
            "/api/sales", json=build_sale([(999, 1, 50)], 50, 50, payment_method="cash"),
        )
        assert response.status_code == 400
        assert response.get_json()["code"] == "PRODUCT_NOT_FOUND"

    def test_internal_error_hides_details(self, client, db_session, cash_session, coffee, build_sale, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(sales_service.inventory_service, "apply_outflow", boom)

        response = client.post(
            "/api/sales", json=build_sale([(coffee.id, 1, 50)], 50, 50, payment_method="cash"),
        )

        assert response.status_code == 500
        body = response.get_json()
        assert body["code"] == "SALE_CREATE_ERROR"
        assert "details" not in body
        assert db_session.get(Product, coffee.id).stock == Decimal("10")

    def test_internal_error_details_in_development(
        self, client, app, db_session, cash_session, coffee, build_sale, monkeypatch
    ):
        def boom(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(sales_service.inventory_service, "apply_outflow", boom)
        monkeypatch.setitem(app.config, "EXPOSE_ERROR_DETAILS", True)

        response = client.post(
            "/api/sales", json=build_sale([(coffee.id, 1, 50)], 50, 50, payment_method="cash"),
        )

        assert response.status_code == 500
        assert response.get_json()["details"] == "disk on fire"


class TestCancelSaleRoute:
    """POST /api/sales/<id>/cancel"""

    def test_cancelled(self, client, db_session, cash_session, manager, coffee, build_sale):
        sale = sales_service.create_sale(build_sale([(coffee.id, 3, 50)], 150, 150, payment_method="cash"))

        response = client.post(
            f"/api/sales/{sale.id}/cancel",
            json={"reason": "Damaged"},
            headers=_headers(manager),
        )

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["saleId"] == sale.id
        assert data["reason"] == "Damaged"
        assert data["stockRestored"] == 1
        assert data["totalReverted"] == 150.0
        assert data["cancelled_by"] == manager.id
        assert data["cancelled_at"].endswith("Z")

        detail = client.get(f"/api/sales/{sale.id}").get_json()["data"]
        assert detail["status"] == "cancelled"
        assert detail["cancelled_by_name"] == "Marco Manager"

    def test_cancel_without_body_uses_default_reason(self, client, db_session, cash_session, coffee, build_sale):
        sale = sales_service.create_sale(build_sale([(coffee.id, 1, 50)], 50, 50, payment_method="cash"))

        response = client.post(f"/api/sales/{sale.id}/cancel")

        assert response.status_code == 200
        assert response.get_json()["data"]["reason"] == "Cancelled by user"

    def test_cancel_twice(self, client, db_session, cash_session, coffee, build_sale):
        sale = sales_service.create_sale(build_sale([(coffee.id, 1, 50)], 50, 50, payment_method="cash"))
        client.post(f"/api/sales/{sale.id}/cancel", json={"reason": "First"})

        response = client.post(f"/api/sales/{sale.id}/cancel", json={"reason": "Second"})

        assert response.status_code == 404
        assert response.get_json()["code"] == "SALE_NOT_FOUND_OR_CANCELLED"

    def test_cancel_invalid_id(self, client, db_session):
        response = client.post("/api/sales/abc/cancel", json={})
        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_SALE_ID"


class TestReadRoutes:
    """GET /api/sales and GET /api/sales/<id>"""

    def test_list(self, client, db_session, cash_session, coffee, build_sale):
        for _ in range(3):
            sales_service.create_sale(build_sale([(coffee.id, 1, 50)], 50, 50, payment_method="cash"))

        response = client.get("/api/sales?limit=2&page=1")

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert len(data["sales"]) == 2
        assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
        assert data["sales"][0]["items_count"] == 1

    def test_list_invalid_date(self, client, db_session):
        response = client.get("/api/sales?start_date=31-12-2024")
        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_DATE"

    def test_detail_not_found(self, client, db_session):
        response = client.get("/api/sales/12345")
        assert response.status_code == 404
        assert response.get_json()["code"] == "SALE_NOT_FOUND"

    def test_detail_invalid_id(self, client, db_session):
        response = client.get("/api/sales/-1")
        assert response.status_code == 400
        assert response.get_json()["code"] == "INVALID_SALE_ID"


class TestCashRoutes:
    """/api/cash"""

    def test_status_closed(self, client, db_session):
        response = client.get("/api/cash/status")
        assert response.status_code == 200
        assert response.get_json()["data"] == {"is_open": False, "session": None}

    def test_open_status_close(self, client, db_session, cashier):
        opened = client.post("/api/cash/open", json={"opening_amount": 200}, headers=_headers(cashier))
        assert opened.status_code == 201
        assert opened.get_json()["data"]["opened_by"] == cashier.id

        again = client.post("/api/cash/open", json={"opening_amount": 10})
        assert again.status_code == 400
        assert again.get_json()["code"] == "CASH_ALREADY_OPEN"

        status = client.get("/api/cash/status").get_json()["data"]
        assert status["is_open"] is True
        assert status["expected_cash"] == 200.0

        closed = client.post("/api/cash/close", json={"closing_amount": 200}, headers=_headers(cashier))
        assert closed.status_code == 200
        assert closed.get_json()["data"]["session"]["status"] == "closed"

        twice = client.post("/api/cash/close", json={})
        assert twice.status_code == 400
        assert twice.get_json()["code"] == "CASH_CLOSED"


class TestCustomerAndHealthRoutes:

    def test_balance(self, client, db_session, cash_session, coffee, customer, build_sale):
        sales_service.create_sale(
            build_sale([(coffee.id, 1, 50)], 50, 50, payment_method="on_account", customer_id=customer.id),
        )

        response = client.get(f"/api/customers/{customer.id}/balance")

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["balance"] == 50.0
        assert data["credit_limit"] == 500.0
        assert data["available_credit"] == 450.0

    def test_balance_unknown_customer(self, client, db_session):
        response = client.get("/api/customers/999/balance")
        assert response.status_code == 400
        assert response.get_json()["code"] == "CUSTOMER_NOT_FOUND"

    def test_health(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "ok"
        assert body["database"]["details"] == {"outbox_pending": 0, "outbox_failed": 0}
