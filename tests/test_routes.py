from datetime import date

import pytest

from laundry.extensions import db
from laundry.models import ClothingType, Order
from laundry.services import orders as order_service
from laundry.services.lifecycle import OrderStatus, PaymentStatus
from laundry.services.orders import NewOrder

from .conftest import login


@pytest.fixture
def order_id(app):
    with app.app_context():
        order = order_service.create_order(NewOrder(
            customer_name="Achieng Otieno",
            phone_number="+254712345678",
            total_amount=1000.0,
            collection_date=date(2024, 1, 1),
        ))
        return order.id


def _load(app, oid):
    with app.app_context():
        order = db.session.get(Order, oid)
        return order.status, order.payment_status, order.amount_paid


class TestAuth:
    def test_login_redirects_to_dashboard(self, client):
        resp = login(client, "jane")
        assert resp.status_code == 302
        assert resp.headers["Location"].endswith("/dashboard")

    def test_wrong_password(self, client):
        resp = login(client, "jane", "not-it-123")
        assert resp.status_code == 401
        assert b"Invalid username or password." in resp.data

    def test_missing_fields(self, client):
        assert client.post("/login", data={"username": "jane"}).status_code == 400

    def test_inactive_account(self, app, client):
        with app.app_context():
            from laundry.models import User

            user = User.query.filter_by(email="jane@laundry.com").one()
            user.is_active = False
            db.session.commit()
        assert login(client, "jane").status_code == 403

    def test_logout(self, as_staff):
        resp = as_staff.get("/logout")
        assert resp.status_code == 302
        assert as_staff.get("/dashboard").status_code == 302


class TestDashboards:
    @pytest.mark.parametrize(
        "username, target",
        [("admin", "/admin/dashboard"), ("jane", "/staff/dashboard"), ("till", "/cashier/dashboard")],
    )
    def test_role_router(self, client, username, target):
        login(client, username)
        resp = client.get("/dashboard")
        assert resp.status_code == 302
        assert resp.headers["Location"].endswith(target)
        assert client.get(target).status_code == 200

    def test_staff_cannot_open_admin_pages(self, as_staff):
        for url in ("/admin/dashboard", "/reports", "/reports/orders.csv", "/cctv", "/clothing-types", "/admin/users"):
            assert as_staff.get(url).status_code == 403, url

    def test_admin_dashboard_runs_overdue_sweep(self, app, as_admin, order_id):
        resp = as_admin.get("/admin/dashboard")
        assert resp.status_code == 200
        assert b"ORD-" in resp.data
        assert _load(app, order_id)[0] is OrderStatus.OVERDUE

    def test_status_tab_filter(self, as_staff, order_id):
        resp = as_staff.get("/staff/dashboard?status=ready")
        assert resp.status_code == 200
        assert b"No orders found." in resp.data


class TestOrderViews:
    def test_new_order_form(self, app, as_staff):
        with app.app_context():
            shirt_id = ClothingType.query.filter_by(name="Shirt").one().id

        resp = as_staff.post("/orders/new", data={
            "customer_name": "Brian Kamau",
            "phone_number": "+254700111222",
            "payment_status": "unpaid",
            "item_type_id": [str(shirt_id)],
            "item_quantity": ["3"],
            "item_color": ["blue"],
        })
        assert resp.status_code == 302
        assert "/receipt/" in resp.headers["Location"]

        with app.app_context():
            order = Order.query.one()
            assert order.total_amount == 450.0
            assert order.items[0].color == "blue"

    def test_new_order_validation_error(self, as_staff):
        resp = as_staff.post("/orders/new", data={"customer_name": "", "phone_number": ""})
        assert resp.status_code == 400
        assert b"Customer name and phone number are required." in resp.data

    def test_status_json(self, app, as_staff, gateway, order_id):
        resp = as_staff.post(f"/orders/{order_id}/status", json={"status": "ready"})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["ok"] is True
        assert body["status"] == "ready"
        assert body["previous_status"] == "pending"
        assert body["sms_sent"] is True
        assert len(gateway.sent) == 1
        assert _load(app, order_id)[0] is OrderStatus.READY

    def test_status_json_sms_failure_is_warning(self, app, as_staff, gateway, order_id):
        gateway.reject = True
        body = as_staff.post(f"/orders/{order_id}/status", json={"status": "delayed"}).get_json()
        assert body["ok"] is True
        assert body["sms_sent"] is False
        assert body["warning"]
        assert _load(app, order_id)[0] is OrderStatus.DELAYED

    def test_status_unknown_value(self, as_staff, order_id):
        resp = as_staff.post(f"/orders/{order_id}/status", json={"status": "lost"})
        assert resp.status_code == 400

    def test_status_form_redirects(self, as_staff, order_id):
        resp = as_staff.post(f"/orders/{order_id}/status", data={"status": "in_progress"})
        assert resp.status_code == 302

    def test_missing_order(self, as_staff):
        assert as_staff.post("/orders/999/status", json={"status": "ready"}).status_code == 404

    def test_payment_status_json(self, app, as_cashier, order_id):
        resp = as_cashier.post(
            f"/orders/{order_id}/payment-status",
            json={"payment_status": "paid", "payment_method": "mpesa"},
        )
        assert resp.status_code == 200
        assert resp.get_json()["amount_paid"] == 1000.0
        assert _load(app, order_id)[1:] == (PaymentStatus.PAID, 1000.0)

    def test_record_payment_is_cashier_only(self, as_staff, order_id):
        resp = as_staff.post(f"/orders/{order_id}/payments", data={"amount": "100", "payment_method": "cash"})
        assert resp.status_code == 403

    def test_record_payment(self, as_cashier, order_id):
        resp = as_cashier.post(f"/orders/{order_id}/payments", data={"amount": "100", "payment_method": "cash"})
        assert resp.status_code == 302
        page = as_cashier.get(f"/receipt/{order_id}")
        assert b"KES 100.00" in page.data


class TestReceipts:
    def test_receipt_page(self, as_staff, order_id):
        resp = as_staff.get(f"/receipt/{order_id}")
        assert resp.status_code == 200
        assert b"Balance due" in resp.data
        assert b"Overdue" in resp.data

    def test_storage_fee_listed_separately(self, app, as_staff, order_id):
        with app.app_context():
            db.session.get(Order, order_id).storage_fee = 150.0
            db.session.commit()
        resp = as_staff.get(f"/receipt/{order_id}")
        assert b"Storage fee: KES 150.00" in resp.data
        assert b"Owed incl. storage: KES 1,150.00" in resp.data
        assert b"KES 1,000.00" in resp.data

    def test_receipt_pdf(self, as_staff, order_id):
        resp = as_staff.get(f"/receipt/{order_id}/pdf")
        assert resp.status_code == 200
        assert resp.mimetype == "application/pdf"
        assert resp.data.startswith(b"%PDF")


class TestTracking:
    def test_public_track(self, client, order_id):
        resp = client.get("/track?q=achieng")
        assert resp.status_code == 200
        assert b"ORD-" in resp.data

    def test_public_track_requires_term(self, client):
        assert client.get("/track?q=").status_code == 400

    def test_public_track_landing(self, client):
        assert client.get("/track").status_code == 200

    def test_staff_track(self, as_staff, order_id):
        resp = as_staff.get("/dashboard/track?q=0712")
        assert resp.status_code == 200
        assert b"No orders match your search criteria" in resp.data


class TestReportsAndFeed:
    def test_csv_download(self, as_admin, order_id):
        resp = as_admin.get("/reports/orders.csv")
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert 'filename="orders-report-' in resp.headers["Content-Disposition"]
        assert resp.data.decode().startswith("Order ID,Customer,Phone,Status")

    def test_reports_page(self, as_admin, order_id):
        assert as_admin.get("/reports").status_code == 200

    def test_api_orders(self, as_staff, order_id):
        body = as_staff.get("/api/orders").get_json()
        assert body["count"] == 1
        assert body["orders"][0]["reference"] == f"ORD-{order_id:05d}"
        assert body["orders"][0]["balance_due"] == 1000.0

    def test_api_orders_filter(self, as_staff, order_id):
        assert as_staff.get("/api/orders?status=ready").get_json()["count"] == 0
        assert as_staff.get("/api/orders?status=lost").status_code == 400

    def test_clothing_types_update(self, app, as_admin):
        resp = as_admin.post("/clothing-types", data={"name": "shirt", "price": "175"})
        assert resp.status_code == 302
        with app.app_context():
            assert ClothingType.query.filter_by(name="Shirt").one().price == 175.0

    def test_admin_creates_user(self, app, as_admin, client):
        resp = as_admin.post("/admin/users/new", data={
            "full_name": "New Hand", "username": "newhand", "role": "staff", "password": "folding99",
        })
        assert resp.status_code == 302
        as_admin.get("/logout")
        assert login(client, "newhand", "folding99").status_code == 302
