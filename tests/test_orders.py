from datetime import date, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from laundry.extensions import db
from laundry.models import ClothingType, Customer, Order, Payment
from laundry.services import orders as order_service
from laundry.services.lifecycle import OrderStatus, PaymentMethod, PaymentStatus, today_eat
from laundry.services.orders import ItemInput, NewOrder, OrderValidationError


def _new(**kwargs):
    data = {
        "customer_name": "Achieng Otieno",
        "phone_number": "+254712345678",
        "total_amount": 1000.0,
    }
    data.update(kwargs)
    return order_service.create_order(NewOrder(**data))


def _fail_commit(monkeypatch):
    def boom():
        raise OperationalError("UPDATE orders", {}, Exception("database is locked"))

    monkeypatch.setattr(db.session, "commit", boom)


def _stored_status(order_id):
    return db.session.execute(db.select(Order.status).where(Order.id == order_id)).scalar_one()


class TestCreateOrder:
    def test_defaults(self, ctx):
        order = _new()
        assert order.id is not None
        assert order.status is OrderStatus.PENDING
        assert order.payment_status is PaymentStatus.UNPAID
        assert order.amount_paid == 0.0
        assert order.balance_due == 1000.0
        assert order.collection_date == today_eat() + timedelta(days=3)
        assert order.reference == f"ORD-{order.id:05d}"

    def test_model_default_collection_date_uses_nairobi_today(self, ctx):
        customer = Customer(full_name="Walk In", phone_number="+254711000000")
        order = Order(customer=customer, total_amount=100.0)
        db.session.add(order)
        db.session.commit()
        assert order.collection_date == today_eat() + timedelta(days=3)
        assert order.to_dict()["amount_owed"] == 100.0

    def test_customer_reused_by_phone(self, ctx):
        first = _new()
        second = _new(customer_name="Achieng O.", phone_number="+254 712 345 678")
        assert first.customer_id == second.customer_id
        assert Customer.query.count() == 1

    def test_total_from_items(self, ctx):
        shirt = ClothingType.query.filter_by(name="Shirt").one()
        duvet = ClothingType.query.filter_by(name="Duvet").one()
        order = _new(
            total_amount=None,
            items=[ItemInput(shirt.id, 2, "white"), ItemInput(duvet.id, 1)],
        )
        assert order.total_amount == 1100.0
        assert sorted(i.subtotal for i in order.items) == [300.0, 800.0]

    def test_paid_fills_amount_and_records_payment(self, ctx, gateway):
        order = _new(payment_status="paid", payment_method="cash")
        assert order.amount_paid == 1000.0
        assert order.balance_due == 0.0
        assert Payment.query.filter_by(order_id=order.id).count() == 1
        assert gateway.alerts == []

    def test_mpesa_deposit_alerts_the_shop(self, ctx, gateway):
        order = _new(payment_status="deposit", payment_method="mpesa", amount_paid=400.0)
        assert order.amount_paid == 400.0
        assert order.payment_method is PaymentMethod.MPESA
        assert len(gateway.alerts) == 1
        assert order.reference in gateway.alerts[0]["Body"]
        assert "KES 400.00" in gateway.alerts[0]["Body"]

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"customer_name": ""}, "Customer name and phone number are required."),
            ({"phone_number": "12ab"}, "Phone number is not valid."),
            ({"payment_status": "paid"}, "Please select a payment method."),
            ({"payment_status": "deposit", "payment_method": "cash"}, "Please enter the deposit amount."),
            (
                {"payment_status": "deposit", "payment_method": "cash", "amount_paid": 1500.0},
                "Deposit cannot exceed total amount.",
            ),
            ({"total_amount": None}, "Total amount is required."),
        ],
    )
    def test_validation(self, ctx, kwargs, message):
        with pytest.raises(OrderValidationError) as exc:
            _new(**kwargs)
        assert message in exc.value.errors
        assert Order.query.count() == 0


class TestChangeStatus:
    def test_ready_sends_one_sms(self, ctx, gateway):
        order = _new()
        result = order_service.change_status(order, "ready")

        assert result.ok and result.sms_sent
        assert result.previous is OrderStatus.PENDING
        assert result.current is OrderStatus.READY
        assert len(gateway.sent) == 1
        assert gateway.sent[0]["to"] == "+254712345678"
        assert order.reference in gateway.sent[0]["message"]
        assert "Balance due: KES 1,000.00" in gateway.sent[0]["message"]

    def test_ready_to_delayed_sends_delay_notice(self, ctx, gateway):
        order = _new()
        order_service.change_status(order, "ready")
        gateway.sent.clear()

        result = order_service.change_status(order, OrderStatus.DELAYED)

        assert result.ok
        assert len(gateway.sent) == 1
        assert "ORD-" in gateway.sent[0]["message"]
        assert "delayed" in gateway.sent[0]["message"]
        assert _stored_status(order.id) is OrderStatus.DELAYED

    def test_reselecting_status_is_noop(self, ctx, gateway):
        order = _new()
        order_service.change_status(order, "ready")
        gateway.sent.clear()

        result = order_service.change_status(order, "ready")
        assert result.ok and not result.sms_sent
        assert gateway.sent == []

    @pytest.mark.parametrize("target", ["in_progress", "collected", "overdue"])
    def test_silent_transitions(self, ctx, gateway, target):
        order = _new()
        result = order_service.change_status(order, target)
        assert result.ok and not result.sms_sent
        assert gateway.sent == []
        assert _stored_status(order.id).value == target

    def test_sms_failure_keeps_status(self, ctx, gateway):
        order = _new()
        gateway.reject = True

        result = order_service.change_status(order, "ready")

        assert result.ok
        assert not result.sms_sent
        assert "SMS" in result.warning
        assert _stored_status(order.id) is OrderStatus.READY

    def test_write_failure_restores_previous_status(self, ctx, gateway, monkeypatch):
        order = _new()
        _fail_commit(monkeypatch)

        result = order_service.change_status(order, "ready")

        assert not result.ok
        assert result.error == "Failed to update order status."
        assert result.current is OrderStatus.PENDING
        assert order.status is OrderStatus.PENDING
        assert gateway.sent == []

        assert _stored_status(order.id) is OrderStatus.PENDING

    def test_unknown_status_raises(self, ctx):
        order = _new()
        with pytest.raises(ValueError):
            order_service.change_status(order, "lost")


class TestChangePaymentStatus:
    def test_paid_then_unpaid(self, ctx):
        order = _new()
        result = order_service.change_payment_status(order, "paid", "cash")
        assert result.ok
        assert order.amount_paid == 1000.0
        assert order.payment_method is PaymentMethod.CASH

        result = order_service.change_payment_status(order, "unpaid")
        assert result.ok and result.previous is PaymentStatus.PAID
        assert order.amount_paid == 0.0
        assert order.payment_method is None

    def test_deposit_keeps_amount(self, ctx):
        order = _new(payment_status="deposit", payment_method="cash", amount_paid=250.0)
        order_service.change_payment_status(order, "paid")
        order_service.change_payment_status(order, "deposit")
        assert order.amount_paid == 1000.0

    def test_write_failure_restores_values(self, ctx, monkeypatch):
        order = _new(payment_status="deposit", payment_method="cash", amount_paid=250.0)
        _fail_commit(monkeypatch)

        result = order_service.change_payment_status(order, "paid", "mpesa")

        assert not result.ok
        assert order.payment_status is PaymentStatus.DEPOSIT
        assert order.amount_paid == 250.0
        assert order.payment_method is PaymentMethod.CASH

    def test_unknown_method_leaves_order_untouched(self, ctx):
        order = _new(payment_status="deposit", payment_method="cash", amount_paid=250.0)

        with pytest.raises(ValueError):
            order_service.change_payment_status(order, "paid", "bitcoin")

        assert order.payment_status is PaymentStatus.DEPOSIT
        assert order.amount_paid == 250.0
        db.session.commit()
        stored = db.session.execute(
            db.select(Order.payment_status, Order.amount_paid).where(Order.id == order.id)
        ).one()
        assert tuple(stored) == (PaymentStatus.DEPOSIT, 250.0)


class TestRecordPayment:
    def test_mpesa_payment_is_audited_and_alerted(self, ctx, gateway):
        order = _new()
        payment = order_service.record_payment(order, "300", "mpesa", " QWE123ABC ")
        assert payment.amount == 300.0
        assert payment.reference_number == "QWE123ABC"
        assert len(gateway.alerts) == 1
        # audit trail only
        assert order.amount_paid == 0.0

    @pytest.mark.parametrize("amount, method", [("abc", "cash"), ("0", "cash"), ("50", "pending"), ("50", "card")])
    def test_rejects_bad_input(self, ctx, amount, method):
        order = _new()
        with pytest.raises(OrderValidationError):
            order_service.record_payment(order, amount, method)


class TestQueries:
    def test_search_matches_name_or_phone(self, ctx):
        _new()
        _new(customer_name="Brian Kamau", phone_number="+254700111222")

        assert [o.customer.full_name for o in order_service.search_orders("achieng")] == ["Achieng Otieno"]
        assert [o.customer.full_name for o in order_service.search_orders("700111")] == ["Brian Kamau"]
        assert order_service.search_orders("nobody") == []

    def test_search_requires_a_term(self, ctx):
        with pytest.raises(OrderValidationError):
            order_service.search_orders("   ")

    def test_list_orders_by_status(self, ctx):
        a = _new()
        b = _new()
        order_service.change_status(b, "in_progress")
        assert [o.id for o in order_service.list_orders("pending")] == [a.id]
        assert {o.id for o in order_service.list_orders("all")} == {a.id, b.id}


class TestOverdueSweep:
    def test_marks_open_orders_past_threshold(self, ctx, gateway):
        stale = _new(collection_date=date(2024, 1, 1))
        collected = _new(collection_date=date(2024, 1, 1))
        fresh = _new(collection_date=date(2024, 3, 1))
        order_service.change_status(collected, "collected")

        changed = order_service.mark_overdue_orders(today=date(2024, 4, 15))

        assert changed == 1
        assert _stored_status(stale.id) is OrderStatus.OVERDUE
        assert _stored_status(collected.id) is OrderStatus.COLLECTED
        assert _stored_status(fresh.id) is OrderStatus.PENDING
        assert gateway.sent == []

    def test_second_run_changes_nothing(self, ctx):
        _new(collection_date=date(2024, 1, 1))
        assert order_service.mark_overdue_orders(today=date(2024, 4, 15)) == 1
        assert order_service.mark_overdue_orders(today=date(2024, 4, 15)) == 0
