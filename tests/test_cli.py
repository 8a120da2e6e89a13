from datetime import date

from laundry.models import ClothingType, Order, User
from laundry.services import orders as order_service
from laundry.services.lifecycle import OrderStatus
from laundry.services.orders import NewOrder


def test_seed_clothing_types_is_idempotent(app):
    runner = app.test_cli_runner()
    first = runner.invoke(args=["seed-clothing-types"])
    second = runner.invoke(args=["seed-clothing-types"])

    assert first.exit_code == 0
    # Shirt and Duvet already exist from the fixture
    assert "Added 5 clothing type(s)." in first.output
    assert "Added 0 clothing type(s)." in second.output
    with app.app_context():
        assert ClothingType.query.count() == 7


def test_create_user(app):
    result = app.test_cli_runner().invoke(
        args=["create-user", "wambui", "--role", "cashier", "--password", "tillroll42"]
    )
    assert result.exit_code == 0
    assert "Created cashier wambui@laundry.com" in result.output
    with app.app_context():
        assert User.query.filter_by(email="wambui@laundry.com").one().full_name == "Wambui"


def test_create_user_duplicate(app):
    result = app.test_cli_runner().invoke(args=["create-user", "jane", "--password", "whatever1"])
    assert result.exit_code != 0
    assert "already exists" in result.output


def test_mark_overdue(app):
    with app.app_context():
        oid = order_service.create_order(NewOrder(
            customer_name="Achieng", phone_number="+254712345678",
            total_amount=300.0, collection_date=date(2024, 1, 1),
        )).id

    result = app.test_cli_runner().invoke(args=["mark-overdue"])
    assert result.exit_code == 0
    assert "Marked 1 order(s) overdue." in result.output
    with app.app_context():
        from laundry.extensions import db

        assert db.session.get(Order, oid).status is OrderStatus.OVERDUE
