# laundry/models.py
from __future__ import annotations

from datetime import datetime, timedelta

from flask_login import UserMixin
from sqlalchemy import Enum as SAEnum

from .extensions import db
from .services.lifecycle import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    amount_owed_with_storage,
    balance_due,
    evaluate_overdue,
    has_storage_fee,
    order_reference,
    today_eat,
)


# Naive UTC everywhere; DB columns are "timestamp without time zone".
def utcnow_naive() -> datetime:
    return datetime.utcnow()


def _enum_column(enum_cls, name: str):
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda enum_cls: [e.value for e in enum_cls],
        native_enum=False,
        validate_strings=True,
    )


ROLES = ("admin", "staff", "cashier")


# =========================================================
# User model (Authentication + Roles)
# =========================================================
class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)

    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=False, unique=True, index=True)
    phone_number = db.Column(db.String(30), nullable=True)

    password_hash = db.Column(db.String(255), nullable=False)

    # admin / staff / cashier
    role = db.Column(db.String(20), nullable=False, default="staff")

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint("role in ('admin','staff','cashier')", name="ck_user_role"),
    )

    @property
    def is_admin(self) -> bool:
        return (self.role or "").strip().lower() == "admin"

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email} {self.role}>"


# =========================================================
# Customer (unique by phone number)
# =========================================================
class Customer(db.Model):
    __tablename__ = "customers"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(160), nullable=False)
    phone_number = db.Column(db.String(30), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow_naive, nullable=False)

    orders = db.relationship("Order", back_populates="customer", lazy="select")

    def __repr__(self) -> str:
        return f"<Customer {self.id} {self.full_name}>"


# =========================================================
# Clothing types (price list)
# =========================================================
class ClothingType(db.Model):
    __tablename__ = "clothing_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False)
    price = db.Column(db.Float, nullable=False, default=0.0)
    created_at = db.Column(db.DateTime, default=utcnow_naive, nullable=False)

    def __repr__(self) -> str:
        return f"<ClothingType {self.id} {self.name}>"


# =========================================================
# Order
# =========================================================
class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(
        db.Integer,
        db.ForeignKey("customers.id"),
        nullable=False,
        index=True,
    )
    customer = db.relationship("Customer", back_populates="orders", lazy="joined")

    date_received = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    collection_date = db.Column(
        db.Date,
        nullable=False,
        default=lambda: today_eat() + timedelta(days=3),
    )

    status = db.Column(
        _enum_column(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )
    payment_status = db.Column(
        _enum_column(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )
    payment_method = db.Column(_enum_column(PaymentMethod, "payment_method"), nullable=True)

    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    amount_paid = db.Column(db.Float, nullable=False, default=0.0)

    # Accrued by a periodic job outside this app; shown, never merged into balance.
    storage_fee = db.Column(db.Float, nullable=False, default=0.0)

    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    created_by = db.relationship("User", foreign_keys=[created_by_user_id], lazy="joined")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow_naive,
        onupdate=utcnow_naive,
    )

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="select",
    )
    payments = db.relationship(
        "Payment",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="select",
        order_by="Payment.payment_date",
    )

    @property
    def reference(self) -> str:
        return order_reference(self.id)

    @property
    def balance_due(self) -> float:
        return balance_due(self.total_amount, self.amount_paid)

    @property
    def has_storage_fee(self) -> bool:
        return has_storage_fee(self.storage_fee)

    @property
    def amount_owed(self) -> float:
        """Balance due plus any accrued storage fee (display only)."""
        return amount_owed_with_storage(self.total_amount, self.amount_paid, self.storage_fee)

    def overdue_info(self, today=None):
        return evaluate_overdue(self.collection_date, self.status, today)

    def to_dict(self) -> dict:
        customer = self.customer
        return {
            "id": self.id,
            "reference": self.reference,
            "customer": {
                "id": customer.id if customer else None,
                "full_name": customer.full_name if customer else None,
                "phone_number": customer.phone_number if customer else None,
            },
            "date_received": self.date_received.isoformat() if self.date_received else None,
            "collection_date": self.collection_date.isoformat() if self.collection_date else None,
            "status": self.status.value if self.status else None,
            "payment_status": self.payment_status.value if self.payment_status else None,
            "payment_method": self.payment_method.value if self.payment_method else None,
            "total_amount": self.total_amount,
            "amount_paid": self.amount_paid,
            "balance_due": self.balance_due,
            "storage_fee": self.storage_fee,
            "amount_owed": self.amount_owed,
            "notes": self.notes,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.status}>"


# =========================================================
# OrderItem
# =========================================================
class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    order = db.relationship("Order", back_populates="items")

    clothing_type_id = db.Column(db.Integer, db.ForeignKey("clothing_types.id"), nullable=False)
    clothing_type = db.relationship("ClothingType", lazy="joined")

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Float, nullable=False, default=0.0)
    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    color = db.Column(db.String(40), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow_naive, nullable=False)


# =========================================================
# Payment (audit trail; not reconciled into orders.amount_paid)
# =========================================================
class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    order = db.relationship("Order", back_populates="payments")

    amount = db.Column(db.Float, nullable=False)
    payment_method = db.Column(_enum_column(PaymentMethod, "payment_method"), nullable=False)
    reference_number = db.Column(db.String(60), nullable=True)
    payment_date = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    def __repr__(self) -> str:
        return f"<Payment {self.id} order={self.order_id} {self.amount}>"
