# laundry/services/orders.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from laundry.extensions import db
from laundry.models import ClothingType, Customer, Order, OrderItem, Payment
from laundry.services import sms
from laundry.services.lifecycle import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    amount_paid_for,
    balance_due,
    coerce_payment_method,
    coerce_payment_status,
    coerce_status,
    overdue_threshold,
    plan_status_transition,
    status_message,
    today_eat,
)


class OrderValidationError(ValueError):
    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class OrderWriteError(RuntimeError):
    """The database refused a write; local state has been restored."""


# =========================================================
# Result types
# =========================================================
@dataclass
class StatusChangeResult:
    ok: bool
    previous: OrderStatus
    current: OrderStatus
    sms_sent: bool = False
    warning: Optional[str] = None
    error: Optional[str] = None


@dataclass
class PaymentChangeResult:
    ok: bool
    previous: PaymentStatus
    current: PaymentStatus
    amount_paid: float
    error: Optional[str] = None


@dataclass
class ItemInput:
    clothing_type_id: int
    quantity: int = 1
    color: Optional[str] = None


@dataclass
class NewOrder:
    customer_name: str
    phone_number: str
    total_amount: Optional[float] = None
    amount_paid: Optional[float] = None
    payment_status: str = "unpaid"
    payment_method: Optional[str] = None
    collection_date: Optional[date] = None
    notes: Optional[str] = None
    items: list[ItemInput] = field(default_factory=list)


# =========================================================
# Helpers
# =========================================================
def _commit(action: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("%s failed", action)
        raise OrderWriteError(f"{action} failed. Please try again.") from exc


def find_customer_by_phone(phone: str) -> Optional[Customer]:
    return Customer.query.filter_by(phone_number=phone).first()


def get_or_create_customer(full_name: str, phone: str) -> Customer:
    customer = find_customer_by_phone(phone)
    if customer:
        return customer
    customer = Customer(full_name=full_name, phone_number=phone)
    db.session.add(customer)
    db.session.flush()
    return customer


def _resolve_items(items: Iterable[ItemInput], errors: list[str]) -> list[OrderItem]:
    rows: list[OrderItem] = []
    for it in items:
        ctype = db.session.get(ClothingType, it.clothing_type_id)
        if ctype is None:
            errors.append(f"Unknown clothing type #{it.clothing_type_id}.")
            continue
        qty = int(it.quantity or 0)
        if qty <= 0:
            errors.append(f"Quantity for {ctype.name} must be at least 1.")
            continue
        unit_price = float(ctype.price or 0.0)
        rows.append(
            OrderItem(
                clothing_type=ctype,
                quantity=qty,
                unit_price=unit_price,
                subtotal=round(qty * unit_price, 2),
                color=(it.color or "").strip() or None,
            )
        )
    return rows


# =========================================================
# Create
# =========================================================
def create_order(data: NewOrder, created_by=None) -> Order:
    """
    Validate the counter form, find-or-create the customer by phone and
    persist the order (plus items and an opening payment record).
    """
    errors: list[str] = []

    name = (data.customer_name or "").strip()
    phone = sms.normalize_phone(data.phone_number)

    if not name or not phone:
        errors.append("Customer name and phone number are required.")
    elif not sms.is_valid_phone(phone):
        errors.append("Phone number is not valid.")

    try:
        pay_status = coerce_payment_status(data.payment_status or "unpaid")
    except ValueError as exc:
        errors.append(str(exc))
        pay_status = PaymentStatus.UNPAID

    method = None
    if pay_status in (PaymentStatus.DEPOSIT, PaymentStatus.PAID):
        if not data.payment_method:
            errors.append("Please select a payment method.")
        else:
            try:
                method = coerce_payment_method(data.payment_method)
            except ValueError as exc:
                errors.append(str(exc))
            if method is PaymentMethod.PENDING:
                errors.append("Please select a payment method.")

    items = _resolve_items(data.items, errors)

    total = data.total_amount
    if total is None and items:
        total = round(sum(i.subtotal for i in items), 2)
    if total is None:
        errors.append("Total amount is required.")
    elif total < 0:
        errors.append("Total amount cannot be negative.")

    if pay_status is PaymentStatus.DEPOSIT:
        if data.amount_paid is None:
            errors.append("Please enter the deposit amount.")
        elif data.amount_paid < 0:
            errors.append("Deposit cannot be negative.")
        elif total is not None and data.amount_paid > total:
            errors.append("Deposit cannot exceed total amount.")

    if errors:
        raise OrderValidationError(errors)

    if pay_status is PaymentStatus.DEPOSIT:
        paid = float(data.amount_paid)
    else:
        paid = amount_paid_for(pay_status, total, 0)

    received = datetime.utcnow()
    collection = data.collection_date or (
        today_eat() + timedelta(days=current_app.config.get("DEFAULT_TURNAROUND_DAYS", 3))
    )

    customer = get_or_create_customer(name, phone)

    order = Order(
        customer=customer,
        date_received=received,
        collection_date=collection,
        status=OrderStatus.PENDING,
        payment_status=pay_status,
        payment_method=method,
        total_amount=float(total),
        amount_paid=paid,
        storage_fee=0.0,
        notes=(data.notes or "").strip() or None,
        created_by_user_id=getattr(created_by, "id", None),
    )
    order.items.extend(items)
    db.session.add(order)

    if paid > 0 and method is not None:
        order.payments.append(
            Payment(
                amount=paid,
                payment_method=method,
                created_by_user_id=getattr(created_by, "id", None),
            )
        )

    _commit("Create order")

    if paid > 0 and method is PaymentMethod.MPESA:
        _mpesa_alert(order, paid)

    return order


# =========================================================
# Status changes
# =========================================================
def notify_customer(order: Order, target: OrderStatus) -> tuple[bool, Optional[str]]:
    """
    Send the status SMS. Never raises: returns (sent, warning).
    A missing phone number is logged and skipped.
    """
    customer = order.customer
    phone = getattr(customer, "phone_number", None)
    if not phone:
        current_app.logger.warning("Order %s has no customer phone; SMS skipped.", order.id)
        return False, None

    message = status_message(
        target,
        order_ref=order.reference,
        customer_name=getattr(customer, "full_name", None),
        balance=balance_due(order.total_amount, order.amount_paid),
        currency=current_app.config.get("CURRENCY", "KES"),
    )
    if not message:
        return False, None

    try:
        sms.send_sms(phone, message)
    except sms.SmsError as exc:
        current_app.logger.warning("Status SMS for order %s failed: %s", order.id, exc.message)
        return False, f"Status updated, but the SMS to {phone} failed: {exc.message}"

    return True, None


def change_status(order: Order, new_status) -> StatusChangeResult:
    """
    Apply a status change, commit, then notify.

    The previous value is captured before the write; on a database error the
    session is rolled back and the instance restored to it. SMS failure only
    produces a warning.
    """
    plan = plan_status_transition(order.status or OrderStatus.PENDING, new_status)
    if plan.is_noop:
        return StatusChangeResult(ok=True, previous=plan.previous, current=plan.previous)

    order_id = order.id
    order.status = plan.target
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        order.status = plan.previous
        current_app.logger.exception("Status update for order %s failed", order_id)
        return StatusChangeResult(
            ok=False,
            previous=plan.previous,
            current=plan.previous,
            error="Failed to update order status.",
        )

    sent, warning = (False, None)
    if plan.notify:
        sent, warning = notify_customer(order, plan.target)

    return StatusChangeResult(
        ok=True,
        previous=plan.previous,
        current=plan.target,
        sms_sent=sent,
        warning=warning,
    )


def change_payment_status(order: Order, new_status, method=None) -> PaymentChangeResult:
    """
    paid -> amount_paid = total, unpaid -> 0, deposit -> unchanged.
    Rolled back to the captured values on a database error.
    """
    # Coerce everything before touching the instance
    target = coerce_payment_status(new_status)
    new_method = coerce_payment_method(method) if method else None
    order_id = order.id
    previous_status = order.payment_status or PaymentStatus.UNPAID
    previous_paid = float(order.amount_paid or 0.0)
    previous_method = order.payment_method

    order.payment_status = target
    order.amount_paid = amount_paid_for(target, order.total_amount, order.amount_paid)
    if new_method is not None:
        order.payment_method = new_method
    elif target is PaymentStatus.UNPAID:
        order.payment_method = None

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        order.payment_status = previous_status
        order.amount_paid = previous_paid
        order.payment_method = previous_method
        current_app.logger.exception("Payment status update for order %s failed", order_id)
        return PaymentChangeResult(
            ok=False,
            previous=previous_status,
            current=previous_status,
            amount_paid=previous_paid,
            error="Failed to update payment status.",
        )

    return PaymentChangeResult(
        ok=True,
        previous=previous_status,
        current=target,
        amount_paid=order.amount_paid,
    )


# =========================================================
# Payments (audit only)
# =========================================================
def record_payment(order: Order, amount, method, reference: str | None = None, created_by=None) -> Payment:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise OrderValidationError(["Payment amount must be a number."]) from None
    if value <= 0:
        raise OrderValidationError(["Payment amount must be greater than zero."])

    try:
        pm = coerce_payment_method(method)
    except ValueError as exc:
        raise OrderValidationError([str(exc)]) from None
    if pm is PaymentMethod.PENDING:
        raise OrderValidationError(["Please select a payment method."])

    payment = Payment(
        order=order,
        amount=value,
        payment_method=pm,
        reference_number=(reference or "").strip() or None,
        created_by_user_id=getattr(created_by, "id", None),
    )
    db.session.add(payment)
    _commit("Record payment")

    if pm is PaymentMethod.MPESA:
        _mpesa_alert(order, value)

    return payment


def _mpesa_alert(order: Order, amount: float) -> None:
    customer = order.customer
    try:
        sms.send_mpesa_alert(
            getattr(customer, "full_name", "") or "Unknown",
            order.reference,
            amount,
        )
    except sms.SmsError as exc:
        current_app.logger.warning("M-Pesa alert for order %s failed: %s", order.id, exc.message)


# =========================================================
# Queries
# =========================================================
def list_orders(status=None) -> list[Order]:
    qry = Order.query
    if status and status != "all":
        qry = qry.filter(Order.status == coerce_status(status))
    return qry.order_by(Order.created_at.desc(), Order.id.desc()).all()


def search_orders(term: str) -> list[Order]:
    term = (term or "").strip()
    if not term:
        raise OrderValidationError(["Please enter a name or phone number."])

    like = f"%{term.lower()}%"
    return (
        Order.query.join(Customer)
        .filter(
            or_(
                db.func.lower(Customer.full_name).like(like),
                db.func.lower(Customer.phone_number).like(like),
            )
        )
        .order_by(Order.date_received.desc(), Order.id.desc())
        .all()
    )


def mark_overdue_orders(today: date | None = None) -> int:
    """
    Move every open order past its overdue threshold to `overdue`.
    No customer SMS is sent. Returns the number of orders changed.
    """
    today = today or today_eat()
    candidates = Order.query.filter(
        Order.status.notin_([OrderStatus.COLLECTED, OrderStatus.OVERDUE])
    ).all()

    changed = 0
    for order in candidates:
        threshold = overdue_threshold(order.collection_date)
        if threshold is not None and threshold < today:
            order.status = OrderStatus.OVERDUE
            changed += 1

    if changed:
        _commit("Overdue sweep")
        current_app.logger.info("Marked %d order(s) overdue", changed)
    return changed
