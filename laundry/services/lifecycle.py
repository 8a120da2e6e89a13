# laundry/services/lifecycle.py
from __future__ import annotations

"""
Order lifecycle rules.

Pure functions only: no Flask, no database. Everything here takes plain
values (dates, strings/enums, numbers) so it can be called from views,
services, CLI commands and tests alike.

- Overdue evaluation (collection date + 3 calendar months)
- Balance due (total - paid; storage fee shown separately)
- Status transition validation + side-effect planning (customer SMS)
- Payment-status auto-fill of amount_paid
"""

import calendar
import enum
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

EAT = ZoneInfo("Africa/Nairobi")

OVERDUE_AFTER_MONTHS = 3
APPROACHING_WINDOW_DAYS = 30


# =========================================================
# Enums
# =========================================================
class OrderStatus(enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    DELAYED = "delayed"
    COLLECTED = "collected"
    OVERDUE = "overdue"


class PaymentStatus(enum.Enum):
    UNPAID = "unpaid"
    DEPOSIT = "deposit"
    PAID = "paid"


class PaymentMethod(enum.Enum):
    CASH = "cash"
    MPESA = "mpesa"
    PENDING = "pending"


class OverdueLevel(enum.Enum):
    NONE = "none"
    NORMAL = "normal"
    APPROACHING = "approaching"
    OVERDUE = "overdue"


# Any status may move to any other status.
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.IN_PROGRESS, OrderStatus.READY, OrderStatus.DELAYED,
        OrderStatus.COLLECTED, OrderStatus.OVERDUE,
    },
    OrderStatus.IN_PROGRESS: {
        OrderStatus.PENDING, OrderStatus.READY, OrderStatus.DELAYED,
        OrderStatus.COLLECTED, OrderStatus.OVERDUE,
    },
    OrderStatus.READY: {
        OrderStatus.PENDING, OrderStatus.IN_PROGRESS, OrderStatus.DELAYED,
        OrderStatus.COLLECTED, OrderStatus.OVERDUE,
    },
    OrderStatus.DELAYED: {
        OrderStatus.PENDING, OrderStatus.IN_PROGRESS, OrderStatus.READY,
        OrderStatus.COLLECTED, OrderStatus.OVERDUE,
    },
    OrderStatus.COLLECTED: {
        OrderStatus.PENDING, OrderStatus.IN_PROGRESS, OrderStatus.READY,
        OrderStatus.DELAYED, OrderStatus.OVERDUE,
    },
    OrderStatus.OVERDUE: {
        OrderStatus.PENDING, OrderStatus.IN_PROGRESS, OrderStatus.READY,
        OrderStatus.DELAYED, OrderStatus.COLLECTED,
    },
}

# Statuses whose arrival is announced to the customer by SMS
NOTIFY_ON_ENTER = {OrderStatus.READY, OrderStatus.DELAYED}


# =========================================================
# Coercion helpers
# =========================================================
def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    if value is None:
        raise ValueError(f"{enum_cls.__name__} is required.")
    raw = str(value).strip().lower()
    try:
        return enum_cls(raw)
    except ValueError:
        raise ValueError(f"Invalid {enum_cls.__name__}: {value!r}") from None


def coerce_status(value: Any) -> OrderStatus:
    return _coerce(OrderStatus, value)


def coerce_payment_status(value: Any) -> PaymentStatus:
    return _coerce(PaymentStatus, value)


def coerce_payment_method(value: Any) -> PaymentMethod:
    return _coerce(PaymentMethod, value)


def status_value(value: Any) -> str:
    """Enum -> .value, else the raw string."""
    try:
        return value.value
    except AttributeError:
        return "" if value is None else str(value)


def today_eat() -> date:
    return datetime.now(EAT).date()


def _as_date(value: Any) -> Optional[date]:
    """Reduce date/datetime/ISO string to a calendar date; None if unusable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            # stored datetimes are naive UTC
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(EAT).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


# =========================================================
# Overdue evaluation
# =========================================================
def add_months(d: date, months: int) -> date:
    """Calendar-month addition, clamping the day to the target month's end."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def overdue_threshold(collection_date: Any) -> Optional[date]:
    d = _as_date(collection_date)
    if d is None:
        return None
    return add_months(d, OVERDUE_AFTER_MONTHS)


def days_until_overdue(collection_date: Any, today: Any = None) -> Optional[int]:
    """
    Whole calendar days from `today` to the overdue threshold.
    Negative once the threshold has passed; None when the date is unusable.
    """
    threshold = overdue_threshold(collection_date)
    if threshold is None:
        return None
    ref = _as_date(today) if today is not None else today_eat()
    if ref is None:
        return None
    return (threshold - ref).days


@dataclass(frozen=True)
class OverdueInfo:
    level: OverdueLevel
    days_remaining: Optional[int] = None
    threshold: Optional[date] = None

    @property
    def is_overdue(self) -> bool:
        return self.level is OverdueLevel.OVERDUE

    @property
    def is_approaching(self) -> bool:
        return self.level is OverdueLevel.APPROACHING

    @property
    def label(self) -> str:
        if self.level is OverdueLevel.OVERDUE:
            return "Overdue"
        if self.level is OverdueLevel.APPROACHING:
            return f"{self.days_remaining} days until overdue"
        return ""


def evaluate_overdue(collection_date: Any, status: Any, today: Any = None) -> OverdueInfo:
    """
    Classify an order for the overdue badge.

    Collected orders are exempt whatever their dates. A missing or invalid
    collection date is indeterminate and yields no badge.
    """
    try:
        current = coerce_status(status)
    except ValueError:
        current = None

    if current is OrderStatus.COLLECTED:
        return OverdueInfo(OverdueLevel.NONE)

    threshold = overdue_threshold(collection_date)
    remaining = days_until_overdue(collection_date, today)
    if threshold is None or remaining is None:
        return OverdueInfo(OverdueLevel.NONE)

    if remaining < 0:
        return OverdueInfo(OverdueLevel.OVERDUE, remaining, threshold)
    if 0 < remaining <= APPROACHING_WINDOW_DAYS:
        return OverdueInfo(OverdueLevel.APPROACHING, remaining, threshold)
    return OverdueInfo(OverdueLevel.NORMAL, remaining, threshold)


# =========================================================
# Money
# =========================================================
def _money(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    return float(value)


def balance_due(total_amount: Any, amount_paid: Any) -> float:
    """total - paid. Storage fee is deliberately NOT included."""
    return round(_money(total_amount) - _money(amount_paid), 2)


def amount_owed_with_storage(total_amount: Any, amount_paid: Any, storage_fee: Any) -> float:
    """Display-only figure: balance due plus any accrued storage fee."""
    return round(balance_due(total_amount, amount_paid) + _money(storage_fee), 2)


def has_storage_fee(storage_fee: Any) -> bool:
    return _money(storage_fee) > 0


def amount_paid_for(payment_status: Any, total_amount: Any, current_paid: Any) -> float:
    """
    amount_paid after switching payment status.

    paid   -> total_amount
    unpaid -> 0
    deposit-> unchanged (set at creation or by a prior edit)
    """
    target = coerce_payment_status(payment_status)
    if target is PaymentStatus.PAID:
        return _money(total_amount)
    if target is PaymentStatus.UNPAID:
        return 0.0
    return _money(current_paid)


# =========================================================
# Status transitions
# =========================================================
def can_transition(current: Any, target: Any) -> bool:
    try:
        cur = coerce_status(current)
        tgt = coerce_status(target)
    except ValueError:
        return False
    return tgt in ALLOWED_TRANSITIONS.get(cur, set())


def order_reference(order_id: Any) -> str:
    """Short human reference printed on receipts and in SMS."""
    try:
        return f"ORD-{int(order_id):05d}"
    except (TypeError, ValueError):
        return f"ORD-{order_id}"


def status_message(
    target: Any,
    *,
    order_ref: str,
    customer_name: str | None = None,
    balance: float | None = None,
    currency: str = "KES",
) -> Optional[str]:
    """Customer SMS body for entering `target`, or None if it is not announced."""
    status = coerce_status(target)
    name = (customer_name or "").strip() or "Customer"

    if status is OrderStatus.READY:
        msg = f"Hello {name}, your laundry order {order_ref} is ready for collection."
        if balance is not None and balance > 0:
            msg += f" Balance due: {currency} {balance:,.2f}."
        return msg + " Thank you."

    if status is OrderStatus.DELAYED:
        return (
            f"Hello {name}, your laundry order {order_ref} has been delayed. "
            "We apologise for the inconvenience and will notify you once it is ready."
        )

    return None


@dataclass(frozen=True)
class TransitionPlan:
    previous: OrderStatus
    target: OrderStatus
    changed: bool
    notify: bool

    @property
    def is_noop(self) -> bool:
        return not self.changed


def plan_status_transition(current: Any, target: Any) -> TransitionPlan:
    """
    Validate a status change and decide its side effects.
    Raises ValueError for unknown statuses or a disallowed transition.
    """
    cur = coerce_status(current)
    tgt = coerce_status(target)

    if cur is tgt:
        return TransitionPlan(cur, tgt, changed=False, notify=False)

    if not can_transition(cur, tgt):
        raise ValueError(f"Cannot move order from {cur.value} to {tgt.value}.")

    return TransitionPlan(cur, tgt, changed=True, notify=tgt in NOTIFY_ON_ENTER)
