# laundry/services/reports.py
from __future__ import annotations

from datetime import date
from typing import Iterable

from laundry.extensions import db
from laundry.models import Order
from laundry.services.lifecycle import status_value

CSV_HEADER = ["Order ID", "Customer", "Phone", "Status", "Total Amount", "Amount Paid", "Collection Date"]


def _f(v) -> float:
    try:
        return float(v or 0)
    except (TypeError, ValueError):
        return 0.0


def dashboard_stats(orders: Iterable[Order] | None = None) -> dict:
    """Counter dashboard cards."""
    orders = list(orders if orders is not None else Order.query.all())
    by_status = lambda s: sum(1 for o in orders if status_value(o.status) == s)  # noqa: E731

    return {
        "total_orders": len(orders),
        "pending_orders": by_status("pending"),
        "ready_orders": by_status("ready"),
        "collected_orders": by_status("collected"),
        "total_income": round(sum(_f(o.amount_paid) for o in orders), 2),
        "pending_payments": round(sum(_f(o.total_amount) - _f(o.amount_paid) for o in orders), 2),
    }


def report_stats(orders: Iterable[Order] | None = None) -> dict:
    """Admin reports page."""
    orders = list(orders if orders is not None else Order.query.all())
    by_status = lambda s: sum(1 for o in orders if status_value(o.status) == s)  # noqa: E731

    return {
        "total_orders": len(orders),
        "delayed_orders": by_status("delayed"),
        "overdue_orders": by_status("overdue"),
        "collected_orders": by_status("collected"),
        "total_revenue": round(sum(_f(o.amount_paid) for o in orders), 2),
    }


def _cell(v) -> str:
    if v is None:
        return ""
    if isinstance(v, date):
        return v.isoformat()
    return str(v)


def orders_csv(orders: Iterable[Order] | None = None) -> str:
    """
    One row per order, plain comma join.

    NOTE: values are not quoted or escaped; a comma inside a customer name
    shifts the columns of that row.
    """
    if orders is None:
        orders = db.session.query(Order).order_by(Order.id.asc()).all()

    lines = [",".join(CSV_HEADER)]
    for o in orders:
        customer = o.customer
        lines.append(",".join([
            _cell(o.id),
            _cell(getattr(customer, "full_name", "") if customer else ""),
            _cell(getattr(customer, "phone_number", "") if customer else ""),
            status_value(o.status),
            _cell(o.total_amount),
            _cell(o.amount_paid),
            _cell(o.collection_date),
        ]))
    return "\n".join(lines)


def report_filename(today: date | None = None) -> str:
    return f"orders-report-{(today or date.today()).isoformat()}.csv"
