# laundry/routes.py
from __future__ import annotations

from datetime import date

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    jsonify,
    make_response,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from laundry.extensions import db
from laundry.models import ClothingType, Order
from laundry.services import orders as order_service
from laundry.services import reports as report_service
from laundry.services.lifecycle import OrderStatus, PaymentMethod, PaymentStatus, today_eat
from laundry.utils.guards import admin_required, current_role, role_required, staff_required
from laundry.utils.receipt_pdf import render_receipt_pdf

main = Blueprint("main", __name__)

ADMIN_TABS = ("all", "pending", "ready", "collected", "overdue")
COUNTER_TABS = ("all", "pending", "in_progress", "ready", "delayed", "collected")


# ======================
# Parsers
# ======================
def _parse_float(val):
    try:
        if val is None or str(val).strip() == "":
            return None
        return float(val)
    except (TypeError, ValueError):
        return None


def _parse_int(val):
    try:
        if val is None or str(val).strip() == "":
            return None
        return int(val)
    except (TypeError, ValueError):
        return None


def _parse_date(val):
    try:
        if not val:
            return None
        return date.fromisoformat(val)
    except (TypeError, ValueError):
        return None


def _get_order_or_404(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        abort(404)
    return order


def _wants_json() -> bool:
    return request.is_json or request.accept_mimetypes.best == "application/json"


def _tab(allowed) -> str:
    tab = (request.args.get("status") or "all").strip().lower()
    return tab if tab in allowed else "all"


def _back_to_list():
    return redirect(request.form.get("next") or request.referrer or url_for("main.dashboard"))


# ======================
# Home
# ======================
@main.route("/")
def home():
    return redirect(url_for("main.dashboard"))


# =========================================================
# Dashboard Router (ROLE-SAFE LANDING)
# =========================================================
@main.route("/dashboard")
@login_required
def dashboard():
    role = current_role()
    if role == "admin":
        return redirect(url_for("main.admin_dashboard"))
    if role == "cashier":
        return redirect(url_for("main.cashier_dashboard"))
    return redirect(url_for("main.staff_dashboard"))


@main.route("/admin/dashboard")
@admin_required
def admin_dashboard():
    # Opening the admin dashboard runs the overdue sweep
    try:
        order_service.mark_overdue_orders()
    except order_service.OrderWriteError as exc:
        flash(str(exc), "danger")

    tab = _tab(ADMIN_TABS)
    orders = order_service.list_orders(tab)
    return render_template(
        "dashboard.html",
        title="Admin Dashboard",
        stats=report_service.dashboard_stats(),
        orders=orders,
        tabs=ADMIN_TABS,
        active_tab=tab,
        endpoint="main.admin_dashboard",
        today=today_eat(),
    )


@main.route("/staff/dashboard")
@role_required("admin", "staff")
def staff_dashboard():
    tab = _tab(COUNTER_TABS)
    return render_template(
        "dashboard.html",
        title="Staff Dashboard",
        stats=report_service.dashboard_stats(),
        orders=order_service.list_orders(tab),
        tabs=COUNTER_TABS,
        active_tab=tab,
        endpoint="main.staff_dashboard",
        today=today_eat(),
    )


@main.route("/cashier/dashboard")
@role_required("admin", "cashier")
def cashier_dashboard():
    tab = _tab(COUNTER_TABS)
    return render_template(
        "dashboard.html",
        title="Cashier Dashboard",
        stats=None,
        orders=order_service.list_orders(tab),
        tabs=COUNTER_TABS,
        active_tab=tab,
        endpoint="main.cashier_dashboard",
        today=today_eat(),
    )


# =========================================================
# Orders
# =========================================================
@main.route("/orders/new", methods=["GET", "POST"])
@staff_required
def new_order():
    clothing_types = ClothingType.query.order_by(ClothingType.name.asc()).all()

    if request.method == "POST":
        items = []
        type_ids = request.form.getlist("item_type_id")
        quantities = request.form.getlist("item_quantity")
        colors = request.form.getlist("item_color")
        for i, raw_id in enumerate(type_ids):
            type_id = _parse_int(raw_id)
            if type_id is None:
                continue
            qty = _parse_int(quantities[i] if i < len(quantities) else None) or 1
            color = colors[i] if i < len(colors) else None
            items.append(order_service.ItemInput(type_id, qty, color))

        data = order_service.NewOrder(
            customer_name=request.form.get("customer_name") or "",
            phone_number=request.form.get("phone_number") or "",
            total_amount=_parse_float(request.form.get("total_amount")),
            amount_paid=_parse_float(request.form.get("amount_paid")),
            payment_status=(request.form.get("payment_status") or "unpaid").strip().lower(),
            payment_method=(request.form.get("payment_method") or "").strip().lower() or None,
            collection_date=_parse_date(request.form.get("collection_date")),
            notes=request.form.get("notes"),
            items=items,
        )

        try:
            order = order_service.create_order(data, created_by=current_user)
        except order_service.OrderValidationError as exc:
            for msg in exc.errors:
                flash(msg, "danger")
            return render_template(
                "orders/new.html",
                clothing_types=clothing_types,
                form=request.form,
                payment_statuses=list(PaymentStatus),
                payment_methods=[PaymentMethod.CASH, PaymentMethod.MPESA],
            ), 400
        except order_service.OrderWriteError as exc:
            flash(str(exc), "danger")
            return redirect(request.url)

        flash("Order added successfully!", "success")
        return redirect(url_for("main.receipt", order_id=order.id))

    return render_template(
        "orders/new.html",
        clothing_types=clothing_types,
        form={},
        payment_statuses=list(PaymentStatus),
        payment_methods=[PaymentMethod.CASH, PaymentMethod.MPESA],
    )


@main.route("/orders/<int:order_id>/status", methods=["POST"])
@staff_required
def update_order_status(order_id: int):
    order = _get_order_or_404(order_id)
    payload = request.get_json(silent=True) or {}
    target = payload.get("status") or request.form.get("status")

    try:
        result = order_service.change_status(order, target)
    except ValueError as exc:
        if _wants_json():
            return jsonify({"ok": False, "error": str(exc)}), 400
        flash(str(exc), "danger")
        return _back_to_list()

    if _wants_json():
        body = {
            "ok": result.ok,
            "status": result.current.value,
            "previous_status": result.previous.value,
            "sms_sent": result.sms_sent,
            "warning": result.warning,
            "error": result.error,
        }
        return jsonify(body), (200 if result.ok else 500)

    if not result.ok:
        flash(result.error, "danger")
    else:
        flash("Order status has been updated successfully.", "success")
        if result.warning:
            flash(result.warning, "warning")
    return _back_to_list()


@main.route("/orders/<int:order_id>/payment-status", methods=["POST"])
@staff_required
def update_payment_status(order_id: int):
    order = _get_order_or_404(order_id)
    payload = request.get_json(silent=True) or {}
    target = payload.get("payment_status") or request.form.get("payment_status")
    method = payload.get("payment_method") or request.form.get("payment_method") or None

    try:
        result = order_service.change_payment_status(order, target, method)
    except ValueError as exc:
        if _wants_json():
            return jsonify({"ok": False, "error": str(exc)}), 400
        flash(str(exc), "danger")
        return _back_to_list()

    if _wants_json():
        body = {
            "ok": result.ok,
            "payment_status": result.current.value,
            "previous_payment_status": result.previous.value,
            "amount_paid": result.amount_paid,
            "error": result.error,
        }
        return jsonify(body), (200 if result.ok else 500)

    if result.ok:
        flash("Payment status updated.", "success")
    else:
        flash(result.error, "danger")
    return _back_to_list()


@main.route("/orders/<int:order_id>/payments", methods=["POST"])
@role_required("admin", "cashier")
def add_payment(order_id: int):
    order = _get_order_or_404(order_id)
    try:
        order_service.record_payment(
            order,
            request.form.get("amount"),
            request.form.get("payment_method"),
            request.form.get("reference_number"),
            created_by=current_user,
        )
    except order_service.OrderValidationError as exc:
        for msg in exc.errors:
            flash(msg, "danger")
    except order_service.OrderWriteError as exc:
        flash(str(exc), "danger")
    else:
        flash("Payment recorded.", "success")
    return redirect(url_for("main.receipt", order_id=order.id))


# =========================================================
# Receipts
# =========================================================
@main.route("/receipt/<int:order_id>")
@staff_required
def receipt(order_id: int):
    order = _get_order_or_404(order_id)
    return render_template(
        "receipt.html",
        order=order,
        overdue=order.overdue_info(),
        payment_methods=[PaymentMethod.CASH, PaymentMethod.MPESA],
    )


@main.route("/receipt/<int:order_id>/pdf")
@staff_required
def receipt_pdf(order_id: int):
    order = _get_order_or_404(order_id)
    pdf = render_receipt_pdf(order, currency=current_app.config.get("CURRENCY", "KES"))
    resp = make_response(pdf)
    resp.headers["Content-Type"] = "application/pdf"
    resp.headers["Content-Disposition"] = f'inline; filename="receipt-{order.reference}.pdf"'
    return resp


# =========================================================
# Track (staff search)
# =========================================================
@main.route("/dashboard/track")
@staff_required
def dashboard_track():
    term = (request.args.get("q") or "").strip()
    orders = []
    searched = "q" in request.args
    if searched:
        try:
            orders = order_service.search_orders(term)
        except order_service.OrderValidationError as exc:
            flash(exc.errors[0], "danger")
        else:
            if not orders:
                flash("No orders match your search criteria", "info")
    return render_template("track.html", orders=orders, q=term, searched=searched, today=today_eat(), public=False)


# =========================================================
# Clothing types (price list)
# =========================================================
@main.route("/clothing-types", methods=["GET", "POST"])
@admin_required
def clothing_types():
    if request.method == "POST":
        name = (request.form.get("name") or "").strip()
        price = _parse_float(request.form.get("price"))
        if not name or price is None or price < 0:
            flash("Name and a non-negative price are required.", "danger")
            return redirect(url_for("main.clothing_types"))

        ctype = ClothingType.query.filter(db.func.lower(ClothingType.name) == name.lower()).first()
        if ctype:
            ctype.price = price
        else:
            db.session.add(ClothingType(name=name, price=price))
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Saving clothing type failed")
            flash("Saving clothing type failed. Please try again.", "danger")
        else:
            flash("Price list updated.", "success")
        return redirect(url_for("main.clothing_types"))

    types = ClothingType.query.order_by(ClothingType.name.asc()).all()
    return render_template("clothing_types.html", clothing_types=types)


# =========================================================
# CCTV
# =========================================================
@main.route("/cctv")
@admin_required
def cctv():
    return render_template("cctv.html", stream_url=current_app.config.get("CCTV_STREAM_URL") or "")


# =========================================================
# JSON order feed (clients re-fetch the whole list on change)
# =========================================================
@main.route("/api/orders")
@staff_required
def api_orders():
    status = (request.args.get("status") or "all").strip().lower()
    if status != "all" and status not in {s.value for s in OrderStatus}:
        return jsonify({"error": f"Unknown status: {status}"}), 400
    orders = order_service.list_orders(status)
    return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)})
