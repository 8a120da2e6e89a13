# laundry/public.py
from __future__ import annotations

from flask import Blueprint, flash, render_template, request

from .extensions import limiter
from .services import orders as order_service
from .services.lifecycle import today_eat


public = Blueprint("public", __name__)


# =========================================================
# Public order tracking (customers look up by name or phone)
# =========================================================
@public.route("/track", methods=["GET"])
@limiter.limit("30 per minute")
def track_order():
    term = (request.args.get("q") or "").strip()
    searched = "q" in request.args
    orders = []

    if searched:
        try:
            orders = order_service.search_orders(term)
        except order_service.OrderValidationError as exc:
            flash(exc.errors[0], "danger")
            return render_template("track.html", orders=[], q=term, searched=True, today=today_eat(), public=True), 400

        if not orders:
            flash("No orders match your search criteria", "info")

    return render_template("track.html", orders=orders, q=term, searched=searched, today=today_eat(), public=True)
