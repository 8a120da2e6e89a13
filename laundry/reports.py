# laundry/reports.py
from __future__ import annotations

from flask import Blueprint, Response, current_app, flash, redirect, render_template, url_for
from sqlalchemy.exc import SQLAlchemyError

from .services import reports as report_service
from .services.lifecycle import today_eat
from .utils.guards import admin_required

reports_bp = Blueprint("reports", __name__)


@reports_bp.route("/reports")
@admin_required
def index():
    try:
        stats = report_service.report_stats()
    except SQLAlchemyError:
        current_app.logger.exception("Loading report stats failed")
        flash("Failed to load report figures.", "danger")
        stats = None
    return render_template("reports.html", stats=stats)


@reports_bp.route("/reports/orders.csv")
@admin_required
def download_csv():
    try:
        body = report_service.orders_csv()
    except SQLAlchemyError:
        current_app.logger.exception("CSV export failed")
        flash("Failed to generate report", "danger")
        return redirect(url_for("reports.index"))

    filename = report_service.report_filename(today_eat())
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
