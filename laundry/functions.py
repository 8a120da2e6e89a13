# laundry/functions.py
from __future__ import annotations

from flask import Blueprint, current_app, flash, jsonify, redirect, render_template, request, url_for

from .extensions import limiter
from .services import sms
from .utils.guards import admin_required, staff_required

functions = Blueprint("functions", __name__)


# =========================================================
# POST /functions/send-sms
# =========================================================
@functions.route("/functions/send-sms", methods=["POST"])
@limiter.limit("20 per minute")
@staff_required
def send_sms():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400

    try:
        result = sms.send_sms(payload.get("to"), payload.get("message"))
    except sms.SmsValidationError as exc:
        return jsonify({"error": exc.message, "details": exc.details}), 400
    except sms.SmsProviderError as exc:
        return jsonify({"error": exc.message, "details": exc.details}), 400
    except sms.SmsConfigurationError as exc:
        current_app.logger.error("SMS function misconfigured: %s", exc.message)
        return jsonify({"error": exc.message}), 500
    except sms.SmsError as exc:
        return jsonify({"error": exc.message}), exc.status_code

    return jsonify({"success": True, "data": result.to_dict()}), 200


# =========================================================
# POST /functions/send-mpesa-alert
# =========================================================
@functions.route("/functions/send-mpesa-alert", methods=["POST"])
@limiter.limit("20 per minute")
@staff_required
def send_mpesa_alert():
    payload = request.get_json(silent=True) or {}
    customer_name = payload.get("customerName")
    order_number = payload.get("orderNumber")
    amount_paid = payload.get("amountPaid")

    if not customer_name or not order_number or not amount_paid:
        return jsonify({"error": "Missing required fields: customerName, orderNumber, or amountPaid"}), 400

    try:
        amount = float(amount_paid)
    except (TypeError, ValueError):
        return jsonify({"error": "amountPaid must be a number"}), 400

    try:
        sid = sms.send_mpesa_alert(str(customer_name), str(order_number), amount)
    except sms.SmsValidationError as exc:
        return jsonify({"error": exc.message}), 400
    except sms.SmsError as exc:
        current_app.logger.error("Error in send-mpesa-alert: %s", exc.message)
        return jsonify({"error": exc.message or "Failed to send SMS alert"}), 500

    return jsonify({
        "success": True,
        "message": "SMS alert sent successfully",
        "twilioMessageSid": sid,
    }), 200


# =========================================================
# Admin: SMS test page
# =========================================================
@functions.route("/sms/test", methods=["GET", "POST"])
@admin_required
def sms_test():
    phone = request.form.get("to") or ""
    message = request.form.get("message") or "Test message from laundry system"
    result = None

    if request.method == "POST":
        try:
            result = sms.send_sms(phone, message)
        except sms.SmsError as exc:
            flash(f"SMS failed: {exc.message}", "danger")
            return render_template("sms_test.html", to=phone, message=message, result=None, details=exc.details), exc.status_code

        flash(f"SMS sent successfully! Status: {result.status}", "success")
        return redirect(url_for("functions.sms_test"))

    return render_template("sms_test.html", to=phone, message=message, result=result, details=None)
