# laundry/services/sms.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

import requests
from flask import current_app
from requests.auth import HTTPBasicAuth

AT_LIVE_URL = "https://api.africastalking.com/version1/messaging"
AT_SANDBOX_URL = "https://api.sandbox.africastalking.com/version1/messaging"
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

PHONE_RE = re.compile(r"^\+?\d{9,15}$")
MAX_MESSAGE_LENGTH = 1600


# =========================================================
# Errors
# =========================================================
class SmsError(Exception):
    """Base class for SMS delivery problems."""

    status_code = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class SmsValidationError(SmsError):
    status_code = 400


class SmsConfigurationError(SmsError):
    status_code = 500


class SmsProviderError(SmsError):
    """Provider answered but did not accept the message."""

    status_code = 400


class SmsTransportError(SmsError):
    """Provider could not be reached."""

    status_code = 500


@dataclass(frozen=True)
class SmsResult:
    message_id: Optional[str]
    status: str
    cost: Optional[str]

    def to_dict(self) -> dict:
        return {"messageId": self.message_id, "status": self.status, "cost": self.cost}


# =========================================================
# Validation
# =========================================================
def normalize_phone(phone: str | None) -> str:
    return re.sub(r"[\s\-()]", "", (phone or "").strip())


def is_valid_phone(phone: str | None) -> bool:
    return bool(PHONE_RE.match(normalize_phone(phone)))


def validate_sms(to: Any, message: Any) -> tuple[str, str]:
    """Returns (phone, message) cleaned, or raises SmsValidationError."""
    errors: list[str] = []

    phone = normalize_phone(to if isinstance(to, str) else "")
    text = message if isinstance(message, str) else ""

    if not phone:
        errors.append("Phone number is required.")
    elif not PHONE_RE.match(phone):
        errors.append("Phone number must be digits with an optional leading +, 9 to 15 digits long.")

    if not text:
        errors.append("Message is required.")
    elif len(text) > MAX_MESSAGE_LENGTH:
        errors.append(f"Message must be at most {MAX_MESSAGE_LENGTH} characters.")

    if errors:
        raise SmsValidationError("Invalid SMS request", details=errors)
    return phone, text


# =========================================================
# Africa's Talking (customer notifications)
# =========================================================
def _at_credentials() -> tuple[str, str]:
    api_key = current_app.config.get("AT_API_KEY")
    username = current_app.config.get("AT_USERNAME")
    if not api_key or not username:
        raise SmsConfigurationError("Africa's Talking credentials not configured")
    return api_key, username


def _first_recipient(payload: Any) -> dict:
    try:
        recipients = payload["SMSMessageData"]["Recipients"]
        return recipients[0] if recipients else {}
    except (KeyError, TypeError, IndexError):
        return {}


def send_sms(to: str, message: str) -> SmsResult:
    """
    Send one SMS through Africa's Talking.

    Success is decided by the per-recipient status in the JSON payload,
    not by the HTTP status alone.
    """
    phone, text = validate_sms(to, message)
    api_key, username = _at_credentials()

    url = AT_SANDBOX_URL if current_app.config.get("AT_SANDBOX") else AT_LIVE_URL
    form = {"username": username, "to": phone, "message": text}
    sender_id = current_app.config.get("AT_SENDER_ID")
    if sender_id:
        form["from"] = sender_id

    try:
        r = requests.post(
            url,
            headers={"apiKey": api_key, "Accept": "application/json"},
            data=form,
            timeout=current_app.config.get("SMS_TIMEOUT_SECONDS", 10),
        )
    except requests.RequestException as exc:
        current_app.logger.warning("Africa's Talking unreachable: %s", exc)
        raise SmsTransportError("SMS provider unreachable") from exc

    try:
        payload = r.json()
    except ValueError:
        payload = {"raw": r.text}

    recipient = _first_recipient(payload)
    if not r.ok or recipient.get("status") != "Success":
        current_app.logger.warning("Africa's Talking rejected SMS to %s: %s", phone, payload)
        raise SmsProviderError("SMS provider rejected the message", details=payload)

    return SmsResult(
        message_id=recipient.get("messageId"),
        status=recipient.get("status", "Success"),
        cost=recipient.get("cost"),
    )


# =========================================================
# Twilio (M-Pesa payment alert to the shop)
# =========================================================
def mpesa_alert_message(customer_name: str, order_number: str, amount_paid: float) -> str:
    return (
        "MPESA PAYMENT ALERT\n"
        f"Customer: {customer_name}\n"
        f"Order #: {order_number}\n"
        f"Amount: KES {float(amount_paid):.2f}"
    )


def send_mpesa_alert(customer_name: str, order_number: str, amount_paid: float) -> str:
    """Text the shop's alert number about an M-Pesa payment. Returns the Twilio SID."""
    if not customer_name or not order_number or not amount_paid:
        raise SmsValidationError("Missing required fields: customerName, orderNumber, or amountPaid")

    sid = current_app.config.get("TWILIO_ACCOUNT_SID")
    token = current_app.config.get("TWILIO_AUTH_TOKEN")
    sender = current_app.config.get("TWILIO_PHONE_NUMBER")
    if not sid or not token or not sender:
        current_app.logger.error("Missing Twilio credentials")
        raise SmsConfigurationError("Twilio credentials not configured")

    alert_to = current_app.config.get("MPESA_ALERT_PHONE_NUMBER")
    body = mpesa_alert_message(customer_name, order_number, amount_paid)

    current_app.logger.info("Sending M-Pesa alert for order %s", order_number)

    try:
        r = requests.post(
            TWILIO_MESSAGES_URL.format(sid=sid),
            auth=HTTPBasicAuth(sid, token),
            data={"To": alert_to, "From": sender, "Body": body},
            timeout=current_app.config.get("SMS_TIMEOUT_SECONDS", 10),
        )
    except requests.RequestException as exc:
        current_app.logger.warning("Twilio unreachable: %s", exc)
        raise SmsTransportError("SMS provider unreachable") from exc

    try:
        payload = r.json()
    except ValueError:
        payload = {}

    if not r.ok:
        current_app.logger.error("Twilio API error: %s", payload)
        raise SmsProviderError(
            f"Twilio API error: {payload.get('message') or r.reason}",
            details=payload,
        )

    return payload.get("sid")
