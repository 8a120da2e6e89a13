# laundry/utils/receipt_pdf.py

from __future__ import annotations

import io
from datetime import datetime, date

from reportlab.lib.pagesizes import A5
from reportlab.lib.units import mm
from reportlab.lib import colors
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

from laundry.config.shop import (
    COLLECTION_POLICY,
    SHOP_ADDRESS,
    SHOP_NAME,
    SHOP_PHONE,
    SHOP_TAGLINE,
)
from laundry.services.lifecycle import balance_due, evaluate_overdue, has_storage_fee, status_value


def _fmt_date(d):
    if not d:
        return "-"
    if isinstance(d, (datetime, date)):
        return d.strftime("%Y-%m-%d")
    return str(d)


def _money(v, currency="KES"):
    try:
        if v is None:
            return "-"
        return f"{currency} {float(v):,.2f}"
    except (TypeError, ValueError):
        return f"{currency} {v}"


def render_receipt_pdf(order, currency: str = "KES", today=None) -> bytes:
    """
    Render an order receipt PDF (NO DB writes).
    Returns PDF bytes.
    """
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A5)
    width, height = A5

    BRAND = colors.HexColor("#1d4ed8")
    DANGER = colors.HexColor("#dc2626")
    WARN = colors.HexColor("#ca8a04")
    GRAY = colors.HexColor("#6b7280")
    DARK = colors.HexColor("#111827")

    # --- Header bar ---
    c.setFillColor(BRAND)
    c.rect(0, height - 24 * mm, width, 24 * mm, stroke=0, fill=1)

    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 14)
    c.drawString(12 * mm, height - 12 * mm, SHOP_NAME)
    c.setFont("Helvetica", 8)
    c.drawString(12 * mm, height - 18 * mm, f"{SHOP_TAGLINE} • {SHOP_PHONE}")

    c.setFont("Helvetica-Bold", 11)
    c.drawRightString(width - 12 * mm, height - 12 * mm, f"RECEIPT {order.reference}")
    c.setFont("Helvetica", 8)
    c.drawRightString(width - 12 * mm, height - 18 * mm, f"Status: {status_value(order.status)}")

    # --- Customer + dates ---
    y = height - 34 * mm
    customer = getattr(order, "customer", None)
    c.setFillColor(DARK)
    c.setFont("Helvetica-Bold", 10)
    c.drawString(12 * mm, y, getattr(customer, "full_name", "-") if customer else "-")
    c.setFont("Helvetica", 9)
    c.drawString(12 * mm, y - 5 * mm, getattr(customer, "phone_number", "") if customer else "")

    c.drawRightString(width - 12 * mm, y, f"Received: {_fmt_date(order.date_received)}")
    c.drawRightString(width - 12 * mm, y - 5 * mm, f"Collection: {_fmt_date(order.collection_date)}")

    # --- Overdue badge (never for collected orders) ---
    info = evaluate_overdue(order.collection_date, order.status, today)
    if info.is_overdue:
        c.setFillColor(DANGER)
        c.setFont("Helvetica-Bold", 9)
        c.drawRightString(width - 12 * mm, y - 10 * mm, "OVERDUE")
    elif info.is_approaching:
        c.setFillColor(WARN)
        c.setFont("Helvetica-Bold", 9)
        c.drawRightString(width - 12 * mm, y - 10 * mm, info.label)

    y -= 18 * mm

    # --- Items table ---
    data = [["Item", "Qty", "Unit", "Subtotal"]]
    for it in getattr(order, "items", []) or []:
        ctype = getattr(it, "clothing_type", None)
        name = getattr(ctype, "name", "-") if ctype else "-"
        if it.color:
            name = f"{name} ({it.color})"
        data.append([
            name,
            f"{it.quantity}",
            _money(it.unit_price, currency),
            _money(it.subtotal, currency),
        ])

    if len(data) == 1:
        data.append(["(No items listed)", "-", "-", "-"])

    table = Table(data, colWidths=[50 * mm, 12 * mm, 30 * mm, 32 * mm], hAlign="LEFT")
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f3f4f6")),
        ("TEXTCOLOR", (0, 0), (-1, 0), DARK),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#e5e7eb")),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("PADDING", (0, 0), (-1, -1), 4),
    ]))

    tw, th = table.wrapOn(c, width - 24 * mm, height)
    table.drawOn(c, 12 * mm, y - th)
    y = y - th - 8 * mm

    # --- Totals ---
    # Storage fee is printed on its own line and is not part of Balance Due.
    block_x = width - 12 * mm
    rows = [
        ("Total", _money(order.total_amount, currency), DARK),
        ("Amount Paid", _money(order.amount_paid, currency), DARK),
        ("Balance Due", _money(balance_due(order.total_amount, order.amount_paid), currency), DARK),
    ]
    if has_storage_fee(order.storage_fee):
        rows.append(("Storage Fee", _money(order.storage_fee, currency), DANGER))

    for label, value, colour in rows:
        c.setFillColor(GRAY)
        c.setFont("Helvetica", 9)
        c.drawRightString(block_x - 36 * mm, y, label)
        c.setFillColor(colour)
        c.setFont("Helvetica-Bold", 9)
        c.drawRightString(block_x, y, value)
        y -= 6 * mm

    # --- Notes ---
    if order.notes:
        y -= 2 * mm
        c.setFillColor(DARK)
        c.setFont("Helvetica-Bold", 9)
        c.drawString(12 * mm, y, "Notes")
        c.setFont("Helvetica", 8)
        c.setFillColor(GRAY)
        c.drawString(12 * mm, y - 5 * mm, order.notes[:90])

    # --- Footer ---
    c.setFillColor(colors.HexColor("#e5e7eb"))
    c.rect(0, 0, width, 14 * mm, stroke=0, fill=1)
    c.setFillColor(colors.HexColor("#374151"))
    c.setFont("Helvetica", 7)
    c.drawString(12 * mm, 8 * mm, COLLECTION_POLICY)
    c.drawString(12 * mm, 4 * mm, SHOP_ADDRESS)
    c.drawRightString(width - 12 * mm, 4 * mm, f"Printed: {_fmt_date(date.today())}")

    c.showPage()
    c.save()

    pdf = buf.getvalue()
    buf.close()
    return pdf
