# laundry/config/shop.py
from __future__ import annotations

"""
Single source of truth for the shop identity printed on receipts and pages.
"""

SHOP_NAME = "Fresh Fold Laundry"
SHOP_TAGLINE = "Clean • Pressed • On Time"

# Single display line (PDF-friendly)
SHOP_ADDRESS = "Ngong Road, Nairobi, Kenya"

SHOP_EMAIL = "hello@freshfold.co.ke"

SHOP_PHONES = ["+254-742-048-000"]

# "Primary" phone for single-line places (headers/footers)
SHOP_PHONE = SHOP_PHONES[0]

# Receipt footer policy line
COLLECTION_POLICY = (
    "Items not collected within 3 months of the collection date attract storage fees."
)


def shop_context() -> dict:
    """Template/PDF context injection."""
    return {
        "SHOP_NAME": SHOP_NAME,
        "SHOP_TAGLINE": SHOP_TAGLINE,
        "SHOP_ADDRESS": SHOP_ADDRESS,
        "SHOP_EMAIL": SHOP_EMAIL,
        "SHOP_PHONE": SHOP_PHONE,
        "SHOP_PHONES": SHOP_PHONES,
        "COLLECTION_POLICY": COLLECTION_POLICY,
    }
