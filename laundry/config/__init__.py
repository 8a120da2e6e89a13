# laundry/config/__init__.py
from __future__ import annotations

"""
laundry.config is a PACKAGE.

- Shop identity lives in: laundry.config.shop
- App runtime settings live in: laundry.settings
"""

from .shop import shop_context

__all__ = ["shop_context"]
