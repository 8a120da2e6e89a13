# laundry/utils/guards.py

from __future__ import annotations

from functools import wraps
from typing import Callable, Any

from flask import abort
from flask_login import login_required, current_user


def current_role() -> str:
    return (getattr(current_user, "role", "") or "").strip().lower()


def admin_required(view: Callable[..., Any]) -> Callable[..., Any]:
    """
    Allow only admin.
    Returns 403 for all other logged-in roles.
    """
    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if current_role() != "admin":
            abort(403)
        return view(*args, **kwargs)

    return wrapped


def role_required(*allowed_roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Generic role gate:
        @role_required("admin", "cashier")
        def view(): ...
    """
    def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if current_role() not in allowed_roles:
                abort(403)
            return view(*args, **kwargs)
        return wrapped
    return decorator


# Every signed-in shop role may work the counter
staff_required = role_required("admin", "staff", "cashier")
