# laundry/auth.py
from __future__ import annotations

from datetime import datetime
from urllib.parse import urlparse, urljoin

from flask import Blueprint, request, redirect, url_for, render_template, flash
from flask_login import login_user, logout_user, current_user, login_required
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .extensions import db, limiter, login_manager
from .models import ROLES, User
from .utils.guards import admin_required
from .utils.passwords import hash_password, login_email_for, validate_password, verify_password

auth = Blueprint("auth", __name__)


# =========================================================
# Flask-Login user loader
# =========================================================
@login_manager.user_loader
def load_user(user_id: str):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


# =========================================================
# Helpers
# =========================================================
def _is_safe_next(target: str) -> bool:
    """
    Allow only same-host redirects AND block redirect loops into /login or /logout.
    """
    if not target:
        return False

    if target.startswith(("/login", "/logout")):
        return False

    ref = urlparse(request.host_url)
    test = urlparse(urljoin(request.host_url, target))
    return test.scheme in ("http", "https") and ref.netloc == test.netloc


def _next_or_dashboard() -> str:
    nxt = request.args.get("next") or request.form.get("next") or ""
    if nxt and _is_safe_next(nxt):
        return nxt
    return url_for("main.dashboard")


def _normalize_role(role: str) -> str:
    return (role or "").strip().lower()


# =========================================================
# Login / Logout
# =========================================================
@auth.route("/login", methods=["GET", "POST"])
@limiter.limit("5 per minute", methods=["POST"])
def login():
    if getattr(current_user, "is_authenticated", False):
        return redirect(url_for("main.dashboard"))

    next_url = request.args.get("next") or request.form.get("next") or ""

    if request.method == "POST":
        username = (request.form.get("username") or "").strip()
        password = (request.form.get("password") or "").strip()

        if not username or not password:
            flash("Username and password are required.", "danger")
            return render_template("login.html", next=next_url), 400

        email = login_email_for(username)
        user = User.query.filter(db.func.lower(User.email) == email).first()

        if user and user.is_active is False:
            flash("This account is inactive. Contact an admin.", "danger")
            return render_template("login.html", next=next_url), 403

        if not user or not verify_password(user.password_hash, password):
            flash("Invalid username or password.", "danger")
            return render_template("login.html", next=next_url), 401

        login_user(user, remember=bool(request.form.get("remember")))

        try:
            user.last_login_at = datetime.utcnow()
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()

        flash("Welcome back!", "success")
        return redirect(_next_or_dashboard())

    return render_template("login.html", next=next_url)


@auth.route("/logout")
def logout():
    """
    Must NOT be login_required, otherwise Flask-Login redirects to
    /login?next=/logout and loops after a successful login.
    """
    logout_user()
    flash("You've been successfully signed out.", "success")
    return redirect(url_for("auth.login"))


# =========================================================
# Change Password (any logged-in user)
# =========================================================
@auth.route("/account/password", methods=["GET", "POST"])
@login_required
def change_password():
    if request.method == "POST":
        current_pw = request.form.get("current_password") or ""
        new_pw = request.form.get("new_password") or ""
        confirm_pw = request.form.get("confirm_password") or ""

        if not current_pw or not new_pw or not confirm_pw:
            flash("All fields are required.", "danger")
            return redirect(request.url)

        if not verify_password(current_user.password_hash, current_pw):
            flash("Current password is incorrect.", "danger")
            return redirect(request.url)

        if new_pw != confirm_pw:
            flash("Passwords do not match.", "danger")
            return redirect(request.url)

        ok, msg = validate_password(new_pw)
        if not ok:
            flash(msg, "danger")
            return redirect(request.url)

        current_user.password_hash = hash_password(new_pw)
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            flash("Failed to update password. Please try again.", "danger")
            return redirect(request.url)

        flash("Password updated successfully.", "success")
        return redirect(url_for("main.dashboard"))

    return render_template("auth/change_password.html")


# =========================================================
# Admin: List / Search Users
# =========================================================
@auth.route("/admin/users", methods=["GET"])
@admin_required
def admin_list_users():
    q = (request.args.get("q") or "").strip()
    role = _normalize_role(request.args.get("role") or "")

    qry = User.query

    if q:
        like = f"%{q.lower()}%"
        qry = qry.filter(
            or_(
                db.func.lower(User.full_name).like(like),
                db.func.lower(User.email).like(like),
            )
        )

    if role:
        qry = qry.filter(db.func.lower(User.role) == role)

    users = qry.order_by(User.id.desc()).all()
    return render_template("admin/users_list.html", users=users, q=q, role=role, roles=ROLES)


# =========================================================
# Admin: Create User
# =========================================================
@auth.route("/admin/users/new", methods=["GET", "POST"])
@admin_required
def admin_create_user():
    if request.method == "POST":
        full_name = (request.form.get("full_name") or "").strip()
        username = (request.form.get("username") or "").strip()
        role = _normalize_role(request.form.get("role") or "")
        password = request.form.get("password") or ""

        if not full_name or not username or not role or not password:
            flash("Name, username, role, and password are required.", "danger")
            return redirect(request.url)

        if role not in ROLES:
            flash("Unknown role.", "danger")
            return redirect(request.url)

        ok, msg = validate_password(password)
        if not ok:
            flash(msg, "danger")
            return redirect(request.url)

        user = User(
            full_name=full_name,
            email=login_email_for(username),
            role=role,
            password_hash=hash_password(password),
        )
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            flash("That username already exists.", "danger")
            return redirect(request.url)

        flash("User created successfully.", "success")
        return redirect(url_for("auth.admin_list_users"))

    return render_template("admin/users_new.html", roles=ROLES)
