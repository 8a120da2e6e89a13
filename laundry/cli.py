# laundry/cli.py
from __future__ import annotations

import click
from flask import Flask
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .models import ROLES, ClothingType, User
from .services.orders import OrderWriteError, mark_overdue_orders
from .utils.passwords import hash_password, login_email_for

DEFAULT_PRICE_LIST = {
    "Shirt": 150.0,
    "Trousers": 200.0,
    "Suit (2 piece)": 600.0,
    "Dress": 350.0,
    "Duvet": 800.0,
    "Blanket": 500.0,
    "Curtains (per panel)": 400.0,
}


def register_cli(app: Flask) -> None:
    @app.cli.command("mark-overdue")
    def mark_overdue_command():
        """Move orders past their overdue threshold to 'overdue'."""
        try:
            changed = mark_overdue_orders()
        except OrderWriteError as exc:
            raise click.ClickException(str(exc))
        click.echo(f"Marked {changed} order(s) overdue.")

    @app.cli.command("create-user")
    @click.argument("username")
    @click.option("--name", "full_name", default=None, help="Display name.")
    @click.option("--role", type=click.Choice(ROLES), default="staff", show_default=True)
    @click.password_option()
    def create_user_command(username, full_name, role, password):
        """Create a shop login (admin / staff / cashier)."""
        user = User(
            full_name=full_name or username.title(),
            email=login_email_for(username),
            role=role,
            password_hash=hash_password(password),
        )
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise click.ClickException(f"User {user.email} already exists.")
        click.echo(f"Created {role} {user.email}")

    @app.cli.command("seed-clothing-types")
    def seed_clothing_types_command():
        """Insert the default price list (existing names are left alone)."""
        existing = {c.name for c in ClothingType.query.all()}
        added = 0
        for name, price in DEFAULT_PRICE_LIST.items():
            if name not in existing:
                db.session.add(ClothingType(name=name, price=price))
                added += 1
        db.session.commit()
        click.echo(f"Added {added} clothing type(s).")
