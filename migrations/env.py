# migrations/env.py
from __future__ import annotations

import os
import sys
import logging
from logging.config import fileConfig

from alembic import context

# This file lives at <project_root>/migrations/env.py; make "import laundry" work
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

config = context.config

if config.config_file_name:
    try:
        fileConfig(config.config_file_name, disable_existing_loggers=False)
    except KeyError:
        # alembic.ini without logging sections
        pass

logger = logging.getLogger("alembic.env")

# -----------------------------------------------------------------------------
# With DATABASE_URL set (deploy hooks, CI) migrations run without a Flask app.
# Otherwise `flask db ...` provides the engine through Flask-Migrate.
# -----------------------------------------------------------------------------
DB_URL = os.getenv("DATABASE_URL")


def _escaped(url: str) -> str:
    return url.replace("%", "%%")


def _normalize(url: str) -> str:
    from laundry.settings import _normalize_db_url

    return _normalize_db_url(url)


def _laundry_metadata():
    from laundry.extensions import db
    from laundry import models  # noqa: F401  registers tables on db.metadata

    return db.metadata


def _flask_engine():
    from flask import current_app

    migrate_ext = current_app.extensions["migrate"]
    try:
        return migrate_ext.db.engine
    except AttributeError:
        return migrate_ext.db.get_engine()


def process_revision_directives(ctx, revision, directives):
    cmd_opts = getattr(config, "cmd_opts", None)
    if cmd_opts and getattr(cmd_opts, "autogenerate", False):
        script = directives[0]
        if script.upgrade_ops.is_empty():
            directives[:] = []
            logger.info("No changes in schema detected.")


def _configure_kwargs() -> dict:
    return {
        "target_metadata": _laundry_metadata(),
        "process_revision_directives": process_revision_directives,
        "compare_type": True,
        "compare_server_default": True,
        # SQLite needs batch mode for ALTER TABLE
        "render_as_batch": True,
    }


def run_migrations_offline():
    """Emit SQL without a live connection."""
    url = _normalize(DB_URL) if DB_URL else config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("No database URL. Set DATABASE_URL or run through `flask db`.")

    context.configure(url=url, literal_binds=True, **_configure_kwargs())
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    if DB_URL:
        from sqlalchemy import create_engine

        url = _normalize(DB_URL)
        config.set_main_option("sqlalchemy.url", _escaped(url))
        connectable = create_engine(url)
        extra = {}
    else:
        from flask import current_app

        connectable = _flask_engine()
        extra = dict(current_app.extensions["migrate"].configure_args or {})

    kwargs = _configure_kwargs()
    kwargs.update(extra)

    with connectable.connect() as connection:
        context.configure(connection=connection, **kwargs)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
