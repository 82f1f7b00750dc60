"""Helpers for configuring SQLAlchemy engine and session factories."""

from __future__ import annotations

import importlib
import logging
import os
import uuid
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker

from . import Base

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


def get_engine(database_url: str | None = None, **kwargs: object) -> Engine:
    """Create a SQLAlchemy engine for ``database_url`` or ``DATABASE_URL``.

    SQLite connections get a ``gen_random_uuid`` function and enforced
    foreign keys so that the same models work in development and tests.
    """

    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not configured.")

    engine = create_engine(url, **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _configure_sqlite(dbapi_connection, _connection_record):  # pragma: no cover - dialect hook
            dbapi_connection.create_function("gen_random_uuid", 0, lambda: str(uuid.uuid4()))
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

    return engine


def get_sessionmaker(database_url: str | None = None, **kwargs: object) -> sessionmaker[Session]:
    """Return a session factory bound to the configured engine."""

    engine = get_engine(database_url=database_url, **kwargs)
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


def create_schema(database_url: str | None = None) -> None:
    """Create the account tables when they do not exist yet.

    Production databases are migrated with :func:`apply_migrations`; this is
    meant for local SQLite databases.
    """

    engine = get_engine(database_url=database_url)
    try:
        Base.metadata.create_all(engine)
    finally:
        engine.dispose()


def apply_migrations(
    database_url: str | None = None, migrations_dir: Path = MIGRATIONS_DIR
) -> list[str]:
    """Run pending ``app/migrations`` scripts against a PostgreSQL database.

    Applied revisions are recorded in ``app_migrations``. Returns the ids
    applied by this call, in order.
    """

    engine = get_engine(database_url=database_url)
    applied_now: list[str] = []
    try:
        with engine.begin() as conn:
            conn.execute(
                text(
                    "CREATE TABLE IF NOT EXISTS app_migrations ("
                    " id TEXT PRIMARY KEY,"
                    " applied_at TIMESTAMPTZ NOT NULL DEFAULT now())"
                )
            )
            applied = set(conn.execute(text("SELECT id FROM app_migrations")).scalars())

        for path in sorted(migrations_dir.glob("[0-9][0-9][0-9]_*.py")):
            if path.stem in applied:
                continue
            module = importlib.import_module(f"app.migrations.{path.stem}")
            with engine.begin() as conn:
                with Operations.context(MigrationContext.configure(conn)):
                    module.upgrade()
                conn.execute(
                    text("INSERT INTO app_migrations (id) VALUES (:id)"),
                    {"id": path.stem},
                )
            logger.info("Applied migration %s", path.stem)
            applied_now.append(path.stem)
    finally:
        engine.dispose()
    return applied_now


__all__ = [
    "Base",
    "apply_migrations",
    "create_schema",
    "get_engine",
    "get_sessionmaker",
]
