from __future__ import annotations

import logging
import os
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from comanda.core.config import DATABASE_URL

logger = logging.getLogger(__name__)
MIGRATIONS_PREFIX = "[MIGRATIONS]"

REQUIRED_TABLES = (
    "venues",
    "products",
    "orders",
    "order_items",
    "payments",
    "kitchen_tickets",
    "kitchen_ticket_sequences",
    "idempotency_keys",
    "audit_log",
)


def _current_env() -> str:
    return os.getenv("ENVIRONMENT", os.getenv("ENV", "dev")).strip().lower()


def _is_sqlite() -> bool:
    return DATABASE_URL.startswith("sqlite")


def validate_database_environment() -> None:
    if _current_env() in {"prod", "production"} and _is_sqlite():
        logger.critical("%s SQLite is forbidden in production", MIGRATIONS_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def _expected_heads(alembic_config_path: Path) -> set[str]:
    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")
    script_directory = ScriptDirectory.from_config(Config(str(alembic_config_path)))
    return set(script_directory.get_heads())


def _applied_heads(engine: Engine) -> tuple[set[str], set[str]]:
    with engine.connect() as connection:
        tables = set(inspect(connection).get_table_names())
        if "alembic_version" not in tables:
            return set(), tables
        rows = connection.exec_driver_sql("SELECT version_num FROM alembic_version").fetchall()
    return {row[0] for row in rows if row and row[0]}, tables


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    """Recusa subir com schema desatualizado (fora de teste e do sqlite local)."""
    env = _current_env()
    if env == "test":
        logger.info("%s skipped migration check in test environment", MIGRATIONS_PREFIX)
        return
    if _is_sqlite() and env in {"dev", "development", "local"}:
        logger.info("%s skipped migration check for local sqlite", MIGRATIONS_PREFIX)
        return

    expected = _expected_heads(alembic_config_path)
    current, tables = _applied_heads(engine)
    if not current:
        logger.critical("%s alembic_version table missing or empty", MIGRATIONS_PREFIX)
        raise RuntimeError("Database has no migration state")
    if current != expected:
        logger.critical(
            "%s pending migration detected current=%s expected=%s",
            MIGRATIONS_PREFIX,
            sorted(current),
            sorted(expected),
        )
        raise RuntimeError("Pending migrations detected")

    missing = [table for table in REQUIRED_TABLES if table not in tables]
    if missing:
        logger.critical("%s tables missing missing=%s", MIGRATIONS_PREFIX, ",".join(missing))
        raise RuntimeError("tables missing / migrations not applied")

    logger.info("%s migration state verified heads=%s", MIGRATIONS_PREFIX, sorted(current))
