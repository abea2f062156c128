from pathlib import Path

import pytest

from comanda.core import startup_checks


def test_sqlite_is_refused_in_production(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setattr(startup_checks, "DATABASE_URL", "sqlite:///./comanda.db")

    with pytest.raises(RuntimeError):
        startup_checks.validate_database_environment()


def test_migration_check_skipped_in_test_env(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "test")

    startup_checks.ensure_migrations_applied(engine=None, alembic_config_path=Path("nao-existe.ini"))


def test_missing_alembic_config_fails_outside_dev(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "staging")
    monkeypatch.setattr(startup_checks, "DATABASE_URL", "postgresql://db/comanda")

    with pytest.raises(RuntimeError):
        startup_checks.ensure_migrations_applied(engine=None, alembic_config_path=Path("nao-existe.ini"))
