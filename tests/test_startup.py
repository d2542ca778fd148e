"""Tests for the startup integration point."""

import pytest

from schemaledger.catalog.source import InMemorySource
from schemaledger.config import SchemaLedgerSettings
from schemaledger.db import Database
from schemaledger.exceptions import ChecksumDrift
from schemaledger.ledger import store as ledger
from schemaledger.startup import migrate_on_startup, run_startup_or_exit


def _settings(tmp_path, **overrides):
    values = {
        "database_path": tmp_path / "app.db",
        "migrations_dir": tmp_path / "migrations",
        "branch": "main",
        "environment": "production",
        "lock_timeout_seconds": 5,
        "lock_poll_interval": 0.05,
    }
    values.update(overrides)
    return SchemaLedgerSettings(**values)


def _write_migrations(directory):
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "20240101000000_create_users.sql").write_text(
        "CREATE TABLE users (id BLOB PRIMARY KEY, email TEXT NOT NULL);\n"
    )
    (directory / "20240102000000_add_index.sql").write_text(
        "CREATE UNIQUE INDEX idx_users_email ON users (email);\n"
    )


@pytest.mark.asyncio
async def test_migrate_on_startup_from_directory(tmp_path):
    settings = _settings(tmp_path)
    _write_migrations(settings.migrations_dir)

    report = await migrate_on_startup(settings)

    assert report.applied == [20240101000000, 20240102000000]
    assert report.policy == "protected"
    async with Database(settings.database_path) as db:
        assert [e.sequence for e in await ledger.read_all(db)] == report.applied


@pytest.mark.asyncio
async def test_migrate_on_startup_with_custom_source(tmp_path):
    settings = _settings(tmp_path)
    source = InMemorySource([(1, "one", "CREATE TABLE one (id INTEGER);")])

    report = await migrate_on_startup(settings, source=source)
    assert report.applied == [1]

    again = await migrate_on_startup(settings, source=source)
    assert again.applied == []


@pytest.mark.asyncio
async def test_startup_propagates_drift(tmp_path):
    settings = _settings(tmp_path)
    await migrate_on_startup(settings, source=InMemorySource([(1, "one", "CREATE TABLE one (id INTEGER);")]))

    with pytest.raises(ChecksumDrift):
        await migrate_on_startup(
            settings, source=InMemorySource([(1, "one", "CREATE TABLE one (id TEXT);")])
        )


def test_run_startup_or_exit_success(tmp_path):
    settings = _settings(tmp_path)
    _write_migrations(settings.migrations_dir)

    report = run_startup_or_exit(settings)
    assert len(report.applied) == 2


def test_run_startup_or_exit_fails_loudly(tmp_path):
    settings = _settings(tmp_path)
    settings.migrations_dir.mkdir()
    (settings.migrations_dir / "1_a.sql").write_text("CREATE TABLE a (id INTEGER);")
    (settings.migrations_dir / "1_b.sql").write_text("CREATE TABLE b (id INTEGER);")

    with pytest.raises(SystemExit) as exc:
        run_startup_or_exit(settings)
    assert exc.value.code == 1
