"""Startup integration — migrate before the service accepts traffic.

The hosting service calls ``migrate_on_startup()`` exactly once on its
initialization path, or ``run_startup_or_exit()`` from a synchronous entry
point. Any failure is fatal: a service that cannot confirm its schema must
not start serving.
"""

from __future__ import annotations

import asyncio
import sqlite3

import structlog

from schemaledger.catalog.source import DirectorySource, MigrationSource, load
from schemaledger.config import SchemaLedgerSettings
from schemaledger.db import Database
from schemaledger.events.bus import EventBus
from schemaledger.exceptions import SchemaLedgerError
from schemaledger.executor.runner import MigrationExecutor, RunReport
from schemaledger.policy.guard import BranchPolicyGuard
from schemaledger.telemetry import setup_from_settings

logger = structlog.get_logger(__name__)


async def migrate_on_startup(
    settings: SchemaLedgerSettings | None = None,
    source: MigrationSource | None = None,
    event_bus: EventBus | None = None,
) -> RunReport:
    """Load the catalog and run the executor against the configured target."""
    if settings is None:
        from schemaledger.config import settings as default_settings
        settings = default_settings

    guard = BranchPolicyGuard.from_settings(settings)
    catalog = await load(source or DirectorySource(settings.migrations_dir))

    async with Database(settings.database_path, branch=settings.branch, guard=guard) as db:
        logger.info(
            "startup.target",
            branch=db.branch,
            policy=guard.classify(db).value,
            database=str(db.path),
        )
        executor = MigrationExecutor.from_settings(settings, event_bus=event_bus)
        return await executor.run(db, catalog)


def run_startup_or_exit(settings: SchemaLedgerSettings | None = None) -> RunReport:
    """Synchronous wrapper: configure logging, migrate, exit(1) on failure."""
    if settings is None:
        from schemaledger.config import settings as default_settings
        settings = default_settings

    setup_from_settings(settings)
    try:
        return asyncio.run(migrate_on_startup(settings))
    except (SchemaLedgerError, sqlite3.Error) as e:
        logger.error(
            "startup.migration_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise SystemExit(1) from e
