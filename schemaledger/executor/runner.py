"""Migration runner: applies pending migrations on startup.

``MigrationExecutor.run`` is the only ledger-tracked path for schema changes:

  1. take the coordination lock for the target (or fail with LockTimeout)
  2. get a schema-change token from the branch policy guard
  3. make sure the ledger exists
  4. diff the catalog against the ledger (drift and dirty state are fatal)
  5. apply each pending migration and its ledger row in one transaction,
     renewing the lease before every statement and stopping at the first
     failure
  6. revoke the token and release the lock, whatever happened
"""

from __future__ import annotations

import sqlite3
import time
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from schemaledger.catalog.definition import Catalog, MigrationDefinition
from schemaledger.events.bus import EventBus, MigrationTopic
from schemaledger.exceptions import LedgerUnavailable, LockLost, MigrationFailed
from schemaledger.executor.lock import CoordinationLock
from schemaledger.identifiers import new_id
from schemaledger.ledger import store as ledger
from schemaledger.ledger.store import LedgerEntry, LedgerStatus
from schemaledger.policy.guard import SchemaChangeToken

if TYPE_CHECKING:
    from schemaledger.config import SchemaLedgerSettings
    from schemaledger.db import Database

logger = structlog.get_logger(__name__)


class RunReport(BaseModel):
    """Outcome of a single executor run."""

    run_id: str
    branch: str
    policy: str
    applied: list[int] = Field(default_factory=list)
    pending: list[int] = Field(default_factory=list)
    already_applied: int = 0
    dry_run: bool = False
    duration_ms: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.applied)


class MigrationExecutor:
    """Applies a catalog to a target database under the coordination lock."""

    def __init__(
        self,
        lock_name: str = "schema_migrations",
        lock_timeout: float = 60.0,
        lease_seconds: float = 30.0,
        poll_interval: float = 0.5,
        event_bus: EventBus | None = None,
    ) -> None:
        self._lock_name = lock_name
        self._lock_timeout = lock_timeout
        self._lease_seconds = lease_seconds
        self._poll_interval = poll_interval
        self._event_bus = event_bus

    @classmethod
    def from_settings(
        cls,
        settings: SchemaLedgerSettings,
        event_bus: EventBus | None = None,
    ) -> MigrationExecutor:
        return cls(
            lock_name=settings.lock_name,
            lock_timeout=settings.lock_timeout_seconds,
            lease_seconds=settings.lock_lease_seconds,
            poll_interval=settings.lock_poll_interval,
            event_bus=event_bus,
        )

    def lock_for(self, db: Database) -> CoordinationLock:
        return CoordinationLock(
            db,
            name=self._lock_name,
            lease_seconds=self._lease_seconds,
            timeout=self._lock_timeout,
            poll_interval=self._poll_interval,
        )

    async def run(
        self,
        db: Database,
        catalog: Catalog,
        dry_run: bool = False,
    ) -> RunReport:
        """Bring *db* up to date with *catalog*. Raises on any failure."""
        guard = db.guard
        started = time.monotonic()
        report = RunReport(
            run_id=new_id(),
            branch=db.branch,
            policy=guard.classify(db).value,
            dry_run=dry_run,
        )
        log = logger.bind(run_id=report.run_id, branch=db.branch)

        if dry_run:
            pending = await self.pending(db, catalog)
            report.pending = [d.sequence for d in pending]
            report.already_applied = len(catalog) - len(pending)
            log.info("migration.dry_run", pending=report.pending)
            return report

        await self._emit(MigrationTopic.RUN_STARTED, {
            "run_id": report.run_id, "branch": db.branch, "catalog": len(catalog),
        })

        async with self.lock_for(db) as lock:
            token = guard._issue_token(db, lock)
            try:
                await ledger.ensure(db, token=token)
                pending = ledger.diff(catalog, await ledger.read_all(db))
                report.pending = [d.sequence for d in pending]
                report.already_applied = len(catalog) - len(pending)

                if not pending:
                    log.info("migration.up_to_date", migrations=len(catalog))

                for definition in pending:
                    await lock.ensure_held()
                    await self._apply(db, lock, definition, token, report.run_id)
                    report.applied.append(definition.sequence)
            finally:
                guard.revoke(token)

        report.duration_ms = int((time.monotonic() - started) * 1000)
        log.info(
            "migration.run_completed",
            applied=report.applied,
            duration_ms=report.duration_ms,
        )
        await self._emit(MigrationTopic.RUN_COMPLETED, report.model_dump())
        return report

    async def pending(self, db: Database, catalog: Catalog) -> list[MigrationDefinition]:
        """Pending definitions without taking the lock or mutating anything."""
        try:
            entries = await ledger.read_all(db)
        except LedgerUnavailable:
            entries = []
        return ledger.diff(catalog, entries)

    async def _apply(
        self,
        db: Database,
        lock: CoordinationLock,
        definition: MigrationDefinition,
        token: SchemaChangeToken,
        run_id: str,
    ) -> None:
        log = logger.bind(run_id=run_id, sequence=definition.sequence, name=definition.name)
        log.info("migration.applying", statements=len(definition.statements))
        started = time.monotonic()
        index = 0

        try:
            async with db.transaction():
                for index, statement in enumerate(definition.statements):
                    await lock.renew_in_transaction()
                    await db.execute(statement, token=token)
                elapsed = int((time.monotonic() - started) * 1000)
                await ledger.record(db, LedgerEntry.for_definition(
                    definition, run_id, execution_ms=elapsed,
                ))
        except LockLost:
            # Another replica owns the lease and the ledger writes now.
            log.error("migration.aborted", reason="coordination lock lost")
            await self._emit(MigrationTopic.ABORTED, {
                "run_id": run_id, "sequence": definition.sequence, "error": "lock lost",
            })
            raise
        except Exception as e:
            elapsed = int((time.monotonic() - started) * 1000)
            reason = f"statement {index + 1}/{len(definition.statements)}: {e}"
            log.error("migration.failed", error=reason)
            await self._record_failure(db, definition, run_id, elapsed, reason)
            await self._emit(MigrationTopic.FAILED, {
                "run_id": run_id, "sequence": definition.sequence, "error": reason,
            })
            raise MigrationFailed(definition.sequence, definition.name, reason) from e

        log.info("migration.applied", execution_ms=elapsed)
        await self._emit(MigrationTopic.APPLIED, {
            "run_id": run_id,
            "sequence": definition.sequence,
            "name": definition.name,
            "execution_ms": elapsed,
        })

    async def _record_failure(
        self,
        db: Database,
        definition: MigrationDefinition,
        run_id: str,
        elapsed: int,
        reason: str,
    ) -> None:
        entry = LedgerEntry.for_definition(
            definition,
            run_id,
            status=LedgerStatus.FAILED,
            execution_ms=elapsed,
            error=reason,
        )
        try:
            await ledger.record_failure(db, entry)
        except sqlite3.Error as e:
            logger.error(
                "migration.failure_not_recorded",
                sequence=definition.sequence,
                error=str(e),
            )

    async def _emit(self, topic: MigrationTopic, data: dict) -> None:
        if self._event_bus:
            await self._event_bus.emit(topic, data, source="migration_executor")
