"""Applied-Migration Ledger — append-only record of migration runs.

One row per migration sequence. Rows are inserted inside the same
transaction as the migration's statements, so a reader never sees a schema
change without its ledger row or the other way round. Normal operation
never deletes or rewrites rows; ``clear_failed`` is the operator's repair
path for a migration that failed and has since been fixed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from schemaledger.catalog.definition import Catalog, MigrationDefinition
from schemaledger.exceptions import (
    ChecksumDrift,
    DirtyMigration,
    LedgerError,
    LedgerUnavailable,
    OutOfOrderMigration,
    UnknownMigration,
)
from schemaledger.identifiers import decode, encode, new_id

if TYPE_CHECKING:
    from schemaledger.db import Database
    from schemaledger.policy.guard import SchemaChangeToken

logger = structlog.get_logger(__name__)

LEDGER_TABLE = "_schemaledger_migrations"

_CREATE_SQL = f"""
CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
    sequence INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    checksum TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('applied', 'failed')),
    applied_at TEXT NOT NULL,
    run_id BLOB NOT NULL CHECK (length(run_id) = 16),
    execution_ms INTEGER NOT NULL DEFAULT 0,
    error TEXT NOT NULL DEFAULT ''
)
"""

_INSERT_SQL = f"""
INSERT INTO {LEDGER_TABLE}
    (sequence, name, checksum, status, applied_at, run_id, execution_ms, error)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""


class LedgerStatus(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"


class LedgerEntry(BaseModel):
    """A single ledger row."""

    sequence: int
    name: str = ""
    checksum: str
    status: LedgerStatus = LedgerStatus.APPLIED
    applied_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: str = Field(default_factory=new_id)
    execution_ms: int = 0
    error: str = ""

    @classmethod
    def for_definition(
        cls,
        definition: MigrationDefinition,
        run_id: str,
        status: LedgerStatus = LedgerStatus.APPLIED,
        execution_ms: int = 0,
        error: str = "",
    ) -> LedgerEntry:
        return cls(
            sequence=definition.sequence,
            name=definition.name,
            checksum=definition.checksum,
            status=status,
            run_id=run_id,
            execution_ms=execution_ms,
            error=error,
        )

    def _params(self) -> tuple:
        return (
            self.sequence,
            self.name,
            self.checksum,
            self.status.value,
            self.applied_at.isoformat(),
            encode(self.run_id),
            self.execution_ms,
            self.error,
        )


async def exists(db: Database) -> bool:
    return await db.table_exists(LEDGER_TABLE)


async def ensure(db: Database, token: SchemaChangeToken | None = None) -> None:
    """Create the ledger table if it is missing."""
    if await exists(db):
        return
    await db.execute(_CREATE_SQL, token=token)
    logger.info("ledger.created", table=LEDGER_TABLE, branch=db.branch)


async def read_all(db: Database) -> list[LedgerEntry]:
    """All ledger rows in ascending sequence order."""
    if not await exists(db):
        raise LedgerUnavailable(f"Ledger table {LEDGER_TABLE} does not exist")
    rows = await db.fetchall(
        f"SELECT sequence, name, checksum, status, applied_at, run_id, "
        f"execution_ms, error FROM {LEDGER_TABLE} ORDER BY sequence"
    )
    return [
        LedgerEntry(
            sequence=row["sequence"],
            name=row["name"],
            checksum=row["checksum"],
            status=LedgerStatus(row["status"]),
            applied_at=datetime.fromisoformat(row["applied_at"]),
            run_id=decode(row["run_id"]),
            execution_ms=row["execution_ms"],
            error=row["error"],
        )
        for row in rows
    ]


async def record(db: Database, entry: LedgerEntry) -> None:
    """Append an entry inside the caller's open transaction."""
    await db.execute(_INSERT_SQL, entry._params())


async def record_failure(db: Database, entry: LedgerEntry) -> None:
    """Store a failed entry in its own transaction."""
    failed = entry.model_copy(update={"status": LedgerStatus.FAILED})
    async with db.transaction():
        await db.execute(_INSERT_SQL, failed._params())
    logger.warning("ledger.failure_recorded", sequence=failed.sequence, error=failed.error)


async def clear_failed(db: Database, sequence: int) -> LedgerEntry:
    """Remove a failed entry so the migration can be retried."""
    entries = {e.sequence: e for e in await read_all(db)}
    entry = entries.get(sequence)
    if entry is None:
        raise LedgerError(f"No ledger entry for migration {sequence}")
    if entry.status != LedgerStatus.FAILED:
        raise LedgerError(f"Migration {sequence} is applied; only failed entries can be cleared")
    async with db.transaction():
        await db.execute(
            f"DELETE FROM {LEDGER_TABLE} WHERE sequence = ? AND status = ?",
            (sequence, LedgerStatus.FAILED.value),
        )
    logger.warning("ledger.failure_cleared", sequence=sequence, branch=db.branch)
    return entry


def diff(catalog: Catalog, entries: list[LedgerEntry]) -> list[MigrationDefinition]:
    """Catalog definitions that still need to run, in ascending order.

    Raises:
        DirtyMigration: a failed entry is present.
        UnknownMigration: an applied entry has no catalog definition.
        ChecksumDrift: an applied definition's source changed.
        OutOfOrderMigration: a pending definition sorts below an applied one.
    """
    applied: dict[int, LedgerEntry] = {}
    for entry in entries:
        if entry.status == LedgerStatus.FAILED:
            raise DirtyMigration(entry.sequence)
        applied[entry.sequence] = entry

    for sequence, entry in applied.items():
        definition = catalog.get(sequence)
        if definition is None:
            raise UnknownMigration(sequence)
        if definition.checksum != entry.checksum:
            raise ChecksumDrift(sequence, entry.checksum, definition.checksum)

    pending = [d for d in catalog if d.sequence not in applied]
    if pending and applied:
        highest = max(applied)
        if pending[0].sequence < highest:
            raise OutOfOrderMigration(pending[0].sequence, highest)
    return pending
