"""Target database: a named SQLite connection that consults the guard.

The connection runs in autocommit mode and transactions are explicit
(``async with db.transaction()`` takes the write lock up front), so DDL
and the ledger row that records it commit or roll back together.

The connection itself is never handed out. Every statement goes through
``execute``, so the branch policy sees all of them.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Iterable

import aiosqlite

from schemaledger.policy.guard import BranchPolicyGuard, SchemaChangeToken

DEFAULT_BUSY_TIMEOUT = 5.0


class Database:
    """One migration target: a database file plus the branch it represents."""

    def __init__(
        self,
        path: str | Path,
        branch: str = "development",
        guard: BranchPolicyGuard | None = None,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
    ) -> None:
        self.path = Path(path)
        self.branch = branch
        self.guard = guard or BranchPolicyGuard()
        self.busy_timeout = busy_timeout
        self._conn: aiosqlite.Connection | None = None
        self._in_transaction = False

    @property
    def identity(self) -> str:
        """Stable name of the target, shared by every replica."""
        return str(self.path.resolve())

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError(f"Database {self.path} is not connected")
        return self._conn

    async def connect(self) -> None:
        if self._conn is not None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await self._open_connection()

    async def _open_connection(self) -> aiosqlite.Connection:
        """Open an autocommit connection to the same file.

        Only the coordination lock uses this directly, for its own row.
        """
        conn = await aiosqlite.connect(
            str(self.path), timeout=self.busy_timeout, isolation_level=None
        )
        conn.row_factory = aiosqlite.Row
        return conn

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> Database:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def execute(
        self,
        sql: str,
        params: Iterable[Any] = (),
        token: SchemaChangeToken | None = None,
    ) -> aiosqlite.Cursor:
        """Execute one statement after the branch policy has allowed it."""
        self.guard.check(self, sql, token=token)
        return await self._connection.execute(sql, tuple(params))

    async def create_function(self, name: str, num_params: int, func: Callable[..., Any]) -> None:
        """Register a scalar SQL function that migration statements may call."""
        await self._connection.create_function(name, num_params, func)

    async def fetchall(self, sql: str, params: Iterable[Any] = ()) -> list[aiosqlite.Row]:
        cursor = await self.execute(sql, params)
        rows = await cursor.fetchall()
        await cursor.close()
        return list(rows)

    async def table_exists(self, name: str) -> bool:
        rows = await self.fetchall(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (name,),
        )
        return bool(rows)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Database]:
        """BEGIN ... COMMIT, or ROLLBACK if the block raises."""
        if self._in_transaction:
            raise RuntimeError("Nested transactions are not supported")
        await self._connection.execute("BEGIN IMMEDIATE")
        self._in_transaction = True
        try:
            yield self
        except BaseException:
            if self._connection.in_transaction:
                await self._connection.execute("ROLLBACK")
            raise
        else:
            await self._connection.execute("COMMIT")
        finally:
            self._in_transaction = False

    def __repr__(self) -> str:
        return f"Database(path={str(self.path)!r}, branch={self.branch!r})"
