"""Coordination Lock: a lease row in the target database.

Every replica that starts against the same database contends for the same
row, so at most one of them migrates at a time. The lease is renewed by a
heartbeat task while held, and by the executor on its own connection
before each migration statement, since the heartbeat cannot write while a
migration transaction is open. If the holder dies, the row expires and the
next contender takes it over.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog

from schemaledger.exceptions import LockLost, LockTimeout
from schemaledger.identifiers import decode, encode, new_id

if TYPE_CHECKING:
    from schemaledger.db import Database

logger = structlog.get_logger(__name__)

LOCK_TABLE = "_schemaledger_lock"

_RENEW_SQL = f"UPDATE {LOCK_TABLE} SET expires_at = ? WHERE name = ? AND holder = ?"

_CREATE_SQL = f"""
CREATE TABLE IF NOT EXISTS {LOCK_TABLE} (
    name TEXT PRIMARY KEY,
    holder BLOB NOT NULL,
    acquired_at REAL NOT NULL,
    expires_at REAL NOT NULL
)
"""


class CoordinationLock:
    """Named, lease-based mutual exclusion scoped to one database.

    Usage:
        async with CoordinationLock(db, timeout=60) as lock:
            ...  # only one process system-wide gets here at a time
    """

    def __init__(
        self,
        db: Database,
        name: str = "schema_migrations",
        lease_seconds: float = 30.0,
        timeout: float = 60.0,
        poll_interval: float = 0.5,
        holder: str | None = None,
    ) -> None:
        self._db = db
        self.name = name
        self.target = db.identity
        self.holder = holder or new_id()
        self.lease_seconds = lease_seconds
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._conn: aiosqlite.Connection | None = None
        self._expires_at = 0.0
        self._lost = False
        self._heartbeat: asyncio.Task | None = None

    @property
    def held(self) -> bool:
        return (
            self._conn is not None
            and not self._lost
            and time.time() < self._expires_at
        )

    async def acquire(self) -> None:
        """Block until the lock is ours or ``timeout`` elapses."""
        conn = await self._db._open_connection()
        self._conn = conn
        try:
            await conn.execute(_CREATE_SQL)
            started = time.monotonic()
            while not await self._try_acquire(conn):
                waited = time.monotonic() - started
                if waited >= self.timeout:
                    raise LockTimeout(self.name, waited)
                logger.debug("lock.waiting", name=self.name, waited=round(waited, 2))
                await asyncio.sleep(self.poll_interval)
        except BaseException:
            await self._close()
            raise

        self._lost = False
        self._heartbeat = asyncio.create_task(self._renew_loop())
        logger.info("lock.acquired", name=self.name, holder=self.holder)

    async def release(self) -> None:
        """Give the lock up. Safe to call when it was lost or never acquired."""
        if self._heartbeat and not self._heartbeat.done():
            self._heartbeat.cancel()
            try:
                await self._heartbeat
            except asyncio.CancelledError:
                pass
        self._heartbeat = None

        if self._conn is None:
            return
        try:
            await self._conn.execute(
                f"DELETE FROM {LOCK_TABLE} WHERE name = ? AND holder = ?",
                (self.name, encode(self.holder)),
            )
            logger.info("lock.released", name=self.name, holder=self.holder)
        except sqlite3.Error as e:
            # The lease expires on its own; the next contender takes over.
            logger.warning("lock.release_failed", name=self.name, error=str(e))
        finally:
            self._expires_at = 0.0
            await self._close()

    async def refresh(self) -> bool:
        """Extend the lease. False if another holder owns the row now."""
        if self._conn is None:
            return False
        expires_at = time.time() + self.lease_seconds
        cursor = await self._conn.execute(
            _RENEW_SQL, (expires_at, self.name, encode(self.holder))
        )
        renewed = cursor.rowcount == 1
        await cursor.close()
        if renewed:
            self._expires_at = expires_at
        return renewed

    async def ensure_held(self) -> None:
        """Confirm the row is still ours and extend it, or raise LockLost.

        Ownership is checked against the row, not the local expiry, so a
        lease that lapsed while nobody else claimed it is simply renewed.
        """
        if self._conn is None or self._lost:
            raise LockLost(self.name)
        if not await self.refresh():
            self._mark_lost()
            raise LockLost(self.name)

    async def renew_in_transaction(self) -> None:
        """Extend the lease through the target's own connection.

        Used while the target holds an open write transaction, which keeps
        the heartbeat connection out. The renewal commits or rolls back with
        that transaction.
        """
        if self._conn is None or self._lost:
            raise LockLost(self.name)
        expires_at = time.time() + self.lease_seconds
        cursor = await self._db.execute(
            _RENEW_SQL, (expires_at, self.name, encode(self.holder))
        )
        renewed = cursor.rowcount == 1
        await cursor.close()
        if not renewed:
            self._mark_lost()
            raise LockLost(self.name)
        self._expires_at = max(self._expires_at, expires_at)

    async def current_holder(self) -> str | None:
        """Holder of an unexpired lease, if any."""
        conn = self._conn or await self._db._open_connection()
        try:
            await conn.execute(_CREATE_SQL)
            cursor = await conn.execute(
                f"SELECT holder, expires_at FROM {LOCK_TABLE} WHERE name = ?",
                (self.name,),
            )
            row = await cursor.fetchone()
            await cursor.close()
        finally:
            if conn is not self._conn:
                await conn.close()
        if row is None or row[1] <= time.time():
            return None
        return decode(row[0])

    async def _try_acquire(self, conn: aiosqlite.Connection) -> bool:
        try:
            await conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            if "locked" in str(e) or "busy" in str(e):
                return False
            raise

        try:
            cursor = await conn.execute(
                f"SELECT holder, expires_at FROM {LOCK_TABLE} WHERE name = ?",
                (self.name,),
            )
            row = await cursor.fetchone()
            await cursor.close()

            now = time.time()
            if row is not None and row[1] > now and decode(row[0]) != self.holder:
                await conn.execute("COMMIT")
                return False

            if row is not None and decode(row[0]) != self.holder:
                logger.warning(
                    "lock.expired_lease_taken_over",
                    name=self.name,
                    previous_holder=decode(row[0]),
                    expired_for=round(now - row[1], 2),
                )

            expires_at = now + self.lease_seconds
            await conn.execute(
                f"INSERT OR REPLACE INTO {LOCK_TABLE} "
                f"(name, holder, acquired_at, expires_at) VALUES (?, ?, ?, ?)",
                (self.name, encode(self.holder), now, expires_at),
            )
            await conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                await conn.execute("ROLLBACK")
            raise

        self._expires_at = expires_at
        return True

    async def _renew_loop(self) -> None:
        interval = max(self.lease_seconds / 3, 0.01)
        while True:
            await asyncio.sleep(interval)
            try:
                renewed = await self.refresh()
            except sqlite3.OperationalError as e:
                # Busy behind our own migration transaction; retry next tick.
                logger.warning("lock.renew_deferred", name=self.name, error=str(e))
                continue
            if not renewed:
                self._mark_lost()
                return

    def _mark_lost(self) -> None:
        if not self._lost:
            self._lost = True
            logger.error("lock.lost", name=self.name, holder=self.holder)

    async def _close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> CoordinationLock:
        await self.acquire()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.release()

    def __repr__(self) -> str:
        return f"CoordinationLock(name={self.name!r}, holder={self.holder!r}, held={self.held})"
