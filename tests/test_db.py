"""Tests for the target database wrapper."""

import pytest

from schemaledger.db import Database


@pytest.mark.asyncio
async def test_connect_creates_parent_directory(tmp_path):
    path = tmp_path / "nested" / "dir" / "app.db"
    async with Database(path) as db:
        assert db.is_connected
    assert path.exists()
    assert not db.is_connected


@pytest.mark.asyncio
async def test_execute_requires_connect(tmp_path):
    db = Database(tmp_path / "app.db")
    with pytest.raises(RuntimeError, match="not connected"):
        await db.execute("SELECT 1")


def test_identity_is_resolved_path(tmp_path):
    a = Database(tmp_path / "app.db")
    b = Database(tmp_path / "sub" / ".." / "app.db")
    assert a.identity == b.identity


@pytest.mark.asyncio
async def test_transaction_commits(dev_db):
    await dev_db.execute("CREATE TABLE t (v INTEGER)")
    async with dev_db.transaction():
        await dev_db.execute("INSERT INTO t VALUES (1)")
    rows = await dev_db.fetchall("SELECT v FROM t")
    assert [r["v"] for r in rows] == [1]


@pytest.mark.asyncio
async def test_transaction_rolls_back_ddl(dev_db):
    with pytest.raises(ValueError):
        async with dev_db.transaction():
            await dev_db.execute("CREATE TABLE t (v INTEGER)")
            raise ValueError("abort")
    assert not await dev_db.table_exists("t")


@pytest.mark.asyncio
async def test_nested_transaction_rejected(dev_db):
    async with dev_db.transaction():
        with pytest.raises(RuntimeError, match="Nested"):
            async with dev_db.transaction():
                pass


@pytest.mark.asyncio
async def test_registered_function_is_callable_from_sql(dev_db):
    await dev_db.create_function("double", 1, lambda v: v * 2)
    rows = await dev_db.fetchall("SELECT double(21) AS v")
    assert rows[0]["v"] == 42
