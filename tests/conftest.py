"""Shared test fixtures — temporary target databases and sample catalogs."""

from __future__ import annotations

import pytest
import pytest_asyncio

from schemaledger.catalog.source import InMemorySource
from schemaledger.db import Database
from schemaledger.policy.guard import BranchPolicyGuard
from schemaledger.policy.schema import GuardPolicy

USERS_SQL = """
CREATE TABLE users (
    id BLOB PRIMARY KEY CHECK (length(id) = 16),
    email TEXT NOT NULL UNIQUE
);
CREATE INDEX idx_users_email ON users (email);
"""

PROFILES_SQL = """
-- profile data lives next to the user row
ALTER TABLE users ADD COLUMN display_name TEXT NOT NULL DEFAULT '';
CREATE TABLE profiles (user_id BLOB PRIMARY KEY REFERENCES users (id), bio TEXT);
"""


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "target.db"


@pytest.fixture
def guard():
    return BranchPolicyGuard(GuardPolicy(protected_branches=["main"]))


@pytest_asyncio.fixture
async def dev_db(db_path, guard):
    db = Database(db_path, branch="development", guard=guard)
    await db.connect()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def main_db(db_path, guard):
    db = Database(db_path, branch="main", guard=guard)
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def two_migrations():
    return InMemorySource([
        (1, "create_users", USERS_SQL),
        (2, "add_profiles", PROFILES_SQL),
    ])
