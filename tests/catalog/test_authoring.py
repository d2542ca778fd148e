"""Tests for creating new migration files."""

from datetime import datetime, timezone

import pytest

from schemaledger.catalog.authoring import create_migration, slugify
from schemaledger.exceptions import DuplicateSequence, UnparsableDefinition

NOW = datetime(2024, 5, 17, 9, 30, 15, tzinfo=timezone.utc)


def test_creates_timestamped_file(tmp_path):
    paths = create_migration(tmp_path / "migrations", "Create Users", now=NOW)

    assert [p.name for p in paths] == ["20240517093015_create_users.sql"]
    assert paths[0].read_text().startswith("-- Create Users")


def test_reversible_creates_pair(tmp_path):
    paths = create_migration(tmp_path, "add index", now=NOW, reversible=True)
    assert [p.name for p in paths] == [
        "20240517093015_add_index.up.sql",
        "20240517093015_add_index.down.sql",
    ]


def test_colliding_timestamp_raises(tmp_path):
    create_migration(tmp_path, "first", now=NOW)
    with pytest.raises(DuplicateSequence) as exc:
        create_migration(tmp_path, "second", now=NOW)
    assert exc.value.sequence == 20240517093015


def test_slugify():
    assert slugify("Add  e-mail column!") == "add_e_mail_column"
    with pytest.raises(UnparsableDefinition):
        slugify("!!!")
