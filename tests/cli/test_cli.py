"""Tests for the schemaledger CLI."""

import pytest
from typer.testing import CliRunner

from schemaledger.cli.main import app

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    migrations = tmp_path / "migrations"
    migrations.mkdir()
    (migrations / "1_create_users.sql").write_text("CREATE TABLE users (id BLOB PRIMARY KEY);\n")
    (migrations / "2_create_posts.sql").write_text("CREATE TABLE posts (id BLOB PRIMARY KEY);\n")
    monkeypatch.setenv("SCHEMALEDGER_ENVIRONMENT", "development")
    return tmp_path


def _args(workspace, *extra):
    return [
        *extra,
        "--db", str(workspace / "app.db"),
        "--dir", str(workspace / "migrations"),
    ]


def test_add_creates_file(tmp_path):
    result = runner.invoke(app, ["add", "create users", "--dir", str(tmp_path)])
    assert result.exit_code == 0, result.output
    files = list(tmp_path.glob("*_create_users.sql"))
    assert len(files) == 1


def test_run_then_up_to_date(workspace):
    first = runner.invoke(app, _args(workspace, "run"))
    assert first.exit_code == 0, first.output
    assert "Applied" in first.output

    second = runner.invoke(app, _args(workspace, "run"))
    assert second.exit_code == 0, second.output
    assert "up to date" in second.output


def test_run_dry_run(workspace):
    result = runner.invoke(app, _args(workspace, "run", "--dry-run"))
    assert result.exit_code == 0, result.output
    assert "Pending" in result.output


def test_run_fails_on_duplicate_sequence(workspace):
    (workspace / "migrations" / "2_duplicate.sql").write_text("CREATE TABLE d (id INTEGER);\n")
    result = runner.invoke(app, _args(workspace, "run"))
    assert result.exit_code == 1
    assert "DuplicateSequence" in result.output


def test_status_shows_states(workspace):
    runner.invoke(app, _args(workspace, "run"))
    (workspace / "migrations" / "3_create_tags.sql").write_text("CREATE TABLE tags (id INTEGER);\n")

    result = runner.invoke(app, _args(workspace, "status"))
    assert result.exit_code == 0, result.output
    assert "applied" in result.output
    assert "pending" in result.output


def test_repair_clears_failed_entry(workspace):
    (workspace / "migrations" / "3_broken.sql").write_text("INSERT INTO missing VALUES (1);\n")
    failed = runner.invoke(app, _args(workspace, "run"))
    assert failed.exit_code == 1
    assert "MigrationFailed" in failed.output

    result = runner.invoke(app, ["repair", "3", "--yes", "--db", str(workspace / "app.db")])
    assert result.exit_code == 0, result.output
    assert "Cleared" in result.output


def test_encode_and_decode():
    encoded = runner.invoke(app, ["encode", "6ccd780c-baba-1026-9564-5b8c656024db"])
    assert encoded.exit_code == 0
    assert "1026baba6ccd780c95645b8c656024db" in encoded.output

    decoded = runner.invoke(app, ["decode", "1026baba6ccd780c95645b8c656024db"])
    assert decoded.exit_code == 0
    assert "6ccd780c-baba-1026-9564-5b8c656024db" in decoded.output


def test_encode_rejects_malformed():
    result = runner.invoke(app, ["encode", "not-an-id"])
    assert result.exit_code == 1
    assert "MalformedIdentifier" in result.output


def test_decode_rejects_short_value():
    result = runner.invoke(app, ["decode", "abcd"])
    assert result.exit_code == 1
    assert "InvalidLength" in result.output
