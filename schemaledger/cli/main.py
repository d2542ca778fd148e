"""schemaledger CLI — author and run migrations.

`schemaledger add NAME` creates a new timestamp-sequenced migration file.
`schemaledger run` applies pending migrations to the configured target, the
same path the service takes on startup.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from schemaledger.cli.context import resolve_settings, run_async
from schemaledger.exceptions import SchemaLedgerError

console = Console()

app = typer.Typer(
    name="schemaledger",
    help="schemaledger -- ledger-tracked schema migrations.",
    no_args_is_help=True,
)

_DB_OPTION = typer.Option(None, "--db", help="Database file (default: SCHEMALEDGER_DATABASE_PATH)")
_BRANCH_OPTION = typer.Option(None, "--branch", "-b", help="Database branch name")
_DIR_OPTION = typer.Option(None, "--dir", "-d", help="Migrations directory")


def _fail(error: Exception) -> None:
    console.print(f"[red]{type(error).__name__}:[/red] {escape(str(error))}")
    raise typer.Exit(code=1)


@app.command("add")
def add(
    name: str = typer.Argument(help="Short description, e.g. 'create users'"),
    migrations_dir: Path = _DIR_OPTION,
    reversible: bool = typer.Option(False, "--reversible", "-r", help="Create an up/down pair"),
):
    """Create a new migration file."""
    from schemaledger.catalog.authoring import create_migration

    cfg = resolve_settings(migrations_dir=migrations_dir)
    try:
        paths = create_migration(cfg.migrations_dir, name, reversible=reversible)
    except SchemaLedgerError as e:
        _fail(e)
    for path in paths:
        console.print(f"[green]Created[/green] {path}")


@app.command("run")
def run(
    database: Path = _DB_OPTION,
    branch: str = _BRANCH_OPTION,
    migrations_dir: Path = _DIR_OPTION,
    dry_run: bool = typer.Option(False, "--dry-run", help="Show pending migrations only"),
):
    """Apply pending migrations to the target database."""
    from schemaledger.catalog.source import DirectorySource, load
    from schemaledger.db import Database
    from schemaledger.executor.runner import MigrationExecutor
    from schemaledger.policy.guard import BranchPolicyGuard
    from schemaledger.telemetry import setup_from_settings

    cfg = resolve_settings(database, branch, migrations_dir)
    setup_from_settings(cfg)

    async def _run():
        catalog = await load(DirectorySource(cfg.migrations_dir))
        guard = BranchPolicyGuard.from_settings(cfg)
        async with Database(cfg.database_path, branch=cfg.branch, guard=guard) as db:
            executor = MigrationExecutor.from_settings(cfg)
            return await executor.run(db, catalog, dry_run=dry_run)

    try:
        report = run_async(_run())
    except (SchemaLedgerError, sqlite3.Error) as e:
        _fail(e)

    sequences = report.pending if report.dry_run else report.applied
    if not sequences:
        console.print(f"[dim]Branch '{report.branch}' is up to date.[/dim]")
        return

    verb = "Pending" if report.dry_run else "Applied"
    table = Table(title=f"{verb} migrations — {report.branch} ({report.policy})")
    table.add_column("Sequence", style="cyan", no_wrap=True)
    for sequence in sequences:
        table.add_row(str(sequence))
    console.print(table)


@app.command("status")
def status(
    database: Path = _DB_OPTION,
    branch: str = _BRANCH_OPTION,
    migrations_dir: Path = _DIR_OPTION,
):
    """Compare the migration catalog with the ledger."""
    from schemaledger.catalog.source import DirectorySource, load
    from schemaledger.db import Database
    from schemaledger.exceptions import LedgerUnavailable
    from schemaledger.ledger import store as ledger

    cfg = resolve_settings(database, branch, migrations_dir)

    async def _status():
        catalog = await load(DirectorySource(cfg.migrations_dir))
        async with Database(cfg.database_path, branch=cfg.branch) as db:
            try:
                entries = await ledger.read_all(db)
            except LedgerUnavailable:
                entries = []
        return catalog, entries

    try:
        catalog, entries = run_async(_status())
    except (SchemaLedgerError, sqlite3.Error) as e:
        _fail(e)

    recorded = {e.sequence: e for e in entries}
    table = Table(title=f"Migrations — {cfg.branch}")
    table.add_column("Sequence", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("State", no_wrap=True)
    table.add_column("Applied at", style="dim", no_wrap=True)

    for definition in catalog:
        entry = recorded.pop(definition.sequence, None)
        if entry is None:
            state, when = "[yellow]pending[/yellow]", ""
        elif entry.status == ledger.LedgerStatus.FAILED:
            state, when = "[red]failed[/red]", entry.applied_at.strftime("%Y-%m-%d %H:%M")
        elif entry.checksum != definition.checksum:
            state, when = "[red]drifted[/red]", entry.applied_at.strftime("%Y-%m-%d %H:%M")
        else:
            state, when = "[green]applied[/green]", entry.applied_at.strftime("%Y-%m-%d %H:%M")
        table.add_row(str(definition.sequence), definition.name, state, when)

    for entry in recorded.values():
        table.add_row(str(entry.sequence), entry.name, "[red]unknown[/red]", "")

    console.print(table)


@app.command("repair")
def repair(
    sequence: int = typer.Argument(help="Sequence of the failed migration"),
    database: Path = _DB_OPTION,
    branch: str = _BRANCH_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Clear a failed ledger entry so the fixed migration can run again."""
    from schemaledger.db import Database
    from schemaledger.ledger import store as ledger

    cfg = resolve_settings(database, branch)
    if not yes:
        typer.confirm(
            f"Clear failed migration {sequence} on branch '{cfg.branch}'?", abort=True
        )

    async def _repair():
        async with Database(cfg.database_path, branch=cfg.branch) as db:
            return await ledger.clear_failed(db, sequence)

    try:
        entry = run_async(_repair())
    except (SchemaLedgerError, sqlite3.Error) as e:
        _fail(e)
    console.print(f"[green]Cleared[/green] failed entry for {entry.sequence} ({entry.name})")


@app.command("encode")
def encode_cmd(identifier: str = typer.Argument(help="Hyphenated identifier")):
    """Print the 16-byte storage form of an identifier as hex."""
    from schemaledger.identifiers import encode

    try:
        console.print(encode(identifier).hex())
    except SchemaLedgerError as e:
        _fail(e)


@app.command("decode")
def decode_cmd(value: str = typer.Argument(help="32 hex characters")):
    """Print the canonical text form of a stored identifier."""
    from schemaledger.exceptions import InvalidLength
    from schemaledger.identifiers import decode

    try:
        data = bytes.fromhex(value)
    except ValueError:
        _fail(InvalidLength(None))
    try:
        console.print(decode(data))
    except SchemaLedgerError as e:
        _fail(e)


@app.command("version")
def version():
    """Show the installed version."""
    from schemaledger import __version__
    console.print(f"schemaledger {__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
