"""CLI runtime context — bridges sync CLI commands to the async core."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine

from schemaledger.config import SchemaLedgerSettings, settings


def resolve_settings(
    database: Path | None = None,
    branch: str | None = None,
    migrations_dir: Path | None = None,
) -> SchemaLedgerSettings:
    """Environment settings with command-line overrides applied."""
    update: dict[str, Any] = {}
    if database is not None:
        update["database_path"] = database
    if branch is not None:
        update["branch"] = branch
    if migrations_dir is not None:
        update["migrations_dir"] = migrations_dir
    return settings.model_copy(update=update) if update else settings


def run_async(coro: Coroutine) -> Any:
    """Run an async coroutine from sync CLI code."""
    return asyncio.run(coro)
