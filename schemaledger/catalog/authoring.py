"""Authoring helpers behind the ``add`` command."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path

from schemaledger.exceptions import DuplicateSequence, UnparsableDefinition

_SEQUENCE_FORMAT = "%Y%m%d%H%M%S"
_TEMPLATE = "-- {title}\n"


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")
    if not slug:
        raise UnparsableDefinition(name, "migration name has no usable characters")
    return slug


def existing_sequences(directory: Path) -> dict[int, str]:
    """Sequence -> file name for every migration file in *directory*."""
    found: dict[int, str] = {}
    if not directory.is_dir():
        return found
    for file in directory.glob("*.sql"):
        head = file.name.split("_", 1)[0]
        if head.isdigit():
            found.setdefault(int(head), file.name)
    return found


def create_migration(
    directory: str | Path,
    name: str,
    now: datetime | None = None,
    reversible: bool = False,
) -> list[Path]:
    """Create a new timestamp-sequenced migration file (or up/down pair).

    Returns the created paths. A timestamp that collides with an existing
    migration raises DuplicateSequence instead of being bumped.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    slug = slugify(name)
    sequence = int((now or datetime.now(timezone.utc)).strftime(_SEQUENCE_FORMAT))

    existing = existing_sequences(directory)
    if sequence in existing:
        raise DuplicateSequence(sequence, (existing[sequence], slug))

    stem = f"{sequence}_{slug}"
    if reversible:
        paths = [directory / f"{stem}.up.sql", directory / f"{stem}.down.sql"]
        titles = [f"{name} (apply)", f"{name} (revert; never run automatically)"]
    else:
        paths = [directory / f"{stem}.sql"]
        titles = [name]

    for path, title in zip(paths, titles):
        path.write_text(_TEMPLATE.format(title=title), encoding="utf-8")
    return paths
