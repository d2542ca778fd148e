"""Migration sources — where candidate definitions come from.

A source only produces candidates; ordering and duplicate detection happen
in ``load()`` so every source gets the same guarantees.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Protocol, runtime_checkable

import structlog

from schemaledger.catalog.definition import Catalog, MigrationDefinition
from schemaledger.catalog.parser import split_statements
from schemaledger.exceptions import UnparsableDefinition

logger = structlog.get_logger(__name__)

# 20240131120000_create_users.sql, 0003_add_index.up.sql
_FILENAME = re.compile(r"^(?P<sequence>\d+)_(?P<name>[^.]+?)(?P<up>\.up)?\.sql$")
_DOWN_SUFFIX = ".down.sql"


@runtime_checkable
class MigrationSource(Protocol):
    """Anything that can produce migration definitions."""

    async def definitions(self) -> list[MigrationDefinition]:
        ...


class DirectorySource:
    """Reads ``<sequence>_<name>.sql`` files from a directory."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def definitions(self) -> list[MigrationDefinition]:
        if not self.path.is_dir():
            raise UnparsableDefinition(str(self.path), "migration directory does not exist")

        found: list[MigrationDefinition] = []
        for file in sorted(self.path.iterdir()):
            if not file.is_file() or file.name.startswith("."):
                continue
            if file.suffix != ".sql" or file.name.endswith(_DOWN_SUFFIX):
                continue
            found.append(self._parse(file))

        logger.debug("catalog.scanned", path=str(self.path), count=len(found))
        return found

    def _parse(self, file: Path) -> MigrationDefinition:
        match = _FILENAME.match(file.name)
        if not match:
            raise UnparsableDefinition(
                str(file), "file name must look like <sequence>_<name>.sql"
            )
        try:
            text = file.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise UnparsableDefinition(str(file), f"not valid UTF-8: {e}") from e

        statements = split_statements(text, source=str(file))
        if not statements:
            raise UnparsableDefinition(str(file), "contains no statements")

        return MigrationDefinition.build(
            sequence=int(match.group("sequence")),
            name=match.group("name"),
            statements=statements,
            source=str(file),
        )

    def __repr__(self) -> str:
        return f"DirectorySource({str(self.path)!r})"


class InMemorySource:
    """Definitions supplied directly, e.g. from tests or a remote catalog.

    Items are either ready-made definitions or ``(sequence, name, sql)``
    tuples whose SQL text is split like a migration file.
    """

    def __init__(
        self,
        items: Iterable[MigrationDefinition | tuple[int, str, str]] = (),
    ) -> None:
        self._items = list(items)

    def add(self, sequence: int, name: str, sql: str) -> None:
        self._items.append((sequence, name, sql))

    async def definitions(self) -> list[MigrationDefinition]:
        result: list[MigrationDefinition] = []
        for item in self._items:
            if isinstance(item, MigrationDefinition):
                result.append(item)
                continue
            sequence, name, sql = item
            label = f"<memory:{sequence}_{name}>"
            statements = split_statements(sql, source=label)
            if not statements:
                raise UnparsableDefinition(label, "contains no statements")
            result.append(
                MigrationDefinition.build(sequence, name, statements, source=label)
            )
        return result


async def load(source: MigrationSource) -> Catalog:
    """Load and strictly order a catalog.

    Raises DuplicateSequence if two candidates share a sequence and
    UnparsableDefinition if any candidate is structurally invalid.
    """
    definitions = await source.definitions()
    catalog = Catalog(definitions)
    logger.info(
        "catalog.loaded",
        source=repr(source),
        migrations=len(catalog),
        latest=catalog.latest.sequence if catalog.latest else None,
    )
    return catalog
