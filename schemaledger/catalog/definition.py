"""Migration definitions and the ordered catalog built from them."""

from __future__ import annotations

import hashlib
from typing import Iterator

from pydantic import BaseModel, ConfigDict, Field

from schemaledger.exceptions import DuplicateSequence


def compute_checksum(statements: tuple[str, ...] | list[str]) -> str:
    """SHA-384 over the statements, each terminated with ';\\n'."""
    digest = hashlib.sha384()
    for statement in statements:
        digest.update(statement.encode("utf-8"))
        digest.update(b";\n")
    return digest.hexdigest()


class MigrationDefinition(BaseModel):
    """An immutable, sequenced set of schema statements."""

    model_config = ConfigDict(frozen=True)

    sequence: int = Field(ge=0)
    name: str
    statements: tuple[str, ...]
    checksum: str
    source: str = "<memory>"

    @classmethod
    def build(
        cls,
        sequence: int,
        name: str,
        statements: list[str] | tuple[str, ...],
        source: str = "<memory>",
    ) -> MigrationDefinition:
        """Create a definition, computing its checksum from the statements."""
        statements = tuple(statements)
        return cls(
            sequence=sequence,
            name=name,
            statements=statements,
            checksum=compute_checksum(statements),
            source=source,
        )

    @property
    def label(self) -> str:
        return f"{self.sequence}_{self.name}"


class Catalog:
    """Definitions in strictly ascending sequence order.

    Built once per startup and never mutated afterwards.
    """

    def __init__(self, definitions: list[MigrationDefinition] | tuple = ()) -> None:
        ordered = sorted(definitions, key=lambda d: d.sequence)
        for prev, cur in zip(ordered, ordered[1:]):
            if prev.sequence == cur.sequence:
                raise DuplicateSequence(cur.sequence, (prev.name, cur.name))
        self._definitions: tuple[MigrationDefinition, ...] = tuple(ordered)
        self._by_sequence = {d.sequence: d for d in self._definitions}

    def __iter__(self) -> Iterator[MigrationDefinition]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, sequence: object) -> bool:
        return sequence in self._by_sequence

    def get(self, sequence: int) -> MigrationDefinition | None:
        return self._by_sequence.get(sequence)

    @property
    def sequences(self) -> list[int]:
        return [d.sequence for d in self._definitions]

    @property
    def latest(self) -> MigrationDefinition | None:
        return self._definitions[-1] if self._definitions else None

    def __repr__(self) -> str:
        return f"Catalog(migrations={len(self._definitions)})"
