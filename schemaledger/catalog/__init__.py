"""Migration catalog — discovery and strict ordering of definitions."""

from schemaledger.catalog.definition import Catalog, MigrationDefinition, compute_checksum
from schemaledger.catalog.source import DirectorySource, InMemorySource, MigrationSource, load

__all__ = [
    "Catalog",
    "MigrationDefinition",
    "compute_checksum",
    "DirectorySource",
    "InMemorySource",
    "MigrationSource",
    "load",
]
