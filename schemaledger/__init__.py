"""schemaledger — ledger-tracked schema migrations that run on startup."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("schemaledger")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
