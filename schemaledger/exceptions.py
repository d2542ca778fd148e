"""Custom exception hierarchy for schemaledger."""


class SchemaLedgerError(Exception):
    """Base for all schemaledger errors."""


# ── Identifiers ──────────────────────────────────────────────────


class IdentifierError(SchemaLedgerError):
    """An identifier could not be converted."""


class MalformedIdentifier(IdentifierError):
    """Text is not a hyphenated 8-4-4-4-12 hex identifier."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Malformed identifier: {value!r}")


class InvalidLength(IdentifierError):
    """Binary identifier is not exactly 16 bytes."""

    def __init__(self, length: int | None) -> None:
        self.length = length
        if length is None:
            super().__init__("Binary identifier must be a 16-byte sequence")
        else:
            super().__init__(f"Binary identifier must be 16 bytes, got {length}")


# ── Catalog ──────────────────────────────────────────────────────


class CatalogError(SchemaLedgerError):
    """The migration catalog could not be loaded."""


class DuplicateSequence(CatalogError):
    """Two migration definitions share a sequence number."""

    def __init__(self, sequence: int, names: tuple[str, ...] = ()) -> None:
        self.sequence = sequence
        self.names = names
        detail = f" ({', '.join(names)})" if names else ""
        super().__init__(f"Duplicate migration sequence {sequence}{detail}")


class UnparsableDefinition(CatalogError):
    """A migration candidate is structurally invalid."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Cannot parse migration {source}: {reason}")


# ── Ledger ───────────────────────────────────────────────────────


class LedgerError(SchemaLedgerError):
    """The applied-migration ledger is inconsistent or unusable."""


class LedgerUnavailable(LedgerError):
    """The ledger table does not exist yet (first run)."""


class ChecksumDrift(LedgerError):
    """An applied migration's source was edited after it ran."""

    def __init__(self, sequence: int, recorded: str = "", current: str = "") -> None:
        self.sequence = sequence
        self.recorded = recorded
        self.current = current
        super().__init__(
            f"Migration {sequence} was modified after it was applied "
            f"(recorded {recorded[:12] or '?'}, now {current[:12] or '?'})"
        )


class DirtyMigration(LedgerError):
    """A previous run left a failed ledger entry that blocks progress."""

    def __init__(self, sequence: int) -> None:
        self.sequence = sequence
        super().__init__(
            f"Migration {sequence} previously failed; fix it and clear the "
            f"failed ledger entry before migrating again"
        )


class UnknownMigration(LedgerError):
    """The ledger records a migration the catalog does not contain."""

    def __init__(self, sequence: int) -> None:
        self.sequence = sequence
        super().__init__(f"Migration {sequence} is applied but missing from the catalog")


class OutOfOrderMigration(LedgerError):
    """A pending migration sorts below one that is already applied."""

    def __init__(self, sequence: int, highest_applied: int) -> None:
        self.sequence = sequence
        self.highest_applied = highest_applied
        super().__init__(
            f"Migration {sequence} is pending but migration {highest_applied} "
            f"is already applied; give it a later sequence"
        )


# ── Coordination ─────────────────────────────────────────────────


class LockError(SchemaLedgerError):
    """Coordination lock failure."""


class LockTimeout(LockError):
    """The coordination lock was not acquired within the bounded wait."""

    def __init__(self, name: str, waited: float) -> None:
        self.name = name
        self.waited = waited
        super().__init__(f"Timed out after {waited:.1f}s waiting for lock '{name}'")


class LockLost(LockError):
    """The coordination lease expired or was taken over while held."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Lost coordination lock '{name}'")


# ── Execution ────────────────────────────────────────────────────


class MigrationFailed(SchemaLedgerError):
    """A migration's statements failed; the run stopped."""

    def __init__(self, sequence: int, name: str, reason: str) -> None:
        self.sequence = sequence
        self.name = name
        self.reason = reason
        super().__init__(f"Migration {sequence} ({name}) failed: {reason}")


# ── Policy ───────────────────────────────────────────────────────


class PolicyViolationError(SchemaLedgerError):
    """Action blocked by the branch policy guard."""


class UnauthorizedSchemaChange(PolicyViolationError):
    """Schema mutation attempted on a protected target outside the executor."""

    def __init__(self, branch: str, statement: str) -> None:
        self.branch = branch
        self.statement = statement
        super().__init__(
            f"Branch '{branch}' is protected; schema changes must go through "
            f"a ledger-tracked migration (rejected: {statement[:60]!r})"
        )
