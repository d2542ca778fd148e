"""Branch Policy Guard: gatekeeper for schema-mutating statements.

Every statement sent through ``Database.execute`` is checked here. On a
protected target, DDL is only accepted together with a live
``SchemaChangeToken``. Tokens are only issued to the migration executor,
while it holds the coordination lock for that target. There is no public
way to obtain one.
"""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Protocol

import structlog

from schemaledger.catalog.parser import is_schema_statement
from schemaledger.exceptions import PolicyViolationError, UnauthorizedSchemaChange
from schemaledger.policy.schema import BranchPolicy, GuardPolicy

if TYPE_CHECKING:
    from schemaledger.config import SchemaLedgerSettings
    from schemaledger.db import Database

logger = structlog.get_logger(__name__)


class HeldLock(Protocol):
    target: str
    holder: str

    @property
    def held(self) -> bool:
        ...


class SchemaChangeToken:
    """Capability to run DDL against one target while a lock is held."""

    __slots__ = ("target", "holder", "_lock", "_nonce")

    def __init__(self, target: str, lock: HeldLock, nonce: str) -> None:
        self.target = target
        self.holder = lock.holder
        self._lock = lock
        self._nonce = nonce

    @property
    def lock_held(self) -> bool:
        return self._lock.held

    def __repr__(self) -> str:
        return f"SchemaChangeToken(target={self.target!r}, holder={self.holder!r})"


class BranchPolicyGuard:
    """Classifies targets and enforces the protected-branch rule."""

    def __init__(self, policy: GuardPolicy | None = None) -> None:
        self._policy = policy or GuardPolicy()
        self._live: dict[str, SchemaChangeToken] = {}

    @classmethod
    def from_settings(cls, settings: SchemaLedgerSettings) -> BranchPolicyGuard:
        return cls(GuardPolicy(
            protected_branches=settings.protected_branch_list,
            allow_adhoc_on_development=settings.allow_adhoc_on_development,
        ))

    @property
    def policy(self) -> GuardPolicy:
        return self._policy

    def classify(self, db: Database) -> BranchPolicy:
        """Effective policy for the connected target."""
        return self._policy.classify_branch(db.branch)

    def _issue_token(self, db: Database, lock: HeldLock) -> SchemaChangeToken:
        """Issue a token for *db* to the holder of its coordination lock.

        Called by ``MigrationExecutor.run`` only.
        """
        if lock.target != db.identity:
            raise PolicyViolationError(
                f"Lock for '{lock.target}' cannot authorize changes to '{db.identity}'"
            )
        if not lock.held:
            raise PolicyViolationError(
                f"Coordination lock for '{db.identity}' is not held"
            )
        nonce = secrets.token_hex(16)
        token = SchemaChangeToken(db.identity, lock, nonce)
        self._live[nonce] = token
        logger.debug("guard.token_issued", target=db.identity, holder=lock.holder)
        return token

    def revoke(self, token: SchemaChangeToken) -> None:
        self._live.pop(token._nonce, None)

    def is_live(self, token: SchemaChangeToken | None, db: Database) -> bool:
        if token is None:
            return False
        return (
            self._live.get(token._nonce) is token
            and token.target == db.identity
            and token.lock_held
        )

    def check(
        self,
        db: Database,
        sql: str,
        token: SchemaChangeToken | None = None,
    ) -> None:
        """Raise UnauthorizedSchemaChange if *sql* may not run on *db*."""
        if not is_schema_statement(sql):
            return
        if self.is_live(token, db):
            return

        policy = self.classify(db)
        if policy == BranchPolicy.DEVELOPMENT and self._policy.allow_adhoc_on_development:
            return

        logger.warning(
            "guard.schema_change_rejected",
            branch=db.branch,
            policy=policy.value,
            statement=sql.strip()[:120],
            token_presented=token is not None,
        )
        raise UnauthorizedSchemaChange(db.branch, sql.strip())
