"""Branch policy schema — which targets are protected."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class BranchPolicy(str, Enum):
    DEVELOPMENT = "development"
    PROTECTED = "protected"


class GuardPolicy(BaseModel):
    """Rules the guard applies to every schema statement.

    Protected branches only change through sequenced, ledger-tracked
    migrations. Development branches accept ad-hoc DDL unless
    ``allow_adhoc_on_development`` is turned off.
    """

    protected_branches: list[str] = Field(
        default_factory=lambda: ["main"],
        description="Branch names treated as production-equivalent.",
    )
    allow_adhoc_on_development: bool = True

    def classify_branch(self, branch: str) -> BranchPolicy:
        if branch in self.protected_branches or "*" in self.protected_branches:
            return BranchPolicy.PROTECTED
        return BranchPolicy.DEVELOPMENT
