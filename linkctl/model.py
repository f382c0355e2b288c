from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

FEATURE_PREFIX = "feature/"


@dataclass(frozen=True)
class LinkedRepository:
    """One entry of the parent's ``.gitmodules``. Identity is ``path``."""

    name: str = field(compare=False)
    path: str
    url: str | None = field(default=None, compare=False)

    def abspath(self, parent_root: str) -> str:
        return str(Path(parent_root) / self.path)


@dataclass
class RepoState:
    """Observed state of a working directory. Re-queried, never cached."""

    current_branch: str | None  # None when detached
    is_clean: bool
    default_branch: str | None = None

    @property
    def detached(self) -> bool:
        return self.current_branch is None


class Outcome(str, Enum):
    SYNCED = "synced"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ReconciliationResult:
    repository: LinkedRepository
    outcome: Outcome
    detail: str = ""
    stash_ref: str | None = None


@dataclass
class SyncReport:
    """All results of one ``sync`` run plus the parent pointer step."""

    results: list[ReconciliationResult] = field(default_factory=list)
    pointer_changes: PointerChangeSet | None = None
    parent_committed: bool = False
    parent_error: str | None = None

    def count(self, outcome: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def partial_failure(self) -> bool:
        return self.count(Outcome.FAILED) > 0


@dataclass(frozen=True)
class FeatureBranch:
    service_name: str
    feature_name: str

    @property
    def branch_name(self) -> str:
        return FEATURE_PREFIX + self.feature_name

    @classmethod
    def from_branch(cls, service_name: str, branch: str) -> FeatureBranch:
        return cls(service_name, branch.removeprefix(FEATURE_PREFIX))


@dataclass(frozen=True)
class PullRequest:
    number: int
    url: str
    base: str | None = None
    head: str | None = None
    draft: bool = False


@dataclass(frozen=True)
class PointerChange:
    repository: LinkedRepository
    old_revision: str | None  # None when the parent has no pointer yet
    new_revision: str

    def describe(self, width: int | None = 12) -> str:
        old = self.old_revision[:width] if self.old_revision else "(none)"
        return f"{self.repository.name}: {old} -> {self.new_revision[:width]}"


@dataclass
class PointerChangeSet:
    entries: list[PointerChange] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def paths(self) -> list[str]:
        return [e.repository.path for e in self.entries]


@dataclass
class ParentPRResult:
    """Outcome of ``create_parent_pr``. ``pull_request`` is None for a no-op."""

    changes: PointerChangeSet
    branch: str | None = None
    pull_request: PullRequest | None = None
    created: bool = False

    @property
    def nothing_to_update(self) -> bool:
        return not self.changes
