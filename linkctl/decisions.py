"""Decision points the engine hands back to its caller.

The engine never prompts. An interactive caller passes a Decider that asks
a human; a non-interactive caller passes a PolicyDecider with fixed answers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from linkctl.model import LinkedRepository, PointerChangeSet


class Decider(Protocol):
    def confirm_stash(self, repository: LinkedRepository, changes: str) -> bool:
        """Dirty tree during sync with force set: stash it?"""

    def confirm_switch(self, repository: LinkedRepository, branch: str) -> bool:
        """Feature branch already exists locally: switch onto it?"""

    def confirm_parent_commit(self, changes: PointerChangeSet) -> bool:
        """Links advanced during sync: commit the new pointers in the parent?"""


@dataclass(frozen=True)
class PolicyDecider:
    stash: bool = True
    switch: bool = False
    parent_commit: bool = False

    def confirm_stash(self, repository: LinkedRepository, changes: str) -> bool:
        return self.stash

    def confirm_switch(self, repository: LinkedRepository, branch: str) -> bool:
        return self.switch

    def confirm_parent_commit(self, changes: PointerChangeSet) -> bool:
        return self.parent_commit


ALWAYS = PolicyDecider(stash=True, switch=True, parent_commit=True)
NEVER = PolicyDecider(stash=False, switch=False, parent_commit=False)
