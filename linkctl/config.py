"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

MODES = ("interactive", "ci")


@dataclass(frozen=True)
class Settings:
    remote: str = "origin"
    mode: str = "interactive"
    parent_branch_prefix: str = "chore/update-links"

    @property
    def interactive(self) -> bool:
        return self.mode != "ci"


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    mode = env.get("LINKCTL_MODE", "").strip().lower() or "interactive"
    if mode not in MODES:
        raise ValueError(f"LINKCTL_MODE must be one of {', '.join(MODES)}, got '{mode}'")
    return Settings(
        remote=env.get("LINKCTL_REMOTE", "").strip() or "origin",
        mode=mode,
        parent_branch_prefix=(
            env.get("LINKCTL_PARENT_BRANCH_PREFIX", "").strip().rstrip("/")
            or "chore/update-links"
        ),
    )
