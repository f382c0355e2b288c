from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from linkctl.model import LinkedRepository
from linkctl.registry import load_links


def run(cmd: list[str], cwd: Path) -> str:
    result = subprocess.run(cmd, cwd=cwd, check=True, capture_output=True, text=True)
    return result.stdout.strip()


def git(cwd: Path, *args: str) -> str:
    return run(["git", *args], cwd=cwd)


@pytest.fixture(autouse=True)
def isolated_git(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", os.devnull)
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Link Tester")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "links@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Link Tester")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "links@example.com")
    # local file:// submodules are refused by default since git 2.38.1
    monkeypatch.setenv("GIT_CONFIG_COUNT", "2")
    monkeypatch.setenv("GIT_CONFIG_KEY_0", "protocol.file.allow")
    monkeypatch.setenv("GIT_CONFIG_VALUE_0", "always")
    monkeypatch.setenv("GIT_CONFIG_KEY_1", "init.defaultBranch")
    monkeypatch.setenv("GIT_CONFIG_VALUE_1", "main")
    for var in ("LINKCTL_MODE", "LINKCTL_REMOTE", "LINKCTL_PARENT_BRANCH_PREFIX"):
        monkeypatch.delenv(var, raising=False)


@dataclass
class Workspace:
    """A parent repository with linked repositories, each backed by a bare
    remote and an upstream clone used to simulate other people's pushes."""

    root: Path
    parent_remote: Path
    remotes: dict[str, Path] = field(default_factory=dict)
    upstreams: dict[str, Path] = field(default_factory=dict)

    @property
    def links(self) -> list[LinkedRepository]:
        return load_links(str(self.root))

    def link(self, name: str) -> LinkedRepository:
        return next(link for link in self.links if link.name == name)

    def link_path(self, name: str) -> Path:
        return self.root / self.link(name).path

    def advance(self, name: str, filename: str = "change.txt", branch: str = "main") -> str:
        """Push a new commit to *name*'s remote; return its sha."""
        upstream = self.upstreams[name]
        git(upstream, "checkout", "-B", branch)
        target = upstream / filename
        previous = target.read_text() if target.exists() else ""
        target.write_text(previous + f"{filename} update\n")
        git(upstream, "add", filename)
        git(upstream, "commit", "-m", f"update {filename}")
        git(upstream, "push", "origin", branch)
        sha = git(upstream, "rev-parse", "HEAD")
        git(upstream, "checkout", "main")
        return sha

    def head(self, name: str) -> str:
        return git(self.link_path(name), "rev-parse", "HEAD")


def _make_remote(base: Path, name: str) -> tuple[Path, Path]:
    remote = base / "remotes" / f"{name}.git"
    remote.mkdir(parents=True)
    git(remote, "init", "--bare", "-b", "main")

    upstream = base / "upstreams" / name
    upstream.mkdir(parents=True)
    git(upstream, "init", "-b", "main")
    (upstream / "README.md").write_text(f"# {name}\n")
    git(upstream, "add", "README.md")
    git(upstream, "commit", "-m", "init")
    git(upstream, "remote", "add", "origin", str(remote))
    git(upstream, "push", "-u", "origin", "main")
    return remote, upstream


@pytest.fixture()
def workspace(tmp_path: Path) -> Workspace:
    parent_remote, _ = _make_remote(tmp_path, "parent")
    root = tmp_path / "parent"
    git(tmp_path, "clone", str(parent_remote), str(root))

    ws = Workspace(root=root, parent_remote=parent_remote)
    for name in ("alpha", "beta"):
        remote, upstream = _make_remote(tmp_path, name)
        ws.remotes[name] = remote
        ws.upstreams[name] = upstream
        git(root, "submodule", "add", "--name", name, str(remote), f"services/{name}")

    git(root, "commit", "-m", "add linked repositories")
    git(root, "push", "origin", "main")
    return ws
