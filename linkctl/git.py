"""Repository adapter: low-level git helpers. Every function takes an explicit
*cwd* so callers never depend on the process working directory."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from linkctl.errors import GitCommandError, NotAParentRepositoryError, ToolMissingError
from linkctl.model import RepoState

log = logging.getLogger(__name__)

GITLINK_MODE = "160000"


# ---------------------------------------------------------------------------
# runner
# ---------------------------------------------------------------------------

def run_git(
    *args: str,
    cwd: str,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Run a git command in *cwd* and return the completed process.

    Raises GitCommandError when *check* is set and git exits non-zero.
    """
    argv = ["git", *args]
    log.debug("%s $ %s", cwd, " ".join(argv))
    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            check=False,
            cwd=cwd,
        )
    except FileNotFoundError:
        raise ToolMissingError("git is not installed or not on PATH.") from None
    if check and result.returncode != 0:
        raise GitCommandError(argv, result.returncode, result.stderr, cwd=cwd)
    return result


# ---------------------------------------------------------------------------
# repo discovery
# ---------------------------------------------------------------------------

def get_repo_root(cwd: str) -> str:
    """Return the repo root containing *cwd*."""
    result = run_git("rev-parse", "--show-toplevel", cwd=cwd, check=False)
    if result.returncode != 0:
        raise NotAParentRepositoryError(
            "not inside a git repository.", path=cwd,
        )
    return result.stdout.strip()


def is_repo_root(path: str) -> bool:
    """True if *path* is itself the top of a git work tree.

    An uninitialized link directory sits inside the parent's work tree, so
    ``rev-parse`` succeeds there but reports the parent as toplevel.
    """
    p = Path(path)
    if not p.is_dir():
        return False
    result = run_git("rev-parse", "--show-toplevel", cwd=str(p), check=False)
    if result.returncode != 0:
        return False
    return Path(result.stdout.strip()).resolve() == p.resolve()


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------

def get_current_branch(cwd: str) -> str | None:
    """Get the current branch name, or None if in detached HEAD."""
    result = run_git("symbolic-ref", "--short", "-q", "HEAD", cwd=cwd, check=False)
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def status_short(cwd: str) -> str:
    return run_git("status", "--porcelain", cwd=cwd).stdout.rstrip()


def is_clean(cwd: str) -> bool:
    """Untracked files count as dirty."""
    return status_short(cwd) == ""


def status(cwd: str, remote: str | None = None) -> RepoState:
    """Live state of *cwd*; with *remote*, also resolve its default branch."""
    return RepoState(
        current_branch=get_current_branch(cwd),
        is_clean=is_clean(cwd),
        default_branch=resolve_default_branch(cwd, remote) if remote else None,
    )


def head_revision(cwd: str) -> str:
    return run_git("rev-parse", "HEAD", cwd=cwd).stdout.strip()


def remote_url(name: str, cwd: str) -> str | None:
    result = run_git("remote", "get-url", name, cwd=cwd, check=False)
    if result.returncode != 0:
        return None
    return result.stdout.strip()


# ---------------------------------------------------------------------------
# fetch / pull / checkout
# ---------------------------------------------------------------------------

def fetch(remote: str, cwd: str) -> None:
    run_git("fetch", remote, "--prune", cwd=cwd)


def pull(remote: str, branch: str, cwd: str) -> None:
    """Fast-forward *branch* from *remote*. Diverged history fails."""
    run_git("pull", "--ff-only", remote, branch, cwd=cwd)


def checkout(branch: str, cwd: str) -> None:
    run_git("checkout", branch, cwd=cwd)


def create_branch(name: str, cwd: str, start: str | None = None) -> None:
    """Create *name* from *start* (default HEAD) and switch to it."""
    args = ["checkout", "-b", name]
    if start:
        args += ["--no-track", start]
    run_git(*args, cwd=cwd)


def checkout_tracking(branch: str, remote: str, cwd: str) -> None:
    """Create local *branch* tracking ``<remote>/<branch>`` and switch to it."""
    run_git("checkout", "-b", branch, "--track", f"{remote}/{branch}", cwd=cwd)


def resolve_default_branch(cwd: str, remote: str = "origin") -> str:
    """Determine the default branch name of *remote*.

    Priority: ``<remote>/HEAD`` > ``<remote>/main`` > ``<remote>/master`` > ``main``.
    """
    result = run_git(
        "symbolic-ref", "-q", f"refs/remotes/{remote}/HEAD",
        cwd=cwd, check=False,
    )
    if result.returncode == 0 and result.stdout.strip():
        return result.stdout.strip().removeprefix(f"refs/remotes/{remote}/")

    for candidate in ("main", "master"):
        result = run_git(
            "rev-parse", "--verify", "-q", f"{remote}/{candidate}",
            cwd=cwd, check=False,
        )
        if result.returncode == 0:
            return candidate

    return "main"


# ---------------------------------------------------------------------------
# branch queries
# ---------------------------------------------------------------------------

def branch_exists(branch: str, cwd: str) -> bool:
    result = run_git(
        "show-ref", "--verify", "--quiet", f"refs/heads/{branch}",
        cwd=cwd, check=False,
    )
    return result.returncode == 0


def remote_branch_exists(branch: str, remote: str, cwd: str) -> bool:
    result = run_git(
        "show-ref", "--verify", "--quiet", f"refs/remotes/{remote}/{branch}",
        cwd=cwd, check=False,
    )
    return result.returncode == 0


def list_local_branches(cwd: str) -> list[str]:
    result = run_git(
        "for-each-ref", "--format=%(refname:short)", "refs/heads/", cwd=cwd,
    )
    return [line for line in result.stdout.splitlines() if line]


def list_remote_branches(remote: str, cwd: str) -> list[str]:
    """Remote branch names with the ``<remote>/`` prefix stripped."""
    result = run_git(
        "for-each-ref", "--format=%(refname)", f"refs/remotes/{remote}/", cwd=cwd,
    )
    prefix = f"refs/remotes/{remote}/"
    branches = []
    for line in result.stdout.splitlines():
        name = line.removeprefix(prefix)
        if name and name != "HEAD":
            branches.append(name)
    return branches


def has_upstream(branch: str, cwd: str) -> bool:
    result = run_git(
        "rev-parse", "--abbrev-ref", "--symbolic-full-name", f"{branch}@{{upstream}}",
        cwd=cwd, check=False,
    )
    return result.returncode == 0


def commits_ahead(base: str, cwd: str) -> list[str]:
    """One-line summaries of commits on HEAD that are not on *base*."""
    result = run_git("log", "--format=%h %s", f"{base}..HEAD", cwd=cwd)
    return [line for line in result.stdout.splitlines() if line]


# ---------------------------------------------------------------------------
# mutation
# ---------------------------------------------------------------------------

def stash_push(message: str, cwd: str) -> str:
    """Stash tracked and untracked changes; return the stash commit sha."""
    run_git("stash", "push", "--include-untracked", "-m", message, cwd=cwd)
    return run_git("rev-parse", "stash@{0}", cwd=cwd).stdout.strip()


def stash_list(cwd: str) -> list[str]:
    result = run_git("stash", "list", "--format=%gd %gs", cwd=cwd)
    return [line for line in result.stdout.splitlines() if line]


def add(paths: list[str], cwd: str) -> None:
    run_git("add", "--", *paths, cwd=cwd)


def commit(message: str, cwd: str, only: list[str] | None = None) -> None:
    """Commit the index, or with *only* exactly those paths."""
    if only:
        run_git("commit", "-m", message, "--only", "--", *only, cwd=cwd)
    else:
        run_git("commit", "-m", message, cwd=cwd)


def push(remote: str, branch: str, cwd: str, set_upstream: bool = False) -> None:
    args = ["push"]
    if set_upstream:
        args.append("-u")
    args += [remote, branch]
    run_git(*args, cwd=cwd)


# ---------------------------------------------------------------------------
# parent / submodule helpers
# ---------------------------------------------------------------------------

def recorded_pointer(path: str, cwd: str, ref: str = "HEAD") -> str | None:
    """Revision the parent at *ref* records for the link at *path*."""
    result = run_git("ls-tree", ref, "--", path, cwd=cwd, check=False)
    if result.returncode != 0 or not result.stdout.strip():
        return None
    meta, _, _ = result.stdout.partition("\t")
    mode, _type, sha = meta.split()
    if mode != GITLINK_MODE:
        return None
    return sha


def submodule_sync(cwd: str) -> None:
    run_git("submodule", "sync", cwd=cwd)


def submodule_init(cwd: str) -> None:
    run_git("submodule", "init", cwd=cwd)


def config_list(file: str, cwd: str) -> list[tuple[str, str]]:
    """Return ``(key, value)`` pairs of a git-config format *file*."""
    result = run_git("config", "--file", file, "--list", "-z", cwd=cwd)
    pairs = []
    for record in result.stdout.split("\0"):
        if not record:
            continue
        key, _, value = record.partition("\n")
        pairs.append((key, value))
    return pairs
