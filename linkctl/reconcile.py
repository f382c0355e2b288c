"""Reconciliation engine: bring each linked repository to a clean state that
is up to date with its tracked remote branch, without losing work."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from linkctl.decisions import Decider
from linkctl.errors import GitCommandError, classify_git_failure
from linkctl.git import (
    add,
    checkout,
    commit,
    fetch,
    is_repo_root,
    pull,
    remote_branch_exists,
    resolve_default_branch,
    stash_push,
    status,
    status_short,
    submodule_init,
    submodule_sync,
)
from linkctl.model import LinkedRepository, Outcome, ReconciliationResult, SyncReport
from linkctl.pr import compute_pointer_changes, pointer_commit_message
from linkctl.registry import load_links

log = logging.getLogger(__name__)


def stash_message(repository: LinkedRepository, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return f"linkctl auto-stash before sync [{repository.name}] {stamp}"


def reconcile(
    repository: LinkedRepository,
    parent_root: str,
    force_stash: bool = False,
    decider: Decider | None = None,
    remote: str = "origin",
) -> ReconciliationResult:
    """Reconcile one linked repository. Never raises for git failures.

    A dirty tree without *force_stash* is skipped untouched. With it, the
    changes (untracked files included) go to a timestamped stash entry
    first. Attached branches are pulled from the same name on *remote*;
    a detached HEAD is moved onto the remote's default branch.
    """
    path = repository.abspath(parent_root)
    if not is_repo_root(path):
        log.warning("%s: not initialized at %s", repository.name, path)
        return ReconciliationResult(repository, Outcome.FAILED, "not initialized")

    stash_ref = None
    try:
        state = status(path)
        if not state.is_clean:
            if not force_stash:
                log.warning("%s: uncommitted changes, skipping", repository.name)
                return ReconciliationResult(repository, Outcome.SKIPPED, "uncommitted changes")
            if decider is not None and not decider.confirm_stash(repository, status_short(path)):
                return ReconciliationResult(repository, Outcome.SKIPPED, "stash declined")
            stash_ref = stash_push(stash_message(repository), path)
            log.info("%s: stashed local changes as %s", repository.name, stash_ref)
            state = status(path)

        branch = state.current_branch
        fetch(remote, path)

        if branch is not None:
            if not remote_branch_exists(branch, remote, path):
                return ReconciliationResult(
                    repository, Outcome.SKIPPED,
                    f"'{branch}' is not on {remote}; fetched only",
                    stash_ref=stash_ref,
                )
            pull(remote, branch, path)
            detail = f"pulled {branch}"
        else:
            default = resolve_default_branch(path, remote)
            log.info("%s: detached HEAD, checking out %s", repository.name, default)
            checkout(default, path)
            pull(remote, default, path)
            detail = f"checked out and pulled {default}"
    except GitCommandError as e:
        err = classify_git_failure(e)
        log.warning("%s: %s failure: %s", repository.name, err.kind.value, err.message)
        return ReconciliationResult(
            repository, Outcome.FAILED, f"{err.kind.value}: {err.message}", stash_ref=stash_ref,
        )

    return ReconciliationResult(repository, Outcome.SYNCED, detail, stash_ref=stash_ref)


def reconcile_all(
    parent_root: str,
    force_stash: bool = False,
    decider: Decider | None = None,
    remote: str = "origin",
    update_parent: bool = True,
) -> SyncReport:
    """Reconcile every registered link, one at a time, then the parent.

    One repository failing never stops the others. When links moved past
    the parent's recorded pointers and *update_parent* is set, the pointer
    paths are staged in the parent and committed if *decider* agrees.
    """
    links = load_links(parent_root)
    report = SyncReport()

    for step in (submodule_sync, submodule_init):
        try:
            step(parent_root)
        except GitCommandError as e:
            log.warning("parent: %s", e.message)

    for link in links:
        report.results.append(
            reconcile(link, parent_root, force_stash=force_stash, decider=decider, remote=remote)
        )

    changes = compute_pointer_changes(parent_root, links)
    report.pointer_changes = changes
    if not changes or not update_parent:
        return report

    try:
        add(changes.paths, parent_root)
        if decider is not None and decider.confirm_parent_commit(changes):
            commit(pointer_commit_message(changes), parent_root, only=changes.paths)
            report.parent_committed = True
            log.info("parent: committed %d pointer update(s)", len(changes))
    except GitCommandError as e:
        report.parent_error = e.message
        log.warning("parent: %s", e.message)
    return report
