"""PR aggregation: link-side PRs and the parent PR that advances pointers.

The parent commit message is the record tying a parent change back to the
linked-repository revisions it moved, so it always names every
``(repository, old -> new)`` pair in full.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from linkctl.errors import (
    BranchConflictError,
    GitCommandError,
    HostingCommandError,
    NotAuthenticatedError,
    NotFoundError,
    PreconditionError,
    ToolMissingError,
    classify_git_failure,
)
from linkctl.gh_ops import check_gh_auth, check_gh_installed, create_pr, find_pr_by_head, update_pr
from linkctl.git import (
    add,
    branch_exists,
    commit,
    commits_ahead,
    create_branch,
    fetch,
    get_current_branch,
    has_upstream,
    head_revision,
    is_repo_root,
    push,
    recorded_pointer,
    remote_branch_exists,
    remote_url,
    resolve_default_branch,
)
from linkctl.model import (
    FEATURE_PREFIX,
    FeatureBranch,
    LinkedRepository,
    ParentPRResult,
    PointerChange,
    PointerChangeSet,
    PullRequest,
)
from linkctl.registry import known_names

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# pointer change set
# ---------------------------------------------------------------------------

def compute_pointer_changes(
    parent_root: str, links: list[LinkedRepository], ref: str = "HEAD",
) -> PointerChangeSet:
    """Compare the pointers the parent records at *ref* with each link's HEAD."""
    changes = PointerChangeSet()
    for link in links:
        path = link.abspath(parent_root)
        if not is_repo_root(path):
            continue
        new = head_revision(path)
        old = recorded_pointer(link.path, parent_root, ref)
        if old != new:
            changes.entries.append(PointerChange(link, old, new))
    return changes


def pointer_commit_message(changes: PointerChangeSet, feature_hint: str | None = None) -> str:
    subject = "chore: update linked repository pointers"
    if feature_hint:
        subject += f" for {feature_hint}"
    lines = [
        f"- {c.repository.name} ({c.repository.path}): "
        f"{c.old_revision or '(none)'} -> {c.new_revision}"
        for c in changes.entries
    ]
    return subject + "\n\n" + "\n".join(lines) + "\n"


def parent_pr_body(
    changes: PointerChangeSet, link_prs: dict[str, PullRequest],
) -> str:
    rows = ["| Repository | From | To | PR |", "|---|---|---|---|"]
    for c in changes.entries:
        pr = link_prs.get(c.repository.path)
        old = f"`{c.old_revision[:12]}`" if c.old_revision else "(new)"
        rows.append(
            f"| {c.repository.name} | {old} | `{c.new_revision[:12]}` "
            f"| {pr.url if pr else '-'} |"
        )
    return (
        "## Linked repository updates\n\n"
        + "\n".join(rows)
        + "\n\n## Commits\n\n"
        + "\n".join(
            f"- {c.repository.name}: {c.old_revision or '(none)'} -> {c.new_revision}"
            for c in changes.entries
        )
        + "\n"
    )


# ---------------------------------------------------------------------------
# preconditions
# ---------------------------------------------------------------------------

def ensure_hosting(cwd: str) -> None:
    """gh must be installed and authenticated before anything is pushed."""
    if not check_gh_installed():
        raise ToolMissingError(
            "gh CLI is not installed.\nInstall from: https://cli.github.com/"
        )
    authenticated, message = check_gh_auth(cwd)
    if not authenticated:
        raise NotAuthenticatedError(
            f"gh is not authenticated.\n{message}\n\nRun: gh auth login"
        )


# ---------------------------------------------------------------------------
# link PR
# ---------------------------------------------------------------------------

def link_pr_body(repository: LinkedRepository, branch: str, commits: list[str]) -> str:
    changed = "\n".join(f"- {line}" for line in commits) or "- (no commits)"
    return (
        f"## What changed\n\n"
        f"Changes on `{branch}` in `{repository.path}`:\n\n"
        f"{changed}\n\n"
        f"## How to verify\n\n"
        f"- [ ] Check out `{branch}` and run the service's test suite\n"
        f"- [ ] Exercise the changed behavior locally\n\n"
        f"Once merged, update the parent repository's pointer with `linkctl parent-pr`.\n"
    )


def create_link_pr(
    repository: LinkedRepository,
    parent_root: str,
    links: list[LinkedRepository],
    draft: bool = False,
    remote: str = "origin",
) -> PullRequest:
    """Push the link's feature branch and return its PR, creating it if absent."""
    path = repository.abspath(parent_root)
    if not is_repo_root(path):
        raise NotFoundError(
            f"'{repository.name}' is not an initialized linked repository.",
            known=known_names(links),
            repository=repository.name,
        )
    ensure_hosting(path)

    branch = get_current_branch(path)
    default = resolve_default_branch(path, remote)
    if branch is None or branch == default:
        raise PreconditionError(
            f"'{repository.name}' is on {branch or 'a detached HEAD'}; "
            "check out a feature branch first.",
            repository=repository.name,
            branch=branch,
        )

    base_ref = f"{remote}/{default}" if remote_branch_exists(default, remote, path) else default
    try:
        commits = commits_ahead(base_ref, path)
        if not commits:
            raise PreconditionError(
                f"'{branch}' has no commits that are not on {default}.",
                repository=repository.name,
                branch=branch,
            )
        push(remote, branch, path, set_upstream=not has_upstream(branch, path))
    except GitCommandError as e:
        raise classify_git_failure(e) from e

    existing = find_pr_by_head(branch, path)
    if existing is not None:
        log.info("%s: PR #%d already open for %s", repository.name, existing.number, branch)
        return existing

    feature = FeatureBranch.from_branch(Path(repository.path).name, branch)
    title = f"{feature.service_name} : {feature.feature_name}"
    return create_pr(
        title,
        link_pr_body(repository, branch, commits),
        base=default,
        head=branch,
        cwd=path,
        draft=draft,
    )


# ---------------------------------------------------------------------------
# parent PR
# ---------------------------------------------------------------------------

def parent_branch_name(
    feature_hint: str | None,
    prefix: str = "chore/update-links",
    now: datetime | None = None,
) -> str:
    if feature_hint:
        return FEATURE_PREFIX + feature_hint
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d-%H%M%S")
    return f"{prefix}-{stamp}"


def _discover_link_prs(
    changes: PointerChangeSet, branch: str, parent_root: str,
) -> dict[str, PullRequest]:
    """Link PRs whose head matches the parent branch name, keyed by path."""
    found: dict[str, PullRequest] = {}
    for c in changes.entries:
        try:
            pr = find_pr_by_head(branch, c.repository.abspath(parent_root), state="all")
        except HostingCommandError as e:
            log.debug("%s: PR lookup failed: %s", c.repository.name, e.message)
            continue
        if pr is not None:
            found[c.repository.path] = pr
    return found


def create_parent_pr(
    parent_root: str,
    links: list[LinkedRepository],
    feature_hint: str | None = None,
    draft: bool = False,
    remote: str = "origin",
    branch_prefix: str = "chore/update-links",
) -> ParentPRResult:
    """Commit moved link pointers on a parent branch and open its PR.

    Changes are measured against the default branch the PR targets, so a
    run that committed but failed to push or open the PR can be repeated.
    Returns a result with no pull request when nothing moved.
    """
    try:
        if remote_url(remote, parent_root) is not None:
            fetch(remote, parent_root)
    except GitCommandError as e:
        raise classify_git_failure(e) from e

    default = resolve_default_branch(parent_root, remote)
    base_ref = (
        f"{remote}/{default}" if remote_branch_exists(default, remote, parent_root) else default
    )
    changes = compute_pointer_changes(parent_root, links, base_ref)
    if not changes:
        log.info("parent: nothing to update against %s", base_ref)
        return ParentPRResult(changes)

    ensure_hosting(parent_root)

    current = get_current_branch(parent_root)
    branch = parent_branch_name(feature_hint, branch_prefix)
    if not feature_hint and current and current.startswith(f"{branch_prefix}-"):
        # resume an earlier timestamped run
        branch = current
    try:
        if current != branch:
            if branch_exists(branch, parent_root):
                raise BranchConflictError(
                    f"branch '{branch}' already exists in the parent repository.",
                    branch=current,
                    existing=branch,
                )
            create_branch(branch, parent_root, start=base_ref)
        pending = compute_pointer_changes(parent_root, links)
        if pending:
            add(pending.paths, parent_root)
            commit(pointer_commit_message(pending, feature_hint), parent_root, only=pending.paths)
            log.info("parent: committed %d pointer update(s) on %s", len(pending), branch)
        push(remote, branch, parent_root, set_upstream=not has_upstream(branch, parent_root))
    except GitCommandError as e:
        raise classify_git_failure(e) from e

    link_prs = _discover_link_prs(changes, branch, parent_root) if feature_hint else {}
    body = parent_pr_body(changes, link_prs)

    existing = find_pr_by_head(branch, parent_root)
    if existing is not None:
        update_pr(existing.number, parent_root, body=body)
        return ParentPRResult(changes, branch, existing, created=False)

    title = f"Update linked repositories: {feature_hint}" if feature_hint else (
        f"Update {len(changes)} linked repository pointer(s)"
    )
    pr = create_pr(title, body, base=default, head=branch, cwd=parent_root, draft=draft)
    return ParentPRResult(changes, branch, pr, created=True)
