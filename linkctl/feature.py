"""Feature branch lifecycle: create or resume ``feature/<name>`` in one link."""

from __future__ import annotations

import logging
from pathlib import Path

from linkctl.decisions import Decider
from linkctl.errors import (
    BranchConflictError,
    DirtyWorkingTreeError,
    GitCommandError,
    NotFoundError,
    classify_git_failure,
)
from linkctl.git import (
    branch_exists,
    checkout,
    checkout_tracking,
    create_branch,
    fetch,
    is_repo_root,
    pull,
    remote_branch_exists,
    status,
    status_short,
)
from linkctl.model import FeatureBranch, LinkedRepository
from linkctl.registry import known_names

log = logging.getLogger(__name__)


def start_feature(
    repository: LinkedRepository,
    feature_name: str,
    parent_root: str,
    links: list[LinkedRepository],
    decider: Decider,
    remote: str = "origin",
) -> str:
    """Leave *repository* checked out on ``feature/<feature_name>``.

    The branch starts from a freshly pulled default branch. An existing
    remote branch is resumed by tracking it. An existing local branch is
    only switched to if *decider* confirms; otherwise BranchConflictError.

    Returns the branch name.
    """
    feature = FeatureBranch(Path(repository.path).name, feature_name)
    branch = feature.branch_name
    path = repository.abspath(parent_root)

    if not Path(path).is_dir() or not is_repo_root(path):
        raise NotFoundError(
            f"'{repository.name}' is not an initialized linked repository.",
            known=known_names(links),
            repository=repository.name,
            path=path,
        )

    state = status(path)
    if not state.is_clean:
        raise DirtyWorkingTreeError(
            f"'{repository.name}' has uncommitted changes. Commit or stash them first.\n"
            f"{status_short(path)}",
            repository=repository.name,
            branch=state.current_branch,
        )

    try:
        fetch(remote, path)
        state = status(path, remote)
        current, default = state.current_branch, state.default_branch
        log.info("%s: on %s, default %s", repository.name, current or "(detached)", default)

        if current != default:
            checkout(default, path)
        pull(remote, default, path)

        if branch_exists(branch, path):
            if not decider.confirm_switch(repository, branch):
                raise BranchConflictError(
                    f"branch '{branch}' already exists in '{repository.name}'. "
                    "Switch to it explicitly or choose another feature name.",
                    repository=repository.name,
                    branch=default,
                    existing=branch,
                )
            checkout(branch, path)
            log.info("%s: switched to existing %s", repository.name, branch)
        elif remote_branch_exists(branch, remote, path):
            checkout_tracking(branch, remote, path)
            log.info("%s: tracking %s/%s", repository.name, remote, branch)
        else:
            create_branch(branch, path)
            log.info("%s: created %s from %s", repository.name, branch, default)
    except GitCommandError as e:
        raise classify_git_failure(e) from e

    return branch
