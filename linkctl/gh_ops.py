"""Hosting adapter: GitHub CLI (gh) pull-request operations."""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any

from linkctl.errors import HostingCommandError, ToolMissingError
from linkctl.model import PullRequest

log = logging.getLogger(__name__)

_PR_FIELDS = "number,url,baseRefName,headRefName,isDraft"


def run_gh(
    *args: str,
    cwd: str | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Run a gh CLI command and return the completed process."""
    argv = ["gh", *args]
    log.debug("%s $ %s", cwd, " ".join(argv[:3]))
    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            check=False,
            cwd=cwd,
        )
    except FileNotFoundError:
        raise ToolMissingError(
            "gh CLI is not installed.\nInstall it from: https://cli.github.com/"
        ) from None
    if check and result.returncode != 0:
        raise HostingCommandError(argv, result.returncode, result.stderr, cwd=cwd)
    return result


def check_gh_installed() -> bool:
    """Check if gh CLI is installed."""
    try:
        result = subprocess.run(
            ["gh", "--version"],
            capture_output=True,
            check=False,
        )
        return result.returncode == 0
    except FileNotFoundError:
        return False


def check_gh_auth(cwd: str | None = None) -> tuple[bool, str]:
    """Check if gh is authenticated.

    Returns:
        (is_authenticated, message)
    """
    result = run_gh("auth", "status", cwd=cwd, check=False)
    authenticated = result.returncode == 0
    message = result.stderr.strip() if result.stderr else result.stdout.strip()
    return authenticated, message


def find_pr_by_head(
    branch: str, cwd: str, state: str = "open",
) -> PullRequest | None:
    """Return the first PR whose head is *branch*, or None."""
    result = run_gh(
        "pr", "list",
        "--head", branch,
        "--state", state,
        "--json", _PR_FIELDS,
        cwd=cwd,
    )
    try:
        data = json.loads(result.stdout or "[]")
    except json.JSONDecodeError:
        return None
    if not data:
        return None
    return _dict_to_pr(data[0])


def view_pr(ref: str, cwd: str) -> PullRequest:
    """Look up a PR by number, URL or branch."""
    result = run_gh("pr", "view", ref, "--json", _PR_FIELDS, cwd=cwd)
    return _dict_to_pr(json.loads(result.stdout))


def create_pr(
    title: str,
    body: str,
    base: str,
    head: str,
    cwd: str,
    draft: bool = False,
) -> PullRequest:
    args = [
        "pr", "create",
        "--title", title,
        "--body", body,
        "--base", base,
        "--head", head,
    ]
    if draft:
        args.append("--draft")
    result = run_gh(*args, cwd=cwd)

    # gh prints the new PR's URL as the last line of stdout
    lines = result.stdout.strip().splitlines()
    url = lines[-1].strip() if lines else head
    return view_pr(url, cwd)


def update_pr(number: int, cwd: str, title: str | None = None, body: str | None = None) -> None:
    args = ["pr", "edit", str(number)]
    if title is not None:
        args += ["--title", title]
    if body is not None:
        args += ["--body", body]
    run_gh(*args, cwd=cwd)


def _dict_to_pr(data: dict[str, Any]) -> PullRequest:
    return PullRequest(
        number=int(data["number"]),
        url=data.get("url", ""),
        base=data.get("baseRefName"),
        head=data.get("headRefName"),
        draft=bool(data.get("isDraft", False)),
    )
