"""linkctl CLI — workflow orchestrator for linked (submodule) repositories."""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import NoReturn, Optional

import typer

from linkctl import __version__
from linkctl.config import Settings, load_settings
from linkctl.decisions import Decider, PolicyDecider
from linkctl.errors import ExitCode, LinkctlError, NotFoundError
from linkctl.feature import start_feature
from linkctl.gh_ops import check_gh_auth, check_gh_installed
from linkctl.git import (
    get_current_branch,
    get_repo_root,
    head_revision,
    is_repo_root,
    recorded_pointer,
    remote_url,
    status as repo_status,
)
from linkctl.model import LinkedRepository, Outcome, PointerChangeSet, SyncReport
from linkctl.pr import create_link_pr, create_parent_pr, ensure_hosting
from linkctl.reconcile import reconcile_all
from linkctl.registry import find_link, find_parent_root, load_links

app = typer.Typer(
    name="linkctl",
    help="Workflow orchestrator for parent repositories with linked repositories.",
    add_completion=False,
)

_ICONS = {Outcome.SYNCED: "✓", Outcome.SKIPPED: "-", Outcome.FAILED: "✗"}


class PromptDecider:
    """Asks the operator at each decision point."""

    def confirm_stash(self, repository: LinkedRepository, changes: str) -> bool:
        print(f"\nUncommitted changes in {repository.name}:\n{changes}")
        return typer.confirm(f"Stash them and sync {repository.name}?", default=True)

    def confirm_switch(self, repository: LinkedRepository, branch: str) -> bool:
        print(f"Feature branch '{branch}' already exists locally in {repository.name}.")
        return typer.confirm("Do you want to switch to it?", default=False)

    def confirm_parent_commit(self, changes: PointerChangeSet) -> bool:
        print("\nLinked repositories moved past the parent's pointers:")
        for change in changes.entries:
            print(f"  {change.describe()}")
        return typer.confirm("Commit pointer updates to the parent repo?", default=False)


def _settings() -> Settings:
    try:
        return load_settings()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(int(ExitCode.HARD_PRECONDITION))


def _decider(settings: Settings, yes: bool = False) -> Decider:
    if settings.interactive and not yes:
        return PromptDecider()
    return PolicyDecider(stash=True, switch=yes, parent_commit=yes)


def _fail(err: LinkctlError) -> NoReturn:
    print(f"Error: {err.message}", file=sys.stderr)
    if isinstance(err, NotFoundError) and err.known:
        print("Available linked repositories:", file=sys.stderr)
        for name in err.known:
            print(f"  {name}", file=sys.stderr)
    raise SystemExit(int(err.exit_code))


def _parent_root() -> str:
    try:
        return find_parent_root(os.getcwd())
    except LinkctlError as e:
        _fail(e)


# ---- version callback -----------------------------------------------------
def _version_callback(value: bool) -> None:
    if value:
        print(f"linkctl {__version__}")
        raise typer.Exit()


@app.callback()
def _main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log every git/gh call.",
    ),
) -> None:
    """linkctl — keep linked repositories in step with their parent."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
        )


# ---- sync ------------------------------------------------------------------

def _report_to_dict(report: SyncReport) -> dict:
    changes = report.pointer_changes or PointerChangeSet()
    return {
        "results": [
            {
                "name": r.repository.name,
                "path": r.repository.path,
                "outcome": r.outcome.value,
                "detail": r.detail,
                **({"stash": r.stash_ref} if r.stash_ref else {}),
            }
            for r in report.results
        ],
        "pointer_changes": [
            {
                "name": c.repository.name,
                "old": c.old_revision,
                "new": c.new_revision,
            }
            for c in changes.entries
        ],
        "parent_committed": report.parent_committed,
        "summary": {o.value: report.count(o) for o in Outcome},
    }


@app.command()
def sync(
    force: bool = typer.Option(
        False, "--force",
        help="Stash uncommitted changes instead of skipping dirty repositories.",
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y",
        help="Answer yes to every confirmation (commit parent pointers).",
    ),
    json_output: bool = typer.Option(
        False, "--json",
        help="Output as structured JSON.",
    ),
) -> None:
    """Sync every linked repository with its remote, then the parent pointers."""
    settings = _settings()
    root = _parent_root()

    if not json_output:
        print(f"Parent repo:  {root}")
        if force:
            print("Force enabled: uncommitted changes will be stashed.")
        print()

    try:
        report = reconcile_all(
            root,
            force_stash=force,
            decider=_decider(settings, yes),
            remote=settings.remote,
        )
    except LinkctlError as e:
        _fail(e)

    if json_output:
        print(json.dumps(_report_to_dict(report), indent=2))
    else:
        for r in report.results:
            print(f"{_ICONS[r.outcome]} {r.repository.name}: {r.outcome.value} ({r.detail})")
            if r.stash_ref:
                print(f"    stashed as {r.stash_ref}")
        if report.pointer_changes:
            state = "committed" if report.parent_committed else "staged, not committed"
            print(f"\nParent pointer updates ({state}):")
            for change in report.pointer_changes.entries:
                print(f"  {change.describe()}")
        else:
            print("\nNo parent pointer updates needed.")
        if report.parent_error:
            print(f"Parent update failed: {report.parent_error}", file=sys.stderr)
        print(
            f"\n{report.count(Outcome.SYNCED)} synced, "
            f"{report.count(Outcome.SKIPPED)} skipped, "
            f"{report.count(Outcome.FAILED)} failed."
        )

    if report.partial_failure:
        raise SystemExit(int(ExitCode.PARTIAL_FAILURE))


# ---- new-feature -----------------------------------------------------------

@app.command("new-feature")
def new_feature(
    service: str = typer.Argument(help="Linked repository name or path."),
    feature: str = typer.Argument(help="Feature name; the branch is feature/<name>."),
    yes: bool = typer.Option(
        False, "--yes", "-y",
        help="Switch to the feature branch if it already exists locally.",
    ),
) -> None:
    """Create or resume a feature branch in a linked repository."""
    settings = _settings()
    root = _parent_root()
    try:
        links = load_links(root)
        link = find_link(links, service)
        branch = start_feature(
            link, feature, root, links,
            decider=_decider(settings, yes),
            remote=settings.remote,
        )
    except LinkctlError as e:
        _fail(e)

    print(f"✓ {link.name} is on {branch}")
    print("\nWhat's next:")
    print(f"  Make your changes in: {link.path}")
    print(f"  Create PR: linkctl create-pr {service}")
    print("  After PR merge: linkctl parent-pr")


# ---- create-pr -------------------------------------------------------------

@app.command("create-pr")
def create_pr_cmd(
    service: str = typer.Argument(help="Linked repository name or path."),
    draft: bool = typer.Option(False, "--draft", help="Create as draft PR."),
) -> None:
    """Push a linked repository's feature branch and open (or find) its PR."""
    settings = _settings()
    root = _parent_root()
    try:
        links = load_links(root)
        link = find_link(links, service)
        pr = create_link_pr(link, root, links, draft=draft, remote=settings.remote)
    except LinkctlError as e:
        _fail(e)

    print(f"✓ PR #{pr.number}: {pr.url}")


# ---- parent-pr -------------------------------------------------------------

@app.command("parent-pr")
def parent_pr(
    feature: Optional[str] = typer.Argument(
        None, help="Feature name for the parent branch (timestamped if omitted).",
    ),
    draft: bool = typer.Option(False, "--draft", help="Create as draft PR."),
    no_sync: bool = typer.Option(
        False, "--no-sync", help="Skip syncing linked repositories first.",
    ),
) -> None:
    """Open a parent PR advancing pointers to the linked repositories' HEADs."""
    settings = _settings()
    root = _parent_root()

    try:
        if not no_sync:
            ensure_hosting(root)
            report = reconcile_all(
                root,
                decider=_decider(settings),
                remote=settings.remote,
                update_parent=False,
            )
            if report.partial_failure:
                for r in report.results:
                    if r.outcome is Outcome.FAILED:
                        print(f"✗ {r.repository.name}: {r.detail}", file=sys.stderr)
                raise SystemExit(int(ExitCode.PARTIAL_FAILURE))

        result = create_parent_pr(
            root,
            load_links(root),
            feature_hint=feature,
            draft=draft,
            remote=settings.remote,
            branch_prefix=settings.parent_branch_prefix,
        )
    except LinkctlError as e:
        _fail(e)

    if result.nothing_to_update:
        print("Nothing to update: every pointer matches its linked repository.")
        return

    for change in result.changes.entries:
        print(f"  {change.describe()}")
    verb = "Created" if result.created else "Updated"
    print(f"\n✓ {verb} PR #{result.pull_request.number} on {result.branch}: {result.pull_request.url}")


# ---- status ----------------------------------------------------------------

@app.command()
def status(
    json_output: bool = typer.Option(
        False, "--json", help="Output as structured JSON."
    ),
) -> None:
    """Show branch, cleanliness and pointer state of every linked repository."""
    settings = _settings()
    root = _parent_root()
    rows = []
    try:
        for link in load_links(root):
            path = link.abspath(root)
            if not is_repo_root(path):
                rows.append({"name": link.name, "path": link.path, "initialized": False})
                continue
            state = repo_status(path)
            rows.append({
                "name": link.name,
                "path": link.path,
                "initialized": True,
                "branch": state.current_branch,
                "clean": state.is_clean,
                "head": head_revision(path),
                "recorded": recorded_pointer(link.path, root),
                "remote": remote_url(settings.remote, path),
            })
    except LinkctlError as e:
        _fail(e)

    if json_output:
        print(json.dumps({"parent_root": root, "links": rows}, indent=2))
        return

    print(f"Parent repo:  {root} ({get_current_branch(root) or 'detached'})\n")
    if not rows:
        print("No linked repositories found.")
    for row in rows:
        if not row["initialized"]:
            print(f"  {row['name']}: not initialized")
            continue
        state = "clean" if row["clean"] else "has changes"
        moved = "" if row["head"] == row["recorded"] else "  (pointer moved)"
        print(f"  {row['name']}: {row['branch'] or 'detached'} ({state}){moved}")


# ---- doctor ----------------------------------------------------------------

@app.command()
def doctor() -> None:
    """Check system dependencies and configuration."""
    print("Checking linkctl dependencies...\n")

    root = None
    try:
        root = get_repo_root(os.getcwd())
        print("✓ git installed")
        print(f"  Repo root: {root}")
    except LinkctlError:
        print("✗ git not found or not in a repository")

    print()

    if check_gh_installed():
        print("✓ gh CLI installed")
        authenticated, msg = check_gh_auth(root)
        if authenticated:
            print("  ✓ Authenticated")
            first_line = msg.split("\n")[0] if msg else ""
            if first_line:
                print(f"  {first_line}")
        else:
            print("  ✗ Not authenticated")
            print("  Run: gh auth login")
    else:
        print("✗ gh CLI not installed")
        print("  Install from: https://cli.github.com/")

    print()
    print("All checks complete.")
