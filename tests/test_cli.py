"""Tests for the typer command surface."""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from linkctl import __version__
from linkctl.cli import app
from linkctl.errors import ExitCode
from linkctl.model import PullRequest

from tests.conftest import Workspace, git

runner = CliRunner()


@pytest.fixture()
def in_parent(workspace: Workspace, monkeypatch: pytest.MonkeyPatch) -> Workspace:
    monkeypatch.chdir(workspace.root)
    monkeypatch.setenv("LINKCTL_MODE", "ci")
    return workspace


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_sync_json_reports_every_repository(in_parent: Workspace) -> None:
    result = runner.invoke(app, ["sync", "--json"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert [r["outcome"] for r in data["results"]] == ["synced", "synced"]
    assert data["summary"] == {"synced": 2, "skipped": 0, "failed": 0}


def test_sync_prints_counts_and_skips_dirty(in_parent: Workspace) -> None:
    (in_parent.link_path("alpha") / "README.md").write_text("dirty\n")

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 0, result.output
    assert "alpha: skipped (uncommitted changes)" in result.output
    assert "1 synced, 1 skipped, 0 failed." in result.output


def test_sync_partial_failure_exit_code(in_parent: Workspace) -> None:
    remote = in_parent.remotes["beta"]
    remote.rename(remote.with_name("elsewhere.git"))

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == ExitCode.PARTIAL_FAILURE
    assert "1 synced, 0 skipped, 1 failed." in result.output


def test_sync_yes_commits_parent_pointers(in_parent: Workspace) -> None:
    in_parent.advance("alpha")

    result = runner.invoke(app, ["sync", "--yes"])

    assert result.exit_code == 0, result.output
    assert "Parent pointer updates (committed)" in result.output
    assert git(in_parent.root, "show", "--name-only", "--format=", "HEAD") == "services/alpha"


def test_outside_parent_repository_is_hard_precondition(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == ExitCode.HARD_PRECONDITION
    assert "not inside a git repository" in result.output


def test_invalid_mode_is_rejected(in_parent: Workspace, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LINKCTL_MODE", "robot")

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == ExitCode.HARD_PRECONDITION
    assert "LINKCTL_MODE" in result.output


def test_new_feature_creates_branch(in_parent: Workspace) -> None:
    result = runner.invoke(app, ["new-feature", "alpha", "search"])

    assert result.exit_code == 0, result.output
    assert "alpha is on feature/search" in result.output
    assert git(in_parent.link_path("alpha"), "symbolic-ref", "--short", "HEAD") == "feature/search"


def test_new_feature_unknown_service_lists_known(in_parent: Workspace) -> None:
    result = runner.invoke(app, ["new-feature", "gamma", "search"])

    assert result.exit_code == ExitCode.ERROR
    assert "Available linked repositories" in result.output
    assert "alpha" in result.output and "beta" in result.output


def test_new_feature_existing_branch_without_yes_fails(in_parent: Workspace) -> None:
    git(in_parent.link_path("alpha"), "branch", "feature/search")

    result = runner.invoke(app, ["new-feature", "alpha", "search"])

    assert result.exit_code == ExitCode.ERROR
    assert "already exists" in result.output


def test_new_feature_prompts_in_interactive_mode(in_parent: Workspace, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LINKCTL_MODE", "interactive")
    git(in_parent.link_path("alpha"), "branch", "feature/search")

    result = runner.invoke(app, ["new-feature", "alpha", "search"], input="y\n")

    assert result.exit_code == 0, result.output
    assert "Do you want to switch to it?" in result.output
    assert git(in_parent.link_path("alpha"), "symbolic-ref", "--short", "HEAD") == "feature/search"


def test_create_pr_prints_url(in_parent: Workspace) -> None:
    pr = PullRequest(7, "https://example.com/pull/7", "main", "feature/search")
    with patch("linkctl.cli.create_link_pr", return_value=pr) as mock_create:
        result = runner.invoke(app, ["create-pr", "alpha", "--draft"])

    assert result.exit_code == 0, result.output
    assert "PR #7: https://example.com/pull/7" in result.output
    assert mock_create.call_args.kwargs["draft"] is True


def test_parent_pr_nothing_to_update(in_parent: Workspace) -> None:
    result = runner.invoke(app, ["parent-pr", "--no-sync"])

    assert result.exit_code == 0, result.output
    assert "Nothing to update" in result.output


def test_parent_pr_syncs_then_creates(in_parent: Workspace) -> None:
    in_parent.advance("beta")
    pr = PullRequest(3, "https://example.com/pull/3", "main", "feature/bump")

    with patch("linkctl.pr.check_gh_installed", return_value=True), \
            patch("linkctl.pr.check_gh_auth", return_value=(True, "")), \
            patch("linkctl.pr.find_pr_by_head", return_value=None), \
            patch("linkctl.pr.create_pr", return_value=pr) as mock_create:
        result = runner.invoke(app, ["parent-pr", "bump"])

    assert result.exit_code == 0, result.output
    assert "Created PR #3 on feature/bump" in result.output
    assert mock_create.call_args.kwargs["head"] == "feature/bump"
    assert git(in_parent.root, "show", "--name-only", "--format=", "HEAD") == "services/beta"


def test_status_json(in_parent: Workspace) -> None:
    in_parent.advance("alpha")
    git(in_parent.link_path("alpha"), "pull", "--ff-only", "origin", "main")

    result = runner.invoke(app, ["status", "--json"])

    assert result.exit_code == 0, result.output
    links = {row["name"]: row for row in json.loads(result.output)["links"]}
    assert links["alpha"]["head"] != links["alpha"]["recorded"]
    assert links["beta"]["head"] == links["beta"]["recorded"]
    assert links["beta"]["branch"] == "main" and links["beta"]["clean"]
    assert links["beta"]["remote"] == str(in_parent.remotes["beta"])


def test_status_malformed_gitmodules_is_hard_precondition(in_parent: Workspace) -> None:
    with (in_parent.root / ".gitmodules").open("a") as fh:
        fh.write('[submodule "broken"]\n\turl = https://example.com/broken.git\n')

    result = runner.invoke(app, ["status"])

    assert result.exit_code == ExitCode.HARD_PRECONDITION
    assert "has no path" in result.output


def test_status_empty_linked_repository_reports_error(in_parent: Workspace) -> None:
    path = in_parent.link_path("alpha")
    shutil.rmtree(path)
    path.mkdir()
    git(path, "init", "-b", "main")

    result = runner.invoke(app, ["status", "--json"])

    assert result.exit_code == ExitCode.ERROR
    assert "Error: git rev-parse" in result.output


def test_parent_pr_checks_gh_before_syncing(in_parent: Workspace) -> None:
    alpha_before = in_parent.head("alpha")
    parent_before = git(in_parent.root, "rev-parse", "HEAD")
    in_parent.advance("alpha")

    with patch("linkctl.pr.check_gh_installed", return_value=True), \
            patch("linkctl.pr.check_gh_auth", return_value=(False, "not logged in")):
        result = runner.invoke(app, ["parent-pr", "x"])

    assert result.exit_code == ExitCode.HARD_PRECONDITION
    assert "gh auth login" in result.output
    assert in_parent.head("alpha") == alpha_before
    assert git(in_parent.root, "rev-parse", "HEAD") == parent_before
