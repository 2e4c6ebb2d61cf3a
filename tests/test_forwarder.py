"""Tests for command classification and forwarding."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from claude_sync.forwarder import (
    CommandPlan,
    GitForwarder,
    classify,
    has_explicit_paths,
)
from claude_sync.git_wrapper import CommandOutput
from claude_sync.registry import TrackedProject
from claude_sync.sync_repo import SyncRepository

ROOT = Path("/home/me/.claude-sync")


def test_repo_wide_command_is_verbatim_regardless_of_project() -> None:
    for slot in (None, "projects/demo"):
        plan = classify("commit", ["commit", "-m", "x"], slot, repo_root=ROOT)
        assert plan == CommandPlan(("commit", "-m", "x"), ROOT)


@pytest.mark.parametrize(
    ("args", "expected"),
    [
        (["status"], ("status", "--", "projects/demo")),
        (["status", "--", "custom/path"], ("status", "--", "custom/path")),
        (["log", "--oneline", "-n", "5"], ("log", "--oneline", "-n", "5")),
        (["log", "--oneline"], ("log", "--oneline", "--", "projects/demo")),
        (["diff", "HEAD~1"], ("diff", "HEAD~1")),
        (["ls-files", "-s"], ("ls-files", "-s", "--", "projects/demo")),
    ],
)
def test_project_scoped_commands(args: list[str], expected: tuple[str, ...]) -> None:
    """Verifies that scoped reads get the slot only when no path was supplied."""
    plan = classify(args[0], args, "projects/demo", repo_root=ROOT)

    assert plan.args == expected
    assert plan.working_directory == ROOT


def test_scoped_command_without_project_is_verbatim() -> None:
    plan = classify("status", ["status", "-s"], None, repo_root=ROOT)
    assert plan.args == ("status", "-s")


def test_missing_command_defaults_to_status() -> None:
    assert classify(None, [], "projects/demo", repo_root=ROOT).args == (
        "status",
        "--",
        "projects/demo",
    )
    assert classify(None, [], None, repo_root=ROOT).args == ("status",)


def test_unknown_commands_are_verbatim() -> None:
    plan = classify("remote", ["remote", "-v"], "projects/demo", repo_root=ROOT)
    assert plan.args == ("remote", "-v")


def test_has_explicit_paths() -> None:
    assert has_explicit_paths(["status", "--"])
    assert has_explicit_paths(["diff", "HEAD"])
    assert not has_explicit_paths(["log", "-p", "--stat"])
    assert not has_explicit_paths(["status"])


@pytest.fixture
def forwarder(tmp_path: Path) -> GitForwarder:
    return GitForwarder(SyncRepository(tmp_path / "sync"), cwd=tmp_path / "work")


def test_plan_uses_current_project_slot(
    forwarder: GitForwarder, mocker: MagicMock
) -> None:
    project = TrackedProject(name="demo", root_path=Path("/work"))
    mocker.patch.object(
        forwarder.detector, "find_current_project", return_value=project
    )

    plan = forwarder.plan(["status"])

    assert plan.args == ("status", "--", "projects/demo")
    assert plan.working_directory == forwarder.sync_repo.path


def test_plan_warns_when_forwarding_add_inside_a_project(
    forwarder: GitForwarder, mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    project = TrackedProject(name="demo", root_path=Path("/work"))
    mocker.patch.object(
        forwarder.detector, "find_current_project", return_value=project
    )

    plan = forwarder.plan(["add", "."])

    assert plan.args == ("add", ".")
    assert "claude-sync add" in caplog.text


def test_forward_returns_git_exit_code(
    forwarder: GitForwarder, mocker: MagicMock
) -> None:
    """Verifies that git runs attached to the terminal and its status is passed back."""
    mocker.patch.object(forwarder.detector, "find_current_project", return_value=None)
    mock_run = mocker.patch(
        "claude_sync.forwarder.run_git", return_value=CommandOutput(128)
    )

    code = forwarder.forward(["push", "origin", "main"])

    assert code == 128
    mock_run.assert_called_once_with(
        ["push", "origin", "main"], cwd=forwarder.sync_repo.path, capture=False
    )


def test_ensure_sync_repo_initializes_only_when_missing(
    forwarder: GitForwarder, mocker: MagicMock
) -> None:
    init = mocker.patch.object(forwarder.sync_repo, "initialize")

    mocker.patch.object(forwarder.sync_repo, "exists", return_value=True)
    forwarder.ensure_sync_repo()
    init.assert_not_called()

    mocker.patch.object(forwarder.sync_repo, "exists", return_value=False)
    forwarder.ensure_sync_repo()
    init.assert_called_once()
