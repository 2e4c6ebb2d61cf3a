import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from claude_sync.errors import NotAVersionControlRoot
from claude_sync.git_wrapper import GitRepo, extract_repo_name, git_root, run_git


@pytest.mark.parametrize(
    ("remote", "expected"),
    [
        ("git@github.com:me/dotfiles.git", "dotfiles"),
        ("https://github.com/me/my-app.git", "my-app"),
        ("https://github.com/me/my-app/", "my-app"),
        ("ssh://git@host:2222/group/sub/tool", "tool"),
        (None, "workdir"),
        ("", "workdir"),
    ],
)
def test_extract_repo_name(remote: str | None, expected: str) -> None:
    assert extract_repo_name(remote, "/home/me/workdir") == expected


def test_run_git_reports_failure_without_raising(mocker: MagicMock) -> None:
    """Verifies that a non-zero exit is returned, not raised."""
    mock_run = mocker.patch(
        "subprocess.run",
        return_value=MagicMock(returncode=1, stdout="", stderr="fatal: nope\n"),
    )

    res = run_git(["status"], cwd="/tmp")

    assert not res.success
    assert res.code == 1
    assert res.stderr == "fatal: nope\n"
    mock_run.assert_called_once_with(
        ["git", "status"], cwd="/tmp", capture_output=True, text=True, timeout=None
    )


def test_run_git_check_raises(mocker: MagicMock) -> None:
    mocker.patch(
        "subprocess.run",
        return_value=MagicMock(returncode=128, stdout="", stderr="fatal: bad\n"),
    )

    with pytest.raises(RuntimeError, match="fatal: bad"):
        run_git(["status"], check=True)


def test_run_git_without_capture_inherits_terminal(mocker: MagicMock) -> None:
    mock_run = mocker.patch(
        "subprocess.run", return_value=MagicMock(returncode=0, stdout=None, stderr=None)
    )

    res = run_git(["log"], cwd="/repo", capture=False)

    assert res.success
    assert res.stdout == ""
    assert mock_run.call_args.kwargs["capture_output"] is False


def test_git_root_returns_none_outside_repositories(mocker: MagicMock) -> None:
    mocker.patch("subprocess.run", side_effect=FileNotFoundError("git"))
    assert git_root("/anywhere") is None

    mocker.patch(
        "subprocess.run", return_value=MagicMock(returncode=128, stdout="", stderr="")
    )
    assert git_root("/anywhere") is None

    mocker.patch(
        "subprocess.run",
        return_value=MagicMock(returncode=0, stdout="/repo\n", stderr=""),
    )
    assert git_root("/anywhere") == Path("/repo")


def test_git_repo_requires_git_directory(tmp_path: Path) -> None:
    with pytest.raises(NotAVersionControlRoot):
        GitRepo(tmp_path)


def test_run_wraps_called_process_error(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies that git failures surface as RuntimeError with git's message."""
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(1, ["git"], stderr="boom"),
    )

    with pytest.raises(RuntimeError, match="Git error: boom"):
        repo._run(["status"])


def test_current_branch_and_remote_fall_back(mocker: MagicMock, tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    mocker.patch.object(repo, "_run", side_effect=RuntimeError("Git error"))

    assert repo.current_branch() == "main"
    assert repo.remote_url() is None


def test_add_stages_deletions_after_double_dash(
    mocker: MagicMock, tmp_path: Path
) -> None:
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    mock_run = mocker.patch.object(repo, "_run")

    repo.add(["projects/demo", "config"])
    mock_run.assert_called_with(["add", "--all", "--", "projects/demo", "config"])

    mock_run.reset_mock()
    repo.add([])
    mock_run.assert_not_called()


def test_set_remote_adds_or_updates(mocker: MagicMock, tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    mock_run = mocker.patch.object(repo, "_run")

    mocker.patch.object(repo, "remote_url", return_value=None)
    repo.set_remote("git@host:me/sync.git")
    mock_run.assert_called_with(["remote", "add", "origin", "git@host:me/sync.git"])

    mocker.patch.object(repo, "remote_url", return_value="old")
    repo.set_remote("git@host:me/sync.git")
    mock_run.assert_called_with(["remote", "set-url", "origin", "git@host:me/sync.git"])


def test_status_porcelain_splits_lines(mocker: MagicMock, tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    repo = GitRepo(tmp_path)
    mock_run = mocker.patch.object(repo, "_run", return_value=" M a\n?? b")

    assert repo.status_porcelain("projects/x") == [" M a", "?? b"]
    mock_run.assert_called_with(["status", "--porcelain", "--", "projects/x"])
