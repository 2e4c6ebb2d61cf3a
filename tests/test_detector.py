import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from claude_sync.detector import GitInfo, ProjectDetector
from claude_sync.errors import NotAVersionControlRoot
from claude_sync.paths import normalize_path
from claude_sync.registry import ProjectRegistry, TrackedProject

requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git executable not available"
)


@pytest.mark.parametrize(
    ("remote", "root", "expected"),
    [
        ("git@github.com:me/My.Project.git", "/w/x", "my-project"),
        (None, "/w/Some Dir", "some-dir"),
        (None, "/w/!!!", "unnamed"),
    ],
)
def test_suggested_name(remote: str | None, root: str, expected: str) -> None:
    info = GitInfo(root=Path(root), remote=remote, branch="main")
    assert ProjectDetector().suggested_name(info) == expected


def test_detect_git_root_falls_back_to_upward_search(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies that a missing git binary does not prevent detection."""
    mocker.patch("claude_sync.detector.git_root", return_value=None)
    (tmp_path / ".git").mkdir()
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert ProjectDetector().detect_git_root(nested) == normalize_path(tmp_path)


def test_git_info_outside_repository(tmp_path: Path, mocker: MagicMock) -> None:
    mocker.patch("claude_sync.detector.git_root", return_value=None)
    mocker.patch("claude_sync.detector.find_upward", return_value=None)

    with pytest.raises(NotAVersionControlRoot):
        ProjectDetector().git_info(tmp_path)


def test_find_current_project_is_none_outside_repositories(
    tmp_path: Path, mocker: MagicMock
) -> None:
    mocker.patch("claude_sync.detector.git_root", return_value=None)
    mocker.patch("claude_sync.detector.find_upward", return_value=None)
    registry = ProjectRegistry(tmp_path / "sync")

    assert ProjectDetector().find_current_project(registry, tmp_path) is None


@requires_git
def test_git_info_reads_remote_and_branch(project_repo: Path) -> None:
    subprocess.run(
        ["git", "remote", "add", "origin", "https://example.com/me/Cool_Repo.git"],
        cwd=project_repo,
        check=True,
    )
    subprocess.run(
        ["git", "checkout", "-q", "-b", "feature"], cwd=project_repo, check=True
    )
    nested = project_repo / ".claude" / "commands"

    detector = ProjectDetector()
    info = detector.git_info(nested)

    assert info.root == detector.detect_git_root(project_repo)
    assert info.remote == "https://example.com/me/Cool_Repo.git"
    assert info.branch == "feature"
    assert detector.suggested_name(info) == "cool_repo"


@requires_git
def test_find_current_project_matches_root(project_repo: Path, tmp_path: Path) -> None:
    detector = ProjectDetector()
    registry = ProjectRegistry(tmp_path / "sync")
    root = detector.detect_git_root(project_repo)
    registry.add(TrackedProject(name="demo", root_path=root))

    found = detector.find_current_project(registry, project_repo / ".claude")

    assert found is not None
    assert found.name == "demo"
    assert detector.find_current_project(registry, tmp_path) is None
