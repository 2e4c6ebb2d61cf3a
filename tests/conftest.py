"""Shared fixtures for the claude-sync test suite."""

import logging
import subprocess
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from claude_sync.config import Config
from claude_sync.constants import APP_NAME


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, mocker: MagicMock) -> Iterator[None]:
    """Keeps every test away from the user's global config and log file."""
    Config._global_cache = None
    mocker.patch("claude_sync.config.CONFIG_FILE", tmp_path / "no-global.toml")
    mocker.patch("claude_sync.cli.CONFIG_FILE", tmp_path / "global" / "config.toml")
    mocker.patch("claude_sync.cli.LOG_FILE", tmp_path / "state" / "claude-sync.log")
    yield
    Config._global_cache = None
    app_logger = logging.getLogger(APP_NAME)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()
    app_logger.setLevel(logging.NOTSET)


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Gives git a fixed identity and an empty global config."""
    gitconfig = tmp_path / "gitconfig"
    gitconfig.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")


@pytest.fixture
def project_repo(tmp_path: Path, git_env: None) -> Path:
    """A real git repository with a few Claude files and some noise."""
    root = tmp_path / "my-project"
    root.mkdir()
    subprocess.run(
        ["git", "init", "-q", "--initial-branch=main"], cwd=root, check=True
    )
    (root / "CLAUDE.local.md").write_text("# local notes\n")
    (root / ".claude" / "commands").mkdir(parents=True)
    (root / ".claude" / "commands" / "review.md").write_text("review\n")
    (root / ".claude" / "settings.local.json").write_text("{}\n")
    (root / "node_modules" / ".claude" / "commands").mkdir(parents=True)
    (root / "node_modules" / ".claude" / "commands" / "x.md").write_text("x\n")
    (root / "README.md").write_text("readme\n")
    return root


@pytest.fixture
def sync_path(tmp_path: Path) -> Path:
    """Location for a sync repository that does not exist yet."""
    return tmp_path / "sync"
