import os
from pathlib import Path

"""Global constants and path definitions for claude-sync.

This module defines the filesystem layout (adhering to XDG standards where applicable),
the default tracking patterns, and the git command sets used by the forwarder.
"""

# --- Identity ---
APP_NAME = "claude-sync"
"""str: The human-readable application name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "claude-sync"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "claude-sync.log"
"""Path: The file path for the rotating command log."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/claude-sync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

DEFAULT_SYNC_REPO: Path = Path.home() / ".claude-sync"
"""Path: The default location of the centralized sync repository."""

# --- Sync Repository Layout ---
PROJECTS_DIR = "projects"
"""str: Directory inside the sync repository holding one slot per project."""

SYNC_CONFIG_DIR = "config"
"""str: Directory inside the sync repository holding configuration and registry."""

SYNC_CONFIG_NAME = "claude-sync.toml"
"""str: File name of the sync repository configuration."""

REGISTRY_NAME = "projects.yaml"
"""str: File name of the project registry."""

CONFIG_VERSION = 1
"""int: The configuration schema version written at initialization."""

SYNC_GITIGNORE = [
    "# claude-sync generated",
    ".DS_Store",
    "*.log",
    "*.tmp",
]
"""list[str]: Lines written to the sync repository's .gitignore."""

# --- Tracking Defaults ---
DEFAULT_FILE_PATTERNS = [
    "CLAUDE.local.md",
    ".claude/settings.local.json",
    ".claude/commands/*.md",
    ".claude/agents/*.md",
]
"""list[str]: Patterns selecting the files a project tracks."""

DEFAULT_EXCLUDE_PATTERNS = [
    "node_modules",
    ".git",
    "dist",
    "build",
    "*.log",
]
"""list[str]: Patterns pruned from discovery, matched per path segment."""

# --- Git Forwarding ---
REPO_WIDE_COMMANDS = frozenset(
    {
        "commit",
        "push",
        "pull",
        "fetch",
        "branch",
        "checkout",
        "merge",
        "rebase",
        "reset",
        "stash",
        "tag",
        "add",
    }
)
"""frozenset[str]: Commands forwarded verbatim; they act on the whole sync repository."""

PROJECT_SCOPED_COMMANDS = frozenset(
    {"status", "diff", "log", "show", "blame", "ls-files"}
)
"""frozenset[str]: Read commands narrowed to the current project's slot."""

DEFAULT_GIT_COMMAND = "status"
"""str: The command run when claude-sync is forwarded with no arguments."""
