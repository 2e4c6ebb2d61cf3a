"""claude-sync: Track per-project Claude files in one centralized git repository.

This package provides the command-line interface, the link reconciliation
engine that mirrors each project's tracked files into the sync repository as
symbolic links, and the forwarder that runs ordinary git commands against the
sync repository scoped to the current project.
"""

from . import (
    cli,
    config,
    constants,
    detector,
    errors,
    forwarder,
    git_wrapper,
    links,
    ops,
    paths,
    patterns,
    registry,
    scanner,
    sync_repo,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "detector",
    "errors",
    "forwarder",
    "git_wrapper",
    "links",
    "ops",
    "paths",
    "patterns",
    "registry",
    "scanner",
    "sync_repo",
]
