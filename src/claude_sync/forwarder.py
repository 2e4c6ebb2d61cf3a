"""Forwarding of git commands to the sync repository.

`classify` is the pure decision: given the user's git arguments and the
current project's slot (if any), it returns the exact argument vector and
working directory to use. `GitForwarder` wires that decision to project
detection and runs git with the user's terminal attached.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .constants import (
    APP_NAME,
    DEFAULT_GIT_COMMAND,
    PROJECT_SCOPED_COMMANDS,
    REPO_WIDE_COMMANDS,
)
from .detector import ProjectDetector
from .git_wrapper import run_git
from .registry import ProjectRegistry
from .sync_repo import SyncRepository

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class CommandPlan:
    """A fully resolved git invocation.

    Attributes:
        args (tuple[str, ...]): Arguments passed after `git`.
        working_directory (Path): Where git runs; always the sync repository root.
    """

    args: tuple[str, ...]
    working_directory: Path


def has_explicit_paths(args: Sequence[str]) -> bool:
    """Returns True if the user already narrowed the command to specific paths.

    Either a literal `--` separator or any positional (non-flag) argument after
    the command name counts.
    """
    if "--" in args:
        return True
    return any(not arg.startswith("-") for arg in args[1:])


def classify(
    command_name: str | None,
    full_args: Sequence[str],
    current_project_slot: str | None = None,
    *,
    repo_root: str | Path,
) -> CommandPlan:
    """Decides how a forwarded git command runs against the sync repository.

    Rules, first match wins:
      1. No command: run `status` (then keep classifying).
      2. Repository-wide commands (commit, push, add, ...): verbatim.
      3. Project-scoped reads (status, diff, log, ...) with a current project
         and no user-supplied paths: append `-- <project slot>`.
      4. Anything else: verbatim.

    Args:
        command_name (str | None): The git subcommand, or None if absent.
        full_args (Sequence[str]): All arguments, starting with the subcommand.
        current_project_slot (str | None, optional): The current project's slot
                                                     relative to the sync
                                                     repository root.
        repo_root (str | Path): The sync repository root.

    Returns:
        CommandPlan: The arguments and working directory to run git with.
    """
    root = Path(repo_root)
    args = list(full_args)

    if not command_name:
        command_name = DEFAULT_GIT_COMMAND
        args = [DEFAULT_GIT_COMMAND]

    if command_name in REPO_WIDE_COMMANDS:
        return CommandPlan(tuple(args), root)

    if (
        command_name in PROJECT_SCOPED_COMMANDS
        and current_project_slot
        and not has_explicit_paths(args)
    ):
        return CommandPlan((*args, "--", current_project_slot), root)

    return CommandPlan(tuple(args), root)


class GitForwarder:
    """Runs git commands in the sync repository on behalf of the current project.

    Attributes:
        sync_repo (SyncRepository): The target repository.
        registry (ProjectRegistry): Used to recognize the current project.
        cwd (Path): The directory the user invoked claude-sync from.
    """

    def __init__(self, sync_repo: SyncRepository, cwd: str | Path | None = None):
        self.sync_repo = sync_repo
        self.registry = ProjectRegistry(sync_repo.path)
        self.detector = ProjectDetector()
        self.cwd = Path(cwd) if cwd else Path.cwd()

    def current_project_slot(self) -> str | None:
        """Returns the current project's slot relative to the sync repository, if known."""
        project = self.detector.find_current_project(self.registry, self.cwd)
        if project is None:
            return None
        return self.sync_repo.relative_slot(project.name)

    def plan(self, args: Sequence[str]) -> CommandPlan:
        command = args[0] if args else None
        slot = self.current_project_slot()
        if command == "add" and slot:
            logger.warning(
                "Use 'claude-sync add' to track files. "
                "'git add' is forwarded to the sync repository as-is."
            )
        plan = classify(command, args, slot, repo_root=self.sync_repo.path)
        logger.debug(
            f"Forwarding: git {' '.join(plan.args)} (cwd={plan.working_directory})"
        )
        return plan

    def forward(self, args: Sequence[str]) -> int:
        """Runs the planned git command with the user's terminal attached.

        Returns:
            int: git's exit status, unchanged.
        """
        plan = self.plan(args)
        result = run_git(list(plan.args), cwd=plan.working_directory, capture=False)
        return result.code

    def ensure_sync_repo(self) -> None:
        if not self.sync_repo.exists():
            self.sync_repo.initialize()
