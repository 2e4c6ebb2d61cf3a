import logging
import os
import shutil
import subprocess
from pathlib import Path

from .config import Config, sync_config_path, write_sync_config
from .constants import APP_NAME, DEFAULT_SYNC_REPO, PROJECTS_DIR, SYNC_GITIGNORE
from .errors import RepositoryStateError
from .git_wrapper import GitRepo, run_git
from .paths import normalize_path

logger = logging.getLogger(APP_NAME)


class SyncRepository:
    """The centralized git repository holding one slot per tracked project.

    Layout:
        config/claude-sync.toml   repository configuration
        config/projects.yaml      project registry
        projects/<name>/...       project slots holding the links

    Attributes:
        path (Path): The repository root.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = normalize_path(path or DEFAULT_SYNC_REPO)

    @property
    def projects_path(self) -> Path:
        return self.path / PROJECTS_DIR

    def exists(self) -> bool:
        """Returns True if the directory exists and is a git repository."""
        return self.path.is_dir() and (self.path / ".git").exists()

    def repo(self, config: Config | None = None) -> GitRepo:
        """Returns a `GitRepo` for the sync repository.

        Raises:
            RepositoryStateError: If the repository has not been initialized.
        """
        if not self.exists():
            raise RepositoryStateError(
                f"{self.path} is not initialized",
                hint="Run 'claude-sync init' first.",
            )
        timeout = config.git.timeout if config else None
        return GitRepo(self.path, timeout=timeout)

    def initialize(self, config: Config | None = None) -> None:
        """Creates the sync repository if needed and makes sure its config exists.

        Initialization is all-or-nothing from the caller's point of view: any
        failure is raised as a `RepositoryStateError` and nothing else should
        proceed.

        Args:
            config (Config | None, optional): Settings for the initial branch,
                                              remote and committer identity.

        Raises:
            RepositoryStateError: If the directory or git repository cannot be created.
        """
        config = config or Config.load()
        try:
            self.path.mkdir(parents=True, exist_ok=True)

            if not self.exists():
                logger.info(f"Initializing sync repository at {self.path}")
                res = run_git(
                    ["init", f"--initial-branch={config.core.default_branch}"],
                    cwd=self.path,
                )
                if not res.success:
                    raise RepositoryStateError(f"git init failed: {res.stderr.strip()}")

                repo = GitRepo(self.path, timeout=config.git.timeout)
                if config.git.user_name:
                    repo.config_set("user.name", config.git.user_name)
                if config.git.user_email:
                    repo.config_set("user.email", config.git.user_email)

                (self.path / ".gitignore").write_text("\n".join(SYNC_GITIGNORE) + "\n")
                self.projects_path.mkdir(parents=True, exist_ok=True)
                (self.projects_path / ".gitkeep").touch()
                write_sync_config(self.path, config)

                if config.core.remote_url:
                    repo.set_remote(config.core.remote_url)

                repo.add(["."])
                repo.commit(
                    self.commit_message(
                        "initialize claude-sync repository", config, kind="chore"
                    )
                )

            if not sync_config_path(self.path).exists():
                write_sync_config(self.path, config)
        except RepositoryStateError:
            raise
        except (OSError, RuntimeError, subprocess.SubprocessError) as e:
            raise RepositoryStateError(
                f"Failed to initialize sync repository: {e}"
            ) from e

    @staticmethod
    def commit_message(summary: str, config: Config, kind: str = "feat") -> str:
        """Formats a commit message in the configured style."""
        if config.core.commit_style == "conventional":
            return f"{kind}: {summary}"
        return summary[:1].upper() + summary[1:]

    def project_slot(self, name: str) -> Path:
        """Returns the slot directory for a project (it may not exist yet)."""
        return self.projects_path / name

    def relative_slot(self, name: str) -> str:
        """Returns the slot path relative to the repository root, POSIX style."""
        return f"{PROJECTS_DIR}/{name}"

    def ensure_project_slot(self, name: str) -> Path:
        slot = self.project_slot(name)
        slot.mkdir(parents=True, exist_ok=True)
        return slot

    def remove_project_slot(self, name: str) -> list[str]:
        """Deletes a project's slot unless it still holds real files.

        Links and empty directories are disposable; regular files are not, so a
        slot containing any is left untouched.

        Returns:
            list[str]: Relative paths of the real files that kept the slot
                       alive; empty if the slot was deleted or absent.
        """
        slot = self.project_slot(name)
        if slot.is_symlink():
            slot.unlink()
            return []
        if not slot.exists():
            return []

        leftovers = sorted(
            p.relative_to(slot).as_posix()
            for p in slot.rglob("*")
            if p.is_file() and not p.is_symlink()
        )
        if leftovers:
            logger.warning(
                f"Keeping slot {slot}: {len(leftovers)} untracked file(s) remain"
            )
            return leftovers

        shutil.rmtree(slot)
        logger.debug(f"Removed project slot: {name}")
        return []

    def stage(self, paths: list[str], config: Config | None = None) -> None:
        """Stages paths (relative to the repository root), including deletions.

        Paths that no longer exist on disk are dropped from the index instead,
        since `git add` rejects a pathspec that matches nothing.
        """
        if not paths:
            return
        repo = self.repo(config)
        present = [p for p in paths if os.path.lexists(self.path / p)]
        gone = [p for p in paths if p not in present]
        repo.add(present)
        repo.remove_cached(gone)
        logger.debug(f"Staged {len(paths)} path(s)")

    def has_changes(self, config: Config | None = None) -> bool:
        return bool(self.repo(config).status_porcelain())

    def commit(self, message: str, config: Config | None = None) -> bool:
        """Commits everything staged.

        Returns:
            bool: False if there was nothing to commit.
        """
        repo = self.repo(config)
        if not repo.staged_paths():
            logger.info("No changes to commit")
            return False
        repo.commit(message)
        logger.info(f"Committed: {message}")
        return True

    def current_branch(self) -> str:
        return self.repo().current_branch()

    def remote_url(self) -> str | None:
        return self.repo().remote_url()
