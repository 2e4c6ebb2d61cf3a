import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME
from .errors import NotAVersionControlRoot
from .git_wrapper import GitRepo, extract_repo_name, git_root
from .paths import find_upward, normalize_path, sanitize_name
from .registry import ProjectRegistry, TrackedProject

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class GitInfo:
    """What claude-sync needs to know about a project's repository.

    Attributes:
        root (Path): The repository's top-level directory.
        remote (str | None): The 'origin' URL, if configured.
        branch (str): The currently checked-out branch.
    """

    root: Path
    remote: str | None
    branch: str


class ProjectDetector:
    """Locates the git repository around a directory and matches it to a registered project."""

    def detect_git_root(self, start: str | Path) -> Path | None:
        """Returns the nearest enclosing git root, asking git first and then walking upward."""
        root = git_root(start)
        if root is not None:
            return normalize_path(root)
        return find_upward(start, ".git")

    def git_info(self, start: str | Path) -> GitInfo:
        """Collects the root, remote and branch of the repository containing `start`.

        The remote and branch lookups are independent reads and run concurrently.

        Raises:
            NotAVersionControlRoot: If `start` is not inside a git repository.
        """
        path = normalize_path(start)
        root = self.detect_git_root(path) if path.exists() else None
        if root is None:
            raise NotAVersionControlRoot(str(path))

        repo = GitRepo(root)
        with ThreadPoolExecutor(max_workers=2) as pool:
            remote = pool.submit(repo.remote_url)
            branch = pool.submit(repo.current_branch)
            return GitInfo(root=root, remote=remote.result(), branch=branch.result())

    def suggested_name(self, info: GitInfo) -> str:
        """Derives a sanitized project name from the remote URL or directory name."""
        return sanitize_name(extract_repo_name(info.remote, info.root)) or "unnamed"

    def find_current_project(
        self, registry: ProjectRegistry, start: str | Path
    ) -> TrackedProject | None:
        """Returns the registered project whose root is the git root around `start`.

        Absence is an ordinary outcome: outside a repository, or in one that is
        not registered, this returns None.
        """
        path = normalize_path(start)
        root = self.detect_git_root(path) if path.exists() else None
        if root is None:
            logger.debug(f"No git repository around {path}")
            return None
        project = registry.find_by_root(root)
        if project is None:
            logger.debug(f"{root} is not a registered project")
        return project
