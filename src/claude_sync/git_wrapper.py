import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME
from .errors import NotAVersionControlRoot

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class CommandOutput:
    """The outcome of one git invocation.

    Attributes:
        code (int): The exit status; 0 means success.
        stdout (str): Captured standard output ('' when not captured).
        stderr (str): Captured standard error ('' when not captured).
    """

    code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.code == 0


def run_git(
    args: list[str],
    cwd: str | Path | None = None,
    capture: bool = True,
    check: bool = False,
    timeout: float | None = None,
) -> CommandOutput:
    """Runs git and reports the result; a non-zero exit is returned, not raised.

    Args:
        args (list[str]): Arguments to pass after `git`.
        cwd (str | Path | None, optional): Working directory. Defaults to the
                                           process's current directory.
        capture (bool, optional): Capture stdout/stderr instead of inheriting
                                  the terminal. Defaults to True.
        check (bool, optional): Raise on a non-zero exit. Defaults to False.
        timeout (float | None, optional): Seconds before the call is abandoned.

    Returns:
        CommandOutput: The exit status and any captured output.

    Raises:
        FileNotFoundError: If the git executable is not installed.
        subprocess.TimeoutExpired: If `timeout` elapses.
        RuntimeError: If `check` is set and git exits non-zero.
    """
    res = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=capture,
        text=True,
        timeout=timeout,
    )
    if check and res.returncode != 0:
        raise RuntimeError(f"Git error: {(res.stderr or '').strip() or res.returncode}")
    if capture:
        return CommandOutput(res.returncode, res.stdout or "", res.stderr or "")
    return CommandOutput(res.returncode)


def git_root(path: str | Path) -> Path | None:
    """Returns the top-level directory of the repository containing `path`, if any."""
    try:
        res = run_git(["rev-parse", "--show-toplevel"], cwd=path)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"rev-parse --show-toplevel failed in {path}: {e}")
        return None
    if not res.success or not res.stdout.strip():
        return None
    return Path(res.stdout.strip())


def extract_repo_name(remote: str | None, project_path: str | Path) -> str:
    """Derives a repository name from its remote URL or, failing that, its directory.

    Examples:
        >>> extract_repo_name("git@github.com:me/dotfiles.git", "/x")
        'dotfiles'
        >>> extract_repo_name(None, "/home/me/work/app")
        'app'
    """
    if remote:
        match = re.search(r"[/:]([^/:]+?)(?:\.git)?/?$", remote.strip())
        if match:
            return match.group(1)
    return Path(project_path).name or "unnamed"


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    Attributes:
        path (Path): The file system path to the repository root.
        timeout (float | None): Seconds allowed per git call; None waits indefinitely.
    """

    def __init__(self, path: Path, timeout: float | None = None):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.
            timeout (float | None, optional): Per-call timeout. Defaults to None.

        Raises:
            NotAVersionControlRoot: If the path does not contain a .git entry.
        """
        self.path = Path(path)
        self.timeout = timeout
        if not (self.path / ".git").exists():
            raise NotAVersionControlRoot(str(self.path))

    def _run(self, args: list[str], capture: bool = True) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional): Whether to capture and return stdout.
                                      Defaults to True.

        Returns:
            str: The stripped stdout of the command if capture is True,
                 otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
                timeout=self.timeout,
            )
            return res.stdout.strip() if capture else ""
        except subprocess.CalledProcessError as e:
            raise RuntimeError(f"Git error: {e.stderr or e}") from e

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The branch name, or 'main' if it cannot be determined.
        """
        try:
            return self._run(["branch", "--show-current"]) or "main"
        except (RuntimeError, OSError, subprocess.SubprocessError) as e:
            logger.debug(f"Could not read current branch of {self.path}: {e}")
            return "main"

    def remote_url(self, name: str = "origin") -> str | None:
        """Returns the URL of a remote, or None if it is not configured."""
        try:
            return self._run(["remote", "get-url", name]) or None
        except (RuntimeError, OSError, subprocess.SubprocessError) as e:
            logger.debug(f"No remote '{name}' in {self.path}: {e}")
            return None

    def set_remote(self, url: str, name: str = "origin") -> None:
        """Adds the remote, or repoints it if it already exists."""
        if self.remote_url(name):
            self._run(["remote", "set-url", name, url])
            logger.info(f"Updated remote {name} to {url}")
        else:
            self._run(["remote", "add", name, url])
            logger.info(f"Added remote {name}: {url}")

    def status_porcelain(self, path: str | None = None) -> list[str]:
        """Returns the porcelain (machine-readable) status of the repository.

        Args:
            path (Optional[str], optional): A specific path to check status for.
                                            Defaults to None.

        Returns:
            list[str]: A list of status lines returned by `git status --porcelain`.
        """
        cmd = ["status", "--porcelain"]
        if path:
            cmd.extend(["--", path])
        output = self._run(cmd)
        return output.splitlines() if output else []

    def add(self, paths: list[str], force: bool = False) -> None:
        """Stages the given paths, including deletions."""
        if not paths:
            return
        cmd = ["add", "--all"]
        if force:
            cmd.append("-f")
        cmd.extend(["--", *paths])
        self._run(cmd)

    def staged_paths(self) -> list[str]:
        """Returns the paths that differ between the index and HEAD."""
        output = self._run(["diff", "--cached", "--name-only"])
        return output.splitlines() if output else []

    def remove_cached(self, paths: list[str]) -> None:
        """Drops paths from the index; paths git does not know are ignored."""
        if paths:
            self._run(["rm", "-r", "-q", "--cached", "--ignore-unmatch", "--", *paths])

    def commit(self, message: str, no_verify: bool = False) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
            no_verify (bool, optional): Whether to bypass pre-commit hooks
                                        (`--no-verify`). Defaults to False.
        """
        cmd = ["commit", "-m", message]
        if no_verify:
            cmd.append("--no-verify")
        self._run(cmd)

    def config_set(self, key: str, value: str) -> None:
        """Sets a repository-local git config value."""
        self._run(["config", key, value])
