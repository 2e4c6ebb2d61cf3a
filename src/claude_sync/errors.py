"""Error taxonomy for claude-sync.

Every error raised on purpose derives from `ClaudeSyncError`, which carries a
human-readable message and, where one exists, a `hint` naming the command that
fixes the problem. The CLI prints both and exits with status 1.
"""


class ClaudeSyncError(Exception):
    """Base class for all handled claude-sync failures.

    Attributes:
        message (str): The human-readable cause.
        hint (str | None): A suggested remedial command, if any.
    """

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class NotAVersionControlRoot(ClaudeSyncError):
    """Raised when a git repository is required but the path is not inside one."""

    def __init__(self, path: str):
        super().__init__(
            f"Not a git repository: {path}",
            hint="Run this command from within a git repository.",
        )
        self.path = path


class ProjectNotFound(ClaudeSyncError):
    """Raised when no registered project matches a name or root path."""

    def __init__(self, project: str):
        super().__init__(
            f"Project not found: {project}",
            hint="Run 'claude-sync init' first.",
        )
        self.project = project


class ProjectAlreadyExists(ClaudeSyncError):
    """Raised when registering a project under a name that is already taken."""

    def __init__(self, project: str):
        super().__init__(
            f"Project already exists: {project}",
            hint="Use a different name or run 'claude-sync remove --project' first.",
        )
        self.project = project


class LinkOperationFailed(ClaudeSyncError):
    """Raised when creating, updating or removing a single link fails.

    Attributes:
        relative_path (str): The tracked path whose link could not be handled.
        cause (str): The underlying reason.
    """

    def __init__(self, relative_path: str, cause: str):
        super().__init__(f"Link error at {relative_path}: {cause}")
        self.relative_path = relative_path
        self.cause = cause


class LinkBatchError(ClaudeSyncError):
    """Raised after a bulk link operation in which some files failed.

    Attributes:
        created (list[str]): Relative paths that were linked successfully.
        failures (list[LinkOperationFailed]): One error per failed path.
    """

    def __init__(self, created: list[str], failures: list[LinkOperationFailed]):
        super().__init__(f"{len(failures)} link operation(s) failed")
        self.created = created
        self.failures = failures


class RepositoryStateError(ClaudeSyncError):
    """Raised when the sync repository is missing, broken or cannot be initialized."""

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(f"Sync repository error: {message}", hint=hint)


class ConfigurationError(ClaudeSyncError):
    """Raised when stored configuration or registry data is malformed."""

    def __init__(self, message: str):
        super().__init__(f"Configuration error: {message}")
