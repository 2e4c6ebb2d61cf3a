import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    CONFIG_VERSION,
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_FILE_PATTERNS,
    SYNC_CONFIG_DIR,
    SYNC_CONFIG_NAME,
)
from .errors import ConfigurationError
from .links import LINK_TOPOLOGY, LinkTopology

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '5MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def sync_config_path(sync_repo_path: Path) -> Path:
    """Returns the location of a sync repository's configuration file."""
    return sync_repo_path / SYNC_CONFIG_DIR / SYNC_CONFIG_NAME


@dataclass
class CoreConfig:
    """Core sync repository settings.

    Attributes:
        version (int): Configuration schema version.
        default_branch (str): Branch created when the sync repository is initialized.
        auto_commit (bool): Commit automatically after `init`.
        commit_style (str): 'conventional' or 'simple' commit messages.
        remote_url (str | None): Remote configured as 'origin' at initialization.
        topology (str): The link topology; fixed at initialization.
    """

    version: int = CONFIG_VERSION
    default_branch: str = "main"
    auto_commit: bool = True
    commit_style: str = "conventional"
    remote_url: str | None = None
    topology: str = LINK_TOPOLOGY.value


@dataclass
class FilesConfig:
    """File discovery settings.

    Attributes:
        patterns (list[str]): Include patterns (appended to defaults).
        exclude (list[str]): Exclude patterns (appended to defaults).
    """

    patterns: list[str] = field(default_factory=lambda: list(DEFAULT_FILE_PATTERNS))
    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for the log file before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class GitConfig:
    """Git settings applied to the sync repository.

    Attributes:
        user_name (str | None): Local `user.name` for sync repository commits.
        user_email (str | None): Local `user.email` for sync repository commits.
        timeout (float | None): Seconds allowed per internal git call.
    """

    user_name: str | None = None
    user_email: str | None = None
    timeout: float | None = None


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        files (FilesConfig): Discovery patterns.
        limits (LimitsConfig): Resource limits.
        git (GitConfig): Git settings for the sync repository.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    files: FilesConfig = field(default_factory=FilesConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    git: GitConfig = field(default_factory=GitConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, sync_repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and sync repository sources.

        Args:
            sync_repo_path (Path | None): The sync repository whose
                                          `config/claude-sync.toml` is layered on top.

        Returns:
            Config: The fully merged configuration object.

        Raises:
            ConfigurationError: If the sync repository configuration cannot be
                                parsed, lacks a valid version, or names an
                                unsupported topology.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                try:
                    instance._merge_from_file(CONFIG_FILE)
                except ConfigurationError as e:
                    logger.error(f"{e.message}. Using defaults.")
            cls._global_cache = instance

        # Start with a copy of the cached global config
        base = cls._global_cache
        instance = cls(
            core=replace(base.core),
            files=replace(
                base.files,
                patterns=list(base.files.patterns),
                exclude=list(base.files.exclude),
            ),
            limits=replace(base.limits),
            git=replace(base.git),
        )

        # 2. Load Sync Repository Config (if applicable)
        if sync_repo_path:
            repo_toml = sync_config_path(Path(sync_repo_path))
            if repo_toml.exists():
                instance._merge_from_file(repo_toml, require_version=True)

        if instance.core.topology not in {t.value for t in LinkTopology}:
            raise ConfigurationError(
                f"Unsupported link topology '{instance.core.topology}'"
            )
        return instance

    def _merge_from_file(self, path: Path, require_version: bool = False) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            require_version (bool): Reject files without an integer `core.version`.

        Raises:
            ConfigurationError: On a syntax error or a missing/invalid version.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Config syntax error in {path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read {path}: {e}") from e

        if require_version:
            version = data.get("core", {}).get("version")
            if not isinstance(version, int) or isinstance(version, bool) or version < 1:
                raise ConfigurationError(f"Invalid or missing core.version in {path}")

        if not data:
            return

        # Merge Logic
        if "core" in data:
            self.core = self._update_dataclass("core", self.core, data["core"])
        if "limits" in data:
            self.limits = self._update_dataclass("limits", self.limits, data["limits"])
        if "git" in data:
            self.git = self._update_dataclass("git", self.git, data["git"])
        if "files" in data:
            # Pattern lists extend the inherited ones instead of replacing them
            files = dict(data["files"])
            new_patterns = files.pop("patterns", [])
            new_excludes = files.pop("exclude", [])
            self.files = self._update_dataclass("files", self.files, files)
            if new_patterns:
                self.files.patterns = list(
                    dict.fromkeys([*self.files.patterns, *new_patterns])
                )
            if new_excludes:
                self.files.exclude = list(
                    dict.fromkeys([*self.files.exclude, *new_excludes])
                )

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k == "commit_style" and v not in ("conventional", "simple"):
                    raise ValueError(f"Invalid commit style '{v}'")
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)


SYNC_CONFIG_TEMPLATE = """\
# claude-sync repository configuration

[core]
version = {version}
default_branch = "{default_branch}"
auto_commit = {auto_commit}
# Options: conventional, simple
commit_style = "{commit_style}"
# Fixed when the repository is created; do not change.
topology = "{topology}"

[files]
# Extra patterns appended to the defaults
# patterns = [".claude/hooks/*.sh"]
# exclude = ["tmp"]
"""


def write_sync_config(sync_repo_path: Path, config: Config) -> Path:
    """Writes the sync repository's configuration file from the template.

    Returns:
        Path: The file that was written.
    """
    path = sync_config_path(sync_repo_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        SYNC_CONFIG_TEMPLATE.format(
            version=config.core.version,
            default_branch=config.core.default_branch,
            auto_commit=str(config.core.auto_commit).lower(),
            commit_style=config.core.commit_style,
            topology=config.core.topology,
        )
    )
    return path
