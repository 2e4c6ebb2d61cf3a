import contextlib
import datetime
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .constants import APP_NAME, REGISTRY_NAME, SYNC_CONFIG_DIR
from .errors import ConfigurationError, ProjectAlreadyExists, ProjectNotFound
from .paths import normalize_path, to_posix

logger = logging.getLogger(APP_NAME)


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _parse_timestamp(value: Any, field_name: str) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value if value.tzinfo else value.replace(tzinfo=datetime.UTC)
    try:
        parsed = datetime.datetime.fromisoformat(str(value))
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid timestamp for {field_name}: {value!r}"
        ) from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=datetime.UTC)


@dataclass
class ProjectMetadata:
    """Bookkeeping timestamps for a tracked project.

    Attributes:
        added_at (datetime.datetime): When the project was registered.
        last_sync (datetime.datetime): When links were last reconciled.
        last_modified (datetime.datetime): When `tracked_files` last changed.
    """

    added_at: datetime.datetime = field(default_factory=_now)
    last_sync: datetime.datetime = field(default_factory=_now)
    last_modified: datetime.datetime = field(default_factory=_now)


@dataclass
class TrackedProject:
    """A project registered with claude-sync.

    Attributes:
        name (str): The sanitized, unique project identifier.
        root_path (Path): The absolute root of the original project.
        branch (str): The branch checked out at registration (informational).
        remote (str | None): The upstream URL (informational).
        tracked_files (set[str]): POSIX paths relative to `root_path`.
        metadata (ProjectMetadata): Bookkeeping timestamps.
    """

    name: str
    root_path: Path
    branch: str = "main"
    remote: str | None = None
    tracked_files: set[str] = field(default_factory=set)
    metadata: ProjectMetadata = field(default_factory=ProjectMetadata)

    def track(self, relative_paths: list[str]) -> list[str]:
        """Adds paths to the tracked set and returns the ones that were new."""
        candidates = dict.fromkeys(map(to_posix, relative_paths))
        new = [p for p in candidates if p not in self.tracked_files]
        if new:
            self.tracked_files.update(new)
            self.metadata.last_modified = _now()
        return new

    def untrack(self, relative_paths: list[str]) -> list[str]:
        """Removes paths from the tracked set and returns the ones that were tracked."""
        candidates = dict.fromkeys(map(to_posix, relative_paths))
        gone = [p for p in candidates if p in self.tracked_files]
        if gone:
            self.tracked_files.difference_update(gone)
            self.metadata.last_modified = _now()
        return gone

    def mark_synced(self) -> None:
        self.metadata.last_sync = _now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": str(self.root_path),
            "gitRemote": self.remote,
            "branch": self.branch,
            "trackedFiles": sorted(self.tracked_files),
            "metadata": {
                "addedAt": self.metadata.added_at.isoformat(),
                "lastSync": self.metadata.last_sync.isoformat(),
                "lastModified": self.metadata.last_modified.isoformat(),
            },
        }

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "TrackedProject":
        """Builds a project from its registry record.

        Raises:
            ConfigurationError: If a required field is missing or malformed.
        """
        if not isinstance(data, dict):
            raise ConfigurationError(f"Project '{name}' is not a mapping")
        if not data.get("path"):
            raise ConfigurationError(f"Project '{name}' has no path")

        tracked = data.get("trackedFiles") or []
        if not isinstance(tracked, list):
            raise ConfigurationError(f"Project '{name}' trackedFiles must be a list")

        meta = data.get("metadata") or {}
        now = _now().isoformat()
        return cls(
            name=data.get("name") or name,
            root_path=Path(data["path"]),
            branch=data.get("branch") or "main",
            remote=data.get("gitRemote"),
            tracked_files={to_posix(p) for p in tracked},
            metadata=ProjectMetadata(
                added_at=_parse_timestamp(meta.get("addedAt", now), "addedAt"),
                last_sync=_parse_timestamp(meta.get("lastSync", now), "lastSync"),
                last_modified=_parse_timestamp(
                    meta.get("lastModified", now), "lastModified"
                ),
            ),
        )


class ProjectRegistry:
    """The keyed store of tracked projects, persisted as YAML in the sync repository.

    The registry is the only writer of project records. Each mutating call
    loads the current file, applies the change and writes it back atomically.

    Attributes:
        path (Path): The registry file (`<sync repo>/config/projects.yaml`).
    """

    def __init__(self, sync_repo_path: str | Path):
        self.path = Path(sync_repo_path) / SYNC_CONFIG_DIR / REGISTRY_NAME

    def load(self) -> dict[str, TrackedProject]:
        """Reads all project records.

        Returns:
            dict[str, TrackedProject]: Projects keyed by name; empty if the
                                       registry file does not exist yet.

        Raises:
            ConfigurationError: If the file is not valid YAML or a record is malformed.
        """
        if not self.path.exists():
            return {}
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse {self.path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read {self.path}: {e}") from e

        records = data.get("projects") if isinstance(data, dict) else None
        if records is None:
            return {}
        if not isinstance(records, dict):
            raise ConfigurationError(f"'projects' in {self.path} must be a mapping")

        return {
            name: TrackedProject.from_dict(name, record)
            for name, record in records.items()
        }

    def save(self, projects: dict[str, TrackedProject]) -> None:
        """Writes all project records, replacing the file atomically."""
        payload = {
            "projects": {name: projects[name].to_dict() for name in sorted(projects)}
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.path.with_suffix(".tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                yaml.safe_dump(payload, f, sort_keys=False, default_flow_style=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_file, self.path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp_file.unlink()
            raise ConfigurationError(f"Failed to save {self.path}: {e}") from e

    def names(self) -> list[str]:
        return sorted(self.load())

    def exists(self, name: str) -> bool:
        return name in self.load()

    def get(self, name: str) -> TrackedProject | None:
        return self.load().get(name)

    def require(self, name: str) -> TrackedProject:
        """Returns the named project or raises `ProjectNotFound`."""
        project = self.get(name)
        if project is None:
            raise ProjectNotFound(name)
        return project

    def find_by_root(self, root_path: str | Path) -> TrackedProject | None:
        """Returns the project registered for exactly this root path, if any."""
        root = normalize_path(root_path)
        for project in self.load().values():
            if normalize_path(project.root_path) == root:
                return project
        return None

    def add(self, project: TrackedProject) -> None:
        """Registers a new project.

        Raises:
            ProjectAlreadyExists: If the name is taken.
        """
        projects = self.load()
        if project.name in projects:
            raise ProjectAlreadyExists(project.name)
        projects[project.name] = project
        self.save(projects)
        logger.debug(f"Registered project {project.name} at {project.root_path}")

    def update(self, project: TrackedProject) -> None:
        """Replaces the stored record of an existing project.

        Raises:
            ProjectNotFound: If no project has that name.
        """
        projects = self.load()
        if project.name not in projects:
            raise ProjectNotFound(project.name)
        projects[project.name] = project
        self.save(projects)

    def remove(self, name: str) -> None:
        """Deletes a project record.

        Raises:
            ProjectNotFound: If no project has that name.
        """
        projects = self.load()
        if projects.pop(name, None) is None:
            raise ProjectNotFound(name)
        self.save(projects)
        logger.debug(f"Unregistered project {name}")
