"""Link reconciliation between project roots and their sync repository slots.

claude-sync uses a single link topology for every project and every file:
the real file stays at `<project root>/<relative path>` and the project slot
inside the sync repository holds a symlink whose target is that absolute
source path. Git records symlinks as link objects, so the sync repository
versions the link target rather than file contents.

Nothing in this module prints. Progress goes to the `claude-sync` logger and
drift is returned to the caller as `LinkAnomaly` values.
"""

import enum
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .constants import APP_NAME
from .errors import LinkBatchError, LinkOperationFailed
from .paths import to_posix
from .registry import TrackedProject
from .scanner import FileRecord

logger = logging.getLogger(APP_NAME)


class LinkTopology(enum.Enum):
    """Which side of a tracked file holds the real content."""

    LINK_IN_REPOSITORY = "link-in-repository"


LINK_TOPOLOGY = LinkTopology.LINK_IN_REPOSITORY
"""LinkTopology: The topology every project is reconciled with."""


class LinkState(enum.Enum):
    """The observed state of a tracked path's slot entry."""

    MISSING = "missing"
    CORRECT = "correct-link"
    STALE = "stale-link"
    NOT_A_LINK = "not-a-link"
    DANGLING = "dangling"


@dataclass(frozen=True)
class LinkAnomaly:
    """Drift that reconciliation refuses to repair automatically.

    Attributes:
        relative_path (str): The affected tracked path.
        state (LinkState): The state that was observed.
        message (str): A human-readable description.
    """

    relative_path: str
    state: LinkState
    message: str


@dataclass
class ReconcileResult:
    """The change set produced by a reconciliation pass."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    anomalies: list[LinkAnomaly] = field(default_factory=list)
    failures: list[LinkOperationFailed] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        """True if any link was created, removed or rewritten."""
        return bool(self.added or self.removed or self.updated)

    @property
    def is_empty(self) -> bool:
        return not self.changed and not self.anomalies and not self.failures


def verify_link(link_path: str | Path, expected_target: str | Path) -> bool:
    """Checks that `link_path` is a symlink whose stored target is exactly `expected_target`.

    The comparison is on the raw link text; nothing is resolved or
    canonicalized, so callers must pass normalized absolute targets.
    """
    path = Path(link_path)
    if not path.is_symlink():
        return False
    return os.readlink(path) == str(expected_target)


def link_state(link_path: str | Path, expected_target: str | Path) -> LinkState:
    """Classifies the entry at `link_path` against the target it should point to.

    Args:
        link_path (str | Path): Where the link is expected.
        expected_target (str | Path): The absolute target it should store.

    Returns:
        LinkState: MISSING when nothing is there, NOT_A_LINK for a real file or
                   directory, STALE for a link to another target, DANGLING for
                   a correct link whose target no longer exists, else CORRECT.
    """
    path = Path(link_path)
    if path.is_symlink():
        if os.readlink(path) != str(expected_target):
            return LinkState.STALE
        if not os.path.exists(expected_target):
            return LinkState.DANGLING
        return LinkState.CORRECT
    if path.exists():
        return LinkState.NOT_A_LINK
    return LinkState.MISSING


def list_links(project_slot: str | Path) -> dict[str, Path]:
    """Returns every symlink below a project slot, keyed by POSIX relative path."""
    slot = Path(project_slot)
    links: dict[str, Path] = {}
    if not slot.is_dir():
        return links

    for dirpath, dirnames, filenames in os.walk(slot):
        current = Path(dirpath)
        for name in [*dirnames, *filenames]:
            entry = current / name
            if entry.is_symlink():
                links[entry.relative_to(slot).as_posix()] = entry
        # os.walk lists symlinked directories in dirnames but does not follow them.
        dirnames[:] = [d for d in dirnames if not (current / d).is_symlink()]

    return dict(sorted(links.items()))


class LinkManager:
    """Creates, reconciles and removes the links of tracked projects."""

    topology = LINK_TOPOLOGY

    def _place_link(self, relative_path: str, target: Path, link_path: Path) -> None:
        """Points `link_path` at `target`, replacing an existing link but never a real file.

        Raises:
            LinkOperationFailed: If the destination is occupied by a non-link
                                 entry or the filesystem refuses the operation.
        """
        try:
            link_path.parent.mkdir(parents=True, exist_ok=True)
            if link_path.is_symlink():
                link_path.unlink()
            elif link_path.exists():
                raise LinkOperationFailed(
                    relative_path,
                    f"destination {link_path} exists and is not a link",
                )
            os.symlink(target, link_path)
        except OSError as e:
            raise LinkOperationFailed(relative_path, str(e)) from e

    def create_links(
        self,
        files: Iterable[FileRecord],
        project_slot: str | Path,
        *,
        continue_on_error: bool = False,
    ) -> list[str]:
        """Links each discovered file into the project slot.

        Args:
            files (Iterable[FileRecord]): The files to link; each record's
                                          absolute path becomes the link target.
            project_slot (str | Path): The project's directory in the sync repository.
            continue_on_error (bool, optional): Keep going after a per-file
                                                failure and raise a
                                                `LinkBatchError` at the end.
                                                Defaults to False.

        Returns:
            list[str]: The relative paths that were linked.

        Raises:
            LinkOperationFailed: On the first failure when `continue_on_error` is False.
            LinkBatchError: After the batch when `continue_on_error` is True
                            and at least one file failed.
        """
        slot = Path(project_slot)
        created: list[str] = []
        failures: list[LinkOperationFailed] = []

        for record in files:
            rel = to_posix(record.relative_path)
            try:
                self._place_link(rel, Path(record.absolute_path), slot / rel)
            except LinkOperationFailed as e:
                if not continue_on_error:
                    raise
                logger.warning(f"Failed to link {rel}: {e.cause}")
                failures.append(e)
                continue
            created.append(rel)
            logger.debug(f"Created link: {rel}")

        if failures:
            raise LinkBatchError(created, failures)
        return created

    def reconcile(
        self, project: TrackedProject, project_slot: str | Path
    ) -> ReconcileResult:
        """Brings a project slot in line with the project's tracked files.

        Orphaned links are deleted, missing links are created when their source
        exists, and links to the wrong target are rewritten. Real files in a
        slot, dangling links and tracked files whose source is gone are left in
        place and reported as anomalies.

        Args:
            project (TrackedProject): The declared state.
            project_slot (str | Path): The project's directory in the sync repository.

        Returns:
            ReconcileResult: What changed, plus any anomalies. A second call
                             with no intervening filesystem change returns an
                             empty change set.
        """
        slot = Path(project_slot)
        root = Path(project.root_path)
        tracked = set(project.tracked_files)
        result = ReconcileResult()

        for rel, link_path in list_links(slot).items():
            if rel in tracked:
                continue
            try:
                link_path.unlink()
            except OSError as e:
                result.failures.append(LinkOperationFailed(rel, str(e)))
                continue
            result.removed.append(rel)
            logger.debug(f"Removed orphaned link: {rel}")
            self._prune_empty_dirs(link_path.parent, slot)

        for rel in sorted(tracked):
            link_path = slot / rel
            source = root / rel
            state = link_state(link_path, source)

            if state is LinkState.MISSING:
                if not source.exists():
                    result.anomalies.append(
                        LinkAnomaly(rel, state, f"source file {source} does not exist")
                    )
                    continue
                try:
                    self._place_link(rel, source, link_path)
                except LinkOperationFailed as e:
                    result.failures.append(e)
                    continue
                result.added.append(rel)
                logger.debug(f"Added link: {rel}")
            elif state is LinkState.STALE:
                try:
                    self._place_link(rel, source, link_path)
                except LinkOperationFailed as e:
                    result.failures.append(e)
                    continue
                result.updated.append(rel)
                logger.debug(f"Updated link: {rel}")
            elif state is LinkState.NOT_A_LINK:
                result.anomalies.append(
                    LinkAnomaly(
                        rel, state, f"{link_path} is a real file, expected a link"
                    )
                )
            elif state is LinkState.DANGLING:
                result.anomalies.append(
                    LinkAnomaly(rel, state, f"link target {source} no longer exists")
                )

        for anomaly in result.anomalies:
            logger.warning(
                f"{project.name}: {anomaly.relative_path}: {anomaly.message}"
            )
        for failure in result.failures:
            logger.error(f"{project.name}: {failure.message}")

        return result

    def remove_links(
        self,
        project_slot: str | Path,
        project: TrackedProject,
        files: Iterable[str] | None = None,
    ) -> list[str]:
        """Removes tracked links from a project slot and prunes emptied directories.

        Only symlinks are deleted; a real file found at a tracked slot is left
        alone and logged. Directories are pruned upward from each removed link
        while they are completely empty, stopping at the project slot itself.

        Args:
            project_slot (str | Path): The project's directory in the sync repository.
            project (TrackedProject): The project whose links are removed.
            files (Iterable[str] | None, optional): A subset of tracked paths to
                                                    remove. Defaults to all.

        Returns:
            list[str]: The relative paths whose links were removed.
        """
        slot = Path(project_slot)
        targets = project.tracked_files if files is None else files
        removed: list[str] = []

        for rel in sorted({to_posix(f) for f in targets}):
            link_path = slot / rel
            if not link_path.is_symlink():
                if link_path.exists():
                    logger.warning(f"Not removing {rel}: it is not a link")
                continue
            try:
                link_path.unlink()
            except OSError as e:
                raise LinkOperationFailed(rel, str(e)) from e
            removed.append(rel)
            logger.debug(f"Removed link: {rel}")
            self._prune_empty_dirs(link_path.parent, slot)

        return removed

    @staticmethod
    def _prune_empty_dirs(start: Path, slot: Path) -> None:
        """Removes `start` and its ancestors while empty, up to and including `slot`."""
        current = start
        while current == slot or slot in current.parents:
            try:
                if any(current.iterdir()):
                    return
                current.rmdir()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.debug(f"Could not prune {current}: {e}")
                return
            logger.debug(f"Pruned empty directory: {current}")
            if current == slot:
                return
            current = current.parent
