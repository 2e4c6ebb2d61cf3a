import datetime
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, DEFAULT_EXCLUDE_PATTERNS, DEFAULT_FILE_PATTERNS
from .paths import to_posix
from .patterns import is_literal, is_excluded, matches, matches_any

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class FileRecord:
    """A tracking candidate found on disk.

    Attributes:
        absolute_path (Path): The absolute location of the file.
        relative_path (str): The POSIX path relative to the scan root.
        size (int): The file size in bytes.
        modified_at (datetime.datetime): The last modification time (UTC).
    """

    absolute_path: Path
    relative_path: str
    size: int
    modified_at: datetime.datetime


def _record(root: Path, relative_path: str) -> FileRecord | None:
    full_path = root / relative_path
    if full_path.is_symlink() or not full_path.is_file():
        return None
    try:
        st = full_path.stat()
    except OSError as e:
        logger.debug(f"Skipping unreadable file {full_path}: {e}")
        return None
    return FileRecord(
        absolute_path=full_path,
        relative_path=relative_path,
        size=st.st_size,
        modified_at=datetime.datetime.fromtimestamp(st.st_mtime, datetime.UTC),
    )


def scan(
    root_path: str | Path,
    include_patterns: Iterable[str],
    exclude_patterns: Iterable[str] = (),
) -> list[FileRecord]:
    """Walks a project tree and returns the files selected by the patterns.

    Exact-literal patterns are looked up directly; globs are resolved by
    walking the tree. Excluded directories are pruned before descending, and
    symlinks are never followed or reported.

    Args:
        root_path (str | Path): The project root to scan.
        include_patterns (Iterable[str]): Literal paths or globs to include.
        exclude_patterns (Iterable[str]): Globs matched per path segment.

    Returns:
        list[FileRecord]: Duplicate-free records sorted by relative path.
    """
    root = Path(root_path)
    includes = list(include_patterns)
    excludes = list(exclude_patterns)
    found: dict[str, FileRecord] = {}

    for pattern in includes:
        if not is_literal(pattern):
            continue
        rel = to_posix(pattern)
        if is_excluded(rel, excludes):
            continue
        if record := _record(root, rel):
            found[rel] = record

    if any(not is_literal(p) for p in includes):
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            rel_dir = current.relative_to(root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir

            # Prune in place so os.walk never descends into excluded trees.
            dirnames[:] = sorted(
                d
                for d in dirnames
                if not is_excluded(f"{rel_dir}/{d}" if rel_dir else d, excludes)
            )

            for filename in filenames:
                rel = f"{rel_dir}/{filename}" if rel_dir else filename
                if rel in found or not matches(rel, includes, excludes):
                    continue
                if record := _record(root, rel):
                    found[rel] = record

    return [found[rel] for rel in sorted(found)]


def scan_single(root_path: str | Path, relative_path: str) -> FileRecord | None:
    """Returns the record for one named file, or None if it is not a regular file."""
    return _record(Path(root_path), to_posix(relative_path))


class FileScanner:
    """Bundles a project's tracking patterns with the discovery functions.

    Attributes:
        file_patterns (list[str]): Include patterns.
        exclude_patterns (list[str]): Exclude patterns.
    """

    def __init__(
        self,
        file_patterns: Iterable[str] | None = None,
        exclude_patterns: Iterable[str] | None = None,
    ):
        self.file_patterns = list(
            DEFAULT_FILE_PATTERNS if file_patterns is None else file_patterns
        )
        self.exclude_patterns = list(
            DEFAULT_EXCLUDE_PATTERNS if exclude_patterns is None else exclude_patterns
        )

    def scan(self, root_path: str | Path) -> list[FileRecord]:
        return scan(root_path, self.file_patterns, self.exclude_patterns)

    def scan_single(
        self, root_path: str | Path, relative_path: str
    ) -> FileRecord | None:
        return scan_single(root_path, relative_path)

    def is_trackable(self, relative_path: str) -> bool:
        """Returns True if the path is selected by the include patterns."""
        return matches_any(relative_path, self.file_patterns)
