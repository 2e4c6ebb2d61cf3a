import os
import re
from pathlib import Path

_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9_-]")
_SEPARATOR_RUNS = re.compile(r"([-_])[-_]*")


def normalize_path(path: str | Path) -> Path:
    """Returns an absolute, lexically normalized path without resolving symlinks."""
    return Path(os.path.normpath(os.path.abspath(os.path.expanduser(str(path)))))


def find_upward(start: str | Path, target: str) -> Path | None:
    """Walks up from `start` and returns the first directory containing `target`.

    Args:
        start (str | Path): The directory to begin searching from.
        target (str): The entry name to look for (e.g. '.git').

    Returns:
        Path | None: The directory that contains `target`, or None if the
                     filesystem root is reached first.
    """
    current = normalize_path(start)
    while True:
        if (current / target).exists():
            return current
        if current.parent == current:
            return None
        current = current.parent


def sanitize_name(name: str) -> str:
    """Reduces a repository name to a safe project identifier.

    Lowercases the name, replaces every character outside `[a-z0-9_-]` with a
    dash, collapses separator runs and strips separators from both ends.

    Examples:
        >>> sanitize_name("My Project!!")
        'my-project'
        >>> sanitize_name("--a--b--")
        'a-b'
    """
    cleaned = _INVALID_NAME_CHARS.sub("-", name.lower())
    cleaned = _SEPARATOR_RUNS.sub(r"\1", cleaned)
    return cleaned.strip("-_")


def to_posix(relative_path: str | Path) -> str:
    """Normalizes a relative path to forward slashes with no leading './'."""
    text = str(relative_path).replace("\\", "/")
    while text.startswith("./"):
        text = text[2:]
    return text
