"""Glob-style inclusion and exclusion over relative paths.

Patterns follow git's wildmatch rules via `pathspec`: `*`, `?` and `[...]`
never match a `/`, `[!...]` negates a class and `**` spans zero or more whole
directories, so `.claude/**/*.md` matches both `.claude/a.md` and
`.claude/x/y/a.md`. Include patterns are anchored at the project root;
exclusions apply at any depth.
"""

from collections.abc import Iterable
from functools import lru_cache

import pathspec

from .paths import to_posix


@lru_cache(maxsize=64)
def compile_spec(
    patterns: tuple[str, ...], anchored: bool = True
) -> pathspec.PathSpec:
    """Builds a `PathSpec` from glob patterns.

    Args:
        patterns (tuple[str, ...]): The glob patterns (e.g. '.claude/commands/*.md').
        anchored (bool, optional): Match from the project root only, so
                                   'CLAUDE.local.md' does not select
                                   'docs/CLAUDE.local.md'. Defaults to True.

    Returns:
        pathspec.PathSpec: The compiled spec.
    """
    lines = []
    for pattern in patterns:
        pattern = to_posix(pattern).strip()
        if anchored:
            pattern = pattern.lstrip("/")
            if pattern:
                # A leading '/' also keeps '!' and '#' literal.
                lines.append("/" + pattern)
        elif pattern and not pattern.startswith(("!", "#")):
            lines.append(pattern)
    return pathspec.PathSpec.from_lines("gitwildmatch", lines)


def is_literal(pattern: str) -> bool:
    return not any(token in pattern for token in ("*", "?", "["))


def matches_any(relative_path: str, patterns: Iterable[str]) -> bool:
    """Returns True if the path equals or glob-matches at least one pattern."""
    path = to_posix(relative_path).strip("/")
    if not path:
        return False
    return compile_spec(tuple(patterns)).match_file(path)


def is_excluded(relative_path: str, exclude_patterns: Iterable[str]) -> bool:
    """Returns True if the full path or any single segment matches an exclusion.

    Matching by segment means an exclusion like 'node_modules' removes that
    directory at any depth.
    """
    path = to_posix(relative_path).strip("/")
    if not path:
        return False
    spec = compile_spec(tuple(exclude_patterns), anchored=False)
    if spec.match_file(path):
        return True
    return any(spec.match_file(seg) for seg in path.split("/") if seg)


def matches(
    relative_path: str,
    include_patterns: Iterable[str],
    exclude_patterns: Iterable[str] = (),
) -> bool:
    """Decides whether a relative path is a tracking candidate.

    Args:
        relative_path (str): The path relative to the project root.
        include_patterns (Iterable[str]): Literal paths or globs to include.
        exclude_patterns (Iterable[str]): Globs matched against the full path
                                          or any path segment.

    Returns:
        bool: True if included by at least one pattern and excluded by none.
    """
    if is_excluded(relative_path, exclude_patterns):
        return False
    return matches_any(relative_path, include_patterns)
