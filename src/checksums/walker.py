"""Bottom-up directory enumeration with path and glob exclusion.

Manifests chain upwards: a directory's digest is the digest of its own
manifest, so every child must be finalized before its parent's manifest is
computed. ``BottomUpDirectories`` yields directories in exactly that order
(every descendant strictly before its ancestors).

Exclusion patterns are matched against the path relative to the root, with
``/`` separators (the root itself is ``""`` and is excluded only by that
exact empty pattern):

- a pattern without glob characters must equal the relative path
  (``dir1/nested1``);
- a pattern with glob characters is matched path-aware: ``**/`` spans zero
  or more directories, ``*`` and ``?`` stay within one path component
  (``**/.ignored``).

An excluded directory is never descended into, so its whole subtree is
dropped with it.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Callable, Iterable, Iterator

logger = logging.getLogger(__name__)

GLOB_CHARS = frozenset("*?[")


def is_glob(pattern: str) -> bool:
    return any(c in GLOB_CHARS for c in pattern)


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a path glob into a compiled regex for ``fullmatch``.

    Examples:
        >>> bool(glob_to_regex("**/.ignored").fullmatch(".ignored"))
        True
        >>> bool(glob_to_regex("**/.ignored").fullmatch("a/b/.ignored"))
        True
        >>> bool(glob_to_regex("dir*").fullmatch("dir1/nested1"))
        False
    """
    parts: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    i += 1
                    parts.append("(?:.*/)?")
                else:
                    parts.append(".*")
                continue
            parts.append("[^/]*")
        elif c == "?":
            parts.append("[^/]")
        elif c == "[":
            # A leading ']' (or '!]') is part of the class, not its end
            start = i + 1
            if start < n and pattern[start] == "!":
                start += 1
            if start < n and pattern[start] == "]":
                start += 1
            end = pattern.find("]", start)
            if end == -1:
                parts.append(re.escape(c))
            else:
                body = pattern[i + 1:end].replace("\\", "\\\\")
                if body.startswith("!"):
                    body = "^" + body[1:]
                elif body.startswith("^"):
                    body = "\\" + body
                parts.append(f"[{body}]")
                i = end + 1
                continue
        else:
            parts.append(re.escape(c))
        i += 1
    return re.compile("".join(parts), re.DOTALL)


def _normalize(pattern: str) -> str:
    if pattern.startswith("./"):
        pattern = pattern[2:]
    return pattern.rstrip("/") if pattern != "/" else pattern


def exclude_matcher(patterns: Iterable[str]) -> Callable[[str], bool]:
    """Build a predicate telling whether a relative path is excluded.

    The root (``""``) is excluded only by the literal empty pattern; globs
    and patterns that normalize to nothing (``./``) never match it.
    """
    exclude_root = False
    literals: set[str] = set()
    globs: list[re.Pattern[str]] = []
    for pattern in patterns:
        if pattern == "":
            exclude_root = True
            continue
        pattern = _normalize(pattern)
        if not pattern:
            continue
        if is_glob(pattern):
            globs.append(glob_to_regex(pattern))
        else:
            literals.add(pattern)

    def is_excluded(relative_path: str) -> bool:
        if not relative_path:
            return exclude_root
        if relative_path in literals:
            return True
        return any(regex.fullmatch(relative_path) for regex in globs)

    return is_excluded


def _is_directory(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir(follow_symlinks=False)
    except OSError:
        return False


class BottomUpDirectories:
    """Iterable of every non-excluded directory under ``root``, leaves first.

    Each iteration re-reads the filesystem. Siblings are visited in sorted
    name order so the sequence is deterministic for a given tree. Symlinks
    to directories are not followed.

    A directory that disappears during the walk is skipped together with
    its subtree. Other I/O errors (permission denied) propagate.

    Example::

        for directory in BottomUpDirectories(root, exclude="**/.git"):
            CheckedDirectory(directory, config).write_checksum_file()
    """

    def __init__(self, root: Path | str, exclude: str | Iterable[str] = ()):
        self.root = Path(root)
        self.exclude: tuple[str, ...] = (exclude,) if isinstance(exclude, str) else tuple(exclude)
        self._is_excluded = exclude_matcher(self.exclude)

    def __repr__(self) -> str:
        return f"BottomUpDirectories({str(self.root)!r}, exclude={list(self.exclude)!r})"

    def __iter__(self) -> Iterator[Path]:
        # (path, relative path, children already pushed)
        stack: list[tuple[Path, str, bool]] = [(self.root, "", False)]
        while stack:
            directory, relative, expanded = stack.pop()
            if expanded:
                if directory.is_dir():
                    yield directory
                else:
                    logger.debug(f"Directory vanished before it was listed: {directory}")
                continue

            if self._is_excluded(relative):
                logger.debug(f"Excluded directory: {relative or directory}")
                continue

            subdirectories = self._subdirectories(directory)
            if subdirectories is None:
                continue

            stack.append((directory, relative, True))
            for name in reversed(subdirectories):
                child_relative = f"{relative}/{name}" if relative else name
                stack.append((directory / name, child_relative, False))

    def _subdirectories(self, directory: Path) -> list[str] | None:
        """Sorted names of real subdirectories, or None if ``directory`` vanished."""
        try:
            with os.scandir(directory) as entries:
                return sorted(entry.name for entry in entries if _is_directory(entry))
        except (FileNotFoundError, NotADirectoryError):
            logger.debug(f"Directory vanished during walk: {directory}")
            return None
