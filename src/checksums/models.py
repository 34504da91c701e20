"""Data models for checked directories and verification results.

Entries are discovered fresh on every scan and never persisted; only
their (name, digest) pairs end up in a manifest. ``Changes`` is the
transient report returned by ``CheckedDirectory.verify_checksums``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any


class EntryKind(StrEnum):
    """Kind of an immediate directory entry.

    - FILE: Regular file, digested by content
    - DIRECTORY: Subdirectory, digested by its own manifest bytes
    - SYMLINK: Symbolic link, digested by its target string (never followed)
    - SPECIAL: Fifo, socket or device; never opened
    """

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    SPECIAL = "special"


@dataclass(frozen=True, slots=True)
class Entry:
    """One immediate child of a directory."""

    name: str
    kind: EntryKind
    path: Path


@dataclass(frozen=True, slots=True)
class ChangedItem:
    """An entry whose current digest differs from the saved one."""

    item: str
    expected_hash: str
    actual_hash: str

    def to_dict(self) -> dict[str, str]:
        return {
            "item": self.item,
            "expected_hash": self.expected_hash,
            "actual_hash": self.actual_hash,
        }


@dataclass
class Changes:
    """Result of verifying one directory against its manifest.

    Attributes:
        added_items: Names present now but absent from the manifest
        removed_items: Names in the manifest but no longer present
        changed_items: Names present in both with differing digests
        unchanged_items: Names present in both with equal digests
    """

    added_items: list[str] = field(default_factory=list)
    removed_items: list[str] = field(default_factory=list)
    changed_items: list[ChangedItem] = field(default_factory=list)
    unchanged_items: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added_items or self.removed_items or self.changed_items)

    def to_dict(self) -> dict[str, Any]:
        return {
            "added_items": list(self.added_items),
            "removed_items": list(self.removed_items),
            "changed_items": [c.to_dict() for c in self.changed_items],
            "unchanged_items": list(self.unchanged_items),
        }
