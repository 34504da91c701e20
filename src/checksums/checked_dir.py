"""Checked directories: digesting, staleness, manifest writing and verification.

A ``CheckedDirectory`` is a transient handle on one directory. It owns
nothing but its path and configuration and re-reads the filesystem on every
call.

Entry digests:

- regular file: digest of its content;
- symlink: digest of the link target string (the link is never followed);
- subdirectory: digest of the subdirectory's own manifest file bytes, so a
  change anywhere below changes every ancestor once manifests are
  rewritten bottom-up. A subdirectory without a manifest gets
  ``UNCHECKED_DIRECTORY_DIGEST``;
- fifo, socket or device: a fixed ``<special:...>`` marker; never opened.

``write_checksum_file`` assumes every subdirectory manifest has already
been refreshed (see ``BottomUpDirectories``). It cannot detect a stale
child on its own.
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path
from typing import Any

from .config import ChecksumsConfig
from .digest import hash_bytes, hash_file
from .events import Dispatcher, Flow, VerificationEvent
from .exceptions import ManifestNotFound
from .manifest import (
    ParsedManifest,
    is_manifest_file,
    manifest_path,
    read_manifest,
    read_manifest_bytes,
    write_manifest,
)
from .models import ChangedItem, Changes, Entry, EntryKind

logger = logging.getLogger(__name__)

UNCHECKED_DIRECTORY_DIGEST = "<unchecked-directory>"


def special_digest(mode: int) -> str:
    """Marker digest for entries that must not be read."""
    if stat.S_ISFIFO(mode):
        kind = "fifo"
    elif stat.S_ISSOCK(mode):
        kind = "socket"
    elif stat.S_ISCHR(mode):
        kind = "char-device"
    elif stat.S_ISBLK(mode):
        kind = "block-device"
    else:
        kind = "unknown"
    return f"<special:{kind}>"


def _entry_kind(entry: os.DirEntry) -> EntryKind:
    if entry.is_symlink():
        return EntryKind.SYMLINK
    if entry.is_dir(follow_symlinks=False):
        return EntryKind.DIRECTORY
    if entry.is_file(follow_symlinks=False):
        return EntryKind.FILE
    return EntryKind.SPECIAL


class CheckedDirectory:
    """One directory and its signed checksum manifest.

    Attributes:
        path: The directory
        config: Signing key, algorithm and exclusions in effect
    """

    def __init__(self, path: Path | str, config: ChecksumsConfig | None = None):
        self.path = Path(path)
        self.config = config or ChecksumsConfig()
        self._signer = self.config.signer()

    def __repr__(self) -> str:
        return f"CheckedDirectory({str(self.path)!r})"

    @property
    def manifest_path(self) -> Path:
        return manifest_path(self.path)

    def entries(self) -> list[Entry]:
        """Current immediate entries, sorted by name, without the manifest."""
        found: list[Entry] = []
        with os.scandir(self.path) as scan:
            for item in scan:
                if is_manifest_file(item.name):
                    continue
                found.append(Entry(name=item.name, kind=_entry_kind(item), path=Path(item.path)))
        return sorted(found, key=lambda e: e.name)

    def digest(self, entry: Entry) -> str:
        """Current digest of one entry."""
        algorithm = self.config.algorithm
        if entry.kind is EntryKind.FILE:
            return hash_file(entry.path, algorithm)
        if entry.kind is EntryKind.SYMLINK:
            return hash_bytes(os.fsencode(os.readlink(entry.path)), algorithm)
        if entry.kind is EntryKind.DIRECTORY:
            try:
                raw, _ = read_manifest_bytes(entry.path)
            except ManifestNotFound:
                return UNCHECKED_DIRECTORY_DIGEST
            return hash_bytes(raw, algorithm)
        return special_digest(os.lstat(entry.path).st_mode)

    def current_checksums(self) -> dict[str, str]:
        """Digest of every current entry, keyed by name."""
        return {entry.name: self.digest(entry) for entry in self.entries()}

    def saved_checksums(self) -> dict[str, str]:
        """Entries of the saved manifest; empty if the directory is unchecked.

        Raises:
            CorruptManifest: If the manifest cannot be parsed
        """
        manifest = self._load_manifest()
        return dict(manifest.entries) if manifest else {}

    def is_checked(self) -> bool:
        try:
            return stat.S_ISREG(os.lstat(self.manifest_path).st_mode)
        except FileNotFoundError:
            return False

    def needs_update(self) -> bool:
        """Cheap staleness check; no hashing involved.

        True if the manifest is missing, lists a different set of names than
        the directory holds now, or is older than the newest entry. Files are
        compared by their own mtime, subdirectories by their manifest's mtime
        (or their own, if they have none).

        Raises:
            CorruptManifest: If the manifest cannot be parsed
        """
        manifest = self._load_manifest()
        if manifest is None:
            return True

        entries = self.entries()
        if {entry.name for entry in entries} != set(manifest.entries):
            logger.debug(f"Entry names differ from manifest in {self.path}")
            return True

        newest = max((self._timestamp(entry) for entry in entries), default=None)
        return newest is not None and newest > manifest.mtime_ns

    def write_checksum_file(self) -> Path:
        """Digest all current entries and write a fresh signed manifest.

        Subdirectory manifests must already be up to date.

        Returns:
            Path of the written manifest
        """
        checksums = self.current_checksums()
        return write_manifest(self.path, checksums, self._signer)

    def verify_checksums(self, dispatcher: Dispatcher | None = None) -> Changes:
        """Compare the current state against the saved manifest.

        Events go to ``dispatcher`` in this order: the signature verdict
        (only when a manifest exists), then ``directory_changed`` or
        ``directory_unchanged``, then one item event per entry name in sorted
        order. A handler returning ``Flow.STOP`` after the signature verdict
        ends the call with an empty report; after the directory verdict it
        only suppresses the item events.

        Returns:
            Changes with every added, removed, changed and unchanged name

        Raises:
            CorruptManifest: If the manifest exists but cannot be parsed
        """
        dispatcher = dispatcher or Dispatcher()
        changes = Changes()

        manifest = self._load_manifest()
        if manifest is None:
            logger.debug(f"No manifest in {self.path}, treating all entries as added")
            saved: dict[str, str] = {}
        else:
            if manifest.verify_signature(self._signer):
                verdict = VerificationEvent.VALID_SIGNATURE
            else:
                logger.warning(f"Invalid manifest signature in {self.path}")
                verdict = VerificationEvent.INVALID_SIGNATURE
            if dispatcher.emit(verdict, self.path) == Flow.STOP:
                return changes
            saved = manifest.entries

        current = self.current_checksums()
        item_events: list[tuple[VerificationEvent, tuple[Any, ...]]] = []
        for name in sorted(current.keys() | saved.keys()):
            if name not in saved:
                changes.added_items.append(name)
                item_events.append((VerificationEvent.ITEM_ADDED, (self.path, name)))
            elif name not in current:
                changes.removed_items.append(name)
                item_events.append((VerificationEvent.ITEM_REMOVED, (self.path, name)))
            elif saved[name] != current[name]:
                changes.changed_items.append(ChangedItem(name, saved[name], current[name]))
                item_events.append(
                    (VerificationEvent.ITEM_CHANGED, (self.path, name, saved[name], current[name]))
                )
            else:
                changes.unchanged_items.append(name)
                item_events.append((VerificationEvent.ITEM_UNCHANGED, (self.path, name)))

        if changes.has_changes:
            verdict = VerificationEvent.DIRECTORY_CHANGED
        else:
            verdict = VerificationEvent.DIRECTORY_UNCHANGED
        if dispatcher.emit(verdict, self.path) == Flow.STOP:
            return changes

        for event, args in item_events:
            dispatcher.emit(event, *args)

        return changes

    def _load_manifest(self) -> ParsedManifest | None:
        try:
            return read_manifest(self.path)
        except ManifestNotFound:
            return None

    @staticmethod
    def _timestamp(entry: Entry) -> int:
        if entry.kind is EntryKind.DIRECTORY:
            try:
                return os.lstat(manifest_path(entry.path)).st_mtime_ns
            except FileNotFoundError:
                pass
        return os.lstat(entry.path).st_mtime_ns
