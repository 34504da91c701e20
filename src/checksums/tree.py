"""Whole-tree operations driving the bottom-up walk.

Writing manifests is only consistent when every child is refreshed before
its parent; these helpers pair ``BottomUpDirectories`` with
``CheckedDirectory`` to guarantee that order.

Key Functions:
- update_tree(): Rewrite stale (or all) manifests, leaves first
- verify_tree(): Verify every directory and collect a TreeReport
- stale_directories(): List directories whose manifest needs an update
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .checked_dir import CheckedDirectory
from .config import ChecksumsConfig
from .events import EventRecorder, Flow, VerificationEvent
from .exceptions import CorruptManifest
from .models import Changes
from .walker import BottomUpDirectories

logger = logging.getLogger(__name__)


def _walk(root: Path, config: ChecksumsConfig, exclude: Iterable[str]) -> BottomUpDirectories:
    return BottomUpDirectories(root, exclude=[*config.exclude, *exclude])


def update_tree(
    root: Path,
    config: ChecksumsConfig | None = None,
    force: bool = False,
    exclude: Iterable[str] = (),
) -> list[Path]:
    """Rewrite manifests bottom-up under ``root``.

    Only directories whose ``needs_update()`` is true are rewritten unless
    ``force`` is set. A corrupt manifest counts as needing an update.

    Args:
        root: Tree root
        config: Key, algorithm and default exclusions
        force: Rewrite every manifest
        exclude: Extra exclusion patterns

    Returns:
        Directories whose manifest was written, in write order
    """
    config = config or ChecksumsConfig()
    written: list[Path] = []
    for directory in _walk(root, config, exclude):
        checked = CheckedDirectory(directory, config)
        if not force:
            try:
                if not checked.needs_update():
                    continue
            except CorruptManifest as exc:
                logger.warning(f"Replacing corrupt manifest: {exc}")
        checked.write_checksum_file()
        written.append(directory)
    logger.info(f"Updated {len(written)} manifest(s) under {root}")
    return written


def stale_directories(
    root: Path,
    config: ChecksumsConfig | None = None,
    exclude: Iterable[str] = (),
) -> list[Path]:
    """Directories under ``root`` whose manifest is missing, corrupt or stale."""
    config = config or ChecksumsConfig()
    stale: list[Path] = []
    for directory in _walk(root, config, exclude):
        try:
            if CheckedDirectory(directory, config).needs_update():
                stale.append(directory)
        except CorruptManifest:
            stale.append(directory)
    return stale


@dataclass
class TreeReport:
    """Verification result for a whole tree.

    Attributes:
        root: Tree root
        changes: Changes per verified directory (directories with changes only)
        invalid_signatures: Directories whose manifest signature did not verify
        unchecked: Directories without a manifest
        corrupt: Directories whose manifest could not be parsed
        verified: Number of directories visited; a report with none is
            never clean
    """

    root: Path
    changes: dict[Path, Changes] = field(default_factory=dict)
    invalid_signatures: list[Path] = field(default_factory=list)
    unchecked: list[Path] = field(default_factory=list)
    corrupt: list[Path] = field(default_factory=list)
    verified: int = 0

    @property
    def has_integrity_errors(self) -> bool:
        return bool(self.invalid_signatures or self.corrupt)

    @property
    def is_empty(self) -> bool:
        """True if no directory was verified (the root itself was excluded)."""
        return self.verified == 0

    @property
    def is_clean(self) -> bool:
        if self.is_empty:
            return False
        return not (self.changes or self.unchecked or self.has_integrity_errors)

    def _relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.root).as_posix() or "."
        except ValueError:
            return str(path)

    def to_dict(self) -> dict[str, object]:
        return {
            "root": str(self.root),
            "verified": self.verified,
            "clean": self.is_clean,
            "invalid_signatures": [self._relative(p) for p in self.invalid_signatures],
            "unchecked": [self._relative(p) for p in self.unchecked],
            "corrupt": [self._relative(p) for p in self.corrupt],
            "changes": {
                self._relative(p): changes.to_dict()
                for p, changes in self.changes.items()
            },
        }


def verify_tree(
    root: Path,
    config: ChecksumsConfig | None = None,
    stop_on_invalid_signature: bool = False,
    exclude: Iterable[str] = (),
) -> TreeReport:
    """Verify every directory under ``root`` against its manifest.

    Args:
        root: Tree root
        config: Key, algorithm and default exclusions
        stop_on_invalid_signature: Skip the item comparison of directories
            whose manifest signature is invalid
        exclude: Extra exclusion patterns

    Returns:
        TreeReport covering every non-excluded directory
    """
    config = config or ChecksumsConfig()
    report = TreeReport(root=Path(root))

    for directory in _walk(root, config, exclude):
        report.verified += 1
        checked = CheckedDirectory(directory, config)
        recorder = EventRecorder()
        if stop_on_invalid_signature:
            recorder.on(VerificationEvent.INVALID_SIGNATURE, lambda _directory: Flow.STOP)

        try:
            changes = checked.verify_checksums(recorder)
        except CorruptManifest as exc:
            logger.warning(str(exc))
            report.corrupt.append(directory)
            continue

        events = recorder.events()
        if VerificationEvent.INVALID_SIGNATURE in events:
            report.invalid_signatures.append(directory)
        elif VerificationEvent.VALID_SIGNATURE not in events:
            report.unchecked.append(directory)

        if changes.has_changes:
            report.changes[directory] = changes
        logger.debug(f"Verified {directory}: {'changed' if changes.has_changes else 'unchanged'}")

    if report.is_empty:
        logger.warning(f"No directories verified under {root}")
    return report
