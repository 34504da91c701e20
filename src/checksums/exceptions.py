"""Exception hierarchy for directory checksum manifests."""

from __future__ import annotations

from pathlib import Path


class ChecksumsError(Exception):
    """Base exception for checksum manifest errors."""
    pass


class CorruptManifest(ChecksumsError):
    """Manifest file is present but cannot be parsed.

    Distinct from a signature mismatch: a corrupt manifest is a structural
    failure, while a bad signature is reported as an event.
    """

    def __init__(self, path: Path, reason: str | None = None):
        self.path = path
        self.reason = reason
        message = f"Corrupt checksum manifest: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ManifestNotFound(CorruptManifest):
    """No manifest exists in the directory (directory is unchecked)."""

    def __init__(self, path: Path):
        self.path = path
        self.reason = "missing"
        ChecksumsError.__init__(self, f"No checksum manifest: {path}")


class ChecksumsConfigError(ChecksumsError):
    """Raised when checksum configuration is invalid."""
