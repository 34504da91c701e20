"""Signed per-directory checksum manifests.

Each checked directory holds one manifest file, ``.checksums``, listing the
digest of every immediate entry plus a signature over that list. The file is
UTF-8 JSON with sorted keys, so identical content always produces identical
bytes (parents digest these bytes):

    {
      "algorithm": "sha256",
      "entries": {"baz": "...", "dir1": "..."},
      "format": 1,
      "signature": "..."
    }

The signature covers the canonical compact JSON of ``algorithm`` and
``entries``; see ``signed_payload``.
"""

from __future__ import annotations

import errno
import json
import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .digest import Signer
from .exceptions import CorruptManifest, ManifestNotFound

logger = logging.getLogger(__name__)

CHECKSUM_FILENAME = ".checksums"
MANIFEST_FORMAT = 1

# In-flight temp files live next to the manifest until renamed over it
TEMP_PREFIX = CHECKSUM_FILENAME + "."
TEMP_SUFFIX = ".tmp"

_OPEN_FLAGS = (
    os.O_RDONLY
    | getattr(os, "O_NOFOLLOW", 0)
    | getattr(os, "O_NONBLOCK", 0)
    | getattr(os, "O_BINARY", 0)
)


def is_manifest_file(name: str) -> bool:
    """True only for the manifest file itself.

    Temp files of an in-flight write are ordinary entries: a directory is
    scanned before its own temp file is created.
    """
    return name == CHECKSUM_FILENAME


def manifest_path(directory: Path) -> Path:
    return Path(directory) / CHECKSUM_FILENAME


class ManifestDocument(BaseModel):
    """On-disk structure of a manifest file."""

    model_config = ConfigDict(extra="forbid")

    format: int = Field(default=MANIFEST_FORMAT, description="Manifest format version")
    algorithm: str = Field(..., min_length=1, description="hashlib algorithm of entry digests")
    entries: Dict[str, str] = Field(default_factory=dict, description="Entry name to digest")
    signature: str = Field(..., min_length=1, description="HMAC over algorithm and entries")

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: int) -> int:
        if v != MANIFEST_FORMAT:
            raise ValueError(f"Unsupported manifest format: {v}")
        return v

    @field_validator("entries")
    @classmethod
    def validate_entries(cls, v: Dict[str, str]) -> Dict[str, str]:
        for name in v:
            if not name or "/" in name or is_manifest_file(name):
                raise ValueError(f"Invalid entry name: {name!r}")
        return v


def signed_payload(algorithm: str, entries: Mapping[str, str]) -> bytes:
    """Canonical bytes covered by a manifest signature."""
    return json.dumps(
        {"algorithm": algorithm, "entries": dict(entries)},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def serialize_manifest(entries: Mapping[str, str], signer: Signer) -> bytes:
    """Build the signed manifest file content for ``entries``."""
    document = ManifestDocument(
        algorithm=signer.algorithm,
        entries=dict(entries),
        signature=signer.sign(signed_payload(signer.algorithm, entries)),
    )
    return (
        json.dumps(document.model_dump(), sort_keys=True, indent=2, ensure_ascii=False) + "\n"
    ).encode("utf-8")


@dataclass(frozen=True)
class ParsedManifest:
    """A manifest read back from disk.

    Attributes:
        path: Manifest file path
        entries: Entry name to digest, as saved
        algorithm: Digest algorithm recorded in the file
        signature: Saved signature
        raw: Exact file bytes (what a parent directory digests)
        mtime_ns: Manifest modification time in nanoseconds
    """

    path: Path
    entries: Dict[str, str]
    algorithm: str
    signature: str
    raw: bytes
    mtime_ns: int

    def verify_signature(self, signer: Signer) -> bool:
        """True if the saved entries carry a valid signature for ``signer``'s key."""
        return signer.verify(signed_payload(self.algorithm, self.entries), self.signature)


def read_manifest_bytes(directory: Path) -> tuple[bytes, int]:
    """Raw bytes and mtime (ns) of the manifest of ``directory``.

    The manifest must be a regular file inside the directory; a symlink,
    directory or special file in its place is never followed or opened
    for reading.

    Raises:
        ManifestNotFound: If the directory has no manifest
        CorruptManifest: If the manifest is not a regular file
        OSError: If the manifest exists but cannot be read
    """
    path = manifest_path(directory)
    try:
        info = os.lstat(path)
    except FileNotFoundError:
        raise ManifestNotFound(path) from None
    if not stat.S_ISREG(info.st_mode):
        raise CorruptManifest(path, "not a regular file")

    try:
        fd = os.open(path, _OPEN_FLAGS)
    except FileNotFoundError:
        raise ManifestNotFound(path) from None
    except OSError as e:
        if e.errno == errno.ELOOP:
            raise CorruptManifest(path, "not a regular file") from e
        raise

    with os.fdopen(fd, "rb") as f:
        info = os.fstat(f.fileno())
        if not stat.S_ISREG(info.st_mode):
            raise CorruptManifest(path, "not a regular file")
        return f.read(), info.st_mtime_ns


def read_manifest(directory: Path) -> ParsedManifest:
    """Read and parse the manifest of ``directory``.

    Raises:
        ManifestNotFound: If the directory has no manifest
        CorruptManifest: If the manifest is not a regular file or not valid
            UTF-8 JSON of the expected shape
        OSError: If the manifest exists but cannot be read
    """
    path = manifest_path(directory)
    raw, mtime_ns = read_manifest_bytes(directory)

    try:
        data = json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise CorruptManifest(path, "not UTF-8") from e
    except json.JSONDecodeError as e:
        raise CorruptManifest(path, f"invalid JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise CorruptManifest(path, "expected a JSON object")

    try:
        document = ManifestDocument.model_validate(data)
    except ValidationError as e:
        raise CorruptManifest(path, f"{e.error_count()} schema error(s)") from e

    return ParsedManifest(
        path=path,
        entries=dict(document.entries),
        algorithm=document.algorithm,
        signature=document.signature,
        raw=raw,
        mtime_ns=mtime_ns,
    )


def write_manifest(directory: Path, entries: Mapping[str, str], signer: Signer) -> Path:
    """Atomically write a signed manifest for ``entries`` into ``directory``.

    Writes to a temp file in the same directory, then renames it over the
    existing manifest so readers never see a partial file.

    Returns:
        Path of the written manifest

    Raises:
        ValueError: If ``entries`` names the manifest file itself
        OSError: If the write fails
    """
    for name in entries:
        if is_manifest_file(name):
            raise ValueError(f"Manifest cannot describe itself: {name}")

    path = manifest_path(directory)
    content = serialize_manifest(entries, signer)

    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    logger.info(f"Checksum manifest written to {path} ({len(entries)} entries)")
    return path
