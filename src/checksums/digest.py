"""Digest and signature provider for checksum manifests.

Digests are lowercase hex strings from any algorithm in
``hashlib.algorithms_guaranteed``. Signatures are HMACs over the same
algorithm, keyed with the configured signing key.

The rest of the package only relies on ``hash_bytes``/``hash_file`` being
deterministic and on ``Signer.verify`` accepting exactly what
``Signer.sign`` produced with the same key.
"""

from __future__ import annotations

import hashlib
import hmac
from pathlib import Path

DEFAULT_ALGORITHM = "sha256"

# Read in 64KB chunks to keep memory flat on large files
CHUNK_SIZE = 65536


def validate_algorithm(algorithm: str) -> str:
    """Return ``algorithm`` normalized, or raise ValueError if unsupported.

    Only ``hashlib.algorithms_guaranteed`` members with a fixed digest size
    are accepted (the SHAKE variants need an explicit length).
    """
    name = algorithm.strip().lower()
    if name not in hashlib.algorithms_guaranteed or name.startswith("shake_"):
        supported = ", ".join(sorted(
            a for a in hashlib.algorithms_guaranteed if not a.startswith("shake_")
        ))
        raise ValueError(f"Unsupported digest algorithm '{algorithm}'; use one of: {supported}")
    return name


def hash_bytes(data: bytes, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Return the hex digest of ``data``."""
    return hashlib.new(algorithm, data).hexdigest()


def hash_file(file_path: Path, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Compute the hex digest of a regular file's content.

    Args:
        file_path: Path to file to hash
        algorithm: hashlib algorithm name

    Returns:
        Lowercase hex string

    Raises:
        FileNotFoundError: If file does not exist (e.g. deleted mid-scan)
        PermissionError: If file cannot be read
        OSError: If other I/O errors occur during reading
    """
    hasher = hashlib.new(algorithm)
    try:
        with open(file_path, "rb") as f:
            while chunk := f.read(CHUNK_SIZE):
                hasher.update(chunk)
    except FileNotFoundError as e:
        raise FileNotFoundError(f"File not found: {file_path}") from e
    except PermissionError as e:
        raise PermissionError(f"Permission denied reading file: {file_path}") from e

    return hasher.hexdigest()


class Signer:
    """Keyed signing of manifest payloads.

    Attributes:
        algorithm: hashlib algorithm used for the HMAC

    Examples:
        >>> signer = Signer("secret")
        >>> signature = signer.sign(b"payload")
        >>> signer.verify(b"payload", signature)
        True
        >>> Signer("other").verify(b"payload", signature)
        False
    """

    def __init__(self, key: str | bytes, algorithm: str = DEFAULT_ALGORITHM):
        if not key:
            raise ValueError("Signing key must not be empty")
        self._key = key.encode("utf-8") if isinstance(key, str) else bytes(key)
        self.algorithm = validate_algorithm(algorithm)

    def __repr__(self) -> str:
        return f"Signer(algorithm={self.algorithm!r})"

    def sign(self, payload: bytes) -> str:
        """Return the hex HMAC of ``payload``."""
        return hmac.new(self._key, payload, self.algorithm).hexdigest()

    def verify(self, payload: bytes, signature: str) -> bool:
        """Check ``signature`` against ``payload`` in constant time."""
        if not isinstance(signature, str):
            return False
        return hmac.compare_digest(self.sign(payload), signature.strip())
