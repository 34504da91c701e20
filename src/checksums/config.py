"""Checksum configuration stored in <checksums home>/config.yaml.

Example file::

    key: my-signing-key
    algorithm: sha256
    exclude:
      - "**/.git"
      - build

``CHECKSUMS_KEY`` and ``CHECKSUMS_ALGORITHM`` override the file values.
The signing key must stay the same between writing and verifying manifests.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .digest import DEFAULT_ALGORITHM, Signer, validate_algorithm
from .exceptions import ChecksumsConfigError

logger = logging.getLogger(__name__)

DEFAULT_KEY = "tree-checksums"

ENV_HOME = "CHECKSUMS_HOME"
ENV_KEY = "CHECKSUMS_KEY"
ENV_ALGORITHM = "CHECKSUMS_ALGORITHM"


@dataclass(slots=True)
class ChecksumsConfig:
    """Signing key, digest algorithm and default exclusions."""

    key: str = DEFAULT_KEY
    algorithm: str = DEFAULT_ALGORITHM
    exclude: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key:
            raise ChecksumsConfigError("Signing key must be a non-empty string")
        try:
            self.algorithm = validate_algorithm(self.algorithm)
        except ValueError as exc:
            raise ChecksumsConfigError(str(exc)) from exc
        self.exclude = [str(pattern) for pattern in self.exclude]

    @property
    def uses_default_key(self) -> bool:
        return self.key == DEFAULT_KEY

    def signer(self) -> Signer:
        return Signer(self.key, self.algorithm)

    def to_dict(self) -> dict[str, object]:
        return {
            "key": self.key,
            "algorithm": self.algorithm,
            "exclude": list(self.exclude),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object] | None) -> "ChecksumsConfig":
        if not isinstance(data, dict):
            return cls()

        key = data.get("key")
        algorithm = data.get("algorithm")
        exclude = data.get("exclude")
        if isinstance(exclude, str):
            exclude = [exclude]
        elif exclude is not None and not isinstance(exclude, list):
            raise ChecksumsConfigError("'exclude' must be a pattern or a list of patterns")

        return cls(
            key=str(key) if key is not None else DEFAULT_KEY,
            algorithm=str(algorithm) if algorithm is not None else DEFAULT_ALGORITHM,
            exclude=list(exclude or []),
        )


def _is_windows() -> bool:
    return os.name == "nt"


def get_checksums_home() -> Path:
    """Return the user-global checksums directory.

    Resolution order:
    1. CHECKSUMS_HOME environment variable (all platforms)
    2. ~/.checksums/ on macOS/Linux
    3. %LOCALAPPDATA%\\checksums\\ on Windows (via platformdirs)
    """
    if env_home := os.environ.get(ENV_HOME):
        return Path(env_home)

    if _is_windows():
        from platformdirs import user_data_dir

        return Path(user_data_dir("checksums"))

    return Path.home() / ".checksums"


def default_config_path() -> Path:
    return get_checksums_home() / "config.yaml"


def load_config(path: Path | None = None) -> ChecksumsConfig:
    """Load configuration from YAML, then apply environment overrides.

    A missing file yields the defaults.

    Raises:
        ChecksumsConfigError: If the file cannot be parsed or holds invalid values
    """
    config_path = path or default_config_path()
    payload: object = {}
    if config_path.exists():
        yaml = YAML(typ="safe")
        try:
            with config_path.open("r", encoding="utf-8") as handle:
                payload = yaml.load(handle) or {}
        except (OSError, YAMLError) as exc:
            raise ChecksumsConfigError(f"Failed to parse {config_path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ChecksumsConfigError(f"{config_path} must contain a mapping")
    else:
        logger.debug(f"No config file at {config_path}, using defaults")

    data = dict(payload)
    if env_key := os.environ.get(ENV_KEY):
        data["key"] = env_key
    if env_algorithm := os.environ.get(ENV_ALGORITHM):
        data["algorithm"] = env_algorithm

    config = ChecksumsConfig.from_dict(data)
    if config.uses_default_key:
        logger.warning(
            "Using the built-in signing key; set 'key' in %s or %s to detect manifest tampering",
            config_path,
            ENV_KEY,
        )
    return config


def save_config(config: ChecksumsConfig, path: Path | None = None) -> Path:
    """Atomically write ``config`` to YAML, preserving unrelated keys."""
    config_path = path or default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    yaml = YAML()
    yaml.preserve_quotes = True

    payload: object = {}
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            payload = yaml.load(handle) or {}
    if not isinstance(payload, dict):
        payload = {}

    payload.update(config.to_dict())

    fd, tmp_path = tempfile.mkstemp(
        dir=config_path.parent,
        prefix=".config.yaml.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.dump(payload, f)
        os.replace(tmp_path, config_path)
    except Exception:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    return config_path
