"""Signed per-directory checksum manifests for detecting changes in directory trees."""

from .checked_dir import UNCHECKED_DIRECTORY_DIGEST, CheckedDirectory, special_digest
from .config import ChecksumsConfig, load_config, save_config
from .digest import Signer, hash_bytes, hash_file
from .events import Dispatcher, EventRecorder, Flow, VerificationEvent
from .exceptions import ChecksumsConfigError, ChecksumsError, CorruptManifest, ManifestNotFound
from .manifest import CHECKSUM_FILENAME, ParsedManifest, read_manifest, write_manifest
from .models import ChangedItem, Changes, Entry, EntryKind
from .tree import TreeReport, stale_directories, update_tree, verify_tree
from .walker import BottomUpDirectories, exclude_matcher

__all__ = [
    "CHECKSUM_FILENAME",
    "UNCHECKED_DIRECTORY_DIGEST",
    "BottomUpDirectories",
    "ChangedItem",
    "Changes",
    "CheckedDirectory",
    "ChecksumsConfig",
    "ChecksumsConfigError",
    "ChecksumsError",
    "CorruptManifest",
    "Dispatcher",
    "Entry",
    "EntryKind",
    "EventRecorder",
    "Flow",
    "ManifestNotFound",
    "ParsedManifest",
    "Signer",
    "TreeReport",
    "VerificationEvent",
    "exclude_matcher",
    "hash_bytes",
    "hash_file",
    "load_config",
    "read_manifest",
    "save_config",
    "special_digest",
    "stale_directories",
    "update_tree",
    "verify_tree",
    "write_manifest",
]
