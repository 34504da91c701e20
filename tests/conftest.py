from __future__ import annotations

import os
import shutil
import time
from pathlib import Path

import pytest

from checksums.checked_dir import CheckedDirectory
from checksums.config import ChecksumsConfig
from checksums.manifest import CHECKSUM_FILENAME


class TreeBuilder:
    """Builds test directory trees; paths are relative to ``root``."""

    def __init__(self, root: Path):
        self.root = root
        self.directory_count = 1  # the root itself

    def path(self, *parts: str) -> Path:
        return self.root.joinpath(*parts)

    def file(self, name: str, contents: str | None = None) -> Path:
        path = self.path(name)
        path.write_text(Path(name).name if contents is None else contents, encoding="utf-8")
        return path

    def directory(self, name: str) -> Path:
        path = self.path(name)
        path.mkdir()
        self.directory_count += 1
        return path

    def symlink(self, name: str, target: str = "does-not-exist") -> Path:
        path = self.path(name)
        os.symlink(target, path)
        return path

    def fifo(self, name: str) -> Path | None:
        if not hasattr(os, "mkfifo"):
            return None
        path = self.path(name)
        os.mkfifo(path)
        return path

    def rm_file(self, name: str) -> None:
        self.path(name).unlink()

    def rm_directory(self, name: str) -> None:
        # invalidates directory_count
        shutil.rmtree(self.path(name))

    def antedate(self, name: str, seconds: float = 1.0) -> None:
        """Move an entry's mtime ``seconds`` into the future."""
        t = time.time() + seconds
        os.utime(self.path(name), (t, t), follow_symlinks=False)

    def backdate_all(self, seconds: int = 3600) -> None:
        """Move every path in the tree, manifests included, into the past."""
        past = time.time_ns() - seconds * 1_000_000_000
        for path in [self.root, *self.root.rglob("*")]:
            os.utime(path, ns=(past, past), follow_symlinks=False)

    def manifest(self, *parts: str) -> Path:
        return self.path(*parts, CHECKSUM_FILENAME)

    def edit_manifest(self, target: str, replacement: str, *parts: str) -> None:
        path = self.manifest(*parts)
        text = path.read_text(encoding="utf-8")
        assert target in text
        path.write_text(text.replace(target, replacement, 1), encoding="utf-8")


def grow_tree(tree: TreeBuilder) -> TreeBuilder:
    """
    root/
      dir1/
        foo
        nested1/nested2/bar   ("BAR")
        fool -> foo
        dead -> does-not-exist
        pipe                  (fifo)
      baz
      empty/
    """
    tree.directory("dir1")
    tree.file("dir1/foo")
    tree.directory("dir1/nested1")
    tree.directory("dir1/nested1/nested2")
    tree.file("dir1/nested1/nested2/bar", "BAR")
    tree.symlink("dir1/fool", "foo")
    tree.symlink("dir1/dead")
    tree.fifo("dir1/pipe")
    tree.file("baz")
    tree.directory("empty")
    return tree


@pytest.fixture()
def tree(tmp_path: Path) -> TreeBuilder:
    root = tmp_path / "root"
    root.mkdir()
    return grow_tree(TreeBuilder(root))


@pytest.fixture()
def root(tree: TreeBuilder) -> Path:
    return tree.root


@pytest.fixture()
def config() -> ChecksumsConfig:
    return ChecksumsConfig(key="test-signing-key")


@pytest.fixture()
def write_checksums(tree: TreeBuilder, config: ChecksumsConfig):
    def write(*parts: str) -> Path:
        written = CheckedDirectory(tree.path(*parts), config).write_checksum_file()
        assert written.is_file(), "Checksum file not written"
        return written

    return write


@pytest.fixture()
def needs_update(tree: TreeBuilder, config: ChecksumsConfig):
    def check(*parts: str) -> bool:
        return CheckedDirectory(tree.path(*parts), config).needs_update()

    return check


@pytest.fixture()
def checked(root: Path, config: ChecksumsConfig, write_checksums) -> CheckedDirectory:
    """Root directory with a manifest for the root only."""
    write_checksums()
    return CheckedDirectory(root, config)
