"""Tests for checksum configuration loading and saving."""

from pathlib import Path

import pytest
from ruamel.yaml import YAML

from checksums.config import (
    DEFAULT_KEY,
    ChecksumsConfig,
    default_config_path,
    get_checksums_home,
    load_config,
    save_config,
)
from checksums.digest import Signer
from checksums.exceptions import ChecksumsConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("CHECKSUMS_HOME", "CHECKSUMS_KEY", "CHECKSUMS_ALGORITHM"):
        monkeypatch.delenv(name, raising=False)


class TestChecksumsConfig:
    def test_defaults(self):
        config = ChecksumsConfig()
        assert config.key == DEFAULT_KEY
        assert config.algorithm == "sha256"
        assert config.exclude == []
        assert config.uses_default_key

    def test_signer_uses_key_and_algorithm(self):
        config = ChecksumsConfig(key="k", algorithm="sha512")
        signer = config.signer()
        assert signer.algorithm == "sha512"
        assert signer.sign(b"x") == Signer("k", "sha512").sign(b"x")

    def test_invalid_algorithm(self):
        with pytest.raises(ChecksumsConfigError):
            ChecksumsConfig(algorithm="rot13")

    def test_empty_key(self):
        with pytest.raises(ChecksumsConfigError):
            ChecksumsConfig(key="")

    def test_from_dict_accepts_single_pattern(self):
        config = ChecksumsConfig.from_dict({"key": "k", "exclude": "**/.git"})
        assert config.exclude == ["**/.git"]

    def test_from_dict_rejects_bad_exclude(self):
        with pytest.raises(ChecksumsConfigError):
            ChecksumsConfig.from_dict({"exclude": {"a": 1}})

    def test_from_dict_of_non_mapping(self):
        assert ChecksumsConfig.from_dict(None) == ChecksumsConfig()


class TestHome:
    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CHECKSUMS_HOME", str(tmp_path / "home"))
        assert get_checksums_home() == tmp_path / "home"
        assert default_config_path() == tmp_path / "home" / "config.yaml"

    def test_posix_default(self, monkeypatch, tmp_path):
        monkeypatch.setattr("checksums.config._is_windows", lambda: False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)
        assert get_checksums_home() == tmp_path / ".checksums"


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path / "config.yaml") == ChecksumsConfig()

    def test_reads_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "key: secret\nalgorithm: sha1\nexclude:\n  - '**/.git'\n  - build\n",
            encoding="utf-8",
        )
        config = load_config(path)
        assert config == ChecksumsConfig(key="secret", algorithm="sha1", exclude=["**/.git", "build"])

    def test_default_path_from_home(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CHECKSUMS_HOME", str(tmp_path))
        (tmp_path / "config.yaml").write_text("key: from-home\n", encoding="utf-8")
        assert load_config().key == "from-home"

    def test_environment_overrides_file(self, monkeypatch, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("key: secret\nalgorithm: sha1\n", encoding="utf-8")
        monkeypatch.setenv("CHECKSUMS_KEY", "env-secret")
        monkeypatch.setenv("CHECKSUMS_ALGORITHM", "md5")
        config = load_config(path)
        assert config.key == "env-secret"
        assert config.algorithm == "md5"

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("key: [unclosed\n", encoding="utf-8")
        with pytest.raises(ChecksumsConfigError, match="Failed to parse"):
            load_config(path)

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ChecksumsConfigError):
            load_config(path)

    def test_invalid_algorithm_in_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("algorithm: nope\n", encoding="utf-8")
        with pytest.raises(ChecksumsConfigError):
            load_config(path)


class TestSaveConfig:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "config.yaml"
        config = ChecksumsConfig(key="secret", exclude=["build"])
        assert save_config(config, path) == path
        assert load_config(path) == config

    def test_preserves_unrelated_keys(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("owner: ops-team\nkey: old\n", encoding="utf-8")
        save_config(ChecksumsConfig(key="new"), path)

        with path.open(encoding="utf-8") as handle:
            data = YAML().load(handle)
        assert data["owner"] == "ops-team"
        assert data["key"] == "new"
        assert [p.name for p in tmp_path.iterdir()] == ["config.yaml"]
