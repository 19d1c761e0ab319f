# ABOUTME: Tests for the config utility module.
# ABOUTME: Validates config loading, defaults, merging, time zones and YAML persistence.

from datetime import timezone
from pathlib import Path

import pytest
import yaml

from photosort.naming import DEFAULT_FILE_PATTERN, DEFAULT_UNDATED_PATTERN
from photosort.utils.config import (
    DEFAULT_CONFIG,
    Config,
    load_config,
    save_config,
)


class TestDefaultConfig:
    """Tests for default configuration values."""

    def test_default_config_has_photo_extensions(self):
        assert ".jpg" in DEFAULT_CONFIG["extensions"]
        assert ".jpeg" in DEFAULT_CONFIG["extensions"]
        assert ".png" in DEFAULT_CONFIG["extensions"]

    def test_default_patterns(self):
        assert DEFAULT_CONFIG["name_pattern"] == DEFAULT_FILE_PATTERN
        assert DEFAULT_CONFIG["undated_pattern"] == DEFAULT_UNDATED_PATTERN

    def test_default_copies_in_utc(self):
        assert DEFAULT_CONFIG["move"] is False
        assert DEFAULT_CONFIG["timezone"] == "UTC"


class TestConfig:
    """Tests for Config dataclass behavior."""

    def test_config_from_empty_dict(self):
        cfg = Config.from_dict({})
        assert cfg.name_pattern == DEFAULT_FILE_PATTERN
        assert cfg.move is False

    def test_is_media(self):
        cfg = Config.from_dict({})
        assert cfg.is_media(Path("photo.jpg"))
        assert cfg.is_media(Path("PHOTO.JPG"))
        assert cfg.is_media(Path("raw.cr2"))
        assert not cfg.is_media(Path("doc.pdf"))
        assert not cfg.is_media(Path("noext"))

    def test_custom_extensions(self):
        cfg = Config.from_dict({"extensions": [".JPG"]})
        assert cfg.is_media(Path("a.jpg"))
        assert not cfg.is_media(Path("a.png"))

    def test_utc_tzinfo(self):
        assert Config.from_dict({}).tzinfo() is timezone.utc
        assert Config.from_dict({"timezone": "utc"}).tzinfo() is timezone.utc

    def test_named_tzinfo(self):
        tz = Config.from_dict({"timezone": "Europe/Paris"}).tzinfo()
        assert str(tz) == "Europe/Paris"

    def test_unknown_timezone(self):
        with pytest.raises(ValueError, match="Mars/Olympus"):
            Config.from_dict({"timezone": "Mars/Olympus"})

    def test_malformed_timezone_key(self):
        with pytest.raises(ValueError):
            Config.from_dict({"timezone": "../etc/passwd"})

    def test_null_extensions(self):
        with pytest.raises(ValueError, match="extensions"):
            Config.from_dict({"extensions": None})

    def test_extensions_must_be_strings(self):
        with pytest.raises(ValueError, match="extensions"):
            Config.from_dict({"extensions": [".jpg", 7]})

    def test_non_string_pattern(self):
        with pytest.raises(ValueError, match="name_pattern"):
            Config.from_dict({"name_pattern": 42})

    def test_non_bool_move(self):
        with pytest.raises(ValueError, match="move"):
            Config.from_dict({"move": "sometimes"})

    def test_to_dict(self):
        cfg = Config.from_dict({"move": True, "name_pattern": "%n.%e"})
        data = cfg.to_dict()
        assert data["move"] is True
        assert data["name_pattern"] == "%n.%e"
        assert "_extension_set" not in data


class TestLoadConfig:
    """Tests for loading config from YAML files."""

    def test_load_config_returns_defaults_when_no_file(self):
        cfg = load_config(Path("/nonexistent/path/config.yml"))
        assert cfg.extensions == DEFAULT_CONFIG["extensions"]

    def test_load_config_from_yaml(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text(yaml.dump({"name_pattern": "%s_%n.%e", "move": True}))
        cfg = load_config(config_file)
        assert cfg.name_pattern == "%s_%n.%e"
        assert cfg.move is True

    def test_load_config_merges_with_defaults(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text(yaml.dump({"timezone": "Europe/Paris"}))
        cfg = load_config(config_file)
        assert cfg.timezone == "Europe/Paris"
        assert cfg.undated_pattern == DEFAULT_UNDATED_PATTERN
        assert cfg.is_media(Path("photo.jpg"))

    def test_load_empty_file(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("")
        cfg = load_config(config_file)
        assert cfg.name_pattern == DEFAULT_FILE_PATTERN

    def test_empty_extensions_key(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("extensions:\n")
        with pytest.raises(ValueError, match="extensions"):
            load_config(config_file)

    def test_unparseable_yaml(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("move: [unclosed\n")
        with pytest.raises(ValueError, match="Cannot parse"):
            load_config(config_file)

    def test_non_mapping_file(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(config_file)

    def test_unknown_keys_ignored(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text(yaml.dump({"categories": {}, "move": True}))
        cfg = load_config(config_file)
        assert cfg.move is True


class TestSaveConfig:
    """Tests for persisting config to YAML."""

    def test_save_config_creates_file(self, tmp_path):
        config_file = tmp_path / "nested" / "config.yml"
        save_config(Config.from_dict({}), config_file)
        assert config_file.exists()

    def test_save_config_roundtrip(self, tmp_path):
        config_file = tmp_path / "config.yml"
        cfg = Config.from_dict({"extensions": [".jpg"], "timezone": "Asia/Tokyo"})
        save_config(cfg, config_file)
        loaded = load_config(config_file)
        assert loaded.to_dict() == cfg.to_dict()
