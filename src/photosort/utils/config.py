# ABOUTME: Configuration management for the photo sorter.
# ABOUTME: Loads/saves YAML config, provides defaults, naming patterns and the time zone for calendar math.

from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from photosort.naming import DEFAULT_FILE_PATTERN, DEFAULT_UNDATED_PATTERN

DEFAULT_CONFIG = {
    "extensions": [
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".tif",
        ".webp", ".heic", ".heif", ".raw", ".cr2", ".nef",
        ".arw", ".dng", ".orf", ".rw2",
    ],
    "name_pattern": DEFAULT_FILE_PATTERN,
    "undated_pattern": DEFAULT_UNDATED_PATTERN,
    "timezone": "UTC",
    "move": False,
}


def resolve_timezone(name: str) -> tzinfo:
    """Map "UTC" or an IANA zone name to a tzinfo; ValueError if unknown."""
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError("Unknown time zone: %s" % name) from e


@dataclass
class Config:
    """Holds photo sorter configuration."""

    extensions: list = field(default_factory=lambda: list(DEFAULT_CONFIG["extensions"]))
    name_pattern: str = DEFAULT_FILE_PATTERN
    undated_pattern: str = DEFAULT_UNDATED_PATTERN
    timezone: str = "UTC"
    move: bool = False
    _extension_set: set = field(default_factory=set, init=False, repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Build a config from the defaults overlaid with data.

        Raises:
            ValueError: if a value has the wrong type or names an unknown time zone.
        """
        merged = dict(DEFAULT_CONFIG)
        merged.update(data)

        extensions = merged["extensions"]
        if not isinstance(extensions, list) or not all(isinstance(e, str) for e in extensions):
            raise ValueError("extensions must be a list of strings, got %r" % (extensions,))
        for key in ("name_pattern", "undated_pattern", "timezone"):
            if not isinstance(merged[key], str):
                raise ValueError("%s must be a string, got %r" % (key, merged[key]))
        if not isinstance(merged["move"], bool):
            raise ValueError("move must be true or false, got %r" % (merged["move"],))

        resolve_timezone(merged["timezone"])

        return cls(
            extensions=list(extensions),
            name_pattern=merged["name_pattern"],
            undated_pattern=merged["undated_pattern"],
            timezone=merged["timezone"],
            move=merged["move"],
        )

    def __post_init__(self):
        self._extension_set = {ext.lower() for ext in self.extensions}

    def is_media(self, path: Path) -> bool:
        return path.suffix.lower() in self._extension_set

    def tzinfo(self) -> tzinfo:
        """Time zone used for EXIF dates and directory spans."""
        return resolve_timezone(self.timezone)

    def to_dict(self) -> dict:
        return {
            "extensions": list(self.extensions),
            "name_pattern": self.name_pattern,
            "undated_pattern": self.undated_pattern,
            "timezone": self.timezone,
            "move": self.move,
        }


def load_config(config_path: Path) -> Config:
    """Load config from YAML file, merging with defaults.

    Raises:
        ValueError: if the file is not valid YAML or holds invalid values.
    """
    if not config_path.exists():
        return Config.from_dict({})

    with open(config_path, "r") as f:
        try:
            user_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError("Cannot parse %s: %s" % (config_path, e)) from e

    if not isinstance(user_data, dict):
        raise ValueError("Config file must hold a mapping: %s" % config_path)

    # Unknown keys are ignored so old config files keep loading.
    known = {k: v for k, v in user_data.items() if k in DEFAULT_CONFIG}
    return Config.from_dict(known)


def save_config(config: Config, config_path: Path) -> None:
    """Save config to a YAML file."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False)
