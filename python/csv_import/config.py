"""
Import Settings Module

Loads engine settings from config/csv_import.yaml.
"""

import logging
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).parent.parent.parent / "config"
CONFIG_FILE_NAME = "csv_import.yaml"


@dataclass(frozen=True)
class ImportSettings:
    """Tunables for the import engine."""

    default_timezone: str = "UTC"
    default_time: str = "12:00:00"
    placeholder_account_id: int = -1  # target of rows with no account name
    uncategorized_category_id: int = 0
    max_pattern_length: int = 512
    max_match_length: int = 1024

    @classmethod
    def from_dict(cls, data: dict | None) -> "ImportSettings":
        """Build settings from a mapping, ignoring unknown keys.

        Raises:
            ValueError: If a known key carries a value of the wrong type
        """
        data = data or {}
        values = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            expected = type(f.default)
            if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
                raise ValueError(f"Setting '{f.name}' must be an integer, got {value!r}")
            if expected is str and not isinstance(value, str):
                raise ValueError(f"Setting '{f.name}' must be a string, got {value!r}")
            values[f.name] = value

        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            logger.debug(f"Ignoring unknown import settings: {sorted(unknown)}")

        return cls(**values)

    @classmethod
    def load(cls, config_dir: Path | str | None = None) -> "ImportSettings":
        """Load settings from the configuration directory.

        Args:
            config_dir: Path to configuration directory

        Returns:
            ImportSettings, defaults when the file is missing
        """
        config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        config_file = config_dir / CONFIG_FILE_NAME

        if not config_file.exists():
            logger.warning(f"Import settings file not found: {config_file}, using defaults")
            return cls()

        with open(config_file, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        settings = cls.from_dict(data.get("csv_import", data))
        logger.info(f"Loaded import settings from {config_file}")
        return settings
