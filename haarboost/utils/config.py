"""
Configuration management for the Haar feature search.
"""

import re
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

_IISIZE_PATTERN = re.compile(r'^\s*(\d+)\s*[xX]\s*(\d+)\s*$')


class Config:
    """YAML configuration loader with one property per section."""

    def __init__(self, config_path: str = "config.yaml"):
        """Initialize config loader with path to YAML file."""
        self.config_path = Path(config_path)
        self._config: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Build a configuration from an in-memory mapping."""
        config = cls.__new__(cls)
        config.config_path = None
        config._config = dict(data or {})
        return config

    def load(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as f:
            self._config = yaml.safe_load(f) or {}

        return self._config

    def get(self, section: str, default: Any = None) -> Any:
        """Get configuration section (e.g., 'features', 'sampling')."""
        if self._config is None:
            self.load()
        value = self._config.get(section)
        return default if value is None else value

    def set(self, section: str, key: str, value: Any) -> None:
        """Override one value, e.g. from a command line flag."""
        if self._config is None:
            self.load()
        self._config.setdefault(section, {})
        if self._config[section] is None:
            self._config[section] = {}
        self._config[section][key] = value

    @property
    def features(self) -> Dict[str, Any]:
        """Feature types and integral image size."""
        return self.get('features', {})

    @property
    def sampling(self) -> Dict[str, Any]:
        """Candidate sampling policy."""
        return self.get('sampling', {})

    @property
    def scoring(self) -> Dict[str, Any]:
        """Scoring callback selection."""
        return self.get('scoring', {})

    @property
    def search(self) -> Dict[str, Any]:
        """Batching, parallelism and progress display of the search."""
        return self.get('search', {})

    @property
    def data(self) -> Dict[str, Any]:
        return self.get('data', {})

    @property
    def output(self) -> Dict[str, Any]:
        return self.get('output', {})

    @property
    def system(self) -> Dict[str, Any]:
        return self.get('system', {})


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from YAML file."""
    config = Config(config_path)
    config.load()
    return config


def parse_iisize(value) -> Tuple[int, int]:
    """
    Parse an integral image size.

    Accepts '<width>x<height>' strings (e.g. '128x64') or (width, height) pairs.
    """
    if isinstance(value, str):
        match = _IISIZE_PATTERN.match(value)
        if match is None:
            raise ValueError(f"Invalid integral image size '{value}', expected <width>x<height>")
        return int(match.group(1)), int(match.group(2))
    try:
        width, height = value
        return int(width), int(height)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid integral image size {value!r}, expected <width>x<height>") from None
