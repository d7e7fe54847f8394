"""Utility modules: configuration and logging."""

from .config import Config, load_config, parse_iisize
from .logger import setup_logging, setup_logging_from_config

__all__ = ['Config', 'load_config', 'parse_iisize', 'setup_logging', 'setup_logging_from_config']
