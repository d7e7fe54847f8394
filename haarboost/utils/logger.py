"""
Logging utilities for the Haar feature search.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional
import colorlog

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console_output: bool = True,
    color_output: bool = True,
    format_string: Optional[str] = None
) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file
        console_output: Whether to log to console
        color_output: Whether to color console output with colorlog
        format_string: Custom format string

    Returns:
        The root logger
    """
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f'Invalid log level: {level}')

    format_string = format_string or DEFAULT_FORMAT
    logger = logging.getLogger()
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    if console_output:
        if color_output:
            handler = colorlog.StreamHandler(sys.stdout)
            handler.setFormatter(colorlog.ColoredFormatter(f'%(log_color)s{format_string}',
                                                           log_colors=LOG_COLORS))
        else:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter(format_string))
        handler.setLevel(numeric_level)
        logger.addHandler(handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(format_string))
        file_handler.setLevel(numeric_level)
        logger.addHandler(file_handler)

    return logger


def setup_logging_from_config(system_config: Dict[str, Any], verbose: bool = False) -> logging.Logger:
    """Configure logging from the ``system.logging`` section."""
    log_config = (system_config or {}).get('logging', {}) or {}
    return setup_logging(
        level='DEBUG' if verbose else log_config.get('level', 'INFO'),
        log_file=log_config.get('file'),
        console_output=log_config.get('console', True),
        color_output=log_config.get('color', True),
        format_string=log_config.get('format'),
    )
