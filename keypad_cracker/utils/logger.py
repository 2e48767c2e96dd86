"""
Logging utility with console and file output.

Implements ILogger interface for dependency injection. Hardware adapters
get a child logger so bench logs show which device said what.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from keypad_cracker.core.exceptions import ConfigurationError
from keypad_cracker.core.interfaces import ILogger


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def parse_level(level: str) -> int:
    name = str(level).upper()
    if name not in LEVELS:
        raise ConfigurationError(f"Unknown log level '{level}', expected one of {LEVELS}")
    return getattr(logging, name)


class Logger(ILogger):
    """
    Console and/or file logger around a stdlib `logging.Logger`.

    Example:
        >>> logger = Logger.from_config({'level': 'DEBUG', 'console': True})
        >>> logger.child('scope').info("armed")
        2025-01-01 12:00:00 - KeypadCracker.scope - INFO - armed
    """

    def __init__(
        self,
        name: str = "KeypadCracker",
        level: str = "INFO",
        log_file: Optional[str] = None,
        console: bool = True
    ):
        """
        Args:
            name: Logger name
            level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL
            log_file: Optional file path, parent directories are created
            console: Whether to log to stdout
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(parse_level(level))
        self.logger.propagate = False
        self.logger.handlers.clear()

        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
        handlers = []

        if console:
            handlers.append(logging.StreamHandler(sys.stdout))

        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

        for handler in handlers:
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

        if not handlers:
            self.logger.addHandler(logging.NullHandler())

    @classmethod
    def from_config(cls, config: dict, name: str = "KeypadCracker") -> "Logger":
        """Build from the `logging` section of config.yaml."""
        return cls(
            name=name,
            level=config.get('level', 'INFO'),
            log_file=config.get('file'),
            console=config.get('console', True)
        )

    @classmethod
    def _wrap(cls, logger: logging.Logger) -> "Logger":
        wrapper = cls.__new__(cls)
        wrapper.logger = logger
        return wrapper

    def child(self, component: str) -> "Logger":
        """Logger for one component; records go through this logger's handlers."""
        return self._wrap(self.logger.getChild(component))

    def debug(self, message: str) -> None:
        self.logger.debug(message)

    def info(self, message: str) -> None:
        self.logger.info(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)
