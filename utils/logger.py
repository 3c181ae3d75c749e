"""Logging setup for applications that embed ctxgraph.

Library modules only log through ``logging.getLogger(__name__)``. An
application that wants ctxgraph's records in a file builds a LogSetup,
installs it and closes it on shutdown::

    with LogSetup(log_level="DEBUG") as log_setup:
        print(log_setup.log_file_path)
        ...

Handlers are attached to the ctxgraph package loggers, never to the root
logger, so the application's own handlers are left alone.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from config import Config

from .runtime import get_log_dir

PACKAGE_LOGGERS = ("graph", "compression", "utils")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogSetup:
    """File (and optional console) logging for the ctxgraph packages."""

    def __init__(
        self,
        log_dir: Optional[str] = None,
        log_level: Optional[str] = None,
        log_to_console: bool = False,
        loggers: Sequence[str] = PACKAGE_LOGGERS,
    ):
        """Initialize the setup; nothing is attached until install().

        Args:
            log_dir: Directory for log files (default: ~/.ctxgraph/logs/)
            log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (default: Config.LOG_LEVEL)
            log_to_console: Also send warnings and errors to stderr
            loggers: Logger names the handlers attach to
        """
        self.log_dir = log_dir or get_log_dir()
        self.log_level = (log_level or Config.LOG_LEVEL).upper()
        self.log_to_console = log_to_console
        self.loggers = tuple(loggers)
        self.log_file_path: Optional[str] = None
        self._handlers: List[logging.Handler] = []
        self._previous_levels: Dict[str, int] = {}

    @property
    def installed(self) -> bool:
        return bool(self._handlers)

    def install(self) -> str:
        """Attach handlers to the package loggers.

        Each install writes to a new timestamped file. Installing an
        already installed setup does nothing.

        Returns:
            Path of the log file
        """
        if self.installed:
            return self.log_file_path

        level = getattr(logging, self.log_level, logging.INFO)
        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        log_path = Path(self.log_dir)
        log_path.mkdir(exist_ok=True, parents=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        log_file = log_path / f"ctxgraph_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers: List[logging.Handler] = [file_handler]

        if self.log_to_console:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.WARNING)
            console_handler.setFormatter(formatter)
            handlers.append(console_handler)

        for name in self.loggers:
            package_logger = logging.getLogger(name)
            self._previous_levels[name] = package_logger.level
            package_logger.setLevel(level)
            for handler in handlers:
                package_logger.addHandler(handler)

        self._handlers = handlers
        self.log_file_path = str(log_file)
        logging.getLogger(__name__).info(
            f"Logging installed. Level: {self.log_level}, File: {self.log_file_path}"
        )
        return self.log_file_path

    def close(self) -> None:
        """Detach and close the handlers and restore logger levels."""
        if not self.installed:
            return

        for name in self.loggers:
            package_logger = logging.getLogger(name)
            for handler in self._handlers:
                package_logger.removeHandler(handler)
            package_logger.setLevel(self._previous_levels.pop(name, logging.NOTSET))

        for handler in self._handlers:
            handler.close()
        self._handlers = []

    def __enter__(self) -> "LogSetup":
        self.install()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
