"""Logging configuration for LAN Scanner.

Every module logs through a child of the ``lanscan`` logger. The log
file in the data directory gets everything at DEBUG; stderr only shows
warnings unless ``--debug`` is passed, so scan output stays readable.

Usage:
    from config.logging_config import setup_logging, get_logger

    setup_logging(data_dir=Path.home() / ".lan-scanner")
    logger = get_logger(__name__)
    logger.debug("NetBIOS 10.0.0.5 -> OFFICE-PC")
"""
import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional

from config.constants import STORAGE

ROOT_LOGGER_NAME = 'lanscan'

FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
CONSOLE_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'

# Third-party loggers that are noisy at INFO during discovery
LIBRARY_LOGGERS = ('zeroconf',)

_loggers: Dict[str, logging.Logger] = {}
_initialized = False


class ConsoleFormatter(logging.Formatter):
    """Compact stderr format; the level name is coloured on a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: '36',
        logging.INFO: '32',
        logging.WARNING: '33',
        logging.ERROR: '31',
        logging.CRITICAL: '35',
    }

    def __init__(self, use_colors: bool = True):
        super().__init__(fmt=CONSOLE_FORMAT, datefmt='%H:%M:%S')
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno)
        if not (self.use_colors and color and sys.stderr.isatty()):
            return super().format(record)
        # Copy so the file handler still sees the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"\033[{color}m{record.levelname}\033[0m"
        return super().format(colored)


def _file_handler(data_dir: Path) -> logging.Handler:
    data_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        data_dir / STORAGE.LOG_FILE,
        maxBytes=STORAGE.LOG_MAX_BYTES,
        backupCount=STORAGE.LOG_BACKUP_COUNT,
        encoding='utf-8',
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    return handler


def _console_handler(debug: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    handler.setFormatter(ConsoleFormatter())
    return handler


def setup_logging(
    data_dir: Optional[Path] = None,
    debug: bool = False,
    console_output: bool = True,
    log_to_file: bool = True
) -> logging.Logger:
    """Configure the ``lanscan`` logger.

    Safe to call again: existing handlers are closed and replaced.

    Args:
        data_dir: Directory for the rotating log file. Defaults to ~/.lan-scanner/
        debug: Log at DEBUG and echo debug output to stderr.
        console_output: Attach a stderr handler.
        log_to_file: Attach the rotating file handler.

    Returns:
        The ``lanscan`` logger.
    """
    global _initialized

    data_dir = Path(data_dir) if data_dir is not None else Path.home() / STORAGE.DATA_DIR_NAME

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    for handler in list(root_logger.handlers):
        handler.close()
        root_logger.removeHandler(handler)

    handlers: List[logging.Handler] = []
    if log_to_file:
        handlers.append(_file_handler(data_dir))
    if console_output:
        handlers.append(_console_handler(debug))
    for handler in handlers:
        root_logger.addHandler(handler)

    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)

    root_logger.info(
        f"Logging to {data_dir / STORAGE.LOG_FILE if log_to_file else 'stderr only'} "
        f"(debug={debug})"
    )
    _initialized = True
    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Child of the ``lanscan`` logger named after the last two parts of ``name``.

    >>> get_logger("discovery.resolver").name
    'lanscan.discovery.resolver'
    """
    short_name = '.'.join(name.split('.')[-2:])

    logger = _loggers.get(short_name)
    if logger is None:
        if not _initialized:
            # Library use without setup_logging(): still show warnings
            logging.basicConfig(level=logging.INFO)
        logger = logging.getLogger(f'{ROOT_LOGGER_NAME}.{short_name}')
        _loggers[short_name] = logger
    return logger


def log_exception(logger: logging.Logger, message: str, exc: Exception) -> None:
    """Log ``exc`` at ERROR with its traceback."""
    logger.error(f"{message}: {type(exc).__name__}: {exc}", exc_info=True)


def log_probe_command(logger: logging.Logger, command: list, returncode: int,
                      duration_ms: float) -> None:
    """Debug-log one external probe command.

    A non-zero exit is the normal outcome for ping against an empty
    address, so this never logs above DEBUG.
    """
    shown = ' '.join(command[:3]) + (' ...' if len(command) > 3 else '')
    logger.debug(f"{shown} -> rc={returncode} in {duration_ms:.1f}ms")


class LogContext:
    """Logs how long a block took, or that it failed.

    Example:
        >>> with LogContext(logger, "Sweep of 192.168.1.0/24"):
        ...     sweep()
        # "Sweep of 192.168.1.0/24 completed in 8213ms"
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.DEBUG):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.log(self.level, f"{self.operation} starting")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.monotonic() - self.start_time) * 1000
        if exc_type is not None:
            self.logger.error(f"{self.operation} failed after {self.duration_ms:.0f}ms: {exc_val}")
        else:
            self.logger.log(self.level, f"{self.operation} completed in {self.duration_ms:.0f}ms")
        return False
