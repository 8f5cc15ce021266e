"""
Rich-based logging system

Library modules only call ``get_logger(__name__)``; handlers are installed
once by the CLI through ``setup_logging``.
"""
import logging
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler

# Streams are resolved at write time, so redirected stdout/stderr are honoured
_stdout_console = Console()
_stderr_console = Console(stderr=True)

FILE_LOG_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"

# third-party loggers that flood INFO with handshake chatter
NOISY_LOGGERS: Sequence[str] = ("paramiko", "paramiko.transport")

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    rich_tracebacks: bool = True,
) -> None:
    """
    Install the console handler and an optional file handler on the root logger.

    Calling it again replaces the previous handlers.

    Args:
        level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL (case-insensitive)
        log_file: Optional log file; parent directories are created
        rich_tracebacks: Render exception tracebacks with rich
    """
    log_level = _resolve_level(level)

    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if isinstance(handler, (RichHandler, logging.FileHandler)):
            handler.close()

    console_handler = RichHandler(
        console=_stderr_console,
        show_path=False,
        rich_tracebacks=rich_tracebacks,
        markup=False,
    )
    console_handler.setLevel(log_level)
    root.addHandler(console_handler)

    if log_file:
        root.addHandler(_file_handler(Path(log_file), log_level))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def _resolve_level(level: str) -> int:
    name = (level or "INFO").upper()
    if name not in LEVELS:
        logging.getLogger(__name__).warning(f"Unknown log level {level!r}, using INFO")
        return logging.INFO
    return getattr(logging, name)


def _file_handler(path: Path, level: int) -> logging.Handler:
    path = path.expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
    return handler


def get_logger(name: str) -> logging.Logger:
    """Get logger instance (usually ``get_logger(__name__)``)"""
    return logging.getLogger(name)


def get_stdout_console() -> Console:
    """Console for user-facing output"""
    return _stdout_console


def get_stderr_console() -> Console:
    """Console for errors and log records"""
    return _stderr_console
