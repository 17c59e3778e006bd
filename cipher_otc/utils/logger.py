"""
Logging for CipherOTC.

All subsystems (fhe, oracle, ledger, events, selection, settlement, engine)
log under the ``cipher_otc`` namespace. Console output is colored; the CLI
adds a plain-text log file when --debug is given.

Handles and addresses are bytes. Any bytes passed as a log argument is
rendered as truncated hex, so a full ciphertext handle never reaches a log
sink.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import colorlog

from cipher_otc.crypto import short_hex


NAMESPACE = "cipher_otc"
LOG_FILE_NAME = "cipher_otc.log"

LINE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
COLOR_FORMAT = "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


class HandleRedactionFilter(logging.Filter):
    """Replace bytes arguments of a record with truncated hex."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, (bytes, bytearray)):
            record.msg = short_hex(bytes(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(
                short_hex(bytes(arg)) if isinstance(arg, (bytes, bytearray)) else arg
                for arg in record.args
            )
        return True


def _console_handler(level: int) -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        colorlog.ColoredFormatter(COLOR_FORMAT, datefmt=DATE_FORMAT, log_colors=LEVEL_COLORS)
    )
    handler.addFilter(HandleRedactionFilter())
    return handler


def _file_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.FileHandler(path)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LINE_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(HandleRedactionFilter())
    return handler


class CipherLogger:
    """Owns the handlers of the ``cipher_otc`` logger tree."""

    _configured = False
    log_file: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[str] = None,
        log_to_file: bool = False,
    ):
        """
        (Re)configure logging.

        Subsystem loggers are created at import time, so this only swaps
        the handlers on the namespace logger. Calling it again (e.g. when
        the CLI enables --debug) replaces the previous configuration.

        Args:
            level: Logging level for every handler
            log_dir: Directory for the log file (./logs if None)
            log_to_file: Also write LOG_FILE_NAME under log_dir
        """
        root = logging.getLogger(NAMESPACE)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        root.setLevel(level)
        root.addHandler(_console_handler(level))

        cls.log_file = None
        if log_to_file:
            directory = Path(log_dir) if log_dir else Path("logs")
            directory.mkdir(exist_ok=True, parents=True)
            cls.log_file = directory / LOG_FILE_NAME
            root.addHandler(_file_handler(cls.log_file, level))

        cls._configured = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Logger for a subsystem, e.g. 'engine' -> cipher_otc.engine."""
        if not cls._configured:
            cls.setup()
        return logging.getLogger(f"{NAMESPACE}.{name}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific subsystem"""
    return CipherLogger.get_logger(name)


def setup_logging(level: int = logging.INFO, log_dir: Optional[str] = None, log_to_file: bool = False):
    """Setup logging configuration"""
    CipherLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file)
