"""
Logging configuration for voxprint
"""

import logging
import sys
import warnings
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from colorama import Fore, Style, init as colorama_init

from voxprint.utils.file_utils import ensure_dir_exists


LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'

QUIET_LIBRARIES = ('matplotlib', 'PIL', 'numba', 'librosa', 'audioread')


class ColoredFormatter(logging.Formatter):
    """Formatter coloring the level name"""

    LEVEL_COLORS = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.MAGENTA + Style.BRIGHT,
    }

    def format(self, record):
        # color a copy, file handlers share the record
        colored = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(record.levelno, '')
        colored.levelname = f"{color}{record.levelname}{Style.RESET_ALL}"
        return super().format(colored)


def _handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logger(name: str = None, level: int = logging.INFO,
                 log_file: Optional[Union[str, Path]] = None, console: bool = True,
                 logs_dir: Optional[Union[str, Path]] = None) -> logging.Logger:
    """
    Configure a logger

    Args:
        name: Logger name (root logger by default)
        level: Logging level
        log_file: Path to a log file (optional)
        console: Write log records to stdout
        logs_dir: Directory for a dated log file, used when log_file is not given

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    if console:
        logger.addHandler(_handler(logging.StreamHandler(sys.stdout), level, formatter))

    if log_file is None and logs_dir is not None:
        log_file = ensure_dir_exists(logs_dir) / f"voxprint_{datetime.now():%Y%m%d}.log"

    if log_file is not None:
        ensure_dir_exists(Path(log_file).parent)
        # the file always gets debug records
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        logger.addHandler(_handler(file_handler, logging.DEBUG, formatter))

    return logger


def setup_colored_logger(name: str = None, level: int = logging.INFO,
                         log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """Same as ``setup_logger`` with colored level names on the console"""
    colorama_init(autoreset=True)

    logger = setup_logger(name, level, log_file=log_file, console=False)
    formatter = ColoredFormatter(CONSOLE_FORMAT, datefmt='%H:%M:%S')
    logger.addHandler(_handler(logging.StreamHandler(sys.stdout), level, formatter))
    return logger


def configure_external_loggers():
    """Quiet down chatty third-party libraries"""
    for library in QUIET_LIBRARIES:
        logging.getLogger(library).setLevel(logging.WARNING)

    for category in (UserWarning, FutureWarning):
        warnings.filterwarnings("ignore", category=category, module="librosa")
