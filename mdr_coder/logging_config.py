"""
Logging configuration for the MDR organisation coder
Coloured console output plus an optional rotating log file per data source
"""

import logging
import logging.handlers
from datetime import date
from pathlib import Path
from typing import Optional
import colorama

# Initialize colorama for Windows color support
colorama.init()

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Libraries whose INFO output drowns the coding progress lines
QUIET_LOGGERS = ('sqlalchemy.engine',)


class ColoredFormatter(logging.Formatter):
    """Colours the level name of console records"""

    COLORS = {
        'DEBUG': colorama.Fore.CYAN,
        'INFO': colorama.Fore.GREEN,
        'WARNING': colorama.Fore.YELLOW,
        'ERROR': colorama.Fore.RED,
        'CRITICAL': colorama.Fore.RED + colorama.Style.BRIGHT,
    }

    def format(self, record):
        # Colour a copy so file handlers sharing the record keep plain level names
        record = logging.makeLogRecord(record.__dict__)
        colour = self.COLORS.get(record.levelname)
        if colour:
            record.levelname = f"{colour}{record.levelname}{colorama.Style.RESET_ALL}"
        return super().format(record)


def run_log_path(log_dir: str, source_id: Optional[int] = None, run_date: Optional[date] = None) -> Path:
    """
    Default log file for a coding run, one per source and day

    e.g. logs/org_coding_100120_20240131.log, or org_coding_all_... without a source
    """
    stamp = (run_date or date.today()).strftime('%Y%m%d')
    source = source_id if source_id is not None else 'all'
    return Path(log_dir) / f"org_coding_{source}_{stamp}.log"


def setup_logging(
    log_file: Optional[str] = None,
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    source_id: Optional[int] = None,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Setup application logging

    Args:
        log_file: Explicit log file path
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for the per-source run log, used when log_file is not given
        source_id: Data source being coded, part of the run log name
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup files to keep

    Returns:
        Configured root logger
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper()))
    root.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console_handler)

    if log_file is None and log_dir is not None:
        log_file = str(run_log_path(log_dir, source_id))

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """Get logger instance for a module"""
    return logging.getLogger(name)
