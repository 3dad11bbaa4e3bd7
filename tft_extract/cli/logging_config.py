"""
CLI Logging Configuration.

Sets up file logging so every analysis run leaves a record of skipped files,
fallbacks and fit warnings, with an optional Rich console handler.
"""

from __future__ import annotations

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "tft_extract"
LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def get_log_file_path(log_dir: Path | str = "logs") -> Path:
    """Path to today's log file."""
    return Path(log_dir) / f"tft_extract_{datetime.now().strftime('%Y%m%d')}.log"


def setup_logging(log_dir: Path | str = "logs", verbose: bool = False) -> Path:
    """
    Set up logging for a CLI run.

    Parameters
    ----------
    log_dir : Path or str
        Directory for log files (default: "logs")
    verbose : bool
        Also print DEBUG-level records to the console through Rich

    Returns
    -------
    Path
        Path to the current log file

    Notes
    -----
    - Rotating log files (max 10 MB, keeps 5 backups)
    - Log format: timestamp | level | module | message
    - Captures everything under the 'tft_extract' logger
    - Calling it again replaces the handlers instead of stacking them
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = get_log_file_path(log_dir)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    package_logger.setLevel(logging.DEBUG)
    package_logger.addHandler(file_handler)

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=verbose,
    )
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.addHandler(console_handler)

    package_logger.info("=" * 80)
    package_logger.info("Analysis Session Started")
    package_logger.info("=" * 80)

    return log_file
