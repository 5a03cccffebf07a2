# trackerman/config/logging_config.py

"""Per-run timestamped logging configuration for trackerman.

Every launch writes to its own file inside ``logs/`` (for example
``logs/run_20261018_153045.log``).  All ``trackerman.*`` loggers share
that handler, so scheduler cycles running on the APScheduler worker
thread and commands issued from the CLI end up in one place.

The thread name is part of the file format: a record from a timed cycle
reads ``APScheduler`` while an on-demand fetch reads ``MainThread``.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from trackerman.config.settings import Settings

_DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS: tuple[str, ...] = ("apscheduler", "curl_cffi")


def setup_logging(
    logs_dir: Path | None = None,
    console_level: int = logging.WARNING,
) -> Path:
    """Initialise the ``trackerman`` logger for the current run.

    Args:
        logs_dir: Directory for the run log, ``Settings.LOGS_DIR`` by default.
        console_level: Minimum level echoed to stderr.

    Returns:
        The :class:`~pathlib.Path` to the log file created for this run.
    """
    directory = logs_dir or Settings.LOGS_DIR
    directory.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = directory / f"run_{timestamp}.log"

    root_logger = logging.getLogger("trackerman")
    root_logger.setLevel(logging.DEBUG)

    # Repeated calls (tests, CLI re-entry) keep the first handlers
    if root_logger.handlers:
        return log_file

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info("Logging initialised, log file: %s", log_file)
    return log_file
