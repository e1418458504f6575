# pricesync/config/logging_config.py

"""Per-run logging for sync runs.

Every run writes ``logs/run_<timestamp>.log``.  Each record in it is
stamped with the run id and with the listing identifier its message
is about, taken from the ``[identifier]`` prefix every component
uses.  To follow one listing through fetch, fallback, anomaly
recheck and commit::

    grep "id=B0EXAMPLE1" logs/run_20260214_153045.log
"""

import logging
import re
import sys
from datetime import datetime
from pathlib import Path

from pricesync.config.settings import Settings

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | run=%(run_id)s | id=%(identifier)s | "
    "%(name)s:%(lineno)d | %(message)s"
)

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_IDENTIFIER_PREFIX = re.compile(r"^\[([^\]\s]+)\]")


class RunContextFilter(logging.Filter):
    """Stamp records with the run id and the ``[identifier]`` prefix."""

    def __init__(self, run_id: str) -> None:
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self.run_id
        match = _IDENTIFIER_PREFIX.match(record.getMessage())
        record.identifier = match.group(1) if match else "-"
        return True


def setup_logging(
    logs_dir: Path | None = None,
    console_level: int = logging.WARNING,
) -> Path:
    """Attach the run's file and console handlers to ``pricesync``.

    Soft failures, anomalies and aborted runs reach stderr at the
    default *console_level*; everything is kept in the run file.

    Returns:
        The path of the log file created for this run.
    """
    directory = logs_dir or Settings.LOGS_DIR
    directory.mkdir(parents=True, exist_ok=True)

    run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = directory / f"run_{run_id}.log"

    root_logger = logging.getLogger("pricesync")
    root_logger.setLevel(logging.DEBUG)

    # One set of handlers per process
    if root_logger.handlers:
        return log_file

    context = RunContextFilter(run_id)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.addFilter(context)
    file_handler.setFormatter(
        logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT)
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    root_logger.info("Run %s logging to %s", run_id, log_file)

    return log_file
