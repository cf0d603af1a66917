"""Logging configuration for the nodeprep package.

Every message of a run is mirrored to the terminal and appended to a
persistent log file as ``[YYYY-MM-DD HH:MM:SS] <message>``.
"""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

LOG_FORMAT = '[%(asctime)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class RunLog(logging.Handler):
    """Keeps an ordered, append-only record of (timestamp, message) pairs."""

    def __init__(self, level: int = logging.INFO):
        super().__init__(level)
        self.entries: List[Tuple[str, str]] = []

    def emit(self, record: logging.LogRecord) -> None:
        timestamp = datetime.fromtimestamp(record.created).strftime(DATE_FORMAT)
        self.entries.append((timestamp, record.getMessage()))

    def messages(self) -> List[str]:
        return [message for _, message in self.entries]


def setup_logger(
    name: str = 'nodeprep',
    level: int = logging.INFO,
    log_file: Optional[str] = None,
) -> Tuple[logging.Logger, RunLog]:
    """
    Set up the run logger with terminal and file output.

    Args:
        name: The name of the logger
        level: Terminal logging level (default: logging.INFO)
        log_file: Path of the persistent log; opened in append mode

    Returns:
        The configured logger and the RunLog collecting this run's entries
    """
    logger = logging.getLogger(name)
    # Command output goes to the file at DEBUG even when the terminal shows INFO
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # Replace handlers left over from a previous run in the same process
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        path = Path(log_file).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, mode='a', encoding='utf-8')
        except OSError as e:
            logger.warning(f"Cannot write log file {path}: {e}")
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    run_log = RunLog(level)
    logger.addHandler(run_log)
    return logger, run_log
