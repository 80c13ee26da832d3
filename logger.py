# logger.py
"""
Logging setup shared by the service layer and the Streamlit front end.
Streams to stdout and, when the data directory is writable, appends to
DATA_DIR/logs/timesheets.log.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import config

_FORMAT = logging.Formatter(
    fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)


def get_logger(name: str, log_dir: Path | None = None) -> logging.Logger:
    """
    Returns the 'timesheets.<name>' logger, configuring the parent
    'timesheets' logger on first use.

    Args:
        name:    Short component name, e.g. 'services'.
        log_dir: Directory for the log file. Defaults to DATA_DIR/logs.
    """
    root = logging.getLogger("timesheets")

    # Avoid adding duplicate handlers on Streamlit reruns
    if not root.handlers:
        root.setLevel(config.LOG_LEVEL)

        ch = logging.StreamHandler(sys.stdout)
        ch.setFormatter(_FORMAT)
        root.addHandler(ch)

        target = log_dir or (config.DATA_DIR / "logs")
        try:
            target.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(target / "timesheets.log", mode="a", encoding="utf-8")
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(_FORMAT)
            root.addHandler(fh)
        except OSError:
            root.warning("Log directory %s is not writable; logging to stdout only", target)

    return root.getChild(name)
