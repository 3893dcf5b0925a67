from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from pulseboard.config import LOG_FILE, LOG_LEVEL

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_CONFIGURED = False


def setup_logging(level_name: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """Configure root logging once per process.

    Level comes from PULSEBOARD_LOG_LEVEL (DEBUG/INFO/WARNING/ERROR), default INFO.
    A rotating file handler is added only when PULSEBOARD_LOG_FILE is set.
    """
    global _CONFIGURED
    root = logging.getLogger()
    if _CONFIGURED:
        return root

    name = (level_name or LOG_LEVEL or "INFO").upper()
    level = getattr(logging, name, logging.INFO)
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, LOG_DATEFMT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    console.setLevel(level)
    root.addHandler(console)

    target = log_file if log_file is not None else LOG_FILE
    if target:
        path = Path(target).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        # rotate at 5MB, keep 7 backups
        fh = RotatingFileHandler(path, maxBytes=5_000_000, backupCount=7, encoding="utf-8")
        fh.setFormatter(formatter)
        fh.setLevel(level)
        root.addHandler(fh)

    _CONFIGURED = True
    logging.getLogger(__name__).info("Logging initialized at %s; file: %s", name, target or "-")
    return root
