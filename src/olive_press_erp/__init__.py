"""Bookkeeping toolkit for an olive-oil pressing factory.

Importing the package configures the shared ``log`` logger: INFO and above go
to a rotating file under ``<project>/.logs`` (or ``$OLIVE_PRESS_LOG_DIR``),
warnings and errors are echoed to stderr.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


__version__ = "1.0.0"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = Path(os.environ.get("OLIVE_PRESS_LOG_DIR", PROJECT_ROOT / ".logs"))
LOG_FILE = LOG_DIR / "olive_press_erp.log"


def _configure_logging() -> logging.Logger:
    """Attach the file and console handlers once per interpreter."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except (OSError, PermissionError) as exc:
        print(
            f"Warning: unable to initialize log file at '{LOG_FILE}': {exc}",
            file=sys.stderr,
        )

    # Reports go to stdout; keep stderr for problems only.
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = _configure_logging()
log.info("Logger initialized for the 'olive_press_erp' package (version %s).", __version__)
