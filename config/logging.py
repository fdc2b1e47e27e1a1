"""
Logging for Field Report Entity Resolution.

All components log under the `field_reports` root logger; each module asks for
a child (`field_reports.resolver`, `field_reports.mentions`, ...) so resolver
traces can be filtered apart from report ingestion.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from config.settings import settings

ROOT_LOGGER = "field_reports"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _log_dir() -> Optional[Path]:
    if not settings.LOG_DIR:
        return None
    path = Path(settings.LOG_DIR)
    if not path.is_absolute():
        path = settings.project_root / path
    path.mkdir(parents=True, exist_ok=True)
    return path


def setup_logging(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Configure the root resolution logger.

    Console output follows DEBUG; the file under LOG_DIR (when set) always
    keeps debug-level resolution traces. Safe to call more than once.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_dir = _log_dir()
    if log_dir is not None:
        file_handler = logging.FileHandler(log_dir / f"{name}.log")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(component: str) -> logging.Logger:
    """Child logger for one component, e.g. get_logger("resolver")."""
    return logging.getLogger(f"{ROOT_LOGGER}.{component}")


logger = setup_logging()
