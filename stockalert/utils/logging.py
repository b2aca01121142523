import os
import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}"
DEFAULT_LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "logs")
LOG_FILENAME = "stockalert.log"


def normalize_level(level: Optional[str]) -> str:
    """Map LOG_LEVEL to a loguru level name; unknown values fall back to INFO."""
    name = (level or "").strip().upper()
    if not name:
        return "INFO"
    try:
        logger.level(name)
    except ValueError:
        return "INFO"
    return name


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> str:
    """
    Console sink for the container, plus stockalert.log rotated at 10 MB
    (7 gzipped files kept).

    Returns:
        Path of the log file
    """
    effective_level = normalize_level(level)
    logger.remove()
    logger.add(sys.stdout, level=effective_level, format=LOG_FORMAT, backtrace=False, diagnose=False)

    log_dir = log_dir or DEFAULT_LOG_DIR
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, LOG_FILENAME)
    logger.add(
        log_file,
        level=effective_level,
        format=LOG_FORMAT,
        rotation="10 MB",
        retention=7,
        compression="gz",
        backtrace=True,
        diagnose=False,
        enqueue=True
    )

    if effective_level != (level or "").strip().upper():
        logger.warning(f"Unknown LOG_LEVEL {level!r}, using {effective_level}")
    logger.info(f"Logging at {effective_level}: console + {log_file}")
    return log_file
