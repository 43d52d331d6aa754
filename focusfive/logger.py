"""
FocusFive logging setup.

Log layout:
- logs/system.log: routine operations (INFO+)
- logs/error.log: failures with tracebacks (ERROR/CRITICAL)
- console: only what the user should see (WARNING+)

RotatingFileHandler keeps each file bounded.
"""
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

MAX_BYTES = 5 * 1024 * 1024  # 5MB
BACKUP_COUNT = 3


def get_logs_dir() -> Path:
    """FOCUSFIVE_LOG_DIR overrides <project_root>/logs."""
    raw = os.getenv("FOCUSFIVE_LOG_DIR", "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path(__file__).parent.parent / "logs"


def setup_logging(
    log_level: int = logging.INFO,
    console_level: int = logging.WARNING
) -> logging.Logger:
    """
    Initialise the focusfive logger tree.

    Args:
        log_level: file log level (default INFO)
        console_level: console log level (default WARNING)

    Returns:
        The configured "focusfive" logger.
    """
    logs_dir = get_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("focusfive")
    logger.setLevel(logging.DEBUG)  # handlers do the filtering

    # Avoid duplicate handlers on repeated setup
    logger.handlers.clear()

    file_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_format = logging.Formatter(
        "[%(levelname)s] %(message)s"
    )

    system_handler = RotatingFileHandler(
        logs_dir / "system.log",
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8"
    )
    system_handler.setLevel(log_level)
    system_handler.setFormatter(file_format)
    logger.addHandler(system_handler)

    error_handler = RotatingFileHandler(
        logs_dir / "error.log",
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8"
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(file_format)
    logger.addHandler(error_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return a module logger.

    Args:
        name: module name, e.g. "record_codec", "metadata.store"
    """
    if name:
        return logging.getLogger(f"focusfive.{name}")
    return logging.getLogger("focusfive")


def log_corruption(source: str, line_number: int, raw_line: str, error_msg: str) -> None:
    """
    Record a corrupt data line in the dedicated dump log.

    Args:
        source: file the line came from
        line_number: 1-based line number
        raw_line: original line content
        error_msg: what went wrong
    """
    logs_dir = get_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)

    with open(logs_dir / "corruption_dump.log", "a", encoding="utf-8") as f:
        timestamp = datetime.now().isoformat()
        f.write(f"[{timestamp}] {source} line {line_number}: {error_msg}\n")
        f.write(f"  Raw: {raw_line[:500]}\n")
        f.write("-" * 50 + "\n")

    get_logger("storage").warning(f"Corrupt line in {source} (line {line_number}): {error_msg}")
