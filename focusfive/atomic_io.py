"""
Crash-safe file writes.

Protocol: write the full content to a uniquely named temp file in the
destination directory, fsync it, then os.replace() it over the destination.
A reader sees either the old file or the new one, never a partial write.
"""
import os
import time
from pathlib import Path
from typing import Optional, Union

from focusfive.config_manager import SystemConfig, config as default_config
from focusfive.exceptions import WriteFailure
from focusfive.logger import get_logger

logger = get_logger("atomic_io")

TEMP_MARKER = ".tmp."


def temp_path_for(path: Path) -> Path:
    """Unique per process and per call: pid + nanosecond timestamp."""
    return path.with_name(f".{path.name}{TEMP_MARKER}{os.getpid()}.{time.time_ns()}")


def is_temp_file(path: Path) -> bool:
    return path.name.startswith(".") and TEMP_MARKER in path.name


def _write_once(path: Path, data: bytes) -> None:
    tmp = temp_path_for(path)
    try:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        raise


def atomic_write(
    path: Path,
    content: Union[str, bytes],
    config: Optional[SystemConfig] = None,
) -> Path:
    """
    Atomically replace ``path`` with ``content``.

    Retries up to WRITE_RETRIES times; after that raises WriteFailure and the
    destination keeps its previous content.
    """
    cfg = config or default_config
    path = Path(path)
    data = content.encode("utf-8") if isinstance(content, str) else content
    attempts = max(1, int(cfg.WRITE_RETRIES))

    last_error: Optional[OSError] = None
    for attempt in range(1, attempts + 1):
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            _write_once(path, data)
            return path
        except OSError as e:
            last_error = e
            logger.warning(f"Write attempt {attempt}/{attempts} for {path} failed: {e}")
            if attempt < attempts and cfg.WRITE_RETRY_DELAY > 0:
                time.sleep(cfg.WRITE_RETRY_DELAY)

    logger.error(f"Giving up on {path} after {attempts} attempts")
    raise WriteFailure(path, attempts, last_error)


def sweep_stale_temp_files(directory: Path, max_age_seconds: float) -> int:
    """
    Remove temp files left behind by interrupted writes.

    Only files older than ``max_age_seconds`` are touched so that another
    process's in-flight write survives.
    """
    directory = Path(directory)
    if not directory.exists():
        return 0

    cutoff = time.time() - max_age_seconds
    removed = 0
    for path in directory.iterdir():
        if not is_temp_file(path):
            continue
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except OSError:
            continue

    if removed:
        logger.info(f"Removed {removed} stale temp file(s) from {directory}")
    return removed
