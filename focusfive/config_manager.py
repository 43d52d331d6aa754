"""
Configuration Manager for FocusFive.

Every empirical constant of the core lives here and can be overridden.

Usage:
    from focusfive.config_manager import config
    limit = config.MAX_ACTION_LENGTH
"""
import os
from dataclasses import dataclass
from pathlib import Path

import yaml


CONFIG_DIR = Path(__file__).parent.parent / "config"
RUNTIME_CONFIG_PATH = CONFIG_DIR / "runtime.yaml"


@dataclass
class SystemConfig:
    """
    Runtime constants for the record model, storage and analytics.
    """

    # === Record limits ===

    # Action text cap; longer lines are truncated with a warning
    MAX_ACTION_LENGTH: int = 500

    # Category goal annotation cap
    MAX_GOAL_LENGTH: int = 100

    # Evening reflection cap
    MAX_REFLECTION_LENGTH: int = 1000

    # Per-category vision text cap
    MAX_VISION_LENGTH: int = 1000

    # Actions per category are always within [MIN, MAX]
    MAX_ACTIONS_PER_CATEGORY: int = 5
    MIN_ACTIONS_PER_CATEGORY: int = 1

    # Empty slots a fresh category starts with
    DEFAULT_ACTION_SLOTS: int = 3

    # === Parser ===

    # How far down the file the date header may appear
    HEADER_SCAN_LINES: int = 10

    # Day files larger than this are rejected with ParseError
    MAX_INPUT_CHARS: int = 2 * 1024 * 1024

    # === Storage ===

    # Atomic write attempts before WriteFailure
    WRITE_RETRIES: int = 3

    # Seconds between attempts
    WRITE_RETRY_DELAY: float = 0.05

    # Leftover temp files older than this are swept
    STALE_TEMP_SECONDS: int = 3600

    # difflib ratio above which an edited line keeps its identity
    SIMILARITY_THRESHOLD: float = 0.6

    # === Analytics ===

    # Upper bound on the backward streak scan (days)
    STREAK_MAX_LOOKBACK: int = 365

    # Trend windows (samples)
    TREND_SHORT_WINDOW: int = 7
    TREND_LONG_WINDOW: int = 30

    # Relative change between window means that counts as a trend
    TREND_THRESHOLD: float = 0.05

    # Categories below this completion percent need attention
    NEEDS_ATTENTION_PERCENT: int = 50


def _runtime_config_path() -> Path:
    raw = os.getenv("FOCUSFIVE_CONFIG", "").strip()
    if raw:
        return Path(raw).expanduser()
    return RUNTIME_CONFIG_PATH


def _load_runtime_config(path: Path) -> dict:
    """Load runtime overrides if the file exists."""
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def get_config(path: Path = None) -> SystemConfig:
    """
    Build a config instance.

    Priority: runtime.yaml > defaults
    """
    base = SystemConfig()
    overrides = _load_runtime_config(path or _runtime_config_path())

    for key, value in overrides.items():
        if hasattr(base, key):
            setattr(base, key, value)

    return base


# Default instance; components accept an explicit config instead
config = get_config()
