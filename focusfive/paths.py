"""
Centralized filesystem paths for FocusFive data.
"""
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path


def get_data_dir() -> Path:
    """
    Return the default data directory.

    Priority:
    1. FOCUSFIVE_DATA_DIR env var
    2. ~/FocusFive
    3. <cwd>/FocusFive when no home directory can be resolved
    """
    raw = os.getenv("FOCUSFIVE_DATA_DIR", "").strip()
    if raw:
        return Path(raw).expanduser()
    try:
        return Path.home() / "FocusFive"
    except RuntimeError:
        return Path.cwd() / "FocusFive"


@dataclass(frozen=True)
class DataLayout:
    """Every file the core reads or writes beneath one base path."""
    base: Path

    @property
    def goals_dir(self) -> Path:
        return self.base / "goals"

    @property
    def meta_dir(self) -> Path:
        return self.base / "meta"

    @property
    def objectives_path(self) -> Path:
        return self.base / "objectives.json"

    @property
    def indicators_path(self) -> Path:
        return self.base / "indicators.json"

    @property
    def templates_path(self) -> Path:
        return self.base / "templates.json"

    @property
    def observations_path(self) -> Path:
        return self.base / "observations.ndjson"

    def day_path(self, day_date: date) -> Path:
        return self.goals_dir / f"{day_date.isoformat()}.md"

    def meta_path(self, day_date: date) -> Path:
        return self.meta_dir / f"{day_date.isoformat()}.meta.json"

    @property
    def vision_path(self) -> Path:
        return self.base / "vision.json"

    @property
    def reviews_dir(self) -> Path:
        return self.base / "reviews"

    def review_path(self, period_identifier: str) -> Path:
        return self.reviews_dir / f"{period_identifier}.json"
