"""
Derived statistics over reconciled day records and the observation ledger.

Every query reads through PersistenceCoordinator.load_day(persist=False), so
analytics never writes. History scans are windowed: a streak loads only the
days it walks, a trend loads only its long window.
"""
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Dict, List, Optional, Sequence

from focusfive.config_manager import SystemConfig, config as default_config
from focusfive.logger import get_logger
from focusfive.metadata.models import (
    CompletionSummary,
    Indicator,
    MetricType,
    Objective,
    ObjectiveStatus,
    Review,
    ReviewPeriod,
    new_id,
)
from focusfive.metadata.store import MetadataStore
from focusfive.models import CategoryType, Day
from focusfive.persistence import PersistenceCoordinator

logger = get_logger("analytics")


# ==========================================
# Result types
# ==========================================

@dataclass
class CategoryStats:
    category: CategoryType
    completed: int
    total: int
    percentage: int


@dataclass
class CompletionStats:
    categories: List[CategoryStats]
    completed: int
    total: int
    percentage: int
    best: Optional[CategoryType] = None
    needs_attention: List[CategoryType] = field(default_factory=list)


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


@dataclass
class TrendResult:
    direction: Trend
    short_mean: float
    long_mean: float
    change: float
    samples: int


@dataclass
class IndicatorProgress:
    indicator_id: str
    current: Optional[float]
    target: Optional[float]
    progress: float
    no_target: bool = False
    no_data: bool = False


@dataclass
class ObjectiveProgress:
    objective_id: str
    progress: float
    indicators: List[IndicatorProgress] = field(default_factory=list)
    unmeasured: bool = False
    missing_indicators: List[str] = field(default_factory=list)


@dataclass
class PeriodSummary:
    start: date
    end: date
    days_recorded: int
    categories: List[CategoryStats]
    completed: int
    total: int
    percentage: int


# ==========================================
# Pure computations
# ==========================================

def _percentage(completed: int, total: int) -> int:
    return completed * 100 // total if total else 0


def _aggregate(days: Sequence[Day]) -> List[CategoryStats]:
    stats = []
    for category_type in CategoryType.ordered():
        completed = total = 0
        for day in days:
            category = day.category(category_type)
            completed += category.completed_count()
            total += len(category.actions)
        stats.append(CategoryStats(category_type, completed, total, _percentage(completed, total)))
    return stats


def compute_completion_stats(day: Day, attention_threshold: int = 50) -> CompletionStats:
    """Per-category and overall completion for one Day."""
    categories = _aggregate([day])
    completed = sum(c.completed for c in categories)
    total = sum(c.total for c in categories)

    best = None
    best_percentage = -1
    for stats in categories:
        # strict > keeps the first category on ties
        if stats.total and stats.percentage > best_percentage:
            best, best_percentage = stats.category, stats.percentage

    return CompletionStats(
        categories=categories,
        completed=completed,
        total=total,
        percentage=_percentage(completed, total),
        best=best,
        needs_attention=[
            c.category for c in categories
            if c.total > 0 and c.percentage < attention_threshold
        ],
    )


def classify_trend(short_mean: float, long_mean: float, threshold: float = 0.05) -> Trend:
    if long_mean == 0:
        return Trend.UP if short_mean > 0 else Trend.STABLE
    change = (short_mean - long_mean) / abs(long_mean)
    if change > threshold:
        return Trend.UP
    if change < -threshold:
        return Trend.DOWN
    return Trend.STABLE


def compute_trend(
    series: Sequence[float],
    short_window: int = 7,
    long_window: int = 30,
    threshold: float = 0.05,
) -> TrendResult:
    """
    Compare the mean of the last ``short_window`` samples with the mean of the
    last ``long_window`` samples. ``series`` is ordered oldest first.
    """
    values = [float(v) for v in series]
    if len(values) < 2:
        mean = values[0] if values else 0.0
        return TrendResult(Trend.STABLE, mean, mean, 0.0, len(values))

    short = values[-short_window:]
    long = values[-long_window:]
    short_mean = sum(short) / len(short)
    long_mean = sum(long) / len(long)
    change = (short_mean - long_mean) / abs(long_mean) if long_mean else 0.0
    return TrendResult(
        direction=classify_trend(short_mean, long_mean, threshold),
        short_mean=short_mean,
        long_mean=long_mean,
        change=change,
        samples=len(values),
    )


def _indicator_progress(indicator: Indicator, current: Optional[float]) -> IndicatorProgress:
    if current is None:
        return IndicatorProgress(indicator.id, None, indicator.target, 0.0, no_data=True)
    if indicator.metric_type is MetricType.BOOLEAN:
        return IndicatorProgress(indicator.id, current, indicator.target, 1.0 if current >= 1 else 0.0)
    if not indicator.target or not math.isfinite(indicator.target):
        return IndicatorProgress(indicator.id, current, indicator.target, 0.0, no_target=True)
    progress = max(0.0, min(1.0, current / indicator.target))
    return IndicatorProgress(indicator.id, current, indicator.target, progress)


# ==========================================
# Engine
# ==========================================

class AnalyticsEngine:
    """Read-only statistics over one data directory."""

    def __init__(
        self,
        coordinator: PersistenceCoordinator,
        store: Optional[MetadataStore] = None,
        config: Optional[SystemConfig] = None,
    ):
        self.coordinator = coordinator
        self.store = store or coordinator.store
        self.config = config or coordinator.config or default_config

    def _load(self, day_date: date) -> Day:
        return self.coordinator.load_day(day_date, persist=False)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------
    def completion_stats(self, day: Day) -> CompletionStats:
        return compute_completion_stats(day, self.config.NEEDS_ATTENTION_PERCENT)

    def day_stats(self, day_date: date) -> CompletionStats:
        return self.completion_stats(self._load(day_date))

    def streak(self, as_of: Optional[date] = None, max_lookback: Optional[int] = None) -> int:
        """
        Consecutive days with at least one completed action, ending at the most
        recent record on or before ``as_of``.
        """
        limit = max_lookback if max_lookback is not None else self.config.STREAK_MAX_LOOKBACK
        as_of = as_of or date.today()
        start = self.coordinator.latest_record_on_or_before(as_of, lookback=limit)
        if start is None:
            return 0

        count = 0
        current = start
        while count < limit:
            if not self.coordinator.has_record(current):
                break
            if not self._load(current).has_completion():
                break
            count += 1
            current -= timedelta(days=1)
        return count

    # ------------------------------------------------------------------
    # Trends
    # ------------------------------------------------------------------
    def category_series(
        self, category: CategoryType, as_of: Optional[date] = None, days: Optional[int] = None
    ) -> List[float]:
        """Completion percentages for recorded days in the window, oldest first."""
        as_of = as_of or date.today()
        days = days or self.config.TREND_LONG_WINDOW
        earliest = as_of - timedelta(days=days - 1)
        series = []
        for day_date in self.coordinator.list_dates():
            if earliest <= day_date <= as_of:
                series.append(float(self._load(day_date).category(category).completion_percentage()))
        return series

    def indicator_series(self, indicator_id: str, limit: Optional[int] = None) -> List[float]:
        """Latest ``limit`` observation values, oldest first."""
        limit = limit or self.config.TREND_LONG_WINDOW
        recent = self.store.recent_observations(indicator_id, limit=limit)
        return [o.value for o in reversed(recent)]

    def trend(self, series: Sequence[float]) -> TrendResult:
        return compute_trend(
            series,
            self.config.TREND_SHORT_WINDOW,
            self.config.TREND_LONG_WINDOW,
            self.config.TREND_THRESHOLD,
        )

    def category_trend(self, category: CategoryType, as_of: Optional[date] = None) -> TrendResult:
        return self.trend(self.category_series(category, as_of))

    def indicator_trend(self, indicator_id: str) -> TrendResult:
        return self.trend(self.indicator_series(indicator_id))

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------
    def indicator_progress(self, indicator: Indicator) -> IndicatorProgress:
        latest = self.store.latest_observation(indicator.id)
        return _indicator_progress(indicator, latest.value if latest else None)

    def objective_progress(self, objective: Objective) -> ObjectiveProgress:
        """Unweighted mean of indicator progress; zero indicators is unmeasured, not done."""
        if not objective.indicator_ids:
            return ObjectiveProgress(objective.id, 0.0, unmeasured=True)

        indicators: Dict[str, Indicator] = {i.id: i for i in self.store.load_indicators()}
        results: List[IndicatorProgress] = []
        missing: List[str] = []
        total = 0.0
        for indicator_id in objective.indicator_ids:
            indicator = indicators.get(indicator_id)
            if indicator is None:
                missing.append(indicator_id)
                logger.warning(f"Objective {objective.id} references unknown indicator {indicator_id}")
                continue
            progress = self.indicator_progress(indicator)
            results.append(progress)
            total += progress.progress

        return ObjectiveProgress(
            objective_id=objective.id,
            progress=total / len(objective.indicator_ids),
            indicators=results,
            missing_indicators=missing,
        )

    def objectives_overview(
        self, category: Optional[CategoryType] = None, include_archived: bool = False
    ) -> List[ObjectiveProgress]:
        overview = []
        for objective in self.store.load_objectives():
            if category is not None and objective.category is not category:
                continue
            if not include_archived and objective.status is ObjectiveStatus.ARCHIVED:
                continue
            overview.append(self.objective_progress(objective))
        return overview

    # ------------------------------------------------------------------
    # Review periods
    # ------------------------------------------------------------------
    def period_summary(self, start: date, end: date) -> PeriodSummary:
        """Totals over recorded days in [start, end]; unrecorded days are skipped."""
        days = [self._load(d) for d in self.coordinator.list_dates() if start <= d <= end]
        categories = _aggregate(days)
        completed = sum(c.completed for c in categories)
        total = sum(c.total for c in categories)
        return PeriodSummary(
            start=start,
            end=end,
            days_recorded=len(days),
            categories=categories,
            completed=completed,
            total=total,
            percentage=_percentage(completed, total),
        )

    def week_summary(self, as_of: date) -> PeriodSummary:
        return self.period_summary(*ReviewPeriod.WEEKLY.bounds(as_of))

    def month_summary(self, as_of: date) -> PeriodSummary:
        return self.period_summary(*ReviewPeriod.MONTHLY.bounds(as_of))

    def draft_review(self, period: ReviewPeriod, as_of: date) -> Review:
        """
        A Review of the period containing ``as_of`` with its completion figures
        filled in. Nothing is written; MetadataStore.save_review stores it.
        """
        start, end = period.bounds(as_of)
        summary = self.period_summary(start, end)
        return Review(
            id=new_id("rev"),
            period_type=period,
            period_identifier=period.identify(as_of),
            start=start,
            end=end,
            completion_stats={
                c.category: CompletionSummary(c.total, c.completed, c.percentage)
                for c in summary.categories
            },
        )
