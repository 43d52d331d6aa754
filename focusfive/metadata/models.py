"""
Structured side-data models: per-day action metadata, objectives, indicators,
observations, templates, the vision and periodic reviews.

Objective -> Indicator and Action -> Objective links are identifiers resolved
through the MetadataStore, never embedded copies.
"""
import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from focusfive.models import MAX_ACTIONS, CategoryType

SCHEMA_VERSION = 1


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class ActionStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    BLOCKED = "blocked"
    SKIPPED = "skipped"


class ActionOrigin(str, Enum):
    MANUAL = "manual"
    TEMPLATE = "template"
    CARRY_OVER = "carry_over"


class ObjectiveStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class MetricType(str, Enum):
    """
    Indicator value kinds. Each kind has its own validation and display rules;
    values are still stored as plain numbers in the ledger.
    """
    COUNTER = "counter"
    GAUGE = "gauge"
    DURATION = "duration"      # minutes
    PERCENTAGE = "percentage"  # 0..100
    BOOLEAN = "boolean"        # 0 or 1

    def validate(self, value) -> float:
        """Coerce ``value`` for this metric type; raise ValueError if invalid."""
        if isinstance(value, bool):
            value = 1.0 if value else 0.0
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{self.value} value must be numeric, got {value!r}")
        if not math.isfinite(number):
            raise ValueError(f"{self.value} value must be finite")

        if self is MetricType.COUNTER:
            if number < 0 or not number.is_integer():
                raise ValueError(f"counter value must be a non-negative whole number, got {value!r}")
        elif self is MetricType.DURATION:
            if number < 0:
                raise ValueError(f"duration must be non-negative minutes, got {value!r}")
        elif self is MetricType.PERCENTAGE:
            if not 0 <= number <= 100:
                raise ValueError(f"percentage must be within 0..100, got {value!r}")
        elif self is MetricType.BOOLEAN:
            if number not in (0.0, 1.0):
                raise ValueError(f"boolean value must be 0 or 1, got {value!r}")
        return number

    def format(self, value: float, unit: Optional[str] = None) -> str:
        if self is MetricType.BOOLEAN:
            return "yes" if value >= 1 else "no"
        if self is MetricType.PERCENTAGE:
            return f"{value:g}%"
        if self is MetricType.DURATION:
            hours, minutes = divmod(int(round(value)), 60)
            return f"{hours}h {minutes:02d}m" if hours else f"{minutes}m"
        if self is MetricType.COUNTER:
            text = str(int(value))
        else:
            text = f"{value:g}"
        return f"{text} {unit}" if unit else text


@dataclass
class ActionMeta:
    """Extended fields for one Action; ``text`` is the text at last save."""
    id: str
    text: str = ""
    status: ActionStatus = ActionStatus.PLANNED
    effort_minutes: Optional[int] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    objective_id: Optional[str] = None
    origin: ActionOrigin = ActionOrigin.MANUAL
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now()

    def sync_completion(self, completed: bool) -> bool:
        """
        Mirror a checkbox state into status/timestamps.

        Returns True when the stored status disagreed with the checkbox.
        """
        if completed and self.status is not ActionStatus.DONE:
            self.status = ActionStatus.DONE
            self.completed_at = self.completed_at or datetime.now()
            return True
        if not completed and self.status is ActionStatus.DONE:
            self.status = ActionStatus.PLANNED
            self.completed_at = None
            return True
        return False


@dataclass
class DayMeta:
    """Per-day sidecar. ``categories`` lists metadata in text order."""
    date: date
    version: int = SCHEMA_VERSION
    categories: Dict[CategoryType, List[ActionMeta]] = field(default_factory=dict)
    retired: List[ActionMeta] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        for category_type in CategoryType.ordered():
            self.categories.setdefault(category_type, [])
        now = datetime.now()
        if self.created_at is None:
            self.created_at = now
        if self.updated_at is None:
            self.updated_at = now

    def find(self, action_id: str) -> Optional[ActionMeta]:
        for entries in self.categories.values():
            for meta in entries:
                if meta.id == action_id:
                    return meta
        for meta in self.retired:
            if meta.id == action_id:
                return meta
        return None


@dataclass
class Objective:
    id: str
    title: str
    category: CategoryType
    status: ObjectiveStatus = ObjectiveStatus.ACTIVE
    indicator_ids: List[str] = field(default_factory=list)
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        now = datetime.now()
        if self.created_at is None:
            self.created_at = now
        if self.updated_at is None:
            self.updated_at = now


@dataclass
class Indicator:
    id: str
    name: str
    metric_type: MetricType = MetricType.COUNTER
    unit: Optional[str] = None
    target: Optional[float] = None
    frequency: Frequency = Frequency.DAILY
    category: Optional[CategoryType] = None
    created_at: Optional[datetime] = None
    archived: bool = False

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now()


@dataclass(frozen=True)
class Observation:
    """One immutable sample of an Indicator's value."""
    id: str
    indicator_id: str
    value: float
    observed_at: datetime
    note: Optional[str] = None
    action_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Template:
    """Named action texts per category, used to pre-populate a new Day."""
    name: str
    actions: Dict[CategoryType, List[str]] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def normalized(self, max_length: int) -> "Template":
        actions = {
            category_type: [text[:max_length].rstrip() for text in texts[:MAX_ACTIONS]]
            for category_type, texts in self.actions.items()
        }
        return Template(
            name=self.name.strip(),
            actions=actions,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass
class Vision:
    """Long-range vision text per category, kept in one document."""
    texts: Dict[CategoryType, str] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        now = datetime.now()
        if self.created_at is None:
            self.created_at = now
        if self.updated_at is None:
            self.updated_at = now

    def text(self, category_type: CategoryType) -> str:
        return self.texts.get(category_type, "")

    def set(self, category_type: CategoryType, text: str, max_length: int) -> bool:
        """Store ``text`` truncated to ``max_length``; returns True if it was cut."""
        text = text.strip()
        truncated = len(text) > max_length
        self.texts[category_type] = text[:max_length].rstrip()
        self.updated_at = datetime.now()
        return truncated


class ReviewPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    def identify(self, as_of: date) -> str:
        """``2025-W35`` (ISO week) or ``2025-08``."""
        if self is ReviewPeriod.WEEKLY:
            iso_year, iso_week, _ = as_of.isocalendar()
            return f"{iso_year:04d}-W{iso_week:02d}"
        return f"{as_of.year:04d}-{as_of.month:02d}"

    def bounds(self, as_of: date) -> Tuple[date, date]:
        """First and last calendar day of the period containing ``as_of``."""
        if self is ReviewPeriod.WEEKLY:
            start = as_of - timedelta(days=as_of.weekday())
            return start, start + timedelta(days=6)
        start = as_of.replace(day=1)
        next_month = (start + timedelta(days=32)).replace(day=1)
        return start, next_month - timedelta(days=1)


@dataclass
class CompletionSummary:
    total_actions: int = 0
    completed_actions: int = 0
    percentage: int = 0


@dataclass
class Review:
    """A weekly or monthly retrospective with frozen completion figures."""
    id: str
    period_type: ReviewPeriod
    period_identifier: str
    start: date
    end: date
    wins: List[str] = field(default_factory=list)
    challenges: List[str] = field(default_factory=list)
    learnings: List[str] = field(default_factory=list)
    next_actions: List[str] = field(default_factory=list)
    completion_stats: Dict[CategoryType, CompletionSummary] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now()
