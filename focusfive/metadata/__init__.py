# Structured side-data: per-day action metadata, objectives, indicators,
# templates, the vision, periodic reviews and the append-only observation
# ledger.

from focusfive.metadata.models import (
    SCHEMA_VERSION,
    ActionMeta,
    ActionOrigin,
    ActionStatus,
    CompletionSummary,
    DayMeta,
    Frequency,
    Indicator,
    MetricType,
    Objective,
    ObjectiveStatus,
    Observation,
    Review,
    ReviewPeriod,
    Template,
    Vision,
    new_id,
)
from focusfive.metadata.store import MetadataStore

__all__ = [
    "SCHEMA_VERSION",
    "ActionMeta",
    "ActionOrigin",
    "ActionStatus",
    "CompletionSummary",
    "DayMeta",
    "Frequency",
    "Indicator",
    "MetadataStore",
    "MetricType",
    "Objective",
    "ObjectiveStatus",
    "Observation",
    "Review",
    "ReviewPeriod",
    "Template",
    "Vision",
    "new_id",
]
