"""
MetadataStore: JSON side-stores and the NDJSON observation ledger.

Layout (under the base path, see focusfive.paths.DataLayout):
    meta/YYYY-MM-DD.meta.json   per-day action metadata
    objectives.json             replace-on-write collection
    indicators.json             replace-on-write collection
    templates.json              replace-on-write collection
    vision.json                 single document, one text per category
    reviews/2025-W35.json       one document per review period (or 2025-08.json)
    observations.ndjson         append-only ledger, one observation per line

Every file carries a ``version``. Unreadable files degrade to empty and the
problem is recorded on ``issues``; nothing here aborts a load.
"""
import json
import math
import re
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Type

from focusfive.atomic_io import atomic_write
from focusfive.config_manager import SystemConfig, config as default_config
from focusfive.exceptions import MetadataDegraded, SchemaVersionMismatch, ValidationError
from focusfive.logger import get_logger, log_corruption
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
from focusfive.models import CategoryType
from focusfive.paths import DataLayout

logger = get_logger("metadata.store")

READ_CHUNK_SIZE = 8192

REVIEW_ID_RE = re.compile(r"^\d{4}-(W\d{2}|\d{2})$")


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------
def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_datetime(raw: Any) -> Optional[datetime]:
    if not isinstance(raw, str):
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_date(raw: Any) -> Optional[date]:
    if not isinstance(raw, str):
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def _enum(cls: Type[Enum], raw: Any, default: Optional[Enum]) -> Optional[Enum]:
    try:
        return cls(raw)
    except ValueError:
        return default


def _opt_str(raw: Any) -> Optional[str]:
    return raw if isinstance(raw, str) and raw else None


def _opt_float(raw: Any) -> Optional[float]:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    # json accepts NaN, Infinity, 1e999 and integers too large for a float
    try:
        value = float(raw)
    except OverflowError:
        return None
    return value if math.isfinite(value) else None


def _opt_int(raw: Any) -> Optional[int]:
    value = _opt_float(raw)
    return int(value) if value is not None else None


# ---------------------------------------------------------------------------
# Record <-> dict
# ---------------------------------------------------------------------------
_ACTION_META_KEYS = {
    "id", "text", "status", "effort_minutes", "notes",
    "created_at", "completed_at", "objective_id", "origin",
}
_DAY_META_KEYS = {"version", "date", "created_at", "updated_at", "categories", "retired"}


def _unknown_keys(d: dict, known: set) -> Dict[str, Any]:
    """Fields written by a newer schema; carried through a rewrite untouched."""
    return {k: v for k, v in d.items() if k not in known}


def _action_meta_to_dict(m: ActionMeta) -> dict:
    payload = dict(m.extra)
    payload.update({
        "id": m.id,
        "text": m.text,
        "status": m.status.value,
        "effort_minutes": m.effort_minutes,
        "notes": m.notes,
        "created_at": _iso(m.created_at),
        "completed_at": _iso(m.completed_at),
        "objective_id": m.objective_id,
        "origin": m.origin.value,
    })
    return payload


def _dict_to_action_meta(d: dict) -> Optional[ActionMeta]:
    if not isinstance(d, dict) or not _opt_str(d.get("id")):
        return None
    return ActionMeta(
        id=d["id"],
        text=d.get("text") if isinstance(d.get("text"), str) else "",
        status=_enum(ActionStatus, d.get("status"), ActionStatus.PLANNED),
        effort_minutes=_opt_int(d.get("effort_minutes")),
        notes=_opt_str(d.get("notes")),
        created_at=_parse_datetime(d.get("created_at")),
        completed_at=_parse_datetime(d.get("completed_at")),
        objective_id=_opt_str(d.get("objective_id")),
        origin=_enum(ActionOrigin, d.get("origin"), ActionOrigin.MANUAL),
        extra=_unknown_keys(d, _ACTION_META_KEYS),
    )


def _day_meta_to_dict(meta: DayMeta) -> dict:
    payload = dict(meta.extra)
    payload.update({
        # a file from a newer schema keeps its version number
        "version": max(meta.version, SCHEMA_VERSION),
        "date": meta.date.isoformat(),
        "created_at": _iso(meta.created_at),
        "updated_at": _iso(meta.updated_at),
        "categories": {
            category_type.value: [_action_meta_to_dict(m) for m in meta.categories[category_type]]
            for category_type in CategoryType.ordered()
        },
        "retired": [_action_meta_to_dict(m) for m in meta.retired],
    })
    return payload


def _dict_to_day_meta(d: dict, fallback_date: date) -> DayMeta:
    categories: Dict[CategoryType, List[ActionMeta]] = {}
    raw_categories = d.get("categories") if isinstance(d.get("categories"), dict) else {}
    for category_type in CategoryType.ordered():
        entries = raw_categories.get(category_type.value)
        if not isinstance(entries, list):
            entries = []
        categories[category_type] = [m for m in map(_dict_to_action_meta, entries) if m]
    retired_raw = d.get("retired") if isinstance(d.get("retired"), list) else []
    version = d.get("version")
    if isinstance(version, bool) or not isinstance(version, int) or version < SCHEMA_VERSION:
        version = SCHEMA_VERSION
    return DayMeta(
        date=_parse_date(d.get("date")) or fallback_date,
        version=version,
        categories=categories,
        retired=[m for m in map(_dict_to_action_meta, retired_raw) if m],
        created_at=_parse_datetime(d.get("created_at")),
        updated_at=_parse_datetime(d.get("updated_at")),
        extra=_unknown_keys(d, _DAY_META_KEYS),
    )


def _objective_to_dict(o: Objective) -> dict:
    return {
        "id": o.id,
        "title": o.title,
        "category": o.category.value,
        "status": o.status.value,
        "indicator_ids": list(o.indicator_ids),
        "description": o.description,
        "created_at": _iso(o.created_at),
        "updated_at": _iso(o.updated_at),
    }


def _dict_to_objective(d: dict) -> Optional[Objective]:
    if not isinstance(d, dict) or not _opt_str(d.get("id")):
        return None
    indicator_ids = d.get("indicator_ids")
    return Objective(
        id=d["id"],
        title=d.get("title") if isinstance(d.get("title"), str) else "",
        category=_enum(CategoryType, d.get("category"), CategoryType.WORK),
        status=_enum(ObjectiveStatus, d.get("status"), ObjectiveStatus.ACTIVE),
        indicator_ids=[i for i in indicator_ids if isinstance(i, str)]
        if isinstance(indicator_ids, list) else [],
        description=_opt_str(d.get("description")),
        created_at=_parse_datetime(d.get("created_at")),
        updated_at=_parse_datetime(d.get("updated_at")),
    )


def _indicator_to_dict(i: Indicator) -> dict:
    return {
        "id": i.id,
        "name": i.name,
        "metric_type": i.metric_type.value,
        "unit": i.unit,
        "target": i.target,
        "frequency": i.frequency.value,
        "category": i.category.value if i.category else None,
        "created_at": _iso(i.created_at),
        "archived": i.archived,
    }


def _dict_to_indicator(d: dict) -> Optional[Indicator]:
    if not isinstance(d, dict) or not _opt_str(d.get("id")):
        return None
    return Indicator(
        id=d["id"],
        name=d.get("name") if isinstance(d.get("name"), str) else "",
        metric_type=_enum(MetricType, d.get("metric_type"), MetricType.GAUGE),
        unit=_opt_str(d.get("unit")),
        target=_opt_float(d.get("target")),
        frequency=_enum(Frequency, d.get("frequency"), Frequency.DAILY),
        category=_enum(CategoryType, d.get("category"), None),
        created_at=_parse_datetime(d.get("created_at")),
        archived=bool(d.get("archived", False)),
    )


def _template_to_dict(t: Template) -> dict:
    return {
        "name": t.name,
        "actions": {k.value: list(v) for k, v in t.actions.items()},
        "created_at": _iso(t.created_at),
        "updated_at": _iso(t.updated_at),
    }


def _dict_to_template(d: dict) -> Optional[Template]:
    if not isinstance(d, dict) or not _opt_str(d.get("name")):
        return None
    actions: Dict[CategoryType, List[str]] = {}
    raw = d.get("actions") if isinstance(d.get("actions"), dict) else {}
    for key, texts in raw.items():
        category_type = _enum(CategoryType, key, None)
        if category_type is None or not isinstance(texts, list):
            continue
        actions[category_type] = [t for t in texts if isinstance(t, str)]
    return Template(
        name=d["name"],
        actions=actions,
        created_at=_parse_datetime(d.get("created_at")),
        updated_at=_parse_datetime(d.get("updated_at")),
    )


def _vision_to_dict(v: Vision) -> dict:
    return {
        "categories": {k.value: v.texts[k] for k in CategoryType.ordered() if k in v.texts},
        "created_at": _iso(v.created_at),
        "updated_at": _iso(v.updated_at),
    }


def _dict_to_vision(d: dict) -> Vision:
    raw = d.get("categories") if isinstance(d.get("categories"), dict) else {}
    texts: Dict[CategoryType, str] = {}
    for key, text in raw.items():
        category_type = _enum(CategoryType, key, None)
        if category_type is not None and isinstance(text, str):
            texts[category_type] = text
    return Vision(
        texts=texts,
        created_at=_parse_datetime(d.get("created_at")),
        updated_at=_parse_datetime(d.get("updated_at")),
    )


def _review_to_dict(r: Review) -> dict:
    return {
        "id": r.id,
        "period_type": r.period_type.value,
        "period_identifier": r.period_identifier,
        "start_date": r.start.isoformat(),
        "end_date": r.end.isoformat(),
        "wins": list(r.wins),
        "challenges": list(r.challenges),
        "learnings": list(r.learnings),
        "next_actions": list(r.next_actions),
        "completion_stats": {
            k.value: {
                "total_actions": s.total_actions,
                "completed_actions": s.completed_actions,
                "percentage": s.percentage,
            }
            for k, s in r.completion_stats.items()
        },
        "created_at": _iso(r.created_at),
    }


def _str_list(raw: Any) -> List[str]:
    return [s for s in raw if isinstance(s, str)] if isinstance(raw, list) else []


def _dict_to_review(d: dict, fallback_identifier: str) -> Optional[Review]:
    if not isinstance(d, dict):
        return None
    period_type = _enum(ReviewPeriod, d.get("period_type"), None)
    start = _parse_date(d.get("start_date"))
    end = _parse_date(d.get("end_date"))
    if period_type is None or start is None or end is None:
        return None
    stats: Dict[CategoryType, CompletionSummary] = {}
    raw_stats = d.get("completion_stats") if isinstance(d.get("completion_stats"), dict) else {}
    for key, entry in raw_stats.items():
        category_type = _enum(CategoryType, key, None)
        if category_type is None or not isinstance(entry, dict):
            continue
        stats[category_type] = CompletionSummary(
            total_actions=_opt_int(entry.get("total_actions")) or 0,
            completed_actions=_opt_int(entry.get("completed_actions")) or 0,
            percentage=_opt_int(entry.get("percentage")) or 0,
        )
    return Review(
        id=_opt_str(d.get("id")) or new_id("rev"),
        period_type=period_type,
        period_identifier=_opt_str(d.get("period_identifier")) or fallback_identifier,
        start=start,
        end=end,
        wins=_str_list(d.get("wins")),
        challenges=_str_list(d.get("challenges")),
        learnings=_str_list(d.get("learnings")),
        next_actions=_str_list(d.get("next_actions")),
        completion_stats=stats,
        created_at=_parse_datetime(d.get("created_at")),
    )


def _observation_to_dict(o: Observation) -> dict:
    return {
        "version": SCHEMA_VERSION,
        "id": o.id,
        "indicator_id": o.indicator_id,
        "value": o.value,
        "observed_at": _iso(o.observed_at),
        "note": o.note,
        "action_id": o.action_id,
        "created_at": _iso(o.created_at),
    }


def _dict_to_observation(d: dict) -> Optional[Observation]:
    if not isinstance(d, dict):
        return None
    value = _opt_float(d.get("value"))
    observed_at = _parse_datetime(d.get("observed_at"))
    if not _opt_str(d.get("id")) or not _opt_str(d.get("indicator_id")):
        return None
    if value is None or observed_at is None:
        return None
    return Observation(
        id=d["id"],
        indicator_id=d["indicator_id"],
        value=value,
        observed_at=observed_at,
        note=_opt_str(d.get("note")),
        action_id=_opt_str(d.get("action_id")),
        created_at=_parse_datetime(d.get("created_at")),
    )


def _read_lines_reversed(path: Path, chunk_size: int = READ_CHUNK_SIZE) -> Iterator[Tuple[int, str]]:
    """Yield (line_number_from_end, line) starting at the end of the file."""
    with open(path, "rb") as f:
        f.seek(0, 2)
        position = f.tell()
        remainder = b""
        index = 0
        while position > 0:
            step = min(chunk_size, position)
            position -= step
            f.seek(position)
            block = f.read(step) + remainder
            parts = block.split(b"\n")
            remainder = parts[0]
            for raw in reversed(parts[1:]):
                if raw.strip():
                    index += 1
                    yield index, raw.decode("utf-8", errors="replace")
        if remainder.strip():
            index += 1
            yield index, remainder.decode("utf-8", errors="replace")


class MetadataStore:
    """Reads and writes every structured side-store under one base path."""

    def __init__(self, base_dir: Path, config: Optional[SystemConfig] = None):
        self.layout = DataLayout(Path(base_dir))
        self.config = config or default_config
        self.issues: List[MetadataDegraded] = []

    # ------------------------------------------------------------------
    # Shared plumbing
    # ------------------------------------------------------------------
    def _degrade(self, issue: MetadataDegraded) -> None:
        """Record a problem once per (path, reason); repeats on reload are dropped."""
        for known in self.issues:
            if known.path == issue.path and known.reason == issue.reason:
                return
        self.issues.append(issue)
        logger.warning(issue.message)

    def _clear_issues(self, path: Path) -> None:
        self.issues = [i for i in self.issues if i.path != path]

    def issues_for(self, path: Path) -> List[MetadataDegraded]:
        return [i for i in self.issues if i.path == path]

    def _check_version(self, path: Path, raw_version: Any) -> None:
        if raw_version is None:
            return
        if isinstance(raw_version, bool) or not isinstance(raw_version, int):
            self._degrade(SchemaVersionMismatch(path, raw_version, SCHEMA_VERSION))
        elif raw_version > SCHEMA_VERSION:
            self._degrade(SchemaVersionMismatch(path, raw_version, SCHEMA_VERSION))

    def _read_document(self, path: Path) -> Optional[dict]:
        # issues describe the file as last read
        self._clear_issues(path)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self._degrade(MetadataDegraded(path, f"invalid JSON ({e})"))
            return None
        except OSError as e:
            self._degrade(MetadataDegraded(path, f"unreadable ({e})"))
            return None
        if not isinstance(data, dict):
            self._degrade(MetadataDegraded(path, "top-level value is not an object"))
            return None
        self._check_version(path, data.get("version"))
        return data

    def _read_collection(self, path: Path, key: str, decode) -> list:
        data = self._read_document(path)
        if data is None:
            return []
        raw = data.get(key)
        if not isinstance(raw, list):
            self._degrade(MetadataDegraded(path, f"missing '{key}' list"))
            return []
        items = []
        for entry in raw:
            try:
                item = decode(entry)
            except (ValueError, TypeError, KeyError, OverflowError) as e:
                self._degrade(MetadataDegraded(path, f"undecodable record ({e})"))
                continue
            if item is None:
                logger.warning(f"Skipping unrecognized record in {path}: {str(entry)[:80]}")
                continue
            items.append(item)
        return items

    def _write_document(self, path: Path, payload: dict) -> Path:
        text = json.dumps(payload, ensure_ascii=False, indent=2) + "\n"
        return atomic_write(path, text, self.config)

    # ------------------------------------------------------------------
    # Per-day metadata
    # ------------------------------------------------------------------
    def load_day_meta(self, day_date: date) -> Optional[DayMeta]:
        path = self.layout.meta_path(day_date)
        data = self._read_document(path)
        if data is None:
            return None
        try:
            return _dict_to_day_meta(data, day_date)
        except (ValueError, TypeError, KeyError, OverflowError) as e:
            self._degrade(MetadataDegraded(path, f"undecodable day metadata ({e})"))
            return None

    def save_day_meta(self, meta: DayMeta) -> Path:
        meta.updated_at = datetime.now()
        return self._write_document(self.layout.meta_path(meta.date), _day_meta_to_dict(meta))

    def delete_day_meta(self, day_date: date) -> bool:
        path = self.layout.meta_path(day_date)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def find_action(self, day_date: date, action_id: str) -> Optional[ActionMeta]:
        meta = self.load_day_meta(day_date)
        return meta.find(action_id) if meta else None

    # ------------------------------------------------------------------
    # Objectives
    # ------------------------------------------------------------------
    def load_objectives(self) -> List[Objective]:
        return self._read_collection(self.layout.objectives_path, "objectives", _dict_to_objective)

    def save_objectives(self, objectives: List[Objective]) -> Path:
        payload = {
            "version": SCHEMA_VERSION,
            "objectives": [_objective_to_dict(o) for o in objectives],
        }
        return self._write_document(self.layout.objectives_path, payload)

    def get_objective(self, objective_id: str) -> Optional[Objective]:
        return next((o for o in self.load_objectives() if o.id == objective_id), None)

    def upsert_objective(self, objective: Objective) -> Objective:
        objectives = [o for o in self.load_objectives() if o.id != objective.id]
        objective.updated_at = datetime.now()
        objectives.append(objective)
        self.save_objectives(objectives)
        return objective

    def archive_objective(self, objective_id: str) -> Optional[Objective]:
        """Objectives are archived, never deleted, so old links stay valid."""
        objective = self.get_objective(objective_id)
        if objective is None:
            return None
        objective.status = ObjectiveStatus.ARCHIVED
        return self.upsert_objective(objective)

    # ------------------------------------------------------------------
    # Indicators
    # ------------------------------------------------------------------
    def load_indicators(self) -> List[Indicator]:
        return self._read_collection(self.layout.indicators_path, "indicators", _dict_to_indicator)

    def save_indicators(self, indicators: List[Indicator]) -> Path:
        payload = {
            "version": SCHEMA_VERSION,
            "indicators": [_indicator_to_dict(i) for i in indicators],
        }
        return self._write_document(self.layout.indicators_path, payload)

    def get_indicator(self, indicator_id: str) -> Optional[Indicator]:
        return next((i for i in self.load_indicators() if i.id == indicator_id), None)

    def upsert_indicator(self, indicator: Indicator) -> Indicator:
        indicators = [i for i in self.load_indicators() if i.id != indicator.id]
        indicators.append(indicator)
        self.save_indicators(indicators)
        return indicator

    def archive_indicator(self, indicator_id: str) -> Optional[Indicator]:
        indicator = self.get_indicator(indicator_id)
        if indicator is None:
            return None
        indicator.archived = True
        return self.upsert_indicator(indicator)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------
    def load_templates(self) -> Dict[str, Template]:
        templates = self._read_collection(self.layout.templates_path, "templates", _dict_to_template)
        return {t.name: t for t in sorted(templates, key=lambda t: t.name)}

    def save_templates(self, templates: Dict[str, Template]) -> Path:
        payload = {
            "version": SCHEMA_VERSION,
            "templates": [_template_to_dict(t) for _, t in sorted(templates.items())],
        }
        return self._write_document(self.layout.templates_path, payload)

    def get_template(self, name: str) -> Optional[Template]:
        return self.load_templates().get(name)

    def save_template(self, template: Template) -> Template:
        template = template.normalized(self.config.MAX_ACTION_LENGTH)
        templates = self.load_templates()
        existing = templates.get(template.name)
        now = datetime.now()
        template.created_at = existing.created_at if existing else (template.created_at or now)
        template.updated_at = now
        templates[template.name] = template
        self.save_templates(templates)
        return template

    def delete_template(self, name: str) -> bool:
        templates = self.load_templates()
        if templates.pop(name, None) is None:
            return False
        self.save_templates(templates)
        return True

    # ------------------------------------------------------------------
    # Vision
    # ------------------------------------------------------------------
    def load_vision(self) -> Vision:
        """The stored vision, or an empty one when none has been written."""
        path = self.layout.vision_path
        data = self._read_document(path)
        if data is None:
            return Vision()
        raw = data.get("vision")
        if not isinstance(raw, dict):
            self._degrade(MetadataDegraded(path, "missing 'vision' object"))
            return Vision()
        return _dict_to_vision(raw)

    def save_vision(self, vision: Vision) -> Path:
        limit = self.config.MAX_VISION_LENGTH
        vision.texts = {k: text[:limit].rstrip() for k, text in vision.texts.items()}
        payload = {"version": SCHEMA_VERSION, "vision": _vision_to_dict(vision)}
        return self._write_document(self.layout.vision_path, payload)

    def set_vision(self, category_type: CategoryType, text: str) -> Vision:
        vision = self.load_vision()
        if vision.set(category_type, text, self.config.MAX_VISION_LENGTH):
            logger.info(
                f"{category_type.display_name} vision truncated to "
                f"{self.config.MAX_VISION_LENGTH} characters"
            )
        self.save_vision(vision)
        return vision

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------
    def _review_path(self, period_identifier: str) -> Path:
        if not isinstance(period_identifier, str) or not REVIEW_ID_RE.fullmatch(period_identifier):
            raise ValidationError(
                f"Invalid review period {period_identifier!r}; expected YYYY-Www or YYYY-MM"
            )
        return self.layout.review_path(period_identifier)

    def save_review(self, review: Review) -> Path:
        path = self._review_path(review.period_identifier)
        payload = {"version": SCHEMA_VERSION, "review": _review_to_dict(review)}
        return self._write_document(path, payload)

    def load_review(self, period_identifier: str) -> Optional[Review]:
        path = self._review_path(period_identifier)
        data = self._read_document(path)
        if data is None:
            return None
        review = _dict_to_review(data.get("review"), period_identifier)
        if review is None:
            self._degrade(MetadataDegraded(path, "missing or incomplete 'review' object"))
        return review

    def list_reviews(self, period_type: Optional[ReviewPeriod] = None) -> List[str]:
        """Stored period identifiers, oldest first."""
        directory = self.layout.reviews_dir
        if not directory.exists():
            return []
        identifiers = sorted(
            p.stem for p in directory.glob("*.json") if REVIEW_ID_RE.fullmatch(p.stem)
        )
        if period_type is ReviewPeriod.WEEKLY:
            return [i for i in identifiers if "-W" in i]
        if period_type is ReviewPeriod.MONTHLY:
            return [i for i in identifiers if "-W" not in i]
        return identifiers

    # ------------------------------------------------------------------
    # Observation ledger
    # ------------------------------------------------------------------
    def append_observation(self, observation: Observation) -> Path:
        """
        Add one line to the ledger.

        The ledger is rewritten as old content + new line via the atomic
        protocol, so a crash never leaves a torn last line.
        """
        path = self.layout.observations_path
        line = json.dumps(_observation_to_dict(observation), ensure_ascii=False) + "\n"
        existing = path.read_bytes() if path.exists() else b""
        if existing and not existing.endswith(b"\n"):
            existing += b"\n"
        return atomic_write(path, existing + line.encode("utf-8"), self.config)

    def _decode_ledger_line(self, line_number: int, raw: str) -> Optional[Observation]:
        source = str(self.layout.observations_path)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            log_corruption(source, line_number, raw, f"invalid JSON ({e})")
            return None
        observation = _dict_to_observation(data)
        if observation is None:
            log_corruption(source, line_number, raw, "missing required observation fields")
            return None
        version = data.get("version")
        if isinstance(version, int) and not isinstance(version, bool) and version > SCHEMA_VERSION:
            logger.debug(f"Observation {observation.id} has newer schema version {version}")
        return observation

    def iter_observations(self, indicator_id: Optional[str] = None) -> Iterator[Observation]:
        """Full forward scan of the ledger."""
        path = self.layout.observations_path
        if not path.exists():
            return
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line_number, raw in enumerate(f, start=1):
                raw = raw.strip()
                if not raw:
                    continue
                observation = self._decode_ledger_line(line_number, raw)
                if observation is None:
                    continue
                if indicator_id is None or observation.indicator_id == indicator_id:
                    yield observation

    def recent_observations(self, indicator_id: Optional[str] = None, limit: int = 10) -> List[Observation]:
        """Newest-first, reading the ledger backward until ``limit`` matches."""
        path = self.layout.observations_path
        if limit <= 0 or not path.exists():
            return []
        found: List[Observation] = []
        for index, raw in _read_lines_reversed(path):
            observation = self._decode_ledger_line(-index, raw.strip())
            if observation is None:
                continue
            if indicator_id is None or observation.indicator_id == indicator_id:
                found.append(observation)
                if len(found) >= limit:
                    break
        return found

    def latest_observation(self, indicator_id: str) -> Optional[Observation]:
        recent = self.recent_observations(indicator_id, limit=1)
        return recent[0] if recent else None

    def observations_between(
        self,
        start: date,
        end: date,
        indicator_id: Optional[str] = None,
    ) -> List[Observation]:
        return [
            o for o in self.iter_observations(indicator_id)
            if start <= o.observed_at.date() <= end
        ]

    def observations_for_action(self, action_id: str) -> List[Observation]:
        return [o for o in self.iter_observations() if o.action_id == action_id]
