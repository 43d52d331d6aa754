"""
PersistenceCoordinator: crash-safe writes of the day text and its metadata,
and reconciliation of the two on every load.

Authority split:
- text record: presence, order and completion of actions
- metadata:    identity, timestamps and extended fields

Two processes saving the same day are resolved as "last rename wins"; there
is no merge.
"""
import difflib
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Set

from focusfive.atomic_io import atomic_write, sweep_stale_temp_files
from focusfive.config_manager import SystemConfig, config as default_config
from focusfive.exceptions import (
    ParseError,
    ParseWarning,
    TruncationWarning,
    ValidationError,
    WriteFailure,
)
from focusfive.logger import get_logger
from focusfive.metadata.models import (
    ActionMeta,
    ActionOrigin,
    ActionStatus,
    DayMeta,
    Observation,
    new_id,
)
from focusfive.metadata.store import MetadataStore
from focusfive.models import MAX_ACTIONS, Action, CategoryType, Day
from focusfive.paths import DataLayout
from focusfive.record_codec import RecordCodec

logger = get_logger("persistence")

_UNSET = object()


@dataclass
class ReconcileReport:
    meta: DayMeta
    changed: bool = False
    minted: int = 0
    retired: int = 0
    restored: int = 0
    conflicts: List[str] = field(default_factory=list)


def text_similarity(a: str, b: str) -> float:
    if not a and not b:
        return 1.0
    return difflib.SequenceMatcher(None, a.lower(), b.lower()).ratio()


def reconcile(
    day: Day,
    meta: Optional[DayMeta],
    similarity_threshold: float = 0.6,
) -> ReconcileReport:
    """
    Re-associate the Day's actions with stored metadata, category by category.

    Match order per action:
      0. an id already carried by the in-memory action
      1. same position, same text
      2. same text anywhere in the category, then among retired entries
      3. same position, similar text (edited in place)
      4. a freshly minted id

    Stored entries left unclaimed move to ``retired``; nothing is deleted.
    Sets ``action.id`` and ``action.meta`` on every action.
    """
    report = ReconcileReport(meta=meta or DayMeta(date=day.date), changed=meta is None)
    meta = report.meta
    retired_pool: List[ActionMeta] = list(meta.retired)
    known: Dict[str, ActionMeta] = {m.id: m for m in retired_pool}
    for entries in meta.categories.values():
        known.update({m.id: m for m in entries})

    claimed_ids: Set[str] = set()
    new_categories: Dict[CategoryType, List[ActionMeta]] = {}

    for category in day.categories:
        stored = list(meta.categories.get(category.type, []))
        actions = category.actions
        claimed: Dict[int, ActionMeta] = {}

        def claim(index: int, entry: ActionMeta) -> None:
            claimed[index] = entry
            claimed_ids.add(entry.id)

        # 0. explicit ids from the caller's in-memory Day
        for i, action in enumerate(actions):
            if not action.id or action.id in claimed_ids:
                continue
            if isinstance(action.meta, ActionMeta) and action.meta.id == action.id:
                entry = action.meta
            else:
                entry = known.get(action.id) or ActionMeta(id=action.id, text=action.text)
            if entry in retired_pool:
                retired_pool.remove(entry)
            claim(i, entry)

        # 1. same position, same text
        for i, action in enumerate(actions):
            if i in claimed or i >= len(stored):
                continue
            if stored[i].id not in claimed_ids and stored[i].text == action.text:
                claim(i, stored[i])

        # 2. exact text elsewhere in the category, then retired
        for i, action in enumerate(actions):
            if i in claimed:
                continue
            entry = next(
                (m for m in stored if m.id not in claimed_ids and m.text == action.text),
                None,
            )
            if entry is None and action.text:
                entry = next(
                    (m for m in retired_pool if m.id not in claimed_ids and m.text == action.text),
                    None,
                )
                if entry is not None:
                    retired_pool.remove(entry)
                    report.restored += 1
            if entry is not None:
                claim(i, entry)

        # 3. same position, similar text
        for i, action in enumerate(actions):
            if i in claimed or i >= len(stored) or stored[i].id in claimed_ids:
                continue
            if text_similarity(stored[i].text, action.text) >= similarity_threshold:
                claim(i, stored[i])

        ordered: List[ActionMeta] = []
        for i, action in enumerate(actions):
            entry = claimed.get(i)
            if entry is None:
                entry = ActionMeta(id=new_id("act"), text=action.text)
                claimed_ids.add(entry.id)
                report.minted += 1
            if entry.text != action.text:
                entry.text = action.text
                report.changed = True
            if entry.sync_completion(action.completed):
                report.conflicts.append(entry.id)
                logger.info(
                    f"{day.date} {category.type.value}[{i}]: checkbox "
                    f"{'checked' if action.completed else 'unchecked'} overrides stored status"
                )
            action.id = entry.id
            action.meta = entry
            ordered.append(entry)

        for entry in stored:
            if entry.id not in claimed_ids:
                retired_pool.append(entry)
                report.retired += 1

        if [m.id for m in ordered] != [m.id for m in stored]:
            report.changed = True
        new_categories[category.type] = ordered

    meta.categories = new_categories
    meta.retired = [m for m in retired_pool if m.id not in claimed_ids]
    if report.minted or report.retired or report.restored or report.conflicts:
        report.changed = True
    return report


class PersistenceCoordinator:
    """Loads, saves and reconciles day records beneath one base path."""

    def __init__(
        self,
        base_dir: Path,
        store: Optional[MetadataStore] = None,
        codec: Optional[RecordCodec] = None,
        config: Optional[SystemConfig] = None,
    ):
        self.config = config or default_config
        self.layout = DataLayout(Path(base_dir))
        self.store = store or MetadataStore(self.layout.base, self.config)
        self.codec = codec or RecordCodec(self.config)

        for directory in (self.layout.goals_dir, self.layout.meta_dir, self.layout.base):
            sweep_stale_temp_files(directory, self.config.STALE_TEMP_SECONDS)

    # ------------------------------------------------------------------
    # Record discovery
    # ------------------------------------------------------------------
    def list_dates(self) -> List[date]:
        goals_dir = self.layout.goals_dir
        if not goals_dir.exists():
            return []
        dates = []
        for path in goals_dir.glob("*.md"):
            try:
                dates.append(date.fromisoformat(path.stem))
            except ValueError:
                continue
        return sorted(dates)

    def has_record(self, day_date: date) -> bool:
        return self.layout.day_path(day_date).exists()

    def latest_record_on_or_before(
        self, day_date: date, lookback: Optional[int] = None
    ) -> Optional[date]:
        earliest = day_date - timedelta(days=lookback) if lookback is not None else date.min
        for candidate in reversed(self.list_dates()):
            if candidate > day_date:
                continue
            return candidate if candidate >= earliest else None
        return None

    def read_text(self, day_date: date) -> Optional[str]:
        path = self.layout.day_path(day_date)
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return None

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------
    def load_day(self, day_date: date, persist: bool = True) -> Day:
        """
        Load and reconcile the Day for ``day_date``.

        Never raises for bad data: an unparseable file yields an empty Day
        with a warning, and missing/corrupt metadata yields fresh identities.
        With ``persist`` the reconciled metadata is written back when it
        changed, so identities stay stable across loads.
        """
        text = self.read_text(day_date)
        parsed = False

        if text is None:
            day = Day.empty(day_date, self.config.DEFAULT_ACTION_SLOTS)
        else:
            try:
                day = self.codec.parse(text)
                parsed = True
            except ParseError as e:
                logger.warning(f"{day_date}: {e.message}; falling back to an empty day")
                day = Day.empty(day_date, self.config.DEFAULT_ACTION_SLOTS)
                day.warnings.append(ParseWarning(f"day file unreadable, started empty: {e.message}"))
            if parsed and day.date != day_date:
                day.warnings.append(ParseWarning(
                    f"header date {day.date} does not match file date {day_date}"
                ))
                day.date = day_date

        report = reconcile(day, self.store.load_day_meta(day_date), self.config.SIMILARITY_THRESHOLD)
        for issue in self.store.issues_for(self.layout.meta_path(day_date)):
            day.warnings.append(ParseWarning(issue.message))

        if persist and parsed and report.changed:
            try:
                self.store.save_day_meta(report.meta)
            except WriteFailure as e:
                logger.warning(f"{day_date}: reconciled metadata not saved: {e.message}")
        return day

    def save_day(self, day: Day) -> DayMeta:
        """
        Write the text record, then the metadata, each atomically.

        Raises:
            ValidationError: an action count outside [1, 5].
            WriteFailure: a write gave up; the previous file is intact.
        """
        self._enforce_limits(day)

        atomic_write(self.layout.day_path(day.date), self.codec.serialize(day), self.config)

        report = reconcile(day, self.store.load_day_meta(day.date), self.config.SIMILARITY_THRESHOLD)
        self.store.save_day_meta(report.meta)
        logger.info(
            f"Saved {day.date}: {report.minted} new, {report.retired} retired, "
            f"{len(report.conflicts)} status override(s)"
        )
        return report.meta

    def _enforce_limits(self, day: Day) -> None:
        limit = self.config.MAX_ACTION_LENGTH
        low = self.config.MIN_ACTIONS_PER_CATEGORY
        high = min(self.config.MAX_ACTIONS_PER_CATEGORY, MAX_ACTIONS)
        for category in day.categories:
            count = len(category.actions)
            if not low <= count <= high:
                raise ValidationError(
                    f"{category.type.display_name} has {count} actions; "
                    f"allowed range is {low}..{high}"
                )
            for action in category.actions:
                if len(action.text) > limit:
                    day.warnings.append(TruncationWarning(
                        f"action text truncated from {len(action.text)} to {limit} characters",
                        field="action",
                        original_length=len(action.text),
                        limit=limit,
                    ))
                    logger.warning(f"{day.date}: action text truncated to {limit} characters")
                    action.text = action.text[:limit].rstrip()
            if category.goal and len(category.goal) > self.config.MAX_GOAL_LENGTH:
                category.goal = category.goal[: self.config.MAX_GOAL_LENGTH].rstrip()

    def delete_day(self, day_date: date) -> bool:
        """Remove the text record and its metadata."""
        removed = False
        try:
            self.layout.day_path(day_date).unlink()
            removed = True
        except FileNotFoundError:
            pass
        return self.store.delete_day_meta(day_date) or removed

    # ------------------------------------------------------------------
    # Action metadata
    # ------------------------------------------------------------------
    def find_action(self, day_date: date, action_id: str) -> Optional[ActionMeta]:
        """Look up an action's metadata, including actions no longer in the text."""
        return self.store.find_action(day_date, action_id)

    def update_action(
        self,
        day_date: date,
        action_id: str,
        status: Optional[ActionStatus] = None,
        effort_minutes=_UNSET,
        notes=_UNSET,
        objective_id=_UNSET,
    ) -> ActionMeta:
        """
        Edit extended fields of one action.

        A status change is mirrored into the checkbox so the text record stays
        the authority for completion.
        """
        if objective_id not in (_UNSET, None) and self.store.get_objective(objective_id) is None:
            raise ValidationError(f"Unknown objective: {objective_id}")

        day = self.load_day(day_date)
        action = day.find_action(action_id)
        if action is None:
            return self._update_retired(day_date, action_id, status, effort_minutes, notes, objective_id)

        entry: ActionMeta = action.meta
        if status is not None:
            entry.status = status
            action.completed = status is ActionStatus.DONE
            entry.completed_at = (entry.completed_at or datetime.now()) if action.completed else None
        if effort_minutes is not _UNSET:
            entry.effort_minutes = effort_minutes
        if notes is not _UNSET:
            entry.notes = notes
        if objective_id is not _UNSET:
            entry.objective_id = objective_id

        self.save_day(day)
        return entry

    def _update_retired(self, day_date, action_id, status, effort_minutes, notes, objective_id) -> ActionMeta:
        meta = self.store.load_day_meta(day_date)
        entry = meta.find(action_id) if meta else None
        if entry is None:
            raise ValidationError(f"Unknown action {action_id} on {day_date}")
        if status is not None:
            raise ValidationError(
                f"Action {action_id} is no longer in the {day_date} record; "
                "its status follows the checkbox and cannot be changed"
            )
        if effort_minutes is not _UNSET:
            entry.effort_minutes = effort_minutes
        if notes is not _UNSET:
            entry.notes = notes
        if objective_id is not _UNSET:
            entry.objective_id = objective_id
        self.store.save_day_meta(meta)
        return entry

    # ------------------------------------------------------------------
    # New days
    # ------------------------------------------------------------------
    def new_day(
        self,
        day_date: date,
        template_name: Optional[str] = None,
        carry_over: bool = False,
    ) -> Day:
        """
        Build (but do not save) a Day for ``day_date``.

        The day counter continues from the most recent earlier record.
        ``carry_over`` copies yesterday's goals and unfinished actions;
        a template then fills the remaining slots.
        """
        day = Day.empty(day_date, self.config.DEFAULT_ACTION_SLOTS)
        previous_date = self.latest_record_on_or_before(day_date - timedelta(days=1))
        if previous_date is not None:
            previous = self.load_day(previous_date, persist=False)
            if previous.day_number is not None:
                day.day_number = previous.day_number + 1

        seeded: Dict[CategoryType, List[Action]] = {t: [] for t in CategoryType.ordered()}

        yesterday = day_date - timedelta(days=1)
        if carry_over and self.has_record(yesterday):
            source = self.load_day(yesterday, persist=False)
            for category in source.categories:
                day.category(category.type).goal = category.goal
                for action in category.actions:
                    if action.text.strip() and not action.completed:
                        seeded[category.type].append(
                            self._seed_action(action.text, ActionOrigin.CARRY_OVER)
                        )

        if template_name:
            template = self.store.get_template(template_name)
            if template is None:
                raise ValidationError(f"Unknown template: {template_name}")
            for category_type, texts in template.actions.items():
                for text in texts:
                    seeded[category_type].append(self._seed_action(text, ActionOrigin.TEMPLATE))

        for category_type, actions in seeded.items():
            if actions:
                day.category(category_type).actions = actions[:MAX_ACTIONS]
        return day

    @staticmethod
    def _seed_action(text: str, origin: ActionOrigin) -> Action:
        entry = ActionMeta(id=new_id("act"), text=text, origin=origin)
        return Action(text=text, id=entry.id, meta=entry)

    # ------------------------------------------------------------------
    # Observations
    # ------------------------------------------------------------------
    def record_observation(
        self,
        indicator_id: str,
        value,
        observed_at: Optional[datetime] = None,
        note: Optional[str] = None,
        action_id: Optional[str] = None,
    ) -> Observation:
        """Validate against the indicator's metric type, then append to the ledger."""
        indicator = self.store.get_indicator(indicator_id)
        if indicator is None:
            raise ValidationError(f"Unknown indicator: {indicator_id}")
        try:
            number = indicator.metric_type.validate(value)
        except ValueError as e:
            raise ValidationError(f"{indicator.name}: {e}")

        now = datetime.now()
        observation = Observation(
            id=new_id("obs"),
            indicator_id=indicator_id,
            value=number,
            observed_at=observed_at or now,
            note=note,
            action_id=action_id,
            created_at=now,
        )
        self.store.append_observation(observation)
        return observation
