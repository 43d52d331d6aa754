"""
Record codec: Day <-> plain-text day file.

The parser is a small state machine:

    HEADER_SCAN --date header--> PREAMBLE --category header--> CATEGORY
                                                 ^                |
                                                 +--category hdr--+

HEADER_SCAN only looks at the first HEADER_SCAN_LINES lines. PREAMBLE holds
between the date header and the first category; checkbox lines there are
orphans. CATEGORY collects checkbox lines and reflection lines.

No I/O happens here; the persistence layer reads and writes the files.
"""
import re
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple

from focusfive.config_manager import SystemConfig, config as default_config
from focusfive.exceptions import (
    ActionOverflowWarning,
    ParseError,
    ParseWarning,
    TruncationWarning,
)
from focusfive.logger import get_logger
from focusfive.models import Action, Category, CategoryType, Day

logger = get_logger("record_codec")

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_MONTHS: Dict[str, int] = {}
for _i, _name in enumerate(MONTH_NAMES, start=1):
    _MONTHS[_name.lower()] = _i
    _MONTHS[_name[:3].lower()] = _i
_MONTHS["sept"] = 9

DATE_HEADER_RE = re.compile(
    r"^#*\s*([a-z]{3,9})\.?\s+(\d{1,2})\s*,?\s*(\d{4})\b(.*)$",
    re.IGNORECASE,
)
DAY_NUMBER_RE = re.compile(r"\bday\s+(\d{1,6})\b", re.IGNORECASE)
CATEGORY_HEADER_RE = re.compile(r"^#+\s*(work|health|family)\b(.*)$", re.IGNORECASE)
GOAL_RE = re.compile(r"^\s*\(\s*(?:goal\s*:)?(.*)\)\s*$", re.IGNORECASE)
CHECKBOX_RE = re.compile(r"^[-*]\s*\[([ xX])\](.*)$")
REFLECTION_RE = re.compile(r"^>\s?(.*)$")
# Only these break lines; other Unicode separators stay inside a line.
LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


class _State(Enum):
    HEADER_SCAN = "header_scan"
    PREAMBLE = "preamble"
    CATEGORY = "category"


def _flatten(text: str) -> str:
    return text.replace("\r", " ").replace("\n", " ")


class RecordCodec:
    """Tolerant parser and deterministic serializer for day files."""

    def __init__(self, config: Optional[SystemConfig] = None):
        self.config = config or default_config

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------
    def parse(self, text: str) -> Day:
        """
        Parse day text into a Day.

        Raises:
            ParseError: empty/oversized input or no date header in the scan window.

        Non-fatal problems (truncation, overflow, orphan lines) are attached to
        the returned Day's ``warnings``.
        """
        if text is None:
            raise ParseError("no content")
        if len(text) > self.config.MAX_INPUT_CHARS:
            raise ParseError(
                f"input is {len(text)} characters, ceiling is {self.config.MAX_INPUT_CHARS}"
            )
        text = text.lstrip("\ufeff")
        lines = LINE_BREAK_RE.split(text)
        if not any(line.strip() for line in lines):
            raise ParseError("file is empty")

        warnings: List[ParseWarning] = []
        filled: Dict[CategoryType, List[Action]] = {t: [] for t in CategoryType.ordered()}
        goals: Dict[CategoryType, Optional[str]] = {t: None for t in CategoryType.ordered()}
        reflections: Dict[CategoryType, List[str]] = {t: [] for t in CategoryType.ordered()}

        state = _State.HEADER_SCAN
        current: Optional[CategoryType] = None
        day_date: Optional[date] = None
        day_number: Optional[int] = None

        for line_number, raw in enumerate(lines, start=1):
            line = raw.strip()

            if state is _State.HEADER_SCAN:
                if line_number > self.config.HEADER_SCAN_LINES:
                    break
                parsed = parse_date_header(line)
                if parsed is not None:
                    day_date, day_number = parsed
                    state = _State.PREAMBLE
                continue

            if not line:
                continue

            header = CATEGORY_HEADER_RE.match(line)
            if header:
                current = CategoryType.from_name(header.group(1))
                state = _State.CATEGORY
                goal = self._extract_goal(header.group(2), line_number, warnings)
                if goal is not None:
                    goals[current] = goal
                continue

            checkbox = CHECKBOX_RE.match(line)
            if checkbox:
                if state is not _State.CATEGORY:
                    warnings.append(ParseWarning(
                        f"checkbox line outside any category ignored: {line[:60]}",
                        line_number,
                    ))
                    continue
                self._collect_action(current, checkbox, filled, line_number, warnings)
                continue

            reflection = REFLECTION_RE.match(line)
            if reflection and state is _State.CATEGORY:
                reflections[current].append(reflection.group(1).strip())
                continue

            logger.debug(f"ignored line {line_number}: {line[:60]}")

        if state is _State.HEADER_SCAN:
            raise ParseError(
                f"no valid date header found in first {self.config.HEADER_SCAN_LINES} lines"
            )

        day = Day(date=day_date, day_number=day_number, categories=[
            self._build_category(t, filled[t], goals[t], reflections[t], warnings)
            for t in CategoryType.ordered()
        ])
        day.warnings = warnings
        for warning in warnings:
            logger.info(f"{day_date.isoformat()}: {warning}")
        return day

    def _extract_goal(
        self, rest: str, line_number: int, warnings: List[ParseWarning]
    ) -> Optional[str]:
        match = GOAL_RE.match(rest)
        if not match:
            return None
        goal = match.group(1).strip()
        if not goal:
            return None
        return self._truncate(goal, "goal", self.config.MAX_GOAL_LENGTH, line_number, warnings)

    def _collect_action(
        self,
        category: CategoryType,
        match: "re.Match",
        filled: Dict[CategoryType, List[Action]],
        line_number: int,
        warnings: List[ParseWarning],
    ) -> None:
        completed = match.group(1) in ("x", "X")
        text = match.group(2).strip()
        slots = filled[category]

        if len(slots) >= self.config.MAX_ACTIONS_PER_CATEGORY:
            warnings.append(ActionOverflowWarning(
                f"more than {self.config.MAX_ACTIONS_PER_CATEGORY} actions for "
                f"{category.display_name}, line not stored",
                line_number,
                category=category.value,
                dropped_text=text,
            ))
            return

        text = self._truncate(text, "action", self.config.MAX_ACTION_LENGTH, line_number, warnings)
        slots.append(Action(text=text, completed=completed))

    def _build_category(
        self,
        category_type: CategoryType,
        actions: List[Action],
        goal: Optional[str],
        reflection_lines: List[str],
        warnings: List[ParseWarning],
    ) -> Category:
        if not actions:
            category = Category.empty(category_type, self.config.DEFAULT_ACTION_SLOTS)
        else:
            category = Category(type=category_type, actions=actions)
        category.goal = goal

        reflection = "\n".join(reflection_lines).strip()
        if reflection:
            reflection = self._truncate(
                reflection, "reflection", self.config.MAX_REFLECTION_LENGTH, None, warnings
            )
        category.reflection = reflection or None
        return category

    @staticmethod
    def _truncate(
        text: str,
        field_name: str,
        limit: int,
        line_number: Optional[int],
        warnings: List[ParseWarning],
    ) -> str:
        if len(text) <= limit:
            return text
        warnings.append(TruncationWarning(
            f"{field_name} text truncated from {len(text)} to {limit} characters",
            line_number,
            field=field_name,
            original_length=len(text),
            limit=limit,
        ))
        return text[:limit].rstrip()

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def serialize(self, day: Day) -> str:
        """Render a Day; the same Day always yields the same text."""
        header = f"# {MONTH_NAMES[day.date.month - 1]} {day.date.day:02d}, {day.date.year:04d}"
        if day.day_number is not None:
            header += f" - Day {day.day_number}"

        sections = [header]
        for category in day.categories:
            sections.append("\n".join(self._category_lines(category)))
        return "\n\n".join(sections) + "\n"

    @staticmethod
    def _category_lines(category: Category) -> List[str]:
        title = f"## {category.type.display_name}"
        if category.goal:
            title += f" (Goal: {_flatten(category.goal)})"
        lines = [title]
        for action in category.actions:
            box = "[x]" if action.completed else "[ ]"
            lines.append(f"- {box} {_flatten(action.text)}".rstrip())
        if category.reflection:
            for part in LINE_BREAK_RE.split(category.reflection):
                lines.append(f"> {part}".rstrip())
        return lines


def parse_date_header(line: str) -> Optional[Tuple[date, Optional[int]]]:
    """Return (date, day_number) if ``line`` is a date header, else None."""
    match = DATE_HEADER_RE.match(line.strip())
    if not match:
        return None
    month = _MONTHS.get(match.group(1).lower())
    if month is None:
        return None
    try:
        parsed = date(int(match.group(3)), month, int(match.group(2)))
    except ValueError:
        return None
    day_match = DAY_NUMBER_RE.search(match.group(4))
    day_number = int(day_match.group(1)) if day_match else None
    return parsed, day_number


_default_codec = RecordCodec()


def parse(text: str) -> Day:
    return _default_codec.parse(text)


def serialize(day: Day) -> str:
    return _default_codec.serialize(day)
