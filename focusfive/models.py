"""
Core Data Models for FocusFive.
Defines the per-day record: Day -> three Categories -> 1..5 Actions.
"""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, List, Optional

from focusfive.exceptions import ParseWarning, ValidationError

MIN_ACTIONS = 1
MAX_ACTIONS = 5


class CategoryType(str, Enum):
    WORK = "work"
    HEALTH = "health"
    FAMILY = "family"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def ordered(cls) -> List["CategoryType"]:
        return [cls.WORK, cls.HEALTH, cls.FAMILY]

    @classmethod
    def from_name(cls, name: str) -> Optional["CategoryType"]:
        try:
            return cls(name.strip().lower())
        except ValueError:
            return None


@dataclass
class Action:
    """A single trackable item. id/meta are not part of the text record."""
    text: str = ""
    completed: bool = False
    id: Optional[str] = field(default=None, compare=False)
    meta: Optional[Any] = field(default=None, compare=False, repr=False)


@dataclass
class Category:
    type: CategoryType
    goal: Optional[str] = None
    reflection: Optional[str] = None
    actions: List[Action] = field(default_factory=list)

    def __post_init__(self):
        if not self.goal:
            self.goal = None
        if not self.reflection:
            self.reflection = None

    @classmethod
    def empty(cls, category_type: CategoryType, slots: int = 3) -> "Category":
        slots = max(MIN_ACTIONS, min(MAX_ACTIONS, slots))
        return cls(type=category_type, actions=[Action() for _ in range(slots)])

    def add_action(self, text: str = "", completed: bool = False) -> Action:
        """Append an action (max 5 total)."""
        if len(self.actions) >= MAX_ACTIONS:
            raise ValidationError(f"Maximum {MAX_ACTIONS} actions per category")
        action = Action(text=text, completed=completed)
        self.actions.append(action)
        return action

    def remove_action(self, index: int) -> Action:
        """Remove an action (min 1 must remain)."""
        if len(self.actions) <= MIN_ACTIONS:
            raise ValidationError(f"Minimum {MIN_ACTIONS} action required per category")
        if index < 0 or index >= len(self.actions):
            raise ValidationError(f"Invalid action index: {index}")
        return self.actions.pop(index)

    def completed_count(self) -> int:
        return sum(1 for a in self.actions if a.completed)

    def completion_percentage(self) -> int:
        if not self.actions:
            return 0
        return self.completed_count() * 100 // len(self.actions)


@dataclass
class Day:
    """One date's record. Identity is the date; warnings are parse diagnostics."""
    date: date
    day_number: Optional[int] = None
    categories: List[Category] = field(default_factory=list)
    warnings: List[ParseWarning] = field(default_factory=list, compare=False, repr=False)

    def __post_init__(self):
        if not self.categories:
            self.categories = [Category.empty(t) for t in CategoryType.ordered()]
        present = [c.type for c in self.categories]
        if present != CategoryType.ordered():
            raise ValidationError(
                f"Day {self.date} must hold exactly work, health, family in order; got {present}"
            )

    @classmethod
    def empty(cls, day_date: date, slots: int = 3) -> "Day":
        return cls(
            date=day_date,
            categories=[Category.empty(t, slots) for t in CategoryType.ordered()],
        )

    def category(self, category_type: CategoryType) -> Category:
        return self.categories[CategoryType.ordered().index(category_type)]

    @property
    def work(self) -> Category:
        return self.categories[0]

    @property
    def health(self) -> Category:
        return self.categories[1]

    @property
    def family(self) -> Category:
        return self.categories[2]

    def all_actions(self) -> List[Action]:
        return [a for c in self.categories for a in c.actions]

    def find_action(self, action_id: str) -> Optional[Action]:
        for action in self.all_actions():
            if action.id == action_id:
                return action
        return None

    def has_completion(self) -> bool:
        """At least one completed, non-empty action."""
        return any(a.completed and a.text.strip() for a in self.all_actions())
