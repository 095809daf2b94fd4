"""Recurring template domain model."""

from typing import Annotated

from pydantic import Field, field_validator

from housecup.core.day_key import SHORT_DAY_NAMES
from housecup.domain.base import DomainModel, utc_now_iso


Weekday = Annotated[int, Field(ge=0, le=6)]

WEEKDAYS = frozenset({1, 2, 3, 4, 5})
WEEKEND = frozenset({0, 6})


class RecurringTemplate(DomainModel):
    """A recurring task pattern: a name plus the weekdays it repeats on.

    A template is never scheduled itself; the seeding engine materializes
    one task instance per matching day.
    """

    id: str = Field(..., description="Unique template ID")
    household_id: str = Field(..., description="Household this template belongs to")
    name: str = Field(..., description="Task name copied into seeded instances")
    repeat_days: list[Weekday] = Field(default_factory=list, description="Weekdays (0=Sunday) the task repeats on")
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    @field_validator("repeat_days")
    @classmethod
    def dedupe_repeat_days(cls, v: list[int]) -> list[int]:
        """Store repeat days sorted and without duplicates."""
        return sorted(set(v))

    def repeats_on(self, weekday: int) -> bool:
        """Check if the template should appear on a given weekday."""
        return weekday in self.repeat_days

    def repeat_description(self) -> str:
        """Human-readable description of the repeat pattern."""
        days = set(self.repeat_days)
        if not days:
            return "Does not repeat"
        if len(days) == 7:  # noqa: PLR2004
            return "Every day"
        if days == WEEKDAYS:
            return "Weekdays"
        if days == WEEKEND:
            return "Weekends"
        return ", ".join(SHORT_DAY_NAMES[d] for d in self.repeat_days)
