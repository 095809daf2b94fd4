"""Builders for domain objects used across unit tests."""

from housecup.domain.challenge import Challenge
from housecup.domain.task import TaskInstance
from housecup.domain.template import RecurringTemplate


_counter = {"task": 0}


def make_task(
    day_key: str,
    name: str = "Dishes",
    *,
    challenge_id: str = "c1",
    points: dict[str, int] | None = None,
    template_id: str | None = None,
    original_name: str | None = None,
    sort_order: int | None = None,
    task_id: str | None = None,
) -> TaskInstance:
    """Build a task instance; templated tasks default to their own name as original."""
    _counter["task"] += 1
    return TaskInstance(
        id=task_id or f"t{_counter['task']}",
        challenge_id=challenge_id,
        day_key=day_key,
        name=name,
        template_id=template_id,
        original_name=original_name if original_name is not None else (name if template_id else None),
        points=points or {},
        sort_order=sort_order,
    )


def make_template(template_id: str, name: str, repeat_days: list[int], household_id: str = "house1") -> RecurringTemplate:
    return RecurringTemplate(id=template_id, household_id=household_id, name=name, repeat_days=repeat_days)


def make_challenge(
    challenge_id: str = "c1",
    start_day_key: str = "2026-01-18",
    end_day_key: str = "2026-01-24",
    **fields,
) -> Challenge:
    """Build a challenge; defaults to the Sunday-start week of 2026-01-18."""
    return Challenge(
        id=challenge_id,
        household_id=fields.pop("household_id", "house1"),
        start_day_key=start_day_key,
        end_day_key=end_day_key,
        **fields,
    )
