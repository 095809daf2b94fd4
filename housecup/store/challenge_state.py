"""State transitions for the current challenge and its tasks.

Every function takes the current ``ChallengeState`` and returns a new one.
Nothing here performs I/O; ``household_session`` applies the transitions and
persists the result.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from housecup.core.config import Constants
from housecup.core.day_key import DayKey, add_days, parse_day_key, today_key
from housecup.domain.base import generate_id, utc_now_iso
from housecup.domain.challenge import Challenge
from housecup.domain.household import Competitor
from housecup.domain.skip_record import SeedAnchor, SkipRecord
from housecup.domain.task import TaskInstance
from housecup.domain.template import RecurringTemplate
from housecup.services.scoring import ChallengeScores, challenge_scores
from housecup.services.seeding import (
    ReconcileResult,
    create_skip_record_for_delete,
    detach_instance,
    merge_skip_records,
    seed_tasks,
)
from housecup.services.week_window import current_week_window


logger = logging.getLogger(__name__)

# Marks an update_task field as "leave unchanged", distinct from None
UNSET: Any = object()


class ChallengeState(BaseModel):
    """Authoritative local state for the running challenge."""

    model_config = ConfigDict(frozen=True)

    challenge: Challenge | None = None
    tasks: list[TaskInstance] = Field(default_factory=list)
    skip_records: list[SkipRecord] = Field(default_factory=list)
    seed_anchor: SeedAnchor | None = None
    selected_day_key: DayKey
    # Challenge whose tasks arrived from the store; seeding waits for it
    tasks_loaded_for_challenge_id: str | None = None
    error: str | None = None


def new_challenge_state(timezone: str, now: datetime | None = None) -> ChallengeState:
    """Empty state with today selected."""
    return ChallengeState(selected_day_key=today_key(timezone, now))


def reset(timezone: str, now: datetime | None = None) -> ChallengeState:
    """Clear everything (sign-out, household switch)."""
    return new_challenge_state(timezone, now)


def _find_task(state: ChallengeState, task_id: str) -> TaskInstance | None:
    return next((t for t in state.tasks if t.id == task_id), None)


def _replace_task(tasks: Iterable[TaskInstance], updated: TaskInstance) -> list[TaskInstance]:
    return [updated if t.id == updated.id else t for t in tasks]


def initialize_challenge(
    state: ChallengeState,
    *,
    household_id: str,
    timezone: str,
    week_start_day: int,
    templates: Sequence[RecurringTemplate],
    skip_records: Sequence[SkipRecord],
    prize: str = "",
    now: datetime | None = None,
) -> ChallengeState:
    """Start a fresh challenge for the current week and seed it from templates."""
    window = current_week_window(timezone, week_start_day, now)
    challenge = Challenge(
        id=generate_id(),
        household_id=household_id,
        start_day_key=window.start_day_key,
        end_day_key=window.end_day_key,
        prize=prize,
    )
    seeded = seed_tasks(window.day_keys, templates, [], skip_records, challenge.id)

    logger.info(
        "Initialized challenge",
        extra={"challenge_id": challenge.id, "household_id": household_id, "seeded": len(seeded.created)},
    )
    return state.model_copy(
        update={
            "challenge": challenge,
            "tasks": seeded.created,
            "selected_day_key": today_key(timezone, now),
            "skip_records": list(skip_records),
            "seed_anchor": None,
            "tasks_loaded_for_challenge_id": challenge.id,
            "error": None,
        }
    )


def set_selected_day(state: ChallengeState, day_key: DayKey) -> ChallengeState:
    """Select a day; malformed keys raise ValueError."""
    parse_day_key(day_key)
    return state.model_copy(update={"selected_day_key": day_key})


def add_task(
    state: ChallengeState,
    *,
    name: str,
    points: dict[str, int] | None = None,
    template_id: str | None = None,
    task_id: str | None = None,
) -> tuple[ChallengeState, TaskInstance | None]:
    """Append a task to the selected day.

    Returns:
        (new state, created task), or (state, None) when there is no challenge
    """
    if state.challenge is None:
        return state, None

    day_tasks = [t for t in state.tasks if t.day_key == state.selected_day_key]
    max_sort_order = max((t.sort_order or 0 for t in day_tasks), default=-1)
    now = utc_now_iso()

    task = TaskInstance(
        id=task_id or generate_id(),
        challenge_id=state.challenge.id,
        day_key=state.selected_day_key,
        name=name,
        template_id=template_id,
        original_name=name if template_id else None,
        points=points or {},
        created_at=now,
        updated_at=now,
        sort_order=max_sort_order + 1,
    )
    return state.model_copy(update={"tasks": [*state.tasks, task]}), task


def update_task_name(state: ChallengeState, *, task_id: str, name: str, apply_to_all: bool) -> ChallengeState:
    """Rename a task.

    With ``apply_to_all`` on a templated task every instance of the template
    is renamed (the caller renames the template itself). Otherwise the task
    is detached into a one-off and a skip record protects its slot.
    """
    task = _find_task(state, task_id)
    if task is None:
        return state

    now = utc_now_iso()

    if apply_to_all and task.template_id:
        tasks = [
            t.model_copy(update={"name": name, "updated_at": now}) if t.template_id == task.template_id else t
            for t in state.tasks
        ]
        return state.model_copy(update={"tasks": tasks})

    detached, skip_record = detach_instance(task)
    renamed = detached.model_copy(update={"name": name, "updated_at": now})
    skip_records = merge_skip_records(state.skip_records, [skip_record] if skip_record else [])
    return state.model_copy(update={"tasks": _replace_task(state.tasks, renamed), "skip_records": skip_records})


def update_task_points(state: ChallengeState, *, task_id: str, competitor_id: str, points: int) -> ChallengeState:
    """Set one competitor's points on a task, clamped to 0-3."""
    task = _find_task(state, task_id)
    if task is None:
        return state

    clamped = max(0, min(Constants.MAX_POINTS_PER_TASK, points))
    updated = task.model_copy(update={"points": {**task.points, competitor_id: clamped}, "updated_at": utc_now_iso()})
    return state.model_copy(update={"tasks": _replace_task(state.tasks, updated)})


def delete_task(state: ChallengeState, task_id: str) -> tuple[ChallengeState, SkipRecord | None]:
    """Delete one task ("this day only").

    Returns:
        (new state, skip record written for a templated task or None)
    """
    task = _find_task(state, task_id)
    if task is None:
        return state, None

    skip_record = create_skip_record_for_delete(task)
    skip_records = merge_skip_records(state.skip_records, [skip_record] if skip_record else [])
    tasks = [t for t in state.tasks if t.id != task_id]
    return state.model_copy(update={"tasks": tasks, "skip_records": skip_records}), skip_record


def delete_tasks_for_template_from_day(state: ChallengeState, template_id: str, from_day_key: DayKey) -> ChallengeState:
    """Delete every instance of a template on or after a day, leaving skip records."""
    doomed = [t for t in state.tasks if t.template_id == template_id and t.day_key >= from_day_key]
    if not doomed:
        return state

    doomed_ids = {t.id for t in doomed}
    new_records = [r for r in (create_skip_record_for_delete(t) for t in doomed) if r is not None]
    return state.model_copy(
        update={
            "tasks": [t for t in state.tasks if t.id not in doomed_ids],
            "skip_records": merge_skip_records(state.skip_records, new_records),
        }
    )


def delete_recurring_task_keeping_points(
    state: ChallengeState, *, template_id: str, anchor_task_id: str
) -> ChallengeState:
    """Stop a recurring task while keeping the points already earned this week.

    The chosen task is always deleted. Other instances this week are deleted
    when they have no points, or detached into one-offs when they do.
    Everything from next week onward is deleted. Removing the template
    itself is the caller's job.
    """
    if state.challenge is None:
        return state

    week_days = set(state.challenge.day_keys())
    state, _ = delete_task(state, anchor_task_id)

    for task in list(state.tasks):
        if task.template_id != template_id or task.day_key not in week_days:
            continue
        if task.has_points():
            state = update_task(state, task.id, template_id=None)
        else:
            state, _ = delete_task(state, task.id)

    first_day_next_week = add_days(state.challenge.end_day_key, 1)
    return delete_tasks_for_template_from_day(state, template_id, first_day_next_week)


def link_task_to_template(state: ChallengeState, *, task_id: str, template_id: str) -> ChallengeState:
    """Turn a one-off into the first instance of a new template.

    Sets the one-shot seed anchor so the next seeding pass does not create a
    duplicate in the same slot.
    """
    task = _find_task(state, task_id)
    if task is None:
        return state

    linked = task.model_copy(update={"template_id": template_id, "original_name": task.name, "updated_at": utc_now_iso()})
    return state.model_copy(
        update={
            "tasks": _replace_task(state.tasks, linked),
            "seed_anchor": SeedAnchor(template_id=template_id, day_key=task.day_key),
        }
    )


def update_task(
    state: ChallengeState,
    task_id: str,
    *,
    name: str = UNSET,
    points: dict[str, int] = UNSET,
    template_id: str | None = UNSET,
) -> ChallengeState:
    """Apply field changes to one task; fields left UNSET are unchanged."""
    task = _find_task(state, task_id)
    if task is None:
        return state

    changes: dict[str, Any] = {"updated_at": utc_now_iso()}
    if name is not UNSET:
        changes["name"] = name
    if points is not UNSET:
        changes["points"] = points
    if template_id is not UNSET:
        changes["template_id"] = template_id

    updated = TaskInstance.model_validate({**task.model_dump(), **changes})
    return state.model_copy(update={"tasks": _replace_task(state.tasks, updated)})


def seed_from_templates(
    state: ChallengeState, templates: Sequence[RecurringTemplate]
) -> tuple[ChallengeState, list[TaskInstance]]:
    """Seed the challenge window from templates.

    The seed anchor, if any, suppresses its slot for this pass and is then
    cleared whether or not it matched.

    Returns:
        (new state, created tasks)
    """
    if state.challenge is None:
        return state, []

    result = seed_tasks(
        state.challenge.day_keys(),
        templates,
        state.tasks,
        state.skip_records,
        state.challenge.id,
        anchor=state.seed_anchor,
    )
    return (
        state.model_copy(update={"tasks": [*state.tasks, *result.created], "seed_anchor": None}),
        result.created,
    )


def apply_reconciliation(state: ChallengeState, result: ReconcileResult) -> ChallengeState:
    """Apply a reconciliation result: drop removed tasks, swap in detached ones."""
    if result.is_empty:
        return state

    removed_ids = {t.id for t in result.removed}
    detached = {t.id: t for t in result.detached}
    tasks = [detached.get(t.id, t) for t in state.tasks if t.id not in removed_ids]

    return state.model_copy(
        update={"tasks": tasks, "skip_records": merge_skip_records(state.skip_records, result.new_skip_records)}
    )


def reorder_tasks(state: ChallengeState, ordered_tasks: Sequence[TaskInstance]) -> ChallengeState:
    """Replace the selected day's tasks with a new order; sort order = position."""
    reordered = [t.model_copy(update={"sort_order": index}) for index, t in enumerate(ordered_tasks)]
    other_days = [t for t in state.tasks if t.day_key != state.selected_day_key]
    return state.model_copy(update={"tasks": [*other_days, *reordered]})


def update_prize(state: ChallengeState, prize: str) -> ChallengeState:
    if state.challenge is None:
        return state
    return state.model_copy(update={"challenge": state.challenge.model_copy(update={"prize": prize})})


def update_challenge_boundaries(
    state: ChallengeState, *, timezone: str, week_start_day: int, now: datetime | None = None
) -> ChallengeState:
    """Move the challenge to the current window after the week start day changed. Tasks are kept."""
    if state.challenge is None:
        return state

    window = current_week_window(timezone, week_start_day, now)
    challenge = state.challenge.model_copy(
        update={"start_day_key": window.start_day_key, "end_day_key": window.end_day_key}
    )
    return state.model_copy(update={"challenge": challenge})


def set_challenge(
    state: ChallengeState, challenge: Challenge | None, *, timezone: str, now: datetime | None = None
) -> ChallengeState:
    """Apply a challenge snapshot from the store.

    The same challenge only refreshes its fields. A different challenge
    clears tasks and waits for them to load. Clearing (None) drops tasks.
    """
    previous = state.challenge

    if previous is not None and challenge is not None and previous.id == challenge.id:
        return state.model_copy(update={"challenge": challenge})

    if previous is not None and challenge is not None:
        return state.model_copy(
            update={
                "challenge": challenge,
                "tasks": [],
                "tasks_loaded_for_challenge_id": None,
                "selected_day_key": today_key(timezone, now),
            }
        )

    return state.model_copy(
        update={
            "challenge": challenge,
            "tasks": state.tasks if challenge is not None else [],
            "tasks_loaded_for_challenge_id": None,
            "selected_day_key": today_key(timezone, now),
        }
    )


def set_tasks(state: ChallengeState, tasks: Sequence[TaskInstance]) -> ChallengeState:
    """Replace all tasks with a store snapshot and mark them loaded."""
    loaded_for = state.challenge.id if state.challenge else None
    return state.model_copy(update={"tasks": list(tasks), "tasks_loaded_for_challenge_id": loaded_for})


def set_skip_records(state: ChallengeState, skip_records: Sequence[SkipRecord]) -> ChallengeState:
    return state.model_copy(update={"skip_records": list(skip_records)})


def set_error(state: ChallengeState, error: str | None) -> ChallengeState:
    return state.model_copy(update={"error": error})


def tasks_for_day(state: ChallengeState, day_key: DayKey) -> list[TaskInstance]:
    """Tasks of one day in display order (missing sort order counts as 0)."""
    return sorted((t for t in state.tasks if t.day_key == day_key), key=lambda t: t.sort_order or 0)


def scores(state: ChallengeState, competitors: Sequence[Competitor]) -> ChallengeScores:
    """Current scores of the running challenge."""
    return challenge_scores(state.tasks, competitors)
