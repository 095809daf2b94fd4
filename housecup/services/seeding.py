"""Seeding and reconciliation of recurring tasks.

Seeding materializes task instances from recurring templates. It is
idempotent: calling it again with its own output folded into the existing
instances creates nothing. Reconciliation decides what happens to existing
instances when a template stops repeating on some weekdays.

Every function here is pure and returns a description of the mutations to
apply; persisting them is the caller's job.
"""

import logging
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, Field

from housecup.core.day_key import DayKey, day_of_week
from housecup.domain.base import generate_id, utc_now_iso
from housecup.domain.skip_record import SeedAnchor, SkipRecord, skip_record_key
from housecup.domain.task import TaskInstance
from housecup.domain.template import RecurringTemplate


logger = logging.getLogger(__name__)


class SeedResult(BaseModel):
    """Result of a seeding pass."""

    created: list[TaskInstance] = Field(default_factory=list)
    skipped: int = 0  # Slots that already existed or were suppressed


class ReconcileResult(BaseModel):
    """Mutations required after a template's repeat days changed."""

    removed: list[TaskInstance] = Field(default_factory=list)  # Untouched, out of pattern
    detached: list[TaskInstance] = Field(default_factory=list)  # Edited, now one-offs
    new_skip_records: list[SkipRecord] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.removed or self.detached or self.new_skip_records)


def _max_sort_order_by_day(instances: Iterable[TaskInstance]) -> dict[DayKey, int]:
    max_by_day: dict[DayKey, int] = {}
    for instance in instances:
        current = max_by_day.get(instance.day_key, -1)
        max_by_day[instance.day_key] = max(current, instance.sort_order or 0)
    return max_by_day


def seed_tasks(
    day_keys: Sequence[DayKey],
    templates: Sequence[RecurringTemplate],
    existing_instances: Sequence[TaskInstance],
    skip_records: Iterable[SkipRecord],
    challenge_id: str,
    *,
    anchor: SeedAnchor | None = None,
) -> SeedResult:
    """Seed task instances from templates for a set of days.

    For each day, for each template repeating on that weekday (in template order):
    - an instance for (template, day) already exists -> skip
    - a skip record (or the anchor) covers (template, day) -> skip
    - otherwise -> create an instance appended after the day's existing tasks

    Args:
        day_keys: Days to seed (usually the challenge window)
        templates: All recurring templates for the household
        existing_instances: Task instances that already exist
        skip_records: Persisted skip records
        challenge_id: Challenge the new instances belong to
        anchor: One-shot suppression for a single slot, treated as existing

    Returns:
        SeedResult with the created instances and the skipped count
    """
    existing_lookup = {
        skip_record_key(instance.template_id, instance.day_key)
        for instance in existing_instances
        if instance.template_id
    }
    if anchor is not None:
        existing_lookup.add(anchor.key)

    suppressed = {record.key for record in skip_records}
    max_sort_order = _max_sort_order_by_day(existing_instances)

    created: list[TaskInstance] = []
    skipped = 0
    now = utc_now_iso()

    for day_key in day_keys:
        weekday = day_of_week(day_key)

        for template in templates:
            if not template.repeats_on(weekday):
                continue

            lookup_key = skip_record_key(template.id, day_key)
            if lookup_key in existing_lookup or lookup_key in suppressed:
                skipped += 1
                continue

            next_sort = max_sort_order.get(day_key, -1) + 1
            max_sort_order[day_key] = next_sort

            created.append(
                TaskInstance(
                    id=generate_id(),
                    challenge_id=challenge_id,
                    day_key=day_key,
                    name=template.name,
                    template_id=template.id,
                    original_name=template.name,
                    points={},
                    created_at=now,
                    updated_at=now,
                    sort_order=next_sort,
                )
            )
            # Prevent duplicates within the same pass
            existing_lookup.add(lookup_key)

    logger.debug(
        "Seeded %d task(s) over %d day(s), skipped %d",
        len(created),
        len(day_keys),
        skipped,
        extra={"challenge_id": challenge_id},
    )
    return SeedResult(created=created, skipped=skipped)


def reconcile_template_change(
    template: RecurringTemplate,
    old_repeat_days: Iterable[int],
    new_repeat_days: Iterable[int],
    instances: Iterable[TaskInstance],
) -> ReconcileResult:
    """Reconcile existing instances after a template's repeat days change.

    Instances of this template that fall on a removed weekday are:
    - removed, if untouched (no points, not renamed)
    - detached (template ID cleared) with a new skip record, if locally edited

    Adding weekdays never needs reconciliation; seeding creates the new slots.

    Args:
        template: The template that changed
        old_repeat_days: Repeat days before the change
        new_repeat_days: Repeat days after the change
        instances: Instances to examine (others' templates are ignored)

    Returns:
        ReconcileResult describing the changes to apply
    """
    removed_weekdays = set(old_repeat_days) - set(new_repeat_days)
    result = ReconcileResult()

    if not removed_weekdays:
        return result

    now = utc_now_iso()
    for instance in instances:
        if instance.template_id != template.id:
            continue
        if day_of_week(instance.day_key) not in removed_weekdays:
            continue

        if instance.has_local_edits():
            result.detached.append(instance.model_copy(update={"template_id": None, "updated_at": now}))
            result.new_skip_records.append(SkipRecord(template_id=template.id, day_key=instance.day_key))
        else:
            result.removed.append(instance)

    logger.debug(
        "Reconciled template %s: %d removed, %d detached",
        template.id,
        len(result.removed),
        len(result.detached),
    )
    return result


def detach_instance(instance: TaskInstance) -> tuple[TaskInstance, SkipRecord | None]:
    """Detach an instance from its template ("edit this day only").

    The instance survives as a one-off and the returned skip record keeps
    seeding from recreating a templated duplicate for the same slot.

    Returns:
        (detached instance, skip record), or (instance, None) for a one-off
    """
    if instance.template_id is None:
        return instance, None

    detached = instance.model_copy(update={"template_id": None, "updated_at": utc_now_iso()})
    return detached, SkipRecord(template_id=instance.template_id, day_key=instance.day_key)


def create_skip_record_for_delete(instance: TaskInstance) -> SkipRecord | None:
    """Skip record for a "delete this day only" action; None for one-offs."""
    if instance.template_id is None:
        return None
    return SkipRecord(template_id=instance.template_id, day_key=instance.day_key)


def merge_skip_records(existing: Iterable[SkipRecord], new: Iterable[SkipRecord]) -> list[SkipRecord]:
    """Append new skip records, dropping any already present."""
    merged = list(existing)
    seen = {record.key for record in merged}
    for record in new:
        if record.key not in seen:
            merged.append(record)
            seen.add(record.key)
    return merged


def discard_skip_records_for_template(skip_records: Iterable[SkipRecord], template_id: str) -> list[SkipRecord]:
    """Drop every skip record belonging to a template."""
    return [record for record in skip_records if record.template_id != template_id]
