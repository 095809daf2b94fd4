"""State transitions for recurring templates and skip records."""

from collections.abc import Iterable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from housecup.domain.base import generate_id, utc_now_iso
from housecup.domain.skip_record import SkipRecord, has_skip_record as _has_skip_record
from housecup.domain.task import TaskInstance
from housecup.domain.template import RecurringTemplate
from housecup.services.seeding import (
    ReconcileResult,
    discard_skip_records_for_template,
    merge_skip_records,
    reconcile_template_change,
)


class RecurringState(BaseModel):
    """Templates and the household-wide skip records."""

    model_config = ConfigDict(frozen=True)

    templates: list[RecurringTemplate] = Field(default_factory=list)
    skip_records: list[SkipRecord] = Field(default_factory=list)


def find_template(state: RecurringState, template_id: str) -> RecurringTemplate | None:
    return next((t for t in state.templates if t.id == template_id), None)


def add_template(
    state: RecurringState,
    *,
    household_id: str,
    name: str,
    repeat_days: Iterable[int],
    template_id: str | None = None,
) -> tuple[RecurringState, RecurringTemplate]:
    """Create a template; seeding picks it up on the next pass."""
    now = utc_now_iso()
    template = RecurringTemplate(
        id=template_id or generate_id(),
        household_id=household_id,
        name=name,
        repeat_days=list(repeat_days),
        created_at=now,
        updated_at=now,
    )
    return state.model_copy(update={"templates": [*state.templates, template]}), template


def update_template(
    state: RecurringState,
    template_id: str,
    *,
    name: str | None = None,
    repeat_days: Iterable[int] | None = None,
    instances: Sequence[TaskInstance] = (),
) -> tuple[RecurringState, ReconcileResult]:
    """Rename a template and/or change its weekdays.

    When weekdays are removed, existing ``instances`` are reconciled. The
    returned result must be applied to the challenge state; its skip records
    are already merged here.
    """
    template = find_template(state, template_id)
    if template is None:
        return state, ReconcileResult()

    changes: dict = {"updated_at": utc_now_iso()}
    if name is not None:
        changes["name"] = name
    if repeat_days is not None:
        changes["repeat_days"] = list(repeat_days)

    updated = RecurringTemplate.model_validate({**template.model_dump(), **changes})
    result = reconcile_template_change(updated, template.repeat_days, updated.repeat_days, instances)

    templates = [updated if t.id == template_id else t for t in state.templates]
    skip_records = merge_skip_records(state.skip_records, result.new_skip_records)
    return state.model_copy(update={"templates": templates, "skip_records": skip_records}), result


def delete_template(state: RecurringState, template_id: str) -> RecurringState:
    """Remove a template together with its skip records."""
    return state.model_copy(
        update={
            "templates": [t for t in state.templates if t.id != template_id],
            "skip_records": discard_skip_records_for_template(state.skip_records, template_id),
        }
    )


def add_skip_record(state: RecurringState, skip_record: SkipRecord) -> RecurringState:
    return add_skip_records(state, [skip_record])


def add_skip_records(state: RecurringState, skip_records: Iterable[SkipRecord]) -> RecurringState:
    """Add skip records, ignoring ones already present."""
    merged = merge_skip_records(state.skip_records, skip_records)
    if len(merged) == len(state.skip_records):
        return state
    return state.model_copy(update={"skip_records": merged})


def remove_skip_records_for_template(state: RecurringState, template_id: str) -> RecurringState:
    return state.model_copy(
        update={"skip_records": discard_skip_records_for_template(state.skip_records, template_id)}
    )


def set_templates(state: RecurringState, templates: Sequence[RecurringTemplate]) -> RecurringState:
    return state.model_copy(update={"templates": list(templates)})


def set_skip_records(state: RecurringState, skip_records: Sequence[SkipRecord]) -> RecurringState:
    return state.model_copy(update={"skip_records": list(skip_records)})


def has_skip_record(state: RecurringState, template_id: str, day_key: str) -> bool:
    return _has_skip_record(state.skip_records, template_id, day_key)
