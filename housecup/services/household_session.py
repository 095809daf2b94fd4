"""Session adapter for one household.

Holds the authoritative local state, applies pure transitions synchronously,
and persists the resulting snapshots in the background. A failed write is
logged and recorded as a recoverable ``error`` on the challenge state; local
state is never rolled back. Snapshots arriving from the store replace whole
collections (last write wins).
"""

import asyncio
import logging
from collections.abc import Coroutine, Iterable, Sequence
from datetime import datetime
from typing import Any

from housecup.core import db_client
from housecup.core.config import settings
from housecup.core.logging import span
from housecup.domain.challenge import Challenge
from housecup.domain.household import Household
from housecup.domain.skip_record import SkipRecord
from housecup.domain.task import TaskInstance
from housecup.domain.template import RecurringTemplate
from housecup.services.scoring import ChallengeScores
from housecup.store import challenge_state as cs
from housecup.store import recurring_state as rs


logger = logging.getLogger(__name__)


def skip_record_document(household_id: str, record: SkipRecord) -> dict[str, Any]:
    """Persisted shape of a skip record (skip records have no id of their own)."""
    return {"id": f"{household_id}:{record.key}", "householdId": household_id, **record.to_record()}


def _household_filter(household_id: str) -> str:
    return f'householdId = "{db_client.sanitize_param(household_id)}"'


class HouseholdSession:
    """Local state plus fire-and-forget persistence for one household."""

    def __init__(
        self,
        household: Household,
        *,
        challenge_state: cs.ChallengeState | None = None,
        recurring_state: rs.RecurringState | None = None,
    ) -> None:
        self.household = household
        self.challenge_state = challenge_state or cs.new_challenge_state(household.timezone)
        self.recurring_state = recurring_state or rs.RecurringState()
        self._pending: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()

    @classmethod
    async def load(cls, household_id: str) -> "HouseholdSession":
        """Build a session from the store: household, running challenge, tasks, templates, skip records."""
        with span("household_session.load"):
            household = Household.model_validate(
                await db_client.get_record(collection="households", record_id=household_id)
            )
            session = cls(household)

            template_records = await db_client.list_records(
                collection="templates", filter_query=_household_filter(household_id)
            )
            skip_records = await db_client.list_records(
                collection="skip_records", filter_query=_household_filter(household_id)
            )
            session.apply_remote_templates([RecurringTemplate.model_validate(r) for r in template_records])
            session.apply_remote_skip_records([SkipRecord.model_validate(r) for r in skip_records])

            challenge_record = await db_client.get_first_record(
                collection="challenges",
                filter_query=f'{_household_filter(household_id)} && isCompleted = "false"',
            )
            if challenge_record is not None:
                challenge = Challenge.model_validate(challenge_record)
                session.apply_remote_challenge(challenge)
                task_records = await db_client.list_records(
                    collection="tasks",
                    filter_query=f'challengeId = "{db_client.sanitize_param(challenge.id)}"',
                )
                session.apply_remote_tasks([TaskInstance.model_validate(r) for r in task_records])

            logger.info(
                "Household session loaded",
                extra={"household_id": household_id, "tasks": len(session.challenge_state.tasks)},
            )
            return session

    @property
    def error(self) -> str | None:
        return self.challenge_state.error

    def clear_error(self) -> None:
        self.challenge_state = cs.set_error(self.challenge_state, None)

    # Persistence

    def _schedule(self, coro: Coroutine[Any, Any, None], operation: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running event loop, skipping persistence", extra={"operation": operation})
            return

        task = loop.create_task(self._in_order(coro))
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_persisted(t, operation))

    async def _in_order(self, coro: Coroutine[Any, Any, None]) -> None:
        # Snapshots are written in the order they were taken
        async with self._write_lock:
            await coro

    def _on_persisted(self, task: asyncio.Task, operation: str) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return

        logger.error(
            "Failed to persist household state",
            extra={"household_id": self.household.id, "operation": operation, "error": str(error)},
        )
        self.challenge_state = cs.set_error(self.challenge_state, f"Sync failed: {error}")

    async def flush(self) -> None:
        """Wait for in-flight writes (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _write_challenge(self, challenge: Challenge) -> None:
        await db_client.upsert_record(collection="challenges", data=challenge.to_record())

    async def _write_tasks(self, challenge_id: str, tasks: Sequence[TaskInstance]) -> None:
        await db_client.replace_collection(
            collection="tasks",
            filter_query=f'challengeId = "{db_client.sanitize_param(challenge_id)}"',
            records=[t.to_record() for t in tasks],
        )

    async def _write_templates(self, templates: Sequence[RecurringTemplate]) -> None:
        await db_client.replace_collection(
            collection="templates",
            filter_query=_household_filter(self.household.id),
            records=[t.to_record() for t in templates],
        )

    async def _write_skip_records(self, skip_records: Sequence[SkipRecord]) -> None:
        await db_client.replace_collection(
            collection="skip_records",
            filter_query=_household_filter(self.household.id),
            records=[skip_record_document(self.household.id, r) for r in skip_records],
        )

    def _persist_challenge(self) -> None:
        if self.challenge_state.challenge is not None:
            self._schedule(self._write_challenge(self.challenge_state.challenge), "challenge")

    def _persist_tasks(self) -> None:
        challenge = self.challenge_state.challenge
        if challenge is not None:
            self._schedule(self._write_tasks(challenge.id, list(self.challenge_state.tasks)), "tasks")

    def _persist_templates(self) -> None:
        self._schedule(self._write_templates(list(self.recurring_state.templates)), "templates")

    def _persist_skip_records(self) -> None:
        self._schedule(self._write_skip_records(list(self.recurring_state.skip_records)), "skip_records")

    def _sync_skip_records(self, before: Iterable[SkipRecord]) -> None:
        """Mirror skip records written by a challenge transition into the recurring state."""
        before_keys = {r.key for r in before}
        new_records = [r for r in self.challenge_state.skip_records if r.key not in before_keys]
        if not new_records:
            return
        self.recurring_state = rs.add_skip_records(self.recurring_state, new_records)
        self._persist_skip_records()

    # Challenge

    def start_challenge(self, now: datetime | None = None) -> Challenge:
        """Create and seed the challenge for the current week."""
        self.challenge_state = cs.initialize_challenge(
            self.challenge_state,
            household_id=self.household.id,
            timezone=self.household.timezone,
            week_start_day=self.household.week_start_day,
            templates=self.recurring_state.templates,
            skip_records=self.recurring_state.skip_records,
            prize=self.household.prize or settings.default_prize,
            now=now,
        )
        self._persist_challenge()
        self._persist_tasks()
        return self.challenge_state.challenge

    def select_day(self, day_key: str) -> None:
        self.challenge_state = cs.set_selected_day(self.challenge_state, day_key)

    def update_prize(self, prize: str) -> None:
        self.challenge_state = cs.update_prize(self.challenge_state, prize)
        self._persist_challenge()

    def change_week_start_day(self, week_start_day: int, now: datetime | None = None) -> None:
        """Move the running challenge to the new week boundaries, keeping its tasks."""
        self.household = self.household.model_copy(update={"week_start_day": week_start_day})
        self.challenge_state = cs.update_challenge_boundaries(
            self.challenge_state, timezone=self.household.timezone, week_start_day=week_start_day, now=now
        )
        self._schedule(
            db_client.update_record(
                collection="households", record_id=self.household.id, data={"weekStartDay": week_start_day}
            ),
            "household",
        )
        self._persist_challenge()

    def scores(self) -> ChallengeScores:
        return cs.scores(self.challenge_state, self.household.competitors)

    def tasks_for_day(self, day_key: str | None = None) -> list[TaskInstance]:
        return cs.tasks_for_day(self.challenge_state, day_key or self.challenge_state.selected_day_key)

    # Tasks

    def add_task(self, name: str, points: dict[str, int] | None = None) -> TaskInstance | None:
        self.challenge_state, task = cs.add_task(self.challenge_state, name=name, points=points)
        if task is not None:
            self._persist_tasks()
        return task

    def rename_task(self, task_id: str, name: str, *, apply_to_all: bool) -> None:
        """Rename one task, or every instance plus the template with ``apply_to_all``."""
        task = next((t for t in self.challenge_state.tasks if t.id == task_id), None)
        if task is None:
            return

        before = list(self.challenge_state.skip_records)
        self.challenge_state = cs.update_task_name(
            self.challenge_state, task_id=task_id, name=name, apply_to_all=apply_to_all
        )
        if apply_to_all and task.template_id:
            self.recurring_state, _ = rs.update_template(self.recurring_state, task.template_id, name=name)
            self._persist_templates()

        self._sync_skip_records(before)
        self._persist_tasks()

    def set_points(self, task_id: str, competitor_id: str, points: int) -> None:
        self.challenge_state = cs.update_task_points(
            self.challenge_state, task_id=task_id, competitor_id=competitor_id, points=points
        )
        self._persist_tasks()

    def delete_task(self, task_id: str) -> SkipRecord | None:
        """Delete one task ("this day only")."""
        before = list(self.challenge_state.skip_records)
        self.challenge_state, skip_record = cs.delete_task(self.challenge_state, task_id)
        self._sync_skip_records(before)
        self._persist_tasks()
        return skip_record

    def delete_template_from_day(self, template_id: str, from_day_key: str) -> None:
        before = list(self.challenge_state.skip_records)
        self.challenge_state = cs.delete_tasks_for_template_from_day(self.challenge_state, template_id, from_day_key)
        self._sync_skip_records(before)
        self._persist_tasks()

    def reorder_tasks(self, ordered_task_ids: Sequence[str]) -> None:
        """Reorder the selected day's tasks by id."""
        by_id = {t.id: t for t in self.challenge_state.tasks}
        ordered = [by_id[task_id] for task_id in ordered_task_ids if task_id in by_id]
        self.challenge_state = cs.reorder_tasks(self.challenge_state, ordered)
        self._persist_tasks()

    # Recurring templates

    def seed(self) -> list[TaskInstance]:
        """Seed the running challenge once its tasks have loaded from the store."""
        state = self.challenge_state
        if state.challenge is None:
            return []
        if state.tasks_loaded_for_challenge_id != state.challenge.id:
            logger.debug("Tasks not loaded yet, skipping seeding", extra={"challenge_id": state.challenge.id})
            return []

        self.challenge_state = cs.set_skip_records(self.challenge_state, self.recurring_state.skip_records)
        self.challenge_state, created = cs.seed_from_templates(self.challenge_state, self.recurring_state.templates)
        if created:
            self._persist_tasks()
        return created

    def add_template(self, name: str, repeat_days: Iterable[int]) -> RecurringTemplate:
        self.recurring_state, template = rs.add_template(
            self.recurring_state, household_id=self.household.id, name=name, repeat_days=repeat_days
        )
        self._persist_templates()
        self.seed()
        return template

    def make_recurring(self, task_id: str, repeat_days: Iterable[int]) -> RecurringTemplate | None:
        """Turn an existing one-off into a recurring task without duplicating its slot."""
        task = next((t for t in self.challenge_state.tasks if t.id == task_id), None)
        if task is None:
            return None

        self.recurring_state, template = rs.add_template(
            self.recurring_state, household_id=self.household.id, name=task.name, repeat_days=repeat_days
        )
        self.challenge_state = cs.link_task_to_template(self.challenge_state, task_id=task_id, template_id=template.id)
        self._persist_templates()
        self._persist_tasks()
        self.seed()
        return template

    def update_template(
        self, template_id: str, *, name: str | None = None, repeat_days: Iterable[int] | None = None
    ) -> None:
        """Edit a template, reconcile the running challenge, then seed any new weekdays."""
        self.recurring_state, result = rs.update_template(
            self.recurring_state,
            template_id,
            name=name,
            repeat_days=repeat_days,
            instances=self.challenge_state.tasks,
        )
        self.challenge_state = cs.apply_reconciliation(self.challenge_state, result)
        self._persist_templates()
        if result.new_skip_records:
            self._persist_skip_records()
        if not result.is_empty:
            self._persist_tasks()
        self.seed()

    def delete_template(self, template_id: str) -> None:
        self.recurring_state = rs.delete_template(self.recurring_state, template_id)
        self.challenge_state = cs.set_skip_records(self.challenge_state, self.recurring_state.skip_records)
        self._persist_templates()
        self._persist_skip_records()

    def stop_recurring_task(self, template_id: str, anchor_task_id: str) -> None:
        """Delete a recurring task but keep this week's earned points as one-offs."""
        self.challenge_state = cs.delete_recurring_task_keeping_points(
            self.challenge_state, template_id=template_id, anchor_task_id=anchor_task_id
        )
        self._persist_tasks()
        self.delete_template(template_id)

    # Remote snapshots

    def apply_remote_challenge(self, challenge: Challenge | None) -> None:
        self.challenge_state = cs.set_challenge(self.challenge_state, challenge, timezone=self.household.timezone)

    def apply_remote_tasks(self, tasks: Sequence[TaskInstance]) -> None:
        self.challenge_state = cs.set_tasks(self.challenge_state, tasks)

    def apply_remote_templates(self, templates: Sequence[RecurringTemplate]) -> None:
        self.recurring_state = rs.set_templates(self.recurring_state, templates)

    def apply_remote_skip_records(self, skip_records: Sequence[SkipRecord]) -> None:
        self.recurring_state = rs.set_skip_records(self.recurring_state, skip_records)
        self.challenge_state = cs.set_skip_records(self.challenge_state, skip_records)
