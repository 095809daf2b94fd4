"""Challenge lifecycle: scheduled completion of expired weeks and history."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from housecup.core import db_client
from housecup.core.config import Constants, settings
from housecup.core.day_key import today_key
from housecup.core.logging import log_with_household_context, span
from housecup.domain.base import generate_id
from housecup.domain.challenge import Challenge, Narrative, WeekNarrative
from housecup.domain.household import Competitor, Household
from housecup.domain.task import TaskInstance
from housecup.services import narrative_generator
from housecup.services.narrative_service import generate_week_narrative
from housecup.services.scoring import challenge_scores, competitor_total
from housecup.services.week_window import week_window_containing


logger = logging.getLogger(__name__)


@dataclass
class HistoryWeek:
    """A completed challenge with its tasks, scores and narrative."""

    challenge: Challenge
    tasks: list[TaskInstance]
    score_a: int
    score_b: int
    narrative: WeekNarrative


@dataclass
class History:
    weeks: list[HistoryWeek]
    total_tasks: int
    total_weeks: int


def _household_from_record(record: dict[str, Any]) -> Household:
    """Validate a household document, filling the defaults older records lack."""
    data = dict(record)
    if not data.get("timezone"):
        data["timezone"] = settings.default_timezone
    if data.get("weekStartDay") is None and data.get("week_start_day") is None:
        data["weekStartDay"] = 0
    return Household.model_validate(data)


def _household_filter(household_id: str) -> str:
    return f'householdId = "{db_client.sanitize_param(household_id)}"'


async def get_tasks_for_challenge(*, challenge_id: str) -> list[TaskInstance]:
    """Get every task instance of a challenge.

    Args:
        challenge_id: Challenge ID

    Returns:
        List of TaskInstance objects
    """
    records = await db_client.list_records(
        collection="tasks",
        filter_query=f'challengeId = "{db_client.sanitize_param(challenge_id)}"',
    )
    return [TaskInstance.model_validate(r) for r in records]


async def get_completed_challenges(
    *,
    household_id: str,
    limit: int = Constants.HISTORY_CHALLENGE_LIMIT,
) -> list[Challenge]:
    """Get completed challenges for a household, most recent first."""
    records = await db_client.list_records(
        collection="challenges",
        filter_query=f'{_household_filter(household_id)} && isCompleted = "true"',
        sort="-endDayKey",
        per_page=limit,
    )
    return [Challenge.model_validate(r) for r in records]


async def _complete_challenge(challenge: Challenge, household: Household) -> Challenge:
    tasks = await get_tasks_for_challenge(challenge_id=challenge.id)
    scores = challenge_scores(tasks, household.competitors)

    updated = await db_client.update_record(
        collection="challenges",
        record_id=challenge.id,
        data={"isCompleted": True, "winnerId": scores.winner_id, "isTie": scores.is_tie},
    )

    log_with_household_context(
        logger,
        "info",
        "Challenge completed",
        household_id=household.id,
        challenge_id=challenge.id,
        winner_id=scores.winner_id,
        is_tie=scores.is_tie,
    )
    return Challenge.model_validate(updated)


async def _ensure_current_challenge(household: Household, today: str) -> Challenge | None:
    """Create the challenge for the week containing ``today`` unless it exists."""
    window = week_window_containing(today, household.week_start_day)

    existing = await db_client.get_first_record(
        collection="challenges",
        filter_query=f'{_household_filter(household.id)} && startDayKey = "{window.start_day_key}"',
    )
    if existing is not None:
        logger.debug(
            "Current challenge already exists",
            extra={"household_id": household.id, "start_day_key": window.start_day_key},
        )
        return None

    challenge = Challenge(
        id=generate_id(),
        household_id=household.id,
        start_day_key=window.start_day_key,
        end_day_key=window.end_day_key,
        prize=household.prize or settings.default_prize,
    )
    record = await db_client.create_record(collection="challenges", data=challenge.to_record())
    logger.info(
        "Created next challenge",
        extra={"household_id": household.id, "challenge_id": record["id"], "start_day_key": window.start_day_key},
    )
    return Challenge.model_validate(record)


async def complete_household_challenges(household: Household, now: datetime | None = None) -> list[str]:
    """Complete every expired challenge of one household and make sure the current week has one.

    Args:
        household: The household to process
        now: Reference time (defaults to the current time)

    Returns:
        IDs of the challenges that were completed
    """
    with span("challenge_service.complete_household_challenges"):
        today = today_key(household.timezone, now)

        records = await db_client.list_records(
            collection="challenges",
            filter_query=f'{_household_filter(household.id)} && isCompleted = "false" && endDayKey < "{today}"',
        )

        completed: list[str] = []
        for record in records:
            challenge = Challenge.model_validate(record)
            await _complete_challenge(challenge, household)
            completed.append(challenge.id)

        await _ensure_current_challenge(household, today)

        for challenge_id in completed:
            await narrative_generator.generate_challenge_narrative(
                household_id=household.id,
                challenge_id=challenge_id,
            )

        return completed


async def complete_expired_challenges(now: datetime | None = None) -> list[str]:
    """Scheduled job: complete expired challenges for every household.

    A household that fails is logged and skipped; the rest are still processed.

    Args:
        now: Reference time (defaults to the current time)

    Returns:
        IDs of all challenges completed in this run
    """
    with span("challenge_service.complete_expired_challenges"):
        completed: list[str] = []
        households = await db_client.list_records(collection="households")

        for record in households:
            try:
                household = _household_from_record(record)
            except ValidationError as e:
                logger.warning(
                    "Skipping invalid household",
                    extra={"household_id": record.get("id"), "error": str(e)},
                )
                continue

            try:
                completed.extend(await complete_household_challenges(household, now))
            except Exception as e:
                logger.error(
                    "Failed to complete challenges for household",
                    extra={"household_id": household.id, "error": str(e)},
                )
                continue

        logger.info("Completed expired challenges", extra={"count": len(completed)})
        return completed


def _stored_narrative(narrative: Narrative) -> WeekNarrative:
    return WeekNarrative(headline=narrative.headline, body=narrative.body, insight_tip=narrative.insight_tip)


async def load_history(*, household_id: str, competitors: Sequence[Competitor]) -> History:
    """Load completed weeks with scores and narratives, most recent first.

    A stored (LLM-written) narrative is used when present; otherwise the
    rule-based selector writes one from the loaded history.

    Args:
        household_id: Household ID
        competitors: Household competitors, in display order

    Returns:
        History with enriched weeks and totals
    """
    with span("challenge_service.load_history"):
        challenges = await get_completed_challenges(household_id=household_id)
        tasks_by_challenge = {c.id: await get_tasks_for_challenge(challenge_id=c.id) for c in challenges}

        comp_a = competitors[0] if competitors else None
        comp_b = competitors[1] if len(competitors) > 1 else None

        weeks: list[HistoryWeek] = []
        for challenge in challenges:
            tasks = tasks_by_challenge[challenge.id]
            if challenge.narrative is not None:
                narrative = _stored_narrative(challenge.narrative)
            else:
                narrative = generate_week_narrative(challenge, tasks, competitors, challenges, tasks_by_challenge)

            weeks.append(
                HistoryWeek(
                    challenge=challenge,
                    tasks=tasks,
                    score_a=competitor_total(tasks, comp_a.id) if comp_a else 0,
                    score_b=competitor_total(tasks, comp_b.id) if comp_b else 0,
                    narrative=narrative,
                )
            )

        total_tasks = sum(len(w.tasks) for w in weeks)
        logger.debug("History loaded", extra={"household_id": household_id, "weeks": len(weeks)})
        return History(weeks=weeks, total_tasks=total_tasks, total_weeks=len(weeks))
