"""LLM-written narratives for completed challenges.

Runs out of band after a challenge is completed. The rule-based selector in
``narrative_service`` stays the fallback: any failure here is logged and
discarded, never retried, and never surfaces to the caller.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from pydantic import BaseModel, Field
from pydantic_ai import Agent
from pydantic_ai.models.openrouter import OpenRouterModel, OpenRouterModelSettings
from pydantic_ai.providers.openrouter import OpenRouterProvider

from housecup.core import db_client
from housecup.core.config import Constants, settings
from housecup.core.errors import classify_narrative_error
from housecup.core.logging import span
from housecup.domain.challenge import Challenge, Narrative
from housecup.domain.household import Competitor, Household
from housecup.domain.task import TaskInstance
from housecup.services.narrative_service import task_frequencies
from housecup.services.scoring import competitor_total


logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are the narrator for House Cup, a household chore-tracking app where two housemates \
compete weekly by logging tasks and earning points. The winner gets a fun prize.

Your voice: deadpan sports commentator covering a low-stakes league with full seriousness. Dry, knowing, \
slightly amused. You observe. You don't praise, lecture, or cheerlead. Think sports recap energy applied \
to dishes and laundry.

Your job: find the ONE thing that defined this week. Not a summary. Not who won. The non-obvious pattern, \
the turning point, the strategy. Things the score alone doesn't show:
- Did someone front-load Monday then coast?
- Did someone do nothing until Thursday then sweep?
- Was one day responsible for the entire margin?
- Did one person do ALL of one type of task?
- Was it over by Tuesday, or decided on the last day?

Rules:
- ONE sentence. Max 20 words. Period.
- Be specific: name days, tasks, or score swings
- Never repeat what the score already shows (who won, final numbers)
- Never use: impressive, amazing, incredible, showcased, prowess, great, fantastic, wonderful, both contributed
- Never praise. Just observe with a dry wink.
- Don't be mean or sarcastic. Be amused.

Examples of good output:
- "Pri did nothing until Thursday. Then: 14 points in three days."
- "Matt's entire lead came from doing dishes. Five times."
- "This one was over by Tuesday and everyone knew it."
- "One more load of laundry and it would've been a tie."

Fields:
- headline: 2-5 words. The angle. Examples: "Over by Tuesday", "The Thursday surge", "Death by dishes"
- body: 1 sentence, max 20 words. The insight. Dry, specific, slightly amused.
- insight_tip: (optional) DEFAULT IS TO OMIT. Most weeks should have NO tip. Only include one if ALL of \
these are true:
  1. The "Notable Task Changes" section lists a task that is NEW or SPIKING. If that section is empty, \
there is NO tip.
  2. Your suggestion would DIRECTLY cause the named task to happen fewer times next week.
  3. The tip has NOT been given before (check "Previously Given Insight Tips" if present).
  4. The task is NOT a daily essential (cooking, dinner, dishes, feeding kids/pets, making beds, etc.).
  No tip is always better than a mediocre, obvious, or repeated tip. When in doubt, omit."""


class NarrativeOutput(BaseModel):
    """Structured narrative returned by the model."""

    headline: str = Field(..., min_length=1, description="2-5 word angle on the week")
    body: str = Field(..., min_length=1, description="One dry, specific sentence")
    insight_tip: str | None = Field(default=None, description="Optional tip, usually omitted")


@dataclass
class NotableTask:
    """A task that is new or spiking compared with previous weeks."""

    name: str
    count: int
    context: str


@dataclass
class PreviousWeek:
    """A previous completed challenge with its tasks."""

    challenge: Challenge
    tasks: Sequence[TaskInstance]


def find_notable_tasks(
    tasks: Sequence[TaskInstance],
    previous_week_tasks: Sequence[Sequence[TaskInstance]],
) -> list[NotableTask]:
    """Find tasks worth mentioning: frequent this week and new or spiking.

    Stable baseline tasks (seen in two or more previous weeks without a
    spike) are left out. Sorted by count, most frequent first.
    """
    previous_freqs = [task_frequencies(week) for week in previous_week_tasks]
    notable = []

    for name, count in task_frequencies(tasks).items():
        if count < Constants.NOTABLE_TASK_MIN_OCCURRENCES:
            continue

        prev_counts = [freq[name] for freq in previous_freqs if freq.get(name, 0) > 0]

        if not prev_counts:
            notable.append(NotableTask(name=name, count=count, context="new this week"))
        elif len(prev_counts) == 1:
            notable.append(NotableTask(name=name, count=count, context="only appeared in 1 prior week"))
        else:
            average = sum(prev_counts) / len(prev_counts)
            if count > average * Constants.NOTABLE_TASK_SPIKE_FACTOR:
                notable.append(NotableTask(name=name, count=count, context=f"up from avg {int(average + 0.5)}/week"))

    return sorted(notable, key=lambda n: n.count, reverse=True)


def _score_line(tasks: Sequence[TaskInstance], competitors: Sequence[Competitor]) -> str:
    return ", ".join(f"{c.name}: {competitor_total(tasks, c.id)}" for c in competitors)


def build_narrative_prompt(
    *,
    challenge: Challenge,
    competitors: Sequence[Competitor],
    tasks: Sequence[TaskInstance],
    previous_weeks: Sequence[PreviousWeek],
) -> str:
    """Build the user prompt describing one completed week.

    Args:
        challenge: The completed challenge
        competitors: Household competitors
        tasks: Tasks of the completed challenge
        previous_weeks: Most recent completed weeks before this one

    Returns:
        Markdown-ish prompt text
    """
    names = {c.id: c.name for c in competitors}
    winner_name = names.get(challenge.winner_id, "Unknown") if challenge.winner_id else "Unknown"

    lines = [
        f"## This Week: {challenge.start_day_key} to {challenge.end_day_key}",
        f"Prize: {challenge.prize}",
        "Result: Tie" if challenge.is_tie else f"Result: {winner_name} won",
        f"Total tasks completed: {len(tasks)}",
        "",
        "### Final Scores",
    ]
    lines.extend(f"- {c.name}: {competitor_total(tasks, c.id)} points" for c in competitors)
    lines.append("")

    lines.append("### Day-by-Day")
    for day_key in sorted({t.day_key for t in tasks}):
        day_tasks = [t for t in tasks if t.day_key == day_key]
        task_names = ", ".join(t.name for t in day_tasks)
        lines.append(f"{day_key}: {task_names} ({_score_line(day_tasks, competitors)})")
    lines.append("")

    lines.append("### Notable Task Changes This Week")
    notable = find_notable_tasks(tasks, [week.tasks for week in previous_weeks])
    if notable:
        lines.append(
            "(Only tasks that are NEW or significantly increased vs. prior weeks."
            " Stable recurring tasks like daily dinner, dishes, etc. are omitted as baseline.)"
        )
        lines.extend(f'- "{n.name}" appeared {n.count} times ({n.context})' for n in notable)
    else:
        lines.append("None. All tasks this week are consistent with prior weeks.")
    lines.append("")

    previous_tips = [
        week.challenge.narrative.insight_tip
        for week in previous_weeks
        if week.challenge.narrative and week.challenge.narrative.insight_tip
    ]
    if previous_tips:
        lines.append("### Previously Given Insight Tips (DO NOT repeat these)")
        lines.extend(f'- "{tip}"' for tip in previous_tips)
        lines.append("")

    if previous_weeks:
        lines.append("### Previous Weeks (for context)")
        for week in previous_weeks:
            prev = week.challenge
            if prev.is_tie:
                result = "Tie"
            else:
                result = f"Winner: {names.get(prev.winner_id or '', prev.winner_id or '?')}"
            lines.append(
                f"{prev.start_day_key} to {prev.end_day_key}: {len(week.tasks)} tasks, "
                f"{_score_line(week.tasks, competitors)} ({result})"
            )

    return "\n".join(lines)


class _AgentState:
    """Singleton state for the narrative agent."""

    instance: Agent[None, NarrativeOutput] | None = None


def _create_agent() -> Agent[None, NarrativeOutput]:
    """Create the narrative agent backed by OpenRouter."""
    api_key = settings.require_credential("openrouter_api_key", "OpenRouter API key")
    provider = OpenRouterProvider(api_key=api_key)
    model = OpenRouterModel(model_name=settings.model_id, provider=provider)

    return Agent(
        model=model,
        output_type=NarrativeOutput,
        instructions=SYSTEM_PROMPT,
        model_settings=OpenRouterModelSettings(
            temperature=Constants.NARRATIVE_TEMPERATURE,
            max_tokens=Constants.NARRATIVE_MAX_TOKENS,
            timeout=Constants.NARRATIVE_TIMEOUT_SECONDS,
        ),
        retries=0,  # A failed narrative falls back to the rule-based one
        output_retries=0,
    )


def get_agent() -> Agent[None, NarrativeOutput]:
    """Get or create the narrative agent instance."""
    if _AgentState.instance is None:
        _AgentState.instance = _create_agent()
    return _AgentState.instance


async def _fetch_tasks(challenge_id: str) -> list[TaskInstance]:
    records = await db_client.list_records(
        collection="tasks",
        filter_query=f'challengeId = "{db_client.sanitize_param(challenge_id)}"',
    )
    return [TaskInstance.model_validate(r) for r in records]


async def _fetch_previous_weeks(household_id: str, challenge_id: str) -> list[PreviousWeek]:
    limit = settings.narrative_history_weeks
    records = await db_client.list_records(
        collection="challenges",
        filter_query=f'householdId = "{db_client.sanitize_param(household_id)}" && isCompleted = "true"',
        sort="-endDayKey",
        per_page=limit + 1,  # The current challenge may be in the page
    )
    previous = [Challenge.model_validate(r) for r in records if r["id"] != challenge_id][:limit]
    return [PreviousWeek(challenge=c, tasks=await _fetch_tasks(c.id)) for c in previous]


async def generate_challenge_narrative(*, household_id: str, challenge_id: str) -> Narrative | None:
    """Generate and store an LLM narrative for a completed challenge.

    Skips challenges that are not completed or already have a narrative, and
    skips entirely when no OpenRouter key is configured. Failures are
    classified and logged, never raised and never retried.

    Args:
        household_id: Household that owns the challenge
        challenge_id: The completed challenge

    Returns:
        The stored Narrative, or None if skipped or failed
    """
    with span("narrative_generator.generate_challenge_narrative"):
        if not settings.enable_llm_narratives or not settings.openrouter_api_key:
            logger.debug("LLM narratives disabled, skipping", extra={"challenge_id": challenge_id})
            return None

        try:
            challenge = Challenge.model_validate(
                await db_client.get_record(collection="challenges", record_id=challenge_id)
            )
            if not challenge.is_completed or challenge.narrative is not None:
                logger.info("Narrative not needed", extra={"challenge_id": challenge_id})
                return None

            household = Household.model_validate(
                await db_client.get_record(collection="households", record_id=household_id)
            )
            tasks = await _fetch_tasks(challenge_id)
            previous_weeks = await _fetch_previous_weeks(household_id, challenge_id)

            prompt = build_narrative_prompt(
                challenge=challenge,
                competitors=household.competitors,
                tasks=tasks,
                previous_weeks=previous_weeks,
            )

            logger.info("narrative_agent_run", extra={"household_id": household_id, "challenge_id": challenge_id})
            result = await get_agent().run(prompt)
            output = result.output

            narrative = Narrative(
                headline=output.headline.strip(),
                body=output.body.strip(),
                insight_tip=(output.insight_tip or "").strip() or None,
            )

            # Another run may have written a narrative while the model was busy
            current = await db_client.get_record(collection="challenges", record_id=challenge_id)
            if current.get("narrative"):
                logger.info("Narrative already written, discarding", extra={"challenge_id": challenge_id})
                return None

            await db_client.update_record(
                collection="challenges",
                record_id=challenge_id,
                data={"narrative": narrative.to_record()},
            )
        except Exception as e:
            error_category = classify_narrative_error(e)
            logger.error(
                "Failed to generate narrative",
                extra={"challenge_id": challenge_id, "error": str(e), "error_category": error_category.value},
            )
            return None

        logger.info(
            "Narrative written",
            extra={"challenge_id": challenge_id, "headline": narrative.headline},
        )
        return narrative
