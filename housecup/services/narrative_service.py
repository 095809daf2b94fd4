"""Rule-based weekly narratives.

Picks the single most interesting angle on a completed week. Angles are
evaluated in a fixed priority order and the first one that applies wins:

1. Record-breaker (best household total ever)
2. Comeback (eventual winner trailed after the first days)
3. Day dominance (one day carried half of someone's week)
4. Close call or blowout (margin compared with history)
5. Fallback (plain summary, always applies)

An insight tip based on task frequency is generated separately and attached
to whichever angle won. History is recomputed from raw tasks on every call;
no cached totals are trusted.
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from housecup.core.config import Constants
from housecup.core.day_key import DAY_NAMES, day_of_week
from housecup.domain.challenge import Challenge, WeekNarrative
from housecup.domain.household import Competitor
from housecup.domain.task import TaskInstance
from housecup.services.scoring import competitor_total, daily_scores, household_total


logger = logging.getLogger(__name__)


@dataclass
class NarrativeContext:
    """Everything the narrative angles look at, computed once per week."""

    challenge: Challenge
    tasks: Sequence[TaskInstance]
    competitors: Sequence[Competitor]
    score_a: int
    score_b: int
    winner: Competitor | None
    loser: Competitor | None
    historical_totals: list[int] = field(default_factory=list)
    historical_margins: list[int] = field(default_factory=list)

    @property
    def total_tasks(self) -> int:
        return len(self.tasks)

    @property
    def household_points(self) -> int:
        return self.score_a + self.score_b

    @property
    def margin(self) -> int:
        return abs(self.score_a - self.score_b)


@dataclass(frozen=True)
class NarrativeAngle:
    """A named detector that returns a narrative or declines with None."""

    name: str
    detect: Callable[[NarrativeContext], WeekNarrative | None]


def _completed_history(challenges: Sequence[Challenge], exclude_challenge_id: str) -> list[Challenge]:
    return [c for c in challenges if c.is_completed and c.id != exclude_challenge_id]


def historical_household_totals(
    challenges: Sequence[Challenge],
    tasks_by_challenge: Mapping[str, Sequence[TaskInstance]],
    competitors: Sequence[Competitor],
    exclude_challenge_id: str,
) -> list[int]:
    """Combined household points for every other completed challenge."""
    return [
        household_total(tasks_by_challenge.get(c.id, []), competitors)
        for c in _completed_history(challenges, exclude_challenge_id)
    ]


def historical_margins(
    challenges: Sequence[Challenge],
    tasks_by_challenge: Mapping[str, Sequence[TaskInstance]],
    competitors: Sequence[Competitor],
    exclude_challenge_id: str,
) -> list[int]:
    """Winning margins for every other completed challenge (empty for solo households)."""
    if len(competitors) < 2:  # noqa: PLR2004
        return []

    margins = []
    for c in _completed_history(challenges, exclude_challenge_id):
        c_tasks = tasks_by_challenge.get(c.id, [])
        margins.append(
            abs(competitor_total(c_tasks, competitors[0].id) - competitor_total(c_tasks, competitors[1].id))
        )
    return margins


def try_record_breaker(ctx: NarrativeContext) -> WeekNarrative | None:
    """Best household output ever."""
    if not ctx.historical_totals:
        return None
    if ctx.household_points <= max(ctx.historical_totals):
        return None

    return WeekNarrative(
        headline="New household record",
        body=f"{ctx.total_tasks} tasks knocked out together. Your most productive week yet.",
    )


def try_comeback(ctx: NarrativeContext) -> WeekNarrative | None:
    """The eventual winner was behind at the mid-week checkpoint."""
    if len(ctx.competitors) < 2 or ctx.winner is None or ctx.loser is None:  # noqa: PLR2004
        return None

    day_keys = ctx.challenge.day_keys()
    if len(day_keys) < Constants.COMEBACK_MIN_WINDOW_DAYS:
        return None

    checkpoint_days = set(day_keys[: Constants.COMEBACK_CHECKPOINT_DAYS])
    early_tasks = [t for t in ctx.tasks if t.day_key in checkpoint_days]
    winner_early = competitor_total(early_tasks, ctx.winner.id)
    loser_early = competitor_total(early_tasks, ctx.loser.id)

    if winner_early >= loser_early:
        return None

    deficit = loser_early - winner_early
    return WeekNarrative(
        headline="What a comeback",
        body=f"{ctx.winner.name} trailed by {deficit} points through mid-week but surged ahead to take it.",
    )


def try_day_dominance(ctx: NarrativeContext) -> WeekNarrative | None:
    """A single day carried at least half of someone's week."""
    for comp in ctx.competitors:
        total = competitor_total(ctx.tasks, comp.id)
        if total == 0:
            continue

        for day_key, day_score in daily_scores(ctx.tasks, comp.id).items():
            if day_score / total >= Constants.DOMINANCE_SHARE and day_score >= Constants.DOMINANCE_MIN_POINTS:
                day_name = DAY_NAMES[day_of_week(day_key)]
                return WeekNarrative(
                    headline=f"{comp.name}'s big {day_name}",
                    body=f"{comp.name} racked up {day_score} points on {day_name} alone, over half their weekly total.",
                )
    return None


def try_close_call_or_blowout(ctx: NarrativeContext) -> WeekNarrative | None:
    """This week's margin compared with every previous margin."""
    margins = ctx.historical_margins
    if not margins:
        return None

    average = sum(margins) / len(margins)

    if ctx.margin <= min(margins) and ctx.margin <= Constants.CLOSE_CALL_MAX_MARGIN:
        if ctx.challenge.is_tie:
            return WeekNarrative(
                headline="Dead heat",
                body=f"Finished in a tie at {ctx.score_a} points each.",
            )
        plural = "" if ctx.margin == 1 else "s"
        return WeekNarrative(
            headline="Closest finish yet",
            body=f"Just {ctx.margin} point{plural} separated the two of you.",
        )

    if (
        ctx.margin >= max(margins)
        and ctx.margin > average * Constants.BLOWOUT_AVERAGE_FACTOR
        and len(margins) >= Constants.BLOWOUT_MIN_HISTORY
    ):
        winner_name = ctx.winner.name if ctx.winner else "The winner"
        return WeekNarrative(
            headline="Dominant week",
            body=f"{winner_name} ran away with it. The biggest margin in your household's history.",
        )

    return None


def build_fallback(ctx: NarrativeContext) -> WeekNarrative:
    """Plain factual summary, used when nothing stands out."""
    return WeekNarrative(
        headline=f"{ctx.total_tasks} tasks done together",
        body="Another week in the books for your household.",
        is_fallback=True,
    )


NARRATIVE_ANGLES: tuple[NarrativeAngle, ...] = (
    NarrativeAngle("record", try_record_breaker),
    NarrativeAngle("comeback", try_comeback),
    NarrativeAngle("day_dominance", try_day_dominance),
    NarrativeAngle("close_call_or_blowout", try_close_call_or_blowout),
)


def select_narrative(ctx: NarrativeContext, angles: Sequence[NarrativeAngle] = NARRATIVE_ANGLES) -> WeekNarrative:
    """Return the first angle that applies, or the fallback."""
    for angle in angles:
        narrative = angle.detect(ctx)
        if narrative is not None:
            logger.debug("Narrative angle selected: %s", angle.name, extra={"challenge_id": ctx.challenge.id})
            return narrative
    return build_fallback(ctx)


def build_narrative_context(
    challenge: Challenge,
    tasks: Sequence[TaskInstance],
    competitors: Sequence[Competitor],
    all_challenges: Sequence[Challenge],
    tasks_by_challenge: Mapping[str, Sequence[TaskInstance]],
) -> NarrativeContext:
    """Compute scores, winner/loser and history for one week."""
    comp_a = competitors[0] if competitors else None
    comp_b = competitors[1] if len(competitors) > 1 else None

    winner = next((c for c in competitors if c.id == challenge.winner_id), None) if challenge.winner_id else None
    loser = None
    if winner is not None and comp_a is not None and comp_b is not None:
        loser = comp_b if winner.id == comp_a.id else comp_a

    return NarrativeContext(
        challenge=challenge,
        tasks=tasks,
        competitors=competitors,
        score_a=competitor_total(tasks, comp_a.id) if comp_a else 0,
        score_b=competitor_total(tasks, comp_b.id) if comp_b else 0,
        winner=winner,
        loser=loser,
        historical_totals=historical_household_totals(all_challenges, tasks_by_challenge, competitors, challenge.id),
        historical_margins=historical_margins(all_challenges, tasks_by_challenge, competitors, challenge.id),
    )


def generate_week_narrative(
    challenge: Challenge,
    tasks: Sequence[TaskInstance],
    competitors: Sequence[Competitor],
    all_challenges: Sequence[Challenge],
    tasks_by_challenge: Mapping[str, Sequence[TaskInstance]],
) -> WeekNarrative:
    """Generate the narrative for a completed challenge week.

    Args:
        challenge: The completed challenge
        tasks: Tasks of that challenge
        competitors: Household competitors (first two are compared)
        all_challenges: Every known challenge, used for history
        tasks_by_challenge: Tasks for each historical challenge ID

    Returns:
        The chosen WeekNarrative, with an insight tip attached when one applies
    """
    ctx = build_narrative_context(challenge, tasks, competitors, all_challenges, tasks_by_challenge)
    narrative = select_narrative(ctx)

    insight_tip = generate_insight_tip(tasks, all_challenges, challenge.id)
    if insight_tip is not None:
        narrative = narrative.model_copy(update={"insight_tip": insight_tip})
    return narrative


def generate_celebration_narrative(
    challenge: Challenge,
    tasks: Sequence[TaskInstance],
    competitors: Sequence[Competitor],
) -> WeekNarrative:
    """Narrative for the end-of-week celebration, without historical context."""
    return generate_week_narrative(challenge, tasks, competitors, [], {})


_TIP_BUCKETS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("laundry", "wash", "clothes"), "A pickup laundry service could save a few hours."),
    (
        ("lunch", "meal", "cook", "dinner", "food", "prep"),
        "Batch prepping on Sunday could free up time during the week.",
    ),
    (
        ("clean", "sweep", "mop", "vacuum"),
        "A quick daily 10-minute tidy might reduce the bigger clean sessions.",
    ),
    (("dishes", "dishwasher"), "Running the dishwasher right after dinner could simplify the routine."),
)

_GENERIC_TIP = "Could any of those be batched or simplified?"


def normalize_task_name(name: str) -> str:
    """Case and whitespace insensitive task name used for frequency counts."""
    return name.lower().strip()


def task_frequencies(tasks: Sequence[TaskInstance]) -> dict[str, int]:
    """Count tasks by normalized name, in first-seen order."""
    counts: dict[str, int] = {}
    for task in tasks:
        name = normalize_task_name(task.name)
        counts[name] = counts.get(name, 0) + 1
    return counts


def generate_insight_tip(
    tasks: Sequence[TaskInstance],
    all_challenges: Sequence[Challenge],
    current_challenge_id: str,
) -> str | None:
    """Suggest an efficiency tip for the most repeated task of the week.

    Never tips on the first week: at least one other completed challenge
    must exist.
    """
    if not _completed_history(all_challenges, current_challenge_id):
        return None

    frequent = [
        (name, count)
        for name, count in task_frequencies(tasks).items()
        if count >= Constants.INSIGHT_TIP_MIN_OCCURRENCES
    ]
    if not frequent:
        return None

    top_name, top_count = max(frequent, key=lambda item: item[1])
    display_name = next((t.name for t in tasks if normalize_task_name(t.name) == top_name), top_name)
    prefix = f'"{display_name}" came up {top_count} times this week.'

    for keywords, suggestion in _TIP_BUCKETS:
        if any(keyword in top_name for keyword in keywords):
            return f"{prefix} {suggestion}"

    return f"{prefix} {_GENERIC_TIP}"
