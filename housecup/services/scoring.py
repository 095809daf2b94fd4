"""Scoring for the weekly household competition."""

from collections.abc import Sequence

from pydantic import BaseModel

from housecup.core.config import Constants
from housecup.core.day_key import DayKey
from housecup.domain.household import Competitor
from housecup.domain.task import TaskInstance


class CompetitorScore(BaseModel):
    """Total points for one competitor."""

    competitor_id: str
    total: int


class ChallengeScores(BaseModel):
    """Scores for all competitors with the winner determination."""

    scores: list[CompetitorScore]
    winner_id: str | None
    is_tie: bool

    def total_for(self, competitor_id: str) -> int:
        return next((s.total for s in self.scores if s.competitor_id == competitor_id), 0)


def competitor_total(tasks: Sequence[TaskInstance], competitor_id: str) -> int:
    """Sum a competitor's points across tasks (0 for no tasks)."""
    return sum(task.points_for(competitor_id) for task in tasks)


def household_total(tasks: Sequence[TaskInstance], competitors: Sequence[Competitor]) -> int:
    """Combined points of every competitor."""
    return sum(competitor_total(tasks, c.id) for c in competitors)


def challenge_scores(tasks: Sequence[TaskInstance], competitors: Sequence[Competitor]) -> ChallengeScores:
    """Calculate every competitor's total and decide the winner.

    With two or more competitors the top two totals decide; an exact tie
    (0-0 included) has no winner. A lone competitor always wins. No
    competitors gives empty scores with neither a winner nor a tie.
    """
    if not competitors:
        return ChallengeScores(scores=[], winner_id=None, is_tie=False)

    scores = [CompetitorScore(competitor_id=c.id, total=competitor_total(tasks, c.id)) for c in competitors]
    ranked = sorted(scores, key=lambda s: s.total, reverse=True)

    winner_id: str | None = None
    is_tie = False

    if len(ranked) == 1:
        winner_id = ranked[0].competitor_id
    elif ranked[0].total == ranked[1].total:
        is_tie = True
    else:
        winner_id = ranked[0].competitor_id

    return ChallengeScores(scores=scores, winner_id=winner_id, is_tie=is_tie)


def daily_scores(tasks: Sequence[TaskInstance], competitor_id: str) -> dict[DayKey, int]:
    """Group a competitor's points by day."""
    totals: dict[DayKey, int] = {}
    for task in tasks:
        totals[task.day_key] = totals.get(task.day_key, 0) + task.points_for(competitor_id)
    return totals


def max_possible_points(task_count: int) -> int:
    """Maximum points available for a number of tasks."""
    return task_count * Constants.MAX_POINTS_PER_TASK


def day_completion(tasks: Sequence[TaskInstance], competitor_id: str) -> int:
    """Percentage (0-100) of available points a competitor earned; 0 for no tasks."""
    if not tasks:
        return 0
    earned = competitor_total(tasks, competitor_id)
    available = max_possible_points(len(tasks))
    # Round half up
    return (earned * 200 + available) // (2 * available)
