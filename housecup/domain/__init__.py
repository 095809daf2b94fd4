"""Domain models."""

from housecup.domain.challenge import Challenge, Narrative, WeekNarrative
from housecup.domain.household import COMPETITOR_COLORS, Competitor, Household
from housecup.domain.skip_record import SeedAnchor, SkipRecord, has_skip_record, skip_record_key
from housecup.domain.task import TaskInstance
from housecup.domain.template import RecurringTemplate


__all__ = [
    "COMPETITOR_COLORS",
    "Challenge",
    "Competitor",
    "Household",
    "Narrative",
    "RecurringTemplate",
    "SeedAnchor",
    "SkipRecord",
    "TaskInstance",
    "WeekNarrative",
    "has_skip_record",
    "skip_record_key",
]
