"""Immutable state and pure transitions for a household session."""

from housecup.store.challenge_state import ChallengeState, new_challenge_state
from housecup.store.recurring_state import RecurringState


__all__ = ["ChallengeState", "RecurringState", "new_challenge_state"]
