from housecup.services import (
    challenge_service,
    household_session,
    narrative_generator,
)


__all__ = [
    "challenge_service",
    "household_session",
    "narrative_generator",
]
