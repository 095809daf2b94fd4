"""Challenge and narrative domain models."""

from pydantic import BaseModel, Field

from housecup.core.day_key import days_in_range
from housecup.domain.base import DomainModel, utc_now_iso


class Narrative(DomainModel):
    """Stored narrative payload for a completed challenge."""

    headline: str = Field(..., description="Short headline, e.g. 'Closest finish yet'")
    body: str = Field(..., description="One or two sentence story about the week")
    insight_tip: str | None = Field(default=None, description="Optional efficiency tip")


class WeekNarrative(BaseModel):
    """Narrative chosen by the rule-based selector."""

    headline: str
    body: str
    insight_tip: str | None = None
    is_fallback: bool = False  # No interesting angle was found

    def to_narrative(self) -> Narrative:
        """Convert to the stored payload shape."""
        return Narrative(headline=self.headline, body=self.body, insight_tip=self.insight_tip)


class Challenge(DomainModel):
    """One 7-day scoring period for a household."""

    id: str = Field(..., description="Unique challenge ID")
    household_id: str = Field(..., description="Household this challenge belongs to")
    start_day_key: str = Field(..., description="First day of the window (yyyy-MM-dd)")
    end_day_key: str = Field(..., description="Last day of the window, inclusive (yyyy-MM-dd)")
    prize: str = Field(default="", description="Prize text for the winner")
    winner_id: str | None = Field(default=None, description="Winning competitor; None while running or on a tie")
    is_tie: bool = Field(default=False)
    is_completed: bool = Field(default=False)
    created_at: str = Field(default_factory=utc_now_iso)
    narrative: Narrative | None = Field(default=None, description="Narrative written after completion")

    def day_keys(self) -> list[str]:
        """All day keys in the challenge window (inclusive)."""
        return days_in_range(self.start_day_key, self.end_day_key)
