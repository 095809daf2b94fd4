"""Household and competitor domain models."""

from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator

from housecup.domain.base import DomainModel, utc_now_iso


# 0 = Sunday, 6 = Saturday
WeekStartDay = Annotated[int, Field(ge=0, le=6)]

MAX_COMPETITORS = 2

# Orange variants are reserved for the app accent color
COMPETITOR_COLORS: dict[str, str] = {
    "purple": "#9B7FD1",
    "blue": "#5B9BD5",
    "teal": "#4ECDC4",
    "green": "#7CB342",
    "pink": "#E57373",
    "indigo": "#5C6BC0",
    "cyan": "#26C6DA",
    "amber": "#FFCA28",
}


def is_valid_competitor_color(hex_color: str) -> bool:
    """Check if a color is one of the selectable competitor colors."""
    return hex_color.lower() in {c.lower() for c in COMPETITOR_COLORS.values()}


class Competitor(DomainModel):
    """A household member competing for the weekly prize."""

    id: str = Field(..., description="Unique competitor ID")
    name: str = Field(..., description="Display name")
    color: str = Field(..., description="Hex color used for this competitor's points")
    user_id: str | None = Field(default=None, description="Linked account ID; None means a pending invite slot")

    @property
    def is_pending_invite(self) -> bool:
        """True when no account has claimed this competitor slot yet."""
        return self.user_id is None

    @property
    def initial(self) -> str:
        """First letter of the name, uppercased."""
        return self.name[:1].upper()


class Household(DomainModel):
    """The household whose competitors share a weekly challenge."""

    id: str = Field(..., description="Unique household ID")
    competitors: list[Competitor] = Field(..., min_length=1, max_length=MAX_COMPETITORS)
    timezone: str = Field(..., description="IANA timezone identifier, e.g. America/New_York")
    week_start_day: WeekStartDay = Field(default=0, description="Day the challenge week starts (0=Sunday)")
    prize: str | None = Field(default=None, description="Prize text for the weekly winner")
    join_code: str | None = Field(default=None, description="Short code for a partner to join")
    created_at: str = Field(default_factory=utc_now_iso, description="Creation timestamp (ISO format)")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate the timezone is a known IANA zone."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    def competitor(self, competitor_id: str) -> Competitor | None:
        """Look up a competitor by ID."""
        return next((c for c in self.competitors if c.id == competitor_id), None)
