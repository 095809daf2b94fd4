"""Task instance domain model."""

from typing import Annotated

from pydantic import Field

from housecup.domain.base import DomainModel, utc_now_iso


Points = Annotated[int, Field(ge=0, le=3)]


class TaskInstance(DomainModel):
    """A task on a specific day: a one-off, or one seeded from a template.

    An instance with a template ID and no local edits is "untouched"; that
    distinction drives reconciliation (remove vs detach).
    """

    id: str = Field(..., description="Unique task ID")
    challenge_id: str = Field(..., description="Challenge this task belongs to")
    day_key: str = Field(..., description="Day of this task (yyyy-MM-dd)")
    name: str = Field(..., description="Task name")
    template_id: str | None = Field(default=None, description="Seeding template; None for one-off or detached")
    original_name: str | None = Field(default=None, description="Template name at seeding time, for rename detection")
    points: dict[str, Points] = Field(default_factory=dict, description="Points (0-3) keyed by competitor ID")
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
    sort_order: int | None = Field(default=None, description="Position within the day; lower is higher in the list")

    def was_renamed(self) -> bool:
        """True if a templated instance no longer carries its template's name."""
        if self.template_id is None or self.original_name is None:
            return False
        return self.name != self.original_name

    def has_points(self) -> bool:
        """True if any competitor logged points on this task."""
        return any(p > 0 for p in self.points.values())

    def has_local_edits(self) -> bool:
        """True if points were logged or the instance was renamed."""
        return self.has_points() or self.was_renamed()

    def points_for(self, competitor_id: str) -> int:
        """Points logged by one competitor (0 if none)."""
        return self.points.get(competitor_id, 0)
