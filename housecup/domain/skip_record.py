"""Skip records and the one-shot seed anchor."""

from collections.abc import Iterable

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from housecup.domain.base import DomainModel


class SkipRecord(DomainModel):
    """Suppresses seeding of one template on one day.

    Written whenever a templated instance is deleted or detached so that
    re-seeding does not bring it back. Never expires on its own; discarded
    together with its template.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    template_id: str = Field(..., description="ID of the recurring template")
    day_key: str = Field(..., description="Day to skip (yyyy-MM-dd)")

    @property
    def key(self) -> str:
        """Lookup key for this record."""
        return skip_record_key(self.template_id, self.day_key)


class SeedAnchor(SkipRecord):
    """Single-use seeding suppression for one (template, day) slot.

    Set when an existing task is linked to a freshly created template, before
    any skip record could be persisted. Consumed by the next seeding pass
    whether or not it matched anything.
    """


def skip_record_key(template_id: str, day_key: str) -> str:
    """Create the lookup key for a (template, day) pair."""
    return f"{template_id}:{day_key}"


def has_skip_record(skip_records: Iterable[SkipRecord], template_id: str, day_key: str) -> bool:
    """Check if a skip record exists for a given template and day."""
    return any(sr.template_id == template_id and sr.day_key == day_key for sr in skip_records)
