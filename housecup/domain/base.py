"""Shared base model and helpers for domain entities."""

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DomainModel(BaseModel):
    """Base for persisted entities.

    Fields use snake_case in Python and camelCase on the wire
    (``template_id`` <-> ``templateId``). Either form is accepted on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict:
        """Serialize to the persisted (camelCase) document shape."""
        return self.model_dump(mode="json", by_alias=True)


def generate_id() -> str:
    """Generate a unique id for a new entity."""
    return uuid.uuid4().hex


def utc_now_iso() -> str:
    """Current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")
