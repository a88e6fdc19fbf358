"""Named, identifiable base model shared by bridge objects."""

from typing import Any
from uuid import NAMESPACE_DNS, UUID, uuid4, uuid5

from pydantic import BaseModel, ConfigDict, Field


def stable_uuid(unique_id: str) -> UUID:
    """Map a configured appliance id to the same UUID on every start."""
    return uuid5(NAMESPACE_DNS, f"{unique_id}.harmonybridge.local")


class Entity(BaseModel):
    """Something the bridge names in logs and diagnostics.

    Controllers, loops, runners, the hub and the feed all carry a
    ``name`` (used for their logger) and a ``uuid``. The uuid is random
    unless the object stands for a configured appliance with a
    ``unique_id``; accessory layers key their caches on it, so it must
    survive restarts and renames.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    uuid: UUID = Field(
        default_factory=uuid4,
        description="Random, or derived from unique_id",
    )
    name: str = Field(min_length=1, description="Name used in logs")

    def __init__(self, unique_id: str | None = None, **data: Any) -> None:
        """Build the entity, deriving ``uuid`` from ``unique_id`` if given.

        An explicit ``uuid`` takes precedence over ``unique_id``.
        """
        if unique_id is not None:
            data.setdefault("uuid", stable_uuid(unique_id))
        super().__init__(**data)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, uuid={self.uuid})"
