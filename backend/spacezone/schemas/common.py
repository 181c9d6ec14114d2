from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel


def iso(value: datetime | None) -> str | None:
    """Stored datetimes are naive UTC; render them as ISO-8601 with an explicit offset."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


UtcDatetime = Annotated[datetime, PlainSerializer(iso, return_type=str)]


class CamelModel(BaseModel):
    """Base for every payload that leaves the service: camelCase keys, ORM friendly."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def dump(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def ok(**fields) -> dict:
    """Success envelope shared by the REST routers."""
    return {"success": True, **fields, "timestamp": iso_now()}
