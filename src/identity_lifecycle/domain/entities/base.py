from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Stored items and API payloads use camelCase attribute names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
