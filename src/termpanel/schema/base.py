"""Shared model configuration for wire-compatible schemas"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model accepting both camelCase (host wire format) and snake_case fields

    Dump with ``model_dump(by_alias=True)`` to produce the camelCase wire form.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
