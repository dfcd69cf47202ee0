from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

# Exact Decimal in Python and in stored documents; a plain JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    """Base for documents and payloads exchanged in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
