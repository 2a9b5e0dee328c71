"""Common Pydantic schemas."""

import math
from datetime import datetime
from typing import Annotated, Generic, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.shared.clock import as_utc

T = TypeVar("T")

UtcDateTime = Annotated[datetime, AfterValidator(as_utc)]


class ApiModel(BaseModel):
    """Base for API payloads: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ResponseEnvelope(ApiModel, Generic[T]):
    """Standard API envelope."""

    success: bool = True
    data: T | None = None
    error: str | None = None


class Page(ApiModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, items: list, total: int, page: int, limit: int) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
        )
