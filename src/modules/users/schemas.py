"""Pydantic schemas for users."""

from pydantic import Field

from src.shared.enums import UserRole
from src.shared.schemas import ApiModel


class UserPublic(ApiModel):
    user_id: str = Field(serialization_alias="id")
    email: str
    display_name: str | None = Field(default=None, serialization_alias="name")
    role: UserRole
    locale: str
