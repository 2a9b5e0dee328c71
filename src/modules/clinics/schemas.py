"""Clinic directory schemas."""

from pydantic import AliasChoices, BaseModel, Field

from src.shared.schemas import ApiModel


class LocalizedString(BaseModel):
    en: str = ""
    ja: str = ""
    zh: str = ""


class ClinicSummary(ApiModel):
    """The slice of an external clinic record this service relies on."""

    clinic_id: str = Field(validation_alias=AliasChoices("_id", "id", "clinicId"), serialization_alias="id")
    name: LocalizedString
    address: LocalizedString | None = None
    phone: str | None = None
    city: str | None = None
