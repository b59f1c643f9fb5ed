from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class OwnerReference(BaseModel):
    type_tag: str = Field(..., description="Type tag of the owning entity (e.g. 'Post')")
    identifier: int | None = Field(
        None, description="Primary key of the owner (None until the owner is flushed)"
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


class TranslationModel(BaseModel):
    id: int | None = Field(None, description="Primary key (None while unsaved)")
    translatable_type: str = Field(..., description="Type tag of the owning entity")
    translatable_id: int | None = Field(None, description="Primary key of the owner")
    key: str = Field(..., description="Translated attribute name (e.g. 'title')")
    locale: str = Field(..., description="Locale tag (e.g. 'en', 'pt-BR')")
    value: str | None = Field(None, description="Translated value")
    created_at: datetime | None = Field(None, description="Row creation timestamp")
    updated_at: datetime | None = Field(None, description="Last modification timestamp")

    model_config = ConfigDict(from_attributes=True, frozen=True, extra="forbid")
