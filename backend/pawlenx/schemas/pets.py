"""
PawLenx Backend — Pet Request/Response Schemas
================================================

What:  Explicit shapes for the pet endpoints' JSON or multipart bodies.
How:   Field names follow the dashboard form (petName, petType, ...). Multipart
       bodies arrive as strings, so blank optional fields are normalized to None
       and numbers are coerced by pydantic.
Who:   Validated in routes/user.py before PetRegistry is called.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pawlenx.models.pet import PetAge, PetRecord, PetType


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _normalize_type(value):
    if isinstance(value, str) and value.strip():
        return PetType(value)
    return _blank_to_none(value)


class PetCreateRequest(BaseModel):
    """Body of POST /api/user/pets. The photo, if any, is a separate multipart part."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(alias="petName", min_length=1, max_length=100)
    type: PetType = Field(alias="petType")
    breed: str = Field(alias="petBreed", min_length=1, max_length=100)
    age: PetAge = Field(alias="petAge")
    weight: Optional[float] = Field(default=None, alias="petWeight", ge=0, le=5000)

    @field_validator("weight", mode="before")
    @classmethod
    def blank_weight_is_none(cls, v):
        return _blank_to_none(v)

    @field_validator("type", mode="before")
    @classmethod
    def type_is_case_insensitive(cls, v):
        return _normalize_type(v)


class PetUpdateRequest(BaseModel):
    """Body of PUT /api/user/pets/{id}; every field is optional."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, alias="petName", min_length=1, max_length=100)
    type: Optional[PetType] = Field(default=None, alias="petType")
    breed: Optional[str] = Field(default=None, alias="petBreed", min_length=1, max_length=100)
    age: Optional[PetAge] = Field(default=None, alias="petAge")
    weight: Optional[float] = Field(default=None, alias="petWeight", ge=0, le=5000)

    @field_validator("name", "breed", "age", "weight", mode="before")
    @classmethod
    def blanks_are_none(cls, v):
        return _blank_to_none(v)

    @field_validator("type", mode="before")
    @classmethod
    def type_is_case_insensitive(cls, v):
        return _normalize_type(v)

    def changes(self) -> dict:
        """Only the fields the client actually sent."""
        return self.model_dump(exclude_none=True)


class PetMutationResponse(BaseModel):
    success: bool = True
    pet: PetRecord = Field(description="The stored record, same shape as in pets.json")


class SuccessResponse(BaseModel):
    success: bool = True
