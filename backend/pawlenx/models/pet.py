"""
PawLenx Backend — Pet Collection Document
===========================================

What:  Pydantic models for `users/<collectionKey>/pets.json`.
How:   The document is a JSON array of PetRecord objects, newest first.
       An absent document is an empty collection.
Who:   Mutated only by PetRegistry; read by the dashboard.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, TypeAdapter


class PetType(str, Enum):
    """Species offered by the registration form."""

    DOG = "Dog"
    CAT = "Cat"
    BIRD = "Bird"
    FISH = "Fish"
    RABBIT = "Rabbit"
    OTHER = "Other"

    @classmethod
    def _missing_(cls, value):
        # Accept "dog", "DOG", " Dog "
        if isinstance(value, str):
            wanted = value.strip().lower()
            for member in cls:
                if member.value.lower() == wanted:
                    return member
        return None


def _check_age(value):
    if value < 0 or value > 100:
        raise ValueError("age must be between 0 and 100 years")
    return value


# Whole years stay ints (3), fractions stay floats (0.5)
PetAge = Annotated[Union[int, float], AfterValidator(_check_age)]


class PetRecord(BaseModel):
    """
    One pet as stored in pets.json.

    Fields:
        id:       Millisecond timestamp, strictly increasing within a collection
        photo:    Remote path (users/<key>/photos/...) or a data: URI
        added_at: When the record was created (UTC)
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    breed: str
    age: PetAge
    type: PetType
    weight: Optional[float] = Field(default=None, ge=0)
    photo: Optional[str] = None
    added_at: datetime = Field(alias="addedAt")

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


PetCollection = List[PetRecord]

_collection_adapter = TypeAdapter(PetCollection)


def parse_collection(document) -> PetCollection:
    """Decode a stored pets.json payload; None or a non-list is treated as empty."""
    if not isinstance(document, list):
        return []
    return _collection_adapter.validate_python(document)


def dump_collection(pets: PetCollection) -> list:
    return [pet.to_document() for pet in pets]


def pets_path(collection_key: str) -> str:
    return f"users/{collection_key}/pets.json"


def photos_prefix(collection_key: str) -> str:
    return f"users/{collection_key}/photos"
