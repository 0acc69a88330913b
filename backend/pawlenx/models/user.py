"""
PawLenx Backend — User Profile Document
=========================================

What:  Pydantic model for `users/<collectionKey>/profile.json`.
How:   Serialized with camelCase aliases so the stored JSON matches the
       documents the web client has always read.
Who:   Written once by AuthService.signup(); read by login and the dashboard.

Document layout (remote host):
    users/
    └── janedoe_3f9a0c.../
        ├── profile.json   ← UserProfile
        ├── pets.json      ← PetCollection (see models/pet.py)
        └── photos/        ← replicated pet photos
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserProfile(BaseModel):
    """
    One account.

    `secret_hash` is a bcrypt hash; the plaintext secret is never stored and
    this model is never returned directly by an endpoint.
    """

    model_config = ConfigDict(populate_by_name=True)

    display_name: str = Field(alias="displayName")
    email: str
    secret_hash: str = Field(alias="secretHash")
    created_at: datetime = Field(alias="createdAt")
    collection_key: str = Field(alias="collectionKey")

    def to_document(self) -> dict:
        """JSON-ready dict with camelCase keys, as stored on the remote host."""
        return self.model_dump(mode="json", by_alias=True)


def profile_path(collection_key: str) -> str:
    return f"users/{collection_key}/profile.json"
