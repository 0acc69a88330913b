"""
PawLenx Backend — Authentication Schemas
==========================================

What:  Request bodies for signup/login and the shared auth response.
How:   FastAPI validates these before any route code runs; missing fields
       become a 400 through the RequestValidationError handler in main.py.
       Blank-but-present fields are rejected by AuthService.
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from pawlenx.models.pet import PetRecord


class SignupRequest(BaseModel):
    name: str = Field(max_length=100, description="Display name")
    email: str = Field(max_length=254)
    password: str = Field(max_length=256)


class LoginRequest(BaseModel):
    name: str = Field(max_length=100)
    password: str = Field(max_length=256)


class AuthResponse(BaseModel):
    """Returned by signup and login."""

    success: bool = True
    token: str = Field(description="Bearer token, valid for 7 days")
    name: str = Field(description="Display name as entered at signup")


class DashboardResponse(BaseModel):
    """
    What:  Everything the dashboard page renders on load.
    Who:   Returned by GET /api/user/dashboard.

    The profile's secret hash is intentionally absent.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str
    email: str
    created_at: datetime = Field(serialization_alias="createdAt")
    pets: List[PetRecord] = Field(default_factory=list)
