"""
PawLenx Backend — User Dashboard & Pet Routes
===============================================

What:  The authenticated surface: dashboard and pet CRUD.
How:   Every handler depends on get_current_session(); the token's collection
       key is the only namespace a handler touches, so one user can never
       reach another user's documents.

Request bodies:
    POST and PUT accept either JSON or multipart/form-data. The dashboard
    form sends multipart when a photo is attached (field "photo") and JSON
    otherwise. Both shapes go through the same pydantic models.

Endpoints:
    GET    /api/user/dashboard      → profile + pets
    POST   /api/user/pets           → 201 {success, pet}
    PUT    /api/user/pets/{pet_id}  → {success, pet}, 404
    DELETE /api/user/pets/{pet_id}  → {success}, 404
"""

import logging
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from pawlenx.dependencies import ServiceContainer, get_current_session, get_services, read_part
from pawlenx.exceptions import ValidationError
from pawlenx.schemas.auth import DashboardResponse
from pawlenx.schemas.common import ErrorResponse
from pawlenx.schemas.pets import (
    PetCreateRequest,
    PetMutationResponse,
    PetUpdateRequest,
    SuccessResponse,
)
from pawlenx.services.file_service import UploadedPart
from pawlenx.services.token_service import SessionClaims

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["User"])

M = TypeVar("M", bound=BaseModel)

_AUTH_RESPONSES = {
    401: {"description": "Access token required", "model": ErrorResponse},
    403: {"description": "Invalid or expired token", "model": ErrorResponse},
}


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    responses=_AUTH_RESPONSES,
    summary="Profile and pets of the logged-in user",
)
async def dashboard(
    session: SessionClaims = Depends(get_current_session),
    services: ServiceContainer = Depends(get_services),
) -> DashboardResponse:
    profile = await services.auth.get_profile(session.collection_key)
    pets = await services.pets.list(session.collection_key)
    return DashboardResponse(
        name=profile.display_name,
        email=profile.email,
        created_at=profile.created_at,
        pets=pets,
    )


@router.post(
    "/pets",
    status_code=201,
    response_model=PetMutationResponse,
    responses={**_AUTH_RESPONSES, 400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Register a pet",
)
async def add_pet(
    request: Request,
    session: SessionClaims = Depends(get_current_session),
    services: ServiceContainer = Depends(get_services),
) -> PetMutationResponse:
    fields, photo = await _read_pet_body(request, services.settings.max_file_size)
    body = _validate(PetCreateRequest, fields)

    values = body.model_dump(exclude_none=True)
    if photo is not None:
        values["photo"] = await services.ingestion.stage_pet_photo(session.collection_key, photo)

    pet = await services.pets.add(session.collection_key, values)
    return PetMutationResponse(pet=pet)


@router.put(
    "/pets/{pet_id}",
    response_model=PetMutationResponse,
    responses={**_AUTH_RESPONSES, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Update a pet",
)
async def update_pet(
    pet_id: int,
    request: Request,
    session: SessionClaims = Depends(get_current_session),
    services: ServiceContainer = Depends(get_services),
) -> PetMutationResponse:
    fields, photo = await _read_pet_body(request, services.settings.max_file_size)
    changes = _validate(PetUpdateRequest, fields).changes()
    if photo is not None:
        # Unknown ids must 404 before anything is staged or uploaded
        await services.pets.get(session.collection_key, pet_id)
        changes["photo"] = await services.ingestion.stage_pet_photo(session.collection_key, photo)
    if not changes:
        raise ValidationError(message="No changes supplied")

    pet = await services.pets.update(session.collection_key, pet_id, changes)
    return PetMutationResponse(pet=pet)


@router.delete(
    "/pets/{pet_id}",
    response_model=SuccessResponse,
    responses={**_AUTH_RESPONSES, 404: {"model": ErrorResponse}},
    summary="Remove a pet",
)
async def remove_pet(
    pet_id: int,
    session: SessionClaims = Depends(get_current_session),
    services: ServiceContainer = Depends(get_services),
) -> SuccessResponse:
    await services.pets.remove(session.collection_key, pet_id)
    return SuccessResponse()


# ── Body parsing ──────────────────────────────────────────────────────────

async def _read_pet_body(request: Request, max_size: int) -> Tuple[Dict[str, Any], Optional[UploadedPart]]:
    """Split a JSON or form body into plain fields and the optional photo."""
    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        fields: Dict[str, Any] = {}
        photo = None
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if key == "photo":
                    photo = await read_part(value, "photo", max_size)
                else:
                    await value.close()
            else:
                fields[key] = value
        return fields, photo

    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError(message="Request body must be JSON or form data") from e
    if not isinstance(body, dict):
        raise ValidationError(message="Request body must be a JSON object")
    return body, None


def _validate(model: Type[M], fields: Dict[str, Any]) -> M:
    try:
        return model.model_validate(fields)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        if first["type"] == "missing":
            message = "Pet name, type, breed, and age are required"
        else:
            message = f"Invalid {field}: {first['msg']}"
        raise ValidationError(message=message, field=field) from e
