"""
PawLenx Backend — Authentication Routes
=========================================

What:  POST /api/auth/signup and POST /api/auth/login.
How:   Thin handlers: the body is validated by pydantic, AuthService does
       the rest. Errors surface through the global exception handlers.

Status codes:
    signup: 201 created, 400 blank/malformed field or duplicate account,
            500 remote store failure
    login:  200, 401 unknown name or wrong password (same message)
"""

import logging

from fastapi import APIRouter, Depends

from pawlenx.dependencies import ServiceContainer, get_services
from pawlenx.schemas.auth import AuthResponse, LoginRequest, SignupRequest
from pawlenx.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/signup",
    status_code=201,
    response_model=AuthResponse,
    responses={
        400: {"description": "Missing field or account exists", "model": ErrorResponse},
        500: {"description": "Remote store failure", "model": ErrorResponse},
    },
    summary="Create an account",
)
async def signup(
    body: SignupRequest,
    services: ServiceContainer = Depends(get_services),
) -> AuthResponse:
    result = await services.auth.signup(body.name, body.email, body.password)
    return AuthResponse(token=result.token, name=result.display_name)


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={401: {"description": "Invalid name or password", "model": ErrorResponse}},
    summary="Log in and receive a bearer token",
)
async def login(
    body: LoginRequest,
    services: ServiceContainer = Depends(get_services),
) -> AuthResponse:
    result = await services.auth.login(body.name, body.password)
    return AuthResponse(token=result.token, name=result.display_name)
