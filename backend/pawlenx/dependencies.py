"""
PawLenx Backend — Service Wiring & Request Dependencies
=========================================================

What:  Builds the per-app service graph and exposes it to route handlers.
How:   create_app() calls build_services() once and stores the container on
       app.state; FastAPI dependencies read it back per request.
Who:   main.py (wiring) and every router (Depends).

Dependency Graph:
    Settings
      ├── GitHubDocumentStore ───────────┬──────────────┬─────────────┐
      ├── IdentityKeyDeriver ──┐         │              │             │
      ├── SessionTokenService ─┴──▶ AuthService    PetRegistry   IngestionPipeline
      └── FileService ──────────────────────────────────────────────┘
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Depends, Request, UploadFile
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pawlenx.config import Settings
from pawlenx.exceptions import UnauthorizedError
from pawlenx.services.auth_service import AuthService
from pawlenx.services.file_service import FileService, UploadedPart
from pawlenx.services.github_store import GitHubDocumentStore
from pawlenx.services.identity import IdentityKeyDeriver
from pawlenx.services.ingestion_service import IngestionPipeline
from pawlenx.services.pet_service import PetRegistry
from pawlenx.services.store_base import RemoteDocumentStore
from pawlenx.services.token_service import SessionClaims, SessionTokenService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    store: RemoteDocumentStore
    tokens: SessionTokenService
    auth: AuthService
    pets: PetRegistry
    files: FileService
    ingestion: IngestionPipeline


def build_services(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ServiceContainer:
    """
    Construct every service from one Settings object.

    Args:
        transport: Forwarded to the GitHub store's httpx client (tests pass
                   an httpx.MockTransport simulating the contents API).
    """
    store = GitHubDocumentStore(settings, transport=transport)
    tokens = SessionTokenService(settings)
    deriver = IdentityKeyDeriver(settings.identity_key_secret.get_secret_value())
    files = FileService(settings)
    return ServiceContainer(
        settings=settings,
        store=store,
        tokens=tokens,
        auth=AuthService(settings, store, deriver, tokens),
        pets=PetRegistry(settings, store),
        files=files,
        ingestion=IngestionPipeline(files, store),
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


# auto_error=False so a missing header reaches our handler as a 401
_bearer = HTTPBearer(auto_error=False)


def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    services: ServiceContainer = Depends(get_services),
) -> SessionClaims:
    """
    Resolve the bearer token to its claims.

    Raises:
        UnauthorizedError: No token was sent (401).
        InvalidTokenError: The token is expired or tampered with (403).
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError(message="Access token required")
    return services.tokens.verify(credentials.credentials)


async def read_part(upload: Optional[UploadFile], field: str, max_size: int) -> Optional[UploadedPart]:
    """
    Read one multipart file into memory, at most max_size + 1 bytes.

    Reading one byte past the ceiling is enough for validation to report an
    oversized part without buffering the whole body.
    """
    if upload is None:
        return None
    try:
        content = await upload.read(max_size + 1)
    finally:
        await upload.close()
    if not content and not upload.filename:
        return None
    return UploadedPart(
        field=field,
        filename=upload.filename or "",
        content_type=upload.content_type,
        content=content,
    )
