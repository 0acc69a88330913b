"""
PawLenx Backend — Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets its own Settings (temporary storage root, fast
       bcrypt, zero backoff) and its own FakeGitHub behind an
       httpx.MockTransport, so no test touches the network or real disk
       outside tmp_path.

Fixture Hierarchy (all function-scoped):
    test_settings ──┬── store          GitHubDocumentStore on the fake
    fake_github ────┼── services       full ServiceContainer on the fake
                    └── test_client    httpx.AsyncClient → create_app(services)
"""

import os
import tempfile

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fake_github import FakeGitHub

# pawlenx.main builds a module-level app from the environment on import;
# keep its storage out of the working tree
os.environ.setdefault("STORAGE_ROOT", tempfile.mkdtemp(prefix="pawlenx_test_"))
os.environ["LOG_LEVEL"] = "WARNING"

from pawlenx.config import Settings  # noqa: E402
from pawlenx.dependencies import build_services  # noqa: E402
from pawlenx.services.github_store import GitHubDocumentStore  # noqa: E402


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        github_token="test-token",
        github_owner="pawlenx",
        github_repo="pawlenx-data",
        jwt_secret="test-jwt-secret",
        identity_key_secret="test-identity-secret",
        storage_root=str(tmp_path / "storage"),
        bcrypt_rounds=4,
        retry_max_attempts=3,
        retry_min_wait=0,
        retry_max_wait=0,
        cas_max_attempts=5,
        cas_backoff_initial=0,
        cas_backoff_max=0,
        cb_failure_threshold=3,
        cb_recovery_timeout=60,
        log_level="WARNING",
    )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub(owner="pawlenx", repo="pawlenx-data")


@pytest_asyncio.fixture
async def store(test_settings, fake_github):
    store = GitHubDocumentStore(test_settings, transport=fake_github.transport())
    yield store
    await store.close()


@pytest_asyncio.fixture
async def services(test_settings, fake_github):
    container = build_services(test_settings, transport=fake_github.transport())
    yield container
    await container.store.close()


@pytest_asyncio.fixture
async def test_client(services):
    """
    HTTPX AsyncClient talking to a fresh app built on the fake host.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/api/health")
            assert response.status_code == 200
    """
    from pawlenx.main import create_app

    app = create_app(services=services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def pdf_bytes() -> bytes:
    """Smallest thing that looks like a PDF; content is never parsed."""
    return b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"


@pytest.fixture
def jpeg_bytes() -> bytes:
    # SOI + JFIF marker + EOI
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )
