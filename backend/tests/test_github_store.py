"""
PawLenx Backend — GitHub Document Store Tests
===============================================

What:  GitHubDocumentStore against the in-process fake contents API.

What we test:
    ✅ read/write/list/upload contract (None and [] for missing paths)
    ✅ Compare-and-swap: stale token and create-on-existing → StaleWriteError
    ✅ Status classification (auth, rate limit, not found, unavailable, timeout)
    ✅ Retries for 5xx/timeouts only; circuit breaker opens after repeated failures
"""

import httpx
import pytest

from pawlenx.exceptions import (
    CircuitBreakerOpenError,
    RemoteStoreAuthError,
    RemoteStoreNotFoundError,
    RemoteStoreRateLimitError,
    RemoteStoreTimeoutError,
    RemoteStoreUnavailableError,
    StaleWriteError,
)
from pawlenx.services.github_store import CircuitBreaker, GitHubDocumentStore

from fake_github import blob_sha


def from_retry_code(warning) -> bool:
    """A DeprecationWarning raised from our retry code or from tenacity."""
    return issubclass(warning.category, DeprecationWarning) and (
        "pawlenx" in warning.filename or "tenacity" in warning.filename
    )


class TestReadWrite:
    @pytest.mark.asyncio
    async def test_read_missing_returns_none(self, store):
        assert await store.read("users/nobody/profile.json") is None

    @pytest.mark.asyncio
    async def test_create_then_read(self, store, fake_github):
        token = await store.write("users/jane/profile.json", {"displayName": "Jane"}, None, "Create profile")

        stored = await store.read("users/jane/profile.json")
        assert stored.content == {"displayName": "Jane"}
        assert stored.token == token
        assert token == blob_sha(fake_github.files["users/jane/profile.json"])
        assert fake_github.commits == [("users/jane/profile.json", "Create profile")]

    @pytest.mark.asyncio
    async def test_update_with_current_token(self, store):
        token = await store.write("users/jane/pets.json", [], None, "create")
        new_token = await store.write("users/jane/pets.json", [{"id": 1}], token, "add")

        stored = await store.read("users/jane/pets.json")
        assert stored.content == [{"id": 1}]
        assert stored.token == new_token != token

    @pytest.mark.asyncio
    async def test_stale_token_rejected(self, store, fake_github):
        first = await store.write("users/jane/pets.json", [], None, "create")
        await store.write("users/jane/pets.json", [{"id": 1}], first, "writer A")

        with pytest.raises(StaleWriteError):
            await store.write("users/jane/pets.json", [{"id": 2}], first, "writer B")
        assert fake_github.json_at("users/jane/pets.json") == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_create_on_existing_path_rejected(self, store):
        await store.write("users/jane/profile.json", {"v": 1}, None, "first")
        with pytest.raises(StaleWriteError):
            await store.write("users/jane/profile.json", {"v": 2}, None, "second")

    @pytest.mark.asyncio
    async def test_update_of_deleted_document_is_stale(self, store, fake_github):
        token = await store.write("users/jane/pets.json", [], None, "create")
        del fake_github.files["users/jane/pets.json"]
        with pytest.raises(StaleWriteError):
            await store.write("users/jane/pets.json", [], token, "update")

    @pytest.mark.asyncio
    async def test_stale_write_is_not_retried(self, store, fake_github):
        await store.write("a.json", {}, None, "create")
        with pytest.raises(StaleWriteError):
            await store.write("a.json", {}, None, "again")
        assert fake_github.count("PUT", "a.json") == 2

    @pytest.mark.asyncio
    async def test_paths_with_spaces_round_trip(self, store):
        await store.write("users/jane doe/profile.json", {"ok": True}, None, "create")
        assert (await store.read("users/jane doe/profile.json")).content == {"ok": True}


class TestListAndUpload:
    @pytest.mark.asyncio
    async def test_list_missing_returns_empty(self, store):
        assert await store.list("applications") == []

    @pytest.mark.asyncio
    async def test_list_directory(self, store, fake_github):
        fake_github.files["users/jane/profile.json"] = b"{}"
        fake_github.files["users/jane/photos/rex.jpg"] = b"\xff\xd8"

        entries = await store.list("users/jane")
        assert [(e.name, e.type) for e in entries] == [("photos", "dir"), ("profile.json", "file")]

    @pytest.mark.asyncio
    async def test_upload_creates_binary_file(self, store, fake_github, pdf_bytes):
        await store.upload("applications/Jane/Jane_Application.pdf", pdf_bytes, "Application from Jane")
        assert fake_github.files["applications/Jane/Jane_Application.pdf"] == pdf_bytes

    @pytest.mark.asyncio
    async def test_upload_never_overwrites(self, store, fake_github):
        fake_github.files["applications/Jane/x.pdf"] = b"original"
        with pytest.raises(StaleWriteError):
            await store.upload("applications/Jane/x.pdf", b"replacement", "again")
        assert fake_github.files["applications/Jane/x.pdf"] == b"original"

    @pytest.mark.asyncio
    async def test_large_file_fetched_raw(self, store, fake_github):
        """Files over 1 MB come back without inline content."""
        fake_github.put_json("big.json", {"k": "v"})
        original = fake_github._get

        def without_inline_content(request, rel):
            response = original(request, rel)
            if request.headers.get("accept") == "application/vnd.github.raw":
                return response
            payload = response.json()
            payload.update({"encoding": "none", "content": ""})
            return httpx.Response(200, json=payload)

        fake_github._get = without_inline_content
        assert (await store.read("big.json")).content == {"k": "v"}


class TestErrorClassification:
    @pytest.mark.asyncio
    async def test_unauthorized(self, store, fake_github):
        fake_github.fail_next = [401]
        with pytest.raises(RemoteStoreAuthError):
            await store.read("users/jane/profile.json")

    @pytest.mark.asyncio
    async def test_rate_limited_403(self, store, fake_github):
        fake_github.fail_next = [
            httpx.Response(
                403,
                json={"message": "API rate limit exceeded"},
                headers={"x-ratelimit-remaining": "0", "retry-after": "30"},
            )
        ]
        with pytest.raises(RemoteStoreRateLimitError) as exc_info:
            await store.read("users/jane/profile.json")
        assert exc_info.value.retry_after == 30

    @pytest.mark.asyncio
    async def test_429_is_rate_limit(self, store, fake_github):
        fake_github.fail_next = [429]
        with pytest.raises(RemoteStoreRateLimitError):
            await store.read("users/jane/profile.json")

    @pytest.mark.asyncio
    async def test_write_to_missing_repo_is_not_found(self, store, fake_github):
        fake_github.fail_next = [404]
        with pytest.raises(RemoteStoreNotFoundError):
            await store.write("users/jane/profile.json", {}, None, "create")

    @pytest.mark.asyncio
    async def test_unconfigured_store_fails_fast(self, test_settings, fake_github):
        settings = test_settings.model_copy(update={"github_repo": ""})
        unconfigured = GitHubDocumentStore(settings, transport=fake_github.transport())
        with pytest.raises(RemoteStoreAuthError):
            await unconfigured.read("users/jane/profile.json")
        assert fake_github.requests == []
        await unconfigured.close()


class TestRetriesAndCircuitBreaker:
    @pytest.mark.asyncio
    async def test_transient_5xx_is_retried(self, store, fake_github):
        fake_github.put_json("a.json", {"ok": True})
        fake_github.fail_next = [502, 503]

        assert (await store.read("a.json")).content == {"ok": True}
        assert fake_github.count("GET", "a.json") == 3

    @pytest.mark.asyncio
    async def test_backoff_configuration_is_not_deprecated(self, store, fake_github, recwarn):
        fake_github.put_json("a.json", {"ok": True})
        fake_github.fail_next = [503]

        await store.read("a.json")

        assert [str(w.message) for w in recwarn if from_retry_code(w)] == []

    @pytest.mark.asyncio
    async def test_timeout_is_retried_then_surfaced(self, store, fake_github):
        fake_github.fail_next = [httpx.ReadTimeout("slow")] * 3
        with pytest.raises(RemoteStoreTimeoutError):
            await store.read("a.json")
        assert fake_github.count("GET", "a.json") == 3

    @pytest.mark.asyncio
    async def test_auth_error_not_retried(self, store, fake_github):
        fake_github.fail_next = [401, 401]
        with pytest.raises(RemoteStoreAuthError):
            await store.read("a.json")
        assert fake_github.count("GET", "a.json") == 1

    @pytest.mark.asyncio
    async def test_circuit_opens_after_repeated_outages(self, store, fake_github):
        fake_github.outage = True
        for _ in range(3):
            with pytest.raises(RemoteStoreUnavailableError):
                await store.read("a.json")

        calls_before = len(fake_github.requests)
        with pytest.raises(CircuitBreakerOpenError):
            await store.read("a.json")
        assert len(fake_github.requests) == calls_before
        assert store.health()["circuit"] == "open"

    def test_health_reports_closed_circuit(self, test_settings):
        store = GitHubDocumentStore(test_settings, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        assert store.health() == {"configured": True, "circuit": "closed", "consecutiveFailures": 0}


class TestCircuitBreaker:
    def test_half_open_after_recovery_timeout(self, monkeypatch):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=10)
        breaker.record_failure()
        breaker.record_failure()
        assert breaker.state == CircuitBreaker.OPEN

        with pytest.raises(CircuitBreakerOpenError):
            breaker.can_execute()

        breaker.last_failure_time -= 11
        assert breaker.can_execute()
        assert breaker.state == CircuitBreaker.HALF_OPEN

        breaker.record_success()
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0
