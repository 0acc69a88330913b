"""
PawLenx Backend — GitHub Remote Document Store
================================================

What:  RemoteDocumentStore backed by the GitHub repository contents API.
How:   Documents are base64-encoded JSON files in a data repository; the
       blob SHA GitHub returns with every read is the concurrency token, and
       GitHub itself enforces compare-and-swap on PUT (a stale `sha` is a 409).
Who:   Built once by build_services(); shared by every request.
When:  On every profile, pet-collection and replication operation.

Resilience Strategy:
    1. httpx client timeout on every call (REMOTE_TIMEOUT_SECONDS)
    2. Tenacity retry with exponential backoff + jitter, only for failures
       that are safe to repeat (timeouts, 5xx, connection errors)
    3. Circuit breaker so a dead host fails requests in <1ms
    4. Every non-2xx status classified into a distinct RemoteStoreError

Status classification:
    200/201          → success
    401              → RemoteStoreAuthError
    403              → RemoteStoreRateLimitError if the rate limit is spent,
                       otherwise RemoteStoreAuthError
    404              → read: None, list: [], write: RemoteStoreNotFoundError
    409 / 422        → StaleWriteError (sha mismatch / create on existing)
    429              → RemoteStoreRateLimitError
    5xx, transport   → RemoteStoreUnavailableError (retried)
    client timeout   → RemoteStoreTimeoutError (retried)
"""

import base64
import json
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from pawlenx import __version__
from pawlenx.config import Settings
from pawlenx.exceptions import (
    CircuitBreakerOpenError,
    RemoteStoreAuthError,
    RemoteStoreError,
    RemoteStoreNotFoundError,
    RemoteStoreRateLimitError,
    RemoteStoreTimeoutError,
    RemoteStoreUnavailableError,
    StaleWriteError,
)
from pawlenx.services.store_base import DirectoryEntry, RemoteDocumentStore, StoredDocument

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding the remote host.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow requests through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Only availability failures (timeouts, 5xx, connection errors) count.
    A 409 or a 401 means the host is up and answering.

    Uses plain counters; uvicorn async workers share one process and the
    counters are only touched between awaits.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns:
            True if the request can proceed (CLOSED, or OPEN past its timeout).

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Remote store circuit transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = max(1, int(self.recovery_timeout - elapsed))
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Remote store circuit transitioning to CLOSED (host recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Remote store circuit returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Remote store circuit OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, RemoteStoreError) and exc.retryable


# ══════════════════════════════════════════════════════════════════════════
# GitHub Document Store
# ══════════════════════════════════════════════════════════════════════════

class GitHubDocumentStore(RemoteDocumentStore):
    """
    JSON documents and binary files in one GitHub repository branch.

    Path layout:
        users/<collectionKey>/profile.json
        users/<collectionKey>/pets.json
        users/<collectionKey>/photos/<file>
        applications/<submissionFolder>/<Name>_Application.pdf
        applications/<submissionFolder>/<Name>_Resume.pdf

    Args:
        settings:  Application settings (credentials, timeouts, retry policy).
        transport: Optional httpx transport; tests pass an httpx.MockTransport.
    """

    API_VERSION = "2022-11-28"

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.branch = settings.github_branch

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.API_VERSION,
            "User-Agent": f"pawlenx-backend/{__version__}",
        }
        token = settings.github_token.get_secret_value()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=(
                f"{settings.github_api_url}/repos/"
                f"{settings.github_owner}/{settings.github_repo}/contents"
            ),
            headers=headers,
            timeout=httpx.Timeout(settings.remote_timeout_seconds),
            transport=transport,
        )

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "GitHubDocumentStore initialized for %s/%s@%s, timeout=%.1fs, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            settings.github_owner or "<unset>",
            settings.github_repo or "<unset>",
            self.branch,
            settings.remote_timeout_seconds,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    # ── Public contract ───────────────────────────────────────────────────

    async def read(self, path: str) -> Optional[StoredDocument]:
        response = await self._send("GET", path, params={"ref": self.branch})
        if response.status_code == 404:
            logger.debug("Remote read: %s not found", path)
            return None
        if response.status_code != 200:
            self._raise_for_status(response, path)

        payload = response.json()
        if not isinstance(payload, dict) or payload.get("type") != "file":
            raise RemoteStoreError(
                message="The remote document store returned an unexpected response.",
                context={"path": path, "reason": "path is not a file"},
            )

        raw = await self._file_bytes(path, payload)
        try:
            content = json.loads(raw.decode("utf-8")) if raw.strip() else None
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RemoteStoreError(
                message="A stored document could not be decoded.",
                context={"path": path, "error": str(e)},
            ) from e

        return StoredDocument(content=content, token=payload["sha"])

    async def write(
        self,
        path: str,
        document: Any,
        token: Optional[str],
        message: str,
    ) -> str:
        encoded = json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8") + b"\n"
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(encoded).decode("ascii"),
            "branch": self.branch,
        }
        if token:
            body["sha"] = token

        response = await self._send("PUT", path, json=body)
        if response.status_code in (200, 201):
            new_token = response.json()["content"]["sha"]
            logger.info("Remote write %s (%s): %s", path, "update" if token else "create", message)
            return new_token

        # A token for a document that has since disappeared is as stale as a
        # token for a document that has since changed
        if response.status_code == 404 and token:
            raise StaleWriteError(path, context={"status": 404})
        self._raise_for_status(response, path)

    async def upload(self, path: str, data: bytes, message: str) -> str:
        body = {
            "message": message,
            "content": base64.b64encode(data).decode("ascii"),
            "branch": self.branch,
        }
        response = await self._send("PUT", path, json=body)
        if response.status_code in (200, 201):
            logger.info("Remote upload %s (%d bytes): %s", path, len(data), message)
            return response.json()["content"]["sha"]
        self._raise_for_status(response, path)

    async def list(self, path: str) -> List[DirectoryEntry]:
        response = await self._send("GET", path, params={"ref": self.branch})
        if response.status_code == 404:
            return []
        if response.status_code != 200:
            self._raise_for_status(response, path)

        payload = response.json()
        items = payload if isinstance(payload, list) else [payload]
        return [
            DirectoryEntry(
                name=item["name"],
                path=item["path"],
                type=item.get("type", "file"),
                size=item.get("size", 0),
                token=item.get("sha"),
            )
            for item in items
        ]

    def health(self) -> Dict[str, Any]:
        return {
            "configured": self.settings.remote_configured,
            "circuit": self.circuit_breaker.state,
            "consecutiveFailures": self.circuit_breaker.failure_count,
        }

    async def close(self) -> None:
        await self._client.aclose()

    # ── Transport ─────────────────────────────────────────────────────────

    async def _file_bytes(self, path: str, payload: Dict[str, Any]) -> bytes:
        """
        Inline base64 content for small files; files over 1 MB come back with
        encoding "none" and must be fetched again with the raw media type.
        """
        if payload.get("encoding") == "base64" and (payload.get("content") or not payload.get("size")):
            return base64.b64decode(payload.get("content") or "")

        response = await self._send(
            "GET",
            path,
            params={"ref": self.branch},
            headers={"Accept": "application/vnd.github.raw"},
        )
        if response.status_code != 200:
            self._raise_for_status(response, path)
        return response.content

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        One logical remote call: circuit breaker check, then the HTTP request
        with retries. Returns any non-5xx response for the caller to classify.
        """
        if not self.settings.remote_configured:
            raise RemoteStoreAuthError(context={"reason": "GitHub credentials not configured"})

        self.circuit_breaker.can_execute()

        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.settings.retry_max_attempts),
            wait=wait_exponential_jitter(
                multiplier=self.settings.retry_min_wait,
                max=self.settings.retry_max_wait,
                jitter=self.settings.retry_min_wait,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._send_once(method, path, json, params, headers)
        except RemoteStoreUnavailableError:
            self.circuit_breaker.record_failure()
            raise

        self.circuit_breaker.record_success()
        return response

    async def _send_once(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]],
        params: Optional[Dict[str, str]],
        headers: Optional[Dict[str, str]],
    ) -> httpx.Response:
        start_time = time.perf_counter()
        url = quote(path.strip("/"), safe="/")

        try:
            response = await self._client.request(
                method, url, json=json, params=params, headers=headers
            )
        except httpx.TimeoutException as e:
            logger.warning(
                "Remote %s %s timed out after %.0fms",
                method,
                path,
                (time.perf_counter() - start_time) * 1000,
            )
            raise RemoteStoreTimeoutError(
                timeout=self.settings.remote_timeout_seconds,
                context={"method": method, "path": path},
            ) from e
        except httpx.TransportError as e:
            logger.warning("Remote %s %s transport error: %s", method, path, str(e))
            raise RemoteStoreUnavailableError(
                context={"method": method, "path": path, "error": type(e).__name__},
            ) from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug("Remote %s %s → %d in %.0fms", method, path, response.status_code, duration_ms)

        if response.status_code >= 500:
            raise RemoteStoreUnavailableError(
                context={"method": method, "path": path, "status": response.status_code},
            )
        return response

    def _raise_for_status(self, response: httpx.Response, path: str) -> None:
        """Translate a non-success, non-5xx GitHub response into our taxonomy."""
        status = response.status_code
        context = {"path": path, "status": status, "upstream": _upstream_message(response)}

        if status in (409, 422):
            raise StaleWriteError(path, context=context)
        if status == 429 or (status == 403 and _rate_limit_spent(response)):
            retry_after = _retry_after(response)
            logger.warning("Remote store rate limited on %s (retry after %ss)", path, retry_after)
            raise RemoteStoreRateLimitError(retry_after=retry_after, context=context)
        if status in (401, 403):
            logger.error("Remote store rejected credentials for %s (%d)", path, status)
            raise RemoteStoreAuthError(context=context)
        if status == 404:
            raise RemoteStoreNotFoundError(path, context=context)

        logger.error("Unexpected remote store response for %s: %d", path, status)
        raise RemoteStoreError(context=context)


# ── Response helpers ──────────────────────────────────────────────────────

def _upstream_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        return str(payload.get("message", ""))[:200]
    return ""


def _rate_limit_spent(response: httpx.Response) -> bool:
    if response.headers.get("x-ratelimit-remaining") == "0":
        return True
    return "rate limit" in _upstream_message(response).lower()


def _retry_after(response: httpx.Response) -> Optional[int]:
    header = response.headers.get("retry-after")
    if header and header.isdigit():
        return int(header)
    reset = response.headers.get("x-ratelimit-reset")
    if reset and reset.isdigit():
        return max(1, int(reset) - int(time.time()))
    return None
