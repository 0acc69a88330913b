"""
PawLenx Backend — Abstract Remote Document Store Interface
============================================================

What:  The contract every remote document store implements.
How:   Concrete stores (GitHubDocumentStore) inherit from RemoteDocumentStore.
Who:   AuthService and PetRegistry (JSON documents), IngestionPipeline (files).

Concurrency contract:
    Every read returns a concurrency token (the document's content SHA).
    A write to an existing document must present the token from the
    caller's most recent read; if the stored token has changed in between,
    the write raises StaleWriteError and nothing is written. The caller
    re-reads and retries. A write with token=None is a create and raises
    StaleWriteError if the path already exists.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class StoredDocument:
    """A decoded JSON document plus the token that guards the next write."""

    content: Any
    token: str


@dataclass(frozen=True)
class DirectoryEntry:
    """One child of a listed path."""

    name: str
    path: str
    type: str  # "file" or "dir"
    size: int = 0
    token: Optional[str] = None


class RemoteDocumentStore(ABC):
    """
    Path-addressed JSON documents and files on a remote versioned host.

    Contract:
        - read() returns None (not an exception) when the path is missing
        - list() returns [] (not an exception) when the path is missing
        - write()/upload() attach `message` to the host's history (audit trail)
        - Transport failures raise a RemoteStoreError subclass classifying
          the cause: auth, rate limit, not found, unavailable, timeout
    """

    @abstractmethod
    async def read(self, path: str) -> Optional[StoredDocument]:
        """
        Fetch and JSON-decode the document at `path`.

        Returns:
            StoredDocument(content, token), or None if the path does not exist.

        Raises:
            RemoteStoreError: The host could not be reached or refused us.
        """
        ...

    @abstractmethod
    async def write(
        self,
        path: str,
        document: Any,
        token: Optional[str],
        message: str,
    ) -> str:
        """
        JSON-encode `document` and store it at `path`.

        Args:
            token:   None to create; otherwise the token from the last read.
            message: Human-readable provenance recorded with the write.

        Returns:
            The new concurrency token.

        Raises:
            StaleWriteError: Token is stale, or a create found the path taken.
            RemoteStoreError: Transport failure.
        """
        ...

    @abstractmethod
    async def list(self, path: str) -> List[DirectoryEntry]:
        """List the children of a directory path ([] if it does not exist)."""
        ...

    @abstractmethod
    async def upload(self, path: str, data: bytes, message: str) -> str:
        """
        Create a binary file at `path` (never overwrites).

        Raises:
            StaleWriteError: Something already exists at `path`.
            RemoteStoreError: Transport failure.
        """
        ...

    @abstractmethod
    def health(self) -> Dict[str, Any]:
        """Cheap, local view of the store's availability (no network call)."""
        ...

    async def close(self) -> None:
        """Release network resources. Called once at shutdown."""
        return None
