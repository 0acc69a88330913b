"""
PawLenx Backend — Pet Registry
================================

What:  CRUD over a user's pet collection (users/<key>/pets.json).
How:   Every mutation is an optimistic read-modify-write: read the collection
       and its token, apply the change in memory, write back with the token.
       A lost compare-and-swap (StaleWriteError) re-runs the whole cycle with
       bounded exponential backoff (CAS_MAX_ATTEMPTS).
Who:   Called by routes/user.py on behalf of the token's owner.

Concurrency Example (two adds from the same account):
    A: read (token t1)          B: read (token t1)
    A: write [a, ...] @t1 → t2  B: write [b, ...] @t1 → 409 StaleWriteError
                                B: read (token t2) → write [b, a, ...] @t2 → t3
    Both pets end up in the collection; no update is lost.

Absent collection:
    pets.json may be missing (signup can stop after the profile write). It
    reads as [] and the first add creates it (token=None).
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from pawlenx.config import Settings
from pawlenx.exceptions import NotFoundError, StaleWriteError
from pawlenx.models.pet import PetCollection, PetRecord, dump_collection, parse_collection, pets_path
from pawlenx.services.store_base import RemoteDocumentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A mutation receives the current collection and returns (new collection, result)
Mutation = Callable[[PetCollection], Tuple[PetCollection, T]]


@dataclass
class _Snapshot:
    pets: PetCollection
    token: Optional[str]


class PetRegistry:
    """Per-user ordered pet collections, newest first."""

    def __init__(self, settings: Settings, store: RemoteDocumentStore):
        self.settings = settings
        self.store = store

    async def list(self, collection_key: str) -> List[PetRecord]:
        return (await self._load(collection_key)).pets

    async def get(self, collection_key: str, pet_id: int) -> PetRecord:
        pets = await self.list(collection_key)
        return pets[_index_of(pets, pet_id)]

    async def add(self, collection_key: str, fields: Dict[str, Any]) -> PetRecord:
        """
        Prepend a new pet.

        `fields` holds name, type, breed, age and optionally weight and photo.
        The record is built once; if an earlier attempt's write landed even
        though its response was lost, the retry finds it and returns it
        instead of adding a duplicate.
        """
        candidate = PetRecord(
            id=_now_millis(),
            added_at=datetime.now(timezone.utc),
            **fields,
        )

        def prepend(pets: PetCollection) -> Tuple[PetCollection, PetRecord]:
            for existing in pets:
                if existing.added_at == candidate.added_at and existing.name == candidate.name:
                    return pets, existing
            newest = max((p.id for p in pets), default=0)
            record = candidate.model_copy(update={"id": max(candidate.id, newest + 1)})
            return [record] + pets, record

        record = await self._mutate(
            collection_key,
            prepend,
            f"Add pet {candidate.name}",
        )
        logger.info("Pet %d (%s) added to %s", record.id, record.name, collection_key)
        return record

    async def update(self, collection_key: str, pet_id: int, fields: Dict[str, Any]) -> PetRecord:
        """
        Apply `fields` to one pet, keeping its id, position and addedAt.

        Raises:
            NotFoundError: No pet with this id in the collection.
        """

        def apply(pets: PetCollection) -> Tuple[PetCollection, PetRecord]:
            index = _index_of(pets, pet_id)
            merged = pets[index].model_dump()
            merged.update(fields)
            updated = PetRecord.model_validate(merged)
            return pets[:index] + [updated] + pets[index + 1:], updated

        record = await self._mutate(collection_key, apply, f"Update pet {pet_id}")
        logger.info("Pet %d updated in %s", pet_id, collection_key)
        return record

    async def remove(self, collection_key: str, pet_id: int) -> None:
        """
        Delete one pet. Once a delete write has been sent, a pet missing
        on a later attempt counts as removed: that write may have landed
        with its response lost.

        Raises:
            NotFoundError: No pet with this id in the collection.
        """
        write_sent = False

        def drop(pets: PetCollection) -> Tuple[PetCollection, None]:
            nonlocal write_sent
            if write_sent and all(p.id != pet_id for p in pets):
                return pets, None
            index = _index_of(pets, pet_id)
            write_sent = True
            return pets[:index] + pets[index + 1:], None

        await self._mutate(collection_key, drop, f"Remove pet {pet_id}")
        logger.info("Pet %d removed from %s", pet_id, collection_key)

    # ── Read-modify-write ─────────────────────────────────────────────────

    async def _load(self, collection_key: str) -> _Snapshot:
        stored = await self.store.read(pets_path(collection_key))
        if stored is None:
            return _Snapshot(pets=[], token=None)
        return _Snapshot(pets=parse_collection(stored.content), token=stored.token)

    async def _mutate(self, collection_key: str, mutation: Mutation, message: str) -> T:
        """
        Run `mutation` inside a compare-and-swap retry loop.

        Raises:
            StaleWriteError: Every attempt lost the race (surfaces as 409).
            NotFoundError:   Raised by the mutation; never retried.
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(StaleWriteError),
            stop=stop_after_attempt(self.settings.cas_max_attempts),
            wait=wait_exponential_jitter(
                multiplier=self.settings.cas_backoff_initial,
                max=self.settings.cas_backoff_max,
                jitter=self.settings.cas_backoff_initial,
            ),
            before_sleep=before_sleep_log(logger, logging.INFO),
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                snapshot = await self._load(collection_key)
                new_pets, result = mutation(snapshot.pets)
                if new_pets is not snapshot.pets:
                    await self.store.write(
                        pets_path(collection_key),
                        dump_collection(new_pets),
                        snapshot.token,
                        f"{message} for {collection_key}",
                    )
        return result


def _index_of(pets: PetCollection, pet_id: int) -> int:
    for index, pet in enumerate(pets):
        if pet.id == pet_id:
            return index
    raise NotFoundError(resource="pet", resource_id=str(pet_id))


def _now_millis() -> int:
    return int(time.time() * 1000)
