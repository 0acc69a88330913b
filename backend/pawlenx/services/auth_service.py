"""
PawLenx Backend — Authentication Service
==========================================

What:  Signup, login and profile lookup on top of the remote document store.
How:   IdentityKeyDeriver locates the profile; bcrypt verifies the secret;
       SessionTokenService issues the bearer token.
Who:   Called by routes/auth.py and the dashboard route.

Signup Flow:
    ┌────────────┐   ┌──────────────┐   ┌───────────────┐   ┌──────────────┐
    │  Validate  │──▶│ Derive key + │──▶│ Create        │──▶│ Create empty │
    │  fields    │   │ check absent │   │ profile.json  │   │ pets.json    │
    └────────────┘   └──────────────┘   └───────────────┘   └──────────────┘

    The two creates are independent documents and not atomic as a pair. A
    failure after the profile write leaves an account without pets.json,
    which every reader treats as an empty collection, so signup still
    succeeds in that case.

Password hashing:
    bcrypt with a SHA-256 pre-hash, so secrets longer than bcrypt's 72-byte
    input limit are not silently truncated.
"""

import base64
import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

import bcrypt

from pawlenx.config import Settings
from pawlenx.exceptions import (
    DuplicateAccountError,
    NotFoundError,
    RemoteStoreError,
    StaleWriteError,
    UnauthorizedError,
    ValidationError,
)
from pawlenx.models.pet import pets_path
from pawlenx.models.user import UserProfile, profile_path
from pawlenx.services.identity import IdentityKeyDeriver
from pawlenx.services.store_base import RemoteDocumentStore
from pawlenx.services.token_service import SessionTokenService

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# ── Password hashing ──────────────────────────────────────────────────────

def _prehash(secret: str) -> bytes:
    """SHA-256 pre-hash to avoid bcrypt's 72-byte truncation."""
    return base64.b64encode(hashlib.sha256(secret.encode("utf-8")).digest())


def hash_secret(secret: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(_prehash(secret), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_secret(secret: str, secret_hash: str) -> bool:
    try:
        return bool(bcrypt.checkpw(_prehash(secret), secret_hash.encode("utf-8")))
    except (ValueError, TypeError):
        return False


@dataclass(frozen=True)
class AuthResult:
    token: str
    display_name: str
    collection_key: str


class AuthService:
    """
    Account lifecycle against the remote document store.

    Error Handling Strategy:
        Client mistakes raise ValidationError / DuplicateAccountError /
        UnauthorizedError. RemoteStoreError propagates unchanged: without
        the remote write there is no durable account, so the request fails.
    """

    def __init__(
        self,
        settings: Settings,
        store: RemoteDocumentStore,
        deriver: IdentityKeyDeriver,
        tokens: SessionTokenService,
    ):
        self.store = store
        self.deriver = deriver
        self.tokens = tokens
        self.bcrypt_rounds = settings.bcrypt_rounds

    async def signup(self, display_name: str, email: str, secret: str) -> AuthResult:
        """
        Create an account and return a session for it.

        Raises:
            ValidationError:       A field is blank or the email is malformed.
            DuplicateAccountError: A profile already exists for this name + secret.
            RemoteStoreError:      The profile could not be written.
        """
        display_name = (display_name or "").strip()
        email = (email or "").strip()
        if not display_name or not email or not secret:
            raise ValidationError(message="Name, email, and password are required")
        if not _EMAIL_PATTERN.match(email):
            raise ValidationError(message="Please enter a valid email address", field="email")

        key = self.deriver.derive_key(display_name, secret)

        if await self.store.read(profile_path(key)) is not None:
            logger.info("Signup rejected: account %s already exists", key)
            raise DuplicateAccountError(context={"collection_key": key})

        profile = UserProfile(
            display_name=display_name,
            email=email,
            secret_hash=hash_secret(secret, self.bcrypt_rounds),
            created_at=datetime.now(timezone.utc),
            collection_key=key,
        )

        try:
            await self.store.write(
                profile_path(key),
                profile.to_document(),
                None,
                f"Create profile for {display_name}",
            )
        except StaleWriteError as e:
            if not await self._created_by_us(key, profile):
                raise DuplicateAccountError(context={"collection_key": key}) from e
            logger.info("Profile create for %s landed before its response was lost", key)

        await self._create_empty_collection(key, display_name)

        logger.info("Account created: %s", key)
        return AuthResult(
            token=self.tokens.issue(key, display_name),
            display_name=display_name,
            collection_key=key,
        )

    async def login(self, display_name: str, secret: str) -> AuthResult:
        """
        Raises:
            UnauthorizedError: Unknown identity or wrong secret (same message
                for both, so responses do not reveal which accounts exist).
        """
        display_name = (display_name or "").strip()
        if not display_name or not secret:
            raise ValidationError(message="Name and password are required")

        key = self.deriver.derive_key(display_name, secret)
        stored = await self.store.read(profile_path(key))
        if stored is None:
            logger.info("Login failed: no account at derived key")
            raise UnauthorizedError()

        profile = UserProfile.model_validate(stored.content)
        if not verify_secret(secret, profile.secret_hash):
            logger.warning("Login failed: secret mismatch for %s", key)
            raise UnauthorizedError()

        logger.info("Login: %s", key)
        return AuthResult(
            token=self.tokens.issue(key, profile.display_name),
            display_name=profile.display_name,
            collection_key=key,
        )

    async def get_profile(self, collection_key: str) -> UserProfile:
        stored = await self.store.read(profile_path(collection_key))
        if stored is None:
            raise NotFoundError(resource="account")
        return UserProfile.model_validate(stored.content)

    async def _created_by_us(self, key: str, profile: UserProfile) -> bool:
        """
        A rejected create may be our own write retried after a lost response.
        The bcrypt salt makes each hash unique, so an identical stored hash
        means the stored profile is this request's.
        """
        stored = await self.store.read(profile_path(key))
        if stored is None:
            return False
        content = stored.content
        return isinstance(content, dict) and content.get("secretHash") == profile.secret_hash

    async def _create_empty_collection(self, key: str, display_name: str) -> None:
        try:
            await self.store.write(
                pets_path(key),
                [],
                None,
                f"Create pet collection for {display_name}",
            )
        except StaleWriteError:
            logger.debug("Pet collection for %s already exists", key)
        except RemoteStoreError as e:
            logger.warning(
                "Pet collection for %s not created (%s); it will read as empty",
                key,
                e.message,
            )
