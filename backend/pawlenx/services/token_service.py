"""
PawLenx Backend — Session Token Service
=========================================

What:  Issues and verifies the bearer tokens returned by signup and login.
How:   HS256 JWTs (python-jose) carrying the collection key and display name,
       valid for TOKEN_TTL_DAYS (7). Stateless: there is no revocation list
       and no refresh; clients log in again after expiry.

Claims:
    sub   collection key (namespaces every document the holder may touch)
    name  display name
    iat   issued at (UTC)
    exp   iat + 7 days
    jti   random id, so two logins never yield the same token
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from pawlenx.config import Settings
from pawlenx.exceptions import InvalidTokenError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a session token."""

    collection_key: str
    display_name: str
    issued_at: datetime
    expires_at: datetime


class SessionTokenService:
    """Signs and verifies session tokens with the configured JWT secret."""

    def __init__(self, settings: Settings):
        self._secret = settings.jwt_secret.get_secret_value()
        self._algorithm = settings.jwt_algorithm
        self.ttl = timedelta(days=settings.token_ttl_days)

    def issue(self, collection_key: str, display_name: str) -> str:
        issued_at = datetime.now(timezone.utc)
        claims = {
            "sub": collection_key,
            "name": display_name,
            "iat": issued_at,
            "exp": issued_at + self.ttl,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> SessionClaims:
        """
        Check signature and expiry.

        Raises:
            InvalidTokenError: For expired, tampered, malformed or incomplete
                tokens alike. The reason is only logged.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require_exp": True, "require_sub": True, "require_iat": True},
            )
        except ExpiredSignatureError as e:
            logger.info("Rejected expired session token")
            raise InvalidTokenError(context={"reason": "expired"}) from e
        except JWTError as e:
            logger.warning("Rejected invalid session token: %s", str(e))
            raise InvalidTokenError(context={"reason": "invalid"}) from e

        name = payload.get("name")
        if not isinstance(name, str) or not payload.get("sub"):
            raise InvalidTokenError(context={"reason": "missing claims"})

        return SessionClaims(
            collection_key=payload["sub"],
            display_name=name,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
