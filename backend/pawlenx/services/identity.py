"""
PawLenx Backend — Identity Key Derivation
===========================================

What:  Maps (display name, secret) to the collection key that namespaces a
       user's documents: users/<collectionKey>/...
How:   <slug>_<digest>
         slug   = display name, lowercased, non-alphanumerics removed
         digest = first 24 hex chars of HMAC-SHA256(server key, slug NUL secret)

Properties:
    - Deterministic: the same name and secret always give the same key, so
      login can find the profile without any index document.
    - Different secrets for the same name give different keys (96-bit digest).
    - The key reveals nothing about the secret and cannot be computed
      without IDENTITY_KEY_SECRET.
    - The key only locates a profile. Authentication is the bcrypt check of
      the stored secretHash that AuthService performs after the lookup.
"""

import hashlib
import hmac
import re

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]")

DIGEST_LENGTH = 24


def normalize_display_name(display_name: str) -> str:
    """'Jane Doe' → 'janedoe'. Names with no letters or digits become 'user'."""
    slug = _NON_ALPHANUMERIC.sub("", display_name.lower())
    return slug or "user"


class IdentityKeyDeriver:
    """Derives collection keys with a server-side HMAC key."""

    def __init__(self, key_secret: str):
        if not key_secret:
            raise ValueError("IdentityKeyDeriver requires a non-empty key secret")
        self._key = key_secret.encode("utf-8")

    def derive_key(self, display_name: str, secret: str) -> str:
        slug = normalize_display_name(display_name)
        digest = hmac.new(
            self._key,
            slug.encode("utf-8") + b"\x00" + secret.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return f"{slug}_{digest[:DIGEST_LENGTH]}"
