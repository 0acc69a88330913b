"""
PawLenx Backend — Session Token Tests
=======================================

What:  Issue/verify round trip, uniqueness, expiry and tampering.
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from pawlenx.exceptions import InvalidTokenError
from pawlenx.services.token_service import SessionTokenService


class TestSessionTokenService:
    @pytest.fixture(autouse=True)
    def _service(self, test_settings):
        self.settings = test_settings
        self.tokens = SessionTokenService(test_settings)

    def test_issue_then_verify(self):
        token = self.tokens.issue("jane_abc", "Jane")
        claims = self.tokens.verify(token)

        assert claims.collection_key == "jane_abc"
        assert claims.display_name == "Jane"

    def test_expiry_is_seven_days(self):
        claims = self.tokens.verify(self.tokens.issue("jane_abc", "Jane"))
        assert claims.expires_at - claims.issued_at == timedelta(days=7)

    def test_two_issues_give_distinct_valid_tokens(self):
        first = self.tokens.issue("jane_abc", "Jane")
        second = self.tokens.issue("jane_abc", "Jane")

        assert first != second
        assert self.tokens.verify(first).collection_key == "jane_abc"
        assert self.tokens.verify(second).collection_key == "jane_abc"

    def test_expired_token_rejected(self):
        past = datetime.now(timezone.utc) - timedelta(days=8)
        token = jwt.encode(
            {"sub": "jane_abc", "name": "Jane", "iat": past, "exp": past + timedelta(days=7)},
            "test-jwt-secret",
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError, match="Invalid or expired token"):
            self.tokens.verify(token)

    def test_tampered_token_rejected(self):
        token = self.tokens.issue("jane_abc", "Jane")
        header, payload, signature = token.split(".")
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
        with pytest.raises(InvalidTokenError):
            self.tokens.verify(".".join([header, payload, flipped]))

    def test_token_signed_with_other_secret_rejected(self):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "jane_abc", "name": "Jane", "iat": now, "exp": now + timedelta(days=1)},
            "someone-elses-secret",
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            self.tokens.verify(token)

    def test_garbage_rejected(self):
        with pytest.raises(InvalidTokenError):
            self.tokens.verify("not-a-jwt")

    def test_missing_name_claim_rejected(self):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": "jane_abc", "iat": now, "exp": now + timedelta(days=1)},
            "test-jwt-secret",
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            self.tokens.verify(token)
