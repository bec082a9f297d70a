"""
Tests for bearer token verification.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from app.exceptions import AuthError
from app.services.auth import TokenVerifier
from conftest import TEST_JWT_SECRET, create_token


@pytest.fixture
def verifier() -> TokenVerifier:
    return TokenVerifier(secret=TEST_JWT_SECRET, audience="authenticated", algorithms=["HS256"])


class TestTokenVerifier:
    def test_valid_token(self, verifier: TokenVerifier) -> None:
        user_id = uuid4()
        token = create_token(str(user_id), email="owner@example.com")

        principal = verifier.verify(token, client_ip="198.51.100.4")

        assert principal.user_id == user_id
        assert principal.email == "owner@example.com"
        assert principal.rate_limit_key == f"{user_id}:198.51.100.4"

    def test_expired_token(self, verifier: TokenVerifier) -> None:
        token = create_token(str(uuid4()), expires_in=timedelta(seconds=-10))

        with pytest.raises(AuthError, match="Token expired") as exc_info:
            verifier.verify(token)

        assert exc_info.value.status_code == 401

    def test_wrong_secret(self, verifier: TokenVerifier) -> None:
        token = create_token(str(uuid4()), secret="another-secret-that-is-also-32-chars-long")

        with pytest.raises(AuthError, match="Invalid token"):
            verifier.verify(token)

    def test_wrong_audience(self, verifier: TokenVerifier) -> None:
        token = create_token(str(uuid4()), audience="anon")

        with pytest.raises(AuthError, match="Invalid token"):
            verifier.verify(token)

    def test_non_uuid_subject(self, verifier: TokenVerifier) -> None:
        with pytest.raises(AuthError, match="Invalid token"):
            verifier.verify(create_token("service-account"))

    def test_garbage(self, verifier: TokenVerifier) -> None:
        with pytest.raises(AuthError):
            verifier.verify("not.a.jwt")

    def test_unconfigured_secret(self) -> None:
        verifier = TokenVerifier(secret="", audience=None, algorithms=["HS256"])

        with pytest.raises(AuthError, match="not configured"):
            verifier.verify(create_token(str(uuid4())))

    def test_audience_optional(self) -> None:
        verifier = TokenVerifier(secret=TEST_JWT_SECRET, audience=None, algorithms=["HS256"])
        user_id = uuid4()

        assert verifier.verify(create_token(str(user_id), audience="anything")).user_id == user_id
