"""
Token Verification - Bearer JWTs issued by the auth backend.

NO DICTIONARIES - A verified token becomes a Principal.
"""

from uuid import UUID

import jwt

from app.config import settings
from app.exceptions import AuthError
from app.models.domain import Principal
from app.observability.logging import get_logger

logger = get_logger(__name__)


class TokenVerifier:
    """Verifies HS256 access tokens and extracts the principal id (sub claim)."""

    def __init__(self, secret: str, audience: str | None, algorithms: list[str]) -> None:
        self.secret = secret
        self.audience = audience
        self.algorithms = algorithms

    def verify(self, token: str, client_ip: str = "unknown") -> Principal:
        """Return the Principal for a valid token. Raises AuthError otherwise."""
        if not self.secret:
            logger.error("auth_not_configured")
            raise AuthError("Authentication is not configured")

        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=self.algorithms,
                audience=self.audience or None,
                options={"require": ["sub", "exp"], "verify_aud": bool(self.audience)},
            )
        except jwt.ExpiredSignatureError:
            logger.warning("jwt_token_expired")
            raise AuthError("Unauthorized: Token expired")
        except jwt.InvalidTokenError as e:
            logger.warning("jwt_token_invalid", error=str(e))
            raise AuthError("Unauthorized: Invalid token")

        try:
            user_id = UUID(str(payload["sub"]))
        except ValueError:
            logger.warning("jwt_subject_invalid")
            raise AuthError("Unauthorized: Invalid token")

        email = payload.get("email")
        return Principal(
            user_id=user_id,
            email=str(email) if email else None,
            client_ip=client_ip,
        )


def create_token_verifier() -> TokenVerifier:
    """Build the verifier from settings."""
    return TokenVerifier(
        secret=settings.auth_jwt_secret,
        audience=settings.auth_jwt_audience,
        algorithms=settings.jwt_algorithms,
    )
