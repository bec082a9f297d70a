"""
API Dependencies - Authentication and pipeline wiring for FastAPI routes.
"""

from functools import lru_cache

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.exceptions import AuthError
from app.models.domain import Principal
from app.services.auth import TokenVerifier, create_token_verifier
from app.services.orchestrator import GenerationOrchestrator

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_token_verifier() -> TokenVerifier:
    """Process-wide token verifier."""
    return create_token_verifier()


def get_client_ip(request: Request, trusted_proxies: int | None = None) -> str:
    """
    Origin address of the caller.

    Each trusted proxy appends the address it received the request from, so
    the client is the hop `trusted_proxies` places from the right. Entries to
    the left of it were supplied by the client and are ignored. Too few hops
    means the request bypassed the proxies, and the socket peer is used.
    """
    if trusted_proxies is None:
        trusted_proxies = settings.trusted_proxy_count

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and trusted_proxies > 0:
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        if len(hops) >= trusted_proxies:
            return hops[-trusted_proxies]
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Principal:
    """
    FastAPI dependency to authenticate the caller.

    Accepts: Authorization: Bearer {access_token}

    Raises:
        AuthError (401) if the header is missing or the token is invalid
    """
    if credentials is None:
        raise AuthError("Unauthorized: Missing or invalid token")
    return verifier.verify(credentials.credentials, client_ip=get_client_ip(request))


async def get_media_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    token: str | None = Query(None, description="Access token for direct browser downloads"),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Principal:
    """Like get_current_principal, but also accepts ?token= for plain links."""
    raw = credentials.credentials if credentials is not None else token
    if not raw:
        raise AuthError("Unauthorized: Missing token")
    return verifier.verify(raw, client_ip=get_client_ip(request))


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    """Orchestrator built during application startup."""
    orchestrator: GenerationOrchestrator = request.app.state.orchestrator
    return orchestrator
