"""HTTP-side credential helpers.

- Session tokens: extraction from the request and the httpOnly cookie
- Guest passes: short JWTs proving an invite holder completed a one-time
  code in this browser session
- ClientContext: caller IP and user agent recorded on sessions and logs
"""

import secrets
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Request, Response

from guestgate.core.config import settings

_BEARER_SCHEME = "bearer"
_TOKEN_QUERY_PARAM = "token"

_GUEST_PASS_AUDIENCE = "guestgate-invite"
# Token-hash prefix bound into a guest pass; regeneration changes it
_GENERATION_PREFIX_LENGTH = 16

_MAX_USER_AGENT_LENGTH = 512


@dataclass(frozen=True)
class ClientContext:
    """Caller metadata captured per request.

    Attributes:
        ip_address: Client IP as seen by the ASGI server (None if unknown).
        user_agent: User-Agent header, truncated to 512 chars.
    """

    ip_address: str | None
    user_agent: str | None


def client_context_from_request(request: Request) -> ClientContext:
    """Build a ClientContext from the incoming request."""
    user_agent = request.headers.get("user-agent")
    return ClientContext(
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent[:_MAX_USER_AGENT_LENGTH] if user_agent else None,
    )


# =============================================================================
# Session tokens
# =============================================================================


def extract_session_token(request: Request) -> str | None:
    """Read the session token from the request.

    Precedence: ``Authorization: Bearer`` header, then the session cookie,
    then the ``token`` query parameter.

    Returns:
        The raw token, or None when no source carries one.
    """
    authorization = request.headers.get("authorization")
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == _BEARER_SCHEME and value.strip():
            return value.strip()

    cookie = request.cookies.get(settings.session_cookie_name)
    if cookie:
        return cookie

    return request.query_params.get(_TOKEN_QUERY_PARAM) or None


def set_session_cookie(response: Response, token: str) -> None:
    """Set httpOnly session cookie on response.

    Security: httpOnly prevents XSS cookie theft. SameSite defaults to strict;
    the Secure flag is required in production (enforced in Settings).

    Args:
        response: FastAPI response object.
        token: Raw session token.
    """
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=int(timedelta(days=settings.session_ttl_days).total_seconds()),
        domain=settings.auth_cookie_domain or None,
    )


def clear_session_cookie(response: Response) -> None:
    """Delete the session cookie.

    Cookie attributes must match set_session_cookie() for the browser to
    delete it.
    """
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        domain=settings.auth_cookie_domain or None,
    )


# =============================================================================
# Guest passes
# =============================================================================


def token_generation(token_hash: str) -> str:
    """Short marker of an invite's current token."""
    return token_hash[:_GENERATION_PREFIX_LENGTH]


def create_guest_pass(
    *,
    invite_id: uuid.UUID,
    token_hash: str,
    secret: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed guest pass for an invite.

    Args:
        invite_id: Invite the pass grants.
        token_hash: Current token hash of the invite. Binding its prefix
            invalidates the pass when the token is regenerated.
        secret: HMAC signing secret.
        expires_delta: Lifetime. Defaults to the session TTL.

    Returns:
        Encoded JWT string.

    Raises:
        ValueError: If secret is empty. guest_pass_grants refuses such
            passes, so issuing one would grant nothing.
    """
    if not secret:
        msg = "AUTH_SECRET must be set to issue guest passes"
        raise ValueError(msg)
    now = datetime.now(UTC)
    payload = {
        "sub": str(invite_id),
        "gen": token_generation(token_hash),
        "gsid": secrets.token_urlsafe(16),
        "aud": _GUEST_PASS_AUDIENCE,
        "iss": settings.auth_issuer,
        "iat": now,
        "exp": now + (expires_delta or timedelta(days=settings.session_ttl_days)),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def guest_pass_grants(
    guest_pass: str | None,
    *,
    invite_id: uuid.UUID,
    token_hash: str,
    secret: str,
) -> bool:
    """Check that a guest pass is valid for the invite's current token.

    Returns False for a missing, malformed, expired, foreign, or stale pass.
    """
    if not guest_pass or not secret:
        return False
    try:
        payload = jwt.decode(
            guest_pass,
            secret,
            algorithms=["HS256"],
            audience=_GUEST_PASS_AUDIENCE,
            issuer=settings.auth_issuer,
        )
    except jwt.InvalidTokenError:
        return False
    return payload.get("sub") == str(invite_id) and payload.get(
        "gen"
    ) == token_generation(token_hash)


def set_guest_pass_cookie(response: Response, guest_pass: str) -> None:
    """Set the guest pass as a browser-session cookie (no max-age).

    Closing the browser ends the guest session, which is what
    OTP_EVERY_SESSION invites re-challenge on.
    """
    response.set_cookie(
        key=settings.invite_pass_cookie_name,
        value=guest_pass,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        domain=settings.auth_cookie_domain or None,
    )
