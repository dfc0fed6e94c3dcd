"""Session authentication for user-authenticated endpoints.

Supabase JWT-based session auth.

FLOW:
1. User signs in via POST /auth/sign-in -> session tokens set as HTTP-only cookies
2. Browser calls an endpoint with the cookies (or Authorization: Bearer <jwt>)
3. Dependency validates the JWT with Supabase and extracts user_id
4. Returns SessionAuthContext(user_id, email, access_token)

SECURITY:
- JWT signature verified by Supabase (auth.get_user)
- Cookies are HTTP-only, SameSite=Lax, Secure in production
"""

import base64
import json
import logging
import time
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from research_api.auth import identity
from research_api.auth.identity import IdentityError, IdentitySession, IdentityUser
from research_api.config.env import is_production_env
from research_api.context import user_id_var
from research_api.problem_details import problem_exception

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "sb-access-token"
REFRESH_TOKEN_COOKIE = "sb-refresh-token"
REFRESH_COOKIE_MAX_AGE = 60 * 60 * 24 * 30

# HTTPBearer scheme for session JWT
session_security = HTTPBearer(auto_error=False, description="Supabase JWT Session Token")


class SessionAuthContext:
    """Session authentication context for user-authenticated requests."""

    def __init__(
        self,
        user_id: str,
        email: Optional[str] = None,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        user: Optional[IdentityUser] = None,
    ):
        self.user_id = user_id
        self.email = email
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.user = user


def _create_session_problem(
    status_code: int,
    title: str,
    detail: str,
) -> HTTPException:
    """Create RFC 9457 Problem Detail for session auth errors."""
    return problem_exception(
        status_code, title, detail, headers={"WWW-Authenticate": "Bearer"}
    )


def extract_tokens(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
) -> tuple[Optional[str], Optional[str]]:
    """Return (access_token, refresh_token); a Bearer header wins over cookies.

    Tokens rotated earlier in this request (refresh middleware) win over both.
    """
    refreshed: Optional[IdentitySession] = getattr(request.state, "refreshed_session", None)
    if refreshed is not None:
        return refreshed.access_token, refreshed.refresh_token

    refresh_token = request.cookies.get(REFRESH_TOKEN_COOKIE)
    if credentials and credentials.credentials:
        return credentials.credentials, refresh_token
    return request.cookies.get(ACCESS_TOKEN_COOKIE), refresh_token


def decode_token_expiry(access_token: str) -> Optional[int]:
    """Read the ``exp`` claim without verifying the signature.

    Only used to decide when to refresh; validation happens at Supabase.
    """
    try:
        payload_b64 = access_token.split(".")[1]
        payload_b64 += "=" * (-len(payload_b64) % 4)
        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
    except (IndexError, ValueError):
        return None
    exp = payload.get("exp") if isinstance(payload, dict) else None
    return int(exp) if isinstance(exp, (int, float)) else None


def token_expires_within(access_token: str, seconds: int, now: Optional[float] = None) -> bool:
    exp = decode_token_expiry(access_token)
    if exp is None:
        return False
    return exp - (now if now is not None else time.time()) <= seconds


def set_session_cookies(response: Response, session: IdentitySession) -> None:
    secure = is_production_env()
    access_max_age = None
    if session.expires_at:
        access_max_age = max(int(session.expires_at - time.time()), 0)
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        session.access_token,
        max_age=access_max_age,
        httponly=True,
        secure=secure,
        samesite="lax",
        path="/",
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        session.refresh_token,
        max_age=REFRESH_COOKIE_MAX_AGE,
        httponly=True,
        secure=secure,
        samesite="lax",
        path="/",
    )


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_TOKEN_COOKIE, path="/")
    response.delete_cookie(REFRESH_TOKEN_COOKIE, path="/")


async def get_session_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(session_security),
) -> SessionAuthContext:
    """Get session authentication context from Supabase JWT.

    Returns:
        SessionAuthContext with user_id, email and tokens

    Raises:
        HTTPException: 401 if authentication fails (RFC 9457 Problem Detail)
    """
    access_token, refresh_token = extract_tokens(request, credentials)
    if not access_token:
        raise _create_session_problem(
            status_code=status.HTTP_401_UNAUTHORIZED,
            title="Unauthorized",
            detail="User not authenticated",
        )

    try:
        user = identity.get_user(access_token)
    except IdentityError as e:
        logger.warning(
            "session.jwt.invalid",
            extra={"error": e.message},
        )
        raise _create_session_problem(
            status_code=status.HTTP_401_UNAUTHORIZED,
            title="Unauthorized",
            detail="Invalid or expired session. Please sign in again.",
        )

    user_id_var.set(user.id)
    logger.debug("session.jwt.validated", extra={"user_id": user.id})

    return SessionAuthContext(
        user_id=user.id,
        email=user.email,
        access_token=access_token,
        refresh_token=refresh_token,
        user=user,
    )


async def get_optional_session_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(session_security),
) -> Optional[SessionAuthContext]:
    """Like get_session_auth_context, but anonymous callers yield None."""
    try:
        return await get_session_auth_context(request, credentials)
    except HTTPException:
        return None
