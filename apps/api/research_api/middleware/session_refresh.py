"""Session refresh middleware.

Rotates the Supabase session before the access token expires so that
cookie-authenticated requests keep working without a re-login.

Behavior:
- No access cookie or no refresh cookie: pass through
- Access token expires within REFRESH_WINDOW_SECONDS: refresh via Supabase,
  expose the new session to the request (request.state.refreshed_session)
  and re-set both cookies on the response
- Refresh failure: pass through (the auth dependency answers 401 later)
"""

import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from research_api.auth import identity
from research_api.auth.identity import IdentityError
from research_api.auth.session_auth import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    set_session_cookies,
    token_expires_within,
)

logger = logging.getLogger(__name__)

REFRESH_WINDOW_SECONDS = 60


class SessionRefreshMiddleware(BaseHTTPMiddleware):
    """Refresh near-expiry sessions carried in cookies."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        access_token = request.cookies.get(ACCESS_TOKEN_COOKIE)
        refresh_token = request.cookies.get(REFRESH_TOKEN_COOKIE)

        new_session = None
        if access_token and refresh_token and token_expires_within(access_token, REFRESH_WINDOW_SECONDS):
            try:
                new_session = identity.refresh_session(refresh_token)
                request.state.refreshed_session = new_session
                logger.info("auth.session.refreshed")
            except IdentityError as e:
                logger.warning("auth.session.refresh_failed", extra={"error": e.message})

        response = await call_next(request)

        # A sign-out (or a fresh sign-in) in this request already decided the cookies
        already_set = any(
            name.lower() == b"set-cookie" and value.startswith(ACCESS_TOKEN_COOKIE.encode())
            for name, value in response.raw_headers
        )
        if new_session is not None and not already_set:
            set_session_cookies(response, new_session)
        return response
