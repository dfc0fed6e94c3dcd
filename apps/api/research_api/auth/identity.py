"""Identity provider adapter (Supabase Auth).

Thin pass-through: every call goes to Supabase Auth and every failure comes
back as ``IdentityError`` carrying the provider's message. No retries.

Passwords are never logged.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from supabase import Client

from research_api.supabase_client import get_supabase_admin_client, get_supabase_client

logger = logging.getLogger(__name__)

ALREADY_REGISTERED_MARKER = "User already registered"


class IdentityError(Exception):
    """Raised when the identity provider rejects or fails a call."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class IdentityUser:
    id: str
    email: Optional[str] = None
    email_confirmed_at: Optional[Any] = None
    created_at: Optional[Any] = None
    last_sign_in_at: Optional[Any] = None

    @property
    def is_confirmed(self) -> bool:
        return self.email_confirmed_at is not None


@dataclass(frozen=True)
class IdentitySession:
    access_token: str
    refresh_token: str
    expires_at: Optional[int] = None  # epoch seconds


@dataclass(frozen=True)
class IdentityResult:
    user: Optional[IdentityUser]
    session: Optional[IdentitySession]


def is_already_registered(error: IdentityError) -> bool:
    return ALREADY_REGISTERED_MARKER in error.message


def _to_user(user: Any) -> Optional[IdentityUser]:
    if user is None:
        return None
    return IdentityUser(
        id=str(user.id),
        email=getattr(user, "email", None),
        email_confirmed_at=getattr(user, "email_confirmed_at", None),
        created_at=getattr(user, "created_at", None),
        last_sign_in_at=getattr(user, "last_sign_in_at", None),
    )


def _to_session(session: Any) -> Optional[IdentitySession]:
    if session is None:
        return None
    return IdentitySession(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=getattr(session, "expires_at", None),
    )


def _to_result(response: Any) -> IdentityResult:
    return IdentityResult(
        user=_to_user(getattr(response, "user", None)),
        session=_to_session(getattr(response, "session", None)),
    )


def _error_message(exc: Exception) -> str:
    return getattr(exc, "message", None) or str(exc) or type(exc).__name__


def sign_in(email: str, password: str, client: Optional[Client] = None) -> IdentityResult:
    """Password sign-in. Returns the new session."""
    supabase = client or get_supabase_client()
    try:
        response = supabase.auth.sign_in_with_password({"email": email, "password": password})
    except Exception as e:
        raise IdentityError(_error_message(e)) from e
    return _to_result(response)


def sign_up(
    email: str,
    password: str,
    *,
    redirect_to: str,
    metadata: dict[str, Any],
    client: Optional[Client] = None,
) -> IdentityResult:
    """Register a new identity with profile metadata.

    ``session`` is None when email confirmation is required.
    """
    supabase = client or get_supabase_client()
    try:
        response = supabase.auth.sign_up(
            {
                "email": email,
                "password": password,
                "options": {
                    "email_redirect_to": redirect_to,
                    "data": metadata,
                },
            }
        )
    except Exception as e:
        raise IdentityError(_error_message(e)) from e

    if response.user is None:
        raise IdentityError("Sign-up failed: no user returned")
    return _to_result(response)


def resend_signup_confirmation(email: str, *, redirect_to: str, client: Optional[Client] = None) -> None:
    supabase = client or get_supabase_client()
    try:
        supabase.auth.resend(
            {
                "type": "signup",
                "email": email,
                "options": {"email_redirect_to": redirect_to},
            }
        )
    except Exception as e:
        raise IdentityError(_error_message(e)) from e


def send_password_reset(email: str, *, redirect_to: str, client: Optional[Client] = None) -> None:
    supabase = client or get_supabase_client()
    try:
        supabase.auth.reset_password_for_email(email, {"redirect_to": redirect_to})
    except Exception as e:
        raise IdentityError(_error_message(e)) from e


def update_password(
    access_token: str,
    refresh_token: str,
    new_password: str,
    client: Optional[Client] = None,
) -> None:
    """Set a new password for the session's user (recovery-link session)."""
    supabase = client or get_supabase_client()
    try:
        supabase.auth.set_session(access_token, refresh_token)
        supabase.auth.update_user({"password": new_password})
    except Exception as e:
        raise IdentityError(_error_message(e)) from e


def refresh_session(refresh_token: str, client: Optional[Client] = None) -> IdentitySession:
    supabase = client or get_supabase_client()
    try:
        response = supabase.auth.refresh_session(refresh_token)
    except Exception as e:
        raise IdentityError(_error_message(e)) from e

    session = _to_session(getattr(response, "session", None))
    if session is None:
        raise IdentityError("Session refresh returned no session")
    return session


def get_user(access_token: str, client: Optional[Client] = None) -> IdentityUser:
    """Validate an access token (signature + expiry checked by Supabase)."""
    supabase = client or get_supabase_client()
    try:
        response = supabase.auth.get_user(access_token)
    except Exception as e:
        raise IdentityError(_error_message(e)) from e

    user = _to_user(getattr(response, "user", None)) if response else None
    if user is None:
        raise IdentityError("Invalid or expired session token")
    return user


def sign_out(access_token: str, client: Optional[Client] = None) -> None:
    """Revoke the session's refresh tokens on the provider."""
    supabase = client or get_supabase_admin_client()
    try:
        supabase.auth.admin.sign_out(access_token)
    except Exception as e:
        raise IdentityError(_error_message(e)) from e
