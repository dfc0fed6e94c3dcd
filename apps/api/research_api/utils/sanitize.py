"""Redaction for anything that reaches a log line.

Strings are handled by size:
 - longer than MAX_STR_LOG: replaced by a length + sha256 marker
 - longer than MAX_STR_FOR_REGEX: only an Authorization-style prefix is checked
 - otherwise: every secret pattern below is replaced with [REDACTED]

Mappings are redacted by key name (see _SENSITIVE_KEYS) before any value is
inspected, so an ``extra={"email": ...}`` never reaches the output.
"""

import hashlib
import re
import traceback
from typing import Any

MAX_STR_LOG: int = 2048
MAX_STR_FOR_REGEX: int = 512
MAX_DEPTH: int = 6

REDACTED = "[REDACTED]"

_SENSITIVE_KEYS: frozenset[str] = frozenset({
    # transport
    "authorization", "cookie", "set-cookie", "stripe-signature", "signature",
    # Supabase session / credentials
    "token", "access_token", "refresh_token", "password", "confirm_password",
    "confirmpassword", "api_key", "secret",
    # contact details
    "email", "phone", "phone_number",
    # payment instruments
    "card", "pan", "cvc", "cvv", "payment_method",
})

# Stripe keys, webhook secrets, Supabase JWTs, cookie/query tokens, emails
_SECRET_RE = re.compile(
    r"(?:Bearer|Basic) \S+"
    r"|\b(?:sk|rk)_(?:live|test)_\S+"
    r"|\bwhsec_\S+"
    r"|\beyJ[\w-]+\.[\w-]+\.[\w-]+"
    r"|\b(?:access_token|refresh_token|sb-access-token|sb-refresh-token)=[^\s;&]+"
    r"|[\w.+-]+@[\w-]+(?:\.[\w-]+)+"
)

_AUTH_PREFIXES = ("Bearer ", "Basic ")


def payload_hash_bytes(raw: bytes) -> str:
    """sha256 hex of a raw request body (logged instead of the body)."""
    return hashlib.sha256(raw).hexdigest()


def is_sensitive_key(key: Any) -> bool:
    return isinstance(key, str) and key.lower() in _SENSITIVE_KEYS


def sanitize_str(s: str) -> str:
    if not isinstance(s, str):
        return s  # type: ignore[return-value]

    length = len(s)
    if length > MAX_STR_LOG:
        digest = hashlib.sha256(s.encode("utf-8", errors="replace")).hexdigest()[:16]
        return f"[TRUNCATED len={length} sha256={digest}]"
    if length > MAX_STR_FOR_REGEX:
        return REDACTED if s.startswith(_AUTH_PREFIXES) else s
    return _SECRET_RE.sub(REDACTED, s)


def sanitize_obj(obj: Any, depth: int = 0) -> Any:
    """Recursively redact a log ``extra`` value (dicts, lists, tuples, strings)."""
    if depth >= MAX_DEPTH:
        return "[DEPTH_LIMIT]"
    if isinstance(obj, dict):
        return {
            key: REDACTED if is_sensitive_key(key) else sanitize_obj(value, depth + 1)
            for key, value in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [sanitize_obj(item, depth + 1) for item in obj]
    if isinstance(obj, str):
        return sanitize_str(obj)
    return obj


def sanitize_exc(exc_info: tuple) -> str:
    """Traceback text for exc_info, without frame locals, passed through sanitize_str."""
    _, value, _ = exc_info
    if value is None:
        return ""
    try:
        lines = traceback.TracebackException.from_exception(value, capture_locals=False).format()
        return sanitize_str("".join(lines))
    except Exception:
        return "[TRACEBACK_FORMAT_ERROR]"
