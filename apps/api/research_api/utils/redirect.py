"""Redirect helpers for form actions."""

from typing import Literal
from urllib.parse import quote

from fastapi import status
from fastapi.responses import RedirectResponse


def encoded_redirect(
    kind: Literal["error", "success"],
    path: str,
    message: str,
) -> RedirectResponse:
    """Redirect to ``path`` with a URL-encoded message in the query string.

    The frontend reads ``?error=`` / ``?success=`` and shows the message as-is,
    so it must always be a short human-readable string.

    Args:
        kind: Message category, used as the query parameter name
        path: Destination path (e.g. "/sign-in")
        message: Message to display

    Returns:
        303 See Other redirect (form POST → GET)
    """
    return RedirectResponse(
        url=f"{path}?{kind}={quote(message)}",
        status_code=status.HTTP_303_SEE_OTHER,
    )
