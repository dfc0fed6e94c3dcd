"""
RFC 9457 Problem Details helpers

Every JSON failure carries an opaque ``instance`` of
``urn:research-portal:trace:<request_id>`` so support can find the log lines.
"""

from typing import Optional

from fastapi import HTTPException

from research_api.context import request_id_var
from research_api.schemas import ProblemDetail

PROBLEM_TYPE_BASE = "https://research-portal.dev/problems/"


def trace_instance() -> str:
    """Opaque per-request instance URI (request ID, never the path)."""
    return f"urn:research-portal:trace:{request_id_var.get()}"


def problem_type_for(title: str) -> str:
    return PROBLEM_TYPE_BASE + title.lower().replace(" ", "-")


def build_problem(status_code: int, title: str, detail: str) -> ProblemDetail:
    return ProblemDetail(
        type=problem_type_for(title),
        title=title,
        status=status_code,
        detail=detail,
        instance=trace_instance(),
    )


def problem_exception(
    status_code: int,
    title: str,
    detail: str,
    headers: Optional[dict[str, str]] = None,
) -> HTTPException:
    """HTTPException whose detail is a Problem Details body.

    The app's HTTPException handler serves dict details as-is with
    ``application/problem+json``.
    """
    problem = build_problem(status_code, title, detail)
    return HTTPException(
        status_code=status_code,
        detail=problem.model_dump(exclude_none=True),
        headers=headers,
    )
