"""Operator endpoints.

WARNING: These endpoints are for authorized operators only.
- Protected by ADMIN_TOKEN header (X-Admin-Token)
- Every status change is logged with from/to status
"""

import logging
import secrets

import stripe
from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.orm import Session

from research_api import privacy, waitlist
from research_api.billing.catalog import sync_stripe_products
from research_api.config.env import get_admin_token
from research_api.context import request_id_var
from research_api.db.session import get_db
from research_api.privacy import InvalidStatusTransition
from research_api.problem_details import problem_exception
from research_api.schemas import (
    CatalogSyncResponse,
    PrivacyRequestItem,
    PrivacyRequestStatusUpdate,
    WaitlistRequestItem,
    WaitlistRequestStatusUpdate,
)

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


def verify_admin_token(x_admin_token: str = Header("", alias="X-Admin-Token")) -> None:
    """Verify admin token using constant-time comparison.

    Raises:
        HTTPException 401: If token is missing or invalid
        HTTPException 500: If ADMIN_TOKEN not configured
    """
    try:
        expected_token = get_admin_token()
    except RuntimeError as e:
        logger.error("admin.token_not_configured", extra={"error": str(e)})
        raise problem_exception(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal Server Error",
            "Admin token not configured on server",
        )

    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected_token):
        logger.warning("admin.auth_failed", extra={"request_id": request_id_var.get()})
        raise problem_exception(
            status.HTTP_401_UNAUTHORIZED,
            "Unauthorized",
            "Invalid X-Admin-Token",
            headers={"WWW-Authenticate": "Header"},
        )


def _conflict(e: InvalidStatusTransition):
    return problem_exception(
        status.HTTP_409_CONFLICT,
        "Conflict",
        f"Cannot move request from '{e.current}' to '{e.requested}'",
    )


@router.post(
    "/privacy-requests/{request_id}/status",
    response_model=PrivacyRequestItem,
    dependencies=[Depends(verify_admin_token)],
)
def set_privacy_request_status(
    request_id: str,
    body: PrivacyRequestStatusUpdate,
    db: Session = Depends(get_db),
) -> PrivacyRequestItem:
    try:
        updated = privacy.transition_privacy_request(db, request_id, body.status, body.notes)
    except InvalidStatusTransition as e:
        raise _conflict(e)
    if updated is None:
        raise problem_exception(status.HTTP_404_NOT_FOUND, "Not Found", "Privacy request not found")
    return PrivacyRequestItem.model_validate(updated)


@router.post(
    "/waitlist-requests/{request_id}/status",
    response_model=WaitlistRequestItem,
    dependencies=[Depends(verify_admin_token)],
)
def set_waitlist_request_status(
    request_id: str,
    body: WaitlistRequestStatusUpdate,
    db: Session = Depends(get_db),
) -> WaitlistRequestItem:
    try:
        updated = waitlist.transition_waitlist_request(db, request_id, body.status)
    except InvalidStatusTransition as e:
        raise _conflict(e)
    if updated is None:
        raise problem_exception(status.HTTP_404_NOT_FOUND, "Not Found", "Waitlist request not found")
    return WaitlistRequestItem.model_validate(updated)


@router.post(
    "/catalog/sync",
    response_model=CatalogSyncResponse,
    dependencies=[Depends(verify_admin_token)],
)
def sync_catalog(db: Session = Depends(get_db)) -> CatalogSyncResponse:
    """Mirror Stripe products and prices into the local catalog."""
    try:
        counts = sync_stripe_products(db)
    except stripe.StripeError as e:
        db.rollback()
        logger.error("admin.catalog_sync_failed", extra={"error_type": type(e).__name__})
        raise problem_exception(
            status.HTTP_502_BAD_GATEWAY, "Bad Gateway", "Failed to fetch catalog from Stripe"
        )
    logger.info("admin.catalog_synced", extra=counts)
    return CatalogSyncResponse(**counts)
