"""Stripe webhook endpoint (billing reconciliation).

Error taxonomy (retry storm prevention):
  (A) Missing/invalid signature → 400 WEBHOOK_SIGNATURE_INVALID
  (B) Malformed payload → 400 WEBHOOK_INVALID_PAYLOAD
  (C) Our misconfig (missing signing secret) → 500 WEBHOOK_PROVIDER_MISCONFIG
  (D) Processing error after verification → 500 WEBHOOK_INTERNAL_ERROR
  500 is ONLY for (C)(D); Stripe retries those. Nothing is mutated on 4xx.

There is no dedup store: handlers overwrite whole field sets, so a replayed
event re-applies the same state.
"""

import json as _json
import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from research_api.billing.reconciliation import dispatch_event
from research_api.config.env import get_stripe_webhook_secret
from research_api.context import request_id_var, stripe_event_id_var
from research_api.db.session import get_db
from research_api.utils.sanitize import payload_hash_bytes, sanitize_str

router = APIRouter(tags=["webhooks"])
logger = logging.getLogger(__name__)

PROVIDER = "stripe"


def _webhook_problem(
    request: Request,
    status: int,
    *,
    code: str,
    title: str,
    detail: str | None,
    payload_hash: str | None,
    extra: dict | None = None,
) -> JSONResponse:
    """Log once + return RFC 9457 Problem Details response with webhook extensions.

    4xx failures → warning log.
    5xx failures → error log + Retry-After: 60 response header.

    Response extensions (beyond RFC 9457 base):
      provider, payload_hash, error_code  (safe; never contain raw payload/secrets)
    """
    request_id = request_id_var.get()

    log_extra: dict = {
        "provider": PROVIDER,
        "payload_hash": payload_hash,
        "error_code": code,
    }
    if extra:
        log_extra.update(extra)

    event_name = f"webhook.stripe.{code.lower()}"
    if status >= 500:
        logger.error(event_name, extra=log_extra)
    else:
        logger.warning(event_name, extra=log_extra)

    content: dict = {
        "type": f"urn:research-portal:webhook:{code.lower()}",
        "title": title,
        "status": status,
        "provider": PROVIDER,
        "error_code": code,
        "instance": f"urn:research-portal:trace:{request_id}",
    }
    if detail is not None:
        content["detail"] = detail
    if payload_hash is not None:
        content["payload_hash"] = payload_hash

    response_headers = {"Content-Type": "application/problem+json"}
    if status >= 500:
        response_headers["Retry-After"] = "60"

    return JSONResponse(
        status_code=status,
        content=content,
        headers=response_headers,
    )


@router.post("/api/stripe-webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
):
    """Verify a Stripe event and reconcile it onto the customer's profile.

    Returns:
        200 {"received": true} once the event is applied (or ignored as unhandled)
    """
    # ── Step 0: Raw body ingestion (signature covers the exact bytes) ───────
    raw_body: bytes = await request.body()
    payload_hash = payload_hash_bytes(raw_body)

    logger.info(
        "webhook.stripe.received",
        extra={"provider": PROVIDER, "payload_hash": payload_hash, "payload_size": len(raw_body)},
    )

    # ── Step 1: Signing secret (C → 500) ────────────────────────────────────
    try:
        secret = get_stripe_webhook_secret()
    except ValueError:
        return _webhook_problem(
            request, 500,
            code="WEBHOOK_PROVIDER_MISCONFIG",
            title="Webhook provider misconfiguration",
            detail="Webhook signing secret is not configured",
            payload_hash=payload_hash,
        )

    if not stripe_signature:
        return _webhook_problem(
            request, 400,
            code="WEBHOOK_SIGNATURE_INVALID",
            title="Webhook signature verification failed",
            detail="Missing Stripe-Signature header",
            payload_hash=payload_hash,
        )

    # ── Step 2: Signature verification (A/B → 400, never 500) ──────────────
    try:
        stripe.Webhook.construct_event(raw_body, stripe_signature, secret)
    except stripe.SignatureVerificationError:
        return _webhook_problem(
            request, 400,
            code="WEBHOOK_SIGNATURE_INVALID",
            title="Webhook signature verification failed",
            detail="Webhook signature verification failed",
            payload_hash=payload_hash,
        )
    except ValueError:
        return _webhook_problem(
            request, 400,
            code="WEBHOOK_INVALID_PAYLOAD",
            title="Invalid webhook payload",
            detail="Request body is not a valid Stripe event",
            payload_hash=payload_hash,
        )

    # Verified bytes → plain dicts for the handlers
    event = _json.loads(raw_body)
    event_id = event.get("id", "")
    event_type = event.get("type", "")
    stripe_event_id_var.set(event_id)

    # ── Step 3: Business processing (D → 500) ───────────────────────────────
    try:
        handled = dispatch_event(db, event)
        db.commit()
    except Exception as exc:
        db.rollback()
        return _webhook_problem(
            request, 500,
            code="WEBHOOK_INTERNAL_ERROR",
            title="Internal processing error",
            detail="Webhook processing failed",
            payload_hash=payload_hash,
            extra={
                "event_type": event_type,
                "error_type": type(exc).__name__,
                "error_msg": sanitize_str(str(exc)),
            },
        )

    logger.info(
        "webhook.stripe.processed",
        extra={"event_type": event_type, "handled": handled},
    )
    return {"received": True}
