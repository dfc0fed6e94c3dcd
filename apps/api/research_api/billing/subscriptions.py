"""Subscription checkout and management (live Stripe calls).

Subscriptions are never cached locally: reads go to Stripe, and the profile's
billing fields are only written by the webhook reconciliation.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from research_api.billing.stripe_client import get_stripe, to_dict
from research_api.db.profiles import get_profile

logger = logging.getLogger(__name__)


class BillingError(Exception):
    """Stripe returned something unusable (e.g. a checkout session without URL)."""


def _ensure_customer(db: Session, user_id: str) -> Optional[str]:
    """Reuse the profile's Stripe customer, or create one and link it.

    Returns None when the profile is missing or has no email.
    """
    profile = get_profile(db, user_id)
    if profile is None:
        return None
    if profile.stripe_customer_id:
        return profile.stripe_customer_id
    if not profile.email:
        return None

    customer = to_dict(
        get_stripe().Customer.create(
            email=profile.email,
            metadata={"supabase_user_id": user_id},
        )
    )
    profile.stripe_customer_id = customer["id"]
    db.commit()

    logger.info(
        "billing.customer.created",
        extra={"user_id": user_id, "stripe_customer_id": customer["id"]},
    )
    return customer["id"]


def create_checkout_session(
    db: Session,
    *,
    price_id: str,
    redirect_url: str,
    user_id: Optional[str] = None,
) -> str:
    """Create a subscription-mode Checkout Session.

    Args:
        db: Database session
        price_id: Stripe price to subscribe to
        redirect_url: Used as both success and cancel URL
        user_id: Optional profile to attach the Stripe customer to

    Returns:
        Hosted checkout URL

    Raises:
        stripe.StripeError: Stripe rejected a call
        BillingError: Session created without a URL
    """
    customer_id = _ensure_customer(db, user_id) if user_id else None

    params: dict[str, Any] = {
        "payment_method_types": ["card"],
        "line_items": [{"price": price_id, "quantity": 1}],
        "mode": "subscription",
        "success_url": redirect_url,
        "cancel_url": redirect_url,
        "allow_promotion_codes": True,
    }
    if customer_id:
        params["customer"] = customer_id

    session = to_dict(get_stripe().checkout.Session.create(**params))
    url = session.get("url")
    if not url:
        raise BillingError("Failed to create checkout session")

    logger.info(
        "billing.checkout.created",
        extra={"user_id": user_id, "price_id": price_id, "checkout_session_id": session.get("id")},
    )
    return url


def _set_cancel_at_period_end(subscription_id: str, value: bool) -> dict[str, Any]:
    subscription = to_dict(
        get_stripe().Subscription.modify(subscription_id, cancel_at_period_end=value)
    )
    logger.info(
        "billing.subscription.updated",
        extra={"subscription_id": subscription_id, "cancel_at_period_end": value},
    )
    return subscription


def cancel_subscription(subscription_id: str) -> dict[str, Any]:
    """Schedule cancellation at period end (access continues until then)."""
    return _set_cancel_at_period_end(subscription_id, True)


def reactivate_subscription(subscription_id: str) -> dict[str, Any]:
    """Undo a scheduled cancellation."""
    return _set_cancel_at_period_end(subscription_id, False)


def _iso(epoch: Optional[int]) -> Optional[str]:
    if epoch is None:
        return None
    return datetime.fromtimestamp(int(epoch), tz=timezone.utc).isoformat()


def get_user_subscriptions(db: Session, user_id: str) -> list[dict[str, Any]]:
    """List the user's Stripe subscriptions (any status) with price and product detail.

    A profile without a Stripe customer has no subscriptions.
    """
    profile = get_profile(db, user_id)
    if profile is None or not profile.stripe_customer_id:
        return []

    client = get_stripe()
    listing = to_dict(client.Subscription.list(customer=profile.stripe_customer_id, status="all"))

    result: list[dict[str, Any]] = []
    for sub in listing.get("data", []):
        items = (sub.get("items") or {}).get("data") or []
        item = items[0] if items else {}
        price = item.get("price") or {}
        product_ref = price.get("product")
        if isinstance(product_ref, str):
            product = to_dict(client.Product.retrieve(product_ref))
        else:
            product = product_ref or {}

        period_start = sub.get("current_period_start") or item.get("current_period_start")
        period_end = sub.get("current_period_end") or item.get("current_period_end")

        result.append(
            {
                "id": sub.get("id"),
                "status": sub.get("status"),
                "current_period_start": _iso(period_start),
                "current_period_end": _iso(period_end),
                "cancel_at_period_end": bool(sub.get("cancel_at_period_end", False)),
                "price": {
                    "id": price.get("id"),
                    "unit_amount": price.get("unit_amount") or 0,
                    "currency": price.get("currency"),
                    "interval": (price.get("recurring") or {}).get("interval", "month"),
                },
                "product": {
                    "id": product.get("id"),
                    "name": product.get("name"),
                    "description": product.get("description") or "",
                },
            }
        )
    return result
