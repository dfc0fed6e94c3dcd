"""Stripe billing event reconciliation.

Maps verified Stripe events onto the billing fields of ``user_profiles``.

Every handler is a full overwrite of the fields it owns, so replaying an
event leaves the profile in the same state (no dedup store needed). Events
arriving out of order are applied in arrival order: last write wins.

Handlers do not commit; the webhook route owns the transaction.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from research_api.billing.stripe_client import get_stripe, to_dict
from research_api.db.profiles import update_profiles_by_customer_id, update_profiles_by_email

logger = logging.getLogger(__name__)

ACCESS_GRANTING_STATUSES = frozenset({"active", "trialing"})

PREMIUM_ENTITLEMENTS: dict[str, Any] = {"premium": True}

EventHandler = Callable[[Session, dict[str, Any]], int]


def _epoch_to_datetime(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _object_id(value: Any) -> Optional[str]:
    """Stripe references are either an ID string or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")


def _first_item(subscription: dict[str, Any]) -> dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def subscription_profile_fields(subscription: dict[str, Any]) -> dict[str, Any]:
    """Billing fields derived from a Stripe subscription.

    Newer API versions moved the billing period onto subscription items, so
    the first item's period is used when the top-level field is absent.
    """
    item = _first_item(subscription)
    status = subscription.get("status")
    has_access = status in ACCESS_GRANTING_STATUSES

    period_start = subscription.get("current_period_start")
    if period_start is None:
        period_start = item.get("current_period_start")
    period_end = subscription.get("current_period_end")
    if period_end is None:
        period_end = item.get("current_period_end")

    return {
        "subscription_id": subscription.get("id"),
        "subscription_status": status,
        "subscription_plan_id": _object_id(item.get("price")),
        "subscription_current_period_start": _epoch_to_datetime(period_start),
        "subscription_current_period_end": _epoch_to_datetime(period_end),
        "subscription_cancel_at_period_end": bool(subscription.get("cancel_at_period_end", False)),
        "has_paid": has_access,
        "entitlements": dict(PREMIUM_ENTITLEMENTS) if has_access else {},
    }


def reconcile_subscription(db: Session, subscription: dict[str, Any]) -> int:
    """Overwrite the billing fields of the customer's profile from a subscription.

    Returns:
        Number of profiles updated
    """
    customer_id = _object_id(subscription.get("customer"))
    if not customer_id:
        logger.warning(
            "webhook.stripe.subscription_without_customer",
            extra={"subscription_id": subscription.get("id")},
        )
        return 0

    fields = subscription_profile_fields(subscription)
    updated = update_profiles_by_customer_id(db, customer_id, fields)
    _log_update("subscription.reconciled", customer_id, updated, status=fields["subscription_status"])
    return updated


def _invoice_subscription_id(invoice: dict[str, Any]) -> Optional[str]:
    subscription = invoice.get("subscription")
    if subscription is None:
        details = (invoice.get("parent") or {}).get("subscription_details") or {}
        subscription = details.get("subscription")
    return _object_id(subscription)


def _log_update(action: str, customer_id: str, updated: int, **extra: Any) -> None:
    if updated == 0:
        # Customer not linked to a profile yet; nothing to reconcile
        logger.warning(
            "webhook.stripe.profile_not_found",
            extra={"action": action, "stripe_customer_id": customer_id, **extra},
        )
        return
    logger.info(
        f"webhook.stripe.{action}",
        extra={"stripe_customer_id": customer_id, "profiles_updated": updated, **extra},
    )


# ============================================================================
# Event handlers (one per event type)
# ============================================================================


def handle_customer_created(db: Session, customer: dict[str, Any]) -> int:
    email = customer.get("email")
    if not email:
        logger.info("webhook.stripe.customer_without_email", extra={"stripe_customer_id": customer.get("id")})
        return 0
    updated = update_profiles_by_email(db, email, {"stripe_customer_id": customer["id"]})
    _log_update("customer.linked", customer["id"], updated)
    return updated


def handle_checkout_completed(db: Session, session: dict[str, Any]) -> int:
    subscription_id = _object_id(session.get("subscription"))
    if session.get("mode") != "subscription" or not subscription_id:
        logger.info(
            "webhook.stripe.checkout_ignored",
            extra={"mode": session.get("mode"), "checkout_session_id": session.get("id")},
        )
        return 0

    subscription = to_dict(get_stripe().Subscription.retrieve(subscription_id))
    return reconcile_subscription(db, subscription)


def handle_subscription_changed(db: Session, subscription: dict[str, Any]) -> int:
    return reconcile_subscription(db, subscription)


def handle_subscription_deleted(db: Session, subscription: dict[str, Any]) -> int:
    customer_id = _object_id(subscription.get("customer"))
    if not customer_id:
        return 0
    updated = update_profiles_by_customer_id(
        db,
        customer_id,
        {
            "subscription_id": None,
            "subscription_status": "canceled",
            "subscription_plan_id": None,
            "subscription_current_period_start": None,
            "subscription_current_period_end": None,
            "subscription_cancel_at_period_end": False,
            "has_paid": False,
            "entitlements": {},
        },
    )
    _log_update("subscription.deleted", customer_id, updated)
    return updated


def handle_invoice_payment_succeeded(db: Session, invoice: dict[str, Any]) -> int:
    customer_id = _object_id(invoice.get("customer"))
    if not _invoice_subscription_id(invoice) or not customer_id:
        return 0
    updated = update_profiles_by_customer_id(
        db,
        customer_id,
        {"has_paid": True, "entitlements": dict(PREMIUM_ENTITLEMENTS)},
    )
    _log_update("invoice.paid", customer_id, updated)
    return updated


def handle_invoice_payment_failed(db: Session, invoice: dict[str, Any]) -> int:
    customer_id = _object_id(invoice.get("customer"))
    if not _invoice_subscription_id(invoice) or not customer_id:
        return 0
    updated = update_profiles_by_customer_id(
        db,
        customer_id,
        {"has_paid": False, "entitlements": {}},
    )
    _log_update("invoice.payment_failed", customer_id, updated)
    return updated


EVENT_HANDLERS: dict[str, EventHandler] = {
    "customer.created": handle_customer_created,
    "checkout.session.completed": handle_checkout_completed,
    "customer.subscription.created": handle_subscription_changed,
    "customer.subscription.updated": handle_subscription_changed,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
}


def dispatch_event(db: Session, event: dict[str, Any]) -> bool:
    """Route a verified event to its handler.

    Returns:
        True if a handler ran, False for unhandled event types
    """
    event_type = event.get("type", "")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("webhook.stripe.unhandled", extra={"event_type": event_type})
        return False

    data_object = (event.get("data") or {}).get("object") or {}
    handler(db, data_object)
    return True
