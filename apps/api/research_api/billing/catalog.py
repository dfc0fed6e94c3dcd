"""Product catalog: read from the local mirror, synced from Stripe."""

import logging
from typing import Any

from sqlalchemy.orm import Session

from research_api.billing.stripe_client import format_price, get_stripe, to_dict
from research_api.db.models import SubscriptionPrice, SubscriptionProduct

logger = logging.getLogger(__name__)


def get_products(db: Session) -> list[dict[str, Any]]:
    """Active products with their active prices (pricing page)."""
    products = (
        db.query(SubscriptionProduct)
        .filter(SubscriptionProduct.active.is_(True))
        .order_by(SubscriptionProduct.name.asc())
        .all()
    )
    if not products:
        return []

    prices = (
        db.query(SubscriptionPrice)
        .filter(
            SubscriptionPrice.product_id.in_([p.id for p in products]),
            SubscriptionPrice.active.is_(True),
        )
        .order_by(SubscriptionPrice.unit_amount.asc())
        .all()
    )
    prices_by_product: dict[str, list[dict[str, Any]]] = {}
    for price in prices:
        prices_by_product.setdefault(price.product_id, []).append(
            {
                "id": price.id,
                "stripe_price_id": price.stripe_price_id,
                "currency": price.currency,
                "unit_amount": price.unit_amount,
                "interval_type": price.interval_type,
                "interval_count": price.interval_count,
                "display": format_price(price.unit_amount, price.currency),
            }
        )

    return [
        {
            "id": product.id,
            "stripe_product_id": product.stripe_product_id,
            "name": product.name,
            "description": product.description,
            "prices": prices_by_product.get(product.id, []),
        }
        for product in products
    ]


def _interval_type(price: dict[str, Any]) -> str:
    recurring = price.get("recurring")
    if not recurring:
        return "one_time"
    return "year" if recurring.get("interval") == "year" else "month"


def _list_active(resource: Any) -> list[dict[str, Any]]:
    """Every active object of a Stripe list resource, across all pages."""
    return [to_dict(obj) for obj in resource.list(active=True, limit=100).auto_paging_iter()]


def sync_stripe_products(db: Session) -> dict[str, int]:
    """Mirror Stripe's active products and prices into the catalog tables.

    Stripe IDs double as row IDs. Local rows Stripe no longer lists as active
    (archived or deleted there) are marked inactive so the pricing page stops
    offering them. Commits on success.

    Returns:
        {"products": n, "prices": m} rows upserted
    """
    client = get_stripe()
    stripe_products = _list_active(client.Product)
    stripe_prices = _list_active(client.Price)

    seen_products: set[str] = set()
    seen_prices: set[str] = set()
    for product in stripe_products:
        db.merge(
            SubscriptionProduct(
                id=product["id"],
                stripe_product_id=product["id"],
                name=product.get("name") or product["id"],
                description=product.get("description"),
                active=bool(product.get("active", True)),
            )
        )
        seen_products.add(product["id"])

        for price in stripe_prices:
            price_product = price.get("product")
            if isinstance(price_product, dict):
                price_product = price_product.get("id")
            if price_product != product["id"]:
                continue

            db.merge(
                SubscriptionPrice(
                    id=price["id"],
                    stripe_price_id=price["id"],
                    product_id=product["id"],
                    currency=price.get("currency", "usd"),
                    unit_amount=price.get("unit_amount") or 0,
                    interval_type=_interval_type(price),
                    interval_count=(price.get("recurring") or {}).get("interval_count") or 1,
                    active=bool(price.get("active", True)),
                )
            )
            seen_prices.add(price["id"])

    db.flush()
    deactivated_products = 0
    for row in db.query(SubscriptionProduct).filter(SubscriptionProduct.active.is_(True)).all():
        if row.id not in seen_products:
            row.active = False
            deactivated_products += 1
    deactivated_prices = 0
    for row in db.query(SubscriptionPrice).filter(SubscriptionPrice.active.is_(True)).all():
        if row.id not in seen_prices:
            row.active = False
            deactivated_prices += 1

    db.commit()
    logger.info(
        "billing.catalog.synced",
        extra={
            "products": len(seen_products),
            "prices": len(seen_prices),
            "deactivated_products": deactivated_products,
            "deactivated_prices": deactivated_prices,
        },
    )
    return {"products": len(seen_products), "prices": len(seen_prices)}
