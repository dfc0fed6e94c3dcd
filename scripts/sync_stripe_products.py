#!/usr/bin/env python3
"""Mirror active Stripe products and prices into the catalog tables.

Exit codes:
    0: Synced (or --dry-run listed the catalog)
    1: Stripe error
    2: Configuration error (missing DATABASE_URL / STRIPE_SECRET_KEY)

Environment variables:
    DATABASE_URL: Required.
    STRIPE_SECRET_KEY: Required.
    STRIPE_API_VERSION: Optional. Pinned API version.
"""

import argparse
import sys
from pathlib import Path

import stripe

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "apps" / "api"))

from research_api.billing.catalog import get_products, sync_stripe_products  # noqa: E402
from research_api.db.session import get_sessionmaker  # noqa: E402


def main():
    parser = argparse.ArgumentParser(
        description="Stripe catalog sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/sync_stripe_products.py
  python scripts/sync_stripe_products.py --dry-run
        """,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the current local catalog without calling Stripe",
    )
    args = parser.parse_args()

    try:
        session = get_sessionmaker()()
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        if args.dry_run:
            for product in get_products(session):
                displays = ", ".join(price["display"] for price in product["prices"]) or "no prices"
                print(f"{product['stripe_product_id']}  {product['name']}  ({displays})")
            sys.exit(0)

        counts = sync_stripe_products(session)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)
    except stripe.StripeError as e:
        session.rollback()
        print(f"FAIL: Stripe error: {type(e).__name__}: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        session.close()

    print(f"PASS: synced {counts['products']} products, {counts['prices']} prices")
    sys.exit(0)


if __name__ == "__main__":
    main()
