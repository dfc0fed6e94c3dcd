"""Stripe SDK configuration and display helpers.

Environment Variables:
- STRIPE_SECRET_KEY: secret API key (required)
- STRIPE_API_VERSION: pinned API version (default 2025-02-24.acacia)
"""

import logging
from functools import lru_cache
from types import ModuleType
from typing import Any

import stripe

from research_api.config.env import get_stripe_api_version, get_stripe_secret_key

logger = logging.getLogger(__name__)

_CURRENCY_SYMBOLS = {
    "usd": "$",
    "eur": "€",
    "gbp": "£",
    "cad": "$",
    "aud": "$",
    "jpy": "¥",
}

# Currencies Stripe bills in whole units; display without decimals
_ZERO_DECIMAL_DISPLAY = {"jpy"}


@lru_cache(maxsize=1)
def get_stripe() -> ModuleType:
    """Get configured Stripe module (process-wide, configured once).

    Raises:
        ValueError: If STRIPE_SECRET_KEY is not set
    """
    stripe.api_key = get_stripe_secret_key()
    stripe.api_version = get_stripe_api_version()
    logger.info("Stripe client configured", extra={"api_version": stripe.api_version})
    return stripe


def to_dict(obj: Any) -> dict[str, Any]:
    """Plain-dict view of a Stripe object (dicts pass through)."""
    if obj is None:
        return {}
    if isinstance(obj, dict) and not hasattr(obj, "to_dict"):
        return obj
    return obj.to_dict()


def get_currency_symbol(currency: str) -> str:
    """Symbol for a currency code; unknown codes fall back to the upper-cased code."""
    return _CURRENCY_SYMBOLS.get(currency.lower(), currency.upper())


def format_price(amount: int, currency: str = "usd") -> str:
    """Format an amount in minor units for display (e.g. 4900, "usd" → "$49.00")."""
    code = currency.lower()
    symbol = get_currency_symbol(code)
    value = amount / 100
    if code in _ZERO_DECIMAL_DISPLAY:
        text = f"{value:,.0f}"
    else:
        text = f"{value:,.2f}"
    if symbol == code.upper():
        return f"{symbol} {text}"
    return f"{symbol}{text}"
