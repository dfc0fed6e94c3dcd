"""Research portal API: subscription-gated equity research backend."""

__version__ = "0.3.0"
