"""Stripe billing: checkout, subscription management, catalog, reconciliation."""
