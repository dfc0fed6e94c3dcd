"""Request context management for observability.

Context variables carry request-scoped identifiers across async boundaries so
every log line emitted while serving a request can be correlated.
"""

from contextvars import ContextVar

# Request ID - unique per HTTP request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Authenticated Supabase user ID for the current request (empty when anonymous)
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

# Stripe event ID while a webhook is being processed
stripe_event_id_var: ContextVar[str] = ContextVar("stripe_event_id", default="")
