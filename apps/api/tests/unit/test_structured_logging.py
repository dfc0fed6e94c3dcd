"""Tests for JSON log formatting and log sanitization."""

import json
import logging

from research_api.context import request_id_var, stripe_event_id_var
from research_api.utils.logging import JSONFormatter
from research_api.utils.sanitize import MAX_STR_LOG, payload_hash_bytes, sanitize_obj, sanitize_str


def _format(message: str, **extra) -> dict:
    record = logging.LogRecord(
        name="research_api.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(JSONFormatter().format(record))


def test_formatter_emits_standard_fields():
    data = _format("webhook.stripe.received", payload_hash="abc123")
    assert data["message"] == "webhook.stripe.received"
    assert data["level"] == "INFO"
    assert data["logger"] == "research_api.test"
    assert data["payload_hash"] == "abc123"
    assert "timestamp" in data


def test_formatter_includes_context_vars():
    request_token = request_id_var.set("req-42")
    event_token = stripe_event_id_var.set("evt_42")
    try:
        data = _format("http.request.completed")
    finally:
        request_id_var.reset(request_token)
        stripe_event_id_var.reset(event_token)

    assert data["request_id"] == "req-42"
    assert data["stripe_event_id"] == "evt_42"


def test_formatter_redacts_sensitive_extras():
    data = _format(
        "auth.sign_up.attempt",
        email="someone@example.com",
        password="hunter2",
        details={"access_token": "eyJhbGciOi", "plan": "monthly"},
    )
    assert data["email"] == "[REDACTED]"
    assert data["password"] == "[REDACTED]"
    assert data["details"] == {"access_token": "[REDACTED]", "plan": "monthly"}


def test_sanitize_str_masks_secrets():
    assert "sk_live_" not in sanitize_str("key=sk_live_abc123 rest")
    assert "whsec_" not in sanitize_str("secret whsec_abc")
    assert sanitize_str("Bearer eyJabc.def") == "[REDACTED]"


def test_sanitize_str_masks_emails_and_jwts_in_free_text():
    text = sanitize_str("resend failed for analyst@example-capital.com token eyJhbGc.eyJzdWI.sig")
    assert "analyst@" not in text
    assert "eyJhbGc" not in text
    assert text.startswith("resend failed for [REDACTED]")


def test_sanitize_str_truncates_large_values():
    value = "x" * (MAX_STR_LOG + 1)
    assert sanitize_str(value).startswith(f"[TRUNCATED len={MAX_STR_LOG + 1}")


def test_sanitize_obj_depth_limit():
    nested: dict = {}
    cursor = nested
    for _ in range(10):
        cursor["next"] = {}
        cursor = cursor["next"]
    text = json.dumps(sanitize_obj(nested))
    assert "[DEPTH_LIMIT]" in text


def test_payload_hash_is_sha256_hex():
    digest = payload_hash_bytes(b"{}")
    assert len(digest) == 64
    assert digest == payload_hash_bytes(b"{}")
