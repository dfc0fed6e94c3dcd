"""Utility functions and helpers."""

from research_api.utils.logging import JSONFormatter, configure_json_logging
from research_api.utils.redirect import encoded_redirect
from research_api.utils.sanitize import payload_hash_bytes, sanitize_obj, sanitize_str

__all__ = [
    "JSONFormatter",
    "configure_json_logging",
    "encoded_redirect",
    "payload_hash_bytes",
    "sanitize_obj",
    "sanitize_str",
]
