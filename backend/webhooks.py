"""Timestamped HMAC verification for payment-provider webhooks.

Header format: ``t=<unix seconds>,v1=<hex digest>[,v1=<hex digest>...]``.
The signed payload is ``"{t}.{raw body}"``.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time

logger = logging.getLogger("resumeai.webhooks")

TOLERANCE_SECONDS = 300


def parse_signature_header(header: str | None) -> tuple[int | None, list[str]]:
    timestamp: int | None = None
    candidates: list[str] = []
    for item in (header or "").split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                timestamp = None
        elif key == "v1" and value:
            candidates.append(value)
    return timestamp, candidates


def compute_signature(raw_body: bytes | str, timestamp: int, secret: str) -> str:
    body = raw_body if isinstance(raw_body, bytes) else raw_body.encode("utf-8")
    signed_payload = str(timestamp).encode("utf-8") + b"." + body
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def verify_signature(
    raw_body: bytes | str,
    signature_header: str | None,
    secret: str | None,
    now: float | None = None,
) -> bool:
    if not secret:
        logger.warning(
            "Webhook secret is not configured; skipping signature verification. "
            "This is unsafe for production."
        )
        return True

    timestamp, candidates = parse_signature_header(signature_header)
    if timestamp is None or not candidates:
        return False
    current = time.time() if now is None else now
    if current - timestamp > TOLERANCE_SECONDS:
        logger.info("Rejected webhook with stale timestamp (%ss old).", int(current - timestamp))
        return False

    expected = compute_signature(raw_body, timestamp, secret)
    matched = False
    for candidate in candidates:
        if hmac.compare_digest(expected.encode("ascii"), candidate.encode("utf-8", "replace")):
            matched = True
    return matched
