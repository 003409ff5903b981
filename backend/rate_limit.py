"""Per-tier daily quotas keyed by a salted caller fingerprint.

Checking and committing are separate steps: a handler checks before the
guarded call and commits only after it succeeded, so failed requests never
consume a daily credit. The check is a plain read, so two concurrent
requests can both pass at ``limit - 1``; the commit itself is atomic.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from fastapi import Request

import config
import store

logger = logging.getLogger("resumeai.rate_limit")

TIERS = ("free", "pro", "max")
UNLIMITED = 999_999
FINGERPRINT_HEX_CHARS = 16

QUOTAS: dict[str, dict[str, int]] = {
    "ats_score": {"free": 1, "pro": 25, "max": UNLIMITED},
    "tailor_resume": {"free": 1, "pro": 25, "max": UNLIMITED},
    "search_jobs": {"free": 5, "pro": 100, "max": UNLIMITED},
    "interview_prep": {"free": 1, "pro": 20, "max": UNLIMITED},
    "generate": {"free": 3, "pro": 50, "max": UNLIMITED},
}

LIMIT_MESSAGES = {
    "ats_score": "You've used your free ATS score for today. Upgrade to Pro for more scans.",
    "tailor_resume": "You've used your free resume tailoring for today. Upgrade to Pro to keep tailoring.",
    "search_jobs": "Daily job search limit reached. Upgrade to Pro for more searches.",
    "interview_prep": "You've used your free interview prep for today. Upgrade to Pro for more sessions.",
    "generate": "Daily generation limit reached. Upgrade to Pro to continue.",
}


@dataclass(frozen=True)
class QuotaDecision:
    feature: str
    tier: str
    key: str
    limit: int
    used: int
    allowed: bool

    @property
    def unlimited(self) -> bool:
        return self.limit >= UNLIMITED

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


def normalize_tier(value: str | None) -> str:
    tier = (value or "").strip().lower()
    return tier if tier in TIERS else "free"


def quota_for(feature: str, tier: str) -> int:
    try:
        limits = QUOTAS[feature]
    except KeyError:
        raise ValueError(f"Unknown rate-limited feature: {feature}") from None
    return limits[normalize_tier(tier)]


def usage_day(today: date | None = None) -> str:
    return (today or datetime.now(timezone.utc).date()).isoformat()


def usage_key(feature: str, fingerprint: str, today: date | None = None) -> str:
    return f"{feature}:{fingerprint}:{usage_day(today)}"


def fingerprint(client_address: str) -> str:
    digest = hmac.new(
        config.RATE_LIMIT_SALT.encode("utf-8"),
        (client_address or "unknown").strip().encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return digest[:FINGERPRINT_HEX_CHARS]


def client_address(request: Request) -> str:
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    for header in ("x-nf-client-connection-ip", "x-real-ip"):
        value = (request.headers.get(header) or "").strip()
        if value:
            return value
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def request_fingerprint(request: Request) -> str:
    return fingerprint(client_address(request))


def check_quota(feature: str, caller_fingerprint: str, tier: str, today: date | None = None) -> QuotaDecision:
    tier = normalize_tier(tier)
    limit = quota_for(feature, tier)
    key = usage_key(feature, caller_fingerprint, today)
    used = store.get_count(key)
    allowed = limit >= UNLIMITED or used < limit
    if not allowed:
        logger.info("Quota exhausted feature=%s tier=%s used=%s limit=%s", feature, tier, used, limit)
    return QuotaDecision(feature=feature, tier=tier, key=key, limit=limit, used=used, allowed=allowed)


def commit_quota(decision: QuotaDecision) -> int:
    """Record one use for an allowed decision and return the uses left today."""
    if not decision.allowed:
        raise ValueError("Cannot commit a rejected quota decision.")
    used = store.increment_count(decision.key)
    return max(0, decision.limit - used)


def limit_message(feature: str) -> str:
    return LIMIT_MESSAGES.get(feature, "Daily limit reached. Upgrade to continue.")
