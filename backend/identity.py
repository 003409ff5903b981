"""Bearer credential -> user identity and subscription tier.

Tier lookups fail open: any error while resolving a tier yields ``free``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Request

import supabase_client
from errors import Unauthenticated
from rate_limit import TIERS

logger = logging.getLogger("resumeai.identity")


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str | None
    tier: str

    @property
    def is_paid(self) -> bool:
        return self.tier in {"pro", "max"}


def safe_text(value: Any) -> str:
    return str(value or "").strip()


def extract_bearer_token(request: Request) -> str | None:
    auth_header = safe_text(request.headers.get("authorization"))
    if auth_header.lower().startswith("bearer "):
        return safe_text(auth_header[7:]) or None
    return None


def tier_from_profile(profile: dict[str, Any] | None) -> str:
    if not profile:
        return "free"
    tier = safe_text(profile.get("tier")).lower()
    if tier in TIERS:
        return tier
    if profile.get("is_pro") is True:
        return "pro"
    return "free"


def lookup_tier(user_id: str) -> str:
    try:
        rows = supabase_client.select_rows("profiles", {"id": f"eq.{user_id}"}, columns="tier,is_pro", limit=1)
    except supabase_client.SupabaseError as exc:
        logger.warning("Tier lookup failed for user %s, treating as free: %s", user_id, exc)
        return "free"
    return tier_from_profile(rows[0] if rows else None)


def resolve_tier(credential: str | None) -> str:
    if not credential:
        return "free"
    try:
        user = supabase_client.get_auth_user(credential)
    except supabase_client.SupabaseError as exc:
        logger.warning("Credential exchange failed, treating caller as free: %s", exc)
        return "free"
    return lookup_tier(safe_text(user.get("id")))


def resolve_request_tier(request: Request) -> str:
    return resolve_tier(extract_bearer_token(request))


def require_user(request: Request) -> Identity:
    credential = extract_bearer_token(request)
    if not credential:
        raise Unauthenticated("Sign in required.")
    try:
        user = supabase_client.get_auth_user(credential)
    except supabase_client.SupabaseError as exc:
        logger.info("Rejected bearer credential: %s", exc)
        raise Unauthenticated("Your session has expired. Please sign in again.") from exc
    user_id = safe_text(user.get("id"))
    return Identity(user_id=user_id, email=safe_text(user.get("email")) or None, tier=lookup_tier(user_id))
