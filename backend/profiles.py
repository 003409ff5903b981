"""Resume Profile normalisation and persistence for parsed uploads."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import supabase_client

logger = logging.getLogger("resumeai.profiles")

SCALAR_FIELDS = ("email", "phone", "location", "linkedin", "summary")


def safe_text(value: Any) -> str:
    return str(value or "").strip()


def _optional(value: Any) -> str | None:
    return safe_text(value) or None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [safe_text(item) for item in value if safe_text(item)]


def _experience(entry: dict[str, Any]) -> dict[str, Any]:
    return {
        "title": safe_text(entry.get("title")),
        "company": safe_text(entry.get("company")),
        "startDate": safe_text(entry.get("startDate")),
        "endDate": safe_text(entry.get("endDate")),
        "location": _optional(entry.get("location")),
        "bullets": _string_list(entry.get("bullets")),
        "category": safe_text(entry.get("category")) or "professional",
    }


def _education(entry: dict[str, Any]) -> dict[str, Any]:
    return {
        "degree": safe_text(entry.get("degree")),
        "school": safe_text(entry.get("school")),
        "year": safe_text(entry.get("year")),
        "gpa": _optional(entry.get("gpa")),
    }


def normalize_profile(raw: Any) -> dict[str, Any]:
    """Coerce model output into the Resume Profile shape; missing values stay empty."""
    data = raw if isinstance(raw, dict) else {}
    profile: dict[str, Any] = {"fullName": safe_text(data.get("fullName"))}
    for field in SCALAR_FIELDS:
        profile[field] = _optional(data.get(field))
    profile["experience"] = [
        _experience(entry) for entry in data.get("experience") or [] if isinstance(entry, dict)
    ]
    profile["education"] = [
        _education(entry) for entry in data.get("education") or [] if isinstance(entry, dict)
    ]
    profile["skills"] = _string_list(data.get("skills"))
    profile["certifications"] = _string_list(data.get("certifications"))
    return profile


def save_profile(user_id: str, profile: dict[str, Any]) -> bool:
    row = {
        "user_id": user_id,
        "full_name": profile.get("fullName") or None,
        "phone": profile.get("phone"),
        "location": profile.get("location"),
        "linkedin": profile.get("linkedin"),
        "summary": profile.get("summary"),
        "experience": profile.get("experience") or [],
        "education": profile.get("education") or [],
        "skills": profile.get("skills") or [],
        "certifications": profile.get("certifications") or [],
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        supabase_client.upsert_row("user_profiles_extended", row, on_conflict="user_id")
    except supabase_client.SupabaseError:
        logger.exception("Saving parsed profile failed for user %s", user_id)
        return False
    return True
