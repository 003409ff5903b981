from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import store

logger = logging.getLogger("resumeai.job_cache")

CACHE_TTL = timedelta(hours=24)


@dataclass
class CachedSearch:
    jobs: list[dict[str, Any]]
    total_results: int
    expires_at: datetime


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def cache_key(query: str, location: str | None, remote: bool, page: int) -> str:
    normalized = "|".join(
        [
            (query or "").strip().lower(),
            (location or "").strip().lower(),
            "remote" if remote else "any",
            str(max(1, int(page or 1))),
        ]
    )
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def parse_expiry(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def get_cached(key: str, now: datetime | None = None) -> CachedSearch | None:
    now = now or utc_now()
    try:
        row = store.fetch_cached_search(key)
    except Exception:
        logger.exception("Job search cache read failed; treating as a miss.")
        return None
    if not row:
        return None

    expires_at = parse_expiry(str(row["expires_at"]))
    if expires_at is None or now >= expires_at:
        return None
    try:
        jobs = json.loads(row["jobs_json"])
    except (TypeError, json.JSONDecodeError):
        logger.warning("Discarding unreadable cache entry %s", key[:12])
        return None
    if not isinstance(jobs, list):
        return None
    return CachedSearch(jobs=jobs, total_results=int(row["total_results"]), expires_at=expires_at)


def put_cached(key: str, jobs: list[dict[str, Any]], total_results: int, now: datetime | None = None) -> datetime:
    expires_at = (now or utc_now()) + CACHE_TTL
    try:
        store.store_cached_search(
            key,
            json.dumps(jobs, separators=(",", ":")),
            total_results,
            expires_at.isoformat(),
        )
    except Exception:
        logger.exception("Job search cache write failed; continuing without caching.")
    return expires_at
