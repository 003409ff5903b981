"""Durable key/value storage for usage counters and the job-search cache.

SQLite by default, Postgres when DATABASE_URL is set. Only the narrow
operations the rate limiter and the search cache need are exposed.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any

import config

try:
    import psycopg2  # type: ignore
    from psycopg2.extras import RealDictCursor  # type: ignore
except Exception:  # pragma: no cover - optional dependency at runtime
    psycopg2 = None
    RealDictCursor = None

logger = logging.getLogger("resumeai.store")

DB_LOCK = threading.Lock()
_SCHEMA_READY: set[str] = set()

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS usage_counters (
        counter_key TEXT PRIMARY KEY,
        count INTEGER NOT NULL DEFAULT 0,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS job_search_cache (
        cache_key TEXT PRIMARY KEY,
        jobs_json TEXT NOT NULL,
        total_results INTEGER NOT NULL DEFAULT 0,
        expires_at TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
]


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def adapt_query_for_backend(query: str, params: Any = None) -> tuple[str, Any]:
    if config.USAGE_DB_BACKEND != "postgres" or params is None:
        return query, params
    converted_query = query.replace("?", "%s")
    if isinstance(params, list):
        return converted_query, tuple(params)
    return converted_query, params


class UsageDBConnection:
    def __init__(self, raw_connection: Any):
        self._raw_connection = raw_connection

    def cursor(self) -> Any:
        if config.USAGE_DB_BACKEND == "postgres":
            if RealDictCursor is None:
                raise RuntimeError("RealDictCursor unavailable while DATABASE_URL is configured.")
            return self._raw_connection.cursor(cursor_factory=RealDictCursor)
        return self._raw_connection.cursor()

    def execute(self, query: str, params: Any = None) -> Any:
        converted_query, converted_params = adapt_query_for_backend(query, params)
        cursor = self.cursor()
        if converted_params is None:
            cursor.execute(converted_query)
        else:
            cursor.execute(converted_query, converted_params)
        return cursor

    def commit(self) -> None:
        self._raw_connection.commit()

    def rollback(self) -> None:
        self._raw_connection.rollback()

    def close(self) -> None:
        self._raw_connection.close()


def _schema_token() -> str:
    if config.USAGE_DB_BACKEND == "postgres":
        return config.DATABASE_URL
    return config.USAGE_DB_PATH


def usage_db_connection() -> UsageDBConnection:
    if config.USAGE_DB_BACKEND == "postgres":
        if psycopg2 is None:
            raise RuntimeError("DATABASE_URL is configured but psycopg2 is not installed.")
        connection = UsageDBConnection(psycopg2.connect(config.DATABASE_URL, connect_timeout=10))
    else:
        db_dir = os.path.dirname(config.USAGE_DB_PATH)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        raw_connection = sqlite3.connect(config.USAGE_DB_PATH, timeout=15, check_same_thread=False)
        raw_connection.row_factory = sqlite3.Row
        connection = UsageDBConnection(raw_connection)

    token = _schema_token()
    if token not in _SCHEMA_READY:
        for statement in SCHEMA_STATEMENTS:
            connection.execute(statement)
        connection.commit()
        _SCHEMA_READY.add(token)
        logger.info("Usage store ready (%s).", config.USAGE_DB_BACKEND)
    return connection


def get_count(key: str) -> int:
    connection = usage_db_connection()
    try:
        row = connection.execute("SELECT count FROM usage_counters WHERE counter_key = ?", (key,)).fetchone()
        return int(row["count"]) if row else 0
    finally:
        connection.close()


def set_count(key: str, count: int) -> None:
    with DB_LOCK:
        connection = usage_db_connection()
        try:
            connection.execute(
                """
                INSERT INTO usage_counters (counter_key, count, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT (counter_key) DO UPDATE SET count = excluded.count, updated_at = excluded.updated_at
                """,
                (key, max(0, int(count)), now_utc_iso()),
            )
            connection.commit()
        except Exception:
            connection.rollback()
            raise
        finally:
            connection.close()


def increment_count(key: str) -> int:
    """Atomically add one to ``key`` and return the new count."""
    with DB_LOCK:
        connection = usage_db_connection()
        try:
            connection.execute(
                """
                INSERT INTO usage_counters (counter_key, count, updated_at)
                VALUES (?, 1, ?)
                ON CONFLICT (counter_key) DO UPDATE SET count = usage_counters.count + 1, updated_at = excluded.updated_at
                """,
                (key, now_utc_iso()),
            )
            row = connection.execute("SELECT count FROM usage_counters WHERE counter_key = ?", (key,)).fetchone()
            connection.commit()
            return int(row["count"]) if row else 1
        except Exception:
            connection.rollback()
            raise
        finally:
            connection.close()


def fetch_cached_search(cache_key: str) -> Any:
    connection = usage_db_connection()
    try:
        return connection.execute(
            "SELECT cache_key, jobs_json, total_results, expires_at FROM job_search_cache WHERE cache_key = ?",
            (cache_key,),
        ).fetchone()
    finally:
        connection.close()


def store_cached_search(cache_key: str, jobs_json: str, total_results: int, expires_at: str) -> None:
    with DB_LOCK:
        connection = usage_db_connection()
        try:
            connection.execute(
                """
                INSERT INTO job_search_cache (cache_key, jobs_json, total_results, expires_at, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (cache_key) DO UPDATE SET
                    jobs_json = excluded.jobs_json,
                    total_results = excluded.total_results,
                    expires_at = excluded.expires_at,
                    created_at = excluded.created_at
                """,
                (cache_key, jobs_json, int(total_results), expires_at, now_utc_iso()),
            )
            connection.commit()
        except Exception:
            connection.rollback()
            raise
        finally:
            connection.close()
