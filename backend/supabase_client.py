"""Minimal Supabase REST/Auth client built on urllib."""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

import config

logger = logging.getLogger("resumeai.supabase")


class SupabaseError(Exception):
    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


def is_configured(service_role: bool = False) -> bool:
    if not config.SUPABASE_URL:
        return False
    if service_role:
        return bool(config.SUPABASE_SERVICE_ROLE_KEY)
    return bool(config.SUPABASE_ANON_KEY)


def _api_key(service_role: bool) -> str:
    return config.SUPABASE_SERVICE_ROLE_KEY if service_role else config.SUPABASE_ANON_KEY


def supabase_request(
    method: str,
    path: str,
    *,
    payload: Any = None,
    bearer: str | None = None,
    service_role: bool = True,
    extra_headers: dict[str, str] | None = None,
) -> Any:
    if not is_configured(service_role):
        raise SupabaseError("Supabase is not configured.")

    api_key = _api_key(service_role)
    headers = {
        "apikey": api_key,
        "Authorization": f"Bearer {bearer or api_key}",
        "Accept": "application/json",
    }
    data = None
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
        headers["Content-Type"] = "application/json"
    if extra_headers:
        headers.update(extra_headers)

    req = urllib.request.Request(
        f"{config.SUPABASE_URL}/{path.lstrip('/')}",
        data=data,
        method=method.upper(),
        headers=headers,
    )
    try:
        with urllib.request.urlopen(req, timeout=config.SUPABASE_TIMEOUT_SECONDS) as resp:
            raw = resp.read().decode("utf-8", errors="ignore")
    except urllib.error.HTTPError as exc:
        raise SupabaseError(f"Supabase HTTP {exc.code} on {path.split('?', 1)[0]}", exc.code) from exc
    except urllib.error.URLError as exc:
        raise SupabaseError(f"Supabase network error on {path.split('?', 1)[0]}") from exc
    except TimeoutError as exc:
        raise SupabaseError(f"Supabase timeout on {path.split('?', 1)[0]}") from exc
    except (OSError, http.client.HTTPException) as exc:
        raise SupabaseError(f"Supabase connection dropped on {path.split('?', 1)[0]}") from exc

    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SupabaseError("Supabase returned a malformed payload.") from exc


def get_auth_user(access_token: str) -> dict[str, Any]:
    payload = supabase_request("GET", "auth/v1/user", bearer=access_token, service_role=False)
    if not isinstance(payload, dict) or not payload.get("id"):
        raise SupabaseError("Auth user payload is missing an id.")
    return payload


def select_rows(table: str, filters: dict[str, str], columns: str = "*", limit: int | None = None) -> list[dict[str, Any]]:
    query = {"select": columns, **filters}
    if limit is not None:
        query["limit"] = str(limit)
    payload = supabase_request("GET", f"rest/v1/{table}?{urllib.parse.urlencode(query)}")
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise SupabaseError(f"Unexpected payload shape from {table}.")
    return [row for row in payload if isinstance(row, dict)]


def insert_row(table: str, row: dict[str, Any]) -> None:
    supabase_request("POST", f"rest/v1/{table}", payload=row, extra_headers={"Prefer": "return=minimal"})


def upsert_row(table: str, row: dict[str, Any], on_conflict: str) -> None:
    supabase_request(
        "POST",
        f"rest/v1/{table}?{urllib.parse.urlencode({'on_conflict': on_conflict})}",
        payload=row,
        extra_headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
    )


def update_rows(table: str, filters: dict[str, str], changes: dict[str, Any]) -> None:
    supabase_request(
        "PATCH",
        f"rest/v1/{table}?{urllib.parse.urlencode(filters)}",
        payload=changes,
        extra_headers={"Prefer": "return=minimal"},
    )
