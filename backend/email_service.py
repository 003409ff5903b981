"""Transactional email through Resend plus the career-inbox bookkeeping."""

from __future__ import annotations

import http.client
import json
import logging
import re
import secrets
import urllib.error
import urllib.request
from datetime import datetime, timezone
from email.utils import getaddresses
from typing import Any

import config
import supabase_client

logger = logging.getLogger("resumeai.email")

RESEND_URL = "https://api.resend.com/emails"


def safe_text(value: Any) -> str:
    return str(value or "").strip()


def normalize_email(value: str) -> str:
    return safe_text(value).lower()


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_configured() -> bool:
    return bool(config.RESEND_API_KEY and config.EMAIL_FROM)


def send_email(
    to_email: str,
    subject: str,
    text_body: str,
    from_address: str | None = None,
    reply_to: str | None = None,
) -> str | None:
    """Send one plain-text email. Returns None on success or a short error string."""
    if not is_configured():
        return "Email sending is not configured."
    payload: dict[str, Any] = {
        "from": from_address or config.EMAIL_FROM,
        "to": [normalize_email(to_email)],
        "subject": subject,
        "text": text_body,
    }
    if reply_to:
        payload["reply_to"] = reply_to
    req = urllib.request.Request(
        RESEND_URL,
        data=json.dumps(payload).encode("utf-8"),
        method="POST",
        headers={
            "Authorization": f"Bearer {config.RESEND_API_KEY}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "ResumeAIBackend/1.0",
        },
    )
    try:
        with urllib.request.urlopen(req, timeout=config.EMAIL_HTTP_TIMEOUT_SECONDS) as resp:
            status_code = int(resp.getcode() or 0)
            if status_code >= 400:
                return f"Resend API rejected the request (HTTP {status_code})."
        return None
    except urllib.error.HTTPError as exc:
        logger.exception("Resend HTTP error while sending email to %s", to_email)
        return f"Resend API error ({exc.code})."
    except TimeoutError:
        logger.exception("Resend timeout while sending email to %s", to_email)
        return "Resend API timeout."
    except urllib.error.URLError:
        logger.exception("Resend network error while sending email to %s", to_email)
        return "Resend network error."
    except (OSError, http.client.HTTPException):
        logger.exception("Resend connection dropped while sending email to %s", to_email)
        return "Resend network error."


def address_slug(email: str | None, user_id: str) -> str:
    local = normalize_email(email or "").split("@", 1)[0]
    slug = re.sub(r"[^a-z0-9]+", "", local)[:20]
    return slug or re.sub(r"[^a-z0-9]+", "", user_id.lower())[:8] or "user"


def get_user_address(user_id: str) -> str | None:
    rows = supabase_client.select_rows("user_emails", {"user_id": f"eq.{user_id}"}, columns="email_address", limit=1)
    if not rows:
        return None
    return safe_text(rows[0].get("email_address")) or None


def provision_address(user_id: str, email: str | None) -> str:
    existing = get_user_address(user_id)
    if existing:
        return existing
    address = f"{address_slug(email, user_id)}.{secrets.token_hex(2)}@{config.INBOX_DOMAIN}"
    supabase_client.insert_row(
        "user_emails",
        {"user_id": user_id, "email_address": address, "created_at": now_utc_iso()},
    )
    logger.info("Provisioned inbox address for user %s", user_id)
    return address


def recipient_addresses(to_field: str) -> list[str]:
    return [normalize_email(addr) for _, addr in getaddresses([to_field or ""]) if "@" in addr]


def find_inbox_owner(to_field: str) -> tuple[str, str] | None:
    for address in recipient_addresses(to_field):
        if not address.endswith("@" + config.INBOX_DOMAIN.lower()):
            continue
        rows = supabase_client.select_rows(
            "user_emails", {"email_address": f"eq.{address}"}, columns="user_id,email_address", limit=1
        )
        if rows and rows[0].get("user_id"):
            return safe_text(rows[0]["user_id"]), address
    return None


def record_message(
    user_id: str,
    direction: str,
    from_address: str,
    to_address: str,
    subject: str,
    body: str,
    html_body: str | None = None,
    in_reply_to: str | None = None,
) -> None:
    row: dict[str, Any] = {
        "user_id": user_id,
        "direction": direction,
        "from_address": from_address,
        "to_address": to_address,
        "subject": subject[:500],
        "body": body[:50000],
        "is_read": direction == "outbound",
        "created_at": now_utc_iso(),
    }
    if html_body:
        row["html_body"] = html_body[:100000]
    if in_reply_to:
        row["in_reply_to"] = in_reply_to
    supabase_client.insert_row("messages", row)
