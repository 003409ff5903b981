"""Daily job-alert digest.

Run once a day from a scheduler (``python alerts.py`` or the
``resumeai-alerts`` console script). Each due preference row gets one
search and one plain-text email; ``last_sent_at`` is updated after a
successful send.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import email_service
import job_search
import supabase_client

logger = logging.getLogger("resumeai.alerts")

FREQUENCY_DAYS = {"daily": 1, "weekly": 7, "monthly": 30}
DIGEST_SIZE = 5


def safe_text(value: Any) -> str:
    return str(value or "").strip()


def parse_timestamp(value: Any) -> datetime | None:
    text = safe_text(value)
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def is_due(preference: dict[str, Any], now: datetime) -> bool:
    frequency = safe_text(preference.get("alert_frequency")).lower() or "monthly"
    days = FREQUENCY_DAYS.get(frequency)
    if days is None:
        return False
    last_sent = parse_timestamp(preference.get("last_sent_at"))
    # Small slack so a daily cron that drifts a few minutes still fires.
    return last_sent is None or now - last_sent >= timedelta(days=days) - timedelta(hours=1)


def format_digest(preference: dict[str, Any], jobs: list[dict[str, Any]]) -> tuple[str, str]:
    title = safe_text(preference.get("desired_title"))
    subject = f"{len(jobs)} new {title} jobs for you" if title else f"{len(jobs)} new jobs for you"
    lines = [f"Here are today's top matches for {title or 'your saved search'}:", ""]
    for index, job in enumerate(jobs, start=1):
        header = f"{index}. {job.get('title')} at {job.get('company')}"
        if job.get("location"):
            header += f" ({job['location']})"
        lines.append(header)
        if job.get("salary"):
            lines.append(f"   Salary: {job['salary']}")
        if job.get("applyUrl"):
            lines.append(f"   Apply: {job['applyUrl']}")
        lines.append("")
    lines.append("Update your alert preferences any time from the Preferences page.")
    return subject, "\n".join(lines)


def send_alert(preference: dict[str, Any], now: datetime) -> bool:
    title = safe_text(preference.get("desired_title"))
    location = safe_text(preference.get("desired_location"))
    recipient = safe_text(preference.get("email"))
    if not title or not recipient:
        return False

    params = job_search.build_search_params(title, location=location, remote=bool(preference.get("remote_only")))
    jobs, _ = job_search.fetch_jobs(params)
    jobs = job_search.attach_match_scores(jobs, preference.get("skills") or [], title, location)
    jobs = sorted(jobs, key=lambda job: job.get("matchScore", 0), reverse=True)[:DIGEST_SIZE]
    if not jobs:
        return False

    subject, body = format_digest(preference, jobs)
    error = email_service.send_email(recipient, subject, body)
    if error:
        raise RuntimeError(error)
    supabase_client.update_rows(
        "job_alert_preferences",
        {"user_id": f"eq.{safe_text(preference.get('user_id'))}"},
        {"last_sent_at": now.isoformat()},
    )
    return True


def run_daily_alerts(now: datetime | None = None) -> dict[str, int]:
    now = now or datetime.now(timezone.utc)
    summary = {"checked": 0, "due": 0, "sent": 0, "failed": 0}
    preferences = supabase_client.select_rows("job_alert_preferences", {"alerts_enabled": "eq.true"})
    for preference in preferences:
        summary["checked"] += 1
        if not is_due(preference, now):
            continue
        summary["due"] += 1
        try:
            if send_alert(preference, now):
                summary["sent"] += 1
        except Exception:
            summary["failed"] += 1
            logger.exception("Job alert failed for user %s", safe_text(preference.get("user_id")))
    logger.info(
        "Job alerts run: checked=%s due=%s sent=%s failed=%s",
        summary["checked"],
        summary["due"],
        summary["sent"],
        summary["failed"],
    )
    return summary


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    run_daily_alerts()


if __name__ == "__main__":
    main()
