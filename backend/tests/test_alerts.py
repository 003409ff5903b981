from datetime import datetime, timedelta, timezone

import pytest

import alerts
import email_service
import job_search
import supabase_client

NOW = datetime(2026, 10, 19, 7, 0, tzinfo=timezone.utc)

JOBS = [
    {"id": "1", "title": "Data Analyst", "company": "Acme", "location": "Austin, TX", "isRemote": False,
     "description": "SQL and Python", "applyUrl": "https://jobs.example/1", "salary": None},
    {"id": "2", "title": "Barista", "company": "Cafe", "location": "Dallas, TX", "isRemote": False,
     "description": "Coffee", "applyUrl": "https://jobs.example/2", "salary": "USD 30,000/yr"},
]


def preference(**overrides):
    row = {
        "user_id": "u1",
        "email": "jane@x.com",
        "desired_title": "Data Analyst",
        "desired_location": "Austin, TX",
        "alert_frequency": "daily",
        "last_sent_at": None,
        "skills": ["SQL"],
    }
    row.update(overrides)
    return row


@pytest.fixture
def outbox(monkeypatch):
    sent = []
    updates = []
    monkeypatch.setattr(job_search, "fetch_jobs", lambda params: (list(JOBS), len(JOBS)))
    monkeypatch.setattr(email_service, "send_email", lambda to, subject, body: sent.append((to, subject, body)))
    monkeypatch.setattr(supabase_client, "update_rows", lambda table, filters, changes: updates.append((filters, changes)))
    return sent, updates


def test_due_windows():
    assert alerts.is_due(preference(), NOW)
    assert not alerts.is_due(preference(last_sent_at=(NOW - timedelta(hours=5)).isoformat()), NOW)
    assert alerts.is_due(preference(last_sent_at=(NOW - timedelta(days=1)).isoformat()), NOW)
    weekly = preference(alert_frequency="weekly", last_sent_at=(NOW - timedelta(days=3)).isoformat())
    assert not alerts.is_due(weekly, NOW)
    assert alerts.is_due(preference(alert_frequency="monthly", last_sent_at="2026-09-01T00:00:00Z"), NOW)
    assert not alerts.is_due(preference(alert_frequency="hourly"), NOW)


def test_run_sends_digest_and_records_send(monkeypatch, outbox):
    sent, updates = outbox
    monkeypatch.setattr(
        supabase_client,
        "select_rows",
        lambda *a, **k: [preference(), preference(user_id="u2", last_sent_at=NOW.isoformat())],
    )
    summary = alerts.run_daily_alerts(now=NOW)
    assert summary == {"checked": 2, "due": 1, "sent": 1, "failed": 0}

    to, subject, body = sent[0]
    assert to == "jane@x.com"
    assert subject == "2 new Data Analyst jobs for you"
    assert body.index("Data Analyst at Acme") < body.index("Barista at Cafe")
    assert updates == [({"user_id": "eq.u1"}, {"last_sent_at": NOW.isoformat()})]


def test_one_failure_does_not_stop_the_run(monkeypatch, outbox):
    sent, _ = outbox
    monkeypatch.setattr(
        supabase_client, "select_rows", lambda *a, **k: [preference(user_id="bad"), preference(user_id="good")]
    )

    def flaky_send(to, subject, body):
        if not sent:
            sent.append("failed")
            return "Resend API error (500)."
        sent.append((to, subject, body))
        return None

    monkeypatch.setattr(email_service, "send_email", flaky_send)
    assert alerts.run_daily_alerts(now=NOW) == {"checked": 2, "due": 2, "sent": 1, "failed": 1}
