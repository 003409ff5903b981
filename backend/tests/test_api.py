import json
import time

import pytest

import ai_client
import billing
import config
import email_service
import job_search
import supabase_client
import webhooks
from errors import UpstreamFailure
from main import DOCX_MEDIA_TYPE

RESUME = "JANE DOE\njane@x.com | 555-123-4567\nEXPERIENCE\nAcme Corp      Jan 2020 - Present\nSenior Engineer\n• Led a team of 5"


def test_wrong_method_is_405(client):
    response = client.get("/api/ats-score")
    assert response.status_code == 405
    assert response.json() == {"error": "Method not allowed"}


def test_malformed_json_is_400(client):
    response = client.post(
        "/api/ats-score", content=b"{not json", headers={"content-type": "application/json"}
    )
    assert response.status_code == 400
    assert "error" in response.json()


def test_ats_score_returns_analysis_and_remaining(client, model_calls):
    response = client.post("/api/ats-score", json={"resumeContent": RESUME, "jobDescription": "Python role"})
    assert response.status_code == 200
    body = response.json()
    assert body["analysis"]["score"] == 72
    assert body["remaining"] == 0
    assert body["isPro"] is False
    assert model_calls[0][0] == "ats_score"
    assert "Python role" in model_calls[0][1]


def test_ats_score_requires_resume(client, model_calls):
    response = client.post("/api/ats-score", json={"jobDescription": "Python role"})
    assert response.status_code == 400
    assert model_calls == []


def test_free_quota_is_enforced_with_flag(client, model_calls):
    assert client.post("/api/ats-score", json={"resumeContent": RESUME}).status_code == 200
    response = client.post("/api/ats-score", json={"resumeContent": RESUME})
    assert response.status_code == 429
    body = response.json()
    assert body["limitReached"] is True
    assert body["remaining"] == 0
    assert "Upgrade" in body["error"]
    assert len(model_calls) == 1


def test_failed_model_call_does_not_consume_quota(client, monkeypatch):
    outcomes = [UpstreamFailure(), {"score": 1}]

    def flaky(feature, content):
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(ai_client, "invoke_model", flaky)
    assert client.post("/api/ats-score", json={"resumeContent": RESUME}).status_code == 500
    response = client.post("/api/ats-score", json={"resumeContent": RESUME})
    assert response.status_code == 200
    assert response.json()["remaining"] == 0


def test_pro_tier_gets_pro_quota(client, as_user, model_calls):
    as_user("pro")
    response = client.post("/api/tailor-resume", json={"currentResume": RESUME, "jobDescription": "Python"})
    assert response.status_code == 200
    assert response.json()["remaining"] == 24
    assert response.json()["tier"] == "pro"


def test_parse_resume_requires_auth(client, model_calls):
    response = client.post("/api/parse-resume", json={"resumeText": "x" * 100})
    assert response.status_code == 401


@pytest.mark.parametrize("text", ["x" * 49, "   " + "x" * 40 + "   ", "x" * 20001])
def test_parse_resume_length_bounds(client, as_user, model_calls, text):
    as_user("free")
    response = client.post("/api/parse-resume", json={"resumeText": text})
    assert response.status_code == 400
    assert model_calls == []


def test_parse_resume_normalises_and_saves(client, as_user, monkeypatch, model_calls):
    as_user("free")
    saved = []
    monkeypatch.setattr(supabase_client, "upsert_row", lambda table, row, on_conflict: saved.append((table, row)))
    response = client.post("/api/parse-resume", json={"resumeText": "x" * 50})
    assert response.status_code == 200
    body = response.json()
    assert body["saved"] is True
    assert body["profile"]["fullName"] == "Jane Doe"
    assert body["profile"]["skills"] == ["Python"]
    assert body["profile"]["phone"] is None
    assert body["profile"]["experience"] == []
    assert saved[0][0] == "user_profiles_extended"


def test_parse_resume_save_failure_is_reported_not_raised(client, as_user, model_calls):
    as_user("free")
    response = client.post("/api/parse-resume", json={"resumeText": "x" * 20000})
    assert response.status_code == 200
    assert response.json()["saved"] is False


def test_enhance_bullet(client, model_calls):
    assert client.post("/api/enhance-bullet", json={"bullet": "led"}).status_code == 400
    response = client.post(
        "/api/enhance-bullet", json={"bullet": "led a team", "jobTitle": "Engineer", "allBullets": ["Built APIs"]}
    )
    assert response.status_code == 200
    assert response.json()["enhanced"].startswith("Led a team")
    assert "Built APIs" in model_calls[0][1]


def test_generate_validates_type_and_counts(client, model_calls):
    assert client.post("/api/generate", json={"type": "poem", "jobTitle": "Engineer"}).status_code == 400
    response = client.post(
        "/api/generate",
        json={"type": "cover_letter", "jobTitle": "Engineer", "company": "Acme", "skills": ["Python", "SQL"]},
    )
    assert response.status_code == 200
    assert response.json() == {"result": "Dear Hiring Manager,\n\nThank you.", "remaining": 2}
    assert model_calls[0][0] == "generate_cover_letter"
    assert "Python, SQL" in model_calls[0][1]


def test_search_jobs_caches_and_still_counts(client, monkeypatch):
    fetches = []

    def fake_fetch(params):
        fetches.append(params)
        return [{"id": "1", "title": "Python Engineer", "description": "python", "location": "Austin", "isRemote": False}], 1

    monkeypatch.setattr(job_search, "fetch_jobs", fake_fetch)
    request = {"query": "python", "location": "Austin", "userSkills": ["Python"]}

    first = client.post("/api/search-jobs", json=request).json()
    second = client.post("/api/search-jobs", json=request).json()
    assert len(fetches) == 1
    assert "cached" not in first
    assert second["cached"] is True
    assert first["remaining"] == 4
    assert second["remaining"] == 3
    assert second["jobs"][0]["matchScore"] == 60
    assert second["totalResults"] == 1


def test_filtered_searches_bypass_cache(client, monkeypatch):
    fetches = []
    monkeypatch.setattr(job_search, "fetch_jobs", lambda params: (fetches.append(params) or [], 0))
    request = {"query": "python", "datePosted": "week"}
    client.post("/api/search-jobs", json=request)
    client.post("/api/search-jobs", json=request)
    assert len(fetches) == 2
    assert fetches[0]["date_posted"] == "week"


def test_search_jobs_upstream_failure_is_502_and_free(client, monkeypatch):
    def down(params):
        raise UpstreamFailure("Job search is temporarily unavailable.", status_code=502)

    monkeypatch.setattr(job_search, "fetch_jobs", down)
    for _ in range(6):
        assert client.post("/api/search-jobs", json={"query": "python"}).status_code == 502


def test_interview_prep(client, model_calls):
    response = client.post("/api/interview-prep", json={"jobTitle": "Engineer", "company": "Acme", "mode": "quick"})
    assert response.status_code == 200
    assert response.json()["result"]["companyBrief"] == "Acme builds rockets"
    assert "brief" in model_calls[0][1]


@pytest.mark.parametrize("path", ["/api/export-docx", "/api/export-pdf"])
def test_exports_need_login(client, path):
    assert client.post(path, json={"content": RESUME}).status_code == 401


@pytest.mark.parametrize("path", ["/api/export-docx", "/api/export-pdf"])
def test_exports_forbidden_for_free(client, as_user, path):
    as_user("free")
    response = client.post(path, json={"content": RESUME})
    assert response.status_code == 403
    assert "error" in response.json()


@pytest.mark.parametrize("tier", ["pro", "max"])
def test_export_docx_for_paid_tiers(client, as_user, tier):
    as_user(tier)
    response = client.post("/api/export-docx", json={"content": RESUME, "title": "Engineer"})
    assert response.status_code == 200
    assert response.headers["content-type"] == DOCX_MEDIA_TYPE
    assert response.content[:2] == b"PK"


def test_export_pdf_returns_html(client, as_user):
    as_user("max")
    response = client.post("/api/export-pdf", json={"content": RESUME, "title": "Engineer"})
    assert response.status_code == 200
    html = response.json()["html"]
    assert html.startswith("<!DOCTYPE html>")
    assert "Led a team of 5" in html

    structured = client.post("/api/export-pdf", json={"structured": {"fullName": "Jane Doe", "skills": ["SQL"]}})
    assert "CERTIFICATIONS &amp; SKILLS" in structured.json()["html"]


def test_checkout_without_stripe_is_500(client):
    response = client.post("/api/create-checkout", json={"plan": "pro"})
    assert response.status_code == 500
    assert "error" in response.json()


def test_checkout_returns_client_secret(client, monkeypatch):
    monkeypatch.setattr(billing, "create_checkout_session", lambda plan, user: f"secret-{plan}")
    assert client.post("/api/create-checkout", json={"plan": "max"}).json() == {"clientSecret": "secret-max"}


def test_portal_requires_login(client):
    assert client.post("/api/create-portal-session").status_code == 401


def signed(body, secret="whsec_test"):
    timestamp = int(time.time())
    return f"t={timestamp},v1={webhooks.compute_signature(body, timestamp, secret)}"


def test_stripe_webhook_rejects_bad_signature_in_plain_text(client, monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "whsec_test")
    response = client.post("/api/stripe-webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=00"})
    assert response.status_code == 400
    assert response.text == "Invalid signature"


def test_stripe_webhook_applies_event(client, monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "whsec_test")
    events = []
    monkeypatch.setattr(billing, "handle_event", events.append)
    body = json.dumps({"id": "evt_1", "type": "customer.subscription.deleted", "data": {"object": {}}}).encode()
    response = client.post("/api/stripe-webhook", content=body, headers={"stripe-signature": signed(body)})
    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert events[0]["id"] == "evt_1"


def test_email_webhook_stores_inbound_and_always_ok(client, monkeypatch):
    stored = []
    monkeypatch.setattr(email_service, "find_inbox_owner", lambda to: ("u1", "jane.ab12@inbox.resumeai.app"))
    monkeypatch.setattr(email_service, "record_message", lambda *args, **kwargs: stored.append((args, kwargs)))
    response = client.post(
        "/api/email-webhook",
        data={"to": "Jane <jane.ab12@inbox.resumeai.app>", "from": "hr@acme.com", "subject": "Interview", "text": "Hi"},
    )
    assert response.status_code == 200
    assert response.text == "OK"
    args, kwargs = stored[0]
    assert args[:5] == ("u1", "inbound", "hr@acme.com", "jane.ab12@inbox.resumeai.app", "Interview")

    monkeypatch.setattr(email_service, "find_inbox_owner", lambda to: (_ for _ in ()).throw(RuntimeError("db down")))
    response = client.post("/api/email-webhook", data={"to": "x@inbox.resumeai.app"})
    assert response.status_code == 200
    assert response.text == "OK"


def test_send_email_needs_configuration(client, as_user):
    as_user("pro")
    response = client.post("/api/send-email", json={"to": "hr@acme.com", "subject": "Hi", "body": "Hello"})
    assert response.status_code == 503


def test_send_email_sends_from_inbox_and_records(client, as_user, monkeypatch):
    as_user("pro")
    sent, recorded = [], []
    monkeypatch.setattr(email_service, "is_configured", lambda: True)
    monkeypatch.setattr(email_service, "get_user_address", lambda user_id: "jane.ab12@inbox.resumeai.app")
    monkeypatch.setattr(email_service, "send_email", lambda *args, **kwargs: sent.append((args, kwargs)))
    monkeypatch.setattr(email_service, "record_message", lambda *args, **kwargs: recorded.append((args, kwargs)))
    response = client.post(
        "/api/send-email", json={"to": "hr@acme.com", "subject": "Re: Interview", "body": "Thanks", "replyToMessageId": "m1"}
    )
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert sent[0][1]["from_address"] == "jane.ab12@inbox.resumeai.app"
    assert recorded[0][1]["in_reply_to"] == "m1"
    assert recorded[0][0][1] == "outbound"


def test_provision_email(client, as_user, monkeypatch):
    assert client.post("/api/provision-email").status_code == 401
    as_user("free")
    monkeypatch.setattr(email_service, "provision_address", lambda user_id, email: "jane.0001@inbox.resumeai.app")
    assert client.post("/api/provision-email").json() == {"email": "jane.0001@inbox.resumeai.app"}


def test_dropped_auth_connection_serves_caller_as_free(client, monkeypatch, model_calls):
    monkeypatch.setattr(config, "SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setattr(config, "SUPABASE_ANON_KEY", "anon")
    monkeypatch.setattr(config, "SUPABASE_SERVICE_ROLE_KEY", "service")

    def drop(req, timeout):
        raise ConnectionResetError(104, "Connection reset by peer")

    monkeypatch.setattr(supabase_client.urllib.request, "urlopen", drop)
    response = client.post(
        "/api/ats-score", json={"resumeContent": RESUME}, headers={"Authorization": "Bearer some-token"}
    )
    assert response.status_code == 200
    assert response.json()["isPro"] is False


def test_stripe_webhook_non_ascii_signature_is_plain_400(client, monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "whsec_test")
    header = f"t={int(time.time())},v1=é".encode("utf-8")
    response = client.post("/api/stripe-webhook", content=b"{}", headers={"stripe-signature": header})
    assert response.status_code == 400
    assert response.text == "Invalid signature"


def test_stripe_webhook_tolerates_odd_event_shapes(client, monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "whsec_test")
    body = json.dumps({"id": "evt_2", "type": "checkout.session.completed", "data": ["x"]}).encode()
    response = client.post("/api/stripe-webhook", content=body, headers={"stripe-signature": signed(body)})
    assert response.status_code == 200
    assert response.json() == {"received": True}
