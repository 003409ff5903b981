"""Shared fixtures: an isolated usage store and no live provider credentials."""

import pytest
from fastapi.testclient import TestClient

import ai_client
import config
import identity

CREDENTIAL_SETTINGS = (
    "OPENAI_API_KEY",
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "SUPABASE_SERVICE_ROLE_KEY",
    "RAPIDAPI_KEY",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "RESEND_API_KEY",
)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DATABASE_URL", "")
    monkeypatch.setattr(config, "USAGE_DB_BACKEND", "sqlite")
    monkeypatch.setattr(config, "USAGE_DB_PATH", str(tmp_path / "usage.db"))
    monkeypatch.setattr(config, "RATE_LIMIT_SALT", "test-salt")
    for name in CREDENTIAL_SETTINGS:
        monkeypatch.setattr(config, name, "")
    monkeypatch.setattr(ai_client, "_client", None)


@pytest.fixture
def client():
    from main import app

    return TestClient(app)


@pytest.fixture
def model_calls(monkeypatch):
    """Replace the model with canned answers; returns the list of calls made."""
    calls = []
    answers = {
        "ats_score": {"score": 72, "summary": "Solid", "matchedKeywords": ["python"], "missingKeywords": []},
        "tailor_resume": {"tailoredResume": "JANE DOE", "changes": [], "keywordsAdded": []},
        "parse_resume": {"fullName": "Jane Doe", "email": "jane@x.com", "skills": ["Python", ""]},
        "enhance_bullet": "Led a team of 5 engineers to ship a billing platform 3 weeks early",
        "generate_resume": "JANE DOE\njane@x.com",
        "generate_cover_letter": "Dear Hiring Manager,\n\nThank you.",
        "interview_prep": {"companyBrief": "Acme builds rockets", "behavioral": [], "technical": []},
    }

    def fake_invoke(feature, user_content):
        calls.append((feature, user_content))
        return answers[feature]

    monkeypatch.setattr(ai_client, "invoke_model", fake_invoke)
    return calls


@pytest.fixture
def as_user(monkeypatch):
    """Authenticate every request as a user on the given tier."""

    def login(tier="free", user_id="user-1", email="jane@x.com"):
        user = identity.Identity(user_id=user_id, email=email, tier=tier)
        monkeypatch.setattr(identity, "require_user", lambda request: user)
        monkeypatch.setattr(identity, "resolve_request_tier", lambda request: tier)
        return user

    return login
