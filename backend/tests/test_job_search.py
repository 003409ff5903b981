import io
import json

import pytest

import config
import job_search
from errors import ServerMisconfigured, UpstreamFailure

RAW_JOB = {
    "job_id": "abc",
    "job_title": "Senior Python Engineer",
    "employer_name": "Acme",
    "employer_logo": None,
    "job_city": "Austin",
    "job_state": "TX",
    "job_country": "US",
    "job_is_remote": False,
    "job_min_salary": 120000,
    "job_max_salary": 150000,
    "job_salary_currency": "USD",
    "job_salary_period": "YEAR",
    "job_description": "We use Python, Django and PostgreSQL. " * 300,
    "job_apply_link": "https://jobs.example/abc",
    "job_publisher": "LinkedIn",
    "job_posted_at_datetime_utc": "2026-10-18T12:00:00.000Z",
    "job_employment_type": "FULLTIME",
}


def test_normalize_job_maps_fields():
    job = job_search.normalize_job(RAW_JOB)
    assert job["id"] == "abc"
    assert job["company"] == "Acme"
    assert job["companyLogo"] is None
    assert job["location"] == "Austin, TX, US"
    assert job["salary"] == "USD 120,000 - 150,000/yr"
    assert len(job["description"]) == job_search.DESCRIPTION_LIMIT
    assert job["applyUrl"] == "https://jobs.example/abc"
    assert job["employmentType"] == "FULLTIME"


def test_remote_job_without_city_reads_remote():
    job = job_search.normalize_job({"job_id": "r", "job_is_remote": True})
    assert job["location"] == "Remote"
    assert job["salary"] is None


def test_search_params_fold_location_into_query():
    params = job_search.build_search_params("python developer", location="Austin, TX", remote=True, page=2, radius=25)
    assert params["query"] == "python developer in Austin, TX"
    assert params["page"] == "2"
    assert params["remote_jobs_only"] == "true"
    assert params["radius"] == "25"
    assert "date_posted" not in params


def test_fetch_requires_api_key():
    with pytest.raises(ServerMisconfigured):
        job_search.fetch_jobs({"query": "python"})


def test_match_score_components():
    job = job_search.normalize_job(RAW_JOB)
    assert job_search.match_score(job, ["Python", "Django"], "Python Engineer", "Austin, TX") == 100
    assert job_search.match_score(job, ["Python", "Rust"], None, None) == 30
    assert job_search.match_score(job, [], "Python Engineer", None) == 25
    assert job_search.match_score(job, [], None, "Austin") == 15
    assert job_search.match_score(job, [], None, "Denver") == 0


def test_remote_jobs_earn_location_points():
    job = job_search.normalize_job({**RAW_JOB, "job_is_remote": True})
    assert job_search.match_score(job, [], None, "Denver") == 15


def test_scores_only_attached_with_preferences():
    jobs = [job_search.normalize_job(RAW_JOB)]
    assert "matchScore" not in job_search.attach_match_scores(jobs, None, None, None)[0]
    assert job_search.attach_match_scores(jobs, ["python"], None, None)[0]["matchScore"] == 60


def test_fetch_normalises_upstream_payload(monkeypatch):
    class FakeResponse(io.BytesIO):
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

    seen = {}

    def fake_urlopen(req, timeout):
        seen["url"] = req.full_url
        seen["headers"] = dict(req.header_items())
        return FakeResponse(json.dumps({"status": "OK", "data": [RAW_JOB]}).encode())

    monkeypatch.setattr(config, "RAPIDAPI_KEY", "rapid-key")
    monkeypatch.setattr(config, "RAPIDAPI_HOST", "jsearch.p.rapidapi.com")
    monkeypatch.setattr(job_search.urllib.request, "urlopen", fake_urlopen)
    jobs, total = job_search.fetch_jobs(job_search.build_search_params("python"))
    assert total == 1
    assert jobs[0]["title"] == "Senior Python Engineer"
    assert seen["url"].startswith("https://jsearch.p.rapidapi.com/search?")
    assert seen["headers"]["X-rapidapi-key"] == "rapid-key"


def test_dropped_connection_is_bad_gateway(monkeypatch):
    def drop(req, timeout):
        raise ConnectionResetError(104, "Connection reset by peer")

    monkeypatch.setattr(config, "RAPIDAPI_KEY", "rapid-key")
    monkeypatch.setattr(job_search.urllib.request, "urlopen", drop)
    with pytest.raises(UpstreamFailure) as excinfo:
        job_search.fetch_jobs({"query": "python"})
    assert excinfo.value.status_code == 502
