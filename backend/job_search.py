from __future__ import annotations

import http.client
import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

import config
from errors import ServerMisconfigured, UpstreamFailure

logger = logging.getLogger("resumeai.job_search")

SKILLS_WEIGHT = 60
TITLE_WEIGHT = 25
LOCATION_WEIGHT = 15
DESCRIPTION_LIMIT = 5000
TITLE_STOPWORDS = {"and", "the", "for", "of", "with", "senior", "junior", "sr", "jr", "lead", "ii", "iii"}


def safe_text(value: Any) -> str:
    return str(value or "").strip()


def format_salary(job: dict[str, Any]) -> str | None:
    low = job.get("job_min_salary")
    high = job.get("job_max_salary")
    if not low and not high:
        return None
    currency = safe_text(job.get("job_salary_currency")) or "USD"
    period = safe_text(job.get("job_salary_period")).lower()
    suffix = {"year": "/yr", "month": "/mo", "hour": "/hr"}.get(period, "")

    def amount(value: Any) -> str:
        try:
            return f"{int(float(value)):,}"
        except (TypeError, ValueError):
            return safe_text(value)

    if low and high:
        return f"{currency} {amount(low)} - {amount(high)}{suffix}"
    return f"{currency} {amount(low or high)}{suffix}"


def normalize_job(job: dict[str, Any]) -> dict[str, Any]:
    location = ", ".join(
        part for part in (safe_text(job.get("job_city")), safe_text(job.get("job_state")), safe_text(job.get("job_country"))) if part
    )
    is_remote = bool(job.get("job_is_remote"))
    return {
        "id": safe_text(job.get("job_id")),
        "title": safe_text(job.get("job_title")),
        "company": safe_text(job.get("employer_name")),
        "companyLogo": safe_text(job.get("employer_logo")) or None,
        "location": location or ("Remote" if is_remote else ""),
        "isRemote": is_remote,
        "salary": format_salary(job),
        "description": safe_text(job.get("job_description"))[:DESCRIPTION_LIMIT],
        "applyUrl": safe_text(job.get("job_apply_link")),
        "source": safe_text(job.get("job_publisher")),
        "postedAt": safe_text(job.get("job_posted_at_datetime_utc")) or None,
        "employmentType": safe_text(job.get("job_employment_type")) or None,
    }


def build_search_params(
    query: str,
    location: str | None = None,
    remote: bool = False,
    page: int = 1,
    date_posted: str | None = None,
    employment_types: str | None = None,
    job_requirements: str | None = None,
    radius: int | None = None,
) -> dict[str, str]:
    search = safe_text(query)
    if safe_text(location):
        search = f"{search} in {safe_text(location)}"
    params = {"query": search, "page": str(max(1, int(page or 1))), "num_pages": "1"}
    if remote:
        params["remote_jobs_only"] = "true"
    if safe_text(date_posted):
        params["date_posted"] = safe_text(date_posted)
    if safe_text(employment_types):
        params["employment_types"] = safe_text(employment_types)
    if safe_text(job_requirements):
        params["job_requirements"] = safe_text(job_requirements)
    if radius:
        params["radius"] = str(int(radius))
    return params


def fetch_jobs(params: dict[str, str]) -> tuple[list[dict[str, Any]], int]:
    if not config.RAPIDAPI_KEY:
        raise ServerMisconfigured("Job search is not configured on the server.")

    req = urllib.request.Request(
        f"https://{config.RAPIDAPI_HOST}/search?{urllib.parse.urlencode(params)}",
        method="GET",
        headers={
            "X-RapidAPI-Key": config.RAPIDAPI_KEY,
            "X-RapidAPI-Host": config.RAPIDAPI_HOST,
            "Accept": "application/json",
        },
    )
    try:
        with urllib.request.urlopen(req, timeout=config.JOB_SEARCH_TIMEOUT_SECONDS) as resp:
            payload = json.loads(resp.read().decode("utf-8", errors="ignore") or "{}")
    except urllib.error.HTTPError as exc:
        logger.exception("Job search upstream returned HTTP %s", exc.code)
        raise UpstreamFailure("Job search is temporarily unavailable.", status_code=502) from exc
    except (urllib.error.URLError, TimeoutError) as exc:
        logger.exception("Job search upstream unreachable")
        raise UpstreamFailure("Job search is temporarily unavailable.", status_code=502) from exc
    except json.JSONDecodeError as exc:
        logger.exception("Job search upstream returned malformed JSON")
        raise UpstreamFailure("Job search is temporarily unavailable.", status_code=502) from exc
    except (OSError, http.client.HTTPException) as exc:
        logger.exception("Job search upstream connection dropped")
        raise UpstreamFailure("Job search is temporarily unavailable.", status_code=502) from exc

    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list):
        logger.error("Job search upstream payload has no data list (status=%s)", payload.get("status") if isinstance(payload, dict) else None)
        raise UpstreamFailure("Job search is temporarily unavailable.", status_code=502)
    jobs = [normalize_job(item) for item in data if isinstance(item, dict)]
    return jobs, len(jobs)


def _title_tokens(value: str) -> set[str]:
    return {token for token in re.findall(r"[a-z0-9+#]+", value.lower()) if len(token) > 1 and token not in TITLE_STOPWORDS}


def match_score(
    job: dict[str, Any],
    user_skills: list[str] | None = None,
    desired_title: str | None = None,
    desired_location: str | None = None,
) -> int:
    """Additive fit score: skills mentioned, title overlap, location or remote."""
    haystack = f"{safe_text(job.get('title'))} {safe_text(job.get('description'))}".lower()
    score = 0.0

    skills = [safe_text(skill).lower() for skill in user_skills or [] if safe_text(skill)]
    if skills:
        hits = sum(1 for skill in skills if re.search(rf"(?<![a-z0-9]){re.escape(skill)}(?![a-z0-9])", haystack))
        score += SKILLS_WEIGHT * hits / len(skills)

    wanted = _title_tokens(safe_text(desired_title))
    if wanted:
        have = _title_tokens(safe_text(job.get("title")))
        score += TITLE_WEIGHT * len(wanted & have) / len(wanted)

    place = safe_text(desired_location).lower()
    if job.get("isRemote"):
        score += LOCATION_WEIGHT
    elif place:
        city = place.split(",")[0].strip()
        if city and city in safe_text(job.get("location")).lower():
            score += LOCATION_WEIGHT

    return max(0, min(100, int(round(score))))


def attach_match_scores(
    jobs: list[dict[str, Any]],
    user_skills: list[str] | None,
    desired_title: str | None,
    desired_location: str | None,
) -> list[dict[str, Any]]:
    if not (user_skills or safe_text(desired_title) or safe_text(desired_location)):
        return jobs
    return [{**job, "matchScore": match_score(job, user_skills, desired_title, desired_location)} for job in jobs]
