from __future__ import annotations

import json
import logging
import time
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

import ai_client
import billing
import config
import docx_export
import email_service
import errors
import identity
import job_cache
import job_search
import profiles
import prompts
import rate_limit
import resume_formatter
import supabase_client
import webhooks
from errors import BadRequest, Forbidden, RateLimited, ServerMisconfigured, ServiceError, UpstreamFailure

logger = logging.getLogger("resumeai.api")

PARSE_MIN_CHARS = 50
PARSE_MAX_CHARS = 20000
BULLET_MIN_CHARS = 5
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

app = FastAPI(title="ResumeAI API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(ServiceError, errors.service_error_handler)
app.add_exception_handler(RequestValidationError, errors.validation_error_handler)
app.add_exception_handler(StarletteHTTPException, errors.http_error_handler)
app.add_exception_handler(Exception, errors.unexpected_error_handler)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = int((time.perf_counter() - started) * 1000)
    logger.info(
        "api_request method=%s path=%s status=%s duration_ms=%s",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AtsScoreRequest(ApiModel):
    resume_content: str | None = None
    job_description: str | None = None


class TailorResumeRequest(ApiModel):
    current_resume: str | None = None
    job_description: str | None = None


class ParseResumeRequest(ApiModel):
    resume_text: str | None = None


class EnhanceBulletRequest(ApiModel):
    bullet: str | None = None
    job_title: str | None = None
    company: str | None = None
    target_role: str | None = None
    all_bullets: list[str] | None = None


class GenerateRequest(ApiModel):
    type: str | None = None
    job_title: Any = None
    company: Any = None
    industry: Any = None
    tone: Any = None
    job_description: Any = None
    experience: Any = None
    skills: Any = None
    education: Any = None
    publications: Any = None
    projects: Any = None
    honors: Any = None
    certifications_list: Any = None
    highlights: Any = None


class SearchJobsRequest(ApiModel):
    query: str | None = None
    location: str | None = None
    remote: bool | None = False
    page: int | None = 1
    user_skills: list[str] | None = None
    desired_title: str | None = None
    desired_location: str | None = None
    date_posted: str | None = None
    employment_types: str | None = None
    job_requirements: str | None = None
    radius: int | None = None


class InterviewPrepRequest(ApiModel):
    job_title: str | None = None
    company: str | None = None
    job_description: str | None = None
    mode: str | None = None


class ExportRequest(ApiModel):
    content: str | None = None
    structured: dict[str, Any] | None = None
    title: str | None = None
    type: str | None = None


class CheckoutRequest(ApiModel):
    plan: str | None = None


class SendEmailRequest(ApiModel):
    to: str | None = None
    subject: str | None = None
    body: str | None = None
    reply_to_message_id: str | None = None


def safe_text(value: Any) -> str:
    return str(value or "").strip()


def field_text(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(safe_text(item) for item in value if safe_text(item))
    return safe_text(value)


def doc_type_of(value: str | None) -> str:
    return "cover_letter" if safe_text(value).lower() == "cover_letter" else "resume"


def reserve_quota(request: Request, feature: str) -> rate_limit.QuotaDecision:
    tier = identity.resolve_request_tier(request)
    decision = rate_limit.check_quota(feature, rate_limit.request_fingerprint(request), tier)
    if not decision.allowed:
        raise RateLimited(rate_limit.limit_message(feature))
    return decision


def require_paid_user(request: Request) -> identity.Identity:
    user = identity.require_user(request)
    if not user.is_paid:
        raise Forbidden("Exports are a Pro feature. Upgrade to download your documents.")
    return user


@app.get("/")
def root() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/ats-score")
def ats_score(payload: AtsScoreRequest, request: Request) -> dict[str, Any]:
    resume_content = safe_text(payload.resume_content)
    if not resume_content:
        raise BadRequest("Resume content is required.")

    decision = reserve_quota(request, "ats_score")
    analysis = ai_client.invoke_model(
        "ats_score", prompts.ats_score_message(resume_content, payload.job_description)
    )
    remaining = rate_limit.commit_quota(decision)
    return {"analysis": analysis, "remaining": remaining, "isPro": decision.tier in {"pro", "max"}}


@app.post("/api/tailor-resume")
def tailor_resume(payload: TailorResumeRequest, request: Request) -> dict[str, Any]:
    current_resume = safe_text(payload.current_resume)
    job_description = safe_text(payload.job_description)
    if not current_resume or not job_description:
        raise BadRequest("Both your current resume and the job description are required.")

    decision = reserve_quota(request, "tailor_resume")
    result = ai_client.invoke_model("tailor_resume", prompts.tailor_resume_message(current_resume, job_description))
    remaining = rate_limit.commit_quota(decision)
    return {"result": result, "remaining": remaining, "tier": decision.tier}


@app.post("/api/parse-resume")
def parse_resume(payload: ParseResumeRequest, request: Request) -> dict[str, Any]:
    user = identity.require_user(request)
    resume_text = safe_text(payload.resume_text)
    if len(resume_text) < PARSE_MIN_CHARS:
        raise BadRequest("Resume text is too short to parse. Paste your full resume.")
    if len(resume_text) > PARSE_MAX_CHARS:
        raise BadRequest(f"Resume text is too long. Keep it under {PARSE_MAX_CHARS:,} characters.")

    raw_profile = ai_client.invoke_model("parse_resume", prompts.parse_resume_message(resume_text))
    profile = profiles.normalize_profile(raw_profile)
    saved = profiles.save_profile(user.user_id, profile)
    return {"profile": profile, "saved": saved}


@app.post("/api/enhance-bullet")
def enhance_bullet(payload: EnhanceBulletRequest) -> dict[str, str]:
    bullet = safe_text(payload.bullet)
    if len(bullet) < BULLET_MIN_CHARS:
        raise BadRequest("Write at least a few words before enhancing this bullet.")
    message = prompts.enhance_bullet_message(
        bullet,
        job_title=payload.job_title,
        company=payload.company,
        target_role=payload.target_role,
        all_bullets=payload.all_bullets,
    )
    return {"enhanced": ai_client.invoke_model("enhance_bullet", message)}


@app.post("/api/generate")
def generate(payload: GenerateRequest, request: Request) -> dict[str, Any]:
    doc_type = safe_text(payload.type).lower()
    if doc_type not in {"resume", "cover_letter"}:
        raise BadRequest("Type must be either 'resume' or 'cover_letter'.")
    fields = {key: field_text(value) for key, value in payload.model_dump(by_alias=True).items() if key != "type"}
    if not fields.get("jobTitle"):
        raise BadRequest("Job title is required.")
    if doc_type == "resume" and not (fields.get("experience") or fields.get("skills")):
        raise BadRequest("Add your experience or skills so there is something to write about.")

    decision = reserve_quota(request, "generate")
    result = ai_client.invoke_model(f"generate_{doc_type}", prompts.generate_message(fields))
    remaining = rate_limit.commit_quota(decision)
    return {"result": result, "remaining": remaining}


@app.post("/api/search-jobs")
def search_jobs(payload: SearchJobsRequest, request: Request) -> dict[str, Any]:
    query = safe_text(payload.query)
    if not query:
        raise BadRequest("Enter a job title or keywords to search.")
    page = max(1, payload.page or 1)

    decision = reserve_quota(request, "search_jobs")
    filtered = any(
        [payload.date_posted, payload.employment_types, payload.job_requirements, payload.radius]
    )
    key = job_cache.cache_key(query, payload.location, bool(payload.remote), page)
    cached = None if filtered else job_cache.get_cached(key)
    if cached is not None:
        jobs, total = cached.jobs, cached.total_results
    else:
        params = job_search.build_search_params(
            query,
            location=payload.location,
            remote=bool(payload.remote),
            page=page,
            date_posted=payload.date_posted,
            employment_types=payload.employment_types,
            job_requirements=payload.job_requirements,
            radius=payload.radius,
        )
        jobs, total = job_search.fetch_jobs(params)
        if not filtered:
            job_cache.put_cached(key, jobs, total)

    jobs = job_search.attach_match_scores(
        jobs, payload.user_skills, payload.desired_title, payload.desired_location
    )
    remaining = rate_limit.commit_quota(decision)
    response: dict[str, Any] = {"jobs": jobs, "totalResults": total, "remaining": remaining}
    if cached is not None:
        response["cached"] = True
    return response


@app.post("/api/interview-prep")
def interview_prep(payload: InterviewPrepRequest, request: Request) -> dict[str, Any]:
    job_title = safe_text(payload.job_title)
    if not job_title:
        raise BadRequest("Job title is required.")
    mode = "quick" if safe_text(payload.mode).lower() == "quick" else "full"

    decision = reserve_quota(request, "interview_prep")
    result = ai_client.invoke_model(
        "interview_prep",
        prompts.interview_prep_message(job_title, payload.company, payload.job_description, mode),
    )
    remaining = rate_limit.commit_quota(decision)
    return {"result": result, "remaining": remaining, "isPro": decision.tier in {"pro", "max"}}


@app.post("/api/export-docx")
def export_docx(payload: ExportRequest, request: Request) -> Response:
    require_paid_user(request)
    content = safe_text(payload.content)
    if not content:
        raise BadRequest("Nothing to export yet.")
    title = safe_text(payload.title) or "Resume"
    doc_type = doc_type_of(payload.type)
    data = docx_export.build_docx(content, title=title, doc_type=doc_type)
    filename = "cover-letter.docx" if doc_type == "cover_letter" else "resume.docx"
    return Response(
        content=data,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/export-pdf")
def export_pdf(payload: ExportRequest, request: Request) -> dict[str, str]:
    require_paid_user(request)
    title = safe_text(payload.title) or None
    if payload.structured:
        return {"html": resume_formatter.render_structured_html(payload.structured, title=title)}
    content = safe_text(payload.content)
    if not content:
        raise BadRequest("Nothing to export yet.")
    doc_type = doc_type_of(payload.type)
    return {"html": resume_formatter.render_text_html(content, title=title or "Resume", doc_type=doc_type)}


@app.post("/api/create-checkout")
def create_checkout(payload: CheckoutRequest, request: Request) -> dict[str, str]:
    user = None
    if identity.extract_bearer_token(request):
        try:
            user = identity.require_user(request)
        except ServiceError:
            logger.info("Checkout started with an unusable credential; continuing as guest.")
    return {"clientSecret": billing.create_checkout_session(payload.plan, user)}


@app.post("/api/create-portal-session")
def create_portal_session(request: Request) -> dict[str, str]:
    user = identity.require_user(request)
    return {"url": billing.create_portal_session(user)}


@app.post("/api/stripe-webhook")
async def stripe_webhook(request: Request) -> Response:
    raw_body = await request.body()
    signature = request.headers.get("stripe-signature")
    if not webhooks.verify_signature(raw_body, signature, config.STRIPE_WEBHOOK_SECRET):
        return PlainTextResponse("Invalid signature", status_code=400)
    try:
        event = json.loads(raw_body.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError):
        return PlainTextResponse("Invalid payload", status_code=400)
    if not isinstance(event, dict):
        return PlainTextResponse("Invalid payload", status_code=400)

    try:
        await run_in_threadpool(billing.handle_event, event)
    except supabase_client.SupabaseError:
        logger.exception("Stripe event %s could not be applied", safe_text(event.get("id")))
        return PlainTextResponse("Webhook handler failed", status_code=500)
    return JSONResponse({"received": True})


def store_inbound_email(fields: dict[str, Any]) -> None:
    to_field = safe_text(fields.get("to"))
    owner = email_service.find_inbox_owner(to_field)
    if owner is None:
        logger.info("Inbound email for an unknown address was dropped.")
        return
    user_id, address = owner
    email_service.record_message(
        user_id,
        "inbound",
        safe_text(fields.get("from")),
        address,
        safe_text(fields.get("subject")) or "(no subject)",
        safe_text(fields.get("text")),
        html_body=safe_text(fields.get("html")) or None,
    )


@app.post("/api/email-webhook")
async def email_webhook(request: Request) -> PlainTextResponse:
    # The mail provider retries on anything but 200, so every outcome answers OK.
    try:
        if "application/json" in safe_text(request.headers.get("content-type")).lower():
            fields = await request.json()
        else:
            fields = dict(await request.form())
        if isinstance(fields, dict):
            await run_in_threadpool(store_inbound_email, fields)
    except Exception:
        logger.exception("Inbound email processing failed")
    return PlainTextResponse("OK")


@app.post("/api/send-email")
def send_email(payload: SendEmailRequest, request: Request) -> dict[str, bool]:
    user = identity.require_user(request)
    to = safe_text(payload.to)
    subject = safe_text(payload.subject)
    body = safe_text(payload.body)
    if "@" not in to or not body:
        raise BadRequest("A recipient address and a message body are required.")
    if not email_service.is_configured():
        raise ServerMisconfigured("Email sending is not configured.", status_code=503)

    try:
        from_address = email_service.get_user_address(user.user_id)
    except supabase_client.SupabaseError as exc:
        logger.exception("Inbox lookup failed for user %s", user.user_id)
        raise UpstreamFailure("Unable to send email right now.") from exc
    if not from_address:
        raise BadRequest("Set up your career inbox before sending email.")

    error = email_service.send_email(to, subject or "(no subject)", body, from_address=from_address)
    if error:
        raise UpstreamFailure(f"Unable to send email right now. {error}")
    try:
        email_service.record_message(
            user.user_id,
            "outbound",
            from_address,
            to,
            subject or "(no subject)",
            body,
            in_reply_to=safe_text(payload.reply_to_message_id) or None,
        )
    except supabase_client.SupabaseError:
        logger.exception("Sent email could not be recorded for user %s", user.user_id)
    return {"success": True}


@app.post("/api/provision-email")
def provision_email(request: Request) -> dict[str, str]:
    user = identity.require_user(request)
    try:
        address = email_service.provision_address(user.user_id, user.email)
    except supabase_client.SupabaseError as exc:
        logger.exception("Inbox provisioning failed for user %s", user.user_id)
        raise UpstreamFailure("Unable to set up your inbox right now.") from exc
    return {"email": address}
