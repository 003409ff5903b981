"""OpenAI chat wrapper: feature presets, per-call timeouts and output parsing."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

import openai
from openai import OpenAI

import config
import prompts
from errors import MalformedModelOutput, ModelTimeout, ServerMisconfigured, UpstreamFailure

logger = logging.getLogger("resumeai.ai_client")

_client: OpenAI | None = None


@dataclass(frozen=True)
class FeatureSpec:
    system_prompt: str
    max_tokens: int
    timeout_seconds: float
    output: str = "json"
    temperature: float = 0.3


FEATURES: dict[str, FeatureSpec] = {
    "ats_score": FeatureSpec(prompts.ATS_SCORE_SYSTEM, max_tokens=1500, timeout_seconds=25),
    "tailor_resume": FeatureSpec(prompts.TAILOR_RESUME_SYSTEM, max_tokens=3500, timeout_seconds=30),
    "parse_resume": FeatureSpec(prompts.PARSE_RESUME_SYSTEM, max_tokens=3000, timeout_seconds=30, temperature=0.0),
    "enhance_bullet": FeatureSpec(
        prompts.ENHANCE_BULLET_SYSTEM, max_tokens=200, timeout_seconds=15, output="text", temperature=0.5
    ),
    "generate_resume": FeatureSpec(
        prompts.GENERATE_RESUME_SYSTEM, max_tokens=2500, timeout_seconds=30, output="text", temperature=0.4
    ),
    "generate_cover_letter": FeatureSpec(
        prompts.GENERATE_COVER_LETTER_SYSTEM, max_tokens=1500, timeout_seconds=30, output="text", temperature=0.5
    ),
    "interview_prep": FeatureSpec(prompts.INTERVIEW_PREP_SYSTEM, max_tokens=3000, timeout_seconds=30, temperature=0.4),
}


def get_client() -> OpenAI:
    global _client
    if not config.OPENAI_API_KEY:
        raise ServerMisconfigured("AI features are not configured on the server.")
    if _client is None:
        _client = OpenAI(api_key=config.OPENAI_API_KEY, max_retries=0)
    return _client


def extract_llm_text(message_content: Any) -> str:
    if isinstance(message_content, str):
        return message_content.strip()
    if isinstance(message_content, list):
        parts: list[str] = []
        for item in message_content:
            text = item.get("text") if isinstance(item, dict) else getattr(item, "text", item)
            if isinstance(text, str):
                parts.append(text)
        return "\n".join(parts).strip()
    return str(message_content or "").strip()


def strip_code_fences(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else stripped[3:]
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def strict_json(text: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(strip_code_fences(text))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def largest_brace_span(text: str) -> dict[str, Any] | None:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


PARSE_STAGES: list[Callable[[str], dict[str, Any] | None]] = [strict_json, largest_brace_span]


def parse_structured(text: str) -> dict[str, Any]:
    for stage in PARSE_STAGES:
        parsed = stage(text)
        if parsed is not None:
            return parsed
    logger.error("Model output was not parseable as JSON (%s chars).", len(text))
    raise MalformedModelOutput()


def clean_plain_text(text: str, single_line: bool = False) -> str:
    cleaned = strip_code_fences(text)
    if single_line:
        cleaned = cleaned.splitlines()[0].strip() if cleaned else ""
        if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in {'"', "'"}:
            cleaned = cleaned[1:-1].strip()
        cleaned = cleaned.lstrip("•-* ").strip()
    if not cleaned:
        raise MalformedModelOutput("The AI returned an empty response. Please try again.")
    return cleaned


def invoke_model(feature: str, user_content: str) -> Any:
    """Call the model for ``feature`` and return a dict (JSON features) or text."""
    spec = FEATURES[feature]
    client = get_client()
    request: dict[str, Any] = {
        "model": config.OPENAI_MODEL,
        "messages": [
            {"role": "system", "content": spec.system_prompt},
            {"role": "user", "content": user_content},
        ],
        "temperature": spec.temperature,
        "max_tokens": spec.max_tokens,
        "timeout": spec.timeout_seconds,
    }
    if spec.output == "json":
        request["response_format"] = {"type": "json_object"}

    try:
        response = client.chat.completions.create(**request)
    except openai.APITimeoutError as exc:
        logger.warning("OpenAI timed out after %ss for feature %s.", spec.timeout_seconds, feature)
        raise ModelTimeout() from exc
    except openai.OpenAIError as exc:
        logger.exception("OpenAI request failed for feature %s.", feature)
        raise UpstreamFailure("AI generation is temporarily unavailable. Please retry shortly.") from exc

    content = extract_llm_text(response.choices[0].message.content if response.choices else "")
    if spec.output == "json":
        return parse_structured(content)
    return clean_plain_text(content, single_line=feature == "enhance_bullet")
