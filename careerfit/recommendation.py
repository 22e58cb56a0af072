"""
Academic stream recommendation via an OpenAI-compatible chat completions API.

A recommendation is optional garnish on a result: every failure mode ends in
RecommendationError, and recommend_or_none turns that into None so the
submission is still persisted.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

import requests

from .config import Settings, get_settings
from .constants import STREAMS
from .errors import RecommendationError
from .logger import get_logger
from .retry import (
    CircuitBreaker,
    CircuitOpenError,
    RetryError,
    RetryableStatusError,
    exponential_backoff,
    should_retry_http_status,
)
from .types import CareerMatch, RIASECScores

logger = get_logger()

breaker = CircuitBreaker(name="recommendation", failure_threshold=3, recovery_timeout=120)

ALIGNMENT_KEYS = ("art", "science", "commercial")


@dataclass
class StreamRecommendation:
    recommended_stream: str
    reasoning: str
    stream_alignment: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendedStream": self.recommended_stream,
            "reasoning": self.reasoning,
            "streamAlignment": dict(self.stream_alignment),
        }


def build_prompt(
    career_code: str,
    scores: RIASECScores,
    tier: str,
    top_matches: Sequence[CareerMatch],
) -> str:
    top_careers = ", ".join(
        f"{m.career_name} ({', '.join(m.tags)})" for m in top_matches[:3]
    )
    return f"""
You are an expert educational counselor specializing in Nigerian secondary education streams. Based on a student's RIASEC career assessment results, recommend the BEST academic stream.

Assessment Results:
- RIASEC Code: {career_code}
- Interest Scores:
  * Realistic (R): {scores.R}/50 - Hands-on, mechanical, technical work
  * Investigative (I): {scores.I}/50 - Research, analysis, problem-solving
  * Artistic (A): {scores.A}/50 - Creative, expressive, artistic work
  * Social (S): {scores.S}/50 - Helping people, teaching, counseling
  * Enterprising (E): {scores.E}/50 - Leading, persuading, business
  * Conventional (C): {scores.C}/50 - Organizing, data, detail-oriented
- Achievement Tier: {tier}
- Top Career Matches: {top_careers}

Nigerian Academic Streams:
1. Science - Physics, Chemistry, Biology, Mathematics (leads to Medicine, Engineering, Pure Sciences)
2. Art - Literature, Government, History, CRS/IRS (leads to Law, Social Sciences, Humanities)
3. Commercial - Accounting, Commerce, Economics (leads to Business, Accounting, Finance)

Analysis Guidelines:
- High I + R scores suggest the Science stream
- High A + S scores suggest the Art stream
- High E + C scores suggest the Commercial stream
- Consider the top career matches and their typical educational paths

Provide your response in this EXACT JSON format (no markdown, no extra text):
{{
  "recommendedStream": "Science" OR "Art" OR "Commercial",
  "reasoning": "2-3 sentences explaining why this stream best fits their RIASEC profile and career goals",
  "streamAlignment": {{"art": 65, "science": 85, "commercial": 45}}
}}

Response (JSON only):"""


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def parse_response(text: str) -> StreamRecommendation:
    """
    Extract a StreamRecommendation from a model reply.

    Code fences are stripped and the outermost {...} span is parsed.

    Raises:
        RecommendationError: If no valid recommendation object is found
    """
    cleaned = text.strip()
    cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned)
    cleaned = re.sub(r"```$", "", cleaned).strip()

    match = re.search(r"\{.*\}", cleaned, re.DOTALL)
    if not match:
        raise RecommendationError("No JSON found in recommendation response")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise RecommendationError(f"Invalid JSON in recommendation response: {e.msg}") from e

    if not isinstance(data, dict):
        raise RecommendationError("Recommendation response is not an object")

    stream = data.get("recommendedStream")
    reasoning = data.get("reasoning")
    alignment = data.get("streamAlignment")

    if stream not in STREAMS:
        raise RecommendationError(f"Unknown stream: {stream!r}")
    if not isinstance(reasoning, str):
        raise RecommendationError("reasoning must be a string")
    if not isinstance(alignment, dict) or not all(_is_number(alignment.get(k)) for k in ALIGNMENT_KEYS):
        raise RecommendationError("streamAlignment must give numeric art, science and commercial")

    return StreamRecommendation(
        recommended_stream=stream,
        reasoning=reasoning,
        stream_alignment={k: alignment[k] for k in ALIGNMENT_KEYS},
    )


@exponential_backoff(
    max_retries=2,
    base_delay=1.0,
    exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError, RetryableStatusError),
)
def _post_completion(url: str, headers: Dict[str, str], payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
    resp = requests.post(url, headers=headers, json=payload, timeout=timeout)
    if should_retry_http_status(resp.status_code):
        raise RetryableStatusError(resp.status_code)
    resp.raise_for_status()
    return resp.json()


def request_completion(prompt: str, settings: Optional[Settings] = None) -> str:
    """
    Send one prompt and return the reply text.

    Raises:
        RecommendationError: On missing configuration, transport failure,
            an open circuit or an unexpected payload
    """
    settings = settings or get_settings()
    if not settings.groq_api_key:
        raise RecommendationError("GROQ_API_KEY not configured")

    url = f"{settings.groq_base_url}/chat/completions"
    headers = {"Authorization": f"Bearer {settings.groq_api_key}"}
    payload = {
        "model": settings.groq_model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": 0.7,
    }

    try:
        body = breaker.call(_post_completion, url, headers, payload, settings.recommendation_timeout)
    except CircuitOpenError as e:
        raise RecommendationError(str(e)) from e
    except (RetryError, requests.exceptions.RequestException, ValueError) as e:
        raise RecommendationError(f"Recommendation request failed: {e}") from e

    try:
        return body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise RecommendationError("Unexpected completion payload") from e


def generate_recommendation(
    career_code: str,
    scores: RIASECScores,
    tier: str,
    top_matches: Sequence[CareerMatch],
    settings: Optional[Settings] = None,
) -> StreamRecommendation:
    prompt = build_prompt(career_code, scores, tier, top_matches)
    return parse_response(request_completion(prompt, settings))


def recommend_or_none(
    career_code: str,
    scores: RIASECScores,
    tier: str,
    top_matches: Sequence[CareerMatch],
    settings: Optional[Settings] = None,
) -> Optional[StreamRecommendation]:
    """generate_recommendation, returning None (logged and counted) on failure."""
    try:
        return generate_recommendation(career_code, scores, tier, top_matches, settings)
    except RecommendationError as e:
        cause = e.__cause__ or e
        logger.record_recommendation_failure(type(cause).__name__)
        logger.warning("Stream recommendation unavailable", career_code=career_code, error=str(e))
        return None
