"""Explanation providers: Vertex AI, OpenAI and the deterministic rules fallback.

External providers take a de-identified prompt payload and return
``{short_explanation, detailed_points, confidence_label}``. Failures are
raised as the categorized ``ExplanationProviderError`` subclasses so the
explanation service can pick an audit status and fall back.
"""

import json
import logging
import re
import time
from typing import Any, Protocol

import httpx
from openai import (
    APIError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)
from pydantic import ValidationError

from bundle_engine.config import settings
from bundle_engine.exceptions import (
    ExplanationProviderError,
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from bundle_engine.schemas.axis import ScenarioAxis
from bundle_engine.schemas.explanation import ExplanationResponse
from bundle_engine.schemas.profile import PatientNeedsProfile
from bundle_engine.schemas.scenario import ScenarioBundle

logger = logging.getLogger(__name__)

DEFAULT_SHORT_EXPLANATION = "Bundle scenario generated based on clinical profile."
DEFAULT_CONFIDENCE_LABEL = "Profile Aligned"
MAX_DETAIL_POINTS = 5

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_RAW_JSON = re.compile(r"\{.*\}", re.DOTALL)


class ExplanationProvider(Protocol):
    """External LLM provider. ``source`` tags audit rows and responses."""

    source: str

    async def generate_content(self, payload: dict) -> dict: ...


def split_prompt(payload: dict) -> tuple[str, str]:
    """Separate the system instruction from the JSON context block."""
    context = {k: v for k, v in payload.items() if k != "system_instruction"}
    return payload.get("system_instruction", ""), json.dumps(context, indent=2, default=str)


def extract_json(text: str) -> dict | None:
    """Parse a JSON object from model output, tolerating markdown fences."""
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidate = fenced.group(1)
    else:
        raw = _RAW_JSON.search(text)
        if raw is None:
            return None
        candidate = raw.group(0)
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse JSON from explanation provider: %s", e.msg)
        return None
    return parsed if isinstance(parsed, dict) else None


def normalize_response(data: dict) -> dict:
    """Map either response shape onto short explanation, points and label.

    Raises:
        ExplanationProviderError: A field has the wrong type, or the points
            are not a list of strings.
    """
    short = data.get("short_explanation") or DEFAULT_SHORT_EXPLANATION
    label = data.get("confidence_label") or data.get("clinical_alignment") or DEFAULT_CONFIDENCE_LABEL
    points = data.get("detailed_points") or data.get("key_factors") or []

    if not isinstance(short, str) or not isinstance(label, str):
        raise ExplanationProviderError("Explanation text fields must be strings")
    if not isinstance(points, list) or not all(isinstance(p, str) for p in points):
        raise ExplanationProviderError("Explanation points must be a list of strings")

    return {
        "short_explanation": short,
        "detailed_points": points[:MAX_DETAIL_POINTS],
        "confidence_label": label,
    }


# ── Vertex AI ──


class VertexAiExplanationProvider:
    """Gemini ``generateContent`` over REST with a bearer token."""

    source = "vertex_ai"

    def __init__(
        self,
        project_id: str | None = None,
        access_token: str | None = None,
        *,
        location: str | None = None,
        model: str | None = None,
        timeout_seconds: float | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.project_id = project_id or settings.vertex_ai_project_id
        self.access_token = access_token or settings.vertex_ai_access_token
        self.location = location or settings.vertex_ai_location
        self.model = model or settings.vertex_ai_model
        self.timeout_seconds = timeout_seconds or settings.explanation_timeout_seconds
        self.temperature = temperature if temperature is not None else settings.vertex_ai_temperature
        self.max_output_tokens = max_output_tokens or settings.vertex_ai_max_output_tokens
        self._client = client

    @property
    def endpoint_url(self) -> str:
        return (
            f"https://{self.location}-aiplatform.googleapis.com/v1/projects/{self.project_id}"
            f"/locations/{self.location}/publishers/google/models/{self.model}:generateContent"
        )

    def build_request_body(self, payload: dict) -> dict:
        instruction, context = split_prompt(payload)
        return {
            "contents": [
                {"role": "user", "parts": [{"text": f"{instruction}\n\nContext:\n{context}"}]}
            ],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
                "responseMimeType": "application/json",
            },
        }

    async def generate_content(self, payload: dict) -> dict:
        """Call Vertex AI and return the normalized explanation dict.

        Raises:
            ProviderTimeoutError: Request timed out.
            ProviderRateLimitError: HTTP 429.
            ProviderAuthError: HTTP 401 or 403.
            ExplanationProviderError: Any other HTTP or parsing failure.
        """
        if not self.project_id:
            raise ExplanationProviderError("Vertex AI is not configured")

        body = self.build_request_body(payload)
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            if self._client is not None:
                response = await self._client.post(
                    self.endpoint_url, json=body, headers=headers, timeout=self.timeout_seconds
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(self.endpoint_url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                f"Vertex AI request timed out after {self.timeout_seconds}s"
            ) from e
        except httpx.HTTPError as e:
            raise ExplanationProviderError(f"Vertex AI request failed: {e}") from e

        if response.status_code == 429:
            raise ProviderRateLimitError("Vertex AI rate limit exceeded", 429)
        if response.status_code in (401, 403):
            raise ProviderAuthError("Vertex AI authentication failed", response.status_code)
        if response.status_code >= 400:
            raise ExplanationProviderError(
                f"Vertex AI request failed: {_error_message(response)}", response.status_code
            )

        return self.parse_response(response.json())

    @staticmethod
    def parse_response(data: dict) -> dict:
        candidates = data.get("candidates") or []
        if not candidates:
            raise ExplanationProviderError("No candidates in Vertex AI response")

        candidate = candidates[0]
        if candidate.get("finishReason") == "SAFETY":
            raise ExplanationProviderError("Response blocked by Vertex AI safety filters")

        parts = candidate.get("content", {}).get("parts") or [{}]
        text = parts[0].get("text")
        if not text:
            raise ExplanationProviderError("Empty text in Vertex AI response")

        parsed = extract_json(text)
        if parsed is None:
            raise ExplanationProviderError("Failed to extract JSON from Vertex AI response")
        return normalize_response(parsed)


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("message") or response.reason_phrase
    except ValueError:
        return response.reason_phrase


# ── OpenAI ──


class OpenAIExplanationProvider:
    """Chat completion with a JSON response format."""

    source = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str | None = None,
        timeout_seconds: float | None = None,
        client: AsyncOpenAI | None = None,
    ):
        self.model = model or settings.openai_explanation_model
        self.timeout_seconds = timeout_seconds or settings.explanation_timeout_seconds
        self._client = client or AsyncOpenAI(
            api_key=api_key or settings.openai_api_key, timeout=self.timeout_seconds
        )

    async def generate_content(self, payload: dict) -> dict:
        instruction, context = split_prompt(payload)
        try:
            completion = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": instruction},
                    {"role": "user", "content": f"Context:\n{context}"},
                ],
                response_format={"type": "json_object"},
            )
        except APITimeoutError as e:
            raise ProviderTimeoutError(
                f"OpenAI request timed out after {self.timeout_seconds}s"
            ) from e
        except RateLimitError as e:
            raise ProviderRateLimitError("OpenAI rate limit exceeded", 429) from e
        except (AuthenticationError, PermissionDeniedError) as e:
            raise ProviderAuthError("OpenAI authentication failed", e.status_code) from e
        except APIError as e:
            raise ExplanationProviderError(
                f"OpenAI request failed: {e.message}", getattr(e, "status_code", None)
            ) from e

        text = completion.choices[0].message.content if completion.choices else None
        if not text:
            raise ExplanationProviderError("Empty text in OpenAI response")
        parsed = extract_json(text)
        if parsed is None:
            raise ExplanationProviderError("Failed to extract JSON from OpenAI response")
        return normalize_response(parsed)


def build_provider(name: str | None = None) -> ExplanationProvider:
    """The configured external provider."""
    if (name or settings.explanation_provider) == "openai":
        return OpenAIExplanationProvider()
    return VertexAiExplanationProvider()


# ── Rules-based fallback ──

_AXIS_OPENINGS = {
    ScenarioAxis.RECOVERY_REHAB: "This bundle prioritizes rehabilitation and functional recovery.",
    ScenarioAxis.SAFETY_STABILITY: "This bundle focuses on maintaining safety and preventing decline.",
    ScenarioAxis.TECH_ENABLED: "This bundle leverages remote monitoring to provide continuous oversight.",
    ScenarioAxis.CAREGIVER_RELIEF: "This bundle is designed to support caregivers and prevent burnout.",
    ScenarioAxis.COMMUNITY_INTEGRATED: "This bundle integrates community resources for holistic care.",
    ScenarioAxis.BALANCED: "This bundle provides balanced coverage across all care domains.",
}

_AXIS_POINTS = {
    ScenarioAxis.RECOVERY_REHAB: "Emphasizes PT/OT therapy to maximize functional recovery",
    ScenarioAxis.SAFETY_STABILITY: "Prioritizes consistent monitoring and fall prevention",
    ScenarioAxis.TECH_ENABLED: "Utilizes RPM and telehealth for efficient continuous care",
    ScenarioAxis.CAREGIVER_RELIEF: "Includes respite and support services for family caregivers",
    ScenarioAxis.COMMUNITY_INTEGRATED: "Connects patient to community resources and day programs",
    ScenarioAxis.BALANCED: "Provides comprehensive coverage balancing all care domains",
}


class RulesBasedBundleExplanationProvider:
    """Deterministic explanations from axis, algorithm scores and risks. Never fails."""

    source = "rules_based"

    def generate_explanation(
        self, profile: PatientNeedsProfile, scenario: ScenarioBundle
    ) -> ExplanationResponse:
        start = time.perf_counter()
        parts = [
            _AXIS_OPENINGS.get(
                scenario.primary_axis, "This bundle addresses the patient's identified care needs."
            )
        ]
        justification = self.clinical_justification(profile, scenario.primary_axis)
        if justification:
            parts.append(justification)

        return ExplanationResponse(
            short_explanation=" ".join(parts),
            detailed_points=self.detailed_points(profile, scenario),
            confidence_label=self.confidence_label(profile),
            source="rules_based",
            response_time_ms=round((time.perf_counter() - start) * 1000),
        )

    def no_match_explanation(self, scenario: ScenarioBundle) -> ExplanationResponse:
        return ExplanationResponse(
            short_explanation=(
                f"No services could be matched to this patient's profile for the "
                f"{scenario.primary_axis.label} approach."
            ),
            detailed_points=[
                "No service lines were generated for this scenario",
                "Review the assessment data and service templates before selecting this option",
            ],
            confidence_label="No Match",
            source="rules_based",
            response_time_ms=0,
        )

    @staticmethod
    def clinical_justification(p: PatientNeedsProfile, axis: ScenarioAxis) -> str | None:
        if axis is ScenarioAxis.RECOVERY_REHAB:
            if p.rehabilitation_score >= 3:
                return (
                    f"Rehabilitation Algorithm score ({p.rehabilitation_score}/5) indicates strong "
                    "potential for functional improvement."
                )
            return None
        if axis is ScenarioAxis.SAFETY_STABILITY:
            if p.chess_ca_score >= 2 or p.falls_risk_level >= 2:
                return "Clinical indicators suggest elevated risk requiring daily monitoring and stability support."
            return None
        if axis is ScenarioAxis.CAREGIVER_RELIEF:
            if p.caregiver_stress_level >= 2:
                return "Caregiver stress assessment indicates respite support would benefit care sustainability."
            return None
        if axis is ScenarioAxis.TECH_ENABLED:
            if p.technology_readiness >= 2:
                return "Patient profile indicates suitability for remote monitoring technologies."
            return None
        if p.personal_support_score >= 3:
            return f"Personal Support Algorithm ({p.personal_support_score}/6) guides service intensity."
        return None

    @staticmethod
    def detailed_points(p: PatientNeedsProfile, scenario: ScenarioBundle) -> list[str]:
        points = [
            _AXIS_POINTS.get(scenario.primary_axis, "Tailored to patient's specific clinical profile")
        ]
        if p.rehabilitation_score >= 3:
            points.append(
                "Rehabilitation potential supports intensive therapy services "
                f"(Rehab score: {p.rehabilitation_score}/5)"
            )
        if p.personal_support_score >= 3:
            points.append(
                f"Personal support needs guide PSW service intensity (PSA score: {p.personal_support_score}/6)"
            )
        if p.chess_ca_score >= 2:
            points.append(
                f"Health instability indicators warrant nursing oversight (CHESS: {p.chess_ca_score}/5)"
            )
        if p.pain_score >= 3:
            points.append(f"Pain management is prioritized in nursing care plan (Pain: {p.pain_score}/4)")
        if p.distressed_mood_score >= 3:
            points.append(
                f"Mood support services included based on DMS assessment ({p.distressed_mood_score}/9)"
            )
        if scenario.risks_addressed:
            points.append("Bundle addresses identified risks: " + ", ".join(scenario.risks_addressed[:3]))
        return points[:MAX_DETAIL_POINTS]

    @staticmethod
    def confidence_label(p: PatientNeedsProfile) -> str:
        if p.has_full_hc_assessment and p.rug_group:
            return "High Confidence - Full HC Assessment"
        if p.has_ca_assessment or p.rug_category:
            return "Good Confidence - Standardized Assessment"
        if p.confidence_level == "low":
            return "Preliminary - Limited Assessment Data"
        return "Standard Confidence"


def response_from_provider(data: dict[str, Any], source: str, response_time_ms: int) -> ExplanationResponse:
    """Build the response from provider output.

    Raises:
        ExplanationProviderError: The output does not fit an explanation.
    """
    normalized = normalize_response(data)
    try:
        return ExplanationResponse(**normalized, source=source, response_time_ms=response_time_ms)
    except ValidationError as e:
        raise ExplanationProviderError(f"Invalid {source} explanation: {e.error_count()} field error(s)") from e
