"""PHI/PII-safe prompt payloads for scenario explanations.

The payload carries only coded and derived values: acuity levels, algorithm
scores, service mix, cost framing and a hashed patient reference. Names,
contact details, addresses, coordinates, health card numbers and dates of
birth are never read from the profile, and the serialized payload is scanned
before it is returned. Any hit raises ``PhiPiiViolationError``.
"""

import json
import re
from collections.abc import Sequence

from bundle_engine.exceptions import PhiPiiViolationError
from bundle_engine.schemas.profile import PatientNeedsProfile
from bundle_engine.schemas.scenario import ScenarioBundle
from bundle_engine.utils.refs import patient_ref

# Matched as quoted JSON strings, so "service_name" does not trip "name"
FORBIDDEN_FIELD_PATTERNS = (
    "name",
    "email",
    "phone",
    "address",
    "street",
    "ohip",
    "health_card",
    "sin",
    "date_of_birth",
    "dob",
    "postal_code",
    "lat",
    "lng",
    "latitude",
    "longitude",
    "coordinates",
)

EMAIL_PATTERN = re.compile(r"[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}", re.IGNORECASE)
# Ten-digit health card numbers
HEALTH_CARD_PATTERN = re.compile(r"\b\d{10}\b")

SYSTEM_INSTRUCTION = """\
You are an AI care planning assistant for home and community care bundled services.
Your role is to explain why a specific care bundle scenario was recommended for a patient.

Guidelines:
- Be concise (2-3 sentences for short explanation)
- Use professional healthcare terminology
- Frame explanations in terms of patient experience and goals, NOT budget constraints
- Reference algorithm scores when relevant
- Focus on how the bundle addresses identified clinical needs
- Never invent information not provided in the context
- Use patient-centered language ("supports recovery" not "cheaper option")

Key Framing:
- Recovery-focused bundles: Emphasize rehabilitation potential and goal achievement
- Safety-focused bundles: Emphasize risk mitigation and stability
- Caregiver-relief bundles: Emphasize sustainable care and family support
- Tech-enabled bundles: Emphasize continuous monitoring and flexibility

Output Format:
Return a JSON object with exactly these fields:
{
  "short_explanation": "2-3 sentence summary of why this bundle was recommended",
  "key_factors": ["Factor 1", "Factor 2", "Factor 3"],
  "patient_benefit": "What the patient gains from this bundle approach",
  "clinical_alignment": "How this aligns with their clinical profile"
}"""


def validate_no_phi_pii(payload: dict) -> bool:
    """Scan a serialized payload for protected fields and identifier patterns.

    Raises:
        PhiPiiViolationError: On the first forbidden field, email address or
            ten-digit number found.
    """
    serialized = json.dumps(payload, default=str)
    lowered = serialized.lower()

    for field in FORBIDDEN_FIELD_PATTERNS:
        if f'"{field}"' in lowered:
            raise PhiPiiViolationError(
                f"PHI/PII field '{field}' detected in bundle explanation prompt. "
                "This is a safety violation."
            )

    if EMAIL_PATTERN.search(serialized):
        raise PhiPiiViolationError("Email address pattern detected in bundle explanation prompt.")

    if HEALTH_CARD_PATTERN.search(serialized):
        raise PhiPiiViolationError("Potential health card number detected in bundle explanation prompt.")

    return True


# ── Score interpretation ──


def interpret_personal_support(score: int) -> str:
    if score >= 5:
        return "high_support_need"
    if score >= 3:
        return "moderate_support_need"
    return "light_or_no_support_need"


def interpret_rehabilitation(score: int) -> str:
    if score >= 4:
        return "high_rehab_potential"
    if score >= 3:
        return "moderate_rehab_potential"
    return "limited_rehab_potential"


def interpret_chess(score: int) -> str:
    if score >= 4:
        return "high_health_instability"
    if score >= 2:
        return "moderate_health_instability"
    return "stable"


def interpret_distressed_mood(score: int) -> str:
    if score >= 5:
        return "significant_mood_disturbance"
    if score >= 3:
        return "mild_mood_indicators"
    return "no_mood_concerns"


def interpret_pain(score: int) -> str:
    if score >= 3:
        return "significant_pain"
    if score >= 2:
        return "moderate_pain"
    if score >= 1:
        return "mild_pain"
    return "no_pain"


def interpret_service_urgency(score: int) -> str:
    if score >= 4:
        return "emergency_same_day"
    if score >= 3:
        return "urgent_within_72h"
    if score >= 2:
        return "priority_within_week"
    return "routine"


class BundleExplanationPromptBuilder:
    """Assemble the de-identified context sent to an explanation provider."""

    def __init__(self, app_key: str | None = None):
        self.app_key = app_key

    def build_prompt_payload(
        self,
        profile: PatientNeedsProfile,
        scenario: ScenarioBundle,
        alternatives: Sequence[ScenarioBundle] = (),
    ) -> dict:
        payload = {
            "system_instruction": SYSTEM_INSTRUCTION,
            "patient_profile": self._profile_context(profile),
            "algorithm_scores": self._algorithm_scores_context(profile),
            "selected_scenario": self._scenario_context(scenario),
            "services_included": self._services_context(scenario),
            "cost_context": self._cost_context(scenario),
        }
        if alternatives:
            payload["alternative_scenarios"] = [
                {
                    "title": alt.title,
                    "primary_axis": alt.primary_axis.value,
                    "weekly_cost": alt.weekly_estimated_cost,
                    "total_hours": alt.total_weekly_hours,
                    "service_count": len(alt.service_lines),
                }
                for alt in alternatives
            ]

        validate_no_phi_pii(payload)
        return payload

    def patient_ref(self, patient_id: int) -> str:
        return patient_ref(patient_id, self.app_key)

    def _profile_context(self, p: PatientNeedsProfile) -> dict:
        if p.has_full_hc_assessment:
            assessment_type = "full_hc"
        elif p.has_ca_assessment:
            assessment_type = "ca_only"
        else:
            assessment_type = "referral"
        return {
            "patient_ref": self.patient_ref(p.patient_id),
            "assessment_type": assessment_type,
            "confidence_level": p.confidence_level,
            "episode_type": p.episode_type,
            "rug_category": p.rug_category,
            "needs_cluster": p.needs_cluster,
            "region_code": p.region_code,
            "adl_support_level": p.adl_support_level,
            "iadl_support_level": p.iadl_support_level,
            "cognitive_complexity": p.cognitive_complexity,
            "behavioural_complexity": p.behavioural_complexity,
            "health_instability": p.health_instability,
            "falls_risk_level": p.falls_risk_level,
            "has_rehab_potential": p.has_rehab_potential,
            "rehab_potential_score": p.rehab_potential_score,
            "lives_alone": p.lives_alone,
            "caregiver_stress_level": p.caregiver_stress_level,
            "technology_readiness": p.technology_readiness,
        }

    @staticmethod
    def _algorithm_scores_context(p: PatientNeedsProfile) -> dict:
        def scored(score: int, maximum: int, interpretation: str) -> dict:
            return {"score": score, "max": maximum, "interpretation": interpretation}

        return {
            "self_reliance_index": "self_reliant" if p.self_reliance_index else "requires_assistance",
            "personal_support_algorithm": scored(
                p.personal_support_score, 6, interpret_personal_support(p.personal_support_score)
            ),
            "rehabilitation_algorithm": scored(
                p.rehabilitation_score, 5, interpret_rehabilitation(p.rehabilitation_score)
            ),
            "chess_ca": scored(p.chess_ca_score, 5, interpret_chess(p.chess_ca_score)),
            "distressed_mood_scale": scored(
                p.distressed_mood_score, 9, interpret_distressed_mood(p.distressed_mood_score)
            ),
            "pain_scale": scored(p.pain_score, 4, interpret_pain(p.pain_score)),
            "service_urgency": scored(
                p.service_urgency_score, 4, interpret_service_urgency(p.service_urgency_score)
            ),
        }

    @staticmethod
    def _scenario_context(s: ScenarioBundle) -> dict:
        return {
            "scenario_title": s.title,
            "primary_axis": s.primary_axis.value,
            "primary_axis_label": s.primary_axis.label,
            "description": s.description,
            "key_benefits": list(s.key_benefits),
            "trade_offs": dict(s.trade_offs),
            "risks_addressed": list(s.risks_addressed),
            "patient_goals_supported": list(s.patient_goals_supported),
            "confidence_level": s.confidence_level,
            "is_recommended": s.is_recommended,
        }

    @staticmethod
    def _services_context(s: ScenarioBundle) -> dict:
        return {
            "total_services": len(s.service_lines),
            "total_weekly_hours": s.total_weekly_hours,
            "total_weekly_visits": s.total_weekly_visits,
            "in_person_percentage": s.in_person_percentage,
            "virtual_percentage": s.virtual_percentage,
            "services": [
                {
                    "service_name": line.service_name,
                    "service_category": line.service_category,
                    "frequency": f"{line.frequency_count}x/{line.frequency_period}",
                    "duration_minutes": line.duration_minutes,
                    "priority_level": line.priority_level,
                    "clinical_rationale": line.clinical_rationale,
                    "is_safety_critical": line.is_safety_critical,
                }
                for line in s.service_lines
            ],
        }

    @staticmethod
    def _cost_context(s: ScenarioBundle) -> dict:
        return {
            "weekly_estimated_cost": s.weekly_estimated_cost,
            "reference_cap": s.reference_cap,
            "cost_status": s.cost_status,
            "cap_utilization_percent": s.cap_utilization,
            "cost_note": s.cost_note,
        }
