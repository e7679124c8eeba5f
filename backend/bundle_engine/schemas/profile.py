"""Unified patient needs profile.

The profile is built once per generation from merged assessment sources and
handed downstream whole. Numeric fields default to 0 and flags to False so
scoring logic never branches on absence.
"""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from bundle_engine.utils.sequences import optional_list


ConfidenceLevel = Literal["low", "medium", "high"]

PROFILE_VERSION = "1.0"

_CONFIDENCE_LABELS = {
    "high": "High Confidence (Full HC Assessment)",
    "medium": "Medium Confidence (CA + supplementary data)",
    "low": "Low Confidence (Limited assessment data)",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PatientNeedsProfile(BaseModel):
    """Normalized, immutable summary of a patient's care needs."""

    model_config = ConfigDict(frozen=True)

    # === Metadata ===
    patient_id: int
    profile_generated_at: datetime = Field(default_factory=_utcnow)
    profile_version: str = PROFILE_VERSION

    # === Data sources ===
    primary_assessment_type: str | None = None
    primary_assessment_date: datetime | None = None
    has_full_hc_assessment: bool = False
    has_ca_assessment: bool = False
    has_bmhs_assessment: bool = False
    has_referral_data: bool = False
    data_completeness_score: float = 0.0

    # === Case classification ===
    rug_group: str | None = None
    rug_category: str | None = None
    needs_cluster: str | None = None
    episode_type: str | None = None
    rug_numeric_rank: int | None = None

    # === Functional needs (0-6) ===
    adl_support_level: int = 0
    iadl_support_level: int = 0
    mobility_complexity: int = 0
    specific_adl_needs: tuple[str, ...] | None = None

    # === Cognitive and behavioural ===
    cognitive_complexity: int = 0
    behavioural_complexity: int = 0
    mental_health_complexity: int = 0
    has_wandering_risk: bool = False
    has_aggression_risk: bool = False
    behavioural_flags: tuple[str, ...] | None = None

    # Behavioural screener detail
    disordered_thought_score: int = 0
    risk_of_harm_score: int = 0
    self_harm_risk_level: int = 0
    violence_risk_level: int = 0
    insight_level: str | None = None
    requires_psychiatric_consult: bool = False
    requires_behavioural_support: bool = False
    requires_crisis_intervention: bool = False

    # === Clinical risk ===
    falls_risk_level: int = 0
    skin_integrity_risk: int = 0
    pain_management_need: int = 0
    continence_support: int = 0
    health_instability: int = 0
    clinical_risk_flags: tuple[str, ...] | None = None
    active_conditions: tuple[str, ...] | None = None

    # === Treatment context ===
    has_rehab_potential: bool = False
    rehab_potential_score: int = 0
    requires_extensive_services: bool = False
    extensive_services: tuple[str, ...] | None = None
    weekly_therapy_minutes: int = 0

    # === Support context ===
    caregiver_availability_score: int = 0
    caregiver_stress_level: int = 0
    lives_alone: bool = False
    caregiver_requires_relief: bool = False
    social_support_score: int = 0

    # === Technology readiness ===
    technology_readiness: int = 0
    has_internet: bool = False
    has_pers: bool = False
    suitable_for_rpm: bool = False

    # === Environment ===
    region_code: str | None = None
    region_name: str | None = None
    travel_complexity_score: int = 0
    is_rural: bool = False
    service_availability_flags: tuple[str, ...] | None = None

    # === Confidence ===
    confidence_level: ConfidenceLevel = "low"
    missing_data_fields: tuple[str, ...] | None = None
    data_quality_notes: str | None = None

    # === Clinical algorithm scores ===
    self_reliance_index: bool = False
    assessment_urgency_score: int = 1
    service_urgency_score: int = 1
    rehabilitation_score: int = 1
    personal_support_score: int = 1
    distressed_mood_score: int = 0
    pain_score: int = 0
    chess_ca_score: int = 0

    # === Additional risk indicators ===
    has_recent_fall: bool = False
    has_delirium: bool = False
    has_home_environment_risk: bool = False
    has_polypharmacy_risk: bool = False
    has_recent_hospital_stay: bool = False
    has_recent_er_visit: bool = False
    medication_count: int = 0

    # ── Accessors ──

    @property
    def confidence_label(self) -> str:
        return _CONFIDENCE_LABELS.get(self.confidence_level, "Unknown Confidence")

    @property
    def is_sufficient_for_bundling(self) -> bool:
        return self.has_full_hc_assessment or self.has_ca_assessment or self.has_referral_data

    @property
    def primary_classification(self) -> str | None:
        return self.rug_group or self.needs_cluster

    @property
    def classification_type(self) -> str:
        if self.rug_group is not None:
            return "RUG-III/HC"
        if self.needs_cluster is not None:
            return "Needs Cluster"
        return "Unclassified"

    @property
    def algorithm_scores(self) -> dict:
        return {
            "self_reliance_index": self.self_reliance_index,
            "assessment_urgency": self.assessment_urgency_score,
            "service_urgency": self.service_urgency_score,
            "rehabilitation": self.rehabilitation_score,
            "personal_support": self.personal_support_score,
            "distressed_mood": self.distressed_mood_score,
            "pain": self.pain_score,
            "chess_ca": self.chess_ca_score,
        }

    def to_deidentified_dict(self) -> dict:
        """Grouped profile view without the patient id."""
        return {
            "profile_version": self.profile_version,
            "data_sources": {
                "has_hc": self.has_full_hc_assessment,
                "has_ca": self.has_ca_assessment,
                "has_bmhs": self.has_bmhs_assessment,
                "has_referral": self.has_referral_data,
                "completeness": round(self.data_completeness_score, 2),
            },
            "case_classification": {
                "rug_group": self.rug_group,
                "rug_category": self.rug_category,
                "needs_cluster": self.needs_cluster,
                "episode_type": self.episode_type,
            },
            "functional_needs": {
                "adl_level": self.adl_support_level,
                "iadl_level": self.iadl_support_level,
                "mobility_complexity": self.mobility_complexity,
                "specific_adl_needs": optional_list(self.specific_adl_needs),
            },
            "cognitive_behavioural": {
                "cognitive_complexity": self.cognitive_complexity,
                "behavioural_complexity": self.behavioural_complexity,
                "mental_health_complexity": self.mental_health_complexity,
                "wandering_risk": self.has_wandering_risk,
                "aggression_risk": self.has_aggression_risk,
                "behavioural_flags": optional_list(self.behavioural_flags),
                "self_harm_risk": self.self_harm_risk_level,
                "violence_risk": self.violence_risk_level,
            },
            "clinical_risks": {
                "falls_risk": self.falls_risk_level,
                "skin_risk": self.skin_integrity_risk,
                "pain_level": self.pain_management_need,
                "continence": self.continence_support,
                "health_instability": self.health_instability,
                "clinical_flags": optional_list(self.clinical_risk_flags),
                "active_conditions": optional_list(self.active_conditions),
            },
            "treatment_context": {
                "rehab_potential": self.has_rehab_potential,
                "rehab_score": self.rehab_potential_score,
                "requires_extensive": self.requires_extensive_services,
                "extensive_services": optional_list(self.extensive_services),
                "weekly_therapy_minutes": self.weekly_therapy_minutes,
            },
            "support_context": {
                "caregiver_availability": self.caregiver_availability_score,
                "caregiver_stress": self.caregiver_stress_level,
                "lives_alone": self.lives_alone,
                "needs_respite": self.caregiver_requires_relief,
                "social_support": self.social_support_score,
            },
            "technology": {
                "readiness": self.technology_readiness,
                "has_internet": self.has_internet,
                "has_pers": self.has_pers,
                "rpm_suitable": self.suitable_for_rpm,
            },
            "environment": {
                "region_code": self.region_code,
                "travel_complexity": self.travel_complexity_score,
                "is_rural": self.is_rural,
            },
            "algorithm_scores": self.algorithm_scores,
            "confidence": {
                "level": self.confidence_level,
                "label": self.confidence_label,
            },
        }

    def to_dict(self) -> dict:
        return {
            "patient_id": self.patient_id,
            **self.to_deidentified_dict(),
            "generated_at": self.profile_generated_at.isoformat(),
            "primary_assessment_type": self.primary_assessment_type,
            "primary_assessment_date": (
                self.primary_assessment_date.isoformat()
                if self.primary_assessment_date
                else None
            ),
            "missing_data_fields": optional_list(self.missing_data_fields),
            "data_quality_notes": self.data_quality_notes,
        }

    @classmethod
    def minimal(cls, patient_id: int) -> "PatientNeedsProfile":
        """All-zero profile used when nothing could be built."""
        return cls(
            patient_id=patient_id,
            confidence_level="low",
            data_quality_notes="Minimal profile - no assessment data available",
        )
