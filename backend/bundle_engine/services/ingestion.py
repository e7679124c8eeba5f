"""Assessment ingestion: build a PatientNeedsProfile from every available source.

Merge order and confidence weights:
1. Home-care assessment (1.0) overwrites.
2. Contact assessment (0.7) fills fields that are absent, None or 0.
3. Behavioural screener (0.5) always overlays its own fields.
4. Referral (0.4) fills fields that are absent or None.

Building never raises: any failure yields PatientNeedsProfile.minimal().
"""

import json
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any

from bundle_engine.config import settings
from bundle_engine.repositories.assessments import AssessmentStore
from bundle_engine.schemas.assessment import Assessment, PatientRecord, Referral
from bundle_engine.schemas.profile import PatientNeedsProfile
from bundle_engine.services.algorithm_evaluator import AlgorithmEvaluator
from bundle_engine.services.cache import ProfileCache, TTLCache
from bundle_engine.services.derivers import EpisodeTypeDeriver, RehabPotentialDeriver
from bundle_engine.services.mappers import (
    AssessmentMapper,
    BmhsAssessmentMapper,
    CaAssessmentMapper,
    HcAssessmentMapper,
)
from bundle_engine.utils.numbers import to_int

logger = logging.getLogger(__name__)

CACHE_PREFIX = "bundle_engine:patient_profile:"

# Fields counted by the completeness score (populated = not None and not 0)
COMPLETENESS_FIELDS = (
    "adl_support_level",
    "cognitive_complexity",
    "health_instability",
    "falls_risk_level",
    "episode_type",
)

# Field -> label reported when the merged data never set it
IMPORTANT_FIELDS = {
    "rug_group": "RUG Classification",
    "adl_support_level": "ADL Support Level",
    "cognitive_complexity": "Cognitive Complexity",
    "health_instability": "Health Instability",
    "weekly_therapy_minutes": "Therapy Minutes",
}

REFERRAL_WEIGHT = 0.4

_PROFILE_FIELDS = frozenset(PatientNeedsProfile.model_fields)


def default_mappers() -> dict[str, AssessmentMapper]:
    return {
        "hc": HcAssessmentMapper(),
        "ca": CaAssessmentMapper(),
        "bmhs": BmhsAssessmentMapper(),
    }


def default_algorithm_scores(data: dict[str, Any]) -> dict[str, Any]:
    """Approximate algorithm scores from profile data when no assessment can be scored."""
    adl = to_int(data.get("adl_support_level"))
    cognitive = to_int(data.get("cognitive_complexity"))
    health = to_int(data.get("health_instability"))

    if adl >= 5:
        personal_support = 6
    elif adl >= 4:
        personal_support = 5
    elif adl >= 3:
        personal_support = 4
    elif adl >= 2:
        personal_support = 3
    elif adl >= 1:
        personal_support = 2
    else:
        personal_support = 1

    # Severe cognitive impairment limits rehab; ADL loss with intact cognition favours it
    if cognitive >= 4:
        rehabilitation = 1
    elif adl >= 3 and cognitive < 3:
        rehabilitation = 3
    elif adl >= 2:
        rehabilitation = 2
    else:
        rehabilitation = 1

    return {
        "self_reliance_index": adl == 0 and cognitive == 0,
        "assessment_urgency_score": min(6, max(1, adl + (2 if cognitive >= 3 else 0))),
        "service_urgency_score": 3 if health >= 3 else 1,
        "rehabilitation_score": rehabilitation,
        "personal_support_score": personal_support,
        "distressed_mood_score": to_int(data.get("mental_health_complexity")),
        "pain_score": to_int(data.get("pain_management_need")),
        "chess_ca_score": min(5, health),
    }


def calculate_confidence_level(factors: list[float], data: dict[str, Any]) -> str:
    """Confidence from the strongest contributing source."""
    if not factors:
        return "low"
    strongest = max(factors)
    if strongest >= 1.0 and data.get("has_full_hc_assessment"):
        return "high"
    if strongest >= 0.7:
        return "medium"
    return "low"


def calculate_completeness_score(data: dict[str, Any]) -> float:
    populated = sum(
        1 for field in COMPLETENESS_FIELDS if data.get(field) is not None and data.get(field) != 0
    )
    return populated / len(COMPLETENESS_FIELDS)


def missing_fields(data: dict[str, Any]) -> list[str]:
    return [label for field, label in IMPORTANT_FIELDS.items() if data.get(field) is None]


def data_quality_notes(
    data: dict[str, Any], hc: Assessment | None, ca: Assessment | None
) -> str:
    notes = []
    if hc is not None:
        notes.append("Full HC assessment available")
    elif ca is not None:
        notes.append("CA assessment only - RUG derived from needs cluster")
    else:
        notes.append("Limited assessment data - using referral/defaults")

    if not data.get("rug_group"):
        notes.append("No RUG classification - using needs cluster for template selection")
    return ". ".join(notes)


def extract_from_referral(referral: Referral) -> dict[str, Any]:
    """Profile fields a referral can supply. False flags are left unset."""
    data: dict[str, Any] = {"has_referral_data": True}
    if referral.has_internet:
        data["has_internet"] = True
    if referral.has_pers:
        data["has_pers"] = True
    if referral.is_rural:
        data["is_rural"] = True
    if referral.medication_count is not None:
        data["medication_count"] = referral.medication_count

    conditions = _parse_diagnoses(referral.diagnoses)
    if conditions:
        data["active_conditions"] = conditions
    return data


def _parse_diagnoses(diagnoses: list[str] | str | None) -> list[str] | None:
    if not diagnoses:
        return None
    if isinstance(diagnoses, list):
        return diagnoses
    try:
        decoded = json.loads(diagnoses)
    except json.JSONDecodeError:
        logger.debug("Referral diagnoses are not JSON; ignoring")
        return None
    return decoded if isinstance(decoded, list) else None


def _fill(merged: dict[str, Any], incoming: dict[str, Any], *, zero_is_unset: bool) -> None:
    for key, value in incoming.items():
        current = merged.get(key)
        if current is None or (zero_is_unset and current == 0 and not isinstance(current, bool)):
            merged[key] = value


def assessment_cutoff(days: int | None = None) -> datetime:
    """Oldest assessment date still considered. ``None`` means the configured window."""
    if days is None:
        days = settings.assessment_cutoff_days
    return datetime.now(timezone.utc) - timedelta(days=days)


def _date_str(assessment: Assessment | None) -> str | None:
    return assessment.assessment_date.date().isoformat() if assessment else None


class AssessmentIngestionService:
    """Fetch, merge and derive a patient's needs profile, with per-patient caching."""

    def __init__(
        self,
        store: AssessmentStore,
        cache: ProfileCache | None = None,
        mappers: dict[str, AssessmentMapper] | None = None,
        episode_deriver: EpisodeTypeDeriver | None = None,
        rehab_deriver: RehabPotentialDeriver | None = None,
        algorithm_evaluator: AlgorithmEvaluator | None = None,
        cache_ttl_seconds: float | None = None,
    ):
        self.store = store
        self.cache = cache if cache is not None else TTLCache()
        self.mappers = mappers or default_mappers()
        self.episode_deriver = episode_deriver or EpisodeTypeDeriver()
        self.rehab_deriver = rehab_deriver or RehabPotentialDeriver()
        self.algorithm_evaluator = algorithm_evaluator or AlgorithmEvaluator()
        self.cache_ttl_seconds = (
            cache_ttl_seconds if cache_ttl_seconds is not None else settings.profile_cache_ttl_seconds
        )

    # ── Public API ──

    def build_profile(
        self,
        patient_id: int,
        *,
        force_refresh: bool = False,
        include_referral: bool = True,
        assessment_cutoff_days: int | None = None,
        today: date | None = None,
    ) -> PatientNeedsProfile:
        """Build (or fetch from cache) the needs profile for one patient.

        Args:
            patient_id: Patient to profile.
            force_refresh: Recompute and overwrite any cached profile.
            include_referral: Whether the latest referral may contribute.
            assessment_cutoff_days: Ignore assessments older than this.
            today: Reference date for episode derivation.

        Returns:
            The merged profile, or a minimal one if building failed.
        """
        key = self.cache_key(patient_id)
        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Profile cache hit for patient %s", patient_id)
                return cached

        try:
            since = assessment_cutoff(assessment_cutoff_days)

            hc = self.store.latest_assessment(patient_id, "hc", since)
            ca = self.store.latest_assessment(patient_id, "ca", since)
            bmhs = self.store.latest_assessment(patient_id, "bmhs", since)

            referral = None
            if include_referral:
                try:
                    referral = self.store.latest_referral(patient_id)
                except Exception as e:
                    logger.debug("No referral data for patient %s: %s", patient_id, e)

            profile = self._build_from_sources(
                patient_id,
                self.store.patient(patient_id),
                hc,
                ca,
                bmhs,
                referral,
                today,
            )
        except Exception:
            logger.exception("Failed to build needs profile for patient %s", patient_id)
            return PatientNeedsProfile.minimal(patient_id)

        self.cache.put(key, profile, self.cache_ttl_seconds)
        logger.info(
            "Built needs profile for patient %s (confidence=%s, completeness=%.2f)",
            patient_id,
            profile.confidence_level,
            profile.data_completeness_score,
        )
        return profile

    def available_data_sources(
        self, patient_id: int, assessment_cutoff_days: int | None = None
    ) -> dict[str, Any]:
        since = assessment_cutoff(assessment_cutoff_days)
        hc = self.store.latest_assessment(patient_id, "hc", since)
        ca = self.store.latest_assessment(patient_id, "ca", since)
        bmhs = self.store.latest_assessment(patient_id, "bmhs", since)
        referral = self.store.latest_referral(patient_id)
        return {
            "has_hc": hc is not None,
            "hc_date": _date_str(hc),
            "has_ca": ca is not None,
            "ca_date": _date_str(ca),
            "has_bmhs": bmhs is not None,
            "bmhs_date": _date_str(bmhs),
            "has_referral": referral is not None,
            "referral_source": referral.source_label if referral else None,
            "has_family_input": False,
        }

    def has_sufficient_data(self, patient_id: int) -> bool:
        sources = self.available_data_sources(patient_id)
        return sources["has_hc"] or sources["has_ca"] or sources["has_referral"]

    def invalidate_cache(self, patient_id: int) -> None:
        self.cache.forget(self.cache_key(patient_id))

    @staticmethod
    def cache_key(patient_id: int) -> str:
        return f"{CACHE_PREFIX}{patient_id}"

    # ── Merge ──

    def _build_from_sources(
        self,
        patient_id: int,
        patient: PatientRecord | None,
        hc: Assessment | None,
        ca: Assessment | None,
        bmhs: Assessment | None,
        referral: Referral | None,
        today: date | None,
    ) -> PatientNeedsProfile:
        merged: dict[str, Any] = {}
        factors: list[float] = []

        if hc is not None:
            mapper = self.mappers["hc"]
            merged.update(mapper.map_to_profile_fields(hc))
            factors.append(mapper.confidence_weight)

        if ca is not None:
            mapper = self.mappers["ca"]
            _fill(merged, mapper.map_to_profile_fields(ca), zero_is_unset=True)
            factors.append(mapper.confidence_weight)

        if bmhs is not None:
            mapper = self.mappers["bmhs"]
            merged.update(mapper.map_to_profile_fields(bmhs))
            factors.append(mapper.confidence_weight)

        if referral is not None:
            _fill(merged, extract_from_referral(referral), zero_is_unset=False)
            factors.append(REFERRAL_WEIGHT)

        if not merged.get("rug_group") and patient is not None and patient.latest_rug_classification:
            rug = patient.latest_rug_classification
            merged["rug_group"] = rug.rug_group
            merged["rug_category"] = rug.rug_category
            merged["rug_numeric_rank"] = rug.numeric_rank

        # Derivers also read raw indicators (prognosis, acute change, ...) from the primary source
        primary = hc or ca
        derivation_input = {**(primary.raw_items if primary else {}), **merged}
        if referral is not None and referral.therapy_recommended:
            derivation_input.setdefault("therapy_recommended", True)

        episode_type = self.episode_deriver.derive(derivation_input, referral, patient, today)
        merged["episode_type"] = episode_type

        rehab = self.rehab_deriver.derive({**derivation_input, **merged}, episode_type, referral)
        merged["has_rehab_potential"] = rehab.has_rehab_potential
        merged["rehab_potential_score"] = rehab.score

        merged.update(self._algorithm_scores(primary, merged, referral))

        profile_fields = {k: v for k, v in merged.items() if k in _PROFILE_FIELDS and v is not None}
        profile_fields.update(
            patient_id=patient_id,
            primary_assessment_type="hc" if hc else ("ca" if ca else "referral_only"),
            primary_assessment_date=hc.assessment_date if hc else (ca.assessment_date if ca else None),
            has_full_hc_assessment=hc is not None,
            has_ca_assessment=ca is not None,
            has_bmhs_assessment=bmhs is not None,
            has_referral_data=referral is not None,
            data_completeness_score=calculate_completeness_score(merged),
            confidence_level=calculate_confidence_level(factors, merged),
            missing_data_fields=missing_fields(merged),
            data_quality_notes=data_quality_notes(merged, hc, ca),
            region_code=patient.region_code if patient else None,
            region_name=patient.region_name if patient else None,
        )
        return PatientNeedsProfile(**profile_fields)

    def _algorithm_scores(
        self, assessment: Assessment | None, merged: dict[str, Any], referral: Referral | None
    ) -> dict[str, Any]:
        if assessment is None:
            return default_algorithm_scores(merged)

        raw_items = dict(assessment.raw_items)
        if assessment.chess is not None:
            raw_items.setdefault("chess", assessment.chess)
        context = {
            "has_recent_hospital_stay": bool(merged.get("has_recent_hospital_stay")),
            "has_recent_er_visit": bool(merged.get("has_recent_er_visit")),
            "is_palliative": bool(
                referral and referral.referral_type and "palliative" in referral.referral_type.lower()
            ),
        }
        try:
            scores = self.algorithm_evaluator.evaluate_all_algorithms(raw_items, context)
        except Exception as e:
            logger.warning("Algorithm evaluation failed, using defaults: %s", e)
            return default_algorithm_scores(merged)

        return {
            "self_reliance_index": scores.get("self_reliance_index", False),
            "assessment_urgency_score": scores.get("assessment_urgency", 1),
            "service_urgency_score": scores.get("service_urgency", 1),
            "rehabilitation_score": scores.get("rehabilitation", 1),
            "personal_support_score": scores.get("personal_support", 1),
            "distressed_mood_score": scores.get("distressed_mood", 0),
            "pain_score": scores.get("pain", 0),
            "chess_ca_score": scores.get("chess_ca", 0),
        }
