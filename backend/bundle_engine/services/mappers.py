"""Assessment mappers: one per source instrument.

Each mapper turns one assessment's raw items into a partial set of
PatientNeedsProfile fields (keyed by profile field name). Raw item names vary
between exports, so most values accept a descriptive key and a section code
(e.g. ``locomotion`` or ``G2a``); the first non-null key wins.
"""

from typing import Any, Protocol

from bundle_engine.schemas.assessment import Assessment
from bundle_engine.schemas.needs_cluster import NeedsCluster
from bundle_engine.utils.numbers import round_half_up, to_int


class AssessmentMapper(Protocol):
    """Translate one assessment type into profile fields."""

    assessment_type: str
    confidence_weight: float
    supports_rug_classification: bool

    def map_to_profile_fields(self, assessment: Assessment) -> dict[str, Any]: ...

    def populatable_fields(self) -> list[str]: ...


# ── Shared helpers ──


def first_present(raw_items: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Value of the first key that is present and not None."""
    for key in keys:
        value = raw_items.get(key)
        if value is not None:
            return value
    return default


def normalize_scale(value: Any, low: int, high: int) -> int:
    """Clamp a raw value to [low, high]; None maps to low."""
    if value is None:
        return low
    return max(low, min(high, to_int(value)))


def _item(raw_items: dict[str, Any], *keys: str) -> int:
    return to_int(first_present(raw_items, *keys, default=0))


# RUG-III/HC group -> case-mix category
RUG_GROUP_CATEGORIES = {
    "RB0": "Special Rehabilitation",
    "RA2": "Special Rehabilitation",
    "RA1": "Special Rehabilitation",
    "SE3": "Extensive Services",
    "SE2": "Extensive Services",
    "SE1": "Extensive Services",
    "SSB": "Special Care",
    "SSA": "Special Care",
    "CC0": "Clinically Complex",
    "CB0": "Clinically Complex",
    "CA2": "Clinically Complex",
    "CA1": "Clinically Complex",
    "IB0": "Impaired Cognition",
    "IA2": "Impaired Cognition",
    "IA1": "Impaired Cognition",
    "BB0": "Behaviour Problems",
    "BA2": "Behaviour Problems",
    "BA1": "Behaviour Problems",
    "PD0": "Reduced Physical Function",
    "PC0": "Reduced Physical Function",
    "PB0": "Reduced Physical Function",
    "PA2": "Reduced Physical Function",
    "PA1": "Reduced Physical Function",
}

# Two-letter prefix fallback for groups outside the table above
RUG_CATEGORY_PREFIXES = {
    "SR": "Special Rehabilitation",
    "ES": "Extensive Services",
    "SC": "Special Care",
    "CC": "Clinically Complex",
    "IB": "Impaired Cognition",
    "IA": "Impaired Cognition",
    "BB": "Behaviour Problems",
    "BA": "Behaviour Problems",
    "PA": "Reduced Physical Function",
    "PB": "Reduced Physical Function",
    "PC": "Reduced Physical Function",
    "PD": "Reduced Physical Function",
    "PE": "Reduced Physical Function",
}


def rug_category_for(rug_group: str | None) -> str | None:
    if not rug_group:
        return None
    group = rug_group.upper()
    if group in RUG_GROUP_CATEGORIES:
        return RUG_GROUP_CATEGORIES[group]
    return RUG_CATEGORY_PREFIXES.get(group[:2], "Unknown")


# ── Home care (full assessment) ──


class HcAssessmentMapper:
    """Full home-care assessment. Highest confidence; carries RUG classification."""

    assessment_type = "hc"
    confidence_weight = 1.0
    supports_rug_classification = True

    def map_to_profile_fields(self, assessment: Assessment) -> dict[str, Any]:
        raw = assessment.raw_items
        rug_group = self.rug_group(assessment)
        falls_last_90 = _item(raw, "falls_last_90", "J1i")

        return {
            "has_full_hc_assessment": True,
            "primary_assessment_type": "hc",
            "primary_assessment_date": assessment.assessment_date,
            # Case classification
            "rug_group": rug_group,
            "rug_category": self.rug_category(assessment, rug_group),
            "rug_numeric_rank": self.rug_numeric_rank(assessment),
            # Functional
            "adl_support_level": normalize_scale(
                first_present(
                    raw, "adl_hierarchy", "adl_h", "ADL_HIERARCHY", default=assessment.adl_hierarchy
                ),
                0,
                6,
            ),
            "iadl_support_level": normalize_scale(
                first_present(raw, "iadl_capacity", "iadl_summary_score", "IADL_CAPACITY"), 0, 6
            ),
            "mobility_complexity": normalize_scale(
                max(_item(raw, "locomotion", "G2a"), _item(raw, "transfer", "G1a")), 0, 6
            ),
            "specific_adl_needs": self._specific_adl_needs(raw),
            # Cognitive and behavioural
            "cognitive_complexity": normalize_scale(
                first_present(raw, "cps", "CPS", "cognitive_performance_scale", default=assessment.cps),
                0,
                6,
            ),
            "behavioural_complexity": self._behavioural_complexity(raw),
            "has_wandering_risk": _item(raw, "wandering", "E4") > 0,
            "has_aggression_risk": (
                _item(raw, "verbal_abuse", "E1a") > 1 or _item(raw, "physical_abuse", "E1b") > 0
            ),
            "behavioural_flags": self._behavioural_flags(raw),
            # Clinical risk
            "falls_risk_level": self._falls_risk_level(raw),
            "skin_integrity_risk": self._skin_integrity_risk(raw),
            "pain_management_need": normalize_scale(first_present(raw, "pain_scale", "J2a", default=0), 0, 3),
            "continence_support": max(
                _item(raw, "bladder_continence", "H1a"), _item(raw, "bowel_continence", "H2a")
            ),
            "health_instability": normalize_scale(
                first_present(raw, "chess", "CHESS", "chess_score", default=assessment.chess),
                0,
                5,
            ),
            "clinical_risk_flags": self._clinical_risk_flags(raw),
            "has_recent_fall": falls_last_90 > 0,
            # Treatment
            "requires_extensive_services": any(
                _item(raw, key) > 0
                for key in ("iv_therapy", "tracheostomy", "ventilator", "dialysis", "radiation")
            ),
            "extensive_services": [
                key
                for key in ("iv_therapy", "tracheostomy", "ventilator", "wound_care", "oxygen_therapy")
                if _item(raw, key) > 0
            ],
            "weekly_therapy_minutes": (
                _item(raw, "pt_minutes", "P1ba")
                + _item(raw, "ot_minutes", "P1bb")
                + _item(raw, "slp_minutes", "P1bc")
            ),
            # Support
            "caregiver_availability_score": self._caregiver_availability(raw),
            "caregiver_stress_level": normalize_scale(
                first_present(raw, "caregiver_distress", "G4", default=0), 0, 4
            ),
            "lives_alone": _item(raw, "lives_alone", "A5") > 0,
            "caregiver_requires_relief": _item(raw, "caregiver_distress", "G4") >= 3,
        }

    def rug_group(self, assessment: Assessment) -> str | None:
        if assessment.rug_classification and assessment.rug_classification.rug_group:
            return assessment.rug_classification.rug_group
        return assessment.raw_items.get("rug_group")

    def rug_category(self, assessment: Assessment, rug_group: str | None) -> str | None:
        classification = assessment.rug_classification
        if classification and classification.rug_category:
            return classification.rug_category
        return rug_category_for(rug_group)

    def rug_numeric_rank(self, assessment: Assessment) -> int | None:
        classification = assessment.rug_classification
        if classification and classification.numeric_rank is not None:
            return classification.numeric_rank
        rank = assessment.raw_items.get("rug_numeric_rank")
        return to_int(rank) if rank is not None else None

    def _behavioural_complexity(self, raw: dict[str, Any]) -> int:
        items = [
            _item(raw, "verbal_abuse", "E1a"),
            _item(raw, "physical_abuse", "E1b"),
            _item(raw, "resists_care", "E1c"),
            _item(raw, "wandering", "E4"),
        ]
        return min(sum(1 for value in items if value > 0), 4)

    def _falls_risk_level(self, raw: dict[str, Any]) -> int:
        fall_history = _item(raw, "fall_history", "J1h")
        falls_last_90 = _item(raw, "falls_last_90", "J1i")
        if falls_last_90 > 1:
            return 2
        if fall_history > 0 or falls_last_90 > 0:
            return 1
        return 0

    def _specific_adl_needs(self, raw: dict[str, Any]) -> list[str]:
        checks = (
            ("bathing", ("bathing", "G1l")),
            ("dressing", ("dressing", "G1e")),
            ("eating", ("eating", "G1h")),
            ("toileting", ("toilet_use", "G1i")),
            ("transfers", ("transfer", "G1a")),
        )
        return [need for need, keys in checks if _item(raw, *keys) >= 3]

    def _behavioural_flags(self, raw: dict[str, Any]) -> list[str]:
        checks = (
            ("verbal_abuse", "verbal_aggression"),
            ("physical_abuse", "physical_aggression"),
            ("resists_care", "resists_care"),
            ("wandering", "wandering"),
            ("socially_inappropriate", "socially_inappropriate"),
        )
        return [flag for key, flag in checks if _item(raw, key) > 0]

    def _skin_integrity_risk(self, raw: dict[str, Any]) -> int:
        pressure_ulcer = _item(raw, "pressure_ulcer", "M2a")
        skin_tears = _item(raw, "skin_tears", "M5")
        if pressure_ulcer >= 2:
            return 2
        if pressure_ulcer > 0 or skin_tears > 0:
            return 1
        return 0

    def _clinical_risk_flags(self, raw: dict[str, Any]) -> list[str]:
        checks = (
            ("pressure_ulcer", "pressure_ulcer"),
            ("falls_last_90", "recent_fall"),
            ("dehydration_risk", "dehydration_risk"),
            ("weight_loss", "weight_loss"),
        )
        return [flag for key, flag in checks if _item(raw, key) > 0]

    def _caregiver_availability(self, raw: dict[str, Any]) -> int:
        has_helper = _item(raw, "informal_helper", "G3") > 0
        lives_with = _item(raw, "helper_lives_with") > 0
        if has_helper and lives_with:
            return 5
        if has_helper:
            return 3
        return 0

    def populatable_fields(self) -> list[str]:
        return [
            "has_full_hc_assessment",
            "primary_assessment_type",
            "primary_assessment_date",
            "rug_group",
            "rug_category",
            "rug_numeric_rank",
            "adl_support_level",
            "iadl_support_level",
            "mobility_complexity",
            "specific_adl_needs",
            "cognitive_complexity",
            "behavioural_complexity",
            "has_wandering_risk",
            "has_aggression_risk",
            "behavioural_flags",
            "falls_risk_level",
            "skin_integrity_risk",
            "pain_management_need",
            "continence_support",
            "health_instability",
            "clinical_risk_flags",
            "has_recent_fall",
            "requires_extensive_services",
            "extensive_services",
            "weekly_therapy_minutes",
            "caregiver_availability_score",
            "caregiver_stress_level",
            "lives_alone",
            "caregiver_requires_relief",
        ]


# ── Contact assessment (intake screen) ──


class CaAssessmentMapper:
    """Contact assessment. No RUG classification; derives a NeedsCluster instead."""

    assessment_type = "ca"
    confidence_weight = 0.7
    supports_rug_classification = False

    def map_to_profile_fields(self, assessment: Assessment) -> dict[str, Any]:
        raw = assessment.raw_items
        return {
            "has_ca_assessment": True,
            "primary_assessment_type": "ca",
            "primary_assessment_date": assessment.assessment_date,
            "needs_cluster": self.derive_needs_cluster(raw).value,
            "adl_support_level": self.adl_support_level(raw),
            "iadl_support_level": self.iadl_support_level(raw),
            "mobility_complexity": normalize_scale(
                max(
                    _item(raw, "ca_locomotion", "locomotion_capacity"),
                    _item(raw, "ca_stairs", "stair_capacity"),
                ),
                0,
                6,
            ),
            "specific_adl_needs": self._specific_adl_needs(raw),
            "cognitive_complexity": self.cognitive_complexity(raw),
            "behavioural_complexity": self.behavioural_complexity(raw),
            "falls_risk_level": self._falls_risk_level(raw),
            "health_instability": self.health_instability(raw),
            "has_recent_hospital_stay": _item(raw, "ca_recent_hospital") > 0,
            "lives_alone": _item(raw, "ca_lives_alone", "lives_alone") > 0,
            "caregiver_availability_score": (
                3 if _item(raw, "ca_caregiver_present", "informal_support") > 0 else 0
            ),
        }

    def derive_needs_cluster(self, raw: dict[str, Any]) -> NeedsCluster:
        """Priority-ordered cluster assignment; the first matching rule wins."""
        adl = self.adl_support_level(raw)
        cognitive = self.cognitive_complexity(raw)
        health = self.health_instability(raw)
        behavioural = self.behavioural_complexity(raw)

        if adl >= 4 and cognitive >= 3:
            return NeedsCluster.HIGH_ADL_COGNITIVE
        if adl >= 4:
            return NeedsCluster.HIGH_ADL
        if cognitive >= 3:
            return NeedsCluster.COGNITIVE_COMPLEX
        if behavioural >= 3:
            return NeedsCluster.MH_COMPLEX
        if health >= 3:
            return NeedsCluster.MEDICAL_COMPLEX
        if adl >= 2:
            return NeedsCluster.MODERATE_ADL
        if adl >= 1:
            return NeedsCluster.LOW_ADL
        return NeedsCluster.GENERAL

    def adl_support_level(self, raw: dict[str, Any]) -> int:
        if raw.get("adl_capacity_score") is not None:
            return normalize_scale(raw["adl_capacity_score"], 0, 6)
        total = (
            _item(raw, "ca_bathing", "bathing_capacity")
            + _item(raw, "ca_dressing", "dressing_capacity")
            + _item(raw, "ca_toileting", "toilet_capacity")
            + _item(raw, "ca_locomotion", "locomotion_capacity")
            + _item(raw, "ca_eating", "eating_capacity")
        )
        # Five items scored 0-4 squeezed onto the 0-6 scale
        return min(6, round_half_up(total / 3))

    def iadl_support_level(self, raw: dict[str, Any]) -> int:
        if raw.get("iadl_capacity_score") is not None:
            return normalize_scale(raw["iadl_capacity_score"], 0, 6)
        total = (
            _item(raw, "ca_meals", "meal_prep_capacity")
            + _item(raw, "ca_housework", "housework_capacity")
            + _item(raw, "ca_finances", "finances_capacity")
            + _item(raw, "ca_medications", "medication_capacity")
            + _item(raw, "ca_transportation", "transport_capacity")
        )
        return min(6, round_half_up(total / 3))

    def cognitive_complexity(self, raw: dict[str, Any]) -> int:
        total = (
            _item(raw, "ca_short_term_memory", "stm_problem")
            + _item(raw, "ca_decision_making", "decision_making")
            + _item(raw, "ca_orientation")
        )
        return min(6, total)

    def behavioural_complexity(self, raw: dict[str, Any]) -> int:
        present = sum(
            1 for key in ("ca_aggression", "ca_wandering", "ca_resists_care") if _item(raw, key) > 0
        )
        return min(4, present)

    def health_instability(self, raw: dict[str, Any]) -> int:
        score = 0
        if _item(raw, "ca_acute_change", "acute_change") > 0:
            score += 2
        if _item(raw, "ca_unstable_condition") > 0:
            score += 2
        if _item(raw, "ca_recent_hospital") > 0:
            score += 1
        return min(5, score)

    def _falls_risk_level(self, raw: dict[str, Any]) -> int:
        fall_history = _item(raw, "ca_fall_history", "fall_any")
        unsteady = _item(raw, "ca_unsteady")
        if fall_history > 1 or unsteady > 1:
            return 2
        if fall_history > 0 or unsteady > 0:
            return 1
        return 0

    def _specific_adl_needs(self, raw: dict[str, Any]) -> list[str]:
        checks = (
            ("ca_bathing", "bathing"),
            ("ca_dressing", "dressing"),
            ("ca_toileting", "toileting"),
            ("ca_locomotion", "mobility"),
        )
        return [need for key, need in checks if _item(raw, key) >= 2]

    def populatable_fields(self) -> list[str]:
        return [
            "has_ca_assessment",
            "primary_assessment_type",
            "primary_assessment_date",
            "needs_cluster",
            "adl_support_level",
            "iadl_support_level",
            "mobility_complexity",
            "specific_adl_needs",
            "cognitive_complexity",
            "behavioural_complexity",
            "falls_risk_level",
            "health_instability",
            "has_recent_hospital_stay",
            "lives_alone",
            "caregiver_availability_score",
        ]


# ── Behavioural / mental health screener ──

# Section B disordered-thought items: 0 absent, 1 present, 2 exhibited in last 24h
SECTION_B_ITEMS = (
    "bmhs_irritability",
    "bmhs_hallucinations",
    "bmhs_command_hallucinations",
    "bmhs_delusions",
    "bmhs_hyperarousal",
    "bmhs_pressured_speech",
    "bmhs_abnormal_thought",
    "bmhs_inappropriate_behaviour",
    "bmhs_verbal_abuse",
    "bmhs_intoxication",
)

_VIOLENCE_ITEMS = ("bmhs_violent_ideation", "bmhs_intimidation", "bmhs_violence_to_others")

_SELF_HARM_ITEMS = (
    "bmhs_self_injury_attempt",
    "bmhs_self_injury_considered",
    "bmhs_suicide_plan",
    "bmhs_others_concern_self_harm",
)

_INSIGHT_LEVELS = {0: "full", 1: "limited", 2: "none"}


class BmhsAssessmentMapper:
    """Brief mental health screener. Overlays its own behavioural and MH fields."""

    assessment_type = "bmhs"
    confidence_weight = 0.5
    supports_rug_classification = False

    def map_to_profile_fields(self, assessment: Assessment) -> dict[str, Any]:
        raw = assessment.raw_items
        self_harm = self.self_harm_risk_level(raw)
        violence = self.violence_risk_level(raw)

        return {
            "has_bmhs_assessment": True,
            "mental_health_complexity": max(
                self.mental_health_complexity(raw), self.summary_scale_complexity(raw)
            ),
            "behavioural_complexity": self.behavioural_complexity(raw),
            "disordered_thought_score": self.disordered_thought_score(raw),
            "risk_of_harm_score": self.risk_of_harm_score(raw),
            "self_harm_risk_level": self_harm,
            "violence_risk_level": violence,
            "insight_level": self.insight_level(raw),
            "has_home_environment_risk": _item(raw, "bmhs_squalid_home") == 1,
            "requires_psychiatric_consult": self.requires_psychiatric_consult(raw),
            "requires_behavioural_support": self.behavioural_complexity(raw) >= 2,
            "requires_crisis_intervention": self_harm >= 2 or violence >= 2,
        }

    def disordered_thought_score(self, raw: dict[str, Any]) -> int:
        score = 0
        for field in SECTION_B_ITEMS:
            value = _item(raw, field)
            if value == 2:
                score += 2
            elif value == 1:
                score += 1
        return score

    def risk_of_harm_score(self, raw: dict[str, Any]) -> int:
        score = sum(_item(raw, field) for field in _VIOLENCE_ITEMS)
        score += sum(1 for field in _SELF_HARM_ITEMS if _item(raw, field) > 0)
        if _item(raw, "bmhs_weapon_history") == 1:
            score += 1
        return score

    def self_harm_risk_level(self, raw: dict[str, Any]) -> int:
        """0 none, 1 moderate, 2 high, 3 critical."""
        attempt = _item(raw, "bmhs_self_injury_attempt") == 1
        considered = _item(raw, "bmhs_self_injury_considered") == 1
        has_plan = _item(raw, "bmhs_suicide_plan") == 1
        others_concerned = _item(raw, "bmhs_others_concern_self_harm") == 1
        command = self._has_symptom(raw, "bmhs_command_hallucinations")

        if attempt or (has_plan and command):
            return 3
        if has_plan or (considered and (others_concerned or command)):
            return 2
        if considered or others_concerned:
            return 1
        return 0

    def violence_risk_level(self, raw: dict[str, Any]) -> int:
        """0 none, 1 moderate, 2 high, 3 critical."""
        violence = _item(raw, "bmhs_violence_to_others")
        intimidation = _item(raw, "bmhs_intimidation")
        ideation = _item(raw, "bmhs_violent_ideation")
        weapon = _item(raw, "bmhs_weapon_history") == 1
        command = self._has_symptom(raw, "bmhs_command_hallucinations")

        if violence == 2:
            return 3
        if violence == 1 or (intimidation == 2 and (weapon or command)):
            return 2
        if ideation >= 1 or intimidation >= 1:
            return 1
        return 0

    def mental_health_complexity(self, raw: dict[str, Any]) -> int:
        complexity = 0
        if self._has_symptom(raw, "bmhs_command_hallucinations"):
            complexity += 2
        if self._has_symptom(raw, "bmhs_hallucinations"):
            complexity += 1
        if self._has_symptom(raw, "bmhs_delusions"):
            complexity += 1
        if self.insight_level(raw) == "none":
            complexity += 1
        if self._has_symptom(raw, "bmhs_abnormal_thought"):
            complexity += 1
        return min(5, complexity)

    def summary_scale_complexity(self, raw: dict[str, Any]) -> int:
        """Complexity from summary scales some screeners export instead of items."""
        score = 0
        if _item(raw, "depression_rating") >= 3:
            score += 1
        if _item(raw, "anxiety_scale") >= 3:
            score += 1
        if _item(raw, "psychosis_indicators") > 0:
            score += 1
        return min(3, score)

    def behavioural_complexity(self, raw: dict[str, Any]) -> int:
        complexity = self.violence_risk_level(raw)
        for field in ("bmhs_inappropriate_behaviour", "bmhs_verbal_abuse", "bmhs_hyperarousal"):
            if self._has_symptom(raw, field):
                complexity += 1
        return min(5, complexity)

    def insight_level(self, raw: dict[str, Any]) -> str:
        # Absent items read as 0, which is "full" insight on this scale
        return _INSIGHT_LEVELS.get(_item(raw, "bmhs_insight"), "unknown")

    def requires_psychiatric_consult(self, raw: dict[str, Any]) -> bool:
        if self._has_symptom(raw, "bmhs_command_hallucinations"):
            return True
        if self.self_harm_risk_level(raw) >= 2:
            return True
        thought = self.disordered_thought_score(raw)
        if thought >= 8:
            return True
        return self.insight_level(raw) == "none" and thought >= 4

    def _has_symptom(self, raw: dict[str, Any], field: str) -> bool:
        return _item(raw, field) >= 1

    def populatable_fields(self) -> list[str]:
        return [
            "has_bmhs_assessment",
            "mental_health_complexity",
            "behavioural_complexity",
            "disordered_thought_score",
            "risk_of_harm_score",
            "self_harm_risk_level",
            "violence_risk_level",
            "insight_level",
            "has_home_environment_risk",
            "requires_psychiatric_consult",
            "requires_behavioural_support",
            "requires_crisis_intervention",
        ]
