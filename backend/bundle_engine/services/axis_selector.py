"""Scenario axis selection policy.

Every axis other than BALANCED earns an additive score from independent,
threshold-gated contributions. An axis applies once its score reaches
APPLICABILITY_SCORE. BALANCED always applies with a fixed score, so there is
always at least one candidate. All thresholds live in THRESHOLDS.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from types import MappingProxyType

from bundle_engine.schemas.axis import ScenarioAxis
from bundle_engine.schemas.profile import PatientNeedsProfile

APPLICABILITY_SCORE = 40
BALANCED_SCORE = 50
DEFAULT_MAX_AXES = 4

THRESHOLDS = MappingProxyType(
    {
        # Recovery / rehab
        "rehab_score_minimum": 40,
        "weekly_therapy_minutes_minimum": 30,
        # Safety / stability
        "falls_risk_high": 2,
        "health_instability_high": 3,
        "cognitive_complexity_safety": 3,
        # Tech-enabled
        "tech_readiness_minimum": 2,
        "health_instability_stable": 2,
        "cognitive_complexity_tech_penalty": 4,
        # Caregiver relief
        "caregiver_stress_high": 3,
        "caregiver_availability_with_stress": 2,
        "caregiver_burden_cognitive": 3,
        "caregiver_burden_behavioural": 2,
        # Medical intensive
        "health_instability_medical": 4,
        "skin_integrity_risk": 2,
        "pain_management_need": 2,
        "active_conditions_multiple": 3,
        # Cognitive support
        "cognitive_complexity_high": 3,
        "behavioural_complexity_high": 3,
        "mental_health_complexity": 2,
        # Community integration
        "social_support_low": 2,
        "iadl_support_level_minimum": 2,
        "cognitive_complexity_participation": 2,
    }
)

RECOVERY_EPISODES = ("post_acute", "acute_exacerbation")


@dataclass(slots=True)
class AxisEvaluation:
    axis: ScenarioAxis
    score: int = 0
    reasons: list[str] = field(default_factory=list)

    @property
    def applicable(self) -> bool:
        return self.score >= APPLICABILITY_SCORE

    def add(self, points: int, reason: str | None = None) -> None:
        self.score += points
        if reason:
            self.reasons.append(reason)

    def to_dict(self) -> dict:
        return {
            "axis": self.axis.value,
            "score": self.score,
            "reasons": list(self.reasons),
            "applicable": self.applicable,
        }


class ScenarioAxisSelector:
    """Rank the axes that apply to a needs profile."""

    def applicable_axes(
        self, profile: PatientNeedsProfile, max_axes: int = DEFAULT_MAX_AXES
    ) -> list[ScenarioAxis]:
        """Applicable axes, highest score first, at most ``max_axes``.

        Ties keep evaluation order (BALANCED first, then the order of
        the evaluators below).
        """
        candidates = [e for e in self._evaluate(profile) if e.applicable]
        candidates.sort(key=lambda e: e.score, reverse=True)
        return [e.axis for e in candidates[:max_axes]]

    def detailed_evaluation(self, profile: PatientNeedsProfile) -> dict[ScenarioAxis, AxisEvaluation]:
        """Score, reasons and applicability for every axis, applicable or not."""
        return {e.axis: e for e in self._evaluate(profile)}

    def is_axis_applicable(self, profile: PatientNeedsProfile, axis: ScenarioAxis) -> bool:
        return axis in self.applicable_axes(profile, len(ScenarioAxis))

    @staticmethod
    def threshold(name: str) -> int | None:
        return THRESHOLDS.get(name)

    @staticmethod
    def all_thresholds() -> dict[str, int]:
        return dict(THRESHOLDS)

    # ── Evaluators ──

    def _evaluate(self, profile: PatientNeedsProfile) -> list[AxisEvaluation]:
        balanced = AxisEvaluation(ScenarioAxis.BALANCED, BALANCED_SCORE, ["Default balanced option"])
        evaluators: tuple[Callable[[PatientNeedsProfile], AxisEvaluation], ...] = (
            self._recovery_rehab,
            self._safety_stability,
            self._tech_enabled,
            self._caregiver_relief,
            self._medical_intensive,
            self._cognitive_support,
            self._community_integrated,
        )
        return [balanced, *(evaluate(profile) for evaluate in evaluators)]

    def _recovery_rehab(self, p: PatientNeedsProfile) -> AxisEvaluation:
        e = AxisEvaluation(ScenarioAxis.RECOVERY_REHAB)
        if p.rehab_potential_score >= THRESHOLDS["rehab_score_minimum"]:
            e.add(40, f"Rehab potential score: {p.rehab_potential_score}")
        if p.weekly_therapy_minutes >= THRESHOLDS["weekly_therapy_minutes_minimum"]:
            e.add(30, f"Therapy minutes/week: {p.weekly_therapy_minutes}")
        if p.episode_type in RECOVERY_EPISODES:
            e.add(20, f"Episode type: {p.episode_type}")
        if p.has_rehab_potential:
            e.add(10, "Has documented rehab potential")
        return e

    def _safety_stability(self, p: PatientNeedsProfile) -> AxisEvaluation:
        e = AxisEvaluation(ScenarioAxis.SAFETY_STABILITY)
        if p.falls_risk_level >= THRESHOLDS["falls_risk_high"]:
            e.add(35, f"High falls risk level: {p.falls_risk_level}")
        if p.health_instability >= THRESHOLDS["health_instability_high"]:
            e.add(30, f"Health instability (CHESS): {p.health_instability}")
        if p.cognitive_complexity >= THRESHOLDS["cognitive_complexity_safety"]:
            e.add(20, f"Cognitive complexity: {p.cognitive_complexity}")
        if p.lives_alone:
            e.add(15, "Lives alone")
        if p.has_wandering_risk or p.has_aggression_risk:
            e.add(10, "Behavioural safety risk")
        return e

    def _tech_enabled(self, p: PatientNeedsProfile) -> AxisEvaluation:
        e = AxisEvaluation(ScenarioAxis.TECH_ENABLED)
        if p.technology_readiness >= THRESHOLDS["tech_readiness_minimum"]:
            e.add(35, f"Technology readiness: {p.technology_readiness}")
        if p.has_internet:
            e.add(25, "Has reliable internet")
        if p.health_instability <= THRESHOLDS["health_instability_stable"]:
            e.add(15, "Stable health status")
        if p.has_pers:
            e.add(10, "Has PERS installed")
        if p.suitable_for_rpm:
            e.add(15, "Suitable for RPM")
        if p.is_rural:
            e.add(10, "Rural location benefits from remote support")
        # May struggle with devices
        if p.cognitive_complexity >= THRESHOLDS["cognitive_complexity_tech_penalty"]:
            e.add(-20)
        return e

    def _caregiver_relief(self, p: PatientNeedsProfile) -> AxisEvaluation:
        e = AxisEvaluation(ScenarioAxis.CAREGIVER_RELIEF)
        if p.caregiver_stress_level >= THRESHOLDS["caregiver_stress_high"]:
            e.add(40, f"High caregiver stress: {p.caregiver_stress_level}")
        if p.caregiver_requires_relief:
            e.add(30, "Caregiver requires relief")
        if p.caregiver_availability_score >= THRESHOLDS["caregiver_availability_with_stress"]:
            e.add(15, "Caregiver is engaged and available")
        if p.cognitive_complexity >= THRESHOLDS["caregiver_burden_cognitive"]:
            e.add(10, "Cognitive complexity increases caregiver burden")
        if p.behavioural_complexity >= THRESHOLDS["caregiver_burden_behavioural"]:
            e.add(10, "Behavioural complexity increases caregiver burden")
        return e

    def _medical_intensive(self, p: PatientNeedsProfile) -> AxisEvaluation:
        e = AxisEvaluation(ScenarioAxis.MEDICAL_INTENSIVE)
        if p.requires_extensive_services:
            e.add(50, "Requires extensive services")
            if p.extensive_services:
                e.reasons.append("Services: " + ", ".join(p.extensive_services))
        if p.health_instability >= THRESHOLDS["health_instability_medical"]:
            e.add(30, f"Very high health instability: {p.health_instability}")
        if p.skin_integrity_risk >= THRESHOLDS["skin_integrity_risk"]:
            e.add(15, f"Skin integrity risk: {p.skin_integrity_risk}")
        if p.pain_management_need >= THRESHOLDS["pain_management_need"]:
            e.add(10, f"Pain management need: {p.pain_management_need}")
        if len(p.active_conditions or []) >= THRESHOLDS["active_conditions_multiple"]:
            e.add(10, "Multiple active conditions")
        return e

    def _cognitive_support(self, p: PatientNeedsProfile) -> AxisEvaluation:
        e = AxisEvaluation(ScenarioAxis.COGNITIVE_SUPPORT)
        if p.cognitive_complexity >= THRESHOLDS["cognitive_complexity_high"]:
            e.add(40, f"Cognitive complexity: {p.cognitive_complexity}")
        if p.behavioural_complexity >= THRESHOLDS["behavioural_complexity_high"]:
            e.add(25, f"Behavioural complexity: {p.behavioural_complexity}")
        if p.mental_health_complexity >= THRESHOLDS["mental_health_complexity"]:
            e.add(15, f"Mental health complexity: {p.mental_health_complexity}")
        if p.has_wandering_risk:
            e.add(15, "Wandering risk")
        if p.has_aggression_risk:
            e.add(10, "Aggression risk")
        if p.behavioural_flags:
            e.add(10, "Documented behavioural concerns")
        return e

    def _community_integrated(self, p: PatientNeedsProfile) -> AxisEvaluation:
        e = AxisEvaluation(ScenarioAxis.COMMUNITY_INTEGRATED)
        if p.social_support_score <= THRESHOLDS["social_support_low"]:
            e.add(30, f"Low social support: {p.social_support_score}")
        if p.iadl_support_level >= THRESHOLDS["iadl_support_level_minimum"]:
            e.add(25, f"IADL support level: {p.iadl_support_level}")
        if p.lives_alone:
            e.add(15, "Lives alone - may benefit from social connection")
        if p.cognitive_complexity <= THRESHOLDS["cognitive_complexity_participation"]:
            e.add(15, "Cognitive capacity for program participation")
        if p.health_instability <= THRESHOLDS["health_instability_stable"]:
            e.add(10, "Stable for community participation")
        return e
