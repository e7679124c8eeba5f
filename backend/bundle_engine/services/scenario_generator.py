"""Scenario generation: turn one needs profile into several costed care bundles.

Each applicable axis reweights the same base service list (from a case-mix
template, or from profile-driven rules when no template matches). Every
bundle is cost-annotated, safety-validated and ordered; the first one is
marked recommended.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

from bundle_engine.repositories.templates import (
    FALLBACK_RATE,
    CareBundleTemplate,
    InMemoryServiceTemplateStore,
    ServiceTemplateStore,
    ServiceType,
)
from bundle_engine.schemas.axis import PriorityLevel, ScenarioAxis
from bundle_engine.schemas.needs_cluster import NeedsCluster
from bundle_engine.schemas.profile import PatientNeedsProfile
from bundle_engine.schemas.scenario import ScenarioBundle, ScenarioServiceLine, weekly_visits
from bundle_engine.services.axis_selector import ScenarioAxisSelector
from bundle_engine.services.cost_annotation import CostAnnotationService
from bundle_engine.utils.numbers import round_half_up

logger = logging.getLogger(__name__)

DEFAULT_MIN_SCENARIOS = 3
DEFAULT_MAX_SCENARIOS = 5

# Tried in order when the selector leaves fewer than min_scenarios
FILL_IN_AXES = (
    ScenarioAxis.SAFETY_STABILITY,
    ScenarioAxis.TECH_ENABLED,
    ScenarioAxis.CAREGIVER_RELIEF,
)

SECONDARY_AXIS_WEIGHT = 0.5

FALLS_PREVENTION_CATEGORIES = frozenset({"nursing", "therapy", "pt", "ot", "remote_monitoring"})
SUPERVISION_CATEGORIES = frozenset({"psw", "behavioural_psw", "activation", "day_program"})

MIN_WEEKLY_HOURS_HIGH_ADL = 10

_KEY_BENEFITS = {
    ScenarioAxis.RECOVERY_REHAB: [
        "Intensive therapy to accelerate recovery",
        "Goal-focused approach to restore function",
        "Support for returning to independence",
    ],
    ScenarioAxis.SAFETY_STABILITY: [
        "Daily monitoring for early problem detection",
        "Consistent support to prevent falls and crises",
        "Peace of mind for patient and family",
    ],
    ScenarioAxis.TECH_ENABLED: [
        "Continuous monitoring without disruption",
        "Fewer in-person visits while maintaining oversight",
        "Quick response to changes in condition",
    ],
    ScenarioAxis.CAREGIVER_RELIEF: [
        "Scheduled respite for family caregivers",
        "Professional support to sustain caregiving",
        "Reduced caregiver burnout risk",
    ],
}

_DEFAULT_BENEFITS = [
    "Comprehensive coverage across all care domains",
    "Balanced approach to patient needs",
    "Flexibility to adjust as needs change",
]

_CATEGORY_RATIONALES = {
    "nursing": "Clinical monitoring and care coordination",
    "psw": "Personal care and daily living support",
    "therapy": "Functional restoration and mobility support",
    "respite": "Caregiver support and sustainability",
    "remote_monitoring": "Continuous health monitoring",
}


@dataclass(frozen=True, slots=True)
class BaseService:
    """A service before it becomes a costed line; axis modifiers rewrite it."""

    service_type: ServiceType
    frequency_count: int
    duration_minutes: int
    cost_per_visit: float
    is_required: bool = False
    priority_level: PriorityLevel = "recommended"
    frequency_period: str = "week"

    @property
    def weekly_cost(self) -> float:
        return weekly_visits(self.frequency_count, self.frequency_period) * self.cost_per_visit


def template_flags(profile: PatientNeedsProfile) -> dict[str, bool]:
    """Condition flags used to include conditional template services."""
    return {
        "high_adl": profile.adl_support_level >= 4,
        "moderate_adl": 2 <= profile.adl_support_level < 4,
        "cognitive_impairment": profile.cognitive_complexity >= 3,
        "behavioural": profile.behavioural_complexity >= 2,
        "falls_risk": profile.falls_risk_level >= 2,
        "health_instability": profile.health_instability >= 3,
        "skin_risk": profile.skin_integrity_risk >= 2,
        "rehab_potential": profile.has_rehab_potential,
        "extensive_services": profile.requires_extensive_services,
        "caregiver_stress": profile.caregiver_stress_level >= 3,
        "lives_alone": profile.lives_alone,
        "tech_ready": profile.technology_readiness >= 2,
    }


def apply_axis_modifiers(
    services: list[BaseService], axis: ScenarioAxis, weight: float = 1.0
) -> list[BaseService]:
    """Scale frequencies by the axis's per-category multiplier.

    ``weight`` dampens the multiplier (secondary axes use 0.5). Frequencies
    round half up with a floor of one visit; a "core" modifier makes the
    service core and required.
    """
    modifiers = axis.service_modifiers
    if not modifiers:
        return list(services)

    modified = []
    for service in services:
        modifier = modifiers.get(service.service_type.category)
        if modifier is None:
            modified.append(service)
            continue
        multiplier = 1 + (modifier["multiplier"] - 1) * weight
        changes: dict[str, Any] = {
            "frequency_count": max(1, round_half_up(service.frequency_count * multiplier))
        }
        if modifier["priority"] == "core":
            changes.update(priority_level="core", is_required=True)
        modified.append(replace(service, **changes))
    return modified


class ScenarioGenerator:
    """Generate, validate and compare scenario bundles for a needs profile."""

    def __init__(
        self,
        templates: ServiceTemplateStore | None = None,
        axis_selector: ScenarioAxisSelector | None = None,
        cost_service: CostAnnotationService | None = None,
    ):
        self.templates = templates or InMemoryServiceTemplateStore()
        self.axis_selector = axis_selector or ScenarioAxisSelector()
        self.cost_service = cost_service or CostAnnotationService()

    # ── Generation ──

    def generate_scenarios(
        self,
        profile: PatientNeedsProfile,
        *,
        min_scenarios: int = DEFAULT_MIN_SCENARIOS,
        max_scenarios: int = DEFAULT_MAX_SCENARIOS,
        include_balanced: bool = True,
        reference_cap: float | None = None,
    ) -> list[ScenarioBundle]:
        """Generate between ``min_scenarios`` and ``max_scenarios`` bundles.

        Axis scenarios come first in selector order, then BALANCED, then
        fill-in axes while below the minimum. The first bundle is recommended.

        Raises:
            ValueError: If the bounds are inconsistent.
        """
        if min_scenarios < 1 or max_scenarios < min_scenarios:
            raise ValueError(
                f"Invalid scenario bounds: min={min_scenarios}, max={max_scenarios}"
            )

        template = self.find_base_template(profile)
        axis_limit = max_scenarios - (1 if include_balanced else 0)
        scenarios: list[ScenarioBundle] = []

        for axis in self.axis_selector.applicable_axes(profile, max_scenarios):
            if len(scenarios) >= axis_limit:
                break
            if axis is ScenarioAxis.BALANCED and include_balanced:
                continue
            scenarios.append(self._finalize(profile, axis, template, reference_cap, len(scenarios) + 1))

        if include_balanced:
            scenarios.append(
                self._finalize(profile, ScenarioAxis.BALANCED, template, reference_cap, len(scenarios) + 1)
            )

        used = {s.primary_axis for s in scenarios}
        for axis in FILL_IN_AXES:
            if len(scenarios) >= min_scenarios:
                break
            if axis in used:
                continue
            scenarios.append(self._finalize(profile, axis, template, reference_cap, len(scenarios) + 1))
            used.add(axis)

        if scenarios:
            scenarios[0] = scenarios[0].with_recommended()

        logger.info(
            "Generated %d scenarios for patient %s (template=%s)",
            len(scenarios),
            profile.patient_id,
            template.code if template else None,
        )
        return scenarios

    def generate_single_scenario(
        self,
        profile: PatientNeedsProfile,
        axis: ScenarioAxis,
        secondary_axes: list[ScenarioAxis] | None = None,
        template: CareBundleTemplate | None = None,
    ) -> ScenarioBundle:
        """Build one unannotated bundle for ``axis`` (plus optional secondary axes)."""
        secondary_axes = list(secondary_axes or [])
        if template is None:
            template = self.find_base_template(profile)

        services = apply_axis_modifiers(self.base_services(template, profile), axis)
        for secondary in secondary_axes:
            services = apply_axis_modifiers(services, secondary, SECONDARY_AXIS_WEIGHT)

        lines = self.build_service_lines(services, axis, profile)
        title = " + ".join([axis.label, *(a.label for a in secondary_axes)])

        return ScenarioBundle(
            patient_id=profile.patient_id,
            primary_axis=axis,
            title=title,
            description=axis.description,
            service_lines=lines,
            secondary_axes=secondary_axes,
            subtitle=axis.label,
            icon=axis.emoji,
            trade_offs=axis.trade_offs,
            key_benefits=list(_KEY_BENEFITS.get(axis, _DEFAULT_BENEFITS)),
            patient_goals_supported=list(axis.emphasized_goals),
            risks_addressed=self.risks_addressed(profile),
            source="rule_engine",
            confidence_level=self.determine_confidence(profile, template),
            confidence_notes=self.confidence_notes(profile, template),
            generated_at=datetime.now(timezone.utc),
        )

    def _finalize(
        self,
        profile: PatientNeedsProfile,
        axis: ScenarioAxis,
        template: CareBundleTemplate | None,
        reference_cap: float | None,
        order: int,
    ) -> ScenarioBundle:
        scenario = self.generate_single_scenario(profile, axis, template=template)
        scenario = self.cost_service.annotate_scenario(scenario, reference_cap)
        result = self.validate_scenario(scenario, profile)
        scenario = scenario.with_safety_result(result["warnings"], result["errors"])
        if result["errors"]:
            logger.warning(
                "Scenario %s for patient %s failed safety checks: %s",
                axis.value,
                profile.patient_id,
                "; ".join(result["errors"]),
            )
        return scenario.with_display_order(order)

    # ── Base services ──

    def find_base_template(self, profile: PatientNeedsProfile) -> CareBundleTemplate | None:
        """Case-mix group, then category, then needs-cluster categories, then the default."""
        if profile.rug_group:
            template = self.templates.template_for_rug_group(profile.rug_group)
            if template:
                return template

        if profile.rug_category:
            template = self.templates.template_for_rug_category(profile.rug_category)
            if template:
                return template

        if profile.needs_cluster:
            try:
                cluster = NeedsCluster(profile.needs_cluster)
            except ValueError:
                cluster = None
            if cluster is not None:
                for category in cluster.approximate_rug_categories:
                    template = self.templates.template_for_rug_category(category)
                    if template:
                        return template

        return self.templates.default_template()

    def base_services(
        self, template: CareBundleTemplate | None, profile: PatientNeedsProfile
    ) -> list[BaseService]:
        if template is None:
            return self.rule_based_services(profile)

        services = []
        for entry in template.services_for_flags(template_flags(profile)):
            service_type = self.templates.service_type(entry.service_code)
            if service_type is None:
                logger.debug("Template %s references unknown service %s", template.code, entry.service_code)
                continue
            services.append(
                BaseService(
                    service_type=service_type,
                    frequency_count=entry.frequency_per_week,
                    duration_minutes=entry.duration_minutes or service_type.default_duration_minutes or 60,
                    cost_per_visit=self.effective_rate(service_type),
                    is_required=entry.is_required,
                    priority_level="core" if entry.is_required else "recommended",
                )
            )
        return services

    def rule_based_services(self, profile: PatientNeedsProfile) -> list[BaseService]:
        """Default services derived from profile thresholds; always includes nursing and PSW."""
        services: list[BaseService] = []
        adl = profile.adl_support_level
        health = profile.health_instability

        nursing = self.templates.service_type("NUR")
        if nursing:
            if health >= 4:
                frequency = 5
            elif health >= 3:
                frequency = 3
            elif health >= 2:
                frequency = 2
            else:
                frequency = 1
            services.append(self._service(nursing, frequency, required=True, priority="core"))

        psw = self.templates.service_type("PSW")
        if psw:
            if adl >= 5:
                frequency = 14
            elif adl >= 4:
                frequency = 7
            elif adl >= 3:
                frequency = 5
            elif adl >= 2:
                frequency = 3
            else:
                frequency = 2
            services.append(
                self._service(
                    psw,
                    frequency,
                    required=adl >= 3,
                    priority="core" if adl >= 3 else "recommended",
                )
            )

        if profile.has_rehab_potential or profile.rehab_potential_score >= 30:
            for code, frequency in (("PT", 2), ("OT", 1)):
                therapy = self.templates.service_type(code)
                if therapy:
                    services.append(self._service(therapy, frequency, duration=45))

        if profile.cognitive_complexity >= 2 or profile.behavioural_complexity >= 2:
            social_work = self.templates.service_type("SW")
            if social_work:
                services.append(self._service(social_work, 1, duration=60))

        if profile.iadl_support_level >= 2:
            homemaking = self.templates.service_type("HMK")
            if homemaking:
                services.append(self._service(homemaking, 1, duration=120, priority="optional"))

        return services

    def _service(
        self,
        service_type: ServiceType,
        frequency: int,
        duration: int | None = None,
        required: bool = False,
        priority: PriorityLevel = "recommended",
    ) -> BaseService:
        return BaseService(
            service_type=service_type,
            frequency_count=frequency,
            duration_minutes=duration or service_type.default_duration_minutes or 60,
            cost_per_visit=self.effective_rate(service_type),
            is_required=required,
            priority_level=priority,
        )

    def effective_rate(self, service_type: ServiceType) -> float:
        """Rate card, then the service type's own price, then the fallback rate."""
        rate = self.templates.current_rate(service_type.code)
        if rate:
            return rate
        if service_type.cost_per_visit is not None:
            return service_type.cost_per_visit
        return FALLBACK_RATE

    # ── Service lines ──

    def build_service_lines(
        self, services: list[BaseService], axis: ScenarioAxis, profile: PatientNeedsProfile
    ) -> list[ScenarioServiceLine]:
        goal = axis.emphasized_goals[0] if axis.emphasized_goals else "overall_wellbeing"
        lines = []
        for service in services:
            service_type = service.service_type
            lines.append(
                ScenarioServiceLine(
                    service_category=service_type.category or "general",
                    service_name=service_type.name,
                    frequency_count=service.frequency_count,
                    frequency_period=service.frequency_period,
                    duration_minutes=service.duration_minutes,
                    discipline=service_type.discipline,
                    service_type_id=service_type.id,
                    service_code=service_type.code,
                    requires_specialization=service_type.requires_specialization,
                    delivery_mode=service_type.delivery_mode,
                    cost_per_visit=service.cost_per_visit,
                    weekly_estimated_cost=service.weekly_cost,
                    priority_level=service.priority_level,
                    is_safety_critical=service.is_required,
                    clinical_rationale=self.clinical_rationale(service_type, profile),
                    patient_goal_supported=goal,
                    axis_contribution=self.axis_contribution(service_type, axis),
                )
            )
        return lines

    @staticmethod
    def axis_contribution(service_type: ServiceType, axis: ScenarioAxis) -> str:
        if service_type.category in axis.emphasized_service_categories:
            return f"Primary contributor to {axis.label}"
        return "Supporting service"

    def clinical_rationale(self, service_type: ServiceType, profile: PatientNeedsProfile) -> str:
        code = service_type.code.upper()
        if code == "NUR":
            return self._nursing_rationale(profile)
        if code == "PSW":
            return self._psw_rationale(profile)
        if code == "PT":
            return self._pt_rationale(profile)
        if code == "OT":
            return self._ot_rationale(profile)
        if code == "SW":
            return self._sw_rationale(profile)
        return _CATEGORY_RATIONALES.get(service_type.category, "Comprehensive care support")

    @staticmethod
    def _nursing_rationale(p: PatientNeedsProfile) -> str:
        reasons = []
        if p.chess_ca_score >= 3:
            reasons.append(f"CHESS-CA {p.chess_ca_score}/5 indicates health instability")
        if p.pain_score >= 3:
            reasons.append(f"Pain Scale {p.pain_score}/4 requires monitoring")
        if p.service_urgency_score >= 3:
            reasons.append(
                f"Service Urgency {p.service_urgency_score}/4 - clinical services needed within 72h"
            )
        return "; ".join(reasons) or "Baseline nursing for care coordination and monitoring"

    @staticmethod
    def _psw_rationale(p: PatientNeedsProfile) -> str:
        psa = p.personal_support_score
        level = "high" if psa >= 5 else ("moderate" if psa >= 3 else "light")
        rationale = f"PSA {psa}/6 indicates {level} personal support need"
        if not p.self_reliance_index:
            rationale += "; not self-reliant in ADL/cognition"
        return rationale

    @staticmethod
    def _pt_rationale(p: PatientNeedsProfile) -> str:
        rehab = p.rehabilitation_score
        level = "high" if rehab >= 4 else ("moderate" if rehab >= 3 else "maintenance")
        return f"Rehabilitation {rehab}/5 indicates {level} PT/OT rehabilitation potential"

    @staticmethod
    def _ot_rationale(p: PatientNeedsProfile) -> str:
        reasons = []
        if p.rehabilitation_score >= 3:
            reasons.append(f"Rehab {p.rehabilitation_score}/5 for functional improvement")
        if p.iadl_support_level >= 3:
            reasons.append("IADL deficits for skill-building")
        if p.has_home_environment_risk:
            reasons.append("Home environment safety assessment")
        return "; ".join(reasons) or "Occupational therapy for daily function"

    @staticmethod
    def _sw_rationale(p: PatientNeedsProfile) -> str:
        reasons = []
        if p.distressed_mood_score >= 3:
            reasons.append(f"DMS {p.distressed_mood_score}/9 - mood support needed")
        if p.caregiver_stress_level >= 3:
            reasons.append("Caregiver stress - support/respite planning")
        if p.lives_alone and p.cognitive_complexity >= 2:
            reasons.append("Lives alone with cognitive needs - community linkage")
        return "; ".join(reasons) or "Psychosocial support and care coordination"

    # ── Scenario context ──

    @staticmethod
    def risks_addressed(profile: PatientNeedsProfile) -> list[str]:
        risks = []
        if profile.falls_risk_level >= 2:
            risks.append("Falls prevention")
        if profile.health_instability >= 3:
            risks.append("Health stability monitoring")
        if profile.skin_integrity_risk >= 2:
            risks.append("Skin integrity management")
        if profile.cognitive_complexity >= 3:
            risks.append("Cognitive support and supervision")
        if profile.behavioural_complexity >= 2:
            risks.append("Behavioural support")
        return risks

    @staticmethod
    def determine_confidence(profile: PatientNeedsProfile, template: CareBundleTemplate | None) -> str:
        if template and profile.rug_group:
            return "high"
        if template:
            return "medium"
        return "low"

    @staticmethod
    def confidence_notes(profile: PatientNeedsProfile, template: CareBundleTemplate | None) -> str:
        if template and profile.rug_group:
            return f"Based on RUG-III/HC classification ({profile.rug_group}) with matched template"
        if template and profile.needs_cluster:
            return f"Based on needs cluster ({profile.needs_cluster}) with approximate template match"
        if template is None:
            return "Default services based on profile characteristics"
        return "Template-based scenario"

    # ── Validation and comparison ──

    def validate_scenario(self, scenario: ScenarioBundle, profile: PatientNeedsProfile) -> dict:
        """Safety checks. Errors should block activation; warnings are advisory.

        Returns:
            ``{"valid": bool, "warnings": [...], "errors": [...]}``
        """
        errors: list[str] = []
        warnings: list[str] = []
        categories = {line.service_category for line in scenario.service_lines}

        if profile.health_instability >= 3 and "nursing" not in categories:
            errors.append("High health instability requires nursing services")

        if profile.falls_risk_level >= 2 and not categories & FALLS_PREVENTION_CATEGORIES:
            warnings.append("High falls risk - consider additional monitoring")

        if profile.cognitive_complexity >= 4 and not categories & SUPERVISION_CATEGORIES:
            warnings.append("Significant cognitive impairment - consider supervision services")

        if profile.requires_extensive_services and "nursing" not in categories:
            errors.append("Required extensive services not included")

        if profile.adl_support_level >= 4 and scenario.total_weekly_hours < MIN_WEEKLY_HOURS_HIGH_ADL:
            warnings.append("High ADL dependency may need more weekly support hours")

        return {"valid": not errors, "warnings": warnings, "errors": errors}

    def compare_scenarios(self, first: ScenarioBundle, second: ScenarioBundle) -> dict:
        """Differences from ``first`` to ``second``, keyed by service category."""
        by_category_1 = {line.service_category: line for line in first.service_lines}
        by_category_2 = {line.service_category: line for line in second.service_lines}

        added, removed, frequency_changes = [], [], []
        for category in dict.fromkeys([*by_category_1, *by_category_2]):
            line_1 = by_category_1.get(category)
            line_2 = by_category_2.get(category)
            if line_1 is None and line_2 is not None:
                added.append(line_2.service_name)
            elif line_1 is not None and line_2 is None:
                removed.append(line_1.service_name)
            elif line_1 is not None and line_2 is not None and line_1.frequency_count != line_2.frequency_count:
                frequency_changes.append(
                    f"{line_1.service_name}: {line_1.frequency_label} → {line_2.frequency_label}"
                )

        return {
            "services_added": added,
            "services_removed": removed,
            "frequency_changes": frequency_changes,
            "cost_difference": second.weekly_estimated_cost - first.weekly_estimated_cost,
            "hours_difference": second.total_weekly_hours - first.total_weekly_hours,
            "emphasis_shift": f"From {first.primary_axis.label} to {second.primary_axis.label} emphasis",
        }

    def applicable_axes(self, profile: PatientNeedsProfile, max_axes: int = 4) -> list[ScenarioAxis]:
        return self.axis_selector.applicable_axes(profile, max_axes)
