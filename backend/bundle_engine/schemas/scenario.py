"""Scenario value objects: costed service lines and whole bundles.

Bundles are never mutated. Annotation, safety results, display order and the
recommended flag are applied with ``model_copy(update=...)``, which returns a
new bundle and leaves the original untouched.
"""

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from bundle_engine.schemas.axis import PriorityLevel, ScenarioAxis
from bundle_engine.utils.sequences import optional_list


FrequencyPeriod = Literal["day", "week", "month", "episode"]
DeliveryMode = Literal["in_person", "virtual", "hybrid", "automated"]
CostStatus = Literal["within_cap", "near_cap", "over_cap"]

# Average weeks per month for monthly frequencies
WEEKS_PER_MONTH = 4.33

_DISCIPLINE_LABELS = {
    "rn": "Registered Nurse",
    "rpn": "Registered Practical Nurse",
    "psw": "Personal Support Worker",
    "pt": "Physiotherapist",
    "ot": "Occupational Therapist",
    "slp": "Speech Language Pathologist",
    "sw": "Social Worker",
    "dietitian": "Dietitian",
    "css": "Community Support Service",
}

_DELIVERY_LABELS = {
    "in_person": "In-Person",
    "virtual": "Virtual",
    "hybrid": "Hybrid",
    "automated": "Automated",
}

_PRIORITY_BADGES = {"core": "danger", "recommended": "primary", "optional": "secondary"}

_COST_STATUS_LABELS = {
    "within_cap": "Within Reference",
    "near_cap": "Near Reference",
    "over_cap": "Over Reference",
}

_COST_STATUS_BADGES = {"within_cap": "success", "near_cap": "warning", "over_cap": "danger"}


def weekly_visits(frequency_count: int, frequency_period: str) -> float:
    """Convert a frequency to visits per week.

    One-time (episode) services contribute nothing to the weekly total.
    """
    if frequency_period == "day":
        return float(frequency_count * 7)
    if frequency_period == "month":
        return frequency_count / WEEKS_PER_MONTH
    if frequency_period == "episode":
        return 0.0
    return float(frequency_count)


class ScenarioServiceLine(BaseModel):
    """One recurring service within a scenario bundle."""

    model_config = ConfigDict(frozen=True)

    service_category: str
    service_name: str
    frequency_count: int
    frequency_period: FrequencyPeriod
    duration_minutes: int
    discipline: str

    service_type_id: int | None = None
    service_code: str | None = None
    estimated_weeks: int | None = None
    requires_specialization: bool = False
    specialization: str | None = None
    delivery_mode: DeliveryMode = "in_person"
    requires_continuity: bool = False
    time_preference: str | None = None
    cost_per_visit: float = 0.0
    weekly_estimated_cost: float = 0.0
    cost_tier: str | None = None
    priority_level: PriorityLevel = "recommended"
    is_safety_critical: bool = False
    risks_addressed: tuple[str, ...] | None = None
    clinical_rationale: str | None = None
    patient_goal_supported: str | None = None
    justifying_factors: tuple[str, ...] | None = None
    axis_contribution: str | None = None
    is_modifiable: bool = True
    alternative: str | None = None

    @property
    def weekly_visits(self) -> float:
        return weekly_visits(self.frequency_count, self.frequency_period)

    @property
    def weekly_hours(self) -> float:
        return self.weekly_visits * self.duration_minutes / 60

    @property
    def frequency_label(self) -> str:
        count = self.frequency_count
        if self.frequency_period == "day":
            return "Once daily" if count == 1 else f"{count} times daily"
        if self.frequency_period == "episode":
            return "One-time"
        if self.frequency_period == "week":
            return "Once per week" if count == 1 else f"{count} times per week"
        return "Once per month" if count == 1 else f"{count} times per month"

    @property
    def duration_label(self) -> str:
        if self.duration_minutes < 60:
            return f"{self.duration_minutes} min"
        hours, minutes = divmod(self.duration_minutes, 60)
        if minutes == 0:
            return f"{hours} hr" + ("s" if hours > 1 else "")
        return f"{hours} hr {minutes} min"

    @property
    def discipline_label(self) -> str:
        return _DISCIPLINE_LABELS.get(self.discipline, self.discipline.upper())

    @property
    def delivery_mode_label(self) -> str:
        return _DELIVERY_LABELS.get(self.delivery_mode, self.delivery_mode.capitalize())

    @property
    def priority_badge(self) -> str:
        return _PRIORITY_BADGES.get(self.priority_level, "secondary")

    def to_dict(self) -> dict:
        return {
            "service_type_id": self.service_type_id,
            "service_category": self.service_category,
            "service_name": self.service_name,
            "service_code": self.service_code,
            "frequency": {
                "count": self.frequency_count,
                "period": self.frequency_period,
                "label": self.frequency_label,
            },
            "duration": {"minutes": self.duration_minutes, "label": self.duration_label},
            "estimated_weeks": self.estimated_weeks,
            "discipline": {"code": self.discipline, "label": self.discipline_label},
            "specialization": {
                "required": self.requires_specialization,
                "type": self.specialization,
            },
            "delivery": {
                "mode": self.delivery_mode,
                "label": self.delivery_mode_label,
                "continuity": self.requires_continuity,
                "time_preference": self.time_preference,
            },
            "cost": {
                "per_visit": self.cost_per_visit,
                "weekly_estimate": self.weekly_estimated_cost,
                "tier": self.cost_tier,
            },
            "priority": {
                "level": self.priority_level,
                "safety_critical": self.is_safety_critical,
                "badge_class": self.priority_badge,
            },
            "clinical": {
                "rationale": self.clinical_rationale,
                "patient_goal": self.patient_goal_supported,
                "risks_addressed": optional_list(self.risks_addressed),
                "justifying_factors": optional_list(self.justifying_factors),
            },
            "scenario": {
                "axis_contribution": self.axis_contribution,
                "modifiable": self.is_modifiable,
                "alternative": self.alternative,
            },
            "calculated": {
                "weekly_visits": round(self.weekly_visits, 1),
                "weekly_hours": round(self.weekly_hours, 2),
            },
        }


def _new_scenario_id() -> str:
    return str(uuid.uuid4())


class ScenarioBundle(BaseModel):
    """A complete, costed care bundle recommendation for one axis."""

    model_config = ConfigDict(frozen=True)

    # === Identity ===
    scenario_id: str = Field(default_factory=_new_scenario_id)
    patient_id: int
    primary_axis: ScenarioAxis

    # === Labelling ===
    title: str
    description: str
    service_lines: tuple[ScenarioServiceLine, ...] = ()
    secondary_axes: tuple[ScenarioAxis, ...] = ()
    subtitle: str | None = None
    icon: str = "📋"

    # === Cost ===
    weekly_estimated_cost: float = 0.0
    reference_cap: float = 5000.0
    cost_status: CostStatus = "within_cap"
    cap_utilization: float = 0.0
    cost_note: str | None = None

    # === Operations ===
    total_weekly_hours: float = 0.0
    total_weekly_visits: int = 0
    in_person_percentage: float = 100.0
    virtual_percentage: float = 0.0
    discipline_count: int = 0

    # === Context ===
    trade_offs: dict[str, str] = Field(default_factory=dict)
    key_benefits: tuple[str, ...] = ()
    patient_goals_supported: tuple[str, ...] = ()
    risks_addressed: tuple[str, ...] = ()

    # === Safety ===
    meets_safety_requirements: bool = True
    safety_warnings: tuple[str, ...] | None = None
    safety_errors: tuple[str, ...] | None = None
    is_validated: bool = False

    # === Source ===
    source: str = "rule_engine"
    confidence_level: str = "medium"
    confidence_notes: str | None = None

    # === Explanation ===
    ai_explanation: str | None = None
    has_ai_explanation: bool = False

    # === Metadata ===
    generated_at: datetime | None = None
    display_order: int | None = None
    is_recommended: bool = False

    # ── Copy-on-write updates ──

    def with_display_order(self, order: int) -> "ScenarioBundle":
        return self.model_copy(update={"display_order": order})

    def with_recommended(self, recommended: bool = True) -> "ScenarioBundle":
        return self.model_copy(update={"is_recommended": recommended})

    def with_safety_result(self, warnings: Sequence[str], errors: Sequence[str]) -> "ScenarioBundle":
        return self.model_copy(
            update={
                "safety_warnings": tuple(warnings) or None,
                "safety_errors": tuple(errors) or None,
                "meets_safety_requirements": not errors,
                "is_validated": True,
            }
        )

    def with_explanation(self, text: str) -> "ScenarioBundle":
        return self.model_copy(update={"ai_explanation": text, "has_ai_explanation": True})

    # ── Accessors ──

    @property
    def cost_status_label(self) -> str:
        return _COST_STATUS_LABELS.get(self.cost_status, "Unknown")

    @property
    def cost_status_badge(self) -> str:
        return _COST_STATUS_BADGES.get(self.cost_status, "secondary")

    def lines_by_category(self) -> dict[str, list[ScenarioServiceLine]]:
        grouped: dict[str, list[ScenarioServiceLine]] = {}
        for line in self.service_lines:
            grouped.setdefault(line.service_category, []).append(line)
        return grouped

    def lines_by_priority(self) -> dict[str, list[ScenarioServiceLine]]:
        grouped: dict[str, list[ScenarioServiceLine]] = {
            "core": [],
            "recommended": [],
            "optional": [],
        }
        for line in self.service_lines:
            grouped.setdefault(line.priority_level, []).append(line)
        return grouped

    def lines_by_discipline(self) -> dict[str, list[ScenarioServiceLine]]:
        grouped: dict[str, list[ScenarioServiceLine]] = {}
        for line in self.service_lines:
            grouped.setdefault(line.discipline, []).append(line)
        return grouped

    def core_services(self) -> list[ScenarioServiceLine]:
        return [
            line
            for line in self.service_lines
            if line.priority_level == "core" or line.is_safety_critical
        ]

    def has_service_category(self, category: str) -> bool:
        return any(line.service_category == category for line in self.service_lines)

    def unique_disciplines(self) -> list[str]:
        return list(dict.fromkeys(line.discipline for line in self.service_lines))

    def summary(self) -> str:
        return (
            f"{self.title} ({self.primary_axis.value}) - {len(self.service_lines)} services, "
            f"${self.weekly_estimated_cost:.0f}/week ({self.cost_status})"
        )

    def to_dict(self) -> dict:
        return {
            "scenario_id": self.scenario_id,
            "patient_id": self.patient_id,
            "axis": {
                "primary": {
                    "value": self.primary_axis.value,
                    "label": self.primary_axis.label,
                    "emoji": self.primary_axis.emoji,
                },
                "secondary": [
                    {"value": axis.value, "label": axis.label} for axis in self.secondary_axes
                ],
            },
            "label": {
                "title": self.title,
                "subtitle": self.subtitle,
                "description": self.description,
                "icon": self.icon,
            },
            "services": [line.to_dict() for line in self.service_lines],
            "cost": {
                "weekly_estimate": self.weekly_estimated_cost,
                "reference_cap": self.reference_cap,
                "status": self.cost_status,
                "status_label": self.cost_status_label,
                "status_badge": self.cost_status_badge,
                "cap_utilization": round(self.cap_utilization, 1),
                "note": self.cost_note,
            },
            "operations": {
                "weekly_hours": round(self.total_weekly_hours, 1),
                "weekly_visits": self.total_weekly_visits,
                "in_person_percentage": round(self.in_person_percentage, 1),
                "virtual_percentage": round(self.virtual_percentage, 1),
                "discipline_count": self.discipline_count,
                "disciplines": self.unique_disciplines(),
            },
            "context": {
                "trade_offs": dict(self.trade_offs),
                "key_benefits": list(self.key_benefits),
                "patient_goals": list(self.patient_goals_supported),
                "risks_addressed": list(self.risks_addressed),
            },
            "safety": {
                "meets_requirements": self.meets_safety_requirements,
                "warnings": optional_list(self.safety_warnings),
                "errors": optional_list(self.safety_errors),
                "validated": self.is_validated,
            },
            "source": {
                "type": self.source,
                "confidence": self.confidence_level,
                "confidence_notes": self.confidence_notes,
            },
            "ai": {
                "explanation": self.ai_explanation,
                "has_explanation": self.has_ai_explanation,
            },
            "meta": {
                "generated_at": self.generated_at.isoformat() if self.generated_at else None,
                "display_order": self.display_order,
                "is_recommended": self.is_recommended,
            },
        }

    def to_deidentified_dict(self) -> dict:
        data = self.to_dict()
        data.pop("patient_id")
        return data

    @classmethod
    def minimal(cls, patient_id: int, axis: ScenarioAxis) -> "ScenarioBundle":
        """Empty template bundle for an axis."""
        return cls(
            patient_id=patient_id,
            primary_axis=axis,
            title=axis.label,
            description=axis.description,
            icon=axis.emoji,
            trade_offs=axis.trade_offs,
            source="template",
            confidence_level="low",
            generated_at=datetime.now(timezone.utc),
        )
