"""Scenario axes: patient-experience orientations for care bundles.

Each axis is a different emphasis for the same base service template
(recovery, safety, technology, caregiver support, ...). The metadata below is
fixed domain knowledge and is read-only at runtime.
"""

from enum import Enum
from types import MappingProxyType
from typing import Literal, TypedDict


PriorityLevel = Literal["core", "recommended", "optional"]


class ServiceModifier(TypedDict):
    multiplier: float
    priority: PriorityLevel


class ScenarioAxis(str, Enum):
    """Care emphasis used to differentiate generated scenarios."""

    # Primary axes
    RECOVERY_REHAB = "recovery_rehab"
    SAFETY_STABILITY = "safety_stability"
    TECH_ENABLED = "tech_enabled"
    CAREGIVER_RELIEF = "caregiver_relief"

    # Secondary / hybrid axes
    MEDICAL_INTENSIVE = "medical_intensive"
    COGNITIVE_SUPPORT = "cognitive_support"
    COMMUNITY_INTEGRATED = "community_integrated"

    # Baseline for every patient
    BALANCED = "balanced"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def emoji(self) -> str:
        return _EMOJIS[self]

    @property
    def emphasized_service_categories(self) -> tuple[str, ...]:
        return _EMPHASIZED_CATEGORIES[self]

    @property
    def service_modifiers(self) -> MappingProxyType:
        """Category -> {multiplier, priority}. Empty for BALANCED."""
        return _SERVICE_MODIFIERS[self]

    @property
    def emphasized_goals(self) -> tuple[str, ...]:
        return _EMPHASIZED_GOALS[self]

    @property
    def trade_offs(self) -> dict[str, str]:
        """What the axis emphasizes, not what it leaves out."""
        return dict(_TRADE_OFFS[self])

    @property
    def is_primary(self) -> bool:
        return self in _PRIMARY_AXES

    @classmethod
    def primary_axes(cls) -> list["ScenarioAxis"]:
        return [axis for axis in cls if axis.is_primary]

    @classmethod
    def select_options(cls) -> list[dict]:
        return [
            {
                "value": axis.value,
                "label": axis.label,
                "description": axis.description,
                "emoji": axis.emoji,
                "is_primary": axis.is_primary,
            }
            for axis in cls
        ]


_PRIMARY_AXES = frozenset(
    {
        ScenarioAxis.RECOVERY_REHAB,
        ScenarioAxis.SAFETY_STABILITY,
        ScenarioAxis.TECH_ENABLED,
        ScenarioAxis.CAREGIVER_RELIEF,
    }
)

_LABELS = {
    ScenarioAxis.RECOVERY_REHAB: "Recovery-Focused Care",
    ScenarioAxis.SAFETY_STABILITY: "Safety & Stability",
    ScenarioAxis.TECH_ENABLED: "Tech-Enabled Care",
    ScenarioAxis.CAREGIVER_RELIEF: "Caregiver Relief",
    ScenarioAxis.MEDICAL_INTENSIVE: "Medical Intensive",
    ScenarioAxis.COGNITIVE_SUPPORT: "Cognitive Support",
    ScenarioAxis.COMMUNITY_INTEGRATED: "Community Integrated",
    ScenarioAxis.BALANCED: "Balanced Care",
}

_DESCRIPTIONS = {
    ScenarioAxis.RECOVERY_REHAB: (
        "Prioritizes therapy and function restoration with intensive PT/OT "
        "services to support recovery goals."
    ),
    ScenarioAxis.SAFETY_STABILITY: (
        "Maximizes daily functioning and fall prevention with consistent PSW "
        "support and nursing monitoring."
    ),
    ScenarioAxis.TECH_ENABLED: (
        "Leverages remote monitoring and telehealth for continuous oversight "
        "with targeted in-person visits."
    ),
    ScenarioAxis.CAREGIVER_RELIEF: (
        "Supports both patient and family caregiver with respite hours, "
        "homemaking, and family support services."
    ),
    ScenarioAxis.MEDICAL_INTENSIVE: (
        "Provides intensive clinical care with high nursing frequency for "
        "complex medical needs."
    ),
    ScenarioAxis.COGNITIVE_SUPPORT: (
        "Focuses on cognitive stimulation and behavioural support with "
        "structured routines and supervision."
    ),
    ScenarioAxis.COMMUNITY_INTEGRATED: (
        "Emphasizes social engagement and community connections through day "
        "programs and social services."
    ),
    ScenarioAxis.BALANCED: (
        "Provides a balanced mix of services across all care domains based on "
        "assessed needs."
    ),
}

_EMOJIS = {
    ScenarioAxis.RECOVERY_REHAB: "🔄",
    ScenarioAxis.SAFETY_STABILITY: "🛡️",
    ScenarioAxis.TECH_ENABLED: "📱",
    ScenarioAxis.CAREGIVER_RELIEF: "🤝",
    ScenarioAxis.MEDICAL_INTENSIVE: "🏥",
    ScenarioAxis.COGNITIVE_SUPPORT: "🧠",
    ScenarioAxis.COMMUNITY_INTEGRATED: "🏘️",
    ScenarioAxis.BALANCED: "⚖️",
}

_EMPHASIZED_CATEGORIES = {
    ScenarioAxis.RECOVERY_REHAB: ("therapy", "activation", "nursing"),
    ScenarioAxis.SAFETY_STABILITY: ("nursing", "psw", "remote_monitoring"),
    ScenarioAxis.TECH_ENABLED: ("remote_monitoring", "telehealth"),
    ScenarioAxis.CAREGIVER_RELIEF: ("respite", "homemaking", "day_program", "caregiver_education"),
    ScenarioAxis.MEDICAL_INTENSIVE: ("nursing", "wound_care", "respiratory"),
    ScenarioAxis.COGNITIVE_SUPPORT: ("behavioural_psw", "activation", "psw"),
    ScenarioAxis.COMMUNITY_INTEGRATED: ("day_program", "transportation", "meals", "social"),
    ScenarioAxis.BALANCED: ("nursing", "psw", "therapy", "css"),
}


def _modifiers(**entries: tuple[float, PriorityLevel]) -> MappingProxyType:
    return MappingProxyType(
        {
            category: ServiceModifier(multiplier=multiplier, priority=priority)
            for category, (multiplier, priority) in entries.items()
        }
    )


# Frequency multiplier and priority applied per service category
_SERVICE_MODIFIERS = {
    ScenarioAxis.RECOVERY_REHAB: _modifiers(
        therapy=(1.5, "core"),
        activation=(1.3, "recommended"),
        nursing=(1.0, "core"),
        psw=(0.9, "core"),
    ),
    ScenarioAxis.SAFETY_STABILITY: _modifiers(
        nursing=(1.3, "core"),
        psw=(1.2, "core"),
        remote_monitoring=(1.5, "recommended"),
        therapy=(0.8, "recommended"),
    ),
    ScenarioAxis.TECH_ENABLED: _modifiers(
        remote_monitoring=(2.0, "core"),
        telehealth=(1.5, "core"),
        nursing=(0.7, "recommended"),
        psw=(0.8, "recommended"),
    ),
    ScenarioAxis.CAREGIVER_RELIEF: _modifiers(
        respite=(2.0, "core"),
        homemaking=(1.5, "core"),
        day_program=(1.5, "recommended"),
        caregiver_education=(1.0, "core"),
    ),
    ScenarioAxis.MEDICAL_INTENSIVE: _modifiers(
        nursing=(2.0, "core"),
        wound_care=(1.5, "core"),
        respiratory=(1.5, "recommended"),
        psw=(1.0, "core"),
    ),
    ScenarioAxis.COGNITIVE_SUPPORT: _modifiers(
        behavioural_psw=(1.5, "core"),
        activation=(1.5, "core"),
        psw=(1.3, "core"),
        nursing=(0.8, "recommended"),
    ),
    ScenarioAxis.COMMUNITY_INTEGRATED: _modifiers(
        day_program=(1.5, "core"),
        transportation=(1.5, "core"),
        meals=(1.3, "recommended"),
        psw=(0.8, "recommended"),
    ),
    ScenarioAxis.BALANCED: _modifiers(),
}

_EMPHASIZED_GOALS = {
    ScenarioAxis.RECOVERY_REHAB: ("mobility", "independence", "strength", "function_restoration"),
    ScenarioAxis.SAFETY_STABILITY: (
        "fall_prevention",
        "daily_functioning",
        "crisis_avoidance",
        "stability",
    ),
    ScenarioAxis.TECH_ENABLED: (
        "continuous_monitoring",
        "convenience",
        "efficiency",
        "connectivity",
    ),
    ScenarioAxis.CAREGIVER_RELIEF: (
        "caregiver_wellbeing",
        "respite",
        "family_support",
        "sustainability",
    ),
    ScenarioAxis.MEDICAL_INTENSIVE: (
        "clinical_stability",
        "symptom_management",
        "treatment_adherence",
    ),
    ScenarioAxis.COGNITIVE_SUPPORT: (
        "cognitive_engagement",
        "behavioural_stability",
        "routine",
        "supervision",
    ),
    ScenarioAxis.COMMUNITY_INTEGRATED: (
        "social_engagement",
        "independence",
        "community_connection",
    ),
    ScenarioAxis.BALANCED: ("overall_wellbeing", "comprehensive_support", "holistic_care"),
}

_TRADE_OFFS = {
    ScenarioAxis.RECOVERY_REHAB: {
        "emphasis": "Prioritizes recovery and function restoration",
        "approach": "More therapy sessions to accelerate progress",
        "consideration": "Best for patients with clear rehab goals and potential",
    },
    ScenarioAxis.SAFETY_STABILITY: {
        "emphasis": "Prioritizes daily safety and crisis prevention",
        "approach": "Consistent daily support and monitoring",
        "consideration": "Best for patients at risk of falls or health instability",
    },
    ScenarioAxis.TECH_ENABLED: {
        "emphasis": "Leverages technology for continuous oversight",
        "approach": "Remote monitoring with targeted in-person visits",
        "consideration": "Best for tech-comfortable patients with reliable connectivity",
    },
    ScenarioAxis.CAREGIVER_RELIEF: {
        "emphasis": "Supports both patient and family caregiver",
        "approach": "Includes respite and family support services",
        "consideration": "Best when family caregiver is integral to care plan",
    },
    ScenarioAxis.MEDICAL_INTENSIVE: {
        "emphasis": "Intensive clinical monitoring and treatment",
        "approach": "High nursing frequency with specialized care",
        "consideration": "Best for patients with complex medical needs",
    },
    ScenarioAxis.COGNITIVE_SUPPORT: {
        "emphasis": "Cognitive engagement and behavioural support",
        "approach": "Structured routines with supervision",
        "consideration": "Best for patients with dementia or cognitive impairment",
    },
    ScenarioAxis.COMMUNITY_INTEGRATED: {
        "emphasis": "Social connection and community engagement",
        "approach": "Day programs and social services",
        "consideration": "Best for socially isolated patients who can participate",
    },
    ScenarioAxis.BALANCED: {
        "emphasis": "Comprehensive coverage across all domains",
        "approach": "Balanced allocation based on assessment",
        "consideration": "Suitable baseline for most patients",
    },
}
