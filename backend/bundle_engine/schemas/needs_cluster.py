"""Coarse needs clusters derived from contact assessments.

Used for template selection when no case-mix (RUG) group is available.
"""

from enum import Enum


class NeedsCluster(str, Enum):
    """Needs cluster tag for patients without a full home-care assessment."""

    # Physical function primary
    HIGH_ADL = "HIGH_ADL"
    MODERATE_ADL = "MODERATE_ADL"
    LOW_ADL = "LOW_ADL"

    # Cognitive primary
    COGNITIVE_COMPLEX = "COGNITIVE_COMPLEX"
    MH_COMPLEX = "MH_COMPLEX"

    # Medical complexity primary
    MEDICAL_COMPLEX = "MEDICAL_COMPLEX"
    POST_ACUTE = "POST_ACUTE"

    # Combined
    HIGH_ADL_COGNITIVE = "HIGH_ADL_COGNITIVE"
    GENERAL = "GENERAL"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def approximate_rug_categories(self) -> tuple[str, ...]:
        """Case-mix categories this cluster approximates, best match first."""
        return _RUG_CATEGORIES[self]

    @property
    def primary_focus(self) -> str:
        return _PRIMARY_FOCUS[self]

    @property
    def requires_high_psw_frequency(self) -> bool:
        return self in (
            NeedsCluster.HIGH_ADL,
            NeedsCluster.HIGH_ADL_COGNITIVE,
            NeedsCluster.COGNITIVE_COMPLEX,
        )

    @property
    def requires_enhanced_nursing(self) -> bool:
        return self in (
            NeedsCluster.MEDICAL_COMPLEX,
            NeedsCluster.POST_ACUTE,
            NeedsCluster.HIGH_ADL,
        )

    @classmethod
    def select_options(cls) -> list[dict]:
        return [
            {"value": c.value, "label": c.label, "description": c.description}
            for c in cls
        ]


_LABELS = {
    NeedsCluster.HIGH_ADL: "High Physical Dependency",
    NeedsCluster.MODERATE_ADL: "Moderate Physical Dependency",
    NeedsCluster.LOW_ADL: "Low Physical Dependency",
    NeedsCluster.COGNITIVE_COMPLEX: "Cognitive Complexity",
    NeedsCluster.MH_COMPLEX: "Mental Health Complexity",
    NeedsCluster.MEDICAL_COMPLEX: "Medical Complexity",
    NeedsCluster.POST_ACUTE: "Post-Acute / Rehabilitation",
    NeedsCluster.HIGH_ADL_COGNITIVE: "High ADL + Cognitive",
    NeedsCluster.GENERAL: "General Support",
}

_DESCRIPTIONS = {
    NeedsCluster.HIGH_ADL: "Patient requires extensive assistance with daily living activities",
    NeedsCluster.MODERATE_ADL: "Patient needs moderate support with some daily activities",
    NeedsCluster.LOW_ADL: "Patient is relatively independent in daily activities",
    NeedsCluster.COGNITIVE_COMPLEX: "Primary needs relate to cognitive impairment and supervision",
    NeedsCluster.MH_COMPLEX: "Primary needs relate to mental health or behavioural support",
    NeedsCluster.MEDICAL_COMPLEX: "Multiple medical conditions requiring clinical monitoring",
    NeedsCluster.POST_ACUTE: "Recent hospital discharge with rehabilitation potential",
    NeedsCluster.HIGH_ADL_COGNITIVE: (
        "Complex needs: both physical dependency and cognitive impairment"
    ),
    NeedsCluster.GENERAL: "General support needs without specific clinical complexity",
}

_RUG_CATEGORIES = {
    NeedsCluster.HIGH_ADL: ("Reduced Physical Function", "Special Care"),
    NeedsCluster.MODERATE_ADL: ("Reduced Physical Function",),
    NeedsCluster.LOW_ADL: ("Reduced Physical Function",),
    NeedsCluster.COGNITIVE_COMPLEX: ("Impaired Cognition",),
    NeedsCluster.MH_COMPLEX: ("Behaviour Problems", "Impaired Cognition"),
    NeedsCluster.MEDICAL_COMPLEX: ("Clinically Complex", "Special Care"),
    NeedsCluster.POST_ACUTE: ("Special Rehabilitation", "Clinically Complex"),
    NeedsCluster.HIGH_ADL_COGNITIVE: ("Impaired Cognition", "Special Care"),
    NeedsCluster.GENERAL: ("Reduced Physical Function",),
}

_PRIMARY_FOCUS = {
    NeedsCluster.HIGH_ADL: "physical",
    NeedsCluster.MODERATE_ADL: "physical",
    NeedsCluster.LOW_ADL: "physical",
    NeedsCluster.COGNITIVE_COMPLEX: "cognitive",
    NeedsCluster.HIGH_ADL_COGNITIVE: "cognitive",
    NeedsCluster.MH_COMPLEX: "mental_health",
    NeedsCluster.MEDICAL_COMPLEX: "clinical",
    NeedsCluster.POST_ACUTE: "rehabilitation",
    NeedsCluster.GENERAL: "general",
}
