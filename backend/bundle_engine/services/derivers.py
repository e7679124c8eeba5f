"""Derived profile attributes: episode type and rehabilitation potential.

Both derivers read the merged ingestion field set (profile field names plus
any raw assessment items carried alongside) and optionally the referral.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from bundle_engine.schemas.assessment import PatientRecord, Referral
from bundle_engine.utils.numbers import to_int


# ── Episode type ──

POST_ACUTE_DAYS_THRESHOLD = 30

EPISODE_TYPES: dict[str, dict[str, str]] = {
    "post_acute": {
        "label": "Post-Acute",
        "description": "Recent hospital discharge, rehabilitation focus",
    },
    "chronic": {
        "label": "Chronic",
        "description": "Stable long-term condition, maintenance care",
    },
    "complex_continuing": {
        "label": "Complex Continuing",
        "description": "Long-term with multiple complexities",
    },
    "acute_exacerbation": {
        "label": "Acute Exacerbation",
        "description": "Acute flare-up of chronic condition",
    },
    "palliative": {
        "label": "Palliative",
        "description": "End-of-life focused care",
    },
}

_REFERRAL_TYPE_EPISODES = {
    "post_acute": "post_acute",
    "post-acute": "post_acute",
    "hospital_discharge": "post_acute",
    "chronic": "chronic",
    "maintenance": "chronic",
    "complex": "complex_continuing",
    "complex_continuing": "complex_continuing",
    "acute": "acute_exacerbation",
    "acute_exacerbation": "acute_exacerbation",
    "flare": "acute_exacerbation",
    "palliative": "palliative",
    "end_of_life": "palliative",
    "hospice": "palliative",
}

_METHOD_CONFIDENCE = {
    "explicit_referral": "high",
    "discharge_date": "high",
    "surgery_type": "high",
    "assessment_patterns": "medium",
    "default": "low",
}


def is_valid_episode_type(episode_type: str) -> bool:
    return episode_type in EPISODE_TYPES


@dataclass(frozen=True, slots=True)
class EpisodeDerivation:
    episode_type: str
    method: str

    @property
    def confidence(self) -> str:
        return _METHOD_CONFIDENCE.get(self.method, "low")


class EpisodeTypeDeriver:
    """Classify the care episode, strongest evidence first.

    Order: explicit referral type or source/program, recent discharge or
    recorded surgery, assessment patterns, then a complexity-based default.
    """

    def derive(
        self,
        data: dict[str, Any],
        referral: Referral | None = None,
        patient: PatientRecord | None = None,
        today: date | None = None,
    ) -> str:
        return self.derive_with_method(data, referral, patient, today).episode_type

    def derive_with_method(
        self,
        data: dict[str, Any],
        referral: Referral | None = None,
        patient: PatientRecord | None = None,
        today: date | None = None,
    ) -> EpisodeDerivation:
        today = today or datetime.now(timezone.utc).date()

        if referral is not None:
            episode = self.from_referral(referral)
            if episode is not None:
                return EpisodeDerivation(episode, "explicit_referral")

        discharge = self._discharge_date(referral, patient)
        if discharge is not None and abs((today - discharge).days) <= POST_ACUTE_DAYS_THRESHOLD:
            return EpisodeDerivation("post_acute", "discharge_date")

        if referral is not None and (referral.surgery_type or referral.procedure_type):
            return EpisodeDerivation("post_acute", "surgery_type")

        episode = self.from_assessment_patterns(data)
        if episode is not None:
            return EpisodeDerivation(episode, "assessment_patterns")

        return EpisodeDerivation(self.default_episode_type(data), "default")

    def from_referral(self, referral: Referral) -> str | None:
        if referral.referral_type:
            # An explicit but unrecognised type stops here
            return _REFERRAL_TYPE_EPISODES.get(referral.referral_type.lower())

        source = (referral.source_label or "").lower()
        if "hospital" in source or "discharge" in source:
            return "post_acute"

        program = (referral.program or "").lower()
        if "transitional" in program or "ohah" in program:
            return "post_acute"
        if "palliative" in program or "hospice" in program:
            return "palliative"
        return None

    def from_assessment_patterns(self, data: dict[str, Any]) -> str | None:
        if self._has_palliative_indicators(data):
            return "palliative"
        if self._has_acute_exacerbation_indicators(data):
            return "acute_exacerbation"
        if self._has_post_acute_indicators(data):
            return "post_acute"
        if self._has_complex_continuing_indicators(data):
            return "complex_continuing"
        return None

    def default_episode_type(self, data: dict[str, Any]) -> str:
        if (
            to_int(data.get("adl_support_level")) >= 4
            or to_int(data.get("cognitive_complexity")) >= 4
            or to_int(data.get("health_instability")) >= 4
        ):
            return "complex_continuing"
        return "chronic"

    def _discharge_date(
        self, referral: Referral | None, patient: PatientRecord | None
    ) -> date | None:
        if referral is not None:
            if referral.discharge_date:
                return referral.discharge_date
            if referral.hospital_discharge_date:
                return referral.hospital_discharge_date
        if patient is not None:
            return patient.last_discharge_date
        return None

    def _has_palliative_indicators(self, data: dict[str, Any]) -> bool:
        prognosis = data.get("prognosis", data.get("life_expectancy"))
        if prognosis is not None and to_int(prognosis) <= 2:
            return True
        return data.get("end_stage_disease") is True or data.get("hospice_enrolled") is True

    def _has_acute_exacerbation_indicators(self, data: dict[str, Any]) -> bool:
        if to_int(data.get("health_instability")) >= 4:
            return True
        return data.get("acute_change") is True or data.get("condition_flare") is True

    def _has_post_acute_indicators(self, data: dict[str, Any]) -> bool:
        minutes = to_int(data.get("weekly_therapy_minutes"))
        if minutes >= 60:
            return True
        if data.get("has_rehab_potential") and minutes > 0:
            return True
        return data.get("rug_category") == "Special Rehabilitation"

    def _has_complex_continuing_indicators(self, data: dict[str, Any]) -> bool:
        adl = to_int(data.get("adl_support_level"))
        cognitive = to_int(data.get("cognitive_complexity"))
        if adl >= 4 and cognitive >= 3:
            return True
        if to_int(data.get("behavioural_complexity")) >= 3:
            return True
        if data.get("requires_extensive_services") is True:
            return True
        return len(data.get("active_conditions") or []) >= 4

    @staticmethod
    def confidence_for(method: str) -> str:
        return _METHOD_CONFIDENCE.get(method, "low")

    @staticmethod
    def all_episode_types() -> dict[str, dict[str, str]]:
        return {key: dict(value) for key, value in EPISODE_TYPES.items()}


# ── Rehabilitation potential ──

POTENTIAL_THRESHOLD = 40
MAX_SCORE = 100

_REHAB_KEYWORDS = ("rehab", "rehabilitation", "therapy", "recovery", "restore", "regain")

_EPISODE_POINTS: dict[str, tuple[int, str | None]] = {
    "post_acute": (30, "Post-acute episode with high rehab potential (+30)"),
    "acute_exacerbation": (20, "Acute exacerbation with recovery potential (+20)"),
    "chronic": (10, "Chronic maintenance with some improvement potential (+10)"),
    "complex_continuing": (5, "Complex continuing care with limited rehab focus (+5)"),
    "palliative": (0, "Palliative focus, rehab not primary goal"),
}


@dataclass(frozen=True, slots=True)
class RehabPotential:
    score: int
    has_rehab_potential: bool
    factors: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class _Factor:
    points: int
    reason: str | None


class RehabPotentialDeriver:
    """Score rehabilitation potential 0-100 from six factors and penalties."""

    def derive(
        self,
        data: dict[str, Any],
        episode_type: str | None = None,
        referral: Referral | None = None,
    ) -> RehabPotential:
        factors = [
            self._episode_factor(episode_type),
            self._therapy_factor(data),
            self._functional_factor(data),
            self._adl_factor(data),
            self._cognitive_factor(data),
        ]
        if referral is not None:
            factors.append(self._referral_factor(referral))

        score = sum(f.points for f in factors)
        reasons = [f.reason for f in factors if f.points > 0 and f.reason]

        penalty = self._negative_modifiers(data)
        score += penalty.points
        if penalty.points < 0 and penalty.reason:
            reasons.append(penalty.reason)

        score = max(0, min(MAX_SCORE, score))
        return RehabPotential(
            score=score,
            has_rehab_potential=score >= POTENTIAL_THRESHOLD,
            factors=reasons,
        )

    def _episode_factor(self, episode_type: str | None) -> _Factor:
        points, reason = _EPISODE_POINTS.get(episode_type or "", (0, None))
        return _Factor(points, reason)

    def _therapy_factor(self, data: dict[str, Any]) -> _Factor:
        points = 0
        reasons = []
        minutes = to_int(data.get("weekly_therapy_minutes"))
        if minutes >= 60:
            points += 15
            reasons.append(f"Active therapy plan ({minutes}+ min/week)")
        elif minutes >= 30:
            points += 10
            reasons.append(f"Moderate therapy plan ({minutes} min/week)")
        elif minutes > 0:
            points += 5
            reasons.append(f"Light therapy plan ({minutes} min/week)")

        if data.get("therapy_recommended") is True:
            points += 5
            reasons.append("Therapy recommended in assessment")

        points = min(20, points)
        return _Factor(points, _joined(reasons, points))

    def _functional_factor(self, data: dict[str, Any]) -> _Factor:
        checks = (
            ("recent_decline", 10, "Recent functional decline (recovery potential)"),
            ("not_at_baseline", 10, "Below functional baseline"),
            ("improvement_noted", 10, "Recent improvement documented"),
            ("patient_motivated", 5, "Patient motivated for rehab"),
        )
        points = 0
        reasons = []
        for key, value, reason in checks:
            if data.get(key) is True:
                points += value
                reasons.append(reason)
        points = min(20, points)
        return _Factor(points, _joined(reasons, points))

    def _adl_factor(self, data: dict[str, Any]) -> _Factor:
        adl = to_int(data.get("adl_support_level"))
        mobility = to_int(data.get("mobility_complexity"))
        reasons = []
        points = 0

        # Moderate impairment has the most room to recover
        if 2 <= adl <= 4:
            points = 15
            reasons.append("Moderate ADL impairment - good rehab candidate (+15)")
        elif adl >= 5:
            points = 5
            reasons.append("Severe ADL impairment - limited but possible (+5)")

        if 2 <= mobility <= 4:
            points += 5
            reasons.append("Moderate mobility impairment (+5)")

        return _Factor(min(15, points), "; ".join(reasons) or None)

    def _cognitive_factor(self, data: dict[str, Any]) -> _Factor:
        cognitive = to_int(data.get("cognitive_complexity"))
        if cognitive <= 1:
            return _Factor(10, "Intact cognition supports rehab participation (+10)")
        if cognitive <= 2:
            return _Factor(7, "Mild cognitive impairment - can participate (+7)")
        if cognitive <= 3:
            return _Factor(4, "Moderate cognitive impairment - may need adapted approach (+4)")
        return _Factor(0, None)

    def _referral_factor(self, referral: Referral) -> _Factor:
        points = 0
        reasons = []
        text = f"{referral.notes or ''} {referral.referral_reason or ''}".lower()
        if any(keyword in text for keyword in _REHAB_KEYWORDS):
            points += 10
            reasons.append("Referral mentions rehabilitation goals")
        if referral.surgery_type or referral.procedure_type:
            points += 10
            reasons.append("Post-surgical recovery expected")
        if referral.expected_length_of_stay is not None and referral.expected_length_of_stay <= 90:
            points += 5
            reasons.append("Short expected episode (time-limited recovery)")
        points = min(15, points)
        return _Factor(points, _joined(reasons, points))

    def _negative_modifiers(self, data: dict[str, Any]) -> _Factor:
        points = 0
        reasons = []
        if to_int(data.get("cognitive_complexity")) >= 5:
            points -= 15
            reasons.append("Severe cognitive impairment (-15)")
        if to_int(data.get("health_instability")) >= 4:
            points -= 10
            reasons.append("High health instability (-10)")
        prognosis = data.get("prognosis")
        if prognosis is not None and to_int(prognosis) <= 2:
            points -= 20
            reasons.append("Poor prognosis (-20)")
        if to_int(data.get("adl_support_level")) >= 6:
            points -= 10
            reasons.append("Total ADL dependence (-10)")
        if data.get("long_term_decline") is True:
            points -= 10
            reasons.append("Pattern of long-term decline (-10)")
        return _Factor(points, "; ".join(reasons) if points < 0 else None)

    @staticmethod
    def potential_level(score: int) -> str:
        if score >= 70:
            return "high"
        if score >= 40:
            return "moderate"
        if score >= 20:
            return "low"
        return "minimal"

    @staticmethod
    def potential_description(score: int) -> str:
        if score >= 70:
            return "Strong rehabilitation potential - therapy-intensive care recommended"
        if score >= 40:
            return "Moderate rehabilitation potential - balanced approach recommended"
        if score >= 20:
            return "Limited rehabilitation potential - focus on maintenance and safety"
        return "Minimal rehabilitation potential - comfort and stability focused"


def _joined(reasons: list[str], points: int) -> str | None:
    if points <= 0:
        return None
    return f"{'; '.join(reasons)} (+{points})"
