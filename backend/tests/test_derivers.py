"""Tests for episode type and rehabilitation potential derivation."""

from datetime import date, timedelta

import pytest

from bundle_engine.schemas.assessment import PatientRecord, Referral
from bundle_engine.services.derivers import (
    EpisodeTypeDeriver,
    RehabPotentialDeriver,
    is_valid_episode_type,
)

TODAY = date(2025, 6, 1)


def referral(**kwargs) -> Referral:
    return Referral(patient_id=101, **kwargs)


# =============================================================================
# Episode type
# =============================================================================


class TestEpisodeTypeDeriver:
    @pytest.fixture
    def deriver(self):
        return EpisodeTypeDeriver()

    @pytest.mark.parametrize(
        "referral_type,episode",
        [
            ("palliative", "palliative"),
            ("Hospital_Discharge", "post_acute"),
            ("maintenance", "chronic"),
            ("flare", "acute_exacerbation"),
            ("complex", "complex_continuing"),
        ],
    )
    def test_explicit_referral_type(self, deriver, referral_type, episode):
        result = deriver.derive_with_method({}, referral(referral_type=referral_type), today=TODAY)
        assert result.episode_type == episode
        assert result.method == "explicit_referral"
        assert result.confidence == "high"

    def test_hospital_source(self, deriver):
        assert deriver.derive({}, referral(source="General Hospital"), today=TODAY) == "post_acute"

    def test_palliative_program(self, deriver):
        assert deriver.derive({}, referral(program="Hospice at Home"), today=TODAY) == "palliative"

    def test_unrecognised_referral_type_falls_through(self, deriver):
        result = deriver.derive_with_method({}, referral(referral_type="other"), today=TODAY)
        assert result.episode_type == "chronic"
        assert result.method == "default"

    def test_recent_discharge(self, deriver):
        result = deriver.derive_with_method(
            {}, referral(discharge_date=TODAY - timedelta(days=10)), today=TODAY
        )
        assert result.episode_type == "post_acute"
        assert result.method == "discharge_date"

    def test_old_discharge_is_ignored(self, deriver):
        result = deriver.derive_with_method(
            {}, referral(discharge_date=TODAY - timedelta(days=45)), today=TODAY
        )
        assert result.method == "default"

    def test_discharge_window_is_absolute(self, deriver):
        result = deriver.derive_with_method(
            {}, referral(discharge_date=TODAY + timedelta(days=5)), today=TODAY
        )
        assert result.episode_type == "post_acute"

    def test_patient_discharge_date(self, deriver):
        patient = PatientRecord(id=101, last_discharge_date=TODAY - timedelta(days=3))
        assert deriver.derive({}, None, patient, today=TODAY) == "post_acute"

    def test_surgery(self, deriver):
        result = deriver.derive_with_method({}, referral(surgery_type="hip replacement"), today=TODAY)
        assert result.episode_type == "post_acute"
        assert result.method == "surgery_type"

    @pytest.mark.parametrize(
        "data,episode",
        [
            ({"prognosis": 2}, "palliative"),
            ({"hospice_enrolled": True}, "palliative"),
            ({"health_instability": 4}, "acute_exacerbation"),
            ({"acute_change": True}, "acute_exacerbation"),
            ({"weekly_therapy_minutes": 60}, "post_acute"),
            ({"rug_category": "Special Rehabilitation"}, "post_acute"),
            ({"adl_support_level": 4, "cognitive_complexity": 3}, "complex_continuing"),
            ({"active_conditions": ["a", "b", "c", "d"]}, "complex_continuing"),
        ],
    )
    def test_assessment_patterns(self, deriver, data, episode):
        result = deriver.derive_with_method(data, today=TODAY)
        assert result.episode_type == episode
        assert result.method == "assessment_patterns"
        assert result.confidence == "medium"

    def test_default_by_complexity(self, deriver):
        result = deriver.derive_with_method({"adl_support_level": 4}, today=TODAY)
        assert result.episode_type == "complex_continuing"
        assert result.method == "default"
        assert result.confidence == "low"

    def test_default_chronic(self, deriver):
        assert deriver.derive({}, today=TODAY) == "chronic"

    def test_all_episode_types_are_copies(self, deriver):
        types = deriver.all_episode_types()
        types["chronic"]["label"] = "changed"
        assert deriver.all_episode_types()["chronic"]["label"] == "Chronic"

    def test_is_valid_episode_type(self):
        assert is_valid_episode_type("palliative")
        assert not is_valid_episode_type("unknown")


# =============================================================================
# Rehabilitation potential
# =============================================================================


class TestRehabPotentialDeriver:
    @pytest.fixture
    def deriver(self):
        return RehabPotentialDeriver()

    def test_strong_candidate(self, deriver):
        data = {"weekly_therapy_minutes": 75, "adl_support_level": 3, "cognitive_complexity": 0}
        result = deriver.derive(data, "post_acute")
        # 30 episode + 15 therapy + 15 ADL + 10 cognition
        assert result.score == 70
        assert result.has_rehab_potential is True
        assert RehabPotentialDeriver.potential_level(result.score) == "high"

    def test_threshold(self, deriver):
        # 10 chronic + 10 intact cognition + 15 ADL
        result = deriver.derive({"adl_support_level": 2}, "chronic")
        assert result.score == 35
        assert result.has_rehab_potential is False

    def test_penalties_clamp_to_zero(self, deriver):
        data = {"cognitive_complexity": 5, "health_instability": 4, "adl_support_level": 6}
        result = deriver.derive(data, None)
        assert result.score == 0
        assert result.has_rehab_potential is False
        assert any("Severe cognitive impairment" in f for f in result.factors)

    def test_referral_factor_is_capped(self, deriver):
        ref = referral(notes="Rehabilitation after fall", surgery_type="hip", expected_length_of_stay=60)
        with_referral = deriver.derive({}, "palliative", ref)
        without = deriver.derive({}, "palliative")
        assert with_referral.score - without.score == 15
        assert "Post-surgical recovery expected" in with_referral.factors[-1]

    def test_functional_factor_is_capped(self, deriver):
        data = {"recent_decline": True, "not_at_baseline": True, "improvement_noted": True}
        result = deriver.derive(data, "palliative")
        # 20 functional (capped) + 10 intact cognition
        assert result.score == 30

    def test_score_never_exceeds_maximum(self, deriver):
        data = {
            "weekly_therapy_minutes": 120,
            "therapy_recommended": True,
            "recent_decline": True,
            "not_at_baseline": True,
            "adl_support_level": 3,
            "mobility_complexity": 3,
        }
        ref = referral(notes="rehab", surgery_type="knee", expected_length_of_stay=30)
        assert deriver.derive(data, "post_acute", ref).score == 100

    @pytest.mark.parametrize(
        "score,level", [(85, "high"), (40, "moderate"), (25, "low"), (5, "minimal")]
    )
    def test_potential_level(self, score, level):
        assert RehabPotentialDeriver.potential_level(score) == level
