"""Tests for the per-instrument assessment mappers."""

import pytest

from bundle_engine.schemas.assessment import RugClassification
from bundle_engine.schemas.needs_cluster import NeedsCluster
from bundle_engine.services.mappers import (
    BmhsAssessmentMapper,
    CaAssessmentMapper,
    HcAssessmentMapper,
    first_present,
    normalize_scale,
    rug_category_for,
)


# =============================================================================
# Shared helpers
# =============================================================================


class TestHelpers:
    def test_first_present_skips_none(self):
        assert first_present({"a": None, "b": 0, "c": 5}, "a", "b", "c") == 0

    def test_first_present_default(self):
        assert first_present({}, "a", default=7) == 7

    def test_normalize_scale_clamps(self):
        assert normalize_scale(9, 0, 6) == 6
        assert normalize_scale(-2, 0, 6) == 0
        assert normalize_scale(None, 1, 6) == 1
        assert normalize_scale("3", 0, 6) == 3

    @pytest.mark.parametrize(
        "group,category",
        [
            ("SE2", "Extensive Services"),
            ("ib0", "Impaired Cognition"),
            ("PE1", "Reduced Physical Function"),
            ("ZZ9", "Unknown"),
            (None, None),
        ],
    )
    def test_rug_category_for(self, group, category):
        assert rug_category_for(group) == category


# =============================================================================
# Home care
# =============================================================================


class TestHcAssessmentMapper:
    @pytest.fixture
    def mapper(self):
        return HcAssessmentMapper()

    def test_core_scales(self, mapper, make_assessment, hc_raw_items):
        fields = mapper.map_to_profile_fields(make_assessment("hc", hc_raw_items))
        assert fields["adl_support_level"] == 4
        assert fields["cognitive_complexity"] == 3
        assert fields["health_instability"] == 3
        assert fields["weekly_therapy_minutes"] == 75
        assert fields["has_full_hc_assessment"] is True

    def test_section_codes_are_accepted(self, mapper, make_assessment):
        fields = mapper.map_to_profile_fields(make_assessment("hc", {"adl_h": 5, "CPS": 2, "CHESS": 1}))
        assert fields["adl_support_level"] == 5
        assert fields["cognitive_complexity"] == 2
        assert fields["health_instability"] == 1

    def test_summary_scales_outside_raw_items(self, mapper, make_assessment):
        fields = mapper.map_to_profile_fields(make_assessment("hc", {}, adl_hierarchy=2, cps=1, chess=4))
        assert fields["adl_support_level"] == 2
        assert fields["cognitive_complexity"] == 1
        assert fields["health_instability"] == 4

    @pytest.mark.parametrize(
        "raw,expected",
        [({}, 0), ({"fall_history": 1}, 1), ({"falls_last_90": 1}, 1), ({"J1i": 2}, 2)],
    )
    def test_falls_risk_level(self, mapper, make_assessment, raw, expected):
        assert mapper.map_to_profile_fields(make_assessment("hc", raw))["falls_risk_level"] == expected

    def test_pressure_ulcer_sets_high_skin_risk(self, mapper, make_assessment):
        fields = mapper.map_to_profile_fields(make_assessment("hc", {"pressure_ulcer": 2}))
        assert fields["skin_integrity_risk"] == 2
        assert "pressure_ulcer" in fields["clinical_risk_flags"]

    def test_caregiver_fields(self, mapper, make_assessment, hc_raw_items):
        fields = mapper.map_to_profile_fields(make_assessment("hc", hc_raw_items))
        assert fields["caregiver_stress_level"] == 3
        assert fields["caregiver_requires_relief"] is True
        assert fields["caregiver_availability_score"] == 3

    def test_helper_living_with_patient(self, mapper, make_assessment):
        fields = mapper.map_to_profile_fields(
            make_assessment("hc", {"informal_helper": 1, "helper_lives_with": 1})
        )
        assert fields["caregiver_availability_score"] == 5

    def test_extensive_services(self, mapper, make_assessment):
        fields = mapper.map_to_profile_fields(make_assessment("hc", {"dialysis": 1, "oxygen_therapy": 1}))
        assert fields["requires_extensive_services"] is True
        assert fields["extensive_services"] == ["oxygen_therapy"]

    def test_behaviour(self, mapper, make_assessment):
        fields = mapper.map_to_profile_fields(
            make_assessment("hc", {"verbal_abuse": 2, "wandering": 1})
        )
        assert fields["behavioural_complexity"] == 2
        assert fields["has_wandering_risk"] is True
        assert fields["has_aggression_risk"] is True
        assert fields["behavioural_flags"] == ["verbal_aggression", "wandering"]

    def test_rug_from_classification(self, mapper, make_assessment):
        assessment = make_assessment(
            "hc", {}, rug_classification=RugClassification(rug_group="CC0", numeric_rank=12)
        )
        fields = mapper.map_to_profile_fields(assessment)
        assert fields["rug_group"] == "CC0"
        assert fields["rug_category"] == "Clinically Complex"
        assert fields["rug_numeric_rank"] == 12

    def test_rug_from_raw_items(self, mapper, make_assessment):
        fields = mapper.map_to_profile_fields(make_assessment("hc", {"rug_group": "PA1"}))
        assert fields["rug_group"] == "PA1"
        assert fields["rug_category"] == "Reduced Physical Function"

    def test_populatable_fields_cover_mapped_fields(self, mapper, make_assessment, hc_raw_items):
        fields = mapper.map_to_profile_fields(make_assessment("hc", hc_raw_items))
        assert set(fields) == set(mapper.populatable_fields())


# =============================================================================
# Contact assessment
# =============================================================================


class TestCaAssessmentMapper:
    @pytest.fixture
    def mapper(self):
        return CaAssessmentMapper()

    def test_adl_from_item_sum(self, mapper):
        # 2 + 2 + 1 = 5, 5 / 3 rounds half up to 2
        raw = {"ca_bathing": 2, "ca_dressing": 2, "ca_toileting": 1}
        assert mapper.adl_support_level(raw) == 2

    def test_adl_capacity_score_wins(self, mapper):
        assert mapper.adl_support_level({"adl_capacity_score": 5, "ca_bathing": 4}) == 5

    def test_cognitive_sum(self, mapper):
        raw = {"ca_short_term_memory": 1, "ca_decision_making": 2, "ca_orientation": 1}
        assert mapper.cognitive_complexity(raw) == 4

    def test_health_instability(self, mapper):
        raw = {"ca_acute_change": 1, "ca_unstable_condition": 1, "ca_recent_hospital": 1}
        assert mapper.health_instability(raw) == 5

    @pytest.mark.parametrize(
        "raw,cluster",
        [
            ({"adl_capacity_score": 4, "ca_decision_making": 3}, NeedsCluster.HIGH_ADL_COGNITIVE),
            ({"adl_capacity_score": 4}, NeedsCluster.HIGH_ADL),
            ({"ca_decision_making": 3}, NeedsCluster.COGNITIVE_COMPLEX),
            ({"ca_aggression": 1, "ca_wandering": 1, "ca_resists_care": 1}, NeedsCluster.MH_COMPLEX),
            ({"ca_acute_change": 1, "ca_recent_hospital": 1}, NeedsCluster.MEDICAL_COMPLEX),
            ({"adl_capacity_score": 2}, NeedsCluster.MODERATE_ADL),
            ({"adl_capacity_score": 1}, NeedsCluster.LOW_ADL),
            ({}, NeedsCluster.GENERAL),
        ],
    )
    def test_needs_cluster_priority(self, mapper, raw, cluster):
        assert mapper.derive_needs_cluster(raw) is cluster

    def test_mapped_fields(self, mapper, make_assessment):
        fields = mapper.map_to_profile_fields(
            make_assessment("ca", {"adl_capacity_score": 4, "ca_lives_alone": 1, "ca_fall_history": 2})
        )
        assert fields["needs_cluster"] == "HIGH_ADL"
        assert fields["lives_alone"] is True
        assert fields["falls_risk_level"] == 2
        assert fields["has_ca_assessment"] is True
        assert "rug_group" not in fields


# =============================================================================
# Behavioural screener
# =============================================================================


class TestBmhsAssessmentMapper:
    @pytest.fixture
    def mapper(self):
        return BmhsAssessmentMapper()

    def test_disordered_thought_score(self, mapper):
        raw = {"bmhs_hallucinations": 2, "bmhs_delusions": 1, "bmhs_irritability": 0}
        assert mapper.disordered_thought_score(raw) == 3

    @pytest.mark.parametrize(
        "raw,level",
        [
            ({}, 0),
            ({"bmhs_self_injury_considered": 1}, 1),
            ({"bmhs_self_injury_considered": 1, "bmhs_others_concern_self_harm": 1}, 2),
            ({"bmhs_suicide_plan": 1}, 2),
            ({"bmhs_suicide_plan": 1, "bmhs_command_hallucinations": 1}, 3),
            ({"bmhs_self_injury_attempt": 1}, 3),
        ],
    )
    def test_self_harm_risk_level(self, mapper, raw, level):
        assert mapper.self_harm_risk_level(raw) == level

    @pytest.mark.parametrize(
        "raw,level",
        [
            ({}, 0),
            ({"bmhs_violent_ideation": 1}, 1),
            ({"bmhs_violence_to_others": 1}, 2),
            ({"bmhs_intimidation": 2, "bmhs_weapon_history": 1}, 2),
            ({"bmhs_violence_to_others": 2}, 3),
        ],
    )
    def test_violence_risk_level(self, mapper, raw, level):
        assert mapper.violence_risk_level(raw) == level

    def test_crisis_flag(self, mapper, make_assessment):
        fields = mapper.map_to_profile_fields(make_assessment("bmhs", {"bmhs_violence_to_others": 2}))
        assert fields["violence_risk_level"] == 3
        assert fields["requires_crisis_intervention"] is True
        assert fields["requires_behavioural_support"] is True

    def test_missing_insight_reads_as_full(self, mapper):
        assert mapper.insight_level({}) == "full"
        assert mapper.insight_level({"bmhs_insight": 2}) == "none"
        assert mapper.insight_level({"bmhs_insight": 7}) == "unknown"

    def test_mental_health_complexity_takes_larger_derivation(self, mapper, make_assessment):
        raw = {"depression_rating": 4, "anxiety_scale": 3, "bmhs_delusions": 1}
        fields = mapper.map_to_profile_fields(make_assessment("bmhs", raw))
        # Items give 1, summary scales give 2
        assert fields["mental_health_complexity"] == 2

    def test_command_hallucinations_need_psychiatric_consult(self, mapper):
        assert mapper.requires_psychiatric_consult({"bmhs_command_hallucinations": 1}) is True
        assert mapper.requires_psychiatric_consult({}) is False

    def test_squalid_home_flag(self, mapper, make_assessment):
        fields = mapper.map_to_profile_fields(make_assessment("bmhs", {"bmhs_squalid_home": 1}))
        assert fields["has_home_environment_risk"] is True
