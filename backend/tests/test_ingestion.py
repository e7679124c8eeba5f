"""Tests for assessment ingestion and profile merging."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from bundle_engine.config import settings
from bundle_engine.repositories.assessments import InMemoryAssessmentStore
from bundle_engine.schemas.assessment import PatientRecord, Referral, RugClassification
from bundle_engine.services.cache import TTLCache
from bundle_engine.services.ingestion import (
    AssessmentIngestionService,
    calculate_completeness_score,
    calculate_confidence_level,
    default_algorithm_scores,
    extract_from_referral,
)

PATIENT_ID = 101


@pytest.fixture
def patient():
    return PatientRecord(id=PATIENT_ID, region_code="R1", region_name="Central")


def ingestion_for(*assessments, referral=None, patient=None) -> AssessmentIngestionService:
    store = InMemoryAssessmentStore(
        assessments=assessments,
        referrals=[referral] if referral else [],
        patients=[patient] if patient else [],
    )
    return AssessmentIngestionService(store)


# =============================================================================
# Full build
# =============================================================================


class TestBuildProfile:
    def test_home_care_profile(self, make_assessment, hc_raw_items, patient):
        hc = make_assessment("hc", hc_raw_items, rug_classification=RugClassification(rug_group="CC0"))
        profile = ingestion_for(hc, patient=patient).build_profile(PATIENT_ID)

        assert profile.primary_assessment_type == "hc"
        assert profile.has_full_hc_assessment is True
        assert profile.rug_group == "CC0"
        assert profile.rug_category == "Clinically Complex"
        assert profile.adl_support_level == 4
        assert profile.falls_risk_level == 2
        assert profile.region_code == "R1"
        assert profile.confidence_level == "high"
        assert profile.data_completeness_score == 1.0

    def test_derived_fields(self, make_assessment, hc_raw_items):
        profile = ingestion_for(make_assessment("hc", hc_raw_items)).build_profile(PATIENT_ID)
        # 75 therapy minutes a week reads as post-acute
        assert profile.episode_type == "post_acute"
        assert profile.rehab_potential_score == 64
        assert profile.has_rehab_potential is True

    def test_algorithm_scores_from_assessment(self, make_assessment, hc_raw_items):
        profile = ingestion_for(make_assessment("hc", hc_raw_items)).build_profile(PATIENT_ID)
        assert profile.chess_ca_score == 2
        assert profile.service_urgency_score == 2

    def test_contact_assessment_only(self, make_assessment):
        ca = make_assessment(
            "ca",
            {"adl_capacity_score": 4, "ca_short_term_memory": 1, "ca_decision_making": 1, "ca_orientation": 1},
        )
        profile = ingestion_for(ca).build_profile(PATIENT_ID)

        assert profile.primary_assessment_type == "ca"
        assert profile.needs_cluster == "HIGH_ADL_COGNITIVE"
        assert profile.confidence_level == "medium"
        assert profile.rug_group is None
        assert "RUG Classification" in profile.missing_data_fields
        assert profile.data_quality_notes.startswith("CA assessment only")

    def test_contact_assessment_fills_zero_fields(self, make_assessment):
        hc = make_assessment("hc", {"adl_hierarchy": 0, "cps": 2})
        ca = make_assessment("ca", {"adl_capacity_score": 3, "ca_decision_making": 4})
        profile = ingestion_for(hc, ca).build_profile(PATIENT_ID)

        assert profile.adl_support_level == 3
        assert profile.cognitive_complexity == 2
        assert profile.primary_assessment_type == "hc"

    def test_behavioural_screener_overwrites(self, make_assessment):
        hc = make_assessment(
            "hc", {"verbal_abuse": 2, "physical_abuse": 1, "resists_care": 1, "wandering": 1}
        )
        bmhs = make_assessment("bmhs", {})
        profile = ingestion_for(hc, bmhs).build_profile(PATIENT_ID)

        assert profile.behavioural_complexity == 0
        assert profile.has_bmhs_assessment is True
        assert profile.insight_level == "full"

    def test_referral_fills_gaps(self, make_assessment):
        referral = Referral(
            patient_id=PATIENT_ID,
            has_internet=True,
            medication_count=6,
            diagnoses='["CHF", "COPD"]',
        )
        profile = ingestion_for(make_assessment("hc", {"adl_hierarchy": 2}), referral=referral).build_profile(
            PATIENT_ID
        )
        assert profile.has_internet is True
        assert profile.medication_count == 6
        assert profile.active_conditions == ("CHF", "COPD")
        assert profile.has_referral_data is True

    def test_referral_can_be_excluded(self, make_assessment):
        referral = Referral(patient_id=PATIENT_ID, has_internet=True)
        service = ingestion_for(make_assessment("hc", {}), referral=referral)
        profile = service.build_profile(PATIENT_ID, include_referral=False)
        assert profile.has_internet is False
        assert profile.has_referral_data is False

    def test_referral_only(self):
        referral = Referral(patient_id=PATIENT_ID, referral_type="palliative")
        profile = ingestion_for(referral=referral).build_profile(PATIENT_ID)

        assert profile.primary_assessment_type == "referral_only"
        assert profile.episode_type == "palliative"
        assert profile.confidence_level == "low"
        assert profile.is_sufficient_for_bundling is True

    def test_patient_rug_classification_used_after_merge(self, make_assessment):
        patient = PatientRecord(
            id=PATIENT_ID,
            latest_rug_classification=RugClassification(rug_group="IB0", rug_category="Impaired Cognition"),
        )
        profile = ingestion_for(make_assessment("hc", {}), patient=patient).build_profile(PATIENT_ID)
        assert profile.rug_group == "IB0"
        assert profile.rug_category == "Impaired Cognition"

    def test_old_assessments_are_ignored(self, make_assessment):
        old = make_assessment("hc", {"adl_hierarchy": 5}, days_ago=400)
        profile = ingestion_for(old).build_profile(PATIENT_ID)
        assert profile.has_full_hc_assessment is False
        assert profile.adl_support_level == 0

    def test_latest_assessment_wins(self, make_assessment):
        older = make_assessment("hc", {"adl_hierarchy": 2}, days_ago=60)
        newer = make_assessment("hc", {"adl_hierarchy": 5}, days_ago=5)
        profile = ingestion_for(older, newer).build_profile(PATIENT_ID)
        assert profile.adl_support_level == 5

    def test_no_data(self):
        profile = ingestion_for().build_profile(PATIENT_ID)
        assert profile.is_sufficient_for_bundling is False
        assert profile.confidence_level == "low"

    def test_failure_returns_minimal_profile(self):
        store = MagicMock()
        store.latest_assessment.side_effect = RuntimeError("store down")
        profile = AssessmentIngestionService(store).build_profile(PATIENT_ID)

        assert profile.patient_id == PATIENT_ID
        assert profile.data_quality_notes == "Minimal profile - no assessment data available"

    def test_failing_referral_lookup_is_tolerated(self, make_assessment):
        store = InMemoryAssessmentStore(assessments=[make_assessment("hc", {"adl_hierarchy": 3})])
        store.latest_referral = MagicMock(side_effect=RuntimeError("no referrals table"))
        profile = AssessmentIngestionService(store).build_profile(PATIENT_ID)
        assert profile.adl_support_level == 3
        assert profile.has_referral_data is False


# =============================================================================
# Caching
# =============================================================================


class TestProfileCache:
    def test_cache_hit(self, make_assessment):
        service = ingestion_for(make_assessment("hc", {"adl_hierarchy": 3}))
        first = service.build_profile(PATIENT_ID)
        assert service.build_profile(PATIENT_ID) is first

    def test_force_refresh(self, make_assessment):
        service = ingestion_for(make_assessment("hc", {"adl_hierarchy": 3}))
        first = service.build_profile(PATIENT_ID)
        assert service.build_profile(PATIENT_ID, force_refresh=True) is not first

    def test_invalidate(self, make_assessment):
        service = ingestion_for(make_assessment("hc", {"adl_hierarchy": 3}))
        first = service.build_profile(PATIENT_ID)
        service.invalidate_cache(PATIENT_ID)
        assert service.build_profile(PATIENT_ID) is not first

    def test_cached_profile_cannot_be_altered(self, make_assessment):
        service = ingestion_for(make_assessment("ca", {"adl_capacity_score": 4}))
        first = service.build_profile(PATIENT_ID)
        with pytest.raises(AttributeError):
            first.missing_data_fields.append("tampered")

        cached = service.build_profile(PATIENT_ID)
        assert cached is first
        assert "tampered" not in cached.missing_data_fields

    def test_minimal_profile_is_not_cached(self):
        store = MagicMock()
        store.latest_assessment.side_effect = RuntimeError("store down")
        cache = TTLCache()
        AssessmentIngestionService(store, cache=cache).build_profile(PATIENT_ID)
        assert len(cache) == 0

    def test_ttl_expiry(self):
        now = [0.0]
        cache = TTLCache(clock=lambda: now[0])
        cache.put("k", "v", 10)
        assert cache.get("k") == "v"
        now[0] = 10.0
        assert cache.get("k") is None

    def test_put_sweeps_expired_entries(self):
        now = [0.0]
        cache = TTLCache(clock=lambda: now[0])
        for patient_id in range(5):
            cache.put(f"profile:{patient_id}", patient_id, 10)
        now[0] = 11.0
        cache.put("profile:99", 99, 10)

        assert len(cache) == 1
        assert cache.get("profile:99") == 99

    def test_cache_key(self):
        assert AssessmentIngestionService.cache_key(7) == "bundle_engine:patient_profile:7"


# =============================================================================
# Data sources
# =============================================================================


class TestDataSources:
    def test_available_data_sources(self, make_assessment):
        referral = Referral(patient_id=PATIENT_ID, source="Hospital", created_at=datetime.now(timezone.utc))
        service = ingestion_for(make_assessment("ca", {}), referral=referral)
        sources = service.available_data_sources(PATIENT_ID)

        assert sources["has_ca"] is True
        assert sources["has_hc"] is False
        assert sources["has_referral"] is True
        assert sources["referral_source"] == "Hospital"
        assert service.has_sufficient_data(PATIENT_ID) is True

    def test_insufficient(self):
        assert ingestion_for().has_sufficient_data(PATIENT_ID) is False

    def test_configured_cutoff_applies(self, make_assessment, monkeypatch):
        monkeypatch.setattr(settings, "assessment_cutoff_days", 30)
        service = ingestion_for(make_assessment("hc", {"adl_hierarchy": 3}, days_ago=60))

        assert service.available_data_sources(PATIENT_ID)["has_hc"] is False
        assert service.has_sufficient_data(PATIENT_ID) is False
        assert service.build_profile(PATIENT_ID).has_full_hc_assessment is False

    def test_explicit_zero_cutoff_is_respected(self, make_assessment):
        service = ingestion_for(make_assessment("hc", {"adl_hierarchy": 3}, days_ago=1))

        assert service.available_data_sources(PATIENT_ID, assessment_cutoff_days=0)["has_hc"] is False
        assert service.build_profile(PATIENT_ID, assessment_cutoff_days=0).has_full_hc_assessment is False


# =============================================================================
# Helpers
# =============================================================================


class TestHelpers:
    def test_confidence_levels(self):
        assert calculate_confidence_level([], {}) == "low"
        assert calculate_confidence_level([1.0], {"has_full_hc_assessment": True}) == "high"
        assert calculate_confidence_level([1.0], {}) == "medium"
        assert calculate_confidence_level([0.7, 0.4], {}) == "medium"
        assert calculate_confidence_level([0.5, 0.4], {}) == "low"

    def test_completeness_counts_non_zero(self):
        data = {"adl_support_level": 2, "cognitive_complexity": 0, "episode_type": "chronic"}
        assert calculate_completeness_score(data) == pytest.approx(0.4)

    def test_referral_false_flags_left_unset(self):
        data = extract_from_referral(Referral(patient_id=PATIENT_ID, diagnoses="not json"))
        assert data == {"has_referral_data": True}

    def test_referral_diagnosis_list(self):
        data = extract_from_referral(Referral(patient_id=PATIENT_ID, diagnoses=["Diabetes"], is_rural=True))
        assert data["active_conditions"] == ["Diabetes"]
        assert data["is_rural"] is True

    def test_default_algorithm_scores(self):
        scores = default_algorithm_scores(
            {"adl_support_level": 3, "cognitive_complexity": 1, "health_instability": 4}
        )
        assert scores["personal_support_score"] == 4
        assert scores["rehabilitation_score"] == 3
        assert scores["service_urgency_score"] == 3
        assert scores["chess_ca_score"] == 4
        assert scores["self_reliance_index"] is False
