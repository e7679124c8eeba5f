"""Tests for profile and scenario value objects."""

import pytest

from bundle_engine.schemas.axis import ScenarioAxis
from bundle_engine.schemas.profile import PatientNeedsProfile
from bundle_engine.schemas.scenario import ScenarioBundle, ScenarioServiceLine, weekly_visits


def line(code: str, category: str, discipline: str, **kwargs) -> ScenarioServiceLine:
    kwargs.setdefault("frequency_count", 2)
    kwargs.setdefault("frequency_period", "week")
    kwargs.setdefault("duration_minutes", 60)
    return ScenarioServiceLine(
        service_code=code,
        service_category=category,
        service_name=code,
        discipline=discipline,
        **kwargs,
    )


@pytest.fixture
def bundle() -> ScenarioBundle:
    return ScenarioBundle(
        patient_id=101,
        primary_axis=ScenarioAxis.SAFETY_STABILITY,
        title="Safety & Stability",
        description="test",
        weekly_estimated_cost=840.0,
        service_lines=[
            line("NUR", "nursing", "rn", priority_level="core"),
            line("PSW", "psw", "psw", is_safety_critical=True),
            line("HMK", "homemaking", "psw", priority_level="optional"),
        ],
    )


# =============================================================================
# Service lines
# =============================================================================


class TestServiceLine:
    @pytest.mark.parametrize(
        "count,period,expected",
        [(3, "week", 3.0), (2, "day", 14.0), (433, "month", 100.0), (1, "episode", 0.0)],
    )
    def test_weekly_visits(self, count, period, expected):
        assert weekly_visits(count, period) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "count,period,label",
        [
            (1, "day", "Once daily"),
            (2, "day", "2 times daily"),
            (1, "week", "Once per week"),
            (3, "week", "3 times per week"),
            (2, "month", "2 times per month"),
            (1, "episode", "One-time"),
        ],
    )
    def test_frequency_label(self, count, period, label):
        assert line("NUR", "nursing", "rn", frequency_count=count, frequency_period=period).frequency_label == label

    @pytest.mark.parametrize("minutes,label", [(45, "45 min"), (60, "1 hr"), (120, "2 hrs"), (90, "1 hr 30 min")])
    def test_duration_label(self, minutes, label):
        assert line("NUR", "nursing", "rn", duration_minutes=minutes).duration_label == label

    def test_labels_and_hours(self):
        tele = line("TELE", "telehealth", "rn", delivery_mode="virtual", duration_minutes=30, frequency_count=3)
        assert tele.discipline_label == "Registered Nurse"
        assert tele.delivery_mode_label == "Virtual"
        assert tele.priority_badge == "primary"
        assert tele.weekly_hours == 1.5
        assert line("X", "misc", "chw").discipline_label == "CHW"


# =============================================================================
# Bundles
# =============================================================================


class TestScenarioBundle:
    def test_groupings(self, bundle):
        assert list(bundle.lines_by_category()) == ["nursing", "psw", "homemaking"]
        assert [s.service_code for s in bundle.lines_by_discipline()["psw"]] == ["PSW", "HMK"]

        by_priority = bundle.lines_by_priority()
        assert [s.service_code for s in by_priority["core"]] == ["NUR"]
        assert [s.service_code for s in by_priority["recommended"]] == ["PSW"]
        assert [s.service_code for s in by_priority["optional"]] == ["HMK"]

    def test_core_services_include_safety_critical(self, bundle):
        assert [s.service_code for s in bundle.core_services()] == ["NUR", "PSW"]

    def test_disciplines_and_categories(self, bundle):
        assert bundle.unique_disciplines() == ["rn", "psw"]
        assert bundle.has_service_category("nursing") is True
        assert bundle.has_service_category("respite") is False

    def test_summary(self, bundle):
        assert bundle.summary() == "Safety & Stability (safety_stability) - 3 services, $840/week (within_cap)"

    @pytest.mark.parametrize(
        "status,label,badge",
        [
            ("within_cap", "Within Reference", "success"),
            ("near_cap", "Near Reference", "warning"),
            ("over_cap", "Over Reference", "danger"),
        ],
    )
    def test_cost_status_presentation(self, bundle, status, label, badge):
        annotated = bundle.model_copy(update={"cost_status": status})
        assert annotated.cost_status_label == label
        assert annotated.cost_status_badge == badge

    def test_copies_leave_original_untouched(self, bundle):
        flagged = bundle.with_safety_result(["check falls"], [])
        assert flagged.safety_warnings == ("check falls",)
        assert flagged.safety_errors is None
        assert flagged.meets_safety_requirements is True
        assert bundle.is_validated is False

        explained = bundle.with_explanation("Daily nursing.")
        assert explained.has_ai_explanation is True
        assert bundle.ai_explanation is None

    def test_copies_share_no_mutable_collections(self, bundle):
        reordered = bundle.with_display_order(9)
        assert isinstance(reordered.service_lines, tuple)
        with pytest.raises(AttributeError):
            reordered.service_lines.append(line("RESP", "respite", "psw"))
        with pytest.raises(AttributeError):
            reordered.key_benefits.append("injected")
        assert len(bundle.service_lines) == 3

    def test_list_input_is_stored_as_tuple(self):
        flagged = ScenarioBundle(
            patient_id=101,
            primary_axis=ScenarioAxis.BALANCED,
            title="Balanced Care",
            description="test",
            risks_addressed=["Falls prevention"],
            secondary_axes=[ScenarioAxis.SAFETY_STABILITY],
        )
        assert flagged.risks_addressed == ("Falls prevention",)
        assert flagged.to_dict()["context"]["risks_addressed"] == ["Falls prevention"]

    def test_minimal(self):
        minimal = ScenarioBundle.minimal(101, ScenarioAxis.BALANCED)
        assert minimal.title == "Balanced Care"
        assert minimal.service_lines == ()
        assert minimal.confidence_level == "low"


# =============================================================================
# Needs profile
# =============================================================================


class TestNeedsProfile:
    @pytest.mark.parametrize(
        "fields,primary,kind",
        [
            ({"rug_group": "CC0", "needs_cluster": "HIGH_ADL"}, "CC0", "RUG-III/HC"),
            ({"needs_cluster": "HIGH_ADL"}, "HIGH_ADL", "Needs Cluster"),
            ({}, None, "Unclassified"),
        ],
    )
    def test_classification(self, make_profile, fields, primary, kind):
        profile = make_profile(**fields)
        assert profile.primary_classification == primary
        assert profile.classification_type == kind

    @pytest.mark.parametrize(
        "level,label",
        [
            ("high", "High Confidence (Full HC Assessment)"),
            ("medium", "Medium Confidence (CA + supplementary data)"),
            ("low", "Low Confidence (Limited assessment data)"),
        ],
    )
    def test_confidence_label(self, make_profile, level, label):
        assert make_profile(confidence_level=level).confidence_label == label

    @pytest.mark.parametrize(
        "fields,expected",
        [
            ({}, False),
            ({"has_full_hc_assessment": True}, True),
            ({"has_ca_assessment": True}, True),
            ({"has_referral_data": True}, True),
            ({"has_bmhs_assessment": True}, False),
        ],
    )
    def test_sufficient_for_bundling(self, make_profile, fields, expected):
        assert make_profile(**fields).is_sufficient_for_bundling is expected

    def test_deidentified_view(self, make_profile):
        profile = make_profile(rug_group="CC0")
        assert "patient_id" not in profile.to_deidentified_dict()
        assert profile.to_dict()["patient_id"] == 101
        assert profile.to_dict()["case_classification"]["rug_group"] == "CC0"

    def test_minimal(self):
        profile = PatientNeedsProfile.minimal(101)
        assert profile.confidence_level == "low"
        assert profile.is_sufficient_for_bundling is False
