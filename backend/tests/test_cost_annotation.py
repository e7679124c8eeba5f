"""Tests for cost and operational annotation."""

import pytest

from bundle_engine.schemas.axis import ScenarioAxis
from bundle_engine.schemas.scenario import ScenarioBundle, ScenarioServiceLine
from bundle_engine.services.cost_annotation import CostAnnotationService


def line(category, discipline, count, *, period="week", cost=0.0, mode="in_person", duration=60, **kwargs):
    return ScenarioServiceLine(
        service_category=category,
        service_name=category.title(),
        frequency_count=count,
        frequency_period=period,
        duration_minutes=duration,
        discipline=discipline,
        cost_per_visit=cost,
        delivery_mode=mode,
        **kwargs,
    )


def bundle(*lines, axis=ScenarioAxis.SAFETY_STABILITY, title="Safety"):
    return ScenarioBundle(
        patient_id=101,
        primary_axis=axis,
        title=title,
        description="test",
        service_lines=list(lines),
    )


@pytest.fixture
def service():
    return CostAnnotationService(within_threshold=0.85, near_threshold=1.0, reference_cap=5000)


@pytest.fixture
def nursing_bundle():
    return bundle(line("nursing", "rn", 7, cost=110), line("personal_support", "psw", 2, cost=35))


class TestCostStatus:
    @pytest.mark.parametrize(
        "cost,status",
        [(0, "within_cap"), (4250, "within_cap"), (4251, "near_cap"), (5000, "near_cap"), (5001, "over_cap")],
    )
    def test_boundaries(self, service, cost, status):
        assert service.determine_cost_status(cost) == status

    def test_explicit_cap(self, service):
        assert service.determine_cost_status(900, reference_cap=1000) == "near_cap"

    @pytest.mark.parametrize("cap", [0, -100])
    def test_non_positive_cap(self, service, cap):
        with pytest.raises(ValueError, match="reference_cap must be positive"):
            service.determine_cost_status(100, reference_cap=cap)

    def test_defaults_from_settings(self):
        service = CostAnnotationService()
        assert service.within_threshold == 0.85
        assert service.near_threshold == 1.0
        assert service.reference_cap == 5000


class TestAnnotateScenario:
    def test_totals(self, service, nursing_bundle):
        annotated = service.annotate_scenario(nursing_bundle)

        assert annotated.weekly_estimated_cost == 840
        assert annotated.cap_utilization == 16.8
        assert annotated.cost_status == "within_cap"
        assert annotated.total_weekly_hours == 9.0
        assert annotated.total_weekly_visits == 9
        assert annotated.discipline_count == 2
        assert annotated.in_person_percentage == 100.0

    def test_original_is_untouched(self, service, nursing_bundle):
        service.annotate_scenario(nursing_bundle)
        assert nursing_bundle.weekly_estimated_cost == 0.0

    def test_cost_note(self, service, nursing_bundle):
        annotated = service.annotate_scenario(nursing_bundle)
        assert annotated.cost_note == (
            "Consistent daily support for safety and stability. "
            "Resource use at 17% of typical care parameters."
        )

    def test_over_cap_note(self, service):
        annotated = service.annotate_scenario(bundle(line("nursing", "rn", 60, cost=110)))
        assert annotated.cost_status == "over_cap"
        assert "reflects intensive service needs" in annotated.cost_note

    def test_per_call_cap(self, service, nursing_bundle):
        annotated = service.annotate_scenario(nursing_bundle, reference_cap=900)
        assert annotated.reference_cap == 900
        assert annotated.cost_status == "near_cap"

    def test_empty_bundle(self, service):
        annotated = service.annotate_scenario(bundle())
        assert annotated.weekly_estimated_cost == 0
        assert annotated.total_weekly_visits == 0
        assert annotated.in_person_percentage == 100.0
        assert annotated.virtual_percentage == 0.0


class TestLineCost:
    def test_precomputed_weekly_cost_wins(self, service):
        priced = line("nursing", "rn", 7, cost=110, weekly_estimated_cost=42.0)
        assert service.calculate_service_line_cost(priced) == 42.0

    def test_daily_frequency(self, service):
        assert service.calculate_service_line_cost(line("personal_support", "psw", 1, period="day", cost=35)) == 245

    def test_episode_services_cost_nothing_weekly(self, service):
        assert service.calculate_service_line_cost(line("nursing", "rn", 1, period="episode", cost=110)) == 0


class TestOperationalMetrics:
    def test_remote_split(self, service):
        metrics = service.calculate_operational_metrics(
            [line("nursing", "rn", 7), line("remote_monitoring", "rn", 7, mode="automated")]
        )
        assert metrics["in_person_percentage"] == 50.0
        assert metrics["virtual_percentage"] == 50.0
        assert metrics["discipline_count"] == 1

    def test_monthly_visits_round_half_up(self, service):
        metrics = service.calculate_operational_metrics([line("nursing", "rn", 4, period="month")])
        assert metrics["total_weekly_visits"] == 1

    def test_hybrid_counts_in_person(self, service):
        metrics = service.calculate_operational_metrics([line("nursing", "rn", 2, mode="hybrid")])
        assert metrics["in_person_percentage"] == 100.0


class TestBreakdowns:
    def test_by_category(self, service, nursing_bundle):
        breakdown = service.cost_breakdown_by_category(nursing_bundle.service_lines)
        assert breakdown["nursing"] == {"weekly_cost": 770, "percentage": 91.7, "service_count": 1}
        assert breakdown["personal_support"]["percentage"] == 8.3

    def test_by_discipline(self, service, nursing_bundle):
        breakdown = service.cost_breakdown_by_discipline(nursing_bundle.service_lines)
        assert breakdown["rn"]["hours"] == 7.0
        assert breakdown["psw"]["weekly_cost"] == 70

    def test_comparison_note(self, service, nursing_bundle):
        richer = bundle(
            *nursing_bundle.service_lines,
            line("therapy", "pt", 2, cost=120, duration=90),
            title="Recovery",
        )
        note = service.generate_comparison_note(nursing_bundle, richer)
        assert note == "Recovery is $240/week higher in resource use; 3.0 more hours of direct service per week"

    def test_comparison_note_for_similar_bundles(self, service, nursing_bundle):
        assert service.generate_comparison_note(nursing_bundle, nursing_bundle) == ""
