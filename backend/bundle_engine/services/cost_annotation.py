"""Cost and operational annotation for scenario bundles.

Cost is a reference point, never a hard limit. Notes describe resource use
in clinical and operational terms.
"""

from collections.abc import Sequence

from bundle_engine.config import settings
from bundle_engine.schemas.axis import ScenarioAxis
from bundle_engine.schemas.scenario import CostStatus, ScenarioBundle, ScenarioServiceLine
from bundle_engine.utils.numbers import round_half_up, round_to

AXIS_COST_NOTES = {
    ScenarioAxis.RECOVERY_REHAB: "Therapy-intensive approach to support recovery goals.",
    ScenarioAxis.SAFETY_STABILITY: "Consistent daily support for safety and stability.",
    ScenarioAxis.TECH_ENABLED: "Remote monitoring reduces in-person visits while maintaining oversight.",
    ScenarioAxis.CAREGIVER_RELIEF: "Includes family support services to sustain caregiving.",
    ScenarioAxis.MEDICAL_INTENSIVE: "High clinical intensity for complex medical needs.",
    ScenarioAxis.COGNITIVE_SUPPORT: "Specialized support for cognitive and behavioural needs.",
    ScenarioAxis.COMMUNITY_INTEGRATED: "Community programs provide social connection and structure.",
    ScenarioAxis.BALANCED: "Balanced allocation across all care domains.",
}

_REMOTE_MODES = ("virtual", "automated")


class CostAnnotationService:
    def __init__(
        self,
        within_threshold: float | None = None,
        near_threshold: float | None = None,
        reference_cap: float | None = None,
    ):
        self.within_threshold = (
            within_threshold if within_threshold is not None else settings.cap_threshold_within
        )
        self.near_threshold = near_threshold if near_threshold is not None else settings.cap_threshold_near
        self.reference_cap = reference_cap if reference_cap is not None else settings.reference_cap

    def annotate_scenario(
        self, scenario: ScenarioBundle, reference_cap: float | None = None
    ) -> ScenarioBundle:
        """Return a copy of ``scenario`` with cost and operational fields recomputed."""
        cap = self._cap(reference_cap)
        weekly_cost = self.calculate_total_weekly_cost(scenario.service_lines)
        metrics = self.calculate_operational_metrics(scenario.service_lines)

        return scenario.model_copy(
            update={
                "weekly_estimated_cost": round_to(weekly_cost, 2),
                "reference_cap": cap,
                "cost_status": self.determine_cost_status(weekly_cost, cap),
                "cap_utilization": round_to(weekly_cost / cap * 100, 1),
                "cost_note": self.generate_cost_note(scenario, cap),
                "total_weekly_hours": round_to(metrics["total_weekly_hours"], 1),
                "total_weekly_visits": metrics["total_weekly_visits"],
                "in_person_percentage": round_to(metrics["in_person_percentage"], 1),
                "virtual_percentage": round_to(metrics["virtual_percentage"], 1),
                "discipline_count": metrics["discipline_count"],
            }
        )

    # ── Cost ──

    def calculate_service_line_cost(self, line: ScenarioServiceLine) -> float:
        if line.weekly_estimated_cost > 0:
            return line.weekly_estimated_cost
        return line.weekly_visits * line.cost_per_visit

    def calculate_total_weekly_cost(self, lines: Sequence[ScenarioServiceLine]) -> float:
        return sum((self.calculate_service_line_cost(line) for line in lines), 0.0)

    def determine_cost_status(self, weekly_cost: float, reference_cap: float | None = None) -> CostStatus:
        utilization = weekly_cost / self._cap(reference_cap)
        if utilization <= self.within_threshold:
            return "within_cap"
        if utilization <= self.near_threshold:
            return "near_cap"
        return "over_cap"

    def generate_cost_note(self, scenario: ScenarioBundle, reference_cap: float | None = None) -> str:
        cap = self._cap(reference_cap)
        weekly_cost = self.calculate_total_weekly_cost(scenario.service_lines)
        status = self.determine_cost_status(weekly_cost, cap)
        utilization = weekly_cost / cap * 100
        return f"{AXIS_COST_NOTES[scenario.primary_axis]} {self._status_note(status, utilization)}"

    @staticmethod
    def _status_note(status: str, utilization: float) -> str:
        pct = f"{utilization:.0f}%"
        if status == "within_cap":
            return f"Resource use at {pct} of typical care parameters."
        if status == "near_cap":
            return f"Resource use at {pct} - within typical range for this level of need."
        return f"Resource use at {pct} reflects intensive service needs - may be appropriate for complexity."

    def _cap(self, reference_cap: float | None) -> float:
        cap = reference_cap if reference_cap is not None else self.reference_cap
        if cap <= 0:
            raise ValueError(f"reference_cap must be positive, got {cap}")
        return cap

    # ── Operations ──

    def calculate_operational_metrics(self, lines: Sequence[ScenarioServiceLine]) -> dict:
        """Hours, visits, delivery-mode split and discipline mix per week."""
        total_hours = 0.0
        total_visits = 0
        in_person = 0
        remote = 0
        disciplines: dict[str, None] = {}

        for line in lines:
            visits = round_half_up(line.weekly_visits)
            total_hours += line.weekly_hours
            total_visits += visits
            if line.delivery_mode in _REMOTE_MODES:
                remote += visits
            else:
                in_person += visits
            disciplines[line.discipline] = None

        return {
            "total_weekly_hours": total_hours,
            "total_weekly_visits": total_visits,
            "in_person_percentage": in_person / total_visits * 100 if total_visits else 100.0,
            "virtual_percentage": remote / total_visits * 100 if total_visits else 0.0,
            "discipline_count": len(disciplines),
            "disciplines": list(disciplines),
        }

    # ── Breakdowns ──

    def cost_breakdown_by_category(self, lines: Sequence[ScenarioServiceLine]) -> dict[str, dict]:
        total = self.calculate_total_weekly_cost(lines)
        breakdown: dict[str, dict] = {}
        for line in lines:
            entry = breakdown.setdefault(
                line.service_category, {"weekly_cost": 0.0, "percentage": 0.0, "service_count": 0}
            )
            entry["weekly_cost"] += self.calculate_service_line_cost(line)
            entry["service_count"] += 1

        if total > 0:
            for entry in breakdown.values():
                entry["percentage"] = round_to(entry["weekly_cost"] / total * 100, 1)
                entry["weekly_cost"] = round_to(entry["weekly_cost"], 2)
        return breakdown

    def cost_breakdown_by_discipline(self, lines: Sequence[ScenarioServiceLine]) -> dict[str, dict]:
        total = self.calculate_total_weekly_cost(lines)
        breakdown: dict[str, dict] = {}
        for line in lines:
            entry = breakdown.setdefault(
                line.discipline, {"weekly_cost": 0.0, "percentage": 0.0, "hours": 0.0}
            )
            entry["weekly_cost"] += self.calculate_service_line_cost(line)
            entry["hours"] += line.weekly_hours

        if total > 0:
            for entry in breakdown.values():
                entry["percentage"] = round_to(entry["weekly_cost"] / total * 100, 1)
                entry["weekly_cost"] = round_to(entry["weekly_cost"], 2)
                entry["hours"] = round_to(entry["hours"], 1)
        return breakdown

    def generate_comparison_note(self, first: ScenarioBundle, second: ScenarioBundle) -> str:
        """How ``second`` differs from ``first`` in resource use and direct service hours."""
        cost_diff = self.calculate_total_weekly_cost(second.service_lines) - self.calculate_total_weekly_cost(
            first.service_lines
        )
        hours_diff = sum(line.weekly_hours for line in second.service_lines) - sum(
            line.weekly_hours for line in first.service_lines
        )

        notes = []
        if abs(cost_diff) > 100:
            direction = "higher" if cost_diff > 0 else "lower"
            notes.append(f"{second.title} is ${abs(cost_diff):.0f}/week {direction} in resource use")
        if abs(hours_diff) > 2:
            direction = "more" if hours_diff > 0 else "fewer"
            notes.append(f"{abs(hours_diff):.1f} {direction} hours of direct service per week")
        return "; ".join(notes)
