"""Analytics event logging for generated, selected and published bundles.

Events go to an append-only sink and are later exported in batches. A write
failure is logged and swallowed so it never fails the request that caused it.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

from bundle_engine.config import settings
from bundle_engine.repositories.events import EventSink
from bundle_engine.schemas.profile import PatientNeedsProfile
from bundle_engine.schemas.scenario import ScenarioBundle
from bundle_engine.utils.refs import patient_ref, user_ref

logger = logging.getLogger(__name__)

EVENT_SCENARIO_GENERATED = "scenario_generated"
EVENT_SCENARIO_SELECTED = "scenario_selected"
EVENT_CARE_PLAN_PUBLISHED = "care_plan_published"
EVENT_PATIENT_OUTCOME = "patient_outcome"
EVENT_EXPLANATION_REQUESTED = "explanation_requested"

DEFAULT_EXPORT_LIMIT = 1000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class BundleEventLogger:
    def __init__(
        self,
        sink: EventSink,
        app_key: str | None = None,
        engine_version: str | None = None,
    ):
        self.sink = sink
        self.app_key = app_key if app_key is not None else settings.app_key
        self.engine_version = engine_version or settings.engine_version

    # ── Generation ──

    async def log_scenario_generated(
        self,
        profile: PatientNeedsProfile,
        scenario: ScenarioBundle,
        generation_time_ms: int = 0,
    ) -> None:
        payload = {
            "scenario_id": scenario.scenario_id,
            "primary_axis": scenario.primary_axis.value,
            "secondary_axes": [axis.value for axis in scenario.secondary_axes],
            "scenario_title": scenario.title,
            "scenario_description": scenario.description,
            "service_count": len(scenario.service_lines),
            "services": [
                {
                    "code": line.service_code,
                    "hours": round(line.weekly_hours, 2),
                    "visits": line.frequency_count,
                }
                for line in scenario.service_lines
            ],
            "weekly_hours": scenario.total_weekly_hours,
            "weekly_cost": scenario.weekly_estimated_cost,
            "cost_status": scenario.cost_status,
            "rug_group": profile.rug_group,
            "needs_cluster": profile.needs_cluster,
            "episode_type": profile.episode_type,
            "algorithm_scores": {
                "personal_support": profile.personal_support_score,
                "rehabilitation": profile.rehabilitation_score,
                "chess_ca": profile.chess_ca_score,
                "pain": profile.pain_score,
                "distressed_mood": profile.distressed_mood_score,
                "service_urgency": profile.service_urgency_score,
            },
            "confidence_level": profile.confidence_level,
            "data_completeness": profile.data_completeness_score,
            "generation_time_ms": generation_time_ms,
            "engine_version": self.engine_version,
        }
        await self._log_event(
            EVENT_SCENARIO_GENERATED,
            profile.patient_id,
            payload,
            scenario_id=scenario.scenario_id,
        )

    async def log_scenarios_generated(
        self,
        profile: PatientNeedsProfile,
        scenarios: Sequence[ScenarioBundle],
        total_generation_time_ms: int = 0,
    ) -> None:
        """One ``scenario_generated`` event per scenario, splitting the time evenly."""
        per_scenario = round(total_generation_time_ms / len(scenarios)) if scenarios else 0
        for scenario in scenarios:
            await self.log_scenario_generated(profile, scenario, per_scenario)

    # ── Coordinator actions ──

    async def log_scenario_selected(
        self,
        patient_id: int,
        scenario_id: str,
        scenarios_offered_count: int,
        scenario_rank: int,
        was_recommended: bool,
        *,
        selection_time_seconds: int | None = None,
        modifications_made: bool = False,
        modification_summary: dict | None = None,
        user_id: int | None = None,
        explanation_requested: bool = False,
        explanation_source: str | None = None,
    ) -> None:
        payload = {
            "scenario_id": scenario_id,
            "scenarios_offered_count": scenarios_offered_count,
            "scenario_rank": scenario_rank,
            "was_recommended": was_recommended,
            "selection_time_seconds": selection_time_seconds,
            "modifications_made": modifications_made,
            "modification_summary": modification_summary,
            "explanation_requested": explanation_requested,
            "explanation_source": explanation_source,
        }
        await self._log_event(
            EVENT_SCENARIO_SELECTED, patient_id, payload, user_id=user_id, scenario_id=scenario_id
        )

    async def log_care_plan_published(
        self,
        patient_id: int,
        care_plan_id: int,
        original_scenario_id: str | None,
        final_service_count: int,
        final_weekly_hours: float,
        final_weekly_cost: float,
        *,
        deviation_from_scenario: dict | None = None,
        is_modification: bool = False,
        user_id: int | None = None,
    ) -> None:
        payload = {
            "care_plan_id": care_plan_id,
            "original_scenario_id": original_scenario_id,
            "final_service_count": final_service_count,
            "final_weekly_hours": final_weekly_hours,
            "final_weekly_cost": final_weekly_cost,
            "deviation_from_scenario": deviation_from_scenario,
            "is_modification": is_modification,
        }
        await self._log_event(
            EVENT_CARE_PLAN_PUBLISHED,
            patient_id,
            payload,
            user_id=user_id,
            scenario_id=original_scenario_id,
            care_plan_id=care_plan_id,
        )

    async def log_patient_outcome(
        self,
        patient_id: int,
        care_plan_id: int | None,
        outcome_type: str,
        outcome_value: str,
        *,
        outcome_severity: str | None = None,
        days_since_plan_start: int | None = None,
        assessment_source: str | None = None,
        original_scenario_id: str | None = None,
        clinical_context: dict | None = None,
    ) -> None:
        payload = {
            "care_plan_id": care_plan_id,
            "original_scenario_id": original_scenario_id,
            "outcome_type": outcome_type,
            "outcome_value": outcome_value,
            "outcome_severity": outcome_severity,
            "days_since_plan_start": days_since_plan_start,
            "assessment_source": assessment_source,
            "clinical_context": clinical_context,
        }
        await self._log_event(EVENT_PATIENT_OUTCOME, patient_id, payload, care_plan_id=care_plan_id)

    async def log_explanation_requested(
        self,
        patient_id: int,
        scenario_id: str,
        explanation_source: str,
        response_time_ms: int,
        user_id: int | None = None,
    ) -> None:
        payload = {
            "scenario_id": scenario_id,
            "explanation_source": explanation_source,
            "response_time_ms": response_time_ms,
        }
        await self._log_event(
            EVENT_EXPLANATION_REQUESTED, patient_id, payload, user_id=user_id, scenario_id=scenario_id
        )

    # ── Export ──

    async def events_for_export(self, limit: int = DEFAULT_EXPORT_LIMIT) -> list[dict[str, Any]]:
        """Unexported events, oldest first."""
        return await self.sink.fetch_unexported(limit)

    async def mark_events_exported(self, event_ids: Iterable[str], batch_id: str) -> int:
        return await self.sink.mark_exported(list(event_ids), batch_id)

    async def event_stats(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> dict[str, Any]:
        """Counts in a timestamp window; open ends cover everything."""
        return await self.sink.stats(start or _EPOCH, end or datetime.now(timezone.utc))

    # ── Internals ──

    async def _log_event(
        self,
        event_type: str,
        patient_id: int,
        payload: dict[str, Any],
        *,
        user_id: int | None = None,
        scenario_id: str | None = None,
        care_plan_id: int | None = None,
    ) -> None:
        row = {
            "event_type": event_type,
            "event_timestamp": datetime.now(timezone.utc),
            "patient_id": patient_id,
            "patient_ref": patient_ref(patient_id, self.app_key),
            "care_plan_id": care_plan_id,
            "scenario_id": scenario_id,
            "user_id": user_id,
            "user_ref": user_ref(user_id, self.app_key) if user_id else None,
            "payload": payload,
        }
        try:
            await self.sink.insert(row)
        except Exception as e:
            logger.error(
                "Failed to log bundle engine event %s for %s: %s",
                event_type,
                row["patient_ref"],
                e,
            )
