"""Tests for analytics event logging and export."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from bundle_engine.repositories import InMemoryEventSink
from bundle_engine.services.event_logger import (
    EVENT_CARE_PLAN_PUBLISHED,
    EVENT_EXPLANATION_REQUESTED,
    EVENT_PATIENT_OUTCOME,
    EVENT_SCENARIO_GENERATED,
    EVENT_SCENARIO_SELECTED,
    BundleEventLogger,
)
from bundle_engine.utils.refs import patient_ref, user_ref

APP_KEY = "test-salt"


@pytest.fixture
def event_logger(event_sink):
    return BundleEventLogger(event_sink, app_key=APP_KEY, engine_version="9.9.9")


class TestGenerationEvents:
    @pytest.mark.asyncio
    async def test_scenario_generated(self, event_logger, event_sink, unstable_profile, safety_scenario):
        await event_logger.log_scenario_generated(unstable_profile, safety_scenario, 12)

        (row,) = event_sink.rows
        assert row["event_type"] == EVENT_SCENARIO_GENERATED
        assert row["patient_id"] == 101
        assert row["patient_ref"] == patient_ref(101, APP_KEY)
        assert row["scenario_id"] == safety_scenario.scenario_id
        assert row["user_ref"] is None

        payload = row["payload"]
        assert payload["primary_axis"] == "safety_stability"
        assert payload["service_count"] == 2
        assert payload["services"][0] == {"code": "NUR", "hours": 7.0, "visits": 7}
        assert payload["weekly_cost"] == 840
        assert payload["cost_status"] == "within_cap"
        assert payload["generation_time_ms"] == 12
        assert payload["engine_version"] == "9.9.9"
        assert payload["algorithm_scores"]["service_urgency"] == 1

    @pytest.mark.asyncio
    async def test_batch_splits_time(self, event_logger, event_sink, generator, unstable_profile):
        scenarios = generator.generate_scenarios(unstable_profile)
        await event_logger.log_scenarios_generated(unstable_profile, scenarios, 90)

        assert len(event_sink.rows) == 3
        assert {row["payload"]["generation_time_ms"] for row in event_sink.rows} == {30}

    @pytest.mark.asyncio
    async def test_empty_batch(self, event_logger, event_sink, unstable_profile):
        await event_logger.log_scenarios_generated(unstable_profile, [], 90)
        assert event_sink.rows == []


class TestCoordinatorEvents:
    @pytest.mark.asyncio
    async def test_scenario_selected(self, event_logger, event_sink):
        await event_logger.log_scenario_selected(
            101, "scn-1", 3, 2, False, user_id=7, modifications_made=True, explanation_source="rules_based"
        )
        (row,) = event_sink.rows
        assert row["event_type"] == EVENT_SCENARIO_SELECTED
        assert row["user_id"] == 7
        assert row["user_ref"] == user_ref(7, APP_KEY)
        assert row["payload"]["scenario_rank"] == 2
        assert row["payload"]["modifications_made"] is True

    @pytest.mark.asyncio
    async def test_care_plan_published(self, event_logger, event_sink):
        await event_logger.log_care_plan_published(101, 55, "scn-1", 4, 12.5, 900.0, is_modification=True)
        (row,) = event_sink.rows
        assert row["event_type"] == EVENT_CARE_PLAN_PUBLISHED
        assert row["care_plan_id"] == 55
        assert row["scenario_id"] == "scn-1"
        assert row["payload"]["final_weekly_cost"] == 900.0

    @pytest.mark.asyncio
    async def test_patient_outcome(self, event_logger, event_sink):
        await event_logger.log_patient_outcome(101, 55, "hospitalization", "ed_visit", days_since_plan_start=21)
        (row,) = event_sink.rows
        assert row["event_type"] == EVENT_PATIENT_OUTCOME
        assert row["scenario_id"] is None
        assert row["payload"]["days_since_plan_start"] == 21

    @pytest.mark.asyncio
    async def test_explanation_requested(self, event_logger, event_sink):
        await event_logger.log_explanation_requested(101, "scn-1", "vertex_ai", 840)
        (row,) = event_sink.rows
        assert row["event_type"] == EVENT_EXPLANATION_REQUESTED
        assert row["payload"] == {
            "scenario_id": "scn-1",
            "explanation_source": "vertex_ai",
            "response_time_ms": 840,
        }


class TestSinkFailures:
    @pytest.mark.asyncio
    async def test_insert_failure_is_logged_not_raised(self, caplog):
        sink = MagicMock()
        sink.insert = AsyncMock(side_effect=RuntimeError("database unavailable"))
        event_logger = BundleEventLogger(sink, app_key=APP_KEY)

        await event_logger.log_explanation_requested(101, "scn-1", "rules_based", 3)

        assert "Failed to log bundle engine event explanation_requested" in caplog.text
        assert patient_ref(101, APP_KEY) in caplog.text


class TestExport:
    @pytest.mark.asyncio
    async def test_export_round(self, event_logger):
        await event_logger.log_explanation_requested(101, "scn-1", "rules_based", 3)
        await event_logger.log_scenario_selected(101, "scn-1", 3, 1, True)

        pending = await event_logger.events_for_export()
        assert [e["event_type"] for e in pending] == [EVENT_EXPLANATION_REQUESTED, EVENT_SCENARIO_SELECTED]

        marked = await event_logger.mark_events_exported([pending[0]["id"]], "batch-1")
        assert marked == 1

        remaining = await event_logger.events_for_export()
        assert [e["event_type"] for e in remaining] == [EVENT_SCENARIO_SELECTED]

    @pytest.mark.asyncio
    async def test_export_limit(self, event_logger):
        for _ in range(3):
            await event_logger.log_explanation_requested(101, "scn-1", "rules_based", 3)
        assert len(await event_logger.events_for_export(limit=2)) == 2

    @pytest.mark.asyncio
    async def test_unknown_ids_are_ignored(self, event_logger):
        assert await event_logger.mark_events_exported(["not-an-event"], "batch-1") == 0

    @pytest.mark.asyncio
    async def test_stats(self, event_logger):
        await event_logger.log_explanation_requested(101, "scn-1", "rules_based", 3)
        await event_logger.log_explanation_requested(101, "scn-2", "rules_based", 3)
        await event_logger.log_scenario_selected(101, "scn-1", 3, 1, True)
        pending = await event_logger.events_for_export()
        await event_logger.mark_events_exported([pending[0]["id"]], "batch-1")

        stats = await event_logger.event_stats()
        assert stats == {
            "total_events": 3,
            "by_type": {EVENT_EXPLANATION_REQUESTED: 2, EVENT_SCENARIO_SELECTED: 1},
            "pending_export": 2,
            "exported": 1,
        }

    @pytest.mark.asyncio
    async def test_stats_window(self, event_logger):
        await event_logger.log_explanation_requested(101, "scn-1", "rules_based", 3)
        future = datetime.now(timezone.utc) + timedelta(days=1)
        stats = await event_logger.event_stats(start=future)
        assert stats["total_events"] == 0

    def test_default_settings(self):
        event_logger = BundleEventLogger(InMemoryEventSink())
        assert event_logger.app_key == "connected-capacity"
        assert event_logger.engine_version == "2.2.0"
