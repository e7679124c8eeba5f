"""Pytest configuration and shared fixtures.

This module provides centralized test fixtures for:
- HTTP client for API testing (in-memory audit sinks, no database)
- Needs profile and assessment factories
- Scenario generation helpers
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from bundle_engine.config import settings
from bundle_engine.main import app
from bundle_engine.repositories import InMemoryEventSink, InMemoryExplanationLogSink
from bundle_engine.schemas.assessment import Assessment
from bundle_engine.schemas.profile import PatientNeedsProfile
from bundle_engine.services.scenario_generator import ScenarioGenerator

PATIENT_ID = 101


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest.fixture
def event_sink() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def explanation_log_sink() -> InMemoryExplanationLogSink:
    return InMemoryExplanationLogSink()


@pytest_asyncio.fixture
async def client(event_sink, explanation_log_sink):
    """Async test client for the FastAPI app.

    Audit sinks are swapped for fresh in-memory sinks so each test can
    inspect exactly the rows it caused.
    """
    original_event_sink = app.state.event_sink
    original_log_sink = app.state.explanation_log_sink
    app.state.event_sink = event_sink
    app.state.explanation_log_sink = explanation_log_sink

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.state.event_sink = original_event_sink
    app.state.explanation_log_sink = original_log_sink
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authentication headers for API requests."""
    return {"X-API-Key": settings.api_key}


# =============================================================================
# Profile Fixtures
# =============================================================================


@pytest.fixture
def make_profile():
    """Factory for needs profiles; unspecified fields keep their zero defaults."""

    def _make(**overrides) -> PatientNeedsProfile:
        overrides.setdefault("patient_id", PATIENT_ID)
        return PatientNeedsProfile(**overrides)

    return _make


@pytest.fixture
def unstable_profile(make_profile) -> PatientNeedsProfile:
    """High falls risk and health instability, living alone, no case-mix group."""
    return make_profile(falls_risk_level=3, health_instability=4, lives_alone=True)


# =============================================================================
# Assessment Fixtures
# =============================================================================


@pytest.fixture
def make_assessment():
    """Factory for assessments dated ``days_ago`` days before now."""

    def _make(assessment_type: str, raw_items: dict | None = None, days_ago: int = 10, **kwargs) -> Assessment:
        kwargs.setdefault("patient_id", PATIENT_ID)
        return Assessment(
            assessment_type=assessment_type,
            assessment_date=datetime.now(timezone.utc) - timedelta(days=days_ago),
            raw_items=raw_items or {},
            **kwargs,
        )

    return _make


@pytest.fixture
def hc_raw_items() -> dict:
    """Home-care items for a clinically complex patient in active therapy."""
    return {
        "adl_hierarchy": 4,
        "cps": 3,
        "chess": 3,
        "falls_last_90": 2,
        "caregiver_distress": 3,
        "informal_helper": 1,
        "pt_minutes": 45,
        "ot_minutes": 30,
    }


# =============================================================================
# Scenario Fixtures
# =============================================================================


@pytest.fixture
def generator() -> ScenarioGenerator:
    return ScenarioGenerator()


@pytest.fixture
def safety_scenario(generator, unstable_profile):
    """Annotated, validated scenario for the unstable profile's top axis."""
    return generator.generate_scenarios(unstable_profile)[0]
