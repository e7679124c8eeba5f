"""Bundle API routes.

Each request carries one patient's records. Profiles are built fresh per
request, scenarios are generated from the profile, and every generated
scenario is logged as a ``scenario_generated`` event.
"""

import logging
import time

from fastapi import APIRouter, Depends, Request

from bundle_engine.auth import verify_api_key
from bundle_engine.repositories import (
    EventSink,
    ExplanationLogSink,
    InMemoryAssessmentStore,
    InMemoryServiceTemplateStore,
    ServiceTemplateStore,
)
from bundle_engine.schemas.api import (
    AxisCatalogueResponse,
    ExplanationResultResponse,
    PatientRecordsRequest,
    ProfileResponse,
    ScenarioExplanationRequest,
    ScenarioGenerationRequest,
    ScenariosResponse,
)
from bundle_engine.schemas.axis import ScenarioAxis
from bundle_engine.schemas.profile import PatientNeedsProfile
from bundle_engine.services.axis_selector import APPLICABILITY_SCORE, ScenarioAxisSelector
from bundle_engine.services.event_logger import BundleEventLogger
from bundle_engine.services.explanation import BundleExplanationService
from bundle_engine.services.ingestion import AssessmentIngestionService
from bundle_engine.services.scenario_generator import ScenarioGenerator
from bundle_engine.utils.refs import patient_ref

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bundles", tags=["bundles"])

_template_store = InMemoryServiceTemplateStore()


# ── Dependencies ──


def get_template_store() -> ServiceTemplateStore:
    return _template_store


def get_event_sink(request: Request) -> EventSink:
    return request.app.state.event_sink


def get_explanation_log_sink(request: Request) -> ExplanationLogSink:
    return request.app.state.explanation_log_sink


def get_event_logger(sink: EventSink = Depends(get_event_sink)) -> BundleEventLogger:
    return BundleEventLogger(sink)


def get_explanation_service(
    log_sink: ExplanationLogSink = Depends(get_explanation_log_sink),
) -> BundleExplanationService:
    return BundleExplanationService(log_sink=log_sink)


def _build_profile(body: PatientRecordsRequest) -> PatientNeedsProfile:
    store = InMemoryAssessmentStore(
        assessments=body.assessments,
        referrals=[body.referral] if body.referral else [],
        patients=[body.patient_record()],
    )
    ingestion = AssessmentIngestionService(store)
    return ingestion.build_profile(body.patient.id, include_referral=body.include_referral)


# ── Endpoints ──


@router.post("/profile", response_model=ProfileResponse)
async def build_profile(
    body: PatientRecordsRequest,
    _api_key: str = Depends(verify_api_key),
) -> ProfileResponse:
    """Build the de-identified needs profile for one patient."""
    profile = _build_profile(body)
    return ProfileResponse(
        patient_ref=patient_ref(profile.patient_id),
        is_sufficient_for_bundling=profile.is_sufficient_for_bundling,
        profile=profile.to_deidentified_dict(),
    )


@router.post("/scenarios", response_model=ScenariosResponse)
async def generate_scenarios(
    body: ScenarioGenerationRequest,
    _api_key: str = Depends(verify_api_key),
    templates: ServiceTemplateStore = Depends(get_template_store),
    event_logger: BundleEventLogger = Depends(get_event_logger),
) -> ScenariosResponse:
    """Generate costed scenario bundles for one patient.

    Returns:
        The profile, the applicable axes, and scenarios in display order.
    """
    start = time.perf_counter()
    profile = _build_profile(body)
    generator = ScenarioGenerator(templates)
    scenarios = generator.generate_scenarios(
        profile,
        min_scenarios=body.min_scenarios,
        max_scenarios=body.max_scenarios,
        include_balanced=body.include_balanced,
        reference_cap=body.reference_cap,
    )
    elapsed_ms = round((time.perf_counter() - start) * 1000)

    await event_logger.log_scenarios_generated(profile, scenarios, elapsed_ms)

    return ScenariosResponse(
        patient_ref=patient_ref(profile.patient_id),
        profile=profile.to_deidentified_dict(),
        applicable_axes=generator.applicable_axes(profile, body.max_scenarios),
        scenarios=[s.to_deidentified_dict() for s in scenarios],
        generation_time_ms=elapsed_ms,
    )


@router.post("/scenarios/explain", response_model=ExplanationResultResponse)
async def explain_scenario(
    body: ScenarioExplanationRequest,
    _api_key: str = Depends(verify_api_key),
    templates: ServiceTemplateStore = Depends(get_template_store),
    explanation_service: BundleExplanationService = Depends(get_explanation_service),
    event_logger: BundleEventLogger = Depends(get_event_logger),
) -> ExplanationResultResponse:
    """Explain the scenario for one axis, with the other generated scenarios as context."""
    profile = _build_profile(body)
    generator = ScenarioGenerator(templates)
    scenarios = generator.generate_scenarios(profile, reference_cap=body.reference_cap)

    selected = next((s for s in scenarios if s.primary_axis is body.axis), None)
    if selected is None:
        selected = generator.cost_service.annotate_scenario(
            generator.generate_single_scenario(profile, body.axis), body.reference_cap
        )
        result = generator.validate_scenario(selected, profile)
        selected = selected.with_safety_result(result["warnings"], result["errors"])
    alternatives = [s for s in scenarios if s.scenario_id != selected.scenario_id]

    explanation = await explanation_service.explain_scenario(
        profile, selected, alternatives, requested_by=body.requested_by
    )
    await event_logger.log_explanation_requested(
        profile.patient_id,
        selected.scenario_id,
        explanation.source,
        explanation.response_time_ms or 0,
        user_id=body.requested_by,
    )

    return ExplanationResultResponse(
        patient_ref=patient_ref(profile.patient_id),
        scenario=selected.with_explanation(explanation.short_explanation).to_deidentified_dict(),
        explanation=explanation.to_dict(),
    )


@router.get("/axes", response_model=AxisCatalogueResponse)
async def list_axes(_api_key: str = Depends(verify_api_key)) -> AxisCatalogueResponse:
    """Axis catalogue and the selector's thresholds."""
    return AxisCatalogueResponse(
        axes=ScenarioAxis.select_options(),
        thresholds=ScenarioAxisSelector.all_thresholds(),
        applicability_score=APPLICABILITY_SCORE,
    )
