"""Pydantic schemas."""

from bundle_engine.schemas.api import (
    AxisCatalogueResponse,
    ExplanationResultResponse,
    PatientRecordsRequest,
    ProfileResponse,
    ScenarioExplanationRequest,
    ScenarioGenerationRequest,
    ScenariosResponse,
)
from bundle_engine.schemas.assessment import (
    Assessment,
    AssessmentType,
    PatientRecord,
    Referral,
    RugClassification,
)
from bundle_engine.schemas.axis import PriorityLevel, ScenarioAxis, ServiceModifier
from bundle_engine.schemas.explanation import ExplanationResponse
from bundle_engine.schemas.needs_cluster import NeedsCluster
from bundle_engine.schemas.profile import PatientNeedsProfile
from bundle_engine.schemas.scenario import ScenarioBundle, ScenarioServiceLine, weekly_visits

__all__ = [
    "Assessment",
    "AssessmentType",
    "AxisCatalogueResponse",
    "ExplanationResponse",
    "ExplanationResultResponse",
    "NeedsCluster",
    "PatientNeedsProfile",
    "PatientRecord",
    "PatientRecordsRequest",
    "PriorityLevel",
    "ProfileResponse",
    "Referral",
    "RugClassification",
    "ScenarioAxis",
    "ScenarioBundle",
    "ScenarioExplanationRequest",
    "ScenarioGenerationRequest",
    "ScenarioServiceLine",
    "ScenariosResponse",
    "ServiceModifier",
    "weekly_visits",
]
