"""Request and response bodies for the bundle API."""

from typing import Any

from pydantic import BaseModel, Field, model_validator

from bundle_engine.schemas.assessment import Assessment, PatientRecord, Referral, RugClassification
from bundle_engine.schemas.axis import ScenarioAxis


class PatientRecordsRequest(BaseModel):
    """One patient's clinical records, as the assessment store would return them."""

    patient: PatientRecord
    assessments: list[Assessment] = Field(default_factory=list)
    referral: Referral | None = None
    rug_classification: RugClassification | None = None
    include_referral: bool = True

    @model_validator(mode="after")
    def records_belong_to_patient(self) -> "PatientRecordsRequest":
        patient_id = self.patient.id
        if any(a.patient_id != patient_id for a in self.assessments):
            raise ValueError("All assessments must belong to the request patient")
        if self.referral is not None and self.referral.patient_id != patient_id:
            raise ValueError("Referral must belong to the request patient")
        return self

    def patient_record(self) -> PatientRecord:
        """The patient, with the request's case-mix classification attached."""
        if self.rug_classification is None:
            return self.patient
        return self.patient.model_copy(update={"latest_rug_classification": self.rug_classification})


class ScenarioGenerationRequest(PatientRecordsRequest):
    min_scenarios: int = Field(default=3, ge=1, le=8)
    max_scenarios: int = Field(default=5, ge=1, le=8)
    include_balanced: bool = True
    reference_cap: float | None = Field(default=None, gt=0)
    requested_by: int | None = None

    @model_validator(mode="after")
    def bounds_are_ordered(self) -> "ScenarioGenerationRequest":
        if self.max_scenarios < self.min_scenarios:
            raise ValueError("max_scenarios must be greater than or equal to min_scenarios")
        return self


class ScenarioExplanationRequest(PatientRecordsRequest):
    axis: ScenarioAxis
    reference_cap: float | None = Field(default=None, gt=0)
    requested_by: int | None = None


class ProfileResponse(BaseModel):
    patient_ref: str
    is_sufficient_for_bundling: bool
    profile: dict[str, Any]


class ScenariosResponse(BaseModel):
    patient_ref: str
    profile: dict[str, Any]
    applicable_axes: list[ScenarioAxis]
    scenarios: list[dict[str, Any]]
    generation_time_ms: int


class ExplanationResultResponse(BaseModel):
    patient_ref: str
    scenario: dict[str, Any]
    explanation: dict[str, Any]


class AxisCatalogueResponse(BaseModel):
    axes: list[dict[str, Any]]
    thresholds: dict[str, int]
    applicability_score: int
