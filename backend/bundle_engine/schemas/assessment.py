"""Source records consumed by ingestion.

These mirror what the patient/assessment/referral store hands back. They are
input shapes only; nothing downstream of ingestion reads them.
"""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


AssessmentType = Literal["hc", "ca", "bmhs"]


class RugClassification(BaseModel):
    """Case-mix (RUG-III/HC) classification attached to a patient or assessment."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    rug_group: str | None = None
    rug_category: str | None = None
    numeric_rank: int | None = None


class Assessment(BaseModel):
    """One standardized assessment with its raw item responses."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int | str | None = None
    patient_id: int
    assessment_type: AssessmentType
    assessment_date: datetime
    raw_items: dict[str, Any] = Field(default_factory=dict)
    rug_classification: RugClassification | None = None

    # Summary scales some sources store outside raw_items
    adl_hierarchy: int | None = None
    cps: int | None = None
    chess: int | None = None


class Referral(BaseModel):
    """Most recent referral record for a patient."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    patient_id: int
    created_at: datetime | None = None
    referral_type: str | None = None
    source: str | None = None
    referral_source: str | None = None
    program: str | None = None
    discharge_date: date | None = None
    hospital_discharge_date: date | None = None
    surgery_type: str | None = None
    procedure_type: str | None = None
    referral_reason: str | None = None
    notes: str | None = None
    expected_length_of_stay: int | None = None
    therapy_recommended: bool = False
    has_internet: bool = False
    has_pers: bool = False
    is_rural: bool = False
    medication_count: int | None = None
    diagnoses: list[str] | str | None = None

    @property
    def source_label(self) -> str | None:
        return self.source or self.referral_source


class PatientRecord(BaseModel):
    """The few patient attributes the engine is allowed to see."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    region_code: str | None = None
    region_name: str | None = None
    last_discharge_date: date | None = None
    latest_rug_classification: RugClassification | None = None
