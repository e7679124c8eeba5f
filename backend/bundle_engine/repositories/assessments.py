"""Assessment store.

Read side of the patient / assessment / referral / case-mix data the engine
consumes. The engine only ever asks for the latest record of a kind, so the
protocol is deliberately narrow.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol

from bundle_engine.schemas.assessment import (
    Assessment,
    AssessmentType,
    PatientRecord,
    Referral,
    RugClassification,
)


class AssessmentStore(Protocol):
    """Latest-by-type reads over patient clinical records."""

    def latest_assessment(
        self, patient_id: int, assessment_type: AssessmentType, since: datetime | None = None
    ) -> Assessment | None: ...

    def latest_referral(self, patient_id: int) -> Referral | None: ...

    def patient(self, patient_id: int) -> PatientRecord | None: ...

    def latest_rug_classification(self, patient_id: int) -> RugClassification | None: ...


def _naive(value: datetime) -> datetime:
    """Drop tzinfo so aware and naive dates compare."""
    return value.replace(tzinfo=None) if value.tzinfo else value


class InMemoryAssessmentStore:
    """Store backed by plain lists, used by the HTTP layer and tests.

    The HTTP surface receives a patient's records in the request body; they
    are loaded into one of these per request.
    """

    def __init__(
        self,
        assessments: Iterable[Assessment] = (),
        referrals: Iterable[Referral] = (),
        patients: Iterable[PatientRecord] = (),
    ):
        self._assessments = list(assessments)
        self._referrals = list(referrals)
        self._patients = {p.id: p for p in patients}

    def add_assessment(self, assessment: Assessment) -> None:
        self._assessments.append(assessment)

    def add_referral(self, referral: Referral) -> None:
        self._referrals.append(referral)

    def add_patient(self, patient: PatientRecord) -> None:
        self._patients[patient.id] = patient

    def latest_assessment(
        self, patient_id: int, assessment_type: AssessmentType, since: datetime | None = None
    ) -> Assessment | None:
        candidates = [
            a
            for a in self._assessments
            if a.patient_id == patient_id and a.assessment_type == assessment_type
        ]
        if since is not None:
            cutoff = _naive(since)
            candidates = [a for a in candidates if _naive(a.assessment_date) >= cutoff]
        if not candidates:
            return None
        return max(candidates, key=lambda a: _naive(a.assessment_date))

    def latest_referral(self, patient_id: int) -> Referral | None:
        referrals = [r for r in self._referrals if r.patient_id == patient_id]
        if not referrals:
            return None
        # Undated referrals sort before dated ones; ties keep the last added
        latest = referrals[0]
        for referral in referrals[1:]:
            if _referral_sort_key(referral) >= _referral_sort_key(latest):
                latest = referral
        return latest

    def patient(self, patient_id: int) -> PatientRecord | None:
        return self._patients.get(patient_id)

    def latest_rug_classification(self, patient_id: int) -> RugClassification | None:
        record = self._patients.get(patient_id)
        return record.latest_rug_classification if record else None


def _referral_sort_key(referral: Referral) -> datetime:
    return _naive(referral.created_at) if referral.created_at else datetime.min
