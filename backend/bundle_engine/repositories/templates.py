"""Service template, service type and rate lookups.

Reference data the generator reads: which services a case-mix template
starts from, what each service type is, and what a visit costs.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Protocol

# Used when neither the rate card nor the service type carries a price
FALLBACK_RATE = 100.0


@dataclass(frozen=True, slots=True)
class ServiceType:
    """One billable service. ``category`` is the axis modifier category."""

    code: str
    name: str
    category: str
    discipline: str
    default_duration_minutes: int = 60
    delivery_mode: str = "in_person"
    cost_per_visit: float | None = None
    requires_specialization: bool = False
    id: int | None = None


@dataclass(frozen=True, slots=True)
class TemplateService:
    service_code: str
    frequency_per_week: int
    duration_minutes: int | None = None
    is_required: bool = False
    condition_flags: tuple[str, ...] = ()

    @property
    def is_conditional(self) -> bool:
        return bool(self.condition_flags)

    def include_for(self, flags: Mapping[str, bool]) -> bool:
        """Required always; conditional when any flag is set; others by default."""
        if self.is_required:
            return True
        if self.is_conditional:
            return any(flags.get(flag, False) for flag in self.condition_flags)
        return True


@dataclass(frozen=True, slots=True)
class CareBundleTemplate:
    code: str
    name: str
    services: tuple[TemplateService, ...] = ()
    rug_group: str | None = None
    rug_category: str | None = None
    is_active: bool = True

    def services_for_flags(self, flags: Mapping[str, bool]) -> list[TemplateService]:
        return [s for s in self.services if s.include_for(flags)]


class ServiceTemplateStore(Protocol):
    """Read-only template, service type and rate lookups."""

    def template_for_rug_group(self, rug_group: str) -> CareBundleTemplate | None: ...

    def template_for_rug_category(self, rug_category: str) -> CareBundleTemplate | None: ...

    def default_template(self) -> CareBundleTemplate | None: ...

    def service_type(self, code: str) -> ServiceType | None: ...

    def current_rate(self, code: str) -> float | None: ...


# ── Reference data ──

SERVICE_CATALOGUE: tuple[ServiceType, ...] = (
    ServiceType("NUR", "Nursing Visit", "nursing", "rn", 60),
    ServiceType("NP", "Nurse Practitioner Visit", "nursing", "rn", 60),
    ServiceType("PSW", "Personal Support", "psw", "psw", 60),
    ServiceType("DEM", "Dementia Care Support", "behavioural_psw", "psw", 120, requires_specialization=True),
    ServiceType("BEH", "Behavioural Support", "behavioural_psw", "psw", 90, requires_specialization=True),
    ServiceType("PT", "Physiotherapy", "therapy", "pt", 45),
    ServiceType("OT", "Occupational Therapy", "therapy", "ot", 45),
    ServiceType("SLP", "Speech-Language Pathology", "therapy", "slp", 45),
    ServiceType("RT", "Respiratory Therapy", "respiratory", "rt", 60),
    ServiceType("SW", "Social Work", "social", "sw", 60),
    ServiceType("RD", "Dietitian", "nutrition", "dietitian", 60),
    ServiceType("DEL-ACTS", "Delegated Nursing Acts", "wound_care", "psw", 45),
    ServiceType("RPM", "Remote Patient Monitoring", "remote_monitoring", "css", 15, "automated"),
    ServiceType("PERS", "Personal Emergency Response", "remote_monitoring", "css", 5, "automated"),
    ServiceType("FALL-MON", "Falls Monitoring", "remote_monitoring", "css", 10, "automated"),
    ServiceType("MED-DISP", "Medication Dispenser", "remote_monitoring", "css", 5, "automated"),
    ServiceType("SEC", "Safety Check Call", "remote_monitoring", "css", 15, "virtual"),
    ServiceType("TELE", "Telehealth Nursing", "telehealth", "rn", 30, "virtual"),
    ServiceType("VPC", "Virtual Primary Care", "telehealth", "css", 20, "virtual"),
    ServiceType("RES", "In-Home Respite", "respite", "psw", 240),
    ServiceType("CGC", "Caregiver Coaching", "caregiver_education", "sw", 60),
    ServiceType("HMK", "Homemaking", "homemaking", "psw", 120),
    ServiceType("MEAL", "Meal Delivery", "meals", "css", 15),
    ServiceType("ADP", "Adult Day Program", "day_program", "css", 240),
    ServiceType("REC", "Social and Recreational Activation", "activation", "css", 120),
    ServiceType("TRANS", "Transportation", "transportation", "css", 60),
    ServiceType("PHAR", "Pharmacy Support", "pharmacy", "css", 15),
)

# Dollars per visit. Hourly services are priced at their default visit
# length; monthly subscriptions are priced per daily check.
DEFAULT_RATES: dict[str, float] = {
    "NUR": 110.0,
    "NP": 200.0,
    "PSW": 35.0,
    "DEM": 70.0,
    "BEH": 52.5,
    "PT": 120.0,
    "OT": 120.0,
    "SLP": 130.0,
    "RT": 130.0,
    "SW": 120.0,
    "RD": 110.0,
    "DEL-ACTS": 30.0,
    "RPM": 4.3,
    "PERS": 1.5,
    "FALL-MON": 2.0,
    "MED-DISP": 1.5,
    "SEC": 15.0,
    "TELE": 60.0,
    "VPC": 50.0,
    "RES": 140.0,
    "CGC": 80.0,
    "HMK": 70.0,
    "MEAL": 12.0,
    "ADP": 60.0,
    "REC": 40.0,
    "TRANS": 70.0,
    "PHAR": 25.0,
}


def _svc(code: str, freq: int, duration: int | None = None, required: bool = False, *flags: str) -> TemplateService:
    return TemplateService(code, freq, duration, required, tuple(flags))


DEFAULT_TEMPLATES: tuple[CareBundleTemplate, ...] = (
    CareBundleTemplate(
        code="LTC_RB0_STANDARD",
        name="Special Rehabilitation - High ADL",
        rug_group="RB0",
        rug_category="Special Rehabilitation",
        services=(
            _svc("PT", 3, 60, True),
            _svc("OT", 2, 60, True),
            _svc("SLP", 1, 45, False, "swallowing_issue"),
            _svc("NUR", 4, 45, True),
            _svc("PSW", 10, 60, True),
            _svc("RPM", 7, 10, True),
            _svc("MEAL", 5, 15),
            _svc("TRANS", 1, 60),
        ),
    ),
    CareBundleTemplate(
        code="LTC_SE2_STANDARD",
        name="Extensive Services - Moderate Complexity",
        rug_group="SE2",
        rug_category="Extensive Services",
        services=(
            _svc("NUR", 14, 60, True),
            _svc("PSW", 21, 60, True),
            _svc("RT", 2, 60),
            _svc("RPM", 7, 10, True),
        ),
    ),
    CareBundleTemplate(
        code="LTC_CC0_STANDARD",
        name="Clinically Complex - High ADL",
        rug_group="CC0",
        rug_category="Clinically Complex",
        services=(
            _svc("NUR", 7, 45, True),
            _svc("PSW", 21, 60, True),
            _svc("PT", 1, 60),
            _svc("OT", 1, 60),
            _svc("RPM", 7, 10, True),
            _svc("MEAL", 7, 15),
        ),
    ),
    CareBundleTemplate(
        code="LTC_IB0_STANDARD",
        name="Impaired Cognition - Moderate ADL",
        rug_group="IB0",
        rug_category="Impaired Cognition",
        services=(
            _svc("PSW", 14, 60, True),
            _svc("NUR", 2, 45, True),
            _svc("BEH", 2, 60, True),
            _svc("REC", 3, 60),
            _svc("RES", 1, 240, False, "caregiver_stress"),
        ),
    ),
    CareBundleTemplate(
        code="LTC_BB0_STANDARD",
        name="Behaviour Problems - Moderate ADL",
        rug_group="BB0",
        rug_category="Behaviour Problems",
        services=(
            _svc("PSW", 14, 60, True),
            _svc("BEH", 3, 90, True),
            _svc("NUR", 2, 45, True),
            _svc("SW", 1, 60),
        ),
    ),
    CareBundleTemplate(
        code="LTC_PC0_STANDARD",
        name="Reduced Physical Function - Moderate ADL",
        rug_group="PC0",
        rug_category="Reduced Physical Function",
        services=(
            _svc("PSW", 10, 60, True),
            _svc("NUR", 1, 45),
            _svc("PT", 1, 60, False, "falls_risk", "rehab_potential"),
            _svc("MEAL", 5, 15),
        ),
    ),
    CareBundleTemplate(
        code="LTC_PA1_STANDARD",
        name="Reduced Physical Function - Low ADL",
        rug_group="PA1",
        rug_category="Reduced Physical Function",
        services=(
            _svc("PSW", 5, 60, True),
            _svc("NUR", 1, 45),
        ),
    ),
)


class InMemoryServiceTemplateStore:
    """Templates, service types and rates held in memory.

    Defaults to the built-in catalogue, templates and rate card. The first
    active template that matches wins, in the order templates were given.
    """

    def __init__(
        self,
        templates: Iterable[CareBundleTemplate] | None = None,
        service_types: Iterable[ServiceType] | None = None,
        rates: Mapping[str, float] | None = None,
    ):
        self._templates = list(DEFAULT_TEMPLATES if templates is None else templates)
        self._service_types = {
            st.code: st for st in (SERVICE_CATALOGUE if service_types is None else service_types)
        }
        self._rates = dict(DEFAULT_RATES if rates is None else rates)

    def _active(self) -> list[CareBundleTemplate]:
        return [t for t in self._templates if t.is_active]

    def template_for_rug_group(self, rug_group: str) -> CareBundleTemplate | None:
        return next((t for t in self._active() if t.rug_group == rug_group), None)

    def template_for_rug_category(self, rug_category: str) -> CareBundleTemplate | None:
        return next((t for t in self._active() if t.rug_category == rug_category), None)

    def default_template(self) -> CareBundleTemplate | None:
        return next((t for t in self._active() if t.code in ("DEFAULT", "GENERAL")), None)

    def service_type(self, code: str) -> ServiceType | None:
        return self._service_types.get(code)

    def current_rate(self, code: str) -> float | None:
        return self._rates.get(code)

