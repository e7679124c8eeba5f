"""Data access for the engine's collaborators.

Clinical records and reference data are read through narrow protocols; audit
rows are written through append-only sinks.
"""

from bundle_engine.repositories.assessments import AssessmentStore, InMemoryAssessmentStore
from bundle_engine.repositories.events import (
    EventSink,
    ExplanationLogSink,
    InMemoryEventSink,
    InMemoryExplanationLogSink,
    SqlEventSink,
    SqlExplanationLogSink,
)
from bundle_engine.repositories.templates import InMemoryServiceTemplateStore, ServiceTemplateStore

__all__ = [
    "AssessmentStore",
    "EventSink",
    "ExplanationLogSink",
    "InMemoryAssessmentStore",
    "InMemoryEventSink",
    "InMemoryExplanationLogSink",
    "InMemoryServiceTemplateStore",
    "ServiceTemplateStore",
    "SqlEventSink",
    "SqlExplanationLogSink",
]
