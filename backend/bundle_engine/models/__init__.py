"""SQLAlchemy models."""

from bundle_engine.models.events import BundleEngineEvent, ExplanationLog

__all__ = [
    "BundleEngineEvent",
    "ExplanationLog",
]
