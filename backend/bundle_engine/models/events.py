"""Audit and analytics rows written by the bundle engine.

Both tables are append-only from the engine's side. Event rows are later
read in batches and flagged once an exporter has shipped them.
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from bundle_engine.database import Base


class BundleEngineEvent(Base):
    """One generation, selection, publication, outcome or explanation event."""

    __tablename__ = "bundle_engine_events"

    # === Identity ===
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    event_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    # === References ===
    patient_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    patient_ref: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="De-identified patient reference (P-xxxx)",
    )
    care_plan_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scenario_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_ref: Mapped[str | None] = mapped_column(String(16), nullable=True)

    payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    # === Export tracking ===
    exported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    exported_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    export_batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("now()"),
    )

    __table_args__ = (
        Index("idx_bundle_event_export", "exported", "event_timestamp"),
        Index("idx_bundle_event_type_time", "event_type", "event_timestamp"),
    )

    def __repr__(self) -> str:
        return f"<BundleEngineEvent(id={self.id}, type={self.event_type}, ref={self.patient_ref})>"


class ExplanationLog(Base):
    """Audit row for one explanation request.

    Records ids, the source used, status and timing. Prompt and response
    text are never stored.
    """

    __tablename__ = "bundle_explanation_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    patient_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    scenario_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    scenario_axis: Mapped[str | None] = mapped_column(String(50), nullable=True)
    explanation_source: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    requested_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("now()"),
    )

    def __repr__(self) -> str:
        return f"<ExplanationLog(id={self.id}, source={self.explanation_source}, status={self.status})>"
