"""Explanation value objects returned by providers and the explanation service."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ExplanationSource = Literal["vertex_ai", "openai", "rules_based", "fallback"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExplanationResponse(BaseModel):
    """Why a scenario was recommended, in a short summary and a few bullet points."""

    model_config = ConfigDict(frozen=True)

    short_explanation: str
    detailed_points: tuple[str, ...] = ()
    confidence_label: str
    source: ExplanationSource
    generated_at: datetime = Field(default_factory=_utcnow)
    response_time_ms: int | None = None

    @classmethod
    def fallback(cls, reason: str = "Unable to generate explanation") -> "ExplanationResponse":
        return cls(short_explanation=reason, confidence_label="Unknown", source="fallback")

    def to_dict(self) -> dict:
        return {
            "short_explanation": self.short_explanation,
            "detailed_points": list(self.detailed_points),
            "confidence_label": self.confidence_label,
            "source": self.source,
            "generated_at": self.generated_at.isoformat(),
            "response_time_ms": self.response_time_ms,
        }
