"""Explanation orchestration for scenario bundles.

Each request ends in an explanation and one audit row. The external provider
is tried only when it is enabled and the scenario has services; every
categorized provider failure falls back to the rules-based provider. The
only error that escapes is ``PhiPiiViolationError`` from the prompt builder.

Audit rows hold ids, axis, source, status and timing. Never prompt or
response text.
"""

import asyncio
import logging
import time
from collections.abc import Sequence

from bundle_engine.config import settings
from bundle_engine.exceptions import (
    ExplanationProviderError,
    ProviderAuthError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from bundle_engine.repositories.events import ExplanationLogSink
from bundle_engine.schemas.explanation import ExplanationResponse
from bundle_engine.schemas.profile import PatientNeedsProfile
from bundle_engine.schemas.scenario import ScenarioBundle
from bundle_engine.services.explanation_providers import (
    ExplanationProvider,
    RulesBasedBundleExplanationProvider,
    build_provider,
    response_from_provider,
)
from bundle_engine.services.prompt_builder import BundleExplanationPromptBuilder

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_NO_MATCH = "no_match_case"
STATUS_UNEXPECTED = "unexpected_error"


class BundleExplanationService:
    def __init__(
        self,
        provider: ExplanationProvider | None = None,
        fallback: RulesBasedBundleExplanationProvider | None = None,
        prompt_builder: BundleExplanationPromptBuilder | None = None,
        log_sink: ExplanationLogSink | None = None,
        *,
        enabled: bool | None = None,
        timeout_seconds: float | None = None,
    ):
        if enabled is None:
            enabled = settings.explanation_enabled and settings.explanation_credentials_configured()
        if enabled and provider is None:
            provider = build_provider()

        self.provider = provider
        self.enabled = enabled
        self.fallback = fallback or RulesBasedBundleExplanationProvider()
        self.prompt_builder = prompt_builder or BundleExplanationPromptBuilder()
        self.log_sink = log_sink
        self.timeout_seconds = timeout_seconds or settings.explanation_timeout_seconds

    @property
    def provider_source(self) -> str:
        return self.provider.source if self.provider is not None else settings.explanation_provider

    @property
    def is_provider_enabled(self) -> bool:
        return self.enabled and self.provider is not None

    def config_summary(self) -> dict:
        return {**settings.explanation_config_summary(), "active": self.is_provider_enabled}

    async def explain_scenario(
        self,
        profile: PatientNeedsProfile,
        scenario: ScenarioBundle,
        alternatives: Sequence[ScenarioBundle] = (),
        requested_by: int | None = None,
    ) -> ExplanationResponse:
        """Explain why ``scenario`` suits ``profile``.

        Raises:
            PhiPiiViolationError: The prompt payload contained protected data.
        """
        if not scenario.service_lines:
            explanation = self.fallback.no_match_explanation(scenario)
            await self._audit(profile, scenario, "rules_based", STATUS_NO_MATCH, requested_by, explanation)
            return explanation

        source = self.provider_source
        if not self.is_provider_enabled:
            explanation = self.fallback.generate_explanation(profile, scenario)
            await self._audit(profile, scenario, "rules_based", f"{source}_disabled", requested_by, explanation)
            return explanation

        # PhiPiiViolationError propagates from here
        payload = self.prompt_builder.build_prompt_payload(profile, scenario, alternatives)
        ref = self.prompt_builder.patient_ref(profile.patient_id)
        start = time.perf_counter()

        try:
            data = await asyncio.wait_for(
                self.provider.generate_content(payload), timeout=self.timeout_seconds
            )
            elapsed_ms = round((time.perf_counter() - start) * 1000)
            explanation = response_from_provider(data, source, elapsed_ms)
        except (ProviderTimeoutError, asyncio.TimeoutError) as e:
            logger.warning("%s timeout for bundle explanation (%s), using fallback: %s", source, ref, e)
            status = f"{source}_timeout"
        except ProviderRateLimitError as e:
            logger.warning("%s rate limited for bundle explanation (%s): %s", source, ref, e)
            status = f"{source}_rate_limited"
        except ProviderAuthError as e:
            logger.error("%s authentication failed for bundle explanation: %s", source, e)
            status = f"{source}_auth_error"
        except ExplanationProviderError as e:
            logger.error("%s error for bundle explanation (%s), using fallback: %s", source, ref, e)
            status = f"{source}_error"
        except Exception:
            logger.exception("Unexpected error in bundle explanation (%s)", ref)
            status = STATUS_UNEXPECTED
        else:
            await self._audit(profile, scenario, source, STATUS_SUCCESS, requested_by, explanation)
            return explanation

        explanation = self.fallback.generate_explanation(profile, scenario)
        await self._audit(profile, scenario, "rules_based", status, requested_by, explanation)
        return explanation

    async def _audit(
        self,
        profile: PatientNeedsProfile,
        scenario: ScenarioBundle,
        source: str,
        status: str,
        requested_by: int | None,
        explanation: ExplanationResponse,
    ) -> None:
        if self.log_sink is None:
            return
        row = {
            "patient_id": profile.patient_id,
            "scenario_id": scenario.scenario_id,
            "scenario_axis": scenario.primary_axis.value,
            "explanation_source": source,
            "status": status,
            "response_time_ms": explanation.response_time_ms,
            "requested_by": requested_by,
        }
        try:
            await self.log_sink.insert(row)
        except Exception as e:
            logger.error("Failed to log bundle explanation attempt (%s): %s", status, e)
