"""Exception types raised by the bundle engine.

Most failures inside the engine degrade to documented defaults and are only
logged. The classes here cover the cases that do surface: malformed
algorithm definitions, explanation provider failures (always caught by the
explanation service), and PHI/PII boundary violations (never caught).
"""


class BundleEngineError(Exception):
    """Base class for bundle engine errors."""


class AlgorithmDefinitionError(BundleEngineError, ValueError):
    """Algorithm definition is missing, malformed, or unknown."""


class ExpressionError(BundleEngineError, ValueError):
    """An algorithm expression could not be parsed."""


class PhiPiiViolationError(BundleEngineError, RuntimeError):
    """Protected information was detected in an outbound prompt payload.

    Signals a defect in prompt construction. Callers must let it propagate
    rather than fall back, so no protected data ever reaches a provider.
    """


class ExplanationProviderError(BundleEngineError):
    """Generic failure calling an external explanation provider."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderTimeoutError(ExplanationProviderError):
    """Provider did not answer within the configured timeout."""


class ProviderRateLimitError(ExplanationProviderError):
    """Provider rejected the request due to rate limiting."""


class ProviderAuthError(ExplanationProviderError):
    """Provider rejected the configured credentials."""
