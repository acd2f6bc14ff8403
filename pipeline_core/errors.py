"""
Pipeline Errors

Exception taxonomy shared by resolvers, provider clients, runners and the
promotion orchestrator.
"""

from typing import Any, Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(PipelineError):
    """Bad slug, reference or stage. Raised before any side effect."""


class InvalidSlugError(ValidationError):
    """A slug does not match the DNS label grammar."""

    def __init__(self, slug: str, context: str = ""):
        self.slug = slug
        detail = f" ({context})" if context else ""
        super().__init__(f"Invalid slug: {slug!r}{detail}")


class AmbiguousReferenceError(ValidationError):
    """A target reference could not be interpreted as slug, id or URL."""


class StageTransitionError(ValidationError):
    """A record stage change is not allowed by the transition table."""

    def __init__(self, current: Any, target: Any):
        self.current = current
        self.target = target
        super().__init__(f"Stage transition not allowed: {current} -> {target}")


class NotFoundError(PipelineError):
    """A tenant record required by the caller does not exist."""


class ConfigurationError(PipelineError):
    """Missing credentials or rejected authentication. Never retried."""


class ConflictError(PipelineError):
    """A provider reports an existing conflicting resource."""


class TransientNetworkError(PipelineError):
    """Timeouts, connection errors, 429 and 5xx responses."""


class ProviderError(PipelineError):
    """A provider rejected a request for a non-transient reason."""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        body: Any = None,
    ):
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(f"{provider}: {message}")


class VerificationFailure(PipelineError):
    """Content or health check did not match expectations after retries."""


class PromotionTimeoutError(PipelineError):
    """A domain attachment never became ready before the timeout."""

    def __init__(self, hostname: str, timeout_seconds: float, last_config: Optional[dict] = None):
        self.hostname = hostname
        self.timeout_seconds = timeout_seconds
        self.last_config = last_config or {}
        super().__init__(
            f"Timed out after {timeout_seconds:g}s waiting for domain ready: "
            f"{hostname} last={self.last_config}"
        )


class LeaseUnavailableError(PipelineError):
    """Another invocation holds the lease on a tenant record."""

    def __init__(self, record_id: str, holder: Optional[str] = None):
        self.record_id = record_id
        self.holder = holder
        super().__init__(f"Record {record_id} is leased by {holder or 'another run'}")
