"""
Custom exceptions and error handling for the EOR quote engine.

Provides:
- Typed exception hierarchy for different failure modes
- Error context preservation (provider, stage) for debugging
- Partial success handling for multi-provider runs
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any


class EorQuoteError(Exception):
    """Base exception for all EOR quote engine errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message

    @property
    def provider(self) -> str | None:
        return self.context.get('provider')

    @property
    def stage(self) -> str | None:
        return self.context.get('stage')


# =============================================================================
# Client Errors
# =============================================================================


class ClientError(EorQuoteError):
    """Base class for external collaborator errors."""

    pass


class ModelError(ClientError):
    """Error from a generative model call."""

    retriable: bool = False


class ModelTimeoutError(ModelError):
    """Model call exceeded its per-call timeout."""

    retriable = True


class StageBudgetExceededError(ModelTimeoutError):
    """The stage time budget ran out before a call could be attempted."""

    retriable = False


class ModelRateLimitedError(ModelError):
    """Rate limit exceeded on the model endpoint."""

    retriable = True


class ModelServerError(ModelError):
    """Model endpoint returned a 5xx-class error."""

    retriable = True


class ModelInvalidResponseError(ModelError):
    """Model rejected JSON mode or returned an unusable response."""

    pass


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(EorQuoteError):
    """Base class for pipeline-related errors."""

    pass


class ValidationError(PipelineError):
    """Input validation failed."""

    pass


class ReferenceDataMissingError(PipelineError):
    """No legal reference data exists for the requested country."""

    pass


class SchemaValidationFailedError(PipelineError):
    """No candidate object in a model response matched the target schema."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        candidate_errors: list[str] | None = None,
    ):
        super().__init__(message, context)
        self.candidate_errors = candidate_errors or []


class ProfileAssemblyError(PipelineError):
    """Legal cost profile could not be assembled."""

    pass


class GapAnalysisError(PipelineError):
    """Gap analysis could not produce an enhancement set."""

    pass


class CurrencyConversionFailedError(PipelineError):
    """A currency conversion failed; the dependent field is omitted."""

    pass


class CategorizationFailedError(PipelineError):
    """Cost categorization failed; keyword fallback applies."""

    pass


class RequestSupersededError(PipelineError):
    """A newer enhancement request for the same session and provider replaced this one."""

    pass


# =============================================================================
# Partial Success Handling
# =============================================================================


@dataclass
class ItemResult:
    """Result for a single provider in a multi-provider run."""

    item_id: str | None
    success: bool
    error: EorQuoteError | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class PartialSuccessResult:
    """
    Result of a batch operation that may partially succeed.

    Allows processing to continue even when some providers fail,
    while preserving error context for debugging.
    """

    succeeded: list[ItemResult] = field(default_factory=list)
    failed: list[ItemResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def total_count(self) -> int:
        return self.success_count + self.failure_count

    @property
    def all_succeeded(self) -> bool:
        return self.failure_count == 0

    @property
    def all_failed(self) -> bool:
        return self.success_count == 0

    @property
    def partial_success(self) -> bool:
        return self.success_count > 0 and self.failure_count > 0

    def add_success(
        self,
        item_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Record a successful provider."""
        self.succeeded.append(
            ItemResult(item_id=item_id, success=True, data=data or {})
        )

    def add_failure(
        self,
        error: EorQuoteError,
        item_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Record a failed provider."""
        self.failed.append(
            ItemResult(item_id=item_id, success=False, error=error, data=data or {})
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'total_count': self.total_count,
            'all_succeeded': self.all_succeeded,
            'succeeded_ids': [r.item_id for r in self.succeeded if r.item_id],
            'failed_ids': [r.item_id for r in self.failed if r.item_id],
            'errors': [
                {
                    'item_id': r.item_id,
                    'stage': r.error.stage,
                    'error_type': type(r.error).__name__,
                    'error': str(r.error),
                }
                for r in self.failed
                if r.error
            ],
        }


# =============================================================================
# Error Handling Utilities
# =============================================================================


def wrap_model_error(exc: Exception, context: dict[str, Any] | None = None) -> ModelError:
    """
    Wrap a model SDK or transport exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed ModelError subclass
    """
    if isinstance(exc, ModelError):
        return exc

    error_str = str(exc).lower()
    ctx = dict(context or {})
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__
    status = getattr(exc, 'status_code', None)

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)) or 'timed out' in error_str \
            or 'timeout' in error_str or status == 408:
        return ModelTimeoutError(f"Model call timed out: {exc}", context=ctx)
    elif status == 429 or 'rate limit' in error_str or 'rate_limit' in error_str \
            or 'temporarily' in error_str:
        return ModelRateLimitedError(f"Model rate limit exceeded: {exc}", context=ctx)
    elif (isinstance(status, int) and status >= 500) or ' 503' in error_str \
            or 'server error' in error_str:
        return ModelServerError(f"Model server error: {exc}", context=ctx)
    elif 'response_format' in error_str or 'failed to generate json' in error_str \
            or status == 400:
        return ModelInvalidResponseError(f"Model rejected JSON mode: {exc}", context=ctx)
    else:
        return ModelError(f"Model API error: {exc}", context=ctx)
