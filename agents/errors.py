"""
Error taxonomy for the generation pipeline.

Every error carries a stable ``kind`` string so failed step results keep
the error category even after it has been flattened into a message.
Transient errors set ``retryable = True`` and are retried by the
resilience wrapper; everything else propagates on the first failure.
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    kind = "pipeline_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Caller / programmer errors

class UnknownStepError(PipelineError):
    """Raised when a step id is not registered."""

    kind = "unknown_step"

    def __init__(self, step_id: str):
        super().__init__(f"Unknown pipeline step: '{step_id}'")
        self.step_id = step_id


class MissingDependencyError(PipelineError):
    """Raised when a step's declared dependency is absent from the context."""

    kind = "missing_dependency"

    def __init__(self, step_id: str, dependency: str, detail: Optional[str] = None):
        message = f"Step '{step_id}' requires '{dependency}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.step_id = step_id
        self.dependency = dependency


# Completion transport errors

class TransportError(PipelineError):
    """Network, DNS or connection failure, or a truncated stream."""

    kind = "transport_error"
    retryable = True


class AuthError(PipelineError):
    """Missing or rejected provider credential."""

    kind = "auth_error"


class ProviderError(PipelineError):
    """Non-2xx response (or malformed body) from the completion provider."""

    kind = "provider_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        # 4xx are client errors, except request timeout and rate limiting
        if self.status_code is None:
            return True
        if 400 <= self.status_code < 500:
            return self.status_code in (408, 429)
        return True


class CompletionTimeoutError(PipelineError):
    """A single completion attempt exceeded its timeout."""

    kind = "timeout"
    retryable = True

    def __init__(self, timeout: float):
        super().__init__(f"Completion attempt timed out after {timeout:g}s")
        self.timeout = timeout


class RetryExhaustedError(PipelineError):
    """All retry attempts failed. Wraps the last error."""

    def __init__(self, last_error: PipelineError, attempts: int):
        super().__init__(
            f"Retries exhausted after {attempts} attempts: {last_error.message}"
        )
        self.last_error = last_error
        self.attempts = attempts

    @property
    def kind(self) -> str:
        return self.last_error.kind


# Model output errors

class UnparsableResponseError(PipelineError):
    """No JSON value could be recovered from the model's text."""

    kind = "unparsable_response"

    def __init__(self, raw_text: str, reason: str = "No JSON object found in model response"):
        super().__init__(reason)
        self.raw_text = raw_text


class ContractViolationError(PipelineError):
    """A required field is missing (with no default) or has the wrong type."""

    kind = "contract_violation"

    def __init__(self, path: str, reason: str = "missing required field"):
        super().__init__(f"Contract violation at '{path}': {reason}")
        self.path = path


# Caller-initiated

class OperationCancelledError(PipelineError):
    """The run's cancellation signal fired while work was in flight."""

    kind = "cancelled"


# Run bookkeeping

class InvalidTransitionError(PipelineError):
    """Illegal pipeline run status transition."""

    kind = "invalid_transition"


class RunNotFoundError(PipelineError):
    """No run is registered under the given id."""

    kind = "run_not_found"

    def __init__(self, run_id):
        super().__init__(f"Pipeline run '{run_id}' not found")
        self.run_id = run_id


def is_retryable(exc: BaseException) -> bool:
    """Whether the resilience wrapper may retry after ``exc``."""
    return isinstance(exc, PipelineError) and bool(exc.retryable)
