"""Structured error handling — engine exceptions, failure classification, tool error model."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class FailureKind(str, Enum):
    """Coarse classification of a single backend call failure."""

    QUOTA = "quota"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    AUTH = "auth"
    INVALID_REQUEST = "invalid_request"
    UNAVAILABLE = "unavailable"
    OTHER = "other"


class ResearchError(Exception):
    """Base class for engine failures.

    Fatal errors carry the pipeline ``phase`` they surfaced in, the request
    ``topic``, and the underlying ``cause`` when there is one.
    """

    phase: str = "research"

    def __init__(
        self,
        message: str,
        *,
        phase: str | None = None,
        topic: str = "",
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        if phase is not None:
            self.phase = phase
        self.topic = topic
        self.cause = cause

    def context(self) -> dict:
        """Return a JSON-safe description of where the failure happened."""
        return {
            "phase": self.phase,
            "topic": self.topic,
            "cause": str(self.cause) if self.cause is not None else None,
        }


class ValidationError(ResearchError):
    """Malformed research request — rejected before dispatch, never retried."""

    phase = "validation"


class ProviderError(ResearchError):
    """A single backend call failed.

    Recovered locally (retry, substitution, or dropping the slot); never
    fatal on its own.
    """

    phase = "dispatch"

    def __init__(
        self,
        provider: str,
        model: str,
        message: str,
        *,
        kind: FailureKind = FailureKind.OTHER,
        status: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(f"{provider} failed for {model}: {message}", cause=cause)
        self.provider = provider
        self.model = model
        self.kind = kind
        self.status = status


class NoProvidersError(ResearchError):
    """No backend is reachable at selection time — no partial result is possible."""

    phase = "selection"

    def __init__(self, message: str = "No text-generation providers configured. Set at least one API key.", **kwargs) -> None:
        super().__init__(message, **kwargs)


class ConsensusComputationError(ResearchError):
    """Zero responses reached the consensus stage."""

    phase = "consensus"


class DeadlineExceededError(ResearchError):
    """The caller's overall deadline expired while backends were still being called."""

    phase = "dispatch"


_QUOTA_PATTERNS = ("quota", "credit", "balance", "billing", "402", "resource_exhausted")
_RATE_PATTERNS = ("rate limit", "rate_limit", "429", "too many requests")
_TIMEOUT_PATTERNS = ("timeout", "timed out")
_AUTH_PATTERNS = ("api key", "authentication", "unauthorized", "401", "403", "permission")
_UNAVAILABLE_PATTERNS = ("503", "502", "service unavailable", "overloaded")


def classify_failure(error: BaseException) -> FailureKind:
    """Map an exception from a backend call to a :class:`FailureKind`."""
    if isinstance(error, ProviderError) and error.kind is not FailureKind.OTHER:
        return error.kind
    if isinstance(error, TimeoutError):
        return FailureKind.TIMEOUT

    status = getattr(error, "status", None)
    if isinstance(status, int):
        if status == 429:
            return FailureKind.RATE_LIMIT
        if status == 402:
            return FailureKind.QUOTA
        if status in (401, 403):
            return FailureKind.AUTH
        if status >= 500:
            return FailureKind.UNAVAILABLE
        if 400 <= status < 500:
            return FailureKind.INVALID_REQUEST

    s = str(error).lower()
    if any(p in s for p in _QUOTA_PATTERNS):
        return FailureKind.QUOTA
    if any(p in s for p in _RATE_PATTERNS):
        return FailureKind.RATE_LIMIT
    if any(p in s for p in _TIMEOUT_PATTERNS):
        return FailureKind.TIMEOUT
    if any(p in s for p in _AUTH_PATTERNS):
        return FailureKind.AUTH
    if any(p in s for p in _UNAVAILABLE_PATTERNS):
        return FailureKind.UNAVAILABLE
    return FailureKind.OTHER


def is_retryable(error: BaseException) -> bool:
    """Whether a failed call is worth another attempt.

    Any 4xx other than 429 (auth, validation, 402 billing) is never retried.
    """
    if isinstance(error, ResearchError) and not isinstance(error, ProviderError):
        return False
    if isinstance(error, (ValueError, TypeError)):
        return False
    status = getattr(error, "status", None)
    if isinstance(status, int) and 400 <= status < 500 and status != 429:
        return False
    return classify_failure(error) not in (FailureKind.AUTH, FailureKind.INVALID_REQUEST)


class ErrorCategory(str, Enum):
    """Categories of errors for tool diagnostics."""

    REQUEST_INVALID = "REQUEST_INVALID"
    NO_PROVIDERS = "NO_PROVIDERS"
    NO_RESPONSES = "NO_RESPONSES"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    API_PERMISSION_DENIED = "API_PERMISSION_DENIED"
    API_QUOTA_EXCEEDED = "API_QUOTA_EXCEEDED"
    API_INVALID_ARGUMENT = "API_INVALID_ARGUMENT"
    NETWORK_ERROR = "NETWORK_ERROR"
    WEAVIATE_CONNECTION = "WEAVIATE_CONNECTION"
    UNKNOWN = "UNKNOWN"


class ToolError(BaseModel):
    """Structured error returned from any tool."""

    error: str
    category: str
    hint: str
    retryable: bool = False
    retry_after_seconds: int | None = None
    phase: str | None = None
    topic: str | None = None


def categorize_error(error: BaseException) -> tuple[ErrorCategory, str]:
    """Map an exception to an ErrorCategory + human-readable hint."""
    if isinstance(error, ValidationError):
        return ErrorCategory.REQUEST_INVALID, "Fix the request — topic, depth, cost ceiling, or backend ids"
    if isinstance(error, NoProvidersError):
        return (
            ErrorCategory.NO_PROVIDERS,
            "No backend reachable — set GEMINI_API_KEY, OPENAI_API_KEY, ANTHROPIC_API_KEY, "
            "DEEPSEEK_API_KEY or GROQ_API_KEY, or RESEARCH_SIMULATE=true",
        )
    if isinstance(error, ConsensusComputationError):
        return ErrorCategory.NO_RESPONSES, "Every backend call failed — check quotas and keys, then retry"
    if isinstance(error, DeadlineExceededError):
        return ErrorCategory.DEADLINE_EXCEEDED, "Raise deadline_seconds or pick a shallower depth"
    if isinstance(error, PermissionError):
        return ErrorCategory.PERMISSION_DENIED, "Set INFRA_MUTATIONS_ENABLED=true (and pass auth_token when INFRA_ADMIN_TOKEN is set)"

    s = str(error).lower()
    kind = classify_failure(error)
    if kind in (FailureKind.QUOTA, FailureKind.RATE_LIMIT):
        return ErrorCategory.API_QUOTA_EXCEEDED, "Rate limit or quota hit — wait and retry, or pick a cheaper depth"
    if kind is FailureKind.AUTH:
        return ErrorCategory.API_PERMISSION_DENIED, "API key rejected — check the provider key"
    if kind is FailureKind.INVALID_REQUEST:
        return ErrorCategory.API_INVALID_ARGUMENT, "Bad request — check input format"
    if kind is FailureKind.TIMEOUT or "connect" in s:
        return ErrorCategory.NETWORK_ERROR, "Request timed out or connection failed — try again"
    if "weaviate" in s:
        return ErrorCategory.WEAVIATE_CONNECTION, "Cannot reach Weaviate — check WEAVIATE_URL"
    return ErrorCategory.UNKNOWN, str(error)


def make_tool_error(error: BaseException) -> dict:
    """Create a serialisable ToolError dict from an exception."""
    cat, hint = categorize_error(error)
    retryable = cat in {
        ErrorCategory.API_QUOTA_EXCEEDED,
        ErrorCategory.NETWORK_ERROR,
        ErrorCategory.NO_RESPONSES,
        ErrorCategory.DEADLINE_EXCEEDED,
        ErrorCategory.WEAVIATE_CONNECTION,
    }
    phase = topic = None
    if isinstance(error, ResearchError):
        phase = error.phase
        topic = error.topic or None
    return ToolError(
        error=str(error),
        category=cat.value,
        hint=hint,
        retryable=retryable,
        retry_after_seconds=60 if cat == ErrorCategory.API_QUOTA_EXCEEDED else None,
        phase=phase,
        topic=topic,
    ).model_dump(mode="json")
