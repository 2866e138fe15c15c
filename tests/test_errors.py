"""Tests for failure classification, retryability, and structured tool errors."""

from __future__ import annotations

import httpx
import pytest

from consensus_research_mcp.errors import (
    ConsensusComputationError,
    DeadlineExceededError,
    FailureKind,
    NoProvidersError,
    ProviderError,
    ResearchError,
    ValidationError,
    classify_failure,
    is_retryable,
    make_tool_error,
)


class _StatusError(Exception):
    def __init__(self, status: int, message: str = "boom") -> None:
        super().__init__(message)
        self.status = status


class TestClassifyFailure:
    @pytest.mark.parametrize(
        "status,kind",
        [
            (429, FailureKind.RATE_LIMIT),
            (402, FailureKind.QUOTA),
            (401, FailureKind.AUTH),
            (403, FailureKind.AUTH),
            (400, FailureKind.INVALID_REQUEST),
            (503, FailureKind.UNAVAILABLE),
        ],
    )
    def test_status_codes(self, status, kind):
        assert classify_failure(_StatusError(status)) is kind

    def test_message_patterns(self):
        assert classify_failure(RuntimeError("Insufficient balance")) is FailureKind.QUOTA
        assert classify_failure(RuntimeError("Too many requests")) is FailureKind.RATE_LIMIT
        assert classify_failure(RuntimeError("Invalid API key provided")) is FailureKind.AUTH
        assert classify_failure(RuntimeError("model overloaded")) is FailureKind.UNAVAILABLE
        assert classify_failure(RuntimeError("something odd")) is FailureKind.OTHER

    def test_builtin_timeout(self):
        assert classify_failure(TimeoutError()) is FailureKind.TIMEOUT

    def test_provider_error_kind_wins(self):
        err = ProviderError("openai", "gpt-4o", "nope", kind=FailureKind.QUOTA)
        assert classify_failure(err) is FailureKind.QUOTA


class TestIsRetryable:
    def test_transient_failures_are_retried(self):
        assert is_retryable(_StatusError(429))
        assert is_retryable(_StatusError(503))
        assert is_retryable(TimeoutError())

    def test_auth_and_bad_requests_are_not(self):
        assert not is_retryable(_StatusError(401))
        assert not is_retryable(_StatusError(400))

    def test_payment_required_is_not_retried(self):
        assert not is_retryable(_StatusError(402))
        assert not is_retryable(ProviderError("deepseek", "deepseek-chat", "balance", kind=FailureKind.QUOTA, status=402))
        assert is_retryable(ProviderError("gemini", "gemini-2.5-flash", "quota", kind=FailureKind.QUOTA))

    def test_engine_errors_are_not(self):
        assert not is_retryable(ValidationError("bad topic"))
        assert not is_retryable(ValueError("bad"))


class TestResearchError:
    def test_context_carries_phase_topic_and_cause(self):
        cause = RuntimeError("root")
        err = ConsensusComputationError("none left", topic="solar", cause=cause)
        assert err.context() == {"phase": "consensus", "topic": "solar", "cause": "root"}

    def test_phase_override(self):
        assert ConsensusComputationError("x", phase="dispatch").phase == "dispatch"

    def test_subclass_default_phases(self):
        assert ValidationError("x").phase == "validation"
        assert NoProvidersError().phase == "selection"
        assert DeadlineExceededError("x").phase == "dispatch"
        assert ResearchError("x").phase == "research"


class TestMakeToolError:
    def test_builtin_timeout_maps_to_network_error(self):
        result = make_tool_error(TimeoutError())
        assert result["category"] == "NETWORK_ERROR"
        assert result["retryable"] is True

    def test_httpx_timeout_maps_to_network_error(self):
        result = make_tool_error(httpx.ReadTimeout("read timed out"))
        assert result["category"] == "NETWORK_ERROR"
        assert result["retryable"] is True

    def test_httpx_network_maps_to_network_error(self):
        result = make_tool_error(httpx.ConnectError("connection refused"))
        assert result["category"] == "NETWORK_ERROR"
        assert result["retryable"] is True

    def test_validation_error_not_retryable(self):
        result = make_tool_error(ValidationError("Topic must not be empty", topic=""))
        assert result["category"] == "REQUEST_INVALID"
        assert result["retryable"] is False
        assert result["phase"] == "validation"
        assert result["topic"] is None

    def test_no_providers(self):
        result = make_tool_error(NoProvidersError())
        assert result["category"] == "NO_PROVIDERS"
        assert result["phase"] == "selection"

    def test_no_responses_carries_topic(self):
        err = ConsensusComputationError("all failed", phase="dispatch", topic="fusion power")
        result = make_tool_error(err)
        assert result["category"] == "NO_RESPONSES"
        assert result["retryable"] is True
        assert result["phase"] == "dispatch"
        assert result["topic"] == "fusion power"

    def test_deadline(self):
        result = make_tool_error(DeadlineExceededError("deadline of 5s exceeded"))
        assert result["category"] == "DEADLINE_EXCEEDED"
        assert result["retryable"] is True

    def test_permission_error(self):
        result = make_tool_error(PermissionError("Infra mutations are disabled by policy."))
        assert result["category"] == "PERMISSION_DENIED"
        assert result["retryable"] is False

    def test_quota_sets_retry_after(self):
        result = make_tool_error(_StatusError(429, "rate limited"))
        assert result["category"] == "API_QUOTA_EXCEEDED"
        assert result["retry_after_seconds"] == 60

    def test_unknown_echoes_message(self):
        result = make_tool_error(RuntimeError("strange failure"))
        assert result["category"] == "UNKNOWN"
        assert result["hint"] == "strange failure"
