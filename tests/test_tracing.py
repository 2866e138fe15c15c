"""Tests for the optional MLflow tracing integration."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

import consensus_research_mcp.tracing as mod


def _make_config(**overrides):
    """Build a mock ServerConfig with tracing-enabled defaults."""
    defaults = {
        "tracing_enabled": True,
        "mlflow_tracking_uri": "http://127.0.0.1:5001",
        "mlflow_experiment_name": "consensus-research-mcp",
    }
    defaults.update(overrides)
    cfg = MagicMock()
    for k, v in defaults.items():
        setattr(cfg, k, v)
    return cfg


@pytest.fixture()
def fake_mlflow(monkeypatch):
    """Pretend mlflow is installed and swap in a mock module."""
    mock_mlflow = MagicMock()
    monkeypatch.setattr(mod, "_HAS_MLFLOW", True)
    monkeypatch.setattr(mod, "mlflow", mock_mlflow, raising=False)
    return mock_mlflow


class TestIsEnabled:
    def test_true_when_installed_and_enabled(self, fake_mlflow):
        with patch("consensus_research_mcp.config.get_config", return_value=_make_config()):
            assert mod.is_enabled() is True

    def test_false_when_not_installed(self, monkeypatch):
        monkeypatch.setattr(mod, "_HAS_MLFLOW", False)
        assert mod.is_enabled() is False

    def test_false_when_config_disabled(self, fake_mlflow):
        with patch("consensus_research_mcp.config.get_config", return_value=_make_config(tracing_enabled=False)):
            assert mod.is_enabled() is False


class TestTraceDecorator:
    def test_identity_when_disabled(self, monkeypatch):
        monkeypatch.setattr(mod, "_HAS_MLFLOW", False)

        async def research_run():
            return "ok"

        assert mod.trace(name="research_run", span_type="TOOL")(research_run) is research_run
        assert mod.trace(research_run) is research_run

    def test_delegates_to_mlflow_when_enabled(self, fake_mlflow):
        async def research_run():
            return "ok"

        with patch("consensus_research_mcp.config.get_config", return_value=_make_config()):
            mod.trace(research_run, name="research_run", span_type="TOOL")

        fake_mlflow.trace.assert_called_once_with(
            research_run, name="research_run", span_type="TOOL", attributes=None,
        )


class TestSetup:
    def test_configures_uri_experiment_and_autolog(self, fake_mlflow):
        cfg = _make_config(mlflow_tracking_uri="http://my-server:5000", mlflow_experiment_name="custom")
        with patch("consensus_research_mcp.config.get_config", return_value=cfg):
            mod.setup()

        fake_mlflow.set_tracking_uri.assert_called_once_with("http://my-server:5000")
        fake_mlflow.set_experiment.assert_called_once_with("custom")
        fake_mlflow.gemini.autolog.assert_called_once()

    def test_noop_when_disabled(self, fake_mlflow, monkeypatch):
        monkeypatch.setattr(mod, "_HAS_MLFLOW", False)
        mod.setup()
        fake_mlflow.set_tracking_uri.assert_not_called()

    def test_failures_are_logged_not_raised(self, fake_mlflow):
        fake_mlflow.set_experiment.side_effect = Exception("connection refused")
        with patch("consensus_research_mcp.config.get_config", return_value=_make_config()):
            mod.setup()
        fake_mlflow.gemini.autolog.assert_not_called()


class TestShutdown:
    def test_flushes(self, fake_mlflow):
        with patch("consensus_research_mcp.config.get_config", return_value=_make_config()):
            mod.shutdown()
        fake_mlflow.flush_trace_async_logging.assert_called_once()

    def test_flush_failure_is_swallowed(self, fake_mlflow):
        fake_mlflow.flush_trace_async_logging.side_effect = RuntimeError("boom")
        with patch("consensus_research_mcp.config.get_config", return_value=_make_config()):
            mod.shutdown()

    def test_noop_when_disabled(self, fake_mlflow, monkeypatch):
        monkeypatch.setattr(mod, "_HAS_MLFLOW", False)
        mod.shutdown()
        fake_mlflow.flush_trace_async_logging.assert_not_called()
