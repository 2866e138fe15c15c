"""Shared test fixtures for consensus-research-mcp."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from consensus_research_mcp.config import PROVIDER_KEY_ENV
from consensus_research_mcp.models.research import Generation, GenerationParams, ModelResponse
from consensus_research_mcp.providers.base import Provider


@pytest.fixture(autouse=True, scope="session")
def _unwrap_fastmcp_tools():
    """Make FastMCP FunctionTool objects directly awaitable in tests.

    FastMCP 2.x wraps ``@server.tool`` functions in FunctionTool (not
    callable); 3.x preserves the function.
    """
    import consensus_research_mcp.tools.infra as infra_mod
    import consensus_research_mcp.tools.research as research_mod

    for mod in (research_mod, infra_mod):
        for name in list(vars(mod)):
            obj = getattr(mod, name, None)
            if obj is not None and hasattr(obj, "fn") and not callable(obj):
                setattr(mod, name, obj.fn)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Ensure tests never see real provider keys or hit real backends."""
    for env in PROVIDER_KEY_ENV.values():
        monkeypatch.delenv(env, raising=False)
    for env in ("RESEARCH_SIMULATE", "WEAVIATE_URL", "WEAVIATE_API_KEY", "INFRA_ADMIN_TOKEN"):
        monkeypatch.delenv(env, raising=False)


@pytest.fixture(autouse=True)
def _disable_tracing(monkeypatch):
    """Disable MLflow tracing in all tests to avoid real tracking-server calls."""
    monkeypatch.setenv("RESEARCH_TRACING_ENABLED", "false")


@pytest.fixture(autouse=True)
def _isolate_dotenv(tmp_path, monkeypatch):
    """Prevent tests from loading the user's real ~/.config/consensus-research-mcp/.env."""
    monkeypatch.setattr(
        "consensus_research_mcp.dotenv.DEFAULT_ENV_PATH",
        tmp_path / "nonexistent.env",
    )


@pytest.fixture()
def clean_config():
    """Reset the config and engine singletons between tests."""
    import consensus_research_mcp.config as cfg_mod
    import consensus_research_mcp.tools.research as research_mod

    cfg_mod._config = None
    research_mod._engine = None
    yield
    cfg_mod._config = None
    research_mod._engine = None


class ScriptedProvider(Provider):
    """Test provider: answers from a per-model script, or raises what the script says.

    Script values may be a string, an exception instance, or a list of
    either consumed one call at a time.
    """

    def __init__(self, provider_id: str, script: dict | None = None, catalog=None) -> None:
        super().__init__(catalog)
        self.id = provider_id
        self.name = f"scripted-{provider_id}"
        self.script = dict(script or {})
        self.calls: list[GenerationParams] = []

    async def generate(self, params: GenerationParams) -> Generation:
        self.calls.append(params)
        entry = self.script.get(params.model, f"Default answer from {params.model} about the topic.")
        if isinstance(entry, list):
            entry = entry.pop(0) if len(entry) > 1 else entry[0]
        if isinstance(entry, BaseException):
            raise entry
        return self._build(params.model, entry, 100, 50)


@pytest.fixture()
def scripted():
    """The ScriptedProvider class, for tests that build their own registries."""
    return ScriptedProvider


@pytest.fixture()
def make_response():
    """Factory for ModelResponse objects keyed by backend id."""

    def _make(backend: str, text: str, **kwargs) -> ModelResponse:
        return ModelResponse(
            backend=backend,
            provider=kwargs.pop("provider", "test"),
            text=text,
            model=kwargs.pop("model", backend),
            **kwargs,
        )

    return _make


@pytest.fixture()
def mock_weaviate_client():
    """Patch WeaviateClient for unit tests — provides mock client + collections."""
    mock_client = MagicMock()
    mock_collection = MagicMock()
    mock_client.collections.get.return_value = mock_collection
    mock_client.collections.list_all.return_value = {}
    mock_client.is_ready.return_value = True
    mock_collection.data.insert.return_value = "run-uuid-1234"

    with (
        patch("consensus_research_mcp.weaviate_client._client", mock_client),
        patch("consensus_research_mcp.weaviate_client._schema_ensured", True),
        patch("consensus_research_mcp.weaviate_client.WeaviateClient.get", return_value=mock_client),
    ):
        yield {"client": mock_client, "collection": mock_collection}
