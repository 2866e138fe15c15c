"""Runtime configuration via environment variables, plus analysis thresholds."""

from __future__ import annotations

import os
from ipaddress import ip_address
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

VALID_DEPTHS = ("flash", "budget", "quick", "standard", "verified", "deep-dive")

# Env var name per provider id; a provider is registered only when its key is set.
PROVIDER_KEY_ENV: dict[str, str] = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "groq": "GROQ_API_KEY",
}


class AnalysisThresholds(BaseModel):
    """Tunable constants for the consensus, variance, and outlier heuristics.

    The defaults are the long-standing heuristic constants; override them to
    experiment without touching the analyzers.
    """

    min_claim_length: int = Field(default=10, ge=0)
    min_word_length: int = Field(default=3, ge=0)
    z_score: float = Field(default=2.5, gt=0)
    similarity: float = Field(default=0.3, ge=0, le=1)
    misunderstood_overlap: float = Field(default=0.2, ge=0, le=1)
    magnitude_factor: float = Field(default=10.0, gt=1)
    numeric_ceiling: float = Field(default=100.0, gt=0)
    min_numeric_responses: int = Field(default=3, ge=2)
    spread_ratio: float = Field(default=0.3, gt=0)
    medium_variance_max: int = Field(default=2, ge=1)


def _is_env_placeholder(value: str) -> bool:
    """Return True for unresolved shell placeholders such as ``${WEAVIATE_URL}``."""
    inner = value[2:-1] if value.startswith("${") and value.endswith("}") else value[1:] if value.startswith("$") else ""
    inner = inner.split(":-", 1)[0].strip()
    return bool(inner) and all(ch.isalnum() or ch == "_" for ch in inner)


def _normalize_weaviate_url(raw: str) -> str:
    """Add a scheme to bare hosts: ``http://`` for local/private, ``https://`` otherwise."""
    value = raw.strip()
    if not value or _is_env_placeholder(value):
        return ""
    if "://" in value:
        return value

    host = (urlparse(f"//{value}").hostname or "").lower()
    if not host:
        return ""
    try:
        ip = ip_address(host)
        local = ip.is_loopback or ip.is_private
    except ValueError:
        local = host == "localhost"
    return f"{'http' if local else 'https'}://{value}"


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


class ServerConfig(BaseModel):
    """Runtime configuration resolved from environment."""

    api_keys: dict[str, str] = Field(default_factory=dict)
    primary_model: str = Field(default="gemini-2.5-flash")
    default_depth: str = Field(default="standard")
    default_persona: str = Field(default="analyst")
    simulate: bool = Field(default=False)
    max_tokens: int = Field(default=1000)
    synthesis_max_tokens: int = Field(default=1500)
    temperature: float = Field(default=0.7)
    call_timeout: float = Field(default=30.0)
    sequential_delay: float = Field(default=2.0)
    retry_max_attempts: int = Field(default=3)
    retry_base_delay: float = Field(default=1.0)
    retry_max_delay: float = Field(default=60.0)
    weaviate_url: str = Field(default="")
    weaviate_api_key: str = Field(default="")
    weaviate_enabled: bool = Field(default=False)
    tracing_enabled: bool = Field(default=False)
    mlflow_tracking_uri: str = Field(default="")
    mlflow_experiment_name: str = Field(default="consensus-research-mcp")
    infra_mutations_enabled: bool = Field(default=False)
    infra_admin_token: str = Field(default="")
    thresholds: AnalysisThresholds = Field(default_factory=AnalysisThresholds)

    @field_validator("default_depth")
    @classmethod
    def validate_depth(cls, value: str) -> str:
        depth = value.strip().lower()
        if depth not in VALID_DEPTHS:
            raise ValueError(f"Invalid depth '{value}'. Allowed: {', '.join(VALID_DEPTHS)}")
        return depth

    @field_validator("retry_max_attempts", "max_tokens", "synthesis_max_tokens")
    @classmethod
    def validate_positive_ints(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Configuration values must be >= 1")
        return value

    @field_validator("retry_base_delay", "retry_max_delay", "call_timeout")
    @classmethod
    def validate_positive_floats(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Delays and timeouts must be > 0")
        return value

    @field_validator("sequential_delay")
    @classmethod
    def validate_sequential_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("sequential_delay must be >= 0")
        return value

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Build config from environment variables."""
        keys = {
            provider: os.getenv(env, "").strip()
            for provider, env in PROVIDER_KEY_ENV.items()
        }
        weaviate_url = _normalize_weaviate_url(os.getenv("WEAVIATE_URL", ""))
        tracking_uri = os.getenv("MLFLOW_TRACKING_URI", "")
        tracing_flag = os.getenv("RESEARCH_TRACING_ENABLED", "")
        return cls(
            api_keys={k: v for k, v in keys.items() if v and not _is_env_placeholder(v)},
            primary_model=os.getenv("RESEARCH_PRIMARY_MODEL", "gemini-2.5-flash"),
            default_depth=os.getenv("RESEARCH_DEFAULT_DEPTH", "standard"),
            default_persona=os.getenv("RESEARCH_DEFAULT_PERSONA", "analyst"),
            simulate=_env_flag("RESEARCH_SIMULATE"),
            max_tokens=int(os.getenv("RESEARCH_MAX_TOKENS", "1000")),
            synthesis_max_tokens=int(os.getenv("RESEARCH_SYNTHESIS_MAX_TOKENS", "1500")),
            temperature=float(os.getenv("RESEARCH_TEMPERATURE", "0.7")),
            call_timeout=float(os.getenv("RESEARCH_CALL_TIMEOUT", "30.0")),
            sequential_delay=float(os.getenv("RESEARCH_SEQUENTIAL_DELAY", "2.0")),
            retry_max_attempts=int(os.getenv("RESEARCH_RETRY_MAX_ATTEMPTS", "3")),
            retry_base_delay=float(os.getenv("RESEARCH_RETRY_BASE_DELAY", "1.0")),
            retry_max_delay=float(os.getenv("RESEARCH_RETRY_MAX_DELAY", "60.0")),
            weaviate_url=weaviate_url,
            weaviate_api_key=os.getenv("WEAVIATE_API_KEY", ""),
            weaviate_enabled=bool(weaviate_url),
            tracing_enabled=tracing_flag.lower() != "false" and bool(tracking_uri),
            mlflow_tracking_uri=tracking_uri,
            mlflow_experiment_name=os.getenv("MLFLOW_EXPERIMENT_NAME", "consensus-research-mcp"),
            infra_mutations_enabled=_env_flag("INFRA_MUTATIONS_ENABLED"),
            infra_admin_token=os.getenv("INFRA_ADMIN_TOKEN", ""),
        )


_config: ServerConfig | None = None


def get_config() -> ServerConfig:
    """Return the process config, creating it on first access.

    Loads ``~/.config/consensus-research-mcp/.env`` before reading env vars.
    Process environment always takes precedence over the config file. Only
    the MCP tool layer calls this; engine components receive config objects
    explicitly.
    """
    global _config
    if _config is None:
        import logging

        from .dotenv import load_dotenv

        injected = load_dotenv()
        if injected:
            logging.getLogger(__name__).info(
                "Loaded %d var(s) from config: %s", len(injected), ", ".join(injected.keys()),
            )
        _config = ServerConfig.from_env()
    return _config


def update_config(**overrides: object) -> ServerConfig:
    """Patch the live config (used by the ``infra_configure`` tool)."""
    global _config
    data = get_config().model_dump()
    data.update({k: v for k, v in overrides.items() if v is not None})
    _config = ServerConfig(**data)
    return _config
