"""Load provider keys and settings from a shared ``.env`` file.

Lets every MCP host pick up the same backend keys from
``~/.config/consensus-research-mcp/.env`` without repeating them in each
host's server config. Values already present in the process win.
"""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_ENV_PATH = Path.home() / ".config" / "consensus-research-mcp" / ".env"


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def _needs_value(key: str, current: str | None) -> bool:
    """True when the live env value is missing, blank, or a self-placeholder.

    Some MCP hosts forward ``KEY="${KEY}"`` verbatim when the variable is
    not exported in the user's shell.
    """
    if current is None:
        return True
    value = _strip_quotes(current.strip()).strip()
    if not value:
        return True
    if value in (f"${key}", f"${{{key}}}"):
        return True
    return value.startswith(f"${{{key}:-") and value.endswith("}")


def parse_dotenv(path: Path) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines (optionally quoted or ``export``-prefixed).

    Blank lines and ``#`` comments are skipped; no variable expansion.
    """
    entries: dict[str, str] = {}
    if not path.is_file():
        return entries

    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        line = line.removeprefix("export ")
        key, _, value = line.partition("=")
        key = key.strip()
        if key:
            entries[key] = _strip_quotes(value.strip())
    return entries


def load_dotenv(path: Path | None = None) -> dict[str, str]:
    """Inject vars from *path* into ``os.environ`` where the process lacks them.

    Returns:
        Dict of vars that were actually injected.
    """
    injected: dict[str, str] = {}
    for key, value in parse_dotenv(path or DEFAULT_ENV_PATH).items():
        if _needs_value(key, os.environ.get(key)):
            os.environ[key] = value
            injected[key] = value
    return injected
