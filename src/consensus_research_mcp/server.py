"""Main FastMCP server — mounts all sub-servers."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastmcp import FastMCP

from . import tracing
from .tools.infra import infra_server
from .tools.research import close_engine, research_server
from .weaviate_client import WeaviateClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(server: FastMCP):
    """Startup/shutdown hook — tracing setup, then engine and storage teardown."""
    tracing.setup()
    yield {}
    await close_engine()
    await WeaviateClient.aclose()
    tracing.shutdown()
    logger.info("Lifespan shutdown complete")


app = FastMCP(
    "consensus-research",
    instructions=(
        "Multi-backend research with statistical consensus — asks several "
        "models the same question and reports agreement, disagreement, "
        "outliers, and meta-insights."
    ),
    lifespan=_lifespan,
)

app.mount(research_server)
app.mount(infra_server)


def main() -> None:
    """Entry-point for ``consensus-research-mcp`` console script."""
    app.run()


if __name__ == "__main__":
    main()
