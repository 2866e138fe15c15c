"""Weaviate client singleton for the storage sink.

Lazily connects on first use and idempotently creates the collections in
weaviate_schema.ALL_COLLECTIONS. Used only by weaviate_store.py; the
analysis pipeline never touches it.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from urllib.parse import urlparse

import weaviate
from weaviate.classes.config import Configure, DataType, Property
from weaviate.classes.init import AdditionalConfig, Auth, Timeout

from .config import get_config
from .weaviate_schema import ALL_COLLECTIONS, CollectionDef, PropertyDef

logger = logging.getLogger(__name__)

_client: weaviate.WeaviateClient | None = None
_schema_ensured = False
_lock = threading.Lock()

_DATA_TYPE_MAP: dict[str, DataType] = {
    "text": DataType.TEXT,
    "text[]": DataType.TEXT_ARRAY,
    "int": DataType.INT,
    "number": DataType.NUMBER,
    "boolean": DataType.BOOL,
    "date": DataType.DATE,
}

_ADDITIONAL_CONFIG = AdditionalConfig(timeout=Timeout(init=30, query=60, insert=120))


def _to_property(prop_def: PropertyDef) -> Property:
    data_type = _DATA_TYPE_MAP.get(prop_def.data_type[0])
    if data_type is None:
        raise ValueError(f"Unknown data type: {prop_def.data_type[0]!r}")
    kwargs: dict = {
        "name": prop_def.name,
        "data_type": data_type,
        "description": prop_def.description or None,
        "skip_vectorization": prop_def.skip_vectorization,
        "index_filterable": prop_def.index_filterable,
        "index_range_filters": prop_def.index_range_filters,
    }
    if prop_def.index_searchable is not None:
        kwargs["index_searchable"] = prop_def.index_searchable
    return Property(**kwargs)


def _connect(url: str, api_key: str) -> weaviate.WeaviateClient:
    """Connect with the method matching the URL: local, cloud (https), or custom."""
    parsed = urlparse(url)
    host = parsed.hostname or ""
    auth = Auth.api_key(api_key) if api_key else None

    if host in ("localhost", "127.0.0.1", "::1") or host.startswith("192.168."):
        port = parsed.port or 8080
        return weaviate.connect_to_local(
            host=host,
            port=port,
            grpc_port=port + 1,
            additional_config=_ADDITIONAL_CONFIG,
        )

    if parsed.scheme == "https":
        return weaviate.connect_to_weaviate_cloud(
            cluster_url=url,
            auth_credentials=auth,
            additional_config=_ADDITIONAL_CONFIG,
        )

    port = parsed.port or 8080
    return weaviate.connect_to_custom(
        http_host=host,
        http_port=port,
        http_secure=False,
        grpc_host=host,
        grpc_port=port + 1,
        grpc_secure=False,
        auth_credentials=auth,
        additional_config=_ADDITIONAL_CONFIG,
    )


class WeaviateClient:
    """Process-wide Weaviate connection, shared by every store call.

    Thread-safe via ``_lock`` because writes run in ``asyncio.to_thread``.
    """

    @classmethod
    def get(cls) -> weaviate.WeaviateClient:
        """Return (or create) the shared client.

        Raises:
            ValueError: If WEAVIATE_URL is not configured.
        """
        global _client, _schema_ensured
        cfg = get_config()
        if not cfg.weaviate_url:
            raise ValueError("WEAVIATE_URL not configured")

        with _lock:
            if _client is None:
                _client = _connect(cfg.weaviate_url, cfg.weaviate_api_key)
                logger.info("Connected to Weaviate at %s", cfg.weaviate_url)
            if not _schema_ensured:
                cls.ensure_collections()
                _schema_ensured = True
        return _client

    @classmethod
    def ensure_collections(cls) -> None:
        """Create missing collections; add missing properties to existing ones."""
        if _client is None:
            return
        existing = set(_client.collections.list_all().keys())
        for col_def in ALL_COLLECTIONS:
            if col_def.name not in existing:
                _client.collections.create(
                    name=col_def.name,
                    description=col_def.description,
                    properties=[_to_property(p) for p in col_def.properties],
                    vector_config=Configure.Vectors.text2vec_weaviate(),
                )
                logger.info("Created Weaviate collection: %s", col_def.name)
            else:
                cls._evolve_collection(col_def)

    @classmethod
    def _evolve_collection(cls, col_def: CollectionDef) -> None:
        col = _client.collections.get(col_def.name)
        existing_props = {p.name for p in col.config.get().properties}
        for prop_def in col_def.properties:
            if prop_def.name in existing_props:
                continue
            try:
                col.config.add_property(_to_property(prop_def))
                logger.info("Added property %s.%s", col_def.name, prop_def.name)
            except Exception as exc:
                logger.debug("Property %s.%s already exists or failed: %s", col_def.name, prop_def.name, exc)

    @classmethod
    def is_available(cls) -> bool:
        """Check if Weaviate is configured and reachable."""
        if not get_config().weaviate_enabled:
            return False
        try:
            return cls.get().is_ready()
        except Exception:
            return False

    @classmethod
    def close(cls) -> None:
        global _client, _schema_ensured
        with _lock:
            if _client is not None:
                try:
                    _client.close()
                except Exception as exc:
                    logger.debug("Weaviate close failed: %s", exc)
                _client = None
                _schema_ensured = False
                logger.info("Closed Weaviate client")

    @classmethod
    async def aclose(cls) -> None:
        await asyncio.to_thread(cls.close)

    @classmethod
    def reset(cls) -> None:
        """Drop singleton state without closing (tests)."""
        global _client, _schema_ensured
        _client = None
        _schema_ensured = False
