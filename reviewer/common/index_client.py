"""
SOP Index Client

Lazily-connected handle to the Pinecone index holding SOP embeddings.
"""

import asyncio
import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .config import PineconeConfig
from .exceptions import ConfigurationError, TransientServiceError

logger = logging.getLogger("reviewer.common.index_client")

DEFAULT_INDEX_NAME = "sop-embeddings"

# Host format: sop-embeddings-2vib48a.svc.aped-4627-b74a.pinecone.io
_HOST_INDEX_RE = re.compile(r"^([^.]+)\.svc\.")


@dataclass
class IndexMatch:
    """A single nearest neighbour returned by the index"""
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


def resolve_index_name(index_name: str = "", host: str = "") -> str:
    """
    Pick the index name: explicit name, else the host prefix before
    ``.svc.``, else the default.
    """
    if index_name:
        return index_name
    if host:
        match = _HOST_INDEX_RE.match(host)
        if match:
            return match.group(1)
    return DEFAULT_INDEX_NAME


def _pinecone_index(api_key: str, index_name: str, host: str):
    from pinecone import Pinecone

    client = Pinecone(api_key=api_key)
    if host:
        return client.Index(index_name, host=host)
    return client.Index(index_name)


class VectorIndexClient:
    """
    Client for top-K similarity queries against the SOP index.

    Connection is deferred until ensure_initialized() (or the first
    query). A missing API key is a configuration fault and is raised
    before anything is constructed.
    """

    def __init__(
        self,
        api_key: str = "",
        host: str = "",
        index_name: str = "",
        index_factory: Optional[Callable[[str, str, str], Any]] = None,
    ):
        """
        Initialize the index client.

        Args:
            api_key: Pinecone API key
            host: Pinecone index host, also used to derive the index name
            index_name: Explicit index name (takes precedence over host)
            index_factory: Builds the index handle from (api_key, index_name, host)
        """
        self._api_key = api_key
        self._host = host
        self._index_name = resolve_index_name(index_name, host)
        self._index_factory = index_factory or _pinecone_index
        self._index = None
        self._lock = threading.Lock()

    @property
    def index_name(self) -> str:
        return self._index_name

    @property
    def is_ready(self) -> bool:
        """Whether an index handle has been created"""
        return self._index is not None

    def ensure_initialized(self) -> None:
        """Lazily connect to the index. Safe to call repeatedly.

        Raises:
            ConfigurationError: API key is not configured
            TransientServiceError: the client could not be created
        """
        if self._index is not None:
            return

        if not self._api_key:
            raise ConfigurationError("PINECONE_API_KEY environment variable is not set")

        with self._lock:
            if self._index is not None:
                return
            try:
                logger.info("Connecting to Pinecone index: %s", self._index_name)
                self._index = self._index_factory(self._api_key, self._index_name, self._host)
                logger.info("Pinecone client initialized successfully")
            except Exception as e:
                logger.warning("Failed to initialize Pinecone client: %s", e)
                raise TransientServiceError(
                    f"Failed to initialize Pinecone client: {e}", service="pinecone"
                ) from e

    def query_sync(self, vector: List[float], top_k: int) -> List[IndexMatch]:
        """
        Query the index for the nearest neighbours of ``vector``.

        Returns:
            At most ``top_k`` matches, highest score first
        """
        self.ensure_initialized()

        try:
            response = self._index.query(vector=vector, top_k=top_k, include_metadata=True)
        except Exception as e:
            raise TransientServiceError(f"Pinecone query failed: {e}", service="pinecone") from e

        return self.parse_matches(response, top_k)

    async def query(self, vector: List[float], top_k: int) -> List[IndexMatch]:
        """Query without blocking the event loop."""
        return await asyncio.to_thread(self.query_sync, vector, top_k)

    @staticmethod
    def parse_matches(response: Any, top_k: int) -> List[IndexMatch]:
        """
        Convert a query response into IndexMatch objects.

        Accepts the SDK response object or its plain-dict form.
        """
        if isinstance(response, dict):
            raw_matches = response.get("matches") or []
        else:
            raw_matches = getattr(response, "matches", None) or []

        parsed = []
        for item in raw_matches:
            if isinstance(item, dict):
                match_id, score, metadata = item.get("id"), item.get("score"), item.get("metadata")
            else:
                match_id = getattr(item, "id", None)
                score = getattr(item, "score", None)
                metadata = getattr(item, "metadata", None)

            parsed.append(IndexMatch(
                id=match_id,
                score=float(score) if score is not None else 0.0,
                metadata=dict(metadata or {}),
            ))

        # Sort by score descending
        parsed.sort(key=lambda m: m.score, reverse=True)

        return parsed[:top_k]


# Module-level singleton getter
_client_instance: Optional[VectorIndexClient] = None
_client_lock = threading.Lock()


def get_index_client(config: Optional[PineconeConfig] = None) -> VectorIndexClient:
    """
    Get the process-wide VectorIndexClient.

    Construction does not touch the network; credentials are checked
    when the client is first initialized.
    """
    global _client_instance

    if _client_instance is None:
        with _client_lock:
            if _client_instance is None:
                config = config or PineconeConfig()
                _client_instance = VectorIndexClient(
                    api_key=config.api_key,
                    host=config.host,
                    index_name=config.index_name,
                )

    return _client_instance
