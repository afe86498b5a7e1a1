"""
SOP Retriever

Finds the standard operating procedures most relevant to a diff chunk:
embed the chunk, query the SOP index for the nearest neighbours, and
map the matches to SOP records.

Retrieval is best-effort. Any failure collapses to an empty list so the
review itself is never blocked.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..common.embedding_service import EmbeddingProvider
from ..common.index_client import IndexMatch, VectorIndexClient

logger = logging.getLogger("reviewer.retriever.sop_retriever")

MAX_SOPS = 3


@dataclass
class SOP:
    """A retrieved standard operating procedure"""
    text: str
    id: Optional[str] = None
    score: Optional[float] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_match(cls, match: IndexMatch) -> "SOP":
        return cls(
            text=match.metadata.get("text") or "",
            id=match.id,
            score=match.score,
            metadata=match.metadata,
        )


@dataclass
class RetrievalOutcome:
    """SOPs found, or the error and the stage it happened in"""
    sops: List[SOP] = field(default_factory=list)
    error: Optional[Exception] = None
    stage: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SopRetriever:
    """
    Retrieves relevant SOPs for a piece of review input.

    Usage:
        retriever = SopRetriever(index_client, embedding_provider)
        sops = await retriever.retrieve(diff_chunk)
    """

    def __init__(
        self,
        index_client: VectorIndexClient,
        embedding_provider: EmbeddingProvider,
        top_k: int = MAX_SOPS,
    ):
        """
        Initialize retriever.

        Args:
            index_client: Client for the SOP vector index
            embedding_provider: For embedding the query text
            top_k: Number of SOPs to request (capped at MAX_SOPS)
        """
        self._index = index_client
        self._embedding = embedding_provider
        self._top_k = max(1, min(top_k, MAX_SOPS))

    @property
    def top_k(self) -> int:
        return self._top_k

    async def retrieve(self, query_text: str) -> List[SOP]:
        """
        Get the SOPs most relevant to ``query_text``.

        Returns:
            Up to MAX_SOPS SOPs, highest relevance first; empty on any failure
        """
        outcome = await self._retrieve(query_text)
        if not outcome.ok:
            logger.warning(
                "Failed to retrieve relevant SOPs (%s): %s", outcome.stage, outcome.error
            )
            return []
        return outcome.sops

    async def _retrieve(self, query_text: str) -> RetrievalOutcome:
        stage = "initialize"
        try:
            await asyncio.to_thread(self._index.ensure_initialized)
            if not self._index.is_ready:
                logger.info("SOP index not initialized, skipping SOP retrieval")
                return RetrievalOutcome()

            stage = "embed"
            logger.info("Embedding diff chunk (%d characters)", len(query_text))
            vector = await self._embedding.embed(query_text)

            stage = "query"
            logger.info("Querying %s for relevant SOPs", self._index.index_name)
            matches = await self._index.query(vector, self._top_k)
        except Exception as e:
            return RetrievalOutcome(error=e, stage=stage)

        if not matches:
            logger.info("No relevant SOPs found for this diff chunk")
            return RetrievalOutcome()

        sops = [SOP.from_match(m) for m in matches[:self._top_k]]
        logger.info(
            "Retrieved %d relevant SOP(s) for diff chunk (scores: %s)",
            len(sops),
            ", ".join(f"{s.score:.3f}" for s in sops),
        )
        return RetrievalOutcome(sops=sops)
