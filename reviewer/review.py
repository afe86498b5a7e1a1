"""
SOP-augmented review requests.

Pipeline:
1. Retrieve SOPs relevant to the diff chunk
2. Append them to the review prompt
3. Send the prompt to the model
"""

import logging
from typing import Optional

from .common.config import ReviewerConfig, load_config
from .common.embedding_service import get_embedding_provider
from .common.index_client import get_index_client
from .common.llm_client import ConversationTurn, InvocationResult, JsonSchema, PromptInvoker
from .retriever.formatter import PromptAugmenter
from .retriever.sop_retriever import SopRetriever

logger = logging.getLogger("reviewer.review")


class SopReviewer:
    """Augments review prompts with relevant SOPs before invoking the model."""

    def __init__(
        self,
        invoker: PromptInvoker,
        retriever: SopRetriever,
        augmenter: Optional[PromptAugmenter] = None,
    ):
        self._invoker = invoker
        self._retriever = retriever
        self._augmenter = augmenter or PromptAugmenter()

    async def review(
        self,
        message: str,
        diff_chunk: Optional[str] = None,
        json_schema: Optional[JsonSchema] = None,
    ) -> InvocationResult:
        """
        Ask the model to review, with SOP context for ``diff_chunk``.

        Args:
            message: The review prompt
            diff_chunk: Text used for SOP retrieval (defaults to ``message``)
            json_schema: Optional structured output for the reply

        Returns:
            The invocation result; empty text when the model call failed
        """
        if not message:
            return InvocationResult()

        sops = await self._retriever.retrieve(diff_chunk or message)
        if sops:
            logger.info("Adding %d SOP(s) to review prompt", len(sops))
        prompt = self._augmenter.augment(message, sops)

        return await self._invoker.invoke(ConversationTurn(message=prompt, json_schema=json_schema))


def build_reviewer(config: Optional[ReviewerConfig] = None) -> SopReviewer:
    """Wire a SopReviewer from configuration using the shared singletons."""
    config = config or load_config()

    retriever = SopRetriever(
        index_client=get_index_client(config.pinecone),
        embedding_provider=get_embedding_provider(config.embedding),
        top_k=config.retriever.top_k,
    )
    return SopReviewer(invoker=PromptInvoker(config.llm), retriever=retriever)
