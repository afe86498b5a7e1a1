"""
Reviewer Common Module

Shared infrastructure: configuration, retry, the model client, the
embedding encoder and the SOP index client.
"""

from .config import ReviewerConfig, load_config
from .embedding_service import EmbeddingProvider, get_embedding_provider
from .exceptions import (
    ConfigurationError,
    EncoderOutputError,
    ReviewerError,
    SerializationError,
    TransientServiceError,
)
from .index_client import IndexMatch, VectorIndexClient, get_index_client
from .llm_client import ConversationTurn, InvocationResult, JsonSchema, PromptInvoker
from .retry import RetryConfig, RetryExecutor, RetryResult

__all__ = [
    "ReviewerConfig",
    "load_config",
    "EmbeddingProvider",
    "get_embedding_provider",
    "ConfigurationError",
    "EncoderOutputError",
    "ReviewerError",
    "SerializationError",
    "TransientServiceError",
    "IndexMatch",
    "VectorIndexClient",
    "get_index_client",
    "ConversationTurn",
    "InvocationResult",
    "JsonSchema",
    "PromptInvoker",
    "RetryConfig",
    "RetryExecutor",
    "RetryResult",
]
