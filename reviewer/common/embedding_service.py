"""
Embedding Service

Lazily-loaded sentence encoder (fastembed, all-MiniLM-L6-v2 by default)
that turns a diff chunk into a unit-length 384-dimensional vector.
"""

import array
import asyncio
import logging
import threading
from typing import Any, Callable, List, Optional

import numpy as np

from .config import DEFAULT_EMBEDDING_MODEL, EmbeddingConfig
from .exceptions import EncoderOutputError

logger = logging.getLogger("reviewer.common.embedding_service")

EXPECTED_DIMENSION = 384

# text -> raw encoder output
Encoder = Callable[[str], Any]


def _fastembed_encoder(model_name: str) -> Encoder:
    """Build an encoder backed by fastembed (mean pooling + L2 norm for MiniLM)."""
    from fastembed import TextEmbedding

    model = TextEmbedding(model_name=model_name)

    def encode(text: str) -> Any:
        return next(iter(model.embed([text])))

    return encode


def to_vector(output: Any) -> List[float]:
    """
    Normalize raw encoder output into a single pooled, unit-length vector.

    Accepted shapes:
        - numpy array: 1-D sentence vector, or 2-D token matrix (mean-pooled)
        - flat numeric buffer: array.array or memoryview
        - plain sequence: list/tuple of floats, or of token rows (mean-pooled)
        - object exposing tolist() (e.g. a framework tensor)

    Raises:
        EncoderOutputError: output is none of the above, or has the wrong rank
    """
    if isinstance(output, np.ndarray):
        matrix = output.astype(np.float64)
    elif isinstance(output, (array.array, memoryview)):
        matrix = np.frombuffer(output, dtype=_buffer_dtype(output)).astype(np.float64)
    elif isinstance(output, (list, tuple)) or callable(getattr(output, "tolist", None)):
        values = output if isinstance(output, (list, tuple)) else output.tolist()
        try:
            matrix = np.asarray(values, dtype=np.float64)
        except (ValueError, TypeError) as e:
            raise EncoderOutputError(
                f"Encoder output is not a rectangular numeric sequence: {e}",
                output_type=type(output).__name__,
            ) from e
    else:
        raise EncoderOutputError(
            f"Unrecognized encoder output type: {type(output).__name__}",
            output_type=type(output).__name__,
        )

    # Drop a leading batch axis of size 1: (1, tokens, dim) or (1, dim)
    while matrix.ndim > 1 and matrix.shape[0] == 1:
        matrix = matrix[0]

    if matrix.ndim == 2:
        matrix = matrix.mean(axis=0)
    elif matrix.ndim != 1:
        raise EncoderOutputError(
            f"Encoder output has unsupported rank {matrix.ndim}",
            output_type=type(output).__name__,
        )

    norm = np.linalg.norm(matrix)
    if norm > 0:
        matrix = matrix / norm

    return matrix.tolist()


def _buffer_dtype(buffer) -> str:
    if isinstance(buffer, array.array):
        return buffer.typecode
    return buffer.format


class EmbeddingProvider:
    """
    Text -> vector encoder with lazy, initialize-once construction.

    The encoder is built on the first embed() call. If construction fails
    the error propagates to that caller and the provider stays
    uninitialized, so the next call tries again.
    """

    def __init__(
        self,
        model: str = DEFAULT_EMBEDDING_MODEL,
        dimension: int = EXPECTED_DIMENSION,
        encoder_factory: Optional[Callable[[str], Encoder]] = None,
    ):
        self._model = model
        self._dimension = dimension
        self._encoder_factory = encoder_factory or _fastembed_encoder
        self._encoder: Optional[Encoder] = None
        self._lock = threading.Lock()

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        """Expected embedding dimension"""
        return self._dimension

    @property
    def is_initialized(self) -> bool:
        return self._encoder is not None

    def _ensure_encoder(self) -> Encoder:
        """Construct the encoder on first use"""
        if self._encoder is not None:
            return self._encoder

        with self._lock:
            if self._encoder is None:
                try:
                    logger.info("Initializing embedding model: %s", self._model)
                    self._encoder = self._encoder_factory(self._model)
                    logger.info("Embedding model initialized successfully")
                except Exception as e:
                    logger.warning("Failed to initialize embedding model: %s", e)
                    raise
        return self._encoder

    def embed_sync(self, text: str) -> List[float]:
        """
        Embed a single text, blocking the calling thread.

        Args:
            text: String to embed

        Returns:
            Embedding vector (L2 normalized)
        """
        encoder = self._ensure_encoder()
        vector = to_vector(encoder(text))

        if len(vector) != self._dimension:
            logger.warning(
                "Expected %d-dimensional vector, got %d dimensions",
                self._dimension, len(vector),
            )

        return vector

    async def embed(self, text: str) -> List[float]:
        """Embed a single text without blocking the event loop."""
        return await asyncio.to_thread(self.embed_sync, text)


# Module-level singleton getter
_provider_instance: Optional[EmbeddingProvider] = None
_provider_lock = threading.Lock()


def get_embedding_provider(config: Optional[EmbeddingConfig] = None) -> EmbeddingProvider:
    """
    Get the process-wide EmbeddingProvider.

    The first call fixes the model; later calls return the same instance.
    """
    global _provider_instance

    if _provider_instance is None:
        with _provider_lock:
            if _provider_instance is None:
                config = config or EmbeddingConfig()
                _provider_instance = EmbeddingProvider(
                    model=config.model,
                    dimension=config.dimension,
                )

    return _provider_instance
