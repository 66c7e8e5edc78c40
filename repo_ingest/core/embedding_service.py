"""
Embedding Service for OpenAI-compatible APIs

Turns an ordered list of texts into an equal-length ordered list of vectors.
A call either fully succeeds or raises; retrying is the caller's job.
"""

import logging
import math
import threading
import time
from typing import List, Optional

from openai import OpenAI

logger = logging.getLogger(__name__)


class EmbeddingService:
    """
    Service for generating embeddings through the OpenAI embeddings endpoint.

    Responsibilities:
    - Generate embeddings for a batch of texts in one request
    - Return vectors in input order
    - Validate embedding quality (dimensions, None/NaN check)
    - Bound concurrent upstream requests via a shared semaphore
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = "text-embedding-3-small",
        rate_limit: int = 4,
        embedding_size: int = 1536,
        timeout: int = 60,
        client: Optional[OpenAI] = None,
    ):
        """
        Initialize embedding service.

        Args:
            api_key: API key (falls back to OPENAI_API_KEY via the SDK)
            base_url: Optional OpenAI-compatible gateway URL
            model: Embedding model name
            rate_limit: Maximum concurrent requests
            embedding_size: Expected embedding dimension
            timeout: Request timeout in seconds
            client: Pre-built client (tests)
        """
        self.model = model
        self.embedding_size = embedding_size
        self.timeout = timeout

        # The SDK does not retry here; the batcher owns the retry policy
        self.client = client or OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

        self.semaphore = threading.Semaphore(rate_limit)

        logger.info(f"🔗 Embedding service initialized")
        logger.info(f"   - Model: {self.model}")
        logger.info(f"   - Rate limit: {rate_limit} concurrent requests")
        logger.info(f"   - Embedding size: {embedding_size}D")

    def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a batch of texts.

        Args:
            texts: Texts to embed

        Returns:
            One vector per text, in input order

        Raises:
            Exception: Any API error, or ValueError for a malformed response
        """
        if not texts:
            return []

        start_time = time.time()

        response = self.client.embeddings.create(
            input=texts,
            model=self.model,
            encoding_format="float"
        )

        items = sorted(response.data, key=lambda item: item.index)
        if len(items) != len(texts):
            raise ValueError(
                f"Embedding count mismatch: sent {len(texts)} texts, got {len(items)} vectors"
            )

        embeddings = []
        for item in items:
            self.validate_embedding(item.embedding)
            embeddings.append(item.embedding)

        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(f"✅ Generated {len(embeddings)} embeddings ({elapsed_ms:.1f}ms)")
        return embeddings

    def validate_embedding(self, embedding: List[float]) -> None:
        """
        Validate embedding quality.

        Raises:
            ValueError: On None/NaN/infinite values or a dimension mismatch
        """
        if embedding is None or None in embedding:
            raise ValueError("Embedding contains None values")

        if any(not isinstance(v, (int, float)) or not math.isfinite(v) for v in embedding):
            raise ValueError("Embedding contains NaN or infinite values")

        if len(embedding) != self.embedding_size:
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.embedding_size}, got {len(embedding)}"
            )

    def acquire_rate_limit(self):
        """Acquire rate limit semaphore (for use in context manager)."""
        return self.semaphore
