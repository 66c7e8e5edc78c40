"""
Batch Processor for Embedding Submission

Groups chunks into bounded batches, embeds each batch with whole-batch
retry and exponential backoff, and zips vectors back onto their chunks.
"""

import logging
import math
import time
from typing import List, Sequence

from .errors import EmbeddingFailure
from .models import CodeChunk, EmbeddingRecord
from .utils import chunk_list

logger = logging.getLogger(__name__)


def build_embedding_text(chunk: CodeChunk) -> str:
    """Chunk content prefixed with its context label, if any."""
    context = chunk.metadata.context
    if context:
        return f"{context}\n\n{chunk.content}"
    return chunk.content


def estimate_tokens(chunks: Sequence[CodeChunk]) -> int:
    """Rough token estimate: one token per four characters of chunk content, rounded up."""
    total_chars = sum(len(chunk.content) for chunk in chunks)
    return math.ceil(total_chars / 4)


class BatchProcessor:
    """
    Embeds chunks in sequential batches with retry logic.

    Responsibilities:
    - Split chunks into batches of at most batch_size
    - Retry a failed batch as a whole with capped exponential backoff
    - Pace successive batches to stay under provider rate limits
    - Map vectors 1:1, in order, onto the submitted chunks
    """

    def __init__(
        self,
        embedding_service,
        batch_size: int = 50,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        pacing_delay: float = 0.1
    ):
        """
        Initialize batch processor.

        Args:
            embedding_service: EmbeddingService instance
            batch_size: Number of chunks per embedding request
            max_retries: Attempts per batch before giving up
            base_delay: Backoff after the first failed attempt (seconds)
            max_delay: Upper bound for any single backoff (seconds)
            pacing_delay: Pause between successful batches (seconds)
        """
        self.embedding_service = embedding_service
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.pacing_delay = pacing_delay

        logger.info(f"⚙️ Batch processor initialized")
        logger.info(f"   - Batch size: {batch_size}")
        logger.info(f"   - Max retries: {max_retries}")

    def backoff_delay(self, attempt: int) -> float:
        """Delay after failed attempt number `attempt` (0-based)."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def embed_chunks(self, chunks: Sequence[CodeChunk]) -> List[EmbeddingRecord]:
        """
        Embed all chunks.

        Args:
            chunks: Chunks to embed

        Returns:
            One EmbeddingRecord per chunk, in input order

        Raises:
            EmbeddingFailure: If any batch fails on every attempt
        """
        if not chunks:
            return []

        records: List[EmbeddingRecord] = []
        total_batches = math.ceil(len(chunks) / self.batch_size)

        for batch_index, batch in enumerate(chunk_list(chunks, self.batch_size), start=1):
            texts = [build_embedding_text(chunk) for chunk in batch]

            embeddings = self._embed_with_retry(texts, batch_index, total_batches)

            records.extend(
                EmbeddingRecord.from_chunk(chunk, embedding)
                for chunk, embedding in zip(batch, embeddings)
            )
            logger.info(f"✅ Batch {batch_index}/{total_batches}: {len(records)}/{len(chunks)} chunks embedded")

            if batch_index < total_batches and self.pacing_delay > 0:
                time.sleep(self.pacing_delay)

        return records

    def _embed_with_retry(self, texts: List[str], batch_id: int, total_batches: int) -> List[List[float]]:
        """Submit one batch, retrying the whole batch on any failure."""
        last_error = None

        for attempt in range(self.max_retries):
            try:
                with self.embedding_service.acquire_rate_limit():
                    embeddings = self.embedding_service.generate_embeddings(texts)

                if len(embeddings) != len(texts):
                    raise ValueError(
                        f"expected {len(texts)} embeddings, got {len(embeddings)}"
                    )

                if attempt > 0:
                    logger.info(f"✅ Batch {batch_id} embedded after {attempt + 1} attempts")
                return embeddings

            except Exception as e:
                last_error = e
                logger.warning(
                    f"⚠️ Batch {batch_id}/{total_batches} failed on attempt "
                    f"{attempt + 1}/{self.max_retries}: {type(e).__name__}: {e}"
                )

                if attempt < self.max_retries - 1:
                    delay = self.backoff_delay(attempt)
                    logger.info(f"🔄 Retrying batch {batch_id} in {delay:.1f}s...")
                    time.sleep(delay)

        logger.error(f"❌ Batch {batch_id} permanently failed after {self.max_retries} attempts")
        raise EmbeddingFailure(
            f"Embedding generation failed for batch {batch_id}/{total_batches} "
            f"after {self.max_retries} attempts: {last_error}"
        ) from last_error
