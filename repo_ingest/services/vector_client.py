"""
Qdrant Vector Index Client

Stores embedding records for all repositories in one collection, keyed by
chunk id, with repo_id in the payload for per-repository deletes.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from ..core.models import EmbeddingRecord
from ..core.utils import chunk_list

logger = logging.getLogger(__name__)


class QdrantVectorClient:
    """
    Qdrant client for embedding records.

    Responsibilities:
    - Create the collection (and repo_id payload index) on first use
    - Upsert records in bounded batches; same id replaces the old point
    - Delete every point of a repository
    - Report collection statistics and connection health
    """

    def __init__(
        self,
        url: str = "http://localhost:6333",
        api_key: Optional[str] = None,
        collection_name: str = "github-code-search",
        embedding_size: int = 1536,
        upsert_batch_size: int = 100,
        client: Optional[QdrantClient] = None,
    ):
        """
        Initialize Qdrant client.

        Args:
            url: Qdrant URL
            api_key: Optional API key (Qdrant Cloud)
            collection_name: Collection holding every repository's vectors
            embedding_size: Vector dimension
            upsert_batch_size: Points per upsert request
            client: Pre-built client (tests)
        """
        self.collection_name = collection_name
        self.embedding_size = embedding_size
        self.upsert_batch_size = upsert_batch_size
        self._collection_ready = False

        logger.info(f"🔗 Connecting to Qdrant at {url[:50]}...")
        self.client = client or QdrantClient(url=url, api_key=api_key, timeout=120)
        logger.info("✅ Qdrant client initialized")

    def ensure_collection(self) -> bool:
        """
        Create the collection if it does not exist yet.

        Returns:
            True if the collection exists or was created
        """
        if self._collection_ready:
            return True

        try:
            if not self.client.collection_exists(self.collection_name):
                logger.info(f"📦 Creating collection: {self.collection_name}")
                self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=VectorParams(
                        size=self.embedding_size,
                        distance=Distance.COSINE
                    )
                )
                self.client.create_payload_index(
                    collection_name=self.collection_name,
                    field_name='repo_id',
                    field_schema=PayloadSchemaType.KEYWORD
                )
                logger.info(f"✅ Collection '{self.collection_name}' created with {self.embedding_size}D vectors")

            self._collection_ready = True
            return True

        except Exception as e:
            logger.error(f"❌ Failed to create collection '{self.collection_name}': {e}")
            return False

    def upsert_records(self, records: Sequence[EmbeddingRecord]) -> bool:
        """
        Insert or replace records.

        Args:
            records: Embedding records; ids are chunk ids

        Returns:
            True if every batch was accepted
        """
        if not records:
            return True

        if not self.ensure_collection():
            return False

        try:
            for batch in chunk_list(records, self.upsert_batch_size):
                points = []

                for record in batch:
                    if len(record.embedding) != self.embedding_size:
                        raise ValueError(
                            f"Vector dimension mismatch: expected {self.embedding_size}, "
                            f"got {len(record.embedding)}"
                        )
                    points.append(PointStruct(
                        id=record.id,
                        vector=record.embedding,
                        payload=record.to_payload()
                    ))

                self.client.upsert(
                    collection_name=self.collection_name,
                    points=points,
                    wait=True
                )
                logger.debug(f"✅ Upserted {len(points)} vectors to '{self.collection_name}'")

            logger.info(f"✅ Upserted {len(records)} vectors to '{self.collection_name}'")
            return True

        except Exception as e:
            logger.error(f"❌ Failed to upsert vectors: {e}")
            return False

    def delete_by_repo(self, repo_id: str) -> bool:
        """
        Delete every point belonging to a repository.

        Returns:
            True on success, including when there was nothing to delete
        """
        try:
            if not self.client.collection_exists(self.collection_name):
                logger.info(f"🗑️ No collection '{self.collection_name}', nothing to delete for {repo_id}")
                return True

            self.client.delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(
                    filter=Filter(must=[
                        FieldCondition(key='repo_id', match=MatchValue(value=repo_id))
                    ])
                ),
                wait=True
            )
            logger.info(f"🗑️ Deleted vectors for {repo_id} from '{self.collection_name}'")
            return True

        except Exception as e:
            logger.error(f"❌ Failed to delete vectors for {repo_id}: {e}")
            return False

    def count_repo_vectors(self, repo_id: str) -> int:
        """Number of points stored for one repository (0 on error)."""
        try:
            if not self.client.collection_exists(self.collection_name):
                return 0
            result = self.client.count(
                collection_name=self.collection_name,
                count_filter=Filter(must=[
                    FieldCondition(key='repo_id', match=MatchValue(value=repo_id))
                ]),
                exact=True
            )
            return result.count
        except Exception as e:
            logger.error(f"❌ Failed to count vectors for {repo_id}: {e}")
            return 0

    def get_stats(self) -> Dict[str, Any]:
        """Aggregate statistics for the collection."""
        try:
            if not self.client.collection_exists(self.collection_name):
                return {
                    'collection': self.collection_name,
                    'points_count': 0,
                    'dimension': self.embedding_size,
                }

            info = self.client.get_collection(self.collection_name)
            return {
                'collection': self.collection_name,
                'status': str(info.status.value if hasattr(info.status, 'value') else info.status),
                'points_count': info.points_count or 0,
                'indexed_vectors_count': info.indexed_vectors_count or 0,
                'segments_count': info.segments_count,
                'dimension': self.embedding_size,
            }
        except Exception as e:
            logger.error(f"❌ Failed to get collection stats: {e}")
            return {}

    def health_check(self) -> Dict[str, Any]:
        """Check Qdrant connection health."""
        try:
            collections = self.client.get_collections()
            names: List[str] = [c.name for c in collections.collections]
            return {
                'status': 'healthy',
                'connected': True,
                'collections_count': len(names),
                'has_collection': self.collection_name in names,
            }
        except Exception as e:
            return {
                'status': 'unhealthy',
                'connected': False,
                'error': str(e),
            }
