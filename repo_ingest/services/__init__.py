"""
Ingestion Services

External collaborators of the ingestion pipeline: git, Qdrant and Redis.
"""

from .vector_client import QdrantVectorClient
from .cache_service import CacheService
from .git_service import GitService

__all__ = [
    'QdrantVectorClient',
    'CacheService',
    'GitService',
]
