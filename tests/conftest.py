"""
Pytest fixtures for ingestion tests.

Use these to test chunking, batching and the job lifecycle without Docker,
Redis, Qdrant, git remotes or live embedding APIs.
"""
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

# Ensure repo_ingest is importable from repo root
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from repo_ingest.core.models import ChunkMetadata, CodeChunk


def make_chunk(
    content: str,
    index: int = 0,
    file_path: str = "/cache/acme_widgets/src/main.ts",
    repo_id: str = "acme/widgets",
    context: Optional[str] = None,
) -> CodeChunk:
    """Minimal real CodeChunk for batcher and pipeline tests."""
    return CodeChunk(
        id=f"chunk-{index}",
        repo_id=repo_id,
        file_path=file_path,
        content=content,
        start_line=index * 10,
        end_line=index * 10 + 9,
        chunk_index=index,
        metadata=ChunkMetadata(
            language="typescript",
            file_type="ts",
            extension=".ts",
            relative_path="src/main.ts",
            size=len(content),
            is_code=True,
            context=context,
        ),
    )


def make_embedding_service(dimension: int = 4) -> MagicMock:
    """EmbeddingService mock that returns one vector per text, tagged by position."""
    service = MagicMock()
    service.acquire_rate_limit.return_value.__enter__ = MagicMock(return_value=None)
    service.acquire_rate_limit.return_value.__exit__ = MagicMock(return_value=None)
    service.generate_embeddings.side_effect = (
        lambda texts: [[float(i)] * dimension for i in range(len(texts))]
    )
    return service


class FakeCacheService:
    """
    In-memory stand-in for CacheService.

    Records every job-table write so tests can assert on the observed
    status/progress sequence.
    """

    def __init__(self):
        self.values: Dict[str, Any] = {}
        self.hashes: Dict[str, Dict[str, Any]] = {}
        self.sets: Dict[str, set] = {}
        self.hash_writes: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        return self.values.get(key)

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        self.values[key] = value
        return True

    def delete(self, key: str) -> bool:
        self.values.pop(key, None)
        return True

    def set_hash(self, key: str, field: str, value: Any) -> bool:
        with self._lock:
            self.hashes.setdefault(key, {})[field] = dict(value)
            self.hash_writes.append(dict(value))
        return True

    def get_hash(self, key: str, field: str) -> Optional[Any]:
        return self.hashes.get(key, {}).get(field)

    def get_all_hash(self, key: str) -> Dict[str, Any]:
        return dict(self.hashes.get(key, {}))

    def add_to_set(self, key: str, *members: str) -> bool:
        self.sets.setdefault(key, set()).update(members)
        return True

    def remove_from_set(self, key: str, *members: str) -> bool:
        self.sets.get(key, set()).difference_update(members)
        return True

    def get_set(self, key: str) -> List[str]:
        return sorted(self.sets.get(key, set()))

    def is_healthy(self) -> bool:
        return True

    def statuses_for(self, job_id: str) -> List[str]:
        return [write['status'] for write in self.hash_writes if write['id'] == job_id]

    def progress_for(self, job_id: str) -> List[int]:
        return [write['progress'] for write in self.hash_writes if write['id'] == job_id]


@pytest.fixture
def fake_cache():
    return FakeCacheService()


@pytest.fixture
def mock_embedding_service():
    """EmbeddingService that returns controllable embeddings (no live API)."""
    return make_embedding_service()
