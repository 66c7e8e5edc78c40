"""
Ingestion Data Model

Dataclasses for jobs, chunks, embedding records and run statistics.
Everything that is persisted round-trips through to_dict()/from_dict()
as plain JSON-compatible values.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class JobStatus(Enum):
    """Lifecycle states of an ingestion job"""
    QUEUED = "queued"
    CLONING = "cloning"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    INDEXING = "indexing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Progress checkpoint written at each stage boundary
STAGE_PROGRESS = {
    JobStatus.QUEUED: 0,
    JobStatus.CLONING: 10,
    JobStatus.CHUNKING: 30,
    JobStatus.EMBEDDING: 50,
    JobStatus.INDEXING: 80,
    JobStatus.COMPLETED: 100,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class IngestionStats:
    """Aggregate counters attached to a completed job."""
    files_processed: int
    chunks_created: int
    embeddings_generated: int
    tokens_used: int
    duration_ms: int

    def to_dict(self) -> Dict[str, int]:
        return {
            'files_processed': self.files_processed,
            'chunks_created': self.chunks_created,
            'embeddings_generated': self.embeddings_generated,
            'tokens_used': self.tokens_used,
            'duration_ms': self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IngestionStats':
        return cls(
            files_processed=int(data.get('files_processed', 0)),
            chunks_created=int(data.get('chunks_created', 0)),
            embeddings_generated=int(data.get('embeddings_generated', 0)),
            tokens_used=int(data.get('tokens_used', 0)),
            duration_ms=int(data.get('duration_ms', 0)),
        )


@dataclass
class IngestionJob:
    """
    One run of the repository-to-index pipeline.

    Only the orchestrator mutates a job, and only at stage boundaries.
    The persisted copy in the key-value store is what other readers see.
    """
    id: str
    repo_id: str
    repo_url: str
    branch: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    stats: Optional[IngestionStats] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'repo_id': self.repo_id,
            'repo_url': self.repo_url,
            'branch': self.branch,
            'status': self.status.value,
            'progress': self.progress,
            'started_at': _to_iso(self.started_at),
            'completed_at': _to_iso(self.completed_at),
        }
        if self.error is not None:
            data['error'] = self.error
        if self.stats is not None:
            data['stats'] = self.stats.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IngestionJob':
        stats = data.get('stats')
        return cls(
            id=data['id'],
            repo_id=data['repo_id'],
            repo_url=data['repo_url'],
            branch=data['branch'],
            status=JobStatus(data.get('status', JobStatus.QUEUED.value)),
            progress=int(data.get('progress', 0)),
            started_at=_from_iso(data.get('started_at')) or utc_now(),
            completed_at=_from_iso(data.get('completed_at')),
            error=data.get('error'),
            stats=IngestionStats.from_dict(stats) if stats else None,
        )


@dataclass
class ChunkMetadata:
    """File-level metadata shared by every chunk of a file, plus a per-chunk context label."""
    language: str
    file_type: str
    extension: str
    relative_path: str
    size: int
    is_code: bool
    context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'language': self.language,
            'file_type': self.file_type,
            'extension': self.extension,
            'relative_path': self.relative_path,
            'size': self.size,
            'is_code': self.is_code,
        }
        if self.context is not None:
            data['context'] = self.context
        return data


@dataclass
class CodeChunk:
    """One retrievable span of a file. Line numbers are 0-based and inclusive."""
    id: str
    repo_id: str
    file_path: str
    content: str
    start_line: int
    end_line: int
    chunk_index: int
    metadata: ChunkMetadata


@dataclass(frozen=True)
class EmbeddingRecord:
    """A chunk plus its vector, ready for the vector index."""
    id: str
    chunk_id: str
    repo_id: str
    file_path: str
    embedding: List[float]
    metadata: Dict[str, Any]

    @classmethod
    def from_chunk(cls, chunk: CodeChunk, embedding: List[float]) -> 'EmbeddingRecord':
        metadata = chunk.metadata.to_dict()
        metadata.update({
            'content': chunk.content,
            'start_line': chunk.start_line,
            'end_line': chunk.end_line,
            'chunk_index': chunk.chunk_index,
        })
        return cls(
            id=chunk.id,
            chunk_id=chunk.id,
            repo_id=chunk.repo_id,
            file_path=chunk.file_path,
            embedding=list(embedding),
            metadata=metadata,
        )

    def to_payload(self) -> Dict[str, Any]:
        """Flattened payload stored next to the vector."""
        payload = dict(self.metadata)
        payload.update({
            'chunk_id': self.chunk_id,
            'repo_id': self.repo_id,
            'file_path': self.file_path,
        })
        return payload
