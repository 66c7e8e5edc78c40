"""
Core Ingestion Pipeline Components

Job orchestration, chunking and embedding logic for the ingestion system.
"""

from .pipeline import IngestionPipeline
from .config import IngestionConfig, load_config
from .models import (
    CodeChunk,
    ChunkMetadata,
    EmbeddingRecord,
    IngestionJob,
    IngestionStats,
    JobStatus,
)
from .errors import (
    IngestionError,
    InvalidRepoUrl,
    CloneFailure,
    RepoTooLarge,
    NoProcessableFiles,
    EmbeddingFailure,
    IndexFailure,
)
from .chunking import ChunkingEngine
from .embedding_service import EmbeddingService
from .batch_processor import BatchProcessor
from .file_processor import RepositoryWalker

__all__ = [
    'IngestionPipeline',
    'IngestionConfig',
    'load_config',
    'CodeChunk',
    'ChunkMetadata',
    'EmbeddingRecord',
    'IngestionJob',
    'IngestionStats',
    'JobStatus',
    'IngestionError',
    'InvalidRepoUrl',
    'CloneFailure',
    'RepoTooLarge',
    'NoProcessableFiles',
    'EmbeddingFailure',
    'IndexFailure',
    'ChunkingEngine',
    'EmbeddingService',
    'BatchProcessor',
    'RepositoryWalker',
]
