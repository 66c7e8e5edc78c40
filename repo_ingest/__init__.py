"""
Repository Ingestion System

Clones GitHub repositories, splits source files into context-labelled
chunks, embeds them and indexes the vectors for semantic code search.
"""

from .core.pipeline import IngestionPipeline
from .core.config import IngestionConfig, load_config
from .core.models import IngestionJob, IngestionStats, JobStatus

__all__ = [
    'IngestionPipeline',
    'IngestionConfig',
    'load_config',
    'IngestionJob',
    'IngestionStats',
    'JobStatus',
]
