"""
Ingestion Pipeline Configuration

Configuration dataclass for the repository ingestion service.

Values come from, in increasing priority:
1. Dataclass defaults
2. Environment variables (a .env file is loaded if present)
3. Optional YAML file (INGEST_CONFIG env var or explicit path)
"""

import os
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# Field name -> environment variable
ENV_VARIABLES = {
    # Storage
    'cache_dir': 'CACHE_DIR',
    'max_file_size_mb': 'MAX_FILE_SIZE_MB',
    'max_repo_size_mb': 'MAX_REPO_SIZE_MB',
    # Chunking
    'chunk_size': 'CHUNK_SIZE',
    'chunk_overlap': 'CHUNK_OVERLAP',
    'max_chunks_per_file': 'MAX_CHUNKS_PER_FILE',
    'max_block_lines': 'MAX_BLOCK_LINES',
    'chars_per_line': 'CHARS_PER_LINE',
    # Embeddings
    'openai_api_key': 'OPENAI_API_KEY',
    'embedding_base_url': 'OPENAI_BASE_URL',
    'embedding_model': 'OPENAI_EMBEDDING_MODEL',
    'embedding_dimensions': 'EMBEDDING_DIMENSIONS',
    'embedding_timeout': 'EMBEDDING_TIMEOUT',
    'embedding_batch_size': 'EMBEDDING_BATCH_SIZE',
    'embedding_max_retries': 'EMBEDDING_MAX_RETRIES',
    'retry_base_delay': 'EMBEDDING_RETRY_BASE_DELAY',
    'retry_max_delay': 'EMBEDDING_RETRY_MAX_DELAY',
    'batch_pacing_delay': 'EMBEDDING_BATCH_PACING_DELAY',
    'embedding_rate_limit': 'EMBEDDING_RATE_LIMIT',
    # Vector index
    'qdrant_url': 'QDRANT_URL',
    'qdrant_api_key': 'QDRANT_API_KEY',
    'collection_name': 'QDRANT_COLLECTION',
    'upsert_batch_size': 'QDRANT_UPSERT_BATCH_SIZE',
    # Key-value store
    'redis_host': 'REDIS_HOST',
    'redis_port': 'REDIS_PORT',
    'redis_password': 'REDIS_PASSWORD',
    'redis_db': 'REDIS_DB',
    # Workers
    'max_concurrent_jobs': 'MAX_CONCURRENT_JOBS',
    'github_token': 'GITHUB_TOKEN',
    'clone_timeout': 'GIT_CLONE_TIMEOUT',
    # Logging
    'log_level': 'LOG_LEVEL',
}


@dataclass
class IngestionConfig:
    """Configuration for the ingestion pipeline."""

    # Local clones live under cache_dir/<owner>_<name>
    cache_dir: str = "./cache"
    max_file_size_mb: float = 10.0
    max_repo_size_mb: float = 1000.0

    # Chunking
    chunk_size: int = 1000  # Target characters per chunk
    chunk_overlap: int = 200  # Characters shared by consecutive line-based chunks
    max_chunks_per_file: int = 100
    max_block_lines: int = 200  # Force-close a detected block after this many lines
    chars_per_line: int = 50  # Used to turn chunk_overlap into a line count

    # Embeddings (any OpenAI-compatible endpoint)
    openai_api_key: Optional[str] = None
    embedding_base_url: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_timeout: int = 60
    embedding_batch_size: int = 50  # Well under the provider's 2048 inputs per request
    embedding_max_retries: int = 3
    retry_base_delay: float = 1.0  # Seconds, doubled on every attempt
    retry_max_delay: float = 10.0
    batch_pacing_delay: float = 0.1
    embedding_rate_limit: int = 4  # Max concurrent embedding requests per process

    # Vector index
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: Optional[str] = None
    collection_name: str = "github-code-search"
    upsert_batch_size: int = 100

    # Job and repository metadata store
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    # Background workers
    max_concurrent_jobs: int = 2
    github_token: Optional[str] = None
    clone_timeout: int = 300

    log_level: str = "INFO"

    @property
    def overlap_lines(self) -> int:
        """Number of lines consecutive line-based chunks share."""
        return self.chunk_overlap // self.chars_per_line

    @property
    def max_file_size_bytes(self) -> int:
        return int(self.max_file_size_mb * 1024 * 1024)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> 'IngestionConfig':
        """
        Build configuration from environment variables.

        Args:
            dotenv_path: Optional .env file (default: search from cwd)

        Returns:
            IngestionConfig with environment overrides applied
        """
        load_dotenv(dotenv_path)

        overrides = {}
        for name, env_var in ENV_VARIABLES.items():
            value = os.getenv(env_var)
            if value is not None and value != "":
                overrides[name] = value

        return cls().with_overrides(overrides)

    def with_overrides(self, overrides: Dict[str, Any]) -> 'IngestionConfig':
        """Return a copy with the given fields replaced, coerced to each field's type."""
        known = {f.name: f for f in fields(self)}
        values = {name: getattr(self, name) for name in known}

        for name, raw in overrides.items():
            if name not in known:
                logger.warning(f"⚠️ Unknown configuration key ignored: {name}")
                continue
            if raw is None and known[name].default is not None:
                raise ValueError(f"{name} must not be null")
            values[name] = _coerce(raw, getattr(self, name))

        return IngestionConfig(**values)

    def validate(self) -> 'IngestionConfig':
        """
        Check value ranges.

        Raises:
            ValueError: If any setting is out of range
        """
        positive = [
            'max_file_size_mb', 'max_repo_size_mb', 'chunk_size', 'max_chunks_per_file',
            'max_block_lines', 'chars_per_line', 'embedding_dimensions', 'embedding_batch_size',
            'embedding_rate_limit', 'upsert_batch_size', 'max_concurrent_jobs',
        ]
        for name in positive:
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap must be in [0, chunk_size), got {self.chunk_overlap} "
                f"(chunk_size={self.chunk_size})"
            )
        if self.embedding_max_retries < 1:
            raise ValueError(f"embedding_max_retries must be at least 1, got {self.embedding_max_retries}")
        if self.retry_base_delay < 0 or self.retry_max_delay < 0 or self.batch_pacing_delay < 0:
            raise ValueError("Retry and pacing delays must not be negative")

        return self


def _coerce(raw: Any, current: Any) -> Any:
    """Convert env/YAML values to the type of the field they override."""
    if raw is None:
        return None

    target = type(current) if current is not None else None
    if target is None:
        # Optional[...] fields default to None; they are all strings
        return str(raw)
    if target is bool:
        return str(raw).strip().lower() in ('1', 'true', 'yes', 'on')
    if target is int:
        return int(raw)
    if target is float:
        return float(raw)
    return str(raw)


def _resolve_config_path(config_path: Optional[Path] = None) -> Optional[Path]:
    """
    Resolve the YAML configuration file path.

    Priority:
    1. Explicit config_path parameter
    2. INGEST_CONFIG environment variable
    3. None (no file overlay)
    """
    if config_path:
        return Path(config_path)

    env_path = os.getenv('INGEST_CONFIG')
    if env_path:
        return Path(env_path)

    return None


def load_config(config_path: Optional[Path] = None) -> IngestionConfig:
    """
    Load configuration from the environment plus an optional YAML overlay.

    Args:
        config_path: Optional path to a YAML file with flat field: value pairs

    Returns:
        Validated IngestionConfig

    Raises:
        FileNotFoundError: If an explicit config file does not exist
        ValueError: If the YAML is not a mapping or values are out of range
    """
    config = IngestionConfig.from_env()

    path = _resolve_config_path(config_path)
    if path is None:
        return config.validate()

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")

    logger.info(f"✅ Loaded configuration overrides from {path} ({len(data)} keys)")
    return config.with_overrides(data).validate()
