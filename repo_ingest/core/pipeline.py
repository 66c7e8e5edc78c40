"""
Ingestion Pipeline Orchestrator

Accepts ingestion requests, runs each job on a background worker through
clone -> chunk -> embed -> index, and writes the job record to the
key-value store after every state change.
"""

import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional

from .batch_processor import BatchProcessor, estimate_tokens
from .chunking import ChunkingEngine
from .config import IngestionConfig
from .embedding_service import EmbeddingService
from .errors import IndexFailure, IngestionError, NoProcessableFiles, RepoTooLarge
from .file_processor import RepositoryWalker
from .models import STAGE_PROGRESS, IngestionJob, IngestionStats, JobStatus, utc_now
from .utils import format_bytes, normalize_repo_id, validate_repo_id

logger = logging.getLogger(__name__)

JOBS_KEY = 'ingestion:jobs'
REPOSITORIES_KEY = 'ingestion:repos'
REPO_KEY_PREFIX = 'repo:'


class IngestionPipeline:
    """
    Main orchestrator for repository ingestion jobs.

    Coordinates:
    - Job submission and background scheduling
    - Stage transitions with write-through persistence
    - Failure recording and completion statistics
    - Repository deletion across index, disk and cache

    Delegates actual work to the walker, batch processor and services.
    """

    def __init__(
        self,
        config: Optional[IngestionConfig] = None,
        cache_service=None,
        git_service=None,
        vector_client=None,
        embedding_service=None,
    ):
        """
        Initialize ingestion pipeline.

        Args:
            config: Optional configuration (uses defaults if not provided)
            cache_service: Key-value store for jobs and repository metadata
            git_service: Clone provider
            vector_client: Vector index
            embedding_service: Embedding provider

        Services that are not passed in are created on first use.
        """
        self.config = config or IngestionConfig()

        logger.info("🚀 Initializing ingestion pipeline...")

        self._cache_service = cache_service
        self._git_service = git_service
        self._vector_client = vector_client
        self._embedding_service = embedding_service
        self._batch_processor = None
        self._services_lock = threading.RLock()

        self.walker = RepositoryWalker(ChunkingEngine(self.config), self.config)

        self.executor = ThreadPoolExecutor(
            max_workers=self.config.max_concurrent_jobs,
            thread_name_prefix='ingest'
        )
        self._futures: Dict[str, Future] = {}
        self._futures_lock = threading.Lock()

        logger.info(f"✅ Ingestion pipeline initialized ({self.config.max_concurrent_jobs} workers)")

    @property
    def cache_service(self):
        """Lazy-load key-value store on first access."""
        if self._cache_service is None:
            from ..services.cache_service import CacheService
            self._cache_service = CacheService(
                host=self.config.redis_host,
                port=self.config.redis_port,
                password=self.config.redis_password,
                db=self.config.redis_db
            )
        return self._cache_service

    @property
    def git_service(self):
        """Lazy-load clone provider on first access."""
        if self._git_service is None:
            from ..services.git_service import GitService
            self._git_service = GitService(
                cache_dir=self.config.cache_dir,
                pat_token=self.config.github_token,
                timeout=self.config.clone_timeout
            )
        return self._git_service

    @property
    def vector_client(self):
        """Lazy-load vector index client on first access."""
        if self._vector_client is None:
            from ..services.vector_client import QdrantVectorClient
            self._vector_client = QdrantVectorClient(
                url=self.config.qdrant_url,
                api_key=self.config.qdrant_api_key,
                collection_name=self.config.collection_name,
                embedding_size=self.config.embedding_dimensions,
                upsert_batch_size=self.config.upsert_batch_size
            )
        return self._vector_client

    @property
    def embedding_service(self) -> EmbeddingService:
        """Lazy-load embedding provider on first access."""
        # One instance per pipeline so every job shares its rate-limit semaphore
        with self._services_lock:
            if self._embedding_service is None:
                self._embedding_service = EmbeddingService(
                    api_key=self.config.openai_api_key,
                    base_url=self.config.embedding_base_url,
                    model=self.config.embedding_model,
                    rate_limit=self.config.embedding_rate_limit,
                    embedding_size=self.config.embedding_dimensions,
                    timeout=self.config.embedding_timeout
                )
        return self._embedding_service

    @property
    def batch_processor(self) -> BatchProcessor:
        """Lazy-load batch processor on first access."""
        with self._services_lock:
            if self._batch_processor is None:
                self._batch_processor = BatchProcessor(
                    embedding_service=self.embedding_service,
                    batch_size=self.config.embedding_batch_size,
                    max_retries=self.config.embedding_max_retries,
                    base_delay=self.config.retry_base_delay,
                    max_delay=self.config.retry_max_delay,
                    pacing_delay=self.config.batch_pacing_delay
                )
        return self._batch_processor

    # ===== Public operations =====

    def submit(self, repo_url: str, branch: str = 'main') -> IngestionJob:
        """
        Create a queued job and schedule it on a background worker.

        Args:
            repo_url: GitHub repository URL
            branch: Branch to ingest

        Returns:
            The freshly created job (status queued, progress 0)

        Raises:
            InvalidRepoUrl: If no owner/name can be derived from the URL
            RuntimeError: If the pipeline has been shut down (the job is recorded as failed)
        """
        repo_id = normalize_repo_id(repo_url)

        job = IngestionJob(
            id=str(uuid.uuid4()),
            repo_id=repo_id,
            repo_url=repo_url,
            branch=branch,
        )
        self._save_job(job)
        snapshot = IngestionJob.from_dict(job.to_dict())

        logger.info(f"📥 Job {job.id} queued for {repo_id} ({branch})")

        try:
            future = self.executor.submit(self._run_job, job)
        except RuntimeError as e:
            self._fail(job, f"Job could not be scheduled: {e}")
            raise

        with self._futures_lock:
            self._futures[job.id] = future
        future.add_done_callback(lambda _: self._forget_future(job.id))

        return snapshot

    def get_job(self, job_id: str) -> Optional[IngestionJob]:
        """Read the persisted job record, or None if unknown/unreadable."""
        data = self.cache_service.get_hash(JOBS_KEY, job_id)
        if not data:
            return None

        try:
            return IngestionJob.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"❌ Corrupt job record {job_id}: {e}")
            return None

    def list_jobs(self) -> List[IngestionJob]:
        """All persisted jobs, oldest first."""
        jobs = []
        for job_id, data in self.cache_service.get_all_hash(JOBS_KEY).items():
            try:
                jobs.append(IngestionJob.from_dict(data))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"⚠️ Skipping corrupt job record {job_id}: {e}")
        return sorted(jobs, key=lambda job: job.started_at)

    def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> Optional[IngestionJob]:
        """
        Block until a job running in this process reaches a terminal state.

        Jobs submitted elsewhere are just read from the store.
        """
        with self._futures_lock:
            future = self._futures.get(job_id)

        if future is not None:
            try:
                future.result(timeout=timeout)
            except FutureTimeoutError:
                logger.warning(f"⚠️ Timed out waiting for job {job_id}")

        return self.get_job(job_id)

    def delete_repository(self, repo_id: str) -> Dict[str, Any]:
        """
        Remove a repository from the vector index, local disk and metadata cache.

        Missing pieces are skipped silently. Job records are left untouched.

        Raises:
            ValueError: If repo_id is not of the form owner/name
            IndexFailure: If the vector index rejects the delete
        """
        validate_repo_id(repo_id)

        if not self.vector_client.delete_by_repo(repo_id):
            raise IndexFailure(f"Failed to delete vectors for {repo_id}")

        clone_deleted = self.git_service.delete_repository(repo_id)
        self.cache_service.delete(f"{REPO_KEY_PREFIX}{repo_id}")
        self.cache_service.remove_from_set(REPOSITORIES_KEY, repo_id)

        logger.info(f"🗑️ Repository {repo_id} deleted")
        return {
            'repo_id': repo_id,
            'vectors_deleted': True,
            'clone_deleted': clone_deleted,
        }

    def get_repository(self, repo_id: str) -> Optional[Dict[str, Any]]:
        """Cached metadata of the last successful ingestion of a repository."""
        return self.cache_service.get(f"{REPO_KEY_PREFIX}{repo_id}")

    def list_repositories(self) -> List[str]:
        return self.cache_service.get_set(REPOSITORIES_KEY)

    def get_stats(self) -> Dict[str, Any]:
        """Index size plus the number of ingested repositories."""
        return {
            'index': self.vector_client.get_stats(),
            'repositories': len(self.list_repositories()),
        }

    def health_check(self) -> Dict[str, Any]:
        cache_healthy = self.cache_service.is_healthy()
        index_healthy = self.vector_client.health_check().get('status') == 'healthy'
        return {
            'status': 'healthy' if cache_healthy and index_healthy else 'unhealthy',
            'timestamp': utc_now().isoformat(),
            'services': {
                'redis': 'up' if cache_healthy else 'down',
                'qdrant': 'up' if index_healthy else 'down',
            },
        }

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs; optionally wait for running ones."""
        self.executor.shutdown(wait=wait)

    # ===== Job execution =====

    def _run_job(self, job: IngestionJob) -> None:
        """Drive one job to a terminal state. Never raises."""
        start_time = time.monotonic()

        try:
            self._transition(job, JobStatus.CLONING)
            repo_path = self.git_service.clone_repository(job.repo_url, job.branch)
            self._check_repository_size(repo_path)

            self._transition(job, JobStatus.CHUNKING)
            chunks = self.walker.walk(str(repo_path), job.repo_id)
            if not chunks:
                raise NoProcessableFiles(job.repo_id)
            logger.info(f"📊 {job.repo_id}: {len(chunks)} chunks")

            self._transition(job, JobStatus.EMBEDDING)
            records = self.batch_processor.embed_chunks(chunks)
            logger.info(f"📊 {job.repo_id}: {len(records)} embeddings generated")

            self._transition(job, JobStatus.INDEXING)
            if not self.vector_client.upsert_records(records):
                raise IndexFailure(f"Vector index rejected {len(records)} records for {job.repo_id}")

            stats = IngestionStats(
                files_processed=len({chunk.file_path for chunk in chunks}),
                chunks_created=len(chunks),
                embeddings_generated=len(records),
                tokens_used=estimate_tokens(chunks),
                duration_ms=int((time.monotonic() - start_time) * 1000),
            )
            self._complete(job, stats)

        except IngestionError as e:
            self._fail(job, str(e))
        except Exception as e:
            logger.exception(f"❌ Unexpected error in job {job.id}")
            self._fail(job, f"{type(e).__name__}: {e}")

    def _check_repository_size(self, repo_path) -> None:
        size = self.git_service.get_repository_size(repo_path)
        size_mb = size / (1024 * 1024)
        logger.info(f"📊 Repository size: {format_bytes(size)}")

        if size_mb > self.config.max_repo_size_mb:
            raise RepoTooLarge(size_mb, self.config.max_repo_size_mb)

    def _transition(self, job: IngestionJob, status: JobStatus) -> None:
        """Set status, then progress checkpoint, then persist, before the stage runs."""
        if job.status.is_terminal:
            raise RuntimeError(f"Job {job.id} is already {job.status.value}")

        job.status = status
        job.progress = max(job.progress, STAGE_PROGRESS[status])
        self._save_job(job)
        logger.info(f"🔄 Job {job.id} [{job.repo_id}] → {status.value} ({job.progress}%)")

    def _complete(self, job: IngestionJob, stats: IngestionStats) -> None:
        job.status = JobStatus.COMPLETED
        job.progress = STAGE_PROGRESS[JobStatus.COMPLETED]
        job.completed_at = utc_now()
        job.stats = stats
        self._save_job(job)

        self.cache_service.set(f"{REPO_KEY_PREFIX}{job.repo_id}", {
            'repo_id': job.repo_id,
            'url': job.repo_url,
            'branch': job.branch,
            'last_processed_at': job.completed_at.isoformat(),
            'stats': stats.to_dict(),
        })
        self.cache_service.add_to_set(REPOSITORIES_KEY, job.repo_id)

        self._log_statistics(job)

    def _fail(self, job: IngestionJob, message: str) -> None:
        if job.status.is_terminal:
            logger.error(
                f"❌ Job {job.id} [{job.repo_id}] already {job.status.value}, not marking failed: {message}"
            )
            return

        job.status = JobStatus.FAILED
        job.error = message or 'Unknown error'
        job.completed_at = utc_now()
        self._save_job(job)
        logger.error(f"❌ Job {job.id} [{job.repo_id}] failed: {job.error}")

    def _save_job(self, job: IngestionJob) -> None:
        if not self.cache_service.set_hash(JOBS_KEY, job.id, job.to_dict()):
            logger.warning(f"⚠️ Job {job.id} status not persisted ({job.status.value})")

    def _forget_future(self, job_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(job_id, None)

    def _log_statistics(self, job: IngestionJob) -> None:
        """Log ingestion statistics for a completed job."""
        stats = job.stats
        logger.info("=" * 60)
        logger.info(f"📊 Ingestion complete: {job.repo_id} ({job.branch})")
        logger.info("=" * 60)
        logger.info(f"  Files processed: {stats.files_processed}")
        logger.info(f"  Chunks created: {stats.chunks_created}")
        logger.info(f"  Embeddings generated: {stats.embeddings_generated}")
        logger.info(f"  Estimated tokens: {stats.tokens_used}")
        logger.info(f"  Duration: {stats.duration_ms / 1000:.1f}s")
        logger.info("=" * 60)
