"""
Ingestion error kinds.

Every fatal pipeline error derives from IngestionError; its message is what
ends up in a failed job's `error` field.
"""


class IngestionError(Exception):
    """Base class for errors that abort an ingestion job."""


class InvalidRepoUrl(IngestionError):
    """Repository URL does not look like github.com/<owner>/<name>."""

    def __init__(self, url: str):
        super().__init__(f"Invalid GitHub URL: {url}")
        self.url = url


class CloneFailure(IngestionError):
    """Clone or update of the working copy failed."""


class RepoTooLarge(IngestionError):
    """Cloned repository exceeds the configured size ceiling."""

    def __init__(self, size_mb: float, max_size_mb: float):
        super().__init__(
            f"Repository size ({size_mb:.2f}MB) exceeds maximum allowed size ({max_size_mb:g}MB)"
        )
        self.size_mb = size_mb
        self.max_size_mb = max_size_mb


class NoProcessableFiles(IngestionError):
    """Repository walk produced zero chunks."""

    def __init__(self, repo_id: str):
        super().__init__(f"No processable files found in repository {repo_id}")
        self.repo_id = repo_id


class EmbeddingFailure(IngestionError):
    """An embedding batch failed on every attempt."""


class IndexFailure(IngestionError):
    """The vector index rejected an upsert or delete."""
