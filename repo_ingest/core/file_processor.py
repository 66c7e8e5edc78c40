"""
Repository Walker

Traverses a cloned working directory and turns every processable file into
chunks. Per-file problems are logged and skipped; they never abort a walk.
"""

import logging
import os
from typing import List, Optional

from .chunking import ChunkingEngine
from .config import IngestionConfig
from .models import CodeChunk
from .path_classifier import is_binary_file, is_code_file, join_relative, should_ignore_path
from .utils import format_bytes

logger = logging.getLogger(__name__)


class RepositoryWalker:
    """
    Walks a clone depth-first and chunks the files worth indexing.

    Responsibilities:
    - Skip ignored directories (VCS, dependencies, build output, caches)
    - Skip binary, oversized and non-code files
    - Read file text and delegate to the chunking engine
    """

    def __init__(
        self,
        chunking_engine: Optional[ChunkingEngine] = None,
        config: Optional[IngestionConfig] = None
    ):
        self.config = config or IngestionConfig()
        self.chunking_engine = chunking_engine or ChunkingEngine(self.config)
        self.max_file_size = self.config.max_file_size_bytes

    def walk(self, root_path: str, repo_id: str) -> List[CodeChunk]:
        """
        Chunk every processable file under root_path.

        Args:
            root_path: Clone root directory
            repo_id: Repository identifier (owner/name)

        Returns:
            Flat list of chunks; per-file order is by chunk_index, cross-file
            order follows the directory listing
        """
        chunks: List[CodeChunk] = []
        self._walk_directory(str(root_path), '', repo_id, chunks)

        files = len({chunk.file_path for chunk in chunks})
        logger.info(f"📊 Walked {root_path}: {len(chunks)} chunks from {files} files")
        return chunks

    def _walk_directory(
        self,
        dir_path: str,
        relative_dir: str,
        repo_id: str,
        chunks: List[CodeChunk]
    ) -> None:
        try:
            entries = list(os.scandir(dir_path))
        except OSError as e:
            logger.warning(f"⚠️ Cannot list directory {relative_dir or dir_path}: {e}")
            return

        for entry in entries:
            relative_path = join_relative(relative_dir, entry.name)

            if should_ignore_path(relative_path):
                continue

            if entry.is_dir(follow_symlinks=False):
                self._walk_directory(entry.path, relative_path, repo_id, chunks)
            elif entry.is_file(follow_symlinks=False):
                chunks.extend(self._process_file(entry, relative_path, repo_id))

    def _process_file(self, entry: os.DirEntry, relative_path: str, repo_id: str) -> List[CodeChunk]:
        """Chunk one file, returning [] for anything skipped or unreadable."""
        try:
            if is_binary_file(entry.path):
                logger.debug(f"⏭️  Skipping binary file: {relative_path}")
                return []

            size = entry.stat(follow_symlinks=False).st_size
            if size > self.max_file_size:
                logger.warning(
                    f"⚠️ Skipping large file: {relative_path} ({format_bytes(size)} > "
                    f"{format_bytes(self.max_file_size)})"
                )
                return []

            if not is_code_file(entry.path):
                logger.debug(f"⏭️  Skipping non-code file: {relative_path}")
                return []

            with open(entry.path, 'r', encoding='utf-8', errors='replace') as f:
                content = f.read()

            return self.chunking_engine.chunk_file(repo_id, entry.path, content, relative_path)

        except Exception as e:
            logger.warning(f"⚠️ Failed to process file {relative_path}: {e}")
            return []
