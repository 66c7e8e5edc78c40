"""
Chunking Engine

Splits one file's text into an ordered list of CodeChunk objects.

Two strategies:
- Semantic: heuristic block detection (declaration keywords + brace depth)
  for code files. Not a parser; when the result looks wrong (no chunks, or a
  chunk more than twice the target size) it falls back to line-based mode.
- Line-based: fixed-size windows of whole lines with a small line overlap,
  used for non-code files and as the semantic fallback.
"""

import logging
import re
import uuid
from dataclasses import replace
from typing import List, NamedTuple, Optional

from .config import IngestionConfig
from .models import ChunkMetadata, CodeChunk
from .path_classifier import get_file_extension, get_language, is_code_file

logger = logging.getLogger(__name__)


# Declaration shapes that open a block (matched against the stripped line)
BLOCK_OPENERS = [
    re.compile(r'^(function|class|def|func|fn|pub fn|async fn|interface|type|struct|impl)\s+\w+'),
    re.compile(r'^(export\s+)?(async\s+)?function\s+\w+'),
    re.compile(r'^(public|private|protected|static)\s+(class|interface|enum)'),
]

_CONTEXT_SPLIT = re.compile(r'[{(]')


class CodeBlock(NamedTuple):
    start_line: int
    end_line: int
    context: str


def is_block_opener(line: str) -> bool:
    return any(pattern.match(line) for pattern in BLOCK_OPENERS)


def block_context(line: str) -> str:
    """Signature text before the first '{' or '('."""
    return _CONTEXT_SPLIT.split(line, maxsplit=1)[0].strip()


def make_chunk_id(repo_id: str, relative_path: str, chunk_index: int, start_line: int) -> str:
    """Stable id so re-ingesting unchanged content replaces the same vector records."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{repo_id}:{relative_path}:{chunk_index}:{start_line}"))


class ChunkingEngine:
    """
    Turns file content into chunks.

    Responsibilities:
    - Pick semantic or line-based chunking per file
    - Detect code blocks heuristically and label them
    - Enforce the per-file chunk cap
    - Attach identical file metadata to every chunk of a file
    """

    def __init__(self, config: Optional[IngestionConfig] = None):
        self.config = config or IngestionConfig()
        self.chunk_size = self.config.chunk_size
        self.overlap_lines = self.config.overlap_lines
        self.max_chunks_per_file = self.config.max_chunks_per_file
        self.max_block_lines = self.config.max_block_lines

    def chunk_file(
        self,
        repo_id: str,
        file_path: str,
        content: str,
        relative_path: str
    ) -> List[CodeChunk]:
        """
        Chunk one file.

        Args:
            repo_id: Repository identifier (owner/name)
            file_path: Absolute path of the file in the clone
            content: Full file text
            relative_path: Path relative to the clone root

        Returns:
            Chunks ordered by chunk_index (0..n-1); empty for empty content
        """
        if not content:
            return []

        extension = get_file_extension(file_path)
        is_code = is_code_file(file_path)
        metadata = ChunkMetadata(
            language=get_language(extension),
            file_type=extension[1:] or 'unknown',
            extension=extension,
            relative_path=relative_path,
            size=len(content.encode('utf-8')),
            is_code=is_code,
        )

        if is_code:
            return self.semantic_chunk(repo_id, file_path, content, metadata)

        return self.simple_chunk(repo_id, file_path, content, metadata)

    def semantic_chunk(
        self,
        repo_id: str,
        file_path: str,
        content: str,
        metadata: ChunkMetadata
    ) -> List[CodeChunk]:
        """Block-based chunking with fallback to line-based chunking."""
        lines = content.split('\n')
        chunks = []

        for block in self.identify_code_blocks(lines):
            if len(chunks) >= self.max_chunks_per_file:
                break

            block_content = '\n'.join(lines[block.start_line:block.end_line + 1])
            if not block_content.strip():
                continue

            chunks.append(self._make_chunk(
                repo_id, file_path, block_content,
                block.start_line, block.end_line, len(chunks),
                replace(metadata, context=block.context),
            ))

        oversized = any(len(chunk.content) > self.chunk_size * 2 for chunk in chunks)
        if not chunks or oversized:
            logger.debug(
                f"↩️ Falling back to line chunking for {metadata.relative_path} "
                f"({'oversized block' if oversized else 'no blocks'})"
            )
            return self.simple_chunk(repo_id, file_path, content, metadata)

        return chunks

    def identify_code_blocks(self, lines: List[str]) -> List[CodeBlock]:
        """
        Find declaration blocks by keyword and brace balance.

        A block opens on the first matching line while none is open and closes
        when brace depth returns to zero on a line containing '}', when it has
        run longer than max_block_lines, or at end of file.
        """
        blocks = []
        current_start = None
        current_context = ''
        brace_depth = 0

        for i, raw_line in enumerate(lines):
            line = raw_line.strip()

            if current_start is None and is_block_opener(line):
                current_start = i
                current_context = block_context(line)
                brace_depth = 0

            brace_depth += line.count('{')
            brace_depth -= line.count('}')

            if current_start is not None and brace_depth == 0 and '}' in line:
                blocks.append(CodeBlock(current_start, i, current_context))
                current_start = None

            if current_start is not None and i - current_start > self.max_block_lines:
                blocks.append(CodeBlock(current_start, i, current_context))
                current_start = None

        if current_start is not None:
            blocks.append(CodeBlock(current_start, len(lines) - 1, current_context))

        if not blocks:
            blocks.append(CodeBlock(0, len(lines) - 1, 'file'))

        return blocks

    def simple_chunk(
        self,
        repo_id: str,
        file_path: str,
        content: str,
        metadata: ChunkMetadata
    ) -> List[CodeChunk]:
        """Fixed-size line windows; consecutive windows share overlap_lines lines."""
        lines = content.split('\n')
        chunks = []
        current_line = 0

        while current_line < len(lines) and len(chunks) < self.max_chunks_per_file:
            start_line = current_line
            chunk_lines = []
            char_count = 0

            # The size check runs before each read, so a window can exceed
            # chunk_size by at most one line.
            while current_line < len(lines) and char_count < self.chunk_size:
                chunk_lines.append(lines[current_line])
                char_count += len(lines[current_line]) + 1
                current_line += 1

            chunk_content = '\n'.join(chunk_lines)
            if chunk_content.strip():
                chunks.append(self._make_chunk(
                    repo_id, file_path, chunk_content,
                    start_line, current_line - 1, len(chunks),
                    replace(metadata, context=f"lines {start_line + 1}-{current_line}"),
                ))

            if current_line < len(lines):
                current_line = max(start_line + 1, current_line - self.overlap_lines)

        return chunks

    def _make_chunk(
        self,
        repo_id: str,
        file_path: str,
        content: str,
        start_line: int,
        end_line: int,
        chunk_index: int,
        metadata: ChunkMetadata
    ) -> CodeChunk:
        return CodeChunk(
            id=make_chunk_id(repo_id, metadata.relative_path, chunk_index, start_line),
            repo_id=repo_id,
            file_path=file_path,
            content=content,
            start_line=start_line,
            end_line=end_line,
            chunk_index=chunk_index,
            metadata=metadata,
        )
