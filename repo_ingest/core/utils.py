"""Small helpers shared by the pipeline and its services."""

import re
from typing import List, Sequence, TypeVar

from .errors import InvalidRepoUrl

T = TypeVar('T')

_GITHUB_URL = re.compile(r'github\.com[:/]([^/]+)/([^/.]+)')
_REPO_ID = re.compile(r'^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$')


def normalize_repo_id(url: str) -> str:
    """
    Derive 'owner/name' from a GitHub URL (https or ssh form).

    Raises:
        InvalidRepoUrl: If the URL has no github.com/<owner>/<name> part
    """
    match = _GITHUB_URL.search(url or '')
    if not match:
        raise InvalidRepoUrl(url)
    return f"{match.group(1)}/{match.group(2)}"


def validate_repo_id(repo_id: str) -> str:
    """Reject anything that is not a plain owner/name pair."""
    if not repo_id or not _REPO_ID.match(repo_id) or '..' in repo_id.split('/'):
        raise ValueError(f"Invalid repository id: {repo_id!r}")
    return repo_id


def chunk_list(items: Sequence[T], size: int) -> List[Sequence[T]]:
    """Split a sequence into consecutive slices of at most `size` items."""
    return [items[i:i + size] for i in range(0, len(items), size)]


def format_bytes(num_bytes: int) -> str:
    if num_bytes <= 0:
        return '0 Bytes'
    units = ['Bytes', 'KB', 'MB', 'GB']
    value = float(num_bytes)
    exponent = 0
    while value >= 1024 and exponent < len(units) - 1:
        value /= 1024
        exponent += 1
    value = round(value, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {units[exponent]}"
