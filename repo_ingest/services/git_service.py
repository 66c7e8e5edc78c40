"""
Git clone provider.

Keeps one shallow working copy per repository under the cache directory and
updates it in place on repeated requests.
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from ..core.errors import CloneFailure
from ..core.utils import format_bytes, normalize_repo_id

logger = logging.getLogger(__name__)


class GitService:
    """
    Clones and manages repository working copies.

    Features:
    - Shallow, single-branch clones
    - In-place update of an existing clone (fetch + force checkout)
    - Optional PAT token for private HTTPS repositories
    - Size measurement and removal of clones
    """

    def __init__(self, cache_dir: str = "./cache", pat_token: Optional[str] = None, timeout: int = 300):
        """
        Initialize git service.

        Args:
            cache_dir: Base directory for clones
            pat_token: GitHub Personal Access Token (optional, uses GITHUB_TOKEN if not provided)
            timeout: Seconds allowed for each git command
        """
        self.cache_dir = Path(cache_dir)
        self.pat_token = pat_token or os.getenv('GITHUB_TOKEN')
        self.timeout = timeout

    def get_repository_path(self, repo_id: str) -> Path:
        return self.cache_dir / repo_id.replace('/', '_')

    def repository_exists(self, repo_path: Path) -> bool:
        return (repo_path / '.git').exists()

    def clone_repository(self, repo_url: str, branch: str = 'main') -> Path:
        """
        Clone a repository, or update the existing clone.

        Args:
            repo_url: GitHub repository URL
            branch: Branch to check out

        Returns:
            Path to the working copy

        Raises:
            CloneFailure: If the branch name is unusable, or git fails or times out
        """
        if not branch or branch.startswith('-'):
            raise CloneFailure(f"Invalid branch name: {branch!r}")

        repo_id = normalize_repo_id(repo_url)
        repo_path = self.get_repository_path(repo_id)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

        if self.repository_exists(repo_path):
            logger.info(f"🔄 {repo_id} already cloned at {repo_path}, updating to {branch}")
            self.pull_repository(repo_path, branch)
            return repo_path

        logger.info(f"📥 Cloning {repo_id} ({branch}) into {repo_path}")
        self._run_git([
            'clone', '--depth', '1', '--single-branch', '--branch', branch,
            self._prepare_clone_url(repo_url), str(repo_path)
        ])

        logger.info(f"✅ Cloned {repo_id} at {self.get_commit_sha(repo_path)[:12]}")
        return repo_path

    def pull_repository(self, repo_path: Path, branch: str = 'main') -> None:
        """
        Update an existing shallow clone to the tip of `branch`.

        Raises:
            CloneFailure: If git fails or times out
        """
        self._run_git(['-C', str(repo_path), 'fetch', '--depth', '1', 'origin', branch])
        self._run_git(['-C', str(repo_path), 'checkout', '--force', '-B', branch, 'FETCH_HEAD'])
        logger.info(f"✅ Updated {repo_path} to {branch} at {self.get_commit_sha(repo_path)[:12]}")

    def delete_repository(self, repo_id: str) -> bool:
        """
        Remove the working copy of a repository.

        Returns:
            True if a clone was removed, False if none existed
        """
        repo_path = self.get_repository_path(repo_id)
        if not repo_path.exists():
            logger.info(f"🗑️ No clone for {repo_id}, nothing to delete")
            return False

        shutil.rmtree(repo_path)
        logger.info(f"🗑️ Deleted clone of {repo_id} at {repo_path}")
        return True

    def get_repository_size(self, repo_path: Path) -> int:
        """Total size in bytes of the working copy, excluding .git."""
        total_size = 0
        for dir_path, dir_names, file_names in os.walk(repo_path):
            if '.git' in dir_names:
                dir_names.remove('.git')
            for name in file_names:
                try:
                    total_size += os.lstat(os.path.join(dir_path, name)).st_size
                except OSError as e:
                    logger.debug(f"⏭️  Cannot stat {name}: {e}")

        logger.debug(f"📊 {repo_path} size: {format_bytes(total_size)}")
        return total_size

    def get_commit_sha(self, repo_path: Path) -> str:
        """Get current commit SHA of repository."""
        try:
            result = subprocess.run(
                ['git', '-C', str(repo_path), 'rev-parse', 'HEAD'],
                capture_output=True,
                text=True,
                timeout=10
            )
            return result.stdout.strip() if result.returncode == 0 else 'unknown'
        except (OSError, subprocess.SubprocessError):
            return 'unknown'

    def _prepare_clone_url(self, repo_url: str) -> str:
        """Insert the PAT token into HTTPS URLs."""
        if repo_url.startswith('https://') and self.pat_token:
            return repo_url.replace('https://', f'https://{self.pat_token}@', 1)
        return repo_url

    def _redact(self, text: str) -> str:
        if self.pat_token:
            return text.replace(self.pat_token, '***')
        return text

    def _run_git(self, args: List[str]) -> str:
        """Run a git command, raising CloneFailure on error."""
        cmd = ['git'] + args
        command = args[2] if args[0] == '-C' else args[0]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env={**os.environ, 'GIT_TERMINAL_PROMPT': '0'}
            )
        except subprocess.TimeoutExpired:
            raise CloneFailure(f"git {command} timed out after {self.timeout}s")
        except OSError as e:
            raise CloneFailure(f"Failed to run git: {e}")

        if result.returncode != 0:
            raise CloneFailure(f"git {' '.join(self._redact(a) for a in args)} failed: {self._redact(result.stderr.strip())}")

        return result.stdout
