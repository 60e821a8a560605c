"""
Repository snapshot provider: shallow clones with the git CLI.
"""

import os
import subprocess
from typing import Optional

from ..utils import setup_logging
from .context import RunContext
from .errors import CloneError
from .process import run_command

logger = setup_logging()


class GitCloner:
    """Clones GitHub repositories into a local directory."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = "https://github.com",
        timeout_seconds: float = 600.0,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def clone_url(self, repo: str) -> str:
        if "://" in repo or repo.startswith("git@"):
            return repo
        scheme, _, host = self.base_url.partition("://")
        if self.token:
            return f"{scheme}://x-access-token:{self.token}@{host}/{repo}.git"
        return f"{self.base_url}/{repo}.git"

    def clone(self, ctx: RunContext, repo: str, ref: str, dest: str) -> str:
        """
        Shallow-clones ``repo`` at ``ref`` into ``dest``.

        Args:
            ctx: Run context
            repo: "owner/name" or a full clone URL
            ref: Branch or tag to check out
            dest: Target directory; must not exist or be empty

        Returns:
            Path of the checkout

        Raises:
            CloneError: If git is missing, fails or times out
        """
        args = ["git", "clone", "--depth", "1", "--branch", ref, self.clone_url(repo), dest]
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        logger.info(f"Cloning {repo}@{ref} into {dest}")
        try:
            code, _, stderr = run_command(ctx, args, env=env, timeout=self.timeout_seconds)
        except OSError as e:
            raise CloneError(f"cannot run git: {e}")
        except subprocess.TimeoutExpired:
            raise CloneError(f"timed out cloning {repo}")
        if code != 0:
            raise CloneError(f"git clone of {repo} failed: {self._redact(stderr.strip())}")
        return dest

    def _redact(self, text: str) -> str:
        if self.token:
            return text.replace(self.token, "***")
        return text
