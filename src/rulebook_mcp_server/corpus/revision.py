"""
Corpus revision lookup.

The corpus is a git checkout; its HEAD commit identifies the generation that
an index was built from. Failing to read it is fatal to any operation that
needs a revision.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..config import settings
from ..core.errors import VersionControlError

logger = logging.getLogger("rulebook.revision")


class GitRevisionSource:
    """Reports the current HEAD commit of a git working tree."""

    def __init__(
        self,
        repo_path: Optional[str] = None,
        git_binary: str = "git",
        timeout: float = 10.0,
    ) -> None:
        self.repo_path = repo_path or settings.corpus_repo_path
        self.git_binary = git_binary
        self.timeout = timeout

    async def current_revision(self) -> str:
        """
        Return the full commit hash of HEAD.

        Raises
        ------
        VersionControlError
            If git cannot be run, the path is not a repository, or the
            command does not finish within the timeout.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                self.git_binary,
                "rev-parse",
                "HEAD",
                cwd=self.repo_path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise VersionControlError(
                f"failed to run git rev-parse in {self.repo_path}: {exc}"
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), self.timeout)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise VersionControlError(
                f"git rev-parse timed out after {self.timeout}s"
            ) from exc

        if proc.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise VersionControlError(f"git rev-parse failed: {message}")

        revision = stdout.decode("utf-8", errors="replace").strip()
        if not revision:
            raise VersionControlError("git rev-parse returned an empty revision")

        return revision
