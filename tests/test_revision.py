import shutil
import subprocess

import pytest

from rulebook_mcp_server.core.errors import VersionControlError
from rulebook_mcp_server.corpus.revision import GitRevisionSource

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


@requires_git
async def test_reads_head_commit(tmp_path):
    def git(*args):
        subprocess.run(
            ["git", "-c", "user.name=t", "-c", "user.email=t@example.com", *args],
            cwd=tmp_path,
            check=True,
            capture_output=True,
        )

    git("init", "-q")
    (tmp_path / "README.md").write_text("# rules\n", encoding="utf-8")
    git("add", "README.md")
    git("commit", "-q", "-m", "initial")
    expected = subprocess.run(
        ["git", "rev-parse", "HEAD"], cwd=tmp_path, check=True, capture_output=True, text=True
    ).stdout.strip()

    revision = await GitRevisionSource(str(tmp_path)).current_revision()

    assert revision == expected
    assert len(revision) == 40


@requires_git
async def test_not_a_repository(tmp_path):
    with pytest.raises(VersionControlError):
        await GitRevisionSource(str(tmp_path)).current_revision()


async def test_missing_git_binary(tmp_path):
    source = GitRevisionSource(str(tmp_path), git_binary="git-binary-that-does-not-exist")
    with pytest.raises(VersionControlError):
        await source.current_revision()
