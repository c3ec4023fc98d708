"""
End-to-end sync against real local git repositories.

Skipped when git is not installed. Nothing leaves tmp_path: the source is
a local repository and the destination is a local bare repository reached
through a registered remote.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from gitmirror.mirror import git_sync
from gitmirror.mirror.config import SyncOptions
from gitmirror.mirror.models import RepositoryDescriptor

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

GIT_IDENTITY = ["-c", "user.name=gitmirror", "-c", "user.email=gitmirror@example.com"]


def _git(*args: str, cwd: Path | None = None) -> str:
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True, timeout=30
    )
    return result.stdout.strip()


def _make_source(tmp_path: Path) -> Path:
    source = tmp_path / "source"
    _git("init", "-q", str(source))
    _git(*GIT_IDENTITY, "commit", "-q", "--allow-empty", "-m", "first", cwd=source)
    _git("tag", "v1", cwd=source)
    return source


def _repo(tmp_path: Path, source: Path) -> RepositoryDescriptor:
    return RepositoryDescriptor(
        name="a",
        local_root=tmp_path / "cache" / "a",
        source_url=str(source),
        destination_url="git@dest:org/a",
    )


class TestRealGit:

    def test_clone_then_reuse(self, tmp_path):
        source = _make_source(tmp_path)
        repo = _repo(tmp_path, source)
        options = SyncOptions()

        first = git_sync.sync_repository(repo, options)

        assert first.ok, first.to_dict()
        assert first.reused is False
        assert git_sync.has_marker(repo)
        assert _git("rev-parse", "--is-bare-repository", cwd=repo.local_root) == "true"

        # New commit upstream; the next run reuses the cache and picks it up
        _git(*GIT_IDENTITY, "commit", "-q", "--allow-empty", "-m", "second", cwd=source)
        head = _git("rev-parse", "HEAD", cwd=source)

        second = git_sync.sync_repository(repo, options)

        assert second.ok, second.to_dict()
        assert second.reused is True
        assert [s.stage for s in second.stages] == ["fetch"]
        assert head in _git("for-each-ref", "--format=%(objectname)", cwd=repo.local_root)

    def test_broken_cache_is_recreated(self, tmp_path):
        source = _make_source(tmp_path)
        repo = _repo(tmp_path, source)

        # Looks reusable, but is not a repository
        repo.local_root.mkdir(parents=True)
        (repo.local_root / git_sync.MARKER_FILE).write_text("")

        outcome = git_sync.sync_repository(repo, SyncOptions())

        assert outcome.demoted is True
        assert outcome.ok, outcome.to_dict()
        assert _git("tag", cwd=repo.local_root) == "v1"

    def test_push_to_registered_remote(self, tmp_path):
        source = _make_source(tmp_path)
        repo = _repo(tmp_path, source)
        destination = tmp_path / "dest.git"
        _git("init", "-q", "--bare", str(destination))
        # A ref outside heads and tags must stay behind
        _git("update-ref", "refs/pull/1/head", "HEAD", cwd=source)

        # The remote name comes from the destination string; point that
        # remote at the local bare repository through url rewriting
        git_sync.sync_repository(repo, SyncOptions())
        _git("config", f"url.{destination}.insteadOf", "git@dest:org/a", cwd=repo.local_root)

        outcome = git_sync.sync_repository(repo, SyncOptions(mirror_enabled=True))

        assert outcome.ok, outcome.to_dict()
        assert (repo.local_root / "remotes" / "dest").exists()
        assert _git("tag", cwd=destination) == "v1"
        assert "refs/pull/1/head" in _git("for-each-ref", "--format=%(refname)", cwd=repo.local_root)
        refs = _git("for-each-ref", "--format=%(refname)", cwd=destination).splitlines()
        assert "refs/pull/1/head" not in refs
        assert all(r.startswith(("refs/heads/", "refs/tags/")) for r in refs)
