"""
Git Sync — Bring one repository's local mirror up to date and push it.

Per repository:

    reuse check ─┬─ reusable (probe fetch ok) ────────────┐
                 └─ not reusable → delete → clone → fetch ┤
                                                          ├─ (mirror) register remote → push
                                                          └─ done

A failed stage is logged and recorded, then the procedure moves on to the
next stage. Later stages may therefore run against a broken or stale cache.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path
from typing import List

from .config import SyncOptions
from .models import (
    STAGE_CLONE,
    STAGE_DELETE,
    STAGE_FETCH,
    STAGE_PUSH,
    STAGE_REGISTER,
    RepoOutcome,
    RepositoryDescriptor,
    StageResult,
    remote_name_for,
)
from .runner import CommandResult, run_git

logger = logging.getLogger(__name__)

# Written by every successful `git fetch`; its presence marks a reusable mirror
MARKER_FILE = "FETCH_HEAD"

# Only published branches and tags are pushed
PUSH_REFSPECS = (
    "+refs/heads/*:refs/heads/*",
    "+refs/tags/*:refs/tags/*",
)


def _log_ctx(repo: RepositoryDescriptor, stage: str) -> dict:
    return {"repo": repo.name, "stage": stage}


def _stage_from_command(stage: str, result: CommandResult) -> StageResult:
    return StageResult(
        stage=stage,
        ok=result.ok,
        error=None if result.ok else result.describe_error(),
        returncode=result.returncode,
        timed_out=result.timed_out,
        duration_seconds=result.duration_seconds,
    )


def _run_stage(
    repo: RepositoryDescriptor,
    stage: str,
    args: List[str],
    options: SyncOptions,
    cwd: Path | None = None,
) -> StageResult:
    result = run_git(
        args,
        cwd=cwd,
        timeout=options.timeout_seconds,
        git=options.git_binary,
    )
    stage_result = _stage_from_command(stage, result)
    if not stage_result.ok:
        logger.error(
            f"[mirror-git] git {stage} failed for {repo.name}: {stage_result.error}",
            extra=_log_ctx(repo, stage),
        )
    return stage_result


# ─── Stages ─────────────────────────────────────────────────


def has_marker(repo: RepositoryDescriptor) -> bool:
    """Cheap reuse probe: did a fetch ever complete in this mirror?"""
    return (repo.local_root / MARKER_FILE).exists()


def clone(repo: RepositoryDescriptor, options: SyncOptions) -> StageResult:
    """git clone --mirror <source> <local_root>"""
    logger.info(
        f"[mirror-git] Cloning {repo.name} into {repo.local_root}",
        extra=_log_ctx(repo, STAGE_CLONE),
    )
    return _run_stage(
        repo,
        STAGE_CLONE,
        ["clone", "--mirror", repo.source_url, str(repo.local_root)],
        options,
    )


def fetch(repo: RepositoryDescriptor, options: SyncOptions) -> StageResult:
    """git fetch --prune origin, inside the mirror."""
    logger.info(
        f"[mirror-git] Fetching {repo.name} in {repo.local_root}",
        extra=_log_ctx(repo, STAGE_FETCH),
    )
    return _run_stage(
        repo, STAGE_FETCH, ["fetch", "--prune", "origin"], options, cwd=repo.local_root
    )


def remove_cache(repo: RepositoryDescriptor) -> StageResult:
    """Delete the local mirror tree. A missing tree is not an error."""
    start = time.monotonic()
    if not repo.local_root.exists():
        return StageResult(stage=STAGE_DELETE, ok=True)

    logger.info(
        f"[mirror-git] Removing cache for {repo.name}: {repo.local_root}",
        extra=_log_ctx(repo, STAGE_DELETE),
    )
    try:
        if repo.local_root.is_dir() and not repo.local_root.is_symlink():
            shutil.rmtree(repo.local_root)
        else:
            repo.local_root.unlink()
    except OSError as e:
        logger.error(
            f"[mirror-git] Failed to remove cache for {repo.name}: {e}",
            extra=_log_ctx(repo, STAGE_DELETE),
        )
        return StageResult(
            stage=STAGE_DELETE,
            ok=False,
            error=str(e),
            duration_seconds=time.monotonic() - start,
        )

    return StageResult(stage=STAGE_DELETE, ok=True, duration_seconds=time.monotonic() - start)


def remote_definition(destination: str) -> str:
    """Contents of the remotes/<name> file for a destination."""
    lines = [f"URL: {destination}"]
    lines.extend(f"Push: {spec}" for spec in PUSH_REFSPECS)
    return "\n".join(lines) + "\n"


def register_remote(repo: RepositoryDescriptor) -> StageResult:
    """
    Write (or overwrite) remotes/<name> inside the mirror.

    The legacy remotes-file format lets the push refspecs live next to the
    URL without touching the mirror's config file.
    """
    remote_name = remote_name_for(repo.destination_url)
    if not remote_name:
        error = f"can't derive a remote name from destination {repo.destination_url!r}"
        logger.error(
            f"[mirror-git] Remote registration failed for {repo.name}: {error}",
            extra=_log_ctx(repo, STAGE_REGISTER),
        )
        return StageResult(stage=STAGE_REGISTER, ok=False, error=error)

    remotes_dir = repo.local_root / "remotes"
    try:
        remotes_dir.mkdir(parents=True, exist_ok=True)
        (remotes_dir / remote_name).write_text(
            remote_definition(repo.destination_url), encoding="utf-8"
        )
    except OSError as e:
        logger.error(
            f"[mirror-git] Remote registration failed for {repo.name}: {e}",
            extra=_log_ctx(repo, STAGE_REGISTER),
        )
        return StageResult(stage=STAGE_REGISTER, ok=False, error=str(e))

    logger.debug(f"[mirror-git] Registered remote {remote_name} for {repo.name}")
    return StageResult(stage=STAGE_REGISTER, ok=True)


def push(repo: RepositoryDescriptor, options: SyncOptions) -> StageResult:
    """git push --mirror --force <remote-name>, inside the mirror."""
    remote_name = remote_name_for(repo.destination_url)
    if not remote_name:
        return StageResult(
            stage=STAGE_PUSH,
            ok=False,
            error=f"no remote name for destination {repo.destination_url!r}",
        )

    logger.info(
        f"[mirror-git] Pushing {repo.name} to {remote_name}",
        extra=_log_ctx(repo, STAGE_PUSH),
    )
    return _run_stage(
        repo,
        STAGE_PUSH,
        ["push", "--mirror", "--force", remote_name],
        options,
        cwd=repo.local_root,
    )


# ─── Procedure ──────────────────────────────────────────────


def can_reuse(
    repo: RepositoryDescriptor, options: SyncOptions, outcome: RepoOutcome
) -> bool:
    """
    Decide whether the existing mirror can be kept.

    No marker → not reusable. Marker present → fetch in place; a failed
    fetch demotes the mirror to not reusable. A successful probe fetch is
    the run's refresh and is recorded on the outcome.
    """
    if not has_marker(repo):
        logger.info(
            f"[mirror-git] Can't reuse {repo.name}: no {MARKER_FILE} in {repo.local_root}",
            extra=_log_ctx(repo, STAGE_FETCH),
        )
        return False

    logger.info(
        f"[mirror-git] Trying to reuse {repo.name}", extra=_log_ctx(repo, STAGE_FETCH)
    )
    result = fetch(repo, options)
    if not result.ok:
        # Recreating the mirror recovers from this, so it is not a stage failure
        outcome.demoted = True
        outcome.probe_error = result.error
        logger.warning(
            f"[mirror-git] Failed to reuse {repo.name}, recreating",
            extra=_log_ctx(repo, STAGE_FETCH),
        )
        return False

    outcome.record(result)
    return True


def sync_repository(repo: RepositoryDescriptor, options: SyncOptions) -> RepoOutcome:
    """Run the full sync procedure for one repository."""
    outcome = RepoOutcome(name=repo.name)

    if can_reuse(repo, options, outcome):
        outcome.reused = True
    else:
        outcome.record(remove_cache(repo))
        outcome.record(clone(repo, options))
        # Runs even after a failed clone; also writes the reuse marker
        outcome.record(fetch(repo, options))

    if options.mirror_enabled:
        outcome.record(register_remote(repo))
        outcome.record(push(repo, options))

    if outcome.ok:
        logger.info(
            f"[mirror-git] {repo.name}: synced"
            + (" (reused cache)" if outcome.reused else ""),
            extra={"repo": repo.name},
        )
    else:
        logger.warning(
            f"[mirror-git] {repo.name}: {outcome.status}", extra={"repo": repo.name}
        )

    return outcome
