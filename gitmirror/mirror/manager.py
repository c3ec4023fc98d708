"""
Mirror Manager — Orchestrates one mirror run over all repositories.

This is the main entry point for mirror operations. It builds the
repository descriptors, fans them out over the worker pool, and collects
the per-repository outcomes into a run summary.

## Usage from other modules:

    from gitmirror.mirror.manager import MirrorManager

    manager = MirrorManager(settings, cache_dir)
    summary = manager.run(mappings.repos)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from ..config.models import RepoMapping
from . import git_sync
from .config import MirrorSettings, SyncOptions
from .models import (
    STAGE_SYNC,
    RepoOutcome,
    RepositoryDescriptor,
    RunSummary,
    StageResult,
    build_descriptors,
)
from .pool import WorkerPool
from .state import MirrorState

logger = logging.getLogger(__name__)

SyncHandler = Callable[[RepositoryDescriptor, SyncOptions], RepoOutcome]


class MirrorManager:
    """
    Runs the sync procedure for every repository on a bounded pool.

    One repository's failure never stops the others; the run always
    returns a summary covering every repository.
    """

    def __init__(
        self,
        settings: MirrorSettings,
        cache_dir: Path,
        sync: Optional[SyncHandler] = None,
    ):
        self.settings = settings
        self.cache_dir = Path(cache_dir)
        self._sync = sync or git_sync.sync_repository

    def descriptors(self, mappings: Iterable[RepoMapping]) -> List[RepositoryDescriptor]:
        return build_descriptors(self.cache_dir, mappings)

    def run(self, mappings: Iterable[RepoMapping], save_state: bool = True) -> RunSummary:
        repos = self.descriptors(mappings)
        options = self.settings.options

        logger.info(
            f"[mirror] Syncing {len(repos)} repo(s) with {self.settings.workers} worker(s), "
            f"mirroring {'enabled' if options.mirror_enabled else 'disabled'}"
        )

        pool: WorkerPool[RepositoryDescriptor, RepoOutcome] = WorkerPool(
            lambda repo: self._sync(repo, options),
            workers=self.settings.workers,
        )
        pool_run = pool.run(repos)

        summary = RunSummary(outcomes=list(pool_run.results))
        for repo, error in pool_run.errors:
            outcome = RepoOutcome(name=repo.name)
            outcome.record(StageResult(stage=STAGE_SYNC, ok=False, error=f"unexpected error: {error}"))
            summary.outcomes.append(outcome)

        logger.info(f"[mirror] Sync complete: {summary.succeeded}/{summary.total} repos synced")
        for outcome in summary.outcomes:
            if not outcome.ok:
                logger.warning(f"[mirror] {outcome.name}: {outcome.status}", extra={"repo": outcome.name})

        if save_state:
            self._save_state(summary)

        return summary

    def _save_state(self, summary: RunSummary) -> None:
        state = MirrorState.load(self.cache_dir)
        state.record_run(summary)
        try:
            state.save(self.cache_dir)
        except OSError as e:
            logger.error(f"[mirror] Failed to save mirror state: {e}")
