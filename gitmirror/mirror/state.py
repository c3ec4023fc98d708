"""
Mirror State — Last run's result for each repository.

Stored in <cache_dir>/.mirror_status.json so `gitmirror status` can report
what happened without re-reading the log stream.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from ..config.models import STATUS_FILE
from .models import (
    STAGE_CLONE,
    STAGE_DELETE,
    STAGE_FETCH,
    STAGE_PUSH,
    STAGE_REGISTER,
    STAGE_SYNC,
    RepoOutcome,
    RunSummary,
)

logger = logging.getLogger(__name__)

STAGES = (STAGE_SYNC, STAGE_DELETE, STAGE_CLONE, STAGE_FETCH, STAGE_REGISTER, STAGE_PUSH)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncStatus:
    """Status of one stage for one repository."""

    last_sync_iso: Optional[str] = None
    status: str = "unknown"  # ok, failed, unknown
    last_error: Optional[str] = None

    def mark_ok(self):
        self.last_sync_iso = _now_iso()
        self.status = "ok"
        self.last_error = None

    def mark_failed(self, error: str):
        self.last_sync_iso = _now_iso()
        self.status = "failed"
        self.last_error = error


@dataclass
class RepoStatus:
    """Last known state of a single repository."""

    name: str
    status: str = "unknown"  # ok, <stage>-failed, unknown
    last_run_iso: Optional[str] = None
    reused: bool = False
    stages: Dict[str, SyncStatus] = field(default_factory=dict)

    def apply(self, outcome: RepoOutcome, run_iso: str) -> None:
        self.status = outcome.status
        self.last_run_iso = run_iso
        self.reused = outcome.reused
        # Only the stages that ran this time
        self.stages = {}
        for result in outcome.stages:
            sync = self.stages.setdefault(result.stage, SyncStatus())
            if result.ok:
                sync.mark_ok()
            else:
                sync.mark_failed(result.error or "Unknown error")

    @property
    def last_error(self) -> Optional[str]:
        for stage in STAGES:
            sync = self.stages.get(stage)
            if sync and sync.status == "failed":
                return sync.last_error
        return None


@dataclass
class MirrorState:
    """Complete mirror state."""

    repos: List[RepoStatus] = field(default_factory=list)
    last_run_iso: Optional[str] = None

    @classmethod
    def load(cls, cache_dir: Path) -> "MirrorState":
        """Load mirror state from the cache dir. Missing or broken → empty."""
        path = cls.path_for(cache_dir)

        if not path.exists():
            return cls()

        try:
            with open(path) as f:
                data = json.load(f)
            return cls._from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to load mirror state from {path}: {e}")
            return cls()

    def save(self, cache_dir: Path):
        """Save mirror state to the cache dir."""
        path = self.path_for(cache_dir)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=4, default=str)

    @staticmethod
    def path_for(cache_dir: Path) -> Path:
        return Path(cache_dir) / STATUS_FILE

    def get_repo(self, name: str) -> Optional[RepoStatus]:
        for r in self.repos:
            if r.name == name:
                return r
        return None

    def ensure_repo(self, name: str) -> RepoStatus:
        existing = self.get_repo(name)
        if existing:
            return existing

        repo = RepoStatus(name=name)
        self.repos.append(repo)
        return repo

    def record_run(self, summary: RunSummary) -> None:
        """Fold a run's outcomes into the state."""
        run_iso = _now_iso()
        for outcome in summary.outcomes:
            self.ensure_repo(outcome.name).apply(outcome, run_iso)
        self.last_run_iso = run_iso

    @classmethod
    def _from_dict(cls, data: dict) -> "MirrorState":
        repos = []
        for r in data.get("repos", []):
            repo = RepoStatus(
                name=r["name"],
                status=r.get("status", "unknown"),
                last_run_iso=r.get("last_run_iso"),
                reused=r.get("reused", False),
            )
            for stage, s in (r.get("stages") or {}).items():
                repo.stages[stage] = SyncStatus(
                    last_sync_iso=s.get("last_sync_iso"),
                    status=s.get("status", "unknown"),
                    last_error=s.get("last_error"),
                )
            repos.append(repo)

        return cls(repos=repos, last_run_iso=data.get("last_run_iso"))

    def to_dict(self) -> dict:
        return {
            "last_run_iso": self.last_run_iso,
            "repos": [
                {
                    "name": r.name,
                    "status": r.status,
                    "last_run_iso": r.last_run_iso,
                    "reused": r.reused,
                    "stages": {stage: asdict(s) for stage, s in r.stages.items()},
                }
                for r in self.repos
            ],
        }
