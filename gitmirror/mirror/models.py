"""
Mirror Models — Repository descriptors and per-run outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlsplit

from ..config.loader import ConfigError
from ..config.models import RepoMapping


@dataclass(frozen=True)
class RepositoryDescriptor:
    """One repository to mirror. local_root is always cache_root / name."""

    name: str
    local_root: Path
    source_url: str
    destination_url: str

    @classmethod
    def from_mapping(cls, cache_root: Path, mapping: RepoMapping) -> "RepositoryDescriptor":
        return cls(
            name=mapping.name,
            local_root=Path(cache_root) / mapping.name,
            source_url=mapping.source,
            destination_url=mapping.destination,
        )


def build_descriptors(
    cache_root: Path, mappings: Iterable[RepoMapping]
) -> List[RepositoryDescriptor]:
    """Build descriptors in mapping order. Two repos may not share a local root."""
    descriptors: List[RepositoryDescriptor] = []
    seen: Dict[Path, str] = {}

    for mapping in mappings:
        repo = RepositoryDescriptor.from_mapping(cache_root, mapping)
        if repo.local_root in seen:
            raise ConfigError(
                f"repositories {seen[repo.local_root]!r} and {repo.name!r} "
                f"share cache dir {repo.local_root}"
            )
        seen[repo.local_root] = repo.name
        descriptors.append(repo)

    return descriptors


def remote_name_for(destination: str) -> Optional[str]:
    """
    Derive the remote name from a destination connection string.

    ``git@bb:org/a`` → ``bb``: the text after the first ``@``, up to the
    first ``:``. URLs with a scheme use their host instead.
    """
    if "://" not in destination and "@" in destination:
        name = destination.split("@", 1)[1].split(":")[0]
    else:
        name = urlsplit(destination).hostname

    # Used as a file name under remotes/ and as a push target
    if not name or name in (".", "..") or "/" in name or "\\" in name:
        return None
    return name


# ─── Outcomes ───────────────────────────────────────────────

STAGE_DELETE = "delete"
STAGE_CLONE = "clone"
STAGE_FETCH = "fetch"
STAGE_REGISTER = "register"
STAGE_PUSH = "push"
STAGE_SYNC = "sync"  # the procedure itself raised

STATUS_OK = "ok"


@dataclass
class StageResult:
    """Result of one sync stage."""

    stage: str
    ok: bool
    error: Optional[str] = None
    returncode: Optional[int] = None
    timed_out: bool = False
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "ok": self.ok,
            "error": self.error,
            "returncode": self.returncode,
            "timed_out": self.timed_out,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class RepoOutcome:
    """Everything one sync procedure did for one repository."""

    name: str
    reused: bool = False
    demoted: bool = False  # marker present but the probe fetch failed
    probe_error: Optional[str] = None
    stages: List[StageResult] = field(default_factory=list)

    def record(self, result: StageResult) -> StageResult:
        self.stages.append(result)
        return result

    @property
    def ok(self) -> bool:
        return all(s.ok for s in self.stages)

    @property
    def status(self) -> str:
        """'ok', or '<stage>-failed' for the first failed stage."""
        for s in self.stages:
            if not s.ok:
                return f"{s.stage}-failed"
        return STATUS_OK

    def stage(self, name: str) -> Optional[StageResult]:
        """Last result recorded for a stage."""
        for s in reversed(self.stages):
            if s.stage == name:
                return s
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "reused": self.reused,
            "demoted": self.demoted,
            "probe_error": self.probe_error,
            "stages": [s.to_dict() for s in self.stages],
        }


@dataclass
class RunSummary:
    """Outcomes of one mirror run, in completion order."""

    outcomes: List[RepoOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def get(self, name: str) -> Optional[RepoOutcome]:
        for o in self.outcomes:
            if o.name == name:
                return o
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "repos": [o.to_dict() for o in self.outcomes],
        }
