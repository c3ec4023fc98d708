"""
Mirror Configuration — Runtime settings for one mirror run.

Settings are built once at startup and passed explicitly to the manager,
the worker pool and every sync procedure. Environment variables provide
defaults; CLI options override them.

    GITMIRROR_CACHE_DIR=/var/cache/gitmirror
    GITMIRROR_REPO_MAPPINGS=repos.yaml
    GITMIRROR_MIRROR=true
    GITMIRROR_WORKERS=5
    GITMIRROR_TIMEOUT=30
    GITMIRROR_GIT=git
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from ..config.loader import ConfigError

DEFAULT_WORKERS = 5
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_MAPPINGS_FILE = "repos.yaml"

_TRUE_VALUES = ("true", "1", "yes", "on")


@dataclass(frozen=True)
class SyncOptions:
    """Options every sync procedure in a run shares."""

    mirror_enabled: bool = False  # register remote + push to destination
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS  # per git invocation
    git_binary: str = "git"


@dataclass(frozen=True)
class MirrorSettings:
    """Everything needed to run one mirror pass."""

    cache_dir: Optional[Path] = None  # None → temporary directory
    mappings_file: Path = Path(DEFAULT_MAPPINGS_FILE)
    workers: int = DEFAULT_WORKERS
    options: SyncOptions = field(default_factory=SyncOptions)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "MirrorSettings":
        """Parse settings from GITMIRROR_* environment variables."""
        if env is None:
            env = os.environ

        cache_dir = env.get("GITMIRROR_CACHE_DIR", "").strip()

        options = SyncOptions(
            mirror_enabled=env.get("GITMIRROR_MIRROR", "").lower() in _TRUE_VALUES,
            timeout_seconds=_positive_int(
                "GITMIRROR_TIMEOUT", env.get("GITMIRROR_TIMEOUT"), DEFAULT_TIMEOUT_SECONDS
            ),
            git_binary=env.get("GITMIRROR_GIT", "").strip() or "git",
        )

        return cls(
            cache_dir=Path(cache_dir) if cache_dir else None,
            mappings_file=Path(
                env.get("GITMIRROR_REPO_MAPPINGS", "").strip() or DEFAULT_MAPPINGS_FILE
            ),
            workers=_positive_int(
                "GITMIRROR_WORKERS", env.get("GITMIRROR_WORKERS"), DEFAULT_WORKERS
            ),
            options=options,
        )

    def with_overrides(self, **overrides: Any) -> "MirrorSettings":
        """
        Return a copy with non-None overrides applied.

        Accepts the MirrorSettings fields plus the SyncOptions fields
        (mirror_enabled, timeout_seconds, git_binary).
        """
        overrides = {k: v for k, v in overrides.items() if v is not None}

        option_fields = {"mirror_enabled", "timeout_seconds", "git_binary"}
        option_overrides = {k: overrides.pop(k) for k in list(overrides) if k in option_fields}

        if "cache_dir" in overrides:
            overrides["cache_dir"] = Path(overrides["cache_dir"]) if overrides["cache_dir"] else None
        if "mappings_file" in overrides:
            overrides["mappings_file"] = Path(overrides["mappings_file"])
        if "workers" in overrides:
            overrides["workers"] = _positive_int("workers", overrides["workers"], DEFAULT_WORKERS)
        if "timeout_seconds" in option_overrides:
            option_overrides["timeout_seconds"] = _positive_int(
                "timeout", option_overrides["timeout_seconds"], DEFAULT_TIMEOUT_SECONDS
            )

        settings = replace(self, **overrides)
        if option_overrides:
            settings = replace(settings, options=replace(settings.options, **option_overrides))
        return settings


def _positive_int(name: str, raw: Any, default: int) -> int:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ConfigError(f"{name} must be at least 1, got {value}")
    return value
