"""
Config Loader — Read the repository mapping file and prepare the cache dir.

Both steps run once at startup. Any problem here is fatal: a ConfigError
is raised and no repository is processed.

## Usage

    from gitmirror.config.loader import ensure_cache_dir, load_repo_mappings

    cache_dir = ensure_cache_dir(settings.cache_dir)
    mappings = load_repo_mappings(settings.mappings_file)
"""

from __future__ import annotations

import logging
import tempfile
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .models import RepoMappingFile

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Startup configuration is unusable."""


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return its contents."""
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_repo_mappings(path: Path) -> RepoMappingFile:
    """
    Load and validate the repository mapping file.

    Raises:
        ConfigError: file missing or unreadable, invalid YAML, schema
            violations, or duplicate repository names.
    """
    path = Path(path)

    try:
        data = load_yaml(path)
    except OSError as e:
        raise ConfigError(f"error reading repo mappings file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"error parsing repo mappings file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"repo mappings file {path}: expected a mapping at top level")

    try:
        mappings = RepoMappingFile(**data)
    except ValidationError as e:
        raise ConfigError(f"invalid repo mappings file {path}: {e}") from e

    duplicates = sorted(n for n, count in Counter(mappings.names()).items() if count > 1)
    if duplicates:
        raise ConfigError(
            f"repo mappings file {path}: duplicate repository names: {', '.join(duplicates)}"
        )

    logger.info(f"Read repo mappings file: {path} ({len(mappings.repos)} repos)")
    return mappings


def ensure_cache_dir(cache_dir: Optional[Path]) -> Path:
    """
    Return a usable cache directory, creating it if needed.

    No path → a fresh temporary directory. A missing path is created with
    its parents. An existing non-directory is a ConfigError.
    """
    if not cache_dir:
        try:
            created = Path(tempfile.mkdtemp(prefix="gitmirror"))
        except OSError as e:
            raise ConfigError(f"can't create temporary cache dir: {e}") from e
        logger.info(f"Created cache dir: {created}")
        return created

    path = Path(cache_dir)

    if not path.exists():
        try:
            path.mkdir(parents=True, mode=0o755)
        except OSError as e:
            raise ConfigError(f"can't create cache dir {path}: {e}") from e
        logger.info(f"Created cache dir: {path}")
        return path

    if not path.is_dir():
        raise ConfigError(f"problem with cache dir {path}: not a directory")

    logger.info(f"Using cache dir: {path}")
    return path
