"""
Mapping Models — Pydantic schemas for the repository mapping file.

The mapping file lists every repository to mirror:

    repos:
      - name: reponame
        ado: ssh://source-host/reponame
        bb: git@bitbucket:org/reponame

``source``/``destination`` are accepted as aliases of ``ado``/``bb``.
"""

from __future__ import annotations

from typing import List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Run status lives next to the mirrors in the cache root
STATUS_FILE = ".mirror_status.json"


class RepoMapping(BaseModel):
    """One repository: where to fetch from and where to push to."""

    model_config = ConfigDict(frozen=True)

    name: str
    source: str = Field(validation_alias=AliasChoices("ado", "source"))
    destination: str = Field(
        default="",
        validation_alias=AliasChoices("bb", "destination"),
    )

    @field_validator("name")
    @classmethod
    def _safe_name(cls, value: str) -> str:
        # The name becomes a directory under the cache root
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        if value in (".", "..") or "/" in value or "\\" in value:
            raise ValueError(f"name {value!r} must be a single path component")
        if value == STATUS_FILE:
            raise ValueError(f"name {value!r} is reserved for the status file")
        return value

    @field_validator("source")
    @classmethod
    def _source_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("source must not be empty")
        return value


class RepoMappingFile(BaseModel):
    """The repos.yaml schema."""

    repos: List[RepoMapping] = Field(default_factory=list)

    def names(self) -> List[str]:
        return [r.name for r in self.repos]
