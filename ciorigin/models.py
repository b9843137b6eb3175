"""Immutable provenance records.

Example:
    >>> from ciorigin.models import BuildProvenance
    >>> BuildProvenance(provider=None, is_ci=False).is_ci
    False
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .normalize import repository_name


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    return value


class Identity(BaseModel):
    """Name, email and date of a commit author or committer."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Optional[str] = None
    email: Optional[str] = None
    date: Optional[str] = None

    @field_validator("name", "email", "date", mode="before")
    @classmethod
    def _strip_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @property
    def is_empty(self) -> bool:
        return self.name is None and self.email is None and self.date is None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"name": self.name, "email": self.email, "date": self.date}


class PipelineInfo(BaseModel):
    """CI pipeline identifiers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Optional[str] = None
    number: Optional[str] = None
    url: Optional[str] = None
    name: Optional[str] = None

    @field_validator("id", "number", "url", "name", mode="before")
    @classmethod
    def _strip_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"id": self.id, "number": self.number, "url": self.url, "name": self.name}


class JobInfo(BaseModel):
    """CI job identifiers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Optional[str] = None
    url: Optional[str] = None
    stage: Optional[str] = None

    @field_validator("name", "url", "stage", mode="before")
    @classmethod
    def _strip_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"name": self.name, "url": self.url, "stage": self.stage}


class Diagnostic(BaseModel):
    """Advisory message produced while resolving provenance."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


class RepositoryInfo(BaseModel):
    """Metadata read directly from an on-disk repository."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    commit: Optional[str] = None
    branch: Optional[str] = None
    repository_url: Optional[str] = None
    author: Identity = Field(default_factory=Identity)
    committer: Identity = Field(default_factory=Identity)
    commit_message: Optional[str] = None
    workspace_path: Optional[str] = None

    @field_validator(
        "commit", "branch", "repository_url", "commit_message", "workspace_path", mode="before"
    )
    @classmethod
    def _strip_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)


class BuildProvenance(BaseModel):
    """Resolved origin of a build or test run.

    Parameters:
        provider: CI provider name, or None outside CI.
        is_ci: True when a CI provider signature was detected.
        repository: Repository URL with credentials removed.
        commit: Head commit id.
        branch: Normalized branch name; never set together with ``tag``.
        tag: Normalized tag name.
        pipeline: Pipeline id/number/url/name.
        job: Job name/url/stage.
        workspace_path: Checkout directory.
        author: Commit author identity.
        committer: Commit committer identity.
        commit_message: Full commit message.
        extra_env_vars: Provider variables preserved verbatim.
        diagnostics: Advisory messages produced during resolution.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    provider: Optional[str] = None
    is_ci: bool = False
    repository: Optional[str] = None
    commit: Optional[str] = None
    branch: Optional[str] = None
    tag: Optional[str] = None
    pipeline: PipelineInfo = Field(default_factory=PipelineInfo)
    job: JobInfo = Field(default_factory=JobInfo)
    workspace_path: Optional[str] = None
    author: Identity = Field(default_factory=Identity)
    committer: Identity = Field(default_factory=Identity)
    commit_message: Optional[str] = None
    extra_env_vars: Tuple[Tuple[str, str], ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()

    @field_validator(
        "provider",
        "repository",
        "commit",
        "branch",
        "tag",
        "workspace_path",
        "commit_message",
        mode="before",
    )
    @classmethod
    def _strip_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("extra_env_vars", mode="before")
    @classmethod
    def _freeze_env_vars(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return tuple(sorted((str(k), str(v)) for k, v in value.items()))
        return value

    @property
    def env_vars(self) -> Dict[str, str]:
        return dict(self.extra_env_vars)

    @property
    def repository_name(self) -> Optional[str]:
        return repository_name(self.repository)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "is_ci": self.is_ci,
            "repository": self.repository,
            "commit": self.commit,
            "branch": self.branch,
            "tag": self.tag,
            "pipeline": self.pipeline.to_dict(),
            "job": self.job.to_dict(),
            "workspace_path": self.workspace_path,
            "author": self.author.to_dict(),
            "committer": self.committer.to_dict(),
            "commit_message": self.commit_message,
            "extra_env_vars": self.env_vars,
            "diagnostics": [item.to_dict() for item in self.diagnostics],
        }
