"""Flatten provenance into telemetry tags.

Repository tags live under ``git.*`` and are emitted unless
``DD_DISABLE_GIT_INFORMATION`` is set; CI tags live under ``ci.*`` and are
only emitted inside CI. Absent values are never emitted.

Example:
    >>> from ciorigin.models import BuildProvenance
    >>> provenance_tags(BuildProvenance(commit="a" * 40))["git.commit.sha"] == "a" * 40
    True
"""

from __future__ import annotations

import json
from typing import Dict, Optional, Protocol

from .environment import EnvironmentSnapshot
from .models import BuildProvenance
from .settings import Settings

GIT_REPOSITORY_URL = "git.repository_url"
GIT_COMMIT_SHA = "git.commit.sha"
GIT_BRANCH = "git.branch"
GIT_TAG = "git.tag"
GIT_COMMIT_MESSAGE = "git.commit.message"
GIT_COMMIT_AUTHOR_NAME = "git.commit.author.name"
GIT_COMMIT_AUTHOR_EMAIL = "git.commit.author.email"
GIT_COMMIT_AUTHOR_DATE = "git.commit.author.date"
GIT_COMMIT_COMMITTER_NAME = "git.commit.committer.name"
GIT_COMMIT_COMMITTER_EMAIL = "git.commit.committer.email"
GIT_COMMIT_COMMITTER_DATE = "git.commit.committer.date"

CI_PROVIDER_NAME = "ci.provider.name"
CI_PIPELINE_ID = "ci.pipeline.id"
CI_PIPELINE_NUMBER = "ci.pipeline.number"
CI_PIPELINE_URL = "ci.pipeline.url"
CI_PIPELINE_NAME = "ci.pipeline.name"
CI_STAGE_NAME = "ci.stage.name"
CI_JOB_NAME = "ci.job.name"
CI_JOB_URL = "ci.job.url"
CI_ENV_VARS = "_dd.ci.env_vars"
CI_WORKSPACE_PATH = "ci.workspace_path"

ENV = "env"
SERVICE = "service"


class TagSink(Protocol):
    """Anything that accepts ``(key, value)`` string pairs, such as a span."""

    def set_tag(self, key: str, value: str) -> None:
        ...


def git_tags(provenance: BuildProvenance) -> Dict[str, str]:
    candidates = {
        GIT_REPOSITORY_URL: provenance.repository,
        GIT_COMMIT_SHA: provenance.commit,
        GIT_BRANCH: provenance.branch,
        GIT_TAG: provenance.tag,
        GIT_COMMIT_MESSAGE: provenance.commit_message,
        GIT_COMMIT_AUTHOR_NAME: provenance.author.name,
        GIT_COMMIT_AUTHOR_EMAIL: provenance.author.email,
        GIT_COMMIT_AUTHOR_DATE: provenance.author.date,
        GIT_COMMIT_COMMITTER_NAME: provenance.committer.name,
        GIT_COMMIT_COMMITTER_EMAIL: provenance.committer.email,
        GIT_COMMIT_COMMITTER_DATE: provenance.committer.date,
    }
    return {key: value for key, value in candidates.items() if value is not None}


def ci_tags(provenance: BuildProvenance) -> Dict[str, str]:
    if not provenance.is_ci:
        return {}
    candidates: Dict[str, Optional[str]] = {
        CI_PROVIDER_NAME: provenance.provider,
        CI_PIPELINE_ID: provenance.pipeline.id,
        CI_PIPELINE_NUMBER: provenance.pipeline.number,
        CI_PIPELINE_URL: provenance.pipeline.url,
        CI_PIPELINE_NAME: provenance.pipeline.name,
        CI_STAGE_NAME: provenance.job.stage,
        CI_JOB_NAME: provenance.job.name,
        CI_JOB_URL: provenance.job.url,
        CI_ENV_VARS: json.dumps(provenance.env_vars, sort_keys=True, separators=(",", ":")),
    }
    return {key: value for key, value in candidates.items() if value is not None}


def provenance_tags(
    provenance: BuildProvenance,
    settings: Optional[Settings] = None,
    env: Optional[EnvironmentSnapshot] = None,
) -> Dict[str, str]:
    """Return every tag for ``provenance``.

    User ``DD_TAGS`` come first so resolved provenance wins on key collisions.
    ``env`` and ``service`` are always derived from settings and provenance.
    """
    settings = settings or Settings()
    env = env if env is not None else EnvironmentSnapshot()
    tags: Dict[str, str] = dict(settings.expanded_tags(env))
    tags[ENV] = settings.env_name(provenance.is_ci)
    service = settings.service_name(provenance.repository_name)
    if service is not None:
        tags[SERVICE] = service
    if provenance.workspace_path is not None:
        tags[CI_WORKSPACE_PATH] = provenance.workspace_path
    if not settings.disable_git_information:
        tags.update(git_tags(provenance))
    tags.update(ci_tags(provenance))
    return tags


def apply_tags(sink: TagSink, tags: Dict[str, str]) -> int:
    """Push ``tags`` into ``sink`` in key order; returns how many were set."""
    for key in sorted(tags):
        sink.set_tag(key, tags[key])
    return len(tags)
