"""Combine provider fields, repository data and user overrides into one record.

Precedence per field is: non-blank override variable, then provider value,
then repository value. Repository values are only used when the repository's
HEAD matches the reported commit: the override commit, else the provider
commit, else none at all.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .environment import EnvironmentSnapshot
from .models import BuildProvenance, Diagnostic, Identity, JobInfo, PipelineInfo, RepositoryInfo
from .normalize import is_hex, is_valid_commit_sha, looks_like_url, normalize_ref, strip_credentials
from .providers import Detection
from .settings import DD_DISABLE_GIT_INFORMATION, SRCROOT

logger = logging.getLogger(__name__)

DD_GIT_REPOSITORY_URL = "DD_GIT_REPOSITORY_URL"
DD_GIT_COMMIT_SHA = "DD_GIT_COMMIT_SHA"
DD_GIT_BRANCH = "DD_GIT_BRANCH"
DD_GIT_TAG = "DD_GIT_TAG"
DD_GIT_COMMIT_MESSAGE = "DD_GIT_COMMIT_MESSAGE"
DD_GIT_COMMIT_AUTHOR_NAME = "DD_GIT_COMMIT_AUTHOR_NAME"
DD_GIT_COMMIT_AUTHOR_EMAIL = "DD_GIT_COMMIT_AUTHOR_EMAIL"
DD_GIT_COMMIT_AUTHOR_DATE = "DD_GIT_COMMIT_AUTHOR_DATE"
DD_GIT_COMMIT_COMMITTER_NAME = "DD_GIT_COMMIT_COMMITTER_NAME"
DD_GIT_COMMIT_COMMITTER_EMAIL = "DD_GIT_COMMIT_COMMITTER_EMAIL"
DD_GIT_COMMIT_COMMITTER_DATE = "DD_GIT_COMMIT_COMMITTER_DATE"

OVERRIDE_VARIABLES = (
    DD_GIT_REPOSITORY_URL,
    DD_GIT_COMMIT_SHA,
    DD_GIT_BRANCH,
    DD_GIT_TAG,
    DD_GIT_COMMIT_MESSAGE,
    DD_GIT_COMMIT_AUTHOR_NAME,
    DD_GIT_COMMIT_AUTHOR_EMAIL,
    DD_GIT_COMMIT_AUTHOR_DATE,
    DD_GIT_COMMIT_COMMITTER_NAME,
    DD_GIT_COMMIT_COMMITTER_EMAIL,
    DD_GIT_COMMIT_COMMITTER_DATE,
)

TROUBLESHOOTING_URL = "https://docs.datadoghq.com/continuous_integration/troubleshooting"

MISSING_COMMIT = "missing-commit"
MISSING_REPOSITORY = "missing-repository"
MISSING_BRANCH_OR_TAG = "missing-branch-or-tag"
SUSPECT_COMMIT = "suspect-commit"
TROUBLESHOOTING = "troubleshooting"
OVERRIDE_EMPTY = "override-empty"
OVERRIDE_INVALID_URL = "override-invalid-url"
OVERRIDE_NON_HEX = "override-non-hex"
OVERRIDE_WRONG_LENGTH = "override-wrong-length"


def _first(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value is not None:
            return value
    return None


def repository_is_trusted(resolved_commit: Optional[str], repository: Optional[RepositoryInfo]) -> bool:
    """True when repository data describes the commit being reported.

    ``resolved_commit`` is the override or provider commit; when neither is set
    the repository HEAD itself is reported and is trusted.
    """
    if repository is None:
        return False
    if resolved_commit is None:
        return True
    return repository.commit is not None and resolved_commit.lower() == repository.commit.lower()


def validate_overrides(env: EnvironmentSnapshot) -> List[Diagnostic]:
    """Report malformed repository/commit override values; they are still applied."""
    diagnostics: List[Diagnostic] = []
    if env.flag(DD_DISABLE_GIT_INFORMATION):
        return diagnostics

    repository = env.raw(DD_GIT_REPOSITORY_URL)
    if repository is not None:
        if not repository.strip():
            diagnostics.append(
                Diagnostic(
                    code=OVERRIDE_EMPTY,
                    message=f"{DD_GIT_REPOSITORY_URL} environment variable was configured with an empty value",
                )
            )
        elif not looks_like_url(repository.strip()):
            diagnostics.append(
                Diagnostic(
                    code=OVERRIDE_INVALID_URL,
                    message=f"{DD_GIT_REPOSITORY_URL} environment variable was configured with non valid URL",
                )
            )

    commit = env.raw(DD_GIT_COMMIT_SHA)
    if commit is not None:
        commit = commit.strip()
        if not commit:
            diagnostics.append(
                Diagnostic(
                    code=OVERRIDE_EMPTY,
                    message=f"{DD_GIT_COMMIT_SHA} environment variable was configured with an empty value",
                )
            )
        elif not is_hex(commit):
            diagnostics.append(
                Diagnostic(
                    code=OVERRIDE_NON_HEX,
                    message=f"{DD_GIT_COMMIT_SHA} environment variable was configured with a non-hexadecimal string",
                )
            )
        elif len(commit) != 40:
            diagnostics.append(
                Diagnostic(
                    code=OVERRIDE_WRONG_LENGTH,
                    message=f"{DD_GIT_COMMIT_SHA} environment variable was configured with a value that is not 40 characters long",
                )
            )
    return diagnostics


def merge(
    detection: Detection,
    repository: Optional[RepositoryInfo],
    env: EnvironmentSnapshot,
) -> BuildProvenance:
    """Resolve the final provenance record. Never raises for missing data."""
    fields = detection.fields
    resolved_commit = _first(env.get(DD_GIT_COMMIT_SHA), fields.commit)
    trusted = repository if repository_is_trusted(resolved_commit, repository) else None
    if repository is not None and trusted is None:
        logger.debug(
            "Ignoring repository data: HEAD %s does not match resolved commit %s",
            repository.commit,
            resolved_commit,
        )
    repo = trusted or RepositoryInfo()

    commit = _first(fields.commit, repo.commit)
    repository_url = _first(fields.repository, repo.repository_url)
    raw_branch = fields.branch
    if raw_branch is None and fields.tag is None:
        raw_branch = repo.branch
    raw_tag = fields.tag
    message = _first(fields.commit_message, repo.commit_message)
    author = Identity(
        name=_first(fields.author_name, repo.author.name),
        email=_first(fields.author_email, repo.author.email),
        date=_first(fields.author_date, repo.author.date),
    )
    committer = Identity(
        name=_first(fields.committer_name, repo.committer.name),
        email=_first(fields.committer_email, repo.committer.email),
        date=_first(fields.committer_date, repo.committer.date),
    )

    raw_branch = _first(env.get(DD_GIT_BRANCH), raw_branch)
    raw_tag = _first(env.get(DD_GIT_TAG), raw_tag)
    if raw_branch is not None and "tags" in raw_branch:
        raw_tag = raw_branch
        raw_branch = None
    branch = normalize_ref(raw_branch)
    tag = normalize_ref(raw_tag)

    repository_url = strip_credentials(_first(env.get(DD_GIT_REPOSITORY_URL), repository_url))
    commit = _first(env.get(DD_GIT_COMMIT_SHA), commit)
    message = _first(env.get(DD_GIT_COMMIT_MESSAGE), message)
    author = Identity(
        name=_first(env.get(DD_GIT_COMMIT_AUTHOR_NAME), author.name),
        email=_first(env.get(DD_GIT_COMMIT_AUTHOR_EMAIL), author.email),
        date=_first(env.get(DD_GIT_COMMIT_AUTHOR_DATE), author.date),
    )
    committer = Identity(
        name=_first(env.get(DD_GIT_COMMIT_COMMITTER_NAME), committer.name),
        email=_first(env.get(DD_GIT_COMMIT_COMMITTER_EMAIL), committer.email),
        date=_first(env.get(DD_GIT_COMMIT_COMMITTER_DATE), committer.date),
    )

    workspace = _first(env.expand_tilde(fields.workspace), repo.workspace_path, env.get(SRCROOT))

    diagnostics = _completeness_diagnostics(commit, repository_url, branch, tag)
    diagnostics.extend(validate_overrides(env))
    for diagnostic in diagnostics:
        logger.warning("%s", diagnostic.message)

    return BuildProvenance(
        provider=detection.provider,
        is_ci=detection.is_ci,
        repository=repository_url,
        commit=commit,
        branch=branch,
        tag=tag,
        pipeline=PipelineInfo(
            id=fields.pipeline_id,
            number=fields.pipeline_number,
            url=fields.pipeline_url,
            name=fields.pipeline_name,
        ),
        job=JobInfo(name=fields.job_name, url=fields.job_url, stage=fields.stage),
        workspace_path=workspace,
        author=author,
        committer=committer,
        commit_message=message,
        extra_env_vars=dict(fields.extra_env_vars),
        diagnostics=tuple(diagnostics),
    )


def _completeness_diagnostics(
    commit: Optional[str],
    repository_url: Optional[str],
    branch: Optional[str],
    tag: Optional[str],
) -> List[Diagnostic]:
    diagnostics: List[Diagnostic] = []
    if commit is None:
        diagnostics.append(Diagnostic(code=MISSING_COMMIT, message="could not find git commit information"))
    elif not is_valid_commit_sha(commit):
        diagnostics.append(
            Diagnostic(
                code=SUSPECT_COMMIT,
                message=f"git commit '{commit}' is not a 40 character hexadecimal id",
            )
        )
    if repository_url is None:
        diagnostics.append(
            Diagnostic(code=MISSING_REPOSITORY, message="could not find git repository information")
        )
    if branch is None and tag is None:
        diagnostics.append(
            Diagnostic(code=MISSING_BRANCH_OR_TAG, message="could not find git branch or tag information")
        )
    if commit is None or repository_url is None or (branch is None and tag is None):
        diagnostics.append(Diagnostic(code=TROUBLESHOOTING, message=f"Please check: {TROUBLESHOOTING_URL}"))
    return diagnostics
