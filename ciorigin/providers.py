"""CI provider detection and per-provider field extraction.

Providers are kept in an explicit, ordered tuple. Signature variables are not
mutually exclusive across CI systems (GitLab and Xcode Cloud both export
``CI_*`` names, Jenkins and TeamCity both export ``BUILD_URL``), so the first
matching profile wins.

Example:
    >>> from ciorigin.environment import EnvironmentSnapshot
    >>> detection = detect(EnvironmentSnapshot({"CIRCLECI": "true", "CIRCLE_SHA1": "abc"}))
    >>> detection.provider, detection.fields.commit
    ('circleci', 'abc')
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple

from .environment import EnvironmentSnapshot
from .normalize import normalize_ref, parse_job_name

_BRACES_RE = re.compile(r"[{}]")
_AUTHOR_SPLIT_RE = re.compile(r"[<>]")


@dataclass(frozen=True)
class ProviderFields:
    """Raw canonical fields extracted from one provider's variables."""

    repository: Optional[str] = None
    commit: Optional[str] = None
    branch: Optional[str] = None
    tag: Optional[str] = None
    workspace: Optional[str] = None
    pipeline_id: Optional[str] = None
    pipeline_number: Optional[str] = None
    pipeline_url: Optional[str] = None
    pipeline_name: Optional[str] = None
    job_name: Optional[str] = None
    job_url: Optional[str] = None
    stage: Optional[str] = None
    commit_message: Optional[str] = None
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_date: Optional[str] = None
    committer_name: Optional[str] = None
    committer_email: Optional[str] = None
    committer_date: Optional[str] = None
    extra_env_vars: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if item.name == "extra_env_vars":
                value = dict(value)
            payload[item.name] = value
        return payload


FIELD_NAMES = tuple(item.name for item in fields(ProviderFields) if item.name != "extra_env_vars")

Derivation = Callable[[EnvironmentSnapshot, Dict[str, Optional[str]]], Dict[str, Optional[str]]]


@dataclass(frozen=True)
class ProviderProfile:
    """Detection signature and extraction rules for one CI system.

    Parameters:
        name: Provider name reported in provenance.
        signature: Variables whose non-blank presence identifies the provider.
        chains: Canonical field -> candidate variable names, first non-blank wins.
        extra_env_vars: Variables preserved verbatim as auxiliary metadata.
        derive: Optional hook computing templated values from the chained ones.
    """

    name: str
    signature: Tuple[str, ...]
    chains: Mapping[str, Tuple[str, ...]]
    extra_env_vars: Tuple[str, ...] = ()
    derive: Optional[Derivation] = None

    def matches(self, env: EnvironmentSnapshot) -> bool:
        return any(env.has(name) for name in self.signature)

    def extract(self, env: EnvironmentSnapshot) -> ProviderFields:
        values: Dict[str, Optional[str]] = {name: None for name in FIELD_NAMES}
        for field_name, candidates in self.chains.items():
            values[field_name] = env.first(*candidates)
        if self.derive is not None:
            values.update(self.derive(env, dict(values)))
        # A tag build reports the tag through the branch variables as well.
        if values["tag"] is not None:
            values["branch"] = None
        extras = {name: env.get(name) for name in self.extra_env_vars if env.has(name)}
        return ProviderFields(**values, extra_env_vars=MappingProxyType(extras))


@dataclass(frozen=True)
class Detection:
    """Outcome of provider detection."""

    profile: Optional[ProviderProfile]
    fields: ProviderFields

    @property
    def is_ci(self) -> bool:
        return self.profile is not None

    @property
    def provider(self) -> Optional[str]:
        return self.profile.name if self.profile is not None else None


def _chains(**chains: Tuple[str, ...] | str) -> Mapping[str, Tuple[str, ...]]:
    resolved = {}
    for field_name, candidates in chains.items():
        if field_name not in FIELD_NAMES:
            raise ValueError(f"Unknown provider field '{field_name}'.")
        resolved[field_name] = (candidates,) if isinstance(candidates, str) else tuple(candidates)
    return MappingProxyType(resolved)


def _derive_travis(env: EnvironmentSnapshot, values: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    slug = env.first("TRAVIS_PULL_REQUEST_SLUG", "TRAVIS_REPO_SLUG")
    return {
        "repository": f"https://github.com/{slug}.git" if slug else None,
        "pipeline_name": slug,
    }


def _derive_circleci(env: EnvironmentSnapshot, values: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    workflow_id = values["pipeline_id"]
    if workflow_id is None:
        return {}
    return {"pipeline_url": f"https://app.circleci.com/pipelines/workflows/{workflow_id}"}


def _derive_jenkins(env: EnvironmentSnapshot, values: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    job = parse_job_name(env.get("JOB_NAME"), normalize_ref(values["branch"]))
    return {"pipeline_name": job.name if job is not None else None}


def _derive_gitlab(env: EnvironmentSnapshot, values: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    derived: Dict[str, Optional[str]] = {}
    if values["pipeline_url"] is not None:
        derived["pipeline_url"] = values["pipeline_url"].replace("/-/", "/")
    author = env.get("CI_COMMIT_AUTHOR")
    if author is not None:
        parts = _AUTHOR_SPLIT_RE.split(author)
        if len(parts) >= 2:
            derived["author_name"] = parts[0].strip() or None
            derived["author_email"] = parts[1].strip() or None
    return derived


def _derive_appveyor(env: EnvironmentSnapshot, values: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    repo_name = env.get("APPVEYOR_REPO_NAME")
    derived: Dict[str, Optional[str]] = {}
    if repo_name is not None:
        derived["repository"] = f"https://github.com/{repo_name}.git"
        build_url = f"https://ci.appveyor.com/project/{repo_name}/builds/{values['pipeline_id'] or ''}"
        derived["pipeline_url"] = build_url
        derived["job_url"] = build_url

    subject = env.get("APPVEYOR_REPO_COMMIT_MESSAGE")
    extended = env.get("APPVEYOR_REPO_COMMIT_MESSAGE_EXTENDED")
    if subject is not None and extended is not None:
        derived["commit_message"] = f"{subject}\n{extended}"
    else:
        derived["commit_message"] = subject or extended
    return derived


def _derive_azure(env: EnvironmentSnapshot, values: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    server_uri = env.get("SYSTEM_TEAMFOUNDATIONSERVERURI")
    project_id = env.get("SYSTEM_TEAMPROJECTID")
    build_id = values["pipeline_id"]
    if server_uri is None or project_id is None or build_id is None:
        return {}
    pipeline_url = f"{server_uri}{project_id}/_build/results?buildId={build_id}"
    job_id = env.get("SYSTEM_JOBID", "")
    task_id = env.get("SYSTEM_TASKINSTANCEID", "")
    return {
        "pipeline_url": pipeline_url,
        "job_url": f"{pipeline_url}&view=logs&j={job_id}&t={task_id}",
    }


def _derive_bitbucket(env: EnvironmentSnapshot, values: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    derived: Dict[str, Optional[str]] = {}
    if values["pipeline_id"] is not None:
        derived["pipeline_id"] = _BRACES_RE.sub("", values["pipeline_id"]) or None
    full_name = values["pipeline_name"]
    number = values["pipeline_number"]
    if full_name is not None and number is not None:
        url = f"https://bitbucket.org/{full_name}/addon/pipelines/home#!/results/{number}"
        derived["pipeline_url"] = url
        derived["job_url"] = url
    return derived


def _derive_github(env: EnvironmentSnapshot, values: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    server = env.get("GITHUB_SERVER_URL", "https://github.com")
    repository = env.get("GITHUB_REPOSITORY")
    if repository is None:
        return {}
    derived: Dict[str, Optional[str]] = {"repository": f"{server}/{repository}.git"}
    run_id = values["pipeline_id"]
    if run_id is not None:
        attempt = env.get("GITHUB_RUN_ATTEMPT")
        suffix = f"/attempts/{attempt}" if attempt is not None else ""
        derived["pipeline_url"] = f"{server}/{repository}/actions/runs/{run_id}{suffix}"
    if values["commit"] is not None:
        derived["job_url"] = f"{server}/{repository}/commit/{values['commit']}/checks"
    return derived


def _derive_buildkite(env: EnvironmentSnapshot, values: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    build_url = values["pipeline_url"]
    job_id = env.get("BUILDKITE_JOB_ID")
    if build_url is None or job_id is None:
        return {}
    return {"job_url": f"{build_url}#{job_id}"}


def _derive_bitrise(env: EnvironmentSnapshot, values: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    if values["commit_message"] is not None:
        return {}
    subject = env.get("GIT_CLONE_COMMIT_MESSAGE_SUBJECT")
    body = env.get("GIT_CLONE_COMMIT_MESSAGE_BODY")
    message = (f"{subject}:\n" if subject is not None else "") + (body or "")
    return {"commit_message": message or None}


TRAVIS = ProviderProfile(
    name="travisci",
    signature=("TRAVIS",),
    chains=_chains(
        commit="TRAVIS_COMMIT",
        workspace="TRAVIS_BUILD_DIR",
        pipeline_id="TRAVIS_BUILD_ID",
        pipeline_number="TRAVIS_BUILD_NUMBER",
        pipeline_url="TRAVIS_BUILD_WEB_URL",
        job_url="TRAVIS_JOB_WEB_URL",
        tag="TRAVIS_TAG",
        branch=("TRAVIS_PULL_REQUEST_BRANCH", "TRAVIS_BRANCH"),
        commit_message="TRAVIS_COMMIT_MESSAGE",
    ),
    derive=_derive_travis,
)

CIRCLECI = ProviderProfile(
    name="circleci",
    signature=("CIRCLECI",),
    chains=_chains(
        repository="CIRCLE_REPOSITORY_URL",
        commit="CIRCLE_SHA1",
        workspace="CIRCLE_WORKING_DIRECTORY",
        pipeline_id="CIRCLE_WORKFLOW_ID",
        pipeline_name="CIRCLE_PROJECT_REPONAME",
        job_url="CIRCLE_BUILD_URL",
        job_name="CIRCLE_JOB",
        tag="CIRCLE_TAG",
        branch="CIRCLE_BRANCH",
    ),
    extra_env_vars=("CIRCLE_WORKFLOW_ID", "CIRCLE_BUILD_NUM"),
    derive=_derive_circleci,
)

JENKINS = ProviderProfile(
    name="jenkins",
    signature=("JENKINS_URL",),
    chains=_chains(
        repository=("GIT_URL", "GIT_URL_1"),
        commit="GIT_COMMIT",
        workspace="WORKSPACE",
        pipeline_id="BUILD_TAG",
        pipeline_number="BUILD_NUMBER",
        pipeline_url="BUILD_URL",
        branch="GIT_BRANCH",
    ),
    extra_env_vars=("DD_CUSTOM_TRACE_ID",),
    derive=_derive_jenkins,
)

GITLAB = ProviderProfile(
    name="gitlab",
    signature=("GITLAB_CI",),
    chains=_chains(
        repository="CI_REPOSITORY_URL",
        commit="CI_COMMIT_SHA",
        workspace="CI_PROJECT_DIR",
        pipeline_id="CI_PIPELINE_ID",
        pipeline_number="CI_PIPELINE_IID",
        pipeline_url="CI_PIPELINE_URL",
        pipeline_name="CI_PROJECT_PATH",
        job_url="CI_JOB_URL",
        job_name="CI_JOB_NAME",
        stage="CI_JOB_STAGE",
        branch=("CI_COMMIT_REF_NAME", "CI_COMMIT_BRANCH"),
        tag="CI_COMMIT_TAG",
        commit_message="CI_COMMIT_MESSAGE",
        author_date="CI_COMMIT_TIMESTAMP",
    ),
    extra_env_vars=("CI_PIPELINE_ID", "CI_JOB_ID", "CI_PROJECT_URL"),
    derive=_derive_gitlab,
)

APPVEYOR = ProviderProfile(
    name="appveyor",
    signature=("APPVEYOR",),
    chains=_chains(
        commit="APPVEYOR_REPO_COMMIT",
        workspace="APPVEYOR_BUILD_FOLDER",
        pipeline_id="APPVEYOR_BUILD_ID",
        pipeline_number="APPVEYOR_BUILD_NUMBER",
        pipeline_name="APPVEYOR_REPO_NAME",
        branch=("APPVEYOR_PULL_REQUEST_HEAD_REPO_BRANCH", "APPVEYOR_REPO_BRANCH"),
        tag="APPVEYOR_REPO_TAG_NAME",
        author_name="APPVEYOR_REPO_COMMIT_AUTHOR",
        author_email="APPVEYOR_REPO_COMMIT_AUTHOR_EMAIL",
    ),
    derive=_derive_appveyor,
)

AZURE_PIPELINES = ProviderProfile(
    name="azurepipelines",
    signature=("TF_BUILD",),
    chains=_chains(
        repository=("SYSTEM_PULLREQUEST_SOURCEREPOSITORYURI", "BUILD_REPOSITORY_URI"),
        commit=("SYSTEM_PULLREQUEST_SOURCECOMMITID", "BUILD_SOURCEVERSION"),
        workspace="BUILD_SOURCESDIRECTORY",
        pipeline_id="BUILD_BUILDID",
        pipeline_number="BUILD_BUILDID",
        pipeline_name="BUILD_DEFINITIONNAME",
        job_name="SYSTEM_JOBDISPLAYNAME",
        stage="SYSTEM_STAGEDISPLAYNAME",
        branch=("SYSTEM_PULLREQUEST_SOURCEBRANCH", "BUILD_SOURCEBRANCH"),
        commit_message="BUILD_SOURCEVERSIONMESSAGE",
        author_name="BUILD_REQUESTEDFORID",
        author_email="BUILD_REQUESTEDFOREMAIL",
    ),
    extra_env_vars=("SYSTEM_TEAMPROJECTID", "BUILD_BUILDID", "SYSTEM_JOBID"),
    derive=_derive_azure,
)

BITBUCKET = ProviderProfile(
    name="bitbucket",
    signature=("BITBUCKET_BUILD_NUMBER",),
    chains=_chains(
        repository=("BITBUCKET_GIT_SSH_ORIGIN", "BITBUCKET_GIT_HTTP_ORIGIN"),
        commit="BITBUCKET_COMMIT",
        workspace="BITBUCKET_CLONE_DIR",
        pipeline_id="BITBUCKET_PIPELINE_UUID",
        pipeline_number="BITBUCKET_BUILD_NUMBER",
        pipeline_name="BITBUCKET_REPO_FULL_NAME",
        branch="BITBUCKET_BRANCH",
        tag="BITBUCKET_TAG",
    ),
    derive=_derive_bitbucket,
)

GITHUB = ProviderProfile(
    name="github",
    signature=("GITHUB_WORKSPACE",),
    chains=_chains(
        commit="GITHUB_SHA",
        workspace="GITHUB_WORKSPACE",
        pipeline_id="GITHUB_RUN_ID",
        pipeline_number="GITHUB_RUN_NUMBER",
        pipeline_name="GITHUB_WORKFLOW",
        job_name="GITHUB_JOB",
        branch=("GITHUB_HEAD_REF", "GITHUB_REF"),
    ),
    extra_env_vars=("GITHUB_REPOSITORY", "GITHUB_SERVER_URL", "GITHUB_RUN_ID", "GITHUB_RUN_ATTEMPT"),
    derive=_derive_github,
)

BUILDKITE = ProviderProfile(
    name="buildkite",
    signature=("BUILDKITE",),
    chains=_chains(
        repository="BUILDKITE_REPO",
        commit="BUILDKITE_COMMIT",
        workspace="BUILDKITE_BUILD_CHECKOUT_PATH",
        pipeline_id="BUILDKITE_BUILD_ID",
        pipeline_number="BUILDKITE_BUILD_NUMBER",
        pipeline_url="BUILDKITE_BUILD_URL",
        pipeline_name="BUILDKITE_PIPELINE_SLUG",
        branch="BUILDKITE_BRANCH",
        tag="BUILDKITE_TAG",
        commit_message="BUILDKITE_MESSAGE",
        author_name="BUILDKITE_BUILD_AUTHOR",
        author_email="BUILDKITE_BUILD_AUTHOR_EMAIL",
    ),
    extra_env_vars=("BUILDKITE_BUILD_ID", "BUILDKITE_JOB_ID"),
    derive=_derive_buildkite,
)

BITRISE = ProviderProfile(
    name="bitrise",
    signature=("BITRISE_BUILD_NUMBER",),
    chains=_chains(
        repository="GIT_REPOSITORY_URL",
        commit=("BITRISE_GIT_COMMIT", "GIT_CLONE_COMMIT_HASH"),
        workspace="BITRISE_SOURCE_DIR",
        pipeline_id="BITRISE_BUILD_SLUG",
        pipeline_number="BITRISE_BUILD_NUMBER",
        pipeline_url="BITRISE_BUILD_URL",
        pipeline_name=("BITRISE_TRIGGERED_WORKFLOW_ID", "BITRISE_APP_TITLE"),
        branch="BITRISE_GIT_BRANCH",
        tag="BITRISE_GIT_TAG",
        commit_message="BITRISE_GIT_MESSAGE",
        author_name="GIT_CLONE_COMMIT_AUTHOR_NAME",
        author_email="GIT_CLONE_COMMIT_AUTHOR_EMAIL",
        committer_name="GIT_CLONE_COMMIT_COMMITER_NAME",
        committer_email="GIT_CLONE_COMMIT_COMMITER_EMAIL",
    ),
    derive=_derive_bitrise,
)

XCODE_CLOUD = ProviderProfile(
    name="Xcode Cloud",
    signature=("CI_WORKSPACE",),
    chains=_chains(
        commit="CI_COMMIT",
        workspace="CI_WORKSPACE",
        pipeline_id="CI_BUILD_ID",
        pipeline_number="CI_BUILD_NUMBER",
        pipeline_name="CI_WORKFLOW",
        tag="CI_TAG",
        branch=("CI_BRANCH", "CI_GIT_REF"),
    ),
)

TEAMCITY = ProviderProfile(
    name="teamcity",
    signature=("TEAMCITY_VERSION",),
    chains=_chains(
        job_url="BUILD_URL",
        job_name="TEAMCITY_BUILDCONF_NAME",
    ),
)

PROVIDERS: Tuple[ProviderProfile, ...] = (
    TRAVIS,
    CIRCLECI,
    JENKINS,
    GITLAB,
    APPVEYOR,
    AZURE_PIPELINES,
    BITBUCKET,
    GITHUB,
    BUILDKITE,
    BITRISE,
    XCODE_CLOUD,
    TEAMCITY,
)


def provider_names() -> Tuple[str, ...]:
    return tuple(profile.name for profile in PROVIDERS)


def profile_for(name: str) -> ProviderProfile:
    for profile in PROVIDERS:
        if profile.name == name:
            return profile
    raise KeyError(f"Unknown CI provider '{name}'.")


def detect(
    env: EnvironmentSnapshot,
    *,
    providers: Tuple[ProviderProfile, ...] = PROVIDERS,
) -> Detection:
    """Select the first provider whose signature is present and extract its fields."""
    for profile in providers:
        if profile.matches(env):
            return Detection(profile=profile, fields=profile.extract(env))
    return Detection(profile=None, fields=ProviderFields())
