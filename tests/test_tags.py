from __future__ import annotations

import json

from ciorigin.environment import EnvironmentSnapshot
from ciorigin.models import BuildProvenance, Identity, JobInfo, PipelineInfo
from ciorigin.settings import Settings
from ciorigin.tags import (
    CI_ENV_VARS,
    CI_PROVIDER_NAME,
    CI_WORKSPACE_PATH,
    ENV,
    GIT_BRANCH,
    GIT_COMMIT_AUTHOR_NAME,
    GIT_COMMIT_SHA,
    GIT_TAG,
    SERVICE,
    apply_tags,
    ci_tags,
    git_tags,
    provenance_tags,
)

SHA = "0123456789abcdef0123456789abcdef01234567"


def _ci_provenance() -> BuildProvenance:
    return BuildProvenance(
        provider="gitlab",
        is_ci=True,
        repository="https://gitlab.example/org/repo.git",
        commit=SHA,
        branch="main",
        pipeline=PipelineInfo(id="1", number="2", url="https://gitlab.example/p/1", name="org/repo"),
        job=JobInfo(name="unit", url="https://gitlab.example/j/9", stage="test"),
        workspace_path="/builds/org/repo",
        author=Identity(name="Jane", email="jane@example.com"),
        extra_env_vars={"CI_PIPELINE_ID": "1", "CI_JOB_ID": "9"},
    )


class RecordingSink:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def set_tag(self, key: str, value: str) -> None:
        self.calls.append((key, value))


def test_git_tags_skip_absent_values() -> None:
    tags = git_tags(_ci_provenance())

    assert tags[GIT_COMMIT_SHA] == SHA
    assert tags[GIT_BRANCH] == "main"
    assert tags[GIT_COMMIT_AUTHOR_NAME] == "Jane"
    assert GIT_TAG not in tags
    assert all(value is not None for value in tags.values())


def test_ci_tags_only_inside_ci() -> None:
    outside = BuildProvenance(commit=SHA, branch="main", workspace_path="/work")
    assert ci_tags(outside) == {}

    tags = ci_tags(_ci_provenance())
    assert tags[CI_PROVIDER_NAME] == "gitlab"
    assert tags["ci.stage.name"] == "test"
    assert json.loads(tags[CI_ENV_VARS]) == {"CI_JOB_ID": "9", "CI_PIPELINE_ID": "1"}
    assert tags[CI_ENV_VARS] == '{"CI_JOB_ID":"9","CI_PIPELINE_ID":"1"}'


def test_provenance_tags_include_workspace_git_and_ci() -> None:
    tags = provenance_tags(_ci_provenance())

    assert tags[CI_WORKSPACE_PATH] == "/builds/org/repo"
    assert tags[GIT_COMMIT_SHA] == SHA
    assert tags[CI_PROVIDER_NAME] == "gitlab"


def test_disabling_git_information_drops_git_tags() -> None:
    settings = Settings(disable_git_information=True)
    tags = provenance_tags(_ci_provenance(), settings)

    assert not any(key.startswith("git.") for key in tags)
    assert tags[CI_PROVIDER_NAME] == "gitlab"


def test_user_tags_are_expanded_and_lose_collisions() -> None:
    env = EnvironmentSnapshot(
        {
            "DD_TAGS": "team:$TEAM_NAME git.branch:spoofed cache:$MISSING/x",
            "TEAM_NAME": "infra",
        }
    )
    tags = provenance_tags(_ci_provenance(), Settings.from_env(env), env)

    assert tags["team"] == "infra"
    assert tags["cache"] == "$MISSING/x"
    assert tags[GIT_BRANCH] == "main"


def test_apply_tags_pushes_sorted_pairs() -> None:
    sink = RecordingSink()
    count = apply_tags(sink, {"b": "2", "a": "1"})

    assert count == 2
    assert sink.calls == [("a", "1"), ("b", "2")]


def test_env_tag_follows_ci_state() -> None:
    assert provenance_tags(_ci_provenance())[ENV] == "ci"

    outside = BuildProvenance(commit=SHA, branch="main")
    assert provenance_tags(outside)[ENV] == "none"


def test_env_tag_prefers_dd_env_over_user_tags() -> None:
    env = EnvironmentSnapshot({"DD_ENV": "staging", "DD_TAGS": "env:spoofed"})
    tags = provenance_tags(_ci_provenance(), Settings.from_env(env), env)

    assert tags[ENV] == "staging"


def test_service_tag_defaults_to_repository_name() -> None:
    assert provenance_tags(_ci_provenance())[SERVICE] == "repo"

    env = EnvironmentSnapshot({"DD_SERVICE": "checkout"})
    assert provenance_tags(_ci_provenance(), Settings.from_env(env), env)[SERVICE] == "checkout"


def test_service_tag_is_absent_without_repository_or_dd_service() -> None:
    assert SERVICE not in provenance_tags(BuildProvenance(commit=SHA))
