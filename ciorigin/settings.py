"""General configuration read from an environment snapshot.

Example:
    >>> from ciorigin.environment import EnvironmentSnapshot
    >>> settings = Settings.from_env(EnvironmentSnapshot({"DD_TAGS": "team:infra test.configuration.os:linux"}))
    >>> settings.tags["team"], settings.custom_configurations["os"]
    ('infra', 'linux')
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .environment import EnvironmentSnapshot

DD_TEST_RUNNER = "DD_TEST_RUNNER"
DD_SERVICE = "DD_SERVICE"
DD_ENV = "DD_ENV"
DD_TAGS = "DD_TAGS"
SRCROOT = "SRCROOT"
DD_DISABLE_GIT_INFORMATION = "DD_DISABLE_GIT_INFORMATION"
DD_TRACE_DEBUG = "DD_TRACE_DEBUG"
DD_CIVISIBILITY_EXCLUDED_BRANCHES = "DD_CIVISIBILITY_EXCLUDED_BRANCHES"

CUSTOM_CONFIGURATION_PREFIX = "test.configuration."

_VARIABLE_NAME_RE = re.compile(r"[A-Za-z0-9_]*")
_LIST_SEPARATORS_RE = re.compile(r"[,; ]")


def parse_dd_tags(raw: Optional[str]) -> Dict[str, str]:
    """Parse space separated ``key:value`` pairs; entries without exactly one ``:`` are skipped.

    Example:
        >>> parse_dd_tags("a:1 broken b:2 c:d:e")
        {'a': '1', 'b': '2'}
    """
    tags: Dict[str, str] = {}
    if not raw:
        return tags
    for entry in raw.split(" "):
        parts = entry.split(":")
        if len(parts) != 2:
            continue
        tags[parts[0].strip()] = parts[1].strip()
    return tags


def expand_tag_value(value: str, env: EnvironmentSnapshot) -> str:
    """Expand a leading ``$NAME`` reference from the snapshot.

    Unknown or blank variables leave the value untouched.

    Example:
        >>> expand_tag_value("$HOME/cache", EnvironmentSnapshot({"HOME": "/home/ci"}))
        '/home/ci/cache'
    """
    if not value.startswith("$"):
        return value
    name = _VARIABLE_NAME_RE.match(value, 1).group(0)
    resolved = env.get(name) if name else None
    if resolved is None:
        return value
    return resolved + value[1 + len(name) :]


@dataclass(frozen=True)
class Settings:
    """General (non-provider) configuration values."""

    test_runner: bool = False
    service: Optional[str] = None
    environment_name: Optional[str] = None
    source_root: Optional[str] = None
    disable_git_information: bool = False
    debug: bool = False
    tags: Dict[str, str] = field(default_factory=dict)
    custom_configurations: Dict[str, str] = field(default_factory=dict)
    excluded_branches: Tuple[str, ...] = ()

    @classmethod
    def from_env(cls, env: EnvironmentSnapshot) -> "Settings":
        tags = parse_dd_tags(env.get(DD_TAGS))
        configurations = {
            key[len(CUSTOM_CONFIGURATION_PREFIX) :]: value
            for key, value in tags.items()
            if key.startswith(CUSTOM_CONFIGURATION_PREFIX)
        }
        excluded_raw = env.get(DD_CIVISIBILITY_EXCLUDED_BRANCHES)
        excluded = tuple(
            item.strip() for item in _LIST_SEPARATORS_RE.split(excluded_raw or "") if item.strip()
        )
        return cls(
            test_runner=env.flag(DD_TEST_RUNNER),
            service=env.get(DD_SERVICE),
            environment_name=env.get(DD_ENV),
            source_root=env.get(SRCROOT),
            disable_git_information=env.flag(DD_DISABLE_GIT_INFORMATION),
            debug=env.flag(DD_TRACE_DEBUG),
            tags=tags,
            custom_configurations=configurations,
            excluded_branches=excluded,
        )

    def expanded_tags(self, env: EnvironmentSnapshot) -> Dict[str, str]:
        return {key: expand_tag_value(value, env) for key, value in self.tags.items()}

    def env_name(self, is_ci: bool) -> str:
        """Deployment environment reported with telemetry: ``DD_ENV`` or ``ci``/``none``."""
        if self.environment_name is not None:
            return self.environment_name
        return "ci" if is_ci else "none"

    def service_name(self, repository_name: Optional[str]) -> Optional[str]:
        """Service reported with telemetry: ``DD_SERVICE``, else the repository name."""
        return self.service if self.service is not None else repository_name

    def is_branch_excluded(self, branch: Optional[str]) -> bool:
        return branch is not None and branch in self.excluded_branches


def is_test_run_active(env: EnvironmentSnapshot) -> bool:
    """Return True when the test runner integration was switched on."""
    return env.flag(DD_TEST_RUNNER)
