from __future__ import annotations

import io
import logging

import pytest

from ciorigin.environment import EnvironmentSnapshot
from ciorigin.logging_setup import PACKAGE_LOGGER, configure_logging
from ciorigin.settings import Settings, expand_tag_value, is_test_run_active, parse_dd_tags


def test_defaults_from_empty_environment() -> None:
    settings = Settings.from_env(EnvironmentSnapshot({}))

    assert settings == Settings()
    assert settings.env_name(is_ci=True) == "ci"
    assert settings.env_name(is_ci=False) == "none"


def test_values_are_read_and_trimmed() -> None:
    env = EnvironmentSnapshot(
        {
            "DD_TEST_RUNNER": "1",
            "DD_SERVICE": "  checkout-service ",
            "DD_ENV": "staging",
            "SRCROOT": "/src",
            "DD_DISABLE_GIT_INFORMATION": "yes",
            "DD_TRACE_DEBUG": "false",
            "DD_CIVISIBILITY_EXCLUDED_BRANCHES": "main,release;hotfix  develop",
        }
    )
    settings = Settings.from_env(env)

    assert settings.test_runner
    assert settings.service == "checkout-service"
    assert settings.env_name(is_ci=True) == "staging"
    assert settings.source_root == "/src"
    assert settings.disable_git_information
    assert not settings.debug
    assert settings.excluded_branches == ("main", "release", "hotfix", "develop")
    assert settings.is_branch_excluded("hotfix")
    assert not settings.is_branch_excluded("feature")
    assert not settings.is_branch_excluded(None)


def test_custom_configurations_come_from_prefixed_tags() -> None:
    settings = Settings.from_env(
        EnvironmentSnapshot({"DD_TAGS": "test.configuration.os:linux test.configuration.arch:arm64 team:qa"})
    )
    assert settings.custom_configurations == {"os": "linux", "arch": "arm64"}
    assert settings.tags["team"] == "qa"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, {}),
        ("", {}),
        ("a:1", {"a": "1"}),
        ("a:1  b:2", {"a": "1", "b": "2"}),
        ("novalue a:b:c", {}),
        ("a:1 a:2", {"a": "2"}),
    ],
)
def test_parse_dd_tags(raw: str | None, expected: dict[str, str]) -> None:
    assert parse_dd_tags(raw) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("plain", "plain"),
        ("$HOME", "/home/ci"),
        ("$HOME/cache", "/home/ci/cache"),
        ("$UNSET", "$UNSET"),
        ("$", "$"),
        ("prefix-$HOME", "prefix-$HOME"),
    ],
)
def test_expand_tag_value(value: str, expected: str) -> None:
    assert expand_tag_value(value, EnvironmentSnapshot({"HOME": "/home/ci"})) == expected


def test_is_test_run_active() -> None:
    assert is_test_run_active(EnvironmentSnapshot({"DD_TEST_RUNNER": "true"}))
    assert not is_test_run_active(EnvironmentSnapshot({"DD_TEST_RUNNER": "0"}))
    assert not is_test_run_active(EnvironmentSnapshot({}))


def test_environment_snapshot_blank_rules() -> None:
    env = EnvironmentSnapshot({"A": "  ", "B": " b ", "FLAG": "maybe", "HOME": "/root"})

    assert env.get("A") is None
    assert env.raw("A") == "  "
    assert env.first("A", "B") == "b"
    assert env.flag("FLAG", default=True)
    assert env.expand_tilde("~") == "/root"
    assert env.expand_tilde("~/x") == "/root/x"
    assert env.expand_tilde("~other/x") == "~other/x"
    assert EnvironmentSnapshot({}).expand_tilde("~/x") == "~/x"


def test_configure_logging_replaces_its_handler() -> None:
    stream = io.StringIO()
    debug_env = EnvironmentSnapshot({"DD_TRACE_DEBUG": "1"})
    configure_logging(debug_env)
    logger = configure_logging(debug_env, stream=stream)
    try:
        owned = [h for h in logger.handlers if getattr(h, "_ciorigin_handler", False)]
        assert len(owned) == 1
        assert logger.level == logging.DEBUG

        logging.getLogger(f"{PACKAGE_LOGGER}.merge").debug("hello %s", "world")
        assert stream.getvalue() == "[ciorigin] DEBUG ciorigin.merge: hello world\n"

        configure_logging(EnvironmentSnapshot({}), stream=stream)
        assert logger.level == logging.WARNING
    finally:
        for handler in list(logger.handlers):
            if getattr(handler, "_ciorigin_handler", False):
                logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
