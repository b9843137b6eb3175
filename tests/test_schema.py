from __future__ import annotations

import json

import pytest

from ciorigin.environment import EnvironmentSnapshot
from ciorigin.errors import SchemaValidationError
from ciorigin.loader import resolve_provenance
from ciorigin.models import BuildProvenance, Diagnostic
from ciorigin.providers import provider_names
from ciorigin.schema import export_provenance, load_schema, validate_provenance_payload
from ciorigin.tags import provenance_tags


def test_schema_is_draft7_and_lists_every_provider() -> None:
    schema = load_schema()
    assert schema["$schema"] == "http://json-schema.org/draft-07/schema#"
    assert set(schema["properties"]["provider"]["enum"]) == {None, *provider_names()}


def test_exported_provenance_validates() -> None:
    env = EnvironmentSnapshot(
        {
            "BUILDKITE": "true",
            "BUILDKITE_COMMIT": "0123456789abcdef0123456789abcdef01234567",
            "BUILDKITE_REPO": "git@github.com:org/repo.git",
            "BUILDKITE_BRANCH": "main",
            "BUILDKITE_BUILD_URL": "https://buildkite.example/b/1",
            "BUILDKITE_JOB_ID": "job",
        }
    )
    payload = export_provenance(resolve_provenance(env))

    assert payload["provider"] == "buildkite"
    assert payload["job"]["url"] == "https://buildkite.example/b/1#job"
    assert json.loads(json.dumps(payload)) == payload


def test_xcode_cloud_export_and_tags_use_display_name() -> None:
    env = EnvironmentSnapshot(
        {"CI_WORKSPACE": "/Volumes/workspace", "CI_COMMIT": "0123456789abcdef0123456789abcdef01234567"}
    )
    provenance = resolve_provenance(env)

    assert export_provenance(provenance)["provider"] == "Xcode Cloud"
    assert provenance_tags(provenance, env=env)["ci.provider.name"] == "Xcode Cloud"


def test_empty_provenance_validates() -> None:
    payload = export_provenance(BuildProvenance(diagnostics=(Diagnostic(code="x", message="y"),)))
    assert payload["diagnostics"] == [{"code": "x", "message": "y"}]


def test_unknown_field_is_rejected() -> None:
    payload = BuildProvenance().to_dict()
    payload["unexpected"] = True

    with pytest.raises(SchemaValidationError) as excinfo:
        validate_provenance_payload(payload)
    assert excinfo.value.code == "CIO001"


def test_empty_string_is_rejected_with_location() -> None:
    payload = BuildProvenance().to_dict()
    payload["pipeline"]["url"] = ""

    with pytest.raises(SchemaValidationError) as excinfo:
        validate_provenance_payload(payload)
    assert excinfo.value.location == "pipeline.url"
    assert excinfo.value.to_dict()["details"] == {"location": "pipeline.url"}


def test_non_object_payload_is_rejected() -> None:
    with pytest.raises(SchemaValidationError):
        validate_provenance_payload([])  # type: ignore[arg-type]
