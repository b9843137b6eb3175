"""JSON schema for exported provenance payloads.

The schema document ships inside the package and is loaded via
``importlib.resources``.
"""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, cast

import jsonschema

from .errors import SchemaValidationError
from .models import BuildProvenance

SCHEMA_PACKAGE = "ciorigin.schemas"
SCHEMA_FILENAME = "provenance.schema.json"


@lru_cache(maxsize=1)
def load_schema() -> Dict[str, Any]:
    """Load the provenance schema document.

    Example:
        >>> load_schema()["title"]
        'ciorigin Build Provenance'
    """
    text = resources.files(SCHEMA_PACKAGE).joinpath(SCHEMA_FILENAME).read_text(encoding="utf-8")
    return cast(Dict[str, Any], json.loads(text))


def validate_provenance_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a ``BuildProvenance.to_dict()`` payload and return it unchanged.

    Raises:
        SchemaValidationError: on the first violation, ordered by JSON path.
    """
    if not isinstance(payload, dict):
        raise SchemaValidationError("Provenance payload must be a JSON object.")
    validator = jsonschema.Draft7Validator(load_schema())
    errors = sorted(validator.iter_errors(payload), key=lambda item: [str(p) for p in item.path])
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.path) or "<root>"
        raise SchemaValidationError(
            f"Provenance schema validation failed at {location}: {first.message}",
            location=location,
        )
    return payload


def export_provenance(provenance: BuildProvenance) -> Dict[str, Any]:
    """Serialize ``provenance`` and check the result against the schema."""
    return validate_provenance_payload(provenance.to_dict())
