"""Error taxonomy with stable machine-readable codes.

Provenance resolution itself never raises; these errors surface at the
edges: schema validation of exported payloads, the checked subprocess runner,
and the repository reader (whose errors are swallowed at ``resolve``).

Example:
    >>> err = NonZeroExitError("false", 1, "")
    >>> err.code
    'CIO011'
"""

from __future__ import annotations

import json
from typing import Any

CIO001_SCHEMA_VALIDATION = "CIO001"
CIO010_SPAWN_FAILED = "CIO010"
CIO011_NON_ZERO_EXIT = "CIO011"
CIO012_TIMEOUT = "CIO012"
CIO020_REPOSITORY_FORMAT = "CIO020"
CIO030_USAGE = "CIO030"


class ProvenanceError(RuntimeError):
    """Base ciorigin error carrying a stable code."""

    def __init__(self, code: str, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": str(self)}
        if self.details:
            payload["details"] = dict(self.details)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


class SchemaValidationError(ProvenanceError):
    """Raised when an exported provenance payload does not match the schema."""

    def __init__(self, message: str, *, location: str = "<root>"):
        super().__init__(CIO001_SCHEMA_VALIDATION, message, details={"location": location})
        self.location = location


class SpawnError(ProvenanceError):
    """Raised by the checked runner when the shell could not be started."""

    def __init__(self, command: str, reason: str):
        super().__init__(
            CIO010_SPAWN_FAILED,
            f"Could not start command: {reason}",
            details={"command": command, "reason": reason},
        )
        self.command = command


class NonZeroExitError(ProvenanceError):
    """Raised by the checked runner when the command exits with a failure status."""

    def __init__(self, command: str, exit_status: int, output: str):
        super().__init__(
            CIO011_NON_ZERO_EXIT,
            f"Command exited with status {exit_status}.",
            details={"command": command, "exit_status": exit_status},
        )
        self.command = command
        self.exit_status = exit_status
        self.output = output


class CommandTimeoutError(ProvenanceError):
    """Raised by the checked runner when the command outlives its timeout."""

    def __init__(self, command: str, timeout_s: float, output: str):
        super().__init__(
            CIO012_TIMEOUT,
            f"Command did not finish within {timeout_s:g}s.",
            details={"command": command, "timeout_s": timeout_s},
        )
        self.command = command
        self.timeout_s = timeout_s
        self.output = output


class RepositoryFormatError(ProvenanceError):
    """Raised by the repository reader on unreadable or corrupt state."""

    def __init__(self, message: str, *, path: str | None = None):
        details = {"path": path} if path is not None else None
        super().__init__(CIO020_REPOSITORY_FORMAT, message, details=details)
        self.path = path


class UsageError(ProvenanceError):
    """Raised by the CLI on invalid invocation."""

    def __init__(self, message: str):
        super().__init__(CIO030_USAGE, message)
