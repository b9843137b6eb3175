"""Immutable environment snapshot shared by every resolution step.

Example:
    >>> env = EnvironmentSnapshot({"CI_BRANCH": "  main ", "EMPTY": "   "})
    >>> env.get("CI_BRANCH")
    'main'
    >>> env.get("EMPTY") is None
    True
"""

from __future__ import annotations

import os
from types import MappingProxyType
from typing import Iterator, Mapping, Optional

_TRUTHY_VALUES = {"1", "true", "yes", "on"}
_FALSEY_VALUES = {"0", "false", "no", "off"}


class EnvironmentSnapshot(Mapping[str, str]):
    """Read-only copy of process environment variables.

    Raw values are kept verbatim; ``get`` applies the blank-as-absent rule and
    trims surrounding whitespace, which is what every consumer should use.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, str] | None = None):
        self._values = MappingProxyType({str(k): str(v) for k, v in (values or {}).items()})

    @classmethod
    def capture(cls) -> "EnvironmentSnapshot":
        """Copy the live process environment once."""
        return cls(dict(os.environ))

    def __getitem__(self, name: str) -> str:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"EnvironmentSnapshot({len(self._values)} variables)"

    def raw(self, name: str) -> Optional[str]:
        """Return the untrimmed value, or None when the variable is unset."""
        return self._values.get(name)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:  # type: ignore[override]
        value = self._values.get(name)
        if value is None:
            return default
        trimmed = value.strip()
        return trimmed or default

    def first(self, *names: str) -> Optional[str]:
        """Return the first non-blank value among ``names``.

        Example:
            >>> EnvironmentSnapshot({"B": "x"}).first("A", "B")
            'x'
        """
        for name in names:
            value = self.get(name)
            if value is not None:
                return value
        return None

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def flag(self, name: str, default: bool = False) -> bool:
        """Parse a boolean variable; unknown spellings fall back to ``default``."""
        value = self.get(name)
        if value is None:
            return default
        lowered = value.lower()
        if lowered in _TRUTHY_VALUES:
            return True
        if lowered in _FALSEY_VALUES:
            return False
        return default

    def expand_tilde(self, path: Optional[str]) -> Optional[str]:
        """Expand a leading ``~`` against ``HOME`` from this snapshot."""
        if path is None:
            return None
        home = self.get("HOME")
        if path == "~":
            return home
        if path.startswith("~/") and home is not None:
            return home + path[1:]
        return path

    def with_overrides(self, **values: str) -> "EnvironmentSnapshot":
        """Return a new snapshot with ``values`` added or replaced."""
        merged = dict(self._values)
        merged.update(values)
        return EnvironmentSnapshot(merged)
