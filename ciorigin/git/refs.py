"""Reference resolution: HEAD, loose ref files and ``packed-refs``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from ..errors import RepositoryFormatError
from ..normalize import is_valid_commit_sha

logger = logging.getLogger(__name__)

SYMREF_PREFIX = "ref:"
MAX_SYMREF_DEPTH = 10


@dataclass(frozen=True)
class Head:
    """Where HEAD points.

    ``ref`` is the ref HEAD names (``refs/heads/main``), or None when detached.
    ``oid`` is None for an unborn branch.
    """

    ref: Optional[str]
    oid: Optional[str]

    @property
    def detached(self) -> bool:
        return self.ref is None


def parse_packed_refs(text: str) -> Dict[str, str]:
    """Map ref names to object ids; peeled ``^`` lines and comments are skipped."""
    refs: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("^"):
            continue
        oid, _, name = line.partition(" ")
        if name and is_valid_commit_sha(oid):
            refs[name.strip()] = oid.lower()
    return refs


class RefStore:
    """Ref lookup for one repository.

    Per-worktree refs (``HEAD``) live in ``git_dir``; shared refs live in
    ``common_dir``, which equals ``git_dir`` for an ordinary checkout.
    """

    def __init__(self, git_dir: Path, common_dir: Optional[Path] = None):
        self.git_dir = git_dir
        self.common_dir = common_dir or git_dir
        self._packed: Optional[Dict[str, str]] = None

    @property
    def packed(self) -> Dict[str, str]:
        if self._packed is None:
            path = self.common_dir / "packed-refs"
            self._packed = (
                parse_packed_refs(path.read_text(encoding="utf-8")) if path.is_file() else {}
            )
        return self._packed

    def _read_ref_file(self, name: str) -> Optional[str]:
        for base in (self.git_dir, self.common_dir):
            path = base / name
            if path.is_file():
                return path.read_text(encoding="utf-8").strip()
        return None

    def read_raw(self, name: str) -> Optional[str]:
        """Return a ref's stored value (object id or ``ref: ...``) without following it."""
        value = self._read_ref_file(name)
        if value is not None:
            return value
        return self.packed.get(name)

    def resolve(self, name: str) -> Optional[str]:
        """Follow symbolic refs from ``name`` to an object id; None when unborn."""
        seen = []
        current = name
        while True:
            if current in seen:
                raise RepositoryFormatError(f"Symbolic ref loop: {' -> '.join(seen + [current])}")
            if len(seen) >= MAX_SYMREF_DEPTH:
                raise RepositoryFormatError(f"Symbolic ref chain too deep from {name}.")
            seen.append(current)
            value = self.read_raw(current)
            if value is None:
                logger.debug("Ref %s does not exist", current)
                return None
            if value.startswith(SYMREF_PREFIX):
                current = value[len(SYMREF_PREFIX) :].strip()
                continue
            if not is_valid_commit_sha(value):
                raise RepositoryFormatError(
                    f"Ref {current} holds invalid object id '{value}'.",
                    path=str(self.git_dir),
                )
            return value.lower()

    def head(self) -> Head:
        raw = self.read_raw("HEAD")
        if raw is None:
            raise RepositoryFormatError("Repository has no HEAD.", path=str(self.git_dir))
        if raw.startswith(SYMREF_PREFIX):
            ref = raw[len(SYMREF_PREFIX) :].strip()
            return Head(ref=ref, oid=self.resolve(ref))
        if not is_valid_commit_sha(raw):
            raise RepositoryFormatError(f"Detached HEAD holds '{raw}'.", path=str(self.git_dir))
        return Head(ref=None, oid=raw.lower())
