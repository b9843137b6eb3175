"""Repository discovery and the ``resolve`` entry point.

No external ``git`` executable is involved: refs, config and objects are
read straight from the ``.git`` directory.
"""

from __future__ import annotations

import logging
import re
import struct
import zlib
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from ..errors import RepositoryFormatError
from ..models import Identity, RepositoryInfo
from .commit import Commit, parse_commit, peel_tag
from .objects import ObjectStore
from .refs import Head, RefStore

logger = logging.getLogger(__name__)

GIT_MARKER = ".git"
GITDIR_PREFIX = "gitdir:"
MAX_TAG_PEEL = 10

_SECTION_RE = re.compile(r'^\s*\[\s*([A-Za-z0-9.-]+)(?:\s+"((?:[^"\\]|\\.)*)")?\s*\]\s*$')
_ENTRY_RE = re.compile(r"^\s*([A-Za-z][A-Za-z0-9-]*)\s*(?:=\s*(.*?))?\s*$")

PathLike = Union[str, Path]

_READ_ERRORS = (
    OSError,
    ValueError,
    KeyError,
    IndexError,
    struct.error,
    zlib.error,
    RepositoryFormatError,
)


def find_repository_root(start: PathLike) -> Optional[Path]:
    """Walk upward from ``start`` to the first directory holding a ``.git`` marker."""
    current = Path(start).expanduser().absolute()
    if current.is_file():
        current = current.parent
    while True:
        if (current / GIT_MARKER).exists():
            return current
        parent = current.parent
        if parent == current:
            return None
        current = parent


def _git_dir_for(root: Path) -> Path:
    marker = root / GIT_MARKER
    if marker.is_dir():
        return marker
    content = marker.read_text(encoding="utf-8").strip()
    if not content.startswith(GITDIR_PREFIX):
        raise RepositoryFormatError("Malformed .git file.", path=str(marker))
    target = Path(content[len(GITDIR_PREFIX) :].strip())
    if not target.is_absolute():
        target = root / target
    if not target.is_dir():
        raise RepositoryFormatError("gitdir target does not exist.", path=str(target))
    return target


def _common_dir_for(git_dir: Path) -> Path:
    commondir = git_dir / "commondir"
    if not commondir.is_file():
        return git_dir
    target = Path(commondir.read_text(encoding="utf-8").strip())
    if not target.is_absolute():
        target = git_dir / target
    return target


def parse_config(text: str) -> Dict[Tuple[str, Optional[str]], Dict[str, List[str]]]:
    """Parse the subset of git config syntax used for ``[remote "name"]`` blocks.

    Example:
        >>> cfg = parse_config('[remote "origin"]\\n\\turl = git@host:org/repo.git\\n')
        >>> cfg[("remote", "origin")]["url"]
        ['git@host:org/repo.git']
    """
    sections: Dict[Tuple[str, Optional[str]], Dict[str, List[str]]] = {}
    current: Optional[Dict[str, List[str]]] = None
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped[0] in "#;":
            continue
        section = _SECTION_RE.match(stripped)
        if section is not None:
            key = (section.group(1).lower(), section.group(2))
            current = sections.setdefault(key, {})
            continue
        entry = _ENTRY_RE.match(stripped)
        if entry is None or current is None:
            continue
        value = entry.group(2) or ""
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        current.setdefault(entry.group(1).lower(), []).append(value)
    return sections


class Repository:
    """Read-only view over one on-disk repository."""

    def __init__(self, root: Path, git_dir: Path, common_dir: Path):
        self.root = root
        self.git_dir = git_dir
        self.common_dir = common_dir
        self.refs = RefStore(git_dir, common_dir)
        self.objects = ObjectStore(common_dir / "objects")

    @classmethod
    def open(cls, root: PathLike) -> "Repository":
        root = Path(root)
        git_dir = _git_dir_for(root)
        return cls(root, git_dir, _common_dir_for(git_dir))

    def head(self) -> Head:
        return self.refs.head()

    def read_commit(self, oid: str) -> Commit:
        type_name, body = self.objects.read(oid)
        for _ in range(MAX_TAG_PEEL):
            if type_name != "tag":
                break
            target = peel_tag(body)
            if target is None:
                raise RepositoryFormatError(f"Tag object {oid} has no target.")
            type_name, body = self.objects.read(target)
        if type_name != "commit":
            raise RepositoryFormatError(f"Object {oid} is a {type_name}, not a commit.")
        return parse_commit(body)

    def remote_url(self, preferred: str = "origin") -> Optional[str]:
        config_path = self.common_dir / "config"
        if not config_path.is_file():
            return None
        config = parse_config(config_path.read_text(encoding="utf-8", errors="replace"))
        remotes = [(name, values) for (kind, name), values in config.items() if kind == "remote"]
        remotes.sort(key=lambda item: item[0] != preferred)
        for _, values in remotes:
            urls = values.get("url")
            if urls:
                return urls[0]
        return None

    def info(self) -> RepositoryInfo:
        head = self.head()
        commit = self.read_commit(head.oid) if head.oid is not None else None
        return RepositoryInfo(
            commit=head.oid,
            branch=head.ref,
            repository_url=self.remote_url(),
            author=commit.author if commit is not None else Identity(),
            committer=commit.committer if commit is not None else Identity(),
            commit_message=commit.message if commit is not None else None,
            workspace_path=str(self.root),
        )


def resolve(path: PathLike) -> Optional[RepositoryInfo]:
    """Read repository metadata for the checkout containing ``path``.

    Any failure (no marker, unreadable files, corrupt objects) yields None.
    """
    try:
        root = find_repository_root(path)
    except OSError as exc:
        logger.debug("Repository lookup from %s failed: %s", path, exc)
        return None
    if root is None:
        logger.debug("No repository found above %s", path)
        return None
    try:
        info = Repository.open(root).info()
    except _READ_ERRORS as exc:
        logger.debug("Could not read repository at %s: %s", root, exc)
        return None
    logger.debug("Resolved repository %s at commit %s", root, info.commit)
    return info
