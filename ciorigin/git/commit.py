"""Commit object decoding.

Example:
    >>> body = (
    ...     b"tree 4b825dc642cb6eb9a060e54bf8d69288fbee4904\\n"
    ...     b"author Ada <ada@example.com> 1700000000 +0100\\n"
    ...     b"committer Ada <ada@example.com> 1700000000 +0100\\n\\n"
    ...     b"Initial commit\\n"
    ... )
    >>> commit = parse_commit(body)
    >>> commit.author.date
    '2023-11-14T23:13:20+01:00'
    >>> commit.message
    'Initial commit'
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from ..errors import RepositoryFormatError
from ..models import Identity

_SIGNATURE_RE = re.compile(
    r"^(?P<name>.*?)\s*<(?P<email>[^>]*)>\s*(?P<seconds>-?\d+)\s+(?P<offset>[+-]\d{4})\s*$"
)


@dataclass(frozen=True)
class Commit:
    """Decoded commit headers and message."""

    tree: Optional[str]
    parents: Tuple[str, ...]
    author: Identity
    committer: Identity
    message: Optional[str]
    encoding: str = "utf-8"
    extra_headers: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


def format_git_date(seconds: int, offset: str) -> str:
    """Render a git ``<epoch> <+hhmm>`` pair as an ISO-8601 timestamp."""
    sign = -1 if offset.startswith("-") else 1
    delta = timedelta(hours=int(offset[1:3]), minutes=int(offset[3:5])) * sign
    moment = datetime.fromtimestamp(seconds, tz=timezone(delta))
    return moment.isoformat()


def parse_signature(value: str) -> Identity:
    """Decode ``Name <email> epoch tz``; malformed dates keep name and email."""
    match = _SIGNATURE_RE.match(value)
    if match is None:
        name, _, rest = value.partition("<")
        email = rest.partition(">")[0] if rest else None
        return Identity(name=name, email=email)
    try:
        date = format_git_date(int(match.group("seconds")), match.group("offset"))
    except (OverflowError, OSError, ValueError):
        date = None
    return Identity(name=match.group("name"), email=match.group("email"), date=date)


def _split_headers(raw: bytes) -> Tuple[List[Tuple[str, bytes]], bytes]:
    headers: List[Tuple[str, bytes]] = []
    header_block, _, message = raw.partition(b"\n\n")
    for line in header_block.split(b"\n"):
        if not line:
            continue
        if line.startswith(b" "):
            if not headers:
                raise RepositoryFormatError("Commit continuation line without header.")
            key, value = headers[-1]
            headers[-1] = (key, value + b"\n" + line[1:])
            continue
        key, _, value = line.partition(b" ")
        headers.append((key.decode("ascii", errors="replace"), value))
    return headers, message


def parse_commit(raw: bytes) -> Commit:
    """Decode a commit body (the part after the loose object header)."""
    headers, message_bytes = _split_headers(raw)
    encoding = "utf-8"
    for key, value in headers:
        if key == "encoding":
            encoding = value.decode("ascii", errors="replace").strip() or encoding

    def text(value: bytes) -> str:
        try:
            return value.decode(encoding, errors="replace")
        except LookupError:
            return value.decode("utf-8", errors="replace")

    tree = None
    parents: List[str] = []
    author = Identity()
    committer = Identity()
    extra: List[Tuple[str, str]] = []
    for key, value in headers:
        if key == "tree":
            tree = text(value).strip()
        elif key == "parent":
            parents.append(text(value).strip())
        elif key == "author":
            author = parse_signature(text(value))
        elif key == "committer":
            committer = parse_signature(text(value))
        elif key != "encoding":
            extra.append((key, text(value)))

    message = text(message_bytes).strip() or None
    return Commit(
        tree=tree,
        parents=tuple(parents),
        author=author,
        committer=committer,
        message=message,
        encoding=encoding,
        extra_headers=tuple(extra),
    )


def peel_tag(raw: bytes) -> Optional[str]:
    """Return the target object id of an annotated tag body."""
    for line in raw.split(b"\n"):
        if not line:
            break
        if line.startswith(b"object "):
            return line[len(b"object ") :].decode("ascii").strip()
    return None
