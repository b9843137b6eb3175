"""Direct on-disk repository introspection."""

from .commit import Commit, parse_commit, parse_signature
from .objects import ObjectStore, apply_delta
from .refs import Head, RefStore, parse_packed_refs
from .repository import Repository, find_repository_root, parse_config, resolve

__all__ = [
    "Commit",
    "Head",
    "ObjectStore",
    "RefStore",
    "Repository",
    "apply_delta",
    "find_repository_root",
    "parse_commit",
    "parse_config",
    "parse_packed_refs",
    "parse_signature",
    "resolve",
]
