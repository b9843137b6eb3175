"""Read access to the repository object database: loose objects and packs.

Only what is needed to reach a commit object is implemented: zlib loose
objects, pack index versions 1 and 2, and pack entries including
``OFS_DELTA``/``REF_DELTA`` chains. Objects are returned as ``(type, body)``.
"""

from __future__ import annotations

import bisect
import logging
import struct
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..errors import RepositoryFormatError
from ..normalize import is_valid_commit_sha

logger = logging.getLogger(__name__)

OBJ_COMMIT = 1
OBJ_TREE = 2
OBJ_BLOB = 3
OBJ_TAG = 4
OBJ_OFS_DELTA = 6
OBJ_REF_DELTA = 7

TYPE_NAMES = {OBJ_COMMIT: "commit", OBJ_TREE: "tree", OBJ_BLOB: "blob", OBJ_TAG: "tag"}

_IDX_V2_MAGIC = b"\xfftOc"
_PACK_MAGIC = b"PACK"
_INFLATE_CHUNK = 64 * 1024
_MAX_DELTA_CHAIN = 10_000


def _read_varint_le(data: bytes, pos: int) -> Tuple[int, int]:
    """Decode the little-endian base-128 sizes used in delta headers."""
    value = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise RepositoryFormatError("Truncated delta header.")
        byte = data[pos]
        pos += 1
        value |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            return value, pos


def apply_delta(base: bytes, delta: bytes) -> bytes:
    """Rebuild an object from ``base`` and a git delta instruction stream."""
    source_size, pos = _read_varint_le(delta, 0)
    target_size, pos = _read_varint_le(delta, pos)
    if source_size != len(base):
        raise RepositoryFormatError(
            f"Delta base size mismatch: expected {source_size}, found {len(base)}."
        )

    out = bytearray()
    while pos < len(delta):
        opcode = delta[pos]
        pos += 1
        if opcode & 0x80:
            offset = 0
            size = 0
            for bit in range(4):
                if opcode & (1 << bit):
                    offset |= delta[pos] << (8 * bit)
                    pos += 1
            for bit in range(3):
                if opcode & (1 << (4 + bit)):
                    size |= delta[pos] << (8 * bit)
                    pos += 1
            if size == 0:
                size = 0x10000
            if offset + size > len(base):
                raise RepositoryFormatError("Delta copy instruction exceeds base object.")
            out += base[offset : offset + size]
        elif opcode:
            out += delta[pos : pos + opcode]
            pos += opcode
        else:
            raise RepositoryFormatError("Reserved delta opcode 0.")

    if len(out) != target_size:
        raise RepositoryFormatError(
            f"Delta result size mismatch: expected {target_size}, produced {len(out)}."
        )
    return bytes(out)


def _inflate(data: bytes, pos: int) -> bytes:
    decompressor = zlib.decompressobj()
    chunks: List[bytes] = []
    while not decompressor.eof:
        block = data[pos : pos + _INFLATE_CHUNK]
        if not block:
            raise RepositoryFormatError("Truncated compressed object data.")
        chunks.append(decompressor.decompress(block))
        pos += len(block)
    return b"".join(chunks)


class PackIndex:
    """Sorted object-id to pack-offset table from a ``.idx`` file."""

    def __init__(self, names: List[bytes], offsets: List[int]):
        self._names = names
        self._offsets = offsets

    @classmethod
    def parse(cls, data: bytes) -> "PackIndex":
        if data[:4] == _IDX_V2_MAGIC:
            (version,) = struct.unpack(">I", data[4:8])
            if version != 2:
                raise RepositoryFormatError(f"Unsupported pack index version {version}.")
            fanout = struct.unpack(">256I", data[8 : 8 + 1024])
            count = fanout[255]
            pos = 8 + 1024
            names = [data[pos + 20 * i : pos + 20 * (i + 1)] for i in range(count)]
            pos += 20 * count
            pos += 4 * count  # crc32 table
            small = struct.unpack(f">{count}I", data[pos : pos + 4 * count])
            pos += 4 * count
            offsets = []
            for value in small:
                if value & 0x80000000:
                    large_pos = pos + 8 * (value & 0x7FFFFFFF)
                    (value,) = struct.unpack(">Q", data[large_pos : large_pos + 8])
                offsets.append(value)
            return cls(names, offsets)

        fanout = struct.unpack(">256I", data[:1024])
        count = fanout[255]
        names = []
        offsets = []
        for i in range(count):
            entry = 1024 + 24 * i
            (offset,) = struct.unpack(">I", data[entry : entry + 4])
            offsets.append(offset)
            names.append(data[entry + 4 : entry + 24])
        return cls(names, offsets)

    def __len__(self) -> int:
        return len(self._names)

    def offset_of(self, oid: bytes) -> Optional[int]:
        index = bisect.bisect_left(self._names, oid)
        if index < len(self._names) and self._names[index] == oid:
            return self._offsets[index]
        return None


@dataclass
class Pack:
    """One ``pack-*.pack`` file with its index."""

    path: Path
    index: PackIndex
    _data: Optional[bytes] = None

    @property
    def data(self) -> bytes:
        if self._data is None:
            data = self.path.read_bytes()
            if data[:4] != _PACK_MAGIC:
                raise RepositoryFormatError("Not a pack file.", path=str(self.path))
            self._data = data
        return self._data

    def entry_header(self, offset: int) -> Tuple[int, int, int]:
        """Return ``(type, size, data_offset)`` for the entry at ``offset``."""
        data = self.data
        byte = data[offset]
        pos = offset + 1
        obj_type = (byte >> 4) & 0x07
        size = byte & 0x0F
        shift = 4
        while byte & 0x80:
            byte = data[pos]
            pos += 1
            size |= (byte & 0x7F) << shift
            shift += 7
        return obj_type, size, pos


class ObjectStore:
    """Lookup of objects by hex id across loose storage and every pack."""

    def __init__(self, objects_dir: Path):
        self.objects_dir = objects_dir
        self._packs: Optional[List[Pack]] = None
        self._cache: Dict[str, Tuple[str, bytes]] = {}

    @property
    def packs(self) -> List[Pack]:
        if self._packs is None:
            packs = []
            pack_dir = self.objects_dir / "pack"
            if pack_dir.is_dir():
                for idx_path in sorted(pack_dir.glob("pack-*.idx")):
                    pack_path = idx_path.with_suffix(".pack")
                    if not pack_path.is_file():
                        continue
                    packs.append(Pack(pack_path, PackIndex.parse(idx_path.read_bytes())))
            logger.debug("Loaded %d pack(s) from %s", len(packs), pack_dir)
            self._packs = packs
        return self._packs

    def read(self, oid: str) -> Tuple[str, bytes]:
        """Return ``(type_name, body)`` for ``oid``; raise when it cannot be found."""
        oid = oid.lower()
        if not is_valid_commit_sha(oid):
            raise RepositoryFormatError(f"Invalid object id '{oid}'.")
        cached = self._cache.get(oid)
        if cached is not None:
            return cached

        found = self._read_loose(oid)
        if found is None:
            found = self._read_packed(oid)
        if found is None:
            raise RepositoryFormatError(f"Object {oid} not found.", path=str(self.objects_dir))
        self._cache[oid] = found
        return found

    def _read_loose(self, oid: str) -> Optional[Tuple[str, bytes]]:
        path = self.objects_dir / oid[:2] / oid[2:]
        if not path.is_file():
            return None
        raw = zlib.decompress(path.read_bytes())
        header, sep, body = raw.partition(b"\x00")
        if not sep:
            raise RepositoryFormatError("Loose object without header.", path=str(path))
        type_name, _, size = header.decode("ascii").partition(" ")
        if int(size) != len(body):
            raise RepositoryFormatError("Loose object size mismatch.", path=str(path))
        return type_name, body

    def _read_packed(self, oid: str) -> Optional[Tuple[str, bytes]]:
        raw_oid = bytes.fromhex(oid)
        for pack in self.packs:
            offset = pack.index.offset_of(raw_oid)
            if offset is not None:
                obj_type, body = self._unpack(pack, offset)
                return TYPE_NAMES[obj_type], body
        return None

    def _unpack(self, pack: Pack, offset: int) -> Tuple[int, bytes]:
        deltas: List[bytes] = []
        data = pack.data
        while True:
            if len(deltas) > _MAX_DELTA_CHAIN:
                raise RepositoryFormatError("Delta chain too long.", path=str(pack.path))
            obj_type, _, pos = pack.entry_header(offset)
            if obj_type == OBJ_OFS_DELTA:
                byte = data[pos]
                pos += 1
                distance = byte & 0x7F
                while byte & 0x80:
                    byte = data[pos]
                    pos += 1
                    distance = ((distance + 1) << 7) | (byte & 0x7F)
                deltas.append(_inflate(data, pos))
                offset -= distance
                continue
            if obj_type == OBJ_REF_DELTA:
                base_oid = data[pos : pos + 20].hex()
                deltas.append(_inflate(data, pos + 20))
                base_name, body = self.read(base_oid)
                base_type = next(k for k, v in TYPE_NAMES.items() if v == base_name)
                return base_type, self._apply_chain(body, deltas)
            if obj_type not in TYPE_NAMES:
                raise RepositoryFormatError(
                    f"Unknown pack object type {obj_type}.", path=str(pack.path)
                )
            return obj_type, self._apply_chain(_inflate(data, pos), deltas)

    @staticmethod
    def _apply_chain(base: bytes, deltas: List[bytes]) -> bytes:
        for delta in reversed(deltas):
            base = apply_delta(base, delta)
        return base
