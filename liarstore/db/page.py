from __future__ import annotations

"""
On-disk page format
===================

File layout
-----------
    offset 0      superblock slot 0   (512 bytes)
    offset 512    superblock slot 1   (512 bytes)
    offset 1024   page 1, page 2, ...  (page_size bytes each)

Page id 0 is never a real page; it means "no page" (e.g. the root of an
empty tree). Page `p` lives at `HEADER_REGION + (p - 1) * page_size`.

Page header (big-endian, 20 bytes)
----------------------------------
    u8  type         1 = leaf, 2 = branch, 3 = overflow
    u8  flags        reserved, 0
    u16 count        leaf/branch: number of keys; overflow: 0
    u32 payload_len  bytes of payload following the header
    u32 crc32        over the whole page with this field zeroed
    u64 generation   commit that wrote the page

Payloads
--------
    leaf:     count × ( u16 klen | key | u8 kind | kind 0: u32 vlen | value
                                                 kind 1: u64 first_page | u32 total_len )
    branch:   u64 child0 | count × ( u16 klen | key | u64 child )
    overflow: u64 next_page | chunk

Superblock (one per slot)
-------------------------
    8s magic | u16 version | u32 page_size | u64 generation | u64 root
    | u64 page_count | u64 entries | u32 crc32 (over the preceding bytes)

Generation `g` is always written to slot `g % 2`, so the previous committed
superblock survives a torn write of the next one.
"""

import struct
import zlib
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from ..errors import CorruptionError, InternalError

PAGE_LEAF = 1
PAGE_BRANCH = 2
PAGE_OVERFLOW = 3
_PAGE_TYPES = (PAGE_LEAF, PAGE_BRANCH, PAGE_OVERFLOW)

NO_PAGE = 0
FIRST_PAGE = 1

PAGE_HEADER = struct.Struct(">BBHIIQ")
HEADER_SIZE = PAGE_HEADER.size
_CRC_OFFSET = 8

SLOT_SIZE = 512
SUPERBLOCK_SLOTS = 2
HEADER_REGION = SLOT_SIZE * SUPERBLOCK_SLOTS

MAGIC = b"LIARSTOR"
FORMAT_VERSION = 1
_SUPER = struct.Struct(">8sHIQQQQ")
_CRC = struct.Struct(">I")

_KLEN = struct.Struct(">H")
_U32 = struct.Struct(">I")
_U64 = struct.Struct(">Q")
_OVERFLOW_REF = struct.Struct(">QI")

VALUE_INLINE = 0
VALUE_OVERFLOW = 1


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


def capacity(page_size: int) -> int:
    """Payload bytes available in one page."""
    return page_size - HEADER_SIZE


def max_key_size(page_size: int) -> int:
    return capacity(page_size) // 8


def inline_limit(page_size: int) -> int:
    """Values longer than this go to an overflow chain."""
    return capacity(page_size) // 4


def overflow_chunk(page_size: int) -> int:
    return capacity(page_size) - _U64.size


def page_offset(page_id: int, page_size: int) -> int:
    if page_id < FIRST_PAGE:
        raise InternalError("page id out of range", page=page_id)
    return HEADER_REGION + (page_id - FIRST_PAGE) * page_size


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValueRef:
    """Where a leaf entry's value lives: inline bytes or an overflow chain."""

    inline: Optional[bytes] = None
    page: int = NO_PAGE
    length: int = 0

    @property
    def is_overflow(self) -> bool:
        return self.inline is None

    def encoded_size(self) -> int:
        if self.inline is None:
            return 1 + _OVERFLOW_REF.size
        return 1 + _U32.size + len(self.inline)


@dataclass
class Leaf:
    keys: List[bytes]
    refs: List[ValueRef]

    def size(self) -> int:
        return sum(
            _KLEN.size + len(k) + r.encoded_size() for k, r in zip(self.keys, self.refs)
        )


@dataclass
class Branch:
    """`children[i]` holds keys < `keys[i]`; `children[i + 1]` holds keys >= `keys[i]`."""

    keys: List[bytes]
    children: List[int]

    def size(self) -> int:
        return _U64.size + sum(_KLEN.size + len(k) + _U64.size for k in self.keys)


@dataclass
class Overflow:
    next_page: int
    chunk: bytes


Node = Union[Leaf, Branch]


def leaf_entry_size(key: bytes, ref: ValueRef) -> int:
    return _KLEN.size + len(key) + ref.encoded_size()


def branch_entry_size(key: bytes) -> int:
    return _KLEN.size + len(key) + _U64.size


def _encode_leaf(leaf: Leaf) -> bytes:
    out = bytearray()
    for k, r in zip(leaf.keys, leaf.refs):
        out += _KLEN.pack(len(k))
        out += k
        if r.inline is None:
            out.append(VALUE_OVERFLOW)
            out += _OVERFLOW_REF.pack(r.page, r.length)
        else:
            out.append(VALUE_INLINE)
            out += _U32.pack(len(r.inline))
            out += r.inline
    return bytes(out)


def _encode_branch(branch: Branch) -> bytes:
    out = bytearray(_U64.pack(branch.children[0]))
    for k, c in zip(branch.keys, branch.children[1:]):
        out += _KLEN.pack(len(k))
        out += k
        out += _U64.pack(c)
    return bytes(out)


def _read_key(buf: bytes, pos: int) -> Tuple[bytes, int]:
    (klen,) = _KLEN.unpack_from(buf, pos)
    pos += _KLEN.size
    key = bytes(buf[pos : pos + klen])
    if len(key) != klen:
        raise ValueError("truncated key")
    return key, pos + klen


def _decode_leaf(payload: bytes, count: int) -> Leaf:
    keys: List[bytes] = []
    refs: List[ValueRef] = []
    pos = 0
    for _ in range(count):
        key, pos = _read_key(payload, pos)
        kind = payload[pos]
        pos += 1
        if kind == VALUE_INLINE:
            (vlen,) = _U32.unpack_from(payload, pos)
            pos += _U32.size
            value = bytes(payload[pos : pos + vlen])
            if len(value) != vlen:
                raise ValueError("truncated value")
            pos += vlen
            refs.append(ValueRef(inline=value))
        elif kind == VALUE_OVERFLOW:
            first, total = _OVERFLOW_REF.unpack_from(payload, pos)
            pos += _OVERFLOW_REF.size
            refs.append(ValueRef(page=first, length=total))
        else:
            raise ValueError(f"unknown value kind {kind}")
        keys.append(key)
    if pos != len(payload):
        raise ValueError("trailing bytes in leaf")
    return Leaf(keys, refs)


def _decode_branch(payload: bytes, count: int) -> Branch:
    (child0,) = _U64.unpack_from(payload, 0)
    pos = _U64.size
    keys: List[bytes] = []
    children = [child0]
    for _ in range(count):
        key, pos = _read_key(payload, pos)
        (child,) = _U64.unpack_from(payload, pos)
        pos += _U64.size
        keys.append(key)
        children.append(child)
    if pos != len(payload):
        raise ValueError("trailing bytes in branch")
    return Branch(keys, children)


# ---------------------------------------------------------------------------
# Sealing / opening pages
# ---------------------------------------------------------------------------


def seal(ptype: int, count: int, payload: bytes, generation: int, page_size: int) -> bytes:
    """Build a full, checksummed page image."""
    if len(payload) > capacity(page_size):
        raise InternalError(
            "page payload overflow", size=len(payload), capacity=capacity(page_size)
        )
    buf = bytearray(page_size)
    PAGE_HEADER.pack_into(buf, 0, ptype, 0, count, len(payload), 0, generation)
    buf[HEADER_SIZE : HEADER_SIZE + len(payload)] = payload
    _CRC.pack_into(buf, _CRC_OFFSET, zlib.crc32(buf))
    return bytes(buf)


def seal_node(node: Node, generation: int, page_size: int) -> bytes:
    if isinstance(node, Leaf):
        return seal(PAGE_LEAF, len(node.keys), _encode_leaf(node), generation, page_size)
    return seal(PAGE_BRANCH, len(node.keys), _encode_branch(node), generation, page_size)


def seal_overflow(next_page: int, chunk: bytes, generation: int, page_size: int) -> bytes:
    return seal(PAGE_OVERFLOW, 0, _U64.pack(next_page) + chunk, generation, page_size)


def open_page(page_id: int, data: bytes, page_size: int) -> Tuple[int, int, bytes, int]:
    """
    Verify a page image and split it into (type, count, payload, generation).

    Raises CorruptionError on a short page, checksum mismatch or bad header.
    """
    if len(data) != page_size:
        raise CorruptionError("short page read", page=page_id, size=len(data))
    ptype, _flags, count, plen, crc, generation = PAGE_HEADER.unpack_from(data, 0)
    buf = bytearray(data)
    buf[_CRC_OFFSET : _CRC_OFFSET + _CRC.size] = b"\x00" * _CRC.size
    if zlib.crc32(buf) != crc:
        raise CorruptionError("page checksum mismatch", page=page_id)
    if ptype not in _PAGE_TYPES or plen > capacity(page_size):
        raise CorruptionError("bad page header", page=page_id, type=ptype)
    return ptype, count, bytes(data[HEADER_SIZE : HEADER_SIZE + plen]), generation


def _check_generation(page_id: int, generation: int, max_generation: Optional[int]) -> None:
    if max_generation is not None and generation > max_generation:
        raise CorruptionError(
            "page written after its superblock",
            page=page_id,
            generation=generation,
            superblock_generation=max_generation,
        )


def decode_node(
    page_id: int, data: bytes, page_size: int, max_generation: Optional[int] = None
) -> Node:
    """
    Decode a leaf or branch page. With `max_generation`, a page stamped by a
    later commit than that is rejected.
    """
    ptype, count, payload, gen = open_page(page_id, data, page_size)
    _check_generation(page_id, gen, max_generation)
    try:
        if ptype == PAGE_LEAF:
            return _decode_leaf(payload, count)
        if ptype == PAGE_BRANCH:
            return _decode_branch(payload, count)
    except (struct.error, IndexError, ValueError) as e:
        raise CorruptionError(f"malformed node: {e}", page=page_id) from e
    raise CorruptionError("expected a tree node", page=page_id, type=ptype)


def decode_overflow(
    page_id: int, data: bytes, page_size: int, max_generation: Optional[int] = None
) -> Overflow:
    ptype, _count, payload, gen = open_page(page_id, data, page_size)
    _check_generation(page_id, gen, max_generation)
    if ptype != PAGE_OVERFLOW or len(payload) < _U64.size:
        raise CorruptionError("expected an overflow page", page=page_id, type=ptype)
    (next_page,) = _U64.unpack_from(payload, 0)
    return Overflow(next_page, payload[_U64.size :])


# ---------------------------------------------------------------------------
# Superblock
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Superblock:
    generation: int
    root: int
    page_count: int  # next never-used page id (high-water mark)
    entries: int
    page_size: int

    @property
    def slot(self) -> int:
        return self.generation % SUPERBLOCK_SLOTS

    def encode(self) -> bytes:
        head = _SUPER.pack(
            MAGIC,
            FORMAT_VERSION,
            self.page_size,
            self.generation,
            self.root,
            self.page_count,
            self.entries,
        )
        body = head + _CRC.pack(zlib.crc32(head))
        return body + b"\x00" * (SLOT_SIZE - len(body))

    @classmethod
    def decode(cls, data: bytes) -> Optional["Superblock"]:
        """Parse one slot; returns None when the slot is empty, torn or foreign."""
        if len(data) < _SUPER.size + _CRC.size:
            return None
        head = data[: _SUPER.size]
        (crc,) = _CRC.unpack_from(data, _SUPER.size)
        if zlib.crc32(head) != crc:
            return None
        magic, version, page_size, generation, root, page_count, entries = _SUPER.unpack(head)
        if magic != MAGIC or version != FORMAT_VERSION:
            return None
        if page_size < 512 or page_size & (page_size - 1):
            return None
        if page_count < FIRST_PAGE or root >= page_count:
            return None
        return cls(
            generation=generation,
            root=root,
            page_count=page_count,
            entries=entries,
            page_size=page_size,
        )


def slot_offset(slot: int) -> int:
    return slot * SLOT_SIZE


__all__ = [
    "PAGE_LEAF",
    "PAGE_BRANCH",
    "PAGE_OVERFLOW",
    "NO_PAGE",
    "FIRST_PAGE",
    "HEADER_SIZE",
    "HEADER_REGION",
    "SLOT_SIZE",
    "SUPERBLOCK_SLOTS",
    "ValueRef",
    "Leaf",
    "Branch",
    "Overflow",
    "Node",
    "Superblock",
    "capacity",
    "max_key_size",
    "inline_limit",
    "overflow_chunk",
    "page_offset",
    "slot_offset",
    "leaf_entry_size",
    "branch_entry_size",
    "seal",
    "seal_node",
    "seal_overflow",
    "open_page",
    "decode_node",
    "decode_overflow",
]
