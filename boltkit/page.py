"""On-disk page layout: page headers, branch and leaf elements, page-id lists."""

from __future__ import annotations

import heapq
import mmap
import struct
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from boltkit.verify import check

if TYPE_CHECKING:
    from boltkit.bucket import InBucket

# Limits for 64-bit little-endian platforms.
MAX_MAP_SIZE = 0xFFFFFFFFFFFF
MAX_ALLOC_SIZE = 0x7FFFFFFF

MAX_MMAP_STEP = 1 << 30
VERSION = 2
MAGIC = 0xED0CDAED
PGID_NO_FREELIST = 0xFFFFFFFFFFFFFFFF

# Systems without a unified buffer cache need msync regardless of NoSync.
IGNORE_NO_SYNC = sys.platform.startswith("openbsd")

DEFAULT_MAX_BATCH_SIZE = 1000
DEFAULT_MAX_BATCH_DELAY = 0.010  # seconds
DEFAULT_ALLOC_SIZE = 16 * 1024 * 1024
DEFAULT_PAGE_SIZE = mmap.PAGESIZE

PAGE_HEADER_SIZE = 16
MIN_KEYS_PER_PAGE = 2
BRANCH_PAGE_ELEMENT_SIZE = 16
LEAF_PAGE_ELEMENT_SIZE = 16
PGID_SIZE = 8

BRANCH_PAGE_FLAG = 0x01
LEAF_PAGE_FLAG = 0x02
META_PAGE_FLAG = 0x04
FREELIST_PAGE_FLAG = 0x10

BUCKET_LEAF_FLAG = 0x01

_PGID = struct.Struct("<Q")


class _Field:
    """A fixed-width little-endian integer stored in the owner's buffer."""

    def __init__(self, fmt: str, offset: int) -> None:
        self._struct = struct.Struct("<" + fmt)
        self._offset = offset

    def __get__(self, obj, owner=None):
        if obj is None:
            return self
        return self._struct.unpack_from(obj.buf, obj.offset + self._offset)[0]

    def __set__(self, obj, value: int) -> None:
        self._struct.pack_into(obj.buf, obj.offset + self._offset, value)


class Page:
    """A view of a page header and its contents inside a byte buffer."""

    id = _Field("Q", 0)
    flags = _Field("H", 8)
    count = _Field("H", 10)
    overflow = _Field("I", 12)

    def __init__(self, buf, offset: int = 0) -> None:
        self.buf = buf
        self.offset = offset

    def typ(self) -> str:
        """Return a human-readable page type."""
        if self.is_branch_page():
            return "branch"
        if self.is_leaf_page():
            return "leaf"
        if self.is_meta_page():
            return "meta"
        if self.is_freelist_page():
            return "freelist"
        return f"unknown<{self.flags:02x}>"

    def is_branch_page(self) -> bool:
        return self.flags == BRANCH_PAGE_FLAG

    def is_leaf_page(self) -> bool:
        return self.flags == LEAF_PAGE_FLAG

    def is_meta_page(self) -> bool:
        return self.flags == META_PAGE_FLAG

    def is_freelist_page(self) -> bool:
        return self.flags == FREELIST_PAGE_FLAG

    def fast_check(self, id: int) -> None:
        """Check that the page has the expected id and exactly one type flag."""
        check(self.id == id, "Page expected to be: %d, but self identifies as %d", id, self.id)
        check(
            self.is_branch_page()
            or self.is_leaf_page()
            or self.is_meta_page()
            or self.is_freelist_page(),
            "page %d: has unexpected type/flags: %x",
            self.id,
            self.flags,
        )

    def leaf_page_element(self, index: int) -> "LeafPageElement":
        return LeafPageElement(self, index)

    def leaf_page_elements(self) -> list["LeafPageElement"]:
        return [LeafPageElement(self, i) for i in range(self.count)]

    def branch_page_element(self, index: int) -> "BranchPageElement":
        return BranchPageElement(self, index)

    def branch_page_elements(self) -> list["BranchPageElement"]:
        return [BranchPageElement(self, i) for i in range(self.count)]

    def freelist_page_count(self) -> tuple[int, int]:
        """Return the index of the first id and the number of ids on a freelist page.

        A count of 0xFFFF means the real count is stored as the first element.
        """
        check(
            self.is_freelist_page(),
            "can't get freelist page count from a non-freelist page: %2x",
            self.flags,
        )
        idx, count = 0, self.count
        if count == 0xFFFF:
            idx = 1
            count = _PGID.unpack_from(self.buf, self.offset + PAGE_HEADER_SIZE)[0]
            if count > 0x7FFFFFFFFFFFFFFF:
                raise OverflowError(f"leading element count {count} overflows int")
        return idx, count

    def freelist_page_ids(self) -> list[int]:
        """Return the page ids stored on a freelist page."""
        check(
            self.is_freelist_page(),
            "can't get freelist page IDs from a non-freelist page: %2x",
            self.flags,
        )
        idx, count = self.freelist_page_count()
        if count == 0:
            return []
        start = self.offset + PAGE_HEADER_SIZE + idx * PGID_SIZE
        return [pgid for (pgid,) in _PGID.iter_unpack(self.buf[start : start + count * PGID_SIZE])]

    def page_element_size(self) -> int:
        if self.is_leaf_page():
            return LEAF_PAGE_ELEMENT_SIZE
        return BRANCH_PAGE_ELEMENT_SIZE

    def hexdump(self, n: int) -> None:
        """Write the first ``n`` bytes of the page to stderr as hex."""
        data = bytes(self.buf[self.offset : self.offset + n])
        sys.stderr.write(data.hex() + "\n")

    def __str__(self) -> str:
        return f"ID: {self.id}, Type: {self.typ()}, count: {self.count}, overflow: {self.overflow}"


class BranchPageElement:
    """An element of a branch page: key position and child page id."""

    pos = _Field("I", 0)
    ksize = _Field("I", 4)
    pgid = _Field("Q", 8)

    def __init__(self, page: Page, index: int) -> None:
        self.buf = page.buf
        self.offset = page.offset + PAGE_HEADER_SIZE + index * BRANCH_PAGE_ELEMENT_SIZE

    def key(self) -> bytes:
        start = self.offset + self.pos
        return bytes(self.buf[start : start + self.ksize])


class LeafPageElement:
    """An element of a leaf page: flags and key/value positions."""

    flags = _Field("I", 0)
    pos = _Field("I", 4)
    ksize = _Field("I", 8)
    vsize = _Field("I", 12)

    def __init__(self, page: Page, index: int) -> None:
        self.buf = page.buf
        self.offset = page.offset + PAGE_HEADER_SIZE + index * LEAF_PAGE_ELEMENT_SIZE

    def key(self) -> bytes:
        start = self.offset + self.pos
        return bytes(self.buf[start : start + self.ksize])

    def value(self) -> bytes:
        start = self.offset + self.pos + self.ksize
        return bytes(self.buf[start : start + self.vsize])

    def is_bucket_entry(self) -> bool:
        return self.flags & BUCKET_LEAF_FLAG != 0

    def bucket(self) -> "InBucket | None":
        """Return the bucket header stored in the value, or None for plain entries."""
        if not self.is_bucket_entry():
            return None
        from boltkit.bucket import load_bucket

        return load_bucket(self.value())


@dataclass
class PageInfo:
    """Human-readable information about a page."""

    id: int
    type: str
    count: int
    overflow_count: int


def new_page(id: int, flags: int, count: int, overflow: int) -> Page:
    """Create a standalone page header with the given fields."""
    page = Page(bytearray(PAGE_HEADER_SIZE))
    page.id = id
    page.flags = flags
    page.count = count
    page.overflow = overflow
    return page


def load_page(buf) -> Page:
    """Return a page view over the start of ``buf``."""
    return Page(buf, 0)


def merge_pgids(a: Iterable[int], b: Iterable[int]) -> list[int]:
    """Return the sorted union (duplicates kept) of two sorted id lists."""
    return list(heapq.merge(a, b))