"""The meta page record: format marker, version, roots and checksum."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import TextIO

from boltkit.bucket import InBucket
from boltkit.page import (
    MAGIC,
    META_PAGE_FLAG,
    PAGE_HEADER_SIZE,
    PGID_NO_FREELIST,
    VERSION,
    Page,
)

_META = struct.Struct("<IIIIQQQQQQ")
META_SIZE = _META.size
_CHECKSUM_OFFSET = META_SIZE - 8

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_U64_MASK = 0xFFFFFFFFFFFFFFFF


def _fnv1a64(data: bytes) -> int:
    h = _FNV64_OFFSET
    for byte in data:
        h ^= byte
        h = (h * _FNV64_PRIME) & _U64_MASK
    return h


class InvalidDatabaseError(ValueError):
    """The meta page does not carry the expected format marker."""

    def __init__(self, msg: str = "invalid database") -> None:
        super().__init__(msg)


class VersionMismatchError(ValueError):
    """The meta page was written by an incompatible format version."""

    def __init__(self, msg: str = "version mismatch") -> None:
        super().__init__(msg)


class ChecksumError(ValueError):
    """The meta page checksum does not match its contents."""

    def __init__(self, msg: str = "checksum error") -> None:
        super().__init__(msg)


@dataclass
class Meta:
    """The contents of a meta page."""

    magic: int = 0
    version: int = 0
    page_size: int = 0
    flags: int = 0
    root: InBucket = field(default_factory=InBucket)
    freelist: int = 0
    pgid: int = 0
    txid: int = 0
    checksum: int = 0

    @classmethod
    def from_bytes(cls, data) -> "Meta":
        (
            magic,
            version,
            page_size,
            flags,
            root,
            sequence,
            freelist,
            pgid,
            txid,
            checksum,
        ) = _META.unpack_from(data, 0)
        return cls(
            magic=magic,
            version=version,
            page_size=page_size,
            flags=flags,
            root=InBucket(root=root, sequence=sequence),
            freelist=freelist,
            pgid=pgid,
            txid=txid,
            checksum=checksum,
        )

    def _fields(self) -> tuple[int, ...]:
        return (
            self.magic,
            self.version,
            self.page_size,
            self.flags,
            self.root.root,
            self.root.sequence,
            self.freelist,
            self.pgid,
            self.txid,
            self.checksum,
        )

    def to_bytes(self) -> bytes:
        return _META.pack(*self._fields())

    def validate(self) -> None:
        """Raise if the marker, version or checksum do not match."""
        if self.magic != MAGIC:
            raise InvalidDatabaseError()
        if self.version != VERSION:
            raise VersionMismatchError()
        if self.checksum != self.sum64():
            raise ChecksumError()

    def sum64(self) -> int:
        """Return the FNV-1a checksum of every field before the checksum."""
        return _fnv1a64(self.to_bytes()[:_CHECKSUM_OFFSET])

    def write(self, page: Page) -> None:
        """Fill in the checksum and write the meta onto a meta page."""
        if self.root.root >= self.pgid:
            raise ValueError(
                f"root bucket pgid ({self.root.root}) above high water mark ({self.pgid})"
            )
        if self.freelist >= self.pgid and self.freelist != PGID_NO_FREELIST:
            raise ValueError(
                f"freelist pgid ({self.freelist}) above high water mark ({self.pgid})"
            )

        # The two meta pages alternate with the transaction id.
        page.id = self.txid % 2
        page.flags = META_PAGE_FLAG
        self.checksum = self.sum64()
        _META.pack_into(page.buf, page.offset + PAGE_HEADER_SIZE, *self._fields())

    def store(self, buf) -> None:
        """Write the meta as it is into the meta area of a page buffer."""
        _META.pack_into(buf, PAGE_HEADER_SIZE, *self._fields())

    def is_freelist_persisted(self) -> bool:
        return self.freelist != PGID_NO_FREELIST

    def write_summary(self, out: TextIO) -> None:
        """Write a human-readable summary of the meta to ``out``."""
        out.write(f"Version:    {self.version}\n")
        out.write(f"Page Size:  {self.page_size} bytes\n")
        out.write(f"Flags:      {self.flags:08x}\n")
        out.write(f"Root:       <pgid={self.root.root}>\n")
        out.write(f"Freelist:   <pgid={self.freelist}>\n")
        out.write(f"HWM:        <pgid={self.pgid}>\n")
        out.write(f"Txn ID:     {self.txid}\n")
        out.write(f"Checksum:   {self.checksum:016x}\n")
        out.write("\n")


def load_page_meta(buf) -> Meta:
    """Decode the meta stored after the page header in ``buf``."""
    return Meta.from_bytes(memoryview(buf)[PAGE_HEADER_SIZE : PAGE_HEADER_SIZE + META_SIZE])