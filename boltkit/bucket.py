"""The on-file bucket header stored as the value of a bucket key."""

from __future__ import annotations

import struct
from dataclasses import dataclass

from boltkit.page import Page

_BUCKET = struct.Struct("<QQ")
BUCKET_HEADER_SIZE = _BUCKET.size

_U64_MASK = 0xFFFFFFFFFFFFFFFF


@dataclass
class InBucket:
    """Bucket header: root page id and sequence counter.

    A root of 0 means the bucket is inline: its root page follows the header
    inside the same value.
    """

    root: int = 0
    sequence: int = 0

    @classmethod
    def from_bytes(cls, data) -> "InBucket":
        root, sequence = _BUCKET.unpack_from(data, 0)
        return cls(root=root, sequence=sequence)

    def to_bytes(self) -> bytes:
        return _BUCKET.pack(self.root, self.sequence)

    def inc_sequence(self) -> None:
        self.sequence = (self.sequence + 1) & _U64_MASK

    def inline_page(self, value) -> Page:
        """Return the inline root page stored after the header in ``value``."""
        return Page(value, BUCKET_HEADER_SIZE)

    def __str__(self) -> str:
        return f"<pgid={self.root},seq={self.sequence}>"


def load_bucket(buf) -> InBucket:
    """Decode a bucket header from the start of ``buf``."""
    return InBucket.from_bytes(buf)