"""In-memory node entries and their serialisation onto branch and leaf pages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from boltkit.page import PAGE_HEADER_SIZE, Page
from boltkit.verify import check


@dataclass
class Inode:
    """An entry of a node.

    It either mirrors an element already stored on a page or holds one that
    has not been written yet.
    """

    flags: int = 0
    pgid: int = 0
    key: bytes = b""
    value: bytes = b""


def read_inodes_from_page(page: Page) -> list[Inode]:
    """Return the entries stored on a branch or leaf page."""
    inodes: list[Inode] = []
    if page.is_leaf_page():
        for elem in page.leaf_page_elements():
            inode = Inode(flags=elem.flags, key=elem.key(), value=elem.value())
            check(len(inode.key) > 0, "read: zero-length inode key")
            inodes.append(inode)
    else:
        for elem in page.branch_page_elements():
            inode = Inode(pgid=elem.pgid, key=elem.key())
            check(len(inode.key) > 0, "read: zero-length inode key")
            inodes.append(inode)
    return inodes


def write_inodes_to_page(inodes: Iterable[Inode], page: Page) -> int:
    """Write the entries and their data onto the page.

    The page flags must already be set. Returns the offset just past the
    last byte written, relative to the start of the page.
    """
    items = list(inodes)
    off = PAGE_HEADER_SIZE + page.page_element_size() * len(items)
    is_leaf = page.is_leaf_page()
    buf = page.buf
    for i, item in enumerate(items):
        check(len(item.key) > 0, "write: zero-length inode key")

        data = bytes(item.key) + bytes(item.value)
        start = page.offset + off
        end = start + len(data)
        if end > len(buf):
            raise ValueError(
                f"page buffer too small: need {end} bytes, have {len(buf)}"
            )

        if is_leaf:
            leaf = page.leaf_page_element(i)
            leaf.pos = start - leaf.offset
            leaf.flags = item.flags
            leaf.ksize = len(item.key)
            leaf.vsize = len(item.value)
        else:
            branch = page.branch_page_element(i)
            branch.pos = start - branch.offset
            branch.ksize = len(item.key)
            branch.pgid = item.pgid
            check(branch.pgid != page.id, "write: circular dependency occurred")

        buf[start:end] = data
        off += len(data)
    return off


def used_space_in_page(inodes: Iterable[Inode], page: Page) -> int:
    """Return the number of bytes the entries would occupy on the page."""
    items = list(inodes)
    off = PAGE_HEADER_SIZE + page.page_element_size() * len(items)
    return off + sum(len(item.key) + len(item.value) for item in items)