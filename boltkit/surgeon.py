"""Repairs on database files: copying and clearing pages, resetting metas."""

from __future__ import annotations

import os

from boltkit.guts import _annotate, get_root_page, read_page, read_page_and_hwm_size, write_page
from boltkit.inode import read_inodes_from_page, used_space_in_page, write_inodes_to_page
from boltkit.meta import load_page_meta
from boltkit.page import PGID_NO_FREELIST


def copy_page(path: str | os.PathLike, src_page: int, target: int) -> None:
    """Overwrite page ``target`` with the contents of page ``src_page``."""
    page, buf = read_page(path, src_page)
    page.id = target
    write_page(path, buf)


def clear_page(path: str | os.PathLike, pgid: int) -> bool:
    """Remove every element from a branch or leaf page.

    See :func:`clear_page_elements` for the meaning of the result.
    """
    return clear_page_elements(path, pgid, 0, -1, False)


def clear_page_elements(
    path: str | os.PathLike, pgid: int, start: int, end: int, abandon_freelist: bool
) -> bool:
    """Remove the elements ``[start, end)`` of a branch or leaf page.

    An ``end`` of -1 means up to the last element. Clearing branch elements
    or shrinking the page's overflow leaves the stored freelist stale. Then,
    if ``abandon_freelist`` is set, the freelist is dropped from both meta
    pages and False is returned; otherwise True is returned so the caller
    can warn that the freelist should be abandoned.
    """
    with _annotate("ReadPage failed"):
        page, buf = read_page(path, pgid)

    if not page.is_leaf_page() and not page.is_branch_page():
        raise ValueError(f'can\'t clear elements in "{page.typ()}" page')

    count = page.count
    if count == 0:
        return False

    if start < 0 or start >= count:
        raise ValueError(f"the start index ({start}) is out of range [0, {count})")
    if (end < 0 or end > count) and end != -1:
        raise ValueError(f"the end index ({end}) is out of range [0, {count}]")
    if start > end and end != -1:
        raise ValueError(f"the start index ({start}) is bigger than the end index ({end})")
    if start == end:
        raise ValueError(f"invalid: the start index ({start}) is equal to the end index ({end})")

    pre_overflow = page.overflow
    inodes = read_inodes_from_page(page)
    if end == count or end == -1:
        kept = inodes[:start]
        page.count = start
        # The kept data already sits in place; only its size is needed.
        data_written = used_space_in_page(kept, page)
    else:
        kept = inodes[:start] + inodes[end:]
        page.count = len(kept)
        data_written = write_inodes_to_page(kept, page)

    with _annotate("ReadPageAndHWMSize failed"):
        page_size, _ = read_page_and_hwm_size(path)
    if data_written % page_size == 0:
        page.overflow = data_written // page_size - 1
    else:
        page.overflow = data_written // page_size

    datasz = page_size * (page.overflow + 1)
    with _annotate("WritePage failed"):
        write_page(path, buf[:datasz])

    if pre_overflow != page.overflow or page.is_branch_page():
        if abandon_freelist:
            clear_freelist(path)
            return False
        return True
    return False


def clear_freelist(path: str | os.PathLike) -> None:
    """Mark both meta pages as having no stored freelist."""
    with _annotate("clearFreelist on meta page 0 failed"):
        _clear_freelist_in_meta_page(path, 0)
    with _annotate("clearFreelist on meta page 1 failed"):
        _clear_freelist_in_meta_page(path, 1)


def _clear_freelist_in_meta_page(path: str | os.PathLike, page_id: int) -> None:
    with _annotate(f"ReadPage {page_id} failed"):
        _, buf = read_page(path, page_id)
    meta = load_page_meta(buf)
    meta.freelist = PGID_NO_FREELIST
    meta.checksum = meta.sum64()
    meta.store(buf)
    with _annotate(f"WritePage {page_id} failed"):
        write_page(path, buf)


def revert_meta_page(path: str | os.PathLike) -> None:
    """Replace the newer meta page with the older one.

    This drops the last transaction, which is often where corruption lies.
    """
    _, active = get_root_page(path)
    if active == 0:
        copy_page(path, 1, 0)
    else:
        copy_page(path, 0, 1)