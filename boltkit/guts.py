"""Low-level, non-transactional access to the pages of a database file."""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import BinaryIO, Iterator

from boltkit.meta import Meta, load_page_meta
from boltkit.page import MAGIC, Page, load_page

_META_CHUNK = 4096
_U32_MASK = 0xFFFFFFFF


class CorruptError(ValueError):
    """Raised when a data file is found to be inconsistent."""

    def __init__(self, msg: str = "invalid value") -> None:
        super().__init__(msg)


@contextmanager
def _annotate(prefix: str) -> Iterator[None]:
    """Re-raise file and format errors with ``prefix`` added to the message."""
    try:
        yield
    except (OSError, ValueError, EOFError) as exc:
        raise type(exc)(f"{prefix}: {exc}") from exc


def _read_at(f: BinaryIO, offset: int, size: int) -> bytearray:
    f.seek(offset)
    data = f.read(size)
    if len(data) != size:
        raise EOFError("unexpected EOF")
    return bytearray(data)


def read_page(path: str | os.PathLike, page_id: int) -> tuple[Page, bytearray]:
    """Read a page, with all its overflow pages, from the file at ``path``.

    Returns the page view and the buffer holding the page data.
    """
    with _annotate("read Page size"):
        page_size, hwm = read_page_and_hwm_size(path)

    with open(path, "rb") as f:
        offset = page_id * page_size
        buf = _read_at(f, offset, page_size)
        page = load_page(buf)
        if page.id != page_id:
            raise CorruptError(
                f"error: invalid value due to unexpected Page id: {page.id} != {page_id}"
            )
        overflow = page.overflow
        # Two meta pages and the page itself cannot be overflow pages.
        limit = ((hwm & _U32_MASK) - 3) & _U32_MASK
        if overflow >= limit:
            raise CorruptError(
                f"error: invalid value, Page claims to have {overflow} overflow pages "
                f"(>=hwm={hwm}). Interrupting to avoid risky OOM"
            )
        if overflow == 0:
            return page, buf

        buf = _read_at(f, offset, (overflow + 1) * page_size)
        page = load_page(buf)
        if page.id != page_id:
            raise CorruptError(
                f"error: invalid value due to unexpected Page id: {page.id} != {page_id}"
            )
        return page, buf


def write_page(path: str | os.PathLike, page_buf) -> None:
    """Write a page buffer back at the position given by its page id."""
    page = load_page(page_buf)
    page_size, _ = read_page_and_hwm_size(path)
    expected = page_size * (page.overflow + 1)
    if expected != len(page_buf):
        raise ValueError(
            f"WritePage: len(buf):{len(page_buf)} != pageSize*(overflow+1):{expected}"
        )
    with open(path, "r+b") as f:
        f.seek(page.id * page_size)
        f.write(bytes(page_buf))


def read_page_and_hwm_size(path: str | os.PathLike) -> tuple[int, int]:
    """Return the page size and the high water mark (last page id + 1)."""
    with open(path, "rb") as f:
        buf = f.read(_META_CHUNK)
    if len(buf) != _META_CHUNK:
        raise EOFError("unexpected EOF")
    meta = load_page_meta(buf)
    if meta.magic != MAGIC:
        raise ValueError("the Meta Page has wrong (unexpected) magic")
    return meta.page_size, meta.pgid


def get_root_page(path: str | os.PathLike) -> tuple[int, int]:
    """Return the root page id and the id of the active meta page."""
    meta, active = get_active_meta_page(path)
    return meta.root.root, active


def get_active_meta_page(path: str | os.PathLike) -> tuple[Meta, int]:
    """Return the meta with the newer transaction and its page id (0 or 1)."""
    _, buf0 = read_page(path, 0)
    meta0 = load_page_meta(buf0)
    _, buf1 = read_page(path, 1)
    meta1 = load_page_meta(buf1)
    if meta0.txid < meta1.txid:
        return meta1, 1
    return meta0, 0