"""Tracking of free pages and pages waiting to be released by transactions."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Iterable

from boltkit.page import (
    FREELIST_PAGE_FLAG,
    PAGE_HEADER_SIZE,
    PGID_SIZE,
    Page,
    merge_pgids,
)
from boltkit.verify import AssertionFailure, verify

_U64_MASK = 0xFFFFFFFFFFFFFFFF
_MAX_TXID = _U64_MASK
_COUNT_OVERFLOW = 0xFFFF


@dataclass
class TxPending:
    """Pages freed by one transaction that cannot be reused yet."""

    ids: list[int] = field(default_factory=list)
    alloctx: list[int] = field(default_factory=list)  # txids that allocated the ids
    last_release_begin: int = 0  # beginning txid of the last matching release_range


class Freelist:
    """A freelist keeping the free page ids as one sorted list.

    Free pages can be allocated again at once. Pages freed by a write
    transaction stay pending until no reader can still see them. Subclasses
    may replace the storage of free pages by overriding ``init``,
    ``allocate``, ``free_count``, ``free_page_ids`` and ``merge_spans``.
    """

    def __init__(self) -> None:
        self.readonly_txids: list[int] = []
        self.allocs: dict[int, int] = {}  # pgid -> txid that allocated it
        self.cache: set[int] = set()  # all free and pending page ids
        self.pending: dict[int, TxPending] = {}  # txid -> pages it freed
        self._ids: list[int] = []

    # Storage of free pages.

    def init(self, ids: Iterable[int] | None) -> None:
        """Reset the free pages to the given sorted ids."""
        self._ids = list(ids or ())
        self.reindex()

    def allocate(self, txid: int, n: int) -> int:
        """Take ``n`` contiguous free pages; return the first id, or 0 if none fit."""
        if not self._ids:
            return 0

        initial = previd = 0
        for i, pgid in enumerate(self._ids):
            if pgid <= 1:
                raise ValueError(f"invalid page allocation: {pgid}")

            # Start a new run when this id does not follow the previous one.
            if previd == 0 or pgid - previd != 1:
                initial = pgid

            if pgid - initial + 1 == n:
                del self._ids[i - n + 1 : i + 1]
                for taken in range(initial, initial + n):
                    self.cache.discard(taken)
                self.allocs[initial] = txid
                return initial

            previd = pgid
        return 0

    def free_count(self) -> int:
        """Return the number of free pages."""
        return len(self._ids)

    def free_page_ids(self) -> list[int]:
        """Return the sorted ids of all free pages."""
        return list(self._ids)

    def merge_spans(self, ids: Iterable[int]) -> None:
        """Add the given page ids to the free pages."""
        new_ids = sorted(ids)

        def _check() -> None:
            existing: set[int] = set()
            for pgid in self._ids:
                if pgid in existing:
                    raise AssertionFailure(
                        f"detected duplicated free page ID: {pgid} in existing ids: {self._ids}"
                    )
                existing.add(pgid)
            prev = 0
            for pgid in new_ids:
                if pgid == prev:
                    raise AssertionFailure(
                        f"detected duplicated free ID: {pgid} in ids: {new_ids}"
                    )
                prev = pgid
                if pgid in existing:
                    raise AssertionFailure(
                        f"detected overlapped free page ID: {pgid} between ids: "
                        f"{new_ids} and existing ids: {self._ids}"
                    )

        verify(_check)
        self._ids = merge_pgids(self._ids, new_ids)

    # Pending pages and transactions.

    def pending_page_ids(self) -> dict[int, TxPending]:
        """Return the pending pages keyed by the transaction that freed them."""
        return self.pending

    def pending_count(self) -> int:
        """Return the number of pending pages."""
        return sum(len(txp.ids) for txp in self.pending.values())

    def count(self) -> int:
        """Return the number of free and pending pages."""
        return self.free_count() + self.pending_count()

    def freed(self, pgid: int) -> bool:
        """Return True if the page is free or pending."""
        return pgid in self.cache

    def free(self, txid: int, page: Page) -> None:
        """Mark a page and its overflow pages as freed by a transaction."""
        page_id = page.id
        if page_id <= 1:
            raise ValueError(f"cannot free page 0 or 1: {page_id}")

        txp = self.pending.get(txid)
        if txp is None:
            txp = self.pending[txid] = TxPending()

        alloc_txid = self.allocs.get(page_id, 0)

        def _check() -> None:
            if alloc_txid == txid:
                raise RuntimeError(
                    f"free: freed page ({page_id}) was allocated by the same transaction ({txid})"
                )

        verify(_check)
        self.allocs.pop(page_id, None)

        for pgid in range(page_id, page_id + page.overflow + 1):
            if pgid in self.cache:
                raise ValueError(f"page {pgid} already freed")
            txp.ids.append(pgid)
            txp.alloctx.append(alloc_txid)
            self.cache.add(pgid)

    def rollback(self, txid: int) -> None:
        """Undo the frees and allocations made by a transaction."""
        txp = self.pending.get(txid)
        if txp is None:
            return
        for pgid, alloc_txid in zip(txp.ids, txp.alloctx):
            self.cache.discard(pgid)
            if alloc_txid == 0:
                continue
            if alloc_txid == txid:
                # A writer never frees a page it allocated itself.
                raise RuntimeError(
                    f"rollback: freed page ({pgid}) was allocated by the same transaction ({txid})"
                )
            self.allocs[pgid] = alloc_txid
        del self.pending[txid]

        for pgid in [p for p, tid in self.allocs.items() if tid == txid]:
            del self.allocs[pgid]

    def add_readonly_txid(self, txid: int) -> None:
        """Register an open read-only transaction."""
        self.readonly_txids.append(txid)

    def remove_readonly_txid(self, txid: int) -> None:
        """Forget a read-only transaction once it has closed."""
        if txid in self.readonly_txids:
            self.readonly_txids.remove(txid)

    def release_pending_pages(self) -> None:
        """Free the pending pages no open read-only transaction can still see."""
        self.readonly_txids.sort()
        minid = self.readonly_txids[0] if self.readonly_txids else _MAX_TXID
        if minid > 0:
            self.release(minid - 1)
        # Pages both allocated and freed between two readers are also safe.
        for tid in self.readonly_txids:
            self.release_range(minid, (tid - 1) & _U64_MASK)
            minid = (tid + 1) & _U64_MASK
        self.release_range(minid, _MAX_TXID)

    def release(self, txid: int) -> None:
        """Free every page pending for ``txid`` or an older transaction."""
        released: list[int] = []
        for tid in [tid for tid in self.pending if tid <= txid]:
            released.extend(self.pending.pop(tid).ids)
        self.merge_spans(released)

    def release_range(self, begin: int, end: int) -> None:
        """Free pending pages both allocated and freed within ``[begin, end]``."""
        if begin > end:
            return
        released: list[int] = []
        for tid, txp in list(self.pending.items()):
            if tid < begin or tid > end:
                continue
            if txp.last_release_begin == begin:
                continue
            kept_ids: list[int] = []
            kept_alloctx: list[int] = []
            for pgid, alloc_txid in zip(txp.ids, txp.alloctx):
                if begin <= alloc_txid <= end:
                    released.append(pgid)
                else:
                    kept_ids.append(pgid)
                    kept_alloctx.append(alloc_txid)
            txp.ids = kept_ids
            txp.alloctx = kept_alloctx
            txp.last_release_begin = begin
            if not txp.ids:
                del self.pending[tid]
        self.merge_spans(released)

    def copyall(self) -> list[int]:
        """Return all free and pending page ids as one sorted list."""
        pending = sorted(pgid for txp in self.pending.values() for pgid in txp.ids)
        return merge_pgids(self.free_page_ids(), pending)

    # Persistence.

    def reload(self, page: Page) -> None:
        """Read the freelist from a page, leaving out pages that are pending."""
        self.read(page)
        self.no_sync_reload(self.free_page_ids())

    def no_sync_reload(self, pgids: Iterable[int]) -> None:
        """Set the free pages to ``pgids`` minus the pages that are pending."""
        pending = {pgid for txp in self.pending.values() for pgid in txp.ids}
        self.init([pgid for pgid in pgids if pgid not in pending])

    def reindex(self) -> None:
        """Rebuild the lookup set of free and pending pages."""
        self.cache = set(self.free_page_ids())
        for txp in self.pending.values():
            self.cache.update(txp.ids)

    def read(self, page: Page) -> None:
        """Initialise the free pages from a freelist page."""
        if not page.is_freelist_page():
            raise ValueError(
                f"invalid freelist page: {page.id}, page type is {page.typ()}"
            )
        self.init(sorted(page.freelist_page_ids()))

    def estimated_write_page_size(self) -> int:
        """Return an upper bound of the bytes :meth:`write` will use."""
        n = self.count()
        if n >= _COUNT_OVERFLOW:
            # The first element then holds the count.
            n += 1
        return PAGE_HEADER_SIZE + PGID_SIZE * n

    def write(self, page: Page) -> None:
        """Write all free and pending page ids onto a freelist page."""
        page.flags = FREELIST_PAGE_FLAG
        total = self.count()
        start = page.offset + PAGE_HEADER_SIZE
        if total == 0:
            page.count = 0
        elif total < _COUNT_OVERFLOW:
            page.count = total
            struct.pack_into(f"<{total}Q", page.buf, start, *self.copyall())
        else:
            # The header count is too small; store the count as the first id.
            page.count = _COUNT_OVERFLOW
            struct.pack_into(f"<{total + 1}Q", page.buf, start, total, *self.copyall())