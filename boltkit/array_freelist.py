"""Freelist that keeps the free page ids in a single sorted list."""

from __future__ import annotations

from typing import Iterable

from boltkit.freelist import Freelist
from boltkit.page import merge_pgids
from boltkit.verify import AssertionFailure, verify


class ArrayFreelist(Freelist):
    """Freelist storing free pages as one sorted list of page ids.

    Allocation scans the list for the first run of contiguous ids that is
    long enough.
    """

    def __init__(self) -> None:
        super().__init__()
        self.ids: list[int] = []

    def init(self, ids: Iterable[int] | None) -> None:
        """Reset the free pages to the given sorted ids."""
        self.ids = list(ids or ())
        self.reindex()

    def allocate(self, txid: int, n: int) -> int:
        """Take ``n`` contiguous free pages; return the first id, or 0 if none fit."""
        if not self.ids:
            return 0

        initial = previd = 0
        for i, pgid in enumerate(self.ids):
            if pgid <= 1:
                raise ValueError(f"invalid page allocation: {pgid}")

            # Start a new run when this id does not follow the previous one.
            if previd == 0 or pgid - previd != 1:
                initial = pgid

            if pgid - initial + 1 == n:
                del self.ids[i - n + 1 : i + 1]
                for taken in range(initial, initial + n):
                    self.cache.discard(taken)
                self.allocs[initial] = txid
                return initial

            previd = pgid
        return 0

    def free_count(self) -> int:
        """Return the number of free pages."""
        return len(self.ids)

    def free_page_ids(self) -> list[int]:
        """Return the sorted ids of all free pages."""
        return list(self.ids)

    def merge_spans(self, ids: Iterable[int]) -> None:
        """Add the given page ids to the free pages."""
        new_ids = sorted(ids)

        def _check() -> None:
            existing: set[int] = set()
            for pgid in self.ids:
                if pgid in existing:
                    raise AssertionFailure(
                        f"detected duplicated free page ID: {pgid} in existing ids: {self.ids}"
                    )
                existing.add(pgid)
            # Pages 0 and 1 hold meta pages, so 0 can never be a real free id.
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
                        f"{new_ids} and existing ids: {self.ids}"
                    )

        verify(_check)
        self.ids = merge_pgids(self.ids, new_ids)