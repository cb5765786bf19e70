"""Freelist that indexes runs of contiguous free pages by their length."""

from __future__ import annotations

from typing import Iterable

from boltkit.freelist import Freelist
from boltkit.verify import AssertionFailure, check, verify


class HashMapFreelist(Freelist):
    """Freelist storing free pages as spans of contiguous ids.

    ``freemaps`` maps a span length to the set of span starts of that length,
    ``forward_map`` maps a span start to its length and ``backward_map`` maps
    a span end to its length.
    """

    def __init__(self) -> None:
        super().__init__()
        self.free_pages_count = 0
        self.freemaps: dict[int, set[int]] = {}
        self.forward_map: dict[int, int] = {}
        self.backward_map: dict[int, int] = {}

    def init(self, ids: Iterable[int] | None) -> None:
        """Reset the free pages to the given sorted ids."""
        pgids = list(ids or ())
        self.free_pages_count = 0
        self.freemaps = {}
        self.forward_map = {}
        self.backward_map = {}

        if not pgids:
            return

        if any(a > b for a, b in zip(pgids, pgids[1:])):
            raise ValueError("pgids not sorted")

        start = pgids[0]
        size = 1
        for prev, pgid in zip(pgids, pgids[1:]):
            if pgid == prev + 1:
                size += 1
            else:
                self._add_span(start, size)
                start = pgid
                size = 1

        if size != 0 and start != 0:
            self._add_span(start, size)

        self.reindex()

    def allocate(self, txid: int, n: int) -> int:
        """Take ``n`` contiguous free pages; return the first id, or 0 if none fit."""
        if n == 0:
            return 0

        starts = self.freemaps.get(n)
        if starts:
            pid = min(starts)
            self._del_span(pid, n)
            self._take(txid, pid, n)
            return pid

        # Otherwise cut the request from the smallest span that is larger.
        for size in sorted(s for s in self.freemaps if s >= n):
            starts = self.freemaps[size]
            if not starts:
                continue
            pid = min(starts)
            self._del_span(pid, size)
            self._take(txid, pid, n)
            self._add_span(pid + n, size - n)
            return pid

        return 0

    def _take(self, txid: int, pid: int, n: int) -> None:
        self.allocs[pid] = txid
        for taken in range(pid, pid + n):
            self.cache.discard(taken)

    def free_count(self) -> int:
        """Return the number of free pages."""

        def _check() -> None:
            expected = sum(self.forward_map.values())
            check(
                self.free_pages_count == expected,
                "freePagesCount (%d) is out of sync with free pages map (%d)",
                self.free_pages_count,
                expected,
            )

        verify(_check)
        return self.free_pages_count

    def free_page_ids(self) -> list[int]:
        """Return the sorted ids of all free pages."""
        if self.free_count() == 0:
            return []
        result: list[int] = []
        for start in sorted(self.forward_map):
            result.extend(range(start, start + self.forward_map[start]))
        return result

    def _add_span(self, start: int, size: int) -> None:
        self.backward_map[start - 1 + size] = size
        self.forward_map[start] = size
        self.freemaps.setdefault(size, set()).add(start)
        self.free_pages_count += size

    def _del_span(self, start: int, size: int) -> None:
        self.forward_map.pop(start, None)
        self.backward_map.pop(start + size - 1, None)
        starts = self.freemaps.get(size)
        if starts is not None:
            starts.discard(start)
            if not starts:
                del self.freemaps[size]
        self.free_pages_count -= size

    def merge_spans(self, ids: Iterable[int]) -> None:
        """Add the given page ids to the free pages, joining adjacent spans."""
        new_ids = list(ids)

        def _check() -> None:
            from_freemaps = self._ids_from_freemaps()
            if from_freemaps != self._ids_from_forward_map():
                raise AssertionFailure(
                    f"Detected mismatch, freemaps: {self.freemaps}, forward_map: {self.forward_map}"
                )
            if from_freemaps != self._ids_from_backward_map():
                raise AssertionFailure(
                    f"Detected mismatch, freemaps: {self.freemaps}, backward_map: {self.backward_map}"
                )
            prev = 0
            for pgid in sorted(new_ids):
                if pgid == prev:
                    raise AssertionFailure(
                        f"detected duplicated free ID: {pgid} in ids: {sorted(new_ids)}"
                    )
                prev = pgid
                if pgid in from_freemaps:
                    raise AssertionFailure(
                        f"detected overlapped free page ID: {pgid} between ids: "
                        f"{sorted(new_ids)} and existing freemaps: {self.freemaps}"
                    )

        verify(_check)
        for pgid in new_ids:
            self.merge_with_existing_span(pgid)

    def merge_with_existing_span(self, pgid: int) -> None:
        """Add one free page, merging it with the spans just before and after it."""
        prev = pgid - 1
        nxt = pgid + 1
        new_start = pgid
        new_size = 1

        prev_size = self.backward_map.get(prev)
        if prev_size is not None:
            self._del_span(prev + 1 - prev_size, prev_size)
            new_start -= prev_size
            new_size += prev_size

        next_size = self.forward_map.get(nxt)
        if next_size is not None:
            self._del_span(nxt, next_size)
            new_size += next_size

        self._add_span(new_start, new_size)

    def _ids_from_freemaps(self) -> set[int]:
        ids: set[int] = set()
        for size, starts in self.freemaps.items():
            for start in starts:
                for pgid in range(start, start + size):
                    if pgid in ids:
                        raise AssertionFailure(
                            f"detected duplicated free page ID: {pgid} in freemaps: {self.freemaps}"
                        )
                    ids.add(pgid)
        return ids

    def _ids_from_forward_map(self) -> set[int]:
        ids: set[int] = set()
        for start, size in self.forward_map.items():
            for pgid in range(start, start + size):
                if pgid in ids:
                    raise AssertionFailure(
                        f"detected duplicated free page ID: {pgid} in forward_map: {self.forward_map}"
                    )
                ids.add(pgid)
        return ids

    def _ids_from_backward_map(self) -> set[int]:
        ids: set[int] = set()
        for end, size in self.backward_map.items():
            for pgid in range(end - size + 1, end + 1):
                if pgid in ids:
                    raise AssertionFailure(
                        f"detected duplicated free page ID: {pgid} in backward_map: {self.backward_map}"
                    )
                ids.add(pgid)
        return ids