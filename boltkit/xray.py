"""Walking the page tree of a database file to locate keys."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable

from boltkit.guts import _annotate, get_root_page, read_page
from boltkit.meta import load_page_meta
from boltkit.page import Page

_Callback = Callable[[Page, list[int]], None]


@dataclass(frozen=True)
class XRay:
    """Raw, read-only navigation over the pages of a database file.

    Meant for tooling and tests; it reads the whole reachable tree.
    """

    path: str | os.PathLike

    def _traverse(self, stack: list[int], callback: _Callback) -> None:
        with _annotate(f"failed reading page (stack {stack})"):
            page, data = read_page(self.path, stack[-1])
        with _annotate(f"failed callback for page (stack {stack})"):
            callback(page, stack)

        typ = page.typ()
        if typ == "meta":
            root = load_page_meta(data).root.root
            self._traverse(stack + [root], callback)
        elif typ == "branch":
            for elem in page.branch_page_elements():
                self._traverse(stack + [elem.pgid], callback)
        elif typ == "leaf":
            for elem in page.leaf_page_elements():
                if not elem.is_bucket_entry():
                    continue
                bucket = elem.bucket()
                if bucket.root > 0:
                    self._traverse(stack + [bucket.root], callback)
                else:
                    inline = bucket.inline_page(elem.value())
                    with _annotate(f"failed callback for inline page  (stack {stack})"):
                        callback(inline, stack)

    def find_paths_to_key(self, key: bytes) -> list[list[int]]:
        """Return every page path from the root to a leaf holding ``key``.

        Bucket names count as keys too. Keys in an inline bucket are reported
        with the path of the page that holds the bucket.
        """
        found: list[list[int]] = []

        def collect(page: Page, stack: list[int]) -> None:
            if page.typ() != "leaf":
                return
            if any(elem.key() == key for elem in page.leaf_page_elements()):
                found.extend(
                    list(stack) for elem in page.leaf_page_elements() if elem.key() == key
                )

        root, _ = get_root_page(self.path)
        self._traverse([root], collect)
        return found