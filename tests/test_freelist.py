import struct

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from boltkit.freelist import Freelist, TxPending
from boltkit.page import (
    BRANCH_PAGE_FLAG,
    FREELIST_PAGE_FLAG,
    LEAF_PAGE_FLAG,
    load_page,
    new_page,
)
from boltkit.verify import enable_all_verifications


def all_pending_pages(pending):
    return sorted(pgid for txp in pending.values() for pgid in txp.ids)


def require_pages(f, free_ids, pending_ids):
    assert f.count() == f.free_count() + f.pending_count()
    assert f.free_page_ids() == free_ids
    assert f.free_count() == len(free_ids)
    pp = all_pending_pages(f.pending_page_ids())
    assert pp == pending_ids
    assert f.pending_count() == len(pp)
    for pgid in f.free_page_ids():
        assert f.freed(pgid)
    for pgid in pp:
        assert f.freed(pgid)


def test_free():
    f = Freelist()
    f.free(100, new_page(12, 0, 0, 0))
    assert f.pending_page_ids()[100].ids == [12]


def test_free_overflow():
    f = Freelist()
    f.free(100, new_page(12, 0, 0, 3))
    assert f.pending_page_ids()[100].ids == [12, 13, 14, 15]


def test_free_double_free_raises():
    f = Freelist()
    f.free(100, new_page(12, 0, 0, 3))
    with pytest.raises(ValueError):
        f.free(100, new_page(12, 0, 0, 3))


@pytest.mark.parametrize("pgid", [0, 1])
def test_free_meta_raises(pgid):
    f = Freelist()
    with pytest.raises(ValueError):
        f.free(100, new_page(pgid, 0, 0, 0))


def test_free_freelist_page():
    f = Freelist()
    f.free(100, new_page(12, FREELIST_PAGE_FLAG, 0, 0))
    pp = f.pending_page_ids()[100]
    assert pp.ids == [12]
    assert pp.alloctx == [0]


def test_free_freelist_alloctx():
    f = Freelist()
    f.free(100, new_page(12, FREELIST_PAGE_FLAG, 0, 0))
    f.rollback(100)
    assert f.free_page_ids() == []
    assert f.pending_page_ids() == {}
    assert not f.freed(12)

    f.free(101, new_page(12, FREELIST_PAGE_FLAG, 0, 0))
    assert f.freed(12)
    assert f.pending_page_ids()[101].ids == [12]
    f.release_pending_pages()
    assert f.freed(12)
    assert f.pending_page_ids() == {}
    assert f.free_page_ids() == [12]


def test_release():
    f = Freelist()
    f.free(100, new_page(12, 0, 0, 1))
    f.free(100, new_page(9, 0, 0, 0))
    f.free(102, new_page(39, 0, 0, 0))
    f.release(100)
    f.release(101)
    assert f.free_page_ids() == [9, 12, 13]
    f.release(102)
    assert f.free_page_ids() == [9, 12, 13, 39]


RELEASE_RANGE_CASES = [
    ("single pending in range", [(3, 1, 100, 200)], [(1, 300)], [3]),
    ("single pending with minimum end range", [(3, 1, 100, 200)], [(1, 200)], [3]),
    ("single pending outside minimum end range", [(3, 1, 100, 200)], [(1, 199)], []),
    ("single pending with minimum begin range", [(3, 1, 100, 200)], [(100, 300)], [3]),
    ("single pending outside minimum begin range", [(3, 1, 100, 200)], [(101, 300)], []),
    ("single pending in minimum range", [(3, 1, 199, 200)], [(199, 200)], [3]),
    (
        "single pending and read transaction at 199",
        [(3, 1, 199, 200)],
        [(100, 198), (200, 300)],
        [],
    ),
    (
        "adjacent pending and read transactions at 199, 200",
        [(3, 1, 199, 200), (4, 1, 200, 201)],
        [(100, 198), (200, 199), (201, 300)],
        [],
    ),
    (
        "out of order ranges",
        [(3, 1, 199, 200), (4, 1, 200, 201)],
        [(201, 199), (201, 200), (200, 200)],
        [],
    ),
    (
        "multiple pending, read transaction at 150",
        [
            (3, 1, 100, 200),
            (4, 1, 100, 125),
            (5, 1, 125, 150),
            (6, 1, 125, 175),
            (7, 2, 150, 175),
            (9, 2, 175, 200),
        ],
        [(50, 149), (151, 300)],
        [4, 9, 10],
    ),
]


@pytest.mark.parametrize(
    "title, pages, ranges, want_free",
    RELEASE_RANGE_CASES,
    ids=[case[0] for case in RELEASE_RANGE_CASES],
)
def test_release_range(title, pages, ranges, want_free):
    f = Freelist()
    ids = [pgid + i for pgid, n, _, _ in pages for i in range(n)]
    f.init(ids)
    for _, n, alloc_txn, _ in pages:
        f.allocate(alloc_txn, n)
    for pgid, n, _, free_txn in pages:
        f.free(free_txn, new_page(pgid, 0, 0, n - 1))
    for begin, end in ranges:
        f.release_range(begin, end)
    assert f.free_page_ids() == want_free


def test_init():
    buf = bytearray(4096)
    f = Freelist()
    f.init([5, 6, 8])
    p = load_page(buf)
    f.write(p)

    f2 = Freelist()
    f2.read(p)
    assert f2.free_page_ids() == [5, 6, 8]

    f2.init([])
    assert f2.free_page_ids() == []


def test_reload():
    buf = bytearray(4096)
    f = Freelist()
    f.init([5, 6, 8])
    p = load_page(buf)
    f.write(p)

    f2 = Freelist()
    f2.read(p)
    assert f2.free_page_ids() == [5, 6, 8]

    f2.free(5, new_page(10, LEAF_PAGE_FLAG, 0, 2))
    f2.reload(p)

    assert f2.free_page_ids() == [5, 6, 8]
    assert f2.pending_page_ids()[5].ids == [10, 11, 12]


def test_read():
    buf = bytearray(4096)
    page = load_page(buf)
    page.flags = FREELIST_PAGE_FLAG
    page.count = 2
    struct.pack_into("<2Q", buf, 16, 23, 50)

    f = Freelist()
    f.read(page)
    assert f.free_page_ids() == [23, 50]


def test_read_non_freelist_page_raises():
    buf = bytearray(4096)
    page = load_page(buf)
    page.flags = BRANCH_PAGE_FLAG
    page.count = 2
    f = Freelist()
    with pytest.raises(ValueError):
        f.read(page)


def test_write():
    buf = bytearray(4096)
    f = Freelist()
    f.init([12, 39])
    f.pending_page_ids()[100] = TxPending(ids=[28, 11])
    f.pending_page_ids()[101] = TxPending(ids=[3])
    p = load_page(buf)
    f.write(p)

    f2 = Freelist()
    f2.read(p)
    assert f2.free_page_ids() == [3, 11, 12, 28, 39]


def test_e2e_happy_path():
    f = Freelist()
    f.init([])
    require_pages(f, [], [])

    assert f.allocate(1, 5) == 0
    f.free(2, new_page(5, LEAF_PAGE_FLAG, 0, 0))
    f.free(2, new_page(3, LEAF_PAGE_FLAG, 0, 0))
    f.free(2, new_page(8, LEAF_PAGE_FLAG, 0, 0))
    require_pages(f, [], [3, 5, 8])

    f.add_readonly_txid(3)
    f.release_pending_pages()
    require_pages(f, [3, 5, 8], [])

    assert f.allocate(4, 2) == 0
    expected = {3, 5, 8}
    for _ in range(3):
        allocated = f.allocate(4, 1)
        assert allocated in expected
        assert not f.freed(allocated)
        expected.discard(allocated)
    assert expected == set()
    assert f.allocate(4, 1) == 0


def test_e2e_multi_span_overflows():
    f = Freelist()
    f.init([])
    f.free(10, new_page(20, LEAF_PAGE_FLAG, 0, 1))
    f.free(10, new_page(25, LEAF_PAGE_FLAG, 0, 2))
    f.free(10, new_page(35, LEAF_PAGE_FLAG, 0, 3))
    f.free(10, new_page(39, LEAF_PAGE_FLAG, 0, 2))
    f.free(10, new_page(45, LEAF_PAGE_FLAG, 0, 4))
    all_ids = [20, 21, 25, 26, 27, 35, 36, 37, 38, 39, 40, 41, 45, 46, 47, 48, 49]
    require_pages(f, [], all_ids)
    f.release_pending_pages()
    require_pages(f, all_ids, [])

    for n, expected_start in zip([7, 5, 3, 2], [35, 45, 25, 20]):
        allocated = f.allocate(11, n)
        assert allocated == expected_start
        for i in range(n):
            assert not f.freed(allocated + i)


def test_e2e_rollbacks():
    f = Freelist()
    f.init([])
    f.free(2, new_page(5, LEAF_PAGE_FLAG, 0, 1))
    f.free(2, new_page(8, LEAF_PAGE_FLAG, 0, 0))
    require_pages(f, [], [5, 6, 8])
    f.rollback(2)
    require_pages(f, [], [])

    f.free(4, new_page(13, LEAF_PAGE_FLAG, 0, 3))
    require_pages(f, [], [13, 14, 15, 16])
    f.release_pending_pages()
    require_pages(f, [13, 14, 15, 16], [])
    f.rollback(1337)
    require_pages(f, [13, 14, 15, 16], [])


def test_e2e_rollback_raises():
    f = Freelist()
    f.init([5])
    require_pages(f, [5], [])
    f.allocate(5, 1)
    with pytest.raises(RuntimeError):
        f.free(5, new_page(5, LEAF_PAGE_FLAG, 0, 0))
        f.rollback(5)


def test_free_same_transaction_raises_with_verification():
    f = Freelist()
    f.init([3])
    assert f.allocate(7, 1) == 3
    with enable_all_verifications():
        with pytest.raises(RuntimeError):
            f.free(7, new_page(3, LEAF_PAGE_FLAG, 0, 0))


def test_e2e_reload():
    f = Freelist()
    f.init([])
    f.free(2, new_page(5, LEAF_PAGE_FLAG, 0, 1))
    f.free(2, new_page(8, LEAF_PAGE_FLAG, 0, 0))
    f.release_pending_pages()
    require_pages(f, [5, 6, 8], [])
    buf = bytearray(4096)
    p = load_page(buf)
    f.write(p)

    f.free(3, new_page(3, LEAF_PAGE_FLAG, 0, 1))
    f.free(3, new_page(10, LEAF_PAGE_FLAG, 0, 2))
    require_pages(f, [5, 6, 8], [3, 4, 10, 11, 12])

    other_buf = bytearray(4096)
    px = load_page(other_buf)
    f.write(px)

    loaded = Freelist()
    loaded.init([])
    loaded.read(px)
    require_pages(loaded, [3, 4, 5, 6, 8, 10, 11, 12], [])
    loaded.reload(p)
    require_pages(loaded, [5, 6, 8], [])

    f = Freelist()
    f.init([])
    f.free(5, new_page(5, LEAF_PAGE_FLAG, 0, 4))
    f.reload(p)
    require_pages(f, [], [5, 6, 7, 8, 9])


def test_e2e_serde_happy_path():
    f = Freelist()
    f.init([])
    f.free(2, new_page(5, LEAF_PAGE_FLAG, 0, 1))
    f.free(2, new_page(8, LEAF_PAGE_FLAG, 0, 0))
    f.release_pending_pages()
    require_pages(f, [5, 6, 8], [])

    f.free(3, new_page(3, LEAF_PAGE_FLAG, 0, 1))
    f.free(3, new_page(10, LEAF_PAGE_FLAG, 0, 2))
    require_pages(f, [5, 6, 8], [3, 4, 10, 11, 12])

    buf = bytearray(4096)
    p = load_page(buf)
    assert f.estimated_write_page_size() == 80
    f.write(p)

    loaded = Freelist()
    loaded.init([])
    loaded.read(p)
    require_pages(loaded, [3, 4, 5, 6, 8, 10, 11, 12], [])


@pytest.mark.parametrize("size", [0, 1, 10, 100, 1000, 0xFFFF, 0xFFFF + 1, 0xFFFF * 2])
def test_e2e_serde_sizes(size):
    f = Freelist()
    expected = []
    for i in range(size):
        pgid = i + 2
        f.free(1, new_page(pgid, LEAF_PAGE_FLAG, 0, 0))
        expected.append(pgid)
    f.release_pending_pages()
    require_pages(f, expected, [])

    buf = bytearray(f.estimated_write_page_size())
    p = load_page(buf)
    f.write(p)
    assert p.count == min(size, 0xFFFF)

    loaded = Freelist()
    loaded.read(p)
    require_pages(loaded, expected, [])


def test_init_and_free_page_ids():
    f = Freelist()
    exp = [3, 4, 5, 6, 7, 9, 12, 13, 18]
    f.init(exp)
    assert f.free_page_ids() == exp

    f2 = Freelist()
    f2.init([])
    assert f2.free_page_ids() == []


def test_remove_readonly_txid_allows_release():
    f = Freelist()
    f.free(2, new_page(10, LEAF_PAGE_FLAG, 0, 0))
    f.free(4, new_page(11, LEAF_PAGE_FLAG, 0, 0))
    f.free(6, new_page(12, LEAF_PAGE_FLAG, 0, 0))
    f.add_readonly_txid(3)
    f.add_readonly_txid(5)
    f.remove_readonly_txid(3)
    f.release_pending_pages()
    require_pages(f, [10, 11], [12])


def test_copyall_merges_free_and_pending():
    f = Freelist()
    f.init([4, 9])
    f.free(7, new_page(6, LEAF_PAGE_FLAG, 0, 1))
    f.free(8, new_page(2, LEAF_PAGE_FLAG, 0, 0))
    assert f.copyall() == [2, 4, 6, 7, 9]
    assert f.count() == 5


def test_allocate_reserved_page_raises():
    f = Freelist()
    f.init([1])
    with pytest.raises(ValueError):
        f.allocate(1, 1)


@settings(max_examples=50)
@given(st.sets(st.integers(min_value=2, max_value=10_000), max_size=200))
def test_write_read_round_trip(ids):
    f = Freelist()
    f.init(sorted(ids))
    buf = bytearray(f.estimated_write_page_size())
    page = load_page(buf)
    f.write(page)
    loaded = Freelist()
    loaded.read(page)
    assert loaded.free_page_ids() == sorted(ids)
    assert all(loaded.freed(pgid) for pgid in ids)