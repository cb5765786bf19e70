import pytest

from boltkit.bucket import InBucket
from boltkit.guts import (
    CorruptError,
    get_active_meta_page,
    get_root_page,
    read_page,
    read_page_and_hwm_size,
    write_page,
)
from boltkit.inode import Inode, write_inodes_to_page
from boltkit.meta import Meta
from boltkit.page import FREELIST_PAGE_FLAG, LEAF_PAGE_FLAG, MAGIC, VERSION, Page

PAGE = 4096
ITEMS = [(b"alpha", b"1"), (b"beta", b"22"), (b"gamma", b"333")]


def _make_db(tmp_path, *, txids=(0, 1), roots=(3, 3), npages=4, overflow=0):
    data = bytearray(npages * PAGE)
    for slot, (txid, root) in enumerate(zip(txids, roots)):
        meta = Meta(
            magic=MAGIC,
            version=VERSION,
            page_size=PAGE,
            root=InBucket(root=root),
            freelist=2,
            pgid=npages,
            txid=txid,
        )
        meta.write(Page(data, slot * PAGE))
    freelist = Page(data, 2 * PAGE)
    freelist.id = 2
    freelist.flags = FREELIST_PAGE_FLAG
    leaf = Page(data, 3 * PAGE)
    leaf.id = 3
    leaf.flags = LEAF_PAGE_FLAG
    leaf.count = len(ITEMS)
    leaf.overflow = overflow
    write_inodes_to_page([Inode(key=k, value=v) for k, v in ITEMS], leaf)
    path = tmp_path / "db"
    path.write_bytes(bytes(data))
    return str(path)


def test_read_page_and_hwm_size(tmp_path):
    path = _make_db(tmp_path, npages=4)
    assert read_page_and_hwm_size(path) == (PAGE, 4)


def test_read_page_returns_leaf(tmp_path):
    path = _make_db(tmp_path)
    page, buf = read_page(path, 3)
    assert page.id == 3
    assert page.typ() == "leaf"
    assert len(buf) == PAGE
    assert [e.key() for e in page.leaf_page_elements()] == [k for k, _ in ITEMS]
    assert [e.value() for e in page.leaf_page_elements()] == [v for _, v in ITEMS]


def test_read_meta_pages(tmp_path):
    path = _make_db(tmp_path)
    assert read_page(path, 0)[0].typ() == "meta"
    assert read_page(path, 1)[0].id == 1
    assert read_page(path, 2)[0].typ() == "freelist"


def test_read_page_with_overflow(tmp_path):
    path = _make_db(tmp_path, npages=5, overflow=1)
    page, buf = read_page(path, 3)
    assert page.overflow == 1
    assert len(buf) == 2 * PAGE


def test_read_page_overflow_too_large(tmp_path):
    path = _make_db(tmp_path, npages=5, overflow=2)
    with pytest.raises(CorruptError, match="overflow pages"):
        read_page(path, 3)


def test_read_page_unexpected_id(tmp_path):
    path = _make_db(tmp_path, npages=5)
    with pytest.raises(CorruptError, match="unexpected Page id"):
        read_page(path, 4)


def test_read_page_beyond_end(tmp_path):
    path = _make_db(tmp_path)
    with pytest.raises(EOFError):
        read_page(path, 10)


def test_read_page_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="read Page size"):
        read_page(str(tmp_path / "nope"), 0)


def test_bad_magic(tmp_path):
    path = tmp_path / "zero"
    path.write_bytes(bytes(2 * PAGE))
    with pytest.raises(ValueError, match="magic"):
        read_page_and_hwm_size(str(path))


def test_short_file(tmp_path):
    path = tmp_path / "short"
    path.write_bytes(bytes(100))
    with pytest.raises(EOFError):
        read_page_and_hwm_size(str(path))


def test_write_page_round_trip(tmp_path):
    path = _make_db(tmp_path)
    page, buf = read_page(path, 3)
    buf[-1] = 0x7F
    write_page(path, buf)
    page2, buf2 = read_page(path, 3)
    assert buf2 == buf
    assert page2.id == 3


def test_write_page_moves_by_id(tmp_path):
    path = _make_db(tmp_path, npages=5)
    page, buf = read_page(path, 3)
    page.id = 4
    write_page(path, buf)
    moved, _ = read_page(path, 4)
    assert [e.key() for e in moved.leaf_page_elements()] == [k for k, _ in ITEMS]


def test_write_page_length_mismatch(tmp_path):
    path = _make_db(tmp_path)
    _, buf = read_page(path, 3)
    with pytest.raises(ValueError, match="WritePage"):
        write_page(path, buf[:100])


def test_active_meta_is_page_one(tmp_path):
    path = _make_db(tmp_path, txids=(2, 3))
    meta, active = get_active_meta_page(path)
    assert active == 1
    assert meta.txid == 3


def test_active_meta_is_page_zero(tmp_path):
    path = _make_db(tmp_path, txids=(4, 1))
    meta, active = get_active_meta_page(path)
    assert active == 0
    assert meta.txid == 4


def test_get_root_page(tmp_path):
    path = _make_db(tmp_path, txids=(2, 3), roots=(3, 4), npages=5)
    assert get_root_page(path) == (4, 1)
    path2 = _make_db(tmp_path / "..", txids=(4, 3), roots=(3, 4), npages=5)
    assert get_root_page(path2) == (3, 0)


def test_corrupt_error_is_value_error():
    err = CorruptError()
    assert issubclass(CorruptError, ValueError)
    assert "invalid value" in str(err)