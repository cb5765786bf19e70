# boltkit

boltkit gives low-level access to the on-disk structures of a page-based
B+tree key/value database file. These structures are pages, leaf and
branch elements, meta pages, bucket headers and the freelist. The package
also has surgery tools for repairing damaged files.

## Installation

```
pip install boltkit
```

To run the test suite:

```
pip install "boltkit[test]"
pytest
```

The package has no runtime dependencies beyond the standard library.

## Modules

- `boltkit.page` holds the page view and its helpers.
  - `Page` is a view over a byte buffer. Its fields `id`, `flags`, `count` and `overflow` can be read and set.
  - `BranchPageElement`, `LeafPageElement` and the `PageInfo` dataclass.
  - `new_page`, `load_page` and `merge_pgids`.
  - Layout constants such as `PAGE_HEADER_SIZE`, `MAGIC`, `VERSION`, `PGID_NO_FREELIST` and the page flags.
- `boltkit.inode` covers node entries.
  - `Inode` is a dataclass with `flags`, `pgid`, `key` and `value`.
  - `read_inodes_from_page` returns the entries stored on a page.
  - `write_inodes_to_page` writes entries onto a page and returns the end offset.
  - `used_space_in_page` returns the size the entries would take.
- `boltkit.bucket` holds the bucket header stored as the value of a bucket key.
  - `InBucket` has `root` and `sequence`, with `from_bytes`, `to_bytes`, `inc_sequence` and `inline_page`.
  - `load_bucket` decodes a header.
- `boltkit.meta` holds the meta page record.
  - `Meta` has `from_bytes`, `to_bytes`, `validate`, `sum64` (an FNV-1a checksum), `write`, `store`, `is_freelist_persisted` and `write_summary`.
  - `load_page_meta` decodes a meta record.
  - `validate` raises `InvalidDatabaseError`, `VersionMismatchError` or `ChecksumError`.
- `boltkit.freelist` holds free-page tracking.
  - `Freelist` keeps free page ids in one sorted list and tracks pages that transactions have freed but that are still pending.
  - Its methods are `init`, `allocate`, `free`, `rollback`, `add_readonly_txid`, `remove_readonly_txid`, `release_pending_pages`, `release`, `release_range`, `copyall`, `read`, `write`, `reload`, `no_sync_reload` and `estimated_write_page_size`.
  - `TxPending` records the pages one transaction has freed.
- `boltkit.array_freelist.ArrayFreelist` keeps free pages as a sorted list. `allocate` takes the first run of contiguous ids that is long enough.
- `boltkit.hashmap_freelist.HashMapFreelist` keeps free pages as spans of contiguous ids, indexed by their length, start and end. `merge_with_existing_span` joins a freed page with the spans next to it.
- `boltkit.guts` gives page-level file access with no transactions.
  - `read_page` reads a page together with its overflow pages.
  - `write_page` writes a page back, `read_page_and_hwm_size` reads the page size and high water mark, and `get_root_page` and `get_active_meta_page` read from the meta pages.
  - `CorruptError` is raised when a page is inconsistent.
- `boltkit.surgeon` changes the file in place to repair it.
  - `copy_page` overwrites one page with another.
  - `clear_page` and `clear_page_elements` remove elements from a branch or leaf page.
  - `clear_freelist` marks both meta pages as having no stored freelist.
  - `revert_meta_page` replaces the newer meta page with the older one.
- `boltkit.xray.XRay` walks the page tree from the root. `find_paths_to_key` returns every page path that leads to a leaf holding the key. Bucket names count as keys.
- `boltkit.verify` provides internal consistency checks. They are switched on by setting the `BOLTKIT_VERIFY` environment variable to `all` or `assert`. `enable_verifications`, `enable_all_verifications` and `disable_verifications` set this variable and return a callable that restores the old value. The callable can also be used as a context manager. A failed check raises `AssertionFailure`.
- `boltkit.fileutil.copy_file` copies a file to a path that must not exist yet. It checks that all bytes were copied.
- `boltkit.logger.DefaultLogger` is a leveled logger that writes to a text stream.
  - Debug output and timestamps are off until you call `enable_debug` or `enable_timestamps`.
  - `fatal` raises `SystemExit(1)` and `panic` raises `RuntimeError`.
  - `discard_logger()` returns a logger that drops everything.

## Examples

Find the pages that hold a key:

```python
from boltkit.xray import XRay

for path in XRay("my.db").find_paths_to_key(b"0451"):
    print(" -> ".join(str(pgid) for pgid in path))
```

Roll a file back to its previous transaction when the newest one is
damaged:

```python
from boltkit.surgeon import revert_meta_page

revert_meta_page("my.db")
```

Work with a freelist:

```python
from boltkit.array_freelist import ArrayFreelist
from boltkit.page import new_page

fl = ArrayFreelist()
fl.init([3, 4, 5, 6, 7, 9, 12, 13, 18])
start = fl.allocate(1, 3)          # 3
fl.free(2, new_page(20, 0, 0, 1))  # pages 20 and 21 become pending
fl.release_pending_pages()          # no readers open, so they are released
print(fl.free_page_ids())           # [6, 7, 9, 12, 13, 18, 20, 21]
```

Surgery changes the file in place. Work on a copy, which you can make
with `boltkit.fileutil.copy_file`.

## What it does not do

boltkit works on raw pages only. It has no parts for using the file as a
database:

- It cannot open a file as a transactional store.
- It has no buckets, cursors or transactions, and no way to get or put a key.
- It does not check a whole file for consistency.
- It has no command-line tool.

Reads and writes through `boltkit.guts` and `boltkit.surgeon` are not
safe while another program has the file open.