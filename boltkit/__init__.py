"""Low-level page, meta, freelist and repair tools for B+tree database files."""

__version__ = "0.1.0"

__all__ = [
    "array_freelist",
    "bucket",
    "fileutil",
    "freelist",
    "guts",
    "hashmap_freelist",
    "inode",
    "logger",
    "meta",
    "page",
    "surgeon",
    "verify",
    "xray",
]