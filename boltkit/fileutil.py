"""File helpers."""

from __future__ import annotations

import os
import shutil


def copy_file(src_path: str | os.PathLike, dst_path: str | os.PathLike) -> None:
    """Copy a database file to a path that must not exist yet."""
    src = os.fspath(src_path)
    dst = os.fspath(dst_path)
    if not os.path.exists(src):
        raise FileNotFoundError(f'source file "{src}" not found')
    if os.path.lexists(dst):
        raise FileExistsError(f'output file "{dst}" already exists')

    try:
        src_file = open(src, "rb")
    except OSError as exc:
        raise OSError(f'failed to open source file "{src}": {exc}') from exc
    with src_file:
        try:
            dst_file = open(dst, "xb")
        except FileExistsError:
            raise FileExistsError(f'output file "{dst}" already exists') from None
        except OSError as exc:
            raise OSError(f'failed to create output file "{dst}": {exc}') from exc
        with dst_file:
            try:
                shutil.copyfileobj(src_file, dst_file)
            except OSError as exc:
                raise OSError(
                    f'failed to copy database file from "{src}" to "{dst}": {exc}'
                ) from exc
            written = dst_file.tell()
        initial_size = os.fstat(src_file.fileno()).st_size

    if initial_size != written:
        raise OSError(
            f'the byte copied ("{dst}": {written}) isn\'t equal to the initial '
            f'db size ("{src}": {initial_size})'
        )