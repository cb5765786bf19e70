"""A small leveled logger writing to a text stream."""

from __future__ import annotations

import sys
import time
from typing import TextIO


class _Discard:
    def write(self, text: str) -> int:
        return len(text)

    def flush(self) -> None:
        pass


def _format(msg: object, args: tuple) -> str:
    text = str(msg)
    return text % args if args else text


class DefaultLogger:
    """Logger that prefixes each line with its level.

    Debug messages are dropped until :meth:`enable_debug` is called.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = sys.stderr if stream is None else stream
        self._debug = False
        self._timestamps = False

    def enable_timestamps(self) -> None:
        self._timestamps = True

    def enable_debug(self) -> None:
        self._debug = True

    def _output(self, text: str) -> None:
        if self._timestamps:
            text = time.strftime("%Y/%m/%d %H:%M:%S ") + text
        if not text.endswith("\n"):
            text += "\n"
        self.stream.write(text)

    def _log(self, level: str, msg: object, args: tuple) -> None:
        self._output(f"{level}: {_format(msg, args)}")

    def debug(self, msg: object, *args: object) -> None:
        if self._debug:
            self._log("DEBUG", msg, args)

    def info(self, msg: object, *args: object) -> None:
        self._log("INFO", msg, args)

    def warning(self, msg: object, *args: object) -> None:
        self._log("WARN", msg, args)

    def error(self, msg: object, *args: object) -> None:
        self._log("ERROR", msg, args)

    def fatal(self, msg: object, *args: object) -> None:
        """Log the message and exit the process with status 1."""
        self._log("FATAL", msg, args)
        raise SystemExit(1)

    def panic(self, msg: object, *args: object) -> None:
        """Log the message without a level and raise RuntimeError with it."""
        text = _format(msg, args)
        self._output(text)
        raise RuntimeError(text)


_DISCARD_LOGGER = DefaultLogger(_Discard())


def discard_logger() -> DefaultLogger:
    """Return the shared logger that drops everything."""
    return _DISCARD_LOGGER