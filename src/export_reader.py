"""
Garmin Export Archive Reader
============================
Enumerates the entries of a Garmin account export (a ZIP, usually with
per-area ZIPs nested inside) and exposes each one as an ``ArchiveEntry``
with an async ``read_text``.

Nothing is extracted to disk: the outer archive is read from its path or
from raw bytes, nested archives are opened from memory.  Nested members
are named ``outer.zip/inner/path.json``.
"""

from __future__ import annotations

import asyncio
import io
import logging
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterator

from export_config import MAX_NESTED_ARCHIVE_DEPTH

log = logging.getLogger("export_reader")

# Errors zipfile can raise while opening or reading a damaged member.
_ZIP_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, OSError, NotImplementedError, RuntimeError)


class ArchiveReadError(RuntimeError):
    """The export container itself is corrupt or unreadable."""


@dataclass(frozen=True)
class ArchiveEntry:
    name: str
    is_dir: bool
    read_text: Callable[[], Awaitable[str]]

    @property
    def basename(self) -> str:
        return self.name.rstrip("/").rsplit("/", 1)[-1]


def _decode(raw: bytes) -> str:
    # utf-8-sig drops a leading BOM if present
    return raw.decode("utf-8-sig")


def _text_reader(zf: zipfile.ZipFile, info: zipfile.ZipInfo) -> Callable[[], Awaitable[str]]:
    async def read_text() -> str:
        raw = await asyncio.to_thread(zf.read, info)
        return _decode(raw)

    return read_text


def _failing_reader(name: str, error: Exception) -> Callable[[], Awaitable[str]]:
    async def read_text() -> str:
        raise ArchiveReadError(f"Nested archive {name} is unreadable: {error}")

    return read_text


class ArchiveEntries:
    """Entries of one export archive, walked lazily on each iteration.

    A nested archive is opened when the walk reaches it and closed once
    its last member has been yielded, so a nested entry must be read
    before the iteration moves past its archive.
    """

    def __init__(self, reader: "ZipArchiveReader"):
        self._reader = reader
        self._file_count: int | None = None

    def __iter__(self) -> Iterator[ArchiveEntry]:
        return self._reader._walk(self._reader._zip, prefix="", depth=0)

    def file_count(self) -> int:
        """Number of non-directory entries the walk yields (computed once)."""
        if self._file_count is None:
            self._file_count = self._reader._count(self._reader._zip, depth=0)
        return self._file_count


class ZipArchiveReader:
    """Read-only view over an export ZIP given as a path or raw bytes.

    Raises ``ArchiveReadError`` at construction when the outer container
    cannot be opened.  A damaged nested ZIP does not raise; it is yielded
    as a single entry whose ``read_text`` fails, so the aggregator skips it.
    """

    def __init__(self, source: str | Path | bytes, max_depth: int | None = None):
        self.max_depth = MAX_NESTED_ARCHIVE_DEPTH if max_depth is None else max_depth
        self.source_name = "<bytes>" if isinstance(source, (bytes, bytearray)) else str(source)
        try:
            if isinstance(source, (bytes, bytearray)):
                self._zip = zipfile.ZipFile(io.BytesIO(bytes(source)), "r")
            else:
                self._zip = zipfile.ZipFile(Path(source), "r")
        except (zipfile.BadZipFile, OSError, ValueError) as e:
            raise ArchiveReadError(f"Cannot open export archive {self.source_name}: {e}") from e

    # ─── Context manager ───

    def __enter__(self) -> "ZipArchiveReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    # ─── Enumeration ───

    def entries(self) -> ArchiveEntries:
        """Every entry in archive order, nested ZIPs expanded in place."""
        return ArchiveEntries(self)

    def _expands(self, info: zipfile.ZipInfo, depth: int) -> bool:
        return info.filename.lower().endswith(".zip") and depth < self.max_depth

    @staticmethod
    def _open_nested(zf: zipfile.ZipFile, info: zipfile.ZipInfo) -> zipfile.ZipFile:
        return zipfile.ZipFile(io.BytesIO(zf.read(info)), "r")

    def _count(self, zf: zipfile.ZipFile, depth: int) -> int:
        total = 0
        for info in zf.infolist():
            if info.is_dir():
                continue
            if not self._expands(info, depth):
                total += 1
                continue
            try:
                inner = self._open_nested(zf, info)
            except _ZIP_ERRORS:
                # yielded as one failing entry by the walk
                total += 1
                continue
            with inner:
                total += self._count(inner, depth + 1)
        return total

    def _walk(self, zf: zipfile.ZipFile, prefix: str, depth: int) -> Iterator[ArchiveEntry]:
        for info in zf.infolist():
            name = prefix + info.filename
            if info.is_dir():
                yield ArchiveEntry(name=name, is_dir=True, read_text=_text_reader(zf, info))
                continue

            if self._expands(info, depth):
                try:
                    inner = self._open_nested(zf, info)
                except _ZIP_ERRORS as e:
                    log.warning("Failed nested unzip (%s): %s", name, e)
                    yield ArchiveEntry(name=name, is_dir=False, read_text=_failing_reader(name, e))
                    continue
                with inner:
                    log.debug("Expanding nested archive %s (%d members)", name, len(inner.infolist()))
                    yield from self._walk(inner, prefix=name + "/", depth=depth + 1)
                continue

            yield ArchiveEntry(name=name, is_dir=False, read_text=_text_reader(zf, info))


def open_export_archive(source: str | Path | bytes, max_depth: int | None = None) -> ZipArchiveReader:
    """Open an export archive; raises ``ArchiveReadError`` if it is not a readable ZIP."""
    reader = ZipArchiveReader(source, max_depth=max_depth)
    log.info("Opened export archive %s", reader.source_name)
    return reader
