"""
Reader: header and index parsing plus lazy views onto embedded sub-files.

Only the header and both index tables are read on open. Payload bytes are
read on demand through EmbeddedView, which re-seeks the shared handle on
every read, so no sub-file is materialized until a consumer asks for it.

Usage:
    with PCKReader.open("SFX.pck") as pck:
        data = pck.wems[0].read_all()
"""

from __future__ import annotations

import builtins
import logging
from pathlib import Path
from typing import BinaryIO, Mapping

from pcktool import COPY_CHUNK_SIZE, KIND_BNK, KIND_WEM
from pcktool._format.container import Container, Header, IndexRecord
from pcktool._format.errors import IOFailure, TruncatedInput
from pcktool._format.spec import (
    IDENTIFIER_SIZE, LENGTH_FIELD_SIZE, COUNT_SIZE, RECORD_SIZE, UINT32,
    Variant, resolve_opaque_size,
)

log = logging.getLogger(__name__)


def read_exact(source: BinaryIO, size: int, element: str) -> bytes:
    try:
        data = source.read(size)
    except OSError as e:
        raise IOFailure(element, e) from e
    if len(data) != size:
        raise TruncatedInput(element, size, len(data))
    return data


class EmbeddedView:
    """Bounded cursor over a shared, seekable handle.

    ``offset``/``length`` locate the range inside ``source``. The view never
    owns the handle and stays valid only while the handle is open.
    """

    def __init__(self, source: BinaryIO, offset: int, length: int, name: str) -> None:
        if offset < 0 or length < 0:
            raise ValueError(f"Invalid range for {name}: offset={offset} length={length}")
        self._source = source
        self.offset = offset
        self.length = length
        self.name = name
        self._pos = 0

    @property
    def range_label(self) -> str:
        return f"{self.name} bytes [{self.offset}, {self.offset + self.length})"

    def readable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._pos

    def seek(self, pos: int, whence: int = 0) -> int:
        if whence == 0:
            target = pos
        elif whence == 1:
            target = self._pos + pos
        elif whence == 2:
            target = self.length + pos
        else:
            raise ValueError(f"Invalid whence: {whence}")
        if target < 0:
            raise ValueError(f"Negative seek position {target} in {self.name}")
        self._pos = target
        return self._pos

    def reset(self) -> None:
        self._pos = 0

    def read(self, size: int = -1) -> bytes:
        remaining = max(self.length - self._pos, 0)
        n = remaining if size is None or size < 0 else min(size, remaining)
        if n == 0:
            return b""
        try:
            self._source.seek(self.offset + self._pos)
        except OSError as e:
            raise IOFailure(f"seek in {self.range_label}", e) from e
        data = read_exact(self._source, n, self.range_label)
        self._pos += n
        return data

    def clone(self) -> EmbeddedView:
        """A fresh view over the same range with its own cursor."""
        return EmbeddedView(self._source, self.offset, self.length, self.name)

    def read_all(self) -> bytes:
        self.reset()
        return self.read()

    def copy_to(self, sink: BinaryIO, chunk_size: int = COPY_CHUNK_SIZE) -> int:
        """Stream the whole range into ``sink`` from its start. Returns bytes copied."""
        self.reset()
        copied = 0
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                break
            try:
                sink.write(chunk)
            except OSError as e:
                raise IOFailure(f"writing {self.range_label}", e) from e
            copied += len(chunk)
        return copied

    def __len__(self) -> int:
        return self.length

    def __repr__(self) -> str:
        return f"EmbeddedView({self.name!r}, offset={self.offset}, length={self.length})"


def parse_header(source: BinaryIO, opaque_size: int) -> Header:
    """Read identifier, length field and opaque region verbatim (no magic check)."""
    identifier = read_exact(source, IDENTIFIER_SIZE, "header identifier")
    raw_length = read_exact(source, LENGTH_FIELD_SIZE, "header and index length")
    opaque = read_exact(source, opaque_size, f"header opaque region (size {opaque_size})")
    return Header(identifier, UINT32.unpack(raw_length)[0], opaque)


def parse_index_table(source: BinaryIO, kind: str) -> tuple[IndexRecord, ...]:
    """Read a count-prefixed table of 24-byte records, in file order."""
    (count,) = UINT32.unpack(read_exact(source, COUNT_SIZE, f"{kind} count"))
    records = []
    for i in range(count):
        raw = read_exact(source, RECORD_SIZE, f"{kind} index {i}")
        records.append(IndexRecord.from_bytes(raw))
    return tuple(records)


def make_views(
    source: BinaryIO, kind: str, records: tuple[IndexRecord, ...],
) -> tuple[EmbeddedView, ...]:
    """One lazy view per record. Reads nothing from ``source``."""
    return tuple(
        EmbeddedView(source, rec.offset, rec.length, f"{rec.id}.{kind}") for rec in records
    )


def read_container(
    source: BinaryIO, opaque_size: int, closer: BinaryIO | None = None,
) -> Container:
    """Parse a container from an open, seekable binary handle."""
    header = parse_header(source, opaque_size)
    bnk_indexes = parse_index_table(source, KIND_BNK)
    wem_indexes = parse_index_table(source, KIND_WEM)
    log.debug(
        "Parsed header (opaque %d bytes), %d bnk and %d wem record(s)",
        opaque_size, len(bnk_indexes), len(wem_indexes),
    )
    return Container(
        header,
        bnk_indexes,
        wem_indexes,
        make_views(source, KIND_BNK, bnk_indexes),
        make_views(source, KIND_WEM, wem_indexes),
        closer=closer,
    )


class PCKReader:

    @classmethod
    def open(
        cls,
        path: str | Path,
        variant: Variant | None = None,
        extra_suffixes: Mapping[str, int] | None = None,
    ) -> Container:
        """Open a package file for lazy reading.

        The variant (and so the opaque region size) is resolved from the file
        name before the file is opened unless ``variant`` is given.
        """
        path = Path(path)
        if variant is not None:
            opaque_size = variant.opaque_size
        else:
            opaque_size = resolve_opaque_size(path.name, extra_suffixes)

        try:
            f = builtins_open(path, "rb")
        except OSError as e:
            raise IOFailure(f"opening {path}", e) from e
        try:
            return read_container(f, opaque_size, closer=f)
        except BaseException:
            f.close()
            raise


builtins_open = builtins.open


def open_container(
    path: str | Path,
    variant: Variant | None = None,
    extra_suffixes: Mapping[str, int] | None = None,
) -> Container:
    return PCKReader.open(path, variant, extra_suffixes)
