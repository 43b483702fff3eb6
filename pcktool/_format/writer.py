"""
Writer: serializes containers to the package format.

Output order:
  1. Header (identifier, length field, opaque region) written verbatim
  2. bnk table then wem table (count + 24-byte records)
  3. Data blocks streamed from each view, bnk then wem, in index order

The writer trusts the container's records: offsets and the header length
field are written as stored. The repack engine is what recomputes them.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, BinaryIO, Iterable

from pcktool import COPY_CHUNK_SIZE, KINDS
from pcktool._format.errors import IOFailure
from pcktool._format.spec import UINT32

if TYPE_CHECKING:
    from pcktool._format.container import Container, Header, IndexRecord


def _write(sink: BinaryIO, data: bytes, element: str) -> int:
    try:
        sink.write(data)
    except OSError as e:
        raise IOFailure(f"writing {element}", e) from e
    return len(data)


def write_header(sink: BinaryIO, header: Header) -> int:
    written = _write(sink, header.identifier, "header identifier")
    written += _write(sink, UINT32.pack(header.header_and_index_length), "header and index length")
    written += _write(sink, header.opaque, "header opaque region")
    return written


def write_index_table(sink: BinaryIO, records: Iterable[IndexRecord], kind: str = "") -> int:
    records = tuple(records)
    label = f"{kind} " if kind else ""
    written = _write(sink, UINT32.pack(len(records)), f"{label}count")
    for i, rec in enumerate(records):
        written += _write(sink, rec.to_bytes(), f"{label}index {i}")
    return written


class PCKWriter:

    @staticmethod
    def write_to(
        container: Container, sink: BinaryIO, chunk_size: int = COPY_CHUNK_SIZE,
    ) -> int:
        """Write ``container`` to ``sink``. Returns bytes written.

        Views are rewound before copying, so a container can be written any
        number of times.
        """
        written = write_header(sink, container.header)
        for kind in KINDS:
            written += write_index_table(sink, container.indexes(kind), kind)
        for kind in KINDS:
            for view in container.views(kind):
                written += view.copy_to(sink, chunk_size)
        return written

    @staticmethod
    def serialize(container: Container) -> bytes:
        """Serialize a container to bytes in memory."""
        buf = io.BytesIO()
        PCKWriter.write_to(container, buf)
        return buf.getvalue()
