"""
Container model: header, index records and the parsed container value.

A Container pairs each index record with an EmbeddedView positionally:
``bnk_indexes[i]`` describes ``bnks[i]`` and ``wem_indexes[i]`` describes
``wems[i]``. Containers are values: the repack engine builds a new one rather
than editing an existing one in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Iterator

from pcktool import COPY_CHUNK_SIZE, KIND_BNK, KIND_WEM, KINDS
from pcktool._format.errors import IOFailure
from pcktool._format.spec import RECORD, RECORD_FIELDS, data_area_start

if TYPE_CHECKING:
    from pcktool._format.reader import EmbeddedView

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Header:
    identifier: bytes
    header_and_index_length: int
    opaque: bytes

    @property
    def opaque_size(self) -> int:
        return len(self.opaque)


@dataclass(frozen=True)
class IndexRecord:
    """One 24-byte index entry. ``unknown1``/``unknown2`` are kept verbatim."""

    id: int
    type: int
    length: int
    unknown1: int
    offset: int
    unknown2: int

    @classmethod
    def from_bytes(cls, raw: bytes) -> IndexRecord:
        return cls(*RECORD.unpack(raw))

    def to_bytes(self) -> bytes:
        return RECORD.pack(*(getattr(self, name) for name in RECORD_FIELDS))

    @property
    def end(self) -> int:
        return self.offset + self.length


class Container:
    """A parsed (or repacked) package.

    Usage:
        with open_container("SFX.pck") as pck:
            print(pck.describe())
            pck.extract_all("out/")
    """

    def __init__(
        self,
        header: Header,
        bnk_indexes: tuple[IndexRecord, ...],
        wem_indexes: tuple[IndexRecord, ...],
        bnks: tuple[EmbeddedView, ...],
        wems: tuple[EmbeddedView, ...],
        closer: BinaryIO | None = None,
    ) -> None:
        if len(bnk_indexes) != len(bnks) or len(wem_indexes) != len(wems):
            raise ValueError("Each index table must pair one-to-one with its views")
        self.header = header
        self.bnk_indexes = tuple(bnk_indexes)
        self.wem_indexes = tuple(wem_indexes)
        self.bnks = tuple(bnks)
        self.wems = tuple(wems)
        self._closer = closer

    def indexes(self, kind: str) -> tuple[IndexRecord, ...]:
        if kind == KIND_BNK:
            return self.bnk_indexes
        if kind == KIND_WEM:
            return self.wem_indexes
        raise ValueError(f"Unknown sub-file kind: {kind!r}")

    def views(self, kind: str) -> tuple[EmbeddedView, ...]:
        if kind == KIND_BNK:
            return self.bnks
        if kind == KIND_WEM:
            return self.wems
        raise ValueError(f"Unknown sub-file kind: {kind!r}")

    def entries(self) -> Iterator[tuple[str, IndexRecord, EmbeddedView]]:
        """Yield (kind, record, view) in on-disk data order: bnk then wem."""
        for kind in KINDS:
            yield from ((kind, rec, view) for rec, view in zip(self.indexes(kind), self.views(kind)))

    @property
    def opaque_size(self) -> int:
        return self.header.opaque_size

    @property
    def data_area_start(self) -> int:
        return data_area_start(self.opaque_size, len(self.bnk_indexes), len(self.wem_indexes))

    @property
    def total_size(self) -> int:
        return self.data_area_start + sum(rec.length for _, rec, _ in self.entries())

    def write_to(self, sink: BinaryIO, chunk_size: int = COPY_CHUNK_SIZE) -> int:
        """Serialize the whole container to ``sink``. Returns bytes written."""
        from pcktool._format.writer import PCKWriter
        return PCKWriter.write_to(self, sink, chunk_size)

    def extract_all(self, destination: str | Path) -> int:
        """Write every sub-file to ``destination/<kind>/<id>.<kind>``.

        Returns the number of files written.
        """
        destination = Path(destination)
        count = 0
        for kind in KINDS:
            kind_dir = destination / kind
            try:
                kind_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise IOFailure(f"output directory {kind_dir}", e) from e
            for view in self.views(kind):
                out_path = kind_dir / view.name
                try:
                    with open(out_path, "wb") as out:
                        view.copy_to(out)
                except OSError as e:
                    raise IOFailure(f"{kind} {view.name} -> {out_path}", e) from e
                count += 1
            log.debug("Extracted %d %s file(s) to %s", len(self.views(kind)), kind, kind_dir)
        return count

    def describe(self) -> str:
        """Human-readable structure report (counts plus one table per kind)."""
        lines = [
            "PCK File (Hybrid BNK/WEM Format)",
            f"BNK Count: {len(self.bnk_indexes)}",
            f"WEM Count: {len(self.wem_indexes)}",
        ]
        for kind in KINDS:
            lines.append("")
            lines.append(f"--- {kind.upper()} Files ---")
            lines.append(f"{'Index':<7} | {'ID':<10} | {'Offset':<15} | {'Length':<10}")
            for i, rec in enumerate(self.indexes(kind), 1):
                lines.append(f"{i:<7} | {rec.id:<10} | {rec.offset:<15} | {rec.length:<10}")
        return "\n".join(lines) + "\n"

    def close(self) -> None:
        if self._closer is not None:
            self._closer.close()
            self._closer = None

    def __enter__(self) -> Container:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Container(bnks={len(self.bnk_indexes)}, wems={len(self.wem_indexes)}, "
            f"opaque_size={self.opaque_size})"
        )
