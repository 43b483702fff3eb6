"""
Soundbank (.bnk) reader: enumerate and stream the WEMs a bank embeds.

A bank is a flat list of chunks, each ``tag (4 bytes) + size (uint32)``
followed by ``size`` payload bytes. Two chunks matter here:

    DIDX   <- 12-byte entries {id, offset, length}; offset is relative to
              the start of the DATA payload
    DATA   <- concatenated WEM payloads

Everything else (BKHD, HIRC, ...) is skipped untouched. Only chunk headers
and the DIDX table are read on open; WEM bytes are read through lazy views.
"""

from __future__ import annotations

import logging
import os
import struct
from pathlib import Path
from typing import BinaryIO

from pcktool._format.errors import IOFailure, TruncatedInput
from pcktool._format.reader import EmbeddedView, read_exact

log = logging.getLogger(__name__)

_CHUNK_HEADER = struct.Struct("<4sI")
_DIDX_ENTRY = struct.Struct("<III")


class Soundbank:
    """Lazy view of a soundbank's embedded WEMs.

    Usage:
        with Soundbank.open("Init.bnk") as bank:
            bank.extract_all("out/")
    """

    def __init__(self, handle: BinaryIO, size: int) -> None:
        self._handle = handle
        self._size = size
        self.chunks: list[tuple[bytes, int, int]] = []  # (tag, payload offset, size)
        self.wems: tuple[EmbeddedView, ...] = ()

    @classmethod
    def open(cls, path: str | Path) -> Soundbank:
        path = Path(path)
        try:
            f = open(path, "rb")
        except OSError as e:
            raise IOFailure(f"opening {path}", e) from e
        try:
            size = os.fstat(f.fileno()).st_size
            bank = cls(f, size)
            bank._parse()
        except BaseException:
            f.close()
            raise
        return bank

    def _parse(self) -> None:
        pos = 0
        while pos + _CHUNK_HEADER.size <= self._size:
            try:
                self._handle.seek(pos)
            except OSError as e:
                raise IOFailure(f"seek to chunk at {pos}", e) from e
            raw = read_exact(self._handle, _CHUNK_HEADER.size, f"chunk header at {pos}")
            tag, size = _CHUNK_HEADER.unpack(raw)
            start = pos + _CHUNK_HEADER.size
            if start + size > self._size:
                raise TruncatedInput(
                    f"chunk {tag!r} bytes [{start}, {start + size})", size, self._size - start,
                )
            self.chunks.append((tag, start, size))
            pos = start + size

        didx = self._chunk(b"DIDX")
        data = self._chunk(b"DATA")
        if didx is None:
            log.debug("Soundbank has no DIDX chunk; no embedded WEMs")
            return
        if data is None:
            raise TruncatedInput("DATA chunk (required by DIDX)", 1, 0)

        _, didx_start, didx_size = didx
        _, data_start, data_size = data
        try:
            self._handle.seek(didx_start)
        except OSError as e:
            raise IOFailure(f"seek to DIDX at {didx_start}", e) from e
        views = []
        for i in range(didx_size // _DIDX_ENTRY.size):
            raw = read_exact(self._handle, _DIDX_ENTRY.size, f"DIDX entry {i}")
            wem_id, offset, length = _DIDX_ENTRY.unpack(raw)
            if offset + length > data_size:
                raise TruncatedInput(
                    f"wem {wem_id} bytes [{offset}, {offset + length}) of DATA",
                    length, max(data_size - offset, 0),
                )
            views.append(EmbeddedView(self._handle, data_start + offset, length, f"{wem_id}.wem"))
        self.wems = tuple(views)

    def _chunk(self, tag: bytes) -> tuple[bytes, int, int] | None:
        for chunk in self.chunks:
            if chunk[0] == tag:
                return chunk
        return None

    def extract_all(self, destination: str | Path) -> int:
        """Write every embedded WEM to ``destination/<id>.wem``."""
        destination = Path(destination)
        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailure(f"output directory {destination}", e) from e
        for view in self.wems:
            out_path = destination / view.name
            try:
                with open(out_path, "wb") as out:
                    view.copy_to(out)
            except OSError as e:
                raise IOFailure(f"{view.name} -> {out_path}", e) from e
        return len(self.wems)

    def describe(self) -> str:
        lines = ["BNK File", f"Chunks: {' '.join(tag.decode('latin-1') for tag, _, _ in self.chunks)}"]
        lines.append(f"WEM Count: {len(self.wems)}")
        lines.append("")
        lines.append(f"{'Index':<7} | {'ID':<10} | {'Offset':<15} | {'Length':<10}")
        for i, view in enumerate(self.wems, 1):
            wem_id = view.name.split(".", 1)[0]
            lines.append(f"{i:<7} | {wem_id:<10} | {view.offset:<15} | {view.length:<10}")
        return "\n".join(lines) + "\n"

    def close(self) -> None:
        self._handle.close()

    def __enter__(self) -> Soundbank:
        return self

    def __exit__(self, *args) -> None:
        self.close()
