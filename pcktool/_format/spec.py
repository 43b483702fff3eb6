"""
Container Format Specification: hybrid Wwise file package (BNK + WEM).

Layout (little-endian throughout):
    identifier              <- 4 opaque bytes, round-tripped verbatim
    header_and_index_length <- uint32, = data_area_start - 8
    opaque region           <- N bytes, N chosen by the file's variant
    bnk count               <- uint32
    bnk index               <- count x 24-byte records
    wem count               <- uint32
    wem index               <- count x 24-byte records
    data blocks             <- bnk payloads then wem payloads, index order

Index record (24 bytes):
    id, type, length, unknown1, offset, unknown2   (all uint32)

Offsets are absolute from the start of the file and contiguous across the
bnk table followed by the wem table: offset[i] + length[i] == offset[i+1].

Variants:
    The opaque region size is not stored anywhere in the file. It is chosen
    from the file name suffix (case-insensitive) before parsing starts.
"""

from __future__ import annotations

import struct
from enum import Enum
from pathlib import PurePath
from typing import Mapping

from pcktool._format.errors import UnsupportedFormat

# Fixed-width fields
IDENTIFIER_SIZE = 4
LENGTH_FIELD_SIZE = 4
COUNT_SIZE = 4
RECORD_SIZE = 24

# Bytes before the opaque region that the length field does not cover
LENGTH_FIELD_BASE = IDENTIFIER_SIZE + LENGTH_FIELD_SIZE

UINT32 = struct.Struct("<I")
RECORD = struct.Struct("<6I")

# Field order of an index record on disk
RECORD_FIELDS = ("id", "type", "length", "unknown1", "offset", "unknown2")


class Variant(Enum):
    """Known package variants, keyed by file name suffix."""

    SFX = ("sfx.pck", 36)
    ENGLISH_US = ("english(us).pck", 68)

    def __init__(self, suffix: str, opaque_size: int) -> None:
        self.suffix = suffix
        self.opaque_size = opaque_size

    @classmethod
    def from_filename(cls, name: str | PurePath) -> Variant:
        """Resolve the variant from a file name. Raises UnsupportedFormat."""
        lowered = str(name).lower()
        for variant in cls:
            if lowered.endswith(variant.suffix):
                return variant
        raise UnsupportedFormat(
            f"Unsupported pck file: {PurePath(name).name} - unknown header size"
        )

    @classmethod
    def from_name(cls, name: str) -> Variant:
        """Resolve a variant by its enum name (e.g. ``"sfx"``, ``"english_us"``)."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            known = ", ".join(v.name.lower() for v in cls)
            raise UnsupportedFormat(
                f"Unknown variant: {name!r}. Known: {known}"
            ) from None


def resolve_opaque_size(
    name: str | PurePath, extra_suffixes: Mapping[str, int] | None = None,
) -> int:
    """Opaque region size for a file name.

    Built-in variants win; ``extra_suffixes`` (suffix -> size, usually from the
    config file) are checked afterwards. Raises UnsupportedFormat otherwise.
    """
    try:
        return Variant.from_filename(name).opaque_size
    except UnsupportedFormat:
        lowered = str(name).lower()
        for suffix, size in (extra_suffixes or {}).items():
            if lowered.endswith(suffix.lower()):
                return int(size)
        raise


def header_size(opaque_size: int) -> int:
    """Size of identifier + length field + opaque region."""
    return LENGTH_FIELD_BASE + opaque_size


def data_area_start(opaque_size: int, bnk_count: int, wem_count: int) -> int:
    """Absolute offset of the first payload byte."""
    return (
        header_size(opaque_size)
        + COUNT_SIZE + RECORD_SIZE * bnk_count
        + COUNT_SIZE + RECORD_SIZE * wem_count
    )
