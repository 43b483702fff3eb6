"""Shared fixtures: synthetic packages and soundbanks built in memory."""

from __future__ import annotations

import struct

import pytest

SFX_OPAQUE = 36
ENGLISH_OPAQUE = 68


def build_pck(
    bnks: list[tuple[int, bytes]],
    wems: list[tuple[int, bytes]],
    opaque_size: int = SFX_OPAQUE,
    identifier: bytes = b"AKPK",
) -> bytes:
    """Build a well-formed package with contiguous offsets.

    Record types and unknown fields get distinct, recognisable values so
    tests can check they survive untouched.
    """
    opaque = bytes((0x40 + i) % 256 for i in range(opaque_size))
    start = 8 + opaque_size + 4 + 24 * len(bnks) + 4 + 24 * len(wems)

    tables = []
    data = []
    cursor = start
    for kind_tag, entries in ((1, bnks), (2, wems)):
        table = struct.pack("<I", len(entries))
        for i, (record_id, payload) in enumerate(entries):
            table += struct.pack(
                "<6I",
                record_id,
                kind_tag,
                len(payload),
                0xA0000000 + record_id,
                cursor,
                0xB0000000 + i,
            )
            data.append(payload)
            cursor += len(payload)
        tables.append(table)

    header = identifier + struct.pack("<I", start - 8) + opaque
    return header + b"".join(tables) + b"".join(data)


def build_bnk(wems: list[tuple[int, bytes]], extra_chunks: list[tuple[bytes, bytes]] = ()) -> bytes:
    """Build a soundbank with BKHD, DIDX and DATA chunks."""
    didx = b""
    data = b""
    for wem_id, payload in wems:
        didx += struct.pack("<III", wem_id, len(data), len(payload))
        data += payload

    def chunk(tag: bytes, body: bytes) -> bytes:
        return tag + struct.pack("<I", len(body)) + body

    out = chunk(b"BKHD", struct.pack("<II", 0x8C, 0x1234))
    for tag, body in extra_chunks:
        out += chunk(tag, body)
    if wems:
        out += chunk(b"DIDX", didx) + chunk(b"DATA", data)
    return out


@pytest.fixture
def scenario_bytes():
    """bnk id 1 (100 bytes); wem id 5 (200 bytes) and id 7 (50 bytes)."""
    return build_pck(
        bnks=[(1, b"B" * 100)],
        wems=[(5, b"W" * 200), (7, b"w" * 50)],
    )


@pytest.fixture
def scenario_path(tmp_path, scenario_bytes):
    path = tmp_path / "SFX.pck"
    path.write_bytes(scenario_bytes)
    return path
