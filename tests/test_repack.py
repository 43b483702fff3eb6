"""
Tests for the repack engine: repack.py.

Covers offset/length recomputation, payload substitution, preservation of
untouched records, ambiguity handling and handle cleanup.
"""

from __future__ import annotations

import io
import struct
from unittest.mock import MagicMock

import pytest

from conftest import SFX_OPAQUE, build_pck
from pcktool._format import (
    AmbiguousReplacementTarget,
    IOFailure,
    PCKError,
    PCKWriter,
    open_container,
)
from pcktool._format.reader import read_container
from pcktool._format.spec import data_area_start
from pcktool.repack import ReplacementSpec, plan_repack, repack, repack_file


def _parse(raw: bytes):
    return read_container(io.BytesIO(raw), SFX_OPAQUE)


def _repack_bytes(original, replacements) -> bytes:
    sink = io.BytesIO()
    repack(original, replacements, sink)
    return sink.getvalue()


def _assert_contiguous(pck):
    records = list(pck.bnk_indexes) + list(pck.wem_indexes)
    if records:
        assert records[0].offset == pck.data_area_start
    for prev, nxt in zip(records, records[1:]):
        assert prev.offset + prev.length == nxt.offset


@pytest.fixture
def original(scenario_bytes):
    return _parse(scenario_bytes)


# ---------------------------------------------------------------------------
# TestScenario
# ---------------------------------------------------------------------------

class TestScenario:
    """bnk 1 (100), wem 5 (200) and 7 (50); wem 5 replaced with 300 bytes."""

    def test_layout(self, original):
        start = data_area_start(SFX_OPAQUE, 1, 2)
        out = _parse(_repack_bytes(original, [ReplacementSpec("wem", 5, b"N" * 300)]))

        assert out.data_area_start == start == original.data_area_start
        assert out.wem_indexes[0].length == 300
        assert out.bnk_indexes[0].offset == start
        assert out.wem_indexes[0].offset == start + 100
        assert out.wem_indexes[1].offset == start + 100 + 300
        assert out.total_size == start + 100 + 300 + 50

    def test_total_size_and_payloads(self, original):
        raw = _repack_bytes(original, [ReplacementSpec("wem", 5, b"N" * 300)])
        start = data_area_start(SFX_OPAQUE, 1, 2)
        assert len(raw) == start + 100 + 300 + 50
        assert raw[start:start + 100] == b"B" * 100
        assert raw[start + 100:start + 400] == b"N" * 300
        assert raw[start + 400:] == b"w" * 50

    def test_result(self, original):
        sink = io.BytesIO()
        result = repack(original, [ReplacementSpec("wem", 5, b"N" * 300)], sink)
        assert result.bytes_written == len(sink.getvalue())
        assert result.replaced == (("wem", 5),)
        assert result.unused == ()


# ---------------------------------------------------------------------------
# TestInvariants
# ---------------------------------------------------------------------------

class TestInvariants:

    def test_noop_is_identical(self, original, scenario_bytes):
        assert _repack_bytes(original, []) == scenario_bytes

    def test_noop_many_records(self):
        raw = build_pck(
            [(i, bytes([i]) * (i + 3)) for i in range(1, 6)],
            [(100 + i, bytes([i]) * (7 * i)) for i in range(8)],
        )
        assert _repack_bytes(_parse(raw), []) == raw

    @pytest.mark.parametrize("new_size", [0, 1, 99, 100, 101, 5000])
    def test_bnk_resize(self, original, new_size):
        payload = bytes(range(256)) * (new_size // 256) + bytes(range(new_size % 256))
        out = _parse(_repack_bytes(original, [ReplacementSpec("bnk", 1, payload)]))
        _assert_contiguous(out)
        assert out.bnk_indexes[0].length == new_size
        assert out.bnks[0].read_all() == payload
        assert out.header.header_and_index_length == out.data_area_start - 8

    def test_replace_everything(self, original):
        specs = [
            ReplacementSpec("bnk", 1, b"1"),
            ReplacementSpec("wem", 5, b"55"),
            ReplacementSpec("wem", 7, b"777"),
        ]
        raw = _repack_bytes(original, specs)
        out = _parse(raw)
        _assert_contiguous(out)
        assert [v.read_all() for v in out.bnks + out.wems] == [b"1", b"55", b"777"]
        assert len(raw) == out.data_area_start + 6

    def test_unreplaced_preserved(self, original):
        out = _parse(_repack_bytes(original, [ReplacementSpec("bnk", 1, b"x" * 3)]))
        for before, after, view in zip(original.wem_indexes, out.wem_indexes, out.wems):
            assert (after.id, after.type, after.unknown1, after.unknown2, after.length) == (
                before.id, before.type, before.unknown1, before.unknown2, before.length,
            )
            assert after.offset != before.offset
        assert out.wems[0].read_all() == b"W" * 200
        assert out.wems[1].read_all() == b"w" * 50

    def test_replaced_keeps_other_fields(self, original):
        out = _parse(_repack_bytes(original, [ReplacementSpec("wem", 7, b"z" * 9)]))
        before, after = original.wem_indexes[1], out.wem_indexes[1]
        assert (after.id, after.type, after.unknown1, after.unknown2) == (
            before.id, before.type, before.unknown1, before.unknown2,
        )
        assert after.length == 9

    def test_header_opaque_and_identifier_kept(self):
        raw = build_pck([(1, b"a" * 10)], [(2, b"b" * 10)], identifier=b"\x00\x01\x02\x03")
        original = _parse(raw)
        out = _parse(_repack_bytes(original, [ReplacementSpec("wem", 2, b"c")]))
        assert out.header.identifier == b"\x00\x01\x02\x03"
        assert out.header.opaque == original.header.opaque

    def test_stale_length_field_recomputed(self, scenario_bytes):
        broken = scenario_bytes[:4] + struct.pack("<I", 12345) + scenario_bytes[8:]
        out = _parse(_repack_bytes(_parse(broken), []))
        assert out.header.header_and_index_length == out.data_area_start - 8


# ---------------------------------------------------------------------------
# TestPlan
# ---------------------------------------------------------------------------

class TestPlan:

    def test_original_untouched(self, original, scenario_bytes):
        before = (original.header, original.bnk_indexes, original.wem_indexes)
        plan = plan_repack(original, [ReplacementSpec("wem", 5, b"N" * 300)])
        assert (original.header, original.bnk_indexes, original.wem_indexes) == before
        assert plan.container is not original
        assert PCKWriter.serialize(original) == scenario_bytes

    def test_plan_serializes_repeatedly(self, original):
        plan = plan_repack(original, [ReplacementSpec("wem", 7, b"tail")])
        first = PCKWriter.serialize(plan.container)
        assert PCKWriter.serialize(plan.container) == first

    def test_same_id_in_both_tables(self):
        raw = build_pck([(9, b"bank")], [(9, b"wave")])
        out = _parse(_repack_bytes(_parse(raw), [ReplacementSpec("wem", 9, b"new wave")]))
        assert out.bnks[0].read_all() == b"bank"
        assert out.wems[0].read_all() == b"new wave"

    def test_unused_replacement(self, original, caplog):
        sink = io.BytesIO()
        with caplog.at_level("WARNING"):
            result = repack(original, [ReplacementSpec("wem", 404, b"zzz")], sink)
        assert [(s.kind, s.id) for s in result.unused] == [("wem", 404)]
        assert result.replaced == ()
        assert "matches no record" in caplog.text

    def test_wrong_kind_is_unused(self, original):
        plan = plan_repack(original, [ReplacementSpec("bnk", 5, b"zzz")])
        assert [(s.kind, s.id) for s in plan.unused] == [("bnk", 5)]

    def test_duplicate_specs(self, original):
        specs = [ReplacementSpec("wem", 5, b"a"), ReplacementSpec("wem", 5, b"b")]
        with pytest.raises(AmbiguousReplacementTarget, match="wem id 5"):
            plan_repack(original, specs)

    def test_duplicate_record_ids(self):
        raw = build_pck([], [(3, b"one"), (3, b"two")])
        with pytest.raises(AmbiguousReplacementTarget, match="2 records"):
            plan_repack(_parse(raw), [ReplacementSpec("wem", 3, b"x")])

    def test_duplicate_record_ids_untargeted(self):
        raw = build_pck([], [(3, b"one"), (3, b"two")])
        assert _repack_bytes(_parse(raw), []) == raw

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown sub-file kind"):
            ReplacementSpec("ogg", 1, b"")

    def test_payload_from_path(self, original, tmp_path):
        path = tmp_path / "1.wem"
        path.write_bytes(b"from disk")
        plan = plan_repack(original, [ReplacementSpec("wem", 5, path)])
        assert plan.container.wem_indexes[0].length == len(b"from disk")
        assert plan.container.wems[0].read_all() == b"from disk"

    def test_missing_payload_path(self, original, tmp_path):
        with pytest.raises(IOFailure, match="replacement wem id 5"):
            plan_repack(original, [ReplacementSpec("wem", 5, tmp_path / "missing.wem")])


# ---------------------------------------------------------------------------
# TestRepackFile
# ---------------------------------------------------------------------------

class TestRepackFile:

    def test_writes_output(self, scenario_path, tmp_path):
        out_path = tmp_path / "out" / "SFX.pck"
        out_path.parent.mkdir()
        written = repack_file(scenario_path, out_path, [ReplacementSpec("wem", 5, b"N" * 300)])
        start = data_area_start(SFX_OPAQUE, 1, 2)
        assert written == start + 100 + 300 + 50
        assert out_path.stat().st_size == written
        with open_container(out_path) as out:
            assert out.wems[0].read_all() == b"N" * 300
            assert out.wems[1].read_all() == b"w" * 50

    def test_noop_file(self, scenario_path, scenario_bytes, tmp_path):
        out_path = tmp_path / "copy_sfx.pck"
        repack_file(scenario_path, out_path, [])
        assert out_path.read_bytes() == scenario_bytes

    def test_same_path_rejected(self, scenario_path, scenario_bytes):
        with pytest.raises(PCKError, match="must differ"):
            repack_file(scenario_path, scenario_path, [])
        assert scenario_path.read_bytes() == scenario_bytes

    def test_ambiguous_creates_no_output(self, scenario_path, tmp_path):
        out_path = tmp_path / "never.pck"
        specs = [ReplacementSpec("bnk", 1, b"a"), ReplacementSpec("bnk", 1, b"b")]
        with pytest.raises(AmbiguousReplacementTarget):
            repack_file(scenario_path, out_path, specs)
        assert not out_path.exists()

    def test_closes_source_on_write_failure(self, scenario_path, tmp_path, monkeypatch):
        import pcktool.repack as repack_mod

        handles = []
        real_open = repack_mod.open_container

        def tracking_open(*args, **kwargs):
            pck = real_open(*args, **kwargs)
            handles.append(pck._closer)
            return pck

        monkeypatch.setattr(repack_mod, "open_container", tracking_open)
        out_dir = tmp_path / "missing_dir"
        with pytest.raises(IOFailure, match="creating output file"):
            repack_file(scenario_path, out_dir / "SFX.pck", [])
        assert handles and handles[0].closed

    def test_sink_failure_names_element(self, original):
        sink = MagicMock()
        sink.write.side_effect = OSError("disk full")
        with pytest.raises(IOFailure, match="header identifier"):
            repack(original, [], sink)

    def test_data_copy_failure_names_range(self, original):
        calls = {"n": 0}

        class FailingSink(io.BytesIO):
            def write(self, data):
                calls["n"] += 1
                if len(data) == 200:
                    raise OSError("disk full")
                return super().write(data)

        with pytest.raises(IOFailure, match=r"5\.wem bytes"):
            repack(original, [], FailingSink())
        assert calls["n"] > 0
