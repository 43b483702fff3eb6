"""
Repack engine: substitute sub-file payloads and rebuild the package.

Algorithm:
    1. Index replacements per kind by record id (duplicates are ambiguous)
    2. Clone every record in file order; replaced records take the new length
    3. data_area_start = header + bnk count/table + wem count/table
    4. header_and_index_length = data_area_start - 8
    5. Offsets = running cursor from data_area_start over bnk then wem
    6-7. Serialize header, tables, then data in the same bnk-then-wem order

The result is a new Container value. Its views read replaced payloads from
memory and every other payload from the original package's handle at the
original offsets, so unmodified data is streamed, never cached.
"""

from __future__ import annotations

import io
import logging
from collections import Counter
from contextlib import ExitStack
from dataclasses import dataclass, replace
from pathlib import Path
from typing import BinaryIO, Iterable, Mapping

from pcktool import COPY_CHUNK_SIZE, KINDS
from pcktool._format.container import Container, IndexRecord
from pcktool._format.errors import AmbiguousReplacementTarget, IOFailure, PCKError
from pcktool._format.reader import EmbeddedView, open_container
from pcktool._format.spec import LENGTH_FIELD_BASE, Variant, data_area_start

log = logging.getLogger(__name__)

_UINT32_MAX = 0xFFFFFFFF


@dataclass(frozen=True)
class ReplacementSpec:
    """Substitute ``payload`` for the record ``id`` in the ``kind`` table.

    ``payload`` is either the new bytes or a path read once when the repack
    is planned.
    """

    kind: str
    id: int
    payload: bytes | str | Path

    def __post_init__(self) -> None:
        if self.kind not in KINDS:
            raise ValueError(f"Unknown sub-file kind: {self.kind!r}. Expected one of {KINDS}")

    def load(self) -> bytes:
        if isinstance(self.payload, (bytes, bytearray, memoryview)):
            return bytes(self.payload)
        try:
            return Path(self.payload).read_bytes()
        except OSError as e:
            raise IOFailure(f"replacement {self.kind} id {self.id} ({self.payload})", e) from e


@dataclass(frozen=True)
class RepackPlan:
    container: Container
    replaced: tuple[tuple[str, int], ...] = ()
    unused: tuple[ReplacementSpec, ...] = ()


@dataclass(frozen=True)
class RepackResult:
    bytes_written: int
    replaced: tuple[tuple[str, int], ...] = ()
    unused: tuple[ReplacementSpec, ...] = ()


def _index_replacements(
    replacements: Iterable[ReplacementSpec],
) -> dict[str, dict[int, ReplacementSpec]]:
    lookup: dict[str, dict[int, ReplacementSpec]] = {kind: {} for kind in KINDS}
    for spec in replacements:
        if spec.id in lookup[spec.kind]:
            raise AmbiguousReplacementTarget(
                spec.kind, spec.id, "more than one replacement supplied",
            )
        lookup[spec.kind][spec.id] = spec
    return lookup


def _check_targets(kind: str, records: tuple[IndexRecord, ...], targets: Mapping[int, ReplacementSpec]) -> None:
    counts = Counter(rec.id for rec in records)
    for record_id in targets:
        if counts[record_id] > 1:
            raise AmbiguousReplacementTarget(
                kind, record_id, f"{counts[record_id]} records in the {kind} table share this id",
            )


def plan_repack(original: Container, replacements: Iterable[ReplacementSpec]) -> RepackPlan:
    """Build the repacked container value. ``original`` is left untouched."""
    lookup = _index_replacements(replacements)

    records: dict[str, list[IndexRecord]] = {}
    views: dict[str, list[EmbeddedView]] = {}
    replaced: list[tuple[str, int]] = []
    for kind in KINDS:
        targets = lookup[kind]
        _check_targets(kind, original.indexes(kind), targets)
        records[kind] = []
        views[kind] = []
        for rec, view in zip(original.indexes(kind), original.views(kind)):
            spec = targets.get(rec.id)
            if spec is None:
                records[kind].append(rec)
                views[kind].append(view.clone())
                continue
            payload = spec.load()
            if len(payload) > _UINT32_MAX:
                raise PCKError(
                    f"Replacement {kind} id {rec.id} is {len(payload)} bytes; "
                    f"records hold at most {_UINT32_MAX}"
                )
            records[kind].append(replace(rec, length=len(payload)))
            views[kind].append(EmbeddedView(io.BytesIO(payload), 0, len(payload), view.name))
            replaced.append((kind, rec.id))

    start = data_area_start(
        original.opaque_size, len(records[KINDS[0]]), len(records[KINDS[1]]),
    )
    header = replace(original.header, header_and_index_length=start - LENGTH_FIELD_BASE)

    cursor = start
    for kind in KINDS:
        placed = []
        for rec in records[kind]:
            if cursor > _UINT32_MAX:
                raise PCKError(
                    f"{kind} id {rec.id} would start at offset {cursor}, "
                    f"beyond the 32-bit offset range"
                )
            placed.append(replace(rec, offset=cursor))
            cursor += rec.length
        records[kind] = placed

    known = {kind: {rec.id for rec in original.indexes(kind)} for kind in KINDS}
    unused = tuple(
        spec
        for kind in KINDS
        for record_id, spec in lookup[kind].items()
        if record_id not in known[kind]
    )
    for spec in unused:
        log.warning("Replacement %s id %d matches no record; ignored", spec.kind, spec.id)

    bnk_kind, wem_kind = KINDS
    container = Container(
        header,
        tuple(records[bnk_kind]),
        tuple(records[wem_kind]),
        tuple(views[bnk_kind]),
        tuple(views[wem_kind]),
    )
    return RepackPlan(container, tuple(replaced), unused)


def repack(
    original: Container,
    replacements: Iterable[ReplacementSpec],
    sink: BinaryIO,
    chunk_size: int = COPY_CHUNK_SIZE,
) -> RepackResult:
    """Write ``original`` with ``replacements`` applied to ``sink``."""
    plan = plan_repack(original, replacements)
    written = plan.container.write_to(sink, chunk_size)
    log.info(
        "Repacked %d record(s); wrote %d bytes (data area starts at %d)",
        len(plan.replaced), written, plan.container.data_area_start,
    )
    return RepackResult(written, plan.replaced, plan.unused)


def repack_file(
    input_path: str | Path,
    output_path: str | Path,
    replacements: Iterable[ReplacementSpec],
    variant: Variant | None = None,
    extra_suffixes: Mapping[str, int] | None = None,
    chunk_size: int = COPY_CHUNK_SIZE,
) -> int:
    """Repack ``input_path`` into ``output_path``. Returns total bytes written.

    Both files stay open for the whole operation and are closed on every
    exit path. A failed repack can leave a truncated output file behind;
    callers must discard it.
    """
    input_path = Path(input_path)
    output_path = Path(output_path)
    if output_path.exists() and output_path.resolve() == input_path.resolve():
        raise PCKError(f"Output path must differ from input: {output_path}")

    with ExitStack() as stack:
        original = stack.enter_context(open_container(input_path, variant, extra_suffixes))
        # Plan before creating the output so ambiguous targets fail cleanly
        plan = plan_repack(original, replacements)
        try:
            out = stack.enter_context(open(output_path, "wb"))
        except OSError as e:
            raise IOFailure(f"creating output file {output_path}", e) from e
        written = plan.container.write_to(out, chunk_size)

    log.info(
        "Repacked %s -> %s: %d record(s) replaced, %d bytes",
        input_path, output_path, len(plan.replaced), written,
    )
    return written
