"""
Replacement discovery: map files in a target directory to index records.

Layout scanned:
    <target>/bnk/<N>.<ext>   -> N-th record (1-based) of the bnk table
    <target>/wem/<N>.<ext>   -> N-th record (1-based) of the wem table

The file stem is a position in the table, not a record id; discovery looks
the id up so the repack engine only ever sees (kind, id, payload).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from pcktool import KINDS
from pcktool._format.container import Container
from pcktool._format.errors import IOFailure
from pcktool.repack import ReplacementSpec

log = logging.getLogger(__name__)

_INDEX_RE = re.compile(r"[+-]?[0-9]+")


@dataclass
class DiscoveryResult:
    replacements: list[ReplacementSpec] = field(default_factory=list)
    skipped: list[tuple[Path, str]] = field(default_factory=list)  # (path, reason)

    def __bool__(self) -> bool:
        return bool(self.replacements)


def discover_replacements(target_dir: str | Path, container: Container) -> DiscoveryResult:
    """Scan ``target_dir/<kind>/`` recursively for replacement files."""
    target_dir = Path(target_dir)
    result = DiscoveryResult()

    for kind in KINDS:
        kind_dir = target_dir / kind
        if not kind_dir.is_dir():
            continue
        records = container.indexes(kind)
        try:
            paths = sorted(p for p in kind_dir.rglob("*") if p.is_file())
        except OSError as e:
            raise IOFailure(f"scanning {kind} target directory {kind_dir}", e) from e

        for path in paths:
            if not _INDEX_RE.fullmatch(path.stem):
                reason = "could not parse index from filename"
                log.warning("Could not parse index from filename %s, skipping.", path.name)
                result.skipped.append((path, reason))
                continue
            position = int(path.stem)

            if position < 1 or position > len(records):
                reason = f"index {position} is out of bounds for {kind.upper()} files (1-{len(records)})"
                log.warning("Index %d from filename %s is out of bounds for %s files (1-%d), skipping.",
                            position, path.name, kind.upper(), len(records))
                result.skipped.append((path, reason))
                continue

            record_id = records[position - 1].id
            result.replacements.append(ReplacementSpec(kind, record_id, path))

    return result
