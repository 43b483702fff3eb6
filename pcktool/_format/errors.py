"""
Errors raised by the container codec and repack engine.

Every message names the structural element being processed (header field,
record kind and index, or byte range) so failures can be located in the file.
"""

from __future__ import annotations


class PCKError(Exception):
    """Base class for container errors."""


class UnsupportedFormat(PCKError):
    """The file name matches no known header variant."""


class TruncatedInput(PCKError):
    """A field, record or payload range was read short."""

    def __init__(self, element: str, expected: int, got: int) -> None:
        self.element = element
        self.expected = expected
        self.got = got
        super().__init__(
            f"Truncated input reading {element}: expected {expected} bytes, got {got}"
        )


class IOFailure(PCKError):
    """The host environment failed a read, write or seek."""

    def __init__(self, element: str, cause: BaseException) -> None:
        self.element = element
        super().__init__(f"I/O failure while processing {element}: {cause}")


class AmbiguousReplacementTarget(PCKError):
    """More than one replacement, or more than one record, matches a (kind, id) key."""

    def __init__(self, kind: str, record_id: int, reason: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"Ambiguous replacement target {kind} id {record_id}: {reason}")
