"""
Container codec for hybrid Wwise file packages (.pck) and soundbanks (.bnk).

Format: header + bnk index + wem index + data blocks (see spec.py)
"""

from pcktool._format.spec import Variant, resolve_opaque_size
from pcktool._format.errors import (
    PCKError,
    UnsupportedFormat,
    TruncatedInput,
    IOFailure,
    AmbiguousReplacementTarget,
)
from pcktool._format.container import Container, Header, IndexRecord
from pcktool._format.reader import PCKReader, EmbeddedView, open_container
from pcktool._format.writer import PCKWriter
from pcktool._format.bnk import Soundbank
