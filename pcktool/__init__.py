"""
pcktool: read, inspect and repack hybrid Wwise file packages (.pck).

Layout:
    Header:  identifier (4) + header/index length (4) + opaque region (N)
    Index:   bnk count + 24-byte records, wem count + 24-byte records
    Data:    bnk payloads then wem payloads, in index order
    Tools:   pcktool unpack / pcktool repack / pcktool info CLI commands
"""

__version__ = "0.1.0"

# Sub-file kinds, in the order their tables and data blocks appear on disk
KIND_BNK = "bnk"
KIND_WEM = "wem"
KINDS = (KIND_BNK, KIND_WEM)

# Extensions the CLI dispatches on
PCK_EXTENSIONS = frozenset({".pck", ".npck"})
BNK_EXTENSIONS = frozenset({".bnk", ".nbnk"})

# Streaming copy defaults
COPY_CHUNK_SIZE = 1024 * 1024  # 1 MiB

# Config defaults
CONFIG_DIR = ".pcktool"  # under the user's home directory
CONFIG_ENV_VAR = "PCKTOOL_CONFIG"
REPORT_FILE = "log.txt"
