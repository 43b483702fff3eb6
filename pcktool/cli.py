"""
pcktool CLI: unpack, inspect and repack Wwise file packages.

Commands:
  pcktool unpack  - Unpack a .pck (bnk/ + wem/) or a .bnk (embedded wems)
  pcktool repack  - Rebuild a .pck with replacement files from a target directory
  pcktool info    - Print the index tables of a .pck or .bnk
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pcktool import BNK_EXTENSIONS, PCK_EXTENSIONS

log = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _add_verbose_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Print the file structure and save it to the report file",
    )


def _write_report(report: str, config: dict[str, Any]) -> None:
    """Print a timestamped structure report and save a copy to the report file."""
    timestamp = datetime.now(timezone.utc).isoformat()
    output = f"Log generated at: {timestamp}\n\n{report}"
    print(output)
    report_path = Path(config["report_file"])
    try:
        report_path.write_text(output, encoding="utf-8")
    except OSError as e:
        log.warning("Could not write report to %s: %s", report_path, e)


def _open_pck(path: str, config: dict[str, Any]):
    from pcktool._format import PCKError, open_container

    try:
        return open_container(path, extra_suffixes=config["variants"])
    except PCKError as e:
        _fail(f"Opening PCK file failed: {e}")


def cmd_unpack(args: argparse.Namespace, config: dict[str, Any]) -> None:
    """Unpack a .pck into bnk/ and wem/ or a .bnk into its embedded wems."""
    from pcktool._format import PCKError, Soundbank

    ext = Path(args.path).suffix.lower()
    if ext in PCK_EXTENSIONS:
        print(f"Unpacking PCK file: {args.path}")
        with _open_pck(args.path, config) as pck:
            if args.verbose:
                _write_report(pck.describe(), config)
            try:
                count = pck.extract_all(args.output)
            except PCKError as e:
                _fail(f"Unpacking PCK file failed: {e}")
        print(f"Unpacked {count} file(s) to: {args.output}")

    elif ext in BNK_EXTENSIONS:
        print(f"Unpacking BNK file: {args.path}")
        try:
            with Soundbank.open(args.path) as bank:
                if args.verbose:
                    print(bank.describe())
                count = bank.extract_all(args.output)
        except PCKError as e:
            _fail(f"Unpacking BNK file failed: {e}")
        print(f"Unpacked {count} WEM file(s) to: {args.output}")

    else:
        _fail(f"Unsupported file type: {ext or '(none)'}")


def cmd_repack(args: argparse.Namespace, config: dict[str, Any]) -> None:
    """Rebuild a .pck with replacements found under the target directory."""
    from pcktool._format import PCKError
    from pcktool.discovery import discover_replacements
    from pcktool.repack import repack_file

    ext = Path(args.path).suffix.lower()
    if ext not in PCK_EXTENSIONS:
        _fail("Replacing is only supported for .pck files.")

    with _open_pck(args.path, config) as source:
        if args.verbose:
            print("Source file structure:")
            _write_report(source.describe(), config)
        try:
            found = discover_replacements(args.target, source)
        except PCKError as e:
            _fail(f"Finding replacement files failed: {e}")

    if not found:
        print("No valid replacement files found in target directory. Nothing to do.")
        return

    names = ", ".join(Path(spec.payload).name for spec in found.replacements)
    print(f"Using {len(found.replacements)} replacement file(s): {names}")

    try:
        written = repack_file(
            args.path,
            args.output,
            found.replacements,
            extra_suffixes=config["variants"],
            chunk_size=config["copy_chunk_size"],
        )
    except PCKError as e:
        log.error("Repack failed; discard %s", args.output)
        _fail(f"Repack failed: {e}")

    print("Repack completed successfully!")
    print(f"  output: {args.output}")
    print(f"  bytes:  {written}")


def cmd_info(args: argparse.Namespace, config: dict[str, Any]) -> None:
    """Print the structure report of a .pck or .bnk."""
    from pcktool._format import PCKError, Soundbank

    ext = Path(args.path).suffix.lower()
    if ext in BNK_EXTENSIONS:
        try:
            with Soundbank.open(args.path) as bank:
                print(bank.describe(), end="")
        except PCKError as e:
            _fail(str(e))
        return

    with _open_pck(args.path, config) as pck:
        print(pck.describe(), end="")
        print(f"\nData area start: {pck.data_area_start}")
        print(f"Total size:      {pck.total_size}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="pcktool",
        description="Unpack, inspect and repack Wwise file packages (.pck) and soundbanks (.bnk).",
    )
    from pcktool import __version__
    parser.add_argument("--version", action="version", version=f"pcktool {__version__}")
    parser.add_argument("--config", help="Path to config TOML (default: ~/.pcktool/config.toml)")
    sub = parser.add_subparsers(dest="command")

    # unpack
    p_unpack = sub.add_parser("unpack", help="Unpack a .pck or .bnk into separate files")
    p_unpack.add_argument("path", help="Path to the source .pck or .bnk file")
    p_unpack.add_argument("-o", "--output", required=True, help="Output directory")
    _add_verbose_arg(p_unpack)

    # repack
    p_repack = sub.add_parser("repack", help="Replace files in a .pck")
    p_repack.add_argument("path", help="Path to the source .pck file")
    p_repack.add_argument("-t", "--target", required=True,
                          help="Directory with bnk/ and wem/ replacement files named by 1-based index")
    p_repack.add_argument("-o", "--output", required=True, help="Output .pck file")
    _add_verbose_arg(p_repack)

    # info
    p_info = sub.add_parser("info", help="Show the index tables of a .pck or .bnk")
    p_info.add_argument("path", help="Path to the .pck or .bnk file")

    args = parser.parse_args(argv)

    if not args.command:
        print("pcktool: Wwise file package tools")
        print()
        print("Usage:")
        print("  pcktool unpack SFX.pck -o out/ [-v]")
        print("  pcktool unpack Init.bnk -o out/")
        print("  pcktool repack SFX.pck -t replacements/ -o SFX_new.pck [-v]")
        print("  pcktool info SFX.pck")
        print()
        print("Run 'pcktool <command> --help' for details on any command.")
        sys.exit(0)

    from pcktool.config import load_config

    config = load_config(Path(args.config) if args.config else None)
    _setup_logging(config["log_level"])

    commands = {
        "unpack": cmd_unpack,
        "repack": cmd_repack,
        "info": cmd_info,
    }

    commands[args.command](args, config)


if __name__ == "__main__":
    main()
