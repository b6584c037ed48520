#!/usr/bin/env python3
"""
List candidate TDR metalib headers inside a host binary.

Usage:
    python scan_metalib.py INPUT_FILE [--verify]
"""

from __future__ import annotations

import argparse
from pathlib import Path

from tdrmeta import scan_buffer


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scan a binary for embedded TDR metalibs.")
    parser.add_argument("input", type=Path, help="Executable, shared object or data blob to scan")
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Only report candidates that decode completely",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    candidates = scan_buffer(args.input.read_bytes(), verify=args.verify)
    if not candidates:
        print("No metalib headers were detected.")
        return 0
    print(f"[+] Found {len(candidates)} candidate metalib(s):")
    for candidate in candidates:
        print(
            f"  off=0x{candidate.offset:X} size={candidate.size} name={candidate.name!r} "
            f"metas={candidate.metas} macros={candidate.macros} groups={candidate.groups}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
