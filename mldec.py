#!/usr/bin/env python3
"""
Decode a compiled TDR metalib embedded in a file and export it.

Usage:
    python mldec.py INPUT_FILE HEX_OFFSET [--output DIR] [--per-type]
                    [--json PATH] [--cycle-log PATH]

Writes ``<DIR>/<stem>.xml`` in the TDR XML dialect. With ``--per-type`` each
root type is also rendered as its own structural document under
``<DIR>/<stem>/<Type>.xml``.

Exit codes:
    0 -> success
    1 -> the metalib could not be decoded
"""

from __future__ import annotations

import argparse
import json
import re
import sys
from pathlib import Path

from tdrmeta import BackrefLogger, MetalibError, export_metalib_xml, load_metalib, render
from tdrmeta.render import to_xml

DEFAULT_OUTPUT_DIR = Path("output")


def parse_offset(text: str) -> int:
    return int(text, 16)


def safe_filename(name: str) -> str:
    return re.sub(r"[^\w.-]", "_", name) or "_"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Decode a compiled TDR metalib into TDR XML.")
    parser.add_argument("input", type=Path, help="File containing the compiled metalib")
    parser.add_argument("offset", type=parse_offset, help="Hex offset of the metalib header (e.g. 0x1A20)")
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_OUTPUT_DIR,
        help=f"Directory for exported files (default: {DEFAULT_OUTPUT_DIR})",
    )
    parser.add_argument(
        "--per-type",
        action="store_true",
        help="Also write one structural document per root type",
    )
    parser.add_argument("--json", type=Path, help="Optional path to write the structural document as JSON")
    parser.add_argument("--cycle-log", type=Path, help="Optional path to log emitted back-references")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    print(f"[+] Loading TDR metalib from {args.input} at offset 0x{args.offset:X}")
    try:
        metalib = load_metalib(args.input, args.offset)
    except MetalibError as exc:
        offset = getattr(exc, "offset", None)
        where = f" at 0x{offset:X}" if offset is not None else ""
        print(f"[error] {exc.kind}{where}: {exc}", file=sys.stderr)
        return 1

    graph = metalib.graph
    print(
        f"[+] Decoded '{metalib.name}': {len(metalib.metas)} meta(s), "
        f"{len(metalib.macros)} macro(s), {len(metalib.enums)} macro group(s)"
    )

    stem = args.input.stem
    args.output.mkdir(parents=True, exist_ok=True)
    xml_path = args.output / f"{stem}.xml"
    xml_path.write_text(export_metalib_xml(metalib), encoding="utf-8")
    print(f"[+] TDR XML written to {xml_path}")

    if not (args.per_type or args.json or args.cycle_log):
        return 0

    logger = BackrefLogger(args.cycle_log) if args.cycle_log else None
    document = render(graph, logger=logger)

    if args.per_type:
        type_dir = args.output / stem
        type_dir.mkdir(parents=True, exist_ok=True)
        for node in document.roots:
            (type_dir / f"{safe_filename(node.name or node.tag)}.xml").write_text(to_xml(node), encoding="utf-8")
        print(f"[+] Wrote {len(document.roots)} type document(s) to {type_dir}")

    if args.json:
        payload = {
            "source": str(args.input),
            "offset": args.offset,
            "name": metalib.name,
            "types": [node.to_dict() for node in document.roots],
            "backrefs": len(document.backrefs),
        }
        args.json.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        print(f"[+] JSON summary written to {args.json}")

    if logger is not None:
        logger.flush()
        print(f"[+] Logged {logger.count} back-reference(s) to {args.cycle_log}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
