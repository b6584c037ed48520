#!/usr/bin/env python3
"""
Summarize a compiled TDR metalib: header fields, table counts and types.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from tdrmeta import Metalib, MetalibError, TypeKind, load_metalib


def summarize_metalib(metalib: Metalib) -> dict:
    header = metalib.header
    graph = metalib.graph
    types = []
    for type_id in graph.roots:
        descriptor = graph.get(type_id)
        entry = {"id": type_id, "name": descriptor.name, "kind": descriptor.kind.value, "size": descriptor.size}
        if descriptor.kind in (TypeKind.STRUCT, TypeKind.UNION):
            entry["fields"] = [
                {"name": item.name, "type": graph.type_name(item.type.value), "offset": item.offset}
                for item in descriptor.fields
            ]
        elif descriptor.kind is TypeKind.ENUM:
            entry["values"] = {value.name: value.value for value in descriptor.values}
        elif descriptor.kind is TypeKind.ALIAS:
            entry["target"] = graph.type_name(descriptor.payload.target.value)
        types.append(entry)
    return {
        "offset": header.offset,
        "name": header.name,
        "version": header.version,
        "tagsetversion": header.xml_tag_set_ver,
        "size": header.size,
        "macros": len(metalib.macros),
        "metas": header.cur_meta_num,
        "macro_groups": header.cur_macros_group_num,
        "arena": len(graph),
        "types": types,
    }


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize a compiled TDR metalib.")
    parser.add_argument("input", type=Path, help="File containing the compiled metalib")
    parser.add_argument("--offset", type=lambda text: int(text, 0), default=0, help="Header offset (default: 0)")
    parser.add_argument("--json", type=Path, help="Optional path to write a JSON summary")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        metalib = load_metalib(args.input, args.offset)
    except MetalibError as exc:
        print(f"[error] {exc.kind}: {exc}", file=sys.stderr)
        return 1

    summary = summarize_metalib(metalib)
    print(
        f"Metalib '{summary['name']}' version={summary['version']} "
        f"tagset={summary['tagsetversion']} size={summary['size']}"
    )
    print(
        f"  macros={summary['macros']} metas={summary['metas']} "
        f"groups={summary['macro_groups']} arena={summary['arena']}"
    )
    for entry in summary["types"]:
        detail = ""
        if "fields" in entry:
            detail = f" fields={len(entry['fields'])}"
        elif "values" in entry:
            detail = f" values={len(entry['values'])}"
        elif "target" in entry:
            detail = f" -> {entry['target']}"
        print(f"  [{entry['id']:>3}] {entry['kind']:<6} {entry['name']} size={entry['size']}{detail}")
    if args.json:
        args.json.write_text(json.dumps(summary, indent=2, ensure_ascii=False), encoding="utf-8")
        print(f"\nSummary written to {args.json}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
