#!/usr/bin/env python3
"""
`mldec.api.metalib` command-line interface.

Reads a compiled TDR metalib out of a file (at an optional hex offset, since
metalibs are usually embedded inside a larger binary) and:
- `export`: writes the reconstructed XML schema (`<stem>.xml`),
- `dump`: writes the decoded model (or a compact summary) as JSON,
- `resolve`: turns a byte offset inside one struct into its dotted field path.

Each input file is an independent run. Any decode / resolve / export error
aborts that run with a `[-]` line on stderr and a non-zero exit; no partial
output file is written.

This is the entrypoint for `python -m mldec.api.metalib ...` (via `__main__.py`).
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from . import decoder as decoder_mod
from . import export as export_mod
from . import resolver as resolver_mod
from .config import MetalibConfig, load_metalib_config
from .decoder import CoordinateSpace
from .errors import MetalibError
from .ingestion import MetalibBlob


def parse_hex_offset(raw: str) -> int:
    """Parse a hex offset with or without a `0x` prefix (`1A0`, `0x1a0`)."""
    text = raw.strip()
    if text.lower().startswith("0x"):
        text = text[2:]
    try:
        value = int(text, 16)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a hex offset: {raw!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"offset must be non-negative: {raw!r}")
    return value


def _choose_out(src: Path, out: Path | None, out_dir: Path | None, config: MetalibConfig) -> Path:
    """
    Choose the XML output path for one input.

    CLI rules:
    - An explicit `--out` wins.
    - Else `--out-dir` (or the configured `out_dir`) holds `<stem>.xml`.
    """
    if out:
        return out
    return (out_dir or Path(config.out_dir)) / f"{src.stem}.xml"


def _config(args: argparse.Namespace) -> MetalibConfig:
    return load_metalib_config(config_json=args.config, config_path=args.config_path)


def _decode(path: Path, offset: int, config: MetalibConfig) -> decoder_mod.Metalib:
    blob = MetalibBlob.from_path(path)
    return decoder_mod.decode_metalib_blob(blob, offset=offset, config=config)


def _fail(path: Path, exc: MetalibError) -> SystemExit:
    print(f"[-] {path}: {exc}", file=sys.stderr)
    return SystemExit(1)


def export_command(args: argparse.Namespace) -> int:
    """`export`: metalib blob(s) → XML file(s)."""
    if args.out and len(args.paths) != 1:
        raise SystemExit("--out is only valid with a single input")
    config = _config(args)
    for src in args.paths:
        print(f"[+] loading metalib from {src} at offset 0x{args.offset:X}")
        try:
            metalib = _decode(src, args.offset, config)
            xml_text = export_mod.export_metalib_xml(metalib, config=config)
        except MetalibError as exc:
            raise _fail(src, exc)
        payload = xml_text.encode("utf-8")
        target = _choose_out(src, args.out, args.out_dir, config)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(payload)
        print(f"[+] wrote {target} ({len(metalib.macros)} macros, {len(metalib.metas)} metas)")
    return 0


def dump_command(args: argparse.Namespace) -> int:
    """
    `dump`: decoded model as JSON.

    `--summary` emits one compact line per input instead of the full model;
    the full model is the same shape `decode_metalib_dict` returns.
    """
    config = _config(args)
    out: list[dict] = []
    for path in args.paths:
        try:
            metalib = _decode(path, args.offset, config)
        except MetalibError as exc:
            raise _fail(path, exc)
        out.append(decoder_mod.summarize_metalib(metalib) if args.summary else metalib.to_dict())

    serialized = json.dumps(out, indent=None if args.summary else 2, ensure_ascii=False)
    if args.out:
        args.out.write_text(serialized, encoding="utf-8")
        print(f"[+] wrote {args.out}")
    else:
        sys.stdout.write(serialized + ("\n" if not serialized.endswith("\n") else ""))
    return 0


def resolve_command(args: argparse.Namespace) -> int:
    """`resolve`: (struct name, byte offset) → dotted field path on stdout."""
    config = _config(args)
    try:
        metalib = _decode(args.path, args.offset, config)
        try:
            meta = metalib.meta_by_name(args.meta)
        except KeyError:
            raise SystemExit(f"no struct or union named {args.meta!r} in {args.path}")
        path = resolver_mod.resolve_field_path(metalib, meta, args.field_offset, CoordinateSpace(args.space))
    except MetalibError as exc:
        raise _fail(args.path, exc)
    print(path)
    return 0


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--offset",
        type=parse_hex_offset,
        default=0,
        help="Hex offset of the metalib header inside the file (default 0)",
    )
    p.add_argument("--config", help="Inline JSON config object")
    p.add_argument("--config-path", help="Path to a JSON config file")


def main(argv: list[str] | None = None) -> int:
    """
    Entrypoint for the `python -m mldec.api.metalib` CLI.

    Accepts an optional `argv` for unit tests and embedding.
    """
    ap = argparse.ArgumentParser(description="Decode compiled TDR metalibs back into XML schema.")
    sub = ap.add_subparsers(dest="command", required=True)

    ap_export = sub.add_parser("export", help="Reconstruct the XML schema of one or more metalib blobs.")
    ap_export.add_argument("paths", nargs="+", type=Path, help="Files containing a compiled metalib")
    ap_export.add_argument("--out", type=Path, help="Output path (only valid for a single input)")
    ap_export.add_argument("--out-dir", type=Path, help="Directory for <stem>.xml outputs (default: ./output)")
    _add_common(ap_export)
    ap_export.set_defaults(func=export_command)

    ap_dump = sub.add_parser("dump", help="Dump the decoded metalib model as JSON.")
    ap_dump.add_argument("paths", nargs="+", type=Path, help="Files containing a compiled metalib")
    ap_dump.add_argument("--summary", action="store_true", help="Emit a compact summary instead of the full model")
    ap_dump.add_argument("--out", type=Path, help="Write JSON to this path instead of stdout")
    _add_common(ap_dump)
    ap_dump.set_defaults(func=dump_command)

    ap_resolve = sub.add_parser("resolve", help="Resolve a byte offset inside a struct to its dotted field path.")
    ap_resolve.add_argument("path", type=Path, help="File containing a compiled metalib")
    ap_resolve.add_argument("--meta", required=True, help="Struct or union name")
    ap_resolve.add_argument("--field-offset", type=int, required=True, help="Byte offset inside the struct")
    ap_resolve.add_argument(
        "--space",
        choices=[space.value for space in CoordinateSpace],
        default=CoordinateSpace.NET.value,
        help="Coordinate space of --field-offset (default net)",
    )
    _add_common(ap_resolve)
    ap_resolve.set_defaults(func=resolve_command)

    args = ap.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
