"""Metalib decode/export config helpers (headless, deterministic)."""

from __future__ import annotations

import codecs
import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from ._shared.bytes_util import DEFAULT_TEXT_ENCODING, MAX_STRING_SIZE

# Minimal schema for the config object: key -> expected JSON type.
CONFIG_SCHEMA: Dict[str, str] = {
    "text_encoding": "string",
    "max_string_size": "integer",
    "indent": "string",
    "out_dir": "string",
}


@dataclass(frozen=True)
class MetalibConfig:
    """
    Knobs shared by the decoder, the XML exporter and the CLI.

    - `text_encoding`: codec for out-of-line strings (names, descriptions).
    - `max_string_size`: upper bound when scanning for a NUL terminator.
    - `indent`: one nesting level in the exported XML.
    - `out_dir`: default CLI output directory for `export`.
    """

    text_encoding: str = DEFAULT_TEXT_ENCODING
    max_string_size: int = MAX_STRING_SIZE
    indent: str = "\t"
    out_dir: str = "output"


DEFAULT_CONFIG = MetalibConfig()


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(value: Any) -> List[str]:
    """Return a sorted list of violations (empty when `value` is a valid config object)."""
    if not isinstance(value, dict):
        return [f"$: expected object, got {_type_name(value)}"]
    errors: List[str] = []
    for key in sorted(value.keys()):
        expected = CONFIG_SCHEMA.get(key)
        if expected is None:
            errors.append(f"$: unexpected property {key}")
            continue
        item = value[key]
        if expected == "string" and not isinstance(item, str):
            errors.append(f"$.{key}: expected string, got {_type_name(item)}")
        elif expected == "integer" and not _is_int(item):
            errors.append(f"$.{key}: expected int, got {_type_name(item)}")
    if isinstance(value.get("max_string_size"), int) and value.get("max_string_size", 1) <= 0:
        errors.append("$.max_string_size: must be positive")
    encoding = value.get("text_encoding")
    if isinstance(encoding, str):
        try:
            codecs.lookup(encoding)
        except LookupError:
            errors.append(f"$.text_encoding: unknown codec {encoding}")
    return errors


def config_from_dict(value: Dict[str, Any], base: MetalibConfig = DEFAULT_CONFIG) -> MetalibConfig:
    """Overlay a validated config object onto `base`."""
    return replace(base, **{k: value[k] for k in CONFIG_SCHEMA if k in value})


def load_metalib_config(
    *,
    config_json: Optional[str],
    config_path: Optional[str],
) -> MetalibConfig:
    """
    Load a config object from an inline JSON string or a JSON file.

    The two inputs are mutually exclusive. Any problem is reported as
    `SystemExit` so the CLI can surface it directly.
    """
    if config_json and config_path:
        raise SystemExit("use only one of --config or --config-path")
    config = None
    if config_json:
        try:
            config = json.loads(config_json)
        except json.JSONDecodeError as exc:
            raise SystemExit(f"invalid --config JSON: {exc.msg} (line {exc.lineno} col {exc.colno})")
    elif config_path:
        try:
            config = json.loads(Path(config_path).read_text())
        except OSError as exc:
            raise SystemExit(f"unreadable --config-path: {exc}")
        except json.JSONDecodeError as exc:
            raise SystemExit(f"invalid --config-path JSON: {exc.msg} (line {exc.lineno} col {exc.colno})")
    if config is None:
        return DEFAULT_CONFIG
    violations = validate_config(config)
    if violations:
        raise SystemExit("invalid metalib config: " + "; ".join(violations))
    return config_from_dict(config)
