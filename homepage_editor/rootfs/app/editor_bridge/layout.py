"""Conversion between the on-disk `layout` mapping and the ordered in-memory list.

`settings.yaml` stores layout entries as a mapping keyed by group name. The order the
user wrote them in is the display order, so it is recovered from the raw file text and
the parsed tree only supplies the values.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import yaml

from .fs_utils import yaml_parse

logger = logging.getLogger(__name__)

NUMERIC_KEY_RE = re.compile(r"^(?:\d+|'\d+')$")
LAYOUT_BLOCK_RE = re.compile(r"^layout:[ \t]*(?:#.*)?\n((?:[ \t].*(?:\n|$)|\n)*)", re.MULTILINE)
KEY_TEXT = r"""'(?:[^']|'')*'|"(?:[^"\\]|\\.)*"|[^\s#'"?:{}\[\],&*!|>%@`][^\n]*?"""
# `  key:` lines, plus the `  ? key` form PyYAML emits for keys of 128+ characters.
TOP_LEVEL_KEY_RE = re.compile(
    rf"^ {{2}}(?:({KEY_TEXT}):|\? ({KEY_TEXT}))[ \t]*(?:#.*)?$", re.MULTILINE
)


def _is_numeric_key(key: Any) -> bool:
    return bool(NUMERIC_KEY_RE.match(str(key)))


def _numeric_value(key: Any) -> int:
    return int(str(key).strip("'"))


def _decode_key(key_text: str) -> str:
    key_text = key_text.strip()
    try:
        parsed = yaml_parse(f"? {key_text}\n")
    except yaml.YAMLError:
        return key_text
    if isinstance(parsed, dict) and len(parsed) == 1:
        return str(next(iter(parsed)))
    return key_text


def _props(name: str, value: Any, log: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        log.warning(f"Layout entry '{name}' is not a map ({type(value).__name__}); using empty settings.")
        return {}
    return {key: item for key, item in value.items() if key != "name"}


def _inner_name_entry(value: Any) -> dict[str, Any] | None:
    if isinstance(value, dict) and isinstance(value.get("name"), str):
        rest = {key: item for key, item in value.items() if key != "name"}
        return {"name": value["name"], **rest}
    return None


def scan_layout_keys(text: str) -> list[str] | None:
    """Return top-level layout keys in file order, or None when no `layout:` block exists."""

    match = LAYOUT_BLOCK_RE.search(text.replace("\r\n", "\n"))
    if not match:
        return None
    block = match.group(1)
    return [_decode_key(found.group(1) or found.group(2)) for found in TOP_LEVEL_KEY_RE.finditer(block)]


def _from_numeric_keys(layout: dict[Any, Any], log: Any) -> list[dict[str, Any]]:
    log.warning("Layout uses numerical keys; converting using each entry's inner 'name' field.")
    ordered: list[dict[str, Any]] = []
    for key in sorted(layout, key=_numeric_value):
        entry = _inner_name_entry(layout[key])
        if entry is None:
            log.warning(f"Skipping layout entry under numerical key '{key}': no usable inner 'name'.")
            continue
        ordered.append(entry)
    return ordered


def _from_named_keys(text: str, layout: dict[Any, Any], log: Any) -> list[dict[str, Any]]:
    scanned = scan_layout_keys(text)
    if scanned is None:
        log.warning("Could not locate the layout block in settings text; group order may be unreliable.")
        return [{"name": str(key), **_props(str(key), value, log)} for key, value in layout.items()]

    by_name = {str(key): key for key in layout}
    log.debug(f"Layout keys found in text: {scanned}")
    ordered: list[dict[str, Any]] = []
    seen: set[str] = set()
    for name in scanned:
        if name in seen:
            continue
        if name not in by_name:
            log.warning(f"Layout key '{name}' found in text but missing from parsed data; skipping.")
            continue
        seen.add(name)
        value = layout[by_name[name]]
        entry = _inner_name_entry(value) if _is_numeric_key(name) else None
        if entry is not None:
            log.warning(f"Layout key '{name}' is numerical; using inner name '{entry['name']}'.")
            ordered.append(entry)
            continue
        ordered.append({"name": name, **_props(name, value, log)})

    for name, key in by_name.items():
        if name in seen:
            continue
        value = layout[key]
        if _is_numeric_key(key):
            entry = _inner_name_entry(value)
            if entry is None:
                log.warning(f"Skipping orphan numerical layout key '{name}': no usable inner 'name'.")
                continue
            log.warning(f"Appending numerically keyed layout entry '{entry['name']}' (key: {name}).")
            ordered.append(entry)
            continue
        log.warning(f"Layout key '{name}' was not found in file order; appending to end.")
        ordered.append({"name": name, **_props(name, value, log)})
    return ordered


def reconstruct_layout(text: str, data: dict[str, Any], log: Any = None) -> dict[str, Any]:
    """Replace `data["layout"]` with an ordered list of layout entries."""

    log = log or logger
    layout = data.get("layout")
    if isinstance(layout, list):
        log.info("Layout section is already a list; using as is.")
        return data
    if not isinstance(layout, dict):
        log.info("No usable layout section found; using an empty layout.")
        data["layout"] = []
        return data

    if layout and all(_is_numeric_key(key) for key in layout):
        data["layout"] = _from_numeric_keys(layout, log)
    else:
        data["layout"] = _from_named_keys(text, layout, log)
    return data


def fold_layout(entries: list[Any], log: Any = None) -> dict[str, Any]:
    """Fold an ordered layout list back into the name-keyed mapping written to disk."""

    log = log or logger
    folded: dict[str, Any] = {}
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            log.warning(f"Skipping invalid layout entry: {entry!r}")
            continue
        rest = {key: value for key, value in entry.items() if key != "name"}
        folded[entry["name"]] = rest or None
    return folded
