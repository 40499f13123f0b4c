from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from .yaml_tags import EditorYamlDumper, EditorYamlLoader


def read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def yaml_parse(text: str) -> Any:
    return yaml.load(text, Loader=EditorYamlLoader)


def yaml_dump(data: Any) -> str:
    if data is None:
        return ""
    rendered = yaml.dump(
        data,
        Dumper=EditorYamlDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        indent=2,
        width=float("inf"),
    )
    return rendered.rstrip() + "\n"


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False, encoding="utf-8"
    ) as tmp:
        tmp.write(content)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = Path(tmp.name)
    try:
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
