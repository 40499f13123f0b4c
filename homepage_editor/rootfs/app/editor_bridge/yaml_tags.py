from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import yaml


@dataclass(frozen=True)
class TaggedValue:
    """Represents a YAML node with an explicit local tag (e.g. `!env`)."""

    tag: str
    value: Any


class EditorYamlLoader(yaml.SafeLoader):
    """Safe YAML loader that keeps unknown `!` tags as TaggedValue objects."""


class EditorYamlDumper(yaml.SafeDumper):
    """Safe YAML dumper for dashboard config files.

    Never emits anchors or aliases, writes nulls as empty scalars and indents block
    sequences nested under a mapping key.
    """

    def ignore_aliases(self, data: Any) -> bool:
        return True

    def increase_indent(self, flow: bool = False, indentless: bool = False) -> None:
        return super().increase_indent(flow, False)


def _construct_tagged(loader: EditorYamlLoader, suffix: str, node: yaml.Node) -> TaggedValue:
    tag = f"!{suffix}"
    if isinstance(node, yaml.ScalarNode):
        value: Any = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    elif isinstance(node, yaml.MappingNode):
        value = loader.construct_mapping(node, deep=True)
    else:
        value = loader.construct_object(node)
    return TaggedValue(tag=tag, value=value)


def _represent_tagged(dumper: EditorYamlDumper, data: TaggedValue) -> yaml.Node:
    value = data.value
    if isinstance(value, dict):
        return dumper.represent_mapping(data.tag, value)
    if isinstance(value, list):
        return dumper.represent_sequence(data.tag, value)
    rendered = "" if value is None else str(value)
    return dumper.represent_scalar(data.tag, rendered)


def _represent_none(dumper: EditorYamlDumper, _data: None) -> yaml.Node:
    return dumper.represent_scalar("tag:yaml.org,2002:null", "")


EditorYamlLoader.add_multi_constructor("!", _construct_tagged)
EditorYamlDumper.add_representer(TaggedValue, _represent_tagged)
EditorYamlDumper.add_representer(type(None), _represent_none)
