"""ConfigTree operations: deep merge, dotted-path access and enable-flag helpers.

All functions are pure: inputs are never mutated and results share no
mutable containers with them.
"""

from __future__ import annotations

import copy
from typing import Any

from hostcfg_core.types import ConfigTree, ConfigValue

_MISSING = object()


def deep_merge(base: ConfigTree, override: ConfigTree) -> ConfigTree:
    """Merge ``override`` onto ``base``.

    Nested maps merge key by key. Any other override value, including a list,
    replaces the base value wholesale, even when the base value is a map.
    Keys absent from ``override`` keep their base value.
    """
    merged: ConfigTree = copy.deepcopy(base)
    for key, value in override.items():
        current = merged.get(key, _MISSING)
        if isinstance(value, dict) and isinstance(current, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def merge_layers(base: ConfigTree, *layers: ConfigTree) -> ConfigTree:
    """Apply override layers in order; the last layer wins."""
    merged = copy.deepcopy(base)
    for layer in layers:
        merged = deep_merge(merged, layer)
    return merged


def get_path(tree: ConfigTree, path: str, default: Any = None) -> Any:
    node: Any = tree
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def has_path(tree: ConfigTree, path: str) -> bool:
    return get_path(tree, path, _MISSING) is not _MISSING


def set_path(tree: ConfigTree, path: str, value: ConfigValue) -> ConfigTree:
    """Return a copy of ``tree`` with ``path`` set, creating intermediate maps."""
    result = copy.deepcopy(tree)
    node = result
    *parents, leaf = path.split(".")
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[leaf] = copy.deepcopy(value)
    return result


def flatten(tree: ConfigTree, prefix: str = "") -> dict[str, ConfigValue]:
    """Map every leaf to its dotted path. Empty maps are kept as leaves."""
    flat: dict[str, ConfigValue] = {}
    for key, value in tree.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and value:
            flat.update(flatten(value, path))
        else:
            flat[path] = value
    return flat


def unflatten(flat: dict[str, ConfigValue]) -> ConfigTree:
    tree: ConfigTree = {}
    for path, value in flat.items():
        tree = set_path(tree, path, value)
    return tree


def unknown_paths(layer: ConfigTree, base: ConfigTree, prefix: str = "") -> list[str]:
    """Dotted paths of ``layer`` that do not exist in ``base``.

    Descending into a key whose base value is not a map also counts as unknown,
    including an option whose default is unset.
    """
    unknown: list[str] = []
    for key, value in layer.items():
        path = f"{prefix}.{key}" if prefix else key
        if key not in base:
            unknown.append(path)
            continue
        base_value = base[key]
        if isinstance(value, dict) and value:
            if isinstance(base_value, dict):
                unknown.extend(unknown_paths(value, base_value, path))
            else:
                unknown.extend(f"{path}.{k}" for k in value)
    return unknown


def service_enabled(tree: ConfigTree, name: str) -> bool:
    service = get_path(tree, f"services.{name}")
    return isinstance(service, dict) and service.get("enable") is True


def module_enabled(tree: ConfigTree, path: str) -> bool:
    """Whether the module at a dotted path exists and has ``enable = true``."""
    module = get_path(tree, path)
    return isinstance(module, dict) and module.get("enable") is True
