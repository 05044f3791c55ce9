"""Nix renderer.

Renders the composed tree as a Nix attribute set expression that the
activation engine imports as a module. Service start order and profile
name go under ``hostcfg``.
"""

from __future__ import annotations

import re
from typing import Any

from hostcfg.models import CompositionResult, RenderedArtifact

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_'-]*$")
_INDENT = "  "


def nix_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")
    escaped = escaped.replace("\n", "\\n").replace("\t", "\\t")
    return f'"{escaped}"'


def nix_key(key: str) -> str:
    return key if _IDENT_RE.match(key) else nix_string(key)


def to_nix(value: Any, depth: int = 0) -> str:
    """Render a ConfigTree value as a Nix expression."""
    match value:
        case None:
            return "null"
        case bool():
            return "true" if value else "false"
        case int() | float():
            return repr(value)
        case str():
            return nix_string(value)
        case list() | tuple():
            if not value:
                return "[ ]"
            return "[ " + " ".join(to_nix(v, depth) for v in value) + " ]"
        case dict():
            if not value:
                return "{ }"
            pad = _INDENT * (depth + 1)
            lines = ["{"]
            for k, v in value.items():
                lines.append(f"{pad}{nix_key(str(k))} = {to_nix(v, depth + 1)};")
            lines.append(_INDENT * depth + "}")
            return "\n".join(lines)
        case _:
            raise TypeError(f"Cannot render {type(value).__name__} as Nix")


class NixRenderer:
    format: str = "nix"
    name: str = "Nix attribute set"

    def render(self, result: CompositionResult) -> RenderedArtifact:
        resolved = result.resolved
        document = {
            "hostcfg": {
                "profile": resolved.profile.value,
                "serviceOrder": list(result.service_order),
            },
            **resolved.tree,
        }
        header = (
            f"# Generated by hostcfg {resolved.compiler_version} from profile "
            f"'{resolved.profile.value}' at {resolved.compiled_at}. Do not edit.\n"
        )
        return RenderedArtifact(
            format=self.format,
            filename="config.nix",
            content=header + to_nix(document) + "\n",
        )
