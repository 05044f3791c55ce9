"""YAML and JSON renderers: the composed tree plus its composition metadata."""

from __future__ import annotations

import json
from typing import Any

import yaml

from hostcfg.models import CompositionResult, RenderedArtifact


def _document(result: CompositionResult) -> dict[str, Any]:
    resolved = result.resolved
    return {
        "metadata": {
            "profile": resolved.profile.value,
            "stateVersion": resolved.state_version,
            "compilerVersion": str(resolved.compiler_version),
            "compiledAt": resolved.compiled_at,
        },
        "serviceOrder": list(result.service_order),
        "config": resolved.tree,
    }


class YamlRenderer:
    format: str = "yaml"
    name: str = "YAML"

    def render(self, result: CompositionResult) -> RenderedArtifact:
        content = yaml.safe_dump(_document(result), default_flow_style=False, sort_keys=False)
        return RenderedArtifact(format=self.format, filename="config.yaml", content=content)


class JsonRenderer:
    format: str = "json"
    name: str = "JSON"

    def render(self, result: CompositionResult) -> RenderedArtifact:
        content = json.dumps(_document(result), indent=2) + "\n"
        return RenderedArtifact(format=self.format, filename="config.json", content=content)
