"""Renderer protocol and plugin discovery for output formats.

Renderers are discovered at runtime via importlib.metadata entry_points.
Extra formats can be shipped as separate packages that register under the
``hostcfg.renderers`` entry point group.
"""

from __future__ import annotations

import logging
from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from hostcfg.models import CompositionResult, RenderedArtifact

logger = logging.getLogger(__name__)

RENDERER_GROUP = "hostcfg.renderers"


@runtime_checkable
class Renderer(Protocol):
    format: str
    name: str

    def render(self, result: CompositionResult) -> RenderedArtifact: ...


def discover_renderers() -> list[Renderer]:
    """Discover all registered renderers via entry points."""
    eps = entry_points(group=RENDERER_GROUP)
    renderers: list[Renderer] = []
    for ep in eps:
        obj = ep.load()
        renderer = obj() if callable(obj) else obj
        if not isinstance(renderer, Renderer):
            raise TypeError(f"{ep.name} does not implement Renderer")
        renderers.append(renderer)
    return renderers


def builtin_renderers() -> list[Renderer]:
    from hostcfg.renderers.nix import NixRenderer
    from hostcfg.renderers.structured import JsonRenderer, YamlRenderer

    return [YamlRenderer(), JsonRenderer(), NixRenderer()]


def renderers_by_format() -> dict[str, Renderer]:
    """Installed renderers keyed by format; built-ins fill in when none are registered."""
    found = discover_renderers()
    if not found:
        logger.debug("No renderers registered under %s, using built-ins", RENDERER_GROUP)
        found = builtin_renderers()
    return {r.format: r for r in found}


def render_all(result: CompositionResult, formats: list[str]) -> list[RenderedArtifact]:
    available = renderers_by_format()
    missing = [f for f in formats if f not in available]
    if missing:
        raise ValueError(
            f"Unknown output format(s): {', '.join(missing)}. Available: {', '.join(available)}"
        )
    return [available[f].render(result) for f in formats]
