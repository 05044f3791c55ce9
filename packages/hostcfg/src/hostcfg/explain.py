"""Explain capability: deterministic, template-based explanations.

explain-key: one option, from its descriptor and the resolved value
explain-profile: a composed configuration, with its overrides, fired rules and trace
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from hostcfg.models import CompositionTrace, ValidationIssue  # noqa: TC001
from hostcfg_core.types import OptionKind, ProfileType, ServiceName, ValueSource  # noqa: TC001


class KeyExplanation(BaseModel):
    """Explanation of a single option."""

    path: str
    kind: OptionKind
    value: Any
    source: ValueSource
    description: str
    default: Any = None

    def to_text(self) -> str:
        return (
            f"Option: {self.path}\n"
            f"  Kind: {self.kind.value}\n"
            f"  Value: {self.value} (source: {self.source})\n"
            f"  Default: {self.default}\n"
            f"  Purpose: {self.description}"
        )

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)


class OverrideDetail(BaseModel):
    path: str
    baseline_value: Any
    final_value: Any
    source: ValueSource


class ProfileExplanation(BaseModel):
    """Full composition explanation of a resolved configuration."""

    profile: ProfileType
    overrides_applied: list[OverrideDetail]
    guard_rails_fired: list[ValidationIssue]
    trace: list[CompositionTrace]
    service_order: list[ServiceName]
    narrative: str

    def to_text(self) -> str:
        lines = [f"Configuration composed from profile '{self.profile.value}'", ""]

        if self.overrides_applied:
            lines.append(f"Overrides ({len(self.overrides_applied)}):")
            for o in self.overrides_applied:
                lines.append(f"  {o.path}: {o.baseline_value} → {o.final_value} [{o.source}]")
            lines.append("")

        if self.guard_rails_fired:
            lines.append(f"Guard Rails ({len(self.guard_rails_fired)}):")
            for gr in self.guard_rails_fired:
                lines.append(f"  [{gr.severity}] {gr.rule_name}: {gr.message}")
            lines.append("")

        lines.append(f"Service start order: {', '.join(self.service_order) or '(none)'}")
        lines.append("")
        lines.append("Composition:")
        lines.append(f"  {self.narrative}")
        return "\n".join(lines)

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)
