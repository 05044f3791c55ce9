"""Composer models: services, profiles, validation issues and composition results."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from hostcfg_core.types import (  # noqa: TC001
    ConfigTree,
    IssueKind,
    ProfileType,
    ServiceName,
    Severity,
    ValueSource,
)
from hostcfg_core.versions import StateVersionType, VersionType  # noqa: TC001


class ValidationIssue(BaseModel):
    """One structured validation failure (or warning) with its offending keys and services."""

    model_config = ConfigDict(frozen=True)

    kind: IssueKind
    message: str
    severity: Severity = "error"
    rule_name: str | None = None
    keys: list[str] = []
    services: list[ServiceName] = []
    service: ServiceName | None = None
    missing: list[ServiceName] = []
    ports: list[int] = []
    cycle: list[ServiceName] = []


class Assertion(BaseModel):
    model_config = ConfigDict(frozen=True)

    assertion: bool
    message: str


class ServiceDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: ServiceName
    description: str
    default_ports: list[int] = []
    depends_on: list[ServiceName] = []


class ConflictGroup(BaseModel):
    """Services of which at most one may be enabled."""

    model_config = ConfigDict(frozen=True)

    services: list[ServiceName]
    message: str


class ServiceEntry(BaseModel):
    """A service as read from a merged tree. Rebuilt on every validation pass."""

    model_config = ConfigDict(frozen=True)

    name: ServiceName
    enabled: bool
    ports: frozenset[int] = frozenset()
    depends_on: frozenset[ServiceName] = frozenset()
    conflicts_with: list[frozenset[ServiceName]] = []


class ValidationReport(BaseModel):
    enabled_services: list[ServiceName]
    service_order: list[ServiceName]
    issues: list[ValidationIssue]
    conflict_groups: list[ConflictGroup] = []
    dependencies: dict[ServiceName, list[ServiceName]] = {}

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def ok(self) -> bool:
        return not self.errors


class Profile(BaseModel):
    model_config = ConfigDict(frozen=True)

    profile_type: ProfileType
    description: str
    overrides: ConfigTree


class ResolvedParameter(BaseModel):
    path: str
    value: Any
    source: ValueSource


class CompositionTrace(BaseModel):
    path: str
    source: ValueSource
    base_value: Any
    final_value: Any
    chain: list[str]


class ResolvedConfig(BaseModel):
    """The validated settings tree handed to the activation engine."""

    model_config = ConfigDict(frozen=True)

    profile: ProfileType
    tree: ConfigTree
    overrides: ConfigTree = {}
    state_version: StateVersionType
    compiler_version: VersionType
    compiled_at: str

    def get(self, path: str, default: Any = None) -> Any:
        from hostcfg.tree import get_path

        return get_path(self.tree, path, default)


class CompositionResult(BaseModel):
    resolved: ResolvedConfig
    service_order: list[ServiceName]
    warnings: list[ValidationIssue]
    trace: list[CompositionTrace]
    why_section: str


class RenderedArtifact(BaseModel):
    format: str
    filename: str
    content: str


class ProfileSummary(BaseModel):
    name: ProfileType
    description: str
    override_count: int


class ProfileDescription(BaseModel):
    name: ProfileType
    description: str
    parameters: list[ResolvedParameter] = Field(default_factory=list)

    def by_source(self, source: ValueSource) -> list[ResolvedParameter]:
        return [p for p in self.parameters if p.source == source]
