"""Profile Composer: merges a profile over the schema baseline, applies host overrides, validates.

The composition pipeline:
1. Build the baseline tree from the option schema defaults
2. Deep-merge the selected profile's overrides onto the baseline
3. Apply the host override tree, then command-line ``key=value`` overrides
4. Validate the merged tree (schema, ports, conflicts, dependencies, ordering, rules)
5. Build the ResolvedConfig, composition trace and why section
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from hostcfg.models import (
    CompositionResult,
    CompositionTrace,
    ProfileDescription,
    ProfileSummary,
    ResolvedConfig,
    ResolvedParameter,
    ValidationIssue,
)
from hostcfg.profiles import PROFILES, overrides_table
from hostcfg.schema import OptionSchema, baseline_from_schema
from hostcfg.tree import (
    deep_merge,
    flatten,
    get_path,
    has_path,
    merge_layers,
    unflatten,
    unknown_paths,
)
from hostcfg.validators import ConfigValidator
from hostcfg_core.types import ConfigTree, OptionKind, ProfileType, ValueSource
from hostcfg_core.versions import COMPILER_VERSION

if TYPE_CHECKING:
    from hostcfg.catalog import ServiceCatalog
    from hostcfg.explain import KeyExplanation, ProfileExplanation
    from hostcfg.options import OptionDescriptor
    from hostcfg.settings import HostcfgSettings

logger = logging.getLogger(__name__)

_LIST_KINDS = (OptionKind.STRING_LIST, OptionKind.PORT_LIST)


class UnknownProfileError(ValueError):
    def __init__(self, name: str, available: list[str] | None = None) -> None:
        self.name = name
        names = ", ".join(available if available is not None else [p.value for p in ProfileType])
        super().__init__(f"Unknown profile '{name}'. Available: {names}")


class UnknownKeyError(ValueError):
    def __init__(self, paths: list[str], layer: str = "profile") -> None:
        self.paths = paths
        self.layer = layer
        super().__init__(f"Unknown option key(s) in {layer} overrides: {', '.join(paths)}")


class ValidationFailedError(Exception):
    """Raised when validation of the composed tree produces errors."""

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = issues
        super().__init__(
            f"Validation failed with {len(issues)} error(s): {'; '.join(i.message for i in issues)}"
        )


def compose(
    profile_type: ProfileType | str,
    baseline: ConfigTree,
    overrides_table: Mapping[ProfileType | str, ConfigTree],
) -> ConfigTree:
    """Deep-merge the selected profile's overrides onto ``baseline``.

    Raises:
        UnknownProfileError: ``profile_type`` is not a known profile, or the
            table has no entry for it.
        UnknownKeyError: the overrides name keys the baseline does not have.
    """
    available = [str(p) for p in overrides_table]
    try:
        key = ProfileType(profile_type)
    except ValueError:
        raise UnknownProfileError(str(profile_type), available) from None

    overrides = overrides_table.get(key)
    if overrides is None:
        raise UnknownProfileError(key.value, available)

    unknown = unknown_paths(overrides, baseline)
    if unknown:
        raise UnknownKeyError(unknown)

    return deep_merge(baseline, overrides)


def _coerce_scalar(raw: str) -> Any:
    lower = raw.strip().lower()
    if lower in ("true", "yes"):
        return True
    if lower in ("false", "no"):
        return False
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        return raw


def parse_override_assignments(
    assignments: list[str],
    schema: OptionSchema | None = None,
) -> dict[str, Any]:
    """Parse ``key=value`` strings into a flat ``{dotted.path: value}`` map.

    Values become booleans (true/false/yes/no), ints, floats or strings. For
    list-typed options in ``schema`` the value is split on commas.
    """
    values: dict[str, Any] = {}
    for item in assignments:
        if "=" not in item:
            raise ValueError(f"Invalid override format: '{item}'. Use key=value")
        key, raw = item.split("=", 1)
        key = key.strip()
        descriptor = schema.get(key) if schema is not None else None
        if descriptor is not None and descriptor.kind in _LIST_KINDS:
            values[key] = [_coerce_scalar(v.strip()) for v in raw.split(",") if v.strip()]
        elif descriptor is not None and descriptor.kind in (OptionKind.STR, OptionKind.PATH):
            values[key] = raw
        else:
            values[key] = _coerce_scalar(raw)
    return values


class ConfigCompiler:
    """Composes a profile + host overrides into a validated ResolvedConfig."""

    def __init__(
        self,
        schema: OptionSchema,
        catalog: ServiceCatalog,
        *,
        settings: HostcfgSettings | None = None,
        compiler_version: str = COMPILER_VERSION,
    ) -> None:
        self._schema = schema
        self._catalog = catalog
        self._settings = settings
        self._compiler_version = compiler_version
        self._baseline = baseline_from_schema(schema)

    @property
    def baseline(self) -> ConfigTree:
        return deep_merge(self._baseline, {})

    def _strict(self, strict: bool | None) -> bool:
        if strict is not None:
            return strict
        return self._settings.strict_values if self._settings else False

    def _profile_overrides(self, profile: ProfileType | str) -> tuple[ProfileType, ConfigTree]:
        try:
            profile_type = ProfileType(profile)
        except ValueError:
            raise UnknownProfileError(str(profile)) from None
        return profile_type, PROFILES[profile_type].overrides

    def _check_layer(self, layer: ConfigTree, name: str) -> None:
        unknown = unknown_paths(layer, self._baseline)
        if unknown:
            raise UnknownKeyError(unknown, layer=name)

    def compile(
        self,
        profile: ProfileType | str,
        *,
        host_overrides: ConfigTree | None = None,
        overrides: Mapping[str, Any] | None = None,
        strict: bool | None = None,
    ) -> CompositionResult:
        profile_type, _ = self._profile_overrides(profile)
        composed = compose(profile_type, self._baseline, overrides_table())

        host_layer = host_overrides or {}
        self._check_layer(host_layer, "host")
        cli_layer = unflatten(dict(overrides or {}))
        self._check_layer(cli_layer, "command-line")

        tree = merge_layers(composed, host_layer, cli_layer)

        validator = ConfigValidator(self._schema, self._catalog, strict=self._strict(strict))
        report = validator.validate(tree)
        if report.errors:
            logger.info(
                "Profile %s failed validation with %d error(s)", profile_type, len(report.errors)
            )
            raise ValidationFailedError(report.errors)

        from whenever import Instant

        applied = merge_layers(host_layer, cli_layer)
        resolved = ResolvedConfig(
            profile=profile_type,
            tree=tree,
            overrides=applied,
            state_version=get_path(tree, "system.stateVersion"),
            compiler_version=self._compiler_version,
            compiled_at=str(Instant.now()),
        )
        trace = self._trace(profile_type, applied)
        why_section = self._generate_why_section(resolved, report.service_order, report.warnings)
        logger.debug("Compiled profile %s with %d trace entries", profile_type, len(trace))

        return CompositionResult(
            resolved=resolved,
            service_order=report.service_order,
            warnings=report.warnings,
            trace=trace,
            why_section=why_section,
        )

    def _trace(self, profile_type: ProfileType, applied: ConfigTree) -> list[CompositionTrace]:
        """One entry per leaf: the layer that set it and the baseline value it replaced."""
        flat_baseline = flatten(self._baseline)
        flat_profile = flatten(PROFILES[profile_type].overrides)
        flat_applied = flatten(applied)
        final = flatten(merge_layers(self._baseline, PROFILES[profile_type].overrides, applied))

        trace: list[CompositionTrace] = []
        for path, final_value in final.items():
            chain: list[str] = ["baseline"] if path in flat_baseline else []
            if path in flat_profile:
                chain.append(f"profile:{profile_type.value}")
            if path in flat_applied:
                chain.append("override")
            trace.append(
                CompositionTrace(
                    path=path,
                    source=self._source(path, flat_profile, flat_applied),
                    base_value=flat_baseline.get(path),
                    final_value=final_value,
                    chain=chain,
                )
            )
        return trace

    @staticmethod
    def _source(
        path: str, flat_profile: Mapping[str, Any], flat_applied: Mapping[str, Any]
    ) -> ValueSource:
        if path in flat_applied:
            return "override"
        if path in flat_profile:
            return "profile"
        return "baseline"

    @staticmethod
    def _generate_why_section(
        resolved: ResolvedConfig,
        service_order: list[str],
        warnings: list[ValidationIssue],
    ) -> str:
        """Generate a template-based explanation of the composition result."""
        profile = PROFILES[resolved.profile]
        lines: list[str] = []
        lines.append(f"Configuration composed from profile '{resolved.profile.value}'")
        lines.append(f"  {profile.description}")
        lines.append(f"  Profile overrides: {len(flatten(profile.overrides))} option(s)")

        flat_overrides = flatten(resolved.overrides)
        if flat_overrides:
            lines.append(f"  Host overrides applied: {len(flat_overrides)} option(s)")
            for path, value in flat_overrides.items():
                lines.append(f"    {path} = {value}")

        lines.append("")
        lines.append("Service start order:")
        order_text = " → ".join(service_order) if service_order else "(no services enabled)"
        lines.append(f"  {order_text}")

        if warnings:
            lines.append("")
            lines.append("Warnings:")
            for w in warnings:
                lines.append(f"  {w.rule_name or w.kind.value}: {w.message}")

        return "\n".join(lines)

    def list_profiles(self) -> list[ProfileSummary]:
        """Return summaries of all available profiles."""
        return [
            ProfileSummary(
                name=p.profile_type,
                description=p.description,
                override_count=len(flatten(p.overrides)),
            )
            for p in PROFILES.values()
        ]

    def describe_profile(self, profile: ProfileType | str) -> ProfileDescription:
        """Describe a profile by resolving every option without running validation."""
        profile_type, profile_overrides = self._profile_overrides(profile)
        tree = compose(profile_type, self._baseline, overrides_table())
        flat_profile = flatten(profile_overrides)

        return ProfileDescription(
            name=profile_type,
            description=PROFILES[profile_type].description,
            parameters=[
                ResolvedParameter(
                    path=path,
                    value=value,
                    source="profile" if path in flat_profile else "baseline",
                )
                for path, value in flatten(tree).items()
            ],
        )

    def _descriptor_for(self, path: str) -> OptionDescriptor | None:
        """Find the descriptor for ``path``, descending into submodule options."""
        descriptor = self._schema.get(path)
        if descriptor is not None:
            return descriptor
        parts = path.split(".")
        for i in range(len(parts) - 1, 0, -1):
            parent = self._schema.get(".".join(parts[:i]))
            if parent is None:
                continue
            node: OptionDescriptor | None = parent
            for part in parts[i:]:
                if node is None or node.kind != OptionKind.SUBMODULE:
                    return None
                node = (node.options or {}).get(part)
            return node
        return None

    def explain_key(self, path: str, resolved: ResolvedConfig) -> KeyExplanation:
        """Explain a single option from its descriptor and the resolved value."""
        from hostcfg.explain import KeyExplanation

        descriptor = self._descriptor_for(path)
        if descriptor is None:
            raise UnknownKeyError([path], layer="explain")

        if has_path(resolved.overrides, path):
            source: ValueSource = "override"
        elif has_path(PROFILES[resolved.profile].overrides, path):
            source = "profile"
        else:
            source = "baseline"

        return KeyExplanation(
            path=path,
            kind=descriptor.kind,
            value=resolved.get(path),
            source=source,
            description=descriptor.description,
            default=get_path(self._baseline, path),
        )

    def explain_profile(self, resolved: ResolvedConfig) -> ProfileExplanation:
        """Explain a resolved configuration's full composition."""
        from hostcfg.explain import OverrideDetail, ProfileExplanation

        trace = self._trace(resolved.profile, resolved.overrides)
        overrides_applied = [
            OverrideDetail(
                path=t.path,
                baseline_value=t.base_value,
                final_value=t.final_value,
                source=t.source,
            )
            for t in trace
            if t.source != "baseline" and t.base_value != t.final_value
        ]

        validator = ConfigValidator(self._schema, self._catalog, strict=self._strict(None))
        report = validator.validate(resolved.tree)
        fired = [i for i in report.issues if i.rule_name is not None]

        parts = [f"Composed from profile '{resolved.profile.value}'."]
        from_profile = [o for o in overrides_applied if o.source == "profile"]
        from_host = [o for o in overrides_applied if o.source == "override"]
        if from_profile:
            parts.append(f"{len(from_profile)} option(s) changed from baseline by the profile.")
        if from_host:
            parts.append(f"{len(from_host)} option(s) changed by host overrides.")
        warnings = [i for i in fired if i.severity == "warning"]
        errors = [i for i in fired if i.severity == "error"]
        if warnings:
            parts.append(f"{len(warnings)} warning(s) noted.")
        if errors:
            parts.append(f"{len(errors)} error(s) detected.")
        parts.append(f"{len(report.service_order)} service(s) enabled.")

        return ProfileExplanation(
            profile=resolved.profile,
            overrides_applied=overrides_applied,
            guard_rails_fired=fired,
            trace=trace,
            service_order=report.service_order,
            narrative=" ".join(parts),
        )
