"""Validator: port and service conflicts, dependency checks and start ordering.

Every check is a pure function returning a list of ValidationIssue; an empty
list means the check passed. ConfigValidator runs them all over one tree and
accumulates every issue instead of stopping at the first.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable, Mapping

from hostcfg.catalog import ServiceCatalog, service_entries
from hostcfg.models import (
    Assertion,
    ConflictGroup,
    ServiceEntry,
    ValidationIssue,
    ValidationReport,
)
from hostcfg.schema import OptionSchema, validate_tree
from hostcfg.tree import get_path, module_enabled
from hostcfg.values import TimeOfDay, is_email, is_ipv4, is_ipv6
from hostcfg_core.types import ConfigTree, IssueKind, ServiceName
from hostcfg_core.versions import is_state_version

logger = logging.getLogger(__name__)

PORT_MIN = 1
PORT_MAX = 65535


class CycleError(ValueError):
    """The dependency graph restricted to the requested services is not a DAG."""

    def __init__(self, cycle: list[ServiceName]) -> None:
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' -> '.join([*cycle, cycle[0]])}")


def mk_assertion(condition: bool, message: str) -> Assertion:
    return Assertion(assertion=condition, message=f"Configuration error: {message}")


# =========================================================================
# Pure checks
# =========================================================================


def check_port_conflicts(claims: Iterable[tuple[ServiceName, int]]) -> list[ValidationIssue]:
    """Report every port claimed more than once across enabled services.

    ``claims`` is a multiset of ``(service, port)`` pairs. Callers include
    only enabled services; a disabled service contributes no claims.
    """
    claimants: dict[int, list[ServiceName]] = {}
    for service, port in claims:
        claimants.setdefault(port, []).append(service)

    issues: list[ValidationIssue] = []
    for port, services in claimants.items():
        if len(services) > 1:
            names = list(dict.fromkeys(services))
            issues.append(
                ValidationIssue(
                    kind=IssueKind.CONFLICT,
                    message=f"Port {port} is claimed by multiple services: {', '.join(names)}",
                    services=names,
                    ports=[port],
                )
            )
    return issues


def check_service_conflicts(
    enabled: Collection[ServiceName],
    groups: Iterable[ConflictGroup | Collection[ServiceName]],
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for group in groups:
        members = group.services if isinstance(group, ConflictGroup) else sorted(group)
        active = [s for s in members if s in enabled]
        if len(active) > 1:
            message = (
                group.message
                if isinstance(group, ConflictGroup)
                else f"{', '.join(active)} cannot be enabled simultaneously"
            )
            issues.append(
                ValidationIssue(kind=IssueKind.CONFLICT, message=message, services=active)
            )
    return issues


def check_dependencies(
    service: ServiceName,
    enabled: Collection[ServiceName],
    depends_on: Mapping[ServiceName, Iterable[ServiceName]],
) -> list[ValidationIssue]:
    """One dependency issue per requirement of an enabled ``service`` that is not enabled."""
    if service not in enabled:
        return []
    return [
        ValidationIssue(
            kind=IssueKind.DEPENDENCY,
            message=f"{service} requires {dep} to be enabled",
            services=[service, dep],
            service=service,
            missing=[dep],
        )
        for dep in depends_on.get(service, ())
        if dep not in enabled
    ]


def check_port_ranges(entries: Iterable[ServiceEntry]) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for entry in entries:
        if not entry.enabled:
            continue
        for port in sorted(entry.ports):
            if not PORT_MIN <= port <= PORT_MAX:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.BOUNDS,
                        message=f"{entry.name}: port {port} is outside {PORT_MIN}-{PORT_MAX}",
                        services=[entry.name],
                        ports=[port],
                    )
                )
    return issues


def resolve_dependency_order(
    services: Iterable[ServiceName],
    depends_on: Mapping[ServiceName, Iterable[ServiceName]],
) -> list[ServiceName]:
    """Order ``services`` so each one comes after everything it depends on.

    Kahn's algorithm over the graph restricted to ``services``. When several
    services are ready at once, the one earliest in the input goes first.
    Dependencies outside ``services`` are ignored.

    Raises:
        CycleError: the restricted graph has a cycle; ``.cycle`` holds it in
            dependency order.
    """
    nodes = list(dict.fromkeys(services))
    members = set(nodes)
    requires = {n: [d for d in dict.fromkeys(depends_on.get(n, ())) if d in members] for n in nodes}
    remaining = {n: len(deps) for n, deps in requires.items()}
    dependents: dict[ServiceName, list[ServiceName]] = {n: [] for n in nodes}
    for n, deps in requires.items():
        for dep in deps:
            dependents[dep].append(n)

    order: list[ServiceName] = []
    emitted: set[ServiceName] = set()
    while len(order) < len(nodes):
        ready = next((n for n in nodes if n not in emitted and remaining[n] == 0), None)
        if ready is None:
            blocked = [n for n in nodes if n not in emitted]
            raise CycleError(_find_cycle(blocked, requires))
        order.append(ready)
        emitted.add(ready)
        for dependent in dependents[ready]:
            remaining[dependent] -= 1
    return order


def _find_cycle(
    blocked: list[ServiceName], requires: Mapping[ServiceName, list[ServiceName]]
) -> list[ServiceName]:
    """Depth-first walk along dependency edges until a node repeats on the stack."""
    candidates = set(blocked)
    visited: set[ServiceName] = set()

    def _walk(node: ServiceName, stack: list[ServiceName]) -> list[ServiceName] | None:
        if node in stack:
            return stack[stack.index(node) :]
        if node in visited:
            return None
        visited.add(node)
        stack.append(node)
        for dep in requires[node]:
            if dep in candidates:
                found = _walk(dep, stack)
                if found:
                    return found
        stack.pop()
        return None

    for start in blocked:
        found = _walk(start, [])
        if found:
            return found
    # Every blocked node sits on or behind a cycle, so the walk always finds one.
    raise AssertionError("no cycle found among blocked services")


# =========================================================================
# Validator
# =========================================================================


class ConfigValidator:
    """Runs every check over a merged tree and collects all issues into one report."""

    def __init__(
        self,
        schema: OptionSchema,
        catalog: ServiceCatalog,
        *,
        strict: bool = False,
    ) -> None:
        self.schema = schema
        self.catalog = catalog
        self.strict = strict

    def validate(self, tree: ConfigTree) -> ValidationReport:
        entries = service_entries(tree, self.catalog)
        enabled = [e.name for e in entries if e.enabled]
        depends_on = {e.name: sorted(e.depends_on) for e in entries}

        issues: list[ValidationIssue] = []
        issues.extend(validate_tree(tree, self.schema, strict=self.strict))
        # Ports declared in the schema were already range-checked above.
        issues.extend(
            check_port_ranges(
                e for e in entries if f"services.{e.name}.ports" not in self.schema
            )
        )
        issues.extend(
            check_port_conflicts(
                (e.name, port) for e in entries if e.enabled for port in sorted(e.ports)
            )
        )
        issues.extend(check_service_conflicts(enabled, self.catalog.conflict_groups))
        for name in enabled:
            issues.extend(check_dependencies(name, enabled, depends_on))

        service_order: list[ServiceName] = []
        try:
            service_order = resolve_dependency_order(enabled, depends_on)
        except CycleError as e:
            issues.append(
                ValidationIssue(
                    kind=IssueKind.CYCLE,
                    message=str(e),
                    services=list(e.cycle),
                    cycle=list(e.cycle),
                )
            )

        issues.extend(self.evaluate_rules(tree, entries))

        report = ValidationReport(
            enabled_services=enabled,
            service_order=service_order,
            issues=issues,
            conflict_groups=self.catalog.conflict_groups,
            dependencies=self.catalog.dependency_table(),
        )
        logger.debug(
            "Validated %d enabled services: %d error(s), %d warning(s)",
            len(enabled),
            len(report.errors),
            len(report.warnings),
        )
        return report

    def evaluate_rules(
        self, tree: ConfigTree, entries: list[ServiceEntry]
    ) -> list[ValidationIssue]:
        results: list[ValidationIssue] = []
        for check in (
            self._check_state_version,
            self._check_firewall_disabled_with_open_ports,
            self._check_backup_without_paths,
            self._check_backup_keeps_daily_snapshots,
            self._check_auto_update_reboot_outside_window,
            self._check_alert_email_format,
            self._check_dns_server_addresses,
        ):
            result = check(tree, entries)
            if result:
                results.append(result)
        return results

    @staticmethod
    def _check_state_version(
        tree: ConfigTree, entries: list[ServiceEntry]
    ) -> ValidationIssue | None:
        value = get_path(tree, "system.stateVersion")
        if value is None or is_state_version(value):
            return None
        return ValidationIssue(
            kind=IssueKind.TYPE,
            rule_name="state_version_format",
            message=f"system.stateVersion: '{value}' is not a YY.MM release (e.g. 25.05)",
            keys=["system.stateVersion"],
        )

    @staticmethod
    def _check_firewall_disabled_with_open_ports(
        tree: ConfigTree, entries: list[ServiceEntry]
    ) -> ValidationIssue | None:
        """Services listening on ports while the host firewall is off."""
        if get_path(tree, "networking.firewall.enable") is not False:
            return None
        exposed = [e for e in entries if e.enabled and e.ports]
        if not exposed:
            return None
        ports = sorted({p for e in exposed for p in e.ports})
        return ValidationIssue(
            kind=IssueKind.CONFLICT,
            severity="warning",
            rule_name="firewall_disabled_with_open_ports",
            message=(
                f"The firewall is disabled while {', '.join(e.name for e in exposed)} "
                f"listen on ports {', '.join(str(p) for p in ports)}"
            ),
            keys=["networking.firewall.enable"],
            services=[e.name for e in exposed],
            ports=ports,
        )

    @staticmethod
    def _check_backup_without_paths(
        tree: ConfigTree, entries: list[ServiceEntry]
    ) -> ValidationIssue | None:
        if not module_enabled(tree, "services.backup"):
            return None
        if get_path(tree, "services.backup.paths"):
            return None
        return ValidationIssue(
            kind=IssueKind.DEPENDENCY,
            severity="warning",
            rule_name="backup_without_paths",
            message="Backups are enabled but services.backup.paths is empty",
            keys=["services.backup.paths"],
            services=["backup"],
        )

    @staticmethod
    def _check_backup_keeps_daily_snapshots(
        tree: ConfigTree, entries: list[ServiceEntry]
    ) -> ValidationIssue | None:
        if not module_enabled(tree, "services.backup"):
            return None
        keep_daily = get_path(tree, "services.backup.retention.keepDaily")
        if not isinstance(keep_daily, int) or keep_daily >= 1:
            return None
        return ValidationIssue(
            kind=IssueKind.BOUNDS,
            rule_name="backup_keeps_daily_snapshots",
            message=mk_assertion(False, "backups must keep at least 1 daily snapshot").message,
            keys=["services.backup.retention.keepDaily"],
            services=["backup"],
        )

    @staticmethod
    def _check_auto_update_reboot_outside_window(
        tree: ConfigTree, entries: list[ServiceEntry]
    ) -> ValidationIssue | None:
        """Reboots are allowed but the reboot window is empty, so none can ever happen in it."""
        prefix = "system.maintenance.autoUpdate"
        if not module_enabled(tree, prefix) or get_path(tree, f"{prefix}.allowReboot") is not True:
            return None
        try:
            start = TimeOfDay.parse(get_path(tree, f"{prefix}.rebootWindow.start", ""))
            end = TimeOfDay.parse(get_path(tree, f"{prefix}.rebootWindow.end", ""))
        except (TypeError, ValueError, AttributeError):
            # Malformed times are already reported by the schema check.
            return None
        if start.minutes() != end.minutes():
            return None
        return ValidationIssue(
            kind=IssueKind.BOUNDS,
            severity="warning",
            rule_name="auto_update_reboot_outside_window",
            message=(
                f"Automatic reboots are allowed but the reboot window {start}-{end} is empty; "
                "updates that need a reboot will reboot outside any window"
            ),
            keys=[f"{prefix}.rebootWindow.start", f"{prefix}.rebootWindow.end"],
        )

    @staticmethod
    def _check_alert_email_format(
        tree: ConfigTree, entries: list[ServiceEntry]
    ) -> ValidationIssue | None:
        path = "system.maintenance.monitoring.alertEmail"
        value = get_path(tree, path)
        if not isinstance(value, str) or is_email(value):
            return None
        return ValidationIssue(
            kind=IssueKind.TYPE,
            rule_name="alert_email_format",
            message=f"{path}: '{value}' is not an email address",
            keys=[path],
        )

    @staticmethod
    def _check_dns_server_addresses(
        tree: ConfigTree, entries: list[ServiceEntry]
    ) -> ValidationIssue | None:
        """DNS servers must be literal IPv4 or IPv6 addresses, not host names."""
        bad: list[str] = []
        keys: list[str] = []
        for path in ("networking.dns.primary", "networking.dns.fallback"):
            servers = get_path(tree, path)
            if not isinstance(servers, list):
                continue
            invalid = [
                s for s in servers if isinstance(s, str) and not (is_ipv4(s) or is_ipv6(s))
            ]
            if invalid:
                bad.extend(invalid)
                keys.append(path)
        if not bad:
            return None
        return ValidationIssue(
            kind=IssueKind.TYPE,
            rule_name="dns_server_address",
            message=f"DNS servers must be IP addresses: {', '.join(bad)}",
            keys=keys,
        )
