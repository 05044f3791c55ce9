"""Unit tests for the conflict, dependency and ordering checks and the accumulating validator."""

import pytest

from hostcfg.catalog import ServiceCatalog
from hostcfg.models import ConflictGroup, ServiceDefinition, ServiceEntry
from hostcfg.schema import baseline_from_schema, build_default_schema
from hostcfg.tree import merge_layers, set_path
from hostcfg.validators import (
    ConfigValidator,
    CycleError,
    check_dependencies,
    check_port_conflicts,
    check_port_ranges,
    check_service_conflicts,
    mk_assertion,
    resolve_dependency_order,
)
from hostcfg_core.types import IssueKind


def _has_rule(issues, rule_name, severity=None):
    return any(
        i.rule_name == rule_name and (severity is None or i.severity == severity) for i in issues
    )


def _enable(tree, *names):
    for name in names:
        tree = set_path(tree, f"services.{name}.enable", True)
    return tree


class TestPortConflicts:
    def test_shared_port_reported(self):
        claims = [("proxy", 1080), ("proxy", 8118), ("webServer", 8118)]
        issues = check_port_conflicts(claims)
        assert len(issues) == 1
        assert issues[0].kind == IssueKind.CONFLICT
        assert issues[0].ports == [8118]
        assert issues[0].services == ["proxy", "webServer"]
        assert "8118" in issues[0].message

    def test_distinct_ports_pass(self):
        assert check_port_conflicts([("a", 1), ("b", 2), ("c", 3)]) == []

    def test_one_issue_per_port(self):
        claims = [("nginx", 80), ("nginx", 443), ("apache", 80), ("apache", 443)]
        assert [i.ports for i in check_port_conflicts(claims)] == [[80], [443]]


class TestServiceConflicts:
    def test_group_with_two_enabled(self):
        group = ConflictGroup(services=["nginx", "apache"], message="pick one web server")
        issues = check_service_conflicts({"nginx", "apache", "sops"}, [group])
        assert len(issues) == 1
        assert issues[0].message == "pick one web server"
        assert issues[0].services == ["nginx", "apache"]

    def test_group_with_one_enabled(self):
        group = ConflictGroup(services=["nginx", "apache"], message="pick one")
        assert check_service_conflicts({"nginx"}, [group]) == []

    def test_plain_sets(self):
        issues = check_service_conflicts({"b", "a"}, [{"a", "b", "c"}])
        assert issues[0].services == ["a", "b"]


class TestDependencies:
    def test_missing_dependency(self):
        issues = check_dependencies("monitoring", {"monitoring"}, {"monitoring": {"networking"}})
        assert len(issues) == 1
        assert issues[0].kind == IssueKind.DEPENDENCY
        assert issues[0].service == "monitoring"
        assert issues[0].missing == ["networking"]

    def test_satisfied(self):
        enabled = {"monitoring", "networking"}
        assert check_dependencies("monitoring", enabled, {"monitoring": {"networking"}}) == []

    def test_disabled_service_is_not_checked(self):
        assert check_dependencies("monitoring", set(), {"monitoring": {"networking"}}) == []

    def test_one_issue_per_missing_dependency(self):
        issues = check_dependencies("app", {"app"}, {"app": ["db", "cache"]})
        assert [i.missing for i in issues] == [["db"], ["cache"]]


class TestPortRanges:
    def test_enabled_out_of_range(self):
        entries = [
            ServiceEntry(name="a", enabled=True, ports=frozenset({70000, 22})),
            ServiceEntry(name="b", enabled=False, ports=frozenset({0})),
        ]
        issues = check_port_ranges(entries)
        assert [(i.kind, i.ports) for i in issues] == [(IssueKind.BOUNDS, [70000])]


class TestDependencyOrder:
    def test_dependencies_come_first(self):
        order = resolve_dependency_order(
            ["grafana", "prometheus", "networking"], {"grafana": ["prometheus"]}
        )
        assert order == ["prometheus", "grafana", "networking"]

    def test_ties_keep_input_order(self):
        assert resolve_dependency_order(["c", "a", "b"], {}) == ["c", "a", "b"]

    def test_dependencies_outside_set_are_ignored(self):
        assert resolve_dependency_order(["docker"], {"docker": ["networking"]}) == ["docker"]

    def test_cycle(self):
        depends_on = {"A": {"B"}, "B": {"C"}, "C": {"A"}}
        with pytest.raises(CycleError) as exc:
            resolve_dependency_order(["A", "B", "C"], depends_on)
        assert exc.value.cycle == ["A", "B", "C"]
        assert isinstance(exc.value, ValueError)
        assert "A -> B -> C -> A" in str(exc.value)

    def test_cycle_excludes_nodes_behind_it(self):
        depends_on = {"app": ["A"], "A": ["B"], "B": ["A"]}
        with pytest.raises(CycleError) as exc:
            resolve_dependency_order(["app", "A", "B"], depends_on)
        assert exc.value.cycle == ["A", "B"]

    def test_self_dependency(self):
        with pytest.raises(CycleError) as exc:
            resolve_dependency_order(["a"], {"a": ["a"]})
        assert exc.value.cycle == ["a"]


class TestMkAssertion:
    def test_message_prefix(self):
        ok = mk_assertion(True, "fine")
        failed = mk_assertion(False, "broken")
        assert ok.assertion is True
        assert failed.assertion is False
        assert failed.message.startswith("Configuration error:")


class TestConfigValidator:
    def test_baseline_is_valid(self, validator, baseline):
        report = validator.validate(baseline)
        assert report.ok
        assert report.issues == []
        assert report.enabled_services == ["networking"]
        assert report.service_order == ["networking"]

    def test_report_carries_catalog_data(self, validator, baseline, catalog):
        report = validator.validate(baseline)
        assert report.dependencies == catalog.dependency_table()
        assert len(report.conflict_groups) == len(catalog.conflict_groups)

    def test_web_server_conflict(self, validator, baseline):
        report = validator.validate(_enable(baseline, "nginx", "apache"))
        conflicts = [i for i in report.errors if i.kind == IssueKind.CONFLICT]
        assert sorted(p for i in conflicts for p in i.ports) == [80, 443]
        message = "nginx and apache cannot be enabled simultaneously"
        assert any(i.message == message for i in conflicts)
        assert len(conflicts) == 3

    def test_missing_dependency(self, validator, baseline):
        tree = set_path(_enable(baseline, "monitoring"), "services.networking.enable", False)
        report = validator.validate(tree)
        deps = [i for i in report.errors if i.kind == IssueKind.DEPENDENCY]
        assert [(i.service, i.missing) for i in deps] == [("monitoring", ["networking"])]

    def test_dependency_satisfied(self, validator, baseline):
        report = validator.validate(_enable(baseline, "v2ray", "sops"))
        assert report.ok
        assert report.service_order.index("sops") < report.service_order.index("v2ray")

    def test_accumulates_all_errors(self, validator, baseline):
        tree = _enable(baseline, "mysql", "mariadb", "grafana")
        tree = set_path(tree, "performance.zram.memoryPercent", 150)
        report = validator.validate(tree)
        kinds = {i.kind for i in report.errors}
        assert kinds == {IssueKind.CONFLICT, IssueKind.DEPENDENCY, IssueKind.BOUNDS}

    def test_cycle_reported_as_issue(self):
        catalog = ServiceCatalog()
        catalog.register(ServiceDefinition(name="a", description="a", depends_on=["b"]))
        catalog.register(ServiceDefinition(name="b", description="b", depends_on=["a"]))
        schema = build_default_schema(catalog)
        tree = _enable(baseline_from_schema(schema), "a", "b")
        report = ConfigValidator(schema, catalog).validate(tree)
        cycles = [i for i in report.errors if i.kind == IssueKind.CYCLE]
        assert [i.cycle for i in cycles] == [["a", "b"]]
        assert report.service_order == []

    def test_unknown_service_ports_are_range_checked(self, validator, baseline):
        tree = merge_layers(baseline, {"services": {"custom": {"enable": True, "ports": [70000]}}})
        report = validator.validate(tree)
        assert {i.kind for i in report.errors} == {IssueKind.UNKNOWN_KEY, IssueKind.BOUNDS}

    def test_strict_values(self, schema, catalog, baseline):
        tree = set_path(baseline, "services.docker.bridgeNetwork", "999.999.999.999/99")
        assert ConfigValidator(schema, catalog).validate(tree).ok
        assert not ConfigValidator(schema, catalog, strict=True).validate(tree).ok

    @pytest.mark.parametrize("services", [["nginx"], "nginx"])
    def test_services_not_a_map(self, validator, baseline, services):
        report = validator.validate(set_path(baseline, "services", services))
        assert not report.ok
        assert (IssueKind.UNKNOWN_KEY, ["services"]) in [(i.kind, i.keys) for i in report.errors]
        assert report.enabled_services == []
        assert report.service_order == []

    def test_validation_is_deterministic(self, validator, baseline):
        tree = _enable(baseline, "nginx", "apache", "monitoring")
        assert validator.validate(tree) == validator.validate(tree)


class TestRules:
    def test_firewall_disabled_with_open_ports(self, validator, baseline):
        tree = set_path(_enable(baseline, "openssh"), "networking.firewall.enable", False)
        report = validator.validate(tree)
        assert report.ok
        assert _has_rule(report.warnings, "firewall_disabled_with_open_ports", "warning")

    def test_firewall_disabled_without_services(self, validator, baseline):
        tree = set_path(baseline, "networking.firewall.enable", False)
        assert not _has_rule(validator.validate(tree).issues, "firewall_disabled_with_open_ports")

    def test_backup_without_paths(self, validator, baseline):
        tree = set_path(_enable(baseline, "backup"), "services.backup.paths", [])
        assert _has_rule(validator.validate(tree).warnings, "backup_without_paths")

    def test_backup_with_paths(self, validator, baseline):
        report = validator.validate(_enable(baseline, "backup"))
        assert not _has_rule(report.issues, "backup_without_paths")

    def test_backup_keeps_daily_snapshots(self, validator, baseline):
        tree = set_path(_enable(baseline, "backup"), "services.backup.retention.keepDaily", 0)
        report = validator.validate(tree)
        assert _has_rule(report.errors, "backup_keeps_daily_snapshots", "error")
        assert not report.ok

    def test_reboot_window_empty(self, validator, baseline):
        prefix = "system.maintenance.autoUpdate"
        tree = set_path(baseline, f"{prefix}.enable", True)
        tree = set_path(tree, f"{prefix}.allowReboot", True)
        assert not _has_rule(validator.validate(tree).issues, "auto_update_reboot_outside_window")
        tree = set_path(tree, f"{prefix}.rebootWindow.start", "03:00")
        tree = set_path(tree, f"{prefix}.rebootWindow.end", "3:00")
        assert _has_rule(validator.validate(tree).warnings, "auto_update_reboot_outside_window")

    def test_state_version_format(self, validator, baseline):
        tree = set_path(baseline, "system.stateVersion", "25.04")
        assert _has_rule(validator.validate(tree).errors, "state_version_format")

    def test_alert_email_format(self, validator, baseline):
        path = "system.maintenance.monitoring.alertEmail"
        assert validator.validate(set_path(baseline, path, "admin@example.com")).ok
        report = validator.validate(set_path(baseline, path, "not-an-email"))
        assert _has_rule(report.errors, "alert_email_format", "error")

    def test_dns_server_address(self, validator, baseline):
        tree = set_path(baseline, "networking.dns.fallback", ["1.1.1.1", "dns.example.com"])
        report = validator.validate(tree)
        issue = next(i for i in report.errors if i.rule_name == "dns_server_address")
        assert issue.keys == ["networking.dns.fallback"]
        assert "dns.example.com" in issue.message
        assert "1.1.1.1" not in issue.message

    def test_dns_server_ipv6(self, validator, baseline):
        tree = set_path(baseline, "networking.dns.primary", ["2606:4700:4700:0:0:0:0:1111"])
        assert not _has_rule(validator.validate(tree).issues, "dns_server_address")
