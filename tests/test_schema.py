"""Unit tests for the option schema, baseline and tree validation."""

import pytest

from hostcfg.options import bool_option, percentage_option
from hostcfg.schema import OptionSchema, generate_option_docs, validate_tree
from hostcfg.tree import get_path, set_path
from hostcfg_core.types import IssueKind


class TestOptionSchema:
    def test_duplicate_path_rejected(self):
        schema = OptionSchema()
        schema.register("a.enable", bool_option(default=False, description="a"))
        with pytest.raises(ValueError, match="already registered"):
            schema.register("a.enable", bool_option(default=True, description="again"))

    def test_register_sets_path(self):
        schema = OptionSchema()
        schema.register("a.share", percentage_option(default=5, description="share"))
        assert schema.get("a.share").path == "a.share"
        assert "a.share" in schema
        assert schema.is_prefix("a")
        assert not schema.is_prefix("a.share")

    def test_descriptors_under(self, schema):
        paths = [d.path for d in schema.descriptors_under("performance.zram")]
        assert "performance.zram.memoryPercent" in paths
        assert all(p.startswith("performance.zram.") for p in paths)

    def test_every_catalog_service_has_enable(self, schema, catalog):
        for name in catalog.all_names():
            assert f"services.{name}.enable" in schema


class TestBaseline:
    def test_defaults(self, baseline):
        assert get_path(baseline, "system.stateVersion") == "25.05"
        assert get_path(baseline, "performance.zram.memoryPercent") == 50
        assert get_path(baseline, "services.nginx.ports") == [80, 443]
        assert get_path(baseline, "services.networking.enable") is True
        assert get_path(baseline, "services.nginx.enable") is False
        assert get_path(baseline, "networking.firewall.synFlood.limit") == "1/s"
        assert get_path(baseline, "networking.firewall.portScan.burst") == 2
        assert get_path(baseline, "system.maintenance.autoUpdate.rebootWindow.start") == "02:00"
        assert get_path(baseline, "services.backup.retention") == {
            "keepDaily": 7,
            "keepWeekly": 4,
            "keepMonthly": 6,
        }

    def test_unset_options_are_none(self, baseline):
        assert get_path(baseline, "system.maintenance.monitoring.alertEmail", "missing") is None

    def test_baseline_validates_cleanly(self, baseline, schema):
        assert validate_tree(baseline, schema) == []
        assert validate_tree(baseline, schema, strict=True) == []


class TestValidateTree:
    def test_unknown_key(self, baseline, schema):
        tree = set_path(baseline, "performance.zram.size", "2G")
        issues = validate_tree(tree, schema)
        assert [i.kind for i in issues] == [IssueKind.UNKNOWN_KEY]
        assert issues[0].keys == ["performance.zram.size"]

    def test_unknown_top_level(self, baseline, schema):
        issues = validate_tree({**baseline, "gaming": {"enable": True}}, schema)
        assert [i.keys for i in issues] == [["gaming"]]

    def test_collects_every_problem(self, baseline, schema):
        tree = set_path(baseline, "performance.zram.memoryPercent", 150)
        tree = set_path(tree, "performance.kernel.profile", "turbo")
        tree = set_path(tree, "desktop.enable", "yes")
        issues = validate_tree(tree, schema)
        assert {tuple(i.keys) for i in issues} == {
            ("performance.zram.memoryPercent",),
            ("performance.kernel.profile",),
            ("desktop.enable",),
        }

    def test_submodule_children(self, baseline, schema):
        tree = set_path(baseline, "services.backup.retention.keepWeekly", 99)
        issues = validate_tree(tree, schema)
        assert [i.kind for i in issues] == [IssueKind.BOUNDS]
        assert issues[0].keys == ["services.backup.retention.keepWeekly"]

    def test_strict_mode(self, baseline, schema):
        tree = set_path(baseline, "services.docker.bridgeNetwork", "300.0.0.0/16")
        assert validate_tree(tree, schema) == []
        assert [i.kind for i in validate_tree(tree, schema, strict=True)] == [IssueKind.TYPE]


class TestOptionDocs:
    def test_sections(self, schema):
        docs = generate_option_docs(schema)
        assert "## performance.zram.memoryPercent" in docs
        assert "Default: `50`" in docs
        assert "Range: 0-100" in docs
        assert "One of: lz4, zstd, lzo, lzo-rle" in docs
        assert "Example: `weekly`" in docs
        assert docs.count("\n## ") == len(schema) - 1
