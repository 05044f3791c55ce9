"""Property-based tests for conflict detection, dependency checks and ordering."""

from __future__ import annotations

from collections import Counter

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from hostcfg.catalog import build_default_catalog
from hostcfg.options import check_value, percentage_option
from hostcfg.schema import baseline_from_schema, build_default_schema
from hostcfg.tree import set_path
from hostcfg.validators import (
    ConfigValidator,
    CycleError,
    check_dependencies,
    check_port_conflicts,
    resolve_dependency_order,
)
from hostcfg_core.types import IssueKind

from .strategies import port_claims, service_dags, service_rings

CATALOG = build_default_catalog()
SCHEMA = build_default_schema(CATALOG)
BASELINE = baseline_from_schema(SCHEMA)


# =========================================================================
# Port conflicts
# =========================================================================


@settings(max_examples=200)
@given(claims=port_claims)
def test_conflicts_are_exactly_the_shared_ports(claims):
    counts = Counter(port for _, port in claims)
    reported = [p for issue in check_port_conflicts(claims) for p in issue.ports]
    assert sorted(reported) == sorted(p for p, n in counts.items() if n > 1)


@settings(max_examples=100)
@given(claims=port_claims)
def test_conflicts_name_every_claimant(claims):
    for issue in check_port_conflicts(claims):
        (port,) = issue.ports
        assert set(issue.services) == {s for s, p in claims if p == port}


# =========================================================================
# Dependencies
# =========================================================================


@settings(max_examples=100)
@given(data=st.data())
def test_dependency_issues_match_missing_services(data):
    names = CATALOG.all_names()
    enabled = set(data.draw(st.lists(st.sampled_from(names), unique=True)))
    table = CATALOG.dependency_table()
    for service in names:
        issues = check_dependencies(service, enabled, table)
        if service not in enabled:
            assert issues == []
            continue
        missing = [d for d in table.get(service, []) if d not in enabled]
        assert [i.missing[0] for i in issues] == missing
        assert all(i.kind == IssueKind.DEPENDENCY for i in issues)


# =========================================================================
# Ordering
# =========================================================================


@settings(max_examples=200)
@given(graph=service_dags())
def test_order_is_a_permutation(graph):
    names, depends_on = graph
    assert sorted(resolve_dependency_order(names, depends_on)) == sorted(names)


@settings(max_examples=200)
@given(graph=service_dags())
def test_dependencies_start_first(graph):
    names, depends_on = graph
    order = resolve_dependency_order(names, depends_on)
    position = {name: i for i, name in enumerate(order)}
    for service, deps in depends_on.items():
        for dep in deps:
            assert position[dep] < position[service]


@settings(max_examples=100)
@given(graph=service_dags())
def test_order_is_deterministic(graph):
    names, depends_on = graph
    assert resolve_dependency_order(names, depends_on) == resolve_dependency_order(
        names, depends_on
    )


@settings(max_examples=100)
@given(names=st.lists(st.text(alphabet="abcxyz", min_size=1, max_size=4), unique=True))
def test_no_dependencies_keeps_input_order(names):
    assert resolve_dependency_order(names, {}) == names


@settings(max_examples=100)
@given(ring=service_rings())
def test_rings_are_reported_as_cycles(ring):
    names, depends_on = ring
    with pytest.raises(CycleError) as exc:
        resolve_dependency_order(names, depends_on)
    cycle = exc.value.cycle
    assert set(cycle) == set(names)
    # Each node in the reported cycle depends on the next one
    for i, node in enumerate(cycle):
        assert cycle[(i + 1) % len(cycle)] in depends_on[node]


# =========================================================================
# Bounds
# =========================================================================


@settings(max_examples=200)
@given(value=st.integers(min_value=-1000, max_value=1000))
def test_percentage_bounds(value):
    descriptor = percentage_option(default=50, description="share")
    issues = check_value(descriptor, value, path="x.share")
    assert (issues == []) == (0 <= value <= 100)


@settings(max_examples=50, deadline=None)
@given(value=st.integers(min_value=-500, max_value=500))
def test_validator_reports_swappiness_bounds(value):
    tree = set_path(BASELINE, "performance.zram.swappiness", value)
    report = ConfigValidator(SCHEMA, CATALOG).validate(tree)
    assert report.ok == (0 <= value <= 200)
