"""Service catalog: the known services, their default ports, dependencies and conflict groups."""

from __future__ import annotations

from hostcfg.models import ConflictGroup, ServiceDefinition, ServiceEntry
from hostcfg_core.types import ConfigTree, ServiceName


class ServiceCatalog:
    """Registry of enable-able services and the mutual-exclusion groups between them."""

    def __init__(self) -> None:
        self._services: dict[ServiceName, ServiceDefinition] = {}
        self._conflict_groups: list[ConflictGroup] = []

    def register(self, definition: ServiceDefinition) -> None:
        if definition.name in self._services:
            raise ValueError(f"Service '{definition.name}' is already registered")
        self._services[definition.name] = definition

    def add_conflict_group(self, group: ConflictGroup) -> None:
        if len(group.services) < 2:
            raise ValueError("A conflict group needs at least two services")
        self._conflict_groups.append(group)

    def get(self, name: ServiceName) -> ServiceDefinition | None:
        return self._services.get(name)

    def all_names(self) -> list[ServiceName]:
        return list(self._services.keys())

    def all_definitions(self) -> list[ServiceDefinition]:
        return list(self._services.values())

    @property
    def conflict_groups(self) -> list[ConflictGroup]:
        return list(self._conflict_groups)

    def dependency_table(self) -> dict[ServiceName, list[ServiceName]]:
        return {d.name: list(d.depends_on) for d in self._services.values() if d.depends_on}

    def __contains__(self, name: object) -> bool:
        return name in self._services

    def __len__(self) -> int:
        return len(self._services)


def build_default_catalog() -> ServiceCatalog:
    """Build the catalog of services this workstation configuration knows about."""
    catalog = ServiceCatalog()

    for definition in (
        ServiceDefinition(
            name="networking",
            description="NetworkManager-based host networking",
        ),
        ServiceDefinition(
            name="openssh",
            description="OpenSSH daemon",
            default_ports=[22],
        ),
        ServiceDefinition(
            name="nginx",
            description="nginx web server",
            default_ports=[80, 443],
        ),
        ServiceDefinition(
            name="apache",
            description="Apache httpd web server",
            default_ports=[80, 443],
        ),
        ServiceDefinition(
            name="sops",
            description="Encrypted secrets decryption at activation time",
        ),
        ServiceDefinition(
            name="v2ray",
            description="V2Ray proxy with SOCKS and HTTP inbounds; credentials come from sops",
            default_ports=[1080, 8118],
            depends_on=["sops"],
        ),
        ServiceDefinition(
            name="prometheus",
            description="Prometheus metrics collection",
            default_ports=[9090],
        ),
        ServiceDefinition(
            name="grafana",
            description="Grafana dashboards",
            default_ports=[3000],
            depends_on=["prometheus"],
        ),
        ServiceDefinition(
            name="monitoring",
            description="System monitoring tools and alerting",
            depends_on=["networking"],
        ),
        ServiceDefinition(
            name="docker",
            description="Docker container runtime",
            depends_on=["networking"],
        ),
        ServiceDefinition(
            name="backup",
            description="Scheduled backups of selected paths",
        ),
        ServiceDefinition(
            name="fail2ban",
            description="Intrusion prevention by banning abusive hosts",
        ),
        ServiceDefinition(
            name="mysql",
            description="MySQL database server",
            default_ports=[3306],
        ),
        ServiceDefinition(
            name="mariadb",
            description="MariaDB database server",
            default_ports=[3306],
        ),
        ServiceDefinition(
            name="pulseaudio",
            description="PulseAudio sound server",
        ),
        ServiceDefinition(
            name="pipewire",
            description="PipeWire audio and video server",
        ),
    ):
        catalog.register(definition)

    catalog.add_conflict_group(
        ConflictGroup(
            services=["nginx", "apache"],
            message="nginx and apache cannot be enabled simultaneously",
        )
    )
    catalog.add_conflict_group(
        ConflictGroup(
            services=["mysql", "mariadb"],
            message="mysql and mariadb cannot be enabled simultaneously",
        )
    )
    catalog.add_conflict_group(
        ConflictGroup(
            services=["pulseaudio", "pipewire"],
            message="pulseaudio and pipewire conflict",
        )
    )

    return catalog


def service_entries(tree: ConfigTree, catalog: ServiceCatalog) -> list[ServiceEntry]:
    """Read every service in ``tree['services']`` into a fresh ServiceEntry.

    Catalog services missing from the tree are included as disabled. A service
    uses its ``ports`` from the tree when given, otherwise the catalog default.
    """
    services = tree.get("services")
    # A non-map here is reported by the schema check as an unknown key.
    if not isinstance(services, dict):
        services = {}
    names = catalog.all_names() + [n for n in services if n not in catalog]

    entries: list[ServiceEntry] = []
    for name in names:
        raw = services.get(name)
        raw = raw if isinstance(raw, dict) else {}
        definition = catalog.get(name)

        ports = raw.get("ports")
        if not isinstance(ports, list):
            ports = definition.default_ports if definition else []

        groups = [
            frozenset(g.services) for g in catalog.conflict_groups if name in g.services
        ]
        entries.append(
            ServiceEntry(
                name=name,
                enabled=raw.get("enable") is True,
                ports=frozenset(p for p in ports if isinstance(p, int) and not isinstance(p, bool)),
                depends_on=frozenset(definition.depends_on if definition else ()),
                conflicts_with=groups,
            )
        )
    return entries
