"""Option schema: single source of truth for every option in the workstation tree."""

from __future__ import annotations

import json
import logging
from typing import Any

from hostcfg.catalog import ServiceCatalog, build_default_catalog
from hostcfg.models import ValidationIssue
from hostcfg.options import (
    OptionDescriptor,
    bool_option,
    check_value,
    enable_option,
    enum_option,
    int_option,
    int_range_option,
    memory_option,
    network_option,
    path_option,
    percentage_option,
    port_list_option,
    rate_limit_options,
    schedule_option,
    str_option,
    string_list_option,
    submodule_option,
    time_window_options,
)
from hostcfg.tree import set_path
from hostcfg_core.types import ConfigTree, IssueKind, OptionKind

logger = logging.getLogger(__name__)


class OptionSchema:
    """Registry of option descriptors keyed by dotted path."""

    def __init__(self) -> None:
        self._entries: dict[str, OptionDescriptor] = {}
        self._prefixes: set[str] = set()

    def register(self, path: str, descriptor: OptionDescriptor) -> None:
        if path in self._entries:
            raise ValueError(f"Option '{path}' is already registered")
        self._entries[path] = descriptor.with_path(path)
        parts = path.split(".")
        for i in range(1, len(parts)):
            self._prefixes.add(".".join(parts[:i]))

    def register_many(self, prefix: str, descriptors: dict[str, OptionDescriptor]) -> None:
        for name, descriptor in descriptors.items():
            self.register(f"{prefix}.{name}", descriptor)

    def get(self, path: str) -> OptionDescriptor | None:
        return self._entries.get(path)

    def is_prefix(self, path: str) -> bool:
        return path in self._prefixes

    def all_paths(self) -> list[str]:
        return list(self._entries.keys())

    def all_descriptors(self) -> list[OptionDescriptor]:
        return list(self._entries.values())

    def descriptors_under(self, prefix: str) -> list[OptionDescriptor]:
        return [d for p, d in self._entries.items() if p.startswith(prefix + ".")]

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def default_value(descriptor: OptionDescriptor) -> Any:
    if descriptor.kind == OptionKind.SUBMODULE:
        return {k: default_value(c) for k, c in (descriptor.options or {}).items()}
    return descriptor.default


def baseline_from_schema(schema: OptionSchema) -> ConfigTree:
    """Build the default ConfigTree from every registered option's default."""
    tree: ConfigTree = {}
    for path, descriptor in zip(schema.all_paths(), schema.all_descriptors(), strict=True):
        tree = set_path(tree, path, default_value(descriptor))
    return tree


def validate_tree(
    tree: ConfigTree,
    schema: OptionSchema,
    *,
    strict: bool = False,
) -> list[ValidationIssue]:
    """Type-check every value in ``tree`` against the schema and report unknown keys."""
    issues: list[ValidationIssue] = []

    def _walk(node: dict[str, Any], prefix: str) -> None:
        for key, value in node.items():
            path = f"{prefix}.{key}" if prefix else key
            descriptor = schema.get(path)
            if descriptor is not None:
                issues.extend(check_value(descriptor, value, path=path, strict=strict))
            elif isinstance(value, dict) and schema.is_prefix(path):
                _walk(value, path)
            else:
                issues.append(
                    ValidationIssue(
                        kind=IssueKind.UNKNOWN_KEY,
                        message=f"{path}: unknown option",
                        keys=[path],
                    )
                )

    _walk(tree, "")
    logger.debug("Schema check of %d options found %d issue(s)", len(schema), len(issues))
    return issues


def _format_value(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def generate_option_docs(schema: OptionSchema) -> str:
    """Render Markdown documentation for every option."""
    sections: list[str] = []
    for descriptor in schema.all_descriptors():
        lines = [f"## {descriptor.path}", descriptor.description or "No description"]
        if descriptor.kind == OptionKind.ENUM:
            lines.append(f"One of: {', '.join(str(v) for v in descriptor.allowed_values or ())}")
        if descriptor.min_value is not None and descriptor.max_value is not None:
            lines.append(f"Range: {descriptor.min_value}-{descriptor.max_value}")
        default = default_value(descriptor)
        if default is not None:
            lines.append(f"Default: `{_format_value(default)}`")
        if descriptor.example is not None:
            lines.append(f"Example: `{_format_value(descriptor.example)}`")
        sections.append("\n".join(lines))
    return "\n\n".join(sections) + "\n"


def build_default_schema(catalog: ServiceCatalog | None = None) -> OptionSchema:
    """Build the schema of every option the workstation configuration declares."""
    catalog = catalog or build_default_catalog()
    schema = OptionSchema()

    # =========================================================================
    # System
    # =========================================================================

    schema.register(
        "system.stateVersion",
        str_option(
            description="Release the stateful data on this host was first created with",
            default="25.05",
            example="24.11",
        ),
    )

    # =========================================================================
    # Performance: kernel, zram, filesystem
    # =========================================================================

    schema.register(
        "performance.kernel.enable",
        bool_option(default=True, description="Apply kernel tuning"),
    )
    schema.register(
        "performance.kernel.profile",
        enum_option(
            values=["balanced", "performance", "throughput", "low-latency"],
            default="balanced",
            description="Kernel tuning profile",
        ),
    )
    schema.register(
        "performance.kernel.cpuScheduler",
        enum_option(
            values=["schedutil", "performance", "powersave", "ondemand"],
            default="schedutil",
            description="CPU frequency governor",
        ),
    )
    schema.register(
        "performance.kernel.enableBBR2",
        bool_option(default=False, description="Use BBR congestion control"),
    )
    schema.register(
        "performance.kernel.enablePSI",
        bool_option(default=False, description="Enable pressure stall information"),
    )
    schema.register(
        "performance.kernel.transparentHugepages",
        enum_option(
            values=["always", "madvise", "never"],
            default="madvise",
            description="Transparent hugepage policy",
        ),
    )
    schema.register(
        "performance.kernel.enableMitigations",
        bool_option(default=True, description="Keep CPU vulnerability mitigations enabled"),
    )

    schema.register(
        "performance.zram.enable",
        bool_option(default=True, description="ZRAM compressed memory swap"),
    )
    schema.register(
        "performance.zram.algorithm",
        enum_option(
            values=["lz4", "zstd", "lzo", "lzo-rle"],
            default="zstd",
            description="Compression algorithm for ZRAM",
        ),
    )
    schema.register(
        "performance.zram.memoryPercent",
        percentage_option(default=50, description="Share of RAM used for ZRAM"),
    )
    schema.register(
        "performance.zram.memoryMax",
        memory_option(description="Upper bound on ZRAM device size"),
    )
    schema.register(
        "performance.zram.priority",
        int_option(description="Swap priority of the ZRAM device", default=5),
    )
    schema.register(
        "performance.zram.swappiness",
        int_range_option(min=0, max=200, default=60, description="vm.swappiness with ZRAM active"),
    )

    schema.register(
        "performance.filesystem.enable",
        bool_option(default=False, description="Filesystem optimisations"),
    )
    schema.register(
        "performance.filesystem.enableTmpfs",
        bool_option(default=False, description="Mount /tmp as tmpfs"),
    )
    schema.register(
        "performance.filesystem.tmpfsSize",
        memory_option(description="Size of the /tmp tmpfs", default="8G"),
    )
    schema.register(
        "performance.filesystem.enableFstrim",
        bool_option(default=False, description="Periodic TRIM of SSDs"),
    )
    schema.register(
        "performance.filesystem.fstrimInterval",
        schedule_option(default="weekly", description="How often fstrim runs"),
    )
    schema.register(
        "performance.filesystem.enableNocow",
        bool_option(default=False, description="Disable copy-on-write for database directories"),
    )

    # =========================================================================
    # Desktop
    # =========================================================================

    schema.register("desktop.enable", enable_option("desktop", "graphical session"))
    schema.register(
        "desktop.environment",
        enum_option(values=["gnome"], default="gnome", description="Desktop environment"),
    )

    # =========================================================================
    # Security
    # =========================================================================

    schema.register(
        "security.hardening.enable",
        bool_option(default=True, description="System hardening"),
    )
    schema.register(
        "security.hardening.profile",
        enum_option(
            values=["minimal", "standard", "hardened"],
            default="standard",
            description="Security posture",
        ),
    )
    schema.register(
        "security.hardening.enableSystemdHardening",
        bool_option(default=False, description="Sandbox systemd services"),
    )
    schema.register(
        "security.hardening.enableKernelHardening",
        bool_option(default=False, description="Harden kernel sysctls and boot parameters"),
    )
    schema.register(
        "security.hardening.enableAppArmor",
        bool_option(default=False, description="Enable AppArmor"),
    )

    # =========================================================================
    # Networking: firewall and DNS
    # =========================================================================

    schema.register(
        "networking.firewall.enable",
        bool_option(default=True, description="Host firewall"),
    )
    schema.register(
        "networking.firewall.allowedTCPPorts",
        port_list_option(description="Extra TCP ports opened in the firewall"),
    )
    schema.register(
        "networking.firewall.logRefusedConnections",
        bool_option(default=True, description="Log refused connections"),
    )
    schema.register_many("networking.firewall.synFlood", rate_limit_options())
    schema.register_many(
        "networking.firewall.portScan", rate_limit_options(burst_default=2)
    )
    schema.register(
        "networking.dns.primary",
        string_list_option(description="Primary DNS servers", default=["8.8.8.8", "8.8.4.4"]),
    )
    schema.register(
        "networking.dns.fallback",
        string_list_option(description="Fallback DNS servers", default=["1.1.1.1", "1.0.0.1"]),
    )

    # =========================================================================
    # Maintenance: garbage collection, health monitoring, auto-update
    # =========================================================================

    gc = "system.maintenance.autoGarbageCollection"
    schema.register(
        f"{gc}.enable",
        bool_option(default=True, description="Automatic garbage collection"),
    )
    schema.register(
        f"{gc}.schedule",
        schedule_option(default="weekly", description="Garbage collection schedule"),
    )
    schema.register(
        f"{gc}.keepDays",
        int_range_option(
            min=1, max=365, default=7, description="Keep generations newer than this many days"
        ),
    )
    schema.register(
        f"{gc}.keepGenerations",
        int_range_option(
            min=1, max=100, default=5, description="Always keep this many generations"
        ),
    )

    mon = "system.maintenance.monitoring"
    schema.register(f"{mon}.enable", enable_option("health monitoring", "disk and memory checks"))
    schema.register(
        f"{mon}.diskSpaceThreshold",
        percentage_option(default=80, description="Alert when a filesystem is fuller than this"),
    )
    schema.register(
        f"{mon}.memoryPressureThreshold",
        percentage_option(default=10, description="Alert above this memory pressure"),
    )
    schema.register(
        f"{mon}.enableSmartMonitoring",
        bool_option(default=False, description="Monitor disk SMART status"),
    )
    schema.register(
        f"{mon}.alertEmail",
        str_option(description="Email address for alerts", example="admin@example.com"),
    )

    upd = "system.maintenance.autoUpdate"
    schema.register(f"{upd}.enable", enable_option("automatic updates", "periodic system upgrades"))
    schema.register(
        f"{upd}.schedule",
        schedule_option(default="weekly", description="Update schedule"),
    )
    schema.register(
        f"{upd}.allowReboot",
        bool_option(default=False, description="Reboot after an update when required"),
    )
    schema.register_many(
        f"{upd}.rebootWindow", time_window_options(description="Reboot window")
    )
    schema.register(
        f"{upd}.onlySecurityUpdates",
        bool_option(default=False, description="Apply security updates only"),
    )

    # =========================================================================
    # Services: enable flags and claimed ports come from the catalog
    # =========================================================================

    for definition in catalog.all_definitions():
        prefix = f"services.{definition.name}"
        if definition.name == "networking":
            enable = bool_option(default=True, description=definition.description)
        else:
            enable = enable_option(definition.name, definition.description)
        schema.register(f"{prefix}.enable", enable)
        if definition.default_ports:
            schema.register(
                f"{prefix}.ports",
                port_list_option(
                    default=definition.default_ports,
                    description=f"Ports {definition.name} listens on",
                ),
            )

    if "sops" in catalog:
        schema.register(
            "services.sops.ageKeyFile",
            path_option(
                description="Age key used to decrypt secrets",
                default="~/.config/sops/age/keys.txt",
            ),
        )

    if "docker" in catalog:
        schema.register(
            "services.docker.profile",
            enum_option(
                values=["minimal", "development", "production"],
                default="minimal",
                description="Docker daemon tuning profile",
            ),
        )
        schema.register(
            "services.docker.bridgeNetwork",
            network_option(
                description="Address range of the default bridge", default="172.17.0.0/16"
            ),
        )

    if "backup" in catalog:
        schema.register(
            "services.backup.repository",
            path_option(description="Backup repository location", default="/var/backup/nixos"),
        )
        schema.register(
            "services.backup.schedule",
            schedule_option(default="weekly", description="Backup schedule"),
        )
        schema.register(
            "services.backup.paths",
            string_list_option(description="Paths to back up", default=["/home", "/etc/nixos"]),
        )
        schema.register(
            "services.backup.exclude",
            string_list_option(
                description="Patterns excluded from backups",
                default=[
                    "/home/*/.cache",
                    "/home/*/.local/share/Trash",
                    "/home/*/Downloads",
                    "*.tmp",
                    "node_modules",
                    ".git",
                ],
            ),
        )
        schema.register(
            "services.backup.retention",
            submodule_option(
                description="How many snapshots of each age to keep",
                options={
                    "keepDaily": int_range_option(
                        min=0, max=365, default=7, description="Daily snapshots"
                    ),
                    "keepWeekly": int_range_option(
                        min=0, max=52, default=4, description="Weekly snapshots"
                    ),
                    "keepMonthly": int_range_option(
                        min=0, max=120, default=6, description="Monthly snapshots"
                    ),
                },
            ),
        )

    if "fail2ban" in catalog:
        schema.register(
            "services.fail2ban.maxRetry",
            int_range_option(min=1, max=100, default=3, description="Failures before a ban"),
        )
        schema.register(
            "services.fail2ban.banTime",
            str_option(description="Initial ban duration", default="1h", example="10m"),
        )

    return schema
