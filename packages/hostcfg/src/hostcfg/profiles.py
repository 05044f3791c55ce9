"""Host profiles: named override bundles composed over the schema baseline.

Each profile sets performance tuning, security posture, service toggles and
maintenance schedule for one kind of machine. Every key a profile overrides
must already exist in the baseline; the composer rejects anything else.
"""

from hostcfg.models import Profile
from hostcfg_core.types import ConfigTree, ProfileType

MINIMAL = Profile(
    profile_type=ProfileType.MINIMAL,
    description="Smallest footprint: no desktop or containers, basic security, conservative tuning",
    overrides={
        "performance": {
            "kernel": {
                "profile": "balanced",
                "cpuScheduler": "schedutil",
                "enableBBR2": False,
                "enablePSI": False,
                "transparentHugepages": "never",
            },
            "zram": {
                "memoryPercent": 25,
                "algorithm": "lz4",
                "swappiness": 60,
            },
            "filesystem": {"enable": False},
        },
        "desktop": {"enable": False},
        "services": {
            "docker": {"enable": False},
            "backup": {"enable": False},
        },
        "security": {
            "hardening": {
                "profile": "minimal",
                "enableSystemdHardening": False,
                "enableKernelHardening": False,
            },
        },
        "networking": {"firewall": {"logRefusedConnections": False}},
        "system": {
            "maintenance": {
                "autoUpdate": {"enable": False},
                "monitoring": {"enable": False},
                "autoGarbageCollection": {"keepGenerations": 5},
            },
        },
    },
)

WORKSTATION = Profile(
    profile_type=ProfileType.WORKSTATION,
    description="Interactive desktop with GNOME, development containers and home backups",
    overrides={
        "performance": {
            "kernel": {
                "profile": "performance",
                "cpuScheduler": "performance",
                "enableBBR2": True,
                "enablePSI": True,
                "transparentHugepages": "madvise",
            },
            "zram": {
                "memoryPercent": 50,
                "algorithm": "zstd",
                "swappiness": 180,
            },
            "filesystem": {
                "enable": True,
                "enableTmpfs": True,
                "tmpfsSize": "16G",
                "enableFstrim": True,
            },
        },
        "desktop": {"enable": True},
        "services": {
            "pipewire": {"enable": True},
            "docker": {"enable": True, "profile": "development"},
            "backup": {
                "enable": True,
                "paths": ["/home", "/etc/nixos", "/var/lib/docker"],
            },
        },
        "security": {
            "hardening": {
                "profile": "standard",
                "enableSystemdHardening": True,
                "enableKernelHardening": True,
            },
        },
        "system": {
            "maintenance": {
                "monitoring": {"enable": True, "diskSpaceThreshold": 85},
                "autoGarbageCollection": {"keepGenerations": 10, "keepDays": 14},
            },
        },
    },
)

SERVER = Profile(
    profile_type=ProfileType.SERVER,
    description="Headless server: hardened, throughput-tuned, unattended updates and daily backups",
    overrides={
        "performance": {
            "kernel": {
                "profile": "throughput",
                "cpuScheduler": "schedutil",
                "enableBBR2": True,
                "enablePSI": True,
                "transparentHugepages": "always",
            },
            "zram": {
                "memoryPercent": 25,
                "algorithm": "zstd",
                "swappiness": 100,
            },
            "filesystem": {
                "enable": True,
                "enableTmpfs": True,
                "tmpfsSize": "2G",
                "enableFstrim": True,
                "fstrimInterval": "daily",
                "enableNocow": True,
            },
        },
        "desktop": {"enable": False},
        "services": {
            "openssh": {"enable": True},
            "fail2ban": {"enable": True},
            "docker": {"enable": True, "profile": "production"},
            "backup": {
                "enable": True,
                "schedule": "daily",
                "paths": ["/etc", "/var", "/home", "/opt"],
            },
        },
        "security": {
            "hardening": {
                "profile": "hardened",
                "enableSystemdHardening": True,
                "enableKernelHardening": True,
                "enableAppArmor": True,
            },
        },
        "system": {
            "maintenance": {
                "autoUpdate": {"enable": True, "schedule": "weekly", "allowReboot": True},
                "monitoring": {
                    "enable": True,
                    "diskSpaceThreshold": 90,
                    "enableSmartMonitoring": True,
                },
                "autoGarbageCollection": {"keepGenerations": 20, "keepDays": 30},
            },
        },
    },
)


# Profile registry for lookup by name
PROFILES: dict[ProfileType, Profile] = {
    ProfileType.MINIMAL: MINIMAL,
    ProfileType.WORKSTATION: WORKSTATION,
    ProfileType.SERVER: SERVER,
}


def get_profile(name: str) -> Profile | None:
    """Look up a profile by name."""
    for profile_type, profile in PROFILES.items():
        if profile_type.value == name:
            return profile
    return None


def list_profile_names() -> list[str]:
    """Return all available profile names."""
    return [p.value for p in PROFILES]


def overrides_table() -> dict[ProfileType, ConfigTree]:
    return {p: profile.overrides for p, profile in PROFILES.items()}
