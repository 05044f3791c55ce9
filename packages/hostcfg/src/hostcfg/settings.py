"""Runtime settings for the composer and CLI, read from HOSTCFG_* environment variables."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

from hostcfg_core.types import ProfileType


class HostcfgSettings(BaseSettings):
    """Main configuration for hostcfg."""

    # Composition
    default_profile: ProfileType = Field(
        default=ProfileType.WORKSTATION, description="Profile used when none is given"
    )
    strict_values: bool = Field(
        default=False,
        description="Also range-check CIDR octets, cron fields and times of day",
    )

    # Output
    config_dir: Path = Field(
        default=Path(".hostcfg"), description="Directory compiled artifacts are written under"
    )
    output_formats: list[str] = Field(
        default=["yaml", "nix"], description="Renderers run by the compile command"
    )

    # Logging
    log_level: str = Field(default="WARNING", description="Root log level for the CLI")

    model_config = {"env_prefix": "HOSTCFG_"}
