"""Option kinds, issue taxonomy and the ConfigTree type aliases."""

from enum import StrEnum
from typing import Any, Literal, TypeAlias


class OptionKind(StrEnum):
    BOOL = "bool"
    PORT = "port"
    PORT_LIST = "port_list"
    PATH = "path"
    STRING_LIST = "string_list"
    ENUM = "enum"
    PERCENTAGE = "percentage"
    MEMORY = "memory"
    SCHEDULE = "schedule"
    INT_RANGE = "int_range"
    NETWORK = "network"
    SUBMODULE = "submodule"
    STR = "str"
    INT = "int"
    TIME_OF_DAY = "time_of_day"
    RATE_LIMIT = "rate_limit"


class IssueKind(StrEnum):
    CONFLICT = "conflict"
    DEPENDENCY = "dependency"
    CYCLE = "cycle"
    UNKNOWN_PROFILE = "unknown_profile"
    TYPE = "type"
    BOUNDS = "bounds"
    UNKNOWN_KEY = "unknown_key"


class ProfileType(StrEnum):
    MINIMAL = "minimal"
    WORKSTATION = "workstation"
    SERVER = "server"


Severity = Literal["error", "warning"]
ValueSource = Literal["baseline", "profile", "override"]

Scalar: TypeAlias = bool | int | float | str | None
# Lists and nested maps hold further ConfigValues.
ConfigValue: TypeAlias = Scalar | list[Any] | dict[str, Any]
ConfigTree: TypeAlias = dict[str, ConfigValue]
ServiceName: TypeAlias = str
