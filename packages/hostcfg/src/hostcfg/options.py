"""Option builder: typed, documented option descriptors and value checks.

Descriptors are built once when a module declares its options and never
change afterwards. Construction is permissive about defaults: a percentage
option with ``default=150`` builds fine and is rejected when the value is
checked with :func:`check_value`.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from hostcfg.models import ValidationIssue
from hostcfg.values import Cidr, MemorySize, RateLimit, Schedule, TimeOfDay
from hostcfg_core.types import IssueKind, OptionKind

PORT_MIN = 1
PORT_MAX = 65535

_PARSERS = {
    OptionKind.MEMORY: MemorySize.parse,
    OptionKind.NETWORK: Cidr.parse,
    OptionKind.SCHEDULE: Schedule.parse,
    OptionKind.TIME_OF_DAY: TimeOfDay.parse,
    OptionKind.RATE_LIMIT: RateLimit.parse,
}


class OptionDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: OptionKind
    description: str
    default: Any = None
    example: Any = None
    allowed_values: tuple[Any, ...] | None = None
    min_value: int | None = None
    max_value: int | None = None
    options: dict[str, OptionDescriptor] | None = None
    path: str | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def with_path(self, path: str) -> OptionDescriptor:
        return self.model_copy(update={"path": path})


def mk_option(
    kind: OptionKind,
    *,
    description: str,
    default: Any = None,
    example: Any = None,
    allowed_values: list[Any] | tuple[Any, ...] | None = None,
    min_value: int | None = None,
    max_value: int | None = None,
    options: dict[str, OptionDescriptor] | None = None,
) -> OptionDescriptor:
    """Build a descriptor, enforcing the per-kind construction invariants."""
    if kind == OptionKind.ENUM and not allowed_values:
        raise ValueError("enum option requires a non-empty set of allowed values")
    if kind in (OptionKind.PERCENTAGE, OptionKind.INT_RANGE):
        if min_value is None or max_value is None:
            raise ValueError(f"{kind.value} option requires min and max bounds")
        if min_value > max_value:
            raise ValueError(f"{kind.value} option has min ({min_value}) > max ({max_value})")
    if kind == OptionKind.SUBMODULE and options is None:
        raise ValueError("submodule option requires child options")
    return OptionDescriptor(
        kind=kind,
        description=description,
        default=default,
        example=example,
        allowed_values=tuple(allowed_values) if allowed_values is not None else None,
        min_value=min_value,
        max_value=max_value,
        options=options,
    )


def enable_option(name: str, description: str) -> OptionDescriptor:
    """An ``enable`` flag that defaults to off."""
    return mk_option(
        OptionKind.BOOL,
        description=f"Whether to enable {name} - {description}",
        default=False,
        example=True,
    )


def bool_option(*, default: bool, description: str) -> OptionDescriptor:
    return mk_option(OptionKind.BOOL, description=description, default=default)


def port_option(
    *, default: int, description: str = "Port number", example: int | None = None
) -> OptionDescriptor:
    # The default is not range-checked here; check_value rejects it later.
    return mk_option(OptionKind.PORT, description=description, default=default, example=example)


def port_list_option(
    *, default: list[int] | None = None, description: str = "Ports claimed when enabled"
) -> OptionDescriptor:
    return mk_option(
        OptionKind.PORT_LIST,
        description=description,
        default=list(default) if default is not None else [],
        example=[8080],
    )


def path_option(
    *, description: str, default: str | None = None, example: str | None = None
) -> OptionDescriptor:
    return mk_option(OptionKind.PATH, description=description, default=default, example=example)


def string_list_option(
    *, description: str, default: list[str] | None = None, example: list[str] | None = None
) -> OptionDescriptor:
    return mk_option(
        OptionKind.STRING_LIST,
        description=description,
        default=list(default) if default is not None else [],
        example=example,
    )


def enum_option(
    *, values: list[str], default: str, description: str, example: str | None = None
) -> OptionDescriptor:
    return mk_option(
        OptionKind.ENUM,
        description=description,
        default=default,
        example=example,
        allowed_values=values,
    )


def percentage_option(*, default: int, description: str) -> OptionDescriptor:
    return mk_option(
        OptionKind.PERCENTAGE,
        description=description,
        default=default,
        min_value=0,
        max_value=100,
    )


def memory_option(
    *, description: str, default: str | None = None, example: str = "2G"
) -> OptionDescriptor:
    return mk_option(OptionKind.MEMORY, description=description, default=default, example=example)


def schedule_option(
    *, default: str = "daily", description: str = "Schedule in systemd timer format"
) -> OptionDescriptor:
    return mk_option(
        OptionKind.SCHEDULE, description=description, default=default, example="weekly"
    )


def int_range_option(
    *, min: int, max: int, default: int, description: str  # noqa: A002
) -> OptionDescriptor:
    return mk_option(
        OptionKind.INT_RANGE,
        description=description,
        default=default,
        example=default,
        min_value=min,
        max_value=max,
    )


def network_option(
    *, description: str, default: str | None = None, example: str = "192.168.1.0/24"
) -> OptionDescriptor:
    return mk_option(OptionKind.NETWORK, description=description, default=default, example=example)


def submodule_option(
    *, options: dict[str, OptionDescriptor], description: str
) -> OptionDescriptor:
    return mk_option(OptionKind.SUBMODULE, description=description, options=options)


def str_option(
    *, description: str, default: str | None = None, example: str | None = None
) -> OptionDescriptor:
    return mk_option(OptionKind.STR, description=description, default=default, example=example)


def int_option(
    *, description: str, default: int | None = None, example: int | None = None
) -> OptionDescriptor:
    return mk_option(OptionKind.INT, description=description, default=default, example=example)


def time_window_options(
    *,
    start_default: str = "02:00",
    end_default: str = "05:00",
    description: str = "Time window",
) -> dict[str, OptionDescriptor]:
    return {
        "start": mk_option(
            OptionKind.TIME_OF_DAY,
            description=f"{description} start time (HH:MM format)",
            default=start_default,
            example="03:00",
        ),
        "end": mk_option(
            OptionKind.TIME_OF_DAY,
            description=f"{description} end time (HH:MM format)",
            default=end_default,
            example="06:00",
        ),
    }


def rate_limit_options(
    *, limit_default: str = "1/s", burst_default: int = 3, prefix: str = ""
) -> dict[str, OptionDescriptor]:
    return {
        f"{prefix}limit": mk_option(
            OptionKind.RATE_LIMIT,
            description="Rate limit (e.g., '1/s', '10/m')",
            default=limit_default,
            example="5/s",
        ),
        f"{prefix}burst": mk_option(
            OptionKind.INT,
            description="Burst size for rate limiting",
            default=burst_default,
            example=5,
        ),
    }


def in_bounds(value: int, min_value: int, max_value: int) -> bool:
    return min_value <= value <= max_value


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def check_value(
    descriptor: OptionDescriptor,
    value: Any,
    *,
    path: str,
    strict: bool = False,
) -> list[ValidationIssue]:
    """Check a candidate value against its descriptor.

    Returns an empty list when the value is acceptable. ``None`` means
    "unset" and is only accepted for options without a default.
    """
    kind = descriptor.kind

    def _type_issue(expected: str) -> list[ValidationIssue]:
        return [
            ValidationIssue(
                kind=IssueKind.TYPE,
                message=f"{path}: expected {expected}, got {value!r}",
                keys=[path],
            )
        ]

    def _bounds_issue(message: str) -> list[ValidationIssue]:
        return [ValidationIssue(kind=IssueKind.BOUNDS, message=f"{path}: {message}", keys=[path])]

    if value is None:
        if descriptor.has_default and kind != OptionKind.SUBMODULE:
            return _type_issue(f"a {kind.value} value")
        return []

    match kind:
        case OptionKind.BOOL:
            if not isinstance(value, bool):
                return _type_issue("a boolean")
        case OptionKind.PORT:
            if not _is_int(value):
                return _type_issue("an integer port")
            if not in_bounds(value, PORT_MIN, PORT_MAX):
                return _bounds_issue(f"port {value} is outside {PORT_MIN}-{PORT_MAX}")
        case OptionKind.PORT_LIST:
            if not isinstance(value, list) or not all(_is_int(p) for p in value):
                return _type_issue("a list of integer ports")
            outside = [p for p in value if not in_bounds(p, PORT_MIN, PORT_MAX)]
            if outside:
                return _bounds_issue(
                    f"ports {', '.join(str(p) for p in outside)} are outside {PORT_MIN}-{PORT_MAX}"
                )
        case OptionKind.PERCENTAGE | OptionKind.INT_RANGE:
            if not _is_int(value):
                return _type_issue("an integer")
            lo, hi = descriptor.min_value, descriptor.max_value
            if lo is not None and hi is not None and not in_bounds(value, lo, hi):
                return _bounds_issue(f"{value} is outside {lo}-{hi}")
        case OptionKind.INT:
            if not _is_int(value):
                return _type_issue("an integer")
        case OptionKind.ENUM:
            if value not in (descriptor.allowed_values or ()):
                allowed = ", ".join(str(v) for v in descriptor.allowed_values or ())
                return _bounds_issue(f"'{value}' is not one of: {allowed}")
        case OptionKind.STRING_LIST:
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                return _type_issue("a list of strings")
        case OptionKind.PATH:
            if not isinstance(value, str) or not value:
                return _type_issue("a path string")
        case OptionKind.STR:
            if not isinstance(value, str):
                return _type_issue("a string")
        case OptionKind.SUBMODULE:
            if not isinstance(value, dict):
                return _type_issue("an attribute set")
            return _check_submodule(descriptor, value, path=path, strict=strict)
        case _:
            if not isinstance(value, str):
                return _type_issue(f"a {kind.value} string")
            try:
                _PARSERS[kind](value, strict=strict)
            except ValueError as e:
                return _type_issue(f"a {kind.value} value ({e})")
    return []


def _check_submodule(
    descriptor: OptionDescriptor,
    value: dict[str, Any],
    *,
    path: str,
    strict: bool,
) -> list[ValidationIssue]:
    children = descriptor.options or {}
    issues: list[ValidationIssue] = []
    for key, child_value in value.items():
        child_path = f"{path}.{key}"
        child = children.get(key)
        if child is None:
            issues.append(
                ValidationIssue(
                    kind=IssueKind.UNKNOWN_KEY,
                    message=f"{child_path}: unknown option",
                    keys=[child_path],
                )
            )
            continue
        issues.extend(check_value(child, child_value, path=child_path, strict=strict))
    return issues
