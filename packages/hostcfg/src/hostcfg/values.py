"""String-encoded structured values: memory sizes, CIDRs, schedules, time windows, rate limits.

Config files keep these as human-editable strings. They are parsed into small
value types at the boundary and printed back in their canonical string form.

Parsing is lexical by default: a string that matches the shape regex is
accepted even when a field is out of range (``999.999.999.999/99`` is a valid
CIDR). Pass ``strict=True`` to also check semantic ranges.
"""

from __future__ import annotations

import re
from typing import ClassVar, Literal

from pydantic import BaseModel, ConfigDict

MEMORY_RE = re.compile(r"^[0-9]+(K|M|G|T)?$")
CIDR_RE = re.compile(r"^([0-9]{1,3}\.){3}[0-9]{1,3}/[0-9]{1,2}$")
IPV4_RE = re.compile(r"^([0-9]{1,3}\.){3}[0-9]{1,3}$")
IPV6_RE = re.compile(r"^([0-9a-fA-F]{0,4}:){7}[0-9a-fA-F]{0,4}$")
EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
CRON_RE = re.compile(r"^[0-9*,/-]+(\s+[0-9*,/-]+){4}$")
TIMER_FIELDS_RE = re.compile(r"^[*0-9,/-]+( [*0-9,/-]+){0,4}$")
CALENDAR_RE = re.compile(r"^[A-Za-z]{3} [*0-9,/-]+ [*0-9,/-]+:[*0-9,/-]+:[*0-9,/-]+$")
TIME_OF_DAY_RE = re.compile(r"^([0-9]{1,2}):([0-9]{2})$")
RATE_LIMIT_RE = re.compile(r"^([0-9]+)/(s|m|h|d)$")

SCHEDULE_LITERALS: tuple[str, ...] = ("minutely", "hourly", "daily", "weekly", "monthly", "yearly")

# (min, max) per cron field: minute, hour, day of month, month, day of week
_CRON_RANGES: tuple[tuple[int, int], ...] = ((0, 59), (0, 23), (1, 31), (1, 12), (0, 7))
_UNIT_EXPONENT = {"": 0, "K": 1, "M": 2, "G": 3, "T": 4}


def is_valid_port(port: int) -> bool:
    return 1 <= port <= 65535


def is_memory_size(text: str) -> bool:
    return MEMORY_RE.match(text) is not None


def is_cidr(text: str) -> bool:
    return CIDR_RE.match(text) is not None


def is_ipv4(text: str) -> bool:
    return IPV4_RE.match(text) is not None


def is_ipv6(text: str) -> bool:
    """Simplified check: eight colon-separated groups, empty groups allowed."""
    return IPV6_RE.match(text) is not None


def is_email(text: str) -> bool:
    return EMAIL_RE.match(text) is not None


def is_cron_schedule(text: str) -> bool:
    stripped = text.strip()
    if stripped.startswith("@"):
        return stripped[1:] in SCHEDULE_LITERALS
    return CRON_RE.match(stripped) is not None


def is_systemd_timer(text: str) -> bool:
    """Systemd timer shapes: a literal, one to five time fields, or a calendar spec."""
    return (
        text in SCHEDULE_LITERALS
        or TIMER_FIELDS_RE.match(text) is not None
        or CALENDAR_RE.match(text) is not None
    )


def is_time_of_day(text: str) -> bool:
    return TIME_OF_DAY_RE.match(text) is not None


def is_rate_limit(text: str) -> bool:
    return RATE_LIMIT_RE.match(text) is not None


class MemorySize(BaseModel):
    model_config = ConfigDict(frozen=True)

    magnitude: int
    unit: Literal["", "K", "M", "G", "T"] = ""

    @classmethod
    def parse(cls, text: str, *, strict: bool = False) -> MemorySize:
        m = MEMORY_RE.match(text.strip())
        if m is None:
            raise ValueError(f"'{text}' is not a memory size (expected e.g. 512M, 2G)")
        magnitude = int(text.strip().rstrip("KMGT"))
        if strict and magnitude <= 0:
            raise ValueError(f"memory size '{text}' must be positive")
        return cls(magnitude=magnitude, unit=m.group(1) or "")

    def to_bytes(self) -> int:
        return self.magnitude * 1024 ** _UNIT_EXPONENT[self.unit]

    def __str__(self) -> str:
        return f"{self.magnitude}{self.unit}"


class Cidr(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: tuple[int, int, int, int]
    prefix_len: int

    @classmethod
    def parse(cls, text: str, *, strict: bool = False) -> Cidr:
        stripped = text.strip()
        if CIDR_RE.match(stripped) is None:
            raise ValueError(f"'{text}' is not a CIDR block (expected e.g. 192.168.1.0/24)")
        address, prefix = stripped.split("/")
        a, b, c, d = (int(octet) for octet in address.split("."))
        prefix_len = int(prefix)
        if strict:
            if any(octet > 255 for octet in (a, b, c, d)):
                raise ValueError(f"CIDR '{text}' has an octet above 255")
            if prefix_len > 32:
                raise ValueError(f"CIDR '{text}' has a prefix length above 32")
        return cls(address=(a, b, c, d), prefix_len=prefix_len)

    def __str__(self) -> str:
        return ".".join(str(o) for o in self.address) + f"/{self.prefix_len}"


class Schedule(BaseModel):
    """A timer schedule: a literal (``daily``), a 5-field cron line, or a calendar spec."""

    model_config = ConfigDict(frozen=True)

    form: Literal["literal", "cron", "calendar"]
    text: str
    cron_fields: tuple[str, ...] = ()

    LITERALS: ClassVar[tuple[str, ...]] = SCHEDULE_LITERALS

    @classmethod
    def parse(cls, text: str, *, strict: bool = False) -> Schedule:
        stripped = text.strip()
        literal = stripped[1:] if stripped.startswith("@") else stripped
        if literal in SCHEDULE_LITERALS:
            return cls(form="literal", text=literal)
        if CALENDAR_RE.match(stripped):
            return cls(form="calendar", text=stripped)
        if CRON_RE.match(stripped) is None:
            raise ValueError(
                f"'{text}' is not a schedule (expected one of "
                f"{', '.join(SCHEDULE_LITERALS)} or a 5-field cron expression)"
            )
        fields = tuple(stripped.split())
        if strict:
            for field, (lo, hi) in zip(fields, _CRON_RANGES, strict=True):
                _check_cron_field(field, lo, hi)
        return cls(form="cron", text=" ".join(fields), cron_fields=fields)

    def __str__(self) -> str:
        return self.text


def _check_cron_field(field: str, lo: int, hi: int) -> None:
    for part in field.split(","):
        base, _, step = part.partition("/")
        if step and (not step.isdigit() or int(step) == 0):
            raise ValueError(f"cron field '{field}' has an invalid step")
        if base == "*":
            continue
        bounds = base.split("-")
        if len(bounds) > 2 or not all(b.isdigit() for b in bounds):
            raise ValueError(f"cron field '{field}' is malformed")
        values = [int(b) for b in bounds]
        if any(v < lo or v > hi for v in values):
            raise ValueError(f"cron field '{field}' is outside {lo}-{hi}")
        if len(values) == 2 and values[0] > values[1]:
            raise ValueError(f"cron field '{field}' has a reversed range")


class TimeOfDay(BaseModel):
    model_config = ConfigDict(frozen=True)

    hour: int
    minute: int

    @classmethod
    def parse(cls, text: str, *, strict: bool = False) -> TimeOfDay:
        m = TIME_OF_DAY_RE.match(text.strip())
        if m is None:
            raise ValueError(f"'{text}' is not a time of day (expected HH:MM)")
        hour, minute = int(m.group(1)), int(m.group(2))
        if strict and (hour > 23 or minute > 59):
            raise ValueError(f"time of day '{text}' is out of range")
        return cls(hour=hour, minute=minute)

    def minutes(self) -> int:
        return self.hour * 60 + self.minute

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


class RateLimit(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int
    per: Literal["s", "m", "h", "d"]

    @classmethod
    def parse(cls, text: str, *, strict: bool = False) -> RateLimit:
        m = RATE_LIMIT_RE.match(text.strip())
        if m is None:
            raise ValueError(f"'{text}' is not a rate limit (expected e.g. 1/s, 10/m)")
        count = int(m.group(1))
        if strict and count <= 0:
            raise ValueError(f"rate limit '{text}' must allow at least one event")
        return cls(count=count, per=m.group(2))

    def __str__(self) -> str:
        return f"{self.count}/{self.per}"
