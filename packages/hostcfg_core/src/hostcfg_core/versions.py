"""Version types with Pydantic serialization support."""

import re
from typing import Annotated

from packaging.version import Version
from pydantic import AfterValidator, PlainSerializer, PlainValidator

COMPILER_VERSION = "0.1.0"

# Release channels are cut twice a year, in May and November.
_STATE_VERSION_RE = re.compile(r"^[0-9]{2}\.(05|11)$")

VersionType = Annotated[
    Version,
    PlainValidator(lambda v: Version(v) if isinstance(v, str) else v),
    PlainSerializer(lambda v: str(v)),
]


def is_state_version(value: object) -> bool:
    return isinstance(value, str) and _STATE_VERSION_RE.match(value) is not None


def _check_state_version(value: str) -> str:
    if not is_state_version(value):
        raise ValueError(f"state version '{value}' is not a YY.MM release (e.g. 25.05)")
    return value


StateVersionType = Annotated[str, AfterValidator(_check_state_version)]
