"""
Response kinds a user can be configured with.

Stored values are free-form strings, so they are parsed into a
`StoredKind` at the store boundary; anything outside the enum is kept as an
unknown kind that carries the original value.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ResponseKind(str, Enum):
    DEFAULT = "default"
    STATIC = "static"
    REDIRECT = "redirect"
    JSON = "json"


RESPONSE_KIND_VALUES = frozenset(kind.value for kind in ResponseKind)


@dataclass(frozen=True)
class StoredKind:
    kind: Optional[ResponseKind]
    raw: str

    @property
    def is_unknown(self) -> bool:
        return self.kind is None


def parse_response_kind(value: object) -> StoredKind:
    """Parse a stored response value. Missing values mean the default kind."""
    if value is None:
        return StoredKind(ResponseKind.DEFAULT, ResponseKind.DEFAULT.value)
    raw = str(value)
    if raw in RESPONSE_KIND_VALUES:
        return StoredKind(ResponseKind(raw), raw)
    return StoredKind(None, raw)
