"""Opaque Discord identifiers and hex decoding helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass


_MAX_SNOWFLAKE = (1 << 64) - 1
_HEX_RE = re.compile(r"^(?:[0-9a-fA-F]{2})+$")


@dataclass(frozen=True, order=True)
class Snowflake:
    """A validated, non-zero 64-bit Discord id.

    Stored identifiers are strings; ``parse`` is the single place they become
    ids. Anything empty, non-numeric, zero, or out of range parses to ``None``
    so callers treat it as a missing resource and take the repair path.
    """

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not 0 < self.value <= _MAX_SNOWFLAKE:
            raise ValueError(f"Invalid snowflake: {self.value!r}")

    @classmethod
    def parse(cls, raw: object) -> "Snowflake | None":
        if raw is None or isinstance(raw, bool):
            return None
        if isinstance(raw, Snowflake):
            return raw
        if isinstance(raw, int):
            candidate = raw
        else:
            text = str(raw).strip()
            if not (text.isascii() and text.isdigit()):
                return None
            candidate = int(text)
        if not 0 < candidate <= _MAX_SNOWFLAKE:
            return None
        return cls(candidate)

    def __str__(self) -> str:
        return str(self.value)


def decode_hex(value: str | None) -> bytes | None:
    """Strictly decode an even-length hex string; ``None`` when malformed."""

    if not value or not _HEX_RE.match(value):
        return None
    return bytes.fromhex(value)
