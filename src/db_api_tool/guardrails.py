from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import InvalidIdentifier

MAX_IDENTIFIER_LENGTH = 64

_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


@dataclass(frozen=True)
class Identifier:
    """A table or column name that passed :func:`sanitize_identifier`."""

    raw: str

    @property
    def quoted(self) -> str:
        return f"`{self.raw}`"

    def __str__(self) -> str:
        return self.raw


def sanitize_identifier(identifier: str, field_name: str = "identifier") -> Identifier:
    if not isinstance(identifier, str) or not identifier:
        raise InvalidIdentifier(f"Missing {field_name} name")
    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifier(
            f"Invalid identifier for {field_name}: longer than {MAX_IDENTIFIER_LENGTH} characters"
        )
    if not _IDENTIFIER_RE.fullmatch(identifier):
        raise InvalidIdentifier(f"Invalid identifier for {field_name}: {identifier!r}")
    return Identifier(identifier)


def parse_columns(raw: str | None) -> tuple[Identifier, ...]:
    """Split a comma-separated column list into sanitized identifiers.

    Blank entries are dropped and duplicates collapse to their first
    occurrence. An empty result means every column is projected. A single
    invalid entry rejects the whole list.
    """
    if raw is None:
        return ()
    names = [part.strip() for part in raw.split(",")]
    names = [name for name in names if name and name != "*"]
    return tuple(
        sanitize_identifier(name, "column") for name in dict.fromkeys(names)
    )


def clamp_limit(requested: int | str | None, default: int, maximum: int) -> int:
    """Clamp a caller-supplied row limit into ``[1, maximum]``.

    Absent, non-numeric, zero and negative values fall back to ``default``.
    """
    if requested is None or isinstance(requested, bool):
        return min(default, maximum)
    if isinstance(requested, str):
        try:
            requested = int(requested.strip())
        except ValueError:
            return min(default, maximum)
    if requested < 1:
        return min(default, maximum)
    return min(requested, maximum)
