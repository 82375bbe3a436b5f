"""Identity model — the participants that earn and hold Grain.

An identity has an immutable UUID assigned at creation, a renameable
name, and a set of aliases (addresses of accounts on other platforms
that belong to the same participant). Ids are never reused.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field, replace
from typing import Any


IdentityId = str

# GitHub-esque naming rules; a leading "@" is accepted and stripped.
NAME_PATTERN = re.compile(r"^@?([A-Za-z0-9-_]+)$")


def new_identity_id() -> IdentityId:
    return str(uuid.uuid4())


def parse_identity_id(value: str) -> IdentityId:
    """Validate that a string is a canonical UUID."""
    try:
        parsed = uuid.UUID(value)
    except (TypeError, ValueError, AttributeError):
        raise ValueError(f"Invalid identity id: {value!r}") from None
    if str(parsed) != value:
        raise ValueError(f"Identity id not in canonical form: {value!r}")
    return value


def name_from_string(name: str) -> str:
    match = NAME_PATTERN.match(name or "")
    if match is None:
        raise ValueError(f"Invalid identity name: {name!r}")
    return match.group(1)


@dataclass(frozen=True)
class Identity:
    id: IdentityId
    name: str
    aliases: tuple[str, ...] = field(default_factory=tuple)

    def with_name(self, name: str) -> Identity:
        return replace(self, name=name)

    def with_alias(self, alias: str) -> Identity:
        return replace(self, aliases=self.aliases + (alias,))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "aliases": list(self.aliases)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Identity:
        return cls(
            id=parse_identity_id(data["id"]),
            name=name_from_string(data["name"]),
            aliases=tuple(data.get("aliases", [])),
        )
