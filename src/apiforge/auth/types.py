"""Authenticated user representation."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class User:
    """The authenticated caller, as extracted by an adapter.

    Attributes:
        id: User identifier (compared against owner fields)
        email: Optional email address
        role: Optional role name ("admin" passes the admin rule)
        attributes: Any additional claims
    """

    id: str
    email: str | None = None
    role: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        known = {"id", "email", "role"}
        return cls(
            id=str(data["id"]),
            email=data.get("email"),
            role=data.get("role"),
            attributes={k: v for k, v in data.items() if k not in known},
        )

    def get(self, key: str, default: Any = None) -> Any:
        if key in ("id", "email", "role"):
            return getattr(self, key)
        return self.attributes.get(key, default)
