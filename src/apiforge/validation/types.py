"""Core types for input validation."""

from dataclasses import dataclass, field
from typing import Any

from apiforge.errors import FieldError


@dataclass
class ValidationResult:
    """Result of validating request input against an entity.

    Attributes:
        valid: True if no errors
        errors: Field-attributed errors
        data: Only the keys that were present in the input and passed
            validation (defaults are not merged in here)
    """

    valid: bool
    errors: list[FieldError] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
            "data": self.data,
        }


@dataclass
class QueryParams:
    """Parsed list-endpoint query string."""

    filter: dict[str, Any] = field(default_factory=dict)
    sort: dict[str, str] = field(default_factory=dict)
    take: int = 20
    skip: int = 0
    include: dict[str, bool] = field(default_factory=dict)
