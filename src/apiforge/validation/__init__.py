"""Request validation.

- validate_input(): body validation against entity field definitions
- validate_query_params(): list query string parsing
"""

from apiforge.errors import FieldError
from apiforge.validation.input import EMAIL_PATTERN, validate_field, validate_input
from apiforge.validation.query import (
    DEFAULT_TAKE,
    MAX_TAKE,
    parse_filter_value,
    validate_query_params,
)
from apiforge.validation.types import QueryParams, ValidationResult

__all__ = [
    "DEFAULT_TAKE",
    "EMAIL_PATTERN",
    "FieldError",
    "MAX_TAKE",
    "QueryParams",
    "ValidationResult",
    "parse_filter_value",
    "validate_field",
    "validate_input",
    "validate_query_params",
]
