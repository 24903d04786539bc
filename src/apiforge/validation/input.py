"""Validate request bodies against entity field definitions.

Unknown keys are dropped without being validated (mass-assignment
protection). hasMany relations never accept input. Relation fields are
addressed by their foreign key ("authorId"), which is also the name used
in "Required" errors.
"""

import re
from datetime import date, datetime
from typing import Any

from apiforge.entities.types import Entity, FieldDef, Operation
from apiforge.errors import FieldError
from apiforge.validation.types import ValidationResult

# local@domain.tld, no whitespace, exactly one "@"
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _is_int(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    # JSON numbers like 5.0 are integral
    return isinstance(value, float) and value.is_integer()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_datetime(value: Any) -> bool:
    if isinstance(value, (datetime, date)):
        return True
    try:
        datetime.fromisoformat(value)
    except ValueError:
        return False
    return True


def _check_bounds(
    name: str, measured: float, field: FieldDef, unit: str = ""
) -> list[FieldError]:
    errors = []
    if field.min is not None and measured < field.min:
        errors.append(FieldError(name, f"Must be at least {_fmt(field.min)}{unit}"))
    if field.max is not None and measured > field.max:
        errors.append(FieldError(name, f"Must be at most {_fmt(field.max)}{unit}"))
    return errors


def _fmt(bound: float) -> str:
    if isinstance(bound, float) and bound.is_integer():
        return str(int(bound))
    return str(bound)


def validate_field(name: str, value: Any, field: FieldDef) -> list[FieldError]:
    """Validate a single present value against its field definition."""
    if value is None:
        if not field.optional:
            return [FieldError(name, "Cannot be null")]
        return []

    field_type = field.type

    if field_type in ("string", "text"):
        if not isinstance(value, str):
            return [FieldError(name, "Must be a string")]
        errors = []
        if field.is_email and not EMAIL_PATTERN.match(value):
            errors.append(FieldError(name, "Invalid email format"))
        errors.extend(_check_bounds(name, len(value), field, " characters"))
        return errors

    if field_type == "int":
        if not _is_int(value):
            return [FieldError(name, "Must be an integer")]
        return _check_bounds(name, value, field)

    if field_type == "float":
        if not _is_number(value):
            return [FieldError(name, "Must be a number")]
        return _check_bounds(name, value, field)

    if field_type == "boolean":
        if not isinstance(value, bool):
            return [FieldError(name, "Must be a boolean")]
        return []

    if field_type == "datetime":
        if not isinstance(value, (str, datetime, date)):
            return [FieldError(name, "Must be a date")]
        if isinstance(value, str) and not _is_datetime(value):
            return [FieldError(name, "Invalid date format")]
        return []

    # json accepts any value
    return []


def _input_fields(entity: Entity) -> dict[str, FieldDef]:
    """Map of accepted input key -> definition used to validate it."""
    accepted: dict[str, FieldDef] = {}
    foreign_keys: dict[str, FieldDef] = {}

    for name, field in entity.config.fields.items():
        if field.is_collection:
            continue
        accepted[name] = field
        if field.relation is not None:
            foreign_keys[field.relation.foreign_key] = FieldDef(
                type="string", optional=field.optional
            )

    for key, definition in foreign_keys.items():
        accepted.setdefault(key, definition)
    return accepted


def validate_input(
    entity: Entity,
    input: dict[str, Any] | None,
    operation: Operation | str,
) -> ValidationResult:
    """Validate input data against an entity definition.

    Args:
        entity: The target entity
        input: Raw request body
        operation: "create" enforces required fields; other operations
            only validate the keys present

    Returns:
        ValidationResult with errors and the sanitized data
    """
    operation = Operation(operation)
    input = input or {}
    errors: list[FieldError] = []
    data: dict[str, Any] = {}

    accepted = _input_fields(entity)

    for key, value in input.items():
        field = accepted.get(key)
        if field is None:
            continue
        field_errors = validate_field(key, value, field)
        errors.extend(field_errors)
        if not field_errors:
            data[key] = value

    if operation is Operation.CREATE:
        owner_field = entity.config.owner_field
        for name, field in entity.config.fields.items():
            if field.is_collection:
                continue
            if field.relation is not None and owner_field and field.relation.foreign_key == owner_field:
                continue

            key = field.relation.foreign_key if field.relation is not None else name
            if not field.optional and not field.has_default and key not in input:
                errors.append(FieldError(key, "Required"))

    return ValidationResult(valid=not errors, errors=errors, data=data)
