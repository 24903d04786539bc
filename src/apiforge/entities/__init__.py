"""Entity model and definition DSL."""

from apiforge.entities.entity import EntityBuilder, entity
from apiforge.entities.fields import (
    FieldBuilder,
    RelationBuilder,
    belongs_to,
    bool_,
    build_fields,
    datetime_,
    email,
    float_,
    has_many,
    has_one,
    int_,
    json_,
    string,
    text,
)
from apiforge.entities.naming import capitalize, pluralize, singularize
from apiforge.entities.types import (
    FIELD_TYPES,
    NO_DEFAULT,
    Entity,
    EntityConfig,
    EntityPluginInfo,
    FieldDef,
    Operation,
    PlaceholderRef,
    RelationDef,
    RuleDef,
    RuleFn,
    placeholder_entity,
    resolve_entity,
)

__all__ = [
    "FIELD_TYPES",
    "NO_DEFAULT",
    "Entity",
    "EntityBuilder",
    "EntityConfig",
    "EntityPluginInfo",
    "FieldBuilder",
    "FieldDef",
    "Operation",
    "PlaceholderRef",
    "RelationBuilder",
    "RelationDef",
    "RuleDef",
    "RuleFn",
    "belongs_to",
    "bool_",
    "capitalize",
    "build_fields",
    "datetime_",
    "email",
    "entity",
    "float_",
    "has_many",
    "has_one",
    "int_",
    "json_",
    "placeholder_entity",
    "pluralize",
    "resolve_entity",
    "singularize",
    "string",
    "text",
]
