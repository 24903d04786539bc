"""Entity builder DSL.

Usage:
    post = entity("post", {
        "title": string.min(1).max(200),
        "body": text,
        "author": belongs_to(lambda: user),
    }).owned_by("author")
"""

from __future__ import annotations

import re

from apiforge.entities.fields import FieldBuilder, RelationBuilder, build_fields
from apiforge.entities.types import Entity, EntityConfig, FieldDef, Operation, RuleDef

ENTITY_NAME_PATTERN = re.compile(r"^[a-z][a-zA-Z0-9]*$")

OWNED_DEFAULT_RULES: dict[str, list[RuleDef]] = {
    Operation.CREATE.value: ["authenticated"],
    Operation.READ.value: ["everyone"],
    Operation.UPDATE.value: ["owner"],
    Operation.DELETE.value: ["owner"],
    Operation.LIST.value: ["everyone"],
}


def _rule_key(operation: str | Operation) -> str:
    return Operation(operation).value


class EntityBuilder:
    """Fluent entity builder.

    Chain methods return the builder itself; build() produces a fresh
    Entity whose maps are copies, so later chaining never alters an
    entity that was already built.
    """

    def __init__(
        self,
        name: str,
        fields: dict[str, FieldBuilder | RelationBuilder | FieldDef],
    ):
        if not name or not ENTITY_NAME_PATTERN.match(name):
            raise ValueError(
                f'Invalid entity name: "{name}". Must start with lowercase letter '
                "and contain only alphanumeric characters."
            )
        self._name = name
        self._fields = build_fields(fields)
        self._rules: dict[str, list[RuleDef]] = {}
        self._owner_field: str | None = None
        self._timestamps = True

    @property
    def name(self) -> str:
        return self._name

    def rules(
        self,
        config: dict[str | Operation, list[RuleDef]] | None = None,
        **by_operation: list[RuleDef],
    ) -> EntityBuilder:
        """Set authorization rules per operation (shallow merge).

        entity(...).rules(create=["authenticated"], delete=["owner", "admin"])
        """
        merged = dict(config or {})
        merged.update(by_operation)
        for operation, rule_list in merged.items():
            self._rules[_rule_key(operation)] = list(rule_list)
        return self

    def owned_by(self, relation_field: str) -> EntityBuilder:
        """Mark the entity as owned through a belongsTo relation.

        Sets the owner field to the relation's foreign key and applies the
        default owned rule set; rules already given via rules() win.
        """
        field = self._fields.get(relation_field)
        if field is None or field.relation is None or field.relation.type != "belongsTo":
            raise ValueError(
                f'Field "{relation_field}" is not a relation. '
                "owned_by requires a belongsTo relation."
            )
        self._owner_field = field.relation.foreign_key
        self._rules = {**OWNED_DEFAULT_RULES, **self._rules}
        return self

    def no_timestamps(self) -> EntityBuilder:
        """Disable automatic createdAt/updatedAt."""
        self._timestamps = False
        return self

    def build(self) -> Entity:
        return Entity(
            name=self._name,
            config=EntityConfig(
                fields=dict(self._fields),
                rules={op: list(r) for op, r in self._rules.items()},
                owner_field=self._owner_field,
                timestamps=self._timestamps,
            ),
        )


def entity(
    name: str,
    fields: dict[str, FieldBuilder | RelationBuilder | FieldDef],
) -> EntityBuilder:
    """Create an entity definition."""
    return EntityBuilder(name, fields)
