"""Load plugin extensions and schemas from YAML or plain dicts.

YAML documents are validated with pydantic models and converted to the
contract dataclasses. Keys may be written snake_case or camelCase
("add_fields" / "addFields"); unknown keys are rejected.

Example extension file:

    base_path: /api/auth
    entities:
      user:
        rename: member
        fields:
          name: {rename: fullName}
    entity_routes:
      member:
        delete: disable
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, Literal, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from apiforge.api.types import Route
from apiforge.entities.types import NO_DEFAULT
from apiforge.errors import PluginError
from apiforge.plugins.contract import (
    EntityRouteConfig,
    EntityRoutesConfig,
    FieldReference,
    PluginEntityDef,
    PluginEntityExtension,
    PluginExtension,
    PluginFieldDef,
    PluginFieldExtension,
    PluginSchema,
)

FieldType = Literal["string", "text", "int", "float", "boolean", "datetime", "json"]

# Route handlers only arrive through dict extensions built in code
Handler = Callable[..., Any]
# Route objects or {method, path, handler} mappings
CustomRoutes = list[Any]


class _Model(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ReferenceModel(_Model):
    entity: str
    field: str = "id"


class FieldModel(_Model):
    type: FieldType
    required: bool = False
    unique: bool = False
    default: Any = None
    locked: bool = False
    description: str | None = None
    references: ReferenceModel | None = None

    def to_def(self) -> PluginFieldDef:
        return PluginFieldDef(
            type=self.type,
            required=self.required,
            unique=self.unique,
            default=self.default if "default" in self.model_fields_set else NO_DEFAULT,
            locked=self.locked,
            description=self.description,
            references=(
                FieldReference(entity=self.references.entity, field=self.references.field)
                if self.references
                else None
            ),
        )


class EntityModel(_Model):
    fields: dict[str, FieldModel] = Field(default_factory=dict)
    required: bool = False
    internal: bool = False
    description: str | None = None
    route_path: str | None = Field(default=None, alias="routePath")

    def to_def(self) -> PluginEntityDef:
        return PluginEntityDef(
            fields={name: f.to_def() for name, f in self.fields.items()},
            required=self.required,
            internal=self.internal,
            description=self.description,
            route_path=self.route_path,
        )


class FieldExtensionModel(_Model):
    add: FieldModel | None = None
    rename: str | None = None
    override: dict[str, Any] | None = None
    remove: bool = False


class EntityExtensionModel(_Model):
    fields: dict[str, FieldExtensionModel] = Field(default_factory=dict)
    add_fields: dict[str, FieldModel] = Field(default_factory=dict, alias="addFields")
    remove: bool = False
    rename: str | None = None
    route_path: str | None = Field(default=None, alias="routePath")
    internal: bool | None = None


class RouteConfigModel(_Model):
    disable: bool = False
    handler: Handler | None = None


OperationRouteModel = Union[Literal["disable"], RouteConfigModel, Handler]


class CustomRouteModel(_Model):
    method: str
    path: str
    handler: Handler


class EntityRoutesModel(_Model):
    custom: CustomRoutes = Field(default_factory=list)
    list: OperationRouteModel | None = None
    create: OperationRouteModel | None = None
    read: OperationRouteModel | None = None
    update: OperationRouteModel | None = None
    delete: OperationRouteModel | None = None


class ExtensionModel(_Model):
    entities: dict[str, EntityExtensionModel] = Field(default_factory=dict)
    add_entities: dict[str, EntityModel] = Field(default_factory=dict, alias="addEntities")
    routes: dict[str, Union[Literal["disable"], Handler]] = Field(default_factory=dict)
    base_path: str | Literal[False] | None = Field(default=None, alias="basePath")
    entity_routes: dict[str, EntityRoutesModel] = Field(
        default_factory=dict, alias="entityRoutes"
    )


class SchemaModel(_Model):
    entities: dict[str, EntityModel] = Field(default_factory=dict)
    extend: dict[str, dict[str, FieldModel]] = Field(default_factory=dict)


def _operation_route(value: OperationRouteModel | None) -> Any:
    if isinstance(value, RouteConfigModel):
        return EntityRouteConfig(disable=value.disable, handler=value.handler)
    return value


def _custom_route(value: Any) -> Route:
    if isinstance(value, Route):
        return value
    try:
        model = CustomRouteModel.model_validate(value)
    except PydanticValidationError as e:
        raise PluginError(f"Invalid custom route: {e}") from e
    return Route(method=model.method, path=model.path, handler=model.handler)


def _entity_routes(model: EntityRoutesModel) -> EntityRoutesConfig:
    return EntityRoutesConfig(
        custom=[_custom_route(route) for route in model.custom],
        list=_operation_route(model.list),
        create=_operation_route(model.create),
        read=_operation_route(model.read),
        update=_operation_route(model.update),
        delete=_operation_route(model.delete),
    )


def _override(override: dict[str, Any] | None) -> dict[str, Any] | None:
    if not override or not isinstance(override.get("references"), dict):
        return override
    reference = ReferenceModel.model_validate(override["references"])
    return {**override, "references": FieldReference(reference.entity, reference.field)}


def _entity_extension(model: EntityExtensionModel) -> PluginEntityExtension:
    return PluginEntityExtension(
        fields={
            name: PluginFieldExtension(
                add=ext.add.to_def() if ext.add else None,
                rename=ext.rename,
                override=_override(ext.override),
                remove=ext.remove,
            )
            for name, ext in model.fields.items()
        },
        add_fields={name: f.to_def() for name, f in model.add_fields.items()},
        remove=model.remove,
        rename=model.rename,
        route_path=model.route_path,
        internal=model.internal,
    )


def extension_from_dict(data: dict[str, Any]) -> PluginExtension:
    """Validate and convert a plain dict into a PluginExtension.

    Raises:
        PluginError: If the data does not describe a valid extension
    """
    try:
        model = ExtensionModel.model_validate(data)
    except PydanticValidationError as e:
        raise PluginError(f"Invalid plugin extension: {e}") from e

    return PluginExtension(
        entities={name: _entity_extension(ext) for name, ext in model.entities.items()},
        add_entities={name: e.to_def() for name, e in model.add_entities.items()},
        routes=dict(model.routes),
        base_path=model.base_path,
        entity_routes={name: _entity_routes(r) for name, r in model.entity_routes.items()},
    )


def schema_from_dict(data: dict[str, Any]) -> PluginSchema:
    """Validate and convert a plain dict into a PluginSchema."""
    try:
        model = SchemaModel.model_validate(data)
    except PydanticValidationError as e:
        raise PluginError(f"Invalid plugin schema: {e}") from e

    return PluginSchema(
        entities={name: e.to_def() for name, e in model.entities.items()},
        extend={
            target: {name: f.to_def() for name, f in columns.items()}
            for target, columns in model.extend.items()
        },
    )


def load_extension(path: str | Path) -> PluginExtension:
    """Load a PluginExtension from a YAML file.

    Raises:
        PluginError: On YAML syntax errors or invalid content
    """
    path = Path(path)
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise PluginError(f"YAML parse error in {path}: {e}") from e

    if data is None:
        return PluginExtension()
    if not isinstance(data, dict):
        raise PluginError(f"{path}: extension must be a mapping")
    return extension_from_dict(data)


def entity_extension_from_dict(data: dict[str, Any]) -> PluginEntityExtension:
    """Validate and convert a single entity extension."""
    try:
        model = EntityExtensionModel.model_validate(data)
    except PydanticValidationError as e:
        raise PluginError(f"Invalid entity extension: {e}") from e
    return _entity_extension(model)


def entity_def_from_dict(data: dict[str, Any]) -> PluginEntityDef:
    """Validate and convert a single plugin entity definition."""
    try:
        model = EntityModel.model_validate(data)
    except PydanticValidationError as e:
        raise PluginError(f"Invalid entity definition: {e}") from e
    return model.to_def()
