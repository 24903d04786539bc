"""Plugin resolver.

Turns a plugin's declared schema plus the caller's extension into concrete
entities and per-entity routing metadata. Resolution knows nothing about
HTTP or persistence.

Extension application is best-effort: instructions that target something
that does not exist, or that would break a plugin guarantee (locked
fields, required entities, internal entities), are refused with a warning
and skipped. Malformed instructions (unknown override keys) raise.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import fields, replace
from typing import Any

from apiforge.api.types import RouteHandler
from apiforge.entities.naming import pluralize
from apiforge.entities.types import (
    Entity,
    EntityConfig,
    EntityPluginInfo,
    FieldDef,
    Operation,
    PlaceholderRef,
    RelationDef,
)
from apiforge.errors import PluginError
from apiforge.hooks.types import Hooks
from apiforge.plugins.contract import (
    ApiPlugin,
    CustomRoute,
    DefaultRoute,
    DisabledRoute,
    EntityRouteConfig,
    EntityRoutesConfig,
    LifecycleHooks,
    MergedPlugins,
    PluginEntityDef,
    PluginEntityExtension,
    PluginExtension,
    PluginFieldDef,
    PluginMeta,
    PluginSchema,
    ResolvedEntityMeta,
    ResolvedPlugin,
    RouteDecision,
)

logger = logging.getLogger(__name__)

_OVERRIDABLE = {f.name for f in fields(PluginFieldDef)}


# =============================================================================
# Conversion to entities
# =============================================================================


def to_field(name: str, definition: PluginFieldDef) -> FieldDef:
    """Convert a plugin column to a FieldDef.

    A column with `references` is itself the foreign key of a belongsTo
    relation to a placeholder of the referenced entity.
    """
    relation = None
    if definition.references is not None:
        relation = RelationDef(
            type="belongsTo",
            entity=PlaceholderRef(definition.references.entity),
            foreign_key=name,
            references=definition.references.field,
        )
    return FieldDef(
        type=definition.type,
        optional=not definition.required,
        unique=definition.unique,
        default=definition.default,
        locked=definition.locked,
        relation=relation,
    )


def to_entity(name: str, definition: PluginEntityDef) -> Entity:
    """Convert a plugin entity definition to an Entity.

    Internal entities carry an explicit empty rule list for every operation.
    """
    rules: dict[str, list] = {}
    if definition.internal:
        rules = {op.value: [] for op in Operation}
    return Entity(
        name=name,
        config=EntityConfig(
            fields={
                field_name: to_field(field_name, field_def)
                for field_name, field_def in definition.fields.items()
            },
            rules=rules,
            timestamps=True,
        ),
    )


# =============================================================================
# Extension application
# =============================================================================


def _copy_entities(schema: PluginSchema | None) -> dict[str, PluginEntityDef]:
    # Field maps are copied so extension edits never reach the plugin's own
    # declaration; PluginFieldDef itself is frozen.
    if schema is None:
        return {}
    return {
        name: replace(definition, fields=dict(definition.fields))
        for name, definition in schema.entities.items()
    }


def _rename_key(mapping: dict[str, Any], old: str, new: str) -> dict[str, Any]:
    """Rename a key in place of its position."""
    return {(new if key == old else key): value for key, value in mapping.items()}


def _override_field(
    plugin_id: str, location: str, definition: PluginFieldDef, override: dict[str, Any]
) -> PluginFieldDef:
    unknown = set(override) - _OVERRIDABLE
    if unknown:
        raise PluginError(
            f"[{plugin_id}] Invalid override for {location}: "
            f"unknown properties {', '.join(sorted(unknown))}"
        )
    return replace(definition, **override)


def _apply_field_extensions(
    plugin_id: str,
    entity_name: str,
    definition: PluginEntityDef,
    entity_ext: PluginEntityExtension,
) -> None:
    for field_name, field_def in entity_ext.add_fields.items():
        definition.fields[field_name] = field_def

    for field_name, field_ext in entity_ext.fields.items():
        location = f"{entity_name}.{field_name}"

        if field_ext.add is not None:
            definition.fields[field_name] = field_ext.add
            continue

        current = definition.fields.get(field_name)
        if current is None:
            logger.warning("[%s] Cannot modify non-existent field: %s", plugin_id, location)
            continue

        if field_ext.remove:
            if current.locked:
                logger.warning("[%s] Cannot remove locked field: %s", plugin_id, location)
            else:
                del definition.fields[field_name]
            continue

        target_name = field_name
        if field_ext.rename and field_ext.rename != field_name:
            if current.locked:
                logger.warning("[%s] Cannot rename locked field: %s", plugin_id, location)
            else:
                definition.fields = _rename_key(definition.fields, field_name, field_ext.rename)
                target_name = field_ext.rename

        if field_ext.override:
            definition.fields[target_name] = _override_field(
                plugin_id, location, current, field_ext.override
            )


def apply_extension(
    schema: PluginSchema | None,
    extension: PluginExtension,
    plugin_id: str,
) -> tuple[dict[str, PluginEntityDef], dict[str, str]]:
    """Apply an extension to a copy of a plugin schema.

    Returns:
        (entities by final name, map of final name -> original name)
    """
    entities = _copy_entities(schema)
    original_names: dict[str, str] = {}

    for entity_name, entity_ext in extension.entities.items():
        definition = entities.get(entity_name)
        if definition is None:
            logger.warning("[%s] Cannot extend non-existent entity: %s", plugin_id, entity_name)
            continue

        if entity_ext.remove:
            if definition.required:
                logger.warning("[%s] Cannot remove required entity: %s", plugin_id, entity_name)
            else:
                del entities[entity_name]
                continue

        target_name = entity_name
        if entity_ext.rename and entity_ext.rename != entity_name:
            target_name = entity_ext.rename
            if target_name in entities:
                logger.warning(
                    "[%s] Renaming %s to %s replaces an existing entity",
                    plugin_id,
                    entity_name,
                    target_name,
                )
                del entities[target_name]
            entities = _rename_key(entities, entity_name, target_name)
            original_names[target_name] = entity_name

        if entity_ext.internal is not None:
            if definition.internal and not entity_ext.internal:
                logger.warning(
                    "[%s] Cannot make internal entity public: %s", plugin_id, entity_name
                )
            else:
                definition.internal = entity_ext.internal

        if entity_ext.route_path:
            definition.route_path = entity_ext.route_path

        _apply_field_extensions(plugin_id, target_name, definition, entity_ext)

    for entity_name, definition in extension.add_entities.items():
        namespaced = f"{plugin_id}_{entity_name}"
        entities[namespaced] = replace(definition, fields=dict(definition.fields))
        original_names[namespaced] = entity_name

    return entities, original_names


# =============================================================================
# Resolution
# =============================================================================


def _normalize_base_path(value: str) -> str:
    return value if value.startswith("/") else f"/{value}"


def compute_base_path(meta: PluginMeta, extension: PluginExtension | None = None) -> str:
    """Effective base path: extension, then meta, then "/" + id.

    False at either level means "no prefix" and yields "".
    """
    for candidate in (extension.base_path if extension else None, meta.base_path):
        if candidate is None:
            continue
        if candidate is False:
            return ""
        return _normalize_base_path(candidate)
    return f"/{meta.id}"


def _route_config(
    extension: PluginExtension | None, name: str, original_name: str
) -> EntityRoutesConfig | None:
    if extension is None:
        return None
    return extension.entity_routes.get(name) or extension.entity_routes.get(original_name)


def resolve_plugin(plugin: ApiPlugin) -> ResolvedPlugin:
    """Resolve a plugin's schema and extension into entities + routing metadata.

    Routes and middleware are left empty here; they may be factories over
    the assembled instance and are collected by the instance afterwards.
    """
    meta = plugin.meta
    extension = plugin.extension
    base_path = compute_base_path(meta, extension)

    if extension is not None:
        definitions, original_names = apply_extension(plugin.schema, extension, meta.id)
    else:
        definitions, original_names = _copy_entities(plugin.schema), {}

    entities: list[Entity] = []
    entity_meta: dict[str, ResolvedEntityMeta] = {}

    for name, definition in definitions.items():
        original_name = original_names.get(name, name)
        resolved = to_entity(name, definition)
        resolved.plugin = EntityPluginInfo(
            id=meta.id,
            base_path=base_path or None,
            route_path=definition.route_path,
            internal=definition.internal,
        )
        entities.append(resolved)
        entity_meta[name] = ResolvedEntityMeta(
            original_name=original_name,
            plugin_id=meta.id,
            base_path=base_path,
            route_path=definition.route_path,
            internal=definition.internal,
            route_config=_route_config(extension, name, original_name),
        )

    return ResolvedPlugin(
        meta=meta,
        base_path=base_path,
        entities=entities,
        entity_meta=entity_meta,
        hooks=plugin.hooks or Hooks(),
        lifecycle=plugin.lifecycle or LifecycleHooks(),
        route_overrides=dict(extension.routes) if extension else {},
        entity_routes=dict(extension.entity_routes) if extension else {},
    )


def get_plugin_field_extensions(plugin: ApiPlugin) -> dict[str, dict[str, FieldDef]]:
    """Fields the plugin adds to application entities, keyed by target.

    The key "all" applies to every entity.
    """
    if plugin.schema is None:
        return {}
    return {
        entity_name: {name: to_field(name, definition) for name, definition in columns.items()}
        for entity_name, columns in plugin.schema.extend.items()
    }


def apply_field_extensions(
    entities: dict[str, Entity], extensions: dict[str, dict[str, FieldDef]]
) -> dict[str, Entity]:
    """Return a new entity map with extension fields merged in."""
    result = dict(entities)
    shared = extensions.get("all")
    if shared:
        result = {name: e.with_fields(shared) for name, e in result.items()}
    for target, extra in extensions.items():
        if target == "all":
            continue
        if target not in result:
            logger.warning("Cannot extend non-existent entity: %s", target)
            continue
        result[target] = result[target].with_fields(extra)
    return result


def merge_resolved_plugins(plugins: Iterable[ResolvedPlugin]) -> MergedPlugins:
    """Concatenate resolved plugins. Later plugins win on entity-meta keys."""
    merged = MergedPlugins()
    for plugin in plugins:
        merged.entities.extend(plugin.entities)
        merged.routes.extend(plugin.routes)
        merged.middleware.extend(plugin.middleware)
        merged.entity_meta.update(plugin.entity_meta)
    return merged


# =============================================================================
# Routing helpers
# =============================================================================


def get_entity_route_path(
    entity_name: str,
    entity_meta: dict[str, ResolvedEntityMeta],
    pluralize_fn: Callable[[str], str] = pluralize,
) -> str:
    """Full route path of an entity ("/auth/users", "/posts")."""
    meta = entity_meta.get(entity_name)
    if meta is None:
        return f"/{pluralize_fn(entity_name)}"
    segment = meta.route_path or pluralize_fn(entity_name)
    if meta.base_path:
        return f"{meta.base_path}/{segment}"
    return f"/{segment}"


def route_decision(
    meta: ResolvedEntityMeta | None, operation: Operation | str
) -> RouteDecision:
    """Decide how an entity operation is served."""
    if meta is None:
        return DefaultRoute()
    if meta.internal:
        return DisabledRoute()
    if meta.route_config is None:
        return DefaultRoute()

    config = meta.route_config.for_operation(operation)
    if config is None:
        return DefaultRoute()
    if config == "disable":
        return DisabledRoute()
    if isinstance(config, EntityRouteConfig):
        if config.disable:
            return DisabledRoute()
        if config.handler is not None:
            return CustomRoute(config.handler)
        return DefaultRoute()
    if callable(config):
        return CustomRoute(config)
    raise PluginError(f"Invalid route configuration for {operation}: {config!r}")


def is_entity_route_disabled(
    entity_name: str,
    operation: Operation | str,
    entity_meta: dict[str, ResolvedEntityMeta],
) -> bool:
    return isinstance(route_decision(entity_meta.get(entity_name), operation), DisabledRoute)


def get_entity_route_handler(
    entity_name: str,
    operation: Operation | str,
    entity_meta: dict[str, ResolvedEntityMeta],
) -> RouteHandler | None:
    """Custom handler configured for an operation, if any.

    Unlike route_decision(), this ignores the internal flag.
    """
    meta = entity_meta.get(entity_name)
    if meta is None or meta.route_config is None:
        return None
    config = meta.route_config.for_operation(operation)
    if isinstance(config, EntityRouteConfig):
        return config.handler
    if callable(config):
        return config
    return None
