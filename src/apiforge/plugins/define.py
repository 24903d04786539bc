"""Helpers for writing plugins.

Usage:
    audit = define_plugin(
        meta=PluginMeta(id="audit", name="Audit", version="1.0.0"),
        factory=lambda options, extension: {
            "schema": {"entities": {"event": {"fields": {...}}}},
            "hooks": Hooks(after_create=record_event),
        },
        defaults={"retention_days": 30},
    )

    plugin = audit({"retention_days": 7, "extend": {...}})
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import fields, replace
from typing import Any

from apiforge.api.types import RouteHandler
from apiforge.errors import PluginError
from apiforge.hooks.types import Hooks
from apiforge.plugins.contract import (
    ApiPlugin,
    EntityRoutesConfig,
    LifecycleHooks,
    PluginEntityDef,
    PluginEntityExtension,
    PluginExtension,
    PluginFactory,
    PluginMeta,
    PluginSchema,
)
from apiforge.plugins.loader import (
    entity_def_from_dict,
    entity_extension_from_dict,
    extension_from_dict,
    schema_from_dict,
)
from apiforge.plugins.registry import PluginRegistry, default_registry, validate_plugin

PLUGIN_PARTS = ("schema", "routes", "middleware", "hooks", "lifecycle")

PartsFactory = Callable[[dict[str, Any], "PluginExtension | None"], dict[str, Any]]
OptionsValidator = Callable[[dict[str, Any]], "list[str] | None"]


def _coerce_meta(meta: PluginMeta | dict[str, Any]) -> PluginMeta:
    if isinstance(meta, PluginMeta):
        return meta
    return PluginMeta(**meta)


def _coerce_extension(value: Any) -> PluginExtension | None:
    if value is None or isinstance(value, PluginExtension):
        return value
    if isinstance(value, dict):
        return extension_from_dict(value)
    raise PluginError(f"Invalid plugin extension: {value!r}")


def _coerce_lifecycle(value: LifecycleHooks | dict[str, Any] | None) -> LifecycleHooks | None:
    if value is None or isinstance(value, LifecycleHooks):
        return value
    known = {f.name for f in fields(LifecycleHooks)}
    unknown = set(value) - known
    if unknown:
        raise PluginError(f"Unknown lifecycle hooks: {', '.join(sorted(unknown))}")
    return LifecycleHooks(**value)


def _build_plugin(
    meta: PluginMeta,
    parts: dict[str, Any],
    options: dict[str, Any],
    extension: PluginExtension | None,
) -> ApiPlugin:
    unknown = set(parts) - set(PLUGIN_PARTS)
    if unknown:
        raise PluginError(f"[{meta.id}] Unknown plugin parts: {', '.join(sorted(unknown))}")

    schema = parts.get("schema")
    if isinstance(schema, dict):
        schema = schema_from_dict(schema)

    hooks = parts.get("hooks")
    return ApiPlugin(
        meta=meta,
        schema=schema,
        routes=parts.get("routes"),
        middleware=parts.get("middleware"),
        hooks=Hooks.from_value(hooks) if hooks is not None else None,
        lifecycle=_coerce_lifecycle(parts.get("lifecycle")),
        options=options,
        extension=extension,
    )


def define_plugin(
    meta: PluginMeta | dict[str, Any],
    factory: PartsFactory,
    defaults: dict[str, Any] | None = None,
    validate: OptionsValidator | None = None,
    register: bool = True,
    registry: PluginRegistry | None = None,
) -> PluginFactory:
    """Create a plugin factory.

    The factory merges caller options over `defaults`, pops the "extend"
    option into plugin.extension, validates options and metadata, and
    builds the plugin from the parts returned by `factory`.

    Args:
        meta: Plugin metadata
        factory: (options, extension) -> dict of plugin parts
            (schema, routes, middleware, hooks, lifecycle)
        defaults: Default option values
        validate: Returns a list of problems with the merged options
        register: Register the factory under meta.id
        registry: Registry to register into (default registry if omitted)

    Raises:
        PluginError: When registering a duplicate factory id
    """
    meta = _coerce_meta(meta)

    def plugin_factory(options: dict[str, Any] | None = None, **kwargs: Any) -> ApiPlugin:
        merged = {**(defaults or {}), **(options or {}), **kwargs}
        extension = _coerce_extension(merged.pop("extend", None))

        if validate is not None:
            errors = validate(merged)
            if errors:
                raise PluginError(f"[{meta.id}] Invalid options: {', '.join(errors)}")

        plugin = _build_plugin(meta, factory(merged, extension) or {}, merged, extension)

        problems = validate_plugin(plugin)
        if problems:
            raise PluginError(f"[{meta.id}] Invalid plugin: {', '.join(problems)}")
        return plugin

    if register:
        (registry or default_registry).register_factory(meta.id, plugin_factory)

    return plugin_factory


def simple_plugin(
    meta: PluginMeta | dict[str, Any],
    registry: PluginRegistry | None = None,
    **parts: Any,
) -> PluginFactory:
    """Define and register a plugin that takes no options."""
    return define_plugin(meta, factory=lambda options, extension: dict(parts), registry=registry)


class ExtensionBuilder:
    """Fluent builder for PluginExtension.

    Chain methods mutate the builder and return it; build() returns an
    independent PluginExtension.
    """

    def __init__(self) -> None:
        self._extension = PluginExtension()

    def base_path(self, path: str | bool) -> ExtensionBuilder:
        """Set the base path; False removes the prefix."""
        self._extension.base_path = False if path is False else path
        return self

    def entity(
        self, name: str, extension: PluginEntityExtension | dict[str, Any]
    ) -> ExtensionBuilder:
        if isinstance(extension, dict):
            extension = entity_extension_from_dict(extension)
        self._extension.entities[name] = extension
        return self

    def add_entity(
        self, name: str, definition: PluginEntityDef | dict[str, Any]
    ) -> ExtensionBuilder:
        if isinstance(definition, dict):
            definition = entity_def_from_dict(definition)
        self._extension.add_entities[name] = definition
        return self

    def entity_routes(
        self, name: str, config: EntityRoutesConfig | dict[str, Any]
    ) -> ExtensionBuilder:
        self._extension.entity_routes[name] = EntityRoutesConfig.from_value(config)
        return self

    def disable_route(self, path: str) -> ExtensionBuilder:
        self._extension.routes[path] = "disable"
        return self

    def override_route(self, path: str, handler: RouteHandler) -> ExtensionBuilder:
        self._extension.routes[path] = handler
        return self

    def build(self) -> PluginExtension:
        ext = self._extension
        return replace(
            ext,
            entities=dict(ext.entities),
            add_entities=dict(ext.add_entities),
            routes=dict(ext.routes),
            entity_routes=dict(ext.entity_routes),
        )


def create_extension_builder() -> ExtensionBuilder:
    return ExtensionBuilder()
