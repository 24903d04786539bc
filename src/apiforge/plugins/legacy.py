"""Lightweight plugin shape.

`Plugin` predates the full ApiPlugin contract: no schema resolution, no
base path, no dependencies. Its entities and fields are merged directly
into the application's entity map, and its routes are mounted as-is.
Plugins like timestamps() still use it.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from apiforge.api.types import ApiRequest, Middleware, Route
from apiforge.entities.fields import FieldBuilder, RelationBuilder, build_fields
from apiforge.entities.types import Entity, FieldDef, resolve_entity
from apiforge.errors import PluginError
from apiforge.hooks.types import Hooks
from apiforge.plugins.contract import MiddlewareSpec, RoutesSpec

if TYPE_CHECKING:
    from apiforge.api.app import ApiForge


FieldSpec = Union[FieldDef, FieldBuilder, RelationBuilder]
ContextSpec = Union[dict[str, Any], Callable[[ApiRequest], dict[str, Any]]]
SetupFn = Callable[["ApiForge"], Union[None, Awaitable[None]]]


@dataclass
class Plugin:
    """A simple plugin.

    Attributes:
        name: Plugin name (also the id when `id` is not given)
        fields: Fields to add, keyed by entity name; "all" targets every entity
        entities: Entities to add to the application
        context: Values (or a per-request callable) merged into request.context
        setup: Called once at startup, after full plugins are initialized
    """

    name: str
    id: str | None = None
    version: str | None = None
    description: str | None = None
    fields: dict[str, dict[str, FieldSpec]] = field(default_factory=dict)
    entities: list[Any] = field(default_factory=list)
    middleware: MiddlewareSpec | None = None
    routes: RoutesSpec | None = None
    hooks: Hooks | None = None
    context: ContextSpec | None = None
    setup: SetupFn | None = None

    @property
    def plugin_id(self) -> str:
        return self.id or self.name


def create_plugin(
    id: str,
    name: str,
    version: str | None = None,
    description: str | None = None,
    fields: dict[str, dict[str, FieldSpec]] | None = None,
    entities: list[Any] | None = None,
    middleware: MiddlewareSpec | None = None,
    routes: RoutesSpec | None = None,
    hooks: Hooks | dict[str, Any] | None = None,
    context: ContextSpec | None = None,
    setup: SetupFn | None = None,
) -> Plugin:
    return Plugin(
        id=id,
        name=name,
        version=version,
        description=description,
        fields=dict(fields or {}),
        entities=list(entities or []),
        middleware=middleware,
        routes=routes,
        hooks=Hooks.from_value(hooks) if hooks is not None else None,
        context=context,
        setup=setup,
    )


class PluginBuilder:
    """Fluent builder for Plugin.

    Usage:
        plugin = (
            PluginBuilder("soft-delete", "Soft delete")
            .fields("all", {"deletedAt": datetime_.optional()})
            .hooks(before_delete=mark_deleted)
            .build()
        )
    """

    def __init__(self, id: str, name: str | None = None):
        self._plugin = Plugin(id=id, name=name or id)

    def version(self, version: str) -> PluginBuilder:
        self._plugin.version = version
        return self

    def description(self, description: str) -> PluginBuilder:
        self._plugin.description = description
        return self

    def fields(self, entity_name: str, fields: dict[str, FieldSpec]) -> PluginBuilder:
        existing = self._plugin.fields.get(entity_name, {})
        self._plugin.fields[entity_name] = {**existing, **fields}
        return self

    def entity(self, entity: Any) -> PluginBuilder:
        self._plugin.entities.append(entity)
        return self

    def middleware(self, middleware: Middleware) -> PluginBuilder:
        current = self._plugin.middleware
        if callable(current):
            raise PluginError("Cannot add middleware to a middleware factory")
        self._plugin.middleware = [*(current or []), middleware]
        return self

    def route(self, route: Route) -> PluginBuilder:
        current = self._plugin.routes
        if callable(current):
            raise PluginError("Cannot add a route to a route factory")
        self._plugin.routes = [*(current or []), route]
        return self

    def hooks(self, hooks: Hooks | None = None, **by_name: Any) -> PluginBuilder:
        self._plugin.hooks = hooks if hooks is not None else Hooks.from_value(by_name)
        return self

    def context(self, context: ContextSpec) -> PluginBuilder:
        self._plugin.context = context
        return self

    def setup(self, setup: SetupFn) -> PluginBuilder:
        self._plugin.setup = setup
        return self

    def build(self) -> Plugin:
        return self._plugin


def apply_plugin_fields(
    entities: dict[str, Entity], plugins: Iterable[Plugin]
) -> dict[str, Entity]:
    """Return a new entity map with every plugin's fields merged in."""
    result = dict(entities)
    for plugin in plugins:
        shared = plugin.fields.get("all")
        if shared:
            extra = build_fields(shared)
            result = {name: e.with_fields(extra) for name, e in result.items()}
        for entity_name, fields in plugin.fields.items():
            if entity_name == "all" or not fields:
                continue
            if entity_name in result:
                result[entity_name] = result[entity_name].with_fields(build_fields(fields))
    return result


def apply_plugin_entities(
    entities: dict[str, Entity], plugins: Iterable[Plugin]
) -> dict[str, Entity]:
    """Return a new entity map including every plugin's entities."""
    result = dict(entities)
    for plugin in plugins:
        for definition in plugin.entities:
            entity = resolve_entity(definition)
            result[entity.name] = entity
    return result


def _expand(spec: Any, api: ApiForge) -> list[Any]:
    if spec is None:
        return []
    if callable(spec):
        return list(spec(api))
    return list(spec)


def collect_middleware(plugins: Iterable[Any], api: ApiForge) -> list[Middleware]:
    """Middleware from every plugin, invoking factories with the instance."""
    middleware: list[Middleware] = []
    for plugin in plugins:
        middleware.extend(_expand(plugin.middleware, api))
    return middleware


def collect_routes(plugins: Iterable[Any], api: ApiForge) -> list[Route]:
    routes: list[Route] = []
    for plugin in plugins:
        routes.extend(_expand(plugin.routes, api))
    return routes


def _owner(plugin: Any) -> str:
    return plugin.plugin_id if isinstance(plugin, Plugin) else plugin.id


def _entity_names(plugin: Any) -> list[str]:
    if isinstance(plugin, Plugin):
        return [resolve_entity(definition).name for definition in plugin.entities]
    schema = getattr(plugin, "schema", None)
    return list(schema.entities) if schema is not None else []


def check_plugin_conflicts(plugins: Iterable[Any]) -> list[str]:
    """Advisory scan for duplicate routes, middleware names and entity names.

    Accepts simple plugins and ApiPlugin instances. Route and middleware
    factories are not expanded, and base paths are not considered, so an
    empty result is not a guarantee.
    """
    conflicts: list[str] = []
    routes: dict[str, str] = {}
    middleware: dict[str, str] = {}
    entities: dict[str, str] = {}

    def record(kind: str, registry: dict[str, str], key: str, owner: str) -> None:
        if key in registry:
            conflicts.append(
                f'{kind} conflict: "{key}" is defined by both "{registry[key]}" and "{owner}"'
            )
        else:
            registry[key] = owner

    for plugin in plugins:
        owner = _owner(plugin)
        if isinstance(plugin.routes, list):
            for route in plugin.routes:
                record("Route", routes, f"{route.method}:{route.path}", owner)
        if isinstance(plugin.middleware, list):
            for mw in plugin.middleware:
                record("Middleware", middleware, mw.name, owner)
        for name in _entity_names(plugin):
            record("Entity", entities, name, owner)

    return conflicts


# =============================================================================
# Global registry of simple plugins
# =============================================================================

_plugins: dict[str, Plugin] = {}


def register_plugin(plugin: Plugin) -> None:
    """Register a plugin globally.

    Raises:
        PluginError: If a plugin with the same id is already registered
    """
    plugin_id = plugin.plugin_id
    if plugin_id in _plugins:
        raise PluginError(f'Plugin "{plugin_id}" is already registered.')
    _plugins[plugin_id] = plugin


def unregister_plugin(plugin_id: str) -> bool:
    return _plugins.pop(plugin_id, None) is not None


def get_plugin(plugin_id: str) -> Plugin | None:
    return _plugins.get(plugin_id)


def list_plugins() -> list[Plugin]:
    return list(_plugins.values())


def clear_legacy_plugins() -> None:
    """Clear the global simple-plugin registry. Primarily for testing."""
    _plugins.clear()
