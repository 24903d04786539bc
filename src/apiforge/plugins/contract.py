"""Plugin contract.

The types every full plugin (ApiPlugin) is built from, the shape of the
caller's customization (PluginExtension) and the routing facts produced by
resolution (ResolvedPlugin / ResolvedEntityMeta).

Plugin schemas use their own field type (PluginFieldDef): plugin authors
think in columns ("required", "references"), not in builder modifiers.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Union

from apiforge.api.types import ApiRequest, Middleware, Route, RouteHandler
from apiforge.entities.types import NO_DEFAULT, Entity, Operation
from apiforge.hooks.types import Hooks

if TYPE_CHECKING:
    from apiforge.api.app import ApiForge


# =============================================================================
# Metadata and schema
# =============================================================================


@dataclass
class PluginMeta:
    """Plugin identity.

    Attributes:
        id: Unique identifier ("auth", "payments")
        name: Human-readable name
        version: Semantic version
        dependencies: Ids of plugins that must initialize first
        base_path: Prefix for the plugin's entity routes. None means
            "/" + id; False means no prefix.
    """

    id: str
    name: str
    version: str
    description: str | None = None
    author: str | None = None
    homepage: str | None = None
    dependencies: list[str] = field(default_factory=list)
    base_path: str | Literal[False] | None = None


@dataclass(frozen=True)
class FieldReference:
    """Foreign-key target of a plugin field."""

    entity: str
    field: str = "id"


@dataclass(frozen=True)
class PluginFieldDef:
    """A column in a plugin entity.

    `locked` fields cannot be removed or renamed by an extension.
    """

    type: str
    required: bool = False
    unique: bool = False
    default: Any = NO_DEFAULT
    locked: bool = False
    description: str | None = None
    references: FieldReference | None = None


@dataclass
class PluginEntityDef:
    """An entity a plugin contributes.

    Attributes:
        fields: Column definitions, in declaration order
        required: Extensions cannot remove the entity
        internal: No public CRUD routes (the plugin manages access)
        route_path: Path segment under the plugin base path; defaults to
            the pluralized entity name
    """

    fields: dict[str, PluginFieldDef] = field(default_factory=dict)
    required: bool = False
    internal: bool = False
    description: str | None = None
    route_path: str | None = None


@dataclass
class PluginSchema:
    """Entities a plugin provides plus fields it adds to other entities.

    `extend` is keyed by target entity name; the key "all" targets every
    entity of the application.
    """

    entities: dict[str, PluginEntityDef] = field(default_factory=dict)
    extend: dict[str, dict[str, PluginFieldDef]] = field(default_factory=dict)


# =============================================================================
# Extension (caller customization)
# =============================================================================


@dataclass
class PluginFieldExtension:
    """One instruction for one field.

    `add` wins over everything else in the same instruction; otherwise
    remove, then rename, then override apply.
    """

    add: PluginFieldDef | None = None
    rename: str | None = None
    override: dict[str, Any] | None = None
    remove: bool = False


@dataclass
class PluginEntityExtension:
    fields: dict[str, PluginFieldExtension] = field(default_factory=dict)
    add_fields: dict[str, PluginFieldDef] = field(default_factory=dict)
    remove: bool = False
    rename: str | None = None
    route_path: str | None = None
    internal: bool | None = None


@dataclass
class EntityRouteConfig:
    disable: bool = False
    handler: RouteHandler | None = None


OperationRoute = Union[EntityRouteConfig, Literal["disable"], RouteHandler]


@dataclass
class EntityRoutesConfig:
    """Per-operation route customization for one plugin entity.

    Each operation takes "disable", a handler, or an EntityRouteConfig.
    """

    # declared before `list` shadows the builtin in the class body
    custom: list[Route] = field(default_factory=list)
    list: OperationRoute | None = None
    create: OperationRoute | None = None
    read: OperationRoute | None = None
    update: OperationRoute | None = None
    delete: OperationRoute | None = None

    @classmethod
    def from_value(cls, value: EntityRoutesConfig | dict[str, Any]) -> EntityRoutesConfig:
        if isinstance(value, EntityRoutesConfig):
            return value
        unknown = set(value) - {op.value for op in Operation} - {"custom"}
        if unknown:
            raise ValueError(f"Unknown entity route keys: {', '.join(sorted(unknown))}")
        return cls(**value)

    def for_operation(self, operation: Operation | str) -> OperationRoute | None:
        return getattr(self, Operation(operation).value)


@dataclass
class PluginExtension:
    """The caller's override instructions for one plugin instance.

    Attributes:
        entities: Per-entity modifications, keyed by the plugin's entity name
        add_entities: New entities, stored as "<pluginId>_<name>"
        routes: Plugin route path -> "disable" or a replacement handler
        base_path: Overrides meta.base_path (False means no prefix)
        entity_routes: Per-entity operation overrides
    """

    entities: dict[str, PluginEntityExtension] = field(default_factory=dict)
    add_entities: dict[str, PluginEntityDef] = field(default_factory=dict)
    routes: dict[str, Literal["disable"] | RouteHandler] = field(default_factory=dict)
    base_path: str | Literal[False] | None = None
    entity_routes: dict[str, EntityRoutesConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.entity_routes = {
            name: EntityRoutesConfig.from_value(cfg)
            for name, cfg in self.entity_routes.items()
        }


# =============================================================================
# Full plugin contract
# =============================================================================

InstanceHook = Callable[["ApiForge"], Union[None, Awaitable[None]]]
RequestHook = Callable[[ApiRequest, "ApiForge"], Union[None, Awaitable[None]]]
ErrorLifecycleHook = Callable[
    [BaseException, ApiRequest, "ApiForge"], Union[None, Awaitable[None]]
]


@dataclass
class LifecycleHooks:
    """Plugin lifecycle callbacks (sync or async)."""

    on_register: InstanceHook | None = None
    on_init: InstanceHook | None = None
    on_request: RequestHook | None = None
    on_error: ErrorLifecycleHook | None = None
    on_shutdown: InstanceHook | None = None


RoutesSpec = Union[list[Route], Callable[["ApiForge"], list[Route]]]
MiddlewareSpec = Union[list[Middleware], Callable[["ApiForge"], list[Middleware]]]


@dataclass
class ApiPlugin:
    """A plugin instance, as produced by a factory.

    `routes` and `middleware` may be factories over the assembled ApiForge
    instance; they are invoked once every plugin's entities are merged.
    """

    meta: PluginMeta
    schema: PluginSchema | None = None
    routes: RoutesSpec | None = None
    middleware: MiddlewareSpec | None = None
    hooks: Hooks | None = None
    lifecycle: LifecycleHooks | None = None
    options: dict[str, Any] = field(default_factory=dict)
    extension: PluginExtension | None = None

    @property
    def id(self) -> str:
        return self.meta.id


PluginFactory = Callable[..., ApiPlugin]


@dataclass
class PluginRegistryEntry:
    plugin: ApiPlugin
    initialized: bool = False
    error: BaseException | None = None


# =============================================================================
# Resolution output
# =============================================================================


@dataclass
class ResolvedEntityMeta:
    """Routing facts for one entity of a resolved plugin.

    Attributes:
        original_name: Name the plugin declared (before any rename)
        plugin_id: Owning plugin
        base_path: Plugin-wide prefix ("" when disabled)
        route_path: Path segment override; None means pluralized name
        internal: No public CRUD routes
        route_config: Per-operation overrides from the extension
    """

    original_name: str
    plugin_id: str
    base_path: str
    route_path: str | None = None
    internal: bool = False
    route_config: EntityRoutesConfig | None = None


@dataclass
class ResolvedPlugin:
    meta: PluginMeta
    base_path: str
    entities: list[Entity]
    entity_meta: dict[str, ResolvedEntityMeta]
    routes: list[Route] = field(default_factory=list)
    middleware: list[Middleware] = field(default_factory=list)
    hooks: Hooks = field(default_factory=Hooks)
    lifecycle: LifecycleHooks = field(default_factory=LifecycleHooks)
    route_overrides: dict[str, Literal["disable"] | RouteHandler] = field(default_factory=dict)
    entity_routes: dict[str, EntityRoutesConfig] = field(default_factory=dict)


@dataclass
class MergedPlugins:
    entities: list[Entity] = field(default_factory=list)
    entity_meta: dict[str, ResolvedEntityMeta] = field(default_factory=dict)
    routes: list[Route] = field(default_factory=list)
    middleware: list[Middleware] = field(default_factory=list)


# =============================================================================
# Route decisions
# =============================================================================


@dataclass(frozen=True)
class DefaultRoute:
    """Serve the operation with the built-in CRUD pipeline."""


@dataclass(frozen=True)
class DisabledRoute:
    """The operation is not exposed (404)."""


@dataclass(frozen=True)
class CustomRoute:
    """The operation is served by a caller-supplied handler."""

    handler: RouteHandler


RouteDecision = Union[DefaultRoute, DisabledRoute, CustomRoute]
