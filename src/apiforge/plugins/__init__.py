"""Plugin system.

- contract: ApiPlugin and the extension / resolution types
- resolver: schema + extension -> entities and routing metadata
- registry: factories, instances, dependency-ordered initialization
- reference: lazy cross-plugin entity references
- define: define_plugin(), simple_plugin(), the extension builder
- legacy: the lightweight Plugin shape and the conflict checker
- loader: YAML / dict extensions validated with pydantic
"""

from apiforge.plugins.contract import (
    ApiPlugin,
    CustomRoute,
    DefaultRoute,
    DisabledRoute,
    EntityRouteConfig,
    EntityRoutesConfig,
    FieldReference,
    LifecycleHooks,
    MergedPlugins,
    PluginEntityDef,
    PluginEntityExtension,
    PluginExtension,
    PluginFactory,
    PluginFieldDef,
    PluginFieldExtension,
    PluginMeta,
    PluginRegistryEntry,
    PluginSchema,
    ResolvedEntityMeta,
    ResolvedPlugin,
    RouteDecision,
)
from apiforge.plugins.define import (
    ExtensionBuilder,
    create_extension_builder,
    define_plugin,
    simple_plugin,
)
from apiforge.plugins.legacy import (
    Plugin,
    PluginBuilder,
    apply_plugin_entities,
    apply_plugin_fields,
    check_plugin_conflicts,
    clear_legacy_plugins,
    collect_middleware,
    collect_routes,
    create_plugin,
    get_plugin,
    list_plugins,
    register_plugin,
    unregister_plugin,
)
from apiforge.plugins.loader import extension_from_dict, load_extension, schema_from_dict
from apiforge.plugins.reference import (
    clear_entity_cache,
    parse_entity_ref,
    plugin_entity,
    resolve_entity_ref,
)
from apiforge.plugins.registry import (
    RESERVED_PLUGIN_IDS,
    PluginRegistry,
    clear_plugin_factories,
    clear_plugin_registry,
    create_from_factory,
    default_registry,
    get_all_plugins,
    get_plugin_entity,
    get_plugin_factory,
    get_plugin_instance,
    initialize_all_plugins,
    is_plugin_initialized,
    mark_plugin_initialized,
    register_plugin_factory,
    register_plugin_instance,
    resolve_all_plugins,
    validate_plugin,
)
from apiforge.plugins.resolver import (
    apply_extension,
    apply_field_extensions,
    compute_base_path,
    get_entity_route_handler,
    get_entity_route_path,
    get_plugin_field_extensions,
    is_entity_route_disabled,
    merge_resolved_plugins,
    resolve_plugin,
    route_decision,
    to_entity,
    to_field,
)
from apiforge.plugins.timestamps import timestamps

__all__ = [
    "ApiPlugin",
    "CustomRoute",
    "DefaultRoute",
    "DisabledRoute",
    "EntityRouteConfig",
    "EntityRoutesConfig",
    "ExtensionBuilder",
    "FieldReference",
    "LifecycleHooks",
    "MergedPlugins",
    "Plugin",
    "PluginBuilder",
    "PluginEntityDef",
    "PluginEntityExtension",
    "PluginExtension",
    "PluginFactory",
    "PluginFieldDef",
    "PluginFieldExtension",
    "PluginMeta",
    "PluginRegistry",
    "PluginRegistryEntry",
    "PluginSchema",
    "RESERVED_PLUGIN_IDS",
    "ResolvedEntityMeta",
    "ResolvedPlugin",
    "RouteDecision",
    "apply_extension",
    "apply_field_extensions",
    "apply_plugin_entities",
    "apply_plugin_fields",
    "check_plugin_conflicts",
    "clear_entity_cache",
    "clear_legacy_plugins",
    "clear_plugin_factories",
    "clear_plugin_registry",
    "collect_middleware",
    "collect_routes",
    "compute_base_path",
    "create_extension_builder",
    "create_from_factory",
    "create_plugin",
    "default_registry",
    "define_plugin",
    "extension_from_dict",
    "get_all_plugins",
    "get_entity_route_handler",
    "get_entity_route_path",
    "get_plugin",
    "get_plugin_entity",
    "get_plugin_factory",
    "get_plugin_field_extensions",
    "get_plugin_instance",
    "initialize_all_plugins",
    "is_entity_route_disabled",
    "is_plugin_initialized",
    "list_plugins",
    "load_extension",
    "mark_plugin_initialized",
    "merge_resolved_plugins",
    "parse_entity_ref",
    "plugin_entity",
    "register_plugin",
    "register_plugin_factory",
    "register_plugin_instance",
    "resolve_all_plugins",
    "resolve_entity_ref",
    "resolve_plugin",
    "route_decision",
    "schema_from_dict",
    "simple_plugin",
    "timestamps",
    "to_entity",
    "to_field",
    "unregister_plugin",
    "validate_plugin",
]
