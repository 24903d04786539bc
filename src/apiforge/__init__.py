"""apiforge - declarative entity-to-REST-API compiler with a plugin system.

    from apiforge import ApiForge, entity, string, belongs_to

    user = entity("user", {"email": string.unique(), "name": string})
    post = entity("post", {
        "title": string,
        "author": belongs_to(lambda: user),
    }).owned_by("author")

    api = ApiForge(entities=[user, post])
"""

from apiforge.entities import (
    Entity,
    EntityBuilder,
    FieldDef,
    Operation,
    belongs_to,
    bool_,
    datetime_,
    email,
    entity,
    float_,
    has_many,
    has_one,
    int_,
    json_,
    string,
    text,
)
from apiforge.validation import validate_input, validate_query_params
from apiforge.auth import User, check_rules
from apiforge.hooks import HookContext, Hooks
from apiforge.api.types import ApiRequest, ApiResponse, Middleware, Route
from apiforge.plugins import (
    ApiPlugin,
    LifecycleHooks,
    Plugin,
    PluginExtension,
    PluginMeta,
    create_extension_builder,
    define_plugin,
    plugin_entity,
    timestamps,
)
from apiforge.api.app import ApiForge, create_api
from apiforge.persistence import MemoryDriver, SQLDriver, create_driver

__version__ = "0.1.0"

__all__ = [
    "ApiForge",
    "ApiPlugin",
    "ApiRequest",
    "ApiResponse",
    "Entity",
    "EntityBuilder",
    "FieldDef",
    "HookContext",
    "Hooks",
    "LifecycleHooks",
    "MemoryDriver",
    "Middleware",
    "Operation",
    "Plugin",
    "PluginExtension",
    "PluginMeta",
    "Route",
    "SQLDriver",
    "User",
    "belongs_to",
    "bool_",
    "check_rules",
    "create_api",
    "create_driver",
    "create_extension_builder",
    "datetime_",
    "define_plugin",
    "email",
    "entity",
    "float_",
    "has_many",
    "has_one",
    "int_",
    "json_",
    "plugin_entity",
    "string",
    "text",
    "timestamps",
    "validate_input",
    "validate_query_params",
]
