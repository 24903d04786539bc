"""ApiForge instance: entity map assembly and the request pipeline.

Construction happens in two phases:

(a) plugins are resolved (schema + extension), their entities and field
    extensions are merged with the application's entities, simple plugins
    contribute their entities and fields, and the driver initializes
    storage for every entity;
(b) with the instance assembled, plugin route and middleware factories are
    invoked, extension route overrides are applied, and custom entity
    routes are added.

Plugin lifecycle initialization is asynchronous and happens in startup().
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from typing import Any, Union

from apiforge.api.middleware import CorsOptions, default_middleware, run_middleware
from apiforge.api.router import RouteMatch, match_route
from apiforge.api.types import (
    ApiRequest,
    ApiResponse,
    Middleware,
    MiddlewareContext,
    Route,
)
from apiforge.auth.rules import check_rules
from apiforge.config import Settings
from apiforge.entities.naming import capitalize, pluralize
from apiforge.entities.types import Entity, Operation, resolve_entity
from apiforge.errors import (
    PluginError,
    forbidden_error,
    handle_error,
    not_found_error,
    unauthorized_error,
    validation_error,
)
from apiforge.hooks.service import HookService
from apiforge.hooks.types import HookContext
from apiforge.persistence.driver import Driver, QueryOptions
from apiforge.persistence.factory import create_driver
from apiforge.plugins.contract import (
    ApiPlugin,
    CustomRoute,
    DisabledRoute,
    ResolvedEntityMeta,
    ResolvedPlugin,
)
from apiforge.plugins.legacy import (
    Plugin,
    apply_plugin_entities,
    apply_plugin_fields,
    check_plugin_conflicts,
    collect_middleware,
    collect_routes,
)
from apiforge.plugins.registry import PluginRegistry, default_registry
from apiforge.plugins.resolver import (
    apply_field_extensions,
    get_entity_route_path,
    get_plugin_field_extensions,
    merge_resolved_plugins,
    resolve_plugin,
    route_decision,
)
from apiforge.validation.input import validate_input
from apiforge.validation.query import validate_query_params

logger = logging.getLogger(__name__)

ContextProvider = Callable[[ApiRequest], Union[dict[str, Any], Awaitable[dict[str, Any]]]]

ROUTE_METHODS = {
    Operation.LIST: "GET",
    Operation.CREATE: "POST",
    Operation.READ: "GET",
    Operation.UPDATE: "PUT",
    Operation.DELETE: "DELETE",
}


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


def _denied(user: Any, message: str | None) -> ApiResponse:
    if user is None:
        return unauthorized_error(message or "Authentication required")
    return forbidden_error(message or "Permission denied")


class ApiForge:
    """A compiled API: entities, plugins, driver and the request pipeline.

    Args:
        entities: Entities or unbuilt entity builders
        driver: Persistence driver (from DATABASE_URL when omitted)
        plugins: ApiPlugin instances and simple Plugin objects, in
            registration order (hooks run in this order)
        cors: CORS options, or False to disable the CORS middleware
        security: Add the security-headers middleware
        context: Per-request context provider (sync or async)
        production: Mask unexpected error messages (env when omitted)
        registry: Plugin registry ApiPlugin instances are registered into
    """

    def __init__(
        self,
        entities: Sequence[Any] = (),
        driver: Driver | None = None,
        plugins: Sequence[ApiPlugin | Plugin] = (),
        cors: CorsOptions | bool | None = None,
        security: bool = True,
        context: ContextProvider | None = None,
        production: bool | None = None,
        registry: PluginRegistry | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or Settings.from_env()
        self.production = self.settings.production if production is None else production
        self.registry = registry or default_registry
        self.driver: Driver = driver if driver is not None else create_driver(self.settings)
        self.context_provider = context

        for plugin in plugins:
            if not isinstance(plugin, (ApiPlugin, Plugin)):
                raise PluginError(f"Unsupported plugin object: {plugin!r}")
        self.plugins: list[ApiPlugin | Plugin] = list(plugins)

        for plugin in self.api_plugins:
            if not self.registry.contains(plugin):
                self.registry.register_instance(plugin)

        # Phase (a): entities
        self.resolved: dict[str, ResolvedPlugin] = {
            plugin.id: resolve_plugin(plugin) for plugin in self.api_plugins
        }
        merged = merge_resolved_plugins(self.resolved.values())
        self.entity_meta: dict[str, ResolvedEntityMeta] = merged.entity_meta
        self.entities: dict[str, Entity] = self._assemble_entities(entities, merged.entities)

        for entity in self.entities.values():
            self.driver.initialize_entity(entity)

        self.hooks = HookService(
            plugin.hooks for plugin in self.plugins if plugin.hooks is not None
        )

        # Phase (b): routes and middleware (factories may use the instance)
        self.routes: list[Route] = []
        self.middleware: list[Middleware] = default_middleware(cors, security)
        for plugin in self.plugins:
            routes = collect_routes([plugin], self)
            middleware = collect_middleware([plugin], self)
            if isinstance(plugin, ApiPlugin):
                resolved = self.resolved[plugin.id]
                routes = self._apply_route_overrides(resolved, routes)
                resolved.routes = routes
                resolved.middleware = middleware
            self.routes.extend(routes)
            self.middleware.extend(middleware)

        self._initialized: list[ApiPlugin] = []
        self._started = False

    # -------------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------------

    @property
    def api_plugins(self) -> list[ApiPlugin]:
        return [p for p in self.plugins if isinstance(p, ApiPlugin)]

    @property
    def simple_plugins(self) -> list[Plugin]:
        return [p for p in self.plugins if isinstance(p, Plugin)]

    def _assemble_entities(
        self, definitions: Sequence[Any], plugin_entities: list[Entity]
    ) -> dict[str, Entity]:
        entities: dict[str, Entity] = {}
        for definition in definitions:
            entity = resolve_entity(definition)
            entities[entity.name] = entity

        for entity in plugin_entities:
            if entity.name in entities:
                logger.warning(
                    "Plugin '%s' entity '%s' replaces an existing entity",
                    entity.plugin.id if entity.plugin else "?",
                    entity.name,
                )
            entities[entity.name] = entity

        for plugin in self.api_plugins:
            entities = apply_field_extensions(entities, get_plugin_field_extensions(plugin))

        entities = apply_plugin_entities(entities, self.simple_plugins)
        return apply_plugin_fields(entities, self.simple_plugins)

    def _apply_route_overrides(
        self, resolved: ResolvedPlugin, routes: list[Route]
    ) -> list[Route]:
        result: list[Route] = []
        for route in routes:
            override = resolved.route_overrides.get(route.path)
            if override == "disable":
                continue
            if callable(override):
                route = Route(method=route.method, path=route.path, handler=override)
            result.append(route)
        for config in resolved.entity_routes.values():
            result.extend(config.custom)
        return result

    # -------------------------------------------------------------------------
    # Public accessors
    # -------------------------------------------------------------------------

    def get_entity(self, name: str) -> Entity | None:
        return self.entities.get(name)

    def get_driver(self) -> Driver:
        return self.driver

    def entity_path(self, name: str) -> str:
        if name in self.entity_meta:
            return get_entity_route_path(name, self.entity_meta)
        return f"/{pluralize(name)}"

    def describe_routes(self) -> list[dict[str, str]]:
        """Route table: one row per exposed method + path.

        Rows carry "method", "path" and "target" (entity name, "custom:<entity>"
        for custom handlers, or "plugin" for plugin routes).
        """
        rows: list[dict[str, str]] = [
            {"method": "GET", "path": "/health", "target": "health"}
        ]
        for route in self.routes:
            rows.append({"method": route.method, "path": route.path, "target": "plugin"})

        for name in self.entities:
            base = self.entity_path(name)
            for operation, method in ROUTE_METHODS.items():
                decision = route_decision(self.entity_meta.get(name), operation)
                if isinstance(decision, DisabledRoute):
                    continue
                path = base if operation in (Operation.LIST, Operation.CREATE) else f"{base}/:id"
                target = f"custom:{name}" if isinstance(decision, CustomRoute) else name
                rows.append({"method": method, "path": path, "target": target})
        return rows

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def startup(self) -> None:
        """Initialize plugins (dependencies first), then run simple-plugin setup.

        Raises:
            PluginError: On dependency cycles or missing dependencies
            PluginInitializationError: When a plugin's on_register/on_init raises
        """
        if self._started:
            return
        for conflict in check_plugin_conflicts(self.plugins):
            logger.warning("Plugin conflict: %s", conflict)

        self._initialized = await self.registry.initialize_all(self)
        for plugin in self.simple_plugins:
            if plugin.setup is not None:
                await _maybe_await(plugin.setup(self))
        self._started = True
        logger.info(
            "ApiForge started: %d entities, %d plugins", len(self.entities), len(self.plugins)
        )

    async def shutdown(self) -> None:
        """Run on_shutdown callbacks in reverse initialization order."""
        for plugin in reversed(self._initialized):
            lifecycle = plugin.lifecycle
            if lifecycle is None or lifecycle.on_shutdown is None:
                continue
            try:
                await _maybe_await(lifecycle.on_shutdown(self))
            except Exception:
                logger.exception("on_shutdown failed for plugin '%s'", plugin.id)
        self._initialized = []
        self._started = False

    # -------------------------------------------------------------------------
    # Request handling
    # -------------------------------------------------------------------------

    async def handle_request(self, request: ApiRequest) -> ApiResponse:
        """Process one request through middleware, routing and the CRUD pipeline."""
        ctx = MiddlewareContext(request)
        try:
            await self._apply_context(request)
            return await self._process(request, ctx)
        except Exception as e:
            response = await self._fail(e, request, None)
            response.headers = {**ctx.response_headers, **response.headers}
            return response

    async def _apply_context(self, request: ApiRequest) -> None:
        if self.context_provider is not None:
            extra = await _maybe_await(self.context_provider(request))
            request.context = {**request.context, **(extra or {})}
        for plugin in self.simple_plugins:
            if plugin.context is None:
                continue
            extra = plugin.context
            if callable(extra):
                extra = await _maybe_await(extra(request))
            request.context = {**request.context, **(extra or {})}

    async def _process(self, request: ApiRequest, ctx: MiddlewareContext) -> ApiResponse:
        await run_middleware(self.middleware, ctx)
        if ctx.response is not None:
            return ctx.response

        response = await self._dispatch(request)
        response.headers = {**ctx.response_headers, **response.headers}
        return response

    async def _dispatch(self, request: ApiRequest) -> ApiResponse:
        for resolved in self.resolved.values():
            on_request = resolved.lifecycle.on_request
            if on_request is not None:
                await _maybe_await(on_request(request, self))

        match = match_route(request, self.entities, self.routes, self.entity_meta)

        if match.type == "health":
            return ApiResponse(
                status=200,
                body={"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()},
            )

        if match.type == "plugin" and match.plugin_route is not None:
            request.params = {**request.params, **match.params}
            try:
                return await _maybe_await(match.plugin_route.handler(request, self))
            except Exception as e:
                return await self._fail(e, request, None)

        if match.type != "entity" or match.entity is None or match.operation is None:
            return not_found_error("Endpoint not found")

        if match.custom_handler is not None:
            if match.resource_id is not None:
                request.params = {**request.params, "id": match.resource_id}
            try:
                return await _maybe_await(match.custom_handler(request, self))
            except Exception as e:
                return await self._fail(e, request, None)

        hook_ctx = HookContext(
            entity=match.entity.name,
            operation=match.operation,
            user=request.user,
            driver=self.driver,
        )
        try:
            return await self._run_operation(match, request, hook_ctx)
        except Exception as e:
            return await self._fail(e, request, hook_ctx)

    async def _fail(
        self, error: Exception, request: ApiRequest, hook_ctx: HookContext | None
    ) -> ApiResponse:
        if hook_ctx is not None:
            await self.hooks.run_error(error, hook_ctx)
        for resolved in self.resolved.values():
            on_error = resolved.lifecycle.on_error
            if on_error is None:
                continue
            try:
                await _maybe_await(on_error(error, request, self))
            except Exception:
                logger.exception("on_error failed for plugin '%s'", resolved.meta.id)
        return handle_error(error, production=self.production)

    # -------------------------------------------------------------------------
    # CRUD pipeline
    # -------------------------------------------------------------------------

    async def _run_operation(
        self, match: RouteMatch, request: ApiRequest, hook_ctx: HookContext
    ) -> ApiResponse:
        entity = match.entity
        operation = match.operation
        if operation is Operation.LIST:
            return await self._list(entity, request, hook_ctx)
        if operation is Operation.CREATE:
            return await self._create(entity, request, hook_ctx)
        if operation is Operation.READ:
            return await self._read(entity, match.resource_id, request, hook_ctx)
        if operation is Operation.UPDATE:
            return await self._update(entity, match.resource_id, request, hook_ctx)
        if operation is Operation.DELETE:
            return await self._delete(entity, match.resource_id, request, hook_ctx)
        return not_found_error("Endpoint not found")

    def _not_found(self, entity: Entity) -> ApiResponse:
        return not_found_error(f"{capitalize(entity.name)} not found")

    async def _list(
        self, entity: Entity, request: ApiRequest, hook_ctx: HookContext
    ) -> ApiResponse:
        check = await check_rules(entity, Operation.LIST, request.user)
        if not check.allowed:
            return _denied(request.user, check.error)

        await self.hooks.run("before_list", hook_ctx)
        if hook_ctx.stopped:
            body = hook_ctx.resource if hook_ctx.resource is not None else []
            return ApiResponse(status=200, body=body)

        params = validate_query_params(request.query)
        where = {**params.filter, **hook_ctx.filters}
        data = await self.driver.find_many(
            entity.name,
            QueryOptions(
                where=where,
                order_by=params.sort,
                take=params.take,
                skip=params.skip,
                include=params.include,
            ),
        )
        total = await self.driver.count(entity.name, where)
        return ApiResponse(
            status=200,
            body={
                "data": data,
                "pagination": {"total": total, "limit": params.take, "offset": params.skip},
            },
        )

    async def _create(
        self, entity: Entity, request: ApiRequest, hook_ctx: HookContext
    ) -> ApiResponse:
        body = request.body if isinstance(request.body, dict) else {}
        result = validate_input(entity, body, Operation.CREATE)
        if not result.valid:
            return validation_error(result.errors)

        check = await check_rules(entity, Operation.CREATE, request.user, input=result.data)
        if not check.allowed:
            return _denied(request.user, check.error)

        hook_ctx.set_input(result.data)
        owner_field = entity.config.owner_field
        if owner_field and request.user is not None:
            hook_ctx.set_input({owner_field: request.user.id})

        await self.hooks.run("before_create", hook_ctx)
        if hook_ctx.stopped:
            return ApiResponse(status=201, body=hook_ctx.resource)

        created = await self.driver.create(entity.name, hook_ctx.input)
        hook_ctx.set_resource(created)
        await self.hooks.run("after_create", hook_ctx)
        return ApiResponse(status=201, body=created)

    async def _read(
        self,
        entity: Entity,
        resource_id: str | None,
        request: ApiRequest,
        hook_ctx: HookContext,
    ) -> ApiResponse:
        await self.hooks.run("before_read", hook_ctx)

        where = {"id": resource_id, **hook_ctx.filters}
        resource = await self.driver.find_one(entity.name, where)
        if resource is None:
            return self._not_found(entity)

        check = await check_rules(entity, Operation.READ, request.user, resource=resource)
        if not check.allowed:
            return _denied(request.user, check.error)

        include = validate_query_params(request.query).include
        if include:
            with_includes = await self.driver.find_one(entity.name, where, include=include)
            if with_includes is not None:
                resource = with_includes
        return ApiResponse(status=200, body=resource)

    async def _update(
        self,
        entity: Entity,
        resource_id: str | None,
        request: ApiRequest,
        hook_ctx: HookContext,
    ) -> ApiResponse:
        existing = await self.driver.find_one(entity.name, {"id": resource_id})
        if existing is None:
            return self._not_found(entity)

        body = request.body if isinstance(request.body, dict) else {}
        result = validate_input(entity, body, Operation.UPDATE)
        if not result.valid:
            return validation_error(result.errors)

        check = await check_rules(
            entity, Operation.UPDATE, request.user, input=result.data, resource=existing
        )
        if not check.allowed:
            return _denied(request.user, check.error)

        hook_ctx.set_input(result.data)
        hook_ctx.set_resource(existing)
        await self.hooks.run("before_update", hook_ctx)
        if hook_ctx.stopped:
            return ApiResponse(status=200, body=hook_ctx.resource)

        updated = await self.driver.update(entity.name, {"id": resource_id}, hook_ctx.input)
        hook_ctx.set_resource(updated)
        await self.hooks.run("after_update", hook_ctx)
        return ApiResponse(status=200, body=updated)

    async def _delete(
        self,
        entity: Entity,
        resource_id: str | None,
        request: ApiRequest,
        hook_ctx: HookContext,
    ) -> ApiResponse:
        existing = await self.driver.find_one(entity.name, {"id": resource_id})
        if existing is None:
            return self._not_found(entity)

        check = await check_rules(entity, Operation.DELETE, request.user, resource=existing)
        if not check.allowed:
            return _denied(request.user, check.error)

        hook_ctx.set_resource(existing)
        await self.hooks.run("before_delete", hook_ctx)
        if hook_ctx.stopped:
            return ApiResponse(status=204, body=None)

        await self.driver.delete(entity.name, {"id": resource_id})
        await self.hooks.run("after_delete", hook_ctx)
        return ApiResponse(status=204, body=None)


def create_api(**kwargs: Any) -> ApiForge:
    """Shorthand for ApiForge(**kwargs)."""
    return ApiForge(**kwargs)
