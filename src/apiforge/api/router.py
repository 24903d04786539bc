"""Request router.

Maps (method, path) to one of: health, plugin route, entity operation,
disabled entity operation, or not found. Matching order:

1. /health and /_health
2. plugin custom routes, in declaration order (":name" segments match anything)
3. plugin entities under their base path (prefixes of 1..3 segments)
4. application entities by plural or exact name
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from apiforge.api.types import ApiRequest, Route, RouteHandler
from apiforge.entities.naming import pluralize, singularize
from apiforge.entities.types import Entity, Operation
from apiforge.plugins.contract import CustomRoute, DisabledRoute, ResolvedEntityMeta
from apiforge.plugins.resolver import get_entity_route_path, route_decision

HEALTH_PATHS = ("health", "_health")

MAX_BASE_PATH_DEPTH = 3

__all__ = [
    "RouteMatch",
    "extract_params",
    "match_plugin_route",
    "match_route",
    "operation_for",
    "pluralize",
    "singularize",
]


@dataclass
class RouteMatch:
    """Outcome of routing one request.

    Attributes:
        type: "health", "plugin", "entity", "disabled" or "notFound"
        entity: Matched entity (entity and disabled matches)
        resource_id: Trailing path segment after the collection, if any
        operation: Inferred CRUD operation
        plugin_route: Matched plugin route (plugin matches)
        params: Path parameters extracted from the plugin route
        plugin_id: Owning plugin of a matched plugin entity
        custom_handler: Handler that replaces the default CRUD handling
    """

    type: str
    entity: Entity | None = None
    resource_id: str | None = None
    operation: Operation | None = None
    plugin_route: Route | None = None
    params: dict[str, str] = field(default_factory=dict)
    plugin_id: str | None = None
    custom_handler: RouteHandler | None = None

    @property
    def entity_name(self) -> str | None:
        return self.entity.name if self.entity else None


def _segments(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def match_plugin_route(method: str, path: str, route: Route) -> bool:
    """Method and segment-by-segment path match; ":name" segments match anything."""
    if method.upper() != route.method:
        return False
    request_parts = _segments(path)
    route_parts = _segments(route.path)
    if len(request_parts) != len(route_parts):
        return False
    return all(
        route_part.startswith(":") or route_part == request_part
        for route_part, request_part in zip(route_parts, request_parts)
    )


def extract_params(path: str, route_path: str) -> dict[str, str]:
    """Values of the ":name" segments of `route_path` in `path`."""
    return {
        route_part[1:]: request_part
        for route_part, request_part in zip(_segments(route_path), _segments(path))
        if route_part.startswith(":")
    }


def operation_for(method: str, resource_id: str | None) -> Operation | None:
    """Infer the CRUD operation; None for invalid method/id combinations."""
    method = method.upper()
    if method == "GET":
        return Operation.READ if resource_id else Operation.LIST
    if method == "POST" and not resource_id:
        return Operation.CREATE
    if method in ("PUT", "PATCH") and resource_id:
        return Operation.UPDATE
    if method == "DELETE" and resource_id:
        return Operation.DELETE
    return None


def _plugin_entity_index(
    entities: Mapping[str, Entity], entity_meta: Mapping[str, ResolvedEntityMeta]
) -> dict[str, Entity]:
    index: dict[str, Entity] = {}
    for name in entity_meta:
        entity = entities.get(name)
        if entity is None:
            continue
        index[get_entity_route_path(name, dict(entity_meta)).lower()] = entity
    return index


def _match_plugin_entity(
    method: str,
    parts: list[str],
    entities: Mapping[str, Entity],
    entity_meta: Mapping[str, ResolvedEntityMeta],
) -> RouteMatch | None:
    index = _plugin_entity_index(entities, entity_meta)
    if not index:
        return None

    for depth in range(1, min(MAX_BASE_PATH_DEPTH, len(parts)) + 1):
        rest = parts[depth:]
        if len(rest) > 1:
            continue
        key = "/" + "/".join(parts[:depth]).lower()
        entity = index.get(key)
        if entity is None:
            continue

        meta = entity_meta[entity.name]
        resource_id = rest[0] if rest else None
        operation = operation_for(method, resource_id)
        if operation is None:
            return RouteMatch(type="notFound")

        decision = route_decision(meta, operation)
        if isinstance(decision, DisabledRoute):
            return RouteMatch(
                type="disabled",
                entity=entity,
                resource_id=resource_id,
                operation=operation,
                plugin_id=meta.plugin_id,
            )
        return RouteMatch(
            type="entity",
            entity=entity,
            resource_id=resource_id,
            operation=operation,
            plugin_id=meta.plugin_id,
            custom_handler=decision.handler if isinstance(decision, CustomRoute) else None,
        )
    return None


def match_route(
    request: ApiRequest,
    entities: Mapping[str, Entity],
    plugin_routes: Iterable[Route] = (),
    entity_meta: Mapping[str, ResolvedEntityMeta] | None = None,
) -> RouteMatch:
    """Match a request against health, plugin routes and entity routes."""
    path = request.path.strip("/")
    parts = _segments(path)

    if path in HEALTH_PATHS:
        return RouteMatch(type="health")

    if not parts:
        return RouteMatch(type="notFound")

    for route in plugin_routes:
        if match_plugin_route(request.method, path, route):
            return RouteMatch(
                type="plugin",
                plugin_route=route,
                params=extract_params(path, route.path),
            )

    entity_meta = entity_meta or {}
    if entity_meta:
        matched = _match_plugin_entity(request.method, parts, entities, entity_meta)
        if matched is not None:
            return matched

    if len(parts) > 2:
        return RouteMatch(type="notFound")

    resource_name = parts[0]
    resource_id = parts[1] if len(parts) > 1 else None

    entity = next(
        (
            e
            for name, e in entities.items()
            if name not in entity_meta and resource_name in (pluralize(name), name)
        ),
        None,
    )
    if entity is None:
        return RouteMatch(type="notFound")

    operation = operation_for(request.method, resource_id)
    if operation is None:
        return RouteMatch(type="notFound")

    return RouteMatch(
        type="entity",
        entity=entity,
        resource_id=resource_id,
        operation=operation,
    )
