"""Cross-plugin entity references.

Relations to another plugin's entities are declared lazily, so the target
plugin only has to be registered by the time the relation is resolved:

    author = belongs_to(plugin_entity("auth", "user"))

Lookups use the plugin's declared schema, so a target renamed by an
extension is still referenced by its original name. The result is a
field-less placeholder Entity, cached per "pluginId.entityName".
"""

from __future__ import annotations

from collections.abc import Callable

from apiforge.entities.types import Entity, placeholder_entity
from apiforge.errors import PluginError
from apiforge.plugins.registry import PluginRegistry, default_registry


def _lookup(plugin_id: str, entity_name: str, registry: PluginRegistry) -> Entity:
    cache_key = f"{plugin_id}.{entity_name}"
    cached = registry.entity_cache.get(cache_key)
    if cached is not None:
        return cached

    plugin = registry.get_instance(plugin_id)
    if plugin is None:
        raise PluginError(f'Plugin "{plugin_id}" not found. Make sure it\'s registered.')

    if plugin.schema is None or entity_name not in plugin.schema.entities:
        raise PluginError(f'Entity "{entity_name}" not found in plugin "{plugin_id}"')

    entity = placeholder_entity(entity_name)
    registry.entity_cache[cache_key] = entity
    return entity


def plugin_entity(
    plugin_id: str,
    entity_name: str,
    registry: PluginRegistry | None = None,
) -> Callable[[], Entity]:
    """Return a zero-argument callable resolving a plugin entity on demand.

    Creating the callable never fails; calling it raises PluginError if
    the plugin is not registered or does not declare the entity.
    """

    def resolve() -> Entity:
        return _lookup(plugin_id, entity_name, registry or default_registry)

    return resolve


def parse_entity_ref(ref: str) -> tuple[str | None, str]:
    """Split "pluginId.entityName"; bare names have no plugin id."""
    if "." in ref:
        plugin_id, _, entity_name = ref.partition(".")
        return plugin_id, entity_name
    return None, ref


def resolve_entity_ref(
    ref: str,
    local_entities: dict[str, Entity],
    registry: PluginRegistry | None = None,
) -> Entity | None:
    """Resolve "entityName" locally or "pluginId.entityName" via the registry.

    Returns None when nothing matches.
    """
    plugin_id, entity_name = parse_entity_ref(ref)
    if plugin_id is None:
        return local_entities.get(entity_name)
    try:
        return _lookup(plugin_id, entity_name, registry or default_registry)
    except PluginError:
        return None


def clear_entity_cache(registry: PluginRegistry | None = None) -> None:
    (registry or default_registry).entity_cache.clear()
