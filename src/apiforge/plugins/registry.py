"""Plugin registry.

Holds plugin factories (registered once per process, usually at import
time), plugin instances and the entity-reference cache. A module-level
default registry backs the convenience functions; ApiForge instances and
tests may construct their own.

Follows the registry pattern used elsewhere in apiforge: explicit
registration, lookup by id, and clear operations for test isolation.
"""

from __future__ import annotations

import inspect
import logging
import re
import threading
from typing import TYPE_CHECKING, Any

from apiforge.entities.types import Entity
from apiforge.errors import PluginError, PluginInitializationError
from apiforge.plugins.contract import (
    ApiPlugin,
    PluginFactory,
    PluginRegistryEntry,
    ResolvedPlugin,
)
from apiforge.plugins.resolver import resolve_plugin

if TYPE_CHECKING:
    from apiforge.api.app import ApiForge

logger = logging.getLogger(__name__)

PLUGIN_ID_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")

RESERVED_PLUGIN_IDS = ("apiforge", "core", "system")


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class PluginRegistry:
    """Factories, instances and cached entity references.

    Registration is guarded by a lock so two threads cannot register the
    same id; lookups are plain dict reads.
    """

    def __init__(self) -> None:
        self._factories: dict[str, PluginFactory] = {}
        self._entries: dict[str, PluginRegistryEntry] = {}
        self._lock = threading.Lock()
        self.entity_cache: dict[str, Entity] = {}

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    def register_factory(self, plugin_id: str, factory: PluginFactory) -> None:
        """Register a plugin factory.

        Raises:
            PluginError: If a factory with this id is already registered
        """
        with self._lock:
            if plugin_id in self._factories:
                raise PluginError(f'Plugin factory "{plugin_id}" is already registered')
            self._factories[plugin_id] = factory
        logger.debug("Registered plugin factory '%s'", plugin_id)

    def get_factory(self, plugin_id: str) -> PluginFactory | None:
        return self._factories.get(plugin_id)

    def create_from_factory(
        self, plugin_id: str, options: dict[str, Any] | None = None
    ) -> ApiPlugin | None:
        """Build a plugin from a registered factory, or None if unknown."""
        factory = self._factories.get(plugin_id)
        if factory is None:
            return None
        return factory(options)

    # -------------------------------------------------------------------------
    # Instances
    # -------------------------------------------------------------------------

    def register_instance(self, plugin: ApiPlugin) -> None:
        """Register a plugin instance.

        Raises:
            PluginError: If an instance with this id is already registered
        """
        plugin_id = plugin.meta.id
        with self._lock:
            if plugin_id in self._entries:
                raise PluginError(f'Plugin "{plugin_id}" is already registered')
            self._entries[plugin_id] = PluginRegistryEntry(plugin=plugin)
        logger.debug("Registered plugin instance '%s'", plugin_id)

    def get_instance(self, plugin_id: str) -> ApiPlugin | None:
        entry = self._entries.get(plugin_id)
        return entry.plugin if entry else None

    def get_entry(self, plugin_id: str) -> PluginRegistryEntry | None:
        return self._entries.get(plugin_id)

    def contains(self, plugin: ApiPlugin) -> bool:
        """True if this exact plugin object is the registered instance."""
        entry = self._entries.get(plugin.meta.id)
        return entry is not None and entry.plugin is plugin

    def get_entity_ref(self, ref: str) -> tuple[str, str] | None:
        """Split "pluginId.entityName" if the plugin is registered."""
        plugin_id, _, entity_name = ref.partition(".")
        if not plugin_id or not entity_name or plugin_id not in self._entries:
            return None
        return plugin_id, entity_name

    def mark_initialized(self, plugin_id: str) -> None:
        entry = self._entries.get(plugin_id)
        if entry:
            entry.initialized = True

    def is_initialized(self, plugin_id: str) -> bool:
        entry = self._entries.get(plugin_id)
        return bool(entry and entry.initialized)

    def all_plugins(self) -> list[ApiPlugin]:
        """Registered plugins in registration order."""
        return [entry.plugin for entry in self._entries.values()]

    def resolve_all(self) -> list[ResolvedPlugin]:
        return [resolve_plugin(plugin) for plugin in self.all_plugins()]

    # -------------------------------------------------------------------------
    # Initialization
    # -------------------------------------------------------------------------

    def sorted_plugins(self) -> list[ApiPlugin]:
        """Plugins ordered so every dependency precedes its dependents.

        Raises:
            PluginError: On a dependency cycle or a missing dependency
        """
        plugins = self.all_plugins()
        by_id = {p.meta.id: p for p in plugins}
        ordered: list[ApiPlugin] = []
        visited: set[str] = set()
        visiting: set[str] = set()

        def visit(plugin: ApiPlugin) -> None:
            plugin_id = plugin.meta.id
            if plugin_id in visited:
                return
            if plugin_id in visiting:
                raise PluginError(f"Circular plugin dependency detected: {plugin_id}")

            visiting.add(plugin_id)
            for dep_id in plugin.meta.dependencies:
                dependency = by_id.get(dep_id)
                if dependency is None:
                    raise PluginError(
                        f'Plugin "{plugin_id}" depends on missing plugin "{dep_id}"'
                    )
                visit(dependency)
            visiting.discard(plugin_id)
            visited.add(plugin_id)
            ordered.append(plugin)

        for plugin in plugins:
            visit(plugin)
        return ordered

    async def initialize_all(self, api: ApiForge) -> list[ApiPlugin]:
        """Run on_register then on_init for every plugin, dependencies first.

        Plugins already initialized are skipped. The first failure aborts
        the remaining initializations; nothing is rolled back.

        Returns:
            The plugins in initialization order

        Raises:
            PluginError: Cycle or missing dependency
            PluginInitializationError: A lifecycle callback raised
        """
        ordered = self.sorted_plugins()

        for plugin in ordered:
            plugin_id = plugin.meta.id
            if self.is_initialized(plugin_id):
                continue

            logger.debug("Initializing plugin '%s'", plugin_id)
            lifecycle = plugin.lifecycle
            try:
                if lifecycle is not None and lifecycle.on_register is not None:
                    await _maybe_await(lifecycle.on_register(api))
                if lifecycle is not None and lifecycle.on_init is not None:
                    await _maybe_await(lifecycle.on_init(api))
            except Exception as e:
                entry = self._entries.get(plugin_id)
                if entry:
                    entry.error = e
                logger.error("Failed to initialize plugin '%s': %s", plugin_id, e)
                raise PluginInitializationError(plugin_id, e) from e

            self.mark_initialized(plugin_id)
            logger.debug("Initialized plugin '%s'", plugin_id)

        return ordered

    # -------------------------------------------------------------------------
    # Reset
    # -------------------------------------------------------------------------

    def clear_instances(self) -> None:
        """Clear plugin instances and cached entity references."""
        self._entries.clear()
        self.entity_cache.clear()

    def clear_factories(self) -> None:
        self._factories.clear()

    def reset(self) -> None:
        """Clear everything. Primarily for testing."""
        self.clear_instances()
        self.clear_factories()


default_registry = PluginRegistry()


def validate_plugin(plugin: ApiPlugin) -> list[str]:
    """Return a list of problems with a plugin's metadata (empty if valid)."""
    errors: list[str] = []
    meta = plugin.meta

    if not meta.id:
        errors.append("Plugin must have meta.id")
    if not meta.name:
        errors.append("Plugin must have meta.name")
    if not meta.version:
        errors.append("Plugin must have meta.version")

    if meta.id and not PLUGIN_ID_PATTERN.match(meta.id):
        errors.append(
            "Plugin ID must be lowercase alphanumeric with hyphens, starting with a letter"
        )
    if meta.id in RESERVED_PLUGIN_IDS:
        errors.append(f'Plugin ID "{meta.id}" is reserved')

    return errors


# =============================================================================
# Default-registry shortcuts
# =============================================================================


def register_plugin_factory(plugin_id: str, factory: PluginFactory) -> None:
    default_registry.register_factory(plugin_id, factory)


def get_plugin_factory(plugin_id: str) -> PluginFactory | None:
    return default_registry.get_factory(plugin_id)


def create_from_factory(plugin_id: str, options: dict[str, Any] | None = None) -> ApiPlugin | None:
    return default_registry.create_from_factory(plugin_id, options)


def register_plugin_instance(plugin: ApiPlugin) -> None:
    default_registry.register_instance(plugin)


def get_plugin_instance(plugin_id: str) -> ApiPlugin | None:
    return default_registry.get_instance(plugin_id)


def get_plugin_entity(ref: str) -> tuple[str, str] | None:
    return default_registry.get_entity_ref(ref)


def mark_plugin_initialized(plugin_id: str) -> None:
    default_registry.mark_initialized(plugin_id)


def is_plugin_initialized(plugin_id: str) -> bool:
    return default_registry.is_initialized(plugin_id)


def get_all_plugins() -> list[ApiPlugin]:
    return default_registry.all_plugins()


def resolve_all_plugins() -> list[ResolvedPlugin]:
    return default_registry.resolve_all()


async def initialize_all_plugins(
    api: ApiForge, registry: PluginRegistry | None = None
) -> list[ApiPlugin]:
    return await (registry or default_registry).initialize_all(api)


def clear_plugin_registry() -> None:
    default_registry.clear_instances()


def clear_plugin_factories() -> None:
    default_registry.clear_factories()
