"""Tests for the plugin registry, cross-plugin references and plugin definition."""

import pytest

from apiforge.entities import belongs_to, entity, string
from apiforge.errors import PluginError, PluginInitializationError
from apiforge.hooks import Hooks
from apiforge.api.types import ApiResponse, Route
from apiforge.plugins import (
    ApiPlugin,
    CustomRoute,
    DisabledRoute,
    LifecycleHooks,
    PluginEntityDef,
    PluginMeta,
    PluginRegistry,
    PluginSchema,
    clear_entity_cache,
    create_extension_builder,
    default_registry,
    define_plugin,
    parse_entity_ref,
    plugin_entity,
    resolve_entity_ref,
    resolve_plugin,
    route_decision,
    simple_plugin,
    validate_plugin,
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_default_registry():
    """Clear the default plugin registry before and after each test."""
    default_registry.reset()
    yield
    default_registry.reset()


@pytest.fixture
def registry():
    return PluginRegistry()


def make_plugin(plugin_id, dependencies=(), lifecycle=None, entities=()):
    return ApiPlugin(
        meta=PluginMeta(
            id=plugin_id, name=plugin_id.title(), version="1.0.0", dependencies=list(dependencies)
        ),
        schema=PluginSchema(entities={name: PluginEntityDef() for name in entities}),
        lifecycle=lifecycle,
    )


# =============================================================================
# Registry
# =============================================================================


class TestRegistry:
    def test_register_and_lookup(self, registry):
        plugin = make_plugin("auth")
        registry.register_instance(plugin)
        assert registry.get_instance("auth") is plugin
        assert registry.all_plugins() == [plugin]
        assert registry.contains(plugin) is True
        assert registry.contains(make_plugin("auth")) is False

    def test_duplicate_instance(self, registry):
        registry.register_instance(make_plugin("auth"))
        with pytest.raises(PluginError, match='Plugin "auth" is already registered'):
            registry.register_instance(make_plugin("auth"))

    def test_duplicate_factory(self, registry):
        registry.register_factory("auth", lambda options=None: make_plugin("auth"))
        with pytest.raises(PluginError, match='factory "auth" is already registered'):
            registry.register_factory("auth", lambda options=None: make_plugin("auth"))

    def test_create_from_factory(self, registry):
        registry.register_factory("auth", lambda options=None: make_plugin("auth"))
        assert registry.create_from_factory("auth").id == "auth"
        assert registry.create_from_factory("billing") is None

    def test_entity_ref(self, registry):
        registry.register_instance(make_plugin("auth"))
        assert registry.get_entity_ref("auth.user") == ("auth", "user")
        assert registry.get_entity_ref("billing.invoice") is None
        assert registry.get_entity_ref("auth") is None

    def test_reset(self, registry):
        registry.register_instance(make_plugin("auth"))
        registry.register_factory("auth", lambda options=None: None)
        registry.entity_cache["auth.user"] = entity("user", {}).build()
        registry.reset()
        assert registry.all_plugins() == []
        assert registry.get_factory("auth") is None
        assert registry.entity_cache == {}

    def test_resolve_all(self, registry):
        registry.register_instance(make_plugin("auth", entities=["user"]))
        [resolved] = registry.resolve_all()
        assert resolved.meta.id == "auth"
        assert [e.name for e in resolved.entities] == ["user"]


class TestDependencyOrder:
    def test_dependencies_first(self, registry):
        registry.register_instance(make_plugin("a", dependencies=["b"]))
        registry.register_instance(make_plugin("b"))
        assert [p.id for p in registry.sorted_plugins()] == ["b", "a"]

    def test_cycle(self, registry):
        registry.register_instance(make_plugin("a", dependencies=["b"]))
        registry.register_instance(make_plugin("b", dependencies=["a"]))
        with pytest.raises(PluginError, match="Circular plugin dependency detected"):
            registry.sorted_plugins()

    def test_missing_dependency(self, registry):
        registry.register_instance(make_plugin("a", dependencies=["b"]))
        with pytest.raises(PluginError, match='Plugin "a" depends on missing plugin "b"'):
            registry.sorted_plugins()


class TestInitializeAll:
    @pytest.mark.asyncio
    async def test_runs_lifecycle_in_dependency_order(self, registry):
        calls = []
        api = object()

        def recorder(name):
            def hook(instance):
                assert instance is api
                calls.append(name)

            return hook

        async def async_init(instance):
            calls.append("b:init")

        registry.register_instance(
            make_plugin(
                "a",
                dependencies=["b"],
                lifecycle=LifecycleHooks(on_register=recorder("a:register"), on_init=recorder("a:init")),
            )
        )
        registry.register_instance(
            make_plugin(
                "b",
                lifecycle=LifecycleHooks(on_register=recorder("b:register"), on_init=async_init),
            )
        )

        ordered = await registry.initialize_all(api)

        assert [p.id for p in ordered] == ["b", "a"]
        assert calls == ["b:register", "b:init", "a:register", "a:init"]
        assert registry.is_initialized("a") and registry.is_initialized("b")

    @pytest.mark.asyncio
    async def test_initialized_plugins_are_skipped(self, registry):
        calls = []
        registry.register_instance(
            make_plugin("a", lifecycle=LifecycleHooks(on_init=lambda api: calls.append("a")))
        )
        await registry.initialize_all(None)
        await registry.initialize_all(None)
        assert calls == ["a"]

    @pytest.mark.asyncio
    async def test_failure_aborts_and_records_error(self, registry):
        def boom(api):
            raise RuntimeError("boom")

        registry.register_instance(make_plugin("b", lifecycle=LifecycleHooks(on_init=boom)))
        registry.register_instance(make_plugin("a", dependencies=["b"]))

        with pytest.raises(PluginInitializationError, match='Failed to initialize plugin "b": boom') as exc:
            await registry.initialize_all(None)

        assert exc.value.plugin_id == "b"
        assert isinstance(registry.get_entry("b").error, RuntimeError)
        assert registry.is_initialized("a") is False


class TestValidatePlugin:
    def test_valid(self):
        assert validate_plugin(make_plugin("rate-limit")) == []

    @pytest.mark.parametrize(
        "meta, message",
        [
            (PluginMeta(id="", name="X", version="1"), "Plugin must have meta.id"),
            (PluginMeta(id="x", name="", version="1"), "Plugin must have meta.name"),
            (PluginMeta(id="x", name="X", version=""), "Plugin must have meta.version"),
            (PluginMeta(id="Auth", name="X", version="1"), "Plugin ID must be lowercase"),
            (PluginMeta(id="core", name="X", version="1"), 'Plugin ID "core" is reserved'),
        ],
    )
    def test_problems(self, meta, message):
        problems = validate_plugin(ApiPlugin(meta=meta))
        assert any(p.startswith(message) for p in problems)


# =============================================================================
# Cross-plugin references
# =============================================================================


class TestPluginEntityReference:
    def test_lazy_until_called(self, registry):
        ref = plugin_entity("auth", "user", registry=registry)
        with pytest.raises(PluginError, match='Plugin "auth" not found'):
            ref()

        registry.register_instance(make_plugin("auth", entities=["user"]))
        assert ref().name == "user"
        assert ref().fields == {}

    def test_cached_per_reference(self, registry):
        registry.register_instance(make_plugin("auth", entities=["user"]))
        ref = plugin_entity("auth", "user", registry=registry)
        assert ref() is ref()
        assert "auth.user" in registry.entity_cache
        clear_entity_cache(registry)
        assert registry.entity_cache == {}

    def test_unknown_entity(self, registry):
        registry.register_instance(make_plugin("auth", entities=["user"]))
        with pytest.raises(PluginError, match='Entity "ghost" not found in plugin "auth"'):
            plugin_entity("auth", "ghost", registry=registry)()

    def test_as_relation_target(self):
        default_registry.register_instance(make_plugin("auth", entities=["user"]))
        post = entity("post", {"title": string, "author": belongs_to(plugin_entity("auth", "user"))})
        relation = post.build().fields["author"].relation
        assert relation.entity().name == "user"

    def test_resolve_entity_ref(self, registry):
        post = entity("post", {"title": string}).build()
        registry.register_instance(make_plugin("auth", entities=["user"]))
        assert resolve_entity_ref("post", {"post": post}, registry) is post
        assert resolve_entity_ref("auth.user", {}, registry).name == "user"
        assert resolve_entity_ref("auth.ghost", {}, registry) is None
        assert resolve_entity_ref("billing.invoice", {}, registry) is None
        assert resolve_entity_ref("comment", {}, registry) is None

    def test_parse_entity_ref(self):
        assert parse_entity_ref("auth.user") == ("auth", "user")
        assert parse_entity_ref("user") == (None, "user")


# =============================================================================
# define_plugin
# =============================================================================


def _audit_parts(options, extension):
    return {
        "schema": {
            "entities": {"event": {"fields": {"action": {"type": "string", "required": True}}}}
        },
        "hooks": {"after_create": lambda ctx: None},
        "lifecycle": {"on_init": lambda api: None},
    }


class TestDefinePlugin:
    def test_builds_plugin_from_parts(self):
        audit = define_plugin(
            meta={"id": "audit", "name": "Audit", "version": "1.0.0"},
            factory=_audit_parts,
            defaults={"retention": 30},
        )
        plugin = audit({"retention": 7})

        assert plugin.id == "audit"
        assert plugin.options == {"retention": 7}
        assert plugin.schema.entities["event"].fields["action"].required is True
        assert isinstance(plugin.hooks, Hooks)
        assert plugin.hooks.after_create is not None
        assert isinstance(plugin.lifecycle, LifecycleHooks)
        assert plugin.extension is None

    def test_registers_factory(self):
        audit = define_plugin({"id": "audit", "name": "Audit", "version": "1"}, _audit_parts)
        assert default_registry.get_factory("audit") is audit
        with pytest.raises(PluginError, match="already registered"):
            define_plugin({"id": "audit", "name": "Audit", "version": "1"}, _audit_parts)

    def test_private_registry(self, registry):
        define_plugin(
            {"id": "audit", "name": "Audit", "version": "1"}, _audit_parts, registry=registry
        )
        assert registry.get_factory("audit") is not None
        assert default_registry.get_factory("audit") is None

    def test_extend_option_becomes_extension(self):
        audit = define_plugin(
            {"id": "audit", "name": "Audit", "version": "1"}, _audit_parts, register=False
        )
        plugin = audit(extend={"entities": {"event": {"rename": "log"}}, "basePath": False})
        assert "extend" not in plugin.options
        assert plugin.extension.entities["event"].rename == "log"
        assert plugin.extension.base_path is False

    def test_extend_option_keeps_handlers(self):
        async def list_events(request, api):
            return ApiResponse(status=200, body=[])

        async def export(request, api):
            return ApiResponse(status=200)

        audit = define_plugin(
            {"id": "audit", "name": "Audit", "version": "1"}, _audit_parts, register=False
        )
        plugin = audit(
            extend={
                "entity_routes": {
                    "event": {
                        "list": list_events,
                        "read": {"handler": list_events},
                        "delete": "disable",
                        "custom": [{"method": "get", "path": "/audit/export", "handler": export}],
                    }
                },
                "routes": {"/audit/purge": export, "/audit/stats": "disable"},
            }
        )

        routes = plugin.extension.entity_routes["event"]
        assert routes.list is list_events
        assert routes.custom == [Route("GET", "/audit/export", export)]
        assert plugin.extension.routes == {"/audit/purge": export, "/audit/stats": "disable"}

        meta = resolve_plugin(plugin).entity_meta["event"]
        assert route_decision(meta, "list") == CustomRoute(list_events)
        assert route_decision(meta, "read") == CustomRoute(list_events)
        assert route_decision(meta, "delete") == DisabledRoute()

    def test_extend_option_rejects_bad_route_values(self):
        audit = define_plugin(
            {"id": "audit", "name": "Audit", "version": "1"}, _audit_parts, register=False
        )
        with pytest.raises(PluginError, match="Invalid plugin extension"):
            audit(extend={"entity_routes": {"event": {"list": "enable"}}})
        with pytest.raises(PluginError, match="Invalid custom route"):
            audit(extend={"entity_routes": {"event": {"custom": [{"path": "/x"}]}}})

    def test_factory_receives_merged_options_and_extension(self):
        seen = {}

        def parts(options, extension):
            seen["options"] = options
            seen["extension"] = extension
            return {}

        plugin_factory = define_plugin(
            {"id": "audit", "name": "Audit", "version": "1"},
            parts,
            defaults={"a": 1, "b": 2},
            register=False,
        )
        plugin_factory({"b": 3}, c=4)
        assert seen == {"options": {"a": 1, "b": 3, "c": 4}, "extension": None}

    def test_option_validation(self):
        audit = define_plugin(
            {"id": "audit", "name": "Audit", "version": "1"},
            _audit_parts,
            defaults={"retention": 30},
            validate=lambda o: ["retention must be positive"] if o["retention"] <= 0 else [],
            register=False,
        )
        with pytest.raises(PluginError, match=r"\[audit\] Invalid options: retention must be positive"):
            audit(retention=0)

    def test_invalid_meta_rejected_on_creation(self):
        core = define_plugin({"id": "core", "name": "Core", "version": "1"}, _audit_parts, register=False)
        with pytest.raises(PluginError, match='Plugin ID "core" is reserved'):
            core()

    def test_unknown_parts(self):
        bad = define_plugin(
            {"id": "bad", "name": "Bad", "version": "1"},
            lambda options, extension: {"views": []},
            register=False,
        )
        with pytest.raises(PluginError, match="Unknown plugin parts: views"):
            bad()

    def test_unknown_lifecycle_hook(self):
        bad = define_plugin(
            {"id": "bad", "name": "Bad", "version": "1"},
            lambda options, extension: {"lifecycle": {"on_boot": lambda api: None}},
            register=False,
        )
        with pytest.raises(PluginError, match="Unknown lifecycle hooks: on_boot"):
            bad()

    def test_simple_plugin(self, registry):
        def ping(request, api):
            return ApiResponse(status=200, body={"pong": True})

        health = simple_plugin(
            {"id": "ping", "name": "Ping", "version": "1"},
            registry=registry,
            routes=[Route("GET", "/ping", ping)],
        )
        plugin = health()
        assert plugin.routes[0].path == "/ping"
        assert registry.get_factory("ping") is health


class TestExtensionBuilder:
    def test_build(self):
        def login(request, api):
            return ApiResponse(status=200)

        ext = (
            create_extension_builder()
            .base_path(False)
            .entity("user", {"rename": "member"})
            .add_entity("device", {"fields": {"name": {"type": "string"}}})
            .entity_routes("member", {"delete": "disable"})
            .disable_route("/logout")
            .override_route("/login", login)
            .build()
        )

        assert ext.base_path is False
        assert ext.entities["user"].rename == "member"
        assert ext.add_entities["device"].fields["name"].type == "string"
        assert ext.entity_routes["member"].delete == "disable"
        assert ext.routes == {"/logout": "disable", "/login": login}

    def test_build_is_independent(self):
        builder = create_extension_builder().disable_route("/a")
        ext = builder.build()
        builder.disable_route("/b")
        assert list(ext.routes) == ["/a"]

    def test_invalid_entity_extension(self):
        with pytest.raises(PluginError, match="Invalid entity extension"):
            create_extension_builder().entity("user", {"rename": "member", "colour": "red"})
