"""Tests for simple plugins, the conflict checker and the timestamps plugin."""

import pytest

from apiforge.api.types import ApiResponse, Middleware, Route
from apiforge.entities import Operation, datetime_, entity, string
from apiforge.errors import PluginError
from apiforge.hooks import HookContext
from apiforge.plugins import (
    ApiPlugin,
    Plugin,
    PluginBuilder,
    PluginEntityDef,
    PluginMeta,
    PluginSchema,
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
    timestamps,
    unregister_plugin,
)


@pytest.fixture(autouse=True)
def clear_plugins():
    """Clear the simple-plugin registry before and after each test."""
    clear_legacy_plugins()
    yield
    clear_legacy_plugins()


def _handler(request, api):
    return ApiResponse(status=200)


async def _passthrough(ctx, next_):
    await next_()


@pytest.fixture
def entities():
    return {
        "post": entity("post", {"title": string}).build(),
        "tag": entity("tag", {"label": string}).build(),
    }


# =============================================================================
# Building plugins
# =============================================================================


class TestPluginBuilder:
    def test_build(self):
        plugin = (
            PluginBuilder("soft-delete", "Soft delete")
            .version("1.0.0")
            .description("Marks rows deleted")
            .fields("all", {"deletedAt": datetime_.optional()})
            .fields("all", {"deletedBy": string.optional()})
            .middleware(Middleware("noop", _passthrough))
            .route(Route("get", "/trash", _handler))
            .hooks(before_delete=lambda ctx: None)
            .context({"softDelete": True})
            .build()
        )
        assert plugin.plugin_id == "soft-delete"
        assert plugin.name == "Soft delete"
        assert set(plugin.fields["all"]) == {"deletedAt", "deletedBy"}
        assert plugin.routes[0].method == "GET"
        assert plugin.hooks.before_delete is not None
        assert plugin.context == {"softDelete": True}

    def test_cannot_append_to_factories(self):
        builder = PluginBuilder("x")
        builder._plugin.routes = lambda api: []
        with pytest.raises(PluginError, match="route factory"):
            builder.route(Route("GET", "/x", _handler))

    def test_create_plugin(self):
        plugin = create_plugin("audit", "Audit", hooks={"after_create": lambda ctx: None})
        assert plugin.plugin_id == "audit"
        assert plugin.hooks.after_create is not None

    def test_create_plugin_rejects_unknown_hooks(self):
        with pytest.raises(ValueError, match="Unknown hook names: after_save"):
            create_plugin("audit", "Audit", hooks={"after_save": lambda ctx: None})


class TestGlobalRegistry:
    def test_register_and_list(self):
        plugin = Plugin(name="audit")
        register_plugin(plugin)
        assert get_plugin("audit") is plugin
        assert list_plugins() == [plugin]
        with pytest.raises(PluginError, match='Plugin "audit" is already registered'):
            register_plugin(Plugin(name="audit"))
        assert unregister_plugin("audit") is True
        assert unregister_plugin("audit") is False


# =============================================================================
# Merging into the application
# =============================================================================


class TestApplyPlugins:
    def test_fields_for_all_and_one(self, entities):
        plugin = Plugin(
            name="meta",
            fields={"all": {"tenantId": string.optional()}, "post": {"slug": string}, "ghost": {"x": string}},
        )
        result = apply_plugin_fields(entities, [plugin])
        assert "tenantId" in result["tag"].fields
        assert {"tenantId", "slug"} <= set(result["post"].fields)
        assert "ghost" not in result
        assert "slug" not in entities["post"].fields

    def test_entities_added(self, entities):
        plugin = Plugin(name="tags", entities=[entity("label", {"text": string})])
        result = apply_plugin_entities(entities, [plugin])
        assert list(result) == ["post", "tag", "label"]

    def test_collect_expands_factories(self):
        seen = []

        def route_factory(api):
            seen.append(api)
            return [Route("GET", "/b", _handler)]

        plugins = [
            Plugin(name="a", routes=[Route("GET", "/a", _handler)], middleware=[Middleware("a", _passthrough)]),
            Plugin(name="b", routes=route_factory),
        ]
        api = object()
        assert [r.path for r in collect_routes(plugins, api)] == ["/a", "/b"]
        assert [m.name for m in collect_middleware(plugins, api)] == ["a"]
        assert seen == [api]


# =============================================================================
# Conflict checking
# =============================================================================


class TestConflicts:
    def test_no_conflicts(self):
        plugins = [
            Plugin(name="a", routes=[Route("GET", "/a", _handler)]),
            Plugin(name="b", routes=[Route("POST", "/a", _handler)]),
        ]
        assert check_plugin_conflicts(plugins) == []

    def test_route_middleware_and_entity_conflicts(self):
        plugins = [
            Plugin(
                name="a",
                routes=[Route("GET", "/login", _handler)],
                middleware=[Middleware("rate", _passthrough)],
                entities=[entity("session", {"token": string})],
            ),
            Plugin(
                name="b",
                routes=[Route("GET", "/login", _handler)],
                middleware=[Middleware("rate", _passthrough)],
                entities=[entity("session", {"token": string})],
            ),
        ]
        assert check_plugin_conflicts(plugins) == [
            'Route conflict: "GET:/login" is defined by both "a" and "b"',
            'Middleware conflict: "rate" is defined by both "a" and "b"',
            'Entity conflict: "session" is defined by both "a" and "b"',
        ]

    def test_full_plugins_checked_by_schema(self):
        auth = ApiPlugin(
            meta=PluginMeta(id="auth", name="Auth", version="1"),
            schema=PluginSchema(entities={"user": PluginEntityDef()}),
        )
        legacy = Plugin(name="users", entities=[entity("user", {"name": string})])
        assert check_plugin_conflicts([auth, legacy]) == [
            'Entity conflict: "user" is defined by both "auth" and "users"'
        ]

    def test_factories_not_expanded(self):
        plugins = [
            Plugin(name="a", routes=lambda api: [Route("GET", "/x", _handler)]),
            Plugin(name="b", routes=lambda api: [Route("GET", "/x", _handler)]),
        ]
        assert check_plugin_conflicts(plugins) == []


# =============================================================================
# Timestamps
# =============================================================================


class TestTimestamps:
    def test_adds_optional_fields(self, entities):
        result = apply_plugin_fields(entities, [timestamps()])
        for built in result.values():
            assert built.fields["createdAt"].type == "datetime"
            assert built.fields["createdAt"].optional is True
            assert built.fields["updatedAt"].optional is True

    def test_create_stamps_both(self):
        ctx = HookContext(entity="post", operation=Operation.CREATE, input={"title": "x"})
        timestamps().hooks.before_create(ctx)
        assert ctx.input["createdAt"] == ctx.input["updatedAt"]
        assert ctx.input["title"] == "x"

    def test_create_keeps_supplied_values(self):
        ctx = HookContext(
            entity="post", operation=Operation.CREATE, input={"createdAt": "2020-01-01T00:00:00"}
        )
        timestamps().hooks.before_create(ctx)
        assert ctx.input["createdAt"] == "2020-01-01T00:00:00"
        assert ctx.input["updatedAt"] != "2020-01-01T00:00:00"

    def test_update_refreshes_updated_at(self):
        ctx = HookContext(
            entity="post", operation=Operation.UPDATE, input={"updatedAt": "2020-01-01T00:00:00"}
        )
        timestamps().hooks.before_update(ctx)
        assert ctx.input["updatedAt"] != "2020-01-01T00:00:00"
        assert "createdAt" not in ctx.input
