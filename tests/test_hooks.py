"""Tests for the hook service and the middleware chain."""

import pytest

from apiforge.api.middleware import (
    SECURITY_HEADERS,
    CorsOptions,
    cors_middleware,
    default_middleware,
    run_middleware,
    security_middleware,
)
from apiforge.api.types import ApiRequest, Middleware, MiddlewareContext
from apiforge.entities import Operation
from apiforge.hooks import HookContext, Hooks, HookService


@pytest.fixture
def context():
    return HookContext(entity="post", operation=Operation.CREATE, input={"title": "Hello"})


# =============================================================================
# Hooks
# =============================================================================


class TestHooks:
    def test_from_value(self):
        fn = lambda ctx: None  # noqa: E731
        assert Hooks.from_value(None) == Hooks()
        assert Hooks.from_value({"before_read": fn}).before_read is fn
        with pytest.raises(ValueError, match="Unknown hook names"):
            Hooks.from_value({"before_save": fn})

    def test_get_unknown_point(self):
        with pytest.raises(ValueError, match="Unknown hook point"):
            Hooks().get("on_error")

    def test_context_mutators(self, context):
        context.set_input({"slug": "hello"})
        context.set_resource({"id": "1"})
        context.set_resource({"title": "Hello"})
        context.add_filter({"published": True})
        assert context.input == {"title": "Hello", "slug": "hello"}
        assert context.resource == {"id": "1", "title": "Hello"}
        assert context.filters == {"published": True}
        context.stop()
        assert context.stopped is True


class TestHookService:
    @pytest.mark.asyncio
    async def test_runs_in_registration_order(self, context):
        calls = []

        def first(ctx):
            calls.append("first")
            ctx.set_input({"slug": ctx.input["title"].lower()})

        async def second(ctx):
            calls.append("second")
            assert ctx.input["slug"] == "hello"

        service = HookService([Hooks(before_create=first), Hooks(), Hooks(before_create=second)])
        await service.run("before_create", context)
        assert calls == ["first", "second"]
        assert len(service) == 3

    @pytest.mark.asyncio
    async def test_stop_short_circuits(self, context):
        calls = []

        def stopper(ctx):
            calls.append("stopper")
            ctx.set_resource({"cached": True})
            ctx.stop()

        service = HookService()
        service.add(Hooks(before_create=stopper))
        service.add(Hooks(before_create=lambda ctx: calls.append("never")))
        await service.run("before_create", context)
        assert calls == ["stopper"]
        assert context.resource == {"cached": True}

    @pytest.mark.asyncio
    async def test_hook_errors_propagate(self, context):
        def broken(ctx):
            raise RuntimeError("hook failed")

        service = HookService([Hooks(before_create=broken)])
        with pytest.raises(RuntimeError, match="hook failed"):
            await service.run("before_create", context)

    @pytest.mark.asyncio
    async def test_error_hooks_never_raise(self, context, caplog):
        seen = []

        def broken(error, ctx):
            raise RuntimeError("observer failed")

        async def observer(error, ctx):
            seen.append(str(error))

        service = HookService([Hooks(on_error=broken), Hooks(on_error=observer)])
        await service.run_error(ValueError("original"), context)
        assert seen == ["original"]
        assert "on_error hook failed for entity 'post'" in caplog.text


# =============================================================================
# Middleware
# =============================================================================


def _ctx(method="GET"):
    return MiddlewareContext(ApiRequest(method=method, path="/posts"))


class TestMiddlewareChain:
    @pytest.mark.asyncio
    async def test_runs_in_order_with_shared_state(self):
        order = []

        async def first(ctx, next_):
            order.append("first:before")
            ctx.set("user", "alice")
            await next_()
            order.append("first:after")

        def second(ctx, next_):
            order.append(f"second:{ctx.get('user')}")

        ctx = _ctx()
        await run_middleware([Middleware("first", first), Middleware("second", second)], ctx)
        assert order == ["first:before", "second:alice", "first:after"]
        assert ctx.ended is False

    @pytest.mark.asyncio
    async def test_end_skips_remaining(self):
        calls = []

        async def blocker(ctx, next_):
            ctx.response_headers["Retry-After"] = "60"
            ctx.end({"error": "slow down"}, 429)
            await next_()

        async def never(ctx, next_):
            calls.append("never")

        ctx = _ctx()
        await run_middleware([Middleware("block", blocker), Middleware("never", never)], ctx)
        assert calls == []
        assert ctx.response.status == 429
        assert ctx.response.body == {"error": "slow down"}
        assert ctx.response.headers["Retry-After"] == "60"

    @pytest.mark.asyncio
    async def test_cors_headers(self):
        ctx = _ctx()
        await run_middleware([cors_middleware()], ctx)
        assert ctx.response_headers["Access-Control-Allow-Origin"] == "*"
        assert "PATCH" in ctx.response_headers["Access-Control-Allow-Methods"]
        assert ctx.ended is False

    @pytest.mark.asyncio
    async def test_cors_preflight(self):
        ctx = _ctx("options")
        options = CorsOptions(origin=["https://a.io", "https://b.io"], credentials=True)
        await run_middleware([cors_middleware(options), security_middleware()], ctx)
        assert ctx.response.status == 204
        assert ctx.response_headers["Access-Control-Allow-Origin"] == "https://a.io, https://b.io"
        assert ctx.response_headers["Access-Control-Allow-Credentials"] == "true"
        # security middleware never ran
        assert "X-Frame-Options" not in ctx.response_headers

    @pytest.mark.asyncio
    async def test_security_headers(self):
        ctx = _ctx()
        await run_middleware([security_middleware()], ctx)
        for name, value in SECURITY_HEADERS.items():
            assert ctx.response_headers[name] == value

    def test_default_stack(self):
        assert [m.name for m in default_middleware()] == ["cors", "security"]
        assert [m.name for m in default_middleware(cors=False)] == ["security"]
        assert default_middleware(cors=False, security=False) == []
