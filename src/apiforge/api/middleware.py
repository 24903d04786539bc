"""Default middleware and the chain runner."""

from __future__ import annotations

import inspect
from collections.abc import Sequence
from dataclasses import dataclass, field

from apiforge.api.types import Middleware, MiddlewareContext

DEFAULT_CORS_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
DEFAULT_CORS_HEADERS = ["Content-Type", "Authorization"]

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}


@dataclass
class CorsOptions:
    origin: str | list[str] = "*"
    credentials: bool = False
    methods: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_METHODS))
    allowed_headers: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_HEADERS))


def cors_middleware(options: CorsOptions | None = None) -> Middleware:
    """CORS headers on every response; OPTIONS preflight ends with 204."""
    options = options or CorsOptions()
    origin = ", ".join(options.origin) if isinstance(options.origin, list) else options.origin

    async def handler(ctx: MiddlewareContext, next_) -> None:
        headers = ctx.response_headers
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Methods"] = ", ".join(options.methods)
        headers["Access-Control-Allow-Headers"] = ", ".join(options.allowed_headers)
        if options.credentials:
            headers["Access-Control-Allow-Credentials"] = "true"

        if ctx.request.method == "OPTIONS":
            ctx.end(None, 204)
            return

        await next_()

    return Middleware(name="cors", handler=handler)


def security_middleware() -> Middleware:
    async def handler(ctx: MiddlewareContext, next_) -> None:
        ctx.response_headers.update(SECURITY_HEADERS)
        await next_()

    return Middleware(name="security", handler=handler)


def default_middleware(
    cors: CorsOptions | bool | None = None,
    security: bool = True,
) -> list[Middleware]:
    """Build the default stack. Pass False to drop either one."""
    stack: list[Middleware] = []
    if cors is not False:
        stack.append(cors_middleware(None if cors in (None, True) else cors))
    if security:
        stack.append(security_middleware())
    return stack


async def run_middleware(middleware: Sequence[Middleware], ctx: MiddlewareContext) -> None:
    """Run the chain in order.

    A middleware that does not await next skips the rest of the chain;
    routing still happens unless it called ctx.end().
    """
    index = 0

    async def next_() -> None:
        nonlocal index
        if ctx.ended or index >= len(middleware):
            return
        current = middleware[index]
        index += 1
        result = current.handler(ctx, next_)
        if inspect.isawaitable(result):
            await result

    await next_()
