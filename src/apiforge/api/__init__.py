"""HTTP-facing layer: request/response types, router, middleware, the
ApiForge instance and the FastAPI adapter.

Import ApiForge from apiforge.api.app (or the top-level package); this
module only exposes the framework-neutral types.
"""

from apiforge.api.types import (
    ApiRequest,
    ApiResponse,
    Middleware,
    MiddlewareContext,
    Route,
)

__all__ = ["ApiRequest", "ApiResponse", "Middleware", "MiddlewareContext", "Route"]
