"""FastAPI adapter.

Mounts one catch-all route under a prefix and translates between FastAPI
requests/responses and ApiRequest/ApiResponse.

Usage:
    api = ApiForge(entities=[user, post])
    app = create_fastapi_app(api, get_user=bearer_user_extractor(secret))
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from typing import Any, Union

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response

from apiforge.api.app import ApiForge
from apiforge.api.types import ApiRequest, ApiResponse
from apiforge.auth.bearer import bearer_user_extractor
from apiforge.auth.types import User

UserExtractor = Callable[[Mapping[str, str]], Union[User | None, Awaitable[User | None]]]

ADAPTER_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

_BODY_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def _query_dict(request: Request) -> dict[str, Any]:
    query: dict[str, Any] = {}
    for key, value in request.query_params.multi_items():
        if key not in query:
            query[key] = value
        elif isinstance(query[key], list):
            query[key].append(value)
        else:
            query[key] = [query[key], value]
    return query


async def _json_body(request: Request) -> Any:
    if request.method not in _BODY_METHODS:
        return None
    content_type = request.headers.get("content-type", "")
    if "json" not in content_type:
        return None
    try:
        return await request.json()
    except ValueError:
        return None


async def to_api_request(
    request: Request, path: str, get_user: UserExtractor | None = None
) -> ApiRequest:
    """Translate a FastAPI request into an ApiRequest."""
    headers = {key.lower(): value for key, value in request.headers.items()}
    user = None
    if get_user is not None:
        user = get_user(headers)
        if inspect.isawaitable(user):
            user = await user
    return ApiRequest(
        method=request.method,
        path="/" + path.lstrip("/"),
        query=_query_dict(request),
        body=await _json_body(request),
        headers=headers,
        user=user,
    )


def to_fastapi_response(response: ApiResponse) -> Response:
    """Translate an ApiResponse, keeping middleware headers."""
    if response.status == 204 or response.body is None:
        return Response(status_code=response.status, headers=response.headers)
    return JSONResponse(
        content=jsonable_encoder(response.body),
        status_code=response.status,
        headers=response.headers,
    )


def create_fastapi_app(
    api: ApiForge,
    get_user: UserExtractor | None = None,
    prefix: str | None = None,
    title: str = "apiforge",
) -> FastAPI:
    """Create a FastAPI application serving `api`.

    Args:
        api: The ApiForge instance
        get_user: Extracts the caller from request headers. Defaults to a
            bearer-token extractor when APIFORGE_JWT_SECRET is set.
        prefix: Mount prefix (defaults to settings.api_prefix, "/api")
        title: OpenAPI title

    The application lifespan runs api.startup() and api.shutdown().
    """
    prefix = (api.settings.api_prefix if prefix is None else prefix).rstrip("/")
    if get_user is None and api.settings.jwt_secret:
        get_user = bearer_user_extractor(api.settings.jwt_secret)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await api.startup()
        try:
            yield
        finally:
            await api.shutdown()

    app = FastAPI(title=title, lifespan=lifespan)

    async def dispatch(request: Request, path: str = "") -> Response:
        api_request = await to_api_request(request, path, get_user)
        return to_fastapi_response(await api.handle_request(api_request))

    app.add_api_route(
        f"{prefix}/{{path:path}}",
        dispatch,
        methods=ADAPTER_METHODS,
        include_in_schema=False,
    )
    app.state.apiforge = api
    return app
