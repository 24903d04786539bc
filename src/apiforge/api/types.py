"""Framework-neutral request/response types.

HTTP adapters translate their native objects to ApiRequest, call
ApiForge.handle_request() and send back the ApiResponse.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from apiforge.auth.types import User

if TYPE_CHECKING:
    from apiforge.api.app import ApiForge

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


@dataclass
class ApiRequest:
    """An inbound request.

    Attributes:
        method: Upper-case HTTP method
        path: Path relative to the adapter prefix (e.g. "/posts/42")
        params: Path parameters (filled in for plugin routes)
        query: Query string values; repeated keys become lists
        body: Decoded JSON body, or None
        headers: Request headers (lower-case keys)
        user: The authenticated caller, if any
        context: Per-request values contributed by context providers
    """

    method: str
    path: str
    params: dict[str, str] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    user: User | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.method = self.method.upper()


@dataclass
class ApiResponse:
    status: int
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)


RouteHandler = Callable[
    [ApiRequest, "ApiForge"], Union[ApiResponse, Awaitable[ApiResponse]]
]


@dataclass
class Route:
    """A custom route contributed by a plugin.

    `path` may contain ":name" segments; matched values land in
    request.params.
    """

    method: str
    path: str
    handler: RouteHandler

    def __post_init__(self) -> None:
        self.method = self.method.upper()


class MiddlewareContext:
    """State shared along the middleware chain for one request."""

    def __init__(self, request: ApiRequest):
        self.request = request
        self.response_headers: dict[str, str] = {}
        self._state: dict[str, Any] = {}
        self._response: ApiResponse | None = None

    def get(self, key: str, default: Any = None) -> Any:
        return self._state.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._state[key] = value

    def end(self, body: Any = None, status: int = 200) -> None:
        """Finish the request here; remaining middleware and routing are skipped."""
        self._response = ApiResponse(status=status, body=body, headers=self.response_headers)

    @property
    def ended(self) -> bool:
        return self._response is not None

    @property
    def response(self) -> ApiResponse | None:
        return self._response


NextFn = Callable[[], Awaitable[None]]
MiddlewareFn = Callable[[MiddlewareContext, NextFn], Union[None, Awaitable[None]]]


@dataclass
class Middleware:
    name: str
    handler: MiddlewareFn
