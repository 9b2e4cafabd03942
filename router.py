"""Routing table for method/path handlers."""

from collections.abc import Callable

from request import HTTPRequest
from response import HTTPResponse

Handler = Callable[[HTTPRequest], HTTPResponse]

# Only read-only methods are routed; HEAD reuses the GET handler.
ROUTED_METHODS = ("GET", "HEAD")


class Router:
    """Exact-path routes with a fallback used for every other path."""

    def __init__(self, fallback: Handler | None = None) -> None:
        self._routes: dict[str, Handler] = {}
        self._fallback = fallback

    @property
    def allowed_methods(self) -> tuple[str, ...]:
        return ROUTED_METHODS

    def add_route(self, path: str, handler: Handler) -> None:
        if not path.startswith("/"):
            raise ValueError("path must start with '/'")
        self._routes[path] = handler

    def resolve(self, method: str, path: str) -> Handler | None:
        if method.upper().strip() not in ROUTED_METHODS:
            return None
        # "//" and friends name no file; they address the root route.
        if not path.strip("/"):
            path = "/"
        return self._routes.get(path, self._fallback)
