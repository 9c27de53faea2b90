"""
=============================================================================
HTTP ROUTER
=============================================================================

Maps (method, path) pairs to handlers. The combo server only needs a few
routes, but they use both kinds of dynamic segment:

    GET /health            → HealthHandler.handle
    GET /health/live       → HealthHandler.liveness
    GET /health/ready      → HealthHandler.readiness
    GET /combo/*bundle     → ComboHandler.handle

=============================================================================
PATTERN SYNTAX
=============================================================================

    /health            static segment, exact match
    /themes/:name      :param captures one segment (no "/")
    /combo/*bundle     *param captures the rest of the path, slashes included

Patterns compile to anchored regexes with named groups:

    "/combo/*bundle"  →  ^/combo/(?P<bundle>.*)$

Matching is first-registered, first-matched. A path that matches some
route under a different method gets 405 with an Allow header; a path that
matches nothing gets 404.

HEAD is answered by GET routes: the server sends the GET headers and drops
the body (RFC 7231 §4.3.2).

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, Any, List
import re

from .request import HTTPRequest
from .response import HTTPResponse, not_found, method_not_allowed


Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Route:
    """A URL pattern bound to a handler."""

    path: str
    method: Optional[str]            # None = any method
    handler: Handler
    name: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)

    def accepts(self, method: str) -> bool:
        if self.method is None:
            return True
        method = method.upper()
        return self.method == method or (method == "HEAD" and self.method == "GET")


@dataclass
class RouteMatch:
    """
    A successful match.

        Pattern: /combo/*bundle
        Path:    /combo/site.css
        Result:  RouteMatch(route=<Route>, params={"bundle": "site.css"})
    """
    route: Route
    params: Dict[str, str]


class Router:
    """
    Request router with :param and *wildcard segments.

        router = Router()

        @router.get("/health")
        def health(request):
            return ResponseBuilder().json({"status": "healthy"}).build()

        router.add_route("/combo/*bundle", combo_handler.handle, method="GET")
    """

    ANY_METHOD = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.rstrip("/")
        self._routes: List[Route] = []
        self._named_routes: Dict[str, Route] = {}

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
        name: Optional[str] = None,
        **meta: Any
    ) -> Route:
        """
        Register a route.

        Args:
            path: URL pattern, joined onto the router prefix.
            handler: Callable taking a request and returning a response.
            method: HTTP method, or None for any.
            name: Optional route name.
            **meta: Free-form metadata kept on the Route.
        """
        full_path = self.prefix + path
        pattern, param_names = self._compile_pattern(full_path)

        route = Route(
            path=full_path,
            method=method.upper() if method else None,
            handler=handler,
            name=name,
            meta=meta,
            _pattern=pattern,
            _param_names=param_names,
        )
        self._routes.append(route)
        if name:
            self._named_routes[name] = route
        return route

    def _compile_pattern(self, path: str) -> tuple[re.Pattern, List[str]]:
        """
        Compile a route pattern into an anchored regex.

            "/themes/:name/*file"
                → ^/themes/(?P<name>[^/]+)/(?P<file>.*)$

        A wildcard must be the last segment; anything after it is ignored.
        """
        param_names: List[str] = []
        regex_parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue

            regex_parts.append("/")

            if segment.startswith(":"):
                param_name = segment[1:]
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>[^/]+)")

            elif segment.startswith("*"):
                param_name = segment[1:] or "wildcard"
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>.*)")
                break

            else:
                regex_parts.append(re.escape(segment))

        if len(regex_parts) == 1:
            regex_parts.append("/")
        regex_parts.append("$")
        return re.compile("".join(regex_parts)), param_names

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    @staticmethod
    def _normalize(path: str) -> str:
        return "/" + path.strip("/") if path != "/" else "/"

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """First route accepting this method whose pattern matches the path."""
        path = self._normalize(path)

        for route in self._routes:
            if not route.accepts(method):
                continue
            if route._pattern:
                found = route._pattern.match(path)
                if found:
                    return RouteMatch(route=route, params=found.groupdict())

        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods some route accepts for this path, for the Allow header."""
        path = self._normalize(path)
        methods = set()

        for route in self._routes:
            if route._pattern and route._pattern.match(path):
                if route.method is None:
                    return list(self.ANY_METHOD)
                methods.add(route.method)
                if route.method == "GET":
                    methods.add("HEAD")

        return sorted(methods)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Dispatch to the matching handler, or answer 404/405."""
        match = self.match(request.method, request.path)

        if match:
            request.path_params = match.params
            return match.route.handler(request)

        allowed = self.get_allowed_methods(request.path)
        if allowed:
            return method_not_allowed(allowed)

        return not_found(f"No route matches {request.path}")

    # =========================================================================
    # DECORATORS
    # =========================================================================

    def route(
        self,
        path: str,
        method: Optional[str] = None,
        name: Optional[str] = None,
        **meta: Any
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method, name, **meta)
            return handler
        return decorator

    def get(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "GET", name, **meta)

    def post(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        return self.route(path, "POST", name, **meta)

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def url_for(self, name: str, **params: str) -> Optional[str]:
        """
        Build a path from a named route.

            router.url_for("bundle", bundle="site.css")  # "/combo/site.css"
        """
        route = self._named_routes.get(name)
        if route is None:
            return None

        path = route.path
        for param_name, value in params.items():
            path = path.replace(f":{param_name}", value)
            path = path.replace(f"*{param_name}", value)
        return path

    @property
    def routes(self) -> List[Route]:
        return list(self._routes)
