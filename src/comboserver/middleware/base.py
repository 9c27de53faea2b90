"""
=============================================================================
MIDDLEWARE CONTRACT AND PIPELINE
=============================================================================

A middleware sits between the server and the router and sees every
request on the way in and every response on the way out:

    Request ───────────────────────────────────────────────►

    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐
    │   Logging    │───►│    (more)    │───►│ router.handle│
    └──────┬───────┘    └──────┬───────┘    └──────┬───────┘
      start timer            ...             ComboHandler /
      request id                             HealthHandler
           ▲                   ▲                   │
      log line,           post-process             │
      X-Request-ID                                 ▼

    ◄─────────────────────────────────────────────── Response

Each middleware receives the request and `next`, the rest of the chain.
It may answer on its own (short-circuit) or call next(request) and adjust
what comes back.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)

NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Base class for middleware.

        class ServedBy(Middleware):
            def __call__(self, request, next):
                response = next(request)
                response.set_header("X-Served-By", socket.gethostname())
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming HTTP request.
            next: The rest of the chain; call it unless short-circuiting.
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler, first added outermost.

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())
        handler = pipeline.wrap(router.handle)
        response = handler(request)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain.

        Wrapping runs in reverse so the first-added middleware ends up
        outermost:

            [MW1, MW2] + handler  →  MW1 → MW2 → handler
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)

