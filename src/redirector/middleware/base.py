"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Middleware wraps the redirect handler like layers of an onion. Each layer
sees the request on the way in and the response on the way out:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Request ─────────────────────────────────────────►                │
    │                                                                      │
    │   ┌──────────────┐    ┌──────────────┐    ┌───────────────────┐     │
    │   │   Logging    │───►│    (more)    │───►│  RedirectHandler  │     │
    │   │   start timer│    │              │    │  match → 3xx/404  │     │
    │   └──────┬───────┘    └──────┬───────┘    └─────────┬─────────┘     │
    │          ▲                   ▲                      │               │
    │   log status,                │                      │               │
    │   Location, ms               │                      ▼               │
    │                                                                      │
    │   ◄───────────────────────────────────────────────── Response       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A middleware may also answer on its own without calling next() at all
(short-circuit), e.g. to refuse some clients outright.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The next middleware, or the handler itself at the end of the chain.
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class StampMiddleware(Middleware):
            def __call__(self, request, next):
                response = next(request)      # continue the chain
                response.set_header("X-Redirected-By", "redirector")
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The parsed request.
            next: The rest of the chain. Call it to continue.

        Returns:
            The response, from next() or produced here.
        """

    @property
    def name(self) -> str:
        """Get the middleware name for logging."""
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

    The first middleware added is the outermost one:

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())
        handler = pipeline.wrap(redirect_handler)

        handler(request)  # Logging → RedirectHandler → Logging
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append a middleware (innermost so far). Returns self."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        """Append several middleware in order. Returns self."""
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain around handler.

        Wrapping happens in reverse so that the first middleware added
        ends up outermost: [A, B] + h → A(B(h)).
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
