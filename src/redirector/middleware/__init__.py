"""
=============================================================================
MIDDLEWARE
=============================================================================

Code that runs around the redirect handler for every request.

LoggingMiddleware:
    One access line per request (text or JSON): client, target, status,
    redirect Location and duration. Installed by RedirectServer itself.

Custom middleware subclasses Middleware and is added with
RedirectServer.use().

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog

__all__ = [
    # Base classes
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",

    # Built-in middleware
    "LoggingMiddleware",
    "RequestLog",
]
