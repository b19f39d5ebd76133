"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One line per request, after the response is decided: who asked for what,
what they got, and where they were sent.

=============================================================================
LOG FORMATS
=============================================================================

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1 - - [19/Oct/2026:10:55:36 +0000] "GET /foo/bar.git"      │
    │     307 -> https://github.com/foo/bar.git 0.41ms                    │
    │ ────────────────────────────────────────────────────────────────── │
    │ IP          Timestamp            Method/Target  Status Location  ms │
    └─────────────────────────────────────────────────────────────────────┘

    (one line in the actual log; wrapped here to fit)

    JSON:
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"method": "GET", "host": "github12321.com",                        │
    │  "path": "/foo/bar.git", "client_ip": "127.0.0.1",                  │
    │  "user_agent": "git/2.43.0", "status_code": 307,                    │
    │  "location": "https://github.com/foo/bar.git",                      │
    │  "duration_ms": 0.41, "timestamp": "19/Oct/2026:10:55:36 +0000"}    │
    └─────────────────────────────────────────────────────────────────────┘

The access log only observes. It never adds headers to the response, so
what goes on the wire is exactly what the handler decided.

=============================================================================
"""

import time
import json
import logging
from typing import Optional
from dataclasses import dataclass

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


# Separate from the module loggers so access lines can be routed or
# silenced on their own:
#   logging.getLogger("redirector.access").setLevel(logging.WARNING)
logger = logging.getLogger("redirector.access")


@dataclass
class RequestLog:
    """
    Structured access log entry.

    location is empty unless the request was redirected.
    """

    method: str
    host: str
    path: str
    client_ip: str
    user_agent: str
    status_code: int
    location: str
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "host": self.host,
            "path": self.path,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "status_code": self.status_code,
            "location": self.location,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        """Apache-style line, with the redirect target when there is one."""
        target = f" -> {self.location}" if self.location else ""
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code}'
            f'{target} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Access log middleware. Add it first so it times the whole chain.

        pipeline.add(LoggingMiddleware())                 # text
        pipeline.add(LoggingMiddleware(log_format="json"))

    Args:
        log_format: "text" or "json".
        log_level: Level the access lines are emitted at.
        skip_paths: Request targets not to log.
    """

    def __init__(
        self,
        log_format: str = "text",
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        self.log_format = log_format
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        start_time = time.time()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if request.path in self.skip_paths:
            return response

        log_entry = RequestLog(
            method=request.method,
            host=request.host,
            path=request.path,
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            location=response.location,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(self.log_level, log_entry.to_text())

        return response
