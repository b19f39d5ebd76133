"""
=============================================================================
HTTP PROTOCOL IMPLEMENTATION
=============================================================================

Translates raw bytes from TCP into structured HTTP messages and back.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST PARSER (request.py)                                         │
    │ ─────────────────────────────────────────────────────────────────── │
    │ Input:   b"GET /foo/bar.git HTTP/1.1\r\nHost: ...\r\n\r\n"         │
    │ Output:  HTTPRequest(method="GET", path="/foo/bar.git", ...)        │
    │                                                                      │
    │ The request target is kept byte-for-byte so the reconstructed URL   │
    │ is exactly what the client asked for.                               │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ RESPONSE BUILDER (response.py)                                      │
    │ ─────────────────────────────────────────────────────────────────── │
    │ Input:   redirect("https://github.com/foo/bar.git")                 │
    │ Output:  b"HTTP/1.1 307 Temporary Redirect\r\nLocation: ..."        │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ STATUS CODES (status_codes.py)                                      │
    │ ─────────────────────────────────────────────────────────────────── │
    │ HTTPStatus.TEMPORARY_REDIRECT → 307, phrase="Temporary Redirect"    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    redirect,        # 3xx + Location
    not_found,       # 404 Not Found
    internal_error,  # 500 Internal Server Error
    error_response,  # any status, Connection: close
)
from .status_codes import HTTPStatus, REDIRECT_STATUSES

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "redirect",
    "not_found",
    "internal_error",
    "error_response",

    # Status codes
    "HTTPStatus",
    "REDIRECT_STATUSES",
]
