"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

Every response this server sends has an EMPTY body. What differs between
them is the status line and, for redirects, the Location header:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    THE THREE SHAPES OF RESPONSE                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Rule matched:                 No rule matched:                     │
    │                                                                      │
    │   HTTP/1.1 307 Temporary ...    HTTP/1.1 404 Not Found               │
    │   Location: https://real/x      Content-Length: 0                    │
    │   Content-Length: 0             Date: ...                            │
    │   Date: ...                     Server: redirector/1.0.0             │
    │   Server: redirector/1.0.0                                           │
    │                                                                      │
    │   Synthesizer raised / malformed request:                            │
    │                                                                      │
    │   HTTP/1.1 500 Internal Server Error   (or 400 / 413 / 505)          │
    │   Content-Length: 0                                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SERIALIZATION FORMAT (RFC 7230)
=============================================================================

    STATUS-LINE CRLF
    *( header-field CRLF )
    CRLF
    [ message-body ]

Content-Length is always sent, even when it is 0. Without it a keep-alive
client cannot tell where this response ends and the next one begins.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Union

from .status_codes import HTTPStatus


DEFAULT_SERVER_NAME = "redirector"


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    A plain data container. Use ResponseBuilder or the helpers at the
    bottom of this module to construct one.

        Handler returns          to_bytes()              Socket sends
        HTTPResponse    ─────►   serializes    ─────►    raw bytes
    """

    status: HTTPStatus = HTTPStatus.OK       # HTTP status code (enum)
    headers: Dict[str, str] = field(default_factory=dict)  # Response headers
    body: bytes = b""                        # Response body
    version: str = "HTTP/1.1"                # HTTP version

    def __post_init__(self):
        # Redirect status arrives from config as a plain int
        self.status = HTTPStatus(self.status)

    @property
    def status_line(self) -> str:
        """
        Get the HTTP status line.

        Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE
        Example: "HTTP/1.1 307 Temporary Redirect"
        """
        return f"{self.version} {self.status.value} {self.status.phrase}"

    @property
    def location(self) -> str:
        """The redirect target, or an empty string when not redirecting."""
        return self.headers.get("Location", "")

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """
        Set a response header.

        Returns self for method chaining:
            response.set_header("Connection", "close").set_header(...)
        """
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialize the response to bytes for sending over the socket.

        Content-Length, Date and Server are filled in when the handler
        did not set them. The response's own headers dict is not modified.

        Args:
            server_name: Server identifier for the Server header.

        Returns:
            Complete HTTP response as bytes ready for socket.sendall()

        Raises:
            ValueError: A header name or value contains CR or LF.
        """
        response_headers = dict(self.headers)

        for name, value in response_headers.items():
            if any(c in str(name) + str(value) for c in "\r\n"):
                raise ValueError(f"Invalid character in header {name}: {value!r}")

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

    Each method returns `self`, so calls chain:

        response = (ResponseBuilder()
            .redirect("https://github.com/foo/bar.git", HTTPStatus.TEMPORARY_REDIRECT)
            .close_connection()
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: Union[HTTPStatus, int]) -> "ResponseBuilder":
        """Set the HTTP status code."""
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        """Add a single response header."""
        self._headers[name] = value
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set the response body (string auto-encoded to UTF-8)."""
        if isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = body
        return self

    def redirect(
        self,
        location: str,
        status: Union[HTTPStatus, int] = HTTPStatus.TEMPORARY_REDIRECT,
    ) -> "ResponseBuilder":
        """
        Turn this into a redirect response.

        =====================================================================
        REDIRECT STATUS CODES
        =====================================================================

        301 / 308  Permanent. Clients may cache the mapping.
        302 / 307  Temporary. The original URL stays canonical.
        303        Always re-issued as GET.

        Only 307 and 308 guarantee that the method and body survive,
        which is why 307 is the default here.

        =====================================================================

        Args:
            location: Absolute URL the client should go to next.
            status: A 3xx status code.
        """
        self._status = HTTPStatus(status)
        self._headers["Location"] = location
        return self

    def keep_alive(self, timeout: int = 5) -> "ResponseBuilder":
        """Tell the client it may send another request on this connection."""
        self._headers["Connection"] = "keep-alive"
        self._headers["Keep-Alive"] = f"timeout={timeout}"
        return self

    def close_connection(self) -> "ResponseBuilder":
        """Set Connection: close, the connection ends after this response."""
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        """Build and return the HTTPResponse object."""
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Wed, 01 Jan 2026 12:00:00 GMT

    HTTP dates are always GMT; ``dt`` should already be UTC.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
#     return redirect("https://github.com/foo/bar")
#     return not_found()
#
# =============================================================================

def redirect(
    location: str,
    status: Union[HTTPStatus, int] = HTTPStatus.TEMPORARY_REDIRECT,
) -> HTTPResponse:
    """Create an empty-bodied redirect response with a Location header."""
    return ResponseBuilder().redirect(location, status).build()


def not_found() -> HTTPResponse:
    """Create an empty-bodied 404 Not Found response."""
    return ResponseBuilder().status(HTTPStatus.NOT_FOUND).build()


def internal_error() -> HTTPResponse:
    """
    Create an empty-bodied 500 Internal Server Error response.

    Nothing about the failure is exposed to the client; the traceback
    goes to the log instead.
    """
    return ResponseBuilder().status(HTTPStatus.INTERNAL_SERVER_ERROR).build()


def error_response(status: Union[HTTPStatus, int]) -> HTTPResponse:
    """
    Create an empty-bodied error response that closes the connection.

    Used for failures that happen before the request reaches the handler
    (parse errors, read timeouts), after which the byte stream can no
    longer be trusted for another request.
    """
    return ResponseBuilder().status(status).close_connection().build()
