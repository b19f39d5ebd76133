"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into structured HTTPRequest objects.
Implements the parts of RFC 7230 a redirector needs.

=============================================================================
WHAT A REDIRECTOR READS FROM A REQUEST
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    GET /foo/bar.git/info/refs?service=git-upload-pack HTTP/1.1      │
    │    ─┬─ ─────────────────────┬───────────────────────  ───┬────      │
    │     │                       │                            │          │
    │   Method            Request target                    Version       │
    │   (logged)          (kept VERBATIM)                  (keep-alive)   │
    │                                                                      │
    │    Host: github12321.com          ◄── becomes the URL's authority   │
    │    User-Agent: git/2.43.0                                           │
    │    Content-Length: 0              ◄── how many body bytes to skip   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The full URL the client believes it is talking to is rebuilt as

    {scheme}://{Host header}{request target}

so the request target must reach the handler exactly as the client sent
it. Unlike a file server, this parser does NOT percent-decode the path,
does NOT split off the query string and does NOT reject "..": any of
those would change the URL that the rules are matched against.

=============================================================================
PARSING CHALLENGES
=============================================================================

1. LINE ENDINGS: HTTP uses CRLF (\r\n). Headers end with \r\n\r\n.

2. CASE SENSITIVITY:
   - Methods are UPPERCASE (case-sensitive)
   - Header names are case-INSENSITIVE ("Host" = "host")

3. BODY DETECTION:
   - Content-Length tells us how many bytes belong to this request
   - Transfer-Encoding: chunked is not decoded; such a connection is
     closed after the response instead of being reused

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the HTTP status code that should be returned to the client:

        400 Bad Request                - Malformed request syntax
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code  # HTTP status to return


@dataclass
class HTTPRequest:
    """
    Represents a parsed HTTP request.

    Created by the parser once per request, consumed by the handler,
    discarded after the response is written.

    Attributes:
        method:         The HTTP method (GET, POST, ...). Any method is
                        redirected; 307 keeps it intact on the client side.
        path:           The request target exactly as received, query
                        string included: "/foo/bar.git?x=1".
        version:        "HTTP/1.1" or "HTTP/1.0". Affects keep-alive.
        headers:        Header dict with LOWERCASE keys.
        body:           Raw body bytes (read only to keep the stream aligned).
        client_address: (ip, port) of the peer, for the access log.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    client_address: tuple[str, int] = ("", 0)

    @property
    def host(self) -> str:
        """
        Get the Host header value.

        Trusted as supplied. Filtering by domain happens in the rules,
        not here.
        """
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Check if this connection should be kept alive.

        HTTP/1.1 keeps alive unless "Connection: close" is sent.
        HTTP/1.0 closes unless "Connection: keep-alive" is sent.

        A chunked body is never decoded, so the bytes following this
        request cannot be trusted: such connections always close.
        """
        if "transfer-encoding" in self.headers:
            return False

        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Get a header value (case-insensitive lookup)."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        Raw Request Bytes
              │
              ▼
        1. Size check ─────────── too large? → HTTPParseError(413)
        2. Find \r\n\r\n ──────── missing?   → HTTPParseError(400)
        3. Request line ───────── METHOD SP TARGET SP VERSION
                                  invalid?   → HTTPParseError(400/505)
        4. Headers ────────────── "Name: Value", names lowercased
        5. Body ───────────────── Content-Length bytes
              │
              ▼
        HTTPRequest
    """

    # Compiled once at class load time. Targets may not contain spaces or
    # control characters; header lines allow HTAB as the only control.
    REQUEST_LINE_PATTERN = re.compile(r"([A-Z]+) ([^\x00-\x20\x7f]+) (HTTP/\d\.\d)")
    HEADER_PATTERN = re.compile(r"([^:]+):\s*(.*)")
    CONTROL_CHARS = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_request_size: int = 1024 * 1024):
        """
        Args:
            max_request_size: Maximum allowed request size in bytes.
                              Larger requests are rejected with 413.
        """
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: Raw HTTP request bytes from socket.
            client_address: Client's (ip, port) tuple for logging.

        Returns:
            Parsed HTTPRequest object.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # errors="replace" never raises; undecodable bytes become U+FFFD
        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")

        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError(
                f"Invalid Content-Length: {headers['content-length']!r}"
            )
        if content_length < 0:
            raise HTTPParseError(f"Invalid Content-Length: {content_length}")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=target,
            version=version,
            headers=headers,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        """
        Parse the HTTP request line.

            "GET /foo/bar.git HTTP/1.1"
             ─┬─ ──────┬───── ────┬───
              │        │          │
            Method   Target    Version

        Returns:
            Tuple of (method, target, version). The target is untouched.

        Raises:
            HTTPParseError: If the line is malformed (400) or the version
                            is not 1.0/1.1 (505).
        """
        match = self.REQUEST_LINE_PATTERN.fullmatch(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, target, version = match.groups()

        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        return method, target, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse HTTP headers into a dictionary.

        - Names are normalized to lowercase.
        - Lines starting with whitespace continue the previous header
          (obsolete line folding, still accepted).
        - Repeated headers are joined with ", " per RFC 7230.
        - Malformed lines are skipped (lenient parsing), but a line with
          a control character other than HTAB is rejected with 400.

        Returns:
            Dictionary of header name → value (names are lowercase).
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if self.CONTROL_CHARS.search(line):
                raise HTTPParseError(f"Invalid character in header line: {line!r}")

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.fullmatch(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()

            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 1024 * 1024
) -> HTTPRequest:
    """
    Convenience function to parse an HTTP request in one call.

    Use RequestParser directly to parse many requests with the same settings.
    """
    parser = RequestParser(max_request_size=max_size)
    return parser.parse(data, client_address)
