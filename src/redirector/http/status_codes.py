"""
=============================================================================
HTTP STATUS CODES (RFC 7231)
=============================================================================

The status codes a redirector can put on the wire, with reason phrases.

=============================================================================
WHAT THIS SERVER SENDS
=============================================================================

    ┌────────────────────────────────────────────────────────────────────┐
    │                    STATUS CODES IN USE                             │
    ├────────┬───────────────────────────────────────────────────────────┤
    │  3xx   │ REDIRECTION: a rule matched                               │
    │        │                                                           │
    │        │ 301 Moved Permanently  - method may become GET            │
    │        │ 302 Found              - method may become GET            │
    │        │ 303 See Other          - always followed with GET         │
    │        │ 307 Temporary Redirect - method and body preserved        │
    │        │ 308 Permanent Redirect - method and body preserved        │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ CLIENT ERROR                                              │
    │        │                                                           │
    │        │ 400 Bad Request   - request line / headers unreadable     │
    │        │ 404 Not Found     - no rule matched the URL               │
    │        │ 408 Request Timeout - client never finished the request   │
    │        │ 413 Payload Too Large                                     │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ SERVER ERROR                                              │
    │        │                                                           │
    │        │ 500 Internal Error - a rule's synthesizer raised          │
    │        │ 505 HTTP Version Not Supported                            │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
WHY 307 BY DEFAULT?
=============================================================================

301 and 302 were historically implemented by browsers as "re-issue the
request as GET", which silently drops the body of a POST. 307 and 308 were
added to forbid that rewrite. Since this server sits in front of tools like
git that POST to the redirected host, 307 keeps those requests intact.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare and format as plain integers:

        >>> HTTPStatus.TEMPORARY_REDIRECT == 307
        True
        >>> HTTPStatus(404).phrase
        'Not Found'
    """

    # 2xx SUCCESS
    OK = 200

    # 3xx REDIRECTION
    MOVED_PERMANENTLY = 301     # Resource moved permanently (update bookmarks)
    FOUND = 302                 # Resource temporarily at different URL
    SEE_OTHER = 303             # Redirect to GET another URL (after POST)
    TEMPORARY_REDIRECT = 307    # Like 302 but preserves HTTP method
    PERMANENT_REDIRECT = 308    # Like 301 but preserves HTTP method

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    NOT_FOUND = 404
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

            HTTP/1.1 307 Temporary Redirect
                     ─── ──────────────────
                      │          │
                      │          └── Reason phrase
                      └───────────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_redirect(self) -> bool:
        """Check if this is a 3xx (redirection) status code."""
        return 300 <= self < 400

    @property
    def is_error(self) -> bool:
        """Check if this is an error status code (4xx or 5xx)."""
        return self >= 400


# Statuses a rule match may be answered with. 300 and 304 are 3xx but do not
# send the client to the Location header.
REDIRECT_STATUSES = frozenset({
    HTTPStatus.MOVED_PERMANENTLY,
    HTTPStatus.FOUND,
    HTTPStatus.SEE_OTHER,
    HTTPStatus.TEMPORARY_REDIRECT,
    HTTPStatus.PERMANENT_REDIRECT,
})


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",

    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.SEE_OTHER: "See Other",
    HTTPStatus.TEMPORARY_REDIRECT: "Temporary Redirect",
    HTTPStatus.PERMANENT_REDIRECT: "Permanent Redirect",

    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",

    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
