"""
=============================================================================
REDIRECT HANDLER
=============================================================================

Turns one parsed request into one response:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   HTTPRequest                                                        │
    │   GET /foo/bar.git  Host: github12321.com     (scheme: https)        │
    │        │                                                             │
    │        ▼                                                             │
    │   reconstruct_url() ──► "https://github12321.com/foo/bar.git"        │
    │        │                                                             │
    │        ▼                                                             │
    │   RuleSet.match()                                                    │
    │        │                                                             │
    │        ├── match ────────► 307  Location: https://github.com/...    │
    │        ├── no match ─────► 404                                       │
    │        └── synthesizer ──► 500  (traceback logged, listener lives)  │
    │            raised                                                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The handler holds no mutable state. The rules, the scheme and the
redirect status are fixed when it is created and shared by every
connection thread.

=============================================================================
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from .http.request import HTTPRequest
from .http.response import HTTPResponse, ResponseBuilder
from .http.status_codes import HTTPStatus
from .rules import RuleSet


logger = logging.getLogger(__name__)


def reconstruct_url(scheme: str, host: str, path: str) -> str:
    """
    Rebuild the URL the client asked for.

    Nothing is normalized or validated: the Host header is trusted as
    sent, and the request target keeps its query string and escapes.

        >>> reconstruct_url("https", "github12321.com", "/foo/bar.git?x=1")
        'https://github12321.com/foo/bar.git?x=1'
        >>> reconstruct_url("http", "", "/path")
        'http:///path'
    """
    return f"{scheme}://{host}{path}"


@dataclass(frozen=True)
class RedirectDecision:
    """
    What to answer a URL with, before it becomes an HTTPResponse.

    Attributes:
        status: A redirect status, 404 or 500.
        location: The redirect target; None unless redirecting.
    """

    status: HTTPStatus
    location: Optional[str] = None

    @classmethod
    def redirect(cls, location: str, status: Union[HTTPStatus, int]) -> "RedirectDecision":
        return cls(HTTPStatus(status), location)

    @classmethod
    def not_found(cls) -> "RedirectDecision":
        return cls(HTTPStatus.NOT_FOUND)

    @classmethod
    def server_error(cls) -> "RedirectDecision":
        return cls(HTTPStatus.INTERNAL_SERVER_ERROR)

    @property
    def is_redirect(self) -> bool:
        return self.location is not None

    def to_response(self) -> HTTPResponse:
        """Build the empty-bodied response for this decision."""
        builder = ResponseBuilder()
        if self.is_redirect:
            builder.redirect(self.location, self.status)
        else:
            builder.status(self.status)
        return builder.build()


class RedirectHandler:
    """
    Callable request handler: HTTPRequest → HTTPResponse.

        handler = RedirectHandler(DEFAULT_RULES, scheme="https")
        response = handler(request)

    Args:
        rules: The ordered rules to match against.
        scheme: The listener's scheme, used to rebuild the URL.
        redirect_status: Status for matched URLs (default 307).
    """

    def __init__(
        self,
        rules: RuleSet,
        scheme: str,
        redirect_status: Union[HTTPStatus, int] = HTTPStatus.TEMPORARY_REDIRECT,
    ):
        self.rules = rules
        self.scheme = scheme
        self.redirect_status = HTTPStatus(redirect_status)

    def __repr__(self) -> str:
        return (
            f"RedirectHandler(scheme={self.scheme!r}, "
            f"redirect_status={self.redirect_status.value}, rules={len(self.rules)})"
        )

    def decide(self, url: str) -> RedirectDecision:
        """
        Decide the answer for a reconstructed URL.

        Never raises. A synthesizer that fails (wrong arity, bad template,
        a bug) is logged with its traceback and answered with 500, and so
        is one that returns something unusable as a Location header.
        """
        try:
            result = self.rules.match(url)
        except Exception:
            logger.exception(f"Rule synthesis failed for URL {url}")
            return RedirectDecision.server_error()

        if result is None:
            return RedirectDecision.not_found()

        target = result.target
        if not isinstance(target, str) or not target:
            logger.error(f"Rule synthesis for URL {url} produced {target!r}, not a URL")
            return RedirectDecision.server_error()
        if "\r" in target or "\n" in target:
            logger.error(f"Rule synthesis for URL {url} produced a line break: {target!r}")
            return RedirectDecision.server_error()

        return RedirectDecision.redirect(target, self.redirect_status)

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        url = reconstruct_url(self.scheme, request.host, request.path)
        logger.info(f"Intercepted request to URL {url}")

        decision = self.decide(url)

        if decision.is_redirect:
            logger.info(f"Redirecting URL with {decision.status.value} status code.")
            logger.info(f"Old URL: {url}")
            logger.info(f"New URL: {decision.location}")
        elif decision.status == HTTPStatus.NOT_FOUND:
            logger.info("Failed to redirect as URL not handled.")
            logger.info(f"Returning response with {decision.status.value} status code.")
        else:
            logger.info(f"Returning response with {decision.status.value} status code.")

        return decision.to_response()
