"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the redirect server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m redirector --port 443 --cert c.pem --key k.pem  │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── REDIRECT_PORT=443 python -m redirector                    │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SCHEME AND PORT
=============================================================================

One listener speaks one scheme for the life of the process. The scheme is
what goes in front of "://" when the request URL is reconstructed, so it
has to be right or no rule will match.

    SCHEME_PORTS = {"http": 80, "https": 443}

    scheme given, port omitted   → port = SCHEME_PORTS[scheme]
    port given, scheme omitted   → scheme looked up from the port
                                   (80 → http, 443 → https, else error)
    both given                   → used as-is; any port may carry
                                   either scheme (e.g. 8443 + https)
    neither given                → http on port 80

=============================================================================
FAIL-FAST PRINCIPLE
=============================================================================

Every problem that can be detected before the socket is bound is raised
as ConfigurationError from validate(). The server never starts listening
with a configuration it cannot honour.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional

from . import __version__
from .http.status_codes import REDIRECT_STATUSES


class ConfigurationError(Exception):
    """
    Raised when the server cannot start with the given configuration.

    Always fatal: the CLI reports it and exits with status 1 before any
    socket is opened.
    """


# The two schemes a listener can speak, with their conventional ports.
SCHEME_PORTS = {
    "http": 80,
    "https": 443,
}

DEFAULT_SCHEME = "http"


def scheme_for_port(port: int) -> str:
    """
    Look up the scheme conventionally served on a port.

    Raises:
        ConfigurationError: The port is neither 80 nor 443.
    """
    for scheme, scheme_port in SCHEME_PORTS.items():
        if scheme_port == port:
            return scheme
    raise ConfigurationError(
        f"Cannot infer a scheme for port {port}. "
        f"Only ports {sorted(SCHEME_PORTS.values())} map to a scheme; "
        f"pass the scheme explicitly."
    )


@dataclass
class ServerConfig:
    """
    Configuration for the redirect server.

    Development (no root needed, plain HTTP):
        ServerConfig(host="127.0.0.1", port=8080, scheme="http")

    Intercepting a real HTTPS domain (after pointing it at 127.0.0.1
    in /etc/hosts):
        ServerConfig(
            port=443,
            certfile="/etc/redirector/cert.pem",
            keyfile="/etc/redirector/key.pem",
        )
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """The IP address to bind to."""

    port: Optional[int] = None
    """Port to listen on. None = the scheme's conventional port."""

    scheme: Optional[str] = None
    """
    "http" or "https". None = inferred from the port.
    """

    backlog: int = 128
    """Maximum number of queued connections."""

    buffer_size: int = 8192
    """Size of the receive buffer in bytes."""

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds for reading the first request."""

    # ─────────────────────────────────────────────────────────────────────
    # REDIRECT SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    redirect_status: int = 307
    """
    Status sent with every redirect. 307 keeps POST as POST, which
    matters when git pushes through the redirect.
    """

    rules_file: Optional[str] = None
    """JSON rules file. None = the built-in default rules."""

    # ─────────────────────────────────────────────────────────────────────
    # TLS (https only)
    # ─────────────────────────────────────────────────────────────────────

    certfile: Optional[str] = None
    """
    PEM certificate. Must be trusted by clients and valid (subject
    alternative names) for every domain being redirected.
    """

    keyfile: Optional[str] = None
    """PEM private key matching certfile."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Allow several requests on one connection."""

    keep_alive_timeout: float = 5.0
    """Idle seconds before a kept-alive connection is closed."""

    max_request_size: int = 1024 * 1024  # 1 MB
    """Requests larger than this are rejected with 413."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG additionally traces every rule tried against every URL."""

    log_format: str = "text"
    """Access log format: 'text' or 'json'."""

    server_name: str = f"redirector/{__version__}"
    """Value of the Server response header."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        REDIRECT_HOST       Bind address (default: 127.0.0.1)
        REDIRECT_PORT       Port (default: from scheme)
        REDIRECT_SCHEME     http or https (default: from port)
        REDIRECT_STATUS     Redirect status code (default: 307)
        REDIRECT_CERTFILE   PEM certificate (https)
        REDIRECT_KEYFILE    PEM private key (https)
        REDIRECT_RULES      JSON rules file
        REDIRECT_LOG_LEVEL  Logging level (default: INFO)

        Raises:
            ConfigurationError: A numeric variable is not a number.
        """
        port = os.getenv("REDIRECT_PORT")
        status = os.getenv("REDIRECT_STATUS", "307")
        try:
            port = int(port) if port else None
            status = int(status)
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric environment variable: {e}") from e

        return cls(
            host=os.getenv("REDIRECT_HOST", "127.0.0.1"),
            port=port,
            scheme=os.getenv("REDIRECT_SCHEME") or None,
            redirect_status=status,
            certfile=os.getenv("REDIRECT_CERTFILE") or None,
            keyfile=os.getenv("REDIRECT_KEYFILE") or None,
            rules_file=os.getenv("REDIRECT_RULES") or None,
            log_level=os.getenv("REDIRECT_LOG_LEVEL", "INFO"),
        )

    @property
    def is_tls(self) -> bool:
        return self.scheme == "https"

    def resolve(self) -> "ServerConfig":
        """
        Fill in whichever of scheme/port was omitted, in place.

        Returns:
            Self, for chaining.

        Raises:
            ConfigurationError: Unknown scheme, or a port with no
                                conventional scheme and none given.
        """
        if self.scheme is not None:
            self.scheme = self.scheme.lower()
            if self.scheme not in SCHEME_PORTS:
                raise ConfigurationError(
                    f"Unsupported scheme {self.scheme!r}. "
                    f"Must be one of: {', '.join(SCHEME_PORTS)}."
                )
            if self.port is None:
                self.port = SCHEME_PORTS[self.scheme]
        elif self.port is not None:
            self.scheme = scheme_for_port(self.port)
        else:
            self.scheme = DEFAULT_SCHEME
            self.port = SCHEME_PORTS[DEFAULT_SCHEME]
        return self

    def validate(self) -> None:
        """
        Validate configuration values. Resolves scheme/port first.

        Certificate files are only checked for presence here; whether
        they actually load is decided when the TLS context is built,
        which also happens before binding.

        Raises:
            ConfigurationError: Describing the first problem found.
        """
        self.resolve()

        # Port 0 lets the OS pick a free port (tests)
        if not 0 <= self.port < 65536:
            raise ConfigurationError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.redirect_status not in REDIRECT_STATUSES:
            raise ConfigurationError(
                f"Invalid redirect status {self.redirect_status}. "
                f"Must be one of: {', '.join(map(str, sorted(REDIRECT_STATUSES)))}."
            )

        if self.is_tls:
            if not self.certfile or not self.keyfile:
                raise ConfigurationError(
                    "The https scheme needs both a certificate and a private key "
                    "(--cert/--key or REDIRECT_CERTFILE/REDIRECT_KEYFILE)."
                )
            for label, path in (("Certificate", self.certfile), ("Private key", self.keyfile)):
                if not os.path.isfile(path):
                    raise ConfigurationError(f"{label} file not found: {path}")
                if not os.access(path, os.R_OK):
                    raise ConfigurationError(f"{label} file is not readable: {path}")

        if self.log_format not in ("text", "json"):
            raise ConfigurationError(
                f"Invalid log format {self.log_format!r}. Must be 'text' or 'json'."
            )

        if self.buffer_size < 1024:
            raise ConfigurationError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError("timeout must be > 0")
