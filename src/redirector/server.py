"""
=============================================================================
REDIRECT SERVER
=============================================================================

Ties the pieces together: one listener, one rule set, one redirect
handler, and a thread per client connection.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    REDIRECT SERVER ARCHITECTURE                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                       ┌──────────────────┐                           │
    │                       │  RedirectServer  │                           │
    │                       └────────┬─────────┘                           │
    │                                │                                     │
    │           ┌────────────────────┼─────────────────────┐               │
    │           ▼                    ▼                     ▼               │
    │   ┌───────────────┐   ┌────────────────┐   ┌──────────────────┐      │
    │   │ SocketServer  │   │ RequestParser  │   │ RedirectHandler  │      │
    │   │ (TCP or TLS)  │   │ bytes → request│   │ URL → 3xx / 404  │      │
    │   └───────┬───────┘   └────────────────┘   └────────┬─────────┘      │
    │           │                                         │                │
    │           ▼                                         ▼                │
    │   ┌───────────────┐                        ┌──────────────────┐      │
    │   │  Connection   │                        │     RuleSet      │      │
    │   │ (one thread)  │                        │ first match wins │      │
    │   └───────────────┘                        └──────────────────┘      │
    │                                                                      │
    │           ┌─────────────────────────────────────────┐               │
    │           │         Middleware Pipeline             │               │
    │           │      Logging → RedirectHandler          │               │
    │           └─────────────────────────────────────────┘               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. ACCEPT         SocketServer accepts, wraps in TLS if https
    2. THREAD         A daemon thread is started for the connection
    3. HANDSHAKE      TLS handshake (https only)
    4. READ + PARSE   One request; malformed → 400/413/505 and close
    5. HANDLE         Logging → RedirectHandler → 3xx / 404 / 500
    6. SEND           Empty-bodied response with Connection header
    7. KEEP-ALIVE     Back to 4, or close

=============================================================================
"""

import logging
import sys
import threading
from typing import Optional, Callable, Tuple, Union

from .config import ServerConfig
from .core import SocketServer, Connection
from .handler import RedirectHandler
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, HTTPStatus, error_response, internal_error,
)
from .middleware import MiddlewarePipeline, Middleware, LoggingMiddleware
from .rules import RuleSet, DEFAULT_RULES, load_rules


logger = logging.getLogger(__name__)


class RedirectServer:
    """
    HTTP(S) server that answers every request with a redirect or a 404.

    =========================================================================
    USAGE
    =========================================================================

        rules = RuleSet([
            Rule(r"^https?://example\\.com/(.+)/(.+)\\.git/?$",
                 lambda project, repo: f"https://real.com/{project}/{repo}"),
        ])

        server = RedirectServer(ServerConfig(port=8080, scheme="http"), rules)
        server.run()  # Blocks until Ctrl+C

    Without rules, the rules file named in the config is loaded, or the
    built-in DEFAULT_RULES when there is none.

    =========================================================================
    FAIL FAST
    =========================================================================

    Everything that can be wrong with the configuration is detected in
    __init__, before any socket exists: unknown scheme, port without a
    scheme, bad redirect status, missing or unloadable certificate,
    malformed rules file. All of them raise ConfigurationError.

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        rules: Optional[RuleSet] = None,
    ):
        """
        Args:
            config: Server configuration. Defaults to plain HTTP on port 80.
            rules: Rules to apply. Overrides config.rules_file.

        Raises:
            ConfigurationError: The server cannot start as configured.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        if rules is None:
            rules = load_rules(self.config.rules_file) if self.config.rules_file else DEFAULT_RULES
        self.rules = rules

        # Builds the TLS context for https; a bad cert fails here
        self._socket_server = SocketServer(self.config)

        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        self._redirect_handler = RedirectHandler(
            self.rules,
            scheme=self.config.scheme,
            redirect_status=self.config.redirect_status,
        )

        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware(log_format=self.config.log_format))

        # middleware.wrap(redirect_handler), built in run()
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None

        self._running = False

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def use(self, middleware: Middleware) -> "RedirectServer":
        """
        Add middleware inside the access logger. Call before run().

        Returns:
            Self for method chaining.
        """
        self._middleware.add(middleware)
        return self

    @property
    def handler(self) -> RedirectHandler:
        return self._redirect_handler

    @property
    def address(self) -> Tuple[str, int]:
        """The (host, port) being listened on, once run() has bound."""
        return self._socket_server.address

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Bind and serve until shutdown() or SIGINT/SIGTERM.

        Raises:
            OSError: The address could not be bound.
        """
        self._running = True
        self._setup_logging()

        self._handler = self._middleware.wrap(self._redirect_handler)

        logger.info(
            f"Starting redirect server on {self.config.scheme}://"
            f"{self.config.host}:{self.config.port}"
        )

        try:
            self._socket_server.start(
                self._handle_connection,
                on_listening=self._print_startup_banner,
            )
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Stop accepting connections. run() returns shortly after."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listener is accepting. False on timeout."""
        return self._socket_server.wait_until_ready(timeout)

    def _print_startup_banner(self):
        host, port = self.address
        print(f"Listening for specific {self.config.scheme.upper()} requests on {host}:{port}.")
        print("(Don't forget to redirect such domains via /etc/hosts if needed.)")
        print()
        self.rules.print_rules()
        print()
        print("Listening...")
        sys.stdout.flush()

    def _setup_logging(self):
        """Send log records to stdout at the configured level."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            stream=sys.stdout,
        )

        logging.getLogger("redirector").setLevel(level)

    def _shutdown(self):
        # Connection threads are daemons; whatever is in flight finishes
        # on its own or dies with the process.
        self._running = False
        logger.info("Server stopped")

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Serve the connection on its own daemon thread."""
        thread = threading.Thread(
            target=self._process_connection,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        thread.start()

    def _process_connection(self, conn: Connection):
        """
        Serve requests on one connection, one at a time, until it closes.

        =====================================================================
        CONNECTION LOOP
        =====================================================================

            handshake ─── fails ──► close
                │
                ▼
            read ─── closed / idle ──► close
                │    too large ──────► 413, close
                │    timeout ────────► 408, close
                ▼
            parse ── malformed ──────► 400/505, close
                │
                ▼
            handle ─ raised ─────────► 500
                │
                ▼
            send ─── failed ─────────► close
                │
                └─ keep-alive? ─ yes ─► read
                                 no ──► close

        =====================================================================
        """
        with conn:
            if not conn.handshake():
                return

            while self._running:
                try:
                    try:
                        raw_request = conn.read_request()
                    except ValueError as e:
                        logger.warning(f"[{conn.id}] {e}")
                        self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                        break

                    if raw_request is None:
                        break

                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        logger.warning(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                        self._send_error(conn, e.status_code)
                        break

                    try:
                        response = self._handler(request)
                    except Exception as e:
                        logger.exception(f"[{conn.id}] Handler error: {e}")
                        response = internal_error()

                    keep_alive = request.is_keep_alive and self.config.keep_alive

                    if keep_alive:
                        response.headers["Connection"] = "keep-alive"
                        response.headers["Keep-Alive"] = f"timeout={int(self.config.keep_alive_timeout)}"
                    else:
                        response.headers["Connection"] = "close"

                    if not conn.send_response(response.to_bytes(self.config.server_name)):
                        break

                    if not keep_alive:
                        break

                    conn.set_keep_alive()

                except TimeoutError:
                    logger.debug(f"[{conn.id}] Request read timeout")
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                    break

                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _send_error(self, conn: Connection, status: Union[HTTPStatus, int]):
        """Send an empty-bodied error that closes the connection."""
        conn.send_response(error_response(status).to_bytes(self.config.server_name))


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Startup: validate config, load rules, build TLS context, then bind
# 2. Request flow: Accept → Thread → Parse → Logging → RedirectHandler
# 3. Every request gets exactly one empty-bodied response
# 4. Shutdown: SIGINT/SIGTERM or shutdown() stops the accept loop
#
# =============================================================================
