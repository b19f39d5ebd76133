"""
=============================================================================
LISTENING SOCKET (PLAIN OR TLS)
=============================================================================

Owns the one listening socket of the process: bind, listen, accept, and
hand every accepted client to a callback. When the configured scheme is
https, accepted sockets are wrapped in TLS before they are handed off.

=============================================================================
SOCKET LIFECYCLE
=============================================================================

    SocketServer(config)
        │
        ├──► create_ssl_context()  https only; bad cert/key fails HERE,
        │                          before anything is bound
        ▼
    start(callback)
        │
        ├──► socket()  + SO_REUSEADDR, SO_REUSEPORT, TCP_NODELAY
        ├──► bind()    ports < 1024 need root (80/443 usually do)
        ├──► listen()
        │
        └──► accept loop ─────────────────────────────────────────┐
                 │                                                 │
                 ▼                                                 │
             client socket ──► wrap_socket(server_side=True) ──►  │
                 │             (https; handshake deferred)         │
                 ▼                                                 │
             Connection ──► callback(conn) ───────────────────────┘

=============================================================================
WHY THE TLS HANDSHAKE IS DEFERRED
=============================================================================

wrap_socket() is called with do_handshake_on_connect=False. The handshake
is a full network round trip with a client that may be slow, broken or
simply not speaking TLS. Doing it in the accept loop would let one such
client stall every other one. Connection.handshake() runs it later on the
connection's own thread.

=============================================================================
SIGNALS
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (kill, systemd, docker stop) both trigger a
graceful shutdown: stop accepting, close the listening socket, return
from start(). Python only allows installing handlers from the main
thread, so when the server runs on another thread (tests, embedding) no
handlers are installed and shutdown() must be called directly.

=============================================================================
"""

import socket
import signal
import logging
import ssl
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig, ConfigurationError
from .connection import Connection


logger = logging.getLogger(__name__)


def create_ssl_context(certfile: str, keyfile: str) -> ssl.SSLContext:
    """
    Build a server-side TLS context from a PEM certificate and key.

    The certificate must be valid for every host name the rules redirect
    and trusted by the clients; this server does not check either.

    Raises:
        ConfigurationError: A file is missing or unreadable, or the
                            certificate and key do not load.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    try:
        context.load_cert_chain(certfile=certfile, keyfile=keyfile)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Certificate or key file not found: {e.filename or certfile}") from e
    except ssl.SSLError as e:
        raise ConfigurationError(
            f"Cannot load certificate {certfile} with key {keyfile}: {e}"
        ) from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read certificate or key: {e}") from e
    return context


class SocketServer:
    """
    TCP listener for one (host, port, scheme).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    __init__()        Store config, build TLS context if https        │
    │    start(cb)         Bind, listen, accept until shutdown()           │
    │    _accept_loop(cb)  accept → wrap → Connection → cb(conn)           │
    │    shutdown()        Ask the accept loop to stop (idempotent)        │
    │    _cleanup()        Restore signals, close listening socket         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        server = SocketServer(config)
        server.start(handle_connection)  # Blocks until shutdown
    """

    def __init__(self, config: ServerConfig):
        """
        Args:
            config: A validated configuration (scheme and port resolved).

        Raises:
            ConfigurationError: https with a certificate/key that does
                                not load.
        """
        self.config = config

        self._ssl_context: Optional[ssl.SSLContext] = None
        if config.is_tls:
            self._ssl_context = create_ssl_context(config.certfile, config.keyfile)

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._bound_address: Optional[Tuple[str, int]] = None

        # Set once the socket is listening, cleared once stopped
        self._ready_event = threading.Event()

        self._original_handlers: dict = {}

    @property
    def address(self) -> Tuple[str, int]:
        """
        The (host, port) actually listened on.

        Differs from the configured port when port 0 asked the OS to
        pick one.
        """
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restart immediately without waiting out TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        except (AttributeError, OSError):
            pass  # Not available on Windows

        # Redirect responses are tiny; send them without Nagle's delay
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up every second to check the running flag
        sock.settimeout(1.0)

        return sock

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers that call shutdown()."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(
        self,
        connection_handler: Callable[[Connection], None],
        on_listening: Optional[Callable[[], None]] = None,
    ):
        """
        Bind, listen and accept connections until shutdown() is called.

        Args:
            connection_handler: Called with each accepted Connection. It
                                must return quickly; the accept loop does
                                not accept again until it does.
            on_listening: Called once the socket is listening, before the
                          first accept.

        Raises:
            OSError: The address could not be bound (in use, or a
                     privileged port without root).
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._bound_address = self._socket.getsockname()[:2]

        self._running = True
        self._setup_signals()

        host, port = self.address
        logger.info(f"Server listening on {self.config.scheme}://{host}:{port}")

        try:
            if on_listening is not None:
                on_listening()
            self._ready_event.set()
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                # Listening socket closed under us: shutting down
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            if self._ssl_context is not None:
                try:
                    client_socket = self._ssl_context.wrap_socket(
                        client_socket,
                        server_side=True,
                        do_handshake_on_connect=False,
                    )
                except (ssl.SSLError, OSError) as e:
                    logger.warning(f"TLS setup failed for {client_address[0]}: {e}")
                    client_socket.close()
                    continue

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )

            connection_handler(conn)

    def shutdown(self):
        """
        Stop accepting connections. Safe to call from any thread, and
        more than once.

        Connections already handed off are not interrupted.
        """
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None

        self._running = False
        self._ready_event.clear()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. False on timeout."""
        return self._ready_event.wait(timeout)
