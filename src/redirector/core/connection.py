"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket (plain or TLS) with what the redirect
loop needs: read exactly one HTTP request at a time, write a response,
close cleanly.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

recv() returns whatever has arrived, not one request. A request line may
be split across reads, or two pipelined requests may arrive in one:

    recv() → b"GET /foo/bar.g"
    recv() → b"it HTTP/1.1\r\nHost: github12321.com\r\n\r\nGET /x HT"
                                                          ───┬──────
                                  start of the NEXT request ─┘

So bytes are buffered until the header terminator (\r\n\r\n) is seen,
then Content-Length more bytes are read for the body, and whatever
follows stays in the buffer for the next read_request() call.

=============================================================================
CONNECTION LIFECYCLE
=============================================================================

    NEW ──► HANDSHAKING (TLS only) ──► READING ──► PROCESSING ──► WRITING
                                          ▲                         │
                                          │     keep-alive          │
                                          └──── KEEP_ALIVE ◄────────┤
                                                                    │
                                               CLOSING ◄────────────┘
                                                  │
                                                  ▼
                                               CLOSED

The first request gets the full read timeout (30 s by default). A
kept-alive connection only waits keep_alive_timeout (5 s) for the next
one; running out of that is a normal end of conversation, not an error.

=============================================================================
"""

import socket
import ssl
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Where a connection is in its lifecycle, for logs."""
    NEW = "new"
    HANDSHAKING = "handshaking"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    One client connection.

    Attributes:
        socket: The client socket; an ssl.SSLSocket on an https listener.
        address: Client's (ip, port) tuple.
        id: Short identifier used to tag log lines.
        state: Current ConnectionState.
        requests_handled: Requests read so far on this connection.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def is_tls(self) -> bool:
        return isinstance(self.socket, ssl.SSLSocket)

    # =========================================================================
    # TLS
    # =========================================================================

    def handshake(self) -> bool:
        """
        Complete the TLS handshake on an https connection.

        A no-op returning True for plain sockets. Runs under the normal
        read timeout, so a client that connects and stays silent cannot
        hold the thread forever.

        Returns:
            True if the connection is ready for HTTP, False if the
            handshake failed (the caller should just close).
        """
        if not self.is_tls:
            return True

        self.state = ConnectionState.HANDSHAKING
        try:
            self.socket.do_handshake()
        except socket.timeout:
            logger.debug(f"[{self.id}] TLS handshake timed out")
            return False
        except (ssl.SSLError, OSError) as e:
            # Typically a client that does not trust the certificate
            logger.warning(f"[{self.id}] TLS handshake with {self.client_ip} failed: {e}")
            return False

        return True

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read exactly one HTTP request (headers plus Content-Length body).

        Bytes beyond the request are kept for the next call.

        Returns:
            The request bytes, or None when the client closed the
            connection (or went quiet on a kept-alive one).

        Raises:
            TimeoutError: The first request did not arrive in time.
            ValueError: The request grew past max_request_size.
        """
        self.state = ConnectionState.READING

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None

                self._buffer += chunk

                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise ValueError(f"Request too large: {body_start + content_length} bytes")

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # Short body; the parser reports it
                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.state = ConnectionState.PROCESSING

            return request_data

        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            if self.state != ConnectionState.CLOSED:
                self.socket.settimeout(self.timeout)

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
            return data
        except (ConnectionResetError, BrokenPipeError, ssl.SSLError):
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """
        Find Content-Length in raw header bytes, 0 if absent.

        An unparseable value also gives 0 here; RequestParser rejects it
        with 400 once the headers are parsed properly.
        """
        try:
            header_str = headers.decode("utf-8", errors="replace").lower()
            for line in header_str.split("\r\n"):
                if line.startswith("content-length:"):
                    return max(int(line.split(":", 1)[1].strip()), 0)
        except (ValueError, IndexError):
            pass
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send a serialized response with sendall().

        Returns:
            True if sent, False if the client had already gone.
        """
        self.state = ConnectionState.WRITING

        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def set_keep_alive(self):
        """Mark the connection as waiting for its next request."""
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close gracefully: send FIN, drain what the client still sends,
        release the descriptor. Safe to call twice.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except (socket.timeout, OSError):
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
