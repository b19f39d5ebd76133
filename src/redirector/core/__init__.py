"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing underneath the redirect logic.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Binds one host:port and accepts connections                      │
    │  • Wraps accepted sockets in TLS on an https listener               │
    │  • Graceful shutdown on SIGTERM / SIGINT                            │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ One thread per connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Deferred TLS handshake                                           │
    │  • Buffered reading of one request at a time                        │
    │  • Keep-alive with a short idle timeout                             │
    └─────────────────────────────────────────────────────────────────────┘

Each request costs one rule lookup and a header-only response, so a
plain thread per connection is enough; there is no worker pool.

=============================================================================
"""

from .socket_server import SocketServer, create_ssl_context
from .connection import Connection, ConnectionState

__all__ = [
    "SocketServer",        # TCP/TLS listener
    "create_ssl_context",  # cert + key → ssl.SSLContext
    "Connection",          # Client socket wrapper
    "ConnectionState",     # Connection lifecycle states
]
