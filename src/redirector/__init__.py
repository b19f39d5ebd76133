"""
=============================================================================
REDIRECTOR - Rule-Based HTTP(S) Redirect Server
=============================================================================

Intercepts requests for a host name (pointed at this machine through
/etc/hosts or local DNS), rebuilds the URL the client asked for, and
answers with a redirect to wherever the first matching rule says.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   git clone https://github12321.com/foo/bar.git                      │
    │        │                                                             │
    │        │  /etc/hosts: 127.0.0.1 github12321.com                      │
    │        ▼                                                             │
    │   redirector (port 443, TLS)                                         │
    │        │                                                             │
    │        │  URL: https://github12321.com/foo/bar.git/info/refs?...     │
    │        │  rule 1 matches                                             │
    │        ▼                                                             │
    │   307 Temporary Redirect                                             │
    │   Location: https://github.com/foo/bar.git/info/refs?...             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    redirector/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m redirector)
    ├── server.py            # RedirectServer: wires everything together
    ├── config.py            # ServerConfig, SCHEME_PORTS, ConfigurationError
    ├── rules.py             # Rule, RuleSet, load_rules, DEFAULT_RULES
    ├── handler.py           # reconstruct_url, RedirectHandler
    ├── core/                # Networking
    │   ├── socket_server.py # TCP/TLS listener
    │   └── connection.py    # Per-client connection
    ├── http/                # HTTP/1.1 messages
    │   ├── request.py       # Request parsing
    │   ├── response.py      # Response building
    │   └── status_codes.py  # Status enum
    └── middleware/          # Around the handler
        ├── base.py          # Middleware, MiddlewarePipeline
        └── logging.py       # Access log

=============================================================================
QUICK START
=============================================================================

    from redirector import RedirectServer, ServerConfig, Rule, RuleSet

    rules = RuleSet([
        Rule(r"^(https?)://(example\\.com)/(.+)$",
             lambda scheme, host, path: f"{scheme}://real.com/{path}"),
    ])

    server = RedirectServer(ServerConfig(port=8080, scheme="http"), rules)
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig, ConfigurationError, SCHEME_PORTS
from .rules import Rule, RuleSet, RuleMatch, template, load_rules, DEFAULT_RULES
from .handler import RedirectHandler, RedirectDecision, reconstruct_url
from .server import RedirectServer

__all__ = [
    "RedirectServer",
    "ServerConfig",
    "ConfigurationError",
    "SCHEME_PORTS",
    "Rule",
    "RuleSet",
    "RuleMatch",
    "template",
    "load_rules",
    "DEFAULT_RULES",
    "RedirectHandler",
    "RedirectDecision",
    "reconstruct_url",
    "__version__",
]
