"""
=============================================================================
REDIRECTOR CLI ENTRY POINT
=============================================================================

    # Plain HTTP on port 80 with the built-in rules (needs root)
    sudo python -m redirector

    # HTTPS on 443: scheme is inferred from the port
    sudo python -m redirector --port 443 --cert cert.pem --key key.pem

    # Unprivileged development listener
    python -m redirector --port 8080 --scheme http --rules rules.json

    # Trace every rule tried against every URL
    python -m redirector --port 8080 --scheme http --debug

Every option can also come from the environment (REDIRECT_PORT,
REDIRECT_CERTFILE, ...). Command-line arguments win.

Exit status is 1 when the server cannot start (bad configuration, port
in use, no permission to bind).

=============================================================================
"""

import argparse
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig, ConfigurationError, SCHEME_PORTS
from .server import RedirectServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="redirector",
        description="Redirect intercepted HTTP(S) requests according to URL rules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  redirector                                          # http on port 80
  redirector --port 443 --cert c.pem --key k.pem      # https on port 443
  redirector -p 8080 --scheme http -r rules.json      # custom rules
  redirector -p 8080 --scheme http --status 308       # permanent redirects
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 80 for http, 443 for https)"
    )

    parser.add_argument(
        "--scheme",
        choices=sorted(SCHEME_PORTS),
        default=None,
        help="Scheme the listener speaks (default: inferred from the port)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # REDIRECT ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--status", "-s",
        type=int,
        default=None,
        help="Redirect status code: 301, 302, 303, 307 or 308 (default: 307)"
    )

    parser.add_argument(
        "--rules", "-r",
        default=None,
        help="JSON rules file (default: built-in github rules)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # TLS ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--cert",
        default=None,
        help="PEM certificate for https"
    )

    parser.add_argument(
        "--key",
        default=None,
        help="PEM private key for https"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Access log format (default: text)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Same as --log-level DEBUG: log every rule tried"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"redirector {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """
    Environment first, then whatever was given on the command line.

    Raises:
        ConfigurationError: A REDIRECT_* variable is malformed.
    """
    config = ServerConfig.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "scheme": args.scheme,
        "redirect_status": args.status,
        "rules_file": args.rules,
        "certfile": args.cert,
        "keyfile": args.key,
        "log_level": "DEBUG" if args.debug else args.log_level,
        "log_format": args.log_format,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    return config


def main(argv: Optional[Sequence[str]] = None):
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        server = RedirectServer(config)
        server.run()
    except (ConfigurationError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
