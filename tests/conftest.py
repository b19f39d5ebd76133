"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Generator, Optional
import pytest
import trustme

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from redirector import RedirectServer, ServerConfig, Rule, RuleSet, template


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample git smart-HTTP discovery request."""
    return (
        b"GET /foo/bar.git/info/refs?service=git-upload-pack HTTP/1.1\r\n"
        b"Host: github12321.com\r\n"
        b"User-Agent: git/2.43.0\r\n"
        b"Accept: */*\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample git smart-HTTP upload-pack POST with a body."""
    body = b"0032want 0123456789abcdef0123456789abcdef01234567\n00000009done\n"
    return (
        b"POST /foo/bar.git/git-upload-pack HTTP/1.1\r\n"
        b"Host: github12321.com\r\n"
        b"Content-Type: application/x-git-upload-pack-request\r\n" +
        b"Content-Length: %d\r\n" % len(body) +
        b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def example_rules() -> RuleSet:
    """A repository rule followed by a catch-all for example.com."""
    return RuleSet([
        Rule(
            r"^https?://example.com/(.+)/(.+).git/?$",
            lambda project, repo: f"https://real.com/{project}/{repo}",
            name="repository",
        ),
        Rule(
            r"^https?://example.com/(.+)$",
            template("https://real.com/{0}"),
            name="catch-all",
        ),
    ])


@pytest.fixture
def config() -> ServerConfig:
    """Plain HTTP on an OS-assigned port."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        scheme="http",
        timeout=5.0,
        keep_alive_timeout=2.0,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class ServerThread:
    """Runs a RedirectServer in a background thread."""

    def __init__(self, server: RedirectServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Start the server and wait until it accepts connections."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        """Stop the server."""
        self.server.shutdown()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def running_server(config: ServerConfig, example_rules: RuleSet) -> Generator[ServerThread, None, None]:
    """A running http server with the example.com rules."""
    server_thread = ServerThread(RedirectServer(config, example_rules))
    server_thread.start()

    yield server_thread

    server_thread.stop()


@pytest.fixture
def start_server(config: ServerConfig) -> Generator:
    """Factory for running servers with custom rules, stopped on teardown."""
    started = []

    def _start(rules: RuleSet) -> ServerThread:
        server_thread = ServerThread(RedirectServer(config, rules))
        server_thread.start()
        started.append(server_thread)
        return server_thread

    yield _start

    for server_thread in started:
        server_thread.stop()


@pytest.fixture(scope="session")
def tls_ca() -> trustme.CA:
    """A throwaway certificate authority for https tests."""
    return trustme.CA()


@pytest.fixture
def tls_config(config: ServerConfig, tls_ca: trustme.CA, tmp_path: Path) -> ServerConfig:
    """https on an OS-assigned port, with a certificate for 127.0.0.1."""
    server_cert = tls_ca.issue_cert("127.0.0.1", "localhost", "example.com")

    certfile = tmp_path / "cert.pem"
    keyfile = tmp_path / "key.pem"
    server_cert.cert_chain_pems[0].write_to_path(str(certfile))
    server_cert.private_key_pem.write_to_path(str(keyfile))

    config.scheme = "https"
    config.certfile = str(certfile)
    config.keyfile = str(keyfile)
    return config
