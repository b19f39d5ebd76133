"""
Integration tests: a real RedirectServer on a real socket.
"""

import http.client
import json
import socket
import ssl
import time
from pathlib import Path

import pytest

from redirector import (
    RedirectServer, ServerConfig, ConfigurationError,
    Rule, RuleSet, load_rules, DEFAULT_RULES,
)
from redirector.__main__ import main, config_from_args, build_parser


def get(port: int, path: str, host: str = "example.com", method: str = "GET"):
    conn = http.client.HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request(method, path, headers={"Host": host})
        response = conn.getresponse()
        body = response.read()
        return response, body
    finally:
        conn.close()


def send_raw(port: int, data: bytes) -> bytes:
    with socket.create_connection(("127.0.0.1", port), timeout=5) as sock:
        sock.sendall(data)
        chunks = []
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def port_is_free(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind(("127.0.0.1", port))
        except OSError:
            return False
    return True


class TestRedirects:
    """End-to-end redirect behavior."""

    def test_repository_redirect(self, running_server):
        response, body = get(running_server.port, "/foo/bar.git")

        assert response.status == 307
        assert response.reason == "Temporary Redirect"
        assert response.getheader("Location") == "https://real.com/foo/bar"
        assert body == b""
        assert response.getheader("Content-Length") == "0"
        assert response.getheader("Server").startswith("redirector/")
        assert response.getheader("Date")

    def test_catch_all_redirect(self, running_server):
        response, _ = get(running_server.port, "/randompage")

        assert response.status == 307
        assert response.getheader("Location") == "https://real.com/randompage"

    def test_unhandled_host_404(self, running_server):
        response, body = get(running_server.port, "/foo/bar.git", host="other.com")

        assert response.status == 404
        assert body == b""
        assert response.getheader("Location") is None

    def test_post_redirected(self, running_server):
        conn = http.client.HTTPConnection("127.0.0.1", running_server.port, timeout=5)
        try:
            conn.request("POST", "/foo/bar.git", body=b"payload", headers={"Host": "example.com"})
            response = conn.getresponse()
            response.read()
        finally:
            conn.close()

        assert response.status == 307
        assert response.getheader("Location") == "https://real.com/foo/bar"


class TestConnectionHandling:
    """Keep-alive, malformed input and error isolation."""

    def test_keep_alive_sequence(self, running_server):
        conn = http.client.HTTPConnection("127.0.0.1", running_server.port, timeout=5)
        try:
            conn.request("GET", "/foo/bar.git", headers={"Host": "example.com"})
            first = conn.getresponse()
            first.read()

            conn.request("GET", "/nope", headers={"Host": "other.com"})
            second = conn.getresponse()
            second.read()

            conn.request("GET", "/x", headers={"Host": "example.com"})
            third = conn.getresponse()
            third.read()
        finally:
            conn.close()

        assert first.getheader("Connection") == "keep-alive"
        assert (first.status, second.status, third.status) == (307, 404, 307)
        assert third.getheader("Location") == "https://real.com/x"

    def test_pipelined_requests(self, running_server):
        raw = (
            b"GET /a HTTP/1.1\r\nHost: example.com\r\n\r\n"
            b"GET /b HTTP/1.1\r\nHost: example.com\r\nConnection: close\r\n\r\n"
        )

        data = send_raw(running_server.port, raw)

        assert data.count(b"HTTP/1.1 307 Temporary Redirect\r\n") == 2
        assert data.index(b"Location: https://real.com/a") < data.index(b"Location: https://real.com/b")

    def test_connection_close_honored(self, running_server):
        data = send_raw(
            running_server.port,
            b"GET /x HTTP/1.1\r\nHost: example.com\r\nConnection: close\r\n\r\n",
        )

        assert data.startswith(b"HTTP/1.1 307 ")
        assert b"Connection: close\r\n" in data

    def test_http_10_closes(self, running_server):
        data = send_raw(running_server.port, b"GET /x HTTP/1.0\r\nHost: example.com\r\n\r\n")

        assert data.startswith(b"HTTP/1.1 307 ")
        assert b"Connection: close\r\n" in data

    def test_chunked_request_closes(self, running_server):
        data = send_raw(
            running_server.port,
            b"POST /x HTTP/1.1\r\nHost: example.com\r\nTransfer-Encoding: chunked\r\n\r\n0\r\n\r\n",
        )

        assert data.startswith(b"HTTP/1.1 307 ")
        assert b"Connection: close\r\n" in data

    def test_malformed_request_400(self, running_server):
        data = send_raw(running_server.port, b"NONSENSE\r\n\r\n")

        assert data.startswith(b"HTTP/1.1 400 Bad Request\r\n")
        assert b"Connection: close\r\n" in data
        assert data.endswith(b"\r\n\r\n")

    def test_unsupported_version_505(self, running_server):
        data = send_raw(running_server.port, b"GET / HTTP/3.0\r\nHost: example.com\r\n\r\n")

        assert data.startswith(b"HTTP/1.1 505 ")

    def test_server_survives_bad_clients(self, running_server):
        send_raw(running_server.port, b"NONSENSE\r\n\r\n")

        # Connect and hang up without sending anything
        with socket.create_connection(("127.0.0.1", running_server.port), timeout=5):
            pass

        response, _ = get(running_server.port, "/foo/bar.git")
        assert response.status == 307


class TestConnectionErrors:
    """Errors raised while reading from the socket."""

    def test_oversized_request_413(self, config, start_server, example_rules):
        config.max_request_size = 1024
        server_thread = start_server(example_rules)

        data = send_raw(
            server_thread.port,
            b"GET / HTTP/1.1\r\nHost: example.com\r\nX-Large: " + b"A" * 4096 + b"\r\n\r\n",
        )

        assert data.startswith(b"HTTP/1.1 413 Payload Too Large\r\n")
        assert b"Connection: close\r\n" in data

    def test_silent_client_408(self, config, start_server, example_rules):
        config.timeout = 0.5
        server_thread = start_server(example_rules)

        with socket.create_connection(("127.0.0.1", server_thread.port), timeout=5) as sock:
            data = sock.recv(4096)

        assert data.startswith(b"HTTP/1.1 408 Request Timeout\r\n")
        assert b"Connection: close\r\n" in data

    def test_line_break_in_target_400(self, start_server):
        """Line breaks in the target never reach a Location header."""
        server_thread = start_server(DEFAULT_RULES)

        data = send_raw(
            server_thread.port,
            b"GET /foo/bar\nSet-Cookie:pwned=1\nX:.git HTTP/1.1\r\n"
            b"Host: github12321.com\r\n\r\n",
        )

        assert data.startswith(b"HTTP/1.1 400 Bad Request\r\n")
        assert b"Set-Cookie" not in data
        assert b"Location" not in data

    def test_line_break_in_host_400(self, running_server):
        data = send_raw(
            running_server.port,
            b"GET /x HTTP/1.1\r\nHost: example.com\nSet-Cookie: pwned=1\r\n\r\n",
        )

        assert data.startswith(b"HTTP/1.1 400 Bad Request\r\n")
        assert b"Set-Cookie" not in data


class TestTLS:
    """Serving over https with a real certificate."""

    def test_https_redirect(self, tls_config, tls_ca, start_server, example_rules):
        server_thread = start_server(example_rules)
        context = ssl.create_default_context()
        tls_ca.configure_trust(context)

        conn = http.client.HTTPSConnection("127.0.0.1", server_thread.port, timeout=5, context=context)
        try:
            conn.request("GET", "/foo/bar.git", headers={"Host": "example.com"})
            first = conn.getresponse()
            first.read()

            conn.request("GET", "/randompage", headers={"Host": "example.com"})
            second = conn.getresponse()
            second.read()
        finally:
            conn.close()

        assert first.status == 307
        assert first.getheader("Location") == "https://real.com/foo/bar"
        assert second.status == 307
        assert second.getheader("Location") == "https://real.com/randompage"

    def test_https_scheme_in_reconstructed_url(self, tls_config, tls_ca, start_server):
        """Rules written for https:// only match on the TLS listener."""
        server_thread = start_server(RuleSet([
            Rule(r"^https://example\.com/(.+)$", lambda path: f"https://real.com/{path}"),
        ]))
        context = ssl.create_default_context()
        tls_ca.configure_trust(context)

        conn = http.client.HTTPSConnection("127.0.0.1", server_thread.port, timeout=5, context=context)
        try:
            conn.request("GET", "/x", headers={"Host": "example.com"})
            response = conn.getresponse()
            response.read()
        finally:
            conn.close()

        assert response.status == 307
        assert response.getheader("Location") == "https://real.com/x"

    def test_plaintext_client_does_not_stop_listener(self, tls_config, tls_ca, start_server, example_rules):
        server_thread = start_server(example_rules)

        # A failed handshake only closes that connection
        try:
            send_raw(server_thread.port, b"GET / HTTP/1.1\r\nHost: example.com\r\n\r\n")
        except OSError:
            pass

        context = ssl.create_default_context()
        tls_ca.configure_trust(context)
        conn = http.client.HTTPSConnection("127.0.0.1", server_thread.port, timeout=5, context=context)
        try:
            conn.request("GET", "/foo/bar.git", headers={"Host": "example.com"})
            response = conn.getresponse()
            response.read()
        finally:
            conn.close()

        assert response.status == 307


class TestSynthesisFailure:
    """A broken rule costs one 500, not the listener."""

    def test_500_then_keeps_serving(self, start_server):
        server_thread = start_server(RuleSet([
            Rule(r"^http://example\.com/broken/(.+)/(.+)$", lambda only_one: only_one),
            Rule(r"^http://example\.com/(.+)$", lambda path: f"https://real.com/{path}"),
        ]))

        broken, body = get(server_thread.port, "/broken/a/b")
        fine, _ = get(server_thread.port, "/fine")

        assert broken.status == 500
        assert body == b""
        assert fine.status == 307
        assert fine.getheader("Location") == "https://real.com/fine"


class TestStartup:
    """Fail-fast configuration checks and startup output."""

    def test_nonexistent_certificate_fails_before_bind(self, free_port, tmp_path):
        config = ServerConfig(
            port=free_port,
            scheme="https",
            certfile=str(tmp_path / "nonexistent.pem"),
            keyfile=str(tmp_path / "nonexistent.key"),
        )

        with pytest.raises(ConfigurationError):
            RedirectServer(config, RuleSet())

        assert port_is_free(free_port)

    def test_unloadable_certificate(self, free_port, tmp_path):
        cert = tmp_path / "cert.pem"
        key = tmp_path / "key.pem"
        cert.write_text("-----BEGIN CERTIFICATE-----\nnot a certificate\n-----END CERTIFICATE-----\n")
        key.write_text("not a key\n")

        config = ServerConfig(port=free_port, scheme="https", certfile=str(cert), keyfile=str(key))

        with pytest.raises(ConfigurationError, match="Cannot load certificate"):
            RedirectServer(config, RuleSet())

        assert port_is_free(free_port)

    def test_unknown_scheme(self):
        with pytest.raises(ConfigurationError):
            RedirectServer(ServerConfig(port=8080, scheme="gopher"), RuleSet())

    def test_rules_file_loaded(self, config, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps([{"pattern": r"^http://example\.com/(.+)$", "target": "https://real.com/{0}"}]))
        config.rules_file = str(path)

        server = RedirectServer(config)

        assert server.rules.resolve("http://example.com/x") == "https://real.com/x"

    def test_example_rules_file_matches_defaults(self):
        rules = load_rules(Path(__file__).parents[2] / "rules.example.json")

        assert rules.patterns == DEFAULT_RULES.patterns
        url = "https://github12321.com/foo/bar.git/info/refs?service=git-upload-pack"
        assert rules.resolve(url) == DEFAULT_RULES.resolve(url)

    def test_handler_follows_config(self, config, example_rules):
        config.redirect_status = 308
        server = RedirectServer(config, example_rules)

        assert server.handler.scheme == "http"
        assert server.handler.redirect_status == 308
        assert server.handler.rules is example_rules

    def test_default_rules(self, config):
        server = RedirectServer(config)

        assert server.rules.resolve("http://github12321.com/foo/bar.git") == "http://github.com/foo/bar.git"

    def test_bound_port_reported(self, running_server):
        host, port = running_server.server.address

        assert host == "127.0.0.1"
        assert port != 0

    def test_startup_banner(self, config, example_rules, capsys):
        server = RedirectServer(config, example_rules)
        server._print_startup_banner()

        out = capsys.readouterr().out
        assert "Listening for specific HTTP requests on 127.0.0.1:0." in out
        assert "/etc/hosts" in out
        assert "1. '^https?://example.com/(.+)/(.+).git/?$'" in out
        assert out.rstrip().endswith("Listening...")

    def test_shutdown_stops_accepting(self, start_server, example_rules):
        server_thread = start_server(example_rules)
        port = server_thread.port

        server_thread.stop()
        time.sleep(0.1)

        with pytest.raises(OSError):
            socket.create_connection(("127.0.0.1", port), timeout=1).close()


class TestCLI:
    """The python -m redirector entry point."""

    def test_cli_overrides_env(self, monkeypatch):
        monkeypatch.setenv("REDIRECT_PORT", "80")
        monkeypatch.setenv("REDIRECT_STATUS", "301")

        args = build_parser().parse_args(["--port", "8443", "--scheme", "https", "--debug"])
        config = config_from_args(args)

        assert config.port == 8443
        assert config.scheme == "https"
        assert config.redirect_status == 301
        assert config.log_level == "DEBUG"

    def test_configuration_error_exits_1(self, capsys, monkeypatch):
        monkeypatch.delenv("REDIRECT_SCHEME", raising=False)

        with pytest.raises(SystemExit) as exc_info:
            main(["--port", "8080"])

        assert exc_info.value.code == 1
        assert capsys.readouterr().err.startswith("Error: ")

    def test_missing_certificate_exits_1(self, capsys, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main([
                "--port", "8443", "--scheme", "https",
                "--cert", str(tmp_path / "nope.pem"), "--key", str(tmp_path / "nope.key"),
            ])

        assert exc_info.value.code == 1
        assert "not found" in capsys.readouterr().err

    def test_bad_rules_file_exits_1(self, capsys, tmp_path):
        rules = tmp_path / "rules.json"
        rules.write_text("{oops")

        with pytest.raises(SystemExit) as exc_info:
            main(["--port", "8080", "--scheme", "http", "--rules", str(rules)])

        assert exc_info.value.code == 1
        assert "Invalid JSON" in capsys.readouterr().err
