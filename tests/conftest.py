"""Shared fixtures: loopback HTTP servers with a configurable response."""

import http.server
import threading
import time

import pytest


class BlobHandler(http.server.BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def do_GET(self):
        srv = self.server
        with srv.lock:
            srv.hosts.append(self.headers.get("Host"))
            srv.requests += 1
        self.send_response(srv.status)
        self.send_header("Content-Type", "application/octet-stream")
        self.send_header("Content-Length", str(len(srv.body)))
        for name, value in srv.headers.items():
            self.send_header(name, value)
        self.send_header("Connection", "close")
        self.end_headers()
        try:
            if srv.trickle:
                for i in range(len(srv.body)):
                    self.wfile.write(srv.body[i : i + 1])
                    time.sleep(srv.trickle)
            else:
                self.wfile.write(srv.body)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def log_message(self, format, *args):
        pass  # silence logs


class BlobServer(http.server.ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, status=200, body=b""):
        super().__init__(("127.0.0.1", 0), BlobHandler)
        self.status = status
        self.body = body
        self.headers = {}
        self.trickle = 0.0  # seconds between body bytes
        self.lock = threading.Lock()
        self.hosts = []
        self.requests = 0

    @property
    def port(self):
        return self.server_address[1]

    def url(self, host="127.0.0.1", path="/blob"):
        return f"http://{host}:{self.port}{path}"


def _serve():
    server = BlobServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server


@pytest.fixture(autouse=True)
def no_proxy_env(monkeypatch):
    """Keep loopback requests away from any proxy configured in the environment."""
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def blob_server():
    """Start a server; tests set ``status``, ``body``, ``headers`` and ``trickle`` on it."""
    server = _serve()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def second_blob_server():
    server = _serve()
    yield server
    server.shutdown()
    server.server_close()
