"""
Integration test specific fixtures.

These tests run a real HTTPS listener on 127.0.0.1 and perform TLS
handshakes against it.
"""

import json
import socket
import ssl
import threading
from collections.abc import Callable, Generator

import pytest
from cryptography import x509

from certreloader.server import ReloadingHTTPSServer


class TLSClient:
    """Minimal client that records which certificate the server presented."""

    def __init__(self, port: int):
        self.port = port
        self.context = ssl.create_default_context()
        self.context.check_hostname = False
        self.context.verify_mode = ssl.CERT_NONE

    def peer_certificate(self) -> x509.Certificate:
        with socket.create_connection(("127.0.0.1", self.port), timeout=5) as raw:
            with self.context.wrap_socket(raw, server_hostname="localhost") as tls:
                return x509.load_der_x509_certificate(tls.getpeercert(binary_form=True))

    def get(self, path: str) -> tuple[int, bytes]:
        with socket.create_connection(("127.0.0.1", self.port), timeout=5) as raw:
            with self.context.wrap_socket(raw, server_hostname="localhost") as tls:
                tls.sendall(f"GET {path} HTTP/1.0\r\nHost: localhost\r\n\r\n".encode())
                response = b""
                while chunk := tls.recv(4096):
                    response += chunk
        head, _, body = response.partition(b"\r\n\r\n")
        status = int(head.split(b" ", 2)[1])
        return status, body

    def get_json(self, path: str) -> dict:
        status, body = self.get(path)
        assert status == 200
        return json.loads(body)


@pytest.fixture
def https_server(make_reloader) -> Generator[Callable[..., tuple[ReloadingHTTPSServer, TLSClient]], None, None]:
    """Start a ReloadingHTTPSServer on an ephemeral port."""
    started: list[tuple[ReloadingHTTPSServer, threading.Thread]] = []

    def start(**reloader_kwargs) -> tuple[ReloadingHTTPSServer, TLSClient]:
        reloader = make_reloader(**reloader_kwargs)
        server = ReloadingHTTPSServer(("127.0.0.1", 0), reloader)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        started.append((server, thread))
        return server, TLSClient(server.port)

    yield start

    for server, thread in started:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)
