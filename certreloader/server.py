"""
TLS server integration.

``create_server_context`` returns a server ``ssl.SSLContext`` whose SNI
callback swaps in the reloader's current pair at the start of every
handshake, so rotated certificates are served without reopening the
listener. ``ReloadingHTTPSServer`` is a small threaded HTTPS server built on
it, used by ``certreloader serve``.
"""

import json
import ssl
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Iterable, Optional, Tuple

from .config import CertReloaderConfig, TLSVersion
from .keypair import ContextFactory
from .logger import get_logger
from .observers import ReloadObserver
from .reloader import Reloader

logger = get_logger(__name__)

_TLS_VERSIONS = {
    TLSVersion.TLS_1_2: ssl.TLSVersion.TLSv1_2,
    TLSVersion.TLS_1_3: ssl.TLSVersion.TLSv1_3,
}

SNICallback = Callable[[ssl.SSLObject, Optional[str], ssl.SSLContext], None]


def context_factory(minimum_tls_version: TLSVersion = TLSVersion.TLS_1_2) -> ContextFactory:
    """Return a factory for server contexts with the given minimum version."""

    def factory() -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.minimum_version = _TLS_VERSIONS[minimum_tls_version]
        return context

    return factory


def sni_callback(reloader: Reloader) -> SNICallback:
    """
    Build an ``SSLContext.sni_callback`` that serves ``reloader.get()``.

    The callback runs for every ClientHello, with or without a server name.
    """

    def callback(ssl_object, server_name, initial_context):
        ssl_object.context = reloader.get().ssl_context
        return None

    return callback


def create_server_context(
    reloader: Reloader,
    minimum_tls_version: TLSVersion = TLSVersion.TLS_1_2,
) -> ssl.SSLContext:
    """Server context that always presents the reloader's current pair."""
    context = context_factory(minimum_tls_version)()
    reloader.get().load_into(context)
    context.sni_callback = sni_callback(reloader)
    return context


class CertificateRequestHandler(BaseHTTPRequestHandler):
    """Answers ``/`` with ``ok`` and ``/certificate`` with the active pair."""

    server: "ReloadingHTTPSServer"
    server_version = "certreloader"

    def do_GET(self):
        if self.path == "/":
            self._send(HTTPStatus.OK, "text/plain; charset=utf-8", b"ok\n")
        elif self.path == "/certificate":
            body = json.dumps(self.server.reloader.get().describe()).encode()
            self._send(HTTPStatus.OK, "application/json", body)
        else:
            self._send(HTTPStatus.NOT_FOUND, "text/plain; charset=utf-8", b"not found\n")

    def _send(self, status: HTTPStatus, content_type: str, body: bytes) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        logger.debug("HTTP request", client=self.client_address[0], message=format % args)


class ReloadingHTTPSServer(ThreadingHTTPServer):
    """Threaded HTTPS server whose certificate follows a ``Reloader``."""

    daemon_threads = True
    handshake_timeout = 10.0

    def __init__(
        self,
        server_address: Tuple[str, int],
        reloader: Reloader,
        minimum_tls_version: TLSVersion = TLSVersion.TLS_1_2,
    ):
        super().__init__(server_address, CertificateRequestHandler)
        self.reloader = reloader
        self.ssl_context = create_server_context(reloader, minimum_tls_version)
        # Handshakes run in the request thread, not in accept(), so a silent
        # client cannot hold up other connections.
        self.socket = self.ssl_context.wrap_socket(
            self.socket, server_side=True, do_handshake_on_connect=False
        )

    def finish_request(self, request, client_address):
        request.settimeout(self.handshake_timeout)
        try:
            request.do_handshake()
        except OSError as e:
            logger.debug("TLS handshake failed", client=client_address[0], error=str(e))
            return
        super().finish_request(request, client_address)

    @property
    def port(self) -> int:
        return self.server_address[1]


def serve(
    config: CertReloaderConfig,
    *,
    observers: Optional[Iterable[ReloadObserver]] = None,
    shutdown_after: Optional[float] = None,
    ready: Optional[Callable[[ReloadingHTTPSServer], None]] = None,
) -> None:
    """
    Run the example HTTPS server until interrupted.

    Args:
        config: Full configuration; ``reloader`` and ``server`` sections are used
        observers: Passed through to the ``Reloader``
        shutdown_after: Stop serving after this many seconds
        ready: Called with the server once it is listening
    """
    minimum = config.server.minimum_tls_version
    with Reloader.from_config(
        config.reloader, observers=observers, context_factory=context_factory(minimum)
    ) as reloader:
        server = ReloadingHTTPSServer((config.server.host, config.server.port), reloader, minimum)
        timer: Optional[threading.Timer] = None
        if shutdown_after is not None:
            timer = threading.Timer(shutdown_after, server.shutdown)
            timer.daemon = True
            timer.start()

        logger.info(
            "HTTPS server listening",
            host=config.server.host,
            port=server.port,
            minimum_tls_version=minimum.value,
        )
        if ready is not None:
            ready(server)
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        finally:
            if timer is not None:
                timer.cancel()
            server.server_close()
    logger.info("HTTPS server stopped")
