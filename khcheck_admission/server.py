"""
HTTPS server that exposes the admission validator to the Kubernetes API server.
"""

from __future__ import annotations

import io
import logging
import ssl
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional
from urllib.parse import urlsplit

from .config import ServerConfig
from .errors import AdmissionError
from .validator import AdmissionValidator, InboundRequest, ResponseSink


logger = logging.getLogger(__name__)

MAX_DRAIN_BYTES = 1 << 20


class _CountingReader:
    def __init__(self, stream):
        self.stream = stream
        self.consumed = 0

    def read(self, size=-1):
        data = self.stream.read(size)
        self.consumed += len(data)
        return data


class HandlerResponseSink(ResponseSink):
    """Writes straight to a ``BaseHTTPRequestHandler`` connection."""

    def __init__(self, handler: BaseHTTPRequestHandler, content_type: str):
        self.handler = handler
        self.content_type = content_type
        self.status: Optional[int] = None
        self.headers_sent = False

    def write_header(self, status: int) -> None:
        if self.status is not None:
            logger.warning("superfluous write_header(%d), status already %d", status, self.status)
            return
        self.status = int(status)

    def write(self, data: bytes) -> None:
        if not self.headers_sent:
            if self.status is None:
                self.status = HTTPStatus.OK
            self.handler.send_response(self.status)
            self.handler.send_header("Content-Type", self.content_type)
            self.handler.send_header("Content-Length", str(len(data)))
            self.handler.end_headers()
            self.headers_sent = True
        self.handler.wfile.write(data)

    def finish(self, failed: bool = False) -> None:
        """Send headers for a response that never wrote a body.

        A failed call that never set a status answers 500, never 200.
        """
        if self.headers_sent:
            return
        if self.status is None:
            self.status = HTTPStatus.INTERNAL_SERVER_ERROR if failed else HTTPStatus.OK
        self.handler.send_response(self.status)
        self.handler.send_header("Content-Length", "0")
        self.handler.end_headers()
        self.headers_sent = True


class AdmissionWebhookHandler(BaseHTTPRequestHandler):
    """HTTP handler for Kubernetes admission webhook requests."""

    server: "_AdmissionHTTPServer"

    def log_message(self, format, *args):
        """Override to use proper logging."""
        logger.info(format % args)

    def _dispatch(self):
        # the API server appends ?timeout=... to the webhook URL
        path = urlsplit(self.path).path
        if path == "/healthz" and self.command == "GET":
            self._send_plain(HTTPStatus.OK, b"ok")
            return

        # without a Content-Length there is no body to wait for
        body = _CountingReader(self.rfile) if "Content-Length" in self.headers else io.BytesIO()
        if path != self.server.webhook_path:
            self._drain(body)
            self._send_plain(HTTPStatus.NOT_FOUND, b"")
            return

        request = InboundRequest(method=self.command, headers=self.headers, body=body)
        validator = self.server.validator
        sink = HandlerResponseSink(self, validator.config.content_type)
        failed = False
        try:
            validator.handle(request, sink)
        except AdmissionError:
            # already reported through the validator's observer
            failed = True
        except Exception:
            logger.error("Error processing admission request", exc_info=True)
            failed = True
        finally:
            self._drain(body)
            sink.finish(failed)

    def _drain(self, body):
        """Consume an unread request body so closing the socket does not reset it."""
        if not isinstance(body, _CountingReader):
            return
        try:
            remaining = int(self.headers["Content-Length"]) - body.consumed
        except ValueError:
            return
        if 0 < remaining <= MAX_DRAIN_BYTES:
            try:
                self.rfile.read(remaining)
            except OSError as e:
                logger.debug("could not drain request body: %s", e)

    def _send_plain(self, status: HTTPStatus, body: bytes):
        self.send_response(status)
        self.send_header("Content-Type", "text/plain")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    do_POST = _dispatch
    do_GET = _dispatch
    do_PUT = _dispatch
    do_PATCH = _dispatch
    do_DELETE = _dispatch


class _AdmissionHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, validator: AdmissionValidator, webhook_path: str):
        super().__init__(address, AdmissionWebhookHandler)
        self.validator = validator
        self.webhook_path = webhook_path


class WebhookServer:
    """Manages the webhook server lifecycle."""

    def __init__(self, config: ServerConfig, validator: Optional[AdmissionValidator] = None):
        self.config = config
        self.validator = validator or AdmissionValidator()
        self.server: Optional[_AdmissionHTTPServer] = None
        self.thread: Optional[threading.Thread] = None

    def _bind(self) -> _AdmissionHTTPServer:
        server = _AdmissionHTTPServer(
            (self.config.host, self.config.port), self.validator, self.config.path
        )

        # Setup SSL if certificates provided
        if self.config.tls_enabled:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
            context.load_cert_chain(self.config.cert_file, self.config.key_file)
            server.socket = context.wrap_socket(server.socket, server_side=True)
            logger.info("Webhook server configured with SSL")
        else:
            logger.warning("Webhook server running without TLS; the API server requires HTTPS")
        return server

    def start(self):
        """Start the webhook server in a background thread."""
        self.server = self._bind()
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()
        logger.info(f"Webhook server started on {self.url}")

    def serve_forever(self):
        """Serve in the calling thread until interrupted."""
        self.server = self._bind()
        logger.info(f"Webhook server listening on {self.url}")
        try:
            self.server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        finally:
            self.server.server_close()

    def stop(self):
        """Stop the webhook server."""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            logger.info("Webhook server stopped")

    @property
    def port(self) -> int:
        """Bound port; differs from the configured one when that was 0."""
        if self.server:
            return self.server.server_address[1]
        return self.config.port

    @property
    def url(self) -> str:
        """Get the server URL."""
        protocol = "https" if self.config.tls_enabled else "http"
        return f"{protocol}://{self.config.host}:{self.port}{self.config.path}"
