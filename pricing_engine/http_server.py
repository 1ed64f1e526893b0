"""
Background HTTP server shared by the health and metrics endpoints.
"""

import logging
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional, Type

logger = logging.getLogger(__name__)


class QuietHandler(BaseHTTPRequestHandler):
    """Request handler that keeps access logs out of stderr."""

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} {format % args}")

    def _send_body(self, body: bytes, content_type: str, status: int = 200):
        self.send_response(status)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)


class BackgroundHTTPServer:
    """Serves one handler class from a daemon thread."""

    handler_class: Type[BaseHTTPRequestHandler] = QuietHandler
    thread_name = 'http-server'

    def __init__(self, host: str = '0.0.0.0', port: int = 8080):
        self.host = host
        self.port = port
        self.server: Optional[HTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self.server is not None

    def start(self):
        """Bind and start serving. Port 0 picks a free port."""
        if self.server is not None:
            return
        self.server = HTTPServer((self.host, self.port), self.handler_class)
        self.port = self.server.server_address[1]
        self._thread = threading.Thread(
            target=self.server.serve_forever, name=self.thread_name, daemon=True
        )
        self._thread.start()
        logger.info(f"{type(self).__name__} listening on {self.host}:{self.port}")

    def stop(self):
        """Stop serving and release the socket."""
        if self.server is None:
            return
        self.server.shutdown()
        self.server.server_close()
        self.server = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
