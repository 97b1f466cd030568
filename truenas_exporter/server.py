# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
HTTP endpoints of the exporter.

- GET /         HTML landing page
- GET /metrics  Prometheus text exposition of the exporter registry
- GET /health   200 when the last cycle reached TrueNAS, 503 otherwise
"""

import logging
import socket
import threading
from typing import Tuple
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import make_wsgi_app

from truenas_exporter.metrics import MetricsCollector

LOG = logging.getLogger(__name__)

LANDING_PAGE = b"""<html>
<head><title>TrueNAS Exporter</title></head>
<body>
<h1>TrueNAS Prometheus Exporter</h1>
<p><a href="/metrics">Metrics</a></p>
<p><a href="/health">Health</a></p>
</body>
</html>"""


class _QuietHandler(WSGIRequestHandler):
    """Send access logs to the debug log instead of stderr."""

    def log_message(self, format, *args):
        LOG.debug(f"{self.address_string()} - {format % args}")


def _respond(start_response, status: str, body: bytes, content_type: str = 'text/plain; charset=utf-8'):
    start_response(status, [('Content-Type', content_type), ('Content-Length', str(len(body)))])
    return [body]


def create_app(metrics: MetricsCollector):
    """
    Build the WSGI application.

    Args:
        metrics: Metric registry wrapper to expose

    Returns:
        WSGI callable
    """
    metrics_app = make_wsgi_app(metrics.registry)

    def app(environ, start_response):
        path = environ.get('PATH_INFO') or '/'
        if path == '/metrics':
            return metrics_app(environ, start_response)
        if path == '/health':
            if metrics.is_up():
                return _respond(start_response, '200 OK', b'OK')
            return _respond(start_response, '503 Service Unavailable', b'TrueNAS API unreachable')
        if path == '/':
            return _respond(start_response, '200 OK', LANDING_PAGE, 'text/html; charset=utf-8')
        return _respond(start_response, '404 Not Found', b'Not Found')

    return app


def _get_best_family(address, port):
    """
    Pick the address family for the bind address, so IPv6 addresses work too.
    Same approach as prometheus_client.exposition.start_http_server.
    """
    infos = socket.getaddrinfo(address, port)
    family, _, _, _, sockaddr = next(iter(infos))
    return family, sockaddr[0]


def start_server(metrics: MetricsCollector, addr: str = '0.0.0.0', port: int = 9100) -> Tuple[WSGIServer, threading.Thread]:
    """
    Serve the exporter endpoints from a daemon thread.

    Args:
        metrics: Metric registry wrapper to expose
        addr: Bind address
        port: Bind port

    Returns:
        The server (call shutdown() to stop it) and its thread
    """
    class ExporterServer(WSGIServer):
        """WSGIServer with the address family picked for addr."""

    ExporterServer.address_family, addr = _get_best_family(addr, port)
    httpd = make_server(addr, port, create_app(metrics), ExporterServer, handler_class=_QuietHandler)

    thread = threading.Thread(target=httpd.serve_forever, name='metrics-http', daemon=True)
    thread.start()
    LOG.info(f"Metrics server listening on {addr}:{port}")
    LOG.info(f"Metrics available at http://{addr}:{port}/metrics")
    return httpd, thread
