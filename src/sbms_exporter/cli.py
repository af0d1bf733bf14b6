"""Command-line interface for sbms-exporter."""

from __future__ import annotations

import argparse
import logging
import os
import stat
import sys
import threading
from typing import Any, BinaryIO, Callable, Iterable
from wsgiref.simple_server import WSGIServer, make_server

import serial
from prometheus_client import REGISTRY, CollectorRegistry, make_wsgi_app

from . import __version__
from .exporter import Exporter
from .reader import StreamClosed, StreamError

logger = logging.getLogger(__name__)

LANDING_PAGE = """<html>
<head><title>SBMS Exporter</title></head>
<body>
<h1>SBMS Exporter</h1>
<p><a href='{path}'>Metrics</a></p>
</body>
</html>
"""


def parse_listen_address(value: str) -> tuple[str, int]:
    """Split ``host:port`` (host may be empty) for argparse."""
    host, sep, port = value.rpartition(":")
    if not sep or not port.isdigit() or int(port) > 65535:
        raise argparse.ArgumentTypeError(f"invalid listen address: {value!r}")
    return host.strip("[]"), int(port)


def open_stream(url: str, baud_rate: int) -> BinaryIO:
    """Open a capture file or FIFO directly, anything else through pyserial."""
    try:
        mode = os.stat(url).st_mode
    except (OSError, ValueError):
        mode = 0
    if stat.S_ISREG(mode) or stat.S_ISFIFO(mode):
        return open(url, "rb")
    return serial.serial_for_url(url, baudrate=baud_rate)


def make_app(registry: CollectorRegistry, telemetry_path: str) -> Callable[..., Iterable[bytes]]:
    """WSGI app serving metrics at ``telemetry_path`` and a landing page elsewhere."""
    metrics_app = make_wsgi_app(registry)
    page = LANDING_PAGE.format(path=telemetry_path).encode("utf-8")

    def app(environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        if environ.get("PATH_INFO", "/") == telemetry_path:
            return metrics_app(environ, start_response)
        start_response("200 OK", [
            ("Content-Type", "text/html; charset=utf-8"),
            ("Content-Length", str(len(page))),
        ])
        return [page]

    return app


def serve(app: Callable[..., Iterable[bytes]], host: str, port: int,
          on_exit: Callable[[], None] | None = None) -> tuple[WSGIServer, threading.Thread]:
    """Start an HTTP server for ``app`` in a daemon thread.

    ``on_exit`` runs once the server loop ends, however it ends.
    """
    httpd = make_server(host, port, app)

    def run() -> None:
        try:
            httpd.serve_forever()
        except Exception:
            logger.exception("HTTP server failed")
        finally:
            if on_exit is not None:
                on_exit()

    thread = threading.Thread(target=run, name="sbms-http", daemon=True)
    thread.start()
    return httpd, thread


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sbms-exporter",
        description="Prometheus exporter for Electrodacus SBMS battery monitors",
    )
    parser.add_argument(
        "--serial-port", required=True,
        help="serial port, capture file, FIFO or pyserial URL (e.g. socket://host:port) to read from",
    )
    parser.add_argument(
        "--baud-rate", type=int, default=9600,
        help="serial baud rate (default: 9600)",
    )
    parser.add_argument(
        "--listen-address", type=parse_listen_address, default=("", 9101),
        metavar="HOST:PORT",
        help="address to listen on for web interface and telemetry (default: :9101)",
    )
    parser.add_argument(
        "--telemetry-path", default="/metrics",
        help="path under which to expose metrics (default: /metrics)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="enable debug logging",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        port = open_stream(args.serial_port, args.baud_rate)
    except (OSError, serial.SerialException) as e:
        logger.error("Cannot open %s: %s", args.serial_port, e)
        sys.exit(1)

    exporter = Exporter(REGISTRY)
    host, http_port = args.listen_address
    logger.info("Starting sbms-exporter %s", __version__)
    logger.info("Listening on %s:%d", host or "*", http_port)
    # The serial port is closed if the HTTP server goes away, which ends
    # the exporter loop below.
    try:
        httpd, thread = serve(make_app(REGISTRY, args.telemetry_path), host, http_port,
                              on_exit=port.close)
    except OSError as e:
        logger.error("Cannot listen on %s:%d: %s", host or "*", http_port, e)
        port.close()
        sys.exit(1)

    code = 0
    try:
        exporter.export(port)
    except StreamClosed:
        logger.error("Serial port %s closed", args.serial_port)
        code = 1
    except StreamError as e:
        logger.error("%s", e)
        code = 1
    except KeyboardInterrupt:
        logger.info("Stopped")
    finally:
        httpd.shutdown()
        thread.join()
        httpd.server_close()
    sys.exit(code)


if __name__ == "__main__":
    main()
