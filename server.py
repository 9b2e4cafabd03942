"""Main HTTP server entry point and connection lifecycle orchestration."""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import socket
import sys
import time
from pathlib import Path

from config import (
    DRAIN_TIMEOUT_SECS,
    KEEPALIVE_TIMEOUT_SECS,
    LOG_FORMATS,
    MAX_KEEPALIVE_REQUESTS,
    SOCKET_TIMEOUT_SECS,
    ConfigError,
    ServerConfig,
    load_config,
    validate_content_root,
)
from errors import FileServingError, InternalFailureError
from handlers.file_handlers import (
    CACHE_STATUS_HEADER,
    FileHandler,
    error_response,
    no_cache_headers,
)
from handlers.service_handlers import HealthHandler, root_info
from request import HTTPRequest, HTTPRequestParseError
from response import REASON_PHRASES, HTTPResponse
from router import Router
from socket_handler import (
    HeaderTooLargeError,
    HTTPReadError,
    MalformedRequestError,
    PayloadTooLargeError,
    SocketTimeoutError,
    read_http_request_message,
    write_http_response_message,
)
from thread_pool import ThreadPool

logger = logging.getLogger(__name__)

READ_ERROR_STATUSES: dict[type[HTTPReadError], int] = {
    PayloadTooLargeError: 413,
    HeaderTooLargeError: 431,
    SocketTimeoutError: 408,
    MalformedRequestError: 400,
}


@dataclasses.dataclass(slots=True)
class AccessRecord:
    """What is known about a request by the time its response is written."""

    client: str
    method: str = "-"
    path: str = "-"
    bytes_in: int = 0
    connection_reused: bool = False
    started_at: float = dataclasses.field(default_factory=time.perf_counter)

    def as_event(self, response: HTTPResponse, bytes_out: int) -> dict[str, object]:
        return {
            "client": self.client,
            "method": self.method,
            "path": self.path,
            "status": response.status_code,
            "cache_status": response.header(CACHE_STATUS_HEADER) or "-",
            "bytes_in": self.bytes_in,
            "bytes_out": bytes_out,
            "duration_ms": round((time.perf_counter() - self.started_at) * 1000, 2),
            "connection_reused": self.connection_reused,
        }


def build_router(config: ServerConfig, content_root: Path) -> Router:
    router = Router(fallback=FileHandler(config, content_root))
    router.add_route("/", root_info)
    if config.health_enabled:
        router.add_route(config.health_path, HealthHandler())
    return router


class HTTPServer:
    def __init__(
        self,
        config: ServerConfig | None = None,
        *,
        router: Router | None = None,
        keepalive_timeout_secs: int = KEEPALIVE_TIMEOUT_SECS,
        drain_timeout_secs: float = DRAIN_TIMEOUT_SECS,
    ) -> None:
        self.config = config or ServerConfig()
        self.content_root = validate_content_root(self.config.content_root)
        self.host = self.config.host
        self.port = self.config.port
        self.router = router or build_router(self.config, self.content_root)
        self.keepalive_timeout_secs = keepalive_timeout_secs
        self.drain_timeout_secs = drain_timeout_secs
        self.log_format = self.config.log_format

        self._server_socket: socket.socket | None = None
        self._pool: ThreadPool | None = None
        self._running = False

    def start(self) -> None:
        """Listen and hand each accepted connection to the worker pool."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server_socket:
            self._server_socket = server_socket
            server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server_socket.bind((self.host, self.port))
            server_socket.listen(128)
            server_socket.settimeout(0.2)
            self.port = server_socket.getsockname()[1]
            self._pool = ThreadPool(
                worker_count=self.config.worker_count,
                queue_size=self.config.request_queue_size,
                handler=self._handle_client,
            )
            self._pool.start()
            logger.info("Serving files from: %s", self.content_root)
            logger.info("CDN server listening on http://%s:%s", self.host, self.port)

            self._running = True
            try:
                while self._running:
                    try:
                        client_socket, address = server_socket.accept()
                    except socket.timeout:
                        continue
                    except OSError:
                        break

                    if self._pool is None or not self._pool.submit(client_socket, address):
                        self._send_queue_full_response(client_socket, address)
            finally:
                if self._pool is not None:
                    self._pool.shutdown()
                    self._pool = None

    def stop(self, *, graceful: bool = False) -> None:
        self._running = False
        if self._server_socket is not None:
            self._server_socket.close()
            self._server_socket = None
        if self._pool is not None:
            self._pool.shutdown(graceful=graceful, timeout=self.drain_timeout_secs)
            self._pool = None

    def _send_queue_full_response(
        self, client_socket: socket.socket, address: tuple[str, int]
    ) -> None:
        with client_socket:
            self._reject(client_socket, AccessRecord(client=address[0]), 503)

    def _handle_client(self, client_socket: socket.socket, address: tuple[str, int]) -> None:
        with client_socket:
            client_socket.settimeout(min(SOCKET_TIMEOUT_SECS, self.keepalive_timeout_secs))
            served = 0
            carry = b""
            while served < MAX_KEEPALIVE_REQUESTS:
                record = AccessRecord(client=address[0], connection_reused=served > 0)
                try:
                    raw_request, carry = read_http_request_message(client_socket, carry)
                except HTTPReadError as exc:
                    self._reject(client_socket, record, READ_ERROR_STATUSES.get(type(exc), 400))
                    return
                except OSError:
                    return
                if not raw_request:
                    return

                record.bytes_in = len(raw_request)
                try:
                    request = HTTPRequest.from_bytes(raw_request)
                except HTTPRequestParseError as exc:
                    self._reject(client_socket, record, exc.status_code)
                    return

                served += 1
                record.method = request.method
                record.path = request.path
                response = self._dispatch(request)
                last = not request.keep_alive or served >= MAX_KEEPALIVE_REQUESTS
                if last:
                    response.headers.setdefault("Connection", "close")
                else:
                    response.headers.setdefault("Connection", "keep-alive")
                    response.headers.setdefault(
                        "Keep-Alive",
                        f"timeout={self.keepalive_timeout_secs}, "
                        f"max={MAX_KEEPALIVE_REQUESTS - served}",
                    )

                if not self._write_and_log(client_socket, response, record) or last:
                    return

    def _reject(
        self, client_socket: socket.socket, record: AccessRecord, status_code: int
    ) -> None:
        response = HTTPResponse(
            status_code=status_code,
            headers={"Connection": "close", **no_cache_headers()},
            body=REASON_PHRASES.get(status_code, "Bad Request"),
        )
        self._write_and_log(client_socket, response, record)

    def _write_and_log(
        self, client_socket: socket.socket, response: HTTPResponse, record: AccessRecord
    ) -> bool:
        """Send ``response``; False when the client went away mid-write."""
        try:
            bytes_out = write_http_response_message(client_socket, response)
        except OSError as exc:
            logger.debug(
                "Client %s disconnected during %s %s: %s",
                record.client,
                record.method,
                record.path,
                exc,
            )
            return False

        self._log_access(record, response, bytes_out)
        return True

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        handler = self.router.resolve(request.method, request.path)
        if handler is None:
            return HTTPResponse.json(
                405,
                {"error": "Method Not Allowed", "message": f"{request.method} is not supported"},
                headers={"Allow": ", ".join(self.router.allowed_methods), **no_cache_headers()},
            )

        try:
            response = handler(request)
        except FileServingError as exc:
            if exc.status_code >= 500:
                logger.error("Failed to serve %s: %s", request.path, exc.message)
            response = error_response(exc)
        except Exception:
            logger.exception("Unhandled error in route handler for %s", request.path)
            response = error_response(InternalFailureError("Unexpected server error"))

        if request.method == "HEAD":
            return self._as_head_response(response)
        return response

    def _as_head_response(self, response: HTTPResponse) -> HTTPResponse:
        if not response.body and response.file_window is None:
            return response
        if response.file_cursor is not None:
            response.file_cursor.close()
        return HTTPResponse(
            status_code=response.status_code,
            reason_phrase=response.reason_phrase,
            headers=dict(response.headers),
            body=b"",
            content_length_override=response.content_length,
        )

    def _log_access(self, record: AccessRecord, response: HTTPResponse, bytes_out: int) -> None:
        event = record.as_event(response, bytes_out)
        if self.log_format == "json":
            logger.info(json.dumps(event, sort_keys=True))
            return
        logger.info(" ".join(f"{key}={value}" for key, value in event.items()))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve static files with CDN-friendly caching")
    parser.add_argument("--host", default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--root", default=None, help="content root directory")
    parser.add_argument("--log-format", choices=LOG_FORMATS, default=None)
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, environ: dict[str, str] | None = None) -> ServerConfig:
    """Environment configuration with command line flags taking precedence."""
    config = load_config(environ)
    overrides: dict[str, object] = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.root is not None:
        overrides["content_root"] = Path(args.root)
    if args.log_format is not None:
        overrides["log_format"] = args.log_format
    return dataclasses.replace(config, **overrides) if overrides else config


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        config = build_config(args)
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("Invalid configuration: %s", exc)
        return 1

    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))
    try:
        server = HTTPServer(config)
    except ConfigError as exc:
        logger.error("%s", exc)
        logger.info("Set the correct path via the CDN_ROOT_DIR environment variable or --root.")
        return 1

    try:
        server.start()
    except KeyboardInterrupt:
        server.stop(graceful=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
