"""Parsing of a single framed HTTP/1.x request."""

from dataclasses import dataclass, field
from urllib.parse import unquote

from config import MAX_BODY_BYTES, MAX_TARGET_LENGTH

SUPPORTED_VERSIONS = frozenset({"HTTP/1.0", "HTTP/1.1"})
# Recognised so that they get 405 rather than 501.
STANDARD_METHODS = frozenset(
    {"GET", "HEAD", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "TRACE", "CONNECT"}
)


class HTTPRequestParseError(ValueError):
    """Malformed or unsupported request; ``status_code`` is what the client gets."""

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class HTTPRequest:
    method: str
    path: str
    http_version: str = "HTTP/1.1"
    raw_target: str = "/"
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    keep_alive: bool = False

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    @property
    def decoded_path(self) -> str:
        """URL path with percent-escapes decoded exactly once.

        Undecodable bytes survive as surrogates so they still map to the same
        filesystem name.
        """
        return unquote(self.path, errors="surrogateescape")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "HTTPRequest":
        """Build a request from one complete message as framed by the socket reader."""
        head, separator, body = raw.partition(b"\r\n\r\n")
        if not separator:
            raise HTTPRequestParseError("Request head is not terminated")

        request_line, *header_lines = head.decode("iso-8859-1").split("\r\n")
        method, target, version = _parse_request_line(request_line)
        headers = _parse_headers(header_lines)

        if version == "HTTP/1.1" and "host" not in headers:
            raise HTTPRequestParseError("Host header required for HTTP/1.1")
        _check_body(headers, body)

        return cls(
            method=method,
            # urlsplit() would read "//host/x" as a network location.
            path=target.split("#", 1)[0].split("?", 1)[0] or "/",
            http_version=version,
            raw_target=target,
            headers=headers,
            body=body,
            keep_alive=_is_keep_alive(version, headers.get("connection", "")),
        )


def _parse_request_line(line: str) -> tuple[str, str, str]:
    parts = line.split(" ")
    if len(parts) != 3 or not all(parts):
        raise HTTPRequestParseError("Invalid request line")

    method, target, version = parts
    method = method.upper()
    if method not in STANDARD_METHODS:
        raise HTTPRequestParseError(f"Unknown method {method}", status_code=501)
    if version not in SUPPORTED_VERSIONS:
        raise HTTPRequestParseError(f"Unsupported version {version}", status_code=505)
    if len(target) > MAX_TARGET_LENGTH:
        raise HTTPRequestParseError("Request target too long", status_code=414)
    if not target.startswith("/"):
        raise HTTPRequestParseError("Only origin-form request targets are accepted")
    return method, target, version


def _parse_headers(lines: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for line in lines:
        if not line:
            continue
        name, colon, value = line.partition(":")
        if not colon or not name or any(char.isspace() for char in name):
            raise HTTPRequestParseError(f"Malformed header line {line!r}")
        headers[name.lower()] = value.strip()
    return headers


def _check_body(headers: dict[str, str], body: bytes) -> None:
    if "transfer-encoding" in headers:
        raise HTTPRequestParseError(
            "Transfer-Encoding request bodies are not supported", status_code=501
        )

    declared = headers.get("content-length")
    if declared is not None:
        if not declared.isascii() or not declared.isdigit():
            raise HTTPRequestParseError("Invalid Content-Length")
        if int(declared) != len(body):
            raise HTTPRequestParseError("Body length does not match Content-Length")

    if len(body) > MAX_BODY_BYTES:
        raise HTTPRequestParseError("Request body too large", status_code=413)


def _is_keep_alive(version: str, connection: str) -> bool:
    tokens = {token.strip() for token in connection.lower().split(",")}
    if version == "HTTP/1.0":
        return "keep-alive" in tokens
    return "close" not in tokens
