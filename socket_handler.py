"""Request framing on the client socket and streamed response writes."""

from __future__ import annotations

import socket
import ssl

from byte_range import ByteWindowCursor
from config import MAX_BODY_BYTES, MAX_HEADER_BYTES, READ_CHUNK_SIZE, WRITE_CHUNK_SIZE
from response import HTTPResponse, prepare_response

HEAD_TERMINATOR = b"\r\n\r\n"


class HTTPReadError(Exception):
    """The client's bytes cannot be framed into a request."""


class MalformedRequestError(HTTPReadError):
    pass


class HeaderTooLargeError(HTTPReadError):
    pass


class PayloadTooLargeError(HTTPReadError):
    pass


class SocketTimeoutError(HTTPReadError):
    """The client went quiet in the middle of a request."""


def _declared_body_length(head: bytes) -> int:
    for line in head.split(b"\r\n")[1:]:
        name, colon, value = line.partition(b":")
        if not colon or name.strip().lower() != b"content-length":
            continue
        value = value.strip()
        if not value.isdigit():
            raise MalformedRequestError(f"Bad Content-Length {value!r}")
        return int(value)
    return 0


def extract_http_request_message(buffer: bytes) -> tuple[bytes, bytes] | None:
    """Split ``buffer`` into (first request, remainder), or None if incomplete.

    Size limits are enforced as soon as they can be judged, before the whole
    message has arrived.
    """
    head_end = buffer.find(HEAD_TERMINATOR)
    if head_end == -1:
        if len(buffer) > MAX_HEADER_BYTES:
            raise HeaderTooLargeError("Request head exceeds limit")
        return None
    if head_end + len(HEAD_TERMINATOR) > MAX_HEADER_BYTES:
        raise HeaderTooLargeError("Request head exceeds limit")

    body_length = _declared_body_length(buffer[:head_end])
    if body_length > MAX_BODY_BYTES:
        raise PayloadTooLargeError("Request body exceeds limit")

    message_end = head_end + len(HEAD_TERMINATOR) + body_length
    if len(buffer) < message_end:
        return None
    return buffer[:message_end], buffer[message_end:]


def read_http_request_message(
    client_socket: socket.socket,
    initial_buffer: bytes = b"",
) -> tuple[bytes, bytes]:
    """Read one request; returns (request, leftover) or (b"", b"") on a clean close."""
    buffer = bytearray(initial_buffer)

    while (framed := extract_http_request_message(bytes(buffer))) is None:
        try:
            chunk = client_socket.recv(READ_CHUNK_SIZE)
        except socket.timeout as exc:
            raise SocketTimeoutError("Timed out waiting for request bytes") from exc

        if not chunk:
            if buffer:
                raise MalformedRequestError("Connection closed mid-request")
            return b"", b""
        buffer.extend(chunk)
    return framed


def write_http_response_message(
    client_socket: socket.socket,
    response: HTTPResponse,
    *,
    write_chunk_size: int = WRITE_CHUNK_SIZE,
) -> int:
    """Write an HTTPResponse, streaming any file window in bounded chunks.

    The file descriptor behind a windowed body is released before this
    returns, including when the client disconnects mid-stream (the OSError
    is re-raised to the caller).
    """
    prepared = prepare_response(response)
    cursor = prepared.cursor
    try:
        client_socket.sendall(prepared.head)
        bytes_sent = len(prepared.head)

        if prepared.body:
            client_socket.sendall(prepared.body)
            bytes_sent += len(prepared.body)

        if cursor is not None:
            bytes_sent += _write_window(client_socket, cursor, write_chunk_size)
        return bytes_sent
    finally:
        if cursor is not None:
            cursor.close()


def _write_window(
    client_socket: socket.socket,
    cursor: ByteWindowCursor,
    write_chunk_size: int,
) -> int:
    bytes_sent = 0
    if isinstance(client_socket, ssl.SSLSocket):
        for chunk in cursor.iter_chunks(write_chunk_size):
            client_socket.sendall(chunk)
            bytes_sent += len(chunk)
        return bytes_sent

    # socket.sendfile() waits for writability on sockets with a timeout and
    # never reads past offset + count.
    while cursor.remaining > 0:
        sent = client_socket.sendfile(
            cursor.file_object(),
            offset=cursor.offset,
            count=min(write_chunk_size, cursor.remaining),
        )
        if sent <= 0:
            break
        cursor.advance(sent)
        bytes_sent += sent
    return bytes_sent
