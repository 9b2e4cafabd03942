"""Non-file routes: root information and health."""

import time
from datetime import datetime, timezone

from config import SERVER_VERSION
from handlers.file_handlers import no_cache_headers
from request import HTTPRequest
from response import HTTPResponse


def root_info(request: HTTPRequest) -> HTTPResponse:
    _ = request
    return HTTPResponse.json(
        200,
        {
            "name": "CDN Server",
            "version": SERVER_VERSION,
            "status": "running",
            "message": "This is a CDN server. Access files via /path/to/file",
        },
        headers=no_cache_headers(),
    )


class HealthHandler:
    def __init__(self) -> None:
        self._started_at = time.monotonic()

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        _ = request
        return HTTPResponse.json(
            200,
            {
                "status": "ok",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "uptime": round(time.monotonic() - self._started_at, 3),
            },
            headers=no_cache_headers(),
        )
