"""Configuration for the CDN file server."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

SERVER_NAME: str = "cdn-file-server"
SERVER_VERSION: str = "1.0.0"

READ_CHUNK_SIZE: int = 8192
WRITE_CHUNK_SIZE: int = 65_536
SOCKET_TIMEOUT_SECS: int = 5
KEEPALIVE_TIMEOUT_SECS: int = 5
MAX_KEEPALIVE_REQUESTS: int = 100
MAX_HEADER_BYTES: int = 16_384
MAX_BODY_BYTES: int = 65_536
MAX_TARGET_LENGTH: int = 8192
DRAIN_TIMEOUT_SECS: float = 5.0

LOG_FORMATS = ("plain", "json")

DEFAULT_BLOCKED_EXTENSIONS: tuple[str, ...] = (
    # Server-side scripts
    ".php", ".php3", ".php4", ".php5", ".phtml",
    ".asp", ".aspx", ".jsp", ".py", ".rb", ".pl",
    ".sh", ".bash", ".zsh",
    # Executables
    ".exe", ".dll", ".so", ".dylib", ".app",
    ".bat", ".cmd", ".ps1", ".vbs",
    # Config files
    ".env", ".config", ".ini", ".conf",
    # Databases
    ".db", ".sqlite", ".sqlite3",
)


class ConfigError(ValueError):
    """Raised when configuration values are missing or invalid."""


@dataclass(frozen=True, slots=True)
class CacheTTLConfig:
    """Cache lifetimes in seconds, one per cache category."""

    static_assets: int = 31_536_000
    media: int = 2_592_000
    documents: int = 86_400
    text: int = 3600
    default: int = 3600

    def __post_init__(self) -> None:
        for name in ("static_assets", "media", "documents", "text", "default"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ConfigError(f"TTL for {name} must be a non-negative integer")


@dataclass(frozen=True, slots=True)
class AccessConfig:
    allowed_extensions: tuple[str, ...] = ()
    blocked_extensions: tuple[str, ...] = DEFAULT_BLOCKED_EXTENSIONS
    max_file_size: int = 500 * 1024 * 1024

    def __post_init__(self) -> None:
        if self.max_file_size < 0:
            raise ConfigError("max_file_size must be zero (unlimited) or positive")


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Immutable server configuration, built once at startup."""

    content_root: Path = Path("./public")
    host: str = "0.0.0.0"
    port: int = 3005
    cache: CacheTTLConfig = field(default_factory=CacheTTLConfig)
    access: AccessConfig = field(default_factory=AccessConfig)
    health_enabled: bool = True
    health_path: str = "/health"
    worker_count: int = 16
    request_queue_size: int = 128
    log_level: str = "INFO"
    log_format: str = "plain"

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65_535:
            raise ConfigError(f"port out of range: {self.port}")
        if self.worker_count <= 0:
            raise ConfigError("worker_count must be positive")
        if self.request_queue_size <= 0:
            raise ConfigError("request_queue_size must be positive")
        if self.log_format not in LOG_FORMATS:
            raise ConfigError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
        if not self.health_path.startswith("/") or self.health_path == "/":
            raise ConfigError("health_path must start with '/' and cannot be the root")


def load_config(environ: Mapping[str, str] | None = None) -> ServerConfig:
    """Build a ServerConfig from ``CDN_*`` environment variables."""
    env = os.environ if environ is None else environ
    defaults_ttl = CacheTTLConfig()
    defaults_access = AccessConfig()

    cache = CacheTTLConfig(
        static_assets=_int(env, "CDN_TTL_STATIC_ASSETS", defaults_ttl.static_assets),
        media=_int(env, "CDN_TTL_MEDIA", defaults_ttl.media),
        documents=_int(env, "CDN_TTL_DOCUMENTS", defaults_ttl.documents),
        text=_int(env, "CDN_TTL_TEXT", defaults_ttl.text),
        default=_int(env, "CDN_TTL_DEFAULT", defaults_ttl.default),
    )
    access = AccessConfig(
        allowed_extensions=_extensions(env, "CDN_ALLOWED_EXTENSIONS", ()),
        blocked_extensions=_extensions(
            env, "CDN_BLOCKED_EXTENSIONS", defaults_access.blocked_extensions
        ),
        max_file_size=_int(env, "CDN_MAX_FILE_SIZE", defaults_access.max_file_size),
    )
    return ServerConfig(
        content_root=Path(env.get("CDN_ROOT_DIR", "./public")),
        host=env.get("CDN_HOST", "0.0.0.0"),
        port=_int(env, "CDN_PORT", 3005),
        cache=cache,
        access=access,
        health_enabled=env.get("CDN_HEALTH_ENABLED", "1") not in {"0", "false", "no"},
        health_path=env.get("CDN_HEALTH_PATH", "/health"),
        worker_count=_int(env, "CDN_WORKERS", 16),
        request_queue_size=_int(env, "CDN_QUEUE_SIZE", 128),
        log_level=env.get("CDN_LOG_LEVEL", "INFO").upper(),
        log_format=env.get("CDN_LOG_FORMAT", "plain").lower(),
    )


def validate_content_root(content_root: Path) -> Path:
    """Return the absolute content root, or raise ConfigError if unusable."""
    root = Path(os.path.abspath(content_root))
    if not root.exists():
        raise ConfigError(f"Root directory does not exist: {root}")
    if not root.is_dir():
        raise ConfigError(f"Root path is not a directory: {root}")
    return root


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _extensions(
    env: Mapping[str, str], name: str, default: tuple[str, ...]
) -> tuple[str, ...]:
    raw = env.get(name)
    if raw is None:
        return default
    extensions = []
    for token in raw.split(","):
        token = token.strip().lower()
        if not token:
            continue
        extensions.append(token if token.startswith(".") else f".{token}")
    return tuple(extensions)
