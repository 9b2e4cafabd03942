"""Cache categories by file extension and the directives they render to."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath

from config import CacheTTLConfig

NO_CACHE_DIRECTIVE = "no-cache, no-store, must-revalidate"
STALE_WHILE_REVALIDATE_FRACTION = 0.1


class CacheCategory(Enum):
    STATIC_ASSET = "static-asset"
    MEDIA = "media"
    DOCUMENT = "document"
    TEXT = "text"
    DEFAULT = "default"


STATIC_ASSET_EXTENSIONS = frozenset(
    {
        "css", "js", "woff", "woff2", "ttf", "otf", "eot", "svg", "ico",
        "png", "jpg", "jpeg", "gif", "webp", "avif",
    }
)
MEDIA_EXTENSIONS = frozenset(
    {"mp3", "mp4", "wav", "ogg", "m4a", "flac", "aac", "webm", "mov", "avi", "mkv"}
)
DOCUMENT_EXTENSIONS = frozenset(
    {"pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "odt", "ods", "odp"}
)
TEXT_EXTENSIONS = frozenset({"txt", "json", "xml", "html", "md", "csv"})

# Lookup order; the sets are disjoint so the order only documents intent.
CATEGORY_EXTENSIONS: tuple[tuple[CacheCategory, frozenset[str]], ...] = (
    (CacheCategory.STATIC_ASSET, STATIC_ASSET_EXTENSIONS),
    (CacheCategory.MEDIA, MEDIA_EXTENSIONS),
    (CacheCategory.DOCUMENT, DOCUMENT_EXTENSIONS),
    (CacheCategory.TEXT, TEXT_EXTENSIONS),
)


@dataclass(frozen=True, slots=True)
class CacheRule:
    category: CacheCategory
    ttl: int

    @property
    def cache_control(self) -> str:
        return render_cache_control(self.ttl)

    @property
    def cdn_cache_control(self) -> str:
        return render_cdn_cache_control(self.ttl)


class CachePolicy:
    """Total, side-effect free mapping from file names to cache rules."""

    def __init__(self, ttls: CacheTTLConfig | None = None) -> None:
        ttls = ttls or CacheTTLConfig()
        _ensure_disjoint(CATEGORY_EXTENSIONS)
        self._ttls: dict[CacheCategory, int] = {
            CacheCategory.STATIC_ASSET: ttls.static_assets,
            CacheCategory.MEDIA: ttls.media,
            CacheCategory.DOCUMENT: ttls.documents,
            CacheCategory.TEXT: ttls.text,
            CacheCategory.DEFAULT: ttls.default,
        }

    def ttl_for(self, category: CacheCategory) -> int:
        return self._ttls[category]

    def classify(self, filename: str | PurePath) -> CacheRule:
        extension = PurePath(filename).suffix.lower().lstrip(".")
        category = CacheCategory.DEFAULT
        for candidate, extensions in CATEGORY_EXTENSIONS:
            if extension in extensions:
                category = candidate
                break
        return CacheRule(category=category, ttl=self.ttl_for(category))


def render_cache_control(ttl: int) -> str:
    swr = _format_seconds(ttl * STALE_WHILE_REVALIDATE_FRACTION)
    return f"public, max-age={ttl}, immutable, stale-while-revalidate={swr}"


def render_cdn_cache_control(ttl: int) -> str:
    swr = _format_seconds(ttl * STALE_WHILE_REVALIDATE_FRACTION)
    return f"public, max-age={ttl}, s-maxage={ttl}, stale-while-revalidate={swr}"


def _format_seconds(value: float) -> str:
    # ttl * 0.1 carries binary rounding noise, e.g. 3 * 0.1.
    rounded = round(value, 6)
    if rounded.is_integer():
        return str(int(rounded))
    return repr(rounded)


def _ensure_disjoint(
    groups: tuple[tuple[CacheCategory, frozenset[str]], ...],
) -> None:
    seen: dict[str, CacheCategory] = {}
    for category, extensions in groups:
        for extension in extensions:
            if extension in seen:
                raise ValueError(
                    f"Extension {extension!r} is in both {seen[extension].value} "
                    f"and {category.value}"
                )
            seen[extension] = category
