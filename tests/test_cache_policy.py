"""Unit tests for cache classification and directive rendering."""

import pytest

from cache_policy import (
    CATEGORY_EXTENSIONS,
    DOCUMENT_EXTENSIONS,
    MEDIA_EXTENSIONS,
    STATIC_ASSET_EXTENSIONS,
    TEXT_EXTENSIONS,
    CacheCategory,
    CachePolicy,
    render_cache_control,
    render_cdn_cache_control,
)
from config import CacheTTLConfig


@pytest.mark.parametrize(
    ("filename", "category", "ttl"),
    [
        ("app.css", CacheCategory.STATIC_ASSET, 31_536_000),
        ("fonts/Inter.WOFF2", CacheCategory.STATIC_ASSET, 31_536_000),
        ("song.mp3", CacheCategory.MEDIA, 2_592_000),
        ("clip.MKV", CacheCategory.MEDIA, 2_592_000),
        ("report.pdf", CacheCategory.DOCUMENT, 86_400),
        ("data.json", CacheCategory.TEXT, 3600),
        ("index.html", CacheCategory.TEXT, 3600),
        ("archive.tar.gz", CacheCategory.DEFAULT, 3600),
        ("README", CacheCategory.DEFAULT, 3600),
        (".hidden", CacheCategory.DEFAULT, 3600),
        ("trailing.", CacheCategory.DEFAULT, 3600),
    ],
)
def test_classify_maps_extensions_to_categories(
    filename: str, category: CacheCategory, ttl: int
) -> None:
    rule = CachePolicy().classify(filename)

    assert rule.category is category
    assert rule.ttl == ttl


def test_classify_is_stable_across_calls() -> None:
    policy = CachePolicy()

    results = {policy.classify("movie.mp4") for _ in range(5)}

    assert len(results) == 1


def test_extension_sets_are_disjoint_and_lowercase() -> None:
    sets = [extensions for _category, extensions in CATEGORY_EXTENSIONS]
    union = set().union(*sets)

    assert sum(len(extensions) for extensions in sets) == len(union)
    assert all(extension == extension.lower() for extension in union)
    assert STATIC_ASSET_EXTENSIONS.isdisjoint(MEDIA_EXTENSIONS)
    assert DOCUMENT_EXTENSIONS.isdisjoint(TEXT_EXTENSIONS)


def test_configured_ttls_are_used() -> None:
    policy = CachePolicy(
        CacheTTLConfig(static_assets=10, media=20, documents=30, text=40, default=50)
    )

    assert policy.classify("a.png").ttl == 10
    assert policy.classify("a.mp3").ttl == 20
    assert policy.classify("a.pdf").ttl == 30
    assert policy.classify("a.txt").ttl == 40
    assert policy.classify("a.bin").ttl == 50
    assert policy.ttl_for(CacheCategory.DEFAULT) == 50


def test_cache_control_uses_ten_percent_stale_while_revalidate() -> None:
    assert render_cache_control(3600) == (
        "public, max-age=3600, immutable, stale-while-revalidate=360"
    )
    assert render_cache_control(2_592_000) == (
        "public, max-age=2592000, immutable, stale-while-revalidate=259200"
    )


def test_cache_control_keeps_fractional_seconds() -> None:
    assert render_cache_control(15).endswith("stale-while-revalidate=1.5")
    assert render_cache_control(3).endswith("stale-while-revalidate=0.3")
    assert render_cache_control(0) == "public, max-age=0, immutable, stale-while-revalidate=0"


def test_cdn_cache_control_mirrors_ttl() -> None:
    assert render_cdn_cache_control(86_400) == (
        "public, max-age=86400, s-maxage=86400, stale-while-revalidate=8640"
    )


def test_rule_exposes_rendered_directives() -> None:
    rule = CachePolicy().classify("logo.svg")

    assert rule.cache_control == render_cache_control(31_536_000)
    assert rule.cdn_cache_control == render_cdn_cache_control(31_536_000)
