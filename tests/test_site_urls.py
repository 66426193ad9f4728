"""
Tests for site URL resolution.
"""

import pytest

from pagebinder.core.config import DEFAULT_SITE_PATHS, SiteConfig
from pagebinder.services.site_urls import load_urls_file, resolve_site_urls, validate_slug


def test_resolve_site_urls_default_site():
    urls = resolve_site_urls("cpc", SiteConfig())

    assert len(urls) == len(DEFAULT_SITE_PATHS) == 17
    assert urls[0] == "https://www.officialmediaguide.com/cpc/"
    assert urls[-1] == "https://www.officialmediaguide.com/cpc/contact/"
    assert "https://www.officialmediaguide.com/cpc/print2/?product=MLE" in urls


def test_resolve_site_urls_custom_template():
    config = SiteConfig(base_url_template="https://guides.example.org/{slug}/", paths=["/", "about", "/team/"])

    assert resolve_site_urls("acme", config) == [
        "https://guides.example.org/acme/",
        "https://guides.example.org/acme/about",
        "https://guides.example.org/acme/team/",
    ]


@pytest.mark.parametrize("slug", ["", "../admin", "a/b", "cpc?x=1", "with space"])
def test_invalid_slugs_are_rejected(slug):
    with pytest.raises(ValueError):
        resolve_site_urls(slug, SiteConfig())


def test_validate_slug_accepts_identifiers():
    assert validate_slug("cpc-2024_b") == "cpc-2024_b"


def test_site_config_requires_slug_placeholder():
    with pytest.raises(ValueError):
        SiteConfig(base_url_template="https://example.com/")


def test_load_urls_file(tmp_path):
    path = tmp_path / "urls.txt"
    path.write_text(
        "# pages to render\n"
        "https://example.com/\n"
        "\n"
        "  https://example.com/about  \n"
        "#https://example.com/skipped\n",
        encoding="utf-8"
    )

    assert load_urls_file(path) == ["https://example.com/", "https://example.com/about"]
