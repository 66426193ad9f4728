"""
Resolve a site identifier (slug) to its ordered URL list.
"""

import re
from pathlib import Path
from typing import List, Optional

from pagebinder.core.config import SiteConfig

SLUG_PATTERN = re.compile(r'^[A-Za-z0-9_-]+$')


def validate_slug(slug: str) -> str:
    """Reject slugs that could escape the site's base path."""
    if not slug or not SLUG_PATTERN.match(slug):
        raise ValueError(f"Invalid site slug: {slug!r}")
    return slug


def resolve_site_urls(slug: str, site_config: Optional[SiteConfig] = None) -> List[str]:
    """
    Build the ordered URL list for a site.

    Args:
        slug: Site identifier, e.g. 'cpc'
        site_config: Base URL template and path list (defaults if omitted)

    Returns:
        Ordered list of absolute URLs
    """
    site_config = site_config or SiteConfig()
    base = site_config.base_url_template.format(slug=validate_slug(slug))
    return [base + (path if path.startswith('/') else '/' + path) for path in site_config.paths]


def load_urls_file(path: Path) -> List[str]:
    """
    Read one URL per line, skipping blank lines and '#' comments.

    Args:
        path: Text file with URLs

    Returns:
        Ordered list of URLs
    """
    urls = []
    with open(path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#'):
                urls.append(line)
    return urls
