"""Product page image discovery.

E-commerce pages advertise their hero image through Open Graph
(``og:image``) or Twitter card (``twitter:image``) meta tags.  Tags are
located with regular expressions rather than a full HTML parser, so the
matching only needs to tolerate attribute order and quote style:

    <meta property="og:image" content="https://cdn.example.com/a.jpg">
    <meta content='https://cdn.example.com/a.jpg' name='og:image' />
"""

from __future__ import annotations

import html
import re
from urllib.parse import urljoin, urlsplit

_META_TAG_RE = re.compile(r"<meta\b[^>]*>", re.IGNORECASE)

# name="value" | name='value' | name=value
_ATTR_RE = re.compile(
    r'([a-zA-Z_:][-a-zA-Z0-9_:.]*)\s*=\s*(?:"([^"]*)"|\'([^\']*)\'|([^\s"\'>]+))'
)

# Checked in order; the first key with any matching tag wins
IMAGE_META_KEYS = ("og:image", "twitter:image")


def _parse_attrs(tag: str) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for match in _ATTR_RE.finditer(tag):
        name = match.group(1).lower()
        value = next(g for g in match.groups()[1:] if g is not None)
        attrs.setdefault(name, value)
    return attrs


def extract_meta_image(page_html: str) -> str | None:
    """Return the first ``og:image`` (else ``twitter:image``) content value.

    The meta key may be given as either ``property`` or ``name``.  HTML
    entities in the content are unescaped.  Returns None when no usable
    tag is present.
    """
    candidates: dict[str, str] = {}
    for tag in _META_TAG_RE.findall(page_html):
        attrs = _parse_attrs(tag)
        key = (attrs.get("property") or attrs.get("name") or "").strip().lower()
        content = attrs.get("content", "").strip()
        if key in IMAGE_META_KEYS and content and key not in candidates:
            candidates[key] = html.unescape(content)

    for key in IMAGE_META_KEYS:
        if key in candidates:
            return candidates[key]
    return None


def resolve_image_url(image_url: str, page_url: str) -> str:
    """Make a meta tag image reference absolute.

    ``//host/a.jpg`` becomes ``https://host/a.jpg``; ``/a.jpg`` is joined to
    the page origin; any other relative value is joined to the page URL.
    """
    if image_url.startswith("//"):
        return "https:" + image_url
    if image_url.startswith("/"):
        parts = urlsplit(page_url)
        return f"{parts.scheme}://{parts.netloc}{image_url}"
    return urljoin(page_url, image_url)
