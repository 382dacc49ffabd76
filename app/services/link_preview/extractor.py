"""Metadata extraction from fetched HTML.

Targeted scanning of ``<meta>``, ``<link>``, ``<title>`` and JSON-LD
``<script>`` tags; no DOM is built. Each field has its own priority chain
and the first non-empty source wins:

- title:       og:title → twitter:title → JSON-LD Product.name → <title>
- description: og:description → twitter:description → Product.description
               → <meta name="description">
- image:       og:image → twitter:image → Product.image
- price:       JSON-LD Product offers → product:price:amount/currency meta
- favicon:     apple-touch-icon → icon → shortcut icon → favicon service
"""

from __future__ import annotations

import html as html_lib
import json
import math
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import urljoin

from app.services.link_preview.config import DEFAULT_CONFIG, PreviewConfig
from app.services.link_preview.url import extract_domain, favicon_fallback_url

# ── Result model ──────────────────────────────────────────────────


@dataclass
class PreviewPrice:
    amount: Decimal
    currency: str


@dataclass
class PreviewData:
    """Normalized preview payload."""

    title: str | None = None
    description: str | None = None
    image: str | None = None
    images: list[str] = field(default_factory=list)
    price: PreviewPrice | None = None
    favicon: str | None = None

    @property
    def has_content(self) -> bool:
        return bool(self.title or self.description or self.image)


# ── Tag scanning ──────────────────────────────────────────────────

# One forward pass over the document. Tag bodies are matched possessively and
# quote-aware, and the cursor never moves backwards, so scan time stays linear
# in the body size however the markup is broken.
_TAG_START = re.compile(r"<(meta|link|title|script)\b", re.IGNORECASE)
_TAG_REST = re.compile(r"""(?:[^>"']++|"[^"]*+"|'[^']*+')*+>""")
_CLOSING = {
    "title": re.compile(r"</title\s*>", re.IGNORECASE),
    "script": re.compile(r"</script\s*>", re.IGNORECASE),
}
# Names may only start after a non-name character
_ATTR = re.compile(
    r"""(?<![^\s"'>/=])([^\s"'>/=]++)\s*+=\s*+(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))"""
)
_LEADING_NUMBER = re.compile(r"\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)")

# Real pages carry a few hundred of these at most
MAX_SCANNED_TAGS = 4096

FAVICON_RELS = ("apple-touch-icon", "icon", "shortcut icon")


@dataclass
class _PageTags:
    metas: list[dict[str, str]] = field(default_factory=list)
    links: list[dict[str, str]] = field(default_factory=list)
    title: str | None = None
    json_ld: list[str] = field(default_factory=list)


def _attrs(tag: str) -> dict[str, str]:
    """Attribute map of one tag; first occurrence wins, names lower-cased."""
    attrs: dict[str, str] = {}
    for match in _ATTR.finditer(tag):
        name = match.group(1).lower()
        if name in attrs:
            continue
        value = next((g for g in match.groups()[1:] if g is not None), "")
        attrs[name] = value
    return attrs


def _scan(html: str) -> _PageTags:
    page = _PageTags()
    pos = 0
    for _ in range(MAX_SCANNED_TAGS):
        start = _TAG_START.search(html, pos)
        if start is None:
            break
        rest = _TAG_REST.match(html, start.end())
        if rest is None:
            # An unterminated tag swallows the remainder of the document
            break
        name = start.group(1).lower()
        pos = rest.end()

        if name == "meta":
            page.metas.append(_attrs(html[start.start():pos]))
        elif name == "link":
            page.links.append(_attrs(html[start.start():pos]))
        else:
            # <title> and <script> bodies are raw text up to their closing tag
            close = _CLOSING[name].search(html, pos)
            if close is None:
                break
            body = html[pos:close.start()]
            if name == "title":
                if page.title is None:
                    page.title = _clean(body)
            elif _attrs(html[start.start():pos]).get("type", "").strip().lower() == "application/ld+json":
                page.json_ld.append(body)
            pos = close.end()
    return page


def _clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    text = " ".join(html_lib.unescape(value).split())
    return text or None


def meta_content(metas: list[dict[str, str]], key: str) -> str | None:
    """Content of the first meta tag whose property/name equals ``key``."""
    key = key.lower()
    for attrs in metas:
        names = (attrs.get("property", "").lower(), attrs.get("name", "").lower())
        if key in names:
            value = _clean(attrs.get("content"))
            if value:
                return value
    return None


def _all_meta_content(metas: list[dict[str, str]], key: str) -> list[str]:
    values = []
    for attrs in metas:
        if key in (attrs.get("property", "").lower(), attrs.get("name", "").lower()):
            value = _clean(attrs.get("content"))
            if value:
                values.append(value)
    return values


# ── JSON-LD ───────────────────────────────────────────────────────


def _parse_json_ld(blocks: list[str]) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for block in blocks:
        try:
            data = json.loads(block)
        except ValueError:
            continue
        if isinstance(data, list):
            items.extend(d for d in data if isinstance(d, dict))
        elif isinstance(data, dict):
            items.append(data)
    return items


def extract_json_ld(html: str) -> list[dict[str, Any]]:
    """All JSON-LD objects in the page; blocks that fail to parse are skipped."""
    return _parse_json_ld(_scan(html).json_ld)


def _is_product(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    kind = item.get("@type")
    if isinstance(kind, list):
        return "Product" in kind
    return kind == "Product"


def find_product(items: list[dict[str, Any]]) -> dict[str, Any] | None:
    """First Product, top-level or one level down in an ``@graph``."""
    for item in items:
        if _is_product(item):
            return item
        graph = item.get("@graph")
        if isinstance(graph, list):
            for node in graph:
                if _is_product(node):
                    return node
    return None


def _product_image(product: dict[str, Any]) -> str | None:
    image = product.get("image")
    if isinstance(image, list):
        image = image[0] if image else None
    if isinstance(image, dict):
        image = image.get("url")
    return _clean(image)


def _to_amount(value: Any) -> Decimal | None:
    """Numeric value of a price; strings use their leading number (``"19.99 USD"``)."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        raw = str(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if not match:
            return None
        raw = match.group(1)
    else:
        return None
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        return None
    # "1e400" is a finite Decimal but overflows the float the API serializes
    if not amount.is_finite() or not math.isfinite(float(amount)):
        return None
    return amount


def _offer_price(offer: Any) -> PreviewPrice | None:
    if not isinstance(offer, dict):
        return None
    raw = offer.get("price")
    if raw is None:
        raw = offer.get("lowPrice")
    currency = offer.get("priceCurrency")
    if raw is None or not currency:
        return None
    amount = _to_amount(raw)
    if amount is None:
        return None
    return PreviewPrice(amount=amount, currency=str(currency))


def extract_product_price(product: dict[str, Any]) -> PreviewPrice | None:
    offers = product.get("offers")
    if isinstance(offers, list):
        for offer in offers:
            price = _offer_price(offer)
            if price:
                return price
        return None
    return _offer_price(offers)


# ── Favicon ───────────────────────────────────────────────────────


def _favicon_from_links(links: list[dict[str, str]], base_url: str) -> str | None:
    for rel in FAVICON_RELS:
        for attrs in links:
            if " ".join(attrs.get("rel", "").lower().split()) != rel:
                continue
            href = html_lib.unescape(attrs.get("href", "")).strip()
            if href:
                return urljoin(base_url, href)
    return None


def extract_favicon(html: str, base_url: str) -> str | None:
    """Absolute URL of the highest-priority icon link, if any."""
    return _favicon_from_links(_scan(html).links, base_url)


# ── Entry point ───────────────────────────────────────────────────


def extract_metadata(
    html: str,
    final_url: str,
    config: PreviewConfig = DEFAULT_CONFIG,
) -> PreviewData:
    """Build a ``PreviewData`` from ``html`` fetched at ``final_url``."""
    page = _scan(html)
    metas = page.metas
    product = find_product(_parse_json_ld(page.json_ld))

    title = (
        meta_content(metas, "og:title")
        or meta_content(metas, "twitter:title")
        or (_clean(product.get("name")) if product else None)
        or page.title
    )

    description = (
        meta_content(metas, "og:description")
        or meta_content(metas, "twitter:description")
        or (_clean(product.get("description")) if product else None)
        or meta_content(metas, "description")
    )

    image = (
        meta_content(metas, "og:image")
        or meta_content(metas, "twitter:image")
        or (_product_image(product) if product else None)
    )

    images: list[str] = [image] if image else []
    seen = set(images)
    for extra in _all_meta_content(metas, "og:image"):
        if extra not in seen:
            seen.add(extra)
            images.append(extra)

    price = extract_product_price(product) if product else None
    if price is None:
        amount = _to_amount(meta_content(metas, "product:price:amount"))
        currency = meta_content(metas, "product:price:currency")
        if amount is not None and currency:
            price = PreviewPrice(amount=amount, currency=currency)

    favicon = _favicon_from_links(page.links, final_url) or favicon_fallback_url(
        extract_domain(final_url), config
    )

    return PreviewData(
        title=title,
        description=description,
        image=image,
        images=images,
        price=price,
        favicon=favicon,
    )
