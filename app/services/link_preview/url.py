"""URL canonicalization for cache keys and display."""

from __future__ import annotations

from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from app.core.errors import ErrorKind, PreviewError
from app.services.link_preview.config import DEFAULT_CONFIG, PreviewConfig

_DEFAULT_PORTS = {"http": 80, "https": 443}


def _invalid(message: str = "Invalid URL") -> PreviewError:
    return PreviewError(ErrorKind.INVALID_URL, message)


def normalize_url(raw: str, config: PreviewConfig = DEFAULT_CONFIG) -> str:
    """Canonical form of ``raw`` used as the cache key.

    Lower-cases the host, drops default ports and tracking params, sorts the
    remaining params, clears the fragment and trailing slashes on non-root
    paths. ``normalize_url(normalize_url(u)) == normalize_url(u)``.

    Raises:
        PreviewError: INVALID_URL if ``raw`` is not an absolute http(s) URL.
    """
    try:
        parts = urlsplit(raw.strip())
        port = parts.port
    except ValueError as exc:
        raise _invalid() from exc

    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise _invalid("Only HTTP/HTTPS URLs are allowed")

    host = parts.hostname
    if not host:
        raise _invalid()

    netloc = f"[{host}]" if ":" in host else host
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    params = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key.lower() not in config.tracking_params
    ]
    params.sort(key=lambda kv: kv[0])

    path = parts.path.rstrip("/") or "/"

    return urlunsplit((scheme, netloc, path, urlencode(params), ""))


def extract_domain(url: str) -> str:
    """Hostname without a leading ``www.``; empty string if unparseable."""
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return ""
    if not host:
        return ""
    return host.removeprefix("www.")


def favicon_fallback_url(domain: str, config: PreviewConfig = DEFAULT_CONFIG) -> str:
    """Third-party favicon-by-domain URL for pages that declare no icon."""
    return f"{config.favicon_service_url}?domain={quote(domain, safe='')}&sz=32"
