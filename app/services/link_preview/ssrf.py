"""SSRF guard: static URL checks and the private-address predicate.

``is_private_ip`` is the single source of truth for "must not be reachable
from the public internet". It is applied to literal targets, DNS answers and
redirect targets alike; hostname checks alone are incomplete until the name
has been resolved (see ``dns.SafeResolver``).
"""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable
from urllib.parse import urlsplit

from app.core.errors import ErrorKind, PreviewError
from app.services.link_preview.config import DEFAULT_CONFIG, PreviewConfig

_BLOCKED_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in (
        # IPv4
        "0.0.0.0/8",  # current network
        "10.0.0.0/8",  # RFC1918
        "100.64.0.0/10",  # carrier-grade NAT
        "127.0.0.0/8",  # loopback
        "169.254.0.0/16",  # link-local, cloud metadata
        "172.16.0.0/12",  # RFC1918
        "192.0.0.0/24",  # IETF protocol assignments
        "192.0.2.0/24",  # TEST-NET-1
        "192.88.99.0/24",  # 6to4 relay
        "192.168.0.0/16",  # RFC1918
        "198.18.0.0/15",  # benchmarking
        "198.51.100.0/24",  # TEST-NET-2
        "203.0.113.0/24",  # TEST-NET-3
        "224.0.0.0/4",  # multicast
        "240.0.0.0/4",  # reserved
        "255.255.255.255/32",  # broadcast
        # IPv6
        "::/128",
        "::1/128",
        "fc00::/7",  # unique-local
        "fe80::/10",  # link-local
    )
)


def _parse_ip(value: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    # Drop brackets and any IPv6 zone id ("fe80::1%eth0")
    candidate = value.strip().strip("[]").split("%", 1)[0]
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        return None


def is_ip_literal(host: str) -> bool:
    return _parse_ip(host) is not None


def is_private_ip(ip: str) -> bool:
    """True if ``ip`` is loopback/private/link-local/reserved; unparseable counts as private."""
    addr = _parse_ip(ip)
    if addr is None:
        return True
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    return any(addr in network for network in _BLOCKED_NETWORKS)


def is_blocked_hostname(hostname: str, config: PreviewConfig = DEFAULT_CONFIG) -> bool:
    host = hostname.strip().lower().rstrip(".")
    if host.strip("[]") in config.blocked_hostnames:
        return True
    if is_ip_literal(host):
        return is_private_ip(host)
    return False


def validate_url_syntax(url: str, config: PreviewConfig = DEFAULT_CONFIG) -> str:
    """Static SSRF check, no network access.

    Returns:
        The URL's hostname.

    Raises:
        PreviewError: INVALID_URL for malformed/non-http(s) URLs,
            FETCH_BLOCKED for blocked hosts and private IP literals.
    """
    try:
        parts = urlsplit(url.strip())
        hostname, _port = parts.hostname, parts.port
    except ValueError as exc:
        raise PreviewError(ErrorKind.INVALID_URL, "Invalid URL format") from exc

    if parts.scheme.lower() not in ("http", "https"):
        raise PreviewError(ErrorKind.INVALID_URL, "Only HTTP/HTTPS URLs are allowed")

    if not hostname:
        raise PreviewError(ErrorKind.INVALID_URL, "Invalid URL format")

    if is_blocked_hostname(hostname, config):
        raise PreviewError(ErrorKind.FETCH_BLOCKED, "URL points to a blocked address")

    return hostname


def validate_resolved_ips(ips: Iterable[str]) -> None:
    """Fail closed: one private address blocks the whole answer set."""
    for ip in ips:
        if is_private_ip(ip):
            raise PreviewError(ErrorKind.FETCH_BLOCKED, "URL resolves to a private IP address")
