"""DNS resolution with SSRF screening of every answer."""

from __future__ import annotations

import asyncio
import socket
from collections.abc import Awaitable, Callable

from app.core.errors import ErrorKind, PreviewError
from app.core.logging import get_logger
from app.services.link_preview.ssrf import is_ip_literal, validate_resolved_ips

logger = get_logger(__name__)

# (hostname, address family) -> addresses; empty list when the record type is absent
Lookup = Callable[[str, int], Awaitable[list[str]]]


async def getaddrinfo_lookup(hostname: str, family: int) -> list[str]:
    """Resolve one record type (A for AF_INET, AAAA for AF_INET6) without blocking the loop."""
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(hostname, None, family=family, type=socket.SOCK_STREAM)
    except (OSError, UnicodeError) as e:
        logger.debug("dns_lookup_empty", hostname=hostname, family=family, error=str(e))
        return []
    return [info[4][0] for info in infos]


class SafeResolver:
    """Resolves A and AAAA records and refuses the host if any answer is private."""

    def __init__(self, lookup: Lookup | None = None) -> None:
        self._lookup = lookup or getaddrinfo_lookup

    async def resolve(self, hostname: str) -> list[str]:
        """Return the public addresses for ``hostname``.

        Raises:
            PreviewError: FETCH_BLOCKED when there are no A/AAAA answers or
                when any answer is a private address.
        """
        host = hostname.strip().strip("[]")

        if is_ip_literal(host):
            addresses = [host]
        else:
            ipv4, ipv6 = await asyncio.gather(
                self._lookup(host, socket.AF_INET),
                self._lookup(host, socket.AF_INET6),
            )
            addresses = list(dict.fromkeys([*ipv4, *ipv6]))

        if not addresses:
            logger.info("link_preview_dns_empty", hostname=host)
            raise PreviewError(
                ErrorKind.FETCH_BLOCKED,
                "DNS resolution failed: no A or AAAA records found",
            )

        try:
            validate_resolved_ips(addresses)
        except PreviewError:
            logger.warning("link_preview_dns_blocked", hostname=host, addresses=addresses)
            raise

        return addresses
