"""Tests for the SSRF guard and the safe DNS resolver."""

from __future__ import annotations

import socket

import pytest

from app.core.errors import ErrorKind, PreviewError
from app.services.link_preview.dns import SafeResolver
from app.services.link_preview.ssrf import (
    is_blocked_hostname,
    is_private_ip,
    validate_resolved_ips,
    validate_url_syntax,
)

# ── Helper ─────────────────────────────────────────────────────────


def _dns_table(table: dict[str, list[str]], calls: list | None = None):
    """Stub lookup: answers by hostname, split into A/AAAA by address shape."""

    async def lookup(hostname: str, family: int) -> list[str]:
        if calls is not None:
            calls.append((hostname, family))
        want_v6 = family == socket.AF_INET6
        return [ip for ip in table.get(hostname, []) if (":" in ip) == want_v6]

    return lookup


# ── is_private_ip ──────────────────────────────────────────────────


class TestIsPrivateIp:
    @pytest.mark.parametrize(
        "ip",
        [
            "127.0.0.1",
            "127.255.0.9",
            "10.0.0.5",
            "172.16.0.1",
            "172.31.255.255",
            "192.168.1.1",
            "169.254.169.254",
            "100.64.0.1",
            "100.127.255.254",
            "0.0.0.0",
            "192.0.0.8",
            "192.0.2.10",
            "198.51.100.7",
            "203.0.113.99",
            "198.18.0.1",
            "198.19.255.1",
            "224.0.0.1",
            "239.255.255.250",
            "240.0.0.1",
            "255.255.255.255",
            "::1",
            "::",
            "fc00::1",
            "fd12:3456::1",
            "fe80::1",
            "fe80::1%eth0",
            "::ffff:127.0.0.1",
            "::ffff:10.1.2.3",
        ],
    )
    def test_private(self, ip):
        assert is_private_ip(ip) is True

    @pytest.mark.parametrize(
        "ip",
        [
            "8.8.8.8",
            "93.184.216.34",
            "172.32.0.1",
            "100.128.0.1",
            "192.169.0.1",
            "2606:4700:4700::1111",
            "::ffff:8.8.8.8",
        ],
    )
    def test_public(self, ip):
        assert is_private_ip(ip) is False

    def test_unparseable_fails_closed(self):
        assert is_private_ip("not-an-ip") is True


# ── Hostname / syntactic checks ────────────────────────────────────


class TestBlockedHostname:
    @pytest.mark.parametrize(
        "host",
        ["localhost", "LOCALHOST", "localhost.", "localhost.localdomain", "ip6-localhost", "[::1]", "0.0.0.0"],
    )
    def test_blocked(self, host):
        assert is_blocked_hostname(host) is True

    def test_private_literal_blocked(self):
        assert is_blocked_hostname("192.168.0.10") is True

    def test_public_names_pass(self):
        assert is_blocked_hostname("shop.example") is False
        assert is_blocked_hostname("8.8.8.8") is False


class TestValidateUrlSyntax:
    def test_returns_hostname(self):
        assert validate_url_syntax("https://Shop.Example/item") == "shop.example"

    def test_literal_loopback_blocked(self):
        with pytest.raises(PreviewError) as exc_info:
            validate_url_syntax("http://127.0.0.1/")
        assert exc_info.value.kind == ErrorKind.FETCH_BLOCKED

    def test_ipv6_loopback_blocked(self):
        with pytest.raises(PreviewError) as exc_info:
            validate_url_syntax("http://[::1]:8080/admin")
        assert exc_info.value.kind == ErrorKind.FETCH_BLOCKED

    def test_metadata_ip_blocked(self):
        with pytest.raises(PreviewError) as exc_info:
            validate_url_syntax("http://169.254.169.254/latest/meta-data/")
        assert exc_info.value.kind == ErrorKind.FETCH_BLOCKED

    def test_non_http_scheme_is_invalid(self):
        with pytest.raises(PreviewError) as exc_info:
            validate_url_syntax("gopher://shop.example/")
        assert exc_info.value.kind == ErrorKind.INVALID_URL

    def test_malformed_is_invalid(self):
        with pytest.raises(PreviewError) as exc_info:
            validate_url_syntax("https://")
        assert exc_info.value.kind == ErrorKind.INVALID_URL


class TestValidateResolvedIps:
    def test_all_public_passes(self):
        validate_resolved_ips(["8.8.8.8", "2606:4700:4700::1111"])

    def test_one_private_blocks(self):
        with pytest.raises(PreviewError) as exc_info:
            validate_resolved_ips(["8.8.8.8", "10.0.0.1"])
        assert exc_info.value.kind == ErrorKind.FETCH_BLOCKED


# ── SafeResolver ───────────────────────────────────────────────────


class TestSafeResolver:
    @pytest.mark.asyncio
    async def test_resolves_a_and_aaaa(self):
        calls: list = []
        resolver = SafeResolver(
            lookup=_dns_table({"shop.example": ["93.184.216.34", "2606:2800:220:1::1"]}, calls)
        )
        ips = await resolver.resolve("shop.example")

        assert ips == ["93.184.216.34", "2606:2800:220:1::1"]
        families = {family for _, family in calls}
        assert families == {socket.AF_INET, socket.AF_INET6}

    @pytest.mark.asyncio
    async def test_ipv4_only_is_fine(self):
        resolver = SafeResolver(lookup=_dns_table({"shop.example": ["93.184.216.34"]}))
        assert await resolver.resolve("shop.example") == ["93.184.216.34"]

    @pytest.mark.asyncio
    async def test_private_answer_blocks(self):
        resolver = SafeResolver(lookup=_dns_table({"internal.example": ["10.0.0.5"]}))
        with pytest.raises(PreviewError) as exc_info:
            await resolver.resolve("internal.example")
        assert exc_info.value.kind == ErrorKind.FETCH_BLOCKED
        assert "private" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_mixed_answers_fail_closed(self):
        resolver = SafeResolver(
            lookup=_dns_table({"rebind.example": ["93.184.216.34", "fd00::1"]})
        )
        with pytest.raises(PreviewError) as exc_info:
            await resolver.resolve("rebind.example")
        assert exc_info.value.kind == ErrorKind.FETCH_BLOCKED

    @pytest.mark.asyncio
    async def test_no_records_blocks(self):
        resolver = SafeResolver(lookup=_dns_table({}))
        with pytest.raises(PreviewError) as exc_info:
            await resolver.resolve("nowhere.example")
        assert exc_info.value.kind == ErrorKind.FETCH_BLOCKED
        assert "no A or AAAA" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_ip_literal_skips_lookup(self):
        calls: list = []
        resolver = SafeResolver(lookup=_dns_table({}, calls))
        assert await resolver.resolve("93.184.216.34") == ["93.184.216.34"]
        assert calls == []

    @pytest.mark.asyncio
    async def test_private_literal_blocked(self):
        resolver = SafeResolver(lookup=_dns_table({}))
        with pytest.raises(PreviewError):
            await resolver.resolve("[::1]")

    @pytest.mark.asyncio
    async def test_duplicate_answers_collapsed(self):
        async def lookup(hostname: str, family: int) -> list[str]:
            return ["93.184.216.34", "93.184.216.34"] if family == socket.AF_INET else []

        resolver = SafeResolver(lookup=lookup)
        assert await resolver.resolve("shop.example") == ["93.184.216.34"]
