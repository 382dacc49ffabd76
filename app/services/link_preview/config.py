"""Immutable limits and deny-lists for the link preview pipeline.

Components receive a ``PreviewConfig`` instead of reading module constants,
so tests can tighten bounds (a 1-byte body cap, a 50ms timeout) without
touching production settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from app.config import Settings, get_settings

# Analytics/ad-click parameters stripped before cache-keying
TRACKING_PARAMS: frozenset[str] = frozenset({
    # UTM
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "utm_id",
    # Facebook
    "fbclid",
    "fb_action_ids",
    "fb_action_types",
    "fb_source",
    "fb_ref",
    # Google
    "gclid",
    "gclsrc",
    "dclid",
    # Microsoft / Bing
    "msclkid",
    # Twitter
    "twclid",
    # Pinterest
    "epik",
    # Mailchimp
    "mc_cid",
    "mc_eid",
    # HubSpot
    "hsa_acc",
    "hsa_cam",
    "hsa_grp",
    "hsa_ad",
    "hsa_src",
    "hsa_tgt",
    "hsa_kw",
    "hsa_mt",
    "hsa_net",
    "hsa_ver",
    # Generic
    "ref",
    "affiliate_id",
    "campaign_id",
    "source",
    "_ga",
    "_gl",
    "spm",
    "scm",
    "clickid",
    "trk",
    "zanpid",
})

BLOCKED_HOSTNAMES: frozenset[str] = frozenset({
    "localhost",
    "localhost.localdomain",
    "local",
    "ip6-localhost",
    "ip6-loopback",
    "0.0.0.0",
    "127.0.0.1",
    "::1",
    "::",
})


@dataclass(frozen=True)
class PreviewConfig:
    """Bounds for one preview request: network, cache TTLs, deny-lists."""

    fetch_timeout_seconds: float = 8.0
    max_response_bytes: int = 2 * 1024 * 1024
    max_redirects: int = 5
    user_agent: str = "Desira/1.0 LinkPreview (+https://desira.io)"
    accept: str = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
    accept_language: str = "en-US,en;q=0.5"
    default_ttl: timedelta = timedelta(days=7)
    price_ttl: timedelta = timedelta(hours=24)
    favicon_service_url: str = "https://www.google.com/s2/favicons"
    tracking_params: frozenset[str] = field(default=TRACKING_PARAMS)
    blocked_hostnames: frozenset[str] = field(default=BLOCKED_HOSTNAMES)

    @property
    def request_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": self.accept,
            "Accept-Language": self.accept_language,
        }

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> PreviewConfig:
        settings = settings or get_settings()
        return cls(
            fetch_timeout_seconds=settings.link_preview_fetch_timeout_seconds,
            max_response_bytes=settings.link_preview_max_response_bytes,
            max_redirects=settings.link_preview_max_redirects,
            user_agent=settings.link_preview_user_agent,
            default_ttl=timedelta(hours=settings.link_preview_default_ttl_hours),
            price_ttl=timedelta(hours=settings.link_preview_price_ttl_hours),
            favicon_service_url=settings.link_preview_favicon_service_url,
        )


DEFAULT_CONFIG = PreviewConfig()
