"""Browser identity presented to target sites, and its rotation pool."""

import asyncio
import random
from dataclasses import dataclass, field
from urllib.parse import quote

import httpx
import structlog
from fake_useragent import UserAgent

from ..config import ServiceSettings

logger = structlog.get_logger(__name__)

AD_SERVING_DOMAINS = (
    "doubleclick.net",
    "adservice.google.com",
    "googlesyndication.com",
    "googletagservices.com",
    "googletagmanager.com",
    "google-analytics.com",
    "adsystem.com",
    "adservice.com",
    "adnxs.com",
    "ads-twitter.com",
    "facebook.net",
    "fbcdn.net",
    "amazon-adsystem.com",
)

# Playwright resource types; favicons are requested as "image"
MEDIA_RESOURCE_TYPES = frozenset({"image", "font", "media"})

DEFAULT_VIEWPORT = {"width": 1280, "height": 800}

RECENT_USER_AGENTS = (
    # Chrome
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/136.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/136.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36",
    # Edge
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36 Edg/137.0.0.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/136.0.0.0 Safari/537.36 Edg/136.0.0.0",
    # Firefox
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:138.0) Gecko/20100101 Firefox/138.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:138.0) Gecko/20100101 Firefox/138.0",
    "Mozilla/5.0 (X11; Linux x86_64; rv:138.0) Gecko/20100101 Firefox/138.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:137.0) Gecko/20100101 Firefox/137.0",
    # Safari
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.5 Safari/605.1.15",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.2 Safari/605.1.15",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_14_6) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.5 Safari/605.1.15",
    # Opera
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36 OPR/117.0.0.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/137.0.0.0 Safari/537.36 OPR/117.0.0.0",
    # Mobile
    "Mozilla/5.0 (Linux; Android 14; SM-G998B) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/137.0.0.0 Mobile Safari/537.36",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_7 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.5 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (iPad; CPU OS 17_7 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.5 Mobile/15E148 Safari/604.1",
)

MOBILE_MARKERS = ("Mobile", "iPhone", "iPad", "Android")

IP_LOOKUP_TIMEOUT_MS = 10000


def is_mobile(user_agent: str) -> bool:
    return any(marker in user_agent for marker in MOBILE_MARKERS)


def random_user_agent() -> str:
    return random.choice(RECENT_USER_AGENTS)


def random_desktop_user_agent() -> str:
    return random.choice([ua for ua in RECENT_USER_AGENTS if not is_mobile(ua)])


def random_mobile_user_agent() -> str:
    return random.choice([ua for ua in RECENT_USER_AGENTS if is_mobile(ua)])


def user_agent_for_browser(browser: str) -> str:
    """Random agent for a browser family; any agent if the family is unknown."""
    browser = browser.lower()
    if browser == "chrome":
        pool = [ua for ua in RECENT_USER_AGENTS if "Chrome" in ua and "Edg" not in ua and "OPR" not in ua]
    elif browser == "firefox":
        pool = [ua for ua in RECENT_USER_AGENTS if "Firefox" in ua]
    elif browser == "safari":
        pool = [ua for ua in RECENT_USER_AGENTS if "Safari" in ua and "Chrome" not in ua]
    elif browser == "edge":
        pool = [ua for ua in RECENT_USER_AGENTS if "Edg" in ua]
    elif browser == "opera":
        pool = [ua for ua in RECENT_USER_AGENTS if "OPR" in ua]
    else:
        pool = []
    if not pool:
        return random_user_agent()
    return random.choice(pool)


@dataclass(frozen=True)
class ProxySettings:
    server: str
    username: str | None = None
    password: str | None = None

    @property
    def url(self) -> str:
        """Proxy URL with credentials embedded, for httpx."""
        if self.username and self.password:
            scheme, sep, rest = self.server.partition("://")
            if not sep:
                scheme, rest = "http", self.server
            user = quote(self.username, safe="")
            password = quote(self.password, safe="")
            return f"{scheme}://{user}:{password}@{rest}"
        return self.server

    def as_playwright(self) -> dict[str, str]:
        proxy = {"server": self.server}
        if self.username and self.password:
            proxy["username"] = self.username
            proxy["password"] = self.password
        return proxy


@dataclass(frozen=True)
class IpMask:
    """Addresses to swap so WebRTC does not reveal the host behind the proxy."""

    lookup_service: str
    proxy_ip: str | None = None
    public_ip: str | None = None


@dataclass
class Identity:
    """Simulated browser fingerprint for one request.

    Only ``user_agent`` changes during a request, and only between attempts.
    """

    user_agent: str
    viewport: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_VIEWPORT))
    blocked_url_patterns: tuple[str, ...] = ()
    blocked_resource_types: frozenset[str] = frozenset()
    extra_headers: dict[str, str] = field(default_factory=dict)
    proxy: ProxySettings | None = None
    ip_mask: IpMask | None = None


class IdentityPolicy:
    """Builds identities from process configuration."""

    def __init__(self, settings: ServiceSettings, user_agents: tuple[str, ...] = RECENT_USER_AGENTS):
        self.settings = settings
        self.user_agents = user_agents
        self._ua_generator: UserAgent | None = None
        self._resolved_mask: IpMask | None = None
        self._mask_lock = asyncio.Lock()

    def generate_user_agent(self) -> str:
        """Fresh plausible desktop user agent."""
        if self._ua_generator is None:
            self._ua_generator = UserAgent(platforms="desktop")
        return self._ua_generator.random

    @property
    def proxy(self) -> ProxySettings | None:
        s = self.settings
        if not s.proxy_server:
            return None
        if s.proxy_username and s.proxy_password:
            return ProxySettings(s.proxy_server, s.proxy_username, s.proxy_password)
        return ProxySettings(s.proxy_server)

    def build_identity(
        self,
        override_user_agent: str | None = None,
        block_media: bool | None = None,
        headers: dict[str, str] | None = None,
    ) -> Identity:
        if block_media is None:
            block_media = self.settings.block_media

        extra_headers = {
            name: value for name, value in (headers or {}).items() if name.lower() != "user-agent"
        }

        proxy = self.proxy
        ip_mask = None
        if proxy is not None:
            ip_mask = IpMask(
                lookup_service=self.settings.ip_lookup_service,
                proxy_ip=self.settings.proxy_ip,
                public_ip=self.settings.public_ip,
            )

        return Identity(
            user_agent=override_user_agent or self.generate_user_agent(),
            blocked_url_patterns=tuple(f"*{domain}*" for domain in AD_SERVING_DOMAINS),
            blocked_resource_types=MEDIA_RESOURCE_TYPES if block_media else frozenset(),
            extra_headers=extra_headers,
            proxy=proxy,
            ip_mask=ip_mask,
        )

    def rotate_user_agent(self, current: str) -> str:
        """Pick an agent from the pool that differs from ``current``."""
        candidates = [ua for ua in self.user_agents if ua != current]
        if not candidates:
            return current
        return random.choice(candidates)

    async def resolve_ip_mask(
        self,
        mask: IpMask,
        proxy: ProxySettings | None,
        timeout_ms: float = IP_LOOKUP_TIMEOUT_MS,
    ) -> IpMask:
        """Fill in missing addresses by asking the lookup service, once per policy.

        Lookups run concurrently and give up after ``timeout_ms``; on timeout the
        mask is returned with whatever addresses were configured.
        """
        if mask.proxy_ip and mask.public_ip:
            return mask

        if self._resolved_mask is not None:
            return self._resolved_mask

        if timeout_ms <= 0:
            return mask

        timeout = min(timeout_ms, IP_LOOKUP_TIMEOUT_MS) / 1000
        try:
            return await asyncio.wait_for(self._resolve(mask, proxy, timeout), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("ip_lookup_timed_out", timeout_ms=round(timeout * 1000))
            return mask

    async def _resolve(self, mask: IpMask, proxy: ProxySettings | None, timeout: float) -> IpMask:
        async with self._mask_lock:
            if self._resolved_mask is not None:
                return self._resolved_mask
            proxy_ip, public_ip = await asyncio.gather(
                self._address(mask.proxy_ip, mask.lookup_service, proxy, timeout),
                self._address(mask.public_ip, mask.lookup_service, None, timeout),
            )
            resolved = IpMask(lookup_service=mask.lookup_service, proxy_ip=proxy_ip, public_ip=public_ip)
            # failed lookups are retried on the next request
            if resolved.proxy_ip and resolved.public_ip:
                self._resolved_mask = resolved
            return resolved

    async def _address(
        self, known: str | None, service: str, proxy: ProxySettings | None, timeout: float
    ) -> str | None:
        if known:
            return known
        return await self._lookup_ip(service, proxy, timeout)

    async def _lookup_ip(self, service: str, proxy: ProxySettings | None, timeout: float) -> str | None:
        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                proxy=proxy.url if proxy is not None else None,
            ) as client:
                resp = await client.get(service)
                resp.raise_for_status()
                return resp.text.strip() or None
        except httpx.HTTPError as e:
            logger.warning("ip_lookup_failed", via_proxy=proxy is not None, error=str(e))
            return None
