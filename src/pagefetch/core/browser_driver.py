"""Playwright implementation of the page driver."""

import fnmatch
import json

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import ServiceSettings
from ..errors import FetchTimeoutError, NavigationError
from .identity import Identity, IdentityPolicy, IpMask
from .protocols import NavigationResponse

logger = structlog.get_logger(__name__)

# Rewrites the host's public address into the proxy's in WebRTC candidates and SDP
WEBRTC_MASK_SCRIPT = """
(() => {
  const publicIp = __PUBLIC_IP__;
  const proxyIp = __PROXY_IP__;
  if (!window.RTCPeerConnection || !publicIp || !proxyIp) return;
  const mask = (value) => typeof value === "string" ? value.split(publicIp).join(proxyIp) : value;
  const patch = (proto, prop) => {
    const desc = Object.getOwnPropertyDescriptor(proto, prop);
    if (!desc || !desc.get) return;
    Object.defineProperty(proto, prop, {
      get() { return mask(desc.get.call(this)); },
      configurable: true,
    });
  };
  patch(RTCIceCandidate.prototype, "candidate");
  patch(RTCIceCandidate.prototype, "address");
  patch(RTCSessionDescription.prototype, "sdp");
})();
"""


def webrtc_mask_script(mask: IpMask) -> str:
    return (
        WEBRTC_MASK_SCRIPT
        .replace("__PUBLIC_IP__", json.dumps(mask.public_ip))
        .replace("__PROXY_IP__", json.dumps(mask.proxy_ip))
    )


class PlaywrightDriver:
    """One browser, context and page presenting a single identity."""

    def __init__(self, identity: Identity):
        self.identity = identity
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._in_flight = 0
        self._closed = False

    @classmethod
    async def launch(
        cls,
        identity: Identity,
        headless: bool = True,
        ip_mask: IpMask | None = None,
    ) -> "PlaywrightDriver":
        driver = cls(identity)
        try:
            await driver._start(headless, ip_mask)
        except BaseException:
            await driver.close()
            raise
        return driver

    async def _start(self, headless: bool, ip_mask: IpMask | None):
        identity = self.identity
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=headless,
            proxy=identity.proxy.as_playwright() if identity.proxy else None,
        )

        self._context = await self._browser.new_context(
            user_agent=identity.user_agent,
            viewport=identity.viewport,
            extra_http_headers=identity.extra_headers or None,
        )
        await self._context.route("**/*", self._route)

        if ip_mask is not None and ip_mask.proxy_ip and ip_mask.public_ip:
            await self._context.add_init_script(webrtc_mask_script(ip_mask))

        self._page = await self._context.new_page()
        self._page.on("request", self._on_request_started)
        self._page.on("requestfinished", self._on_request_done)
        self._page.on("requestfailed", self._on_request_done)

    async def _route(self, route: Route):
        request = route.request
        if request.resource_type in self.identity.blocked_resource_types or any(
            fnmatch.fnmatch(request.url, pattern) for pattern in self.identity.blocked_url_patterns
        ):
            await route.abort()
        else:
            await route.continue_()

    def _on_request_started(self, _request):
        self._in_flight += 1

    def _on_request_done(self, _request):
        self._in_flight = max(0, self._in_flight - 1)

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Driver is not started")
        return self._page

    async def navigate(self, url: str, timeout_ms: float) -> NavigationResponse | None:
        try:
            response = await self.page.goto(url, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise FetchTimeoutError(f"Navigation timed out after {timeout_ms:.0f}ms") from e
        except PlaywrightError as e:
            raise NavigationError(e.message) from e

        if response is None:
            return None
        return NavigationResponse(status=response.status, headers=await response.all_headers())

    async def query_selector(self, selector: str) -> bool:
        return await self.page.query_selector(selector) is not None

    async def wait_for_element(self, selector: str, timeout_ms: float) -> None:
        await self.page.wait_for_selector(selector, timeout=timeout_ms, state="attached")

    async def wait_for_millis(self, ms: float) -> None:
        await self.page.wait_for_timeout(ms)

    async def outer_html(self) -> str:
        return await self.page.evaluate("() => document.documentElement.outerHTML")

    async def body_html(self) -> str:
        return await self.page.evaluate("() => document.body ? document.body.innerHTML : ''")

    async def pending_requests(self) -> int:
        return self._in_flight

    async def close(self):
        """Release page, context, browser and Playwright; safe to call twice."""
        if self._closed:
            return
        self._closed = True

        for name, closer in (
            ("context", self._context.close if self._context else None),
            ("browser", self._browser.close if self._browser else None),
            ("playwright", self._playwright.stop if self._playwright else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                logger.warning("driver_cleanup_error", resource=name, error=str(e))

        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None


class PlaywrightDriverFactory:
    """Launches a fresh Playwright driver for each attempt."""

    def __init__(self, settings: ServiceSettings, policy: IdentityPolicy):
        self.settings = settings
        self.policy = policy

    async def __call__(self, identity: Identity, timeout_ms: float) -> PlaywrightDriver:
        ip_mask = None
        if identity.ip_mask is not None:
            ip_mask = await self.policy.resolve_ip_mask(identity.ip_mask, identity.proxy, timeout_ms=timeout_ms)
        return await PlaywrightDriver.launch(identity, headless=self.settings.headless, ip_mask=ip_mask)
