from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal, Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

CaptureStatus = Literal["ok", "network_error", "api_error", "blocked"]


@dataclass(frozen=True)
class CaptureResult:
    status: CaptureStatus
    image: Optional[bytes] = field(default=None, repr=False)
    message: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.status == "ok" and bool(self.image)


class CaptureClient:
    """
    Takes viewport screenshots through an external screenshot API.

    A failed capture is an ordinary outcome here, not an exception: the
    orchestrator decides what to do with an unavailable result.
    """

    viewport_width = 1440
    viewport_height = 900
    settle_delay_seconds = 3

    def __init__(
        self,
        api_key: str,
        api_url: str,
        timeout_seconds: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        logger.info("Capture client configured for %s (key set: %s)", api_url, bool(api_key))

    def is_ready(self) -> bool:
        return bool(self._api_key)

    def _params(self, url: str) -> dict[str, str]:
        return {
            "access_key": self._api_key,
            "url": url,
            "viewport_width": str(self.viewport_width),
            "viewport_height": str(self.viewport_height),
            "format": "png",
            "full_page": "false",
            "delay": str(self.settle_delay_seconds),
            "block_ads": "true",
            "block_cookie_banners": "true",
        }

    def capture(self, url: str) -> CaptureResult:
        logger.info("Capturing screenshot of %s", url)
        try:
            with httpx.Client(timeout=self._timeout_seconds, transport=self._transport) as client:
                resp = client.get(self._api_url, params=self._params(url))
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Screenshot capture failed for %s - HTTP %s", url, exc.response.status_code
            )
            logger.debug("Screenshot API error body: %s", exc.response.text[:500])
            return CaptureResult(
                status="api_error",
                message=f"Screenshot API returned HTTP {exc.response.status_code}",
            )
        except httpx.HTTPError as exc:
            logger.error("Screenshot capture failed for %s: %s", url, exc)
            return CaptureResult(status="network_error", message=str(exc) or type(exc).__name__)

        if not resp.content:
            logger.warning("Screenshot API returned empty response for %s", url)
            return CaptureResult(status="blocked", message="Screenshot API returned no image")

        logger.info("Screenshot captured, size: %s bytes", len(resp.content))
        return CaptureResult(status="ok", image=resp.content)


def extract_domain(url: str) -> str:
    host = urlparse(url).hostname
    if not host:
        host = url.replace("https://", "").replace("http://", "").split("/", 1)[0]
    if host.startswith("www."):
        host = host[4:]
    return host


class LogoClient:
    """Looks up a company logo by domain and returns its URL when one exists."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    def logo_url(self, domain: str) -> str:
        return f"{self._api_url}/{domain}?token={self._api_key}&format=png&size=400"

    def fetch(self, website_url: str) -> Optional[str]:
        logger.info("Attempting to fetch logo for %s", website_url)
        domain = extract_domain(website_url)
        if not domain:
            return None
        candidate = self.logo_url(domain)
        try:
            with httpx.Client(timeout=self._timeout_seconds, transport=self._transport) as client:
                resp = client.head(candidate)
        except httpx.HTTPError as exc:
            logger.warning("Logo lookup failed for %s: %s", domain, exc)
            return None
        if resp.is_success or resp.is_redirect:
            logger.info("Logo found for %s", domain)
            return candidate
        logger.info("Logo not found for %s (HTTP %s)", domain, resp.status_code)
        return None
