# === NAVMAP v1 ===
# {
#   "module": "LottoData.AssetHosting.fetcher",
#   "purpose": "Two-tier source download: retried direct HTTP, then headless browser.",
#   "sections": [
#     {
#       "id": "fetchresult",
#       "name": "FetchResult",
#       "anchor": "class-fetchresult",
#       "kind": "class"
#     },
#     {
#       "id": "referer-for",
#       "name": "referer_for",
#       "anchor": "function-referer-for",
#       "kind": "function"
#     },
#     {
#       "id": "build-request-headers",
#       "name": "build_request_headers",
#       "anchor": "function-build-request-headers",
#       "kind": "function"
#     },
#     {
#       "id": "build-http-client",
#       "name": "build_http_client",
#       "anchor": "function-build-http-client",
#       "kind": "function"
#     },
#     {
#       "id": "fetcher",
#       "name": "Fetcher",
#       "anchor": "class-fetcher",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Resilient byte retrieval for upstream images.

Tier 1 is a direct ``GET`` through a shared :class:`httpx.Client` with a
browser-like header set and a ``Referer`` chosen per upstream host. Transient
failures are retried by a Tenacity controller (exponential backoff with jitter,
``Retry-After`` honoured).

Tier 2 is the headless browser (:mod:`LottoData.AssetHosting.browser`). The
fetcher escalates when tier 1 ends in a network failure or a non-2xx status, or
when it returns an HTML or empty-typed body. HTML here is almost always an
anti-bot interstitial or a login redirect, not the image.

If both tiers fail, :class:`FetchError` carries the last HTTP status, the
number of attempts made and the tier that failed last.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional
from urllib.parse import urlsplit

import httpx

from .browser import BrowserFetcher
from .classifier import normalize_content_type, sniff
from .config.models import HttpClientConfig, RetryPolicy
from .errors import FetchError
from .retry import build_retrying

__all__ = [
    "FetchResult",
    "Fetcher",
    "build_http_client",
    "build_request_headers",
    "referer_for",
]

LOGGER = logging.getLogger(__name__)

_ESCALATE_CONTENT_TYPES = frozenset({"", "text/html", "application/xhtml+xml", "text/plain"})
_IMAGE_SIGNATURES = frozenset({"png", "jpeg", "webp", "gif"})


@dataclass(frozen=True)
class FetchResult:
    """Bytes and declared type retrieved for one source URL."""

    url: str
    content: bytes
    content_type: Optional[str]
    status: Optional[int]
    attempts: int
    via: str = "http"


def referer_for(url: str, config: HttpClientConfig) -> str:
    """Pick the ``Referer`` for ``url`` by longest matching host suffix."""
    host = (urlsplit(url).hostname or "").lower()
    best = ""
    for suffix in config.referers:
        suffix_l = suffix.lower().lstrip(".")
        if (host == suffix_l or host.endswith("." + suffix_l)) and len(suffix_l) > len(best):
            best = suffix_l
    if best:
        for suffix, referer in config.referers.items():
            if suffix.lower().lstrip(".") == best:
                return referer
    return config.default_referer


def build_request_headers(
    url: str,
    config: HttpClientConfig,
    extra: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Browser-like request headers for ``url``; ``extra`` wins on conflicts."""
    headers = {
        "User-Agent": config.user_agent,
        "Accept": config.accept,
        "Accept-Language": config.accept_language,
        "Referer": referer_for(url, config),
    }
    if extra:
        headers.update(extra)
    return headers


def build_http_client(config: HttpClientConfig) -> httpx.Client:
    """Build the shared client for the direct tier."""
    client = httpx.Client(
        timeout=httpx.Timeout(config.timeout_s),
        limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        verify=config.verify_tls,
        follow_redirects=True,
        headers={"User-Agent": config.user_agent},
    )
    LOGGER.debug(f"HTTPX client created: timeout={config.timeout_s}s verify={config.verify_tls}")
    return client


class Fetcher:
    """Download source images with retry and browser fallback.

    Thread-safe: the underlying ``httpx.Client`` is shared and Tenacity
    controllers are created per call.
    """

    def __init__(
        self,
        http_config: Optional[HttpClientConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        *,
        client: Optional[httpx.Client] = None,
        browser: Optional[BrowserFetcher] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize fetcher.

        Args:
            http_config: Header and timeout settings
            retry_policy: Retry policy for the direct tier
            client: Pre-built client (tests inject ``httpx.MockTransport``)
            browser: Browser tier; ``None`` disables escalation
            sleep: Sleep used between retries
        """
        self.http_config = http_config or HttpClientConfig()
        self.retry_policy = retry_policy or RetryPolicy()
        self._owns_client = client is None
        self.client = client if client is not None else build_http_client(self.http_config)
        self.browser = browser
        self._sleep = sleep

    def fetch(self, url: str, headers: Optional[Mapping[str, str]] = None) -> FetchResult:
        """Return the bytes behind ``url``.

        Raises:
            FetchError: Both tiers failed (or tier 1 failed with no browser).
        """
        request_headers = build_request_headers(url, self.http_config, headers)
        response, attempts, error = self._fetch_direct(url, request_headers)

        if response is not None and not self._needs_escalation(response):
            return FetchResult(
                url=url,
                content=response.content,
                content_type=response.headers.get("content-type"),
                status=response.status_code,
                attempts=attempts,
            )

        status = response.status_code if response is not None else None
        if response is not None:
            reason = f"HTTP {status} ({normalize_content_type(response.headers.get('content-type')) or 'no type'})"
        else:
            reason = f"{type(error).__name__}: {error}"

        if self.browser is None:
            if response is not None and response.is_success and response.content:
                # no browser tier; let classification judge the body
                return FetchResult(
                    url=url,
                    content=response.content,
                    content_type=response.headers.get("content-type"),
                    status=status,
                    attempts=attempts,
                )
            raise FetchError(
                f"direct fetch failed: {reason}", url=url, status=status, attempts=attempts
            ) from error

        LOGGER.info(f"[fetch] escalating {url} to browser after {reason}")
        try:
            content, content_type = self.browser.fetch(url, request_headers)
        except FetchError as exc:
            raise FetchError(
                f"direct fetch failed ({reason}); browser fallback failed: {exc}",
                url=url,
                status=exc.status if exc.status is not None else status,
                attempts=attempts + 1,
                via="browser",
            ) from exc
        except Exception as exc:
            raise FetchError(
                f"direct fetch failed ({reason}); browser error: {type(exc).__name__}: {exc}",
                url=url,
                status=status,
                attempts=attempts + 1,
                via="browser",
            ) from exc

        return FetchResult(
            url=url,
            content=content,
            content_type=content_type,
            status=200,
            attempts=attempts + 1,
            via="browser",
        )

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _fetch_direct(self, url: str, headers: Dict[str, str]):
        """Run tier 1; returns ``(response | None, attempts, error | None)``."""
        retrying = build_retrying(self.retry_policy, sleep=self._sleep)
        attempts = 0

        def _attempt() -> httpx.Response:
            nonlocal attempts
            attempts += 1
            return self.client.get(url, headers=headers)

        try:
            response = retrying(_attempt)
        except httpx.HTTPError as exc:
            LOGGER.debug(f"[fetch] {url} failed after {attempts} attempts: {exc}")
            return None, attempts, exc
        LOGGER.debug(
            f"[fetch] {url} -> {response.status_code} "
            f"{response.headers.get('content-type', '')} ({len(response.content)} bytes)"
        )
        return response, attempts, None

    @staticmethod
    def _needs_escalation(response: httpx.Response) -> bool:
        if not response.is_success:
            return True
        if not response.content:
            return True
        if sniff(response.content) in _IMAGE_SIGNATURES:
            return False
        declared = normalize_content_type(response.headers.get("content-type"))
        return declared in _ESCALATE_CONTENT_TYPES
