# === NAVMAP v1 ===
# {
#   "module": "LottoData.AssetHosting.browser",
#   "purpose": "Headless browser fallback tier backed by a small pool of Playwright threads.",
#   "sections": [
#     {
#       "id": "browserfetcher",
#       "name": "BrowserFetcher",
#       "anchor": "class-browserfetcher",
#       "kind": "class"
#     },
#     {
#       "id": "browserpool",
#       "name": "BrowserPool",
#       "anchor": "class-browserpool",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Headless browser fallback for sources that block plain HTTP clients.

Several lottery CDNs answer library clients with an HTML challenge page or a
403 but serve the same image to a real browser. The fetcher escalates to this
tier once the direct HTTP tier gives up.

Threading model
---------------
Playwright's sync API binds a browser to the thread that launched it, so the
pool runs ``pool_size`` dedicated worker threads. Each worker owns one
Chromium instance and one context and pulls jobs from a shared queue; callers
block on a :class:`concurrent.futures.Future`. Workers start on first use and
close their own browser when :meth:`BrowserPool.close` sends them a stop
sentinel.

Body retrieval
--------------
1. ``page.goto(url)`` and take ``response.body()`` when the navigation
   response is 2xx.
2. Otherwise re-fetch from inside the page with ``fetch(url)`` so cookies set
   by the challenge page are sent.
3. When the reported type is not an image, sniff magic bytes.
"""

from __future__ import annotations

import base64
import logging
import queue
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .classifier import normalize_content_type, sniff
from .config.models import BrowserConfig
from .errors import FetchError

__all__ = ["BrowserFetcher", "BrowserPool"]

LOGGER = logging.getLogger(__name__)

_IN_PAGE_FETCH = """
async (url) => {
  const res = await fetch(url, { credentials: 'include', cache: 'no-store' });
  const buf = new Uint8Array(await res.arrayBuffer());
  let bin = '';
  for (let i = 0; i < buf.length; i += 0x8000) {
    bin += String.fromCharCode.apply(null, buf.subarray(i, i + 0x8000));
  }
  return { status: res.status, contentType: res.headers.get('content-type'), body: btoa(bin) };
}
"""

_SNIFFED_TYPES = {"png": "image/png", "jpeg": "image/jpeg", "webp": "image/webp", "gif": "image/gif"}


class BrowserFetcher:
    """Protocol-like base class for the browser tier.

    ``fetch`` returns ``(body, content_type)`` or raises :class:`FetchError`.
    """

    def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> Tuple[bytes, Optional[str]]:
        raise NotImplementedError

    def close(self) -> None:
        return None


@dataclass
class _Job:
    url: str
    headers: Dict[str, str]
    future: "Future[Tuple[bytes, Optional[str]]]" = field(default_factory=Future)


_STOP = object()


class BrowserPool(BrowserFetcher):
    """Fixed-size pool of Playwright browsers running on dedicated threads."""

    def __init__(self, config: Optional[BrowserConfig] = None, *, user_agent: Optional[str] = None):
        self.config = config or BrowserConfig()
        self.user_agent = user_agent
        self._jobs: "queue.Queue[Any]" = queue.Queue()
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._closed = False

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> Tuple[bytes, Optional[str]]:
        """Retrieve ``url`` through a pooled browser.

        Raises:
            FetchError: Navigation failed, the body was not retrievable, or the
                pool did not answer within three navigation timeouts.
        """
        self._ensure_started()
        job = _Job(url=url, headers=dict(headers or {}))
        self._jobs.put(job)
        try:
            return job.future.result(timeout=self.config.timeout_s * 3)
        except FutureTimeout:
            job.future.cancel()
            raise FetchError(
                f"browser pool did not answer within {self.config.timeout_s * 3:.0f}s",
                url=url,
                attempts=1,
                via="browser",
            ) from None

    def close(self) -> None:
        """Stop workers and close their browsers."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            threads = list(self._threads)
        for _ in threads:
            self._jobs.put(_STOP)
        for thread in threads:
            thread.join(timeout=self.config.timeout_s)
        if threads:
            LOGGER.debug(f"[browser] pool closed ({len(threads)} workers)")

    # ------------------------------------------------------------------ #
    # Workers
    # ------------------------------------------------------------------ #

    def _ensure_started(self) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("BrowserPool is closed")
            if self._threads:
                return
            for index in range(self.config.pool_size):
                thread = threading.Thread(
                    target=self._worker, name=f"browser-{index}", daemon=True
                )
                thread.start()
                self._threads.append(thread)
            LOGGER.info(f"[browser] started {self.config.pool_size} browser workers")

    def _worker(self) -> None:
        try:
            from playwright.sync_api import sync_playwright
        except ImportError as exc:
            self._serve_failures(f"playwright not installed: {exc}")
            return

        try:
            with sync_playwright() as pw:
                browser = pw.chromium.launch(
                    headless=self.config.headless, args=list(self.config.launch_args)
                )
                context_options: Dict[str, Any] = {"locale": "en-US", "accept_downloads": False}
                if self.user_agent:
                    context_options["user_agent"] = self.user_agent
                context = browser.new_context(**context_options)
                try:
                    self._serve(context)
                finally:
                    context.close()
                    browser.close()
        except Exception as exc:
            LOGGER.error(f"[browser] worker {threading.current_thread().name} failed: {exc}")
            self._serve_failures(f"browser unavailable: {exc}")

    def _serve(self, context: Any) -> None:
        while True:
            job = self._jobs.get()
            if job is _STOP:
                return
            if not job.future.set_running_or_notify_cancel():
                continue
            try:
                job.future.set_result(self._fetch_in_context(context, job))
            except FetchError as exc:
                job.future.set_exception(exc)
            except Exception as exc:
                LOGGER.warning(f"[browser] {job.url} failed unexpectedly: {exc}")
                job.future.set_exception(
                    FetchError(f"browser error: {exc}", url=job.url, attempts=1, via="browser")
                )

    def _serve_failures(self, reason: str) -> None:
        """Fail every job with ``reason`` until stopped."""
        while True:
            job = self._jobs.get()
            if job is _STOP:
                return
            if job.future.set_running_or_notify_cancel():
                job.future.set_exception(
                    FetchError(reason, url=job.url, attempts=1, via="browser")
                )

    def _fetch_in_context(self, context: Any, job: _Job) -> Tuple[bytes, Optional[str]]:
        from playwright.sync_api import Error as PlaywrightError

        timeout_ms = self.config.timeout_s * 1000
        try:
            page = context.new_page()
        except PlaywrightError as exc:
            raise FetchError(
                f"could not open page: {exc}", url=job.url, attempts=1, via="browser"
            ) from exc
        try:
            body: Optional[bytes] = None
            content_type: Optional[str] = None
            status: Optional[int] = None
            try:
                response = page.goto(
                    job.url,
                    wait_until="load",
                    timeout=timeout_ms,
                    referer=job.headers.get("Referer"),
                )
            except PlaywrightError as exc:
                raise FetchError(
                    f"navigation failed: {exc}", url=job.url, attempts=1, via="browser"
                ) from exc

            if response is not None:
                status = response.status
                if response.ok:
                    try:
                        body = response.body()
                        content_type = response.header_value("content-type")
                    except PlaywrightError:
                        body = None

            if not body:
                try:
                    result = page.evaluate(_IN_PAGE_FETCH, job.url)
                except PlaywrightError as exc:
                    raise FetchError(
                        f"in-page fetch failed: {exc}",
                        url=job.url,
                        status=status,
                        attempts=1,
                        via="browser",
                    ) from exc
                status = int(result.get("status") or 0)
                if status < 200 or status >= 300:
                    raise FetchError(
                        f"in-page fetch returned HTTP {status}",
                        url=job.url,
                        status=status,
                        attempts=1,
                        via="browser",
                    )
                body = base64.b64decode(result.get("body") or "")
                content_type = result.get("contentType")

            if not body:
                raise FetchError("empty body", url=job.url, status=status, attempts=1, via="browser")

            if not normalize_content_type(content_type).startswith("image/"):
                detected = _SNIFFED_TYPES.get(sniff(body) or "")
                if detected:
                    content_type = detected

            LOGGER.info(f"[browser] fetched {job.url} ({len(body)} bytes, {content_type})")
            return body, content_type
        finally:
            page.close()
