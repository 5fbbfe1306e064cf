from __future__ import annotations

from dataclasses import dataclass
import html
import logging
import re
from typing import Any, Callable

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from app.config import Settings, get_settings
from app.services.errors import CrawlFetchError, CrawlTimeout

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-extensions",
    "--disable-plugins",
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
    "--disable-backgrounding-occluded-windows",
    "--disable-client-side-phishing-detection",
    "--disable-default-apps",
    "--disable-features=TranslateUI",
    "--disable-ipc-flooding-protection",
)
BLOCKED_RESOURCE_TYPES = frozenset({"image", "media", "font", "stylesheet"})
VIEWPORT = {"width": 1920, "height": 1080}

SCRIPT_STYLE_RE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
TAG_RE = re.compile(r"<[^>]+>")
COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)


@dataclass(slots=True)
class FetchedPage:
    url: str
    html: str
    text: str
    status_code: int | None = None

    def contains(self, needle: str) -> bool:
        if not needle:
            return False
        return needle in self.text or needle in self.html


def html_to_text(raw_html: str) -> str:
    value = COMMENT_RE.sub(" ", raw_html or "")
    value = SCRIPT_STYLE_RE.sub(" ", value)
    value = TAG_RE.sub(" ", value)
    value = html.unescape(value)
    value = re.sub(r"\s+", " ", value)
    return value.strip()


class PageFetcher:
    name: str = "base"

    def fetch(self, url: str) -> FetchedPage:
        raise NotImplementedError


def _block_non_essential(route: Any) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        route.abort()
    else:
        route.continue_()


class PlaywrightPageFetcher(PageFetcher):
    """Loads one page in a throwaway headless Chromium with scripting disabled.

    Every call launches its own browser and closes it before returning, on
    success, timeout, or any other error.
    """

    name = "playwright"

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        user_agent: str | None = None,
        timeout_ms: int | None = None,
        settle_ms: int | None = None,
        playwright_factory: Callable[[], Any] = sync_playwright,
    ) -> None:
        cfg = settings or get_settings()
        self.user_agent = user_agent or cfg.crawler_user_agent
        self.timeout_ms = int(timeout_ms if timeout_ms is not None else cfg.crawler_timeout_ms)
        self.settle_ms = int(settle_ms if settle_ms is not None else cfg.crawler_settle_ms)
        self._playwright_factory = playwright_factory

    def fetch(self, url: str) -> FetchedPage:
        try:
            with self._playwright_factory() as p:
                browser = p.chromium.launch(headless=True, args=list(CHROMIUM_ARGS), timeout=self.timeout_ms)
                try:
                    return self._load(browser, url)
                finally:
                    self._close_browser(browser, url)
        except PlaywrightTimeoutError as exc:
            raise CrawlTimeout(f"Timed out loading {url}: {exc}") from exc
        except PlaywrightError as exc:
            raise CrawlFetchError(f"{exc.__class__.__name__}: {exc}") from exc

    def _load(self, browser: Any, url: str) -> FetchedPage:
        context = browser.new_context(
            user_agent=self.user_agent,
            viewport=dict(VIEWPORT),
            java_script_enabled=False,
        )
        page = context.new_page()
        page.route("**/*", _block_non_essential)
        response = page.goto(url, wait_until="networkidle", timeout=self.timeout_ms)
        page.wait_for_timeout(self.settle_ms)

        status_code = response.status if response is not None else None
        if status_code is not None and status_code >= 500:
            raise CrawlFetchError(f"http_status={status_code} for {url}")

        raw_html = page.content() or ""
        try:
            text = page.inner_text("body", timeout=self.timeout_ms) or ""
        except PlaywrightError:
            logger.debug("Rendered text unavailable for %s; deriving it from markup", url)
            text = html_to_text(raw_html)
        return FetchedPage(url=url, html=raw_html, text=text, status_code=status_code)

    def _close_browser(self, browser: Any, url: str) -> None:
        try:
            browser.close()
        except PlaywrightError:
            logger.warning("Browser close failed after fetching %s", url, exc_info=True)
