from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.services.errors import CrawlFetchError
from app.services.page_fetcher import FetchedPage, PageFetcher


class FakeFetcher(PageFetcher):
    """Replays a scripted sequence of pages/errors; the last outcome repeats."""

    name = "fake"

    def __init__(self, *outcomes: FetchedPage | Exception) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[str] = []

    def fetch(self, url: str) -> FetchedPage:
        self.calls.append(url)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class ExplodingFetcher(PageFetcher):
    name = "exploding"

    def __init__(self) -> None:
        self.calls: list[str] = []

    def fetch(self, url: str) -> FetchedPage:
        self.calls.append(url)
        raise AssertionError("network access is not expected here")


def page(url: str, text: str = "", html: str = "") -> FetchedPage:
    return FetchedPage(url=url, html=html or f"<html><body>{text}</body></html>", text=text, status_code=200)


def fetch_error(message: str = "net::ERR_CONNECTION_RESET") -> CrawlFetchError:
    return CrawlFetchError(message)


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class InlineDispatch:
    """Dispatcher double: records each dispatch and runs it synchronously."""

    def __init__(self, *, run: bool = True, fail_with: Exception | None = None) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.run = run
        self.fail_with = fail_with

    def __call__(self, target, *args, name: str = "") -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append(args)
        if self.run:
            target(*args)


# -- Playwright doubles -------------------------------------------------------


@dataclass
class FakeRequest:
    resource_type: str
    url: str = "https://artist.bandcamp.com/asset"


@dataclass
class FakeRoute:
    request: FakeRequest
    outcome: str = ""

    def abort(self) -> None:
        self.outcome = "aborted"

    def continue_(self) -> None:
        self.outcome = "continued"


@dataclass
class FakeResponse:
    status: int = 200


@dataclass
class FakePage:
    html: str = "<html><body>hello</body></html>"
    text: str = "hello"
    status: int = 200
    goto_error: Exception | None = None
    inner_text_error: Exception | None = None
    route_handler: Any = None
    goto_calls: list[dict[str, Any]] = field(default_factory=list)
    waits: list[int] = field(default_factory=list)

    def route(self, pattern: str, handler) -> None:
        self.route_handler = handler

    def goto(self, url: str, **kwargs):
        self.goto_calls.append({"url": url, **kwargs})
        if self.goto_error is not None:
            raise self.goto_error
        return FakeResponse(status=self.status)

    def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)

    def content(self) -> str:
        return self.html

    def inner_text(self, selector: str, **kwargs) -> str:
        if self.inner_text_error is not None:
            raise self.inner_text_error
        return self.text


@dataclass
class FakeContext:
    page: FakePage
    options: dict[str, Any] = field(default_factory=dict)

    def new_page(self) -> FakePage:
        return self.page


@dataclass
class FakeBrowser:
    page: FakePage
    closed: bool = False
    contexts: list[FakeContext] = field(default_factory=list)

    def new_context(self, **kwargs) -> FakeContext:
        ctx = FakeContext(page=self.page, options=kwargs)
        self.contexts.append(ctx)
        return ctx

    def close(self) -> None:
        self.closed = True


class FakeChromium:
    def __init__(self, owner: "FakePlaywright") -> None:
        self.owner = owner

    def launch(self, **kwargs) -> FakeBrowser:
        self.owner.launch_kwargs.append(kwargs)
        if self.owner.launch_error is not None:
            raise self.owner.launch_error
        browser = FakeBrowser(page=self.owner.page)
        self.owner.browsers.append(browser)
        return browser


class FakePlaywright:
    """Stands in for ``sync_playwright``; call it to get the context manager."""

    def __init__(self, page: FakePage | None = None, *, launch_error: Exception | None = None) -> None:
        self.page = page or FakePage()
        self.launch_error = launch_error
        self.browsers: list[FakeBrowser] = []
        self.launch_kwargs: list[dict[str, Any]] = []
        self.entered = 0
        self.exited = 0
        self.chromium = FakeChromium(self)

    def __call__(self) -> "FakePlaywright":
        return self

    def __enter__(self) -> "FakePlaywright":
        self.entered += 1
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.exited += 1
        return False
