from __future__ import annotations

from datetime import datetime, timedelta
import threading

from sqlalchemy import func, select

from app.models import CrawlCacheEntry
from app.services.crawl_cache import CrawlCache

URL = "https://artist.bandcamp.com/"


def test_miss_then_hit(session_factory, settings) -> None:
    cache = CrawlCache(session_factory, settings=settings)
    assert cache.get(URL) is None

    cache.put(URL, "Bio text SEDA-AB12CD34")
    assert cache.get(URL) == "Bio text SEDA-AB12CD34"


def test_entry_expires_after_ttl(session_factory, settings) -> None:
    cache = CrawlCache(session_factory, ttl_hours=24, settings=settings)
    written = datetime.utcnow() - timedelta(hours=25)
    cache.put(URL, "stale", now=written)

    assert cache.get(URL) is None
    assert cache.get(URL, now=written + timedelta(hours=23)) == "stale"


def test_put_upserts_single_row_with_fresh_ttl(session_factory, settings) -> None:
    cache = CrawlCache(session_factory, ttl_hours=24, settings=settings)
    first = datetime.utcnow() - timedelta(hours=30)
    cache.put(URL, "old", now=first)
    second = datetime.utcnow()
    cache.put(URL, "new", now=second)

    with session_factory() as db:
        rows = db.execute(select(CrawlCacheEntry).where(CrawlCacheEntry.url == URL)).scalars().all()
        assert len(rows) == 1
        assert rows[0].content == "new"
        assert rows[0].crawled_at == second
        assert rows[0].expires_at == second + timedelta(hours=24)
    assert cache.get(URL) == "new"


def test_empty_page_text_is_still_a_hit(session_factory, settings) -> None:
    cache = CrawlCache(session_factory, settings=settings)
    cache.put(URL, "")
    assert cache.get(URL) == ""


def test_concurrent_writers_leave_one_entry(session_factory, settings) -> None:
    cache = CrawlCache(session_factory, settings=settings)
    errors: list[BaseException] = []

    def _writer(i: int) -> None:
        try:
            cache.put(URL, f"content-{i}")
        except BaseException as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=_writer, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with session_factory() as db:
        count = db.execute(select(func.count(CrawlCacheEntry.id))).scalar()
    assert count == 1
    assert (cache.get(URL) or "").startswith("content-")
