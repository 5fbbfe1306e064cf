from __future__ import annotations

from datetime import datetime, timedelta
import logging
from threading import Lock
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.db import SessionLocal
from app.models import CrawlCacheEntry

logger = logging.getLogger(__name__)

_WRITE_LOCK = Lock()


class CrawlCache:
    """Per-URL page text cache with a fixed TTL from the time of write.

    Reads never block on writers. Writes are upserts serialised by a
    process-wide lock; a concurrent insert from another process loses the
    unique-constraint race and is retried as an update (last write wins).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        *,
        ttl_hours: int | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        cfg = settings or get_settings()
        self.ttl = timedelta(hours=ttl_hours if ttl_hours is not None else cfg.crawl_cache_ttl_hours)

    def get(self, url: str, *, now: datetime | None = None) -> str | None:
        now = now or datetime.utcnow()
        with self._session_factory() as db:
            entry = (
                db.execute(
                    select(CrawlCacheEntry).where(
                        CrawlCacheEntry.url == url,
                        CrawlCacheEntry.expires_at > now,
                    )
                )
                .scalars()
                .first()
            )
            if entry is None:
                return None
            return entry.content or ""

    def put(self, url: str, content: str, *, now: datetime | None = None) -> None:
        now = now or datetime.utcnow()
        expires_at = now + self.ttl
        with _WRITE_LOCK:
            with self._session_factory() as db:
                try:
                    self._upsert(db, url, content, now, expires_at)
                except IntegrityError:
                    db.rollback()
                    logger.debug("Cache insert raced for %s; retrying as update", url)
                    self._upsert(db, url, content, now, expires_at)

    def _upsert(self, db: Session, url: str, content: str, now: datetime, expires_at: datetime) -> None:
        entry = db.execute(select(CrawlCacheEntry).where(CrawlCacheEntry.url == url)).scalars().first()
        if entry is None:
            db.add(CrawlCacheEntry(url=url, content=content or "", crawled_at=now, expires_at=expires_at))
        else:
            entry.content = content or ""
            entry.crawled_at = now
            entry.expires_at = expires_at
        db.commit()
