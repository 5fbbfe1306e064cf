from __future__ import annotations

from datetime import datetime
import logging
import time
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.db import SessionLocal
from app.models import ArtistProfile, User, VerificationRequest, VerificationStatus
from app.services.crawl_cache import CrawlCache
from app.services.errors import CrawlFetchError, CrawlNoMatch, CrawlTimeout
from app.services.page_fetcher import PageFetcher, PlaywrightPageFetcher
from app.services.url_validator import validate_crawl_url
from app.utils.jsonx import to_json

logger = logging.getLogger(__name__)


def backoff_seconds(attempt: int) -> int:
    """Delay after failed attempt ``attempt`` (1-based): 2s, 4s, 8s, ..."""
    return 2 ** max(1, int(attempt))


def error_payload(exc: BaseException) -> dict[str, str]:
    if isinstance(exc, CrawlTimeout):
        kind = "timeout"
    elif isinstance(exc, CrawlFetchError):
        kind = "fetch_error"
    else:
        kind = exc.__class__.__name__
    return {"error": str(exc), "type": kind}


def upsert_verified_profile(db: Session, user_id: int, *, now: datetime) -> ArtistProfile:
    profile = db.execute(select(ArtistProfile).where(ArtistProfile.user_id == user_id)).scalars().first()
    if profile is None:
        user = db.get(User, user_id)
        artist_name = ""
        if user is not None:
            artist_name = (user.email or "").split("@")[0] or user.username or ""
        profile = ArtistProfile(
            user_id=user_id,
            artist_name=(artist_name or f"artist-{user_id}")[:255],
            verified=True,
            verified_at=now,
        )
        db.add(profile)
    else:
        profile.verified = True
        profile.verified_at = now
    return profile


class ClaimCrawler:
    """Checks that a claim code is publicly visible on the submitted page.

    Outcomes are written back to the ``VerificationRequest``: ``APPROVED``
    (with the artist profile flipped to verified) on a match, otherwise
    ``AWAITING_ADMIN`` carrying the last fetch error, if any.
    """

    def __init__(
        self,
        *,
        fetcher: PageFetcher | None = None,
        cache: CrawlCache | None = None,
        session_factory: Callable[[], Session] | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self.fetcher = fetcher or PlaywrightPageFetcher(settings=self.settings)
        self._session_factory = session_factory or SessionLocal
        self.cache = cache or CrawlCache(self._session_factory, settings=self.settings)
        self.max_retries = max(1, int(self.settings.crawler_max_retries))
        self._sleep = sleep
        self._clock = clock

    def verify_claim(self, request_id: int, target_url: str, claim_code: str) -> bool:
        # Validation failures propagate; the caller routes them to admin review.
        sanitized_url = validate_crawl_url(target_url, allowed_domains=self.settings.crawler_allowed_domains)
        logger.info("Starting verification for request %s on %s", request_id, sanitized_url)

        last_error: CrawlFetchError | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                self._crawl_page(sanitized_url, claim_code)
            except CrawlNoMatch:
                logger.info("Claim code not found for request %s on %s", request_id, sanitized_url)
                break
            except CrawlFetchError as exc:
                last_error = exc
                if attempt < self.max_retries:
                    delay = backoff_seconds(attempt)
                    logger.warning(
                        "Crawl attempt %s/%s failed for request %s: %s; retrying in %ss",
                        attempt,
                        self.max_retries,
                        request_id,
                        exc,
                        delay,
                    )
                    self._sleep(delay)
                else:
                    logger.warning(
                        "Crawl attempt %s/%s failed for request %s: %s",
                        attempt,
                        self.max_retries,
                        request_id,
                        exc,
                    )
                continue
            self._mark_approved(request_id)
            return True

        self._mark_awaiting_admin(request_id, last_error)
        return False

    def _crawl_page(self, url: str, claim_code: str) -> None:
        """Return if ``claim_code`` is on the page; raise ``CrawlNoMatch`` if not."""
        cached = self.cache.get(url, now=self._clock())
        if cached is not None:
            logger.info("Crawl cache hit for %s", url)
            if claim_code and claim_code in cached:
                return
            raise CrawlNoMatch(f"Claim code not present in cached content for {url}")

        page = self.fetcher.fetch(url)
        self.cache.put(url, page.text, now=self._clock())
        if not page.contains(claim_code):
            raise CrawlNoMatch(f"Claim code not present on {url}")

    def _load_crawling(self, db: Session, request_id: int) -> VerificationRequest | None:
        row = db.get(VerificationRequest, request_id)
        if row is None:
            logger.warning("Verification request %s vanished before its crawl outcome was stored", request_id)
            return None
        if row.status != VerificationStatus.CRAWLING:
            logger.warning(
                "Dropping crawl outcome for request %s: status is %s, expected %s",
                request_id,
                row.status,
                VerificationStatus.CRAWLING,
            )
            return None
        return row

    def _mark_approved(self, request_id: int) -> None:
        now = self._clock()
        with self._session_factory() as db:
            row = self._load_crawling(db, request_id)
            if row is None:
                return
            row.status = VerificationStatus.APPROVED
            row.crawled_at = now
            row.reviewed_at = now
            upsert_verified_profile(db, row.user_id, now=now)
            db.commit()
        logger.info("Verification request %s approved by crawler", request_id)

    def _mark_awaiting_admin(self, request_id: int, error: BaseException | None) -> None:
        mark_awaiting_admin(self._session_factory, request_id, error, now=self._clock())


def mark_awaiting_admin(
    session_factory: Callable[[], Session],
    request_id: int,
    error: BaseException | None,
    *,
    from_statuses: tuple[str, ...] = (VerificationStatus.CRAWLING,),
    now: datetime | None = None,
) -> bool:
    """Hand a request over to manual review. Returns False if it was not eligible."""
    with session_factory() as db:
        row = db.get(VerificationRequest, request_id)
        if row is None or row.status not in from_statuses:
            logger.warning(
                "Not moving request %s to %s (current status: %s)",
                request_id,
                VerificationStatus.AWAITING_ADMIN,
                row.status if row is not None else "missing",
            )
            return False
        row.status = VerificationStatus.AWAITING_ADMIN
        row.crawled_at = now or datetime.utcnow()
        if error is not None:
            row.crawler_response_json = to_json(error_payload(error))
        db.commit()
    logger.info("Verification request %s handed to admin review", request_id)
    return True
