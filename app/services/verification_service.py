from __future__ import annotations

from datetime import datetime, timedelta
import logging
import re
import secrets
import string
from typing import Any, Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.db import SessionLocal
from app.models import VerificationRequest, VerificationStatus
from app.services.background import Dispatcher, get_dispatcher
from app.services.crawler import ClaimCrawler, mark_awaiting_admin, upsert_verified_profile
from app.services.errors import Conflict, Expired, NotFound, RateLimitExceeded, ValidationError
from app.services.url_validator import validate_submission_url
from app.utils.jsonx import from_json

logger = logging.getLogger(__name__)

CLAIM_CODE_PREFIX = "SEDA-"
CLAIM_CODE_ALPHABET = string.ascii_uppercase + string.digits
CLAIM_CODE_RE = re.compile(r"^SEDA-[A-Z0-9-]+$")
CLAIM_CODE_MIN_LENGTH = 8
CLAIM_CODE_MAX_LENGTH = 50
MAX_ADMIN_PAGE_SIZE = 200


def generate_claim_code(length: int = 8) -> str:
    body = "".join(secrets.choice(CLAIM_CODE_ALPHABET) for _ in range(max(1, int(length))))
    return f"{CLAIM_CODE_PREFIX}{body}"


def normalize_claim_code(value: str) -> str:
    code = (value or "").strip().upper()
    if not code:
        raise ValidationError("Claim code is required")
    if len(code) < CLAIM_CODE_MIN_LENGTH:
        raise ValidationError("Claim code is too short")
    if len(code) > CLAIM_CODE_MAX_LENGTH:
        raise ValidationError("Claim code is too long")
    if not CLAIM_CODE_RE.match(code):
        raise ValidationError("Invalid claim code format. Must start with SEDA- followed by letters and numbers")
    return code


def verification_instructions(claim_code: str) -> dict[str, Any]:
    return {
        "step1": "Copy your unique claim code",
        "step2": "Paste it on a public channel you control",
        "step3": "Submit the URL where you placed the code",
        "examples": [
            "Your Bandcamp artist description",
            "Your personal website bio or about page",
            "Your SoundCloud profile description",
            "A public social media post (Twitter, Instagram)",
        ],
        "claim_code": claim_code,
        "note": "The code must be publicly visible and remain in place until verification is complete.",
    }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() + "Z" if value else None


def status_view(row: VerificationRequest) -> dict[str, Any]:
    return {
        "id": row.id,
        "status": row.status,
        "target_url": row.target_url,
        "submitted_at": _iso(row.submitted_at),
        "expires_at": _iso(row.expires_at),
        "crawled_at": _iso(row.crawled_at),
        "reviewed_at": _iso(row.reviewed_at),
        "denial_reason": row.denial_reason,
    }


def summary_view(row: VerificationRequest) -> dict[str, Any]:
    return {
        "id": row.id,
        "status": row.status,
        "submitted_at": _iso(row.submitted_at),
        "reviewed_at": _iso(row.reviewed_at),
        "expires_at": _iso(row.expires_at),
    }


def admin_view(row: VerificationRequest) -> dict[str, Any]:
    return {
        **status_view(row),
        "user_id": row.user_id,
        "claim_code": row.claim_code,
        "reviewed_by": row.reviewed_by,
        "crawler_response": from_json(row.crawler_response_json, None),
    }


class VerificationService:
    """Owns the ``VerificationRequest`` lifecycle.

    ``PENDING -> CRAWLING -> {APPROVED, AWAITING_ADMIN}``, ``PENDING -> EXPIRED``
    on a late submission, and ``AWAITING_ADMIN -> {APPROVED, DENIED}`` through
    ``resolve_admin_review``. The crawl runs detached from ``submit_verification``
    and reports its outcome straight into the database.
    """

    def __init__(
        self,
        db: Session,
        *,
        settings: Settings | None = None,
        crawler: ClaimCrawler | None = None,
        dispatch: Dispatcher | None = None,
        session_factory: Callable[[], Session] | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self._session_factory = session_factory or SessionLocal
        self._crawler = crawler
        self._dispatch = dispatch or get_dispatcher(self.settings.crawler_dispatch)
        self._clock = clock

    @property
    def crawler(self) -> ClaimCrawler:
        if self._crawler is None:
            self._crawler = ClaimCrawler(
                settings=self.settings,
                session_factory=self._session_factory,
                clock=self._clock,
            )
        return self._crawler

    # -- user operations -------------------------------------------------

    def request_verification(self, user_id: int) -> dict[str, Any]:
        now = self._clock()
        self._check_rate_limit(user_id, now)

        existing = (
            self.db.execute(
                select(VerificationRequest.id).where(
                    VerificationRequest.user_id == user_id,
                    VerificationRequest.status.in_(VerificationStatus.ACTIVE),
                )
            )
            .scalars()
            .first()
        )
        if existing is not None:
            raise Conflict("You already have a pending verification request")

        claim_code = generate_claim_code(self.settings.verification_code_length)
        row = VerificationRequest(
            user_id=user_id,
            claim_code=claim_code,
            status=VerificationStatus.PENDING,
            submitted_at=now,
            expires_at=now + timedelta(days=self.settings.verification_code_expiry_days),
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.info("Verification request %s created for user %s", row.id, user_id)

        return {
            "id": row.id,
            "claim_code": row.claim_code,
            "expires_at": _iso(row.expires_at),
            "instructions": verification_instructions(claim_code),
        }

    def submit_verification(self, user_id: int, claim_code: str, target_url: str) -> dict[str, Any]:
        code = normalize_claim_code(claim_code)
        row = (
            self.db.execute(
                select(VerificationRequest).where(
                    VerificationRequest.user_id == user_id,
                    VerificationRequest.claim_code == code,
                    VerificationRequest.status == VerificationStatus.PENDING,
                )
            )
            .scalars()
            .first()
        )
        if row is None:
            raise NotFound("Verification request not found or invalid claim code")

        if self._clock() > row.expires_at:
            row.status = VerificationStatus.EXPIRED
            self.db.commit()
            logger.info("Verification request %s expired before submission", row.id)
            raise Expired("Verification code has expired")

        url = validate_submission_url(target_url)

        request_id = int(row.id)
        row.target_url = url
        row.status = VerificationStatus.CRAWLING
        self.db.commit()
        logger.info("Verification request %s submitted with %s", request_id, url)

        try:
            self._dispatch(self._run_crawl, request_id, url, code, name=f"verification-crawl-{request_id}")
        except Exception as exc:
            logger.exception("Could not start crawl for verification request %s", request_id)
            mark_awaiting_admin(self._session_factory, request_id, exc, now=self._clock())

        return {
            "message": "Verification submitted. We will check your claim code placement.",
            "status": "processing",
        }

    def get_verification_status(self, user_id: int, request_id: int) -> dict[str, Any]:
        row = (
            self.db.execute(
                select(VerificationRequest).where(
                    VerificationRequest.id == request_id,
                    VerificationRequest.user_id == user_id,
                )
            )
            .scalars()
            .first()
        )
        if row is None:
            raise NotFound("Verification request not found")
        return status_view(row)

    def get_user_verifications(self, user_id: int) -> list[dict[str, Any]]:
        rows = (
            self.db.execute(
                select(VerificationRequest)
                .where(VerificationRequest.user_id == user_id)
                .order_by(VerificationRequest.submitted_at.desc(), VerificationRequest.id.desc())
            )
            .scalars()
            .all()
        )
        return [summary_view(row) for row in rows]

    # -- admin collaborator ------------------------------------------------

    def resolve_admin_review(
        self,
        request_id: int,
        *,
        approve: bool,
        admin_id: int | None = None,
        denial_reason: str | None = None,
    ) -> dict[str, Any]:
        row = self.db.get(VerificationRequest, request_id)
        if row is None:
            raise NotFound("Verification request not found")
        if row.status != VerificationStatus.AWAITING_ADMIN:
            raise Conflict(f"Verification request is {row.status}; only {VerificationStatus.AWAITING_ADMIN} can be reviewed")

        now = self._clock()
        row.reviewed_at = now
        row.reviewed_by = admin_id
        if approve:
            row.status = VerificationStatus.APPROVED
            upsert_verified_profile(self.db, row.user_id, now=now)
        else:
            row.status = VerificationStatus.DENIED
            row.denial_reason = (denial_reason or "").strip() or None
        self.db.commit()
        self.db.refresh(row)
        logger.info("Verification request %s %s by admin %s", row.id, row.status.lower(), admin_id)
        return admin_view(row)

    def list_verifications(self, *, status: str | None = None, limit: int = 50, offset: int = 0) -> dict[str, Any]:
        limit = min(max(1, int(limit)), MAX_ADMIN_PAGE_SIZE)
        offset = max(0, int(offset))
        query = select(VerificationRequest)
        count_query = select(func.count(VerificationRequest.id))
        if status:
            wanted = status.strip().upper()
            if wanted not in VerificationStatus.ALL:
                raise ValidationError(f"Unknown verification status: {status}")
            query = query.where(VerificationRequest.status == wanted)
            count_query = count_query.where(VerificationRequest.status == wanted)

        rows = (
            self.db.execute(
                query.order_by(VerificationRequest.submitted_at.desc(), VerificationRequest.id.desc())
                .limit(limit)
                .offset(offset)
            )
            .scalars()
            .all()
        )
        total = int(self.db.execute(count_query).scalar() or 0)
        return {"data": [admin_view(row) for row in rows], "total": total, "limit": limit, "offset": offset}

    def verification_stats(self) -> dict[str, Any]:
        counts = {name: 0 for name in VerificationStatus.ALL}
        for status, count in self.db.execute(
            select(VerificationRequest.status, func.count(VerificationRequest.id)).group_by(VerificationRequest.status)
        ).all():
            counts[str(status)] = int(count or 0)
        return {"total": sum(counts.values()), "by_status": counts}

    # -- internals ---------------------------------------------------------

    def _check_rate_limit(self, user_id: int, now: datetime) -> None:
        window_start = now - timedelta(hours=self.settings.verification_rate_limit_window_hours)
        recent = int(
            self.db.execute(
                select(func.count(VerificationRequest.id)).where(
                    VerificationRequest.user_id == user_id,
                    VerificationRequest.submitted_at >= window_start,
                )
            ).scalar()
            or 0
        )
        cap = self.settings.verification_rate_limit_per_day
        if recent >= cap:
            raise RateLimitExceeded(f"Rate limit exceeded. You can only request {cap} verifications per day.")

    def _run_crawl(self, request_id: int, target_url: str, claim_code: str) -> None:
        try:
            self.crawler.verify_claim(request_id, target_url, claim_code)
        except Exception as exc:
            logger.exception("Crawler verification failed for request %s", request_id)
            mark_awaiting_admin(self._session_factory, request_id, exc, now=self._clock())
