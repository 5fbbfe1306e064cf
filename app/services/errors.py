from __future__ import annotations


class VerificationError(Exception):
    """Base class for failures surfaced by the verification workflow."""

    code: str = "error"
    status_code: int = 400

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(VerificationError):
    code = "validation_error"
    status_code = 400


class RateLimitExceeded(VerificationError):
    code = "rate_limit_exceeded"
    status_code = 429


class Conflict(VerificationError):
    code = "conflict"
    status_code = 409


class NotFound(VerificationError):
    code = "not_found"
    status_code = 404


class Expired(VerificationError):
    code = "expired"
    status_code = 400


class CrawlFetchError(VerificationError):
    """Transient page fetch failure; the crawler retries these."""

    code = "crawl_fetch_error"
    status_code = 502


class CrawlTimeout(CrawlFetchError):
    code = "crawl_timeout"
    status_code = 504


class CrawlNoMatch(VerificationError):
    """Page fetched cleanly but did not contain the claim code. Never retried."""

    code = "crawl_no_match"
    status_code = 422
