from __future__ import annotations

import re
from typing import Iterable
from urllib.parse import urlsplit, urlunsplit

from app.config import DEFAULT_CRAWLER_DOMAINS
from app.services.errors import ValidationError

MAX_SUBMISSION_URL_LENGTH = 500

# Coarse hostname + TLD shape check applied at submission time.
SUBMISSION_URL_RE = re.compile(r"^https://([\w-]+\.)*[a-zA-Z0-9][\w-]*[a-zA-Z0-9]\.[a-zA-Z]{2,}")

_LOOPBACK_HOSTS = {"localhost", "127.0.0.1"}
_PRIVATE_HOST_PATTERNS = (
    re.compile(r"^10\."),
    re.compile(r"^172\.(1[6-9]|2[0-9]|3[01])\."),
    re.compile(r"^192\.168\."),
)


def _split(url: str):
    raw = (url or "").strip()
    if not raw:
        raise ValidationError("Invalid URL provided")
    try:
        parsed = urlsplit(raw)
        _ = parsed.port  # raises ValueError on a malformed port
    except ValueError as exc:
        raise ValidationError("Invalid URL provided") from exc
    return parsed


def is_internal_host(hostname: str) -> bool:
    """Lexical loopback/private-range check. No DNS resolution is attempted."""
    host = (hostname or "").strip().lower().strip(".")
    if host in _LOOPBACK_HOSTS:
        return True
    return any(p.match(host) for p in _PRIVATE_HOST_PATTERNS)


def is_allowed_host(hostname: str, allowed_domains: Iterable[str]) -> bool:
    host = (hostname or "").strip().lower().strip(".")
    if not host:
        return False
    for domain in allowed_domains:
        dom = (domain or "").strip().lower().strip(".")
        if dom and (host == dom or host.endswith(f".{dom}")):
            return True
    return False


def validate_crawl_url(url: str, *, allowed_domains: Iterable[str] | None = None) -> str:
    """Return the canonical form of ``url`` if the crawler may visit it.

    Rejects non-HTTPS schemes, hosts outside the platform allowlist, and
    loopback/private network targets. Raises ``ValidationError`` otherwise.
    """
    parsed = _split(url)
    if parsed.scheme.lower() != "https":
        raise ValidationError("Only HTTPS URLs are allowed")

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise ValidationError("Invalid URL provided")

    domains = list(allowed_domains) if allowed_domains is not None else list(DEFAULT_CRAWLER_DOMAINS)
    if not is_allowed_host(hostname, domains):
        raise ValidationError(f"Domain {hostname} is not allowed for verification")

    if is_internal_host(hostname):
        raise ValidationError("Internal network URLs are not allowed")

    netloc = hostname
    if parsed.port is not None:
        netloc = f"{hostname}:{parsed.port}"
    return urlunsplit(("https", netloc, parsed.path or "/", parsed.query, parsed.fragment))


def validate_submission_url(url: str) -> str:
    """Coarse check for user-submitted target URLs.

    Looser than ``validate_crawl_url``: any HTTPS URL with a plausible
    hostname is accepted. Hosts the crawler refuses end up in admin review.
    """
    value = (url or "").strip()
    if not value:
        raise ValidationError("Target URL is required")
    if len(value) > MAX_SUBMISSION_URL_LENGTH:
        raise ValidationError("URL is too long")

    parsed = _split(value)
    if parsed.scheme.lower() != "https" or not parsed.netloc:
        raise ValidationError("Must be a valid HTTPS URL")
    if not SUBMISSION_URL_RE.match(value):
        raise ValidationError("URL must use HTTPS and contain a valid domain")
    return value
