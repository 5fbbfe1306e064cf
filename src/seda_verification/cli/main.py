from __future__ import annotations

import argparse
import logging
import sys

from app.config import get_settings
from app.services.errors import CrawlFetchError, ValidationError
from app.services.page_fetcher import PlaywrightPageFetcher
from app.services.url_validator import validate_crawl_url

from .. import get_runtime_version

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="seda-verify",
        description="Artist claim-code verification tools.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_runtime_version()}")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check-url", help="Validate a URL against the crawler allowlist")
    check.add_argument("url")

    probe = sub.add_parser("probe", help="Fetch a page once and look for a claim code (no database)")
    probe.add_argument("url")
    probe.add_argument("code")

    serve = sub.add_parser("serve", help="Run the HTTP API under uvicorn")
    serve.add_argument("--host", default=DEFAULT_HOST)
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    return parser


def cmd_check_url(args: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        canonical = validate_crawl_url(args.url, allowed_domains=settings.crawler_allowed_domains)
    except ValidationError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 2
    print(canonical)
    return 0


def cmd_probe(args: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        canonical = validate_crawl_url(args.url, allowed_domains=settings.crawler_allowed_domains)
        page = PlaywrightPageFetcher(settings=settings).fetch(canonical)
    except (ValidationError, CrawlFetchError) as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 2

    found = page.contains(args.code.strip().upper())
    print(f"url={canonical}")
    print(f"status={page.status_code}")
    print(f"found={'true' if found else 'false'}")
    return 0 if found else 1


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run(
        "app.main:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=False,
        log_level="info",
    )
    return 0


COMMANDS = {
    "check-url": cmd_check_url,
    "probe": cmd_probe,
    "serve": cmd_serve,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    raise SystemExit(main())
