import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from app import db as app_db
from app.config import get_settings
from app.routers import admin, verification
from app.services.errors import VerificationError
from seda_verification import get_runtime_version


def _init_db(database_url: str) -> None:
    app_db.configure_database(database_url)
    app_db.init_schema()


def create_app() -> FastAPI:
    # Respect runtime env overrides (tests, temporary runs).
    get_settings.cache_clear()
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        session_cookie=settings.session_cookie_name,
        same_site="lax",
        https_only=settings.app_env == "prod",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins or ["http://127.0.0.1", "http://localhost"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _init_db(settings.database_url)

    @app.exception_handler(VerificationError)
    def verification_error_handler(request: Request, exc: VerificationError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.message})

    app.include_router(verification.router)
    app.include_router(admin.router)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.get("/api/health")
    def api_health():
        return {"status": "ok", "version": get_runtime_version()}

    return app
