import json
import os
import secrets
from functools import lru_cache
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _load_env_file_if_present() -> None:
    env_file = BASE_DIR / ".env"
    if not env_file.exists():
        return
    try:
        lines = env_file.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError:
        return

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not key or key in os.environ:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ[key] = value


_load_env_file_if_present()


_RUNTIME_SECRET_PLACEHOLDERS = {
    "SECRET_KEY": "change-me-seda-secret",
}
_RUNTIME_GENERATED_VALUES: dict[str, str] = {}
_RUNTIME_SECRETS_FILENAME = ".runtime_secrets.json"

DEFAULT_CRAWLER_DOMAINS = (
    "bandcamp.com",
    "soundcloud.com",
    "open.spotify.com",
    "music.apple.com",
    "youtube.com",
    "youtu.be",
)


def _default_runtime_dir() -> Path:
    return BASE_DIR / "data"


def _runtime_secrets_store_path() -> Path:
    configured = os.getenv("RUNTIME_DIR", "").strip()
    root = Path(configured).expanduser() if configured else _default_runtime_dir()
    return root / _RUNTIME_SECRETS_FILENAME


def _load_runtime_secrets_store() -> dict[str, str]:
    path = _runtime_secrets_store_path()
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    if not isinstance(payload, dict):
        return {}
    return {str(k): str(v) for k, v in payload.items() if isinstance(k, str) and isinstance(v, str)}


def _save_runtime_secrets_store(values: dict[str, str]) -> None:
    path = _runtime_secrets_store_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(values, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, path)
    except OSError:
        return


def _runtime_secret(env_name: str, *, token_size: int = 32) -> str:
    current = os.getenv(env_name, "").strip()
    placeholder = _RUNTIME_SECRET_PLACEHOLDERS.get(env_name, "")
    if current and current != placeholder:
        return current
    if env_name in _RUNTIME_GENERATED_VALUES:
        return _RUNTIME_GENERATED_VALUES[env_name]

    persisted_values = _load_runtime_secrets_store()
    persisted = persisted_values.get(env_name, "").strip()
    if persisted:
        _RUNTIME_GENERATED_VALUES[env_name] = persisted
        return persisted

    generated = secrets.token_urlsafe(token_size)
    _RUNTIME_GENERATED_VALUES[env_name] = generated
    persisted_values[env_name] = generated
    _save_runtime_secrets_store(persisted_values)
    return generated


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.app_name: str = os.getenv("APP_NAME", "Seda Verification")
        self.app_env: str = os.getenv("APP_ENV", "dev")
        self.secret_key: str = _runtime_secret("SECRET_KEY")
        self.session_cookie_name: str = os.getenv("SESSION_COOKIE_NAME", "seda_session")
        self.runtime_dir: Path = Path(os.getenv("RUNTIME_DIR", str(_default_runtime_dir()))).expanduser()
        self.runtime_dir.mkdir(parents=True, exist_ok=True)
        default_db_path: Path = self.runtime_dir / "seda_verification.db"
        self.database_url: str = os.getenv("DATABASE_URL", f"sqlite:///{default_db_path.as_posix()}")

        # Claim codes and the request-side rate limit.
        self.verification_code_length: int = max(4, _env_int("VERIFICATION_CODE_LENGTH", 8))
        self.verification_code_expiry_days: int = _env_int("VERIFICATION_CODE_EXPIRY_DAYS", 7)
        self.verification_rate_limit_per_day: int = _env_int("RATE_LIMIT_VERIFICATION_PER_DAY", 3)
        self.verification_rate_limit_window_hours: int = _env_int("RATE_LIMIT_WINDOW_HOURS", 24)

        # Headless crawler.
        self.crawler_user_agent: str = os.getenv("CRAWLER_USER_AGENT", "Mozilla/5.0 (compatible; SedaBot/1.0)")
        self.crawler_timeout_ms: int = _env_int("CRAWLER_TIMEOUT_MS", 30000)
        self.crawler_max_retries: int = max(1, _env_int("CRAWLER_MAX_RETRIES", 3))
        self.crawler_settle_ms: int = _env_int("CRAWLER_SETTLE_MS", 2000)
        self.crawler_allowed_domains: list[str] = [
            d.lower() for d in _split_csv(os.getenv("CRAWLER_ALLOWED_DOMAINS", ",".join(DEFAULT_CRAWLER_DOMAINS)))
        ]
        self.crawl_cache_ttl_hours: int = _env_int("CRAWL_CACHE_TTL_HOURS", 24)
        # "thread" detaches crawls from the submitting request; "inline" runs them before returning.
        self.crawler_dispatch: str = os.getenv("CRAWLER_DISPATCH", "thread").strip().lower() or "thread"

        self.cors_allowed_origins: list[str] = _split_csv(
            os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://127.0.0.1,http://localhost,http://127.0.0.1:3000,http://localhost:3000",
            )
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
