"""Runtime configuration for the dashboard (read from the environment, overridable in tests)."""
import os
from typing import NamedTuple


class Settings(NamedTuple):
    database_url: str
    jwt_secret: str
    token_seconds: int
    upload_dir: str
    max_upload_bytes: int
    low_stock_threshold: int
    cookie_secure: bool
    log_level: str
    company_name: str
    company_address: str
    company_email: str
    company_vat: str


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default) in ("1", "true", "True", "yes")


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./backoffice.db"),
        jwt_secret=os.getenv("JWT_SECRET", "dev-secret"),
        token_seconds=int(os.getenv("TOKEN_SECONDS", str(60 * 60 * 24))),
        upload_dir=os.getenv("UPLOAD_DIR", "./uploads"),
        max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024))),
        low_stock_threshold=int(os.getenv("LOW_STOCK_THRESHOLD", "10")),
        cookie_secure=_env_flag("COOKIE_SECURE"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        company_name=os.getenv("COMPANY_NAME", "Nairobi Tech Solutions"),
        company_address=os.getenv("COMPANY_ADDRESS", "Nairobi, Kenya"),
        company_email=os.getenv("COMPANY_EMAIL", "billing@nairobitech.co.ke"),
        company_vat=os.getenv("COMPANY_VAT", "VAT123456"),
    )


state = load_settings()


def configure(**overrides) -> Settings:
    global state
    state = state._replace(**overrides)
    return state


def get_settings() -> Settings:
    return state
