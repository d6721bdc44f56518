import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load a local .env file if present (missing file is a no-op).
load_dotenv()


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


class MisconfigurationError(RuntimeError):
    """Required configuration is missing or unusable (e.g. no JWT signing key)."""


@dataclass(frozen=True)
class Config:
    """Runtime configuration for the API server.

    IMPORTANT: Provide secrets via environment variables or a .env file.
    There is deliberately no default JWT signing key.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set MANGATI_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: MANGATI_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("MANGATI_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("MANGATI_DB_PATH", "./mangati.sqlite")
    )

    # -----------------
    # Auth (JWT)
    # -----------------
    # Required. Startup and token issuance both fail without it.
    AUTH_JWT_SECRET: str | None = (os.environ.get("AUTH_JWT_SECRET") or "").strip() or None
    AUTH_TOKEN_EXPIRE_MINUTES: int = int(os.environ.get("AUTH_TOKEN_EXPIRE_MINUTES", "240"))  # 4 hours

    # Always written into tokens; only checked on decode when the matching flag is on.
    AUTH_JWT_ISSUER: str = os.environ.get("AUTH_JWT_ISSUER", "mangati-api")
    AUTH_JWT_AUDIENCE: str = os.environ.get("AUTH_JWT_AUDIENCE", "mangati-client")
    AUTH_VALIDATE_ISSUER: bool = _env_bool("AUTH_VALIDATE_ISSUER", False) is True
    AUTH_VALIDATE_AUDIENCE: bool = _env_bool("AUTH_VALIDATE_AUDIENCE", False) is True

    # Self-service signup may request Writer/Admin. Turn off to cap signups at Writer.
    AUTH_ALLOW_ADMIN_SIGNUP: bool = _env_bool("AUTH_ALLOW_ADMIN_SIGNUP", True) is True

    # Bootstrap first admin user if the users table is empty.
    # Leave the password unset to skip bootstrapping.
    AUTH_BOOTSTRAP_ADMIN_USERNAME: str = os.environ.get("AUTH_BOOTSTRAP_ADMIN_USERNAME", "admin")
    AUTH_BOOTSTRAP_ADMIN_EMAIL: str = os.environ.get("AUTH_BOOTSTRAP_ADMIN_EMAIL", "admin@mangati.app")
    AUTH_BOOTSTRAP_ADMIN_PASSWORD: str | None = (
        os.environ.get("AUTH_BOOTSTRAP_ADMIN_PASSWORD") or ""
    ).strip() or None

    # -----------------
    # CORS (development)
    # -----------------
    PUBLIC_APP_URL: str = os.environ.get("PUBLIC_APP_URL", "http://localhost:5173")
    CORS_ALLOW_ORIGINS: str = os.environ.get(
        "CORS_ALLOW_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
    )

    # -----------------
    # Content
    # -----------------
    SERIES_PAGE_SIZE_DEFAULT: int = int(os.environ.get("SERIES_PAGE_SIZE_DEFAULT", "20"))
    SERIES_PAGE_SIZE_MAX: int = int(os.environ.get("SERIES_PAGE_SIZE_MAX", "100"))

    # -----------------
    # Billing (Stripe)
    # -----------------
    STRIPE_SECRET_KEY: str | None = os.environ.get("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET: str | None = os.environ.get("STRIPE_WEBHOOK_SECRET")


def load_config() -> Config:
    return Config()


def require_jwt_secret(cfg: Config) -> str:
    secret = (cfg.AUTH_JWT_SECRET or "").strip()
    if not secret:
        raise MisconfigurationError("AUTH_JWT_SECRET is not set")
    return secret
