import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class ClientConfig:
    """Client SDK settings (env: MANGATI_*)."""

    API_BASE_URL: str = os.environ.get("MANGATI_API_BASE_URL", "http://localhost:8000")
    SESSION_PATH: str = os.environ.get(
        "MANGATI_SESSION_PATH",
        str(Path.home() / ".mangati" / "session.json"),
    )
    REQUEST_TIMEOUT_SECONDS: float = float(os.environ.get("MANGATI_REQUEST_TIMEOUT_SECONDS", "30"))

    # A token is treated as expired this many seconds before its exp claim.
    EXPIRY_BUFFER_SECONDS: int = int(os.environ.get("MANGATI_EXPIRY_BUFFER_SECONDS", "30"))
    # Request-time refresh when the token expires within this window.
    REFRESH_WINDOW_SECONDS: int = int(os.environ.get("MANGATI_REFRESH_WINDOW_SECONDS", "120"))
    # Background refresh fires this long before expiry.
    REFRESH_MARGIN_SECONDS: int = int(os.environ.get("MANGATI_REFRESH_MARGIN_SECONDS", "300"))
    # How long a caller waits on someone else's in-flight refresh.
    REFRESH_WAIT_SECONDS: float = float(os.environ.get("MANGATI_REFRESH_WAIT_SECONDS", "30"))


def load_client_config() -> ClientConfig:
    return ClientConfig()
