"""Python client for the Mangati API.

`ApiClient` is the entry point. It keeps the bearer token and a cached user
projection in a `SessionStore` (a JSON file) and lets a `SessionManager`
decide, per request, whether to attach, refresh or drop the token.
"""

from .api import ApiClient
from .config import ClientConfig, load_client_config
from .errors import ApiError, NotFoundError, PermissionDeniedError, QuotaExceededError, SessionExpiredError
from .session import SessionManager
from .storage import SessionStore

__all__ = [
    "ApiClient",
    "ClientConfig",
    "load_client_config",
    "ApiError",
    "NotFoundError",
    "PermissionDeniedError",
    "QuotaExceededError",
    "SessionExpiredError",
    "SessionManager",
    "SessionStore",
]
