from __future__ import annotations

from typing import Any, Optional


_MESSAGES = {
    "session_expired": "Your session has expired. Please log in again.",
    "invalid_credentials": "Invalid email or password.",
    "role_required": "You do not have permission to do that.",
    "not_owner": "You can only change content you authored.",
    "subscription_required": "An active subscription is required to upload chapters.",
    "subscription_inactive": "Your subscription is not active.",
    "upload_limit_reached": "You have reached your monthly upload limit.",
}


class ApiError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, detail: Any = None, *, path: Optional[str] = None):
        super().__init__(f"{status_code} {detail}")
        self.status_code = status_code
        self.detail = detail
        self.path = path

    @property
    def user_message(self) -> str:
        if isinstance(self.detail, str) and self.detail in _MESSAGES:
            return _MESSAGES[self.detail]
        return "Something went wrong. Please try again."


class SessionExpiredError(ApiError):
    def __init__(self, detail: Any = "session_expired", *, path: Optional[str] = None):
        super().__init__(401, detail, path=path)

    @property
    def user_message(self) -> str:
        return _MESSAGES["session_expired"]


class PermissionDeniedError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


class QuotaExceededError(ApiError):
    pass


def error_for(status_code: int, detail: Any, *, path: Optional[str] = None) -> ApiError:
    if status_code == 401:
        return ApiError(401, detail, path=path)
    if status_code == 403:
        return PermissionDeniedError(status_code, detail, path=path)
    if status_code == 404:
        return NotFoundError(status_code, detail, path=path)
    if status_code in (402, 429):
        return QuotaExceededError(status_code, detail, path=path)
    return ApiError(status_code, detail, path=path)
