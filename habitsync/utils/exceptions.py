"""Custom exceptions for the HabitSync client"""

from typing import Any, Dict, Optional


class HabitSyncError(Exception):
    """Base exception for HabitSync"""
    pass


class ApiError(HabitSyncError):
    """Failure of a call made through the API gateway"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """True for the "try again" class of failures (transport and server)."""
        return False


class TransportError(ApiError):
    """No response was received (connection refused, DNS, timeout)"""

    def __init__(self, message: str):
        super().__init__(message, status_code=None)

    @property
    def retryable(self) -> bool:
        return True


class AuthorizationError(ApiError):
    """Credential rejected by the service (HTTP 401/403)"""
    pass


class ValidationError(ApiError):
    """Input rejected, either locally or by the service with a structured error"""
    pass


class ServerError(ApiError):
    """5xx response or a response body that could not be understood"""

    @property
    def retryable(self) -> bool:
        return True


class CredentialStoreError(HabitSyncError):
    """Credential storage could not be read, written or decrypted"""
    pass


class NotAuthenticatedError(HabitSyncError):
    """Operation requires an authenticated session"""
    pass


class ConfigError(HabitSyncError):
    """Configuration error"""
    pass
